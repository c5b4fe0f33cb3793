"""
RDS service for Aurora clusters, instances and snapshots.
"""
import random
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from botocore.exceptions import ClientError

from constants import (
    DATABASE_ENGINE_MYSQL,
    DATABASE_ENGINE_POSTGRES,
    DEFAULT_DATABASE_MYSQL_VERSION,
    DEFAULT_DATABASE_POSTGRES_VERSION,
    DEFAULT_DB_SECURITY_GROUP_TAG_MYSQL_VALUE,
    DEFAULT_DB_SECURITY_GROUP_TAG_POSTGRES_VALUE,
    DEFAULT_MYSQL_PORT,
    DEFAULT_POSTGRES_PORT,
    DEFAULT_RDS_BACKUP_RETENTION_DAYS,
    DEFAULT_RDS_DATABASE_NAME,
    DEFAULT_RDS_STATUS_AVAILABLE,
)
from logger_config import get_logger
from services.helpers import db_subnet_group_name, is_error_code
from utils.decorators import wrap_aws_errors
from utils.exceptions import MultipleResourcesError, ResourceNotFoundError, ValidationError

if TYPE_CHECKING:
    from mypy_boto3_rds import RDSClient
    from services.aws_client import AWSClient
else:
    RDSClient = Any

logger = get_logger(__name__)

ENGINE_SETTINGS = {
    DATABASE_ENGINE_MYSQL: {
        "engine": "aurora-mysql",
        "version": DEFAULT_DATABASE_MYSQL_VERSION,
        "port": DEFAULT_MYSQL_PORT,
        "security_group_tag": DEFAULT_DB_SECURITY_GROUP_TAG_MYSQL_VALUE,
    },
    DATABASE_ENGINE_POSTGRES: {
        "engine": "aurora-postgresql",
        "version": DEFAULT_DATABASE_POSTGRES_VERSION,
        "port": DEFAULT_POSTGRES_PORT,
        "security_group_tag": DEFAULT_DB_SECURITY_GROUP_TAG_POSTGRES_VALUE,
    },
}


def engine_settings(engine: str) -> Dict[str, Any]:
    settings = ENGINE_SETTINGS.get(engine)
    if settings is None:
        raise ValidationError(f"{engine} is an invalid database engine type", field="engine", value=engine)
    return settings


class RDSService:
    """Service for RDS operations."""

    def __init__(self, aws_client: "AWSClient") -> None:
        self.aws_client = aws_client

    @property
    def client(self) -> RDSClient:
        return self.aws_client.service('rds')

    @wrap_aws_errors("failed to describe DB cluster {cluster_id}", service="rds")
    def db_cluster_exists(self, cluster_id: str) -> bool:
        try:
            self.client.describe_db_clusters(DBClusterIdentifier=cluster_id)
        except ClientError as e:
            if is_error_code(e, 'DBClusterNotFoundFault'):
                return False
            raise
        return True

    @wrap_aws_errors("failed to describe DB cluster {cluster_id}", service="rds")
    def describe_db_cluster(self, cluster_id: str) -> Dict[str, Any]:
        """
        Return the description of exactly one DB cluster.

        Raises:
            ResourceNotFoundError: If the cluster does not exist
            MultipleResourcesError: If the filter matches more than one cluster
        """
        try:
            clusters = self.client.describe_db_clusters(
                Filters=[{"Name": "db-cluster-id", "Values": [cluster_id]}]
            ).get("DBClusters", [])
        except ClientError as e:
            if is_error_code(e, 'DBClusterNotFoundFault'):
                clusters = []
            else:
                raise
        if not clusters:
            raise ResourceNotFoundError(
                f"expected exactly one RDS cluster {cluster_id}, but found 0",
                resource_type="rds-cluster",
                resource_id=cluster_id,
            )
        if len(clusters) != 1:
            raise MultipleResourcesError(
                f"expected exactly one RDS cluster {cluster_id}, but found {len(clusters)}",
                resource_type="rds-cluster",
                count=len(clusters),
            )
        return clusters[0]

    @wrap_aws_errors("failed to describe DB subnet groups for VPC {vpc_id}", service="rds")
    def get_db_subnet_group_name(self, vpc_id: str) -> str:
        expected = db_subnet_group_name(vpc_id)
        paginator = self.client.get_paginator('describe_db_subnet_groups')
        for page in paginator.paginate():
            for subnet_group in page.get("DBSubnetGroups", []):
                if subnet_group["DBSubnetGroupName"] == expected:
                    logger.debug("Found DB subnet group", extra={"db_subnet_group_name": expected})
                    return expected
        raise ResourceNotFoundError(
            f"unable to find DB subnet group {expected}",
            resource_type="db-subnet-group",
            resource_id=vpc_id,
        )

    @wrap_aws_errors("failed to create DB cluster {cluster_id}", service="rds")
    def ensure_db_cluster_created(
        self,
        cluster_id: str,
        vpc_id: str,
        username: str,
        password: str,
        kms_key_id: str,
        engine: str = DATABASE_ENGINE_MYSQL,
        tags: Optional[List[Dict[str, str]]] = None
    ) -> None:
        """
        Create an encrypted Aurora cluster in the VPC's database subnets.

        The cluster is spread over two availability zones, or three shuffled
        ones when the region has at least three.

        Args:
            cluster_id: DB cluster identifier
            vpc_id: VPC hosting the cluster
            username: Master username
            password: Master password
            kms_key_id: KMS key used for storage encryption
            engine: 'mysql' or 'postgres'
            tags: RDS tags
        """
        settings = engine_settings(engine)

        if self.db_cluster_exists(cluster_id):
            logger.debug("AWS DB cluster already created", extra={"db_cluster_name": cluster_id})
            return

        security_group_ids = self.aws_client.ec2.get_db_security_group_ids(
            vpc_id, settings["security_group_tag"]
        )
        subnet_group_name = self.get_db_subnet_group_name(vpc_id)

        zones = self.aws_client.ec2.get_availability_zones()
        if len(zones) >= 3:
            random.shuffle(zones)
            zones = zones[:3]
        else:
            zones = zones[:2]

        self.client.create_db_cluster(
            AvailabilityZones=zones,
            BackupRetentionPeriod=DEFAULT_RDS_BACKUP_RETENTION_DAYS,
            DBClusterIdentifier=cluster_id,
            DatabaseName=DEFAULT_RDS_DATABASE_NAME,
            EngineMode="provisioned",
            Engine=settings["engine"],
            EngineVersion=settings["version"],
            MasterUserPassword=password,
            MasterUsername=username,
            Port=settings["port"],
            StorageEncrypted=True,
            DBSubnetGroupName=subnet_group_name,
            VpcSecurityGroupIds=security_group_ids,
            KmsKeyId=kms_key_id,
            Tags=tags or [],
        )
        logger.debug("AWS DB cluster created", extra={"db_cluster_name": cluster_id})

    @wrap_aws_errors("failed to create DB instance {instance_id}", service="rds")
    def ensure_db_cluster_instance_created(
        self,
        cluster_id: str,
        instance_id: str,
        instance_class: str,
        engine: str = DATABASE_ENGINE_MYSQL,
        tags: Optional[List[Dict[str, str]]] = None
    ) -> None:
        try:
            self.client.describe_db_instances(DBInstanceIdentifier=instance_id)
            logger.debug("AWS DB instance already created", extra={"db_instance_name": instance_id})
            return
        except ClientError as e:
            if not is_error_code(e, 'DBInstanceNotFound'):
                raise

        self.client.create_db_instance(
            DBClusterIdentifier=cluster_id,
            DBInstanceIdentifier=instance_id,
            DBInstanceClass=instance_class,
            Engine=engine_settings(engine)["engine"],
            PubliclyAccessible=False,
            Tags=tags or [],
        )
        logger.debug("AWS DB instance created", extra={"db_instance_name": instance_id})

    @wrap_aws_errors("failed to delete DB cluster {cluster_id}", service="rds")
    def ensure_db_cluster_deleted(self, cluster_id: str) -> None:
        """Delete a cluster's member instances and then the cluster itself."""
        try:
            clusters = self.client.describe_db_clusters(
                DBClusterIdentifier=cluster_id
            ).get("DBClusters", [])
        except ClientError as e:
            if is_error_code(e, 'DBClusterNotFoundFault'):
                logger.warning(
                    "DBCluster could not be found; assuming already deleted",
                    extra={"db_cluster_name": cluster_id}
                )
                return
            raise

        if len(clusters) != 1:
            raise MultipleResourcesError(
                f"expected 1 DB cluster, but got {len(clusters)}",
                resource_type="rds-cluster",
                count=len(clusters),
            )

        for member in clusters[0].get("DBClusterMembers", []):
            instance_id = member["DBInstanceIdentifier"]
            self.client.delete_db_instance(
                DBInstanceIdentifier=instance_id,
                SkipFinalSnapshot=True,
            )
            logger.debug("DB instance deleted", extra={"db_instance_name": instance_id})

        self.client.delete_db_cluster(DBClusterIdentifier=cluster_id, SkipFinalSnapshot=True)
        logger.debug("DBCluster deleted", extra={"db_cluster_name": cluster_id})

    @wrap_aws_errors("failed to create snapshot of DB cluster {cluster_id}", service="rds")
    def create_db_cluster_snapshot(
        self,
        cluster_id: str,
        snapshot_id: str,
        tags: Optional[List[Dict[str, str]]] = None
    ) -> Dict[str, Any]:
        snapshot = self.client.create_db_cluster_snapshot(
            DBClusterIdentifier=cluster_id,
            DBClusterSnapshotIdentifier=snapshot_id,
            Tags=tags or [],
        )["DBClusterSnapshot"]
        logger.debug(
            "DB cluster snapshot created",
            extra={"db_cluster_name": cluster_id, "snapshot_id": snapshot_id}
        )
        return snapshot

    @wrap_aws_errors("failed to describe DB instance {instance_id}", service="rds")
    def describe_db_instance(self, instance_id: str) -> Dict[str, Any]:
        instances = self.client.describe_db_instances(
            DBInstanceIdentifier=instance_id
        ).get("DBInstances", [])
        if len(instances) != 1:
            raise MultipleResourcesError(
                f"expected 1 DB instance {instance_id}, but got {len(instances)}",
                resource_type="rds-instance",
                count=len(instances),
            )
        return instances[0]

    @wrap_aws_errors("failed to tag RDS resource {resource_arn}", service="rds")
    def tag_resource(self, resource_arn: str, tags: List[Dict[str, str]]) -> None:
        self.client.add_tags_to_resource(ResourceName=resource_arn, Tags=tags)

    @wrap_aws_errors("failed to describe endpoints of DB cluster {cluster_id}", service="rds")
    def db_cluster_endpoints_ready(self, cluster_id: str) -> bool:
        """Return True when every endpoint of the cluster is available."""
        endpoints = self.client.describe_db_cluster_endpoints(
            DBClusterIdentifier=cluster_id
        ).get("DBClusterEndpoints", [])
        return all(endpoint.get("Status") == DEFAULT_RDS_STATUS_AVAILABLE for endpoint in endpoints)
