"""
Security group access between two RDS instances for database migration.
"""
from typing import Any, Dict

from botocore.exceptions import ClientError

from constants import (
    DEFAULT_DB_SECURITY_GROUP_TAG_KEY,
    DEFAULT_DB_SECURITY_GROUP_TAG_MYSQL_VALUE,
    DEFAULT_MYSQL_PORT,
    MIGRATION_INGRESS_DESCRIPTION,
    MIGRATION_STATUS_SETUP_COMPLETE,
    MIGRATION_STATUS_TEARDOWN_COMPLETE,
)
from logger_config import get_logger
from services.aws_client import AWSClient
from services.helpers import (
    ensure_tag_in_tagset,
    is_error_code,
    rds_master_instance_id,
    rds_migration_instance_id,
    trim_tag_prefix,
)
from utils.decorators import wrap_aws_errors
from utils.exceptions import NotSupportedError, ResourceNotFoundError

logger = get_logger(__name__)

SETUP_ERROR_MESSAGE = (
    "unable to setup database migration for master installation id: "
    "{self.master_installation_id} and to slave installation id: {self.slave_installation_id}"
)
TEARDOWN_ERROR_MESSAGE = (
    "unable to teardown database migration for master installation id: "
    "{self.master_installation_id} and to slave installation id: {self.slave_installation_id}"
)


def is_rds_instance_security_group(security_group: Dict[str, Any]) -> bool:
    return ensure_tag_in_tagset(
        trim_tag_prefix(DEFAULT_DB_SECURITY_GROUP_TAG_KEY),
        DEFAULT_DB_SECURITY_GROUP_TAG_MYSQL_VALUE,
        security_group.get("Tags", []),
    )


class RDSDatabaseMigration:
    """Grants a migration instance access to a master RDS instance."""

    def __init__(self, master_installation_id: str, slave_installation_id: str, client: AWSClient) -> None:
        self.master_installation_id = master_installation_id
        self.slave_installation_id = slave_installation_id
        self.client = client

    def _log_extra(self) -> Dict[str, str]:
        return {
            "master_installation_id": self.master_installation_id,
            "slave_installation_id": self.slave_installation_id,
        }

    def _ip_permissions(self, slave_group_id: str, description: str = "") -> list:
        group_pair = {"GroupId": slave_group_id}
        if description:
            group_pair["Description"] = description
        return [{
            "FromPort": DEFAULT_MYSQL_PORT,
            "ToPort": DEFAULT_MYSQL_PORT,
            "IpProtocol": "tcp",
            "UserIdGroupPairs": [group_pair],
        }]

    def describe_db_instance_security_group(self, instance_id: str) -> Dict[str, Any]:
        """
        Return the DB tagged VPC security group of an RDS instance.

        Raises:
            ResourceNotFoundError: If none of the instance's groups is DB tagged
        """
        rds = self.client.service('rds')
        ec2 = self.client.service('ec2')

        instances = rds.describe_db_instances(DBInstanceIdentifier=instance_id).get("DBInstances", [])
        for instance in instances:
            for vpc_group in instance.get("VpcSecurityGroups", []):
                groups = ec2.describe_security_groups(
                    GroupIds=[vpc_group["VpcSecurityGroupId"]]
                ).get("SecurityGroups", [])
                if len(groups) == 1 and is_rds_instance_security_group(groups[0]):
                    return groups[0]

        raise ResourceNotFoundError(
            f"security group for RDS DB instance {instance_id} not found",
            resource_type="security-group",
            resource_id=instance_id,
        )

    @wrap_aws_errors(SETUP_ERROR_MESSAGE, service="ec2")
    def setup(self) -> str:
        """Allow MySQL traffic from the migration instance into the master instance."""
        master_group = self.describe_db_instance_security_group(
            rds_master_instance_id(self.master_installation_id)
        )
        slave_group = self.describe_db_instance_security_group(
            rds_migration_instance_id(self.slave_installation_id)
        )

        try:
            self.client.service('ec2').authorize_security_group_ingress(
                GroupId=master_group["GroupId"],
                IpPermissions=self._ip_permissions(slave_group["GroupId"], MIGRATION_INGRESS_DESCRIPTION),
            )
        except ClientError as e:
            if not is_error_code(e, 'InvalidPermission.Duplicate'):
                raise

        logger.info("Database migration setup completed", extra=self._log_extra())
        return MIGRATION_STATUS_SETUP_COMPLETE

    @wrap_aws_errors(TEARDOWN_ERROR_MESSAGE, service="ec2")
    def teardown(self) -> str:
        """Revoke the ingress rule added by setup."""
        master_group = self.describe_db_instance_security_group(
            rds_master_instance_id(self.master_installation_id)
        )
        slave_group = self.describe_db_instance_security_group(
            rds_migration_instance_id(self.slave_installation_id)
        )

        try:
            self.client.service('ec2').revoke_security_group_ingress(
                GroupId=master_group["GroupId"],
                IpPermissions=self._ip_permissions(slave_group["GroupId"]),
            )
        except ClientError as e:
            if not is_error_code(e, 'InvalidPermission.NotFound'):
                raise

        logger.info("Database migration teardown completed", extra=self._log_extra())
        return MIGRATION_STATUS_TEARDOWN_COMPLETE

    def replicate(self) -> str:
        raise NotSupportedError("database replication is not implemented", operation="replicate")
