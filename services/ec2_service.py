"""
EC2 service for VPC, subnet and security group lookups.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from constants import (
    DEFAULT_DB_SECURITY_GROUP_TAG_KEY,
    DEFAULT_DB_SECURITY_GROUP_TAG_MYSQL_VALUE,
    NODE_TYPE_CALLS,
    NODE_TYPE_MASTER,
    NODE_TYPE_TAG_KEY,
    NODE_TYPE_WORKER,
    SUBNET_TYPE_PRIVATE,
    SUBNET_TYPE_PUBLIC,
    SUBNET_TYPE_TAG_KEY,
    VPC_AVAILABLE_TAG_KEY,
    VPC_AVAILABLE_TAG_VALUE_FALSE,
    VPC_CLUSTER_ID_TAG_KEY,
    VPC_SECONDARY_CLUSTER_ID_TAG_KEY,
)
from logger_config import get_logger
from model import InstallationDatabaseStore
from utils.decorators import wrap_aws_errors
from utils.exceptions import MultipleResourcesError, ResourceNotFoundError, ValidationError

if TYPE_CHECKING:
    from mypy_boto3_ec2 import EC2Client
    from services.aws_client import AWSClient
else:
    EC2Client = Any

logger = get_logger(__name__)


def ec2_filter(name: str, *values: str) -> Dict[str, Any]:
    return {"Name": name, "Values": list(values)}


@dataclass
class ClusterResources:
    """Networking resources a Kubernetes cluster runs in."""

    vpc_id: str
    vpc_cidr: str = ""
    private_subnet_ids: List[str] = field(default_factory=list)
    public_subnet_ids: List[str] = field(default_factory=list)
    master_security_group_ids: List[str] = field(default_factory=list)
    worker_security_group_ids: List[str] = field(default_factory=list)
    calls_security_group_ids: List[str] = field(default_factory=list)

    def validate(self) -> None:
        checks = [
            (self.vpc_id, "vpc ID is empty"),
            (self.private_subnet_ids, "private subnet list is empty"),
            (self.public_subnet_ids, "public subnet list is empty"),
            (self.master_security_group_ids, "master security group list is empty"),
            (self.worker_security_group_ids, "worker security group list is empty"),
            (self.calls_security_group_ids, "calls security group list is empty"),
        ]
        for value, message in checks:
            if not value:
                raise ValidationError(f"VPC {self.vpc_id} is misconfigured: {message}")


class EC2Service:
    """Service for EC2 networking operations."""

    def __init__(self, aws_client: "AWSClient") -> None:
        self.aws_client = aws_client

    @property
    def client(self) -> EC2Client:
        return self.aws_client.service('ec2')

    @wrap_aws_errors("unable to tag resource id: {resource_id}", service="ec2")
    def tag_resource(self, resource_id: str, key: str, value: str) -> None:
        if not resource_id:
            raise ValidationError("Missing resource ID", field="resource_id")
        self.client.create_tags(
            Resources=[resource_id],
            Tags=[{"Key": key, "Value": value}],
        )
        logger.debug(
            f"AWS EC2 tag created for {resource_id}",
            extra={"tag_key": key, "tag_value": value}
        )

    @wrap_aws_errors("unable to remove AWS tag from resource {resource_id}", service="ec2")
    def untag_resource(self, resource_id: str, key: str, value: str) -> None:
        if not resource_id:
            raise ValidationError(
                "unable to remove AWS tag from resource: missing resource ID",
                field="resource_id",
            )
        self.client.delete_tags(
            Resources=[resource_id],
            Tags=[{"Key": key, "Value": value}],
        )
        logger.debug(
            f"AWS EC2 tag deleted for {resource_id}",
            extra={"tag_key": key, "tag_value": value}
        )

    @wrap_aws_errors("failed to describe images for {ami_image}", service="ec2")
    def is_valid_ami(self, ami_image: str) -> bool:
        """
        Check that an AMI exists, by id ('ami-...') or by name.

        A name without an architecture suffix matches either the -amd64
        or the -arm64 image. An empty value means the default AMI.
        """
        if not ami_image:
            return True

        if ami_image.startswith("ami-"):
            images = self.client.describe_images(ImageIds=[ami_image]).get("Images", [])
        else:
            if ami_image.endswith("-amd64") or ami_image.endswith("-arm64"):
                names = [ami_image]
            else:
                names = [f"{ami_image}-amd64", f"{ami_image}-arm64"]
            images = self.client.describe_images(
                Filters=[ec2_filter("name", *names)]
            ).get("Images", [])

        if not images:
            logger.info("No images found matching the AMI", extra={"ami": ami_image})
            return False
        return True

    @wrap_aws_errors("failed to describe VPCs", service="ec2")
    def get_vpcs_with_filters(self, filters: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self.client.describe_vpcs(Filters=filters).get("Vpcs", [])

    @wrap_aws_errors("failed to describe subnets", service="ec2")
    def get_subnets_with_filters(self, filters: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self.client.describe_subnets(Filters=filters).get("Subnets", [])

    @wrap_aws_errors("failed to describe security groups", service="ec2")
    def get_security_groups_with_filters(self, filters: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self.client.describe_security_groups(Filters=filters).get("SecurityGroups", [])

    @wrap_aws_errors("failed to describe availability zones", service="ec2")
    def get_availability_zones(self) -> List[str]:
        zones = self.client.describe_availability_zones().get("AvailabilityZones", [])
        return [zone["ZoneName"] for zone in zones]

    def get_db_security_group_ids(
        self,
        vpc_id: str,
        tag_value: str = DEFAULT_DB_SECURITY_GROUP_TAG_MYSQL_VALUE
    ) -> List[str]:
        """
        Return the security groups of a VPC tagged for database usage.

        Raises:
            ResourceNotFoundError: If no tagged security group exists
        """
        groups = self.get_security_groups_with_filters([
            ec2_filter("vpc-id", vpc_id),
            ec2_filter(DEFAULT_DB_SECURITY_GROUP_TAG_KEY, tag_value),
        ])
        group_ids = [group["GroupId"] for group in groups]
        if not group_ids:
            raise ResourceNotFoundError(
                "unable to find security groups tagged for Mattermost DB usage: "
                f"{DEFAULT_DB_SECURITY_GROUP_TAG_KEY}={tag_value}",
                resource_type="security-group",
                resource_id=vpc_id,
            )
        logger.debug(
            f"Found {len(group_ids)} DB tagged security groups",
            extra={"security_group_ids": group_ids}
        )
        return group_ids

    def get_cluster_resources_for_vpc(self, vpc_id: str, vpc_cidr: str = "") -> ClusterResources:
        """Collect and validate the subnets and security groups of a VPC."""
        base = [ec2_filter("vpc-id", vpc_id)]

        def subnet_ids(subnet_type: str) -> List[str]:
            subnets = self.get_subnets_with_filters(
                base + [ec2_filter(SUBNET_TYPE_TAG_KEY, subnet_type)]
            )
            return [subnet["SubnetId"] for subnet in subnets]

        def group_ids(node_type: str) -> List[str]:
            groups = self.get_security_groups_with_filters(
                base + [ec2_filter(NODE_TYPE_TAG_KEY, node_type)]
            )
            return [group["GroupId"] for group in groups]

        resources = ClusterResources(
            vpc_id=vpc_id,
            vpc_cidr=vpc_cidr,
            private_subnet_ids=subnet_ids(SUBNET_TYPE_PRIVATE),
            public_subnet_ids=subnet_ids(SUBNET_TYPE_PUBLIC),
            master_security_group_ids=group_ids(NODE_TYPE_MASTER),
            worker_security_group_ids=group_ids(NODE_TYPE_WORKER),
            calls_security_group_ids=group_ids(NODE_TYPE_CALLS),
        )
        resources.validate()
        return resources

    def get_vpc_resources_for_cluster(self, cluster_id: str) -> ClusterResources:
        vpc = self.vpc_for_cluster(cluster_id)
        return self.get_cluster_resources_for_vpc(vpc["VpcId"], vpc.get("CidrBlock", ""))

    def vpc_for_cluster(self, cluster_id: str) -> Dict[str, Any]:
        """
        Return the claimed VPC of a cluster.

        Secondary clusters are found through the secondary cluster id tag.

        Raises:
            ResourceNotFoundError: If no VPC is claimed by the cluster
            MultipleResourcesError: If more than one VPC matches
        """
        vpcs = self.get_vpcs_with_filters([
            ec2_filter(VPC_CLUSTER_ID_TAG_KEY, cluster_id),
            ec2_filter(VPC_AVAILABLE_TAG_KEY, VPC_AVAILABLE_TAG_VALUE_FALSE),
        ])
        if not vpcs:
            vpcs = self.get_vpcs_with_filters([
                ec2_filter(VPC_AVAILABLE_TAG_KEY, VPC_AVAILABLE_TAG_VALUE_FALSE),
                ec2_filter(VPC_SECONDARY_CLUSTER_ID_TAG_KEY, cluster_id),
            ])
        if not vpcs:
            raise ResourceNotFoundError(
                f"expected 1 VPC for cluster {cluster_id}, but found 0",
                resource_type="vpc",
                resource_id=cluster_id,
            )
        if len(vpcs) != 1:
            raise MultipleResourcesError(
                f"expected 1 VPC for cluster {cluster_id}, but found {len(vpcs)}",
                resource_type="vpc",
                count=len(vpcs),
            )
        return vpcs[0]

    def vpc_for_installation(
        self,
        installation_id: str,
        store: Optional[InstallationDatabaseStore]
    ) -> Dict[str, Any]:
        """
        Return the VPC hosting the single cluster installation of an installation.

        Raises:
            ResourceNotFoundError: If the installation has no cluster installation
            MultipleResourcesError: If it has several
        """
        if store is None:
            raise ValidationError("an installation store is required", field="store")

        cluster_installations = store.get_cluster_installations(installation_id)
        if not cluster_installations:
            raise ResourceNotFoundError(
                f"no cluster installations found for installation ID {installation_id}",
                resource_type="cluster-installation",
                resource_id=installation_id,
            )
        if len(cluster_installations) != 1:
            raise MultipleResourcesError(
                "VPC lookups for installations with more than one cluster installation "
                f"are currently not supported (found {len(cluster_installations)})",
                resource_type="cluster-installation",
                count=len(cluster_installations),
            )
        return self.vpc_for_cluster(cluster_installations[0].cluster_id)
