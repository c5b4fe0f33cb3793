"""
Tests for VPC, subnet and security group lookups.
"""
import boto3
import pytest
from moto import mock_aws

from utils.exceptions import MultipleResourcesError, ResourceNotFoundError, ValidationError


def create_vpc(cluster_id, available="false", cluster_tag="CloudClusterID"):
    ec2 = boto3.client('ec2')
    vpc_id = ec2.create_vpc(CidrBlock="10.0.0.0/16")["Vpc"]["VpcId"]
    ec2.create_tags(
        Resources=[vpc_id],
        Tags=[{"Key": cluster_tag, "Value": cluster_id}, {"Key": "Available", "Value": available}],
    )
    return vpc_id


@pytest.mark.aws
class TestVPCLookups:
    """Tests for VPC lookups by cluster and installation."""

    @mock_aws()
    def test_vpc_for_cluster(self, aws_client):
        """Test the claimed VPC of a cluster is found."""
        vpc_id = create_vpc("cluster1")
        create_vpc("cluster1", available="true")

        assert aws_client.ec2.vpc_for_cluster("cluster1")["VpcId"] == vpc_id

    @mock_aws()
    def test_vpc_for_secondary_cluster(self, aws_client):
        """Test secondary clusters are found through their own tag."""
        vpc_id = create_vpc("cluster2", cluster_tag="CloudSecondaryClusterID")
        assert aws_client.ec2.vpc_for_cluster("cluster2")["VpcId"] == vpc_id

    @mock_aws()
    def test_vpc_for_cluster_missing(self, aws_client):
        """Test a cluster without a claimed VPC."""
        with pytest.raises(ResourceNotFoundError, match="found 0"):
            aws_client.ec2.vpc_for_cluster("nope")

    @mock_aws()
    def test_vpc_for_cluster_multiple(self, aws_client):
        """Test a cluster claiming two VPCs."""
        create_vpc("cluster1")
        create_vpc("cluster1")
        with pytest.raises(MultipleResourcesError, match="found 2"):
            aws_client.ec2.vpc_for_cluster("cluster1")

    @mock_aws()
    def test_vpc_for_installation(self, aws_client, store):
        """Test an installation's VPC is found through its cluster installation."""
        vpc_id = create_vpc("cluster1")
        store.add_cluster_installation("abc", "cluster1")

        assert aws_client.ec2.vpc_for_installation("abc", store)["VpcId"] == vpc_id

    def test_vpc_for_installation_without_store(self, aws_client):
        """Test VPC lookups by installation need a store."""
        with pytest.raises(ValidationError, match="store"):
            aws_client.ec2.vpc_for_installation("abc", None)

    def test_vpc_for_installation_cluster_installations(self, aws_client, store):
        """Test zero or several cluster installations are rejected."""
        with pytest.raises(ResourceNotFoundError):
            aws_client.ec2.vpc_for_installation("abc", store)

        store.add_cluster_installation("abc", "cluster1")
        store.add_cluster_installation("abc", "cluster2")
        with pytest.raises(MultipleResourcesError, match="not supported"):
            aws_client.ec2.vpc_for_installation("abc", store)


@pytest.mark.aws
class TestClusterResources:
    """Tests for subnet and security group discovery."""

    @mock_aws()
    def test_get_vpc_resources_for_cluster(self, aws_client):
        """Test tagged subnets and security groups are collected."""
        vpc_id = create_vpc("cluster1")
        ec2 = boto3.client('ec2')

        def subnet(cidr, subnet_type):
            subnet_id = ec2.create_subnet(VpcId=vpc_id, CidrBlock=cidr)["Subnet"]["SubnetId"]
            ec2.create_tags(Resources=[subnet_id], Tags=[{"Key": "SubnetType", "Value": subnet_type}])
            return subnet_id

        def group(node_type):
            group_id = ec2.create_security_group(
                GroupName=f"{node_type}-sg", Description=node_type, VpcId=vpc_id
            )["GroupId"]
            ec2.create_tags(Resources=[group_id], Tags=[{"Key": "NodeType", "Value": node_type}])
            return group_id

        private = subnet("10.0.1.0/24", "private")
        public = subnet("10.0.2.0/24", "public")
        master = group("master")
        worker = group("worker")
        calls = group("calls")

        resources = aws_client.ec2.get_vpc_resources_for_cluster("cluster1")

        assert resources.vpc_id == vpc_id
        assert resources.vpc_cidr == "10.0.0.0/16"
        assert resources.private_subnet_ids == [private]
        assert resources.public_subnet_ids == [public]
        assert resources.master_security_group_ids == [master]
        assert resources.worker_security_group_ids == [worker]
        assert resources.calls_security_group_ids == [calls]

    @mock_aws()
    def test_misconfigured_vpc(self, aws_client):
        """Test a VPC without tagged subnets fails validation."""
        vpc_id = create_vpc("cluster1")
        with pytest.raises(ValidationError, match="private subnet list is empty"):
            aws_client.ec2.get_cluster_resources_for_vpc(vpc_id)

    @mock_aws()
    def test_db_security_groups(self, aws_client):
        """Test DB tagged security groups are found per engine tag."""
        vpc_id = create_vpc("cluster1")
        ec2 = boto3.client('ec2')
        group_id = ec2.create_security_group(GroupName="db", Description="db", VpcId=vpc_id)["GroupId"]
        ec2.create_tags(
            Resources=[group_id],
            Tags=[{"Key": "MattermostCloudInstallationDatabase", "Value": "MYSQL/Aurora"}],
        )

        assert aws_client.ec2.get_db_security_group_ids(vpc_id) == [group_id]
        with pytest.raises(ResourceNotFoundError):
            aws_client.ec2.get_db_security_group_ids(vpc_id, "PostgreSQL/Aurora")

    @mock_aws()
    def test_tag_and_untag_resource(self, aws_client):
        """Test EC2 tags are added and removed."""
        vpc_id = create_vpc("cluster1")
        aws_client.ec2.tag_resource(vpc_id, "Owner", "cloud-team")

        ec2 = boto3.client('ec2')
        tags = ec2.describe_tags(Filters=[{"Name": "resource-id", "Values": [vpc_id]}])["Tags"]
        assert {"Owner": "cloud-team"}.items() <= {t["Key"]: t["Value"] for t in tags}.items()

        aws_client.ec2.untag_resource(vpc_id, "Owner", "cloud-team")
        tags = ec2.describe_tags(Filters=[{"Name": "resource-id", "Values": [vpc_id]}])["Tags"]
        assert "Owner" not in {t["Key"] for t in tags}

        with pytest.raises(ValidationError):
            aws_client.ec2.tag_resource("", "Owner", "cloud-team")

    @mock_aws()
    def test_is_valid_ami(self, aws_client):
        """Test AMI checks by empty value, id and name."""
        assert aws_client.ec2.is_valid_ami("") is True
        assert aws_client.ec2.is_valid_ami("no-such-image") is False
