"""
Unit tests for RDS migration security group access.
"""
from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from services.database_migration import RDSDatabaseMigration, is_rds_instance_security_group
from utils.exceptions import AWSOperationError, NotSupportedError, ResourceNotFoundError

DB_TAG = [{"Key": "MattermostCloudInstallationDatabase", "Value": "MYSQL/Aurora"}]
GROUPS = {
    "sg-master-node": {"GroupId": "sg-master-node", "Tags": []},
    "sg-master-db": {"GroupId": "sg-master-db", "Tags": DB_TAG},
    "sg-slave-db": {"GroupId": "sg-slave-db", "Tags": DB_TAG},
}
INSTANCES = {
    "cloud-master1-master": ["sg-master-node", "sg-master-db"],
    "cloud-slave1-migration": ["sg-slave-db"],
}


def client_error(code, operation):
    return ClientError({'Error': {'Code': code, 'Message': code}}, operation)


@pytest.fixture
def clients(aws_client):
    rds = Mock()
    rds.describe_db_instances.side_effect = lambda DBInstanceIdentifier: {"DBInstances": [{
        "VpcSecurityGroups": [{"VpcSecurityGroupId": g} for g in INSTANCES.get(DBInstanceIdentifier, [])],
    }]}
    ec2 = Mock()
    ec2.describe_security_groups.side_effect = lambda GroupIds: {"SecurityGroups": [GROUPS[GroupIds[0]]]}
    aws_client._clients.update({'rds': rds, 'ec2': ec2})
    return rds, ec2


@pytest.mark.database
class TestRDSDatabaseMigration:
    """Tests for RDSDatabaseMigration."""

    def test_is_rds_instance_security_group(self):
        """Test only DB tagged groups are recognized."""
        assert is_rds_instance_security_group(GROUPS["sg-master-db"]) is True
        assert is_rds_instance_security_group(GROUPS["sg-master-node"]) is False

    def test_setup(self, aws_client, clients):
        """Test the master group allows MySQL traffic from the migration instance group."""
        _, ec2 = clients
        result = RDSDatabaseMigration("master1", "slave1", aws_client).setup()

        assert result == "setup-complete"
        ec2.authorize_security_group_ingress.assert_called_once_with(
            GroupId="sg-master-db",
            IpPermissions=[{
                "FromPort": 3306,
                "ToPort": 3306,
                "IpProtocol": "tcp",
                "UserIdGroupPairs": [{
                    "GroupId": "sg-slave-db",
                    "Description": "Ingress Traffic from other RDS instance",
                }],
            }],
        )

    def test_setup_duplicate_rule(self, aws_client, clients):
        """Test an existing ingress rule counts as set up."""
        _, ec2 = clients
        ec2.authorize_security_group_ingress.side_effect = client_error(
            'InvalidPermission.Duplicate', 'AuthorizeSecurityGroupIngress'
        )
        assert RDSDatabaseMigration("master1", "slave1", aws_client).setup() == "setup-complete"

    def test_setup_error(self, aws_client, clients):
        """Test other errors carry the migration context."""
        _, ec2 = clients
        ec2.authorize_security_group_ingress.side_effect = client_error(
            'UnauthorizedOperation', 'AuthorizeSecurityGroupIngress'
        )
        with pytest.raises(AWSOperationError, match="master installation id: master1"):
            RDSDatabaseMigration("master1", "slave1", aws_client).setup()

    def test_setup_missing_group(self, aws_client, clients):
        """Test an instance without a DB tagged group."""
        with pytest.raises(ResourceNotFoundError, match="cloud-other-migration"):
            RDSDatabaseMigration("master1", "other", aws_client).setup()

    def test_teardown(self, aws_client, clients):
        """Test the ingress rule is revoked."""
        _, ec2 = clients
        result = RDSDatabaseMigration("master1", "slave1", aws_client).teardown()

        assert result == "teardown-complete"
        ec2.revoke_security_group_ingress.assert_called_once_with(
            GroupId="sg-master-db",
            IpPermissions=[{
                "FromPort": 3306,
                "ToPort": 3306,
                "IpProtocol": "tcp",
                "UserIdGroupPairs": [{"GroupId": "sg-slave-db"}],
            }],
        )

    def test_teardown_missing_rule(self, aws_client, clients):
        """Test a rule that is already gone counts as torn down."""
        _, ec2 = clients
        ec2.revoke_security_group_ingress.side_effect = client_error(
            'InvalidPermission.NotFound', 'RevokeSecurityGroupIngress'
        )
        assert RDSDatabaseMigration("master1", "slave1", aws_client).teardown() == "teardown-complete"

    def test_teardown_error(self, aws_client, clients):
        """Test teardown errors carry the migration context."""
        rds, _ = clients
        rds.describe_db_instances.side_effect = client_error('DBInstanceNotFound', 'DescribeDBInstances')
        with pytest.raises(AWSOperationError, match="unable to teardown database migration"):
            RDSDatabaseMigration("master1", "slave1", aws_client).teardown()

    def test_replicate(self, aws_client):
        """Test replication is not implemented."""
        with pytest.raises(NotSupportedError):
            RDSDatabaseMigration("master1", "slave1", aws_client).replicate()
