"""
Tests for the Secrets Manager service against a mocked AWS account.
"""
import json

import boto3
import pytest
from moto import mock_aws

from services.secrets_manager_service import IAMAccessKey, RDSSecret
from utils.exceptions import AWSOperationError, ValidationError

ACCESS_KEY = {"AccessKeyId": "AKIAEXAMPLE", "SecretAccessKey": "secret-value"}


class TestPayloads:
    """Tests for secret payload validation."""

    def test_iam_access_key_round_trip(self):
        """Test IAM access key JSON field names."""
        key = IAMAccessKey(id="AKIA", secret="s3cr3t")
        assert json.loads(key.to_json()) == {"ID": "AKIA", "Secret": "s3cr3t"}
        assert IAMAccessKey.from_json(key.to_json()) == key

    def test_iam_access_key_empty(self):
        """Test empty access key fields are rejected."""
        with pytest.raises(ValidationError, match="Access key ID"):
            IAMAccessKey(id="", secret="s").validate()
        with pytest.raises(ValidationError, match="secret"):
            IAMAccessKey(id="a", secret="").validate()

    def test_rds_secret_password_length(self):
        """Test RDS passwords must be exactly 40 characters."""
        RDSSecret(master_username="mmcloud", master_password="x" * 40).validate()
        with pytest.raises(ValidationError, match="40"):
            RDSSecret(master_username="mmcloud", master_password="short").validate()
        with pytest.raises(ValidationError, match="username"):
            RDSSecret(master_username="", master_password="x" * 40).validate()


@pytest.mark.aws
class TestSecretsManagerService:
    """Tests for SecretsManagerService."""

    @mock_aws()
    def test_iam_access_key_secret(self, aws_client):
        """Test the IAM access key is stored and updated under <cloud id>-iam."""
        aws_client.secrets.ensure_iam_access_key_secret_created("cloud-abc", ACCESS_KEY)
        aws_client.secrets.ensure_iam_access_key_secret_created(
            "cloud-abc", {"AccessKeyId": "AKIANEW", "SecretAccessKey": "new-secret"}
        )

        stored = boto3.client('secretsmanager').get_secret_value(SecretId="cloud-abc-iam")
        assert json.loads(stored["SecretString"]) == {"ID": "AKIANEW", "Secret": "new-secret"}
        assert aws_client.secrets.get_iam_access_key("cloud-abc") == IAMAccessKey("AKIANEW", "new-secret")

    @mock_aws()
    def test_iam_access_key_secret_invalid(self, aws_client):
        """Test an incomplete access key is never stored."""
        with pytest.raises(ValidationError):
            aws_client.secrets.ensure_iam_access_key_secret_created("cloud-abc", {"AccessKeyId": "AKIA"})

    @mock_aws()
    def test_ensure_rds_secret_created(self, aws_client):
        """Test master credentials are generated once and then reused."""
        created = aws_client.secrets.ensure_rds_secret_created("cloud-abc")
        again = aws_client.secrets.ensure_rds_secret_created("cloud-abc")

        assert created.master_username == "mmcloud"
        assert len(created.master_password) == 40
        assert again == created

        described = boto3.client('secretsmanager').describe_secret(SecretId="cloud-abc-rds")
        assert described["Tags"] == [{"Key": "rds-cluster", "Value": "cloud-abc"}]

    @mock_aws()
    def test_ensure_database_user_secret_created(self, aws_client):
        """Test database user credentials are created when missing."""
        tags = [{"Key": "InstallationId", "Value": "abc"}]
        created = aws_client.secrets.ensure_database_user_secret_created(
            "rds-multitenant-abc", "user_abc", "description", tags
        )
        again = aws_client.secrets.ensure_database_user_secret_created(
            "rds-multitenant-abc", "user_abc", "description", tags
        )

        assert created.master_username == "user_abc"
        assert again == created
        assert aws_client.secrets.get_rds_secret("rds-multitenant-abc") == created

    @mock_aws()
    def test_get_missing_secret(self, aws_client):
        """Test reading a missing secret raises AWSOperationError."""
        with pytest.raises(AWSOperationError) as exc_info:
            aws_client.secrets.get_secret_string("missing")
        assert exc_info.value.error_code == "ResourceNotFoundException"

    @mock_aws()
    def test_ensure_secret_deleted(self, aws_client):
        """Test secrets are scheduled for deletion and missing ones are ignored."""
        aws_client.secrets.ensure_rds_secret_created("cloud-abc")
        aws_client.secrets.ensure_rds_secret_deleted("cloud-abc")
        aws_client.secrets.ensure_rds_secret_deleted("cloud-missing")

        described = boto3.client('secretsmanager').describe_secret(SecretId="cloud-abc-rds")
        assert "DeletedDate" in described

    @mock_aws()
    def test_ensure_secret_force_deleted(self, aws_client):
        """Test forced deletion skips the recovery window."""
        aws_client.secrets.create_secret_binary("binary-secret", "description", b"data")
        aws_client.secrets.ensure_secret_deleted("binary-secret", force=True)

        with pytest.raises(AWSOperationError):
            aws_client.secrets.get_secret_bytes("binary-secret")

    @mock_aws()
    def test_restore_secret(self, aws_client):
        """Test a deleted secret can be restored."""
        aws_client.secrets.ensure_rds_secret_created("cloud-abc")
        aws_client.secrets.ensure_rds_secret_deleted("cloud-abc")
        aws_client.secrets.restore_secret("cloud-abc-rds")
        aws_client.secrets.restore_secret("missing")

        assert aws_client.secrets.get_rds_secret("cloud-abc-rds").master_username == "mmcloud"

    @mock_aws()
    def test_binary_secret_and_k8s_data(self, aws_client):
        """Test binary secrets and their Kubernetes string data."""
        aws_client.secrets.create_secret_binary("json-secret", "description", b'{"a": 1}')
        aws_client.secrets.update_secret_binary("json-secret", b'{"a": 2, "b": "x"}')

        assert aws_client.secrets.get_secret_bytes("json-secret") == b'{"a": 2, "b": "x"}'
        assert aws_client.secrets.get_secret_as_k8s_secret_data("json-secret") == {"a": "2", "b": "x"}

    @mock_aws()
    def test_k8s_data_not_json(self, aws_client):
        """Test non-JSON secrets cannot become Kubernetes string data."""
        boto3.client('secretsmanager').create_secret(Name="plain", SecretString="not json")
        with pytest.raises(ValidationError, match="failed to convert"):
            aws_client.secrets.get_secret_as_k8s_secret_data("plain")
