"""
Secrets Manager service for IAM access key and RDS credential secrets.
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from botocore.exceptions import ClientError

from constants import DEFAULT_MATTERMOST_DATABASE_USERNAME, RDS_MASTER_PASSWORD_LENGTH, RDS_SECRET_TAG_KEY
from logger_config import get_logger
from services.helpers import iam_secret_name, is_error_code, new_random_password, rds_secret_name
from utils.decorators import wrap_aws_errors
from utils.exceptions import AWSOperationError, ValidationError

if TYPE_CHECKING:
    from mypy_boto3_secretsmanager import SecretsManagerClient
    from services.aws_client import AWSClient
else:
    SecretsManagerClient = Any

logger = get_logger(__name__)


@dataclass
class IAMAccessKey:
    """IAM access key payload stored in Secrets Manager."""

    id: str
    secret: str

    def validate(self) -> None:
        if not self.id:
            raise ValidationError("Access key ID value is empty", field="id")
        if not self.secret:
            raise ValidationError("Access key secret value is empty", field="secret")

    def to_json(self) -> str:
        return json.dumps({"ID": self.id, "Secret": self.secret})

    @classmethod
    def from_json(cls, payload: str) -> "IAMAccessKey":
        data = json.loads(payload)
        return cls(id=data.get("ID", ""), secret=data.get("Secret", ""))


@dataclass
class RDSSecret:
    """RDS master credentials payload stored in Secrets Manager."""

    master_username: str
    master_password: str

    def validate(self) -> None:
        if not self.master_username:
            raise ValidationError("RDS master username value is empty", field="master_username")
        if not self.master_password:
            raise ValidationError("RDS master password value is empty", field="master_password")
        if len(self.master_password) != RDS_MASTER_PASSWORD_LENGTH:
            raise ValidationError(
                f"RDS master password length should be equal to {RDS_MASTER_PASSWORD_LENGTH}",
                field="master_password",
            )

    def to_json(self) -> str:
        return json.dumps({
            "MasterUsername": self.master_username,
            "MasterPassword": self.master_password,
        })

    @classmethod
    def from_json(cls, payload: str) -> "RDSSecret":
        data = json.loads(payload)
        return cls(
            master_username=data.get("MasterUsername", ""),
            master_password=data.get("MasterPassword", ""),
        )


class SecretsManagerService:
    """Service for Secrets Manager operations."""

    def __init__(self, aws_client: "AWSClient") -> None:
        self.aws_client = aws_client

    @property
    def client(self) -> SecretsManagerClient:
        return self.aws_client.service('secretsmanager')

    @wrap_aws_errors("failed to restore secret {name}", service="secretsmanager")
    def restore_secret(self, name: str) -> None:
        try:
            self.client.restore_secret(SecretId=name)
        except ClientError as e:
            if is_error_code(e, 'ResourceNotFoundException'):
                logger.warning(
                    "Secret Manager secret could not be found; assuming fully deleted",
                    extra={"secret_name": name}
                )
                return
            raise
        logger.debug("Secret Manager secret recovered", extra={"secret_name": name})

    @wrap_aws_errors("failed to store IAM access key secret for {cloud_resource_id}", service="secretsmanager")
    def ensure_iam_access_key_secret_created(
        self,
        cloud_resource_id: str,
        access_key: Dict[str, Any]
    ) -> None:
        """
        Store an IAM access key as a JSON secret.

        Args:
            cloud_resource_id: Cloud id of the IAM user
            access_key: Access key as returned by IAM create_access_key
        """
        payload = IAMAccessKey(
            id=access_key.get("AccessKeyId", ""),
            secret=access_key.get("SecretAccessKey", ""),
        )
        payload.validate()

        name = iam_secret_name(cloud_resource_id)
        try:
            self.client.create_secret(
                Name=name,
                Description=f"IAM access key for user {cloud_resource_id}",
                SecretString=payload.to_json(),
            )
            logger.debug("AWS IAM access key secret created", extra={"secret_name": name})
        except ClientError as e:
            if not is_error_code(e, 'ResourceExistsException'):
                raise
            self.client.put_secret_value(SecretId=name, SecretString=payload.to_json())
            logger.debug("AWS IAM access key secret updated", extra={"secret_name": name})

    @wrap_aws_errors("failed to ensure RDS secret for {cloud_resource_id}", service="secretsmanager")
    def ensure_rds_secret_created(self, cloud_resource_id: str) -> RDSSecret:
        """
        Return the RDS master credentials, creating them on first use.

        Args:
            cloud_resource_id: Cloud id of the RDS cluster

        Returns:
            RDSSecret
        """
        name = rds_secret_name(cloud_resource_id)
        try:
            result = self.client.get_secret_value(SecretId=name)
        except ClientError as e:
            if not is_error_code(e, 'ResourceNotFoundException'):
                raise
        else:
            logger.debug("AWS RDS secret already created", extra={"secret_name": name})
            secret = RDSSecret.from_json(result["SecretString"])
            secret.validate()
            return secret

        secret = RDSSecret(
            master_username=DEFAULT_MATTERMOST_DATABASE_USERNAME,
            master_password=new_random_password(RDS_MASTER_PASSWORD_LENGTH),
        )
        secret.validate()
        self.client.create_secret(
            Name=name,
            Description=f"RDS configuration for {cloud_resource_id}",
            SecretString=secret.to_json(),
            Tags=[{"Key": RDS_SECRET_TAG_KEY, "Value": cloud_resource_id}],
        )
        logger.debug("AWS RDS secret created", extra={"secret_name": name})
        return secret

    @wrap_aws_errors("failed to create RDS secret {name}", service="secretsmanager")
    def create_rds_secret(
        self,
        name: str,
        secret: RDSSecret,
        description: str,
        tags: Optional[List[Dict[str, str]]] = None
    ) -> RDSSecret:
        secret.validate()
        self.client.create_secret(
            Name=name,
            Description=description,
            SecretString=secret.to_json(),
            Tags=tags or [],
        )
        logger.debug("AWS RDS secret created", extra={"secret_name": name})
        return secret

    def ensure_database_user_secret_created(
        self,
        name: str,
        username: str,
        description: str,
        tags: Optional[List[Dict[str, str]]] = None
    ) -> RDSSecret:
        """Return the database user credentials stored under name, creating them if missing."""
        try:
            return self.get_rds_secret(name)
        except AWSOperationError as e:
            if not is_error_code(e, 'ResourceNotFoundException'):
                raise

        secret = RDSSecret(
            master_username=username,
            master_password=new_random_password(RDS_MASTER_PASSWORD_LENGTH),
        )
        return self.create_rds_secret(name, secret, description, tags)

    @wrap_aws_errors("failed to create secret {name}", service="secretsmanager")
    def create_secret_binary(
        self,
        name: str,
        description: str,
        data: bytes,
        tags: Optional[List[Dict[str, str]]] = None
    ) -> None:
        kwargs: Dict[str, Any] = {
            "Name": name,
            "Description": description,
            "SecretBinary": data,
        }
        if tags:
            kwargs["Tags"] = tags
        self.client.create_secret(**kwargs)
        logger.debug("AWS secret created", extra={"secret_name": name})

    @wrap_aws_errors("failed to update secret {name}", service="secretsmanager")
    def update_secret_binary(self, name: str, data: bytes) -> None:
        self.client.update_secret(SecretId=name, SecretBinary=data)
        logger.debug("AWS secret updated", extra={"secret_name": name})

    @wrap_aws_errors("failed to get secret {name}", service="secretsmanager")
    def get_secret_bytes(self, name: str) -> bytes:
        result = self.client.get_secret_value(SecretId=name)
        if "SecretBinary" in result:
            return result["SecretBinary"]
        return result["SecretString"].encode("UTF-8")

    @wrap_aws_errors("failed to get secret {name}", service="secretsmanager")
    def get_secret_string(self, name: str) -> str:
        return self.client.get_secret_value(SecretId=name)["SecretString"]

    def get_iam_access_key(self, cloud_resource_id: str) -> IAMAccessKey:
        return self.get_iam_access_key_from_secret_name(iam_secret_name(cloud_resource_id))

    def get_iam_access_key_from_secret_name(self, name: str) -> IAMAccessKey:
        access_key = IAMAccessKey.from_json(self.get_secret_string(name))
        access_key.validate()
        return access_key

    def get_rds_secret(self, name: str) -> RDSSecret:
        secret = RDSSecret.from_json(self.get_secret_string(name))
        secret.validate()
        return secret

    @wrap_aws_errors("failed to delete secret {name}", service="secretsmanager")
    def ensure_secret_deleted(self, name: str, force: bool = False) -> None:
        """
        Delete a secret; a secret that does not exist is already deleted.

        Args:
            name: Secret name
            force: Delete immediately instead of scheduling deletion
        """
        kwargs: Dict[str, Any] = {"SecretId": name}
        if force:
            kwargs["ForceDeleteWithoutRecovery"] = True
        else:
            kwargs["RecoveryWindowInDays"] = self.aws_client.config.secret_recovery_window_days
        try:
            response = self.client.delete_secret(**kwargs)
        except ClientError as e:
            if is_error_code(e, 'ResourceNotFoundException'):
                logger.warning(
                    "Secret Manager secret not found; assuming already deleted",
                    extra={"secret_name": name}
                )
                return
            raise
        logger.debug(
            f"Secret Manager secret scheduled for deletion on {response.get('DeletionDate')}",
            extra={"secret_name": name}
        )

    def ensure_iam_access_key_secret_deleted(self, cloud_resource_id: str) -> None:
        self.ensure_secret_deleted(iam_secret_name(cloud_resource_id))

    def ensure_rds_secret_deleted(self, cloud_resource_id: str) -> None:
        self.ensure_secret_deleted(rds_secret_name(cloud_resource_id))

    def get_secret_as_k8s_secret_data(self, name: str) -> Dict[str, str]:
        """Decode a JSON secret into Kubernetes secret string data."""
        try:
            data = json.loads(self.get_secret_bytes(name))
        except ValueError as e:
            raise ValidationError(
                "failed to convert AWS secret data", field="secret", value=name
            ) from e
        if not isinstance(data, dict):
            raise ValidationError("AWS secret data is not a JSON object", field="secret", value=name)
        return {str(key): str(value) for key, value in data.items()}
