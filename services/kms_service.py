"""
KMS service for symmetric encryption keys.
"""
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from constants import KMS_MAX_TIME_ENCRYPTION_KEY_DELETION, KMS_MIN_TIME_ENCRYPTION_KEY_DELETION
from logger_config import get_logger
from utils.decorators import wrap_aws_errors
from utils.exceptions import ValidationError

if TYPE_CHECKING:
    from mypy_boto3_kms import KMSClient
    from services.aws_client import AWSClient
else:
    KMSClient = Any

logger = get_logger(__name__)


class KMSService:
    """Service for KMS operations."""

    def __init__(self, aws_client: "AWSClient") -> None:
        self.aws_client = aws_client

    @property
    def client(self) -> KMSClient:
        return self.aws_client.service('kms')

    @wrap_aws_errors("failed to create symmetric encryption key", service="kms")
    def create_symmetric_key(
        self,
        description: str,
        tags: Optional[List[Dict[str, str]]] = None
    ) -> Dict[str, Any]:
        """
        Create a customer managed symmetric encryption key.

        Args:
            description: Key description
            tags: AWS style tag list ({'TagKey', 'TagValue'})

        Returns:
            KeyMetadata of the new key
        """
        kwargs: Dict[str, Any] = {
            "Description": description,
            "KeyUsage": "ENCRYPT_DECRYPT",
            "KeySpec": "SYMMETRIC_DEFAULT",
            "Origin": "AWS_KMS",
        }
        if tags:
            kwargs["Tags"] = tags
        metadata = self.client.create_key(**kwargs)["KeyMetadata"]
        logger.debug("Created KMS encryption key", extra={"kms_key_id": metadata["KeyId"]})
        return metadata

    @wrap_aws_errors("failed to create KMS alias {alias_name}", service="kms")
    def create_alias(self, key_id: str, alias_name: str) -> None:
        self.client.create_alias(AliasName=alias_name, TargetKeyId=key_id)

    @wrap_aws_errors("failed to describe KMS key {key_id}", service="kms")
    def get_symmetric_key(self, key_id: str) -> Dict[str, Any]:
        return self.client.describe_key(KeyId=key_id)["KeyMetadata"]

    @wrap_aws_errors("failed to disable KMS key {key_id}", service="kms")
    def disable_key(self, key_id: str) -> None:
        self.client.disable_key(KeyId=key_id)

    @wrap_aws_errors("failed to schedule deletion of KMS key {key_id}", service="kms")
    def schedule_key_deletion(
        self,
        key_id: str,
        pending_window_days: int = KMS_MAX_TIME_ENCRYPTION_KEY_DELETION
    ) -> Dict[str, Any]:
        """
        Schedule a key for deletion after the pending window.

        Raises:
            ValidationError: If the window is outside the range KMS accepts
        """
        if not KMS_MIN_TIME_ENCRYPTION_KEY_DELETION <= pending_window_days <= KMS_MAX_TIME_ENCRYPTION_KEY_DELETION:
            raise ValidationError(
                f"key deletion window must be between {KMS_MIN_TIME_ENCRYPTION_KEY_DELETION} "
                f"and {KMS_MAX_TIME_ENCRYPTION_KEY_DELETION} days",
                field="pending_window_days",
                value=pending_window_days,
            )
        result = self.client.schedule_key_deletion(
            KeyId=key_id,
            PendingWindowInDays=pending_window_days,
        )
        logger.info(
            "Scheduled KMS key deletion",
            extra={"kms_key_id": key_id, "deletion_date": str(result.get("DeletionDate"))}
        )
        return result
