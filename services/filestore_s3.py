"""
S3 filestore: a dedicated bucket and IAM user per installation.
"""
from typing import Any, Dict, Optional, Tuple

from logger_config import get_logger
from model import FilestoreConfig, InstallationDatabaseStore, KubernetesSecret
from services.aws_client import AWSClient
from services.helpers import cloud_id

logger = get_logger(__name__)

FILESTORE_SECRET_SUFFIX = "-iam-access-key"


def filestore_secret_name(installation_id: str) -> str:
    return installation_id + FILESTORE_SECRET_SUFFIX


def filestore_secret(installation_id: str, access_key_id: str, secret_access_key: str) -> KubernetesSecret:
    """Build the secret an installation uses to reach its bucket."""
    return KubernetesSecret(
        name=filestore_secret_name(installation_id),
        string_data={"accesskey": access_key_id, "secretkey": secret_access_key},
    )


def account_id_from_arn(arn: str) -> str:
    return arn.split(":")[4]


class S3Filestore:
    """A filestore backed by a bucket owned by a single installation."""

    filestore_type = "s3"

    def __init__(
        self,
        installation_id: str,
        client: AWSClient,
        enable_versioning: Optional[bool] = None
    ) -> None:
        self.installation_id = installation_id
        self.client = client
        if enable_versioning is None:
            enable_versioning = client.config.s3_bucket_versioning
        self.enable_versioning = enable_versioning

    @property
    def cloud_id(self) -> str:
        return cloud_id(self.installation_id)

    def _log_extra(self, **fields: Any) -> Dict[str, Any]:
        extra = {"aws_id": self.cloud_id, "filestore_type": self.filestore_type}
        extra.update(fields)
        return extra

    def bucket_name(self, store: Optional[InstallationDatabaseStore]) -> str:
        return self.cloud_id

    def permitted_directory(self) -> str:
        return "*"

    def _ensure_bucket(self, bucket_name: str) -> None:
        self.client.s3.ensure_bucket_created(bucket_name, self.enable_versioning)
        logger.debug("AWS S3 bucket created", extra=self._log_extra(s3_bucket_name=bucket_name))

    def provision(self, store: Optional[InstallationDatabaseStore] = None) -> None:
        """
        Create the IAM user, its bucket policy, the bucket and an access key.

        The access key is stored in Secrets Manager for later secret generation.
        """
        logger.info("Provisioning AWS S3 filestore", extra=self._log_extra())
        bucket_name = self.bucket_name(store)

        user = self.client.iam.ensure_user_created(self.cloud_id)
        policy_arn = f"arn:aws:iam::{account_id_from_arn(user['Arn'])}:policy/{self.cloud_id}"
        policy = self.client.iam.ensure_s3_policy_created(
            self.cloud_id, bucket_name, self.permitted_directory(), policy_arn=policy_arn
        )
        self.client.iam.ensure_policy_attached(self.cloud_id, policy_arn)
        logger.debug(
            "AWS IAM policy attached to user",
            extra=self._log_extra(iam_policy_name=policy["PolicyName"], iam_user_name=user["UserName"])
        )

        self._ensure_bucket(bucket_name)

        access_key = self.client.iam.ensure_access_key_created(self.cloud_id)
        self.client.secrets.ensure_iam_access_key_secret_created(self.cloud_id, access_key)
        logger.debug("AWS secrets manager secret created", extra=self._log_extra(iam_user_name=user["UserName"]))

    def _delete_data(self, bucket_name: str) -> None:
        self.client.s3.ensure_bucket_deleted(bucket_name)

    def teardown(self, keep_data: bool, store: Optional[InstallationDatabaseStore] = None) -> None:
        """Delete the IAM user and access key secret, and the data unless kept."""
        logger.info("Tearing down AWS S3 filestore", extra=self._log_extra())
        bucket_name = self.bucket_name(store)

        self.client.iam.ensure_user_deleted(self.cloud_id)
        self.client.secrets.ensure_iam_access_key_secret_deleted(self.cloud_id)

        if keep_data:
            logger.info(
                "AWS S3 bucket was left intact due to the keep-data setting of this server",
                extra=self._log_extra(s3_bucket_name=bucket_name)
            )
            return

        self._delete_data(bucket_name)
        logger.debug("AWS S3 filestore was deleted", extra=self._log_extra(s3_bucket_name=bucket_name))

    def generate_filestore_spec_and_secret(
        self,
        store: Optional[InstallationDatabaseStore] = None
    ) -> Tuple[FilestoreConfig, KubernetesSecret]:
        bucket_name = self.bucket_name(store)
        access_key = self.client.secrets.get_iam_access_key(self.cloud_id)

        secret = filestore_secret(self.installation_id, access_key.id, access_key.secret)
        config = FilestoreConfig(
            url=self.client.s3.get_s3_region_url(),
            bucket=bucket_name,
            secret=secret.name,
        )
        logger.debug(
            "Cluster installation configured to use an AWS S3 filestore",
            extra=self._log_extra(s3_bucket_name=bucket_name)
        )
        return config, secret
