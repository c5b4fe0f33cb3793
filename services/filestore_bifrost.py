"""
Bifrost filestore: installations reach the VPC's shared bucket through the
Bifrost proxy, which holds the only real credentials.
"""
from typing import Any, Dict, Optional, Tuple

from constants import BIFROST_DUMMY_CREDENTIAL, BIFROST_SECRET_NAME
from logger_config import get_logger
from model import FilestoreConfig, InstallationDatabaseStore, KubernetesSecret
from services.aws_client import AWSClient
from services.filestore_multitenant import (
    multitenant_bucket_name_for_cluster,
    multitenant_bucket_name_for_installation,
)
from services.filestore_s3 import filestore_secret
from services.helpers import cloud_id
from utils.exceptions import PROVISIONER_ERRORS

logger = get_logger(__name__)


class BifrostFilestore:
    """A directory in the shared bucket accessed through Bifrost."""

    def __init__(self, installation_id: str, client: AWSClient) -> None:
        self.installation_id = installation_id
        self.client = client

    def _log_extra(self, **fields: Any) -> Dict[str, Any]:
        extra = {"aws_id": cloud_id(self.installation_id), "filestore_type": "bifrost"}
        extra.update(fields)
        return extra

    def _bucket_name(self, store: Optional[InstallationDatabaseStore]) -> str:
        return multitenant_bucket_name_for_installation(self.client, self.installation_id, store)

    def provision(self, store: Optional[InstallationDatabaseStore] = None) -> None:
        """Check that the shared bucket exists; nothing else needs creating."""
        logger.info("Provisioning bifrost filestore", extra=self._log_extra())
        self._bucket_name(store)

    def teardown(self, keep_data: bool, store: Optional[InstallationDatabaseStore] = None) -> None:
        logger.info("Tearing down bifrost filestore", extra=self._log_extra())

        try:
            bucket_name = self._bucket_name(store)
        except PROVISIONER_ERRORS:
            if store is not None and not store.get_cluster_installations(self.installation_id):
                logger.warning(
                    "No cluster installations found for installation; "
                    "assuming multitenant filestore was never created",
                    extra=self._log_extra()
                )
                return
            raise

        if keep_data:
            logger.info(
                "AWS S3 bucket was left intact due to the keep-data setting of this server",
                extra=self._log_extra(s3_bucket_name=bucket_name)
            )
            return

        self.client.s3.ensure_bucket_directory_deleted(bucket_name, self.installation_id)
        logger.debug("Bifrost filestore teardown complete", extra=self._log_extra(s3_bucket_name=bucket_name))

    def generate_filestore_spec_and_secret(
        self,
        store: Optional[InstallationDatabaseStore] = None
    ) -> Tuple[FilestoreConfig, KubernetesSecret]:
        """
        Point the installation at the shared bucket.

        The operator expects credentials even though Bifrost needs none,
        so placeholder values are used.
        """
        bucket_name = self._bucket_name(store)
        secret = filestore_secret(self.installation_id, BIFROST_DUMMY_CREDENTIAL, BIFROST_DUMMY_CREDENTIAL)
        config = FilestoreConfig(
            url=self.client.s3.get_s3_region_url(),
            bucket=bucket_name,
            secret=secret.name,
        )
        logger.debug(
            "Bifrost filestore configuration generated for cluster installation",
            extra=self._log_extra(s3_bucket_name=bucket_name)
        )
        return config, secret


def generate_bifrost_utility_secret(client: AWSClient, cluster_id: str) -> KubernetesSecret:
    """Build the secret the Bifrost service uses to reach a cluster's shared bucket."""
    bucket_name = multitenant_bucket_name_for_cluster(client, cluster_id)
    credentials = client.secrets.get_iam_access_key(bucket_name)
    return KubernetesSecret(
        name=BIFROST_SECRET_NAME,
        string_data={
            "Bucket": bucket_name,
            "AccessKeyID": credentials.id,
            "SecretAccessKey": credentials.secret,
        },
    )
