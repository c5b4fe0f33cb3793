"""
Multitenant S3 filestore: installations share the VPC's provisioning bucket,
each confined to its own directory.
"""
from typing import Optional

from logger_config import get_logger
from model import InstallationDatabaseStore
from services.aws_client import AWSClient
from services.filestore_s3 import S3Filestore

logger = get_logger(__name__)


def multitenant_bucket_name_for_installation(
    client: AWSClient,
    installation_id: str,
    store: Optional[InstallationDatabaseStore]
) -> str:
    """Return the shared bucket of the VPC hosting the installation."""
    vpc = client.ec2.vpc_for_installation(installation_id, store)
    return client.s3.get_multitenant_bucket_name_for_vpc(vpc["VpcId"])


def multitenant_bucket_name_for_cluster(client: AWSClient, cluster_id: str) -> str:
    vpc = client.ec2.vpc_for_cluster(cluster_id)
    return client.s3.get_multitenant_bucket_name_for_vpc(vpc["VpcId"])


class S3MultitenantFilestore(S3Filestore):
    """A filestore living in a directory of the VPC's shared bucket."""

    filestore_type = "s3-multitenant"

    def __init__(self, installation_id: str, client: AWSClient) -> None:
        super().__init__(installation_id, client, enable_versioning=False)

    def bucket_name(self, store: Optional[InstallationDatabaseStore]) -> str:
        return multitenant_bucket_name_for_installation(self.client, self.installation_id, store)

    def permitted_directory(self) -> str:
        return self.installation_id

    def _ensure_bucket(self, bucket_name: str) -> None:
        # The shared bucket is managed outside the provisioner.
        pass

    def _delete_data(self, bucket_name: str) -> None:
        deleted = self.client.s3.ensure_bucket_directory_deleted(bucket_name, self.installation_id)
        logger.debug(
            f"Deleted {deleted} objects of installation directory",
            extra=self._log_extra(s3_bucket_name=bucket_name)
        )
