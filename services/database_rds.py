"""
Single tenant RDS database: one encrypted Aurora cluster per installation.
"""
import time
from typing import Dict, List, Optional

from constants import (
    DATABASE_ENGINE_MYSQL,
    DEFAULT_RDS_DATABASE_NAME,
    DEFAULT_RDS_ENCRYPTION_TAG_KEY,
    KMS_MAX_TIME_ENCRYPTION_KEY_DELETION,
    RDS_SNAPSHOT_TAG_KEY,
)
from logger_config import get_logger
from model import (
    SINGLE_TENANT_DATABASE_TYPES,
    DBMigrationOperation,
    InstallationDatabaseStore,
    InstallationDBSecret,
    KubernetesSecret,
    SingleTenantDatabaseConfig,
    database_engine,
)
from services.aws_client import AWSClient
from services.helpers import (
    cloud_id,
    kms_alias_name_rds,
    kms_key_description_rds,
    mysql_connection_check_url,
    mysql_connection_strings,
    postgres_connection_strings,
    rds_master_instance_id,
    rds_replica_instance_id,
    rds_secret_name,
    rds_snapshot_tag_value,
)
from utils.exceptions import MultipleResourcesError, NotSupportedError, ValidationError

logger = get_logger(__name__)

CLUSTER_ID_TAG_KEY = "CloudClusterID"


class RDSDatabase:
    """A single tenant RDS database backing one installation."""

    def __init__(
        self,
        database_type: str,
        installation_id: str,
        client: AWSClient,
        disable_db_check: Optional[bool] = None
    ) -> None:
        self.database_type = database_type
        self.installation_id = installation_id
        self.client = client
        if disable_db_check is None:
            disable_db_check = client.config.disable_db_check
        self.disable_db_check = disable_db_check

    @property
    def cloud_id(self) -> str:
        return cloud_id(self.installation_id)

    @property
    def engine(self) -> str:
        return database_engine(self.database_type)

    def is_valid(self) -> None:
        if not self.installation_id:
            raise ValidationError("installation ID is not set", field="installation_id")
        if self.database_type not in SINGLE_TENANT_DATABASE_TYPES:
            raise ValidationError(
                f"invalid single tenant database type {self.database_type}",
                field="database_type",
                value=self.database_type,
            )

    def _log_extra(self) -> Dict[str, str]:
        return {"db_cluster_name": self.cloud_id, "database_type": self.database_type}

    def provision(self, store: Optional[InstallationDatabaseStore]) -> None:
        """
        Create the cluster, its master instance and any replicas.

        Raises:
            ValidationError: If no installation store is available
        """
        if store is not None:
            self.client.add_store(store)
        if not self.client.has_store():
            raise ValidationError(
                "the provided AWS client does not have SQL store access", field="store"
            )
        store = self.client.store

        logger.info("Provisioning AWS RDS database", extra=self._log_extra())

        vpc = self.client.ec2.vpc_for_installation(self.installation_id, store)
        cluster_id = store.get_cluster_installations(self.installation_id)[0].cluster_id

        rds_secret = self.client.secrets.ensure_rds_secret_created(self.cloud_id)
        key_metadata = self._ensure_encryption_key()
        logger.info(f"Encrypting RDS database with key {key_metadata['Arn']}", extra=self._log_extra())

        db_config = store.get_single_tenant_database_config_for_installation(self.installation_id)
        if db_config is None:
            db_config = SingleTenantDatabaseConfig()
            store.create_single_tenant_database_config(self.installation_id, db_config)

        tags = [{"Key": CLUSTER_ID_TAG_KEY, "Value": cluster_id}]

        self.client.rds.ensure_db_cluster_created(
            self.cloud_id,
            vpc["VpcId"],
            rds_secret.master_username,
            rds_secret.master_password,
            key_metadata["KeyId"],
            engine=self.engine,
            tags=tags,
        )
        self.client.rds.ensure_db_cluster_instance_created(
            self.cloud_id,
            rds_master_instance_id(self.installation_id),
            db_config.primary_instance_type,
            engine=self.engine,
            tags=tags,
        )
        for index in range(db_config.replicas_count):
            self.client.rds.ensure_db_cluster_instance_created(
                self.cloud_id,
                rds_replica_instance_id(self.installation_id, index),
                db_config.replica_instance_type,
                engine=self.engine,
                tags=tags,
            )

    def _encryption_keys(self) -> List[dict]:
        return self.client.tagging.get_enabled_kms_keys_for_tag(
            DEFAULT_RDS_ENCRYPTION_TAG_KEY, self.cloud_id
        )

    def _ensure_encryption_key(self) -> dict:
        tagged = self.client.tagging.get_resource_arns(
            [{"Key": DEFAULT_RDS_ENCRYPTION_TAG_KEY, "Values": [self.cloud_id]}]
        )
        if not tagged:
            key_metadata = self.client.kms.create_symmetric_key(
                kms_key_description_rds(self.cloud_id),
                tags=[{"TagKey": DEFAULT_RDS_ENCRYPTION_TAG_KEY, "TagValue": self.cloud_id}],
            )
            self.client.kms.create_alias(key_metadata["KeyId"], kms_alias_name_rds(self.cloud_id))
            return key_metadata

        enabled = self._encryption_keys()
        if len(enabled) != 1:
            raise MultipleResourcesError(
                f"db cluster {self.cloud_id} should have exactly one enabled/active "
                f"encryption key (found {len(enabled)})",
                resource_type="kms-key",
                count=len(enabled),
            )
        return enabled[0]

    def teardown(self, store: Optional[InstallationDatabaseStore], keep_data: bool) -> None:
        """Delete the RDS secret and, unless data is kept, the cluster and its keys."""
        logger.info("Tearing down RDS DB cluster", extra=self._log_extra())

        self.client.secrets.ensure_rds_secret_deleted(self.cloud_id)

        if keep_data:
            logger.info(
                "AWS RDS DB cluster was left intact due to the keep-data setting of this server",
                extra=self._log_extra()
            )
            return

        self.client.rds.ensure_db_cluster_deleted(self.cloud_id)

        enabled_keys = self._encryption_keys()
        if not enabled_keys:
            logger.warning(
                "Could not find any encryption key. It has been already deleted or never created.",
                extra=self._log_extra()
            )
        for key_metadata in enabled_keys:
            self.client.kms.schedule_key_deletion(
                key_metadata["KeyId"], KMS_MAX_TIME_ENCRYPTION_KEY_DELETION
            )
            logger.info(
                f"Encryption key {key_metadata['Arn']} scheduled for deletion in "
                f"{KMS_MAX_TIME_ENCRYPTION_KEY_DELETION} days",
                extra=self._log_extra()
            )

        logger.debug("AWS RDS database cluster teardown completed", extra=self._log_extra())

    def snapshot(self, store: Optional[InstallationDatabaseStore] = None) -> str:
        snapshot_id = f"{self.cloud_id}-snapshot-{time.time_ns()}"
        self.client.rds.create_db_cluster_snapshot(
            self.cloud_id,
            snapshot_id,
            tags=[{"Key": RDS_SNAPSHOT_TAG_KEY, "Value": rds_snapshot_tag_value(self.cloud_id)}],
        )
        logger.info("RDS database snapshot in progress", extra=self._log_extra())
        return snapshot_id

    def generate_database_secret(
        self,
        store: Optional[InstallationDatabaseStore] = None
    ) -> Optional[KubernetesSecret]:
        """
        Build the installation database secret from the cluster endpoints.

        Returns None when the cluster does not exist yet.
        """
        if not self.client.rds.db_cluster_exists(self.cloud_id):
            return None

        secret = self.client.secrets.get_rds_secret(rds_secret_name(self.cloud_id))
        cluster = self.client.rds.describe_db_cluster(self.cloud_id)

        if self.engine == DATABASE_ENGINE_MYSQL:
            connection, replicas = mysql_connection_strings(
                DEFAULT_RDS_DATABASE_NAME,
                secret.master_username,
                secret.master_password,
                cluster["Endpoint"],
                cluster["ReaderEndpoint"],
            )
            check_url = mysql_connection_check_url(cluster["Endpoint"])
        else:
            connection, replicas = postgres_connection_strings(
                DEFAULT_RDS_DATABASE_NAME,
                secret.master_username,
                secret.master_password,
                cluster["Endpoint"],
                cluster["ReaderEndpoint"],
            )
            check_url = connection

        logger.debug("AWS RDS database configuration generated for cluster installation", extra=self._log_extra())

        return InstallationDBSecret(
            installation_secret_name=f"{self.installation_id}-rds",
            connection_string=connection,
            read_replicas_url=replicas,
            db_check_url=check_url,
        ).to_k8s_secret(self.disable_db_check)

    def migrate_out(self, store: InstallationDatabaseStore, operation: DBMigrationOperation) -> None:
        raise NotSupportedError(
            "database migration is not supported for single tenant RDS", operation="migrate_out"
        )

    def migrate_to(self, store: InstallationDatabaseStore, operation: DBMigrationOperation) -> None:
        raise NotSupportedError(
            "database migration is not supported for single tenant RDS", operation="migrate_to"
        )

    def teardown_migrated(self, store: InstallationDatabaseStore, operation: DBMigrationOperation) -> None:
        raise NotSupportedError(
            "tearing down migrated installations is not supported for single tenant RDS",
            operation="teardown_migrated",
        )

    def rollback_migration(self, store: InstallationDatabaseStore, operation: DBMigrationOperation) -> None:
        raise NotSupportedError(
            "rolling back db migration is not supported for single tenant RDS",
            operation="rollback_migration",
        )
