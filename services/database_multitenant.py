"""
Multitenant RDS database: installations share an RDS cluster, each with its
own logical database and user.

Database placement is coordinated through locks held in the installation
store. SQL provisioning runs against the cluster writer endpoint with the
master credentials, through a short lived SQLAlchemy engine.
"""
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from constants import (
    DATABASE_ENGINE_MYSQL,
    DATABASE_TYPE_MULTITENANT_RDS_POSTGRES,
    DEFAULT_INSTALLATION_ID_TAG_KEY,
    DEFAULT_MATTERMOST_DATABASE_USERNAME,
    DEFAULT_MULTITENANT_DATABASE_COUNTER_TAG_KEY,
    DEFAULT_MULTITENANT_DATABASE_ID_TAG_KEY,
    DEFAULT_MULTITENANT_DATABASE_VPC_ID_TAG_KEY,
    DEFAULT_MYSQL_CONTEXT_TIME_SECONDS,
    DEFAULT_MYSQL_PORT,
    DEFAULT_POSTGRES_PORT,
    DEFAULT_RDS_MULTITENANT_DATABASE_POSTGRES_TYPE_TAG_VALUE,
    DEFAULT_RDS_MULTITENANT_DATABASE_TYPE_TAG_KEY,
    DEFAULT_RDS_MULTITENANT_DATABASE_TYPE_TAG_VALUE,
    DEFAULT_RDS_OWNER_TAG_KEY,
    DEFAULT_RDS_OWNER_TAG_VALUE,
    DEFAULT_RDS_PURPOSE_TAG_KEY,
    DEFAULT_RDS_PURPOSE_TAG_VALUE,
    DEFAULT_RDS_STATUS_AVAILABLE,
    DEFAULT_RDS_TERRAFORM_TAG_KEY,
    DEFAULT_RDS_TERRAFORM_TAG_VALUE,
    DEFAULT_RESOURCE_TYPE_CLUSTER_RDS,
    MULTITENANT_DATABASE_USERNAME_PREFIX,
    RDS_MULTITENANT_DB_CLUSTER_RESOURCE_NAME_PREFIX,
    RDS_MYSQL_DEFAULT_SCHEMA,
    RDS_POSTGRES_DEFAULT_SCHEMA,
    SQL_DRIVER_MYSQL,
    SQL_DRIVER_POSTGRES,
)
from logger_config import get_logger
from model import (
    MULTITENANT_DATABASE_TYPES,
    DBMigrationOperation,
    InstallationDatabaseStore,
    InstallationDBSecret,
    KubernetesSecret,
    MultitenantDatabase,
    MultitenantDatabaseFilter,
    database_engine,
)
from services.aws_client import AWSClient
from services.helpers import (
    mattermost_rds_database_name,
    mysql_connection_check_url,
    mysql_connection_strings,
    postgres_connection_strings,
    rds_multitenant_cluster_secret_description,
    rds_multitenant_secret_name,
    trim_tag_prefix,
)
from utils.exceptions import (
    AWSOperationError,
    DatabaseLockError,
    DatabaseOperationError,
    NotSupportedError,
    ResourceNotFoundError,
    ValidationError,
)

logger = get_logger(__name__)


class RDSMultitenantDatabase:
    """A logical database for one installation inside a shared RDS cluster."""

    def __init__(
        self,
        database_type: str,
        instance_id: str,
        installation_id: str,
        client: AWSClient,
        disable_db_check: Optional[bool] = None,
        max_databases: Optional[int] = None
    ) -> None:
        """
        Initialize the multitenant database.

        Args:
            database_type: One of the multitenant database types
            instance_id: Provisioner instance id used as the lock owner
            installation_id: Installation owning the logical database
            client: Shared AWS client
            disable_db_check: Skip endpoint readiness and connection checks;
                defaults to the client configuration
            max_databases: Installations allowed per cluster; defaults to
                the client configuration
        """
        self.database_type = database_type
        self.instance_id = instance_id
        self.installation_id = installation_id
        self.client = client
        if disable_db_check is None:
            disable_db_check = client.config.disable_db_check
        self.disable_db_check = disable_db_check
        if max_databases is None:
            max_databases = client.config.max_installations_per_multitenant_db
        self.max_databases = max_databases

    @property
    def engine(self) -> str:
        return database_engine(self.database_type)

    @property
    def database_name(self) -> str:
        return mattermost_rds_database_name(self.installation_id)

    def is_valid(self) -> None:
        if not self.installation_id:
            raise ValidationError("installation ID is not set", field="installation_id")
        if self.database_type not in MULTITENANT_DATABASE_TYPES:
            raise ValidationError(
                f"invalid database type {self.database_type}",
                field="database_type",
                value=self.database_type,
            )

    def database_type_tag_value(self) -> str:
        if self.engine == DATABASE_ENGINE_MYSQL:
            return DEFAULT_RDS_MULTITENANT_DATABASE_TYPE_TAG_VALUE
        return DEFAULT_RDS_MULTITENANT_DATABASE_POSTGRES_TYPE_TAG_VALUE

    def max_supported_databases(self) -> int:
        return self.max_databases

    def _log_extra(self, **fields: Any) -> Dict[str, Any]:
        extra = {
            "multitenant_rds_database": self.database_name,
            "database_type": self.database_type,
        }
        extra.update(fields)
        return extra

    # Locking

    def _lock(self, database_id: str, store: InstallationDatabaseStore) -> None:
        if not store.lock_multitenant_database(database_id, self.instance_id):
            raise DatabaseLockError(
                f"failed to acquire lock for multitenant database {database_id}",
                database_id=database_id,
            )

    def _unlock(self, database_id: str, store: InstallationDatabaseStore) -> None:
        try:
            unlocked = store.unlock_multitenant_database(database_id, self.instance_id, True)
        except Exception as e:
            logger.error(
                f"failed to unlock multitenant database: {e}",
                extra=self._log_extra(database_id=database_id)
            )
            return
        if not unlocked:
            logger.warning(
                "failed to release lock for multitenant database",
                extra=self._log_extra(database_id=database_id)
            )

    @contextmanager
    def _locked(self, database_id: str, store: InstallationDatabaseStore) -> Iterator[None]:
        self._lock(database_id, store)
        try:
            yield
        finally:
            self._unlock(database_id, store)

    def _get_and_lock_assigned_database(
        self,
        store: InstallationDatabaseStore
    ) -> Optional[MultitenantDatabase]:
        """
        Lock and reload the database the installation is assigned to.

        Returns None when the installation has no database yet.
        """
        database = store.get_multitenant_database_for_installation_id(self.installation_id)
        if database is None:
            return None

        self._lock(database.id, store)
        refreshed = store.get_multitenant_database_for_installation_id(self.installation_id)
        if refreshed is None:
            self._unlock(database.id, store)
            raise ResourceNotFoundError(
                f"multitenant database {database.id} no longer holds installation {self.installation_id}",
                resource_type="multitenant-database",
                resource_id=database.id,
            )
        return refreshed

    def _assign_installation_and_lock(
        self,
        vpc_id: str,
        store: InstallationDatabaseStore
    ) -> MultitenantDatabase:
        """
        Pick a database in the VPC for the installation and lock it.

        Known databases under the installation limit are preferred; when
        there are none, clusters are discovered through their tags.
        """
        databases = store.get_multitenant_databases(MultitenantDatabaseFilter(
            database_type=self.database_type,
            max_installations_limit=self.max_supported_databases(),
            vpc_id=vpc_id,
        ))
        if not databases:
            logger.info(
                f"No {self.database_type} multitenant databases with less than "
                f"{self.max_supported_databases()} installations found in the datastore; "
                "fetching all available resources from AWS",
                extra=self._log_extra(vpc_id=vpc_id)
            )
            databases = self._get_databases_from_resource_tags(vpc_id, store)

        if not databases:
            raise ResourceNotFoundError(
                "no multitenant databases are currently available for new installations",
                resource_type="multitenant-database",
                resource_id=vpc_id,
            )

        selected = databases[0]
        for database in databases:
            if database.installation_count() >= selected.installation_count():
                selected = database

        self._lock(selected.id, store)
        try:
            refreshed = store.get_multitenant_database(selected.id)
            if refreshed is None:
                raise ResourceNotFoundError(
                    f"failed to find a multitenant database with ID {selected.id}",
                    resource_type="multitenant-database",
                    resource_id=selected.id,
                )
            if (not refreshed.contains(self.installation_id)
                    and refreshed.installation_count() >= self.max_supported_databases()):
                raise DatabaseOperationError(
                    f"multitenant database {refreshed.id} is full "
                    f"({refreshed.installation_count()} installations)",
                    database_id=refreshed.id,
                )
            refreshed.add_installation(self.installation_id)
            store.update_multitenant_database(refreshed)
        except Exception:
            self._unlock(selected.id, store)
            raise
        return refreshed

    def _get_databases_from_resource_tags(
        self,
        vpc_id: str,
        store: InstallationDatabaseStore
    ) -> List[MultitenantDatabase]:
        tag_filters = [
            {"Key": trim_tag_prefix(DEFAULT_RDS_PURPOSE_TAG_KEY), "Values": [DEFAULT_RDS_PURPOSE_TAG_VALUE]},
            {"Key": trim_tag_prefix(DEFAULT_RDS_OWNER_TAG_KEY), "Values": [DEFAULT_RDS_OWNER_TAG_VALUE]},
            {"Key": trim_tag_prefix(DEFAULT_RDS_TERRAFORM_TAG_KEY), "Values": [DEFAULT_RDS_TERRAFORM_TAG_VALUE]},
            {
                "Key": trim_tag_prefix(DEFAULT_RDS_MULTITENANT_DATABASE_TYPE_TAG_KEY),
                "Values": [self.database_type_tag_value()],
            },
            {"Key": trim_tag_prefix(DEFAULT_MULTITENANT_DATABASE_VPC_ID_TAG_KEY), "Values": [vpc_id]},
            {"Key": trim_tag_prefix(DEFAULT_MULTITENANT_DATABASE_COUNTER_TAG_KEY)},
            {"Key": trim_tag_prefix(DEFAULT_MULTITENANT_DATABASE_ID_TAG_KEY)},
        ]
        resources = self.client.tagging.get_resources(
            tag_filters, [DEFAULT_RESOURCE_TYPE_CLUSTER_RDS]
        )

        databases = []
        for resource in resources:
            resource_name = resource["ResourceARN"].split(":", 5)[-1]
            if RDS_MULTITENANT_DB_CLUSTER_RESOURCE_NAME_PREFIX not in resource_name:
                logger.warning(
                    f"Provisioner skipped RDS resource ({resource_name}) because name does not have "
                    f"a correct multitenant database prefix ({RDS_MULTITENANT_DB_CLUSTER_RESOURCE_NAME_PREFIX})",
                    extra=self._log_extra()
                )
                continue

            cluster_id = rds_cluster_id_from_resource_tags(
                self.max_supported_databases(), resource.get("Tags", [])
            )
            if cluster_id is None:
                continue

            if not self.disable_db_check:
                try:
                    ready = self.client.rds.db_cluster_endpoints_ready(cluster_id)
                except AWSOperationError as e:
                    logger.error(
                        f"Failed to check RDS cluster status. Skipping RDS cluster ID {cluster_id}: {e}",
                        extra=self._log_extra()
                    )
                    continue
                if not ready:
                    continue

            database = MultitenantDatabase(
                id=cluster_id,
                vpc_id=vpc_id,
                database_type=self.database_type,
                max_installations_per_logical_database=self.max_supported_databases(),
            )
            store.create_multitenant_database(database)
            logger.debug(
                f"Added multitenant database {database.id} to the datastore",
                extra=self._log_extra()
            )
            databases.append(database)

        return databases

    # Cluster helpers

    def _describe_available_cluster(self, database_id: str) -> Dict[str, Any]:
        cluster = self.client.rds.describe_db_cluster(database_id)
        if cluster.get("Status") != DEFAULT_RDS_STATUS_AVAILABLE:
            raise DatabaseOperationError(
                f"multitenant RDS cluster ID {database_id} is not available "
                f"(status: {cluster.get('Status')})",
                database_id=database_id,
            )
        return cluster

    def _update_counter_tag(self, database: MultitenantDatabase, cluster: Dict[str, Any]) -> None:
        counter = database.installation_count()
        self.client.rds.tag_resource(
            cluster["DBClusterArn"],
            [{
                "Key": trim_tag_prefix(DEFAULT_MULTITENANT_DATABASE_COUNTER_TAG_KEY),
                "Value": str(counter),
            }],
        )
        logger.debug(
            f"Multitenant database {database.id} counter value updated to {counter}",
            extra=self._log_extra()
        )

    # SQL

    def _create_sql_engine(self, endpoint: str, password: str) -> Engine:
        if self.engine == DATABASE_ENGINE_MYSQL:
            url = URL.create(
                SQL_DRIVER_MYSQL,
                username=DEFAULT_MATTERMOST_DATABASE_USERNAME,
                password=password,
                host=endpoint,
                port=DEFAULT_MYSQL_PORT,
                database=RDS_MYSQL_DEFAULT_SCHEMA,
            )
            connect_args = {
                "connect_timeout": DEFAULT_MYSQL_CONTEXT_TIME_SECONDS,
                "read_timeout": DEFAULT_MYSQL_CONTEXT_TIME_SECONDS,
                "write_timeout": DEFAULT_MYSQL_CONTEXT_TIME_SECONDS,
            }
        else:
            url = URL.create(
                SQL_DRIVER_POSTGRES,
                username=DEFAULT_MATTERMOST_DATABASE_USERNAME,
                password=password,
                host=endpoint,
                port=DEFAULT_POSTGRES_PORT,
                database=RDS_POSTGRES_DEFAULT_SCHEMA,
            )
            connect_args = {
                "connect_timeout": DEFAULT_MYSQL_CONTEXT_TIME_SECONDS,
                "options": f"-c statement_timeout={DEFAULT_MYSQL_CONTEXT_TIME_SECONDS * 1000}",
            }
        return create_engine(url, isolation_level="AUTOCOMMIT", connect_args=connect_args)

    @contextmanager
    def _connect(self, cluster: Dict[str, Any]) -> Iterator[Any]:
        """Open an autocommit connection to the cluster as the master user."""
        cluster_id = cluster["DBClusterIdentifier"]
        master_password = self.client.secrets.get_secret_string(cluster_id)
        sql_engine = self._create_sql_engine(cluster["Endpoint"], master_password)
        try:
            with sql_engine.connect() as connection:
                yield connection
        except SQLAlchemyError as e:
            raise DatabaseOperationError(
                f"failed to run SQL commands on multitenant RDS cluster {cluster_id}: {e}",
                database_id=cluster_id,
            ) from e
        finally:
            sql_engine.dispose()

    def _ensure_database_created(self, connection: Any) -> None:
        if self.engine == DATABASE_ENGINE_MYSQL:
            connection.execute(text(
                f"CREATE DATABASE IF NOT EXISTS {self.database_name} CHARACTER SET utf8mb4"
            ))
            return

        exists = connection.execute(
            text("SELECT datname FROM pg_catalog.pg_database WHERE lower(datname) = lower(:name)"),
            {"name": self.database_name},
        ).first()
        if exists is None:
            connection.execute(text(f"CREATE DATABASE {self.database_name}"))

    def _ensure_database_user_created(self, connection: Any, username: str, password: str) -> None:
        if self.engine == DATABASE_ENGINE_MYSQL:
            connection.execute(
                text("CREATE USER IF NOT EXISTS :username@:host IDENTIFIED BY :password REQUIRE SSL"),
                {"username": username, "host": "%", "password": password},
            )
            return

        exists = connection.execute(
            text("SELECT 1 FROM pg_roles WHERE rolname = :username"),
            {"username": username},
        ).first()
        if exists is not None:
            return
        try:
            connection.execute(text(f"CREATE USER {username} WITH PASSWORD '{password}'"))
        except SQLAlchemyError:
            # The statement embeds the password.
            raise DatabaseOperationError(
                "failed to run create user SQL command: error suppressed"
            ) from None

    def _ensure_database_user_has_full_permissions(self, connection: Any, username: str) -> None:
        if self.engine == DATABASE_ENGINE_MYSQL:
            connection.execute(
                text(f"GRANT ALL PRIVILEGES ON {self.database_name}.* TO :username@:host"),
                {"username": username, "host": "%"},
            )
            return
        connection.execute(text(f"GRANT ALL PRIVILEGES ON DATABASE {self.database_name} TO {username}"))

    def _run_provision_sql_commands(self, vpc_id: str, cluster: Dict[str, Any]) -> None:
        cluster_id = cluster["DBClusterIdentifier"]
        installation_secret = self.client.secrets.ensure_database_user_secret_created(
            rds_multitenant_secret_name(self.installation_id),
            MULTITENANT_DATABASE_USERNAME_PREFIX + self.installation_id,
            rds_multitenant_cluster_secret_description(self.installation_id, cluster_id),
            tags=[
                {"Key": trim_tag_prefix(DEFAULT_MULTITENANT_DATABASE_ID_TAG_KEY), "Value": cluster_id},
                {"Key": trim_tag_prefix(DEFAULT_MULTITENANT_DATABASE_VPC_ID_TAG_KEY), "Value": vpc_id},
                {"Key": trim_tag_prefix(DEFAULT_INSTALLATION_ID_TAG_KEY), "Value": self.installation_id},
            ],
        )

        with self._connect(cluster) as connection:
            self._ensure_database_created(connection)
            self._ensure_database_user_created(
                connection,
                installation_secret.master_username,
                installation_secret.master_password,
            )
            self._ensure_database_user_has_full_permissions(
                connection, installation_secret.master_username
            )

    def _drop_database(self, cluster: Dict[str, Any]) -> None:
        with self._connect(cluster) as connection:
            connection.execute(text(f"DROP DATABASE IF EXISTS {self.database_name}"))
        logger.debug(
            "Multitenant database schema dropped",
            extra=self._log_extra(rds_cluster_id=cluster["DBClusterIdentifier"])
        )

    # Lifecycle

    def provision(self, store: InstallationDatabaseStore) -> None:
        """
        Assign the installation to a shared cluster and create its database.

        Raises:
            ValidationError: If the database configuration is invalid
            DatabaseLockError: If the assigned database cannot be locked
            ResourceNotFoundError: If no multitenant database is available
        """
        self.is_valid()
        logger.info("Provisioning Multitenant AWS RDS database", extra=self._log_extra())

        vpc = self.client.ec2.vpc_for_installation(self.installation_id, store)
        vpc_id = vpc["VpcId"]

        database = self._get_and_lock_assigned_database(store)
        if database is None:
            logger.debug("Assigning installation to multitenant database", extra=self._log_extra())
            database = self._assign_installation_and_lock(vpc_id, store)

        try:
            cluster = self._describe_available_cluster(database.id)
            self._run_provision_sql_commands(vpc_id, cluster)
            self._update_counter_tag(database, cluster)
        finally:
            self._unlock(database.id, store)

        logger.info(
            f"Installation {self.installation_id} assigned to multitenant database",
            extra=self._log_extra(assigned_database=database.id)
        )

    def teardown(self, store: InstallationDatabaseStore, keep_data: bool) -> None:
        """Remove the installation from its shared cluster."""
        self.is_valid()
        logger.info("Tearing down RDS multitenant database", extra=self._log_extra())

        database = self._get_and_lock_assigned_database(store)
        if database is None:
            logger.warning(
                "No multitenant databases found for this installation; skipping...",
                extra=self._log_extra()
            )
            return

        try:
            cluster = self.client.rds.describe_db_cluster(database.id)
            if keep_data:
                logger.info(
                    "Multitenant database schema was left intact due to the keep-data setting of this server",
                    extra=self._log_extra(assigned_database=database.id)
                )
            else:
                self._drop_database(cluster)
                self.client.secrets.ensure_secret_deleted(
                    rds_multitenant_secret_name(self.installation_id)
                )

            database.remove_installation(self.installation_id)
            self._update_counter_tag(database, cluster)
            store.update_multitenant_database(database)
        finally:
            self._unlock(database.id, store)

        logger.info("Multitenant RDS database teardown complete", extra=self._log_extra())

    def snapshot(self, store: Optional[InstallationDatabaseStore] = None) -> None:
        raise NotSupportedError(
            "snapshots are not supported for multitenant RDS databases", operation="snapshot"
        )

    def generate_database_secret(self, store: InstallationDatabaseStore) -> KubernetesSecret:
        """Build the installation database secret for the assigned cluster."""
        self.is_valid()

        database = store.get_multitenant_database_for_installation_id(self.installation_id)
        if database is None:
            raise ResourceNotFoundError(
                f"no multitenant database found for installation {self.installation_id}",
                resource_type="multitenant-database",
                resource_id=self.installation_id,
            )

        with self._locked(database.id, store):
            cluster = self.client.rds.describe_db_cluster(database.id)

        secret_name = rds_multitenant_secret_name(self.installation_id)
        installation_secret = self.client.secrets.get_rds_secret(secret_name)

        if self.engine == DATABASE_ENGINE_MYSQL:
            connection, replicas = mysql_connection_strings(
                self.database_name,
                installation_secret.master_username,
                installation_secret.master_password,
                cluster["Endpoint"],
                cluster["ReaderEndpoint"],
            )
            check_url = mysql_connection_check_url(cluster["Endpoint"])
        else:
            connection, replicas = postgres_connection_strings(
                self.database_name,
                installation_secret.master_username,
                installation_secret.master_password,
                cluster["Endpoint"],
                cluster["ReaderEndpoint"],
            )
            check_url = connection

        logger.debug(
            "AWS RDS multitenant database configuration generated for cluster installation",
            extra=self._log_extra(rds_cluster_id=cluster["DBClusterIdentifier"])
        )

        return InstallationDBSecret(
            installation_secret_name=secret_name,
            connection_string=connection,
            read_replicas_url=replicas,
            db_check_url=check_url,
        ).to_k8s_secret(self.disable_db_check)

    # Migration

    def _check_migration_supported(self, operation: DBMigrationOperation, name: str) -> None:
        if (operation.source_database != DATABASE_TYPE_MULTITENANT_RDS_POSTGRES
                or operation.destination_database != DATABASE_TYPE_MULTITENANT_RDS_POSTGRES):
            raise NotSupportedError(
                "database migration is supported only between multitenant postgres databases",
                operation=name,
            )

    def _get_database(self, store: InstallationDatabaseStore, database_id: str) -> MultitenantDatabase:
        database = store.get_multitenant_database(database_id)
        if database is None:
            raise ResourceNotFoundError(
                f"failed to find a multitenant database with ID {database_id}",
                resource_type="multitenant-database",
                resource_id=database_id,
            )
        return database

    def migrate_out(self, store: InstallationDatabaseStore, operation: DBMigrationOperation) -> None:
        """Mark the installation as migrated out of the source database, keeping its data."""
        self._check_migration_supported(operation, "migrate_out")
        source_id = operation.source_multitenant_database_id

        with self._locked(source_id, store):
            database = self._get_database(store, source_id)
            database.remove_installation(self.installation_id)
            database.add_migrated_installation(self.installation_id)
            store.update_multitenant_database(database)

            cluster = self.client.rds.describe_db_cluster(database.id)
            self._update_counter_tag(database, cluster)

        logger.info(
            f"Installation {self.installation_id} migrated out of multitenant database {source_id}",
            extra=self._log_extra()
        )

    def migrate_to(self, store: InstallationDatabaseStore, operation: DBMigrationOperation) -> None:
        """Create the installation database in the destination cluster."""
        self._check_migration_supported(operation, "migrate_to")
        destination_id = operation.destination_multitenant_database_id

        with self._locked(destination_id, store):
            database = self._get_database(store, destination_id)
            if not database.contains(self.installation_id):
                if database.installation_count() >= self.max_supported_databases():
                    raise DatabaseOperationError(
                        f"multitenant database {database.id} cannot accept more installations",
                        database_id=database.id,
                    )
                database.add_installation(self.installation_id)
                store.update_multitenant_database(database)

            vpc = self.client.ec2.vpc_for_installation(self.installation_id, store)
            cluster = self._describe_available_cluster(database.id)
            self._run_provision_sql_commands(vpc["VpcId"], cluster)
            self._update_counter_tag(database, cluster)

        logger.info(
            f"Installation {self.installation_id} migrated to multitenant database {destination_id}",
            extra=self._log_extra()
        )

    def teardown_migrated(self, store: InstallationDatabaseStore, operation: DBMigrationOperation) -> None:
        """Drop the installation database left behind in the source cluster."""
        self._check_migration_supported(operation, "teardown_migrated")
        source_id = operation.source_multitenant_database_id
        logger.info("Tearing down migrated multitenant database", extra=self._log_extra())

        if store.get_multitenant_database(source_id) is None:
            logger.info("Source database does not exist, skipping removal", extra=self._log_extra())
            return

        with self._locked(source_id, store):
            database = self._get_database(store, source_id)
            cluster = self.client.rds.describe_db_cluster(database.id)
            self._drop_database(cluster)
            database.remove_migrated_installation(self.installation_id)
            store.update_multitenant_database(database)

    def rollback_migration(self, store: InstallationDatabaseStore, operation: DBMigrationOperation) -> None:
        """Move the installation back to the source database."""
        self._check_migration_supported(operation, "rollback_migration")
        source_id = operation.source_multitenant_database_id
        destination_id = operation.destination_multitenant_database_id

        with self._locked(destination_id, store), self._locked(source_id, store):
            destination = self._get_database(store, destination_id)
            source = self._get_database(store, source_id)

            source.remove_migrated_installation(self.installation_id)
            destination.remove_installation(self.installation_id)
            source.add_installation(self.installation_id)

            store.update_multitenant_database(source)
            store.update_multitenant_database(destination)

            destination_cluster = self._describe_available_cluster(destination.id)
            self._drop_database(destination_cluster)

            self._update_counter_tag(destination, destination_cluster)
            self._update_counter_tag(source, self.client.rds.describe_db_cluster(source.id))

        logger.info(
            f"Installation {self.installation_id} rolled back to multitenant database {source_id}",
            extra=self._log_extra()
        )


def rds_cluster_id_from_resource_tags(max_databases: int, tags: List[Dict[str, str]]) -> Optional[str]:
    """
    Return the cluster id of a tagged multitenant cluster with room left.

    Raises:
        ValidationError: If the counter tag is not an integer
    """
    counter_key = trim_tag_prefix(DEFAULT_MULTITENANT_DATABASE_COUNTER_TAG_KEY)
    id_key = trim_tag_prefix(DEFAULT_MULTITENANT_DATABASE_ID_TAG_KEY)

    values = {tag["Key"]: tag.get("Value") for tag in tags}
    cluster_id = values.get(id_key)
    counter = values.get(counter_key)
    if not cluster_id or counter is None:
        return None

    try:
        count = int(counter)
    except ValueError:
        raise ValidationError(
            "failed to parse string tag:counter to integer", field=counter_key, value=counter
        ) from None

    if count < max_databases:
        return cluster_id
    return None
