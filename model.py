"""
Data transfer objects and the installation store interface.

State lives in AWS and in the external installation store; the classes
here are transient views passed between the store and the services.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from constants import (
    DATABASE_ENGINE_MYSQL,
    DATABASE_ENGINE_POSTGRES,
    DATABASE_TYPE_MULTITENANT_RDS,
    DATABASE_TYPE_MULTITENANT_RDS_POSTGRES,
    DATABASE_TYPE_SINGLE_TENANT_RDS,
    DATABASE_TYPE_SINGLE_TENANT_RDS_POSTGRES,
    DEFAULT_DB_PRIMARY_INSTANCE_TYPE,
    DEFAULT_DB_REPLICA_INSTANCE_TYPE,
    DEFAULT_DB_REPLICAS_COUNT,
)

SINGLE_TENANT_DATABASE_TYPES = (
    DATABASE_TYPE_SINGLE_TENANT_RDS,
    DATABASE_TYPE_SINGLE_TENANT_RDS_POSTGRES,
)
MULTITENANT_DATABASE_TYPES = (
    DATABASE_TYPE_MULTITENANT_RDS,
    DATABASE_TYPE_MULTITENANT_RDS_POSTGRES,
)


def database_engine(database_type: str) -> str:
    """Return the SQL engine family for a database type."""
    if database_type in (
        DATABASE_TYPE_SINGLE_TENANT_RDS_POSTGRES,
        DATABASE_TYPE_MULTITENANT_RDS_POSTGRES,
    ):
        return DATABASE_ENGINE_POSTGRES
    return DATABASE_ENGINE_MYSQL


@dataclass
class ClusterInstallation:
    """An installation scheduled onto a Kubernetes cluster."""

    id: str
    cluster_id: str
    installation_id: str
    namespace: str = ""


@dataclass
class MultitenantDatabase:
    """A shared RDS cluster hosting many installations' databases."""

    id: str
    vpc_id: str
    database_type: str
    installations: List[str] = field(default_factory=list)
    migrated_installations: List[str] = field(default_factory=list)
    writer_endpoint: str = ""
    reader_endpoint: str = ""
    max_installations_per_logical_database: int = 0
    lock_acquired_by: Optional[str] = None
    lock_acquired_at: int = 0

    def installation_count(self) -> int:
        return len(self.installations)

    def contains(self, installation_id: str) -> bool:
        return installation_id in self.installations

    def add_installation(self, installation_id: str) -> None:
        if not self.contains(installation_id):
            self.installations.append(installation_id)

    def remove_installation(self, installation_id: str) -> bool:
        if not self.contains(installation_id):
            return False
        self.installations.remove(installation_id)
        return True

    def add_migrated_installation(self, installation_id: str) -> None:
        if installation_id not in self.migrated_installations:
            self.migrated_installations.append(installation_id)

    def remove_migrated_installation(self, installation_id: str) -> bool:
        if installation_id not in self.migrated_installations:
            return False
        self.migrated_installations.remove(installation_id)
        return True


@dataclass
class MultitenantDatabaseFilter:
    """Store query for multitenant database candidates."""

    database_type: str
    max_installations_limit: int
    vpc_id: str = ""


@dataclass
class SingleTenantDatabaseConfig:
    """Instance sizing for a single tenant RDS cluster."""

    primary_instance_type: str = DEFAULT_DB_PRIMARY_INSTANCE_TYPE
    replica_instance_type: str = DEFAULT_DB_REPLICA_INSTANCE_TYPE
    replicas_count: int = DEFAULT_DB_REPLICAS_COUNT


@dataclass
class DBMigrationOperation:
    """Database migration request for an installation."""

    id: str
    installation_id: str
    source_database: str
    destination_database: str
    source_multitenant_database_id: str = ""
    destination_multitenant_database_id: str = ""


@dataclass
class FilestoreConfig:
    """Filestore connection settings handed to the installation."""

    url: str
    bucket: str
    secret: str


@dataclass
class KubernetesSecret:
    """An Opaque Kubernetes secret built from string data."""

    name: str
    string_data: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Render the secret as a v1 Secret manifest."""
        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": self.name},
            "type": "Opaque",
            "stringData": dict(self.string_data),
        }


@dataclass
class InstallationDBSecret:
    """Database connection settings handed to an installation."""

    installation_secret_name: str
    connection_string: str
    read_replicas_url: str
    db_check_url: str = ""
    data_source_url: str = ""

    def to_k8s_secret(self, disable_db_check: bool = False) -> KubernetesSecret:
        """
        Build the installation database secret.

        The connection check URL is left out when checks are disabled.
        """
        data = {
            "DB_CONNECTION_STRING": self.connection_string,
            "MM_SQLSETTINGS_DATASOURCEREPLICAS": self.read_replicas_url,
        }
        if self.db_check_url and not disable_db_check:
            data["DB_CONNECTION_CHECK_URL"] = self.db_check_url
        if self.data_source_url:
            data["MM_SQLSETTINGS_DATASOURCE"] = self.data_source_url
        return KubernetesSecret(name=self.installation_secret_name, string_data=data)


class InstallationDatabaseStore(Protocol):
    """Narrow interface to the external installation data store."""

    def get_cluster_installations(self, installation_id: str) -> List[ClusterInstallation]:
        ...

    def get_multitenant_database(self, database_id: str) -> Optional[MultitenantDatabase]:
        ...

    def get_multitenant_databases(
        self, db_filter: MultitenantDatabaseFilter
    ) -> List[MultitenantDatabase]:
        ...

    def get_multitenant_database_for_installation_id(
        self, installation_id: str
    ) -> Optional[MultitenantDatabase]:
        ...

    def create_multitenant_database(self, database: MultitenantDatabase) -> None:
        ...

    def update_multitenant_database(self, database: MultitenantDatabase) -> None:
        ...

    def lock_multitenant_database(self, database_id: str, lock_owner: str) -> bool:
        ...

    def unlock_multitenant_database(
        self, database_id: str, lock_owner: str, force: bool
    ) -> bool:
        ...

    def get_single_tenant_database_config_for_installation(
        self, installation_id: str
    ) -> Optional[SingleTenantDatabaseConfig]:
        ...

    def create_single_tenant_database_config(
        self, installation_id: str, config: SingleTenantDatabaseConfig
    ) -> None:
        ...
