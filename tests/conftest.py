"""
Shared fixtures for the provisioning service tests.
"""
import copy
import os
import sys
from typing import Dict, List, Optional

import pytest

# Add parent directory to path to import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config import Config, reset_config
from model import (
    ClusterInstallation,
    MultitenantDatabase,
    MultitenantDatabaseFilter,
    SingleTenantDatabaseConfig,
)
from services.aws_client import AWSClient


class FakeInstallationStore:
    """In-memory installation store with the same locking rules as the SQL store."""

    def __init__(self) -> None:
        self.cluster_installations: Dict[str, List[ClusterInstallation]] = {}
        self.databases: Dict[str, MultitenantDatabase] = {}
        self.single_tenant_configs: Dict[str, SingleTenantDatabaseConfig] = {}
        self.lock_calls: List[str] = []
        self.unlock_calls: List[str] = []

    def add_cluster_installation(self, installation_id: str, cluster_id: str) -> None:
        self.cluster_installations.setdefault(installation_id, []).append(
            ClusterInstallation(
                id=f"ci-{installation_id}-{cluster_id}",
                cluster_id=cluster_id,
                installation_id=installation_id,
            )
        )

    def get_cluster_installations(self, installation_id: str) -> List[ClusterInstallation]:
        return list(self.cluster_installations.get(installation_id, []))

    def get_multitenant_database(self, database_id: str) -> Optional[MultitenantDatabase]:
        database = self.databases.get(database_id)
        return copy.deepcopy(database) if database else None

    def get_multitenant_databases(self, db_filter: MultitenantDatabaseFilter) -> List[MultitenantDatabase]:
        return [
            copy.deepcopy(database) for database in self.databases.values()
            if database.database_type == db_filter.database_type
            and (not db_filter.vpc_id or database.vpc_id == db_filter.vpc_id)
            and database.installation_count() < db_filter.max_installations_limit
        ]

    def get_multitenant_database_for_installation_id(self, installation_id: str) -> Optional[MultitenantDatabase]:
        for database in self.databases.values():
            if database.contains(installation_id):
                return copy.deepcopy(database)
        return None

    def create_multitenant_database(self, database: MultitenantDatabase) -> None:
        self.databases[database.id] = copy.deepcopy(database)

    def update_multitenant_database(self, database: MultitenantDatabase) -> None:
        stored = self.databases[database.id]
        updated = copy.deepcopy(database)
        updated.lock_acquired_by = stored.lock_acquired_by
        self.databases[database.id] = updated

    def lock_multitenant_database(self, database_id: str, lock_owner: str) -> bool:
        self.lock_calls.append(database_id)
        database = self.databases.get(database_id)
        if database is None or database.lock_acquired_by is not None:
            return False
        database.lock_acquired_by = lock_owner
        return True

    def unlock_multitenant_database(self, database_id: str, lock_owner: str, force: bool) -> bool:
        self.unlock_calls.append(database_id)
        database = self.databases.get(database_id)
        if database is None or database.lock_acquired_by is None:
            return False
        if database.lock_acquired_by != lock_owner and not force:
            return False
        database.lock_acquired_by = None
        return True

    def get_single_tenant_database_config_for_installation(
        self, installation_id: str
    ) -> Optional[SingleTenantDatabaseConfig]:
        return self.single_tenant_configs.get(installation_id)

    def create_single_tenant_database_config(
        self, installation_id: str, config: SingleTenantDatabaseConfig
    ) -> None:
        self.single_tenant_configs[installation_id] = config


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Mocked AWS credentials so no test can reach a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')
    reset_config()
    yield
    reset_config()


@pytest.fixture
def store():
    return FakeInstallationStore()


@pytest.fixture
def aws_client():
    """AWSClient with default configuration; boto3 clients are built on first use."""
    return AWSClient(config=Config())
