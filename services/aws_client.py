"""
Shared AWS client bundle.

AWSClient owns one boto3 session and lazily builds the per-service SDK
clients behind a single mutex. It also keeps the small environment cache
(environment name and Route53 hosted zones) the provisioning services
read, and an optional reference to the external installation store.
"""
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import boto3

from config import Config, get_config
from constants import (
    ACCOUNT_ALIAS_PREFIX,
    DEFAULT_AWS_REGION,
    DEFAULT_CLOUD_DNS_PRIVATE_VALUE,
    DEFAULT_CLOUD_DNS_PUBLIC_VALUE,
    DEFAULT_CLOUD_DNS_TAG_KEY,
)
from logger_config import get_logger, redact_params
from model import InstallationDatabaseStore
from utils.exceptions import ResourceNotFoundError, ValidationError

logger = get_logger(__name__)

# Route53 is a global service served out of us-east-1.
GLOBAL_SERVICE_REGIONS = {"route53": DEFAULT_AWS_REGION}


@dataclass
class EnvironmentCache:
    """Values looked up once per client and reused by the services."""

    environment: str = ""
    private_hosted_zone_id: str = ""
    public_hosted_zones: Dict[str, str] = field(default_factory=dict)


class AWSClient:
    """Lazily initialized bundle of boto3 clients and provisioning services."""

    def __init__(
        self,
        region: Optional[str] = None,
        config: Optional[Config] = None,
        store: Optional[InstallationDatabaseStore] = None,
        session: Optional[boto3.session.Session] = None
    ) -> None:
        """
        Initialize the AWS client.

        Args:
            region: AWS region; defaults to the configured region
            config: Provisioner configuration; defaults to get_config()
            store: External installation store, if already available
            session: Pre-built boto3 session, mainly for tests
        """
        self.config = config or get_config()
        self.region = region or self.config.aws_region
        self.cache = EnvironmentCache()
        self._store = store
        self._session = session
        self._lock = threading.Lock()
        self._clients: Dict[str, Any] = {}
        self._services: Dict[str, Any] = {}

    def _get_session(self) -> boto3.session.Session:
        if self._session is None:
            self._session = boto3.session.Session(region_name=self.region)
        return self._session

    def service(self, name: str) -> Any:
        """
        Return the boto3 client for an AWS service, building it on first use.

        Args:
            name: boto3 service name, e.g. 'iam' or 'secretsmanager'

        Returns:
            boto3 client
        """
        with self._lock:
            client = self._clients.get(name)
            if client is None:
                region = GLOBAL_SERVICE_REGIONS.get(name, self.region)
                client = self._get_session().client(name, region_name=region)
                client.meta.events.register(
                    'before-parameter-build', self._log_request
                )
                self._clients[name] = client
                logger.debug(f"Initialized AWS {name} client", extra={"region": region})
            return client

    @staticmethod
    def _log_request(params: Dict[str, Any], model: Any, **kwargs: Any) -> None:
        logger.debug(
            f"AWS request {model.service_model.service_name}.{model.name}: "
            f"{redact_params(params)}"
        )

    def _wrapper(self, name: str, factory: Callable[["AWSClient"], Any]) -> Any:
        with self._lock:
            wrapper = self._services.get(name)
            if wrapper is None:
                wrapper = factory(self)
                self._services[name] = wrapper
            return wrapper

    @property
    def iam(self):
        from services.iam_service import IAMService
        return self._wrapper("iam", IAMService)

    @property
    def kms(self):
        from services.kms_service import KMSService
        return self._wrapper("kms", KMSService)

    @property
    def secrets(self):
        from services.secrets_manager_service import SecretsManagerService
        return self._wrapper("secrets", SecretsManagerService)

    @property
    def ec2(self):
        from services.ec2_service import EC2Service
        return self._wrapper("ec2", EC2Service)

    @property
    def rds(self):
        from services.rds_service import RDSService
        return self._wrapper("rds", RDSService)

    @property
    def s3(self):
        from services.s3_service import S3Service
        return self._wrapper("s3", S3Service)

    @property
    def route53(self):
        from services.route53_service import Route53Service
        return self._wrapper("route53", Route53Service)

    @property
    def tagging(self):
        from services.resource_tagging_service import ResourceTaggingService
        return self._wrapper("tagging", ResourceTaggingService)

    # Installation store

    def add_store(self, store: InstallationDatabaseStore) -> None:
        """Attach the installation store unless one is already attached."""
        if not self.has_store():
            self._store = store

    def has_store(self) -> bool:
        return self._store is not None

    @property
    def store(self) -> Optional[InstallationDatabaseStore]:
        return self._store

    # Environment cache

    def initialize_cache(self) -> None:
        """
        Look up the environment name and hosted zones, then validate them.

        Raises:
            ValidationError: If the account alias or hosted zones are missing
        """
        self.cache.environment = self._lookup_environment_name()

        route53 = self.route53
        private_tag = route53.tag(DEFAULT_CLOUD_DNS_TAG_KEY, DEFAULT_CLOUD_DNS_PRIVATE_VALUE)
        private_zones = route53.get_hosted_zones_with_tag(private_tag, first_only=True)
        if not private_zones:
            raise ResourceNotFoundError(
                f"no hosted zone ID associated with tag: {private_tag}",
                resource_type="hostedzone",
            )
        self.cache.private_hosted_zone_id = route53.parse_hosted_zone_id(private_zones[0]["Id"])

        public_tag = route53.tag(DEFAULT_CLOUD_DNS_TAG_KEY, DEFAULT_CLOUD_DNS_PUBLIC_VALUE)
        public_zones = route53.get_hosted_zones_with_tag(public_tag)
        if not public_zones:
            raise ResourceNotFoundError(
                f"no hosted zone associated with tag: {public_tag}",
                resource_type="hostedzone",
            )
        self.cache.public_hosted_zones = {
            zone["Name"].rstrip("."): route53.parse_hosted_zone_id(zone["Id"])
            for zone in public_zones
        }

        self.validate_cache()
        logger.info(
            "AWS client cache initialized",
            extra={
                "environment": self.cache.environment,
                "private_hosted_zone_id": self.cache.private_hosted_zone_id,
                "public_hosted_zones": list(self.cache.public_hosted_zones),
            }
        )

    def validate_cache(self) -> None:
        if not self.cache.environment:
            raise ValidationError("environment cache value is empty", field="environment")
        if not self.cache.private_hosted_zone_id:
            raise ValidationError(
                "private hosted zone ID cache value is empty",
                field="private_hosted_zone_id",
            )
        if not self.cache.public_hosted_zones:
            raise ValidationError(
                "public hosted zone IDs cache is empty",
                field="public_hosted_zones",
            )

    def _lookup_environment_name(self) -> str:
        aliases = self.iam.get_account_aliases()
        if not aliases:
            raise ValidationError("account alias not defined", field="account_aliases")

        for alias in aliases:
            parts = alias.split("-")
            if alias.startswith(ACCOUNT_ALIAS_PREFIX.rstrip("-")) and len(parts) == 3:
                if not parts[2]:
                    raise ValidationError("environment name value was empty", value=alias)
                return parts[2]

        raise ValidationError(
            "account environment name could not be found from account aliases",
            value=aliases,
        )

    @property
    def environment_name(self) -> str:
        return self.cache.environment

    def get_private_hosted_zone_id(self) -> str:
        return self.cache.private_hosted_zone_id

    def get_public_hosted_zone_names(self) -> list:
        return list(self.cache.public_hosted_zones)

    def get_public_zone_id_for_dns(self, dns_name: str) -> Optional[str]:
        for domain_name, zone_id in self.cache.public_hosted_zones.items():
            if dns_name.endswith(domain_name):
                return zone_id
        return None

    def get_account_id(self) -> str:
        return self.service('sts').get_caller_identity()["Account"]
