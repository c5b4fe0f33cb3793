"""
Route53 service for installation CNAME records and hosted zone lookups.
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from constants import (
    DEFAULT_ROUTE53_TTL,
    DEFAULT_ROUTE53_WEIGHT,
    HOSTED_ZONE_ID_MIN_LENGTH,
    HOSTED_ZONE_ID_PREFIX,
    ROUTE53_RECORD_SETS_MAX_ITEMS,
)
from logger_config import get_logger
from services.helpers import trim_tag_prefix
from utils.decorators import wrap_aws_errors
from utils.exceptions import AWSOperationError, MultipleResourcesError, ResourceNotFoundError, ValidationError

if TYPE_CHECKING:
    from mypy_boto3_route53 import Route53Client
    from services.aws_client import AWSClient
else:
    Route53Client = Any

logger = get_logger(__name__)

HOSTED_ZONE_RESOURCE_TYPE = "hostedzone"


@dataclass
class Tag:
    """A hosted zone tag to match against."""

    key: str
    value: str

    def compare(self, resource_tag: Optional[Dict[str, str]]) -> bool:
        """
        Match an AWS tag by key; an empty AWS value matches any value.
        """
        if not resource_tag or resource_tag.get("Key") != trim_tag_prefix(self.key):
            return False
        resource_value = resource_tag.get("Value")
        if resource_value:
            return resource_value == self.value
        return True

    def __str__(self) -> str:
        return f"{self.key}:{self.value}"


def parse_hosted_zone_id(zone_id: str) -> str:
    """
    Strip the '/hostedzone/' prefix from a hosted zone id.

    Raises:
        ValidationError: If the remaining id is too short to be valid
    """
    parsed = zone_id[len(HOSTED_ZONE_ID_PREFIX):] if zone_id.startswith(HOSTED_ZONE_ID_PREFIX) else zone_id
    if len(parsed) < HOSTED_ZONE_ID_MIN_LENGTH:
        raise ValidationError(f"invalid hosted zone ID: {parsed}", field="hosted_zone_id", value=parsed)
    return parsed


class Route53Service:
    """Service for Route53 operations."""

    def __init__(self, aws_client: "AWSClient") -> None:
        self.aws_client = aws_client

    @property
    def client(self) -> Route53Client:
        return self.aws_client.service('route53')

    @staticmethod
    def tag(key: str, value: str) -> Tag:
        return Tag(key=key, value=value)

    @staticmethod
    def parse_hosted_zone_id(zone_id: str) -> str:
        return parse_hosted_zone_id(zone_id)

    @wrap_aws_errors("failed to create CNAME {dns_name}", service="route53")
    def create_cname(
        self,
        hosted_zone_id: str,
        dns_name: str,
        endpoints: List[str],
        identifier: str = ""
    ) -> None:
        """
        Upsert a weighted CNAME record.

        Args:
            hosted_zone_id: Hosted zone to write to
            dns_name: Record name
            endpoints: Record values
            identifier: SetIdentifier; defaults to the record name
        """
        if not endpoints:
            raise ValidationError("no DNS endpoints provided for route53 creation request", field="endpoints")
        if any(not endpoint for endpoint in endpoints):
            raise ValidationError(
                "at least one of the DNS endpoints was set to an empty string",
                field="endpoints",
            )

        response = self.client.change_resource_record_sets(
            HostedZoneId=hosted_zone_id,
            ChangeBatch={
                "Changes": [{
                    "Action": "UPSERT",
                    "ResourceRecordSet": {
                        "Name": dns_name,
                        "Type": "CNAME",
                        "ResourceRecords": [{"Value": endpoint} for endpoint in endpoints],
                        "TTL": DEFAULT_ROUTE53_TTL,
                        "Weight": DEFAULT_ROUTE53_WEIGHT,
                        "SetIdentifier": identifier or dns_name,
                    },
                }],
            },
        )
        logger.debug(
            f"AWS Route53 create response: {json.dumps(response.get('ChangeInfo', {}), default=str)}",
            extra={"dns_name": dns_name, "endpoints": endpoints, "hosted_zone_id": hosted_zone_id}
        )

    @wrap_aws_errors("failed to list resource records for {dns_name}", service="route53")
    def get_record_sets_for_dns(self, hosted_zone_id: str, dns_name: str) -> List[Dict[str, Any]]:
        """
        Return the record sets named exactly dns_name.

        Raises:
            MultipleResourcesError: If the page limit was reached and results may be incomplete
        """
        response = self.client.list_resource_record_sets(
            HostedZoneId=hosted_zone_id,
            StartRecordName=dns_name,
            MaxItems=str(ROUTE53_RECORD_SETS_MAX_ITEMS),
        )
        record_sets = [
            record_set for record_set in response.get("ResourceRecordSets", [])
            if record_set["Name"].rstrip(".") == dns_name
        ]
        if len(record_sets) >= ROUTE53_RECORD_SETS_MAX_ITEMS:
            raise MultipleResourcesError(
                f"max record set ({ROUTE53_RECORD_SETS_MAX_ITEMS}) reached for the given DNS value; "
                "results are probably incomplete",
                resource_type="record-set",
                count=len(record_sets),
            )
        return record_sets

    def is_provisioned_cname(self, hosted_zone_id: str, dns_name: str) -> bool:
        try:
            record_sets = self.get_record_sets_for_dns(hosted_zone_id, dns_name)
        except (AWSOperationError, MultipleResourcesError) as e:
            logger.error(f"failed to get record sets for dns name {dns_name}: {e}")
            return False
        return len(record_sets) > 0

    @wrap_aws_errors("failed to update record identifier for {dns_name}", service="route53")
    def update_resource_record_ids(self, hosted_zone_id: str, dns_name: str, new_id: str) -> None:
        """Replace the SetIdentifier of the single record named dns_name."""
        record_sets = self.get_record_sets_for_dns(hosted_zone_id, dns_name)
        if len(record_sets) != 1:
            raise MultipleResourcesError(
                f"expected exactly 1 resource record, but found {len(record_sets)}",
                resource_type="record-set",
                count=len(record_sets),
            )

        record_set = record_sets[0]
        if record_set.get("SetIdentifier") == new_id:
            return

        new_record_set = dict(record_set, SetIdentifier=new_id)
        self.client.change_resource_record_sets(
            HostedZoneId=hosted_zone_id,
            ChangeBatch={
                "Changes": [
                    {"Action": "UPSERT", "ResourceRecordSet": new_record_set},
                    {"Action": "DELETE", "ResourceRecordSet": record_set},
                ],
            },
        )
        logger.debug(
            "AWS route53 record identifier updated",
            extra={"dns_name": dns_name, "hosted_zone_id": hosted_zone_id}
        )

    @wrap_aws_errors("failed to delete CNAME {dns_name}", service="route53")
    def delete_cname(self, hosted_zone_id: str, dns_name: str) -> None:
        record_sets = self.get_record_sets_for_dns(hosted_zone_id, dns_name)
        if not record_sets:
            logger.warning(
                "Unable to find any DNS records; skipping...",
                extra={"dns_name": dns_name, "hosted_zone_id": hosted_zone_id}
            )
            return
        if len(record_sets) != 1:
            raise MultipleResourcesError(
                f"expected exactly 1 resource record, but found {len(record_sets)}",
                resource_type="record-set",
                count=len(record_sets),
            )

        self.client.change_resource_record_sets(
            HostedZoneId=hosted_zone_id,
            ChangeBatch={
                "Changes": [{"Action": "DELETE", "ResourceRecordSet": record_sets[0]}],
            },
        )
        logger.debug(
            "AWS route53 record deleted",
            extra={"dns_name": dns_name, "hosted_zone_id": hosted_zone_id}
        )

    @wrap_aws_errors("failed to list hosted zones with tag {tag}", service="route53")
    def get_hosted_zones_with_tag(self, tag: Tag, first_only: bool = False) -> List[Dict[str, Any]]:
        """
        Return hosted zones carrying the tag, following the Marker pagination.

        Args:
            tag: Tag to match
            first_only: Stop at the first matching zone
        """
        zones: List[Dict[str, Any]] = []
        kwargs: Dict[str, Any] = {}
        while True:
            response = self.client.list_hosted_zones(**kwargs)
            for zone in response.get("HostedZones", []):
                zone_id = parse_hosted_zone_id(zone["Id"])
                tag_list = self.client.list_tags_for_resource(
                    ResourceType=HOSTED_ZONE_RESOURCE_TYPE,
                    ResourceId=zone_id,
                )
                resource_tags = tag_list.get("ResourceTagSet", {}).get("Tags", [])
                if any(tag.compare(resource_tag) for resource_tag in resource_tags):
                    zones.append(zone)
                if first_only and zones:
                    return zones

            marker = response.get("NextMarker")
            if not response.get("IsTruncated") or not marker:
                break
            kwargs["Marker"] = marker
        return zones

    @wrap_aws_errors("failed to get hosted zone {hosted_zone_id}", service="route53")
    def get_zone_dns(self, hosted_zone_id: str) -> str:
        zone = self.client.get_hosted_zone(Id=hosted_zone_id)["HostedZone"]
        domain_name = zone["Name"].rstrip(".")
        if not domain_name:
            raise ValidationError("the returned domain name was empty", field="domain_name")
        logger.debug(
            "AWS Route53 domain lookup complete",
            extra={"domain_name": domain_name, "hosted_zone_id": hosted_zone_id}
        )
        return domain_name

    @wrap_aws_errors("unable to get tag list for hosted zone {hosted_zone_id}", service="route53")
    def get_tag_by_key_and_zone_id(self, key: str, hosted_zone_id: str) -> Optional[Tag]:
        tag_list = self.client.list_tags_for_resource(
            ResourceType=HOSTED_ZONE_RESOURCE_TYPE,
            ResourceId=hosted_zone_id,
        )
        for resource_tag in tag_list.get("ResourceTagSet", {}).get("Tags", []):
            if resource_tag.get("Key") == trim_tag_prefix(key):
                return Tag(key=resource_tag["Key"], value=resource_tag.get("Value", ""))
        return None

    # Private and public zone wrappers

    def _public_zone_id(self, dns_name: str) -> str:
        zone_id = self.aws_client.get_public_zone_id_for_dns(dns_name)
        if zone_id is None:
            raise ResourceNotFoundError(
                f'hosted zone for "{dns_name}" domain name not found',
                resource_type="hostedzone",
                resource_id=dns_name,
            )
        return zone_id

    def create_private_cname(self, dns_name: str, endpoints: List[str]) -> None:
        self.create_cname(self.aws_client.get_private_hosted_zone_id(), dns_name, endpoints)

    def create_public_cname(self, dns_name: str, endpoints: List[str], identifier: str = "") -> None:
        self.create_cname(self._public_zone_id(dns_name), dns_name, endpoints, identifier)

    def upsert_public_cnames(self, dns_names: List[str], endpoints: List[str]) -> None:
        for dns_name in dns_names:
            self.create_public_cname(dns_name, endpoints)

    def update_public_record_id_for_cname(self, dns_name: str, new_id: str) -> None:
        self.update_resource_record_ids(self._public_zone_id(dns_name), dns_name, new_id)

    def is_provisioned_private_cname(self, dns_name: str) -> bool:
        return self.is_provisioned_cname(self.aws_client.get_private_hosted_zone_id(), dns_name)

    def get_private_zone_domain_name(self) -> str:
        return self.get_zone_dns(self.aws_client.get_private_hosted_zone_id())

    def get_public_hosted_zone_names(self) -> List[str]:
        return self.aws_client.get_public_hosted_zone_names()

    def delete_private_cname(self, dns_name: str) -> None:
        self.delete_cname(self.aws_client.get_private_hosted_zone_id(), dns_name)

    def delete_public_cname(self, dns_name: str) -> None:
        self.delete_cname(self._public_zone_id(dns_name), dns_name)

    def delete_public_cnames(self, dns_names: List[str]) -> None:
        for dns_name in dns_names:
            self.delete_public_cname(dns_name)
