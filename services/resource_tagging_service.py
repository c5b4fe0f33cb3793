"""
Resource Groups Tagging service for tag based resource discovery.
"""
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from constants import KMS_KEY_STATE_ENABLED
from logger_config import get_logger
from utils.decorators import wrap_aws_errors

if TYPE_CHECKING:
    from mypy_boto3_resourcegroupstaggingapi import ResourceGroupsTaggingAPIClient
    from services.aws_client import AWSClient
else:
    ResourceGroupsTaggingAPIClient = Any

logger = get_logger(__name__)


class ResourceTaggingService:
    """Service for Resource Groups Tagging API lookups."""

    def __init__(self, aws_client: "AWSClient") -> None:
        self.aws_client = aws_client

    @property
    def client(self) -> ResourceGroupsTaggingAPIClient:
        return self.aws_client.service('resourcegroupstaggingapi')

    @wrap_aws_errors("failed to get resources by tag", service="resourcegroupstaggingapi")
    def get_resources(
        self,
        tag_filters: List[Dict[str, Any]],
        resource_type_filters: Optional[List[str]] = None
    ) -> List[Dict[str, Any]]:
        """
        Return every resource matching the tag filters, across all pages.

        Args:
            tag_filters: List of {'Key': ..., 'Values': [...]} filters
            resource_type_filters: Optional resource types, e.g. ['rds:cluster']

        Returns:
            ResourceTagMappingList entries
        """
        kwargs: Dict[str, Any] = {"TagFilters": tag_filters}
        if resource_type_filters:
            kwargs["ResourceTypeFilters"] = resource_type_filters

        resources: List[Dict[str, Any]] = []
        paginator = self.client.get_paginator('get_resources')
        for page in paginator.paginate(**kwargs):
            resources.extend(page.get("ResourceTagMappingList", []))
        return resources

    def get_resource_arns(
        self,
        tag_filters: List[Dict[str, Any]],
        resource_type_filters: Optional[List[str]] = None
    ) -> List[str]:
        return [
            resource["ResourceARN"]
            for resource in self.get_resources(tag_filters, resource_type_filters)
        ]

    def get_enabled_kms_keys_for_tag(self, key: str, value: str) -> List[Dict[str, Any]]:
        """Return metadata of the enabled KMS keys tagged key=value."""
        arns = self.get_resource_arns([{"Key": key, "Values": [value]}])
        keys = []
        for arn in arns:
            metadata = self.aws_client.kms.get_symmetric_key(arn)
            if metadata.get("KeyState") == KMS_KEY_STATE_ENABLED:
                keys.append(metadata)
        logger.debug(
            f"Found {len(keys)} enabled KMS keys of {len(arns)} tagged",
            extra={"tag_key": key, "tag_value": value}
        )
        return keys
