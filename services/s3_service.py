"""
S3 service for filestore bucket operations.
"""
from typing import Any, Dict, Iterable, List, Optional, TYPE_CHECKING

from botocore.exceptions import ClientError
from more_itertools import chunked

from constants import (
    DEFAULT_AWS_REGION,
    DEFAULT_FILESTORE_MULTITENANT_TAG_KEY,
    DEFAULT_FILESTORE_MULTITENANT_TAG_VALUE,
    DEFAULT_MULTITENANT_DATABASE_VPC_ID_TAG_KEY,
    S3_LARGE_COPY_PART_SIZE,
    S3_MAX_DELETE_OBJECTS,
    S3_URL,
)
from logger_config import get_logger
from services.helpers import ensure_tag_in_tagset, is_error_code, mattermost_multitenant_s3_name, trim_tag_prefix
from utils.decorators import wrap_aws_errors
from utils.exceptions import ResourceNotFoundError

if TYPE_CHECKING:
    from mypy_boto3_s3 import S3Client
    from services.aws_client import AWSClient
else:
    S3Client = Any

logger = get_logger(__name__)

S3_ACL_PRIVATE = "private"


class S3Service:
    """Service for S3 operations."""

    def __init__(self, aws_client: "AWSClient") -> None:
        """
        Initialize S3 service.

        Args:
            aws_client: Shared AWS client bundle
        """
        self.aws_client = aws_client

    @property
    def s3_client(self) -> S3Client:
        return self.aws_client.service('s3')

    def get_s3_region_url(self) -> str:
        region = self.aws_client.region
        if region and region != DEFAULT_AWS_REGION:
            return f"s3.{region}.amazonaws.com"
        return S3_URL

    @wrap_aws_errors("unable to create bucket {bucket_name}", service="s3")
    def ensure_bucket_created(self, bucket_name: str, enable_versioning: bool = False) -> None:
        """
        Create a private, encrypted bucket with public access blocked.

        Args:
            bucket_name: Name of the S3 bucket
            enable_versioning: Turn on object versioning

        Raises:
            AWSOperationError: If an S3 operation fails
        """
        create_kwargs: Dict[str, Any] = {"Bucket": bucket_name, "ACL": S3_ACL_PRIVATE}
        region = self.aws_client.region
        if region and region != DEFAULT_AWS_REGION:
            create_kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}
        self.s3_client.create_bucket(**create_kwargs)

        self.s3_client.put_public_access_block(
            Bucket=bucket_name,
            PublicAccessBlockConfiguration={
                "BlockPublicAcls": True,
                "BlockPublicPolicy": True,
                "IgnorePublicAcls": True,
                "RestrictPublicBuckets": True,
            },
        )

        self.s3_client.put_bucket_encryption(
            Bucket=bucket_name,
            ServerSideEncryptionConfiguration={
                "Rules": [
                    {"ApplyServerSideEncryptionByDefault": {"SSEAlgorithm": "AES256"}},
                ],
            },
        )

        if enable_versioning:
            self.enable_bucket_versioning(bucket_name)

        logger.info(f'Successfully created bucket s3://{bucket_name}')

    def _delete_objects(self, bucket_name: str, objects: Iterable[Dict[str, str]]) -> int:
        deleted = 0
        for batch in chunked(objects, S3_MAX_DELETE_OBJECTS):
            self.s3_client.delete_objects(
                Bucket=bucket_name,
                Delete={"Objects": batch, "Quiet": True},
            )
            deleted += len(batch)
        return deleted

    @wrap_aws_errors("couldn't delete objects from bucket {bucket_name}", service="s3")
    def batch_delete(self, bucket_name: str, prefix: Optional[str] = None) -> int:
        """
        Delete every object in the bucket, or under a prefix.

        Returns:
            Number of objects deleted
        """
        list_kwargs: Dict[str, Any] = {"Bucket": bucket_name, "MaxKeys": S3_MAX_DELETE_OBJECTS}
        if prefix is not None:
            list_kwargs["Prefix"] = prefix

        def keys():
            paginator = self.s3_client.get_paginator('list_objects_v2')
            for page in paginator.paginate(**list_kwargs):
                for obj in page.get("Contents", []):
                    yield {"Key": obj["Key"]}

        deleted = self._delete_objects(bucket_name, keys())
        logger.debug(
            f"Deleted {deleted} objects from s3://{bucket_name}",
            extra={"s3_bucket_name": bucket_name, "prefix": prefix}
        )
        return deleted

    @wrap_aws_errors("couldn't delete object versions from bucket {bucket_name}", service="s3")
    def batch_delete_versions(self, bucket_name: str, prefix: Optional[str] = None) -> int:
        """Delete every object version and delete marker in the bucket."""
        list_kwargs: Dict[str, Any] = {"Bucket": bucket_name, "MaxKeys": S3_MAX_DELETE_OBJECTS}
        if prefix is not None:
            list_kwargs["Prefix"] = prefix

        def versions():
            paginator = self.s3_client.get_paginator('list_object_versions')
            for page in paginator.paginate(**list_kwargs):
                for obj in page.get("Versions", []) + page.get("DeleteMarkers", []):
                    yield {"Key": obj["Key"], "VersionId": obj["VersionId"]}

        deleted = self._delete_objects(bucket_name, versions())
        logger.debug(
            f"Deleted {deleted} object versions from s3://{bucket_name}",
            extra={"s3_bucket_name": bucket_name}
        )
        return deleted

    @wrap_aws_errors("unable to get versioning of bucket {bucket_name}", service="s3")
    def get_bucket_versioning(self, bucket_name: str) -> str:
        """Return the versioning status, or an empty string if never set."""
        return self.s3_client.get_bucket_versioning(Bucket=bucket_name).get("Status", "")

    def is_versioning_enabled(self, bucket_name: str) -> bool:
        return self.get_bucket_versioning(bucket_name) == "Enabled"

    @wrap_aws_errors("failed to enable versioning of bucket {bucket_name}", service="s3")
    def enable_bucket_versioning(self, bucket_name: str) -> None:
        self.s3_client.put_bucket_versioning(
            Bucket=bucket_name,
            VersioningConfiguration={"Status": "Enabled"},
        )

    @wrap_aws_errors("failed to disable versioning of bucket {bucket_name}", service="s3")
    def disable_bucket_versioning(self, bucket_name: str) -> None:
        self.s3_client.put_bucket_versioning(
            Bucket=bucket_name,
            VersioningConfiguration={"Status": "Suspended"},
        )

    @wrap_aws_errors("unable to delete bucket {bucket_name}", service="s3")
    def ensure_bucket_deleted(self, bucket_name: str) -> None:
        """
        Empty and delete a bucket; a missing bucket is already deleted.
        """
        try:
            self.s3_client.head_bucket(Bucket=bucket_name)
        except ClientError as e:
            if is_error_code(e, '404') or is_error_code(e, 'NoSuchBucket'):
                logger.warning(
                    "AWS S3 bucket could not be found; assuming already deleted",
                    extra={"s3_bucket_name": bucket_name}
                )
                return
            logger.warning(
                f"Could not determine if S3 bucket exists: {e}",
                extra={"s3_bucket_name": bucket_name}
            )

        if self.is_versioning_enabled(bucket_name):
            self.disable_bucket_versioning(bucket_name)

        self.batch_delete_versions(bucket_name)
        self.batch_delete(bucket_name)

        self.s3_client.delete_bucket(Bucket=bucket_name)
        logger.info(f'Successfully deleted bucket s3://{bucket_name}')

    def ensure_bucket_directory_deleted(self, bucket_name: str, directory: str) -> int:
        return self.batch_delete(bucket_name, prefix=directory)

    @wrap_aws_errors("failed to delete object s3://{bucket_name}/{key}", service="s3")
    def ensure_object_deleted(self, bucket_name: str, key: str) -> None:
        self.s3_client.delete_object(Bucket=bucket_name, Key=key)

    @wrap_aws_errors("failed to copy s3://{src_bucket}/{src_key} to s3://{dest_bucket}/{dest_key}", service="s3")
    def large_copy(self, src_bucket: str, src_key: str, dest_bucket: str, dest_key: str) -> None:
        """
        Copy an object of any size with a multipart upload of ranged part copies.

        Args:
            src_bucket: Source bucket
            src_key: Source object key
            dest_bucket: Destination bucket
            dest_key: Destination object key
        """
        upload_id = self.s3_client.create_multipart_upload(
            Bucket=dest_bucket, Key=dest_key
        )["UploadId"]
        copy_source = f"{src_bucket}/{src_key}"

        object_size = self.s3_client.head_object(Bucket=src_bucket, Key=src_key)["ContentLength"]

        completed_parts: List[Dict[str, Any]] = []
        position = 0
        part_number = 1
        try:
            while position < object_size:
                last_byte = min(position + S3_LARGE_COPY_PART_SIZE - 1, object_size - 1)
                bytes_range = f"bytes={position}-{last_byte}"
                logger.debug(
                    "Copying S3 object part",
                    extra={"s3_upload_id": upload_id, "bytes_range": bytes_range, "part_number": part_number}
                )
                response = self.s3_client.upload_part_copy(
                    Bucket=dest_bucket,
                    Key=dest_key,
                    CopySource=copy_source,
                    CopySourceRange=bytes_range,
                    PartNumber=part_number,
                    UploadId=upload_id,
                )
                etag = response["CopyPartResult"]["ETag"].strip('"')
                completed_parts.append({"ETag": etag, "PartNumber": part_number})
                position += S3_LARGE_COPY_PART_SIZE
                part_number += 1

            self.s3_client.complete_multipart_upload(
                Bucket=dest_bucket,
                Key=dest_key,
                MultipartUpload={"Parts": completed_parts},
                UploadId=upload_id,
            )
        except ClientError:
            logger.warning(
                "Aborting S3 multipart upload after a failed copy",
                extra={"s3_upload_id": upload_id, "part_number": part_number}
            )
            self.s3_client.abort_multipart_upload(Bucket=dest_bucket, Key=dest_key, UploadId=upload_id)
            raise
        logger.info(f'Successfully copied {copy_source} to s3://{dest_bucket}/{dest_key}')

    @wrap_aws_errors("failed to get bucket tags for VPC {vpc_id}", service="s3")
    def get_multitenant_bucket_name_for_vpc(self, vpc_id: str, environment_name: Optional[str] = None) -> str:
        """
        Return the shared filestore bucket of a VPC after checking its tags.

        Raises:
            ResourceNotFoundError: If the bucket is missing or not tagged for the VPC
        """
        bucket_name = mattermost_multitenant_s3_name(
            environment_name or self.aws_client.environment_name, vpc_id
        )
        try:
            tags = self.s3_client.get_bucket_tagging(Bucket=bucket_name).get("TagSet", [])
        except ClientError as e:
            if is_error_code(e, 'NoSuchBucket'):
                raise ResourceNotFoundError(
                    f"failed to find bucket {bucket_name}",
                    resource_type="s3-bucket",
                    resource_id=bucket_name,
                ) from e
            if is_error_code(e, 'NoSuchTagSet'):
                raise ResourceNotFoundError(
                    f"failed to find tags on S3 bucket {bucket_name}",
                    resource_type="s3-bucket",
                    resource_id=bucket_name,
                ) from e
            raise

        required = [
            (DEFAULT_MULTITENANT_DATABASE_VPC_ID_TAG_KEY, vpc_id),
            (DEFAULT_FILESTORE_MULTITENANT_TAG_KEY, DEFAULT_FILESTORE_MULTITENANT_TAG_VALUE),
        ]
        for tag_key, tag_value in required:
            if not ensure_tag_in_tagset(trim_tag_prefix(tag_key), tag_value, tags):
                raise ResourceNotFoundError(
                    f"failed to find {tag_key} tag on S3 bucket {bucket_name}",
                    resource_type="s3-bucket",
                    resource_id=bucket_name,
                )
        return bucket_name
