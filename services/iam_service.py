"""
IAM service for users, S3 access policies and access keys.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from botocore.exceptions import ClientError

from logger_config import get_logger
from services.helpers import is_error_code
from utils.decorators import wrap_aws_errors

if TYPE_CHECKING:
    from mypy_boto3_iam import IAMClient
    from services.aws_client import AWSClient
else:
    IAMClient = Any

logger = get_logger(__name__)

POLICY_VERSION = "2012-10-17"


@dataclass
class PolicyStatement:
    """A single IAM policy statement."""

    sid: str
    effect: str
    action: List[str]
    resource: str
    condition: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        statement = {
            "Sid": self.sid,
            "Effect": self.effect,
            "Action": list(self.action),
            "Resource": self.resource,
        }
        if self.condition:
            statement["Condition"] = self.condition
        return statement


@dataclass
class PolicyDocument:
    """IAM policy document."""

    statement: List[PolicyStatement]
    version: str = POLICY_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Version": self.version,
            "Statement": [statement.to_dict() for statement in self.statement],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def s3_policy_document(bucket_name: str, permitted_directory: str) -> PolicyDocument:
    """
    Build the policy granting object access to a bucket or one of its directories.

    Args:
        bucket_name: S3 bucket name
        permitted_directory: Directory inside the bucket, or '*' for the whole bucket

    Returns:
        PolicyDocument
    """
    list_condition: Dict[str, Dict[str, List[str]]] = {}
    if permitted_directory != "*":
        permitted_directory = f"{permitted_directory}/*"
        list_condition = {"StringLike": {"s3:prefix": [permitted_directory]}}

    return PolicyDocument(statement=[
        PolicyStatement(
            sid="ListObjectsInBucket",
            effect="Allow",
            action=["s3:ListBucket"],
            resource=f"arn:aws:s3:::{bucket_name}",
            condition=list_condition,
        ),
        PolicyStatement(
            sid="AllObjectActions",
            effect="Allow",
            action=[
                "s3:GetObject",
                "s3:PutObject",
                "s3:ListBucket",
                "s3:PutObjectAcl",
                "s3:DeleteObject",
            ],
            resource=f"arn:aws:s3:::{bucket_name}/{permitted_directory}",
        ),
    ])


class IAMService:
    """Service for IAM operations."""

    def __init__(self, aws_client: "AWSClient") -> None:
        self.aws_client = aws_client

    @property
    def client(self) -> IAMClient:
        return self.aws_client.service('iam')

    def policy_arn(self, policy_name: str) -> str:
        return f"arn:aws:iam::{self.aws_client.get_account_id()}:policy/{policy_name}"

    @wrap_aws_errors("failed to ensure IAM user {name} is created", service="iam")
    def ensure_user_created(self, name: str) -> Dict[str, Any]:
        """
        Return the IAM user, creating it when it does not exist.

        Args:
            name: IAM user name

        Returns:
            IAM user description
        """
        try:
            user = self.client.get_user(UserName=name)["User"]
            logger.debug("AWS IAM user already created", extra={"iam_user_name": name})
            return user
        except ClientError as e:
            if not is_error_code(e, 'NoSuchEntity'):
                raise

        user = self.client.create_user(UserName=name)["User"]
        logger.debug("AWS IAM user created", extra={"iam_user_name": name})
        return user

    @wrap_aws_errors("failed to ensure IAM user {name} is deleted", service="iam")
    def ensure_user_deleted(self, name: str) -> None:
        """
        Delete an IAM user together with its policies and access keys.

        A user that does not exist is treated as already deleted.
        """
        try:
            self.client.get_user(UserName=name)
        except ClientError as e:
            if is_error_code(e, 'NoSuchEntity'):
                logger.warning(
                    "AWS IAM user could not be found; assuming already deleted",
                    extra={"iam_user_name": name}
                )
                return
            raise

        attached = self.client.list_attached_user_policies(UserName=name)
        for policy in attached.get("AttachedPolicies", []):
            self.client.detach_user_policy(UserName=name, PolicyArn=policy["PolicyArn"])
            logger.debug(
                "AWS IAM policy detached from user",
                extra={"iam_user_name": name, "iam_policy_name": policy["PolicyName"]}
            )
            self.client.delete_policy(PolicyArn=policy["PolicyArn"])
            logger.debug(
                "AWS IAM policy deleted",
                extra={"iam_user_name": name, "iam_policy_name": policy["PolicyName"]}
            )

        for access_key in self.client.list_access_keys(UserName=name).get("AccessKeyMetadata", []):
            self.client.delete_access_key(UserName=name, AccessKeyId=access_key["AccessKeyId"])
            logger.debug(
                "AWS IAM user access key deleted",
                extra={"iam_user_name": name, "iam_access_key_id": access_key["AccessKeyId"]}
            )

        self.client.delete_user(UserName=name)
        logger.debug("AWS IAM user deleted", extra={"iam_user_name": name})

    @wrap_aws_errors("failed to ensure IAM policy {name} is created", service="iam")
    def ensure_s3_policy_created(
        self,
        name: str,
        bucket_name: str,
        permitted_directory: str,
        policy_arn: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Return the S3 access policy, creating it when it does not exist.

        Args:
            name: Policy name
            bucket_name: Bucket the policy grants access to
            permitted_directory: Directory in the bucket, or '*'
            policy_arn: Policy ARN; derived from the account id when omitted

        Returns:
            IAM policy description
        """
        policy_arn = policy_arn or self.policy_arn(name)
        try:
            policy = self.client.get_policy(PolicyArn=policy_arn)["Policy"]
            logger.debug("AWS IAM policy already created", extra={"iam_policy_name": name})
            return policy
        except ClientError as e:
            if not is_error_code(e, 'NoSuchEntity'):
                raise

        document = s3_policy_document(bucket_name, permitted_directory)
        policy = self.client.create_policy(
            PolicyName=name,
            PolicyDocument=document.to_json(),
        )["Policy"]
        logger.debug("AWS IAM policy created", extra={"iam_policy_name": name})
        return policy

    @wrap_aws_errors("failed to attach IAM policy {policy_arn} to user {name}", service="iam")
    def ensure_policy_attached(self, name: str, policy_arn: str) -> None:
        self.client.attach_user_policy(UserName=name, PolicyArn=policy_arn)

    @wrap_aws_errors("failed to create IAM access key for user {name}", service="iam")
    def ensure_access_key_created(self, name: str) -> Dict[str, Any]:
        """
        Replace all access keys of a user with a single new one.

        Returns:
            The new access key, including its secret
        """
        for access_key in self.client.list_access_keys(UserName=name).get("AccessKeyMetadata", []):
            self.client.delete_access_key(UserName=name, AccessKeyId=access_key["AccessKeyId"])
            logger.debug(
                "AWS IAM user access key deleted",
                extra={"iam_user_name": name, "iam_access_key_id": access_key["AccessKeyId"]}
            )

        access_key = self.client.create_access_key(UserName=name)["AccessKey"]
        logger.debug(
            "AWS IAM user access key created",
            extra={"iam_user_name": name, "iam_access_key_id": access_key["AccessKeyId"]}
        )
        return access_key

    @wrap_aws_errors("failed to list account aliases", service="iam")
    def get_account_aliases(self) -> List[str]:
        return self.client.list_account_aliases().get("AccountAliases", [])

    @wrap_aws_errors("failed to attach policy {policy_name} to role {role_name}", service="iam")
    def attach_policy_to_role(self, role_name: str, policy_name: str) -> None:
        policy_arn = self.policy_arn(policy_name)
        self.client.attach_role_policy(RoleName=role_name, PolicyArn=policy_arn)
        logger.info(
            "Attached policy to role",
            extra={"iam_role_name": role_name, "iam_policy_arn": policy_arn}
        )

    @wrap_aws_errors("failed to detach policy {policy_name} from role {role_name}", service="iam")
    def detach_policy_from_role(self, role_name: str, policy_name: str) -> None:
        policy_arn = self.policy_arn(policy_name)
        try:
            self.client.detach_role_policy(RoleName=role_name, PolicyArn=policy_arn)
        except ClientError as e:
            if is_error_code(e, 'NoSuchEntity'):
                logger.warning(
                    "Unable to find policy on role; assuming already detached",
                    extra={"iam_role_name": role_name, "iam_policy_arn": policy_arn}
                )
                return
            raise
        logger.info(
            "Detached policy from role",
            extra={"iam_role_name": role_name, "iam_policy_arn": policy_arn}
        )
