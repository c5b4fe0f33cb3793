"""
Shared constants for AWS resource naming, tagging and limits.
"""

CLOUD_ID_PREFIX = "cloud-"
IAM_SUFFIX = "-iam"
RDS_SUFFIX = "-rds"
RDS_DATABASE_NAME_PREFIX = "cloud_"

DEFAULT_MATTERMOST_DATABASE_USERNAME = "mmcloud"
DEFAULT_AWS_REGION = "us-east-1"
S3_URL = "s3.amazonaws.com"

# VPC tags
VPC_AVAILABLE_TAG_KEY = "tag:Available"
VPC_AVAILABLE_TAG_VALUE_TRUE = "true"
VPC_AVAILABLE_TAG_VALUE_FALSE = "false"
VPC_CLUSTER_ID_TAG_KEY = "tag:CloudClusterID"
VPC_SECONDARY_CLUSTER_ID_TAG_KEY = "tag:CloudSecondaryClusterID"
VPC_CLUSTER_OWNER_KEY = "tag:CloudClusterOwner"

SUBNET_TYPE_TAG_KEY = "tag:SubnetType"
SUBNET_TYPE_PRIVATE = "private"
SUBNET_TYPE_PUBLIC = "public"
NODE_TYPE_TAG_KEY = "tag:NodeType"
NODE_TYPE_MASTER = "master"
NODE_TYPE_WORKER = "worker"
NODE_TYPE_CALLS = "calls"

# RDS
DEFAULT_DB_SECURITY_GROUP_TAG_KEY = "tag:MattermostCloudInstallationDatabase"
DEFAULT_DB_SECURITY_GROUP_TAG_MYSQL_VALUE = "MYSQL/Aurora"
DEFAULT_DB_SECURITY_GROUP_TAG_POSTGRES_VALUE = "PostgreSQL/Aurora"
DB_SUBNET_GROUP_NAME_FORMAT = "mattermost-provisioner-db-{}"
DEFAULT_RDS_STATUS_AVAILABLE = "available"
DEFAULT_RDS_BACKUP_RETENTION_DAYS = 7
DEFAULT_RDS_DATABASE_NAME = "mattermost"
DEFAULT_MYSQL_PORT = 3306
DEFAULT_POSTGRES_PORT = 5432
DEFAULT_DATABASE_MYSQL_VERSION = "8.0.mysql_aurora.3.04.0"
DEFAULT_DATABASE_POSTGRES_VERSION = "14.9"
DEFAULT_DB_PRIMARY_INSTANCE_TYPE = "db.r5.large"
DEFAULT_DB_REPLICA_INSTANCE_TYPE = "db.r5.large"
DEFAULT_DB_REPLICAS_COUNT = 0
RDS_SNAPSHOT_TAG_KEY = "ClusterInstallationSnapshot"
RDS_SECRET_TAG_KEY = "rds-cluster"
MIGRATION_INGRESS_DESCRIPTION = "Ingress Traffic from other RDS instance"
RDS_MYSQL_DEFAULT_SCHEMA = "mysql"
RDS_POSTGRES_DEFAULT_SCHEMA = "postgres"

# KMS
KMS_MAX_TIME_ENCRYPTION_KEY_DELETION = 30
KMS_MIN_TIME_ENCRYPTION_KEY_DELETION = 7
DEFAULT_RDS_ENCRYPTION_TAG_KEY = "rds-encryption-key"
KMS_KEY_STATE_ENABLED = "Enabled"

# Secrets Manager
RDS_MASTER_PASSWORD_LENGTH = 40
DEFAULT_SECRET_RECOVERY_WINDOW_DAYS = 7

# Multitenant RDS
DEFAULT_MYSQL_CONTEXT_TIME_SECONDS = 15
SQL_DRIVER_MYSQL = "mysql+pymysql"
SQL_DRIVER_POSTGRES = "postgresql+psycopg2"
DEFAULT_RDS_MULTITENANT_DATABASE_COUNT_LIMIT = 10
RDS_MULTITENANT_DB_CLUSTER_RESOURCE_NAME_PREFIX = "rds-cluster-multitenant"
DEFAULT_RESOURCE_TYPE_CLUSTER_RDS = "rds:cluster"
DEFAULT_MULTITENANT_DATABASE_COUNTER_TAG_KEY = "tag:Counter"
DEFAULT_MULTITENANT_DATABASE_VPC_ID_TAG_KEY = "tag:VpcID"
DEFAULT_MULTITENANT_DATABASE_ID_TAG_KEY = "tag:MultitenantDatabaseID"
DEFAULT_RDS_MULTITENANT_DATABASE_TYPE_TAG_KEY = "tag:DatabaseType"
DEFAULT_RDS_MULTITENANT_DATABASE_TYPE_TAG_VALUE = "multitenant-rds"
DEFAULT_RDS_MULTITENANT_DATABASE_POSTGRES_TYPE_TAG_VALUE = "multitenant-rds-postgres"
DEFAULT_RDS_PURPOSE_TAG_KEY = "tag:Purpose"
DEFAULT_RDS_PURPOSE_TAG_VALUE = "provisioning"
DEFAULT_RDS_OWNER_TAG_KEY = "tag:Owner"
DEFAULT_RDS_OWNER_TAG_VALUE = "cloud-team"
DEFAULT_RDS_TERRAFORM_TAG_KEY = "tag:Terraform"
DEFAULT_RDS_TERRAFORM_TAG_VALUE = "true"
DEFAULT_INSTALLATION_ID_TAG_KEY = "tag:InstallationId"
DEFAULT_CLUSTER_INSTALLATION_SNAPSHOT_TAG_KEY = "tag:ClusterInstallationSnapshot"
MULTITENANT_DATABASE_USERNAME_PREFIX = "user_"

# Filestore
DEFAULT_FILESTORE_MULTITENANT_TAG_KEY = "tag:Filestore"
DEFAULT_FILESTORE_MULTITENANT_TAG_VALUE = "Multitenant"
BIFROST_SECRET_NAME = "bifrost"
BIFROST_DUMMY_CREDENTIAL = "bifrost"
S3_MAX_DELETE_OBJECTS = 1000
S3_LARGE_COPY_PART_SIZE = 256 * 1024 * 1024

# Route53
DEFAULT_ROUTE53_TTL = 60
DEFAULT_ROUTE53_WEIGHT = 1
HOSTED_ZONE_ID_PREFIX = "/hostedzone/"
HOSTED_ZONE_ID_MIN_LENGTH = 13
ROUTE53_RECORD_SETS_MAX_ITEMS = 10
DEFAULT_CLOUD_DNS_TAG_KEY = "MattermostCloudDNS"
DEFAULT_CLOUD_DNS_PRIVATE_VALUE = "private"
DEFAULT_CLOUD_DNS_PUBLIC_VALUE = "public"

# Account alias "mattermost-cloud-<environment>"
ACCOUNT_ALIAS_PREFIX = "mattermost-cloud-"

# Database types
DATABASE_TYPE_SINGLE_TENANT_RDS = "aws-rds"
DATABASE_TYPE_SINGLE_TENANT_RDS_POSTGRES = "aws-rds-postgres"
DATABASE_TYPE_MULTITENANT_RDS = "aws-multitenant-rds"
DATABASE_TYPE_MULTITENANT_RDS_POSTGRES = "aws-multitenant-rds-postgres"

DATABASE_ENGINE_MYSQL = "mysql"
DATABASE_ENGINE_POSTGRES = "postgres"

# Migration status
MIGRATION_STATUS_SETUP_COMPLETE = "setup-complete"
MIGRATION_STATUS_TEARDOWN_COMPLETE = "teardown-complete"
