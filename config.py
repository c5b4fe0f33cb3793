"""
Configuration module for environment variable validation and type-safe config.

This module validates the provisioner environment variables and provides
a type-safe configuration object.
"""
import os
from dataclasses import dataclass
from typing import Optional

from constants import (
    DEFAULT_AWS_REGION,
    DEFAULT_RDS_MULTITENANT_DATABASE_COUNT_LIMIT,
    DEFAULT_SECRET_RECOVERY_WINDOW_DAYS,
)

_TRUE_VALUES = {"true", "1", "yes"}
_FALSE_VALUES = {"false", "0", "no", ""}


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got: {raw}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw}") from None


@dataclass
class Config:
    """Type-safe configuration object with validated environment variables."""

    aws_region: str = DEFAULT_AWS_REGION
    log_level: str = "INFO"
    instance_id: str = "provisioner"
    keep_database_data: bool = False
    keep_filestore_data: bool = False
    s3_bucket_versioning: bool = False
    disable_db_check: bool = False
    max_installations_per_multitenant_db: int = DEFAULT_RDS_MULTITENANT_DATABASE_COUNT_LIMIT
    secret_recovery_window_days: int = DEFAULT_SECRET_RECOVERY_WINDOW_DAYS

    @classmethod
    def from_env(cls) -> "Config":
        """
        Create Config instance from environment variables.

        Raises:
            ValueError: If environment variables are invalid.
        """
        aws_region = os.environ.get("AWS_REGION", DEFAULT_AWS_REGION)
        log_level = os.environ.get("LOG_LEVEL", "INFO").upper()

        valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if log_level not in valid_log_levels:
            raise ValueError(
                f"LOG_LEVEL must be one of {valid_log_levels}, got: {log_level}"
            )

        instance_id = os.environ.get("PROVISIONER_INSTANCE_ID", "provisioner")
        if not instance_id:
            raise ValueError("PROVISIONER_INSTANCE_ID must not be empty")

        max_installations = _env_int(
            "MAX_INSTALLATIONS_PER_MULTITENANT_DB",
            DEFAULT_RDS_MULTITENANT_DATABASE_COUNT_LIMIT,
        )
        if max_installations < 1:
            raise ValueError(
                "MAX_INSTALLATIONS_PER_MULTITENANT_DB must be a positive integer, "
                f"got: {max_installations}"
            )

        recovery_window = _env_int(
            "SECRET_RECOVERY_WINDOW_DAYS", DEFAULT_SECRET_RECOVERY_WINDOW_DAYS
        )
        if not 7 <= recovery_window <= 30:
            raise ValueError(
                f"SECRET_RECOVERY_WINDOW_DAYS must be between 7 and 30, got: {recovery_window}"
            )

        return cls(
            aws_region=aws_region,
            log_level=log_level,
            instance_id=instance_id,
            keep_database_data=_env_bool("KEEP_DATABASE_DATA"),
            keep_filestore_data=_env_bool("KEEP_FILESTORE_DATA"),
            s3_bucket_versioning=_env_bool("S3_BUCKET_VERSIONING"),
            disable_db_check=_env_bool("DISABLE_DB_CHECK"),
            max_installations_per_multitenant_db=max_installations,
            secret_recovery_window_days=recovery_window,
        )


_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance.

    Returns:
        Config: The validated configuration object

    Raises:
        ValueError: If environment variables are invalid.
    """
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next call re-reads the environment."""
    global _config
    _config = None
