"""
Logging configuration for the provisioning services.

This module provides a standardized logging setup plus redaction of
sensitive AWS API parameters before they are logged.
"""
import logging
import os
import sys
from typing import Any, Dict, Mapping

REDACTED_VALUE = "*****"

SENSITIVE_PARAMETERS = frozenset({
    "secretstring",
    "secretbinary",
    "masterpassword",
    "masteruserpassword",
    "masterusername",
})


def get_logger(name: str = None) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (defaults to root logger if not provided)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name or __name__)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    log_level = os.environ.get('LOG_LEVEL', 'INFO').upper()
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logger.level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)

    logger.addHandler(handler)

    # Prevent propagation to root logger to avoid duplicate logs
    logger.propagate = False

    return logger


def redact_params(params: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of API parameters with sensitive values masked.

    Args:
        params: Request parameters passed to a boto3 client call

    Returns:
        Copy of the parameters with secrets replaced
    """
    redacted = {}
    for key, value in params.items():
        if key.lower() in SENSITIVE_PARAMETERS:
            redacted[key] = REDACTED_VALUE
        elif isinstance(value, Mapping):
            redacted[key] = redact_params(value)
        else:
            redacted[key] = value
    return redacted
