"""
Custom exception classes for AWS provisioning services.
"""
from typing import Optional, Any


class AWSOperationError(Exception):
    """Exception raised when an AWS API call fails unexpectedly."""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        operation: Optional[str] = None,
        error_code: Optional[str] = None,
        resource: Optional[str] = None
    ):
        """
        Initialize AWS operation error.

        Args:
            message: Error message
            service: AWS service name if available
            operation: API operation name if available
            error_code: AWS error code if available
            resource: Resource identifier if available
        """
        super().__init__(message)
        self.message = message
        self.service = service
        self.operation = operation
        self.error_code = error_code
        self.resource = resource


class ValidationError(Exception):
    """Exception raised for validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None
    ):
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation if available
            value: Invalid value if available
        """
        super().__init__(message)
        self.message = message
        self.field = field
        self.value = value


class ResourceNotFoundError(Exception):
    """Exception raised when an expected AWS resource does not exist."""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.resource_type = resource_type
        self.resource_id = resource_id


class MultipleResourcesError(Exception):
    """Exception raised when a lookup expected exactly one resource."""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        count: Optional[int] = None
    ):
        super().__init__(message)
        self.message = message
        self.resource_type = resource_type
        self.count = count


class DatabaseLockError(Exception):
    """Exception raised when a multitenant database lock cannot be acquired."""

    def __init__(self, message: str, database_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.database_id = database_id


class DatabaseOperationError(Exception):
    """Exception raised for SQL provisioning errors."""

    def __init__(self, message: str, database_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.database_id = database_id


class NotSupportedError(Exception):
    """Exception raised for operations a resource type does not implement."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation


PROVISIONER_ERRORS = (
    AWSOperationError,
    ValidationError,
    ResourceNotFoundError,
    MultipleResourcesError,
    DatabaseLockError,
    DatabaseOperationError,
    NotSupportedError,
)
