"""
Service decorators for AWS error translation and logging.
"""
import functools
import inspect
from typing import Callable, Any, Optional
from botocore.exceptions import BotoCoreError, ClientError
from logger_config import get_logger
from utils.exceptions import AWSOperationError

logger = get_logger(__name__)

# Logged at debug; callers recover from these on ensure and lookup paths.
NOT_FOUND_ERROR_CODES = frozenset({
    "NoSuchEntity",
    "NoSuchBucket",
    "NoSuchTagSet",
    "ResourceNotFoundException",
    "DBClusterNotFoundFault",
    "DBInstanceNotFound",
})


def _format_message(message: str, func: Callable, args: tuple, kwargs: dict) -> str:
    """Render a message template against the decorated call's arguments."""
    try:
        bound = inspect.signature(func).bind(*args, **kwargs)
        bound.apply_defaults()
        return message.format(**bound.arguments)
    except (TypeError, KeyError, AttributeError, IndexError):
        return message


def wrap_aws_errors(
    message: str,
    service: Optional[str] = None
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator translating botocore errors into AWSOperationError.

    The message may reference the decorated function's arguments with
    ``str.format`` fields, e.g. ``"failed to create user {name}"`` or
    ``"failed to tear down {self.installation_id}"``.

    Args:
        message: Error message template
        service: AWS service name attached to the raised error

    Returns:
        Decorator function
    """
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except ClientError as e:
                error = e.response.get('Error', {})
                error_code = error.get('Code', '')
                rendered = _format_message(message, func, args, kwargs)
                log = logger.debug if error_code in NOT_FOUND_ERROR_CODES else logger.error
                log(
                    f"{rendered}: {error_code} {error.get('Message', '')}",
                    extra={
                        "function": func.__name__,
                        "service": service,
                        "operation": e.operation_name,
                        "error_code": error_code,
                    }
                )
                raise AWSOperationError(
                    f"{rendered}: {e}",
                    service=service,
                    operation=e.operation_name,
                    error_code=error_code,
                ) from e
            except BotoCoreError as e:
                rendered = _format_message(message, func, args, kwargs)
                logger.error(
                    f"{rendered}: {e}",
                    extra={"function": func.__name__, "service": service}
                )
                raise AWSOperationError(
                    f"{rendered}: {e}",
                    service=service,
                ) from e

        return wrapper

    return decorator
