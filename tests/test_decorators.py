"""
Unit tests for the AWS error translation decorator and exceptions.
"""
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from utils.decorators import wrap_aws_errors
from utils.exceptions import (
    PROVISIONER_ERRORS,
    AWSOperationError,
    DatabaseLockError,
    NotSupportedError,
    ResourceNotFoundError,
    ValidationError,
)


class Widget:
    def __init__(self, widget_id):
        self.widget_id = widget_id

    @wrap_aws_errors("failed to update widget {self.widget_id} with {value}", service="ec2")
    def update(self, value):
        raise ClientError(
            {'Error': {'Code': 'InvalidParameterValue', 'Message': 'bad value'}},
            'CreateTags'
        )


class TestWrapAWSErrors:
    """Tests for wrap_aws_errors."""

    def test_returns_result(self):
        """Test successful calls pass their result through."""
        @wrap_aws_errors("failed", service="iam")
        def ok(name):
            return name.upper()

        assert ok("user") == "USER"

    def test_client_error_translated(self):
        """Test ClientError becomes AWSOperationError with code and operation."""
        @wrap_aws_errors("failed to get user {name}", service="iam")
        def get_user(name):
            raise ClientError({'Error': {'Code': 'NoSuchEntity', 'Message': 'missing'}}, 'GetUser')

        with pytest.raises(AWSOperationError) as exc_info:
            get_user("bob")

        error = exc_info.value
        assert error.message.startswith("failed to get user bob: ")
        assert error.service == "iam"
        assert error.operation == "GetUser"
        assert error.error_code == "NoSuchEntity"
        assert isinstance(error.__cause__, ClientError)

    def test_message_uses_instance_attributes(self):
        """Test templates can reference attributes of self."""
        with pytest.raises(AWSOperationError, match="failed to update widget w-1 with 42"):
            Widget("w-1").update(42)

    def test_botocore_error_translated(self):
        """Test BotoCoreError is translated without an error code."""
        @wrap_aws_errors("failed to reach {endpoint}", service="rds")
        def call(endpoint):
            raise EndpointConnectionError(endpoint_url=endpoint)

        with pytest.raises(AWSOperationError) as exc_info:
            call("https://rds.example.com")

        assert exc_info.value.error_code is None
        assert "failed to reach https://rds.example.com" in exc_info.value.message

    def test_unknown_template_field(self):
        """Test an unrenderable template falls back to the raw message."""
        @wrap_aws_errors("failed for {missing}")
        def call():
            raise ClientError({'Error': {'Code': 'Boom'}}, 'Op')

        with pytest.raises(AWSOperationError) as exc_info:
            call()

        assert exc_info.value.message.startswith("failed for {missing}: ")

    @patch("utils.decorators.logger")
    def test_not_found_logged_at_debug(self, mock_logger):
        """Test expected not-found codes are not logged as errors."""
        @wrap_aws_errors("failed to get secret {name}", service="secretsmanager")
        def get_secret(name):
            raise ClientError({'Error': {'Code': 'ResourceNotFoundException'}}, 'GetSecretValue')

        with pytest.raises(AWSOperationError) as exc_info:
            get_secret("rds-multitenant-abc")

        assert exc_info.value.error_code == "ResourceNotFoundException"
        mock_logger.debug.assert_called_once()
        mock_logger.error.assert_not_called()

    @patch("utils.decorators.logger")
    def test_other_codes_logged_as_errors(self, mock_logger):
        """Test unexpected codes are logged as errors."""
        with pytest.raises(AWSOperationError):
            Widget("w-1").update(42)

        mock_logger.error.assert_called_once()

    def test_other_exceptions_propagate(self):
        """Test non-AWS exceptions are left untouched."""
        @wrap_aws_errors("failed")
        def call():
            raise ValidationError("bad input", field="name")

        with pytest.raises(ValidationError):
            call()


class TestExceptions:
    """Tests for provisioner exception types."""

    def test_attributes(self):
        """Test exceptions keep their context fields."""
        error = ResourceNotFoundError("missing vpc", resource_type="vpc", resource_id="c1")
        assert str(error) == "missing vpc"
        assert error.resource_type == "vpc"
        assert error.resource_id == "c1"

        lock_error = DatabaseLockError("locked", database_id="db-1")
        assert lock_error.database_id == "db-1"

        unsupported = NotSupportedError("nope", operation="snapshot")
        assert unsupported.operation == "snapshot"

    def test_provisioner_errors_tuple(self):
        """Test PROVISIONER_ERRORS covers the provisioner exception types."""
        assert AWSOperationError in PROVISIONER_ERRORS
        assert ResourceNotFoundError in PROVISIONER_ERRORS
        assert ValueError not in PROVISIONER_ERRORS
