"""
Unit tests for the shared AWS client bundle.
"""
import threading
from unittest.mock import Mock, PropertyMock, patch

import pytest
from moto import mock_aws

from config import Config
from services.aws_client import AWSClient
from services.iam_service import IAMService
from services.route53_service import Route53Service, parse_hosted_zone_id
from utils.exceptions import ResourceNotFoundError, ValidationError

PRIVATE_ZONE = {"Id": "/hostedzone/ZPRIVATE000001", "Name": "internal.example.com."}
PUBLIC_ZONE = {"Id": "/hostedzone/ZPUBLIC0000001", "Name": "cloud.example.com."}


def mock_route53(private_zones, public_zones):
    route53 = Mock()
    route53.tag.side_effect = Route53Service.tag
    route53.parse_hosted_zone_id.side_effect = parse_hosted_zone_id
    route53.get_hosted_zones_with_tag.side_effect = [private_zones, public_zones]
    return route53


class TestLazyClients:
    """Tests for lazy boto3 client creation."""

    def test_service_created_once(self):
        """Test a boto3 client is built on first use and then reused."""
        session = Mock()
        client = AWSClient(config=Config(aws_region='eu-west-1'), session=session)

        first = client.service('iam')
        second = client.service('iam')

        assert first is second
        session.client.assert_called_once_with('iam', region_name='eu-west-1')
        first.meta.events.register.assert_called_once()

    def test_route53_uses_global_region(self):
        """Test Route53 is always served out of us-east-1."""
        session = Mock()
        client = AWSClient(config=Config(aws_region='eu-west-1'), session=session)

        client.service('route53')

        session.client.assert_called_once_with('route53', region_name='us-east-1')

    def test_region_override(self):
        """Test an explicit region wins over the configuration."""
        client = AWSClient(region='ap-south-1', config=Config(aws_region='eu-west-1'))
        assert client.region == 'ap-south-1'

    def test_concurrent_first_use(self):
        """Test concurrent first use builds a single client."""
        session = Mock()
        client = AWSClient(config=Config(), session=session)

        threads = [threading.Thread(target=client.service, args=('kms',)) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        session.client.assert_called_once_with('kms', region_name='us-east-1')

    def test_service_wrappers_cached(self):
        """Test the service wrappers are built once per client."""
        client = AWSClient(config=Config(), session=Mock())
        assert isinstance(client.iam, IAMService)
        assert client.iam is client.iam
        assert client.s3 is client.s3
        assert client.iam.aws_client is client


class TestStore:
    """Tests for the installation store reference."""

    def test_add_store_once(self, store):
        """Test the first attached store is kept."""
        client = AWSClient(config=Config())
        assert client.has_store() is False

        client.add_store(store)
        client.add_store(Mock())

        assert client.has_store() is True
        assert client.store is store


class TestEnvironmentCache:
    """Tests for the environment cache."""

    def test_initialize_cache(self):
        """Test the environment name and hosted zones are cached."""
        client = AWSClient(config=Config())
        iam = Mock()
        iam.get_account_aliases.return_value = ["mattermost-cloud-test"]
        route53 = mock_route53([PRIVATE_ZONE], [PUBLIC_ZONE])

        with patch.object(AWSClient, 'iam', new_callable=PropertyMock, return_value=iam), \
                patch.object(AWSClient, 'route53', new_callable=PropertyMock, return_value=route53):
            client.initialize_cache()

        assert client.environment_name == "test"
        assert client.get_private_hosted_zone_id() == "ZPRIVATE000001"
        assert client.get_public_hosted_zone_names() == ["cloud.example.com"]
        assert client.get_public_zone_id_for_dns("abc.cloud.example.com") == "ZPUBLIC0000001"
        assert client.get_public_zone_id_for_dns("abc.other.com") is None

    def test_missing_private_zone(self):
        """Test initialization fails without a private hosted zone."""
        client = AWSClient(config=Config())
        iam = Mock()
        iam.get_account_aliases.return_value = ["mattermost-cloud-test"]
        route53 = mock_route53([], [PUBLIC_ZONE])

        with patch.object(AWSClient, 'iam', new_callable=PropertyMock, return_value=iam), \
                patch.object(AWSClient, 'route53', new_callable=PropertyMock, return_value=route53):
            with pytest.raises(ResourceNotFoundError, match="no hosted zone ID"):
                client.initialize_cache()

    @pytest.mark.parametrize("aliases", [[], ["some-other-alias"], ["mattermost-cloud-"]])
    def test_invalid_account_alias(self, aliases):
        """Test account aliases without an environment name are rejected."""
        client = AWSClient(config=Config())
        iam = Mock()
        iam.get_account_aliases.return_value = aliases

        with patch.object(AWSClient, 'iam', new_callable=PropertyMock, return_value=iam):
            with pytest.raises(ValidationError):
                client.initialize_cache()

    def test_validate_empty_cache(self):
        """Test an empty cache fails validation."""
        client = AWSClient(config=Config())
        with pytest.raises(ValidationError, match="environment"):
            client.validate_cache()

    @pytest.mark.aws
    @mock_aws()
    def test_get_account_id(self):
        """Test the account id is read from STS."""
        client = AWSClient(config=Config())
        assert client.get_account_id() == "123456789012"
