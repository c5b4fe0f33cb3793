"""
Unit tests for configuration module.
"""
import pytest
import os
from unittest.mock import patch
import config
from config import Config, get_config, reset_config


class TestConfig:
    """Tests for Config class."""

    @patch.dict(os.environ, {}, clear=True)
    def test_from_env_defaults(self):
        """Test Config.from_env with no variables set."""
        cfg = Config.from_env()
        assert cfg.aws_region == 'us-east-1'
        assert cfg.log_level == 'INFO'
        assert cfg.instance_id == 'provisioner'
        assert cfg.keep_database_data is False
        assert cfg.keep_filestore_data is False
        assert cfg.s3_bucket_versioning is False
        assert cfg.disable_db_check is False
        assert cfg.max_installations_per_multitenant_db == 10
        assert cfg.secret_recovery_window_days == 7

    @patch.dict(os.environ, {
        'AWS_REGION': 'us-west-2',
        'LOG_LEVEL': 'debug',
        'PROVISIONER_INSTANCE_ID': 'provisioner-2',
        'KEEP_DATABASE_DATA': 'true',
        'KEEP_FILESTORE_DATA': '1',
        'S3_BUCKET_VERSIONING': 'yes',
        'DISABLE_DB_CHECK': 'TRUE',
        'MAX_INSTALLATIONS_PER_MULTITENANT_DB': '25',
        'SECRET_RECOVERY_WINDOW_DAYS': '30',
    }, clear=True)
    def test_from_env_all_variables(self):
        """Test Config.from_env with all variables set."""
        cfg = Config.from_env()
        assert cfg.aws_region == 'us-west-2'
        assert cfg.log_level == 'DEBUG'
        assert cfg.instance_id == 'provisioner-2'
        assert cfg.keep_database_data is True
        assert cfg.keep_filestore_data is True
        assert cfg.s3_bucket_versioning is True
        assert cfg.disable_db_check is True
        assert cfg.max_installations_per_multitenant_db == 25
        assert cfg.secret_recovery_window_days == 30

    @patch.dict(os.environ, {'LOG_LEVEL': 'INVALID'}, clear=True)
    def test_from_env_invalid_log_level(self):
        """Test Config.from_env raises error for invalid log level."""
        with pytest.raises(ValueError, match="LOG_LEVEL"):
            Config.from_env()

    @patch.dict(os.environ, {'KEEP_DATABASE_DATA': 'maybe'}, clear=True)
    def test_from_env_invalid_boolean(self):
        """Test Config.from_env rejects values that are not booleans."""
        with pytest.raises(ValueError, match="KEEP_DATABASE_DATA"):
            Config.from_env()

    @patch.dict(os.environ, {'MAX_INSTALLATIONS_PER_MULTITENANT_DB': 'ten'}, clear=True)
    def test_from_env_invalid_integer(self):
        """Test Config.from_env rejects non-integer limits."""
        with pytest.raises(ValueError, match="must be an integer"):
            Config.from_env()

    @patch.dict(os.environ, {'MAX_INSTALLATIONS_PER_MULTITENANT_DB': '0'}, clear=True)
    def test_from_env_non_positive_limit(self):
        """Test Config.from_env rejects a zero installation limit."""
        with pytest.raises(ValueError, match="positive integer"):
            Config.from_env()

    @patch.dict(os.environ, {'SECRET_RECOVERY_WINDOW_DAYS': '3'}, clear=True)
    def test_from_env_recovery_window_out_of_range(self):
        """Test Config.from_env enforces the Secrets Manager recovery window range."""
        with pytest.raises(ValueError, match="between 7 and 30"):
            Config.from_env()

    @patch.dict(os.environ, {'PROVISIONER_INSTANCE_ID': ''}, clear=True)
    def test_from_env_empty_instance_id(self):
        """Test Config.from_env rejects an empty instance id."""
        with pytest.raises(ValueError, match="PROVISIONER_INSTANCE_ID"):
            Config.from_env()


class TestGetConfig:
    """Tests for the cached global configuration."""

    @patch.dict(os.environ, {'AWS_REGION': 'eu-west-1'}, clear=True)
    def test_get_config_cached(self):
        """Test get_config returns the same instance until reset."""
        reset_config()
        first = get_config()
        second = get_config()
        assert first is second
        assert first.aws_region == 'eu-west-1'

    def test_reset_config(self):
        """Test reset_config forces the environment to be read again."""
        with patch.dict(os.environ, {'AWS_REGION': 'eu-west-1'}):
            reset_config()
            assert get_config().aws_region == 'eu-west-1'

        with patch.dict(os.environ, {'AWS_REGION': 'ap-south-1'}):
            reset_config()
            assert get_config().aws_region == 'ap-south-1'

        reset_config()
        assert config._config is None
