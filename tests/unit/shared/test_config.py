"""
Tests for Configuration Loader and Logging Setup
"""

import logging
import os

import pytest
from pydantic import ValidationError

from statsguard.shared.config import (
    ValidationConfig,
    get_config,
    get_validation_config,
    is_production,
    reload_config,
)
from statsguard.shared.logging_config import (
    JSON_FORMAT,
    TEXT_FORMAT,
    configure_logging,
    get_log_format,
)


def test_dev_config(test_config):
    """Test dev overrides are merged over base."""
    assert test_config.environment == "dev"
    assert test_config.storage.buckets.main == "statsguard-data-dev"
    assert test_config.storage.emulator.enabled
    assert test_config.storage.paths.schemas == "schemas"
    assert test_config.validation.max_string_domain_size == 100


def test_prod_config():
    """Test prod settings."""
    config = reload_config("prod")

    assert config.environment == "prod"
    assert config.validation.max_workers == 8
    assert not config.storage.emulator.enabled
    assert get_log_format(config) == JSON_FORMAT


def test_invalid_environment():
    with pytest.raises(ValidationError, match="Invalid environment"):
        get_config("staging")


def test_env_var_project_id():
    """Test the GCP project comes from the environment."""
    os.environ["GCP_PROJECT_ID"] = "statsguard-test"

    config = reload_config("dev")

    assert config.gcp_project_id == "statsguard-test"
    get_config.cache_clear()


def test_is_production():
    os.environ["SG_ENVIRONMENT"] = "prod"
    get_config.cache_clear()

    assert is_production()
    get_config.cache_clear()


def test_get_validation_config(test_config):
    assert get_validation_config(test_config) is test_config.validation


def test_severity_override_normalization():
    """Test kind names are upper-cased and severities lower-cased."""
    config = ValidationConfig(severity_overrides={"schema_new_column": "WARNING"})

    assert config.severity_overrides == {"SCHEMA_NEW_COLUMN": "warning"}


def test_severity_override_rejects_unknown_severity():
    with pytest.raises(ValidationError):
        ValidationConfig(severity_overrides={"OUT_OF_RANGE": "fatal"})


def test_validation_config_rejects_unknown_keys():
    with pytest.raises(ValidationError, match="max_string_domain_sise"):
        ValidationConfig(max_string_domain_sise=3)


def test_configure_logging(test_config):
    """Test the dev config installs a text handler at DEBUG."""
    configure_logging(test_config, force=True)

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert any(h.formatter and h.formatter._fmt == TEXT_FORMAT for h in root.handlers)


def test_configure_logging_invalid_level(test_config):
    config = test_config.model_copy(
        update={"logging": test_config.logging.model_copy(update={"level": "LOUD"})}
    )

    with pytest.raises(ValueError, match="Invalid log level"):
        configure_logging(config)
