"""
StatsGuard - Configuration Loader

Pydantic-based configuration management with:
- Environment-based configuration (dev/prod)
- YAML file loading with inheritance
- Environment variable overrides
- Type validation via Pydantic

Usage:
    from statsguard.shared.config import get_config

    config = get_config()  # Uses SG_ENVIRONMENT env var
    config = get_config("dev")  # Explicit environment

    # Access config values
    domain_size = config.validation.max_string_domain_size
    bucket = config.storage.buckets.main
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# =============================================================================
# Configuration Models
# =============================================================================


class ProjectConfig(BaseModel):
    """Project metadata configuration."""

    name: str = "statsguard"
    version: str = "0.1.0"
    description: str = "Schema-driven validation of dataset feature statistics"


class ValidationConfig(BaseModel):
    """
    Validation and inference policy.

    This is the configuration object handed to every public validation
    operation. Severity overrides map anomaly kind names (for example
    ``"SCHEMA_NEW_COLUMN"``) to a severity.
    """

    model_config = ConfigDict(extra="forbid")

    max_string_domain_size: int = Field(default=100, ge=0)
    new_features_are_warnings: bool = False
    severity_overrides: dict[str, Literal["info", "warning", "error"]] = Field(
        default_factory=dict
    )
    max_examples_in_description: int = Field(default=10, ge=1)
    max_workers: int = Field(default=1, ge=1)

    @field_validator("severity_overrides", mode="before")
    @classmethod
    def normalize_override_keys(cls, v: Any) -> Any:
        """Accept kind names in any case."""
        if isinstance(v, dict):
            return {str(k).upper(): str(s).lower() for k, s in v.items()}
        return v


class BucketsConfig(BaseModel):
    """GCS bucket configuration."""

    main: str = "statsguard-data"


class StoragePathsConfig(BaseModel):
    """Storage path configuration."""

    schemas: str = "schemas"


class StorageEmulatorConfig(BaseModel):
    """Storage emulator configuration (for local dev)."""

    enabled: bool = False
    host: str = "http://localhost:4443"


class StorageConfig(BaseModel):
    """Storage configuration."""

    buckets: BucketsConfig = Field(default_factory=BucketsConfig)
    paths: StoragePathsConfig = Field(default_factory=StoragePathsConfig)
    emulator: StorageEmulatorConfig = Field(default_factory=StorageEmulatorConfig)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"
    include_timestamp: bool = True


# =============================================================================
# Main Settings Class
# =============================================================================


class Settings(BaseSettings):
    """
    Main configuration class for StatsGuard.

    Loads configuration from:
    1. YAML files in configs/environments/
    2. Environment variables

    Environment variables fill in values the YAML files leave unset.
    """

    model_config = SettingsConfigDict(
        env_prefix="SG_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Environment
    environment: Literal["dev", "prod"] = "dev"

    # Configuration sections
    project: ProjectConfig = Field(default_factory=ProjectConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    gcp_project_id: str | None = Field(default=None, alias="GCP_PROJECT_ID")

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        valid_envs = {"dev", "prod"}
        if v not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of: {valid_envs}")
        return v


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _get_config_dir() -> Path | None:
    """Get the configuration directory path, if one can be found."""
    # Repository checkout: configs/ next to the package
    config_dir = Path(__file__).parent.parent.parent / "configs"
    if config_dir.exists():
        return config_dir

    config_dir = Path.cwd() / "configs"
    if config_dir.exists():
        return config_dir

    # Installed without configs: built-in defaults only
    return None


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents."""
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_config_for_environment(environment: str) -> dict[str, Any]:
    """Load and merge configuration for a specific environment."""
    config_dir = _get_config_dir()
    if config_dir is None:
        return {"environment": environment}

    env_dir = config_dir / "environments"

    base_config = _load_yaml_file(env_dir / "base.yaml")
    env_config = _load_yaml_file(env_dir / f"{environment}.yaml")

    # Remove inheritance marker if present
    env_config.pop("_inherit", None)

    merged = _deep_merge(base_config, env_config)
    merged["environment"] = environment

    return merged


@lru_cache(maxsize=4)
def get_config(environment: str | None = None) -> Settings:
    """
    Get configuration for the specified environment.

    Args:
        environment: Environment name (dev, prod).
                    If None, uses SG_ENVIRONMENT env var, defaulting to "dev".

    Returns:
        Settings: Validated configuration object.

    Example:
        config = get_config()
        config = get_config("prod")

        max_size = config.validation.max_string_domain_size
    """
    if environment is None:
        environment = os.getenv("SG_ENVIRONMENT", "dev")

    yaml_config = _load_config_for_environment(environment)

    # Create Settings object (also loads env vars)
    return Settings(**yaml_config)


def reload_config(environment: str | None = None) -> Settings:
    """
    Reload configuration, clearing the cache.

    Useful for testing or when config files have changed.
    """
    get_config.cache_clear()
    return get_config(environment)


# =============================================================================
# Convenience Functions
# =============================================================================


def get_validation_config(config: Settings | None = None) -> ValidationConfig:
    """Get the validation section of the configuration."""
    if config is None:
        config = get_config()
    return config.validation


def is_production() -> bool:
    """Check if running in production environment."""
    config = get_config()
    return config.environment == "prod"
