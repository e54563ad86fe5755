"""
StatsGuard - Logging Setup

Applies the ``logging`` section of the configuration to the standard
library root logger. Modules log through ``logging.getLogger(__name__)``
and attach structured context with ``extra={...}``.
"""

from __future__ import annotations

import logging

from statsguard.shared.config import Settings, get_config

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
TEXT_FORMAT_NO_TIME = "%(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = (
    '{"time": "%(asctime)s", "logger": "%(name)s", '
    '"level": "%(levelname)s", "message": "%(message)s"}'
)
JSON_FORMAT_NO_TIME = '{"logger": "%(name)s", "level": "%(levelname)s", "message": "%(message)s"}'


def get_log_format(config: Settings) -> str:
    """Pick the log record format for the configured style."""
    if config.logging.format == "json":
        return JSON_FORMAT if config.logging.include_timestamp else JSON_FORMAT_NO_TIME
    return TEXT_FORMAT if config.logging.include_timestamp else TEXT_FORMAT_NO_TIME


def configure_logging(config: Settings | None = None, force: bool = False) -> None:
    """
    Configure root logging from settings.

    Args:
        config: Configuration object (uses default if not provided)
        force: Replace handlers that are already installed
    """
    config = config or get_config()
    level = logging.getLevelName(config.logging.level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {config.logging.level}")

    logging.basicConfig(
        level=level,
        format=get_log_format(config),
        handlers=[logging.StreamHandler()],
        force=force,
    )
