from statsguard.shared.config import Settings, ValidationConfig, get_config, reload_config
from statsguard.shared.logging_config import configure_logging

__all__ = [
    "get_config",
    "reload_config",
    "Settings",
    "ValidationConfig",
    "configure_logging",
]
