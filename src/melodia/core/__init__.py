"""Core infrastructure layer - no business logic dependencies.

This module provides foundation-level services:
- Configuration management (TOML + .env)
- Logging setup (Loguru)
"""

from .config import (
    Config,
    ExtractionConfig,
    LoggingConfig,
    NotificationsConfig,
    PlayerConfig,
    SyncConfig,
    WebConfig,
    create_default_config,
    get_config_dir,
    get_config_path,
    get_data_dir,
    load_config,
    parse_config,
)
from .output import setup_loguru

__all__ = [
    "Config",
    "ExtractionConfig",
    "LoggingConfig",
    "NotificationsConfig",
    "PlayerConfig",
    "SyncConfig",
    "WebConfig",
    "create_default_config",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "load_config",
    "parse_config",
    "setup_loguru",
]
