"""
Configuration management for Melodia
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional, TypeVar

from melodia.domain.extraction.backends import (
    DEFAULT_COBALT_INSTANCES,
    DEFAULT_PIPED_INSTANCES,
    DEFAULT_USER_AGENT,
)


@dataclass
class PlayerConfig:
    """Configuration for the audio player and transport engine."""

    volume: float = 0.7  # 0.0 - 1.0
    poll_interval: float = 0.25  # Position sampling interval in seconds
    restart_threshold: float = 3.0  # previous() restarts the track after this many seconds
    mpv_socket_path: Optional[str] = None

    def validate(self) -> None:
        """Validate player configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if not 0.0 <= self.volume <= 1.0:
            raise ValueError(f"volume must be between 0 and 1, got {self.volume}")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.restart_threshold < 0:
            raise ValueError(
                f"restart_threshold must not be negative, got {self.restart_threshold}"
            )


@dataclass
class ExtractionConfig:
    """Configuration for YouTube audio extraction."""

    cobalt_instances: List[str] = field(
        default_factory=lambda: list(DEFAULT_COBALT_INSTANCES)
    )
    piped_instances: List[str] = field(
        default_factory=lambda: list(DEFAULT_PIPED_INSTANCES)
    )
    cobalt_timeout: float = 10.0
    piped_timeout: float = 8.0
    preferred_mime: str = "audio/mp4"
    cache_ttl_seconds: int = 600
    service_url: Optional[str] = None  # Use a remote extraction service instead
    user_agent: str = DEFAULT_USER_AGENT

    def validate(self) -> None:
        """Validate extraction configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if not self.cobalt_instances and not self.piped_instances:
            raise ValueError("At least one Cobalt or Piped instance is required")
        if self.cobalt_timeout <= 0 or self.piped_timeout <= 0:
            raise ValueError("Extraction timeouts must be positive")
        if self.cache_ttl_seconds < 0:
            raise ValueError("cache_ttl_seconds must not be negative")


@dataclass
class SyncConfig:
    """Configuration for sync sessions."""

    relay_url: str = "ws://localhost:8642/ws/sync"
    channel_prefix: str = "sync-"
    user_name: str = "User"


@dataclass
class WebConfig:
    """Configuration for the extraction and relay web service."""

    host: str = "0.0.0.0"
    port: int = 8642
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = (
        None  # Custom log file path (default: ~/.local/share/melodia/melodia.log)
    )
    max_file_size_mb: int = 10  # Maximum log file size before rotation
    backup_count: int = 5  # Number of backup files to keep
    console_output: bool = False  # Also output to console (for debugging)


@dataclass
class NotificationsConfig:
    """Configuration for desktop notifications."""

    enabled: bool = True
    show_errors: bool = True


@dataclass
class Config:
    """Main configuration object."""

    player: PlayerConfig = field(default_factory=PlayerConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    web: WebConfig = field(default_factory=WebConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "melodia"
    return Path.home() / ".config" / "melodia"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "melodia"
    return Path.home() / ".local" / "share" / "melodia"


def _find_project_config() -> Optional[Path]:
    """Find config.toml in the project root by looking for pyproject.toml.

    Returns:
        Path to config.toml in project root, or None if not found
    """
    current = Path(__file__).resolve().parent
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            config_path = parent / "config.toml"
            if config_path.exists():
                return config_path
            return None
    return None


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. Project root (detected via pyproject.toml) - for development
    2. Current working directory
    3. XDG_CONFIG_HOME/melodia (or ~/.config/melodia)
    """
    project_config = _find_project_config()
    if project_config:
        return project_config

    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config

    return get_config_dir() / "config.toml"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    cobalt = ", ".join(f'"{url}"' for url in DEFAULT_COBALT_INSTANCES)
    piped = ", ".join(f'"{url}"' for url in DEFAULT_PIPED_INSTANCES)
    return f"""
# Melodia Configuration

[player]
# Default volume (0.0 - 1.0)
volume = 0.7
# Seconds between position samples while playing
poll_interval = 0.25
# previous() restarts the current track after this many seconds
restart_threshold = 3.0
# Path for mpv socket (auto-generated if not specified)
# mpv_socket_path = "/tmp/melodia-mpv"

[extraction]
# Backends are tried in order: every Cobalt instance, then every Piped instance
cobalt_instances = [{cobalt}]
piped_instances = [{piped}]
# Per-request timeouts in seconds
cobalt_timeout = 10.0
piped_timeout = 8.0
# Preferred stream container when a backend offers several
preferred_mime = "audio/mp4"
# Direct stream URLs expire, so results are cached briefly
cache_ttl_seconds = 600
# Use a remote extraction service instead of querying backends directly
# service_url = "http://localhost:8642"

[sync]
# WebSocket relay for sync sessions
relay_url = "ws://localhost:8642/ws/sync"
channel_prefix = "sync-"
# Name shown to other participants
user_name = "User"

[web]
host = "0.0.0.0"
port = 8642
allowed_origins = ["*"]

[logging]
# Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
level = "INFO"
# Custom log file path (default: ~/.local/share/melodia/melodia.log)
# log_file = "/path/to/custom/melodia.log"
# Maximum log file size in MB before rotation
max_file_size_mb = 10
# Number of backup log files to keep
backup_count = 5
# Also output logs to console (useful for debugging)
console_output = false

[notifications]
# Enable desktop notifications
enabled = true
# Show error notifications
show_errors = true
""".strip()


S = TypeVar("S")


def _validated(section: S, default: Callable[[], S], name: str) -> S:
    validate = getattr(section, "validate", None)
    if validate is None:
        return section
    try:
        validate()
    except ValueError as e:
        print(f"Warning: Invalid {name} configuration: {e}")
        print(f"Using default {name} configuration.")
        return default()
    return section


def parse_config(toml_data: dict[str, Any]) -> Config:
    """Build a Config from parsed TOML, falling back to defaults per section."""
    config = Config()

    if "player" in toml_data:
        player_data = toml_data["player"]
        config.player = _validated(
            PlayerConfig(
                volume=float(player_data.get("volume", config.player.volume)),
                poll_interval=float(
                    player_data.get("poll_interval", config.player.poll_interval)
                ),
                restart_threshold=float(
                    player_data.get("restart_threshold", config.player.restart_threshold)
                ),
                mpv_socket_path=player_data.get("mpv_socket_path"),
            ),
            PlayerConfig,
            "player",
        )

    if "extraction" in toml_data:
        extraction_data = toml_data["extraction"]
        defaults = config.extraction
        config.extraction = _validated(
            ExtractionConfig(
                cobalt_instances=list(
                    extraction_data.get("cobalt_instances", defaults.cobalt_instances)
                ),
                piped_instances=list(
                    extraction_data.get("piped_instances", defaults.piped_instances)
                ),
                cobalt_timeout=float(
                    extraction_data.get("cobalt_timeout", defaults.cobalt_timeout)
                ),
                piped_timeout=float(
                    extraction_data.get("piped_timeout", defaults.piped_timeout)
                ),
                preferred_mime=extraction_data.get("preferred_mime", defaults.preferred_mime),
                cache_ttl_seconds=int(
                    extraction_data.get("cache_ttl_seconds", defaults.cache_ttl_seconds)
                ),
                service_url=extraction_data.get("service_url"),
                user_agent=extraction_data.get("user_agent", defaults.user_agent),
            ),
            ExtractionConfig,
            "extraction",
        )

    if "sync" in toml_data:
        sync_data = toml_data["sync"]
        config.sync = SyncConfig(
            relay_url=sync_data.get("relay_url", config.sync.relay_url),
            channel_prefix=sync_data.get("channel_prefix", config.sync.channel_prefix),
            user_name=sync_data.get("user_name", config.sync.user_name),
        )

    if "web" in toml_data:
        web_data = toml_data["web"]
        config.web = WebConfig(
            host=web_data.get("host", config.web.host),
            port=int(web_data.get("port", config.web.port)),
            allowed_origins=list(
                web_data.get("allowed_origins", config.web.allowed_origins)
            ),
        )

    if "logging" in toml_data:
        logging_data = toml_data["logging"]
        log_file = logging_data.get("log_file")
        if log_file:
            log_file = str(Path(log_file).expanduser())
        config.logging = LoggingConfig(
            level=logging_data.get("level", config.logging.level).upper(),
            log_file=log_file,
            max_file_size_mb=logging_data.get(
                "max_file_size_mb", config.logging.max_file_size_mb
            ),
            backup_count=logging_data.get("backup_count", config.logging.backup_count),
            console_output=logging_data.get(
                "console_output", config.logging.console_output
            ),
        )

    if "notifications" in toml_data:
        notifications_data = toml_data["notifications"]
        config.notifications = NotificationsConfig(
            enabled=notifications_data.get("enabled", config.notifications.enabled),
            show_errors=notifications_data.get(
                "show_errors", config.notifications.show_errors
            ),
        )

    return config


def apply_env_overrides(config: Config) -> Config:
    """Environment variables override TOML values:
    - MELODIA_EXTRACTION_SERVICE_URL
    - MELODIA_SYNC_RELAY_URL
    - MELODIA_LOG_LEVEL
    """
    service_url = os.environ.get("MELODIA_EXTRACTION_SERVICE_URL")
    relay_url = os.environ.get("MELODIA_SYNC_RELAY_URL")
    log_level = os.environ.get("MELODIA_LOG_LEVEL")

    if service_url:
        config.extraction.service_url = service_url
    if relay_url:
        config.sync.relay_url = relay_url
    if log_level:
        config.logging.level = log_level.upper()
    return config


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file or create default."""
    # Load .env file from config directory if it exists
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = config_path or get_config_path()

    if not config_path.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_default_config())
        print(f"Created default configuration at: {config_path}")
        return apply_env_overrides(Config())

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)
        config = parse_config(toml_data)
    except (tomllib.TOMLDecodeError, OSError, TypeError, ValueError, AttributeError) as e:
        print(f"Warning: Could not load configuration from {config_path}: {e}")
        print("Using default configuration.")
        config = Config()

    return apply_env_overrides(config)
