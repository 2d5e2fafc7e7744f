"""Configuration management for WakaWars Sync."""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from platformdirs import user_config_dir, user_data_dir, user_log_dir

__all__ = [
    "Config",
    "ProviderSettings",
    "SyncSettings",
    "DailySyncSettings",
    "setup_logging",
    "DEFAULT_API_URL",
    "DEFAULT_IDENTITY",
    "DEFAULT_WEEKLY_RANGE",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_BATCH_DELAY_SECONDS",
    "DEFAULT_CACHE_TTL_SECONDS",
    "DEFAULT_SYNC_INTERVAL",
    "WAKATIME_RATE_LIMIT_PER_SECOND",
    "WAKATIME_RATE_LIMIT_WINDOW_SECONDS",
    "IRAN_DAILY_SYNC_TIME_ZONE",
    "IRAN_DAILY_SYNC_HOUR",
    "IRAN_DAILY_SYNC_MINUTE",
]

logger = logging.getLogger(__name__)

APP_NAME = "WakaWars Sync"
APP_AUTHOR = "WakaWars"

# API endpoints
DEFAULT_API_URL = "https://wakatime.com/api/v1"
DEFAULT_IDENTITY = "current"

# WakaTime rate limit: 10 req/s per key, we stay one below it
WAKATIME_RATE_LIMIT_PER_SECOND = 9
WAKATIME_RATE_LIMIT_WINDOW_SECONDS = 5 * 60

# Batching
DEFAULT_BATCH_SIZE = WAKATIME_RATE_LIMIT_PER_SECOND
DEFAULT_BATCH_DELAY_SECONDS = 1.0

# Sync settings
DEFAULT_CACHE_TTL_SECONDS = 2 * 60
DEFAULT_SYNC_INTERVAL = 2 * 60  # seconds
MIN_SYNC_INTERVAL = 30
DEFAULT_WEEKLY_RANGE = "last_7_days"
DEFAULT_WEEKLY_INTERVAL = 30 * 60

# Pinned daily run (end of the day in Iran)
IRAN_DAILY_SYNC_TIME_ZONE = "Asia/Tehran"
IRAN_DAILY_SYNC_HOUR = 23
IRAN_DAILY_SYNC_MINUTE = 59


@dataclass
class ProviderSettings:
    """WakaTime API settings."""

    api_url: str = DEFAULT_API_URL
    identity: str = DEFAULT_IDENTITY
    timeout: int = 30
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    user_agent: str = "WakaWars-Sync/1.0.0"


@dataclass
class SyncSettings:
    """Sync loop configuration."""

    interval_seconds: int = DEFAULT_SYNC_INTERVAL
    batch_size: int = DEFAULT_BATCH_SIZE
    batch_delay_seconds: float = DEFAULT_BATCH_DELAY_SECONDS
    weekly_range: str = DEFAULT_WEEKLY_RANGE
    weekly_interval_seconds: int = DEFAULT_WEEKLY_INTERVAL

    def __post_init__(self) -> None:
        self.interval_seconds = max(MIN_SYNC_INTERVAL, int(self.interval_seconds))
        self.batch_size = max(1, int(self.batch_size))
        self.batch_delay_seconds = max(0.0, float(self.batch_delay_seconds))
        self.weekly_interval_seconds = max(MIN_SYNC_INTERVAL, int(self.weekly_interval_seconds))


@dataclass
class DailySyncSettings:
    """Once-a-day pinned sync that bypasses every cache."""

    enabled: bool = True
    timezone: str = IRAN_DAILY_SYNC_TIME_ZONE
    hour: int = IRAN_DAILY_SYNC_HOUR
    minute: int = IRAN_DAILY_SYNC_MINUTE

    def __post_init__(self) -> None:
        self.hour = min(23, max(0, int(self.hour)))
        self.minute = min(59, max(0, int(self.minute)))


@dataclass
class Config:
    """Main configuration object."""

    provider: ProviderSettings = field(default_factory=ProviderSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    daily: DailySyncSettings = field(default_factory=DailySyncSettings)
    database_path: Optional[str] = None
    debug_mode: bool = False

    @classmethod
    def get_config_dir(cls) -> Path:
        """Get the configuration directory path."""
        return Path(user_config_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_data_dir(cls) -> Path:
        """Get the data directory path (for the SQLite store)."""
        return Path(user_data_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_log_dir(cls) -> Path:
        """Get the log directory path."""
        return Path(user_log_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_config_file(cls) -> Path:
        """Get the config file path."""
        return cls.get_config_dir() / "config.json"

    @property
    def db_path(self) -> Path:
        """Resolved SQLite database path."""
        if self.database_path:
            return Path(self.database_path)
        return self.get_data_dir() / "wakawars.db"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """Load config from file (read-only), or return defaults.

        Environment variables override file values.
        """
        config_file = path or cls.get_config_file()
        config = cls()
        if config_file.exists():
            try:
                with open(config_file, "r") as f:
                    data = json.load(f)
                config = cls._from_dict(data)
            except Exception as e:
                logger.warning(f"Failed to load config: {e}, using defaults")
        config._apply_env()
        return config

    @classmethod
    def _from_dict(cls, data: dict) -> "Config":
        """Create Config from dictionary, ignoring unknown keys."""
        provider_data = data.pop("provider", {}) or {}
        sync_data = data.pop("sync", {}) or {}
        daily_data = data.pop("daily", {}) or {}

        return cls(
            provider=ProviderSettings(**_known(ProviderSettings, provider_data)),
            sync=SyncSettings(**_known(SyncSettings, sync_data)),
            daily=DailySyncSettings(**_known(DailySyncSettings, daily_data)),
            **{k: v for k, v in data.items() if k in ("database_path", "debug_mode")},
        )

    def _apply_env(self) -> None:
        api_url = os.getenv("WAKAWARS_API_URL")
        if api_url:
            self.provider.api_url = api_url
        db_path = os.getenv("WAKAWARS_DB_PATH")
        if db_path:
            self.database_path = db_path
        if os.getenv("WAKAWARS_DEBUG", "").lower() in {"1", "true", "yes"}:
            self.debug_mode = True


def _known(settings_cls, data: dict) -> dict:
    return {k: v for k, v in data.items() if k in settings_cls.__dataclass_fields__}


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    log_dir = Config.get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "wakawars-sync.log"

    level = logging.DEBUG if debug else logging.INFO
    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(),
        ],
    )

    # Reduce noise from libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
