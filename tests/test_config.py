"""Tests for configuration loading."""

import json
import tempfile
from pathlib import Path

from wakawars_sync.config import (
    DEFAULT_API_URL,
    IRAN_DAILY_SYNC_TIME_ZONE,
    MIN_SYNC_INTERVAL,
    Config,
    DailySyncSettings,
    SyncSettings,
)


class TestConfig:
    """Tests for Config."""

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.config_file = self.temp_dir / "config.json"

    def test_defaults(self, monkeypatch):
        for name in ("WAKAWARS_API_URL", "WAKAWARS_DB_PATH", "WAKAWARS_DEBUG"):
            monkeypatch.delenv(name, raising=False)

        config = Config.load(self.config_file)

        assert config.provider.api_url == DEFAULT_API_URL
        assert config.provider.cache_ttl_seconds == 120
        assert config.sync.batch_size == 9
        assert config.daily.timezone == IRAN_DAILY_SYNC_TIME_ZONE
        assert (config.daily.hour, config.daily.minute) == (23, 59)
        assert config.db_path.name == "wakawars.db"

    def test_load_from_file_ignores_unknown_keys(self, monkeypatch):
        monkeypatch.delenv("WAKAWARS_DB_PATH", raising=False)
        self.config_file.write_text(
            json.dumps(
                {
                    "provider": {"cache_ttl_seconds": 60, "bogus": 1},
                    "sync": {"interval_seconds": 300, "batch_size": 4},
                    "daily": {"enabled": False},
                    "database_path": str(self.temp_dir / "db.sqlite"),
                    "unknown": True,
                }
            )
        )

        config = Config.load(self.config_file)

        assert config.provider.cache_ttl_seconds == 60
        assert config.sync.interval_seconds == 300
        assert config.sync.batch_size == 4
        assert config.daily.enabled is False
        assert config.db_path == self.temp_dir / "db.sqlite"

    def test_invalid_file_uses_defaults(self):
        self.config_file.write_text("{not json")

        config = Config.load(self.config_file)

        assert config.sync.batch_size == 9

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("WAKAWARS_API_URL", "http://localhost:8080/api/v1")
        monkeypatch.setenv("WAKAWARS_DB_PATH", str(self.temp_dir / "env.db"))
        monkeypatch.setenv("WAKAWARS_DEBUG", "true")

        config = Config.load(self.config_file)

        assert config.provider.api_url == "http://localhost:8080/api/v1"
        assert config.db_path == self.temp_dir / "env.db"
        assert config.debug_mode is True

    def test_settings_are_clamped(self):
        sync = SyncSettings(interval_seconds=1, batch_size=0, batch_delay_seconds=-5)
        daily = DailySyncSettings(hour=30, minute=-1)

        assert sync.interval_seconds == MIN_SYNC_INTERVAL
        assert sync.batch_size == 1
        assert sync.batch_delay_seconds == 0.0
        assert (daily.hour, daily.minute) == (23, 0)
