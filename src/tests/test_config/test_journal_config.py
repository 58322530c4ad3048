"""
Tests for journal settings in the Config class.

Tests verify that:
1. Defaults apply when no environment variables are set
2. Environment variables override defaults, clamped to bounds
3. Invalid values fall back to defaults
4. Overrides via set()/load_from_file() are validated
"""

import json
from pathlib import Path

import pytest

from config import Config, ConfigError

JOURNAL_ENV = [
    "JOURNAL_DATA_DIR",
    "JOURNAL_INLINE_THRESHOLD",
    "JOURNAL_SCAN_PAGE_SIZE",
    "JOURNAL_MAX_WORKERS",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in JOURNAL_ENV:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestJournalConfig:
    """Tests for get_journal_config()"""

    def test_defaults(self, clean_env):
        journal = Config.get_journal_config()
        assert journal["data_dir"] == Path.home() / "journal_data"
        assert journal["inline_content_threshold"] == 0xFFFF
        assert journal["scan_page_size"] == 1000
        assert journal["max_workers"] == 8

    def test_env_overrides(self, clean_env, tmp_path):
        clean_env.setenv("JOURNAL_DATA_DIR", str(tmp_path))
        clean_env.setenv("JOURNAL_INLINE_THRESHOLD", "4096")
        clean_env.setenv("JOURNAL_SCAN_PAGE_SIZE", "50")
        clean_env.setenv("JOURNAL_MAX_WORKERS", "2")
        journal = Config.get_journal_config()
        assert journal["data_dir"] == tmp_path
        assert journal["inline_content_threshold"] == 4096
        assert journal["scan_page_size"] == 50
        assert journal["max_workers"] == 2

    def test_threshold_clamped_to_inline_limit(self, clean_env):
        clean_env.setenv("JOURNAL_INLINE_THRESHOLD", "1000000")
        assert Config.get_journal_config()["inline_content_threshold"] == 0xFFFF

    def test_invalid_value_uses_default(self, clean_env):
        clean_env.setenv("JOURNAL_SCAN_PAGE_SIZE", "lots")
        assert Config.get_journal_config()["scan_page_size"] == 1000

    def test_journal_property(self, clean_env):
        config = Config(validate=False, ensure_directories=False)
        assert config.JOURNAL == Config.get_journal_config()

    def test_log_dir_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("JOURNAL_LOG_DIR", str(tmp_path / "logs"))
        assert Config.get_files_config()["log_dir"] == tmp_path / "logs"


class TestConfigInstance:
    def test_ensure_directories(self, clean_env, monkeypatch, tmp_path):
        clean_env.setenv("JOURNAL_DATA_DIR", str(tmp_path / "data"))
        monkeypatch.setenv("JOURNAL_LOG_DIR", str(tmp_path / "logs"))
        config = Config()
        assert (tmp_path / "data").is_dir()
        assert (tmp_path / "logs").is_dir()
        assert config._directory_status == {"data_dir": True, "log_dir": True}

    def test_get_and_set(self, clean_env):
        config = Config(validate=False, ensure_directories=False)
        assert config.get("journal", "max_workers") == 8
        config.set("journal", "max_workers", 3)
        assert config.get("JOURNAL", "max_workers") == 3
        assert config.get("logging", "format") == Config.LOGGING["format"]
        assert config.get("nowhere", "nothing", "fallback") == "fallback"

    def test_validate_rejects_bad_override(self, clean_env):
        config = Config(validate=False, ensure_directories=False)
        config.set("journal", "inline_content_threshold", 0)
        with pytest.raises(ConfigError):
            config.validate()

    def test_load_from_file(self, clean_env, tmp_path):
        path = tmp_path / "journal.json"
        path.write_text(json.dumps({"journal": {"scan_page_size": 10}}))
        config = Config(config_file=str(path), validate=True, ensure_directories=False)
        assert config.get("journal", "scan_page_size") == 10

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError):
            Config(config_file=str(path), validate=False, ensure_directories=False)

    def test_to_dict(self, clean_env):
        exported = Config(validate=False, ensure_directories=False).to_dict()
        assert exported["journal"]["scan_page_size"] == 1000
        assert isinstance(exported["journal"]["data_dir"], str)
        assert set(exported) == {"journal", "files", "logging", "custom"}
