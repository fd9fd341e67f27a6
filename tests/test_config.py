"""
Tests for Settings and preference persistence.
"""

import logging
import os

import pytest
import yaml

from timekeeper.domain.models import OpenSessionPolicy, UserPreferences
from timekeeper.infra.config import Settings, default_dirs
from timekeeper.infra.db import MEMORY_DB_URL


def test_defaults(tmp_path):
    settings = Settings(config_dir=tmp_path / "config", data_dir=tmp_path / "data")

    assert settings.preferences.open_session_policy is OpenSessionPolicy.REJECT
    assert settings.preferences.start_of_week == "monday"
    assert settings.get_db_url() == f"sqlite+aiosqlite:///{tmp_path / 'data' / 'timekeeper.db'}"
    assert (tmp_path / "data").is_dir()


def test_preferences_load_from_yaml(tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "settings.yaml").write_text(yaml.safe_dump({
        "open_session_policy": "auto_close",
        "daily_goal_hours": 6,
        "start_of_week": "sunday",
    }))

    settings = Settings(config_dir=config_dir, data_dir=tmp_path / "data")

    assert settings.preferences.open_session_policy is OpenSessionPolicy.AUTO_CLOSE
    assert settings.preferences.daily_goal_hours == 6
    assert settings.preferences.start_of_week == "sunday"


def test_save_preferences_round_trips(tmp_path):
    settings = Settings(config_dir=tmp_path / "config", data_dir=tmp_path / "data")
    settings.preferences.weekly_goal_hours = 32

    path = settings.save_preferences()

    assert yaml.safe_load(path.read_text())["weekly_goal_hours"] == 32
    reloaded = Settings(config_dir=tmp_path / "config", data_dir=tmp_path / "data")
    assert reloaded.preferences.weekly_goal_hours == 32


def test_environment_overrides_database_url(tmp_path, monkeypatch):
    monkeypatch.setenv("TIMEKEEPER_DATABASE_URL", "sqlite+aiosqlite:///custom.db")

    settings = Settings(config_dir=tmp_path, data_dir=tmp_path)

    assert settings.get_db_url() == "sqlite+aiosqlite:///custom.db"


def test_unwritable_data_dir_falls_back_to_memory(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")

    settings = Settings(config_dir=tmp_path, data_dir=blocker / "data")

    assert settings.get_db_url() == MEMORY_DB_URL


@pytest.mark.parametrize("content", [
    "daily_goal_hours: [8\n",              # not YAML
    "start_of_week: friday\n",             # invalid value
    "daily_goal_hours: -1\n",              # out of range
    "- just\n- a list\n",                  # not a mapping
])
def test_unusable_preferences_file_keeps_defaults(tmp_path, caplog, content):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "settings.yaml").write_text(content)

    with caplog.at_level(logging.WARNING, logger="timekeeper.infra.config"):
        settings = Settings(config_dir=config_dir, data_dir=tmp_path / "data")

    assert settings.preferences == UserPreferences()
    assert "settings.yaml" in caplog.text


def test_empty_preferences_file_keeps_defaults(tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "settings.yaml").write_text("")

    settings = Settings(config_dir=config_dir, data_dir=tmp_path / "data")

    assert settings.preferences == UserPreferences()


@pytest.mark.skipif(os.name == "nt", reason="XDG directories are not used on Windows")
def test_default_dirs_follow_xdg(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "share"))

    assert default_dirs("TimeKeeper") == (tmp_path / "cfg" / "timekeeper", tmp_path / "share" / "timekeeper")

    settings = Settings()
    assert settings.config_dir == tmp_path / "cfg" / "timekeeper"
    assert settings.data_dir == tmp_path / "share" / "timekeeper"
