"""
Settings for the tracker core.

Where things live and how the tracker behaves come from three layers, later
ones winning: built-in defaults, ``settings.yaml`` (the user's preferences)
and ``TIMEKEEPER_*`` environment variables (paths and database URL only).

A preferences file that cannot be used never stops the tracker: the problem
is logged and the defaults apply.
"""

import logging
import os
from pathlib import Path
from typing import Iterator, Optional, Tuple

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from timekeeper.domain.models import UserPreferences
from timekeeper.infra.db import MEMORY_DB_URL

logger = logging.getLogger(__name__)

PREFERENCES_FILE = "settings.yaml"
DB_FILE = "timekeeper.db"

# Checked before the per-user config directory, for portable installs
LOCAL_CONFIG_DIR = Path("config")


def default_dirs(app_name: str) -> Tuple[Path, Path]:
    """(config_dir, data_dir) for this platform"""
    if os.name == 'nt':
        root = Path(os.getenv('APPDATA', Path.home())) / app_name
        return root, root

    name = app_name.lower()
    config_home = Path(os.getenv('XDG_CONFIG_HOME') or Path.home() / '.config')
    data_home = Path(os.getenv('XDG_DATA_HOME') or Path.home() / '.local' / 'share')
    return config_home / name, data_home / name


def load_preferences(path: Path) -> Optional[UserPreferences]:
    """
    Read preferences from a YAML file.

    Returns None when the file is empty or unusable (unreadable, not YAML,
    or holding values that fail validation); the reason is logged.
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        if not data:
            return None
        if not isinstance(data, dict):
            raise ValueError(f"expected a mapping, got {type(data).__name__}")
        return UserPreferences(**data)
    except (OSError, yaml.YAMLError, ValidationError, ValueError) as e:
        logger.warning(f"Ignoring preferences in {path}, using defaults: {e}")
        return None


class Settings(BaseSettings):
    """
    Paths, database location and user preferences.

    ``config_dir`` and ``data_dir`` default to the platform's per-user
    locations; ``database_url`` overrides the file in ``data_dir``.
    """
    model_config = SettingsConfigDict(
        env_prefix='TIMEKEEPER_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    app_name: str = "TimeKeeper"
    config_dir: Optional[Path] = None
    data_dir: Optional[Path] = None
    database_url: Optional[str] = None

    preferences: UserPreferences = UserPreferences()

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        config_dir, data_dir = default_dirs(self.app_name)
        if self.config_dir is None:
            self.config_dir = config_dir
        if self.data_dir is None:
            self.data_dir = data_dir

        for candidate in self._preference_files():
            if candidate.exists():
                self.preferences = load_preferences(candidate) or UserPreferences()
                break

    def _preference_files(self) -> Iterator[Path]:
        yield LOCAL_CONFIG_DIR / PREFERENCES_FILE
        yield self.config_dir / PREFERENCES_FILE

    def save_preferences(self) -> Path:
        """Write the current preferences to the user config directory"""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        path = self.config_dir / PREFERENCES_FILE
        with open(path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.preferences.model_dump(mode='json'), f, default_flow_style=False)
        return path

    def get_db_url(self) -> str:
        """
        Database URL, creating the data directory if needed.

        Falls back to an in-memory database (nothing is saved) when the data
        directory cannot be created.
        """
        if self.database_url:
            return self.database_url

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Saving disabled: failed to create data directory {self.data_dir}: {e}")
            return MEMORY_DB_URL

        return f"sqlite+aiosqlite:///{self.data_dir / DB_FILE}"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, loaded on first use"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Re-read environment and preferences file"""
    global _settings
    _settings = Settings()
    return _settings
