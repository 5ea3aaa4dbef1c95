import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from platformdirs import user_config_dir

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, Any] = {
    "config_version": "0.1.0",
    "graph": {
        "max_traversal_depth": None,
    },
    "catalog": {
        "search_paths": [],
    },
    "server": {
        "host": "127.0.0.1",
        "port": 8000,
    },
    "logging": {
        "level": "INFO",
    },
}


class SettingsManager:
    """
    Manages application-wide settings stored as JSON in the user config dir.
    """
    def __init__(self, app_name: str, app_author: str, config_file: Optional[Path] = None):
        self.app_name = app_name
        if config_file:
            self.config_file = Path(config_file)
            self.config_dir = self.config_file.parent
        else:
            self.config_dir = Path(user_config_dir(app_name, app_author))
            self.config_file = self.config_dir / "config.json"
        self.settings: Dict[str, Any] = {}
        self.load_settings()

    def load_settings(self):
        """Loads settings from the config file, writing the defaults if it is missing."""
        if self.config_file.exists():
            with open(self.config_file, "r", encoding="utf-8") as f:
                self.settings = json.load(f)
            logger.debug("Loaded settings from %s", self.config_file)
        else:
            self.settings = json.loads(json.dumps(DEFAULT_SETTINGS))
            self.save_settings()

    def save_settings(self):
        """Saves the current settings to the config file."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self.settings, f, indent=2, ensure_ascii=False)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Gets a setting value using a dot-separated key.
        e.g., get('graph.max_traversal_depth')
        """
        value = self.settings
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any):
        """
        Sets a setting value using a dot-separated key and persists it.
        e.g., set('server.port', 8080)
        """
        keys = key.split('.')
        d = self.settings
        for k in keys[:-1]:
            d = d.setdefault(k, {})
        d[keys[-1]] = value
        self.save_settings()


# initialized by the entry points
settings_manager: Optional[SettingsManager] = None


def init_settings(config_file: Optional[Path] = None) -> SettingsManager:
    global settings_manager
    settings_manager = SettingsManager(
        app_name="PatchEditor",
        app_author="PatchEditor",
        config_file=config_file,
    )
    return settings_manager


def get_setting(key: str, default: Any = None) -> Any:
    """Read a value from the global settings, or ``default`` before initialization."""
    if settings_manager is None:
        return default
    value = settings_manager.get(key, default)
    return default if value is None else value
