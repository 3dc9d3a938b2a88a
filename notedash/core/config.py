"""
Configuration management for the note dashboard
Handles loading and saving system settings, preferences and the
persisted dashboard/perspective state
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Any, Optional

logger = logging.getLogger("notedash.config")


class Config:
    """Configuration manager for the dashboard engine"""

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize configuration manager

        Args:
            config_dir: Path to configuration directory (defaults to ./config)
        """
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"

        self.config_dir = Path(config_dir)
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.settings_file = self.config_dir / "settings.json"
        self.preferences_file = self.config_dir / "preferences.json"
        self.dashboard_file = self.config_dir / "dashboard.json"

        # Load configurations
        self.settings = self._load_json(self.settings_file, self._default_settings())
        self.preferences = self._load_json(self.preferences_file, self._default_preferences())
        self.dashboard = self._load_json(self.dashboard_file, {})

    def _load_json(self, file_path: Path, default: Dict[str, Any]) -> Dict[str, Any]:
        """Load JSON file or return default if file doesn't exist or is unreadable"""
        if file_path.exists():
            try:
                with open(file_path, 'r') as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Ignoring unreadable config file {file_path}: {e}")
                return dict(default)
            if not isinstance(data, dict):
                logger.warning(f"Ignoring config file {file_path}: expected an object")
                return dict(default)
            # Fill in keys added since the file was written
            return {**default, **data}
        else:
            # Create file with defaults
            self._save_json(file_path, default)
            return dict(default)

    def _save_json(self, file_path: Path, data: Dict[str, Any]) -> None:
        """Save data to JSON file, replacing the old file in one step"""
        fd, tmp_name = tempfile.mkstemp(dir=str(file_path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, file_path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _default_settings(self) -> Dict[str, Any]:
        """Default system settings"""
        return {
            "notes_directory": "data/notes",
            "cache_directory": "data/cache",
            "log_level": "INFO",
            "done_dates_available": True,
            "delayed_refresh_seconds": 5.0,
            "bulk_confirm_threshold": 20,
        }

    def _default_preferences(self) -> Dict[str, Any]:
        """Default user preferences"""
        return {
            "done_counts_last_run": None,
        }

    def _section_map(self) -> Dict[str, Any]:
        return {
            "settings": (self.settings, self.settings_file),
            "preferences": (self.preferences, self.preferences_file),
            "dashboard": (self.dashboard, self.dashboard_file),
        }

    def get(self, key: str, section: str = "settings", default: Any = None) -> Any:
        """
        Get configuration value

        Args:
            key: Configuration key
            section: Configuration section ('settings', 'preferences', 'dashboard')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        entry = self._section_map().get(section)
        if entry is None:
            return default
        value = entry[0].get(key, default)
        return default if value is None else value

    def set(self, key: str, value: Any, section: str = "settings") -> None:
        """
        Set configuration value and save to disk

        Args:
            key: Configuration key
            value: Value to set
            section: Configuration section ('settings', 'preferences', 'dashboard')
        """
        self.set_many({key: value}, section)

    def set_many(self, values: Dict[str, Any], section: str = "settings") -> None:
        """
        Set several values in one section with a single write.

        Args:
            values: Mapping of key to value
            section: Configuration section
        """
        entry = self._section_map().get(section)
        if entry is None:
            return
        config_dict, file_path = entry
        config_dict.update(values)
        self._save_json(file_path, config_dict)

    def _resolve(self, key: str) -> Path:
        path = Path(self.settings[key])
        if path.is_absolute():
            return path
        return Path(__file__).parent.parent.parent / path

    def get_notes_directory(self) -> Path:
        """Get full path to notes directory"""
        return self._resolve("notes_directory")

    def get_cache_directory(self) -> Path:
        """Get full path to cache directory"""
        return self._resolve("cache_directory")
