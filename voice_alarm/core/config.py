"""Configuration management for Voice Alarm.

This module handles loading and saving application configuration to/from
a JSON file. The config directory can be customized via CLI argument.

CRITICAL: This module must have NO Flask dependencies.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .decoder import DEFAULT_MAX_UPLOAD_BYTES
from .models import DEFAULT_LANGUAGE, MAX_DURATION

logger = logging.getLogger(__name__)

__all__ = ["Config", "DEFAULT_CONFIG_DIR"]

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "voice-alarm"

# Default values for every known key. Path defaults are filled in relative
# to the config directory.
DEFAULTS: Dict[str, Any] = {
    "max_audio_duration": MAX_DURATION,
    "max_upload_bytes": DEFAULT_MAX_UPLOAD_BYTES,
    "tick_interval": 1.0,
    "speech_interval": 3.0,
    "speech_rate": 0.9,
    "speech_pitch": 1.1,
    "default_language": DEFAULT_LANGUAGE,
    "notifications_enabled": True,
    "player_command": "mpv",
    "speech_command": "espeak-ng",
}


class Config:
    """Manages application configuration stored in JSON format.

    Attributes:
        config_dir: Path to the configuration directory
        config_file: Path to config.json
        config_data: The loaded configuration
    """

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """Initialize configuration manager.

        Args:
            config_dir: Custom config directory path. If None, uses ~/.config/voice-alarm/
        """
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file = self.config_dir / "config.json"
        self.config_data = self.load_config()

    def _defaults(self) -> Dict[str, Any]:
        defaults = dict(DEFAULTS)
        defaults["alarms_file"] = str(self.config_dir / "alarms.json")
        defaults["artifact_directory"] = str(self.config_dir / "artifacts")
        return defaults

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file, creating it with defaults if missing.

        Unknown keys in the file are preserved. A corrupt file is replaced
        with defaults (the broken file is kept as config.json.bak).
        """
        config = self._defaults()
        if not self.config_file.exists():
            self.save_config(config)
            return config

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                loaded = json.load(f)
            if not isinstance(loaded, dict):
                raise ValueError("config root must be an object")
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read {self.config_file}: {e}; using defaults")
            backup = self.config_file.with_suffix(".json.bak")
            try:
                self.config_file.replace(backup)
            except OSError as backup_error:
                logger.warning(f"Could not back up {self.config_file}: {backup_error}")
            self.save_config(config)
            return config

        config.update(loaded)
        return config

    def save_config(self, config: Dict[str, Any]) -> None:
        """Write configuration to file."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2, sort_keys=True)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        value = self.config_data.get(key)
        return value if value is not None else default

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value and save to file."""
        self.config_data[key] = value
        self.save_config(self.config_data)

    def get_config_dir(self) -> Path:
        """Get the configuration directory path."""
        return self.config_dir

    def get_alarms_file(self) -> Path:
        """Get the path of the alarm collection file."""
        return Path(self.get("alarms_file"))

    def get_artifact_directory(self) -> Path:
        """Get the directory holding uploaded alarm audio."""
        return Path(self.get("artifact_directory"))

    def get_float(self, key: str) -> float:
        """Get a numeric value, falling back to the default if it's invalid."""
        try:
            return float(self.get(key, DEFAULTS[key]))
        except (TypeError, ValueError):
            logger.warning(f"Invalid value for {key}: {self.get(key)!r}; using default")
            return float(DEFAULTS[key])

    def get_int(self, key: str) -> int:
        """Get an integer value, falling back to the default if it's invalid."""
        return int(self.get_float(key))

    def notifications_enabled(self) -> bool:
        """Check whether desktop notifications are permitted."""
        return bool(self.get("notifications_enabled", True))
