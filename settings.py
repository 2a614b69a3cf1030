"""
StarTrack Settings Manager
Reads user configuration from settings.json (read-only; the app never writes it)
"""

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
from logging_config import get_logger

logger = get_logger(__name__)

# Allow overriding the settings file location via environment variable
if getattr(sys, 'frozen', False):
    ROOT_DIR = Path(sys.executable).parent
else:
    ROOT_DIR = Path(__file__).parent

SETTINGS_FILE = Path(os.getenv("STARTRACK_SETTINGS_FILE", str(ROOT_DIR / "settings.json")))


@dataclass
class Setting:
    """Represents a single configurable setting"""
    name: str
    type: type
    default: Any
    requires_restart: bool = False
    category: Optional[str] = None
    description: Optional[str] = None
    options: Optional[list] = None  # Allowed values, if restricted
    min_val: Optional[float] = None
    max_val: Optional[float] = None

    def validate_and_convert(self, value: Any) -> Any:
        try:
            if self.type == bool and isinstance(value, str):
                return value.lower() in ('true', '1', 'yes', 'on')

            converted = self.type(value)
            if self.options is not None and converted not in self.options:
                logger.warning(f"Setting '{self.name}' has unsupported value {converted!r}, using default")
                return self.default
            if self.min_val is not None and converted < self.min_val:
                return self.min_val
            if self.max_val is not None and converted > self.max_val:
                return self.max_val
            return converted
        except (ValueError, TypeError):
            return self.default


class SettingsManager:
    def __init__(self, settings_file: Path = SETTINGS_FILE):
        self._settings_file = settings_file
        self._settings: Dict[str, Any] = {}

        self._definitions = {
            # Debug
            "debug.log_file": Setting("Log File", str, "startrack.log", True, "Debug", "Log file name"),
            "debug.log_level": Setting("Log Level", str, "INFO", True, "Debug", "Console logging verbosity", options=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
            "debug.log_to_console": Setting("Log to Console", bool, True, True, "Debug", "Print logs to terminal"),
            "debug.log_detailed": Setting("Detailed Logging", bool, False, True, "Debug", "Write DEBUG records to the log file"),
            "debug.log_rotation.max_bytes": Setting("Max Log Size", int, 1048576, True, "Debug", "Max log file size (bytes)"),
            "debug.log_rotation.backup_count": Setting("Log Backups", int, 10, True, "Debug", "Number of backups to keep"),

            # Engine
            "engine.mode": Setting("Signal Mode", str, "hybrid", True, "Engine", "Which signal sources feed the reconciler", options=["push", "poll", "hybrid"]),
            "engine.debounce_seconds": Setting("Debounce", float, 0.3, True, "Engine", "Quiet window before a track change is accepted (s)", min_val=0.0, max_val=5.0),
            "engine.poll_interval": Setting("Poll Interval", float, 2.0, True, "Engine", "Automation bridge polling interval (s)", min_val=0.5, max_val=60.0),
            "engine.player": Setting("Player App", str, "Music", True, "Engine", "Player queried over AppleScript", options=["Music", "Spotify"]),

            # Catalog
            "catalog.search_limit": Setting("Search Limit", int, 5, True, "Catalog", "Candidates requested per search", min_val=1, max_val=50),
            "catalog.redirect_uri": Setting("Redirect URI", str, "http://127.0.0.1:9012/callback", True, "Catalog", "OAuth callback URL"),
            "catalog.timeout": Setting("Timeout", int, 5, True, "Catalog", "HTTP request timeout (s)", min_val=1, max_val=60),

            # Favorites
            "favorites.ttl_seconds": Setting("Favorite Cache TTL", float, 300.0, True, "Favorites", "How long a favorite status is trusted (s)", min_val=0.0),
        }

        self.load_settings()

    def load_settings(self) -> None:
        """Load settings from JSON, fall back to defaults"""
        self._settings = {}

        for key, definition in self._definitions.items():
            self._settings[key] = definition.default

        if not self._settings_file.exists():
            logger.debug(f"No settings file at {self._settings_file}, using defaults")
            return

        try:
            with open(self._settings_file, 'r', encoding='utf-8') as f:
                saved = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load {self._settings_file.name}: {e} - using defaults")
            return

        if not isinstance(saved, dict):
            logger.error(f"{self._settings_file.name} must contain a JSON object - using defaults")
            return

        for key, val in saved.items():
            if key in self._definitions:
                self._settings[key] = self._definitions[key].validate_and_convert(val)
            else:
                # Unknown keys are kept so conf() can still see them
                self._settings[key] = val

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value.
        Priority:
        1. Loaded value (from JSON or Schema Default)
        2. Provided 'default' argument (if key unknown)
        """
        if key in self._settings:
            return self._settings[key]
        return default

    def definition(self, key: str) -> Optional[Setting]:
        return self._definitions.get(key)


settings = SettingsManager()
