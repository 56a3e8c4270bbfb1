"""Settings persistence to JSON file."""

import json
import logging
from pathlib import Path
from typing import Optional

from tripseries.domain.settings import AppSettings

logger = logging.getLogger(__name__)


class SettingsStore:
    """Persists settings to JSON file.

    Settings are stored in the user's home directory by default.

    Example:
        >>> store = SettingsStore()
        >>> settings = store.load()
        >>> settings.recurrence.lookahead_days = 30
        >>> store.save(settings)
    """

    DEFAULT_PATH = Path.home() / ".tripseries_settings.json"

    def __init__(self, path: Optional[Path] = None):
        """Initialize settings store.

        Args:
            path: Optional custom path for settings file.
                  Defaults to ~/.tripseries_settings.json
        """
        self._path = path or self.DEFAULT_PATH

    @property
    def path(self) -> Path:
        """Get the settings file path."""
        return self._path

    def exists(self) -> bool:
        """Check if settings file exists."""
        return self._path.exists()

    def load(self) -> AppSettings:
        """Load settings from file.

        Returns:
            AppSettings instance. If file doesn't exist or is invalid,
            returns default settings.
        """
        if self._path.exists():
            try:
                data = json.loads(self._path.read_text())
                data = self._migrate_settings(data)
                return AppSettings.model_validate(data)
            except Exception as e:
                # If settings file is corrupted, return defaults
                logger.warning(f"Could not load settings from {self._path}: {e}")
                return AppSettings()
        return AppSettings()

    def _migrate_settings(self, data: dict) -> dict:
        """Migrate old settings formats to current format.

        Args:
            data: Raw settings dictionary

        Returns:
            Migrated settings dictionary
        """
        recurrence = data.get("recurrence", {})

        # Pacing used to be stored in milliseconds
        if "pacing_ms" in recurrence:
            recurrence["pacing_seconds"] = recurrence.pop("pacing_ms") / 1000
            data["recurrence"] = recurrence

        # Lookahead used to be a top-level key
        if "lookahead_days" in data:
            recurrence["lookahead_days"] = data.pop("lookahead_days")
            data["recurrence"] = recurrence

        return data

    def save(self, settings: AppSettings) -> None:
        """Save settings to file.

        Args:
            settings: AppSettings to save
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(settings.model_dump_json(indent=2))

    def delete(self) -> bool:
        """Delete settings file.

        Returns:
            True if file was deleted, False if it didn't exist
        """
        if self._path.exists():
            self._path.unlink()
            return True
        return False
