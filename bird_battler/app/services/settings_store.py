from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from bird_battler.core.settings import EngineSettings, default_settings, merge_settings

logger = logging.getLogger(__name__)


class SettingsStore:
    """JSON-backed engine settings. Partial or garbage files fall back to defaults."""

    def __init__(self, settings_path: Path) -> None:
        self.settings_path = settings_path

    def load(self) -> dict[str, Any]:
        if not self.settings_path.exists():
            settings = default_settings()
            self.save(settings)
            return settings
        try:
            payload = json.loads(self.settings_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Settings file %s unreadable (%s); using defaults.", self.settings_path.name, exc)
            payload = {}
        try:
            settings = merge_settings(payload)
        except ValueError as exc:
            logger.warning("Settings file %s has invalid values (%s); using defaults.", self.settings_path.name, exc)
            settings = default_settings()
        self.save(settings)
        return settings

    def load_model(self) -> EngineSettings:
        return EngineSettings.model_validate(self.load())

    def save(self, settings: dict[str, Any]) -> None:
        self.settings_path.parent.mkdir(parents=True, exist_ok=True)
        self.settings_path.write_text(json.dumps(settings, indent=2), encoding="utf-8")
