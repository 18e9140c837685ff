from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class GameplaySettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    save_slots: int = Field(default=3, ge=3, le=5)
    base_seed: int = 1337
    autosave: bool = True


class IdleSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tick_interval: float = Field(default=1.0, gt=0.0, le=60.0)


class AdvisorySettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    endpoint: str | None = None
    path: str = "/advise"
    timeout: float = Field(default=2.0, gt=0.0, le=30.0)
    api_key: str | None = None


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    level: LogLevel = "INFO"
    console: bool = False


class EngineSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    gameplay: GameplaySettings = Field(default_factory=GameplaySettings)
    idle: IdleSettings = Field(default_factory=IdleSettings)
    advisory: AdvisorySettings = Field(default_factory=AdvisorySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def as_dict(self) -> dict[str, Any]:
        return json.loads(self.model_dump_json())


def merge_settings(payload: dict[str, Any] | None) -> dict[str, Any]:
    if not isinstance(payload, dict):
        payload = {}
    return EngineSettings.model_validate(payload).as_dict()


def default_settings() -> dict[str, Any]:
    return EngineSettings().as_dict()
