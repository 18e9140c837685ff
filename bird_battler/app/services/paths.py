from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

APP_DIR_NAME = "BirdBattler"
HOME_ENV_VAR = "BIRD_BATTLER_HOME"


@dataclass(slots=True)
class UserPaths:
    root: Path
    saves: Path
    logs: Path
    config: Path

    @property
    def settings_file(self) -> Path:
        return self.config / "settings.json"


def _candidate_roots(app_name: str) -> list[Path]:
    candidates: list[Path] = []
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        candidates.append(Path(override))

    if os.name == "nt":
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            candidates.append(Path(local_app_data) / app_name)
    else:
        data_home = os.environ.get("XDG_DATA_HOME")
        if data_home:
            candidates.append(Path(data_home) / app_name.lower())

    candidates.append(Path.home() / f".{app_name.lower()}")
    return candidates


def resolve_user_paths(app_name: str = APP_DIR_NAME) -> UserPaths:
    """First writable root wins; saves, logs and config live side by side under it."""
    last_error: Exception | None = None
    for root in _candidate_roots(app_name):
        saves = root / "saves"
        logs = root / "logs"
        config = root / "config"
        try:
            for directory in (saves, logs, config):
                directory.mkdir(parents=True, exist_ok=True)
            return UserPaths(root=root, saves=saves, logs=logs, config=config)
        except OSError as exc:
            last_error = exc
            continue
    raise RuntimeError("Unable to initialize user data directories.") from last_error
