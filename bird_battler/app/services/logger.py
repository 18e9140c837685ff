from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from bird_battler.core.settings import LoggingSettings

APP_LOGGER_NAME = "bird_battler"
GAMEPLAY_LOGGER_NAME = "bird_battler.gameplay"
LOG_ARCHIVES = 5

APP_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
GAMEPLAY_FORMAT = "%(asctime)s %(message)s"


@dataclass(slots=True)
class AppLoggerBundle:
    app: logging.Logger
    gameplay: logging.Logger
    latest_log_path: Path


def _archive_previous_log(logs_dir: Path, keep_archives: int = LOG_ARCHIVES) -> Path:
    logs_dir.mkdir(parents=True, exist_ok=True)
    latest = logs_dir / "latest.log"
    if latest.exists():
        # Microseconds keep two launches within a second from colliding.
        latest.replace(logs_dir / f"latest_{datetime.now():%Y%m%d_%H%M%S_%f}.log")

    archived = sorted((path for path in logs_dir.glob("latest_*.log") if path.is_file()), reverse=True)
    for stale in archived[keep_archives:]:
        stale.unlink(missing_ok=True)
    return latest


def _fresh_logger(name: str, level: int) -> logging.Logger:
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def configure_logging(
    logs_dir: Path,
    level: str = "INFO",
    console: bool = True,
) -> AppLoggerBundle:
    """Route every ``bird_battler.*`` module logger to ``latest.log``.

    Battle and idle narration goes to the separate ``gameplay.log``.
    Calling this again replaces the handlers installed by the previous call.
    """
    latest = _archive_previous_log(logs_dir)

    app_logger = _fresh_logger(APP_LOGGER_NAME, getattr(logging, level.upper(), logging.INFO))
    formatter = logging.Formatter(APP_FORMAT)
    handlers: list[logging.Handler] = [logging.FileHandler(latest, mode="w", encoding="utf-8")]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)
        app_logger.addHandler(handler)

    gameplay_logger = _fresh_logger(GAMEPLAY_LOGGER_NAME, logging.INFO)
    narration = logging.FileHandler(logs_dir / "gameplay.log", mode="w", encoding="utf-8")
    narration.setFormatter(logging.Formatter(GAMEPLAY_FORMAT))
    gameplay_logger.addHandler(narration)

    return AppLoggerBundle(app=app_logger, gameplay=gameplay_logger, latest_log_path=latest)


def configure_from_settings(logs_dir: Path, settings: LoggingSettings) -> AppLoggerBundle:
    return configure_logging(logs_dir, level=settings.level, console=settings.console)
