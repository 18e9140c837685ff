from __future__ import annotations

import logging
from pathlib import Path

from bird_battler.app.services.logger import APP_LOGGER_NAME, GAMEPLAY_LOGGER_NAME, configure_logging


def _reset(*names: str) -> None:
    for name in names:
        logger = logging.getLogger(name)
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)


def test_module_and_gameplay_logs_are_split(tmp_path: Path) -> None:
    try:
        bundle = configure_logging(tmp_path / "logs", level="DEBUG", console=False)
        logging.getLogger("bird_battler.core.idle").debug("tick")
        bundle.gameplay.info("Eagle uses Peck.")
        for handler in bundle.app.handlers + bundle.gameplay.handlers:
            handler.flush()

        latest = bundle.latest_log_path.read_text(encoding="utf-8")
        gameplay = (tmp_path / "logs" / "gameplay.log").read_text(encoding="utf-8")
        assert "bird_battler.core.idle: tick" in latest
        assert "Eagle uses Peck." in gameplay
        assert "Eagle uses Peck." not in latest
    finally:
        _reset(GAMEPLAY_LOGGER_NAME, APP_LOGGER_NAME)


def test_previous_log_is_archived(tmp_path: Path) -> None:
    logs = tmp_path / "logs"
    logs.mkdir()
    (logs / "latest.log").write_text("old run", encoding="utf-8")
    for index in range(7):
        (logs / f"latest_20200101_00000{index}_000000.log").write_text("x", encoding="utf-8")
    try:
        configure_logging(logs, console=False)
    finally:
        _reset(GAMEPLAY_LOGGER_NAME, APP_LOGGER_NAME)

    archives = sorted(logs.glob("latest_*.log"))
    assert len(archives) == 5
    assert any(path.read_text(encoding="utf-8") == "old run" for path in archives)
