from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from staffplanner.config import SETTINGS, PROJECT_ROOT

NOISY_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "alembic.runtime.migration")


def setup_logging(level: str | None = None) -> None:
    log_dir = PROJECT_ROOT / SETTINGS.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "staffplanner.log"

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = RotatingFileHandler(log_file, maxBytes=2_000_000, backupCount=3)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root_level = (level or SETTINGS.log_level).upper()
    logging.basicConfig(
        level=root_level,
        handlers=[file_handler, console_handler],
    )

    # SQL echo only when explicitly debugging
    if root_level != "DEBUG":
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
