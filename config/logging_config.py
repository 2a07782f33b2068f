"""Logging setup: console output, a rotating main log and a revision log."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# Saves, restores and pruning also go to revisions.log
REVISION_LOGGER = "manuscript.revision_chain"


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        str(path),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _reset_handlers(logger: logging.Logger):
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str | Path] = None,
    console_enabled: bool = True,
) -> None:
    """Configure application-wide logging.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        level: Level for the root logger and its handlers.
        log_dir: Directory for ``novelkeep.log`` and ``revisions.log``.
            Defaults to ./data/logs.
        console_enabled: Also log to stderr.
    """
    log_dir = Path(log_dir or "./data/logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    _reset_handlers(root_logger)

    if console_enabled:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)
    root_logger.addHandler(_rotating_handler(log_dir / "novelkeep.log", level, formatter))

    revision_logger = logging.getLogger(REVISION_LOGGER)
    revision_logger.setLevel(logging.INFO)
    _reset_handlers(revision_logger)
    revision_logger.addHandler(
        _rotating_handler(log_dir / "revisions.log", logging.DEBUG, formatter)
    )

    logging.getLogger(__name__).debug("Logging initialized: level=%s, dir=%s", level, log_dir)
