"""
Pipeline logging: one package logger, stage modules log to its children.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _handlers(level: int, log_file: Optional[str], console: bool) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def setup_logger(
    name: str = "cholmeth",
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    console: bool = True
) -> logging.Logger:
    """
    Configure the named logger, replacing any handlers it already has.

    Calling this once for "cholmeth" covers every stage, since each module
    logs through ``logging.getLogger(__name__)``. ``log_file`` adds a copy
    of the run log on disk, its directory created as needed.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers = _handlers(level, log_file, console)
    return logger


def set_level(level: int, name: str = "cholmeth") -> None:
    """Change the level of a configured logger and all its handlers."""
    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
