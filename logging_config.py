# logging_config.py
import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None, console: bool = False) -> None:
    """Configures the 'ytqueue' logger.

    The TUI owns the terminal while it runs, so records normally go to
    ``log_file`` only. ``console`` adds a stderr handler for use before
    the app starts and after it exits.
    """
    logger = logging.getLogger('ytqueue')
    logger.setLevel(level.upper())
    logger.propagate = False

    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S'))
        logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f'ytqueue.{name}')


class YTQueueError(Exception):
    """Base exception for ytqueue."""


class PlayerSpawnError(YTQueueError):
    """The external player process could not be started."""


class ConfigurationError(YTQueueError):
    """The configuration file could not be loaded."""
