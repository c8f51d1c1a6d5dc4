# config.py
import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import List, Optional

from logging_config import ConfigurationError, get_logger

logger = get_logger('config')


@dataclass
class Config:
    """Holds all application configuration."""
    SEARCH_RESULT_LIMIT: int = 25
    SEARCH_COMMAND: str = "yt-dlp"
    SEARCH_WORKERS: int = 4
    PLAYER_COMMAND: str = "mpv"
    SOCKET_PATH: str = "/tmp/mpv-socket"
    CONNECT_ATTEMPTS: int = 10
    VOLUME_STEP: int = 5
    COMMAND_TIMEOUT: float = 0.2
    TERMINATE_TIMEOUT: float = 1.0
    TICK_INTERVAL: float = 0.05
    MESSAGE_HISTORY: int = 50
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = "~/.cache/ytqueue/ytqueue.log"

    def validate(self) -> List[str]:
        """Returns a list of human-readable problems, empty when valid."""
        issues = []
        if self.SEARCH_RESULT_LIMIT < 1:
            issues.append(f"SEARCH_RESULT_LIMIT must be positive, got {self.SEARCH_RESULT_LIMIT}")
        if self.SEARCH_WORKERS < 1:
            issues.append(f"SEARCH_WORKERS must be positive, got {self.SEARCH_WORKERS}")
        if self.CONNECT_ATTEMPTS < 1:
            issues.append(f"CONNECT_ATTEMPTS must be positive, got {self.CONNECT_ATTEMPTS}")
        if not (1 <= self.VOLUME_STEP <= 100):
            issues.append(f"VOLUME_STEP must be 1-100, got {self.VOLUME_STEP}")
        if self.TICK_INTERVAL <= 0:
            issues.append(f"TICK_INTERVAL must be greater than 0, got {self.TICK_INTERVAL}")
        if self.COMMAND_TIMEOUT <= 0:
            issues.append(f"COMMAND_TIMEOUT must be greater than 0, got {self.COMMAND_TIMEOUT}")
        if self.LOG_LEVEL.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            issues.append(f"Invalid LOG_LEVEL: {self.LOG_LEVEL}")
        if not self.SOCKET_PATH:
            issues.append("SOCKET_PATH must not be empty")
        if issues:
            logger.warning(f"Configuration validation issues: {issues}")
        return issues


# Keys that may be set to null in the config file.
_NULLABLE_KEYS = {"LOG_FILE"}


def _accepts(key: str, default, value) -> bool:
    if value is None:
        return key in _NULLABLE_KEYS
    # bool is an int subclass; never let true/false stand in for a number.
    if isinstance(value, bool):
        return isinstance(default, bool)
    if isinstance(default, float):
        return isinstance(value, (int, float))
    return isinstance(value, type(default))


def load_config(path: Optional[Path] = None) -> Config:
    """Builds a Config from defaults, overlaid with a JSON object file if given."""
    config = Config()
    if path is None:
        return config

    path = Path(path).expanduser()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Could not read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a JSON object")

    known = {f.name for f in fields(Config)}
    for key, value in data.items():
        if key not in known:
            logger.warning(f"Ignoring unknown config key: {key}")
            continue
        if not _accepts(key, getattr(config, key), value):
            logger.warning(f"Invalid config value for {key}: {value!r}")
            continue
        setattr(config, key, value)
        logger.debug(f"Config updated: {key} = {value!r}")

    logger.info(f"Loaded configuration from {path}")
    return config
