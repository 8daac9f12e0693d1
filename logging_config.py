"""Centralized logging configuration for jarkus.

Reads the ``logging`` section of config.yaml; every key is optional.
"""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import yaml

LOGGER_NAME = "jarkus"
DETAILED_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s'
CONSOLE_FORMAT = '%(levelname)s: %(message)s'

# httpx logs one INFO line per request; only worth showing at DEBUG
HTTP_LOGGER_NAMES = ('httpx', 'httpcore')

_http_suppression_enabled = False


def _level_name(value: object, key: str) -> str:
    name = str(value).upper()
    if not isinstance(logging.getLevelName(name), int):
        raise ValueError(f"Invalid logging.{key} '{value}'")
    return name


@dataclass
class LoggingSettings:
    """Validated ``logging`` section."""

    log_file: str = 'jarkus.log'
    console_level: str = 'WARNING'
    file_mode: str = 'w'
    suppress_http_loggers: bool = True
    suppress_root_logger: bool = True
    third_party_log_level: str = 'WARNING'

    @classmethod
    def from_config(cls, config_path: Path) -> "LoggingSettings":
        """Load settings from ``config_path``; a missing file means defaults."""
        section = {}
        if Path(config_path).exists():
            with open(config_path, "r") as f:
                section = (yaml.safe_load(f) or {}).get('logging', {})
        if section is None:
            section = {}
        if not isinstance(section, dict):
            raise ValueError(f"Invalid logging section in {config_path}; expected mapping.")

        unknown = set(section) - set(cls.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown logging settings: {', '.join(sorted(unknown))}")
        settings = cls(**section)
        settings.validate()
        return settings

    def validate(self) -> None:
        self.console_level = _level_name(self.console_level, 'console_level')
        self.third_party_log_level = _level_name(self.third_party_log_level, 'third_party_log_level')
        if self.file_mode not in ('w', 'a'):
            raise ValueError("logging.file_mode must be 'w' or 'a'")
        for flag in ('suppress_http_loggers', 'suppress_root_logger'):
            if not isinstance(getattr(self, flag), bool):
                raise ValueError(f"logging.{flag} must be boolean")
        if not isinstance(self.log_file, str) or not self.log_file.strip():
            raise ValueError("logging.log_file must be a non-empty string")


def sync_http_logging(console_is_debug: bool) -> None:
    """Show per-request httpx logging only when the console runs at DEBUG."""
    if not _http_suppression_enabled:
        return
    level = logging.DEBUG if console_is_debug else logging.WARNING
    for name in HTTP_LOGGER_NAMES:
        logging.getLogger(name).setLevel(level)


def console_handlers(logger: logging.Logger) -> list[logging.Handler]:
    """Stream handlers of ``logger`` that are not file handlers."""
    return [
        handler for handler in logger.handlers
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler)
    ]


def set_console_level(level: int, only_lower: bool = False) -> None:
    """Set the console verbosity of the jarkus logger (log file unaffected)."""
    for handler in console_handlers(logging.getLogger(LOGGER_NAME)):
        if only_lower and handler.level <= level:
            continue
        handler.setLevel(level)


def setup_logging(config_path: Path = Path("config.yaml")) -> logging.Logger:
    """
    Configure the jarkus logger from config.yaml.

    The file handler always records DEBUG; the console shows
    ``logging.console_level`` and above. Calling this again is a no-op.

    Args:
        config_path: Path to the configuration YAML file.

    Returns:
        Configured logger instance.
    """
    global _http_suppression_enabled

    settings = LoggingSettings.from_config(config_path)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    if logger.handlers:
        return logger

    file_handler = logging.FileHandler(settings.log_file, mode=settings.file_mode, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, settings.console_level))
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    _http_suppression_enabled = settings.suppress_http_loggers
    sync_http_logging(console_is_debug=(settings.console_level == 'DEBUG'))

    if settings.suppress_root_logger:
        logging.getLogger().setLevel(getattr(logging, settings.third_party_log_level))

    return logger


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Get a logger instance (default: the jarkus logger)."""
    return logging.getLogger(name)
