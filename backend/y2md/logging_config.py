"""
Logging setup for the y2md command line.

Levels come from settings (Y2MD_LOG_LEVEL, default WARNING) unless the
command line asks for more: -v shows progress (INFO), -vv shows DEBUG.
Any settings field named log_level_<module> overrides the level of the
y2md.services.<module> logger, e.g. Y2MD_LOG_LEVEL_AI_CLIENTS=DEBUG.

Everything is written to stderr; stdout carries command output only.
"""

import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from y2md.config import Settings


MODULE_LEVEL_PREFIX = "log_level_"
SERVICES_LOGGER = "y2md.services"

# Chatty libraries stay at WARNING even with -vv
THIRD_PARTY_LOGGERS = (
    "httpx",
    "httpcore",
    "anthropic",
    "openai",
    "faster_whisper",
)

VERBOSITY_LEVELS = {1: logging.INFO, 2: logging.DEBUG}


def short_logger_name(name: str) -> str:
    """Drop the package prefix: y2md.services.model_manager -> model_manager."""
    for prefix in (f"{SERVICES_LOGGER}.", "y2md."):
        if name.startswith(prefix):
            return name[len(prefix):]
    return name


class ConsoleFormatter(logging.Formatter):
    """
    Terse formatter for interactive use.

    INFO lines are printed bare, other levels get a lowercase prefix.
    At DEBUG the short logger name is included.
    """

    def format(self, record: logging.LogRecord) -> str:
        text = record.getMessage()
        if record.levelno == logging.DEBUG:
            text = f"debug [{short_logger_name(record.name)}]: {text}"
        elif record.levelno != logging.INFO:
            text = f"{record.levelname.lower()}: {text}"

        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


class StructuredFormatter(logging.Formatter):
    """
    Pipe-separated records for log files and grepping.

    Format: timestamp | level | logger | message
    """

    def format(self, record: logging.LogRecord) -> str:
        fields = [
            self.formatTime(record, "%Y-%m-%d %H:%M:%S"),
            f"{record.levelname:8}",
            f"{short_logger_name(record.name):24}",
            record.getMessage(),
        ]
        message = " | ".join(fields)

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


def parse_level(value: str | None, default: int) -> int:
    """Level name to number; unknown or empty names give the default."""
    if not value:
        return default
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else default


def setup_logging(settings: "Settings", verbosity: int = 0) -> None:
    """
    Configure the root logger for one CLI run.

    Args:
        settings: Application settings with log configuration
        verbosity: Number of -v flags (0 keeps the configured level)
    """
    root_level = parse_level(settings.log_level, logging.WARNING)
    if verbosity:
        root_level = min(root_level, VERBOSITY_LEVELS[min(verbosity, 2)])

    if settings.log_format == "structured":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = ConsoleFormatter()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(root_level)

    for name, level in module_levels(settings, root_level).items():
        logging.getLogger(name).setLevel(level)

    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def module_levels(settings: "Settings", default_level: int) -> dict[str, int]:
    """Logger name -> level for every log_level_<module> field that is set."""
    levels = {}
    for field in type(settings).model_fields:
        if not field.startswith(MODULE_LEVEL_PREFIX):
            continue
        value = getattr(settings, field)
        if value:
            module = field[len(MODULE_LEVEL_PREFIX):]
            levels[f"{SERVICES_LOGGER}.{module}"] = parse_level(value, default_level)
    return levels
