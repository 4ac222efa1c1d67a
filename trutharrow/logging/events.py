from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
TIMESTAMP_COLOR = "\033[90m"
EVENT_COLOR = "\033[96m"
KEY_COLOR = "\033[94m"
NUMBER_COLOR = "\033[93m"
STRING_COLOR = "\033[92m"

NOISY_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def _colorize_value(value: Any) -> str:
    if value is None:
        return f"{DIM}None{RESET}"
    if isinstance(value, (bool, int, float)):
        return f"{NUMBER_COLOR}{value}{RESET}"
    if isinstance(value, str):
        return f"{STRING_COLOR}{value}{RESET}"
    return str(value)


class ConsoleRenderer:
    """Render ``[time] LEVEL event | key=value`` lines, colored on a TTY."""

    def __init__(self, colored: bool = True) -> None:
        self.colored = colored and sys.stdout.isatty()

    def __call__(self, logger: Any, name: str, event_dict: dict) -> str:
        if not self.colored:
            return structlog.processors.JSONRenderer()(logger, name, event_dict)

        timestamp = event_dict.pop("timestamp", "")
        level = event_dict.pop("level", "info").upper()
        event = event_dict.pop("event", "")

        parts = []
        if timestamp:
            parts.append(f"{TIMESTAMP_COLOR}[{timestamp}]{RESET}")
        parts.append(f"{LEVEL_COLORS.get(level, LEVEL_COLORS['INFO'])}{BOLD}{level:8}{RESET}")
        parts.append(f"{EVENT_COLOR}{event}{RESET}")
        if event_dict:
            pairs = [f"{KEY_COLOR}{key}{RESET}={_colorize_value(value)}" for key, value in event_dict.items()]
            parts.append(f"{DIM}|{RESET} " + f" {DIM}|{RESET} ".join(pairs))
        return " ".join(parts)


class StdlibFormatter(logging.Formatter):
    """Same layout for records emitted by uvicorn and other stdlib loggers."""

    def format(self, record: logging.LogRecord) -> str:
        if not sys.stdout.isatty():
            return super().format(record)
        color = LEVEL_COLORS.get(record.levelname, LEVEL_COLORS["INFO"])
        timestamp = self.formatTime(record, "%H:%M:%S")
        return (
            f"{TIMESTAMP_COLOR}[{timestamp}]{RESET} "
            f"{color}{BOLD}{record.levelname:8}{RESET} "
            f"{DIM}{record.name}{RESET} {record.getMessage()}"
        )


def setup_logging(level: int = logging.INFO, use_json: bool = False) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Logging level (default: INFO)
        use_json: Emit one JSON object per line instead of the console layout.
    """
    renderer = structlog.processors.JSONRenderer() if use_json else ConsoleRenderer(colored=True)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso" if use_json else "%H:%M:%S", utc=use_json),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(StdlibFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, noisy_level))


def level_from_name(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)
