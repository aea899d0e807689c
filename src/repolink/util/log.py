# src/repolink/util/log.py: Structured JSON logger.
# This module provides a centralized logging setup that outputs structured
# JSON logs through python-json-logger. It uses contextvars to inject the
# repository currently being worked on into every record, and redacts
# credentials passed as dict-style log arguments.

import contextvars
import logging
import sys
from typing import Any, Dict

from pythonjsonlogger.json import JsonFormatter

repo_context = contextvars.ContextVar('repo_context', default=None)

# Keys whose values must never reach a log sink.
REDACTED_KEYS = {"token", "access_token", "accessToken", "refresh_token", "authorization", "Authorization"}

LOGGER_NAME = "repolink"


class RepoContextFilter(logging.Filter):
    """Attaches the active repository id to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.repo = repo_context.get()
        return True


class RedactingFilter(logging.Filter):
    """A logging filter that redacts sensitive information."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, dict):
            record.args = self._redact_dict(record.args)
        return True

    def _redact_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        redacted_data = {}
        for key, value in data.items():
            if key in REDACTED_KEYS:
                redacted_data[key] = "[REDACTED]"
            elif isinstance(value, dict):
                redacted_data[key] = self._redact_dict(value)
            else:
                redacted_data[key] = value
        return redacted_data


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Configure the application logger. Safe to call more than once."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    if json_format:
        handler.setFormatter(JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s %(repo)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        ))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(repo)s] %(message)s"
        ))
    handler.addFilter(RepoContextFilter())
    handler.addFilter(RedactingFilter())
    logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
