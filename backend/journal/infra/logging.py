"""Structured logging helpers shared by every journal module."""

from __future__ import annotations

import logging
from typing import Any, Mapping

__all__ = ["KeyValueFormatter", "configure_logging", "get_logger"]

ROOT_LOGGER_NAME = "backend.journal"
DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Attributes present on every LogRecord; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


class KeyValueFormatter(logging.Formatter):
    """Append ``extra=`` fields to each line as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if not extras:
            return base
        rendered = " ".join(f"{key}={value!r}" for key, value in sorted(extras.items()))
        return f"{base} {rendered}"


def get_logger(name: str) -> logging.Logger:
    """Return a module logger."""

    return logging.getLogger(name)


def configure_logging(config: Mapping[str, Any] | None = None) -> logging.Logger:
    """Install the key=value handler on the package root logger.

    Safe to call more than once; the handler is only attached the first time.
    """

    config = config or {}
    level_name = str(config.get("level", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    if not any(getattr(handler, "_journal_handler", False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(KeyValueFormatter(str(config.get("format", DEFAULT_FORMAT))))
        handler._journal_handler = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    return root
