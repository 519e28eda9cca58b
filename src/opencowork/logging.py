"""Logging for OpenCowork.

All modules log through children of the `opencowork` logger:

    from opencowork.logging import get_logger
    log = get_logger("agent")

`setup_logging` attaches one handler, either a file (config `logging.file`
or the OC_LOG environment variable) or stderr when stderr is a console.
Verbosity 0-4 maps to error, warning, info, verbose and trace.

API keys pass through provider settings and error messages, so every
handler carries a filter that masks registered secret values.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from opencowork.config.schema import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("opencowork")

_LEVELS = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "VERBOSE": VERBOSE,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

_VERBOSITY = (logging.ERROR, logging.WARNING, logging.INFO, VERBOSE, TRACE)

# Chatty dependencies; raised to WARNING unless tracing.
THIRD_PARTY_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy", "httpx", "httpcore", "mcp")

MASK = "***"
_MIN_SECRET_LENGTH = 8

_secrets: set[str] = set()
_handlers: list[logging.Handler] = []
_configured = False


def register_secret(value: str | None) -> None:
    """Mask `value` wherever it appears in log output.

    Short values are ignored; masking them would garble ordinary text.
    """
    if value and len(value) >= _MIN_SECRET_LENGTH:
        _secrets.add(value)


def redact(text: str) -> str:
    for secret in sorted(_secrets, key=len, reverse=True):
        text = text.replace(secret, MASK)
    return text


class SecretFilter(logging.Filter):
    """Rewrites records so registered secrets never reach a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        if _secrets:
            try:
                message = record.getMessage()
            except (TypeError, ValueError):
                return True
            masked = redact(message)
            if masked != message:
                record.msg = masked
                record.args = None
        return True


class _LowercaseLevelFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        return super().format(record)


def resolve_level(config: LoggingConfig | None) -> int:
    """Effective level; `verbose` wins over `level`, INFO otherwise."""
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        return _VERBOSITY[max(0, min(config.verbose, len(_VERBOSITY) - 1))]
    if config.level:
        return _LEVELS.get(config.level.upper(), logging.INFO)
    return logging.INFO


def _attach(handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(
        _LowercaseLevelFormatter("%(asctime)s %(levelname)s: %(message)s", datefmt="%H:%M:%S")
    )
    handler.addFilter(SecretFilter())
    logger.addHandler(handler)
    _handlers.append(handler)


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure the `opencowork` logger once. Later calls are no-ops.

    A log file that cannot be opened falls back to stderr when stderr is
    a console, and to no output otherwise.
    """
    global _configured
    if _configured:
        return
    _configured = True

    level = resolve_level(config)
    logger.setLevel(level)

    third_party = level if level <= TRACE else max(level, logging.WARNING)
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party)

    log_path = config.file if config and config.file else os.environ.get("OC_LOG")
    if log_path:
        log_path = os.path.expanduser(log_path)
        try:
            os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)
            _attach(logging.FileHandler(log_path, mode="a", encoding="utf-8"), level)
            return
        except OSError as e:
            if not sys.stderr.isatty():
                return
            print(f"[opencowork] Failed to open log file {log_path}: {e}", file=sys.stderr)
    if sys.stderr.isatty():
        _attach(logging.StreamHandler(sys.stderr), level)


def reset_logging() -> None:
    """Detach handlers added by `setup_logging` so it can run again."""
    global _configured
    for handler in _handlers:
        logger.removeHandler(handler)
        handler.close()
    _handlers.clear()
    _configured = False
    logger.setLevel(logging.NOTSET)


def get_logger(name: str | None = None) -> logging.Logger:
    """The package logger, or its child `opencowork.<name>`."""
    if name:
        return logger.getChild(name)
    return logger
