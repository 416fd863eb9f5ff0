"""
structlog setup and the mask_* helpers.

Every line is one JSON object keyed by event_type, with an ISO-8601 UTC
timestamp, the level and the module name. LOG_FORMAT=console switches to the
coloured dev renderer; LOG_LEVEL filters before rendering. Wallet addresses,
user ids and emails go through mask_* before they are passed as fields.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog


def _rename_event(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog's positional 'event' becomes event_type (and message, for log shippers)."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    event_dict.setdefault("message", str(event_dict.get("event_type", "")))
    return event_dict


def build_processors(fmt: str) -> list[Any]:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.format_exc_info,
        _rename_event,
    ]
    if fmt == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        processors.append(structlog.processors.JSONRenderer())
    return processors


def configure_logging(fmt: str | None = None, level: str | None = None) -> None:
    """Configure structlog from arguments, falling back to LOG_FORMAT / LOG_LEVEL."""
    fmt = (fmt or os.getenv("LOG_FORMAT") or "json").strip().lower()
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    structlog.configure(
        processors=build_processors(fmt),
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_logging()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Module logger with logger=<name> bound.

        logger = get_logger(__name__)
        logger.info("wallet_added", chain="bitcoin", address=mask_address(addr))
    """
    return structlog.get_logger(name).bind(logger=name)


def mask_email(email: str | None) -> str:
    if not email or "@" not in email:
        return "[invalid-email]"
    local, _, domain = email.partition("@")
    return f"{local[:2]}***@{domain}"


def mask_address(address: str | None) -> str:
    if not address or len(address) < 10:
        return "[invalid]"
    return f"{address[:6]}...{address[-4:]}"


def mask_user_id(user_id: str | None) -> str:
    if not user_id:
        return "[no-id]"
    return f"{user_id[:8]}..."
