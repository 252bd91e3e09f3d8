"""Structlog configuration for package-wide logging."""

from __future__ import annotations

import logging
import sys
from typing import Any, List, Optional

import structlog

from . import config

_LOGGING_CONFIGURED = False


def _rename_event_key(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    if "event" in event_dict:
        event_dict["message"] = event_dict.pop("event")
    return event_dict


def configure_logging(level: Optional[str] = None, json_output: Optional[bool] = None, force: bool = False) -> None:
    """Route structlog events through stdlib loggers named after each module."""
    global _LOGGING_CONFIGURED

    if _LOGGING_CONFIGURED and not force:
        return

    log_level = getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO)
    if json_output is None:
        json_output = config.LOG_JSON

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=force,
    )

    processors: List[Any] = [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, _rename_event_key, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _LOGGING_CONFIGURED = True


def get_logger(name: str = "invoice_export") -> Any:
    if not _LOGGING_CONFIGURED:
        configure_logging()
    return structlog.get_logger(name)
