"""Structured logging setup."""

from __future__ import annotations

import logging
import sys
from typing import Any, Dict

import structlog

LOG_FORMATS = ("console", "json")

# Silent until the host application configures logging.
logging.getLogger("respcache").addHandler(logging.NullHandler())


def add_component(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Tag events with the cache component (``respcache.cache.manager`` -> ``manager``)."""
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["component"] = logger_name.rsplit(".", 1)[-1]
    return event_dict


def configure_logging(log_level: str = "info", log_format: str = "console") -> None:
    """Configure structlog on top of the standard library logging module."""
    renderer: Any
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            add_component,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper(), logging.INFO),
        force=True,
    )


def get_logger(name: str) -> Any:
    """
    Get a structured logger bound to the standard library logger ``name``.

    Events reach stdlib handlers, so an application that never calls
    ``configure_logging`` sees only what its own logging setup lets through.
    """
    return structlog.wrap_logger(logging.getLogger(name))
