"""
Structured logging for dashboard-spine.

Every module logs through ``get_logger(__name__)`` with event-style
messages and key/value fields::

    logger = get_logger(__name__)
    logger.info("dashboard_created", tenant="7", key="foo_grafana_pd", url=url)

A pass runs inside ``tenant_scope(tenant_id)`` so that nested components
(publisher, capturer, destinations) inherit ``tenant`` without passing it.

Output pipeline::

    contextvars ─► level/logger ─► scrub secrets ─► ECS names ─► JSON | console

Credentials never reach a sink: any field named like a secret
(``api_key``, ``token``, ``db_pass`` ...) is replaced with ``REDACTED``.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog._config import BoundLoggerLazyProxy
from structlog.types import EventDict, Processor, WrappedLogger

REDACTED = "REDACTED"
NOT_SET = "NOT SET"

SECRET_FIELDS = frozenset(
    {"api_key", "grafana_api_key", "token", "bot_token", "password", "db_pass", "webhook_url"}
)


def redact(value: str | None) -> str:
    """Render a secret for display without revealing it."""
    return REDACTED if value else NOT_SET


def _scrub_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    for key in SECRET_FIELDS.intersection(event_dict):
        event_dict[key] = redact(event_dict[key])
    return event_dict


class _ECSFields:
    """Rename fields for Elasticsearch and stamp the service name."""

    def __init__(self, service: str) -> None:
        self.service = service

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service.name", self.service)
        if "timestamp" in event_dict:
            event_dict["@timestamp"] = event_dict.pop("timestamp")
        if "level" in event_dict:
            event_dict["log.level"] = event_dict.pop("level")
        return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "dashspine",
) -> None:
    """Configure structlog for the process.

    Args:
        level: Minimum level name, e.g. ``"INFO"``.
        json_format: JSON lines when True, coloured console when False,
            JSON whenever stdout is not a terminal when None.
        service: Value of ``service.name`` in JSON output.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    if json_format is None:
        json_format = not sys.stdout.isatty()

    processors: list[Processor] = [
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _scrub_secrets,
    ]
    if json_format:
        processors += [
            _ECSFields(service),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    # httpx and SQLAlchemy log through stdlib logging
    logging.basicConfig(format="%(name)s %(levelname)s %(message)s", level=numeric_level)


def get_logger(name: str | None = None) -> Any:
    """Logger that stamps ``logger=<name>`` on every event."""
    if name is None:
        return structlog.get_logger()
    # ``structlog.get_logger(logger=...)`` collides with wrap_logger's own
    # ``logger`` parameter, so build the same lazy proxy directly.
    return BoundLoggerLazyProxy(None, initial_values={"logger": name})


@contextmanager
def tenant_scope(tenant_id: str, **fields: Any) -> Iterator[None]:
    """Bind ``tenant`` (and any extra fields) for the duration of a block."""
    with structlog.contextvars.bound_contextvars(tenant=tenant_id, **fields):
        yield


__all__ = [
    "NOT_SET",
    "REDACTED",
    "configure_logging",
    "get_logger",
    "redact",
    "tenant_scope",
]
