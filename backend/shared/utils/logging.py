"""
Structured logging for MatchTrace services.

structlog sits on top of stdlib logging so SQLAlchemy, redis and asyncio
records come out in the same format as ours: console output in dev, one
JSON object per line everywhere else.
"""
from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from shared.config import Environment, Settings, get_settings

# Libraries whose INFO output drowns ours; SQL echo is driven by settings.debug
QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio")


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(settings: Settings) -> structlog.types.Processor:
    if settings.environment == Environment.DEV:
        return structlog.dev.ConsoleRenderer(colors=True)
    return structlog.processors.JSONRenderer()


def setup_logging(service_name: str, extra_context: dict[str, Any] | None = None) -> None:
    """
    Configure structured logging for a service.

    Args:
        service_name: The service identifier (collector, results).
        extra_context: Additional static context fields bound to every log entry.
    """
    settings = get_settings()
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings),
            ],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        service=service_name,
        instance_id=settings.instance_id,
        environment=settings.environment.value,
        **(extra_context or {}),
    )


@contextmanager
def match_context(match_id: int) -> Iterator[None]:
    """Tag every log entry emitted inside the block with the match id."""
    with structlog.contextvars.bound_contextvars(match_id=match_id):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named structured logger."""
    return structlog.get_logger(name)
