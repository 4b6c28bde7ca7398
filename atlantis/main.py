"""Application entry point: logging configuration and the default app.

Run locally with ``uvicorn atlantis.main:app``.
"""

from __future__ import annotations

import logging

import structlog

from atlantis.api import create_app
from atlantis.config import get_auth_settings

SETTINGS = get_auth_settings()
logging.basicConfig(level=getattr(logging, SETTINGS.log_level, logging.INFO), format="%(message)s")

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

app = create_app(settings=SETTINGS)


__all__ = ["app"]
