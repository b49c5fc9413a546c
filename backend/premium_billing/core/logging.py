"""Logging and request tracing for the billing service.

structlog renders every entry (including stdlib records from uvicorn,
httpx and SQLAlchemy) through one processor chain: JSON in production,
colored console output with ``debug=True``. Each entry carries the
request's X-Request-ID when there is one, and payer emails are masked
before they reach the log sink.
"""

import logging
import logging.config
import uuid

import structlog
from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI

REQUEST_ID_HEADER = "X-Request-ID"

# Log keys whose values are payer email addresses
_EMAIL_KEYS = ("payer_email", "email")

# Chatty third-party loggers and the level they are capped at
_QUIET_LOGGERS = {
    "uvicorn.access": "WARNING",
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "sqlalchemy.engine": "WARNING",
}


def mask_email(value: str) -> str:
    """Keep the first character of the local part and the domain.

    >>> mask_email("jane.doe@example.com")
    'j***@example.com'
    """
    local, sep, domain = value.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"


def mask_payer_emails(logger, method, event_dict):
    for key in _EMAIL_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str):
            event_dict[key] = mask_email(value)
    return event_dict


def add_correlation_id(logger, method, event_dict):
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def get_correlation_id() -> str | None:
    """Current request's X-Request-ID, or None outside a request."""
    return correlation_id.get(None)


def setup_correlation_middleware(app: FastAPI) -> None:
    """Echo the client's X-Request-ID (or mint a UUID) on every response."""
    app.add_middleware(
        CorrelationIdMiddleware,
        header_name=REQUEST_ID_HEADER,
        generator=lambda: str(uuid.uuid4()),
        validator=None,
        transformer=lambda a: a,
    )


def configure_structlog(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Install the processor chain for structlog and the stdlib root logger.

    Must run before the first ``structlog.get_logger(...).info(...)`` call:
    loggers cache their processor chain on first use.
    """
    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
        mask_payer_emails,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": pre_chain,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                },
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "formatter": "structured",
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {"handlers": ["stdout"], "level": log_level},
            "loggers": {name: {"level": level} for name, level in _QUIET_LOGGERS.items()},
        }
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
