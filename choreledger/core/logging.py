"""Logging and tracing setup backed by Pydantic Logfire.

Modules log through the standard library:

    import logging
    logger = logging.getLogger(__name__)
    logger.info("Reconciled completion record", extra={"completion_record_id": "12"})

``configure_logfire`` attaches Logfire's logging handler to the root logger, so
those records (and their ``extra`` fields) land in Logfire next to the spans
opened with ``span``.
"""

import logging
from decimal import Decimal

import logfire
from fastapi import FastAPI

from choreledger.core.config import settings


def configure_logfire() -> None:
    """Configure Logfire and route standard logging records into it."""
    logfire.configure(
        token=settings.logfire_token,
        service_name="choreledger",
        service_version="0.1.0",
        environment=settings.environment,
        send_to_logfire="if-token-present",
    )
    logging.basicConfig(level=settings.log_level.upper(), handlers=[logfire.LogfireLoggingHandler()])

    logging.getLogger(__name__).info(
        "Logfire configured",
        extra={"environment": settings.environment, "log_level": settings.log_level},
    )


def instrument_fastapi(app: FastAPI) -> None:
    """Trace every request except health checks."""
    logfire.instrument_fastapi(app, excluded_urls="/health")
    logging.getLogger(__name__).info("FastAPI instrumentation configured")


def span(name: str, **attributes: object) -> logfire.LogfireSpan:
    """Open a span around a service operation.

    Usage:
        with span("ledger_service.transfer", from_account_id=from_id):
            ...
    """
    return logfire.span(name, **attributes)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context: object,
) -> None:
    """Log a message with structured context fields, leaving out fields that are None.

    Args:
        logger: Logger instance to use
        level: Log level ("debug", "info", "warning", "error", "critical")
        message: Log message
        **context: Context fields (user_id, account_id, completion_record_id, etc.)
    """
    log_method = getattr(logger, level.lower())
    log_method(message, extra={key: value for key, value in context.items() if value is not None})


def log_money_movement(
    logger: logging.Logger,
    message: str,
    *,
    account_id: str,
    amount: Decimal,
    **extra: object,
) -> None:
    """Log a ledger write at info level with the signed amount rendered as text.

    Usage:
        log_money_movement(logger, "Posted ledger entry", account_id="3", amount=Decimal("-2.00"), type="penalty")
    """
    log_with_context(logger, "info", message, account_id=account_id, amount=str(amount), **extra)
