"""Logging and observability configuration using Pydantic Logfire.

All modules use Python's standard logging library (logging.getLogger(__name__)),
and Logfire captures and enriches these logs once configured.

Standard usage:
    import logging
    logger = logging.getLogger(__name__)
    logger.info("Message", extra={"key": "value"})

Structured logging utilities:
    log_with_context(logger, "info", "Pipeline finished", day="2024-03-04", visible=12)
"""

import logging

import logfire

from opscore.core.config import settings


def configure_logfire() -> None:
    """Configure Pydantic Logfire with token from environment.

    Nothing is shipped unless a token is present, so embedding surfaces can call
    this unconditionally.
    """
    logfire.configure(
        token=settings.logfire_token,
        service_name="opscore",
        service_version="0.1.0",
        environment=settings.environment,
        send_to_logfire="if-token-present",
    )

    logger = logging.getLogger(__name__)
    logger.info("Logfire configured successfully")


def span(name: str) -> logfire.LogfireSpan:
    """Create a custom span for service layer functions.

    Usage:
        with span("pipeline_service.run_for_date"):
            # Your service logic here
            pass
    """
    return logfire.span(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context: object,
) -> None:
    """Log a message with structured context fields.

    Args:
        logger: Logger instance to use
        level: Log level ("debug", "info", "warning", "error", "critical")
        message: Log message
        **context: Additional context fields (company_id, day, stage, etc.)

    Usage:
        log_with_context(logger, "info", "Coverage applied", day="2024-03-04", dropped=3)
    """
    log_method = getattr(logger, level.lower())
    log_method(message, extra=context)


def log_with_company_context(
    logger: logging.Logger,
    level: str,
    message: str,
    company_id: str | None = None,
    **extra: object,
) -> None:
    """Log a message with company context.

    Usage:
        log_with_company_context(logger, "info", "Today resolved", company_id="c1", day="2024-03-04")
    """
    context = {"company_id": company_id, **extra} if company_id else extra
    log_with_context(logger, level, message, **context)
