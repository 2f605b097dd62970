"""Logging configuration using structlog."""

import logging
import sys
from uuid import UUID

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, unbind_contextvars


def setup_logging(debug: bool = False) -> None:
    """Configure structlog for structured logging.

    Args:
        debug: If True, use colored console output. If False, use JSON for production.
    """
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    shared_processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        processors = shared_processors + [structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Set library log levels to reduce noise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("temporalio").setLevel(logging.INFO)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance."""
    return structlog.get_logger(name)


def bind_request_context(request_id: str | None) -> None:
    """Bind request-level context to all subsequent log calls."""
    if request_id:
        bind_contextvars(request_id=request_id)


def bind_user_context(user_id: str, email: str | None = None) -> None:
    """Bind the calling user to subsequent log calls.

    Email is only bound when settings.log_user_emails is enabled.
    """
    from src.flowsmith.core.config import get_settings

    bind_contextvars(user_id=user_id)
    if email and get_settings().log_user_emails:
        bind_contextvars(user_email=email)


def bind_automation_context(
    automation_id: UUID | None = None, execution_id: UUID | None = None
) -> None:
    """Bind automation/execution identifiers to subsequent log calls."""
    if automation_id is not None:
        bind_contextvars(automation_id=str(automation_id))
    if execution_id is not None:
        bind_contextvars(execution_id=str(execution_id))


def unbind_automation_context() -> None:
    unbind_contextvars("automation_id", "execution_id")


def clear_request_context() -> None:
    """Clear all request-scoped context."""
    clear_contextvars()
