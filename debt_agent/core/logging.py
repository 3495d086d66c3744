"""
Structured logging configuration with correlation context.
"""
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

from debt_agent import __version__

# Context variables for operation-scoped data
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
debt_id_var: ContextVar[Optional[str]] = ContextVar('debt_id', default=None)
sweep_var: ContextVar[Optional[str]] = ContextVar('sweep', default=None)

_service_context: Dict[str, str] = {
    "service": "debt-collection-agent",
    "version": __version__,
    "environment": "development",
}


def add_correlation_id(
    logger, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add correlation ID to log events."""
    correlation_id = correlation_id_var.get()
    if not correlation_id:
        correlation_id = str(uuid.uuid4())[:8]
        correlation_id_var.set(correlation_id)

    event_dict["correlation_id"] = correlation_id
    return event_dict


def add_operation_context(
    logger, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add debt and sweep context to log events."""
    debt_id = debt_id_var.get()
    if debt_id and "debt_id" not in event_dict:
        event_dict["debt_id"] = debt_id

    sweep = sweep_var.get()
    if sweep:
        event_dict["sweep"] = sweep

    return event_dict


def add_service_context(
    logger, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add service context to log events."""
    event_dict.update(_service_context)
    return event_dict


def add_timestamp(
    logger, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add ISO format timestamp to log events."""
    event_dict["timestamp"] = time.time()
    event_dict["iso_timestamp"] = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    service_name: Optional[str] = None,
    environment: Optional[str] = None,
) -> None:
    """
    Configure structured logging.

    Args:
        log_level: Minimum level passed through to the stdlib root logger
        service_name: Service name stamped on every event
        environment: Deployment environment stamped on every event
    """
    if service_name:
        _service_context["service"] = service_name
    if environment:
        _service_context["environment"] = environment

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            add_timestamp,
            add_service_context,
            add_operation_context,
            add_correlation_id,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def get_business_logger() -> structlog.stdlib.BoundLogger:
    """Get a business event logger instance."""
    return structlog.get_logger("business")


def set_correlation_id(correlation_id: str) -> None:
    """Set correlation ID in the current context."""
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    """Get correlation ID from current context."""
    return correlation_id_var.get()


@contextmanager
def correlation_context(
    correlation_id: Optional[str] = None,
    debt_id: Optional[str] = None,
    sweep: Optional[str] = None,
):
    """
    Context manager for binding correlation data to every log event inside it.

    Args:
        correlation_id: Correlation ID for the operation
        debt_id: Debt currently being processed
        sweep: Name of the running sweep
    """
    tokens = []
    if correlation_id:
        tokens.append((correlation_id_var, correlation_id_var.set(correlation_id)))
    if debt_id:
        tokens.append((debt_id_var, debt_id_var.set(debt_id)))
    if sweep:
        tokens.append((sweep_var, sweep_var.set(sweep)))

    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def log_business_event(event_type: str, **kwargs) -> None:
    """
    Log a structured business event.

    Args:
        event_type: Type of business event (reminder_sent, debt_escalated, ...)
        **kwargs: Additional event data
    """
    logger = get_business_logger()
    logger.info("Business event", event_type=event_type, **kwargs)
