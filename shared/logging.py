"""
Shared logging configuration for Case Cache Sync.
"""

import sys
import structlog
import logging
import time
from typing import Any, Dict, Optional
from contextvars import ContextVar

# Context variables for correlation
operator_id_var: ContextVar[Optional[str]] = ContextVar('operator_id', default=None)
message_id_var: ContextVar[Optional[str]] = ContextVar('message_id', default=None)


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured logging for a service."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _service_context_processor(service_name),
            add_correlation_context,
            add_timestamp,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def _service_context_processor(service_name: str):
    """Build a processor that stamps the owning service on every event."""

    def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return add_service_context


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add operator and message correlation to log events."""
    operator_id = operator_id_var.get()
    if operator_id:
        event_dict.setdefault("operator", operator_id)

    message_id = message_id_var.get()
    if message_id:
        event_dict["message_id"] = message_id

    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add high-precision timestamp to log events."""
    event_dict["ts"] = time.time()
    return event_dict


def bind_operator(operator_id: Optional[str]) -> None:
    """Set the operator driving the current call."""
    operator_id_var.set(operator_id)


def bind_message(message_id: Optional[str]) -> None:
    """Set the invalidation message being processed."""
    message_id_var.set(message_id)


def clear_context():
    """Clear all context variables."""
    operator_id_var.set(None)
    message_id_var.set(None)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
