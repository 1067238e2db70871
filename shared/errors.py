"""
Shared error handling for Case Cache Sync.

Protocol paths never raise into business code. They return an
``OperationResult`` whose ``error_kind`` names the failure class:

- BACKEND_UNAVAILABLE: connection/timeout errors from Redis
- DEGRADED: operation skipped because the backend is known to be down
- POLICY_DENIED: permission or rate-limit denial
- MALFORMED_INPUT: bad, stale, oversized or wrong-channel messages
- SERIALIZATION_FAILED: message could not be encoded for publish
- OPERATION_FAILED: any other error inside a guarded operation
- IGNORED: well-formed input this component does not act on

Exceptions are reserved for construction and startup failures.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, Optional

import redis.exceptions


class ErrorKind(str, Enum):
    """Classified failure kinds for guarded operations."""
    BACKEND_UNAVAILABLE = "backend_unavailable"
    DEGRADED = "degraded"
    POLICY_DENIED = "policy_denied"
    MALFORMED_INPUT = "malformed_input"
    SERIALIZATION_FAILED = "serialization_failed"
    OPERATION_FAILED = "operation_failed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a guarded operation; truthy only on success."""
    success: bool
    error_kind: Optional[ErrorKind] = None
    detail: Optional[str] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, detail: Optional[str] = None) -> "OperationResult":
        return cls(True, None, detail)

    @classmethod
    def failed(cls, error_kind: ErrorKind, detail: Optional[str] = None) -> "OperationResult":
        return cls(False, error_kind, detail)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "detail": self.detail
        }


_CONNECTION_MARKERS = ("Connection", "connection", "timeout", "Unable to connect")


def is_connection_error(exc: BaseException) -> bool:
    """Return True when an exception signals backend unavailability."""
    if isinstance(exc, (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError)):
        return True
    if isinstance(exc, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True

    message = str(exc)
    if not message:
        return False
    return any(marker in message for marker in _CONNECTION_MARKERS)


class CacheSyncException(Exception):
    """Base exception for Case Cache Sync."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a serializable error payload."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


class BackendUnavailableError(CacheSyncException):
    """Cache backend could not be reached."""

    def __init__(self, message: str = "Cache backend unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("BACKEND_UNAVAILABLE", message, details)


class MessageValidationError(CacheSyncException):
    """Invalidation message failed validation."""

    def __init__(self, message: str = "Invalid invalidation message", details: Optional[Dict[str, Any]] = None):
        super().__init__("MESSAGE_VALIDATION_ERROR", message, details)


class SerializationError(CacheSyncException):
    """Invalidation message could not be serialized."""

    def __init__(self, message: str = "Message serialization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERIALIZATION_ERROR", message, details)


class ConfigurationError(CacheSyncException):
    """Invalid service configuration."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class UnsupportedMessageError(MessageValidationError):
    """Well-formed invalidation message naming an action or resource type this build does not know."""

    def __init__(self, message: str = "Unsupported invalidation message", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = "UNSUPPORTED_MESSAGE"
