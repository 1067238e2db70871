"""
Invalidation message wire model.

The JSON field names are fixed for interop between publisher and consumers:

    {"action": "CREATE"|"UPDATE"|"DELETE"|"BATCH_DELETE"|"STATUS_UPDATE",
     "resourceType": "CASE"|"CATEGORY",
     "resourceId": "<string>",
     "cacheKeys": ["<string>", ...] | null,
     "timestamp": <int64 epoch millis> | null,
     "operator": "<string>" | null}

``cacheKeys`` lists the publisher's own keys for audit only; consumers derive
their own keys from ``action`` and ``resourceId``.
"""

import time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from shared.errors import MessageValidationError, SerializationError, UnsupportedMessageError


class InvalidationAction(str, Enum):
    """Mutation that triggered an invalidation."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    BATCH_DELETE = "BATCH_DELETE"
    STATUS_UPDATE = "STATUS_UPDATE"


class ResourceType(str, Enum):
    """Cached aggregate a message refers to."""
    CASE = "CASE"
    CATEGORY = "CATEGORY"


def current_millis() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


# Fields whose unknown values mark a message as unsupported rather than malformed
OPEN_ENUM_FIELDS = frozenset({"action", "resourceType", "resource_type"})


class InvalidationMessage(BaseModel):
    """Cache invalidation record published on every cross-service mutation."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    action: InvalidationAction
    resource_type: ResourceType = Field(alias="resourceType")
    resource_id: Optional[str] = Field(default=None, alias="resourceId")
    cache_keys: Optional[List[str]] = Field(default=None, alias="cacheKeys")
    timestamp: Optional[int] = None
    operator: Optional[str] = None

    @field_validator("resource_id", mode="before")
    @classmethod
    def _stringify_resource_id(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @classmethod
    def create(cls,
               action: InvalidationAction,
               resource_type: ResourceType,
               resource_id: Any,
               cache_keys: Optional[List[str]],
               operator: Optional[str],
               timestamp: Optional[int] = None) -> "InvalidationMessage":
        """Build a message stamped with the publish instant."""
        return cls(
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            cache_keys=list(cache_keys) if cache_keys is not None else None,
            timestamp=timestamp if timestamp is not None else current_millis(),
            operator=operator
        )

    @classmethod
    def from_json(cls, raw: str) -> "InvalidationMessage":
        """Parse a wire payload."""
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            unsupported = _unsupported_values(e)
            if unsupported:
                raise UnsupportedMessageError(
                    "Invalidation message names an unsupported value",
                    {"values": unsupported}
                ) from e
            raise MessageValidationError(
                "Invalidation message failed schema validation",
                {"errors": e.error_count()}
            ) from e
        except ValueError as e:
            raise MessageValidationError(str(e)) from e

    def to_json(self) -> str:
        """Serialize to the wire format."""
        try:
            return self.model_dump_json(by_alias=True)
        except (ValueError, TypeError) as e:
            raise SerializationError(str(e)) from e

    def age_ms(self, now_ms: int) -> Optional[int]:
        """Milliseconds elapsed since publish, or None when unstamped."""
        if self.timestamp is None:
            return None
        return now_ms - self.timestamp

    @property
    def message_id(self) -> str:
        """Correlation id for logs."""
        return f"{self.action.value}:{self.resource_type.value}:{self.resource_id}:{self.timestamp}"


def _unsupported_values(error: ValidationError) -> Dict[str, Any]:
    """Map field to rejected value when every error is an unknown enum member."""
    unsupported: Dict[str, Any] = {}
    for detail in error.errors():
        loc = detail.get("loc") or ()
        if detail.get("type") != "enum" or len(loc) != 1 or loc[0] not in OPEN_ENUM_FIELDS:
            return {}
        unsupported[str(loc[0])] = detail.get("input")
    return unsupported
