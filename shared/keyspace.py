"""
Cache key construction for Case Cache Sync.

Keys have the shape ``{namespace}:{role}:{resource_kind}[:{param}]*``. Every
builder is a pure function of its arguments. Parameters are stringified with
``str()``; ``None`` and empty values become empty segments, so positions stay
stable. Callers must not pass parameters whose string forms collide.
"""

from enum import Enum
from typing import Any, Iterable

KEY_DELIMITER = ":"
WILDCARD = "*"
DEFAULT_NAMESPACE = "casecache"


class Role(str, Enum):
    """Owner of a cache key."""
    ADMIN = "admin"
    PORTAL = "portal"


class AdminResource:
    """Resource kinds cached by the admin service."""
    CATEGORY = "category"
    CATEGORY_LIST = "category:list"
    DATA = "data"
    DATA_LIST = "data:list"
    DATA_HOT = "data:hot"
    DATA_LATEST = "data:latest"


class PortalResource:
    """Resource kinds cached by the portal service."""
    CATEGORY_LIST = "category:list"
    DETAIL = "detail"
    HOT = "hot"
    LATEST = "latest"


def _segment(param: Any) -> str:
    if param is None:
        return ""
    if isinstance(param, Enum):
        return str(param.value)
    return str(param)


def _join(parts: Iterable[str]) -> str:
    return KEY_DELIMITER.join(parts)


def build_key(role: Role, resource_kind: str, *params: Any, namespace: str = DEFAULT_NAMESPACE) -> str:
    """Build a namespaced cache key."""
    return _join([namespace, _segment(role), resource_kind] + [_segment(p) for p in params])


def build_pattern(role: Role, resource_kind: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    """Build a wildcard pattern matching every parameter variant of a resource kind."""
    return build_key(role, resource_kind, WILDCARD, namespace=namespace)


def role_pattern(role: Role, namespace: str = DEFAULT_NAMESPACE) -> str:
    """Pattern matching every key owned by a role."""
    return _join([namespace, _segment(role), WILDCARD])


def build_rate_limit_key(operator_id: str, operation: str, window: str, window_id: int,
                         namespace: str = DEFAULT_NAMESPACE) -> str:
    """Key of a rate-limit counter for one (operator, operation, window)."""
    return _join([namespace, "rate_limit", _segment(operator_id), _segment(operation), window, str(window_id)])


def rate_limit_pattern(namespace: str = DEFAULT_NAMESPACE) -> str:
    """Pattern matching every rate-limit counter."""
    return _join([namespace, "rate_limit", WILDCARD])


def build_health_probe_key(timestamp_ms: int, namespace: str = DEFAULT_NAMESPACE) -> str:
    """Key written by the health probe."""
    return _join([namespace, "health", "check", str(timestamp_ms)])


def build_recovery_probe_key(namespace: str = DEFAULT_NAMESPACE) -> str:
    """Key written by a recovery attempt."""
    return _join([namespace, "recovery", "test"])
