"""
Shared utilities for Case Cache Sync.

This package aggregates common building blocks consumed by both services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with operator/message correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and the operation result taxonomy
- retry: Retry decorators for resilient backend calls
- keyspace: Namespaced cache key and pattern construction
- messages: The invalidation message wire model
- kv_store: Key-value backend and publish transport over Redis
- availability: Shared cache backend availability state

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
