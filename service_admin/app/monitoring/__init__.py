"""Cache backend health monitoring and degraded-mode gating."""
