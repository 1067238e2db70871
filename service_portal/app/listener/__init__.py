"""Invalidation message handling for the Portal service."""
