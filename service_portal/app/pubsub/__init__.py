"""Publish/subscribe transport for the Portal service."""
