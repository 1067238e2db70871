"""
Security package for the Admin service.

Holds the guard that authorizes, rate-limits and audits cache-mutating
operations before invalidation messages are published.
"""
