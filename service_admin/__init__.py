"""
Admin service package for Case Cache Sync.

The admin service owns the system of record and publishes cache
invalidation messages whenever a cached entity changes.
"""
