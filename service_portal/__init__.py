"""
Portal service package for Case Cache Sync.

The portal serves read-optimized cached views and keeps them consistent by
applying invalidation messages published by the admin service.
"""
