"""
Admin Service application package.

Structure:
- app.main: service composition and lifecycle.
- app.security: permission, rate-limit and audit guard.
- app.monitoring: cache backend failure monitor.
- app.cache: admin cache store, invalidation publisher and statistics.
"""
