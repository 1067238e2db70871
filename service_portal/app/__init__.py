"""
Portal Service application package.

Structure:
- app.main: service composition and lifecycle.
- app.cache: portal-local cached views.
- app.listener: invalidation message consumer.
- app.pubsub: Redis subscription loop feeding the consumer.
- app.startup: optional cache clear on start.
"""
