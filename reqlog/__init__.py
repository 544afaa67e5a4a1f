"""Request-scoped logging for ASGI services."""
