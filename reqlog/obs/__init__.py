"""Observability package.

Request-scoped context, masking, record rendering, sinks, the leveled
logger and the ASGI middleware that ties them to each request.
"""

__all__ = [
    "context",
    "masking",
    "formats",
    "transports",
    "logger",
    "middleware",
]
