"""Request context helpers using ContextVars.

The middleware binds the correlation ID here so application code running
inside the request can read it without having the request object at hand.
"""

from contextvars import ContextVar
from typing import Optional


# Public ContextVars (names are stable API)
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    return request_id_var.get()
