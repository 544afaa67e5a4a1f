"""ASGI middleware for request correlation and access logging."""

import secrets
import time
from typing import Any, Callable, Optional

from starlette.datastructures import Headers, MutableHeaders

from reqlog.obs.context import request_id_var
from reqlog.obs.logger import Logger, get_logger
from reqlog.types import CorrelationContext, Severity

_FINAL_MESSAGES = ("http.response.body", "http.response.pathsend")


def generate_request_id() -> str:
    # 4 random bytes, 8 hex chars
    return secrets.token_hex(4)


def severity_for_status(status_code: int) -> Severity:
    if status_code >= 500:
        return Severity.ERROR
    if status_code >= 400:
        return Severity.WARN
    return Severity.HTTP


class RequestLoggingMiddleware:
    """Tags every request with a correlation ID and logs it once it completes.

    The ID comes from the inbound correlation header when the client sent a
    non-empty one, otherwise it is generated. It is exposed as
    ``request.state.request_id``, bound to ``request_id_var`` and echoed on
    the response. Requests whose path contains one of the skip routes are
    not timed or logged. Everything else produces exactly one record when
    the last chunk of the response body has been handed to the server.
    """

    def __init__(self, app: Any, logger: Optional[Logger] = None, settings=None):
        if settings is None:
            from reqlog.config import settings
        self.app = app
        self.logger = logger or get_logger()
        self.skip_routes = tuple(settings.LOG_SKIP_ROUTES)
        self.header_name = settings.REQUEST_ID_HEADER.lower()

    async def __call__(self, scope: dict, receive: Callable, send: Callable[[dict], Any]):
        if scope.get("type") != "http":
            return await self.app(scope, receive, send)

        request_id = Headers(scope=scope).get(self.header_name) or generate_request_id()
        state = scope.setdefault("state", {})
        state["request_id"] = request_id
        token = request_id_var.set(request_id)

        correlation: Optional[CorrelationContext] = None
        if not self.is_skipped(scope.get("path", "")):
            correlation = CorrelationContext(request_id=request_id, start_time=time.monotonic())
            state["correlation"] = correlation

        status_code = 500
        finished = False

        async def send_wrapper(message: dict):
            nonlocal status_code, finished
            if message.get("type") == "http.response.start":
                status_code = int(message.get("status", 200))
                message.setdefault("headers", [])
                MutableHeaders(scope=message)[self.header_name] = request_id
            await send(message)
            if (
                correlation is not None
                and not finished
                and message.get("type") in _FINAL_MESSAGES
                and not message.get("more_body", False)
            ):
                finished = True
                self.on_finish(scope, correlation, status_code)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            request_id_var.reset(token)

    def is_skipped(self, path: str) -> bool:
        return any(route in path for route in self.skip_routes)

    def on_finish(self, scope: dict, correlation: CorrelationContext, status_code: int) -> None:
        # Clamp in case the clock misbehaves
        duration = max(0, int((time.monotonic() - correlation.start_time) * 1000))
        method = scope.get("method", "")
        url = scope.get("path", "")
        query = scope.get("query_string", b"")
        if query:
            url = f"{url}?{query.decode('latin-1')}"
        client = scope.get("client")

        fields = {
            "requestId": correlation.request_id,
            "method": method,
            "url": url,
            "statusCode": status_code,
            "duration": duration,
            "ip": client[0] if client else None,
            "userAgent": Headers(scope=scope).get("user-agent"),
        }
        message = f"{method} {url} {status_code} - {duration}ms"
        self.logger.log(severity_for_status(status_code), message, fields)
