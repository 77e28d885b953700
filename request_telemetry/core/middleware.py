"""ASGI middleware running the request interceptor.

Implemented as pure ASGI middleware (not BaseHTTPMiddleware) so the response
stream can be diverted into a capture buffer and exceptions raised by the
downstream app reach the interceptor unwrapped.

The middleware also carries request correlation:
- Accepts the incoming request id header or generates a UUID
- Stores it in contextvars and ``request.state.request_id`` for the request
- Echoes it on the response start message
- Clears the context after the request so it does not leak

Usage:
    app.add_middleware(RequestTelemetryMiddleware, options=options)
"""

from __future__ import annotations

import logging
import uuid

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Receive, Scope, Send

from request_telemetry.core.config import settings
from request_telemetry.core.logging import clear_request_id, set_request_id
from request_telemetry.handling.context import RequestContext
from request_telemetry.handling.interceptor import RequestInterceptor
from request_telemetry.handling.options import TelemetryOptions


class RequestTelemetryMiddleware:
    """Map exceptions to JSON responses and log one record per request.

    Options are validated and frozen here if setup did not already do it, so
    a misconfiguration fails when the middleware stack is built.
    """

    def __init__(
        self,
        app: ASGIApp,
        options: TelemetryOptions,
        logger: logging.Logger | None = None,
        request_id_header: str | None = None,
    ) -> None:
        if not options.frozen:
            options.validate()
            options.freeze()

        self.app = app
        self.interceptor = RequestInterceptor(options, logger)
        self.request_id_header = request_id_header or settings.log.request_id_header

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = Headers(scope=scope).get(self.request_id_header) or str(uuid.uuid4())
        scope.setdefault("state", {})["request_id"] = request_id
        set_request_id(request_id)

        context = RequestContext(
            scope=scope,
            receive=receive,
            real_send=send,
            request_id=request_id,
            request_id_header=self.request_id_header,
        )
        try:
            await self.interceptor.intercept(context, self._call_downstream)
        finally:
            clear_request_id()

    async def _call_downstream(self, context: RequestContext) -> None:
        await self.app(context.scope, context.receive, context.send)
