"""Request interceptor: exception mapping and per-request telemetry.

Every request goes through ``RequestInterceptor.intercept``:

- tags the request (method, raw path, resolved action);
- optionally arms body capture;
- runs the downstream app once;
- classifies the outcome (resolved success, not resolved, handled failure,
  unhandled failure), tags it and emits exactly one log record;
- flushes the capture buffer on every exit path, before an unhandled
  exception is re-raised.

Handled failures are answered with the mapping's JSON payload and never
re-raised. Unhandled failures are logged with the exception attached and
re-raised so an outer handler can produce the 500 response. The same goes
for a mapping whose response factory itself raises: the factory's error is
logged and propagated in place of the original one.
"""

from __future__ import annotations

import logging
import re
import time
from http import HTTPStatus
from typing import Any, Awaitable, Callable, Mapping

from request_telemetry.handling.body_capture import (
    CapturedBodyBuffer,
    arm,
    flush,
    read_captured_request_body,
    read_captured_response_body,
)
from request_telemetry.handling.context import RequestContext
from request_telemetry.handling.mapping import ExceptionMapping
from request_telemetry.handling.options import TelemetryOptions
from request_telemetry.handling.payload import build_response_payload

Downstream = Callable[[RequestContext], Awaitable[None]]

JSON_CONTENT_TYPE = "application/json"

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def render_template(template: str, tags: Mapping[str, str | None]) -> str:
    """Substitute ``{Name}`` placeholders with tag values.

    A tag set to None renders as ``null``; unknown placeholders are left as-is.
    """

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in tags:
            return match.group(0)
        value = tags[name]
        return "null" if value is None else value

    return _PLACEHOLDER.sub(_replace, template)


def _elapsed_ms(started_at: float) -> float:
    return (time.perf_counter() - started_at) * 1000


def _format_elapsed(elapsed_ms: float) -> str:
    return f"{elapsed_ms:.2f}"


class RequestInterceptor:
    """Wraps one downstream invocation per request.

    Args:
        options: Frozen telemetry options shared by all requests.
        logger: Sink for the per-request record; defaults to the logger named
            in the options.
    """

    def __init__(self, options: TelemetryOptions, logger: logging.Logger | None = None) -> None:
        self._options = options
        self._logger = logger or logging.getLogger(options.logger_name)

    @property
    def options(self) -> TelemetryOptions:
        return self._options

    async def intercept(self, context: RequestContext, downstream: Downstream) -> None:
        started_at = time.perf_counter()
        trace = context.trace

        trace.add_tag("RequestMethod", context.method)
        trace.add_tag("RequestPath", context.path)
        if context.request_id:
            trace.add_tag("RequestId", context.request_id)

        route_values = self._options.route_resolver.resolve(context.scope)
        resolved_action = route_values.resolved_action() if route_values else None
        trace.add_tag("ResolvedAction", resolved_action)

        buffer: CapturedBodyBuffer | None = None
        try:
            if self._options.body_capture_enabled:
                buffer = arm(context)

            try:
                await downstream(context)
            except Exception as exc:
                elapsed_ms = _elapsed_ms(started_at)
                if not await self._try_handle_exception(context, exc, buffer, elapsed_ms):
                    trace.add_tag("StatusCode", int(HTTPStatus.INTERNAL_SERVER_ERROR))
                    level = self._options.get_log_level(context, elapsed_ms, exc)
                    self._log(level, self._options.failure_template, context, exc)
                    raise
            else:
                await self._complete(context, resolved_action, buffer, _elapsed_ms(started_at))
        finally:
            if buffer is not None:
                await flush(buffer, context.real_send, head_request=context.method == "HEAD")

    async def _complete(
        self,
        context: RequestContext,
        resolved_action: str | None,
        buffer: CapturedBodyBuffer | None,
        elapsed_ms: float,
    ) -> None:
        trace = context.trace

        if self._options.check_request_body_should_be_logged(context, elapsed_ms):
            trace.add_tag("RequestBody", await read_captured_request_body(context))

        if buffer is not None and self._options.check_response_body_should_be_logged(context, elapsed_ms):
            response_body = read_captured_response_body(buffer)
            if response_body.strip():
                trace.add_tag("ResponseBody", response_body)

        trace.add_tag("StatusCode", int(context.response.status_code))
        trace.add_tag("Elapsed", _format_elapsed(elapsed_ms))

        level = self._options.get_log_level(context, elapsed_ms, None)
        if resolved_action is not None:
            trace.add_tag("IsSuccess", True)
            self._log(level, self._options.success_template, context)
        else:
            trace.add_tag("IsSuccess", False)
            self._log(level, self._options.not_resolved_template, context)

    async def _try_handle_exception(
        self,
        context: RequestContext,
        exc: Exception,
        buffer: CapturedBodyBuffer | None,
        elapsed_ms: float,
    ) -> bool:
        trace = context.trace
        trace.add_tag("Elapsed", _format_elapsed(elapsed_ms))
        trace.add_tag("IsSuccess", False)
        trace.add_tag("ErrorMessage", str(exc))

        mapping = self._options.mappings.resolve(exc)
        if mapping is None:
            return False

        if mapping.log_request_body:
            trace.add_tag("RequestBody", await read_captured_request_body(context))

        try:
            payload = build_response_payload(mapping, exc)
        except Exception as factory_exc:
            trace.add_tag("StatusCode", int(HTTPStatus.INTERNAL_SERVER_ERROR))
            level = self._options.get_log_level(context, elapsed_ms, factory_exc)
            self._log(level, self._options.failure_template, context, factory_exc)
            raise

        written = await self._write_mapped_response(context, mapping, payload, buffer)

        if mapping.log_response_body and written and payload:
            trace.add_tag("ResponseBody", payload.decode("utf-8", errors="replace"))

        trace.add_tag("StatusCode", int(context.response.status_code))

        logged_exc = exc if mapping.log_exception_stack_trace else None
        self._log(mapping.log_level, self._options.failure_template, context, logged_exc)
        return True

    async def _write_mapped_response(
        self,
        context: RequestContext,
        mapping: ExceptionMapping[Any],
        payload: bytes | None,
        buffer: CapturedBodyBuffer | None,
    ) -> bool:
        """Answer the client with the mapping's status and payload.

        A response that already reached the client cannot be replaced; in that
        case nothing is written and False is returned. A response still held
        in the capture buffer is dropped whole, so the client only sees the
        mapped one.
        """

        if buffer is None and context.response.started:
            context.trace.add_tag("ResponseAlreadyStarted", True)
            return False

        if buffer is not None:
            buffer.discard()

        body = payload or b""
        await context.send(
            {
                "type": "http.response.start",
                "status": int(mapping.status_code),
                "headers": [
                    (b"content-type", JSON_CONTENT_TYPE.encode("latin-1")),
                    (b"content-length", str(len(body)).encode("latin-1")),
                ],
            }
        )
        await context.send({"type": "http.response.body", "body": body, "more_body": False})
        return payload is not None

    def _log(
        self,
        level: int,
        template: str | None,
        context: RequestContext,
        exc: BaseException | None = None,
    ) -> None:
        tags = context.trace.tags
        message = render_template(template or "", tags)
        extra: dict[str, Any] = {"message_template": template}
        extra.update(tags)
        self._logger.log(
            level,
            message,
            exc_info=(type(exc), exc, exc.__traceback__) if exc is not None else None,
            extra=extra,
        )
