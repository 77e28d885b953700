"""Per-request state threaded through the interceptor.

A ``RequestContext`` is created for one ASGI http request and dropped when
the request completes. Nothing in it is shared between requests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping

from starlette.datastructures import MutableHeaders
from starlette.types import Message, Receive, Scope, Send

if TYPE_CHECKING:
    from request_telemetry.handling.body_capture import RequestBodyRecorder


class TraceContext:
    """Tags describing one request.

    Values are stored as strings (``None`` is kept as ``None``); adding a tag
    twice keeps the last value.
    """

    def __init__(self) -> None:
        self._tags: dict[str, str | None] = {}

    def add_tag(self, key: str, value: Any) -> None:
        self._tags[key] = None if value is None else str(value)

    def get(self, key: str) -> str | None:
        return self._tags.get(key)

    @property
    def tags(self) -> Mapping[str, str | None]:
        return MappingProxyType(self._tags)

    def __contains__(self, key: object) -> bool:
        return key in self._tags

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"TraceContext(tags={self._tags!r})"


@dataclass
class ResponseState:
    """What the downstream app has told the client so far."""

    status_code: int = 200
    content_type: str | None = None
    started: bool = False


def raw_target(scope: Scope) -> str:
    """Return the request target as received: raw path plus query string."""

    raw_path = scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else scope.get("path", "")
    query = scope.get("query_string", b"")
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path


@dataclass
class RequestContext:
    """Explicit per-request context handed to the interceptor.

    Attributes:
        scope: ASGI http scope.
        receive: Receive callable the downstream app reads from.
        real_send: The server's send callable.
        output: Where response messages currently go (``real_send`` or a
            capture buffer once armed).
        trace: Tags for this request.
        response: Status/content-type observed on the way out.
        request_body: Recorder installed when body capture is armed.
        request_id: Correlation id echoed on the response.
        request_id_header: Header name used to echo ``request_id``.
    """

    scope: Scope
    receive: Receive
    real_send: Send
    output: Send = field(init=False)
    trace: TraceContext = field(default_factory=TraceContext)
    response: ResponseState = field(default_factory=ResponseState)
    request_body: RequestBodyRecorder | None = None
    request_id: str | None = None
    request_id_header: str = "X-Request-ID"

    def __post_init__(self) -> None:
        self.output = self.real_send

    @property
    def method(self) -> str:
        return self.scope.get("method", "")

    @property
    def path(self) -> str:
        return raw_target(self.scope)

    async def send(self, message: Message) -> None:
        """Send callable handed to the downstream app.

        Records the status line and content type, echoes the request id, and
        forwards to the current output.
        """

        if message["type"] == "http.response.start":
            message.setdefault("headers", [])
            headers = MutableHeaders(scope=message)
            if self.request_id and self.request_id_header not in headers:
                headers.append(self.request_id_header, self.request_id)
            self.response.status_code = int(message["status"])
            self.response.content_type = headers.get("content-type")
            self.response.started = True

        await self.output(message)
