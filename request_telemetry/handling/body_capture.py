"""Request/response body capture for telemetry.

Arming a request does two things:

- the ASGI ``receive`` is wrapped so every request body chunk is recorded and
  can be read again after the downstream app consumed it;
- response messages are diverted into a ``CapturedBodyBuffer`` instead of
  going to the client.

The buffer must be flushed to the real ``send`` exactly once, on every exit
path, otherwise the client never receives the response.
"""

from __future__ import annotations

import logging

from starlette.datastructures import MutableHeaders
from starlette.types import Message, Receive, Send

from request_telemetry.handling.context import RequestContext

logger = logging.getLogger(__name__)


class RequestBodyRecorder:
    """Wrap an ASGI ``receive`` and keep a copy of the request body."""

    def __init__(self, receive: Receive) -> None:
        self._receive = receive
        self._body = bytearray()
        self._complete = False

    @property
    def complete(self) -> bool:
        return self._complete

    def _record(self, message: Message) -> None:
        if message["type"] == "http.request":
            self._body += message.get("body", b"")
            if not message.get("more_body", False):
                self._complete = True
        elif message["type"] == "http.disconnect":
            self._complete = True

    async def receive(self) -> Message:
        message = await self._receive()
        self._record(message)
        return message

    async def read_all(self) -> bytes:
        """Return the whole request body, reading whatever is left unread."""

        while not self._complete:
            self._record(await self._receive())
        return bytes(self._body)


class CapturedBodyBuffer:
    """In-memory stand-in for the response output.

    Holds the ``http.response.start`` message (the latest one wins), the body
    bytes in write order, and any other response messages to replay after
    the body.
    """

    def __init__(self) -> None:
        self._start: Message | None = None
        self._body = bytearray()
        self._trailing: list[Message] = []
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    def has_start(self) -> bool:
        return self._start is not None

    async def send(self, message: Message) -> None:
        if self._released:
            raise RuntimeError("Captured response buffer was already flushed")

        message_type = message["type"]
        if message_type == "http.response.start":
            self._start = message
        elif message_type == "http.response.body":
            self._body += message.get("body", b"")
        else:
            self._trailing.append(message)

    def getvalue(self) -> bytes:
        return bytes(self._body)

    def detach(self) -> tuple[Message | None, bytes, list[Message]]:
        """Hand over the buffered messages and release the buffer."""

        captured = (self._start, self.getvalue(), list(self._trailing))
        self.release()
        return captured

    def discard(self) -> None:
        """Drop everything written so far; the buffer stays open for a new response."""

        self._start = None
        self._body = bytearray()
        self._trailing = []

    def release(self) -> None:
        self.discard()
        self._released = True


def arm(context: RequestContext) -> CapturedBodyBuffer:
    """Enable request body replay and divert the response into a buffer.

    Args:
        context: Request context; its ``receive`` and ``output`` are replaced.

    Returns:
        The buffer now receiving response messages.
    """

    recorder = RequestBodyRecorder(context.receive)
    context.receive = recorder.receive
    context.request_body = recorder

    buffer = CapturedBodyBuffer()
    context.output = buffer.send
    return buffer


async def read_captured_request_body(context: RequestContext) -> str:
    """Return the request body as text, or "" when it cannot be re-read."""

    if context.request_body is None:
        return ""
    body = await context.request_body.read_all()
    return body.decode("utf-8", errors="replace")


def read_captured_response_body(buffer: CapturedBodyBuffer) -> str:
    return buffer.getvalue().decode("utf-8", errors="replace")


async def flush(buffer: CapturedBodyBuffer, real_send: Send, *, head_request: bool = False) -> None:
    """Copy the buffered response to the client and release the buffer.

    The body goes out in a single message with ``content-length`` matching
    what was buffered. A HEAD response keeps the length it declared, since
    its body is empty on purpose. Calling this again after release does
    nothing. When nothing was written at all, nothing is sent.
    """

    if buffer.released:
        return

    start, body, trailing = buffer.detach()

    if start is None:
        if body or trailing:
            logger.warning(
                "body_capture.flush_without_start",
                extra={"buffered_bytes": len(body)},
            )
        return

    if "headers" in start and not head_request:
        headers = MutableHeaders(scope=start)
        if "content-length" in headers:
            headers["content-length"] = str(len(body))

    await real_send(start)
    await real_send({"type": "http.response.body", "body": body, "more_body": False})
    for message in trailing:
        await real_send(message)
