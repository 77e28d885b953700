"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests. It pins
the environment before any import that might build settings.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOG_FORMAT", "json")
# Root handlers belong to pytest (caplog); setup must not replace them
os.environ.setdefault("LOG_CONFIGURE_ROOT", "false")

import logging  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
from starlette.types import Message  # noqa: E402

TELEMETRY_LOGGER = "request_telemetry"


def make_scope(
    method: str = "GET",
    path: str = "/orders",
    query_string: bytes = b"",
    headers: list[tuple[bytes, bytes]] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build a minimal ASGI http scope."""
    scope: dict[str, Any] = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("latin-1"),
        "root_path": "",
        "query_string": query_string,
        "headers": headers or [],
    }
    scope.update(extra)
    return scope


class FakeReceive:
    """ASGI receive returning the given body chunks, then a disconnect."""

    def __init__(self, *chunks: bytes) -> None:
        self._messages: list[Message] = [
            {"type": "http.request", "body": chunk, "more_body": index < len(chunks) - 1}
            for index, chunk in enumerate(chunks or (b"",))
        ]
        self.calls = 0

    async def __call__(self) -> Message:
        self.calls += 1
        if self._messages:
            return self._messages.pop(0)
        return {"type": "http.disconnect"}


class RecordingSend:
    """ASGI send collecting every message."""

    def __init__(self) -> None:
        self.messages: list[Message] = []

    async def __call__(self, message: Message) -> None:
        self.messages.append(message)

    @property
    def start(self) -> Message | None:
        for message in self.messages:
            if message["type"] == "http.response.start":
                return message
        return None

    @property
    def body(self) -> bytes:
        return b"".join(
            message.get("body", b"")
            for message in self.messages
            if message["type"] == "http.response.body"
        )


@pytest.fixture
def telemetry_records(caplog: pytest.LogCaptureFixture):
    """Return a callable listing records emitted on the telemetry logger."""
    caplog.set_level(logging.DEBUG, logger=TELEMETRY_LOGGER)

    def _records() -> list[logging.LogRecord]:
        return [record for record in caplog.records if record.name == TELEMETRY_LOGGER]

    return _records
