"""Tests for setup wiring and the fallback handler.

Validates that setup fails fast on bad options, that the middleware and the
fallback handler are registered, and that the fallback response never leaks
exception details.
"""

import asyncio
import json
import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI

from request_telemetry.core.config import LogSettings, TelemetrySettings
from request_telemetry.core.errors import ConfigurationError
from request_telemetry.core.exception_handlers import (
    install_request_error_handling,
    unhandled_exception_handler,
)
from request_telemetry.core.logging import JsonFormatter
from request_telemetry.core.middleware import RequestTelemetryMiddleware
from request_telemetry.handling.options import TelemetryOptions


class TestInstall:
    """Test setup of the middleware and handlers."""

    def test_registers_middleware_and_fallback_handler(self):
        app = FastAPI()

        options = install_request_error_handling(app)

        assert Exception in app.exception_handlers
        assert any(m.cls is RequestTelemetryMiddleware for m in app.user_middleware)
        assert options.frozen is True

    def test_configure_callback_receives_options(self):
        app = FastAPI()
        seen: list[TelemetryOptions] = []

        options = install_request_error_handling(app, seen.append)

        assert seen == [options]

    def test_settings_seed_templates(self):
        app = FastAPI()

        options = install_request_error_handling(
            app,
            telemetry_settings=TelemetrySettings(not_resolved_template="{RequestPath} -> {StatusCode}"),
        )

        assert options.not_resolved_template == "{RequestPath} -> {StatusCode}"

    def test_missing_template_fails_at_setup(self):
        app = FastAPI()

        def configure(options: TelemetryOptions) -> None:
            options.failure_template = None

        with pytest.raises(ConfigurationError, match="failure_template"):
            install_request_error_handling(app, configure)

        assert not app.user_middleware

    def test_missing_log_level_selector_fails_at_setup(self):
        app = FastAPI()

        def configure(options: TelemetryOptions) -> None:
            options.get_log_level = None

        with pytest.raises(ConfigurationError, match="get_log_level"):
            install_request_error_handling(app, configure)

    def test_installs_log_sink_on_root_logger(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            install_request_error_handling(FastAPI(), log_settings=LogSettings(configure_root=True, level="info"))

            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
            assert root.level == logging.INFO
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

    def test_root_logger_untouched_when_sink_disabled(self):
        root = logging.getLogger()
        saved_handlers = root.handlers[:]

        install_request_error_handling(FastAPI(), log_settings=LogSettings(configure_root=False))

        assert root.handlers == saved_handlers

    def test_middleware_freezes_unfrozen_options(self):
        options = TelemetryOptions()

        RequestTelemetryMiddleware(AsyncMock(), options=options)

        assert options.frozen is True

    def test_middleware_validates_unfrozen_options(self):
        options = TelemetryOptions(success_template=None)

        with pytest.raises(ConfigurationError):
            RequestTelemetryMiddleware(AsyncMock(), options=options)


class TestUnhandledExceptionHandler:
    """Test fallback handler for exceptions no mapping matched."""

    def _request(self, request_id: str | None = "req-1") -> SimpleNamespace:
        state = SimpleNamespace(request_id=request_id) if request_id else SimpleNamespace()
        return SimpleNamespace(state=state, url=SimpleNamespace(path="/test"), method="GET")

    def test_returns_generic_500(self):
        exc = RuntimeError("Unexpected error: database connection failed")
        response = asyncio.run(unhandled_exception_handler(self._request(), exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "database connection" not in data["error"]["message"]
        assert data["error"]["request_id"] == "req-1"
        assert response.headers["X-Request-ID"] == "req-1"

    def test_never_leaks_stack_trace(self):
        exc = ValueError("Test error with details")
        response = asyncio.run(unhandled_exception_handler(self._request(), exc))

        response_text = bytes(response.body).decode()
        assert "Traceback" not in response_text
        assert "File \"" not in response_text
        assert "ValueError" not in response_text

    def test_without_request_id(self):
        response = asyncio.run(unhandled_exception_handler(self._request(None), RuntimeError("x")))

        data = json.loads(bytes(response.body).decode())
        assert data["error"]["request_id"] is None
        assert "X-Request-ID" not in response.headers
