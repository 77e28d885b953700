"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest

from request_telemetry.core.config import (
    DEFAULT_NOT_RESOLVED_TEMPLATE,
    LogSettings,
    Settings,
    TelemetrySettings,
)


def test_log_settings_read_prefixed_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("LOG_LEVEL", "error")
    monkeypatch.setenv("LOG_FORMAT", "plain")
    monkeypatch.setenv("LOG_REQUEST_ID_HEADER", "X-Correlation-ID")

    log_settings = LogSettings()

    assert log_settings.level == "error"
    assert log_settings.format == "plain"
    assert log_settings.request_id_header == "X-Correlation-ID"


def test_telemetry_templates_from_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("TELEMETRY_SUCCESS_TEMPLATE", "{ResolvedAction} done in {Elapsed} ms")
    monkeypatch.setenv("TELEMETRY_LOGGER_NAME", "api.requests")

    telemetry_settings = TelemetrySettings()

    assert telemetry_settings.success_template == "{ResolvedAction} done in {Elapsed} ms"
    assert telemetry_settings.logger_name == "api.requests"
    assert telemetry_settings.not_resolved_template == DEFAULT_NOT_RESOLVED_TEMPLATE


def test_negative_rotation_is_rejected(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("LOG_MAX_BYTES", "-1")

    with pytest.raises(ValueError):
        LogSettings()


def test_settings_compose_nested_sections():
    composed = Settings()

    assert composed.app_env == "testing"
    assert isinstance(composed.log, LogSettings)
    assert isinstance(composed.telemetry, TelemetrySettings)
