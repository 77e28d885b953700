"""Tests for JSON payload building from mapped exceptions."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone

import pytest
from pydantic import BaseModel

from request_telemetry.handling.mapping import ExceptionMapping
from request_telemetry.handling.payload import build_response_payload


class OrderError(Exception):
    def __init__(self, order_id: str) -> None:
        super().__init__(f"order {order_id} failed")
        self.order_id = order_id


class ErrorBody(BaseModel):
    errorCode: str
    orderId: str


@dataclass
class ErrorEnvelope:
    Error: str
    OccurredAt: datetime


def test_dict_payload_is_compact_json():
    mapping = ExceptionMapping(OrderError, lambda exc: {"error": "not_found"})

    payload = build_response_payload(mapping, OrderError("42"))

    assert payload == b'{"error":"not_found"}'


def test_property_names_are_kept_as_declared():
    mapping = ExceptionMapping(OrderError, lambda exc: ErrorBody(errorCode="E1", orderId=exc.order_id))

    payload = build_response_payload(mapping, OrderError("42"))

    assert json.loads(payload) == {"errorCode": "E1", "orderId": "42"}


def test_dataclass_with_datetime_is_encoded():
    occurred = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    mapping = ExceptionMapping(OrderError, lambda exc: ErrorEnvelope(Error=str(exc), OccurredAt=occurred))

    payload = build_response_payload(mapping, OrderError("7"))

    data = json.loads(payload)
    assert data["Error"] == "order 7 failed"
    assert data["OccurredAt"].startswith("2024-01-02T03:04:05")


def test_non_ascii_is_utf8_encoded():
    mapping = ExceptionMapping(OrderError, lambda exc: {"message": "pedido não encontrado"})

    payload = build_response_payload(mapping, OrderError("1"))

    assert payload.decode("utf-8") == '{"message":"pedido não encontrado"}'


def test_factory_returning_none_yields_no_payload():
    mapping = ExceptionMapping(OrderError, lambda exc: None)

    assert build_response_payload(mapping, OrderError("1")) is None


def test_rejected_exception_type_yields_no_payload():
    factory_calls: list[BaseException] = []
    mapping = ExceptionMapping(OrderError, lambda exc: factory_calls.append(exc) or {"x": 1})

    assert build_response_payload(mapping, ValueError("other")) is None
    assert factory_calls == []


def test_factory_errors_propagate():
    def broken_factory(exc: OrderError) -> dict:
        raise KeyError("missing")

    mapping = ExceptionMapping(OrderError, broken_factory)

    with pytest.raises(KeyError):
        build_response_payload(mapping, OrderError("1"))


def test_payload_does_not_mutate_exception():
    exc = OrderError("9")
    mapping = ExceptionMapping(OrderError, lambda e: {"id": e.order_id})

    build_response_payload(mapping, exc)

    assert exc.order_id == "9"
    assert exc.args == ("order 9 failed",)
