"""Response payload builder for mapped exceptions."""

from __future__ import annotations

import json
from typing import Any

from fastapi.encoders import jsonable_encoder

from request_telemetry.handling.mapping import ExceptionMapping


def build_response_payload(mapping: ExceptionMapping[Any], exc: BaseException) -> bytes | None:
    """Run the mapping's factory and encode the result as JSON.

    Property names are kept as the factory declares them. The encoding matches
    ``JSONResponse`` (compact, UTF-8, non-ASCII kept).

    Args:
        mapping: Mapping resolved for ``exc``.
        exc: The exception raised by the downstream app.

    Returns:
        Encoded payload, or None when the mapping does not accept ``exc`` or
        the factory produced nothing to write.
    """

    if not mapping.accepts(exc):
        return None

    response_object = mapping.build_response(exc)
    if response_object is None:
        return None

    return json.dumps(
        jsonable_encoder(response_object),
        ensure_ascii=False,
        allow_nan=False,
        indent=None,
        separators=(",", ":"),
    ).encode("utf-8")
