"""Log sink for request telemetry records.

Each request produces one record whose tags (``RequestMethod``,
``StatusCode``, ``RequestBody``...) travel as record attributes. This module
turns those records into something safe to ship:

- the request id is taken from a context variable set by the middleware
- credentials are redacted from tag values, including inside captured
  JSON or form-encoded bodies
- ``JsonFormatter`` writes every tag as a top-level field on one line
- ``configure_logging`` installs the sink on the root logger
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping
from urllib.parse import unquote_plus

from request_telemetry.core.config import LogSettings, settings

REDACTED = "[REDACTED]"

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Header names and body fields whose values never reach the sink
SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
        "api_key",
        "apikey",
        "password",
        "secret",
        "client_secret",
        "token",
        "access_token",
        "refresh_token",
    }
)

# Tags holding raw request/response text
BODY_TAGS: frozenset[str] = frozenset({"RequestBody", "ResponseBody"})

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(LogRecord("", 0, "", 0, "", None, None).__dict__) | {
    "message",
    "asctime",
    "taskName",
}


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def redact(value: Any, sensitive_keys: frozenset[str] = SENSITIVE_KEYS_DEFAULT) -> Any:
    """Replace values under sensitive keys, walking nested mappings and lists."""

    if isinstance(value, Mapping):
        return {
            key: REDACTED if str(key).lower() in sensitive_keys else redact(item, sensitive_keys)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(redact(item, sensitive_keys) for item in value)
    return value


def redact_body(text: str, sensitive_keys: frozenset[str] = SENSITIVE_KEYS_DEFAULT) -> str:
    """Redact credentials inside a captured body.

    JSON objects and arrays are redacted field by field and re-serialized
    compactly. Anything else is treated as ``application/x-www-form-urlencoded``
    and matching ``key=value`` pairs are masked. Other text is returned as is.

    Args:
        text: Body as captured for the ``RequestBody``/``ResponseBody`` tag.
        sensitive_keys: Lower-cased field names to mask.
    """

    try:
        parsed = json.loads(text)
    except ValueError:
        return _redact_form(text, sensitive_keys)

    if not isinstance(parsed, (dict, list)):
        return text
    return json.dumps(redact(parsed, sensitive_keys), ensure_ascii=False, separators=(",", ":"))


def _redact_form(text: str, sensitive_keys: frozenset[str]) -> str:
    if "=" not in text:
        return text

    pairs = []
    for pair in text.split("&"):
        name, sep, _ = pair.partition("=")
        if sep and unquote_plus(name).strip().lower() in sensitive_keys:
            pair = f"{name}={REDACTED}"
        pairs.append(pair)
    return "&".join(pairs)


def _record_extras(record: LogRecord, sensitive_keys: frozenset[str]) -> dict[str, Any]:
    """Collect the ``extra`` attributes of a record, redacted."""

    extras: dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _RECORD_ATTRS or key.startswith("_"):
            continue
        if key.lower() in sensitive_keys:
            extras[key] = REDACTED
        elif key in BODY_TAGS and isinstance(value, str):
            extras[key] = redact_body(value, sensitive_keys)
        else:
            extras[key] = redact(value, sensitive_keys)
    return extras


class RequestIdFilter(logging.Filter):
    """Attach the current request id to records that lack one."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact record extras in place so every formatter sees safe values."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in _record_extras(record, self.sensitive_keys).items():
            setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record, request tags as top-level fields.

    An exception attached with ``exc_info`` is rendered into ``exception`` so
    the whole failure stays on one line.
    """

    def __init__(
        self,
        *,
        sensitive_keys: Iterable[str] | None = None,
        ensure_ascii: bool = True,
    ) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            data["request_id"] = request_id

        data.update(_record_extras(record, self.sensitive_keys))

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    if log_settings.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    file_path = Path(log_settings.file_path or "logs/requests.log")
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if log_settings.max_bytes:
        return RotatingFileHandler(
            file_path,
            maxBytes=log_settings.max_bytes,
            backupCount=log_settings.backup_count,
            encoding="utf-8",
        )
    return logging.FileHandler(file_path, encoding="utf-8")


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install the telemetry sink as the only root handler.

    Args:
        log_settings: Sink settings; global settings when omitted.
    """

    cfg = log_settings or settings.log

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())

    if cfg.format.lower() == "plain":
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s", defaults={"request_id": "-"})
        )
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    # uvicorn keeps its own access log; the telemetry record replaces it
    logging.getLogger("uvicorn.access").propagate = False
