"""Setup entry point and the fallback handler for unmapped exceptions.

Design:
- Mapped exceptions are answered by ``RequestTelemetryMiddleware`` itself
- Unmapped exceptions are logged by the middleware, then re-raised
- ``unhandled_exception_handler`` turns them into a generic 500 without
  logging again and without leaking exception details
"""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from request_telemetry.core.config import LogSettings, TelemetrySettings, settings
from request_telemetry.core.logging import configure_logging
from request_telemetry.core.middleware import RequestTelemetryMiddleware
from request_telemetry.handling.options import TelemetryOptions


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for exceptions no mapping matched (safety net).

    The request was already logged with the exception attached, so this only
    shapes the client response.

    Args:
        request: FastAPI request object.
        exc: Exception instance (unexpected).

    Returns:
        JSONResponse with a generic error (no implementation details leaked).
    """

    request_id = getattr(request.state, "request_id", None)
    headers = {settings.log.request_id_header: request_id} if request_id else None

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": request_id,
            }
        },
        headers=headers,
    )


def install_request_error_handling(
    app: FastAPI,
    configure: Callable[[TelemetryOptions], None] | None = None,
    *,
    telemetry_settings: TelemetrySettings | None = None,
    log_settings: LogSettings | None = None,
    logger: logging.Logger | None = None,
) -> TelemetryOptions:
    """Build, validate and freeze options, then wire the log sink and middleware.

    Must be called during app initialization, before the app serves traffic.

    Args:
        app: FastAPI application instance.
        configure: Callback registering mappings and policies on the options.
        telemetry_settings: Defaults for templates and logger name; global
            settings when omitted.
        log_settings: Sink settings; the root logger is configured from them
            unless ``configure_root`` is off. Global settings when omitted.
        logger: Optional sink overriding the configured logger name.

    Returns:
        The frozen options in use.

    Raises:
        ConfigurationError: When a template, selector or mapping is invalid.

    Example:
        >>> app = FastAPI()
        >>> install_request_error_handling(
        ...     app,
        ...     lambda options: options.map_exception(
        ...         LookupError, lambda exc: {"error": "not_found"}, status_code=404
        ...     ),
        ... )
    """

    options = TelemetryOptions.from_settings(telemetry_settings or settings.telemetry)
    if configure is not None:
        configure(options)

    options.validate()
    options.freeze()

    log_cfg = log_settings or settings.log
    if log_cfg.configure_root:
        configure_logging(log_cfg)

    app.add_middleware(RequestTelemetryMiddleware, options=options, logger=logger)
    app.exception_handler(Exception)(unhandled_exception_handler)
    return options
