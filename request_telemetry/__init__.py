"""Exception-to-JSON mapping and per-request telemetry for ASGI apps."""

from request_telemetry.adapters.routing import AbstractRouteResolver, RouteValues, StarletteRouteResolver
from request_telemetry.core.errors import ConfigurationError
from request_telemetry.core.exception_handlers import install_request_error_handling
from request_telemetry.core.middleware import RequestTelemetryMiddleware
from request_telemetry.handling.context import RequestContext, TraceContext
from request_telemetry.handling.interceptor import RequestInterceptor
from request_telemetry.handling.mapping import ExceptionMapping, ExceptionMappingRegistry
from request_telemetry.handling.options import TelemetryOptions

__all__ = [
    "AbstractRouteResolver",
    "ConfigurationError",
    "ExceptionMapping",
    "ExceptionMappingRegistry",
    "RequestContext",
    "RequestInterceptor",
    "RequestTelemetryMiddleware",
    "RouteValues",
    "StarletteRouteResolver",
    "TelemetryOptions",
    "TraceContext",
    "install_request_error_handling",
]
