"""Route lookup adapters.

The interceptor asks "which action will handle this request?" through
``AbstractRouteResolver`` so it never depends on a specific router.
"""

from request_telemetry.adapters.routing.base import AbstractRouteResolver, RouteValues
from request_telemetry.adapters.routing.starlette_router import StarletteRouteResolver

__all__ = [
    "AbstractRouteResolver",
    "RouteValues",
    "StarletteRouteResolver",
]
