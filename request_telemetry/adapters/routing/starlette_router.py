"""Route lookup against a Starlette/FastAPI router.

The lookup runs before the request is dispatched, so it re-uses the router's
own matching rules instead of waiting for the router to annotate the scope.

Notes:
- Only full matches of endpoint routes resolve; a method mismatch (405) or a
  miss (404) does not.
- Mounted routers are searched recursively. Mounted applications without
  routes (static files, sub-apps) never resolve.
"""

from __future__ import annotations

from typing import Any, Iterable

from starlette.routing import BaseRoute, Match, Mount, Route
from starlette.types import Scope

from request_telemetry.adapters.routing.base import AbstractRouteResolver, RouteValues


def _controller_name(route: Route) -> str | None:
    tags = getattr(route, "tags", None)
    if tags:
        return str(tags[0])

    module = getattr(route.endpoint, "__module__", None)
    if not module:
        return None
    return module.rsplit(".", 1)[-1]


def _action_name(route: Route) -> str | None:
    return getattr(route.endpoint, "__name__", None)


class StarletteRouteResolver(AbstractRouteResolver):
    """Resolve routes from ``scope["app"].router``.

    Controller is the first route tag when present, otherwise the module the
    endpoint is defined in. Action is the endpoint function name.
    """

    def resolve(self, scope: Scope) -> RouteValues | None:
        app = scope.get("app")
        router = getattr(app, "router", None)
        routes = getattr(router, "routes", None)
        if not routes:
            return None
        return self._match(routes, scope)

    def _match(self, routes: Iterable[BaseRoute], scope: Scope) -> RouteValues | None:
        for route in routes:
            match, child_scope = route.matches(scope)
            if match is not Match.FULL:
                continue

            if isinstance(route, Route):
                return RouteValues(
                    controller=_controller_name(route),
                    action=_action_name(route),
                )

            if isinstance(route, Mount) and route.routes:
                nested_scope: dict[str, Any] = {**scope, **child_scope}
                resolved = self._match(route.routes, nested_scope)
                if resolved is not None:
                    return resolved
            # Any other full match (static files, websocket routes) is not an action
            return None

        return None
