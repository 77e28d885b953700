"""Route lookup interfaces.

The interceptor only needs to know which controller/action a request is
going to hit. It depends on this abstraction so any router (Starlette,
a custom ASGI dispatcher, a test double) can answer that question.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from starlette.types import Scope


@dataclass(frozen=True)
class RouteValues:
    """Route data for a matched request.

    Attributes:
        controller: Logical group of the handler (e.g. ``Orders``).
        action: Handler name within the group (e.g. ``create``).
    """

    controller: str | None
    action: str | None

    def resolved_action(self) -> str | None:
        """Return ``"Controller.Action"`` when both parts are known."""
        if self.controller is None or self.action is None:
            return None
        return f"{self.controller}.{self.action}"


class AbstractRouteResolver(ABC):
    """Interface for route lookups."""

    @abstractmethod
    def resolve(self, scope: Scope) -> RouteValues | None:
        """Look up the route a request scope will be dispatched to.

        Args:
            scope: ASGI http scope of the incoming request.

        Returns:
            RouteValues when a handler matches, None otherwise.
        """
        raise NotImplementedError
