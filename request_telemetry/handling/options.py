"""Options consumed by the request interceptor.

Options are assembled once during application setup, validated, then frozen.
After ``freeze()`` every request reads them concurrently without locking, so
any attempt to change them raises ``ConfigurationError``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from request_telemetry.adapters.routing import AbstractRouteResolver, StarletteRouteResolver
from request_telemetry.core.config import (
    DEFAULT_FAILURE_TEMPLATE,
    DEFAULT_NOT_RESOLVED_TEMPLATE,
    DEFAULT_SUCCESS_TEMPLATE,
    TelemetrySettings,
)
from request_telemetry.core.errors import ConfigurationError
from request_telemetry.handling.mapping import ExceptionMapping, ExceptionMappingRegistry

if TYPE_CHECKING:
    from request_telemetry.handling.context import RequestContext

LogLevelSelector = Callable[["RequestContext", float, "BaseException | None"], int]
BodyLoggingPredicate = Callable[["RequestContext", float], bool]


def default_get_log_level(context: RequestContext, elapsed_ms: float, exc: BaseException | None) -> int:
    """INFO for completed requests below 500, ERROR otherwise."""
    if exc is None and context.response.status_code <= 499:
        return logging.INFO
    return logging.ERROR


def never_log_body(context: RequestContext, elapsed_ms: float) -> bool:
    return False


class TelemetryOptions:
    """Exception mappings, message templates and logging policies.

    Attributes:
        success_template: Message for a resolved action that completed.
        failure_template: Message for a request that raised.
        not_resolved_template: Message for requests without a resolved action.
        get_log_level: ``(context, elapsed_ms, exc | None) -> level``.
        check_request_body_should_be_logged: ``(context, elapsed_ms) -> bool``.
        check_response_body_should_be_logged: ``(context, elapsed_ms) -> bool``.
        route_resolver: Lookup used to name the action a request hits.
        logger_name: Logger receiving the per-request record.
    """

    def __init__(
        self,
        *,
        success_template: str | None = DEFAULT_SUCCESS_TEMPLATE,
        failure_template: str | None = DEFAULT_FAILURE_TEMPLATE,
        not_resolved_template: str | None = DEFAULT_NOT_RESOLVED_TEMPLATE,
        get_log_level: LogLevelSelector | None = default_get_log_level,
        route_resolver: AbstractRouteResolver | None = None,
        logger_name: str = "request_telemetry",
    ) -> None:
        self.success_template = success_template
        self.failure_template = failure_template
        self.not_resolved_template = not_resolved_template
        self.get_log_level = get_log_level
        self.check_request_body_should_be_logged: BodyLoggingPredicate = never_log_body
        self.check_response_body_should_be_logged: BodyLoggingPredicate = never_log_body
        self.route_resolver: AbstractRouteResolver = route_resolver or StarletteRouteResolver()
        self.logger_name = logger_name
        self.mappings = ExceptionMappingRegistry()
        self._body_capture_enabled = False
        self._frozen = False

    @classmethod
    def from_settings(cls, telemetry_settings: TelemetrySettings) -> "TelemetryOptions":
        return cls(
            success_template=telemetry_settings.success_template,
            failure_template=telemetry_settings.failure_template,
            not_resolved_template=telemetry_settings.not_resolved_template,
            logger_name=telemetry_settings.logger_name,
        )

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise ConfigurationError(
                code="options_frozen",
                message=f"Cannot change '{name}' once request handling started",
                details={"field": name},
            )
        super().__setattr__(name, value)

    @property
    def body_capture_enabled(self) -> bool:
        return self._body_capture_enabled

    @property
    def frozen(self) -> bool:
        return self._frozen

    def add_exception_mapping(self, mapping: ExceptionMapping[Any]) -> "TelemetryOptions":
        """Register a mapping after the ones already registered.

        Returns:
            self, so registrations can be chained.
        """

        self.mappings.register(mapping)
        if mapping.log_request_body:
            self._body_capture_enabled = True
        return self

    def map_exception(
        self,
        exception_type: type[Exception],
        build_response: Callable[[Any], Any],
        **kwargs: Any,
    ) -> "TelemetryOptions":
        """Shortcut for ``add_exception_mapping(ExceptionMapping(...))``."""

        return self.add_exception_mapping(ExceptionMapping(exception_type, build_response, **kwargs))

    def enable_body_logging(
        self,
        check_request_body_should_be_logged: BodyLoggingPredicate | None = None,
        check_response_body_should_be_logged: BodyLoggingPredicate | None = None,
    ) -> None:
        """Install body logging predicates for requests that do not raise.

        Each predicate given arms body capture for every request; the
        predicate then decides, per request, whether the body becomes a tag.
        """

        if check_request_body_should_be_logged is not None:
            self._ensure_callable("check_request_body_should_be_logged", check_request_body_should_be_logged)
            self._body_capture_enabled = True
            self.check_request_body_should_be_logged = check_request_body_should_be_logged

        if check_response_body_should_be_logged is not None:
            self._ensure_callable("check_response_body_should_be_logged", check_response_body_should_be_logged)
            self._body_capture_enabled = True
            self.check_response_body_should_be_logged = check_response_body_should_be_logged

    def validate(self) -> None:
        """Fail fast on missing templates or policies.

        Raises:
            ConfigurationError: When a required option is absent or invalid.
        """

        for name in ("not_resolved_template", "success_template", "failure_template"):
            if getattr(self, name) is None:
                raise ConfigurationError(
                    code="missing_option",
                    message=f"{name} cannot be None.",
                    details={"field": name},
                )

        if self.get_log_level is None:
            raise ConfigurationError(
                code="missing_option",
                message="get_log_level cannot be None.",
                details={"field": "get_log_level"},
            )
        self._ensure_callable("get_log_level", self.get_log_level)
        self._ensure_callable("check_request_body_should_be_logged", self.check_request_body_should_be_logged)
        self._ensure_callable("check_response_body_should_be_logged", self.check_response_body_should_be_logged)

        if not isinstance(self.route_resolver, AbstractRouteResolver):
            raise ConfigurationError(
                code="invalid_option",
                message="route_resolver must implement AbstractRouteResolver.",
                details={"field": "route_resolver"},
            )

    def freeze(self) -> None:
        self.mappings.freeze()
        self._frozen = True

    @staticmethod
    def _ensure_callable(name: str, value: Any) -> None:
        if not callable(value):
            raise ConfigurationError(
                code="invalid_option",
                message=f"{name} must be callable.",
                details={"field": name},
            )
