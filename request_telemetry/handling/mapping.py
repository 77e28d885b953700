"""Exception-to-response mappings and their ordered registry.

A mapping says how one exception type is turned into an HTTP response and
how the failure is logged. The registry resolves an exception instance to at
most one mapping:

1. the first mapping (in registration order) declared for exactly the
   exception's type;
2. otherwise the first mapping (in registration order) declared for a strict
   base class of the exception's type;
3. otherwise nothing, and the exception stays unhandled.

So a more specific mapping only wins when it is registered for that exact
type; a base-class mapping catches every subclass without its own mapping.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Callable, Generic, Iterator, Sequence, TypeVar

from request_telemetry.core.errors import ConfigurationError

E = TypeVar("E", bound=Exception)


@dataclass(frozen=True)
class ExceptionMapping(Generic[E]):
    """How a single exception type is answered and logged.

    Attributes:
        exception_type: Exception class this mapping is declared for.
        build_response: Factory turning the exception into a JSON-serializable
            object (dict, list, pydantic model, dataclass...).
        status_code: HTTP status written to the client.
        log_level: Level of the request's log record.
        log_exception_stack_trace: Attach the exception to the log record.
        log_request_body: Capture the request body as a tag. Registering such
            a mapping arms body capture for every request.
        log_response_body: Tag the written JSON payload.
    """

    exception_type: type[E]
    build_response: Callable[[E], Any]
    status_code: int = HTTPStatus.OK
    log_level: int = logging.INFO
    log_exception_stack_trace: bool = False
    log_request_body: bool = False
    log_response_body: bool = False

    def __post_init__(self) -> None:
        if not (isinstance(self.exception_type, type) and issubclass(self.exception_type, Exception)):
            raise ConfigurationError(
                code="invalid_exception_mapping",
                message=f"exception_type must be an Exception subclass, got {self.exception_type!r}",
                details={"field": "exception_type"},
            )
        if not callable(self.build_response):
            raise ConfigurationError(
                code="invalid_exception_mapping",
                message="build_response must be callable",
                details={
                    "field": "build_response",
                    "exception_type": self.exception_type.__name__,
                },
            )

    def accepts(self, exc: BaseException) -> bool:
        return isinstance(exc, self.exception_type)


class ExceptionMappingRegistry:
    """Ordered collection of mappings.

    Mutable while the application is being set up; ``freeze()`` turns it
    read-only before traffic starts so concurrent lookups need no locking.
    """

    def __init__(self, mappings: Sequence[ExceptionMapping[Any]] = ()) -> None:
        self._mappings: list[ExceptionMapping[Any]] | tuple[ExceptionMapping[Any], ...] = []
        self._frozen = False
        for mapping in mappings:
            self.register(mapping)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, mapping: ExceptionMapping[Any]) -> None:
        if self._frozen:
            raise ConfigurationError(
                code="options_frozen",
                message="Exception mappings cannot be added once request handling started",
            )
        if not isinstance(mapping, ExceptionMapping):
            raise ConfigurationError(
                code="invalid_exception_mapping",
                message=f"Expected an ExceptionMapping, got {type(mapping).__name__}",
            )
        self._mappings.append(mapping)  # type: ignore[union-attr]

    def freeze(self) -> None:
        self._mappings = tuple(self._mappings)
        self._frozen = True

    def resolve(self, exc: BaseException) -> ExceptionMapping[Any] | None:
        """Find the mapping for an exception instance.

        Never raises; a miss returns None.
        """

        exc_type = type(exc)

        for mapping in self._mappings:
            if mapping.exception_type is exc_type:
                return mapping

        for mapping in self._mappings:
            if exc_type is not mapping.exception_type and issubclass(exc_type, mapping.exception_type):
                return mapping

        return None

    def __iter__(self) -> Iterator[ExceptionMapping[Any]]:
        return iter(self._mappings)

    def __len__(self) -> int:
        return len(self._mappings)
