"""
Tracing for the migration components.

Stores, stage processors, the rebuilder and the orchestrator each hold a
``_tracer`` and open spans named ``calmigrate.<component>.<operation>``.
OpenTelemetry is the optional ``otel`` extra; without it, or with tracing
switched off, create_tracer() hands out a NullTracer and spans cost nothing.

MockTracer records spans so tests can assert on what a run touched, per
stage and per source row:

    >>> tracer = MockTracer()
    >>> harness = InMemoryMigrationHarness(tracer=tracer)
    >>> await harness.orchestrator.advance()
    >>> [span.name for span in tracer.spans_for(Stage.VENUES, source_id=1)]
    ['calmigrate.tracking.claim', 'calmigrate.tracking.confirm']
"""

from __future__ import annotations

import contextlib
import functools
from collections.abc import Awaitable, Callable, Iterator
from contextlib import AbstractContextManager
from typing import (
    TYPE_CHECKING,
    Any,
    Concatenate,
    NamedTuple,
    ParamSpec,
    Protocol,
    TypeVar,
    runtime_checkable,
)

from calmigrate.observability.attributes import ATTR_MIGRATION_STAGE, ATTR_SOURCE_ID

if TYPE_CHECKING:
    from calmigrate.models import Stage

try:
    from opentelemetry import trace

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False


@runtime_checkable
class Tracer(Protocol):
    """Anything that can open a named span with attributes."""

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Any]: ...

    @property
    def enabled(self) -> bool: ...


class NullTracer:
    """Tracer that records nothing."""

    @contextlib.contextmanager
    def span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Spans on the global OpenTelemetry tracer provider.

    Span attributes use the calmigrate.* keys from
    calmigrate.observability.attributes. Exporters and the provider itself
    are configured by the application.
    """

    def __init__(self, tracer_name: str) -> None:
        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Any]:
        return self._tracer.start_as_current_span(name, attributes=attributes)

    @property
    def enabled(self) -> bool:
        return True


class RecordedSpan(NamedTuple):
    """A span captured by MockTracer."""

    name: str
    attributes: dict[str, Any] | None

    @property
    def stage(self) -> str | None:
        return (self.attributes or {}).get(ATTR_MIGRATION_STAGE)

    @property
    def source_id(self) -> int | None:
        return (self.attributes or {}).get(ATTR_SOURCE_ID)


class MockTracer:
    """
    Tracer for tests: keeps every span in the order it was opened.

    Example:
        >>> tracer = MockTracer()
        >>> orchestrator = MigrationOrchestrator(..., tracer=tracer)
        >>> await orchestrator.advance()
        >>> tracer.span_names[0]
        'calmigrate.orchestrator.advance'
    """

    def __init__(self) -> None:
        self.spans: list[RecordedSpan] = []

    @contextlib.contextmanager
    def span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[None]:
        self.spans.append(RecordedSpan(name, attributes))
        yield None

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [span.name for span in self.spans]

    def spans_for(self, stage: Stage | str, source_id: int | None = None) -> list[RecordedSpan]:
        """
        Spans tagged with a stage, optionally narrowed to one source row.

        Args:
            stage: Stage (or its value) from the span's stage attribute
            source_id: Source ID the span must carry

        Returns:
            Matching spans in the order they were opened
        """
        value = stage if isinstance(stage, str) else stage.value
        return [
            span
            for span in self.spans
            if span.stage == value and (source_id is None or span.source_id == source_id)
        ]

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """
    Pick the tracer for a component.

    Args:
        name: Tracer name, usually the component's module
        enable_tracing: Component-level switch

    Returns:
        OpenTelemetryTracer when tracing is on and OpenTelemetry is
        installed, NullTracer otherwise
    """
    if enable_tracing and OTEL_AVAILABLE:
        return OpenTelemetryTracer(name)
    return NullTracer()


class _HasTracer(Protocol):
    _tracer: Tracer


SelfT = TypeVar("SelfT", bound=_HasTracer)
P = ParamSpec("P")
R = TypeVar("R")


def traced(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Callable[
    [Callable[Concatenate[SelfT, P], Awaitable[R]]],
    Callable[Concatenate[SelfT, P], Awaitable[R]],
]:
    """
    Run a coroutine method inside a span of the instance's ``_tracer``.

    Args:
        name: Span name, e.g. "calmigrate.rebuilder.rebuild"
        attributes: Static span attributes
    """

    def decorator(
        func: Callable[Concatenate[SelfT, P], Awaitable[R]],
    ) -> Callable[Concatenate[SelfT, P], Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(self: SelfT, *args: P.args, **kwargs: P.kwargs) -> R:
            with self._tracer.span(name, attributes):
                return await func(self, *args, **kwargs)

        return wrapper

    return decorator


__all__ = [
    "OTEL_AVAILABLE",
    "MockTracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "RecordedSpan",
    "Tracer",
    "create_tracer",
    "traced",
]
