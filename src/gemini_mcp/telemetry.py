"""Telemetry scopes for timing fetches, uploads, cache work and generation.

Disabled by default with a shared no-op context. Setting ``GEMINI_TELEMETRY=1``
or ``DEBUG=1`` turns on nested, contextvar-tracked scopes whose timings and
counters are forwarded to reporters; the built-in reporter writes them to the
log.
"""

from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
import logging
import os
import time
from types import TracebackType
from typing import Any, Protocol, Self, runtime_checkable

log = logging.getLogger(__name__)

# Context-aware state so concurrent tool calls keep separate scope paths
_scope_stack_var: ContextVar[tuple[str, ...]] = ContextVar(
    "scope_stack",
    default=(),
)


def telemetry_enabled_from_env() -> bool:
    """Whether the environment asks for telemetry."""
    return os.getenv("GEMINI_TELEMETRY") == "1" or os.getenv("DEBUG") == "1"


@runtime_checkable
class TelemetryReporter(Protocol):
    """Duck-typed protocol for telemetry reporters."""

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None: ...  # noqa: D102
    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None: ...  # noqa: D102


@dataclass(frozen=True, slots=True)
class _NoOpTelemetryContext:
    """An immutable and stateless no-op context."""

    def __call__(self, name: str, **metadata: Any) -> Self:  # noqa: ARG002
        return self

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        return None

    def count(self, name: str, increment: int = 1, **metadata: Any) -> None:
        pass

    def gauge(self, name: str, value: float, **metadata: Any) -> None:
        pass


class _EnabledTelemetryContext:
    """Scope-tracking context that forwards to reporters."""

    __slots__ = ("reporters",)

    def __init__(self, *reporters: TelemetryReporter):
        self.reporters = reporters

    def __call__(
        self, name: str, **metadata: Any
    ) -> AbstractContextManager["_EnabledTelemetryContext"]:
        return self._scope(name, **metadata)

    @contextmanager
    def _scope(self, name: str, **metadata: Any) -> Iterator["_EnabledTelemetryContext"]:
        if not name or not isinstance(name, str):
            raise ValueError("Scope name must be a non-empty string")

        parent = _scope_stack_var.get()
        scope_path = ".".join((*parent, name))
        token = _scope_stack_var.set((*parent, name))
        start = time.perf_counter()
        failed = False
        try:
            yield self
        except BaseException:
            failed = True
            raise
        finally:
            duration = time.perf_counter() - start
            _scope_stack_var.reset(token)
            self._emit(
                "record_timing",
                scope_path,
                duration,
                depth=len(parent),
                failed=failed,
                **metadata,
            )

    def count(self, name: str, increment: int = 1, **metadata: Any) -> None:
        """Record a counter metric within the current scope."""
        self._metric(name, increment, metric_type="counter", **metadata)

    def gauge(self, name: str, value: float, **metadata: Any) -> None:
        """Record a gauge metric within the current scope."""
        self._metric(name, value, metric_type="gauge", **metadata)

    def _metric(self, name: str, value: Any, **metadata: Any) -> None:
        scope_path = ".".join((*_scope_stack_var.get(), name))
        self._emit("record_metric", scope_path, value, **metadata)

    def _emit(self, method: str, scope: str, value: Any, **metadata: Any) -> None:
        for reporter in self.reporters:
            try:
                getattr(reporter, method)(scope, value, **metadata)
            except Exception as e:
                # A broken reporter must not fail the tool call
                log.error(
                    "Telemetry reporter '%s' failed: %s",
                    type(reporter).__name__,
                    e,
                    exc_info=True,
                )


_NO_OP_SINGLETON = _NoOpTelemetryContext()

type TelemetryContextProtocol = _EnabledTelemetryContext | _NoOpTelemetryContext


def TelemetryContext(  # noqa: N802
    *reporters: TelemetryReporter, enabled: bool | None = None
) -> TelemetryContextProtocol:
    """Return a telemetry context.

    Returns the shared no-op instance unless telemetry is enabled (explicitly
    or via the environment) and at least one reporter is given.
    """
    active = telemetry_enabled_from_env() if enabled is None else enabled
    if active and reporters:
        return _EnabledTelemetryContext(*reporters)
    return _NO_OP_SINGLETON


class LoggingReporter:
    """Writes every timing and metric to a logger at DEBUG level."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._log = logger or log

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None:
        self._log.debug("timing %s %.4fs %s", scope, duration, metadata)

    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None:
        self._log.debug("metric %s=%s %s", scope, value, metadata)
