"""
Operation metrics for the mapping core.

The service reports every operation through an injectable observer. The
core never reads anything back from it, so swapping the observer (or
using NullObserver) cannot change functional behaviour.

Invariants:
    - Observer methods never raise into the caller; the service wraps any
      injected observer in GuardedObserver
    - CountingObserver is safe to share across request threads
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Dict, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class MetricsObserver(Protocol):
    """Receives instrumentation events from the mapping core."""

    def record_attempt(self, operation: str) -> None: ...

    def record_success(self, operation: str) -> None: ...

    def record_error(self, operation: str, error: BaseException) -> None: ...

    def record_latency(self, operation: str, seconds: float) -> None: ...

    def record_count(self, operation: str, count: int) -> None: ...


class NullObserver:
    """Observer that discards everything."""

    def record_attempt(self, operation: str) -> None:
        pass

    def record_success(self, operation: str) -> None:
        pass

    def record_error(self, operation: str, error: BaseException) -> None:
        pass

    def record_latency(self, operation: str, seconds: float) -> None:
        pass

    def record_count(self, operation: str, count: int) -> None:
        pass


class GuardedObserver:
    """Forwards events to another observer, logging and dropping its errors."""

    def __init__(self, inner: MetricsObserver) -> None:
        self.inner = inner

    def _call(self, method: str, *args: Any) -> None:
        try:
            getattr(self.inner, method)(*args)
        except Exception:
            logger.warning(
                "Metrics observer failed",
                extra={"method": method, "observer": type(self.inner).__name__},
                exc_info=True,
            )

    def record_attempt(self, operation: str) -> None:
        self._call("record_attempt", operation)

    def record_success(self, operation: str) -> None:
        self._call("record_success", operation)

    def record_error(self, operation: str, error: BaseException) -> None:
        self._call("record_error", operation, error)

    def record_latency(self, operation: str, seconds: float) -> None:
        self._call("record_latency", operation, seconds)

    def record_count(self, operation: str, count: int) -> None:
        self._call("record_count", operation, count)


class CountingObserver:
    """In-process counters per operation.

    Tracks attempts, successes, errors by exception type, latency totals and
    a running total of processed items (e.g. upserted entries).

    Example:
        >>> observer = CountingObserver()
        >>> observer.record_attempt("insert")
        >>> observer.snapshot()["insert"]["attempts"]
        1
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._attempts: Dict[str, int] = defaultdict(int)
        self._successes: Dict[str, int] = defaultdict(int)
        self._errors: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._latency_total: Dict[str, float] = defaultdict(float)
        self._latency_max: Dict[str, float] = defaultdict(float)
        self._latency_samples: Dict[str, int] = defaultdict(int)
        self._items: Dict[str, int] = defaultdict(int)

    def record_attempt(self, operation: str) -> None:
        with self._lock:
            self._attempts[operation] += 1

    def record_success(self, operation: str) -> None:
        with self._lock:
            self._successes[operation] += 1

    def record_error(self, operation: str, error: BaseException) -> None:
        with self._lock:
            self._errors[operation][type(error).__name__] += 1

    def record_latency(self, operation: str, seconds: float) -> None:
        with self._lock:
            self._latency_total[operation] += seconds
            self._latency_samples[operation] += 1
            self._latency_max[operation] = max(self._latency_max[operation], seconds)

    def record_count(self, operation: str, count: int) -> None:
        with self._lock:
            self._items[operation] += count

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Return a point-in-time copy of all counters, keyed by operation."""
        with self._lock:
            operations = (
                set(self._attempts)
                | set(self._successes)
                | set(self._errors)
                | set(self._latency_samples)
                | set(self._items)
            )
            result: Dict[str, Dict[str, Any]] = {}
            for operation in sorted(operations):
                samples = self._latency_samples.get(operation, 0)
                total = self._latency_total.get(operation, 0.0)
                result[operation] = {
                    "attempts": self._attempts.get(operation, 0),
                    "successes": self._successes.get(operation, 0),
                    "errors": dict(self._errors.get(operation, {})),
                    "items": self._items.get(operation, 0),
                    "latency_seconds": {
                        "count": samples,
                        "total": total,
                        "max": self._latency_max.get(operation, 0.0),
                        "mean": total / samples if samples else 0.0,
                    },
                }
            return result
