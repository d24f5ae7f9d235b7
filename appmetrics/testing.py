"""Testing utilities for appmetrics.

Helpers for exercising registries and metrics in unit tests:
- RecordingReporter: Reporter that records start/stop calls and snapshots
- ManualClock: Clock advanced explicitly by the test
- run_concurrently: Release many threads at once against the same call

Example:
    >>> from appmetrics.testing import run_concurrently
    >>> results = run_concurrently(lambda: registry.counter(key), workers=16)
    >>> assert all(r is results[0] for r in results)
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, TypeVar


if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from appmetrics.keys import MetricKey
    from appmetrics.metrics import Metric
    from appmetrics.registry import MetricsRegistry


T = TypeVar("T")


class RecordingReporter:
    """Reporter double that remembers what the lifecycle did to it.

    Example:
        >>> reporter = RecordingReporter()
        >>> lifecycle.initialize(reporters=[reporter])
        >>> assert reporter.started
        >>> reporter.report()
    """

    def __init__(self, fail_on_start: bool = False, fail_on_stop: bool = False) -> None:
        self.fail_on_start = fail_on_start
        self.fail_on_stop = fail_on_stop
        self.registry: MetricsRegistry | None = None
        self.start_calls = 0
        self.stop_calls = 0
        self.reports: list[Mapping[MetricKey, Metric]] = []

    @property
    def started(self) -> bool:
        return self.start_calls > self.stop_calls

    def start(self, registry: MetricsRegistry) -> None:
        self.start_calls += 1
        if self.fail_on_start:
            raise RuntimeError("reporter failed to start")
        self.registry = registry

    def stop(self) -> None:
        self.stop_calls += 1
        if self.fail_on_stop:
            raise RuntimeError("reporter failed to stop")

    def report(self) -> Mapping[MetricKey, Metric]:
        """Take a snapshot of the registry, as a real reporter would."""
        if self.registry is None:
            raise RuntimeError("reporter has not been started")
        snapshot = self.registry.snapshot()
        self.reports.append(snapshot)
        return snapshot


class ManualClock:
    """Clock that only moves when told to.

    Example:
        >>> clock = ManualClock()
        >>> meter = Meter(clock=clock)
        >>> clock.advance(5.0)
    """

    def __init__(self, start_seconds: float = 0.0) -> None:
        self._nanos = int(start_seconds * 1e9)
        self._lock = threading.Lock()

    def tick(self) -> int:
        with self._lock:
            return self._nanos

    def time(self) -> float:
        with self._lock:
            return self._nanos / 1e9

    def advance(self, seconds: float) -> None:
        """Move the clock forward by ``seconds``."""
        with self._lock:
            self._nanos += int(seconds * 1e9)


def run_concurrently(
    fn: Callable[..., T],
    *args: Any,
    workers: int = 8,
    timeout: float = 10.0,
) -> list[T]:
    """Call ``fn(*args)`` from ``workers`` threads released together.

    Every thread waits on a barrier before calling, which makes first-access
    races as likely as possible.

    Returns:
        Results in thread order. The first exception raised by any call is
        re-raised.
    """
    barrier = threading.Barrier(workers)

    def call() -> T:
        barrier.wait(timeout)
        return fn(*args)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(call) for _ in range(workers)]
        return [future.result(timeout) for future in futures]
