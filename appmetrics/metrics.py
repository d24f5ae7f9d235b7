"""Metric kinds stored by the registry.

This module provides the concrete instrumentation objects handed out by
MetricsRegistry. Every kind is safe to read and update from many threads at
once and exposes its kind through the Metric protocol, which is the only
thing the registry relies on.

- Counter: adjustable integer total
- Gauge: value computed on demand by a provider callable
- Histogram: distribution of values kept in a uniform or biased sample
- Meter: event rate with one/five/fifteen minute moving averages
- Timer: histogram of durations plus a meter of call rate

Example:
    >>> hits = Counter()
    >>> hits.inc()
    >>> latency = Timer(duration_unit=TimeUnit.MILLISECONDS)
    >>> with latency.time():
    ...     handle_request()
    >>> latency.percentiles(0.5, 0.99)
"""

from __future__ import annotations

import contextlib
import heapq
import math
import random
import threading
import time
from abc import abstractmethod
from enum import Enum, auto
from typing import (
    TYPE_CHECKING,
    Any,
    Generic,
    Protocol,
    TypeVar,
    runtime_checkable,
)


if TYPE_CHECKING:
    from collections.abc import Callable, Generator


T = TypeVar("T")

DEFAULT_PERCENTILES: tuple[float, ...] = (0.5, 0.75, 0.95, 0.98, 0.99, 0.999)
DEFAULT_RESERVOIR_SIZE = 1028
DEFAULT_DECAY_ALPHA = 0.015


# =============================================================================
# Enums
# =============================================================================


class MetricKind(Enum):
    """Kinds of metrics the registry can hold.

    Attributes:
        GAUGE: Value computed on demand.
        COUNTER: Adjustable integer total.
        HISTOGRAM: Sampled distribution of values.
        METER: Rate of events over time.
        TIMER: Histogram of durations plus a meter of calls.
        ATTRIBUTE_GAUGE: Gauge proxying a managed object attribute.
    """

    GAUGE = auto()
    COUNTER = auto()
    HISTOGRAM = auto()
    METER = auto()
    TIMER = auto()
    ATTRIBUTE_GAUGE = auto()


class TimeUnit(Enum):
    """Time units, valued in seconds per unit."""

    NANOSECONDS = 1e-9
    MICROSECONDS = 1e-6
    MILLISECONDS = 1e-3
    SECONDS = 1.0
    MINUTES = 60.0
    HOURS = 3600.0
    DAYS = 86400.0

    def to_seconds(self, value: float) -> float:
        """Convert a value in this unit to seconds."""
        return value * self.value

    def from_seconds(self, seconds: float) -> float:
        """Convert seconds to this unit."""
        return seconds / self.value

    def convert(self, value: float, target: TimeUnit) -> float:
        """Convert a value in this unit to ``target``."""
        return value * self.value / target.value


class SampleType(Enum):
    """Sampling strategy for histograms.

    Attributes:
        UNIFORM: Equal chance for every recorded value.
        BIASED: Exponentially favours recent values (about five minutes).
    """

    UNIFORM = auto()
    BIASED = auto()

    def new_sample(self, clock: Clock | None = None) -> Sample:
        """Create a fresh sample for this strategy."""
        if self is SampleType.UNIFORM:
            return UniformSample(DEFAULT_RESERVOIR_SIZE)
        return ExponentiallyDecayingSample(
            DEFAULT_RESERVOIR_SIZE,
            DEFAULT_DECAY_ALPHA,
            clock=clock,
        )


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class Metric(Protocol):
    """Capability shared by everything the registry stores.

    Implementations must be safe for concurrent reads and updates.
    """

    @property
    @abstractmethod
    def kind(self) -> MetricKind:
        """Kind of this metric."""
        ...


@runtime_checkable
class Clock(Protocol):
    """Time source used by meters, timers, and decaying samples."""

    @abstractmethod
    def tick(self) -> int:
        """Monotonic time in nanoseconds."""
        ...

    @abstractmethod
    def time(self) -> float:
        """Wall clock time in seconds since the epoch."""
        ...


class MonotonicClock:
    """Clock backed by ``time.monotonic_ns`` and ``time.time``."""

    def tick(self) -> int:
        return time.monotonic_ns()

    def time(self) -> float:
        return time.time()


DEFAULT_CLOCK = MonotonicClock()


# =============================================================================
# Counter and Gauge
# =============================================================================


class Counter:
    """An integer total that can be incremented and decremented.

    Example:
        >>> counter = Counter()
        >>> counter.inc()
        >>> counter.inc(5)
        >>> counter.dec()
        >>> counter.count
        5
    """

    def __init__(self) -> None:
        self._count = 0
        self._lock = threading.Lock()

    @property
    def kind(self) -> MetricKind:
        return MetricKind.COUNTER

    @property
    def count(self) -> int:
        """Current total."""
        with self._lock:
            return self._count

    def inc(self, n: int = 1) -> None:
        """Increment the counter by ``n``."""
        with self._lock:
            self._count += n

    def dec(self, n: int = 1) -> None:
        """Decrement the counter by ``n``."""
        with self._lock:
            self._count -= n

    def clear(self) -> None:
        """Reset the counter to zero."""
        with self._lock:
            self._count = 0


class Gauge(Generic[T]):
    """A metric whose value is computed each time it is read.

    Either pass a zero-argument provider or subclass and override value().
    Nothing is cached: every read calls the provider again.

    Example:
        >>> queue_depth = Gauge(lambda: len(queue))
        >>> queue_depth.value()
        3
    """

    def __init__(self, provider: Callable[[], T] | None = None) -> None:
        self._provider = provider

    @property
    def kind(self) -> MetricKind:
        return MetricKind.GAUGE

    def value(self) -> T:
        """Compute the current value."""
        if self._provider is None:
            raise NotImplementedError(
                f"{type(self).__name__} needs a provider or must override value()"
            )
        return self._provider()


# =============================================================================
# Samples
# =============================================================================


@runtime_checkable
class Sample(Protocol):
    """A bounded collection of recorded values."""

    @abstractmethod
    def update(self, value: float) -> None:
        ...

    @abstractmethod
    def values(self) -> list[float]:
        ...

    @abstractmethod
    def size(self) -> int:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class UniformSample:
    """Reservoir sample giving every recorded value an equal chance.

    Uses Vitter's Algorithm R.
    """

    def __init__(self, reservoir_size: int = DEFAULT_RESERVOIR_SIZE) -> None:
        self._reservoir_size = reservoir_size
        self._values: list[float] = []
        self._count = 0
        self._lock = threading.Lock()

    def update(self, value: float) -> None:
        with self._lock:
            self._count += 1
            if len(self._values) < self._reservoir_size:
                self._values.append(value)
                return
            index = random.randrange(self._count)
            if index < self._reservoir_size:
                self._values[index] = value

    def values(self) -> list[float]:
        with self._lock:
            return list(self._values)

    def size(self) -> int:
        with self._lock:
            return len(self._values)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
            self._count = 0


class ExponentiallyDecayingSample:
    """Forward-decaying priority reservoir biased towards recent values.

    Each value gets priority ``exp(alpha * age) / u`` with ``u`` uniform in
    (0, 1]; the reservoir keeps the highest priorities. Priorities are
    rescaled every hour to stay within float range.
    """

    RESCALE_THRESHOLD_SECONDS = 3600.0

    def __init__(
        self,
        reservoir_size: int = DEFAULT_RESERVOIR_SIZE,
        alpha: float = DEFAULT_DECAY_ALPHA,
        clock: Clock | None = None,
    ) -> None:
        self._reservoir_size = reservoir_size
        self._alpha = alpha
        self._clock = clock or DEFAULT_CLOCK
        self._heap: list[tuple[float, float]] = []
        self._lock = threading.Lock()
        self._start_time = self._now()
        self._next_scale_time = self._start_time + self.RESCALE_THRESHOLD_SECONDS

    def _now(self) -> float:
        return self._clock.tick() / 1e9

    def update(self, value: float) -> None:
        now = self._now()
        with self._lock:
            if now >= self._next_scale_time:
                self._rescale(now)
            weight = math.exp(self._alpha * (now - self._start_time))
            priority = weight / (1.0 - random.random())
            entry = (priority, value)
            if len(self._heap) < self._reservoir_size:
                heapq.heappush(self._heap, entry)
            elif self._heap[0][0] < priority:
                heapq.heapreplace(self._heap, entry)

    def _rescale(self, now: float) -> None:
        factor = math.exp(-self._alpha * (now - self._start_time))
        self._heap = [(priority * factor, value) for priority, value in self._heap]
        heapq.heapify(self._heap)
        self._start_time = now
        self._next_scale_time = now + self.RESCALE_THRESHOLD_SECONDS

    def values(self) -> list[float]:
        with self._lock:
            return [value for _, value in self._heap]

    def size(self) -> int:
        with self._lock:
            return len(self._heap)

    def clear(self) -> None:
        with self._lock:
            self._heap.clear()
            self._start_time = self._now()
            self._next_scale_time = self._start_time + self.RESCALE_THRESHOLD_SECONDS


def _percentile(sorted_values: list[float], p: float) -> float:
    """Interpolated percentile over already sorted values."""
    if not sorted_values:
        return 0.0
    position = p * (len(sorted_values) + 1)
    if position < 1:
        return sorted_values[0]
    if position >= len(sorted_values):
        return sorted_values[-1]
    lower = sorted_values[int(position) - 1]
    upper = sorted_values[int(position)]
    return lower + (position - math.floor(position)) * (upper - lower)


# =============================================================================
# Histogram
# =============================================================================


class Histogram:
    """Distribution of recorded values.

    Count, min, max, mean, and variance are exact; percentiles are computed
    from the sample selected by ``sample_type``.

    Example:
        >>> histogram = Histogram(SampleType.BIASED)
        >>> for size in (120, 80, 512):
        ...     histogram.update(size)
        >>> histogram.max
        512.0
    """

    def __init__(
        self,
        sample_type: SampleType = SampleType.UNIFORM,
        clock: Clock | None = None,
    ) -> None:
        self._sample_type = sample_type
        self._sample = sample_type.new_sample(clock)
        self._lock = threading.Lock()
        self._reset_stats()

    def _reset_stats(self) -> None:
        self._count = 0
        self._sum = 0.0
        self._min = math.inf
        self._max = -math.inf
        # Welford running mean and sum of squared deviations
        self._mean = 0.0
        self._m2 = 0.0

    @property
    def kind(self) -> MetricKind:
        return MetricKind.HISTOGRAM

    @property
    def sample_type(self) -> SampleType:
        return self._sample_type

    def update(self, value: float) -> None:
        """Record a value."""
        value = float(value)
        self._sample.update(value)
        with self._lock:
            self._count += 1
            self._sum += value
            self._min = min(self._min, value)
            self._max = max(self._max, value)
            delta = value - self._mean
            self._mean += delta / self._count
            self._m2 += delta * (value - self._mean)

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def sum(self) -> float:
        with self._lock:
            return self._sum

    @property
    def min(self) -> float:
        """Smallest recorded value, 0.0 when empty."""
        with self._lock:
            return self._min if self._count else 0.0

    @property
    def max(self) -> float:
        """Largest recorded value, 0.0 when empty."""
        with self._lock:
            return self._max if self._count else 0.0

    @property
    def mean(self) -> float:
        with self._lock:
            return self._mean if self._count else 0.0

    @property
    def std_dev(self) -> float:
        """Sample standard deviation, 0.0 with fewer than two values."""
        with self._lock:
            if self._count <= 1:
                return 0.0
            return math.sqrt(self._m2 / (self._count - 1))

    def percentiles(self, *percentiles: float) -> list[float]:
        """Compute percentiles (each in [0, 1]) over the current sample.

        Raises:
            ValueError: If a percentile is outside [0, 1].
        """
        requested = percentiles or DEFAULT_PERCENTILES
        for p in requested:
            if not 0.0 <= p <= 1.0:
                raise ValueError(f"Percentile {p} is not in [0, 1]")
        ordered = sorted(self._sample.values())
        return [_percentile(ordered, p) for p in requested]

    def values(self) -> list[float]:
        """Values currently held in the sample."""
        return self._sample.values()

    def clear(self) -> None:
        """Discard all recorded values."""
        self._sample.clear()
        with self._lock:
            self._reset_stats()


# =============================================================================
# Meter
# =============================================================================


TICK_INTERVAL_SECONDS = 5.0
_TICK_INTERVAL_NS = int(TICK_INTERVAL_SECONDS * 1e9)


class EWMA:
    """Exponentially weighted moving average of an event rate.

    ``update`` accumulates events; ``tick`` must be called every
    TICK_INTERVAL_SECONDS to fold them into the average.
    """

    def __init__(self, alpha: float, interval_seconds: float = TICK_INTERVAL_SECONDS) -> None:
        self._alpha = alpha
        self._interval_seconds = interval_seconds
        self._uncounted = 0
        self._rate = 0.0
        self._initialized = False
        self._lock = threading.Lock()

    @classmethod
    def for_minutes(cls, minutes: float) -> EWMA:
        """Create an average decaying over ``minutes`` minutes."""
        return cls(1.0 - math.exp(-TICK_INTERVAL_SECONDS / 60.0 / minutes))

    def update(self, n: int) -> None:
        with self._lock:
            self._uncounted += n

    def tick(self) -> None:
        with self._lock:
            instant_rate = self._uncounted / self._interval_seconds
            self._uncounted = 0
            if self._initialized:
                self._rate += self._alpha * (instant_rate - self._rate)
            else:
                self._rate = instant_rate
                self._initialized = True

    def rate(self, unit: TimeUnit = TimeUnit.SECONDS) -> float:
        """Current rate in events per ``unit``."""
        with self._lock:
            return self._rate * unit.value


class Meter:
    """Rate of events with mean and moving-average rates.

    Moving averages are ticked lazily on each mark or read, so a meter
    needs no background thread.

    Example:
        >>> requests = Meter("requests", TimeUnit.SECONDS)
        >>> requests.mark()
        >>> requests.one_minute_rate
    """

    def __init__(
        self,
        event_type: str = "events",
        rate_unit: TimeUnit = TimeUnit.SECONDS,
        clock: Clock | None = None,
    ) -> None:
        self._event_type = event_type
        self._rate_unit = rate_unit
        self._clock = clock or DEFAULT_CLOCK
        self._m1 = EWMA.for_minutes(1)
        self._m5 = EWMA.for_minutes(5)
        self._m15 = EWMA.for_minutes(15)
        self._count = 0
        self._lock = threading.Lock()
        self._start_tick = self._clock.tick()
        self._last_tick = self._start_tick

    @property
    def kind(self) -> MetricKind:
        return MetricKind.METER

    @property
    def event_type(self) -> str:
        """Plural name of the events measured, e.g. ``requests``."""
        return self._event_type

    @property
    def rate_unit(self) -> TimeUnit:
        return self._rate_unit

    def _tick_if_necessary(self) -> None:
        with self._lock:
            now = self._clock.tick()
            age = now - self._last_tick
            if age < _TICK_INTERVAL_NS:
                return
            self._last_tick = now - age % _TICK_INTERVAL_NS
            ticks = age // _TICK_INTERVAL_NS
        for _ in range(ticks):
            self._m1.tick()
            self._m5.tick()
            self._m15.tick()

    def mark(self, n: int = 1) -> None:
        """Record ``n`` events."""
        self._tick_if_necessary()
        with self._lock:
            self._count += n
        self._m1.update(n)
        self._m5.update(n)
        self._m15.update(n)

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def mean_rate(self) -> float:
        """Events per rate unit since the meter was created."""
        with self._lock:
            if self._count == 0:
                return 0.0
            elapsed_seconds = (self._clock.tick() - self._start_tick) / 1e9
            if elapsed_seconds <= 0:
                return 0.0
            return self._count / elapsed_seconds * self._rate_unit.value

    @property
    def one_minute_rate(self) -> float:
        self._tick_if_necessary()
        return self._m1.rate(self._rate_unit)

    @property
    def five_minute_rate(self) -> float:
        self._tick_if_necessary()
        return self._m5.rate(self._rate_unit)

    @property
    def fifteen_minute_rate(self) -> float:
        self._tick_if_necessary()
        return self._m15.rate(self._rate_unit)


# =============================================================================
# Timer
# =============================================================================


class Timer:
    """Durations of an operation plus the rate at which it is called.

    Durations are stored in nanoseconds and reported in ``duration_unit``.

    Example:
        >>> timer = Timer(TimeUnit.MILLISECONDS, TimeUnit.SECONDS)
        >>> with timer.time():
        ...     run_query()
        >>> timer.count
        1
    """

    def __init__(
        self,
        duration_unit: TimeUnit = TimeUnit.MILLISECONDS,
        rate_unit: TimeUnit = TimeUnit.SECONDS,
        clock: Clock | None = None,
    ) -> None:
        self._duration_unit = duration_unit
        self._rate_unit = rate_unit
        self._clock = clock or DEFAULT_CLOCK
        self._histogram = Histogram(SampleType.BIASED, clock=self._clock)
        self._meter = Meter("calls", rate_unit, clock=self._clock)

    @property
    def kind(self) -> MetricKind:
        return MetricKind.TIMER

    @property
    def duration_unit(self) -> TimeUnit:
        return self._duration_unit

    @property
    def rate_unit(self) -> TimeUnit:
        return self._rate_unit

    @property
    def event_type(self) -> str:
        return self._meter.event_type

    def _scale(self, nanos: float) -> float:
        return TimeUnit.NANOSECONDS.convert(nanos, self._duration_unit)

    def update(self, duration: float, unit: TimeUnit | None = None) -> None:
        """Record a duration; negative durations are ignored.

        Args:
            duration: Elapsed time.
            unit: Unit of ``duration`` (defaults to the timer's duration unit).
        """
        if duration < 0:
            return
        nanos = (unit or self._duration_unit).convert(duration, TimeUnit.NANOSECONDS)
        self._histogram.update(nanos)
        self._meter.mark()

    @contextlib.contextmanager
    def time(self) -> Generator[None, None, None]:
        """Time the enclosed block, recording even if it raises."""
        start = self._clock.tick()
        try:
            yield
        finally:
            self.update(self._clock.tick() - start, TimeUnit.NANOSECONDS)

    def time_callable(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call ``fn`` and record how long it took."""
        with self.time():
            return fn(*args, **kwargs)

    @property
    def count(self) -> int:
        return self._histogram.count

    @property
    def min(self) -> float:
        return self._scale(self._histogram.min)

    @property
    def max(self) -> float:
        return self._scale(self._histogram.max)

    @property
    def mean(self) -> float:
        return self._scale(self._histogram.mean)

    @property
    def std_dev(self) -> float:
        return self._scale(self._histogram.std_dev)

    def percentiles(self, *percentiles: float) -> list[float]:
        """Duration percentiles in the timer's duration unit."""
        return [self._scale(v) for v in self._histogram.percentiles(*percentiles)]

    def values(self) -> list[float]:
        return [self._scale(v) for v in self._histogram.values()]

    @property
    def mean_rate(self) -> float:
        return self._meter.mean_rate

    @property
    def one_minute_rate(self) -> float:
        return self._meter.one_minute_rate

    @property
    def five_minute_rate(self) -> float:
        return self._meter.five_minute_rate

    @property
    def fifteen_minute_rate(self) -> float:
        return self._meter.fifteen_minute_rate

    def clear(self) -> None:
        """Discard recorded durations (call rates are kept)."""
        self._histogram.clear()
