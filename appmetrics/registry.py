"""The metrics registry.

MetricsRegistry maps MetricKey to the one canonical metric for that key.
Every get-or-create call follows the same sequence:

    1. Look the key up without locking; return the metric if present.
    2. Build a candidate outside any lock.
    3. Insert the candidate only if the key is still absent.
    4. If another caller got there first, drop the candidate and return
       the winner.

The exclusive section in step 3 is a dict lookup plus a dict store guarded
by one of a fixed set of lock stripes chosen by key hash. Metric
construction never happens while a lock is held, so an expensive metric
being built for one key does not stall lookups or registrations of others.
A losing candidate is never returned to anyone.

Example:
    >>> registry = MetricsRegistry()
    >>> requests = registry.counter(MetricKey("Server", "requests"))
    >>> requests.inc()
    >>> registry.counter(MetricKey("Server", "requests")) is requests
    True
"""

from __future__ import annotations

import threading
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeVar

from appmetrics.config import DEFAULT_REGISTRY_CONFIG, RegistryConfig
from appmetrics.exceptions import InvalidKeyError, KindMismatchError
from appmetrics.keys import MetricKey
from appmetrics.logging import get_logger
from appmetrics.management import AttributeGauge, ManagementServer
from appmetrics.metrics import (
    Counter,
    Gauge,
    Histogram,
    Meter,
    Metric,
    MetricKind,
    SampleType,
    TimeUnit,
    Timer,
)


if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping


M = TypeVar("M", bound=Metric)

logger = get_logger(__name__)


# =============================================================================
# Concurrent Map
# =============================================================================


class ConcurrentMetricMap:
    """Mapping of MetricKey to Metric with lock-free reads.

    Writes go through put_if_absent, which holds the lock stripe for the
    key only while checking and storing. Inserts for the same key always
    use the same stripe, so exactly one of them wins.
    """

    def __init__(self, stripes: int = 32) -> None:
        self._entries: dict[MetricKey, Metric] = {}
        self._stripes = [threading.Lock() for _ in range(stripes)]

    def _stripe_for(self, key: MetricKey) -> threading.Lock:
        return self._stripes[hash(key) % len(self._stripes)]

    def get(self, key: MetricKey) -> Metric | None:
        return self._entries.get(key)

    def put_if_absent(self, key: MetricKey, metric: Metric) -> Metric | None:
        """Store ``metric`` unless ``key`` is present.

        Returns:
            The metric already stored under ``key``, or None if ``metric``
            was stored.
        """
        with self._stripe_for(key):
            existing = self._entries.get(key)
            if existing is None:
                self._entries[key] = metric
            return existing

    def copy(self) -> dict[MetricKey, Metric]:
        """Point-in-time copy of all entries."""
        return self._entries.copy()

    def clear(self) -> None:
        """Drop every entry. Only for tests; the registry never removes."""
        for stripe in self._stripes:
            stripe.acquire()
        try:
            self._entries.clear()
        finally:
            for stripe in reversed(self._stripes):
                stripe.release()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# Registry
# =============================================================================


class MetricsRegistry:
    """Directory of canonical metrics keyed by MetricKey.

    Entries are only ever added; once a metric is returned for a key, every
    later call for that key returns the same object.

    Example:
        >>> registry = MetricsRegistry()
        >>> key = MetricKey("Server", "latency")
        >>> timer = registry.timer(key, TimeUnit.MILLISECONDS, TimeUnit.SECONDS)
        >>> with timer.time():
        ...     serve()
        >>> registry.snapshot()[key] is timer
        True
    """

    def __init__(self, config: RegistryConfig | None = None) -> None:
        """Initialize registry.

        Args:
            config: Registry configuration.
        """
        self._config = config or DEFAULT_REGISTRY_CONFIG
        self._metrics = ConcurrentMetricMap(self._config.lock_stripes)

    @property
    def config(self) -> RegistryConfig:
        """Get registry configuration."""
        return self._config

    def get_or_create(
        self,
        key: MetricKey,
        factory: Callable[[], M],
        kind: MetricKind,
    ) -> M:
        """Return the metric for ``key``, creating it with ``factory`` if absent.

        ``factory`` runs at most once per call and only when the key is not
        yet registered. Its result is discarded if another caller registers
        the key first.

        Args:
            key: Identity of the metric.
            factory: Builds a candidate metric.
            kind: Kind the caller expects.

        Returns:
            The canonical metric for ``key``.

        Raises:
            InvalidKeyError: If ``key`` is not a MetricKey.
            KindMismatchError: In strict mode, if ``key`` holds another kind.
        """
        if not isinstance(key, MetricKey):
            raise InvalidKeyError(
                f"Metric key must be a MetricKey, got {type(key).__name__}",
                name=key,
                details={"metric_kind": kind.name},
            )
        existing = self._metrics.get(key)
        if existing is not None:
            return self._check_kind(key, existing, kind)

        candidate = factory()
        winner = self._metrics.put_if_absent(key, candidate)
        if winner is None:
            logger.debug("Registered metric", key=str(key), kind=kind.name)
            return candidate

        logger.debug("Lost registration race", key=str(key), kind=kind.name)
        return self._check_kind(key, winner, kind)

    def _check_kind(self, key: MetricKey, metric: Metric, requested: MetricKind) -> Any:
        # Gauges and attribute gauges share the gauge API.
        if metric.kind is requested or {metric.kind, requested} == {
            MetricKind.GAUGE,
            MetricKind.ATTRIBUTE_GAUGE,
        }:
            return metric

        if self._config.strict_kinds:
            raise KindMismatchError(
                f"Metric {key} is already registered as {metric.kind.name}",
                metric_key=str(key),
                requested_kind=requested.name,
                existing_kind=metric.kind.name,
            )
        logger.warning(
            "Metric requested as a different kind; returning existing metric",
            key=str(key),
            requested_kind=requested.name,
            existing_kind=metric.kind.name,
        )
        return metric

    def gauge(self, key: MetricKey, gauge: Gauge[Any]) -> Gauge[Any]:
        """Register a caller-built gauge under ``key`` if absent.

        Returns:
            The canonical gauge for ``key``, which is a different instance
            than ``gauge`` if another caller registered first.
        """
        return self.get_or_create(key, lambda: gauge, MetricKind.GAUGE)

    def attribute_gauge(
        self,
        key: MetricKey,
        object_name: str,
        attribute: str,
        server: ManagementServer | None = None,
    ) -> AttributeGauge:
        """Register a gauge reading ``attribute`` of a managed object.

        The object name is validated before the registry is consulted.

        Raises:
            InvalidObjectNameError: If ``object_name`` is malformed.
        """
        gauge = AttributeGauge(object_name, attribute, server=server)
        return self.get_or_create(key, lambda: gauge, MetricKind.ATTRIBUTE_GAUGE)

    def counter(self, key: MetricKey) -> Counter:
        """Get or create a counter."""
        return self.get_or_create(key, Counter, MetricKind.COUNTER)

    def histogram(
        self,
        key: MetricKey,
        sample_type: SampleType = SampleType.UNIFORM,
        *,
        biased: bool | None = None,
    ) -> Histogram:
        """Get or create a histogram.

        Args:
            key: Identity of the histogram.
            sample_type: Sampling strategy used if the histogram is created.
            biased: Shorthand overriding ``sample_type`` (True for BIASED).
        """
        if biased is not None:
            sample_type = SampleType.BIASED if biased else SampleType.UNIFORM
        return self.get_or_create(key, lambda: Histogram(sample_type), MetricKind.HISTOGRAM)

    def meter(
        self,
        key: MetricKey,
        event_type: str,
        rate_unit: TimeUnit = TimeUnit.SECONDS,
    ) -> Meter:
        """Get or create a meter.

        Args:
            key: Identity of the meter.
            event_type: Plural name of the events measured (e.g. ``requests``).
            rate_unit: Unit rates are reported in.
        """
        return self.get_or_create(key, lambda: Meter(event_type, rate_unit), MetricKind.METER)

    def timer(
        self,
        key: MetricKey,
        duration_unit: TimeUnit = TimeUnit.MILLISECONDS,
        rate_unit: TimeUnit = TimeUnit.SECONDS,
    ) -> Timer:
        """Get or create a timer."""
        return self.get_or_create(
            key,
            lambda: Timer(duration_unit, rate_unit),
            MetricKind.TIMER,
        )

    def get(self, key: MetricKey) -> Metric | None:
        """Get a registered metric without creating one."""
        return self._metrics.get(key)

    def snapshot(self) -> Mapping[MetricKey, Metric]:
        """Read-only point-in-time view of all entries, ordered by key.

        Later registrations do not show up in a snapshot already taken.
        """
        entries = self._metrics.copy()
        return MappingProxyType({key: entries[key] for key in sorted(entries)})

    def keys(self) -> list[MetricKey]:
        """All registered keys in display order."""
        return sorted(self._metrics.copy())

    def __contains__(self, key: object) -> bool:
        return key in self._metrics

    def __len__(self) -> int:
        return len(self._metrics)

    def __iter__(self) -> Iterator[MetricKey]:
        return iter(self.keys())
