"""Process lifecycle and the default registry.

The registry itself is an ordinary object that applications construct and
pass around. This module adds the boundary-layer conveniences:

- an explicit ``initialize(config)`` / ``shutdown()`` pair that configures
  logging, publishes the runtime gauges, and starts/stops reporters;
- a lazily created default registry for code that does not want to thread
  a registry through its call graph;
- shortcut functions (``counter``, ``timer``, ...) bound to that default.

Importing this module has no side effects beyond creating empty state.

Example:
    >>> from appmetrics import lifecycle
    >>> registry = lifecycle.initialize(RegistryConfig(log_level="DEBUG"))
    >>> lifecycle.counter(MetricKey("Server", "requests")).inc()
    >>> lifecycle.shutdown()
"""

from __future__ import annotations

import threading
from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from appmetrics.config import RegistryConfig
from appmetrics.environment import register_environment_gauges
from appmetrics.exceptions import LifecycleError
from appmetrics.logging import configure_logging, get_logger
from appmetrics.metrics import SampleType, TimeUnit
from appmetrics.registry import MetricsRegistry


if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from appmetrics.keys import MetricKey
    from appmetrics.management import AttributeGauge, ManagementServer
    from appmetrics.metrics import Counter, Gauge, Histogram, Meter, Metric, Timer


logger = get_logger(__name__)


@runtime_checkable
class Reporter(Protocol):
    """Something that periodically reads a registry's snapshot.

    How and when it reports is up to the implementation; the lifecycle
    only starts and stops it.
    """

    @abstractmethod
    def start(self, registry: MetricsRegistry) -> None:
        """Begin reporting on ``registry``."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """Stop reporting and release resources."""
        ...


class MetricsRuntime:
    """Owns one registry plus the reporters started for it.

    Example:
        >>> runtime = MetricsRuntime()
        >>> registry = runtime.initialize(RegistryConfig(), reporters=[reporter])
        >>> runtime.shutdown()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._registry: MetricsRegistry | None = None
        self._config: RegistryConfig | None = None
        self._reporters: list[Reporter] = []

    @property
    def is_initialized(self) -> bool:
        return self._config is not None

    @property
    def registry(self) -> MetricsRegistry | None:
        return self._registry

    def initialize(
        self,
        config: RegistryConfig | None = None,
        *,
        registry: MetricsRegistry | None = None,
        reporters: Sequence[Reporter] = (),
        server: ManagementServer | None = None,
    ) -> MetricsRegistry:
        """Set up metrics for the process.

        Args:
            config: Settings (defaults when omitted).
            registry: Registry to use; a new one built from ``config`` when
                omitted.
            reporters: Reporters to start, in order.
            server: Management server for the runtime bean.

        Logging is configured and the environment gauges are published before
        any reporter starts. If a reporter fails to start, the reporters
        already started are stopped and the runtime stays uninitialized, but
        the logging settings and environment gauges are kept. A later
        initialize() call can safely publish them again.

        Returns:
            The registry now in use.

        Raises:
            LifecycleError: If already initialized.
        """
        if config is None:
            config = registry.config if registry is not None else RegistryConfig()
        with self._lock:
            if self._config is not None:
                raise LifecycleError(
                    "Metrics are already initialized; call shutdown() first",
                )
            configure_logging(level=config.log_level, format=config.log_format)

            if registry is None:
                registry = MetricsRegistry(config)
            if config.register_environment_gauges:
                register_environment_gauges(registry, server, owner=config.environment_owner)

            started: list[Reporter] = []
            try:
                for reporter in reporters:
                    reporter.start(registry)
                    started.append(reporter)
            except Exception:
                logger.exception("Reporter failed to start; stopping the others")
                self._stop_all(started)
                raise

            self._registry = registry
            self._config = config
            self._reporters = started

        logger.info(
            "Metrics initialized",
            reporters=len(started),
            environment_gauges=config.register_environment_gauges,
        )
        return registry

    def shutdown(self) -> None:
        """Stop reporters in reverse start order. No-op if not initialized."""
        with self._lock:
            if self._config is None:
                return
            reporters, self._reporters = self._reporters, []
            self._config = None
            self._stop_all(reporters)
        logger.info("Metrics shut down", reporters=len(reporters))

    @staticmethod
    def _stop_all(reporters: Sequence[Reporter]) -> None:
        for reporter in reversed(reporters):
            try:
                reporter.stop()
            except Exception:
                logger.exception("Reporter failed to stop", reporter=type(reporter).__name__)


# =============================================================================
# Default Registry
# =============================================================================

_runtime = MetricsRuntime()
_default_registry: MetricsRegistry | None = None
_default_lock = threading.Lock()


def get_default_registry() -> MetricsRegistry:
    """Get the process-wide default registry, creating it on first use."""
    global _default_registry

    if _default_registry is None:
        with _default_lock:
            if _default_registry is None:
                _default_registry = MetricsRegistry()

    return _default_registry


def set_default_registry(registry: MetricsRegistry | None) -> None:
    """Replace the default registry (None resets it to be recreated lazily)."""
    global _default_registry
    with _default_lock:
        _default_registry = registry


def initialize(
    config: RegistryConfig | None = None,
    *,
    reporters: Sequence[Reporter] = (),
    server: ManagementServer | None = None,
) -> MetricsRegistry:
    """Initialize metrics for the process using the default registry.

    The default registry is built from ``config`` if it does not exist yet.
    An existing default registry is kept along with everything registered
    in it, and keeps its own registry settings.

    Raises:
        LifecycleError: If already initialized.
    """
    global _default_registry

    with _default_lock:
        if _default_registry is None:
            _default_registry = MetricsRegistry(config)
        registry = _default_registry
    return _runtime.initialize(config, registry=registry, reporters=reporters, server=server)


def shutdown() -> None:
    """Stop the reporters started by initialize()."""
    _runtime.shutdown()


def is_initialized() -> bool:
    return _runtime.is_initialized


# =============================================================================
# Shortcuts
# =============================================================================


def counter(key: MetricKey) -> Counter:
    """Get or create a counter in the default registry."""
    return get_default_registry().counter(key)


def gauge(key: MetricKey, instance: Gauge[Any]) -> Gauge[Any]:
    """Register a gauge in the default registry if absent."""
    return get_default_registry().gauge(key, instance)


def attribute_gauge(
    key: MetricKey,
    object_name: str,
    attribute: str,
    server: ManagementServer | None = None,
) -> AttributeGauge:
    """Register an attribute gauge in the default registry if absent."""
    return get_default_registry().attribute_gauge(key, object_name, attribute, server)


def histogram(
    key: MetricKey,
    sample_type: SampleType = SampleType.UNIFORM,
    *,
    biased: bool | None = None,
) -> Histogram:
    """Get or create a histogram in the default registry."""
    return get_default_registry().histogram(key, sample_type, biased=biased)


def meter(key: MetricKey, event_type: str, rate_unit: TimeUnit = TimeUnit.SECONDS) -> Meter:
    """Get or create a meter in the default registry."""
    return get_default_registry().meter(key, event_type, rate_unit)


def timer(
    key: MetricKey,
    duration_unit: TimeUnit = TimeUnit.MILLISECONDS,
    rate_unit: TimeUnit = TimeUnit.SECONDS,
) -> Timer:
    """Get or create a timer in the default registry."""
    return get_default_registry().timer(key, duration_unit, rate_unit)


def snapshot() -> Mapping[MetricKey, Metric]:
    """Snapshot of the default registry."""
    return get_default_registry().snapshot()
