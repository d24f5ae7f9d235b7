"""Built-in gauges for live runtime statistics.

The values are computed on each read; nothing is cached. The same readings
are exposed both as function-backed gauges in a registry and as attributes
of a managed object, so an AttributeGauge can reach them too.

Example:
    >>> registry = MetricsRegistry()
    >>> register_environment_gauges(registry)
    >>> registry.get(DAEMON_THREAD_COUNT_KEY).value()
    2
"""

from __future__ import annotations

import os
import threading
import time
from typing import TYPE_CHECKING

from appmetrics.keys import MetricKey
from appmetrics.logging import get_logger
from appmetrics.management import ManagementServer, get_management_server
from appmetrics.metrics import Gauge


if TYPE_CHECKING:
    from appmetrics.registry import MetricsRegistry


logger = get_logger(__name__)

RUNTIME_OBJECT_NAME = "appmetrics:type=Runtime"
DEFAULT_ENVIRONMENT_OWNER = "runtime"

DAEMON_THREAD_COUNT_KEY = MetricKey(DEFAULT_ENVIRONMENT_OWNER, "daemon_thread_count")
THREAD_COUNT_KEY = MetricKey(DEFAULT_ENVIRONMENT_OWNER, "thread_count")
UPTIME_KEY = MetricKey(DEFAULT_ENVIRONMENT_OWNER, "uptime_seconds")

_START_TIME = time.monotonic()


def daemon_thread_count() -> int:
    """Number of live daemon threads."""
    return sum(1 for thread in threading.enumerate() if thread.daemon)


def thread_count() -> int:
    """Number of live threads, including the main thread."""
    return threading.active_count()


def uptime_seconds() -> float:
    """Seconds since appmetrics was imported."""
    return time.monotonic() - _START_TIME


class RuntimeBean:
    """Managed object exposing runtime statistics as attributes."""

    @property
    def daemon_thread_count(self) -> int:
        return daemon_thread_count()

    @property
    def thread_count(self) -> int:
        return thread_count()

    @property
    def uptime_seconds(self) -> float:
        return uptime_seconds()

    @property
    def pid(self) -> int:
        return os.getpid()


def register_environment_gauges(
    registry: MetricsRegistry,
    server: ManagementServer | None = None,
    owner: str = DEFAULT_ENVIRONMENT_OWNER,
) -> dict[MetricKey, Gauge[int] | Gauge[float]]:
    """Publish the runtime gauges in ``registry`` and the runtime bean.

    Safe to call more than once: existing gauges and an existing bean are
    kept.

    Args:
        registry: Registry to publish the gauges in.
        server: Management server for the runtime bean (process-wide default
            when omitted).
        owner: Owner used for the gauge keys.

    Returns:
        The canonical gauge for each key.
    """
    providers = {
        MetricKey(owner, DAEMON_THREAD_COUNT_KEY.name): daemon_thread_count,
        MetricKey(owner, THREAD_COUNT_KEY.name): thread_count,
        MetricKey(owner, UPTIME_KEY.name): uptime_seconds,
    }
    gauges = {key: registry.gauge(key, Gauge(provider)) for key, provider in providers.items()}

    server = server or get_management_server()
    if not server.is_registered(RUNTIME_OBJECT_NAME):
        server.register(RUNTIME_OBJECT_NAME, RuntimeBean(), replace=True)

    logger.debug("Registered environment gauges", owner=owner, count=len(gauges))
    return gauges
