"""appmetrics: a process-wide registry of application metrics.

Callers ask for a metric by identity (an owner plus a name) and always get
back the one canonical instance for that identity, even when many threads
ask for a new identity at the same moment.

Quick Start:
    >>> from appmetrics import MetricKey, MetricsRegistry, TimeUnit
    >>> registry = MetricsRegistry()
    >>> requests = registry.counter(MetricKey("Server", "requests"))
    >>> requests.inc()
    >>> latency = registry.timer(MetricKey("Server", "latency"), TimeUnit.MILLISECONDS)
    >>> with latency.time():
    ...     handle_request()

Gauges:
    >>> registry.gauge(MetricKey("Queue", "depth"), Gauge(lambda: len(queue)))
    >>> registry.attribute_gauge(
    ...     MetricKey("Pool", "active"),
    ...     "db:type=Pool,name=primary",
    ...     "active_connections",
    ... )

Lifecycle:
    >>> from appmetrics import initialize, shutdown, RegistryConfig
    >>> registry = initialize(RegistryConfig.from_env(), reporters=[reporter])
    >>> shutdown()

Public API:
    - Identity: MetricKey
    - Registry: MetricsRegistry, ConcurrentMetricMap
    - Metrics: Counter, Gauge, Histogram, Meter, Timer, AttributeGauge
    - Enums: MetricKind, SampleType, TimeUnit
    - Management: ObjectName, ManagementServer, get_management_server
    - Environment: register_environment_gauges, DAEMON_THREAD_COUNT_KEY
    - Lifecycle: initialize, shutdown, get_default_registry, Reporter
    - Configuration: RegistryConfig, EnvReader, load_config_file
    - Logging: get_logger, configure_logging, LogLevel
    - Exceptions: AppMetricsError and subclasses
"""

__version__ = "0.1.0"

from appmetrics.config import (
    DEFAULT_REGISTRY_CONFIG,
    STRICT_REGISTRY_CONFIG,
    EnvReader,
    RegistryConfig,
    load_config_file,
)
from appmetrics.environment import (
    DAEMON_THREAD_COUNT_KEY,
    RUNTIME_OBJECT_NAME,
    THREAD_COUNT_KEY,
    UPTIME_KEY,
    RuntimeBean,
    daemon_thread_count,
    register_environment_gauges,
    thread_count,
    uptime_seconds,
)
from appmetrics.exceptions import (
    AppMetricsError,
    AttributeNotFoundError,
    ConfigurationError,
    InstanceNotFoundError,
    InvalidConfigValueError,
    InvalidKeyError,
    InvalidObjectNameError,
    KindMismatchError,
    LifecycleError,
    ManagementError,
    MetricsError,
    MissingConfigError,
)
from appmetrics.keys import MetricKey
from appmetrics.lifecycle import (
    MetricsRuntime,
    Reporter,
    get_default_registry,
    initialize,
    is_initialized,
    set_default_registry,
    shutdown,
)
from appmetrics.logging import LogLevel, configure_logging, get_logger
from appmetrics.management import (
    AttributeGauge,
    ManagementServer,
    ObjectName,
    get_management_server,
)
from appmetrics.metrics import (
    Clock,
    Counter,
    Gauge,
    Histogram,
    Meter,
    Metric,
    MetricKind,
    MonotonicClock,
    SampleType,
    TimeUnit,
    Timer,
)
from appmetrics.registry import ConcurrentMetricMap, MetricsRegistry


__all__ = [
    "__version__",
    # Config
    "DEFAULT_REGISTRY_CONFIG",
    "STRICT_REGISTRY_CONFIG",
    "EnvReader",
    "RegistryConfig",
    "load_config_file",
    # Environment
    "DAEMON_THREAD_COUNT_KEY",
    "RUNTIME_OBJECT_NAME",
    "THREAD_COUNT_KEY",
    "UPTIME_KEY",
    "RuntimeBean",
    "daemon_thread_count",
    "register_environment_gauges",
    "thread_count",
    "uptime_seconds",
    # Exceptions
    "AppMetricsError",
    "AttributeNotFoundError",
    "ConfigurationError",
    "InstanceNotFoundError",
    "InvalidConfigValueError",
    "InvalidKeyError",
    "InvalidObjectNameError",
    "KindMismatchError",
    "LifecycleError",
    "ManagementError",
    "MetricsError",
    "MissingConfigError",
    # Identity
    "MetricKey",
    # Lifecycle
    "MetricsRuntime",
    "Reporter",
    "get_default_registry",
    "initialize",
    "is_initialized",
    "set_default_registry",
    "shutdown",
    # Logging
    "LogLevel",
    "configure_logging",
    "get_logger",
    # Management
    "AttributeGauge",
    "ManagementServer",
    "ObjectName",
    "get_management_server",
    # Metrics
    "Clock",
    "Counter",
    "Gauge",
    "Histogram",
    "Meter",
    "Metric",
    "MetricKind",
    "MonotonicClock",
    "SampleType",
    "TimeUnit",
    "Timer",
    # Registry
    "ConcurrentMetricMap",
    "MetricsRegistry",
]
