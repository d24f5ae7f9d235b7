"""Tests for appmetrics.environment module."""

from __future__ import annotations

import os
import threading

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
from appmetrics.keys import MetricKey
from appmetrics.management import AttributeGauge, ManagementServer
from appmetrics.metrics import Gauge
from appmetrics.registry import MetricsRegistry


class TestReadings:
    """Tests for the runtime reading functions."""

    def test_daemon_thread_count_is_live(self) -> None:
        """Test a new daemon thread shows up on the next read."""
        before = daemon_thread_count()
        release = threading.Event()
        thread = threading.Thread(target=release.wait, daemon=True)
        thread.start()
        try:
            assert daemon_thread_count() == before + 1
        finally:
            release.set()
            thread.join()
        assert daemon_thread_count() == before

    def test_thread_count_includes_main(self) -> None:
        assert thread_count() >= 1

    def test_uptime_increases(self) -> None:
        first = uptime_seconds()
        assert first >= 0
        assert uptime_seconds() >= first

    def test_runtime_bean(self) -> None:
        bean = RuntimeBean()
        assert bean.pid == os.getpid()
        assert bean.thread_count >= 1
        assert bean.daemon_thread_count >= 0


class TestRegisterEnvironmentGauges:
    """Tests for register_environment_gauges."""

    def test_registers_gauges(self) -> None:
        registry = MetricsRegistry()
        gauges = register_environment_gauges(registry, ManagementServer())
        assert set(gauges) == {DAEMON_THREAD_COUNT_KEY, THREAD_COUNT_KEY, UPTIME_KEY}
        for key, gauge in gauges.items():
            assert registry.get(key) is gauge
            assert isinstance(gauge, Gauge)
        assert registry.get(DAEMON_THREAD_COUNT_KEY).value() == daemon_thread_count()

    def test_idempotent(self) -> None:
        """Test a second call keeps the first gauges."""
        registry = MetricsRegistry()
        server = ManagementServer()
        first = register_environment_gauges(registry, server)
        second = register_environment_gauges(registry, server)
        assert all(first[key] is second[key] for key in first)
        assert len(registry) == 3

    def test_custom_owner(self) -> None:
        registry = MetricsRegistry()
        gauges = register_environment_gauges(registry, ManagementServer(), owner="proc")
        assert MetricKey("proc", "daemon_thread_count") in gauges
        assert DAEMON_THREAD_COUNT_KEY not in registry

    def test_runtime_bean_reachable_by_attribute_gauge(self) -> None:
        """Test the same reading is available through the management server."""
        registry = MetricsRegistry()
        server = ManagementServer()
        register_environment_gauges(registry, server)
        assert server.is_registered(RUNTIME_OBJECT_NAME)
        gauge = registry.attribute_gauge(
            MetricKey("jvm", "daemon_threads"),
            RUNTIME_OBJECT_NAME,
            "daemon_thread_count",
            server,
        )
        assert isinstance(gauge, AttributeGauge)
        assert gauge.value() == daemon_thread_count()

    def test_existing_bean_kept(self) -> None:
        server = ManagementServer()
        custom = {"daemon_thread_count": 99}
        server.register(RUNTIME_OBJECT_NAME, custom)
        register_environment_gauges(MetricsRegistry(), server)
        assert server.get_attribute(RUNTIME_OBJECT_NAME, "daemon_thread_count") == 99
