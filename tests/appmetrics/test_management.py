"""Tests for appmetrics.management module."""

from __future__ import annotations

import pytest

from appmetrics.exceptions import (
    AttributeNotFoundError,
    InstanceNotFoundError,
    InvalidObjectNameError,
    ManagementError,
)
from appmetrics.management import (
    AttributeGauge,
    ManagementServer,
    ObjectName,
    get_management_server,
)
from appmetrics.metrics import MetricKind


class Pool:
    """Managed object with a plain attribute and a computed one."""

    def __init__(self) -> None:
        self.size = 10
        self.active = 0

    @property
    def idle(self) -> int:
        return self.size - self.active


@pytest.fixture
def server() -> ManagementServer:
    return ManagementServer()


class TestObjectName:
    """Tests for ObjectName parsing."""

    def test_parse_single_property(self) -> None:
        name = ObjectName.parse("app:type=Queue")
        assert name.domain == "app"
        assert name.properties == (("type", "Queue"),)
        assert name.get("type") == "Queue"
        assert name.get("name") is None

    def test_property_order_is_irrelevant(self) -> None:
        """Test names differing only in property order are equal."""
        a = ObjectName.parse("db:type=Pool,name=primary")
        b = ObjectName.parse("db:name=primary,type=Pool")
        assert a == b
        assert hash(a) == hash(b)
        assert str(a) == "db:name=primary,type=Pool"

    def test_quoted_value(self) -> None:
        """Test quoted values may contain reserved characters."""
        name = ObjectName.parse('app:type=Cache,path="/a,b=c:d"')
        assert name.get("path") == '"/a,b=c:d"'

    def test_quoted_escapes(self) -> None:
        name = ObjectName.parse(r'app:type="say \"hi\" \*"')
        assert name.get("type") == r'"say \"hi\" \*"'

    @pytest.mark.parametrize(
        "text",
        [
            "nodomain",
            ":type=Queue",
            "app:",
            "app:type",
            "app:=Queue",
            "app:type=",
            "app:type=a:b",
            "app:type=Queue,",
            "app:type=Queue,type=Pool",
            "app:type=Que*",
            "app:type=Queue?",
            "ap*p:type=Queue",
            'app:type="open',
            r'app:type="bad \x escape"',
            'app:type="x"y',
        ],
    )
    def test_invalid_names(self, text: str) -> None:
        with pytest.raises(InvalidObjectNameError):
            ObjectName.parse(text)

    def test_invalid_name_details(self) -> None:
        """Test errors carry the offending text and a reason."""
        with pytest.raises(InvalidObjectNameError) as exc_info:
            ObjectName.parse("app:type")
        assert exc_info.value.object_name == "app:type"
        assert "reason" in exc_info.value.details

    def test_non_string_rejected(self) -> None:
        with pytest.raises(InvalidObjectNameError):
            ObjectName.parse(42)  # type: ignore[arg-type]

    def test_of(self) -> None:
        name = ObjectName.parse("app:type=Queue")
        assert ObjectName.of(name) is name
        assert ObjectName.of("app:type=Queue") == name


class TestManagementServer:
    """Tests for ManagementServer."""

    def test_register_and_read(self, server: ManagementServer) -> None:
        """Test attributes are read from plain objects."""
        pool = Pool()
        server.register("db:type=Pool", pool)
        assert server.get_attribute("db:type=Pool", "size") == 10
        pool.active = 4
        assert server.get_attribute("db:type=Pool", "idle") == 6

    def test_mapping_bean(self, server: ManagementServer) -> None:
        """Test mapping beans, with callables invoked on each read."""
        depth = [3]
        server.register("app:type=Queue", {"depth": lambda: depth[0], "name": "jobs"})
        assert server.get_attribute("app:type=Queue", "depth") == 3
        depth[0] = 7
        assert server.get_attribute("app:type=Queue", "depth") == 7
        assert server.get_attribute("app:type=Queue", "name") == "jobs"

    def test_duplicate_registration(self, server: ManagementServer) -> None:
        server.register("app:type=Queue", {})
        with pytest.raises(ManagementError, match="already registered"):
            server.register("app:type=Queue", {})

    def test_replace(self, server: ManagementServer) -> None:
        server.register("app:type=Queue", {"depth": 1})
        server.register("app:type=Queue", {"depth": 2}, replace=True)
        assert server.get_attribute("app:type=Queue", "depth") == 2

    def test_unregister(self, server: ManagementServer) -> None:
        server.register("app:type=Queue", {})
        assert server.is_registered("app:type=Queue")
        assert server.unregister("app:type=Queue") is True
        assert server.unregister("app:type=Queue") is False
        assert not server.is_registered("app:type=Queue")

    def test_names_sorted(self, server: ManagementServer) -> None:
        server.register("b:type=X", {})
        server.register("a:type=Y", {})
        assert [str(n) for n in server.names()] == ["a:type=Y", "b:type=X"]

    def test_missing_instance(self, server: ManagementServer) -> None:
        with pytest.raises(InstanceNotFoundError) as exc_info:
            server.get_attribute("app:type=Missing", "depth")
        assert exc_info.value.object_name == "app:type=Missing"

    def test_missing_attribute(self, server: ManagementServer) -> None:
        server.register("db:type=Pool", Pool())
        server.register("app:type=Queue", {})
        with pytest.raises(AttributeNotFoundError):
            server.get_attribute("db:type=Pool", "missing")
        with pytest.raises(AttributeNotFoundError) as exc_info:
            server.get_attribute("app:type=Queue", "depth")
        assert exc_info.value.attribute == "depth"

    def test_default_server_is_shared(self) -> None:
        assert get_management_server() is get_management_server()


class TestAttributeGauge:
    """Tests for AttributeGauge."""

    def test_reads_live_value(self, server: ManagementServer) -> None:
        pool = Pool()
        server.register("db:type=Pool,name=primary", pool)
        gauge = AttributeGauge("db:name=primary,type=Pool", "active", server)
        assert gauge.kind is MetricKind.ATTRIBUTE_GAUGE
        assert gauge.value() == 0
        pool.active = 5
        assert gauge.value() == 5

    def test_object_registered_later(self, server: ManagementServer) -> None:
        """Test existence is only checked when the gauge is read."""
        gauge = AttributeGauge("app:type=Queue", "depth", server)
        with pytest.raises(InstanceNotFoundError):
            gauge.value()
        server.register("app:type=Queue", {"depth": 2})
        assert gauge.value() == 2

    def test_malformed_name_rejected_at_construction(self) -> None:
        with pytest.raises(InvalidObjectNameError):
            AttributeGauge("not a name", "depth")

    def test_empty_attribute_rejected(self) -> None:
        with pytest.raises(ManagementError):
            AttributeGauge("app:type=Queue", "")

    def test_properties(self) -> None:
        gauge = AttributeGauge("app:type=Queue", "depth")
        assert gauge.object_name == ObjectName.parse("app:type=Queue")
        assert gauge.attribute == "depth"

    def test_default_server(self) -> None:
        """Test gauges without a server read the process-wide one."""
        name = "tests:type=AttributeGaugeDefault"
        get_management_server().register(name, {"value": 11}, replace=True)
        try:
            assert AttributeGauge(name, "value").value() == 11
        finally:
            get_management_server().unregister(name)
