"""Managed objects and attribute-backed gauges.

A ManagementServer is an in-process directory of managed objects, each
registered under an ObjectName such as ``appmetrics:type=Runtime``. An
AttributeGauge does not compute anything itself: every read looks up a named
attribute of a managed object through the server.

Object names follow the ``domain:key=value[,key=value]*`` grammar. Values
may be double-quoted, in which case ``\\``, ``\\"``, ``\\n``, ``\\*`` and
``\\?`` are the only escapes. Pattern characters (``*``, ``?``) are not
accepted because a gauge must resolve to exactly one object.

Example:
    >>> server = get_management_server()
    >>> server.register("db:type=Pool,name=primary", pool)
    >>> active = AttributeGauge("db:type=Pool,name=primary", "active_connections")
    >>> active.value()
    4
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Self

from appmetrics.exceptions import (
    AttributeNotFoundError,
    InstanceNotFoundError,
    InvalidObjectNameError,
    ManagementError,
)
from appmetrics.logging import get_logger
from appmetrics.metrics import Gauge, MetricKind


logger = get_logger(__name__)

_RESERVED_CHARS = frozenset(':=,*?"\n')
_QUOTED_ESCAPES = frozenset('\\"n*?')


# =============================================================================
# Object Names
# =============================================================================


def _invalid(text: str, reason: str) -> InvalidObjectNameError:
    return InvalidObjectNameError(
        f"Invalid object name {text!r}: {reason}",
        object_name=text,
        details={"reason": reason},
    )


def _read_quoted(text: str, source: str, start: int) -> tuple[str, int]:
    """Read a quoted value starting at the opening quote.

    Returns:
        The value including its quotes, and the index after the closing quote.
    """
    i = start + 1
    while i < len(text):
        char = text[i]
        if char == "\\":
            if i + 1 >= len(text) or text[i + 1] not in _QUOTED_ESCAPES:
                raise _invalid(source, "bad escape in quoted value")
            i += 2
            continue
        if char == '"':
            return text[start : i + 1], i + 1
        if char in "*?\n":
            raise _invalid(source, f"unescaped {char!r} in quoted value")
        i += 1
    raise _invalid(source, "unterminated quoted value")


@dataclass(frozen=True, slots=True, order=True)
class ObjectName:
    """Parsed name of a managed object.

    Key properties are kept sorted, so names differing only in property
    order are equal.

    Attributes:
        domain: Part before the colon.
        properties: Sorted ``(key, value)`` pairs.
    """

    domain: str
    properties: tuple[tuple[str, str], ...]

    @classmethod
    def parse(cls, text: str) -> Self:
        """Parse ``domain:key=value[,key=value]*``.

        Raises:
            InvalidObjectNameError: If ``text`` does not follow the grammar.
        """
        if not isinstance(text, str):
            raise InvalidObjectNameError(
                f"Object name must be a string, got {type(text).__name__}",
            )
        domain, sep, rest = text.partition(":")
        if not sep:
            raise _invalid(text, "missing ':' after domain")
        if not domain:
            raise _invalid(text, "empty domain")
        if any(char in "*?\n=," for char in domain):
            raise _invalid(text, "domain contains a reserved character")
        if not rest:
            raise _invalid(text, "no key properties")

        properties: dict[str, str] = {}
        i = 0
        while True:
            eq = rest.find("=", i)
            if eq == -1:
                raise _invalid(text, f"expected 'key=value' at {rest[i:]!r}")
            key = rest[i:eq]
            if not key or any(char in _RESERVED_CHARS for char in key):
                raise _invalid(text, f"bad property key {key!r}")

            i = eq + 1
            if i < len(rest) and rest[i] == '"':
                value, i = _read_quoted(rest, text, i)
            else:
                end = rest.find(",", i)
                if end == -1:
                    end = len(rest)
                value = rest[i:end]
                if not value or any(char in _RESERVED_CHARS for char in value):
                    raise _invalid(text, f"bad value {value!r} for key {key!r}")
                i = end

            if key in properties:
                raise _invalid(text, f"duplicate key {key!r}")
            properties[key] = value

            if i == len(rest):
                break
            if rest[i] != ",":
                raise _invalid(text, f"unexpected {rest[i]!r} after value of {key!r}")
            i += 1
            if i == len(rest):
                raise _invalid(text, "trailing ','")

        return cls(domain, tuple(sorted(properties.items())))

    @classmethod
    def of(cls, name: ObjectName | str) -> ObjectName:
        """Accept either a parsed name or a string to parse."""
        if isinstance(name, ObjectName):
            return name
        return cls.parse(name)

    def get(self, key: str) -> str | None:
        """Value of a key property, or None."""
        return dict(self.properties).get(key)

    @property
    def canonical_name(self) -> str:
        props = ",".join(f"{k}={v}" for k, v in self.properties)
        return f"{self.domain}:{props}"

    def __str__(self) -> str:
        return self.canonical_name


# =============================================================================
# Management Server
# =============================================================================


class ManagementServer:
    """Thread-safe directory of managed objects.

    A managed object is either a mapping (attributes are its keys) or any
    other object (attributes are read with getattr). Callable attribute
    values are invoked on each read, so beans can expose live values.

    Example:
        >>> server = ManagementServer()
        >>> server.register("app:type=Queue", {"depth": lambda: len(queue)})
        >>> server.get_attribute("app:type=Queue", "depth")
        12
    """

    def __init__(self) -> None:
        self._beans: dict[ObjectName, Any] = {}
        self._lock = threading.Lock()

    def register(
        self,
        object_name: ObjectName | str,
        bean: Any,
        *,
        replace: bool = False,
    ) -> ObjectName:
        """Register ``bean`` under ``object_name``.

        Args:
            object_name: Name to register under.
            bean: Mapping or object exposing attributes.
            replace: Overwrite an existing registration instead of failing.

        Returns:
            The parsed object name.

        Raises:
            InvalidObjectNameError: If the name is malformed.
            ManagementError: If the name is taken and ``replace`` is false.
        """
        name = ObjectName.of(object_name)
        with self._lock:
            if name in self._beans and not replace:
                raise ManagementError(
                    f"Managed object {name} is already registered",
                    object_name=str(name),
                )
            self._beans[name] = bean
        logger.debug("Registered managed object", object_name=str(name))
        return name

    def unregister(self, object_name: ObjectName | str) -> bool:
        """Remove a managed object. Returns False if it was not registered."""
        name = ObjectName.of(object_name)
        with self._lock:
            return self._beans.pop(name, None) is not None

    def is_registered(self, object_name: ObjectName | str) -> bool:
        name = ObjectName.of(object_name)
        with self._lock:
            return name in self._beans

    def names(self) -> list[ObjectName]:
        with self._lock:
            return sorted(self._beans)

    def get_attribute(self, object_name: ObjectName | str, attribute: str) -> Any:
        """Read an attribute of a managed object.

        Raises:
            InstanceNotFoundError: If nothing is registered under the name.
            AttributeNotFoundError: If the object lacks the attribute.
        """
        name = ObjectName.of(object_name)
        with self._lock:
            bean = self._beans.get(name)
        if bean is None:
            raise InstanceNotFoundError(
                f"No managed object registered as {name}",
                object_name=str(name),
            )

        if isinstance(bean, Mapping):
            if attribute not in bean:
                raise AttributeNotFoundError(
                    f"{name} has no attribute {attribute!r}",
                    object_name=str(name),
                    attribute=attribute,
                )
            value = bean[attribute]
        else:
            try:
                value = getattr(bean, attribute)
            except AttributeError as e:
                raise AttributeNotFoundError(
                    f"{name} has no attribute {attribute!r}",
                    object_name=str(name),
                    attribute=attribute,
                    cause=e,
                ) from e
        return value() if callable(value) else value


_default_server: ManagementServer | None = None
_server_lock = threading.Lock()


def get_management_server() -> ManagementServer:
    """Get the process-wide management server, creating it on first use."""
    global _default_server

    if _default_server is None:
        with _server_lock:
            if _default_server is None:
                _default_server = ManagementServer()

    return _default_server


# =============================================================================
# Attribute Gauge
# =============================================================================


class AttributeGauge(Gauge[Any]):
    """Gauge reading an attribute of a managed object at read time.

    The object name is validated on construction; whether the object and
    attribute exist is only checked when the gauge is read.

    Args:
        object_name: Name of the managed object.
        attribute: Attribute to read.
        server: Server to read from; the process-wide server when omitted.

    Raises:
        InvalidObjectNameError: If ``object_name`` is malformed.
    """

    def __init__(
        self,
        object_name: ObjectName | str,
        attribute: str,
        server: ManagementServer | None = None,
    ) -> None:
        super().__init__()
        self._object_name = ObjectName.of(object_name)
        if not attribute:
            raise ManagementError(
                "Attribute name must not be empty",
                object_name=str(self._object_name),
            )
        self._attribute = attribute
        self._server = server

    @property
    def kind(self) -> MetricKind:
        return MetricKind.ATTRIBUTE_GAUGE

    @property
    def object_name(self) -> ObjectName:
        return self._object_name

    @property
    def attribute(self) -> str:
        return self._attribute

    def value(self) -> Any:
        server = self._server or get_management_server()
        return server.get_attribute(self._object_name, self._attribute)
