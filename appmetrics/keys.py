"""Metric identity.

A MetricKey names a metric by the component that owns it and a name that is
unique within that owner. Keys are plain immutable values: two keys built
separately from the same owner and name are equal and hash the same, so
every call site can build its own key and still reach the same registry
entry.

Example:
    >>> key = MetricKey("Server", "requests")
    >>> str(key)
    'Server.requests'
    >>> MetricKey(HttpHandler, "latency").owner
    'myapp.http.HttpHandler'
"""

from __future__ import annotations

import inspect
import types
from dataclasses import dataclass
from typing import Any, Self

from appmetrics.exceptions import InvalidKeyError


def resolve_owner(owner: Any) -> str:
    """Resolve an owner object to a stable dotted identifier.

    Strings are used as given (surrounding whitespace stripped). Classes and
    functions resolve to ``module.qualname``; modules to their ``__name__``.

    Args:
        owner: Owner string, class, module, or function.

    Returns:
        Stable owner identifier.

    Raises:
        InvalidKeyError: If the owner cannot be resolved or resolves to an
            empty identifier.
    """
    if isinstance(owner, str):
        resolved = owner.strip()
    elif isinstance(owner, types.ModuleType):
        resolved = owner.__name__
    elif inspect.isclass(owner) or inspect.isfunction(owner) or inspect.ismethod(owner):
        resolved = f"{owner.__module__}.{owner.__qualname__}"
    else:
        raise InvalidKeyError(
            f"Cannot resolve metric owner of type {type(owner).__name__}",
            owner=owner,
        )

    if not resolved:
        raise InvalidKeyError("Metric owner must not be empty", owner=owner)
    return resolved


@dataclass(frozen=True, slots=True, order=True)
class MetricKey:
    """Immutable owner/name identity of a metric.

    Surrounding whitespace is stripped from both owner and name.

    Attributes:
        owner: Identifier of the subsystem that owns the metric.
        name: Metric name, unique within the owner.
    """

    owner: str
    name: str

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidKeyError(
                "Metric name must be a non-empty string",
                owner=self.owner,
                name=self.name,
            )
        object.__setattr__(self, "name", self.name.strip())
        object.__setattr__(self, "owner", resolve_owner(self.owner))

    def __str__(self) -> str:
        return f"{self.owner}.{self.name}"

    def with_name(self, name: str) -> MetricKey:
        """Create a key with the same owner and a different name."""
        return MetricKey(self.owner, name)

    @classmethod
    def parse(cls, text: str) -> Self:
        """Parse an ``owner.name`` string back into a key.

        The name is everything after the last dot, so dotted owners such
        as module paths round-trip.

        Args:
            text: Rendered key.

        Returns:
            Parsed MetricKey.

        Raises:
            InvalidKeyError: If the text has no dot separating owner and name.
        """
        owner, sep, name = text.rpartition(".")
        if not sep:
            raise InvalidKeyError(
                f"Cannot parse metric key {text!r}: expected 'owner.name'",
                owner=None,
                name=text,
            )
        return cls(owner, name)
