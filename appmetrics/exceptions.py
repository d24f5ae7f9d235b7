"""Exception hierarchy for appmetrics.

Every error raised by the library inherits from AppMetricsError so callers
can catch anything metrics-related at a single point.

Exception Hierarchy:
    AppMetricsError (base)
    ├── ConfigurationError
    │   ├── InvalidConfigValueError
    │   └── MissingConfigError
    ├── MetricsError
    │   ├── InvalidKeyError
    │   └── KindMismatchError
    ├── ManagementError
    │   ├── InvalidObjectNameError
    │   ├── InstanceNotFoundError
    │   └── AttributeNotFoundError
    └── LifecycleError

Example:
    >>> try:
    ...     key = MetricKey("Server", "")
    ... except InvalidKeyError as e:
    ...     logger.error(f"Bad metric key: {e}")
"""

from __future__ import annotations

from typing import Any


class AppMetricsError(Exception):
    """Base exception for all appmetrics errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
        cause: Optional original exception that caused this error.

    Example:
        >>> try:
        ...     raise AppMetricsError("Something went wrong", details={"key": "value"})
        ... except AppMetricsError as e:
        ...     print(f"Error: {e.message}, Details: {e.details}")
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional error context.
            cause: Optional original exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        """Return string representation with details if present."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"cause={self.cause!r})"
        )

    def with_context(self, **kwargs: Any) -> AppMetricsError:
        """Return a plain AppMetricsError carrying merged details.

        The original exception is left untouched.

        Args:
            **kwargs: Additional context to add to details.

        Returns:
            New exception instance with merged details.
        """
        return AppMetricsError(
            self.message,
            details={**self.details, **kwargs},
            cause=self.cause,
        )


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(AppMetricsError):
    """Raised for invalid, missing, or unreadable configuration.

    Attributes:
        config_key: Optional key that caused the configuration error.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, details=details, cause=cause)
        self.config_key = config_key


class InvalidConfigValueError(ConfigurationError):
    """Raised when a configuration value fails validation.

    Attributes:
        config_key: The configuration key with invalid value.
        value: The invalid value that was provided.
        expected: Description of what was expected.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str,
        value: Any = None,
        expected: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        details["value"] = value
        if expected:
            details["expected"] = expected
        super().__init__(message, config_key=config_key, details=details, cause=cause)
        self.value = value
        self.expected = expected


class MissingConfigError(ConfigurationError):
    """Raised when a required configuration key is not provided."""

    def __init__(
        self,
        config_key: str,
        *,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        message = f"Required configuration key '{config_key}' is missing"
        super().__init__(message, config_key=config_key, details=details, cause=cause)


# =============================================================================
# Metric Errors
# =============================================================================


class MetricsError(AppMetricsError):
    """Base exception for metric identity and registration errors.

    Attributes:
        metric_key: Rendered key of the metric involved, if known.
        metric_kind: Kind of the metric involved, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        metric_key: str | None = None,
        metric_kind: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize metrics error.

        Args:
            message: Human-readable error description.
            metric_key: Rendered key of the metric involved.
            metric_kind: Kind of the metric involved.
            details: Optional dictionary with additional error context.
            cause: Optional original exception that caused this error.
        """
        details = details or {}
        if metric_key:
            details["metric_key"] = metric_key
        if metric_kind:
            details["metric_kind"] = metric_kind
        super().__init__(message, details=details, cause=cause)
        self.metric_key = metric_key
        self.metric_kind = metric_kind


class InvalidKeyError(MetricsError):
    """Raised when a MetricKey cannot be built from the given owner and name.

    Attributes:
        owner: The owner value that was supplied.
        name: The name value that was supplied.
    """

    def __init__(
        self,
        message: str,
        *,
        owner: Any = None,
        name: Any = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        details["owner"] = repr(owner)
        details["name"] = repr(name)
        super().__init__(message, details=details, cause=cause)
        self.owner = owner
        self.name = name


class KindMismatchError(MetricsError):
    """Raised in strict mode when a key is requested as a different kind.

    Attributes:
        requested_kind: Kind the caller asked for.
        existing_kind: Kind already registered under the key.
    """

    def __init__(
        self,
        message: str,
        *,
        metric_key: str,
        requested_kind: str,
        existing_kind: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["requested_kind"] = requested_kind
        super().__init__(
            message,
            metric_key=metric_key,
            metric_kind=existing_kind,
            details=details,
        )
        self.requested_kind = requested_kind
        self.existing_kind = existing_kind


# =============================================================================
# Management Errors
# =============================================================================


class ManagementError(AppMetricsError):
    """Base exception for the management attribute directory.

    Attributes:
        object_name: The object name involved, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        object_name: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if object_name:
            details["object_name"] = object_name
        super().__init__(message, details=details, cause=cause)
        self.object_name = object_name


class InvalidObjectNameError(ManagementError):
    """Raised when an object name string does not follow the
    ``domain:key=value[,key=value]*`` syntax."""


class InstanceNotFoundError(ManagementError):
    """Raised when no managed object is registered under an object name."""


class AttributeNotFoundError(ManagementError):
    """Raised when a managed object does not expose the requested attribute.

    Attributes:
        attribute: Name of the missing attribute.
    """

    def __init__(
        self,
        message: str,
        *,
        object_name: str | None = None,
        attribute: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if attribute:
            details["attribute"] = attribute
        super().__init__(message, object_name=object_name, details=details, cause=cause)
        self.attribute = attribute


# =============================================================================
# Lifecycle Errors
# =============================================================================


class LifecycleError(AppMetricsError):
    """Raised when initialize/shutdown are called out of order."""
