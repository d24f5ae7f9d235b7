"""Configuration for appmetrics.

Configuration can be built in code, read from prefixed environment
variables, or loaded from a JSON/YAML file.

Configuration Precedence (highest to lowest):
    1. Explicit parameters
    2. Environment variables
    3. Configuration file
    4. Default values

Example:
    >>> from appmetrics.config import RegistryConfig
    >>> config = RegistryConfig.from_env()
    >>> strict = config.with_strict_kinds(True)
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Self

import yaml

from appmetrics.exceptions import ConfigurationError, InvalidConfigValueError, MissingConfigError


# =============================================================================
# Constants
# =============================================================================

DEFAULT_ENV_PREFIX = "APPMETRICS"
VALID_LOG_FORMATS = ("text", "json")
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# =============================================================================
# Environment Variable Utilities
# =============================================================================


class EnvReader:
    """Reads prefixed environment variables with typed accessors.

    Example:
        >>> reader = EnvReader(prefix="APPMETRICS")
        >>> stripes = reader.get_int("LOCK_STRIPES", default=32)
        >>> strict = reader.get_bool("STRICT_KINDS", default=False)
    """

    def __init__(self, prefix: str = DEFAULT_ENV_PREFIX) -> None:
        self.prefix = prefix

    def _make_key(self, name: str) -> str:
        if self.prefix:
            return f"{self.prefix}_{name}"
        return name

    def get(self, name: str, default: str | None = None) -> str | None:
        """Get a string variable, or ``default`` when unset."""
        return os.environ.get(self._make_key(name), default)

    def get_required(self, name: str) -> str:
        """Get a string variable that must be set.

        Raises:
            MissingConfigError: If the variable is not set.
        """
        key = self._make_key(name)
        value = os.environ.get(key)
        if value is None:
            raise MissingConfigError(key)
        return value

    def get_int(self, name: str, default: int | None = None) -> int | None:
        """Get an integer variable.

        Raises:
            InvalidConfigValueError: If the value is not an integer.
        """
        value = self.get(name)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid integer value for {self._make_key(name)}",
                config_key=self._make_key(name),
                value=value,
                expected="integer",
                cause=e,
            ) from e

    def get_bool(self, name: str, default: bool | None = None) -> bool | None:
        """Get a boolean variable.

        Truthy values: "1", "true", "yes", "on" (case-insensitive)
        Falsy values: "0", "false", "no", "off" (case-insensitive)

        Raises:
            InvalidConfigValueError: If the value is not a recognised boolean.
        """
        value = self.get(name)
        if value is None:
            return default
        lower_value = value.lower()
        if lower_value in ("1", "true", "yes", "on"):
            return True
        if lower_value in ("0", "false", "no", "off"):
            return False
        raise InvalidConfigValueError(
            f"Invalid boolean value for {self._make_key(name)}",
            config_key=self._make_key(name),
            value=value,
            expected="boolean (1/0, true/false, yes/no, on/off)",
        )


# =============================================================================
# File Configuration Utilities
# =============================================================================


def _unreadable(path: Path, error: Exception) -> ConfigurationError:
    return ConfigurationError(
        f"Failed to read configuration file: {path}",
        details={"path": str(path), "error": type(error).__name__},
        cause=error,
    )


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML configuration: {path}",
            details={"path": str(path)},
            cause=e,
        ) from e
    except (OSError, UnicodeDecodeError) as e:
        raise _unreadable(path, e) from e
    return data if isinstance(data, dict) else {}


def _load_json(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Failed to parse JSON configuration: {path}",
            details={"path": str(path)},
            cause=e,
        ) from e
    except (OSError, UnicodeDecodeError) as e:
        raise _unreadable(path, e) from e
    return data if isinstance(data, dict) else {}


def load_config_file(path: Path | str) -> dict[str, Any]:
    """Load a configuration mapping from a JSON or YAML file.

    Args:
        path: Path to a ``.json``, ``.yaml`` or ``.yml`` file.

    Returns:
        Parsed configuration dictionary (empty if the file holds no mapping).

    Raises:
        ConfigurationError: If the file is missing, unsupported, or malformed.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {path}",
            details={"path": str(path)},
        )

    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return _load_yaml(path)
    if suffix == ".json":
        return _load_json(path)
    raise ConfigurationError(
        f"Unsupported configuration file format: {suffix}",
        details={"path": str(path), "suffix": suffix},
    )


# =============================================================================
# Registry Configuration
# =============================================================================


@dataclass(frozen=True, slots=True)
class RegistryConfig:
    """Settings for a MetricsRegistry and the process lifecycle.

    Attributes:
        strict_kinds: Raise KindMismatchError when a key is requested as a
            different kind than the one registered. When false the existing
            metric is returned and a warning is logged.
        lock_stripes: Number of lock stripes guarding insert-if-absent.
        register_environment_gauges: Whether initialize() publishes the
            built-in runtime gauges.
        environment_owner: Owner used for the runtime gauge keys.
        log_level: Level passed to configure_logging by initialize().
        log_format: ``text`` or ``json``.

    Example:
        >>> config = RegistryConfig(strict_kinds=True, log_format="json")
    """

    strict_kinds: bool = False
    lock_stripes: int = 32
    register_environment_gauges: bool = True
    environment_owner: str = "runtime"
    log_level: str = "INFO"
    log_format: str = "text"

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.lock_stripes < 1:
            raise InvalidConfigValueError(
                "lock_stripes must be at least 1",
                config_key="lock_stripes",
                value=self.lock_stripes,
                expected=">= 1",
            )
        if not self.environment_owner.strip():
            raise InvalidConfigValueError(
                "environment_owner must not be empty",
                config_key="environment_owner",
                value=self.environment_owner,
            )
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise InvalidConfigValueError(
                f"Unknown log level: {self.log_level}",
                config_key="log_level",
                value=self.log_level,
                expected=", ".join(VALID_LOG_LEVELS),
            )
        if self.log_format not in VALID_LOG_FORMATS:
            raise InvalidConfigValueError(
                f"Unknown log format: {self.log_format}",
                config_key="log_format",
                value=self.log_format,
                expected=", ".join(VALID_LOG_FORMATS),
            )

    def with_strict_kinds(self, strict_kinds: bool) -> RegistryConfig:
        """Create config with a new strict_kinds setting."""
        return replace(self, strict_kinds=strict_kinds)

    def with_lock_stripes(self, lock_stripes: int) -> RegistryConfig:
        """Create config with a new stripe count."""
        return replace(self, lock_stripes=lock_stripes)

    def with_environment_gauges(self, enabled: bool, owner: str | None = None) -> RegistryConfig:
        """Create config enabling or disabling the runtime gauges."""
        return replace(
            self,
            register_environment_gauges=enabled,
            environment_owner=owner or self.environment_owner,
        )

    def with_logging(self, level: str | None = None, format: str | None = None) -> RegistryConfig:
        """Create config with new logging settings."""
        return replace(
            self,
            log_level=level or self.log_level,
            log_format=format or self.log_format,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create a RegistryConfig from a dictionary, ignoring unknown keys.

        Raises:
            InvalidConfigValueError: If a value has the wrong type.
        """
        defaults = cls()
        values: dict[str, Any] = {}
        for name, expected_type in (
            ("strict_kinds", bool),
            ("lock_stripes", int),
            ("register_environment_gauges", bool),
            ("environment_owner", str),
            ("log_level", str),
            ("log_format", str),
        ):
            value = data.get(name, getattr(defaults, name))
            if not isinstance(value, expected_type) or (
                expected_type is int and isinstance(value, bool)
            ):
                raise InvalidConfigValueError(
                    f"Invalid value for {name}",
                    config_key=name,
                    value=value,
                    expected=expected_type.__name__,
                )
            values[name] = value
        return cls(**values)

    @classmethod
    def from_env(cls, prefix: str = DEFAULT_ENV_PREFIX, base: RegistryConfig | None = None) -> Self:
        """Create a RegistryConfig from environment variables.

        Recognised variables (with the default prefix): APPMETRICS_STRICT_KINDS,
        APPMETRICS_LOCK_STRIPES, APPMETRICS_ENVIRONMENT_GAUGES,
        APPMETRICS_ENVIRONMENT_OWNER, APPMETRICS_LOG_LEVEL, APPMETRICS_LOG_FORMAT.

        Args:
            prefix: Environment variable prefix.
            base: Values used for unset variables (defaults otherwise).
        """
        reader = EnvReader(prefix)
        base = base or cls()
        return cls(
            strict_kinds=reader.get_bool("STRICT_KINDS", base.strict_kinds),
            lock_stripes=reader.get_int("LOCK_STRIPES", base.lock_stripes),
            register_environment_gauges=reader.get_bool(
                "ENVIRONMENT_GAUGES", base.register_environment_gauges
            ),
            environment_owner=reader.get("ENVIRONMENT_OWNER", base.environment_owner),
            log_level=reader.get("LOG_LEVEL", base.log_level),
            log_format=reader.get("LOG_FORMAT", base.log_format),
        )

    @classmethod
    def from_file(cls, path: Path | str, *, use_env: bool = True) -> Self:
        """Load configuration from a file, then overlay environment variables.

        The file may hold the settings at top level or under a ``metrics``
        section.
        """
        data = load_config_file(path)
        section = data.get("metrics", data)
        if not isinstance(section, dict):
            raise ConfigurationError(
                "The 'metrics' section must be a mapping",
                config_key="metrics",
                details={"path": str(path)},
            )
        config = cls.from_dict(section)
        if use_env:
            return cls.from_env(base=config)
        return config


DEFAULT_REGISTRY_CONFIG = RegistryConfig()
STRICT_REGISTRY_CONFIG = RegistryConfig(strict_kinds=True)
