"""
Global configuration for the numerousapp SDK.

Convention over configuration: nothing needs to be configured to talk to the
production server, as long as an API key can be found. Call
NUMEROUS.configure() at application startup to change defaults.

Hierarchy of precedence (highest to lowest):
1. Arguments passed to the Numerous(...) constructor
2. Values set via NUMEROUS.configure()
3. Environment variables (NUMEROUS_*, and NUMEROUSAPIKEY for the key)
4. Hardcoded defaults (in dataclass fields)

Example:
    >>> from numerousapp import NUMEROUS
    >>>
    >>> NUMEROUS.config.throttle.voluntary_threshold
    40
    >>> NUMEROUS.configure(
    ...     auth={"api_key": "@~/.numerous-creds"},
    ...     throttle={"voluntary_threshold": 60},
    ... )
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field, fields, replace
from typing import Any, Self

# =============================================================================
# Exceptions
# =============================================================================


class ConfigEnvVarError(ValueError):
    """Raised when an environment variable has an invalid value."""

    def __init__(
        self,
        env_var: str,
        value: str,
        expected_type: str,
        cause: Exception | None = None,
    ):
        self.env_var = env_var
        self.value = value
        self.expected_type = expected_type
        super().__init__(f"Invalid value for {env_var}: '{value}' (expected {expected_type})")
        self.__cause__ = cause


class ConfigValidationError(ValueError):
    """Raised when a configuration value fails validation."""

    def __init__(
        self,
        field: str,
        value: Any,
        message: str,
        section: str | None = None,
    ):
        self.field = field
        self.value = value
        self.section = section
        prefix = f"[{section}] " if section else ""
        super().__init__(f"{prefix}Invalid value for '{field}': {value!r}. {message}")


# =============================================================================
# Environment Variables
# =============================================================================


class EnvVars:
    """
    Reads environment variables with type conversion.

    Example:
        >>> EnvVars.get("NUMEROUS_THROTTLE_MAX_ATTEMPTS", type_hint=int)
        10
        >>> EnvVars.get("UNDEFINED_VAR")
        None
    """

    @staticmethod
    def get(
        var_name: str,
        type_hint: Any = str,
        converter: Callable[[str], Any] | None = None,
    ) -> Any:
        """
        Read an environment variable, converting it to `type_hint`.

        Returns:
            The converted value, or None if the variable is unset or empty.

        Raises:
            ConfigEnvVarError: If the value cannot be converted.
        """
        raw_value = os.environ.get(var_name)
        if not raw_value:
            return None

        actual_converter = converter or EnvVars._infer_converter(type_hint)
        try:
            return actual_converter(raw_value)
        except (ValueError, TypeError) as e:
            raise ConfigEnvVarError(
                env_var=var_name,
                value=raw_value,
                expected_type=type_hint.__name__ if hasattr(type_hint, "__name__") else str(type_hint),
                cause=e,
            ) from e

    @staticmethod
    def _infer_converter(type_hint: Any) -> Callable[[str], Any]:
        # annotations are strings here (PEP 563)
        type_str = str(type_hint)

        if type_hint is int or type_str == "int":
            return int
        if type_hint is float or type_str == "float":
            return float
        if type_hint is bool or type_str == "bool":
            return EnvVars._to_bool
        return str

    @staticmethod
    def _to_bool(value: str) -> bool:
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off"):
            return False
        raise ValueError(f"not a boolean: {value}")


# =============================================================================
# Base Class
# =============================================================================


@dataclass(frozen=True)
class OverridableConfig:
    """
    Base class for the immutable configuration sections.

    Subclasses declare their env var names in field metadata:

        max_attempts: int = field(default=10, metadata={"env": "NUMEROUS_THROTTLE_MAX_ATTEMPTS"})
    """

    def with_overrides(self, overrides: dict[str, Any] | None) -> Self:
        """
        Return a new instance with the given fields replaced.

        None values are ignored, so callers can pass optional arguments straight through.

        Raises:
            ValueError: If overrides contains unknown field names.
        """
        if not overrides:
            return self

        valid_fields = {f.name for f in fields(self)}
        invalid_fields = set(overrides) - valid_fields
        if invalid_fields:
            raise ValueError(
                f"Unknown config fields: {sorted(invalid_fields)}. "
                f"Valid fields are: {sorted(valid_fields)}"
            )

        filtered = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **filtered) if filtered else self

    def with_env_vars(self) -> Self:
        """
        Return a new instance with environment variables applied.

        Raises:
            ConfigEnvVarError: If an env var has an invalid value.
        """
        overrides: dict[str, Any] = {}
        for f in fields(self):
            env_var = f.metadata.get("env")
            if env_var:
                value = EnvVars.get(var_name=env_var, type_hint=f.type)
                if value is not None:
                    overrides[f.name] = value
        return self.with_overrides(overrides)

    def validate(self) -> Self:
        return self


# =============================================================================
# Configuration Sections
# =============================================================================


def _default_user_agent() -> str:
    from numerousapp import __version__

    return f"NW-Python-NumerousClass/{__version__} NumerousAPI/v2"


@dataclass(frozen=True)
class AuthConfig(OverridableConfig):
    """
    Authentication configuration.

    Attributes:
        api_key: API key spec: the key itself, "@file", "/path", "@-" (stdin)
            or a JSON credentials blob. See resolve_api_key().
            Env var: NUMEROUSAPIKEY

        creds_key: Field holding the key inside a JSON credentials object.
            Env var: NUMEROUS_AUTH_CREDS_KEY
    """

    api_key: str | None = field(default=None, repr=False, metadata={"env": "NUMEROUSAPIKEY"})
    creds_key: str = field(default="NumerousAPIKey", metadata={"env": "NUMEROUS_AUTH_CREDS_KEY"})

    def has_api_key(self) -> bool:
        return bool(self.api_key)

    def validate(self) -> Self:
        if self.api_key is not None and self.api_key == "":
            raise ConfigValidationError("api_key", self.api_key, "Must not be empty string.", section="auth")
        if not self.creds_key:
            raise ConfigValidationError("creds_key", self.creds_key, "Must not be empty.", section="auth")
        return self


@dataclass(frozen=True)
class ClientConfig(OverridableConfig):
    """
    Connection settings.

    Attributes:
        server: Host name of the NumerousApp server (HTTPS is always used).
            Env var: NUMEROUS_CLIENT_SERVER

        request_timeout: Connect/read timeout in seconds for each HTTP request.
            This is the only bound on a hung call.
            Env var: NUMEROUS_CLIENT_REQUEST_TIMEOUT

        user_agent: User-Agent header sent to the server.
            Env var: NUMEROUS_CLIENT_USER_AGENT
    """

    server: str = field(default="api.numerousapp.com", metadata={"env": "NUMEROUS_CLIENT_SERVER"})
    request_timeout: int = field(default=30, metadata={"env": "NUMEROUS_CLIENT_REQUEST_TIMEOUT"})
    user_agent: str = field(default_factory=_default_user_agent, metadata={"env": "NUMEROUS_CLIENT_USER_AGENT"})

    def validate(self) -> Self:
        if not self.server or "/" in self.server:
            raise ConfigValidationError(
                "server", self.server,
                "Must be a bare host name (e.g. 'api.numerousapp.com').", section="client"
            )
        if self.request_timeout <= 0:
            raise ConfigValidationError(
                "request_timeout", self.request_timeout, "Must be greater than 0.", section="client"
            )
        return self


@dataclass(frozen=True)
class ThrottleConfig(OverridableConfig):
    """
    Settings of the throttling core.

    Attributes:
        max_attempts: Hard ceiling on sends of a single request, whatever
            the throttle policy says.
            Env var: NUMEROUS_THROTTLE_MAX_ATTEMPTS

        voluntary_threshold: Remaining API quota below which the default
            policy slows down voluntarily.
            Env var: NUMEROUS_THROTTLE_VOLUNTARY_THRESHOLD
    """

    max_attempts: int = field(default=10, metadata={"env": "NUMEROUS_THROTTLE_MAX_ATTEMPTS"})
    voluntary_threshold: int = field(default=40, metadata={"env": "NUMEROUS_THROTTLE_VOLUNTARY_THRESHOLD"})

    def validate(self) -> Self:
        if self.max_attempts < 1:
            raise ConfigValidationError(
                "max_attempts", self.max_attempts, "Must be >= 1.", section="throttle"
            )
        if self.voluntary_threshold < 0:
            raise ConfigValidationError(
                "voluntary_threshold", self.voluntary_threshold, "Must be >= 0.", section="throttle"
            )
        return self


@dataclass(frozen=True)
class PaginationConfig(OverridableConfig):
    """
    Settings of the collection iterator.

    Attributes:
        filter_duplicates: Suppress items repeated across adjacent pages
            (works around a server bug). Turning it off is meant for testing.
            Env var: NUMEROUS_PAGINATION_FILTER_DUPLICATES
    """

    filter_duplicates: bool = field(default=True, metadata={"env": "NUMEROUS_PAGINATION_FILTER_DUPLICATES"})


_SECTIONS = ("auth", "client", "throttle", "pagination")


@dataclass(frozen=True)
class NumerousConfig:
    """
    Root configuration, aggregating all sections.

    Example:
        >>> from numerousapp import NUMEROUS
        >>> NUMEROUS.config.client.server
        'api.numerousapp.com'
        >>> NUMEROUS.config.pagination.filter_duplicates
        True
    """

    auth: AuthConfig = field(default_factory=AuthConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    throttle: ThrottleConfig = field(default_factory=ThrottleConfig)
    pagination: PaginationConfig = field(default_factory=PaginationConfig)

    def with_env_vars(self) -> NumerousConfig:
        return NumerousConfig(**{name: getattr(self, name).with_env_vars() for name in _SECTIONS})

    def with_section_overrides(self, **sections: dict[str, Any] | None) -> NumerousConfig:
        """
        Return a new config with per-section overrides applied.

        Raises:
            ValueError: On unknown section or field names.
        """
        unknown = set(sections) - set(_SECTIONS)
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}. Valid sections are: {_SECTIONS}")
        return NumerousConfig(
            **{name: getattr(self, name).with_overrides(sections.get(name)) for name in _SECTIONS}
        )

    def validate(self) -> NumerousConfig:
        for name in _SECTIONS:
            getattr(self, name).validate()
        return self


@dataclass(frozen=True)
class ConfigEntry:
    """One line of NUMEROUS.explain(): a field, its value and where it came from."""

    name: str
    value: Any
    source: str

    @property
    def formatted_value(self) -> str:
        if self.value is None:
            return "None"
        if self.name == "api_key":
            text = str(self.value)
            return text[:8] + "****" if len(text) > 8 else "****"
        text = str(self.value)
        return text if len(text) <= 50 else text[:47] + "..."


# =============================================================================
# Global Configuration Singleton
# =============================================================================


class _Numerous:
    """
    Singleton holding the SDK configuration.

    Use NUMEROUS.configure() to customize settings and NUMEROUS.config to
    read them.
    """

    def __init__(self) -> None:
        self._overrides: dict[str, dict[str, Any]] = {}
        self._config: NumerousConfig = NumerousConfig().with_env_vars()

    def configure(
        self,
        *,
        auth: dict[str, Any] | None = None,
        client: dict[str, Any] | None = None,
        throttle: dict[str, Any] | None = None,
        pagination: dict[str, Any] | None = None,
        allow_env_override: bool = True,
    ) -> NumerousConfig:
        """
        Configure SDK settings.

        Args:
            auth: Authentication overrides (api_key, creds_key).
            client: Connection overrides (server, request_timeout, user_agent).
            throttle: Throttling overrides (max_attempts, voluntary_threshold).
            pagination: Iterator overrides (filter_duplicates).
            allow_env_override: If True (default), env vars are used for
                fields NOT provided here. If False, env vars are ignored.

        Returns:
            The configured NumerousConfig instance.

        Raises:
            ValueError: If any dict contains unknown field names.
            ConfigValidationError: If any config value fails validation.
        """
        base = NumerousConfig()
        if allow_env_override:
            base = base.with_env_vars()

        sections = {"auth": auth, "client": client, "throttle": throttle, "pagination": pagination}
        self._config = base.with_section_overrides(**sections)
        self._overrides = {name: dict(values) for name, values in sections.items() if values}
        return self.validate()

    @property
    def config(self) -> NumerousConfig:
        return self._config

    def reset(self) -> NumerousConfig:
        """Reset configuration to defaults + env vars. Handy between tests."""
        self._overrides = {}
        self._config = NumerousConfig().with_env_vars()
        return self.validate()

    def validate(self) -> NumerousConfig:
        """
        Validate the current configuration.

        Raises:
            ConfigValidationError: If any config value is invalid.
        """
        return self._config.validate()

    def explain_data(self) -> dict[str, list[ConfigEntry]]:
        """Return every config value with its source ("default", "env:VAR" or "configure")."""
        result: dict[str, list[ConfigEntry]] = {}
        for section_name in _SECTIONS:
            section = getattr(self._config, section_name)
            user_fields = self._overrides.get(section_name, {})
            entries = []
            for f in fields(section):
                env_var = f.metadata.get("env")
                if f.name in user_fields and user_fields[f.name] is not None:
                    source = "configure"
                elif env_var and os.environ.get(env_var):
                    source = f"env:{env_var}"
                else:
                    source = "default"
                entries.append(ConfigEntry(name=f.name, value=getattr(section, f.name), source=source))
            result[section_name] = entries
        return result

    def explain(self, output: Callable[[str], None] = print) -> None:
        """
        Print the current configuration with the source of each value.

        Args:
            output: Callable receiving each line. Use `NUMEROUS.explain(logger.info)`
                to send it to the logs.
        """
        name_width = 22
        output("NumerousApp Configuration:")
        output("=" * 80)
        for section_name, entries in self.explain_data().items():
            output(f"[{section_name}]")
            for entry in entries:
                dots = "." * (name_width - len(entry.name))
                marker = "✎" if entry.source != "default" else " "
                output(f"  {entry.name} {dots} {entry.formatted_value:<50} {marker} {entry.source}")
        output("=" * 80)

    def __repr__(self) -> str:
        return f"NUMEROUS(config={self._config!r})"


# Global singleton instance - always reflects current configuration
NUMEROUS: _Numerous = _Numerous()
NUMEROUS.validate()
