"""
NumerousApp SDK for Python.

A client library for the NumerousApp metrics service: read and write metric
values, walk events, interactions and subscriptions, manage photos, all under
a throttle policy that keeps you on the right side of the server's rate limit.

Quick Start:
    >>> from numerousapp import Numerous
    >>> nr = Numerous("nmrs_28Cblahblah")
    >>> m = nr.create_metric("bozo", value=17)
    >>> m.write(18)
    18
    >>> for event in m.events():
    ...     print(event["value"])

Global Configuration:
    >>> from numerousapp import NUMEROUS
    >>>
    >>> # Pre-loaded with defaults + env vars (NUMEROUSAPIKEY, ...)
    >>> server = NUMEROUS.config.client.server
    >>>
    >>> # Custom configuration
    >>> NUMEROUS.configure(
    ...     auth={"api_key": "@~/.numerous-creds"},
    ...     throttle={"voluntary_threshold": 60},
    ... )

Main Classes:
    - Numerous: Server-level client (user, metrics collection, metric creation).
    - NumerousMetric: Handle on one metric.

Configuration:
    - NUMEROUS: Global SDK singleton for configuration.
    - NumerousConfig: Root configuration dataclass.
    - AuthConfig, ClientConfig, ThrottleConfig, PaginationConfig: Sections.
    - ConfigEnvVarError: Exception raised when env var parsing fails.
    - ConfigValidationError: Exception raised when config validation fails.

Errors:
    - NumerousError: Base class; NetworkError, AuthError, ConflictError,
      ProtocolError and APIError specialize it.

Throttling:
    - ThrottlePolicy: One link of the throttle policy chain.
    - ThrottleDecisionInput: What a throttle policy decides on.
    - default_throttle_policy: The built-in policy.

HTTP Client:
    - HttpClient: Abstract base class for HTTP clients.
    - EnvironmentAwareHttpClient: Resolves the API key from config. Default.
    - StandaloneHttpClient: HTTP client using an explicit AuthProvider.
"""

from importlib.metadata import version as _get_version

__version__ = _get_version("numerousapp")

from numerousapp._auth import (
    ApiKeyAuthProvider,
    AuthProvider,
    create_auth_provider,
    resolve_api_key,
)
from numerousapp._config import (
    NUMEROUS,
    AuthConfig,
    ClientConfig,
    ConfigEntry,
    ConfigEnvVarError,
    ConfigValidationError,
    NumerousConfig,
    PaginationConfig,
    ThrottleConfig,
)
from numerousapp._errors import (
    APIError,
    AuthError,
    ConflictError,
    NetworkError,
    NumerousError,
    ProtocolError,
)
from numerousapp._executor import RawBytes, RequestExecutor, Stream
from numerousapp._http import (
    EnvironmentAwareHttpClient,
    HttpClient,
    StandaloneHttpClient,
)
from numerousapp._pagination import STOP, PaginatedIterator
from numerousapp._stats import Statistics
from numerousapp._throttle import (
    ThrottleDecisionInput,
    ThrottlePolicy,
    default_throttle_policy,
)
from numerousapp.client import Numerous
from numerousapp.metric import NumerousMetric

__all__ = [
    "__version__",
    # Client
    "Numerous",
    "NumerousMetric",
    "Statistics",
    # Configuration
    "NUMEROUS",
    "NumerousConfig",
    "ConfigEntry",
    "ConfigEnvVarError",
    "ConfigValidationError",
    "AuthConfig",
    "ClientConfig",
    "ThrottleConfig",
    "PaginationConfig",
    # Authentication
    "AuthProvider",
    "ApiKeyAuthProvider",
    "create_auth_provider",
    "resolve_api_key",
    # Errors
    "NumerousError",
    "NetworkError",
    "AuthError",
    "ConflictError",
    "ProtocolError",
    "APIError",
    # Throttling
    "ThrottlePolicy",
    "ThrottleDecisionInput",
    "default_throttle_policy",
    # Execution
    "RequestExecutor",
    "PaginatedIterator",
    "STOP",
    "RawBytes",
    "Stream",
    # HTTP Client
    "HttpClient",
    "EnvironmentAwareHttpClient",
    "StandaloneHttpClient",
]
