"""
Authentication for the numerousapp SDK.

The NumerousApp server uses HTTP basic authentication with the API key as
the user name and an empty password.

The main pieces are:
- AuthProvider: Abstract base class for authentication providers.
- ApiKeyAuthProvider: Basic auth with a NumerousApp API key.
- resolve_api_key(): Obtain an API key from a string, file, stdin or env var.

Example:
    >>> from numerousapp._auth import ApiKeyAuthProvider, resolve_api_key
    >>> auth = ApiKeyAuthProvider(resolve_api_key("@~/.numerous-creds"))
    >>> headers = auth.get_auth_headers()
    >>> # {"Authorization": "Basic bm1yc18..."}
"""

from __future__ import annotations

import base64
import json
import logging
import os
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import IO, TYPE_CHECKING

if TYPE_CHECKING:
    from numerousapp._config import AuthConfig

logger = logging.getLogger(__name__)

API_KEY_ENV_VAR = "NUMEROUSAPIKEY"
DEFAULT_CREDS_KEY = "NumerousAPIKey"


# =============================================================================
# Abstract Base Class
# =============================================================================


class AuthProvider(ABC):
    """
    Abstract base class for authentication providers.

    Example:
        >>> class MyAuthProvider(AuthProvider):
        ...     def get_api_key(self) -> str:
        ...         return "nmrs_28Cblahblah"
        ...
        >>> auth = MyAuthProvider()
        >>> headers = auth.get_auth_headers()
    """

    @abstractmethod
    def get_api_key(self) -> str:
        """
        Return the API key to authenticate with.

        Raises:
            ValueError: If no API key is available.
        """
        pass

    def get_auth_headers(self) -> dict[str, str]:
        """
        Return authorization headers for HTTP requests.

        Returns:
            Dict with a basic Authorization header: the API key as the
            user name and an empty password.
        """
        token = base64.b64encode(f"{self.get_api_key()}:".encode()).decode("ascii")
        return {"Authorization": f"Basic {token}"}


# =============================================================================
# Implementations
# =============================================================================


class ApiKeyAuthProvider(AuthProvider):
    """
    Authenticates with a fixed NumerousApp API key.

    Args:
        api_key: The API key (something like "nmrs_28Cblahblah").
    """

    def __init__(self, api_key: str):
        assert api_key, "api_key cannot be empty"
        self._api_key = api_key

    def get_api_key(self) -> str:
        return self._api_key

    def __repr__(self) -> str:
        # never print the whole key
        return f"ApiKeyAuthProvider(api_key='{self._api_key[:8]}...')"


# =============================================================================
# Helper Functions
# =============================================================================


def resolve_api_key(
    spec: str | IO[str] | None = None,
    creds_key: str = DEFAULT_CREDS_KEY,
    stdin: IO[str] | None = None,
) -> str | None:
    """
    Obtain an API key from a "naked" key, a file, stdin or the environment.

    Accepted specs:
        nmrs_xxx      the API key itself (returned as-is)
        @-            read it from stdin
        @path         read it from the file "path"
        /path         read it from the file /path
        .path         read it from the file .path (could be ../ etc.)
        readable      anything with a read() method
        None          use the NUMEROUSAPIKEY environment variable (itself a spec)

    Whatever is read can be the naked key or a JSON object, in which case the
    key is taken from its `creds_key` field.

    Args:
        spec: Where to find the key.
        creds_key: Field holding the key inside a JSON credentials object.
        stdin: Stream used for "@-" (defaults to sys.stdin).

    Returns:
        The API key, or None if the spec is empty or the file cannot be read.

    Example:
        >>> resolve_api_key('{"NumerousAPIKey": "nmrs_28Cblahblah"}')
        'nmrs_28Cblahblah'
    """
    if spec is None:
        spec = os.environ.get(API_KEY_ENV_VAR)
        if not spec:
            return None

    if isinstance(spec, str):
        if spec == "@-":
            text = (stdin or sys.stdin).read()
        elif len(spec) > 1 and spec.startswith("@"):
            text = _read_creds_file(spec[1:])
        elif spec.startswith(("/", ".")):
            text = _read_creds_file(spec)
        else:
            text = spec
    else:
        text = spec.read()

    if text is None:
        return None

    try:
        creds = json.loads(text)
    except ValueError:
        creds = None

    if isinstance(creds, dict) and creds_key in creds:
        return creds[creds_key]

    # naked key; files and stdin usually bring a trailing newline
    return text.rstrip("\r\n") or None


def _read_creds_file(path: str) -> str | None:
    try:
        return Path(path).expanduser().read_text(encoding="utf-8")
    except OSError as e:
        logger.debug(f"Could not read credentials file '{path}': {e}")
        return None


def create_auth_provider(config: AuthConfig | None = None) -> ApiKeyAuthProvider:
    """
    Create an ApiKeyAuthProvider from configuration.

    Args:
        config: Optional AuthConfig. If None, uses NUMEROUS.config.auth.

    Returns:
        Configured ApiKeyAuthProvider instance.

    Raises:
        ValueError: If no API key can be resolved.

    Example:
        >>> from numerousapp import NUMEROUS
        >>> NUMEROUS.configure(auth={"api_key": "@/etc/numerous/creds.json"})
        >>> auth = create_auth_provider()
    """
    if config is None:
        from numerousapp._config import NUMEROUS

        config = NUMEROUS.config.auth

    api_key = resolve_api_key(config.api_key, creds_key=config.creds_key)
    if not api_key:
        raise ValueError(
            "NumerousApp API key not configured. Either:\n"
            f"  1. Set the {API_KEY_ENV_VAR} environment variable (a key, @file or JSON)\n"
            "  2. Call NUMEROUS.configure(auth={'api_key': ...}) at startup\n"
            "  3. Pass api_key to Numerous(...)"
        )

    return ApiKeyAuthProvider(api_key)
