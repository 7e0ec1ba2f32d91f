"""
HTTP transport for the numerousapp SDK.

The request executor never talks to `requests` directly; it goes through an
HttpClient, which adds authentication and hands back a `requests.Response`.
Tests (and callers with special needs) plug in their own implementation.

Available implementations:
    - EnvironmentAwareHttpClient: Resolves the API key from NUMEROUS.config on first use. Default.
    - StandaloneHttpClient: Uses an explicit AuthProvider.

Example:
    >>> from numerousapp._auth import ApiKeyAuthProvider
    >>> from numerousapp._http import StandaloneHttpClient
    >>> client = StandaloneHttpClient(ApiKeyAuthProvider("nmrs_28Cblahblah"))
    >>> response = client.request("GET", "https://api.numerousapp.com/v1/users/me")
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, override

import requests

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from numerousapp._auth import AuthProvider


# =============================================================================
# Abstract Base Class
# =============================================================================


class HttpClient(ABC):
    """
    Abstract base class for HTTP clients.

    Implementations handle authentication. Transport failures are reported
    by raising `requests.RequestException` (or a subclass); the request
    executor wraps them into NetworkError.

    Example:
        >>> class MyHttpClient(HttpClient):
        ...     def request(self, method, url, headers=None, json=None, files=None,
        ...                 timeout=30, allow_redirects=True):
        ...         return requests.request(method, url, headers=headers, json=json,
        ...                                 files=files, timeout=timeout)
    """

    @abstractmethod
    def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        json: Any = None,
        files: dict[str, Any] | None = None,
        timeout: int = 30,
        allow_redirects: bool = True,
    ) -> requests.Response:
        """
        Execute an authenticated HTTP request.

        Args:
            method: HTTP verb ("GET", "POST", "PUT", "DELETE").
            url: The absolute URL to request.
            headers: Additional headers (merged with auth headers).
            json: JSON-serializable body, sent as application/json.
            files: Multipart parts, in the `requests` files= format.
            timeout: Connect/read timeout in seconds.
            allow_redirects: Whether to follow redirects.

        Returns:
            The HTTP response, whatever its status code.

        Raises:
            requests.RequestException: If no response could be obtained.
        """
        pass


# =============================================================================
# Standalone Implementation
# =============================================================================


class StandaloneHttpClient(HttpClient):
    """
    HTTP client using an AuthProvider for authentication.

    Args:
        auth_provider: Provider for the basic-auth header.
    """

    def __init__(self, auth_provider: "AuthProvider"):
        from numerousapp._auth import AuthProvider

        assert auth_provider is not None, "auth_provider cannot be None"
        assert isinstance(auth_provider, AuthProvider), "auth_provider must be an AuthProvider instance"

        self._auth = auth_provider

    @override
    def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        json: Any = None,
        files: dict[str, Any] | None = None,
        timeout: int = 30,
        allow_redirects: bool = True,
    ) -> requests.Response:
        assert method, "HTTP method cannot be empty."
        assert url, "URL cannot be empty."
        assert timeout is not None, "Timeout cannot be None."
        assert timeout > 0, "Timeout must be greater than 0."
        assert json is None or files is None, "Cannot send both a JSON body and multipart files."

        merged_headers = {**self._auth.get_auth_headers(), **(headers or {})}

        return requests.request(
            method,
            url,
            headers=merged_headers,
            json=json,
            files=files,
            timeout=timeout,
            allow_redirects=allow_redirects,
        )


# =============================================================================
# Environment-Aware Implementation
# =============================================================================


class EnvironmentAwareHttpClient(HttpClient):
    """
    HTTP client that resolves its credentials lazily from NUMEROUS.config.

    The API key is looked up on the first request, so NUMEROUS.configure()
    may be called after the client is created.

    Thread-safe lazy initialization (double-checked locking).
    """

    def __init__(self) -> None:
        self._delegate: HttpClient | None = None
        self._lock = threading.Lock()

    def _get_delegate(self) -> HttpClient:
        if self._delegate is None:
            with self._lock:
                if self._delegate is None:
                    self._delegate = self._create_delegate()
        return self._delegate

    def _create_delegate(self) -> HttpClient:
        """
        Raises:
            ValueError: If no API key can be resolved.
        """
        from numerousapp._auth import create_auth_provider

        auth = create_auth_provider()
        logger.debug("EnvironmentAwareHttpClient: API key resolved. Using StandaloneHttpClient.")
        return StandaloneHttpClient(auth_provider=auth)

    @override
    def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        json: Any = None,
        files: dict[str, Any] | None = None,
        timeout: int = 30,
        allow_redirects: bool = True,
    ) -> requests.Response:
        return self._get_delegate().request(
            method,
            url,
            headers=headers,
            json=json,
            files=files,
            timeout=timeout,
            allow_redirects=allow_redirects,
        )
