"""
Single-request execution path.

Every exchange with the NumerousApp server goes through
RequestExecutor.execute(), except get_redirect() which is a special case for
photo URLs. Collections use the paginated iterator, which in turn calls
execute() once per page.

execute() sends the request, consults the throttle policy chain after each
response (possibly sending the very same request again), and then interprets
the response that was finally kept:

    accepted status + JSON body  -> parsed value
    accepted status + empty body -> {}            (server quirk, not an error)
    accepted status + junk body  -> ProtocolError (server bug)
    any other status             -> AuthError (401) or APIError
    no response at all           -> NetworkError

Example:
    >>> executor = RequestExecutor(http_client=EnvironmentAwareHttpClient())
    >>> executor.execute(SERVER_APIS["user"].context("GET"))
    {'id': '66784', 'userName': 'nw', ...}
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import IO, Any

import requests

from numerousapp._api import RequestContext
from numerousapp._errors import NetworkError, ProtocolError, http_error
from numerousapp._http import HttpClient
from numerousapp._stats import Statistics
from numerousapp._throttle import ThrottleDecisionInput, ThrottlePolicy

logger = logging.getLogger(__name__)

RATE_REMAINING_HEADER = "x-rate-limit-remaining"
RATE_RESET_HEADER = "x-rate-limit-reset"

DEFAULT_MAX_ATTEMPTS = 10

UNAUTHORIZED = 401


# =============================================================================
# Binary uploads
# =============================================================================


@dataclass(frozen=True)
class RawBytes:
    """Upload payload already in memory."""

    data: bytes
    mime_type: str = "image/jpeg"

    def read_payload(self) -> bytes:
        return self.data


@dataclass(frozen=True)
class Stream:
    """Upload payload read (once, entirely) from a binary file-like source."""

    source: IO[bytes]
    mime_type: str = "image/jpeg"

    def read_payload(self) -> bytes:
        return self.source.read()


BinaryUpload = RawBytes | Stream


def as_upload(image: bytes | IO[bytes] | BinaryUpload, mime_type: str = "image/jpeg") -> BinaryUpload:
    """Wrap raw bytes or an open binary file into a BinaryUpload."""
    if isinstance(image, (RawBytes, Stream)):
        return image
    if isinstance(image, (bytes, bytearray, memoryview)):
        return RawBytes(bytes(image), mime_type)
    return Stream(image, mime_type)


# =============================================================================
# Executor
# =============================================================================


class RequestExecutor:
    """
    Sends one API request under control of a throttle policy chain.

    Args:
        http_client: Transport used to send requests.
        statistics: Counters shared with the rest of the client.
        throttle_policy: Head of the throttle policy chain. Defaults to the
            built-in policy.
        server: Host name; relative paths are sent to https://<server>.
        max_attempts: Hard ceiling on sends of a single request.
        request_timeout: Transport timeout in seconds.
        user_agent: Value of the User-Agent header.
    """

    def __init__(
        self,
        http_client: HttpClient,
        statistics: Statistics | None = None,
        throttle_policy: ThrottlePolicy | None = None,
        server: str = "api.numerousapp.com",
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        request_timeout: int = 30,
        user_agent: str | None = None,
    ):
        assert http_client is not None, "http_client cannot be None."
        assert server, "server cannot be empty."
        assert max_attempts >= 1, "max_attempts must be >= 1."
        assert request_timeout > 0, "request_timeout must be greater than 0."

        self.http_client = http_client
        self.statistics = statistics if statistics is not None else Statistics()
        self.throttle_policy = throttle_policy or ThrottlePolicy.default()
        self.server = server
        self.max_attempts = max_attempts
        self.request_timeout = request_timeout
        self.user_agent = user_agent

    def absolute_url(self, url: str) -> str:
        """Turn a server-relative path into a full URL; absolute URLs pass through."""
        if url.startswith("/"):
            return f"https://{self.server}{url}"
        return url

    def execute(
        self,
        context: RequestContext,
        json: Any = None,
        upload: BinaryUpload | None = None,
        url: str | None = None,
    ) -> Any:
        """
        Execute one API call.

        Args:
            context: The operation to perform.
            json: Structured body, sent as application/json.
            upload: Binary body, sent as a single-part multipart/form-data.
            url: Overrides context.base_path (e.g. a "next page" URL).

        Returns:
            The parsed JSON response ({} for an empty body).

        Raises:
            ValueError: If both json and upload are given.
            NetworkError: If the transport failed.
            AuthError: On HTTP 401.
            APIError: On any other non-accepted status.
            ProtocolError: On an accepted status with an unparseable body.
        """
        if json is not None and upload is not None:
            raise ValueError("Specify either a JSON body or a binary upload, not both.")

        self.statistics.simple_api += 1
        target = self.absolute_url(url or context.base_path)

        headers: dict[str, str] = {}
        if self.user_agent:
            headers["User-Agent"] = self.user_agent

        files = None
        if upload is not None:
            files = {"image": ("image.img", upload.read_payload(), upload.mime_type)}

        logger.debug(f"{context.http_method} {target}")

        response: requests.Response | None = None
        for attempt in range(self.max_attempts):
            response = self._send(context.http_method, target, headers, json, files)

            rate_remaining = _header_int(response, RATE_REMAINING_HEADER)
            rate_reset = _header_int(response, RATE_RESET_HEADER)
            self.statistics.rate_remaining = rate_remaining
            self.statistics.rate_reset = rate_reset

            tparams = ThrottleDecisionInput(
                attempt=attempt,
                rate_remaining=rate_remaining,
                rate_reset=rate_reset,
                result_code=response.status_code,
                statistics=self.statistics,
                request={"method": context.http_method, "url": target},
                response=response,
            )
            retry = self.throttle_policy(tparams)
            # the policy still sees a 401 for its bookkeeping, but auth failures are terminal
            if not retry or response.status_code == UNAUTHORIZED:
                break

        assert response is not None, "🌀 Sanity check | No response after the attempt loop."
        return self._interpret(context, response, target)

    def get_redirect(self, url: str) -> str | None:
        """
        Return where `url` redirects to, without following it.

        Used to turn an authenticated photo URL into its public location.
        Not throttled.

        Raises:
            NetworkError: If the transport failed.
        """
        target = self.absolute_url(url)
        headers = {"User-Agent": self.user_agent} if self.user_agent else None
        try:
            response = self.http_client.request(
                "GET", target, headers=headers, timeout=self.request_timeout, allow_redirects=False,
            )
        except requests.RequestException as e:
            raise NetworkError(f"Network error talking to server: {e}", url=target, cause=e) from e
        self.statistics.server_requests += 1
        return response.headers.get("Location")

    def _send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        json: Any,
        files: dict[str, Any] | None,
    ) -> requests.Response:
        self.statistics.server_requests += 1
        start = time.monotonic()
        try:
            response = self.http_client.request(
                method, url, headers=headers, json=json, files=files, timeout=self.request_timeout,
            )
        except requests.RequestException as e:
            logger.error(
                f"❌ {method} {url} failed before any response: {e}",
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise NetworkError(f"Network error talking to server: {e}", url=url, cause=e) from e
        finally:
            self.statistics.record_response_time(time.monotonic() - start)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"{method} {url} -> HTTP {response.status_code} {response.reason}")
            for name, value in response.headers.items():
                logger.debug(f"   ├ {name}: {value}")
        return response

    def _interpret(self, context: RequestContext, response: requests.Response, url: str) -> Any:
        if response.status_code not in context.success_codes:
            raise http_error(response.status_code, response.reason, url)

        # Some "nothing to say" responses are {} and others are literally empty.
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(
                f"Server returned an unparseable body with HTTP {response.status_code}",
                response.status_code,
                {"errorType": "ProtocolError", "id": url, "body": response.text[:200]},
            ) from e


def _header_int(response: requests.Response, name: str) -> int:
    value = response.headers.get(name)
    if value is None:
        return -1
    try:
        return int(value)
    except ValueError:
        return -1
