"""
Error taxonomy for the numerousapp SDK.

Every operation that talks to the NumerousApp server raises a subclass of
NumerousError when it fails. "The connection worked but the operation did not"
is always a typed error, never a sentinel return value.

Hierarchy:
    NumerousError
    ├── NetworkError     transport failure (no HTTP response at all)
    ├── AuthError        HTTP 401, the server rejected the API key
    ├── ConflictError    "only if changed" write with no change, ambiguous label
    ├── ProtocolError    accepted status but an unparseable body (server bug)
    └── APIError         any other non-accepted HTTP status

Example:
    >>> from numerousapp import Numerous, AuthError, NumerousError
    >>> try:
    ...     Numerous("nmrs_bogus").ping()
    ... except AuthError:
    ...     print("bad API key")
    ... except NumerousError as e:
    ...     print(f"failed with {e.code}: {e.details['id']}")
"""

from __future__ import annotations

from typing import Any

# Code carried by errors that did not come from an HTTP response.
NO_HTTP_CODE = -1


class NumerousError(Exception):
    """
    Base class for errors reported by the numerousapp SDK.

    Attributes:
        message: Human-targeted error message.
        code: HTTP status code (e.g. 404), or -1 for non-HTTP failures.
        details: Ad-hoc information about the failure. Always contains
            the key "id" with the URL used in the request.
    """

    def __init__(self, message: str, code: int = NO_HTTP_CODE, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details: dict[str, Any] = details if details is not None else {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, code={self.code})"


class NetworkError(NumerousError):
    """Raised when the request never produced an HTTP response (reset, timeout, DNS...)."""

    def __init__(self, message: str, url: str, cause: Exception | None = None):
        super().__init__(message, NO_HTTP_CODE, {"errorType": "NetworkError", "id": url})
        self.cause = cause


class AuthError(NumerousError):
    """Raised on HTTP 401. Usually means the API key is (or has become) bad."""


class ConflictError(NumerousError):
    """
    Raised when a conditional write did not change anything.

    Also raised by `Numerous.metric_by_label()` when a label spec matches more
    than one metric and the match type demands uniqueness.
    """


class ProtocolError(NumerousError):
    """Raised when the server accepted a request but returned a body that is not JSON."""


class APIError(NumerousError):
    """Raised for any non-accepted HTTP status not covered by a more specific error."""


# =============================================================================
# Classification
# =============================================================================


def classify_http_error(status_code: int) -> type[NumerousError]:
    """
    Map a non-accepted HTTP status code to its error class.

    ConflictError is absent here: a 409 only means "no change" at the
    conditional-write call site, which re-raises it itself.
    """
    if status_code == 401:
        return AuthError
    return APIError


def http_error(status_code: int, reason: str | None, url: str) -> NumerousError:
    """
    Build the error for a non-accepted HTTP response.

    Args:
        status_code: The HTTP status code returned by the server.
        reason: The reason phrase from the status line (e.g. "Not Found").
        url: The URL used in the request.

    Returns:
        An instance of the class chosen by `classify_http_error()`, carrying
        the structured details payload.
    """
    reason = reason or ""
    message = f"Server returned an HTTP error: {reason}"
    details = {
        "errorType": "HTTPError",
        "code": status_code,
        "reason": reason,
        "value": message,
        "id": url,
    }
    return classify_http_error(status_code)(message, status_code, details)
