"""
Server-level client for the NumerousApp API.

Numerous is the entry point of the SDK: user info, the metrics and
subscriptions collections, creating metrics, and obtaining NumerousMetric
handles for everything metric-specific.

For most operations the server returns a JSON representation of the current
or modified object, which is returned as a dict. Collections are returned as
lazy iterators that hide the chunking. Every operation that talks to the
server may raise a NumerousError (or subclass).

Example:
    >>> from numerousapp import Numerous
    >>> nr = Numerous("nmrs_28Cblahblah")
    >>> m = nr.create_metric("bozo", value=17)
    >>> for metric in nr.metrics():
    ...     print(metric["label"], metric["value"])
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from typing import IO, Any, Literal

from numerousapp._api import SERVER_APIS
from numerousapp._auth import ApiKeyAuthProvider
from numerousapp._errors import ConflictError
from numerousapp._executor import BinaryUpload, RequestExecutor, as_upload
from numerousapp._http import EnvironmentAwareHttpClient, HttpClient, StandaloneHttpClient
from numerousapp._pagination import PaginatedIterator
from numerousapp._stats import Statistics
from numerousapp._throttle import ThrottleDecision, ThrottlePolicy
from numerousapp.metric import NumerousMetric

logger = logging.getLogger(__name__)

MatchType = Literal["FIRST", "BEST", "ONE", "STRING"]


class Numerous:
    """
    Client for one NumerousApp account.

    Throttling: every request passes through a throttle policy chain. By
    default that is the built-in policy only; a custom `throttle` function is
    placed in front of it and receives the built-in policy as its parent:

        >>> def no_retries(tparams, data, parent):
        ...     return False
        >>> nr = Numerous(throttle=no_retries)

    Not safe for concurrent use from several threads. Use one instance per
    thread (instances are fully independent).

    Args:
        api_key: The API key. If None, it is resolved from NUMEROUS.config
            (NUMEROUSAPIKEY env var, NUMEROUS.configure(...)) on first use.
        server: Server host name. Defaults to NUMEROUS.config.client.server.
        throttle: Custom throttle decision function, called as
            throttle(tparams, throttle_data, parent).
        throttle_data: Opaque data handed to `throttle`.
        http_client: Custom transport. Takes precedence over api_key.

    Attributes:
        statistics: Counters about requests, retries, pages and throttling.
        throttle_policy: Head of the throttle policy chain.
        executor: The request executor used by every operation.
        pager: The paginated iterator used by the collection operations.
    """

    def __init__(
        self,
        api_key: str | None = None,
        server: str | None = None,
        throttle: ThrottleDecision | None = None,
        throttle_data: Any = None,
        http_client: HttpClient | None = None,
    ):
        from numerousapp._config import NUMEROUS

        cfg = NUMEROUS.config

        if http_client is None:
            if api_key:
                http_client = StandaloneHttpClient(ApiKeyAuthProvider(api_key))
            else:
                http_client = EnvironmentAwareHttpClient()

        self.server = server or cfg.client.server
        assert "/" not in self.server, f"server must be a bare host name: {self.server}"

        policy = ThrottlePolicy.default(cfg.throttle.voluntary_threshold)
        if throttle is not None:
            policy = policy.chain(throttle, throttle_data)
        self.throttle_policy = policy

        self.statistics = Statistics()
        self.executor = RequestExecutor(
            http_client=http_client,
            statistics=self.statistics,
            throttle_policy=self.throttle_policy,
            server=self.server,
            max_attempts=cfg.throttle.max_attempts,
            request_timeout=cfg.client.request_timeout,
            user_agent=cfg.client.user_agent,
        )
        self.pager = PaginatedIterator(self.executor, filter_duplicates=cfg.pagination.filter_duplicates)
        self._debug_level = 0

    def __repr__(self) -> str:
        return f"Numerous(server={self.server!r})"

    def debug(self, level: int = 1) -> int:
        """
        Turn request/response tracing on (level > 0) or off.

        Tracing goes to the "numerousapp" logger at DEBUG level; a handler
        must be configured to see it (e.g. logging.basicConfig()).

        Returns:
            The previous debug level.
        """
        previous = self._debug_level
        self._debug_level = level
        logging.getLogger("numerousapp").setLevel(logging.DEBUG if level > 0 else logging.NOTSET)
        return previous

    def set_duplicate_filter(self, enabled: bool) -> bool:
        """
        Turn page-boundary duplicate filtering on or off.

        Meant for testing; returns the previous setting.
        """
        previous = self.pager.filter_duplicates
        self.pager.filter_duplicates = enabled
        return previous

    # -------------------------------------------------------------------------
    # User
    # -------------------------------------------------------------------------

    def user(self, user_id: str | None = None) -> dict[str, Any]:
        """Return the attributes of a user (default: yourself)."""
        return self.executor.execute(SERVER_APIS["user"].context("GET", userId=user_id))

    def user_photo(self, image: bytes | IO[bytes] | BinaryUpload, mime_type: str = "image/jpeg") -> dict[str, Any]:
        """
        Set your user photo.

        The server enforces an undocumented maximum size; exceeding it raises
        APIError with code 413.

        Args:
            image: Image bytes, or a binary file object (read entirely).
            mime_type: MIME type of the image.

        Returns:
            The updated user representation.
        """
        ctx = SERVER_APIS["user"].context("photo")
        return self.executor.execute(ctx, upload=as_upload(image, mime_type))

    def ping(self) -> bool:
        """
        Verify connectivity and credentials.

        Returns:
            Always True; failures raise.

        Raises:
            AuthError: The API key is no good.
            NumerousError: Other server or network errors.
        """
        self.user()
        return True

    # -------------------------------------------------------------------------
    # Collections
    # -------------------------------------------------------------------------

    def metrics(self, user_id: str | None = None) -> Iterator[dict[str, Any]]:
        """Iterate over all metrics of a user (default: yourself)."""
        return self.pager.iterate(SERVER_APIS["metricsCollection"].context("GET", userId=user_id))

    def subscriptions(self, user_id: str | None = None) -> Iterator[dict[str, Any]]:
        """Iterate over all subscriptions of a user (default: yourself)."""
        return self.pager.iterate(SERVER_APIS["subscriptions"].context("GET", userId=user_id))

    def most_popular(self, count: int | None = None) -> list[dict[str, Any]]:
        """Return the list (not an iterator) of the most popular metrics."""
        return self.executor.execute(SERVER_APIS["popular"].context("GET", count=count))

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def create_metric(
        self,
        label: str,
        value: int | float | None = None,
        attrs: dict[str, Any] | None = None,
    ) -> NumerousMetric:
        """
        Create a brand new metric on the server.

        Args:
            label: Label of the metric.
            value: Initial value.
            attrs: Initial attributes (e.g. {"description": "a clown"}).

        Returns:
            A handle on the new metric, with its representation already cached.

        Example:
            >>> m = nr.create_metric("bozo", value=17, attrs={"description": "a clown"})
        """
        assert label, "label cannot be empty."
        body = dict(attrs or {})
        body["label"] = label
        if value is not None:
            body["value"] = value

        created = self.executor.execute(SERVER_APIS["create"].context("POST"), json=body)
        metric = self.metric(created["id"])
        metric._cached = created
        logger.info(f"Created metric {metric.id} ('{label}').")
        return metric

    def metric(self, metric_id: str | int) -> NumerousMetric:
        """
        Return a handle on an existing metric.

        No request is made: a bogus id "works" until the metric is used.
        See NumerousMetric.validate().
        """
        return NumerousMetric(metric_id, self)

    def metric_by_label(self, labelspec: str, match_type: MatchType = "FIRST") -> NumerousMetric | None:
        """
        Find one of your metrics by label.

        Match types:
            FIRST   first metric whose label matches the regex `labelspec`
            BEST    the metric with the longest regex match
            ONE     like FIRST, but a second match raises ConflictError
            STRING  exact (non-regex) label equality; a second match raises ConflictError

        Returns:
            The metric handle, or None when nothing matches.

        Raises:
            ValueError: On an unknown match type.
            ConflictError: On multiple matches with ONE or STRING.
        """
        match_type = match_type or "FIRST"
        if match_type not in ("FIRST", "BEST", "ONE", "STRING"):
            raise ValueError(f"Unknown match type: {match_type}")

        best: dict[str, Any] | None = None
        best_len = 0
        pattern = re.compile(labelspec) if match_type != "STRING" else None

        for m in self.metrics():
            label = m.get("label", "")
            if pattern is None:
                if label == labelspec:
                    if best is not None:
                        _raise_label_conflict(labelspec, best["label"], label)
                    best = m
                continue

            found = pattern.search(label)
            # an empty match (e.g. "a*" against "xyz") is no match
            if not found or not found.group(0):
                continue
            if match_type == "FIRST":
                return self.metric(m["id"])
            if match_type == "ONE" and best is not None:
                _raise_label_conflict(labelspec, best["label"], label)
            if best is None or len(found.group(0)) > best_len:
                best, best_len = m, len(found.group(0))

        return self.metric(best["id"]) if best is not None else None


def _raise_label_conflict(labelspec: str, first: str, second: str) -> None:
    raise ConflictError(
        "Multiple matches",
        409,
        {"errorType": "ConflictError", "id": labelspec, "matches": [first, second]},
    )
