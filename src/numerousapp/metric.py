"""
Metric-level operations.

A NumerousMetric is a lightweight handle: creating one makes no request.
Every method talks to the server through the owning Numerous client, so all
statistics and throttling are shared with it.

Example:
    >>> m = nr.metric("5472323541103498764")
    >>> m.write(33)
    33
    >>> m.read()
    33
    >>> for event in m.events():
    ...     print(event["value"], event["updated"])
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import IO, TYPE_CHECKING, Any

from numerousapp._api import METRIC_APIS, RequestContext
from numerousapp._errors import NO_HTTP_CODE, APIError, ConflictError, NumerousError, ProtocolError
from numerousapp._executor import BinaryUpload, as_upload

if TYPE_CHECKING:
    from numerousapp.client import Numerous

logger = logging.getLogger(__name__)


def parse_metric_id(metric_id: str | int) -> str:
    """
    Turn anything that identifies a metric into its naked id.

    Accepts the naked id (string or int), an API URL such as
    "https://api.numerousapp.com/v1/metrics/5472323541103498764", or a web
    link such as "http://n.numerousapp.com/m/1x8ba7fjg72d", whose last
    segment is the id in base 36.

    Example:
        >>> parse_metric_id("http://n.numerousapp.com/m/1x8ba7fjg72d")
        '253119244045452997'
    """
    if not isinstance(metric_id, str):
        return str(metric_id)

    segments = [s for s in metric_id.split("/") if s]
    if len(segments) < 2:
        return metric_id

    if segments[-2] == "m":
        return str(int(segments[-1], 36))
    return segments[-1]


class NumerousMetric:
    """
    Handle on one metric.

    The handle keeps the last full metric representation it obtained from the
    server. Only read(use_cache=True), label(), web_url() and photo_url() ever
    use it; any mutating call drops it first.

    Args:
        metric_id: Naked id, API URL or web link of the metric.
        nr: The owning client.

    Attributes:
        id: The naked metric id.
    """

    def __init__(self, metric_id: str | int, nr: Numerous):
        assert nr is not None, "nr cannot be None."
        self.id = parse_metric_id(metric_id)
        self._nr = nr
        self._cached: dict[str, Any] | None = None

    def __repr__(self) -> str:
        return f"NumerousMetric(id={self.id!r})"

    @property
    def server(self) -> Numerous:
        return self._nr

    def invalidate_cache(self) -> None:
        self._cached = None

    def _context(self, api: str, op: str, **substitutions: Any) -> RequestContext:
        return METRIC_APIS[api].context(op, metricId=self.id, **substitutions)

    def _execute(self, api: str, op: str, json: Any = None, upload: BinaryUpload | None = None, **subs: Any) -> Any:
        return self._nr.executor.execute(self._context(api, op, **subs), json=json, upload=upload)

    def _iterate(self, api: str) -> Iterator[dict[str, Any]]:
        return self._nr.pager.iterate(self._context(api, "GET"))

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def read(self, dictionary: bool = False, use_cache: bool = False) -> Any:
        """
        Read the current value of the metric.

        Args:
            dictionary: Return the whole metric representation instead of the value.
            use_cache: Return the last representation obtained, if any, without a request.

        Raises:
            NumerousError: 404 if the metric does not exist, 400 for a bogus id.
            ProtocolError: If the server answered with an empty or value-less body.
        """
        if use_cache and self._cached is not None:
            v = self._cached
        else:
            v = self._execute("metric", "GET")
            if not isinstance(v, dict) or "value" not in v:
                url = self._nr.executor.absolute_url(self._context("metric", "GET").base_path)
                raise ProtocolError(
                    "Server returned a metric without a value", NO_HTTP_CODE, {"errorType": "ProtocolError", "id": url}
                )
            self._cached = v
        return v if dictionary else v["value"]

    def validate(self) -> bool:
        """
        Check that the metric exists.

        Returns:
            False for a bogus (400) or missing (404) metric, True otherwise.

        Raises:
            NumerousError: Anything other than 400/404 (e.g. AuthError).
        """
        try:
            self.read()
        except NumerousError as e:
            if e.code in (400, 404):
                return False
            raise
        return True

    def events(self) -> Iterator[dict[str, Any]]:
        """Iterate over the events (value updates) of the metric, newest first."""
        return self._iterate("events")

    def stream(self) -> Iterator[dict[str, Any]]:
        """Iterate over the stream: events and interactions merged."""
        return self._iterate("stream")

    def interactions(self) -> Iterator[dict[str, Any]]:
        """Iterate over the interactions (likes, comments, errors) of the metric."""
        return self._iterate("interactions")

    def subscriptions(self) -> Iterator[dict[str, Any]]:
        """Iterate over the subscriptions of the metric."""
        return self._iterate("subscriptions")

    def event(self, event_id: str) -> dict[str, Any]:
        return self._execute("event", "GET", eventId=event_id)

    def interaction(self, item_id: str) -> dict[str, Any]:
        return self._execute("interaction", "GET", item=item_id)

    def subscription(self, user_id: str | None = None) -> dict[str, Any]:
        """
        Return a subscription to this metric (default: yours).

        Regular users can only see their own subscriptions.
        """
        return self._execute("subscription", "GET", userId=user_id)

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def subscribe(
        self,
        params: dict[str, Any],
        user_id: str | None = None,
        overwrite_all: bool = False,
    ) -> dict[str, Any]:
        """
        Subscribe to the metric, or change subscription parameters.

        The server rejects partial parameter sets, so the current subscription
        is read first and `params` merged into it, unless `overwrite_all`.
        """
        merged = {} if overwrite_all else dict(self.subscription(user_id))
        merged.update(params)
        return self._execute("subscription", "PUT", json=merged, userId=user_id)

    def write(
        self,
        value: int | float,
        only_if: bool = False,
        add: bool = False,
        dictionary: bool = False,
    ) -> Any:
        """
        Write a value to the metric.

        Args:
            value: The new value.
            only_if: Only create an event if the value actually changes.
            add: Atomically add `value` to the current value at the server.
            dictionary: Return the whole event representation instead of the value.

        Returns:
            The resulting value (or event dict).

        Raises:
            ConflictError: With only_if, when the value did not change.
        """
        body: dict[str, Any] = {"value": value}
        if only_if:
            body["onlyIfChanged"] = True
        if add:
            body["action"] = "ADD"

        self.invalidate_cache()
        try:
            v = self._execute("events", "POST", json=body)
        except APIError as e:
            if only_if and e.code == 409:
                raise ConflictError("No Change", e.code, e.details) from e
            raise
        return v if dictionary else v["value"]

    def update(self, params: dict[str, Any], overwrite_all: bool = False) -> dict[str, Any]:
        """
        Change metric attributes (label, description, ...).

        Same merge semantics as subscribe(): the current representation is
        read and `params` merged into it, unless `overwrite_all`.

        Returns:
            The updated metric representation.
        """
        merged = {} if overwrite_all else dict(self.read(dictionary=True))
        merged.update(params)

        self.invalidate_cache()
        v = self._execute("metric", "PUT", json=merged)
        self._cached = v
        return v

    def _write_interaction(self, body: dict[str, Any]) -> str:
        self.invalidate_cache()
        return self._execute("interactions", "POST", json=body)["id"]

    def like(self) -> str:
        """Like the metric. Returns the id of the resulting interaction."""
        return self._write_interaction({"kind": "like"})

    def send_error(self, text: str) -> str:
        """Attach an error to the metric. Returns the id of the resulting interaction."""
        return self._write_interaction({"kind": "error", "commentBody": text})

    def comment(self, text: str) -> str:
        """Comment on the metric. Returns the id of the resulting interaction."""
        return self._write_interaction({"kind": "comment", "commentBody": text})

    def photo(self, image: bytes | IO[bytes] | BinaryUpload, mime_type: str = "image/jpeg") -> dict[str, Any]:
        """
        Set the background image of the metric.

        The server enforces an undocumented maximum size; exceeding it raises
        APIError with code 413.

        Returns:
            The updated metric representation.
        """
        self.invalidate_cache()
        v = self._execute("photo", "POST", upload=as_upload(image, mime_type))
        self._cached = v
        return v

    def photo_delete(self) -> None:
        """Delete the metric's photo. Deleting a photo that isn't there raises APIError."""
        self.invalidate_cache()
        self._execute("photo", "DELETE")

    def event_delete(self, event_id: str) -> None:
        self.invalidate_cache()
        self._execute("event", "DELETE", eventId=event_id)

    def interaction_delete(self, item_id: str) -> None:
        self.invalidate_cache()
        self._execute("interaction", "DELETE", item=item_id)

    def crush_kill_destroy(self) -> None:
        """Delete the metric, permanently. There is no undo."""
        self.invalidate_cache()
        self._execute("metric", "DELETE")
        logger.info(f"Deleted metric {self.id}.")

    # -------------------------------------------------------------------------
    # Convenience
    # -------------------------------------------------------------------------

    def photo_url(self) -> str | None:
        """
        Return the public URL of the metric's photo, or None if it has none.

        The photoURL in the metric representation needs authentication; the
        server redirects it to a public location, which is what's returned.
        """
        phurl = self.read(dictionary=True, use_cache=True).get("photoURL")
        if not phurl:
            return None
        return self._nr.executor.get_redirect(phurl)

    def label(self) -> str:
        return self.read(dictionary=True, use_cache=True)["label"]

    def web_url(self) -> str:
        return self.read(dictionary=True, use_cache=True)["links"]["web"]
