"""
Per-client statistics.

Counters are purely informational: nothing in the SDK reads them to make
decisions. They are handy for tests, debugging and for watching how often
the throttle policy had to slow things down.

Example:
    >>> nr = Numerous()
    >>> nr.statistics.keep_response_times(5)  # before the first call
    >>> nr.ping()
    >>> nr.statistics.server_requests
    1
    >>> nr.statistics.as_dict()["rate_remaining"]
    299
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field, fields
from typing import Any


@dataclass
class Statistics:
    """
    Named counters owned by one client instance.

    Mutated only by the request executor, the paginated iterator and the
    throttle policies. Not thread-safe.

    Attributes:
        simple_api: Calls to RequestExecutor.execute().
        server_requests: HTTP requests actually sent (includes retries).
        rate_remaining: Last X-Rate-Limit-Remaining seen (-1 if not sent).
        rate_reset: Last X-Rate-Limit-Reset seen (-1 if not sent).
        first_chunks: Collections started.
        additional_chunks: Pages fetched after the first page of a collection.
        duplicates_filtered: Items suppressed by the page-boundary duplicate filter.
        throttle_multiple_attempts: Policy decisions made on a retry attempt.
        throttle_maxed: Times the default policy ran out of backoff steps.
        throttle_429: "Too Many Requests" responses that were retried.
        throttle_voluntary_backoff: Voluntary slow-downs taken near the limit.
        response_time: Elapsed seconds of the most recent request.
        response_times: Most recent first, bounded; None until
            keep_response_times() is called.
    """

    simple_api: int = 0
    server_requests: int = 0
    rate_remaining: int = 0
    rate_reset: int = 0
    first_chunks: int = 0
    additional_chunks: int = 0
    duplicates_filtered: int = 0
    throttle_multiple_attempts: int = 0
    throttle_maxed: int = 0
    throttle_429: int = 0
    throttle_voluntary_backoff: int = 0
    response_time: float = 0.0
    response_times: deque[float] | None = field(default=None, repr=False)

    def keep_response_times(self, size: int) -> None:
        """Keep the last `size` response times instead of only the latest one."""
        assert size > 0, "size must be greater than 0."
        self.response_times = deque([0.0] * size, maxlen=size)

    def record_response_time(self, elapsed: float) -> None:
        self.response_time = elapsed
        if self.response_times is not None:
            # deque(maxlen) drops the oldest entry from the right
            self.response_times.appendleft(elapsed)

    def reset(self) -> None:
        """Zero every counter, keeping the response-time buffer size."""
        size = self.response_times.maxlen if self.response_times is not None else None
        for f in fields(self):
            setattr(self, f.name, f.default)
        if size:
            self.keep_response_times(size)

    def as_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {f.name: getattr(self, f.name) for f in fields(self)}
        if self.response_times is not None:
            result["response_times"] = list(self.response_times)
        return result
