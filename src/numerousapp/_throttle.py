"""
Throttle policies for the request executor.

A throttle policy is invoked AFTER every response received from the server
and answers a single question: should this exact request be sent again?

    False: take the most recent response as the final answer. This says
           nothing about success or failure of the request itself.
    True:  the response is a rate-limit failure and must be discarded;
           the original request is sent again. Only do this when the server
           is known not to have acted on the request (e.g. HTTP 429).

Policies form a chain. The built-in default policy sits at the end of the
chain; a caller-supplied policy is placed in front of it and receives its
parent so it can defer to the default behavior after its own bookkeeping:

    >>> def count_then_default(tparams, data, parent):
    ...     data["seen"] += 1
    ...     return parent(tparams)
    >>>
    >>> nr = Numerous(throttle=count_then_default, throttle_data={"seen": 0})

The default policy keeps steady-state throughput close to the server's hard
cap: it slows down voluntarily when the remaining quota gets low, and when a
429 does happen it waits for the server-advertised reset time plus some slop.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import requests

    from numerousapp._stats import Statistics

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS = 429

# Seconds added to the server-advertised reset time, indexed by attempt number.
# The table length is also the number of times the default policy will retry.
BACKOFF_SLOP: tuple[int, ...] = (2, 5, 15, 30, 60)

DEFAULT_VOLUNTARY_THRESHOLD = 40


@dataclass(frozen=True)
class ThrottleDecisionInput:
    """
    Everything a throttle policy may look at to make its decision.

    Attributes:
        attempt: Zero-based attempt number (0 on the very first try).
        rate_remaining: X-Rate-Limit-Remaining reported by the server (-1 if absent).
        rate_reset: Seconds until a fresh quota is granted (-1 if absent).
        result_code: HTTP status code of the response.
        statistics: Shared statistics of the client; policies may record into it.
        request: Echo of the original request ({"method": ..., "url": ...}).
        response: The full response object, if a policy really needs it.
    """

    attempt: int
    rate_remaining: int
    rate_reset: int
    result_code: int
    statistics: Statistics
    request: dict[str, str]
    response: requests.Response | None = None


# (tparams, data, parent) -> retry?
ThrottleDecision = Callable[[ThrottleDecisionInput, Any, "ThrottlePolicy | None"], bool]


@dataclass(frozen=True)
class ThrottlePolicy:
    """
    One link of a throttle policy chain.

    Attributes:
        decide: The decision function, called as decide(tparams, data, parent).
        data: Opaque data handed back to `decide` on every call.
        parent: The next policy up the chain (None for the last one).

    Example:
        >>> policy = ThrottlePolicy.default().chain(my_policy, my_data)
        >>> policy.parent.decide is default_throttle_policy
        True
    """

    decide: ThrottleDecision
    data: Any = None
    parent: ThrottlePolicy | None = None

    def __call__(self, tparams: ThrottleDecisionInput) -> bool:
        return bool(self.decide(tparams, self.data, self.parent))

    def chain(self, decide: ThrottleDecision, data: Any = None) -> ThrottlePolicy:
        """Return a new policy that runs `decide` first, with this policy as its parent."""
        return ThrottlePolicy(decide=decide, data=data, parent=self)

    @classmethod
    def default(cls, voluntary_threshold: int = DEFAULT_VOLUNTARY_THRESHOLD) -> ThrottlePolicy:
        assert voluntary_threshold >= 0, "voluntary_threshold must be >= 0."
        return cls(decide=default_throttle_policy, data=voluntary_threshold)


def default_throttle_policy(
    tparams: ThrottleDecisionInput,
    voluntary_threshold: int,
    parent: ThrottlePolicy | None = None,
) -> bool:
    """
    The built-in throttle policy.

    Decision table (attempt is zero-based):

    1. attempt beyond the backoff table: give up (False), count throttle_maxed.
    2. HTTP 429: sleep rate_reset + BACKOFF_SLOP[attempt] seconds, retry (True).
    3. Anything else: no retry (False). If the server reported a remaining
       quota below `voluntary_threshold`, sleep first: 1s while more than half
       the threshold remains, 3s otherwise. That delay is paid before the
       caller's next request, not as a retry of this one.

    Args:
        tparams: The decision input built after the response.
        voluntary_threshold: Remaining-quota level below which to slow down.
        parent: Unused; the default policy is always the end of the chain.

    Returns:
        True to resend the request, False to accept the response.
    """
    stats = tparams.statistics
    attempt = tparams.attempt
    rate_left = tparams.rate_remaining

    if attempt > 0:
        stats.throttle_multiple_attempts += 1

    if attempt >= len(BACKOFF_SLOP):
        stats.throttle_maxed += 1
        logger.warning(
            f"Throttle | Giving up after {attempt + 1} attempts "
            f"(last HTTP {tparams.result_code}) for {tparams.request.get('url')}"
        )
        return False

    if tparams.result_code != TOO_MANY_REQUESTS:
        # some responses carry no rate headers at all; rate_left is -1 then
        if 0 <= rate_left < voluntary_threshold:
            stats.throttle_voluntary_backoff += 1
            delay = 1 if rate_left * 2 > voluntary_threshold else 3
            logger.debug(f"Throttle | Voluntary backoff: {rate_left} API calls left, sleeping {delay}s.")
            time.sleep(delay)
        return False

    stats.throttle_429 += 1
    delay = max(tparams.rate_reset, 0) + BACKOFF_SLOP[attempt]
    logger.warning(
        f"Throttle | ⏳ Too Many Requests (attempt {attempt + 1}). "
        f"Retrying in {delay}s (rate reset={tparams.rate_reset}s)..."
    )
    time.sleep(delay)
    return True
