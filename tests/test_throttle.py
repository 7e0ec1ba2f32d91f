"""Tests for throttle policies."""

import unittest
from unittest.mock import MagicMock, patch

from numerousapp import Statistics, ThrottleDecisionInput, ThrottlePolicy, default_throttle_policy
from numerousapp._throttle import BACKOFF_SLOP


def tparams(attempt=0, rate_remaining=299, rate_reset=60, result_code=200, statistics=None):
    return ThrottleDecisionInput(
        attempt=attempt,
        rate_remaining=rate_remaining,
        rate_reset=rate_reset,
        result_code=result_code,
        statistics=statistics or Statistics(),
        request={"method": "GET", "url": "https://api.numerousapp.com/v1/users/me"},
    )


@patch("numerousapp._throttle.time.sleep")
class TestDefaultPolicy(unittest.TestCase):
    """Tests for the built-in decision table."""

    def test_plain_success_is_not_retried(self, mock_sleep: MagicMock):
        """Should accept a response with plenty of quota left, without sleeping."""
        self.assertFalse(default_throttle_policy(tparams(), 40))
        mock_sleep.assert_not_called()

    def test_error_codes_other_than_429_are_not_retried(self, mock_sleep: MagicMock):
        """Should leave 500 and friends to the caller."""
        for code in (400, 401, 404, 409, 500, 503):
            self.assertFalse(default_throttle_policy(tparams(result_code=code), 40))
        mock_sleep.assert_not_called()

    def test_429_sleeps_reset_plus_slop_and_retries(self, mock_sleep: MagicMock):
        """Should sleep rate_reset + BACKOFF_SLOP[attempt] and ask for a retry."""
        stats = Statistics()
        for attempt in range(len(BACKOFF_SLOP)):
            result = default_throttle_policy(
                tparams(attempt=attempt, rate_remaining=0, rate_reset=10, result_code=429, statistics=stats), 40
            )
            self.assertTrue(result)

        self.assertEqual([c.args[0] for c in mock_sleep.call_args_list], [12, 15, 25, 40, 70])
        self.assertEqual(stats.throttle_429, 5)
        self.assertEqual(stats.throttle_multiple_attempts, 4)

    def test_negative_reset_is_clamped_to_zero(self, mock_sleep: MagicMock):
        """Should not sleep for a negative time when the reset header is absent."""
        default_throttle_policy(tparams(rate_remaining=-1, rate_reset=-1, result_code=429), 40)
        mock_sleep.assert_called_once_with(BACKOFF_SLOP[0])

    def test_gives_up_when_backoff_table_is_exhausted(self, mock_sleep: MagicMock):
        """Should stop retrying and count throttle_maxed after the last backoff step."""
        stats = Statistics()

        result = default_throttle_policy(
            tparams(attempt=len(BACKOFF_SLOP), rate_remaining=0, result_code=429, statistics=stats), 40
        )

        self.assertFalse(result)
        self.assertEqual(stats.throttle_maxed, 1)
        self.assertEqual(stats.throttle_429, 0)
        mock_sleep.assert_not_called()

    def test_voluntary_backoff_short_when_above_half_threshold(self, mock_sleep: MagicMock):
        """Should sleep 1s when remaining quota is low but above half the threshold."""
        stats = Statistics()

        result = default_throttle_policy(tparams(rate_remaining=30, statistics=stats), 40)

        self.assertFalse(result)
        mock_sleep.assert_called_once_with(1)
        self.assertEqual(stats.throttle_voluntary_backoff, 1)

    def test_voluntary_backoff_long_when_at_or_below_half_threshold(self, mock_sleep: MagicMock):
        """Should sleep 3s when remaining quota is at or below half the threshold."""
        for remaining in (20, 5, 0):
            mock_sleep.reset_mock()
            self.assertFalse(default_throttle_policy(tparams(rate_remaining=remaining), 40))
            mock_sleep.assert_called_once_with(3)

    def test_no_voluntary_backoff_without_rate_headers(self, mock_sleep: MagicMock):
        """Should not slow down when the server reported no quota (-1)."""
        self.assertFalse(default_throttle_policy(tparams(rate_remaining=-1), 40))
        mock_sleep.assert_not_called()

    def test_threshold_is_exclusive(self, mock_sleep: MagicMock):
        """Should not slow down when remaining quota equals the threshold."""
        self.assertFalse(default_throttle_policy(tparams(rate_remaining=40), 40))
        mock_sleep.assert_not_called()


class TestPolicyChain(unittest.TestCase):
    """Tests for chaining custom policies in front of the default."""

    @patch("numerousapp._throttle.time.sleep")
    def test_custom_policy_can_defer_to_parent(self, mock_sleep: MagicMock):
        """Should hand the parent to the custom policy, which can call it."""
        data = {"seen": 0}

        def counting(tp, d, parent):
            d["seen"] += 1
            return parent(tp)

        policy = ThrottlePolicy.default().chain(counting, data)

        self.assertTrue(policy(tparams(result_code=429, rate_reset=0)))
        self.assertFalse(policy(tparams(result_code=200)))
        self.assertEqual(data["seen"], 2)

    def test_custom_policy_can_override_parent(self):
        """Should let the custom policy answer without consulting its parent."""
        parent_decide = MagicMock(return_value=True)
        policy = ThrottlePolicy(parent_decide).chain(lambda tp, d, parent: False)

        self.assertFalse(policy(tparams(result_code=429)))
        parent_decide.assert_not_called()

    def test_chain_returns_new_policy(self):
        """Should leave the original chain untouched."""
        base = ThrottlePolicy.default(voluntary_threshold=60)
        chained = base.chain(lambda tp, d, parent: False, "payload")

        self.assertIsNot(chained, base)
        self.assertIs(chained.parent, base)
        self.assertEqual(chained.data, "payload")
        self.assertIsNone(base.parent)
        self.assertEqual(base.data, 60)
        self.assertIs(base.decide, default_throttle_policy)

    def test_truthy_results_are_normalized_to_bool(self):
        policy = ThrottlePolicy(lambda tp, d, parent: 1)
        self.assertIs(policy(tparams()), True)


if __name__ == "__main__":
    unittest.main()
