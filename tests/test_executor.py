"""Tests for the request executor."""

import io
import unittest
from unittest.mock import MagicMock, patch

import requests

from http_fakes import ScriptedHttpClient, make_response, rate_headers
from numerousapp import (
    APIError,
    AuthError,
    NetworkError,
    ProtocolError,
    RawBytes,
    RequestExecutor,
    Statistics,
    Stream,
    ThrottlePolicy,
)
from numerousapp._api import METRIC_APIS, SERVER_APIS, RequestContext
from numerousapp._errors import NO_HTTP_CODE


def always_retry(tparams, data, parent):
    return True


def never_retry(tparams, data, parent):
    return False


class TestExecuteSuccess(unittest.TestCase):
    """Tests for accepted responses."""

    def test_returns_parsed_json_body(self):
        """Should return the decoded JSON body of an accepted response."""
        http = ScriptedHttpClient(make_response(200, {"id": "66784", "userName": "nw"}, rate_headers()))
        executor = RequestExecutor(http_client=http)

        result = executor.execute(SERVER_APIS["user"].context("GET"))

        self.assertEqual(result, {"id": "66784", "userName": "nw"})
        self.assertEqual(http.calls[0]["method"], "GET")
        self.assertEqual(http.calls[0]["url"], "https://api.numerousapp.com/v1/users/me")

    def test_empty_body_becomes_empty_dict(self):
        """Should return {} when an accepted response has no body."""
        http = ScriptedHttpClient(make_response(204))
        executor = RequestExecutor(http_client=http)

        result = executor.execute(METRIC_APIS["metric"].context("DELETE", metricId="5"))

        self.assertEqual(result, {})

    def test_uses_alternate_success_codes(self):
        """Should accept 201 for a create and reject 200 for it."""
        ctx = SERVER_APIS["create"].context("POST")

        created = RequestExecutor(ScriptedHttpClient(make_response(201, {"id": "9"}))).execute(ctx, json={})
        self.assertEqual(created, {"id": "9"})

        with self.assertRaises(APIError) as cm:
            RequestExecutor(ScriptedHttpClient(make_response(200, {"id": "9"}))).execute(ctx, json={})
        self.assertEqual(cm.exception.code, 200)

    def test_subscription_put_accepts_200_and_201(self):
        """Should accept both 200 and 201 for a subscription PUT."""
        ctx = METRIC_APIS["subscription"].context("PUT", metricId="5")
        for status in (200, 201):
            executor = RequestExecutor(ScriptedHttpClient(make_response(status, {"notificationsEnabled": True})))
            self.assertEqual(executor.execute(ctx, json={}), {"notificationsEnabled": True})

    def test_url_overrides_base_path(self):
        """Should send to the given absolute URL instead of the context path."""
        http = ScriptedHttpClient(make_response(200, {}))
        executor = RequestExecutor(http_client=http)

        executor.execute(
            METRIC_APIS["events"].context("GET", metricId="5"),
            url="https://api.numerousapp.com/v1/metrics/5/events?chunkSize=100&continuationToken=abc",
        )

        self.assertEqual(http.urls, ["https://api.numerousapp.com/v1/metrics/5/events?chunkSize=100&continuationToken=abc"])

    def test_sends_user_agent_and_timeout(self):
        """Should pass the configured user agent and timeout to the transport."""
        http = ScriptedHttpClient(make_response(200, {}))
        executor = RequestExecutor(http_client=http, user_agent="NW-Test/1.0", request_timeout=7)

        executor.execute(SERVER_APIS["user"].context("GET"))

        self.assertEqual(http.calls[0]["headers"]["User-Agent"], "NW-Test/1.0")
        self.assertEqual(http.calls[0]["timeout"], 7)

    def test_sends_json_body(self):
        """Should pass the structured body as json."""
        http = ScriptedHttpClient(make_response(201, {"value": 3}))
        executor = RequestExecutor(http_client=http)

        executor.execute(METRIC_APIS["events"].context("POST", metricId="5"), json={"value": 3})

        self.assertEqual(http.calls[0]["json"], {"value": 3})
        self.assertIsNone(http.calls[0]["files"])


class TestExecuteFailures(unittest.TestCase):
    """Tests for the error taxonomy raised by execute()."""

    def test_401_raises_auth_error(self):
        """Should raise AuthError on HTTP 401."""
        http = ScriptedHttpClient(make_response(401, {"message": "no"}))
        executor = RequestExecutor(http_client=http)

        with self.assertRaises(AuthError) as cm:
            executor.execute(SERVER_APIS["user"].context("GET"))

        self.assertEqual(cm.exception.code, 401)

    def test_404_raises_api_error_with_details(self):
        """Should raise APIError carrying the structured details."""
        http = ScriptedHttpClient(make_response(404, {"message": "gone"}))
        executor = RequestExecutor(http_client=http)

        with self.assertRaises(APIError) as cm:
            executor.execute(METRIC_APIS["metric"].context("GET", metricId="42"))

        error = cm.exception
        self.assertEqual(error.code, 404)
        self.assertEqual(error.details["errorType"], "HTTPError")
        self.assertEqual(error.details["code"], 404)
        self.assertEqual(error.details["reason"], "Not Found")
        self.assertEqual(error.details["id"], "https://api.numerousapp.com/v1/metrics/42")

    def test_junk_body_raises_protocol_error(self):
        """Should raise ProtocolError when an accepted body is not JSON."""
        http = ScriptedHttpClient(make_response(200, raw=b"<html>oops</html>"))
        executor = RequestExecutor(http_client=http)

        with self.assertRaises(ProtocolError) as cm:
            executor.execute(SERVER_APIS["user"].context("GET"))

        self.assertEqual(cm.exception.code, 200)
        self.assertEqual(cm.exception.details["id"], "https://api.numerousapp.com/v1/users/me")

    def test_transport_failure_raises_network_error(self):
        """Should wrap requests exceptions into NetworkError with no HTTP code."""
        cause = requests.ConnectionError("connection reset")
        http = ScriptedHttpClient(cause)
        executor = RequestExecutor(http_client=http)

        with self.assertRaises(NetworkError) as cm:
            executor.execute(SERVER_APIS["user"].context("GET"))

        self.assertEqual(cm.exception.code, NO_HTTP_CODE)
        self.assertEqual(cm.exception.details["id"], "https://api.numerousapp.com/v1/users/me")
        self.assertIs(cm.exception.cause, cause)

    def test_json_and_upload_together_is_rejected(self):
        """Should refuse a request carrying both a JSON body and an upload."""
        http = ScriptedHttpClient(make_response(201, {}))
        executor = RequestExecutor(http_client=http)

        with self.assertRaises(ValueError):
            executor.execute(
                METRIC_APIS["photo"].context("POST", metricId="5"),
                json={"a": 1},
                upload=RawBytes(b"\x89PNG"),
            )

        self.assertEqual(http.calls, [])


class TestExecuteThrottling(unittest.TestCase):
    """Tests for the attempt loop."""

    @patch("numerousapp._throttle.time.sleep")
    def test_retries_429_then_succeeds(self, mock_sleep: MagicMock):
        """Should resend the same request after a 429 and return the later success."""
        http = ScriptedHttpClient(
            make_response(429, {}, rate_headers(remaining=0, reset=3)),
            make_response(200, {"value": 1}, rate_headers(remaining=299, reset=60)),
        )
        executor = RequestExecutor(http_client=http)

        result = executor.execute(METRIC_APIS["events"].context("POST", metricId="5"), json={"value": 1})

        self.assertEqual(result, {"value": 1})
        self.assertEqual(len(http.calls), 2)
        self.assertEqual(http.calls[0]["json"], http.calls[1]["json"])
        mock_sleep.assert_called_once_with(3 + 2)
        self.assertEqual(executor.statistics.throttle_429, 1)

    @patch("numerousapp._throttle.time.sleep")
    def test_persistent_429_gives_up_after_backoff_table(self, mock_sleep: MagicMock):
        """Should stop after the backoff table is exhausted and surface the 429."""
        http = ScriptedHttpClient(make_response(429, {}, rate_headers(remaining=0, reset=1)))
        executor = RequestExecutor(http_client=http)

        with self.assertRaises(APIError) as cm:
            executor.execute(SERVER_APIS["user"].context("GET"))

        self.assertEqual(cm.exception.code, 429)
        self.assertEqual(len(http.calls), 6)
        self.assertEqual([c.args[0] for c in mock_sleep.call_args_list], [3, 6, 16, 31, 61])
        self.assertEqual(executor.statistics.throttle_429, 5)
        self.assertEqual(executor.statistics.throttle_maxed, 1)

    @patch("numerousapp._throttle.time.sleep")
    def test_four_429s_then_success_takes_five_sends(self, mock_sleep: MagicMock):
        """Should retry 429 with zero reset until the 200 arrives and return its body."""
        throttled = make_response(429, {}, rate_headers(remaining=0, reset=0))
        http = ScriptedHttpClient(
            throttled, throttled, throttled, throttled,
            make_response(200, {"id": "66784"}, rate_headers(remaining=299, reset=60)),
        )
        executor = RequestExecutor(http_client=http)

        result = executor.execute(SERVER_APIS["user"].context("GET"))

        self.assertEqual(result, {"id": "66784"})
        self.assertEqual(len(http.calls), 5)
        self.assertEqual([c.args[0] for c in mock_sleep.call_args_list], [2, 5, 15, 30])
        self.assertEqual(executor.statistics.throttle_429, 4)
        self.assertEqual(executor.statistics.throttle_maxed, 0)

    def test_401_is_never_resent_even_if_a_policy_asks(self):
        """Should stop after one send on 401 although the chain head always retries."""
        seen = []

        def retry_everything(tparams, data, parent):
            parent(tparams)
            seen.append(tparams.result_code)
            return True

        http = ScriptedHttpClient(make_response(401, {}))
        executor = RequestExecutor(http_client=http, throttle_policy=ThrottlePolicy.default().chain(retry_everything))

        with self.assertRaises(AuthError):
            executor.execute(SERVER_APIS["user"].context("GET"))

        self.assertEqual(len(http.calls), 1)
        self.assertEqual(seen, [401])

    def test_attempt_ceiling_bounds_a_policy_that_always_retries(self):
        """Should never send more than max_attempts, whatever the policy says."""
        http = ScriptedHttpClient(make_response(429, {}))
        executor = RequestExecutor(http_client=http, throttle_policy=ThrottlePolicy(always_retry), max_attempts=10)

        with self.assertRaises(APIError) as cm:
            executor.execute(SERVER_APIS["user"].context("GET"))

        self.assertEqual(cm.exception.code, 429)
        self.assertEqual(len(http.calls), 10)
        self.assertEqual(executor.statistics.server_requests, 10)
        self.assertEqual(executor.statistics.simple_api, 1)

    def test_policy_sees_attempt_numbers_and_rate_headers(self):
        """Should hand the policy zero-based attempts and the parsed rate headers."""
        seen = []

        def recorder(tparams, data, parent):
            seen.append((tparams.attempt, tparams.rate_remaining, tparams.rate_reset, tparams.result_code))
            return tparams.attempt < 2

        http = ScriptedHttpClient(make_response(200, {}, rate_headers(remaining=17, reset=42)))
        executor = RequestExecutor(http_client=http, throttle_policy=ThrottlePolicy(recorder))

        executor.execute(SERVER_APIS["user"].context("GET"))

        self.assertEqual(seen, [(0, 17, 42, 200), (1, 17, 42, 200), (2, 17, 42, 200)])

    def test_missing_rate_headers_are_reported_as_minus_one(self):
        """Should record -1 when the server sends no rate headers."""
        http = ScriptedHttpClient(make_response(200, {}))
        executor = RequestExecutor(http_client=http, throttle_policy=ThrottlePolicy(never_retry))

        executor.execute(SERVER_APIS["user"].context("GET"))

        self.assertEqual(executor.statistics.rate_remaining, -1)
        self.assertEqual(executor.statistics.rate_reset, -1)


class TestUploads(unittest.TestCase):
    """Tests for multipart uploads."""

    def test_raw_bytes_sent_as_single_image_part(self):
        """Should send the bytes as the 'image' multipart part with its MIME type."""
        http = ScriptedHttpClient(make_response(201, {"photoURL": "x"}))
        executor = RequestExecutor(http_client=http)

        executor.execute(METRIC_APIS["photo"].context("POST", metricId="5"), upload=RawBytes(b"\x89PNG", "image/png"))

        self.assertEqual(http.calls[0]["files"], {"image": ("image.img", b"\x89PNG", "image/png")})
        self.assertIsNone(http.calls[0]["json"])

    @patch("numerousapp._throttle.time.sleep")
    def test_stream_read_once_and_resent_on_retry(self, mock_sleep: MagicMock):
        """Should read a stream a single time and resend the same bytes on retry."""
        http = ScriptedHttpClient(
            make_response(429, {}, rate_headers(remaining=0, reset=0)),
            make_response(201, {}),
        )
        executor = RequestExecutor(http_client=http)

        executor.execute(METRIC_APIS["photo"].context("POST", metricId="5"), upload=Stream(io.BytesIO(b"JFIF")))

        self.assertEqual(len(http.calls), 2)
        for call in http.calls:
            self.assertEqual(call["files"]["image"][1], b"JFIF")


class TestGetRedirect(unittest.TestCase):
    """Tests for get_redirect()."""

    def test_returns_location_without_following(self):
        """Should return the Location header of the redirect response."""
        http = ScriptedHttpClient(make_response(302, headers={"Location": "https://images.example/p.jpg"}))
        executor = RequestExecutor(http_client=http)

        location = executor.get_redirect("https://api.numerousapp.com/v1/metrics/5/photo")

        self.assertEqual(location, "https://images.example/p.jpg")
        self.assertFalse(http.calls[0]["allow_redirects"])

    def test_transport_failure_raises_network_error(self):
        """Should wrap transport failures into NetworkError."""
        executor = RequestExecutor(http_client=ScriptedHttpClient(requests.Timeout("slow")))

        with self.assertRaises(NetworkError):
            executor.get_redirect("/v1/metrics/5/photo")


class TestResponseTimes(unittest.TestCase):
    """Tests for response time recording."""

    def test_ring_buffer_keeps_most_recent_first(self):
        """Should keep only the most recent response times, newest first."""
        stats = Statistics()
        stats.keep_response_times(2)
        http = ScriptedHttpClient(make_response(200, {}))
        executor = RequestExecutor(http_client=http, statistics=stats, throttle_policy=ThrottlePolicy(never_retry))

        with patch("numerousapp._executor.time.monotonic", side_effect=[0.0, 1.0, 10.0, 12.0, 20.0, 23.0]):
            for _ in range(3):
                executor.execute(SERVER_APIS["user"].context("GET"))

        self.assertEqual(list(stats.response_times), [3.0, 2.0])
        self.assertEqual(stats.response_time, 3.0)


class TestRequestContext(unittest.TestCase):
    """Tests for request context validation."""

    def test_rejects_unknown_method(self):
        with self.assertRaises(AssertionError):
            RequestContext(base_path="/v1/x", http_method="PATCH")

    def test_collection_contexts_carry_pagination_fields(self):
        ctx = METRIC_APIS["stream"].context("GET", metricId="5")

        self.assertTrue(ctx.is_collection)
        self.assertEqual((ctx.next_field, ctx.list_field, ctx.dup_filter), ("next", "items", "id"))
        self.assertEqual(ctx.base_path, "/v2/metrics/5/stream")


if __name__ == "__main__":
    unittest.main()
