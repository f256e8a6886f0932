"""Unit tests for the retrying fetcher."""

import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock, call, patch

import requests

from src.core.retry import (
    NonRetryableStatusError, RetriesExhaustedError, RetryableFailure, RetryPolicy,
    fetch_with_retry, parse_retry_after_ms, run_with_retries,
)


def _response(status, body=None, text="", headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.headers = headers or {}
    resp.json.return_value = body
    return resp


class TestParseRetryAfter(unittest.TestCase):
    def test_seconds(self):
        self.assertEqual(parse_retry_after_ms("2"), 2000.0)
        self.assertEqual(parse_retry_after_ms(" 1.5 "), 1500.0)

    def test_negative_seconds_clamped(self):
        self.assertEqual(parse_retry_after_ms("-5"), 0.0)

    def test_http_date(self):
        now = datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        self.assertEqual(parse_retry_after_ms("Wed, 01 Jan 2025 00:00:10 GMT", now=now), 10000.0)

    def test_http_date_in_past_is_zero(self):
        now = datetime(2025, 1, 1, 0, 1, 0, tzinfo=timezone.utc)
        self.assertEqual(parse_retry_after_ms("Wed, 01 Jan 2025 00:00:10 GMT", now=now), 0.0)

    def test_absent_or_garbage(self):
        self.assertIsNone(parse_retry_after_ms(None))
        self.assertIsNone(parse_retry_after_ms("   "))
        self.assertIsNone(parse_retry_after_ms("soon"))
        self.assertIsNone(parse_retry_after_ms("nan"))


class TestRetryPolicy(unittest.TestCase):
    def test_backoff_bounds(self):
        policy = RetryPolicy(base_delay_ms=500, max_delay_ms=8000, jitter_ms=250)
        for _ in range(20):
            first = policy.backoff_delay_ms(1)
            self.assertGreaterEqual(first, 500)
            self.assertLessEqual(first, 750)
            capped = policy.backoff_delay_ms(10)
            self.assertGreaterEqual(capped, 8000)
            self.assertLessEqual(capped, 8250)

    def test_from_config_with_override(self):
        policy = RetryPolicy.from_config({"max_attempts": 2, "min_spacing_ms": 1100}, min_spacing_ms=1300)
        self.assertEqual(policy.max_attempts, 2)
        self.assertEqual(policy.min_spacing_ms, 1300)
        self.assertEqual(policy.base_delay_ms, 500)


class TestRunWithRetries(unittest.TestCase):
    def test_unlisted_exception_propagates_immediately(self):
        work = MagicMock(side_effect=KeyError("boom"))
        with self.assertRaises(KeyError):
            run_with_retries(work, label="t", policy=RetryPolicy(max_attempts=3), sleep=MagicMock())
        self.assertEqual(work.call_count, 1)

    def test_retryable_failure_then_success(self):
        work = MagicMock(side_effect=[RetryableFailure("HTTP 503", delay_ms=1000), "done"])
        sleep = MagicMock()
        result = run_with_retries(
            work, label="t", policy=RetryPolicy(max_attempts=3, min_spacing_ms=0), sleep=sleep,
        )
        self.assertEqual(result, "done")
        self.assertEqual(work.call_args_list, [call(1), call(2)])
        self.assertEqual(sleep.call_args_list, [call(0.0), call(1.0), call(0.0)])


class TestFetchWithRetry(unittest.TestCase):
    def setUp(self):
        self.policy = RetryPolicy(max_attempts=3, min_spacing_ms=0)
        self.sleep = MagicMock()

    @patch("src.core.retry.requests.request")
    def test_success_json(self, mock_request):
        mock_request.return_value = _response(200, body={"ok": True})
        data = fetch_with_retry("https://api.test/x", policy=self.policy, sleep=self.sleep)
        self.assertEqual(data, {"ok": True})
        self.assertEqual(mock_request.call_count, 1)

    @patch("src.core.retry.requests.request")
    def test_success_text(self, mock_request):
        mock_request.return_value = _response(200, text="Date,Open\n")
        text = fetch_with_retry(
            "https://api.test/x", policy=self.policy, response_kind="text", sleep=self.sleep,
        )
        self.assertEqual(text, "Date,Open\n")

    @patch("src.core.retry.requests.request")
    def test_non_retryable_status_single_call(self, mock_request):
        mock_request.return_value = _response(404, text="not found " * 50)
        with self.assertRaises(NonRetryableStatusError) as ctx:
            fetch_with_retry("https://api.test/x", policy=self.policy, sleep=self.sleep)
        self.assertEqual(mock_request.call_count, 1)
        self.assertEqual(ctx.exception.status, 404)
        self.assertIn("Fetch failed 404 for https://api.test/x", str(ctx.exception))
        self.assertEqual(ctx.exception.snippet, ("not found " * 50)[:200])

    @patch("src.core.retry.requests.request")
    def test_retryable_status_exhausts(self, mock_request):
        mock_request.return_value = _response(503, text="busy")
        with self.assertRaises(RetriesExhaustedError) as ctx:
            fetch_with_retry("https://api.test/x", label="news:ai", policy=self.policy, sleep=self.sleep)
        self.assertEqual(mock_request.call_count, 3)
        self.assertEqual(ctx.exception.status, 503)
        # Spacing before each attempt, backoff only between attempts
        self.assertEqual(self.sleep.call_count, 3 + 2)

    @patch("src.core.retry.requests.request")
    def test_retry_after_is_honoured(self, mock_request):
        mock_request.side_effect = [
            _response(429, headers={"Retry-After": "2"}),
            _response(200, body=[1, 2]),
        ]
        data = fetch_with_retry("https://api.test/x", policy=self.policy, sleep=self.sleep)
        self.assertEqual(data, [1, 2])
        self.assertIn(call(2.0), self.sleep.call_args_list)

    @patch("src.core.retry.requests.request")
    def test_network_error_then_success(self, mock_request):
        mock_request.side_effect = [requests.ConnectionError("reset"), _response(200, body={})]
        self.assertEqual(fetch_with_retry("https://api.test/x", policy=self.policy, sleep=self.sleep), {})
        self.assertEqual(mock_request.call_count, 2)

    @patch("src.core.retry.requests.request")
    def test_network_error_reraised_after_last_attempt(self, mock_request):
        mock_request.side_effect = requests.ConnectionError("reset")
        with self.assertRaises(requests.ConnectionError):
            fetch_with_retry("https://api.test/x", policy=self.policy, sleep=self.sleep)
        self.assertEqual(mock_request.call_count, 3)

    @patch("src.core.retry.requests.request")
    def test_request_construction_error_not_retried(self, mock_request):
        mock_request.side_effect = requests.exceptions.InvalidURL("bad url")
        with self.assertRaises(requests.exceptions.InvalidURL):
            fetch_with_retry("https://api.test/x", policy=self.policy, sleep=self.sleep)
        self.assertEqual(mock_request.call_count, 1)

    @patch("src.core.retry.requests.request")
    def test_timeout_is_retried(self, mock_request):
        mock_request.side_effect = [requests.Timeout("slow"), _response(200, body={"ok": True})]
        self.assertEqual(fetch_with_retry("https://api.test/x", policy=self.policy, sleep=self.sleep), {"ok": True})
        self.assertEqual(mock_request.call_count, 2)

    def test_unknown_response_kind(self):
        with self.assertRaises(ValueError):
            fetch_with_retry("https://api.test/x", response_kind="xml")


if __name__ == "__main__":
    unittest.main()
