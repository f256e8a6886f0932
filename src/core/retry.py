"""Retry logic with exponential backoff, jitter and Retry-After support.

Two layers:
  - ``run_with_retries`` — a generic loop over any unit of work. The work
    raises ``RetryableFailure`` (optionally carrying a server-suggested delay)
    or one of the ``retry_on`` exception types to ask for another attempt.
  - ``fetch_with_retry`` — an HTTP request built on top of it. Every upstream
    call in the pipeline (news, prices, LLM) goes through this function.
"""

import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, Optional, Tuple, Type, TypeVar

import requests

from src.core.logger import stage_logger

T = TypeVar("T")

RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})
_SNIPPET_CHARS = 200

# Network-level failures worth another attempt. Request-construction errors
# (InvalidURL, MissingSchema, InvalidHeader) are not retried.
TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
)


class FetchError(Exception):
    """Base class for upstream fetch failures."""

    def __init__(self, label: str, url: str, message: str, status: Optional[int] = None) -> None:
        super().__init__(f"[{label}] {message}")
        self.label = label
        self.url = url
        self.status = status


class NonRetryableStatusError(FetchError):
    """The upstream answered with a status that retrying will not fix (e.g. 401, 404)."""

    def __init__(self, label: str, url: str, status: int, snippet: str) -> None:
        super().__init__(label, url, f"Fetch failed {status} for {url}\n{snippet}", status=status)
        self.snippet = snippet


class RetriesExhaustedError(FetchError):
    """Every attempt ended in a retryable failure."""

    def __init__(self, label: str, url: str, attempts: int, status: Optional[int] = None) -> None:
        super().__init__(label, url, f"Fetch failed after {attempts} attempts for {url}", status=status)
        self.attempts = attempts


class RetryableFailure(Exception):
    """Raised by a unit of work to request another attempt.

    Args:
        message: Human-readable reason, used in log lines.
        delay_ms: Server-suggested delay. ``None`` selects exponential backoff.
        status: HTTP status that caused the failure, if any.
    """

    def __init__(self, message: str, delay_ms: Optional[float] = None, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.delay_ms = delay_ms
        self.status = status


@dataclass
class RetryPolicy:
    """Attempt budget and delay parameters, all durations in milliseconds."""

    max_attempts: int = 4
    base_delay_ms: int = 500
    max_delay_ms: int = 8000
    min_spacing_ms: int = 1100
    jitter_ms: int = 250

    @classmethod
    def from_config(cls, fetch_config: Dict[str, Any], **overrides: Any) -> "RetryPolicy":
        """Build a policy from the ``fetch`` section of config.yaml."""
        values = {
            "max_attempts": int(fetch_config.get("max_attempts", cls.max_attempts)),
            "base_delay_ms": int(fetch_config.get("base_delay_ms", cls.base_delay_ms)),
            "max_delay_ms": int(fetch_config.get("max_delay_ms", cls.max_delay_ms)),
            "min_spacing_ms": int(fetch_config.get("min_spacing_ms", cls.min_spacing_ms)),
        }
        values.update(overrides)
        return cls(**values)

    def backoff_delay_ms(self, attempt: int) -> float:
        """Exponential delay for a 1-based attempt, capped, plus uniform jitter in [0, jitter_ms)."""
        exp_delay = min(self.max_delay_ms, self.base_delay_ms * (2 ** (attempt - 1)))
        return exp_delay + random.uniform(0, self.jitter_ms)


def parse_retry_after_ms(header: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """Parse a Retry-After header value into milliseconds.

    Accepts delta-seconds (``"120"``) or an HTTP-date. Dates in the past yield 0.
    Returns ``None`` when the header is absent or unparseable.
    """
    if header is None:
        return None
    value = header.strip()
    if not value:
        return None

    try:
        seconds = float(value)
    except ValueError:
        seconds = None
    if seconds is not None:
        if seconds != seconds or seconds in (float("inf"), float("-inf")):
            return None
        return max(0.0, seconds * 1000.0)

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return max(0.0, (when - current).total_seconds() * 1000.0)


def run_with_retries(
    work: Callable[[int], T],
    *,
    label: str,
    policy: Optional[RetryPolicy] = None,
    retry_on: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
    url: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``work(attempt)`` until it returns, with pacing and backoff between attempts.

    Args:
        work: Callable receiving the 1-based attempt number.
        label: Stage label used in log lines and errors (e.g. ``news:ai``).
        policy: Attempt budget and delays. Defaults to ``RetryPolicy()``.
        retry_on: Exception types treated as transient (network-level) failures.
        url: Target of the work, reported when attempts are exhausted.
        sleep: Sleep function taking seconds.

    Returns:
        Whatever ``work`` returns on its first successful attempt.

    Raises:
        RetriesExhaustedError: The last attempt ended in a ``RetryableFailure``.
        Exception: The last attempt raised one of ``retry_on``; it is re-raised.
        Any other exception raised by ``work`` propagates immediately.
    """
    policy = policy or RetryPolicy()
    log = stage_logger(label)
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        # Pacing before every attempt keeps bursts under free-tier rate limits
        sleep(policy.min_spacing_ms / 1000.0)

        try:
            return work(attempt)
        except RetryableFailure as failure:
            last_error = failure
            if failure.delay_ms is not None:
                delay_ms = failure.delay_ms
            else:
                delay_ms = policy.backoff_delay_ms(attempt)
            reason = str(failure)
        except retry_on as exc:
            last_error = exc
            delay_ms = policy.backoff_delay_ms(attempt)
            reason = f"threw {type(exc).__name__}: {exc}"

        if attempt == policy.max_attempts:
            break

        log.warning(
            f"Attempt {attempt}/{policy.max_attempts} failed ({reason}). "
            f"Retrying in {delay_ms:.0f}ms..."
        )
        sleep(delay_ms / 1000.0)

    log.error(f"giving up after {policy.max_attempts} attempts: {last_error}")
    if isinstance(last_error, RetryableFailure) or last_error is None:
        status = last_error.status if isinstance(last_error, RetryableFailure) else None
        raise RetriesExhaustedError(label, url, policy.max_attempts, status=status)
    raise last_error


def fetch_with_retry(
    url: str,
    *,
    label: str = "request",
    policy: Optional[RetryPolicy] = None,
    response_kind: str = "json",
    method: str = "GET",
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    json_body: Optional[Any] = None,
    timeout: float = 30,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Perform an HTTP request with bounded retries.

    Args:
        url: Target URL.
        label: Stage label (``news:<theme>``, ``stooq:<ticker>``, ``hf:<theme>:<attempt>``).
        policy: Retry policy; defaults to ``RetryPolicy()``.
        response_kind: ``"json"`` to return the decoded body, ``"text"`` for raw text.
        method: HTTP method.
        params: Query parameters.
        headers: Request headers.
        json_body: JSON request body.
        timeout: Per-request socket timeout in seconds.
        sleep: Sleep function taking seconds.

    Returns:
        Parsed JSON (``dict``/``list``) or ``str`` depending on ``response_kind``.

    Raises:
        NonRetryableStatusError: Non-2xx status outside ``RETRYABLE_STATUSES``.
        RetriesExhaustedError: Every attempt ended in a retryable status.
        requests.RequestException: The final attempt failed at the network level,
            or the request could not be built (raised on the first attempt).
    """
    if response_kind not in ("json", "text"):
        raise ValueError(f"Unsupported response_kind: {response_kind!r}")

    def attempt_request(attempt: int) -> Any:
        resp = requests.request(
            method, url,
            params=params, headers=headers, json=json_body, timeout=timeout,
        )

        if 200 <= resp.status_code < 300:
            if response_kind == "text":
                return resp.text
            return resp.json()

        snippet = (resp.text or "")[:_SNIPPET_CHARS]
        if resp.status_code not in RETRYABLE_STATUSES:
            raise NonRetryableStatusError(label, url, resp.status_code, snippet)

        raise RetryableFailure(
            f"HTTP {resp.status_code}",
            delay_ms=parse_retry_after_ms(resp.headers.get("Retry-After")),
            status=resp.status_code,
        )

    return run_with_retries(attempt_request, label=label, policy=policy, url=url, sleep=sleep)
