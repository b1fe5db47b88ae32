"""Retrying HTTP helper shared by discovery adapters.

Retry policy:
- 2xx returns immediately
- 429 waits for Retry-After seconds when present, else exponential backoff
- 5xx and network errors wait with exponential backoff (base * 2^attempt)
- other 4xx raise FatalHTTPError without retrying
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from backend.outing.utils.metrics import PipelineMetrics

MAX_RETRIES = 2
BASE_DELAY_MS = 1100  # >1s keeps us under a 1 req/sec rate limit


class RetryableHTTPError(Exception):
    """Rate-limit, server or network failure worth retrying."""

    pass


class FatalHTTPError(Exception):
    """Client error (4xx other than 429) that must not be retried."""

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"HTTP request failed ({status_code}): {body[:200]}")
        self.status_code = status_code
        self.body = body


class HTTPRetryExhaustedError(Exception):
    """All retry attempts failed."""

    pass


@dataclass(frozen=True)
class HTTPContext:
    """Context for one logical HTTP call."""

    source: str
    method: str
    url: str
    run_id: str | None = None


class HTTPAttemptLogger:
    """Interface for structured attempt logging."""

    def log_attempt(
        self,
        ctx: HTTPContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        """Log one HTTP attempt."""
        pass


def _backoff_seconds(base_delay_ms: int, attempt: int) -> float:
    return base_delay_ms * (2**attempt) / 1000


def _retry_after_seconds(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(int(value)), 0.0)
    except ValueError:
        return None


async def fetch_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    source: str,
    retries: int = MAX_RETRIES,
    base_delay_ms: int = BASE_DELAY_MS,
    sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    metrics: PipelineMetrics | None = None,
    step_logger: HTTPAttemptLogger | None = None,
    run_id: str | None = None,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request, retrying transient failures.

    Args:
        client: httpx client to send with
        method: HTTP method
        url: Target URL
        source: Source identifier for metrics and logs
        retries: Retries after the first attempt
        base_delay_ms: Backoff base in milliseconds
        sleep_fn: Injectable sleep function (default: asyncio.sleep)
        metrics: Metrics recorder (optional, defaults to no-op)
        step_logger: Structured attempt logger (optional, defaults to no-op)
        run_id: Run the request belongs to, for logs
        **kwargs: Passed through to client.request

    Returns:
        The successful response

    Raises:
        FatalHTTPError: Non-retryable client error
        HTTPRetryExhaustedError: Every attempt failed with a retryable error
    """
    sleep = sleep_fn or asyncio.sleep
    metrics = metrics or PipelineMetrics()
    step_logger = step_logger or HTTPAttemptLogger()
    ctx = HTTPContext(source=source, method=method, url=url, run_id=run_id)

    last_error: RetryableHTTPError | None = None
    reason = "unknown"
    for attempt in range(retries + 1):
        attempt_start = time.monotonic()
        wait_s = _backoff_seconds(base_delay_ms, attempt)

        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            elapsed_ms = (time.monotonic() - attempt_start) * 1000
            last_error = RetryableHTTPError(f"network error: {e}")
            last_error.__cause__ = e
            reason = "network_error"
            metrics.record_http_latency(source, "network_error", elapsed_ms)
            step_logger.log_attempt(
                ctx, attempt + 1, "network_error", elapsed_ms, error_reason=type(e).__name__
            )
        else:
            elapsed_ms = (time.monotonic() - attempt_start) * 1000
            status_code = response.status_code

            if response.is_success:
                metrics.record_http_latency(source, "success", elapsed_ms)
                step_logger.log_attempt(ctx, attempt + 1, "success", elapsed_ms)
                return response

            if status_code == 429:
                retry_after = _retry_after_seconds(response)
                if retry_after is not None:
                    wait_s = retry_after
                last_error = RetryableHTTPError("rate limited (429)")
                outcome = "rate_limited"
            elif status_code >= 500:
                last_error = RetryableHTTPError(f"server error ({status_code})")
                outcome = "server_error"
            else:
                metrics.record_http_latency(source, "client_error", elapsed_ms)
                step_logger.log_attempt(
                    ctx, attempt + 1, "client_error", elapsed_ms, error_reason=str(status_code)
                )
                raise FatalHTTPError(status_code, response.text)

            reason = outcome
            metrics.record_http_latency(source, outcome, elapsed_ms)
            step_logger.log_attempt(
                ctx, attempt + 1, outcome, elapsed_ms, error_reason=str(status_code)
            )

        if attempt < retries:
            metrics.inc_http_retry(source, reason)
            await sleep(wait_s)

    raise HTTPRetryExhaustedError(
        f"{method} {url} failed after {retries + 1} attempts"
    ) from last_error
