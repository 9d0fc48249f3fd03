"""
Call gateway — uniform retry with exponential backoff for every external lookup.

Only transient failures are retried: throttling (429, or 403 carrying a Google
rate-limit reason), server errors (500/502/503/504), and transport timeouts or
connection errors. Everything else propagates on first occurrence. When the
retry budget runs out the last error is raised unchanged.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from ..config import RetryConfig
from .telemetry import UsageMonitor

logger = logging.getLogger("drive_audit_engine.gateway")

T = TypeVar("T")

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded"}


class ExternalAPIError(Exception):
    """Raised when a Google API returns a non-success response."""
    def __init__(self, status_code: int, message: str, url: str = "", reason: str = ""):
        self.status_code = status_code
        self.url = url
        self.reason = reason
        self.message = message
        super().__init__(f"Google API Error {status_code} for {url}: {message}")


def is_transient(error: BaseException) -> bool:
    """True when the failure is worth retrying."""
    if isinstance(error, ExternalAPIError):
        if error.status_code in RETRYABLE_STATUS_CODES:
            return True
        return error.status_code == 403 and error.reason in RATE_LIMIT_REASONS
    return isinstance(error, (httpx.TimeoutException, httpx.ConnectError))


def _status_of(error: BaseException) -> Optional[int]:
    return getattr(error, "status_code", None)


class CallGateway:
    """
    Executes zero-argument async callables with bounded retry.

    delay(n) = min(base * 2**n + jitter, max_delay), jitter uniform in [0, jitter).
    Every attempt is reported to the usage monitor; a failing monitor is logged
    and otherwise ignored.
    """

    def __init__(
        self,
        retry: Optional[RetryConfig] = None,
        monitor: Optional[UsageMonitor] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.retry = retry or RetryConfig()
        self.monitor = monitor
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._retry_count = 0

    @property
    def max_retries(self) -> int:
        return self.retry.max_retries

    def backoff_delay(self, attempt: int) -> float:
        jitter = self._rng.random() * self.retry.jitter
        return min(self.retry.base_delay * (2 ** attempt) + jitter, self.retry.max_delay)

    async def call(self, operation: Callable[[], Awaitable[T]], name: str = "") -> T:
        """Run operation, retrying transient failures up to max_retries times."""
        for attempt in range(self.max_retries + 1):
            started = time.monotonic()
            try:
                result = await operation()
            except Exception as e:
                self._report(name, attempt, False, _status_of(e), time.monotonic() - started)
                if not is_transient(e) or attempt >= self.max_retries:
                    raise
                delay = self.backoff_delay(attempt)
                self._retry_count += 1
                logger.warning(
                    f"Transient failure on {name or 'call'} ({e}). "
                    f"Retry {attempt + 1}/{self.max_retries} in {delay:.2f}s"
                )
                await self._sleep(delay)
            else:
                self._report(name, attempt, True, None, time.monotonic() - started)
                return result
        raise RuntimeError("unreachable: retry loop exited without result")

    def _report(self, name: str, attempt: int, success: bool, status: Optional[int], elapsed: float):
        if self.monitor is None:
            return
        try:
            self.monitor.record_attempt(name, attempt, success, status, elapsed)
        except Exception as e:
            logger.warning(f"Usage monitor rejected record for {name}: {e}")

    def get_stats(self) -> dict:
        return {"retries": self._retry_count}
