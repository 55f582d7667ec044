"""
backend/footbet/providers/http_client.py

Purpose:
    httpx.AsyncClient wrapper used by every outbound data provider: bounded
    retry with exponential backoff on rate limits, 5xx and network errors,
    plus a circuit breaker that fails fast after repeated failures.

Dependencies:
    - httpx
    - footbet.errors
"""

import asyncio
import logging
import time
from typing import Optional
from urllib.parse import urlparse

import httpx

from footbet.errors import UpstreamError

logger = logging.getLogger("footbet.http_client")

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
_MAX_DELAY_SECONDS = 60.0


class CircuitBreaker:
    """Opens after ``failure_threshold`` consecutive failed calls."""

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 120.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.opened_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.opened_at is not None

    def record_success(self) -> None:
        self.failure_count = 0
        self.opened_at = None

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.failure_count >= self.failure_threshold and self.opened_at is None:
            self.opened_at = time.monotonic()
            logger.warning("Circuit breaker OPEN after %d failed calls", self.failure_count)

    def can_attempt(self) -> bool:
        if self.opened_at is None:
            return True
        # Half-open: let one call through once the recovery window has passed.
        if time.monotonic() - self.opened_at >= self.recovery_timeout:
            logger.info("Circuit breaker half-open, allowing a trial call")
            return True
        return False


def parse_retry_after(response: httpx.Response) -> Optional[float]:
    """Seconds to wait from Retry-After / X-RateLimit-Retry-After, if numeric."""
    for header in ("retry-after", "x-ratelimit-retry-after"):
        value = response.headers.get(header)
        if value is None:
            continue
        try:
            return max(0.0, float(value))
        except (TypeError, ValueError):
            continue
    return None


def safe_url(url: str) -> str:
    """Strip the query string so credentials never reach the logs."""
    parsed = urlparse(str(url))
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


class ResilientClient:
    """Async HTTP client with retry/backoff and a circuit breaker.

    Retryable responses are retried up to ``max_retries`` times; if every
    attempt is retryable the last response is returned so callers can map
    the status. Network errors that outlive all attempts, and calls made
    while the circuit is open, raise ``UpstreamError``.
    """

    def __init__(
        self,
        name: str,
        *,
        timeout: float = 15.0,
        max_retries: int = 3,
        base_delay: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self.name = name
        self.max_retries = max(0, int(max_retries))
        self.base_delay = float(base_delay)
        self.circuit = CircuitBreaker()

    def _backoff(self, attempt: int, response: httpx.Response | None = None) -> float:
        delay = parse_retry_after(response) if response is not None else None
        if delay is None:
            delay = self.base_delay * (2 ** attempt)
        return min(delay, _MAX_DELAY_SECONDS)

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if not self.circuit.can_attempt():
            raise UpstreamError(f"{self.name}: circuit open, upstream temporarily disabled")

        attempts = self.max_retries + 1
        last_resp: Optional[httpx.Response] = None
        last_exc: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                resp = await self._client.request(method, url, **kwargs)
            except (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError) as exc:
                last_exc = exc
                logger.warning(
                    "[%s] Network error on %s %s (attempt %d/%d): %s",
                    self.name, method, safe_url(url), attempt + 1, attempts, exc,
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(self._backoff(attempt))
                continue

            if resp.status_code not in RETRYABLE_STATUSES:
                self.circuit.record_success()
                return resp

            last_resp = resp
            logger.warning(
                "[%s] %s %d on %s %s (attempt %d/%d)",
                self.name,
                "Rate limited" if resp.status_code == 429 else "Server error",
                resp.status_code, method, safe_url(url), attempt + 1, attempts,
            )
            if attempt < self.max_retries:
                await asyncio.sleep(self._backoff(attempt, resp))

        self.circuit.record_failure()
        if last_resp is not None:
            logger.error(
                "[%s] All %d attempts failed for %s %s (last status: %d)",
                self.name, attempts, method, safe_url(url), last_resp.status_code,
            )
            return last_resp

        logger.error(
            "[%s] All %d attempts failed for %s %s: %s",
            self.name, attempts, method, safe_url(url), last_exc,
        )
        raise UpstreamError(f"{self.name}: request failed after {attempts} attempts ({last_exc})")

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()
