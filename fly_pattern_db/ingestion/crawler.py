"""
Web Crawler Module
==================

HTTP fetching for discovery and scraping: a minimum-interval rate limiter
per collaborator, retry with exponential backoff on transient failures, and
a bounded worker pool that isolates per-item failures.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import httpx

if TYPE_CHECKING:
    from fly_pattern_db.ingestion.config import GlobalConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class TransientNetworkError(Exception):
    """A timeout, connection failure or retryable HTTP status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class FetchResult:
    """Result of fetching a URL."""

    url: str
    content: str
    status_code: int
    fetched_at: datetime
    error: str | None = None

    @property
    def success(self) -> bool:
        """Check if fetch was successful."""
        return self.error is None and 200 <= self.status_code < 300


class RateLimiter:
    """
    Minimum-interval rate limiter.

    Successive acquisitions are spaced at least min_interval seconds apart,
    however many workers share the limiter. Pool width controls parallelism;
    this controls throughput.
    """

    def __init__(self, min_interval: float) -> None:
        self.min_interval = max(0.0, min_interval)
        self._last_call: float | None = None
        self._lock = asyncio.Lock()
        self._sync_lock = threading.Lock()

    def _reserve(self) -> float:
        """Claim the next slot and return how long to wait for it."""
        now = time.monotonic()
        if self._last_call is None:
            wait = 0.0
        else:
            wait = max(0.0, self._last_call + self.min_interval - now)
        self._last_call = now + wait
        return wait

    async def acquire(self) -> None:
        """Wait until the next call is allowed."""
        async with self._lock:
            wait = self._reserve()
            if wait > 0:
                await asyncio.sleep(wait)

    def acquire_sync(self) -> None:
        """Blocking variant of acquire() for synchronous collaborators."""
        with self._sync_lock:
            wait = self._reserve()
            if wait > 0:
                time.sleep(wait)


async def with_retries(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    backoff_seconds: float = 1.0,
    label: str = "operation",
) -> T:
    """
    Await fn(), retrying TransientNetworkError with exponential backoff.

    Makes at most max_retries attempts, sleeping backoff_seconds * 2**attempt
    between them. Other exceptions propagate immediately.
    """
    attempts = max(1, max_retries)
    for attempt in range(attempts):
        try:
            return await fn()
        except TransientNetworkError as e:
            if attempt == attempts - 1:
                raise
            delay = backoff_seconds * 2**attempt
            logger.warning(
                "%s failed: %s (attempt %d/%d), retrying in %.1fs",
                label,
                e,
                attempt + 1,
                attempts,
                delay,
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")


def with_retries_sync(
    fn: Callable[[], T],
    max_retries: int = 3,
    backoff_seconds: float = 1.0,
    label: str = "operation",
) -> T:
    """Blocking variant of with_retries()."""
    attempts = max(1, max_retries)
    for attempt in range(attempts):
        try:
            return fn()
        except TransientNetworkError as e:
            if attempt == attempts - 1:
                raise
            delay = backoff_seconds * 2**attempt
            logger.warning(
                "%s failed: %s (attempt %d/%d), retrying in %.1fs",
                label,
                e,
                attempt + 1,
                attempts,
                delay,
            )
            time.sleep(delay)
    raise AssertionError("unreachable")


class Crawler:
    """
    Rate-limited, retrying HTTP client.

    Each Crawler owns one RateLimiter, so every external collaborator
    (YouTube API, transcript host, each blog scraper) gets its own instance
    and is throttled independently.
    """

    def __init__(
        self,
        user_agent: str = "FlyPatternDB/1.0",
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        request_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.rate_limiter = RateLimiter(request_delay)
        self.transport = transport

    @classmethod
    def from_config(
        cls,
        config: GlobalConfig,
        request_delay: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> Crawler:
        """Create a crawler from global settings."""
        return cls(
            user_agent=config.user_agent,
            timeout=config.request_timeout,
            max_retries=config.max_retries,
            backoff_seconds=config.backoff_seconds,
            request_delay=config.request_delay if request_delay is None else request_delay,
            transport=transport,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            follow_redirects=True,
            headers={
                "User-Agent": self.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.9",
            },
        )

    async def _get_once(self, url: str, params: dict[str, Any] | None) -> httpx.Response:
        await self.rate_limiter.acquire()
        try:
            async with self._client() as client:
                response = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise TransientNetworkError(f"Timeout after {self.timeout}s: {url}") from e
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Connection error for {url}: {e}") from e

        if response.status_code in RETRYABLE_STATUS_CODES:
            raise TransientNetworkError(
                f"HTTP {response.status_code} for {url}", status_code=response.status_code
            )
        response.raise_for_status()
        return response

    async def get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        """
        GET a URL with rate limiting and retries.

        Raises:
            TransientNetworkError: retries exhausted on timeouts, connection
                errors, 429 or 5xx
            httpx.HTTPStatusError: other non-2xx responses (not retried)
        """
        return await with_retries(
            lambda: self._get_once(url, params),
            max_retries=self.max_retries,
            backoff_seconds=self.backoff_seconds,
            label=f"GET {url}",
        )

    async def get_text(self, url: str, params: dict[str, Any] | None = None) -> str:
        """GET a URL and return the body as text."""
        response = await self.get(url, params)
        return response.text

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET a URL and decode the JSON body."""
        response = await self.get(url, params)
        return response.json()

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a URL, reporting failure in the result instead of raising.

        Args:
            url: URL to fetch

        Returns:
            FetchResult with content or error
        """
        fetched_at = datetime.now(UTC)
        try:
            response = await self.get(url)
        except TransientNetworkError as e:
            logger.warning("Giving up on %s: %s", url, e)
            return FetchResult(
                url=url,
                content="",
                status_code=e.status_code or 0,
                fetched_at=fetched_at,
                error=str(e),
            )
        except httpx.HTTPStatusError as e:
            logger.warning("HTTP error fetching %s: %s", url, e)
            return FetchResult(
                url=url,
                content="",
                status_code=e.response.status_code,
                fetched_at=fetched_at,
                error=str(e),
            )

        return FetchResult(
            url=url,
            content=response.text,
            status_code=response.status_code,
            fetched_at=fetched_at,
        )


@dataclass
class WorkResult(Generic[T, R]):
    """Outcome of one item processed by run_worker_pool()."""

    item: T
    value: R | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


async def run_worker_pool(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = 5,
) -> list[WorkResult[T, R]]:
    """
    Process items with a fixed number of workers pulling from a shared queue.

    A failing item is logged and recorded; it never stops the other workers.

    Returns:
        One WorkResult per item, in input order
    """
    results: list[WorkResult[T, R] | None] = [None] * len(items)
    queue: asyncio.Queue[int] = asyncio.Queue()
    for index in range(len(items)):
        queue.put_nowait(index)

    async def run_worker() -> None:
        while True:
            try:
                index = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            item = items[index]
            try:
                value = await worker(item)
                results[index] = WorkResult(item=item, value=value)
            except Exception as e:
                logger.exception("Worker failed on %r", item)
                results[index] = WorkResult(item=item, error=str(e) or type(e).__name__)
            finally:
                queue.task_done()

    width = max(1, min(concurrency, len(items)))
    await asyncio.gather(*(run_worker() for _ in range(width)))
    return [r for r in results if r is not None]
