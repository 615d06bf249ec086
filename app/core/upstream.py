"""
Upstream image fetching under a process-wide concurrency cap.

Each call walks ACQUIRING -> THROTTLING -> ATTEMPTING(n) and ends in SUCCESS
or EXHAUSTED. Only transport failures are retried; a non-2xx answer is a
successful fetch and the caller decides what it means.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, List, Mapping, Optional

import httpx

from .config import Settings
from .errors import ResourceExhaustedError, UpstreamTransportError
from .header_picker import pick
from .proxy_log import ProxyLogger


class FetchState(str, Enum):
    ACQUIRING = "acquiring"
    THROTTLING = "throttling"
    ATTEMPTING = "attempting"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


@dataclass
class FetchResult:
    status: int
    content_type: str
    data: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 2
    backoff_seconds: float = 0.0

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, (httpx.TransportError, asyncio.TimeoutError))

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        return attempt < self.max_attempts and self.is_retryable(error)


class FetchPermitPool:
    """
    Counting permit pool shared by every in-flight fetch.

    Closing the pool wakes waiters one after another; each of them, and any
    later caller, gets ResourceExhaustedError.
    """

    def __init__(self, capacity: int = 10):
        self.capacity = max(1, capacity)
        self._semaphore = asyncio.Semaphore(self.capacity)
        self._in_use = 0
        self._closed = False

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def closed(self) -> bool:
        return self._closed

    async def acquire(self) -> None:
        if self._closed:
            raise ResourceExhaustedError("Fetch permit pool is closed")
        await self._semaphore.acquire()
        if self._closed:
            self._semaphore.release()
            raise ResourceExhaustedError("Fetch permit pool is closed")
        self._in_use += 1

    def release(self) -> None:
        self._in_use -= 1
        self._semaphore.release()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._semaphore.release()

    @asynccontextmanager
    async def permit(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()


class UpstreamFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        pool: FetchPermitPool,
        config: Settings,
        logger: ProxyLogger,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.client = client
        self.pool = pool
        self.config = config
        self.logger = logger
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=config.FETCH_MAX_ATTEMPTS)
        self.header_whitelist: List[str] = list(config.FETCH_HEADERS_TO_PICK)

    def _transition(self, url: str, state: FetchState, attempt: int = 0) -> None:
        self.logger.debug("[fetch] state", {"url": url, "state": state.value, "attempt": attempt})

    async def _attempt(self, url: str, headers: Mapping[str, str]) -> FetchResult:
        async def _get() -> FetchResult:
            response = await self.client.get(url, headers=dict(headers))
            return FetchResult(
                status=response.status_code,
                content_type=response.headers.get("content-type", ""),
                data=response.content,
            )

        return await asyncio.wait_for(_get(), timeout=self.config.FETCH_TIMEOUT)

    async def fetch(self, url: str, inbound_headers: Mapping[str, str]) -> FetchResult:
        """
        Fetch `url`, forwarding only the whitelisted inbound headers.

        Raises UpstreamTransportError once every attempt failed at the
        transport level, or at once on any other request error (redirect
        loop, bad content encoding). ResourceExhaustedError if the pool is closed.
        """
        headers = pick(inbound_headers, self.header_whitelist)

        self._transition(url, FetchState.ACQUIRING)
        async with self.pool.permit():
            self._transition(url, FetchState.THROTTLING)
            if self.config.FETCH_THROTTLE_DELAY > 0:
                await asyncio.sleep(self.config.FETCH_THROTTLE_DELAY)

            attempt = 0
            while True:
                attempt += 1
                self._transition(url, FetchState.ATTEMPTING, attempt)
                try:
                    result = await self._attempt(url, headers)
                except (httpx.TransportError, asyncio.TimeoutError) as exc:
                    if self.retry_policy.should_retry(attempt, exc):
                        self.logger.warning(
                            "[fetch] transport failure, retrying",
                            {"url": url, "attempt": attempt, "error": repr(exc)},
                        )
                        if self.retry_policy.backoff_seconds > 0:
                            await asyncio.sleep(self.retry_policy.backoff_seconds)
                        continue
                    self._transition(url, FetchState.EXHAUSTED, attempt)
                    raise UpstreamTransportError(
                        f"Fetch error: {exc!r}",
                        url=url,
                        last_error=exc,
                        attempts=attempt,
                    ) from exc
                except httpx.RequestError as exc:
                    # Redirect loops, undecodable bodies: not retried.
                    self._transition(url, FetchState.EXHAUSTED, attempt)
                    raise UpstreamTransportError(
                        f"Fetch error: {exc!r}",
                        url=url,
                        last_error=exc,
                        attempts=attempt,
                    ) from exc
                self._transition(url, FetchState.SUCCESS, attempt)
                return result
