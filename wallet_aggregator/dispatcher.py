"""
Rate-Limited Dispatcher - Every outbound call goes through here.

Each upstream host gets its own RateLimiter (minimum spacing between
dispatches) and RateLimitedDispatcher (retry with exponential backoff on
429/5xx). DispatcherPool hands out one dispatcher per host and is injected
into adapters and the price resolver.

Per-call state machine:
    PENDING -> SUCCEEDED
    PENDING -> RETRYING -> ... -> SUCCEEDED | FAILED
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional
from urllib.parse import urlparse

import aiohttp

from .config import AggregatorConfig
from .exceptions import RateLimitError, UpstreamError, UpstreamUnavailableError


logger = logging.getLogger(__name__)


Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


class DispatchState(Enum):
    """Lifecycle of one logical dispatch."""
    PENDING = "pending"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class RequestSpec:
    """Description of one outbound HTTP request."""
    method: str
    url: str
    params: Optional[dict[str, Any]] = None
    json: Optional[Any] = None
    headers: Optional[dict[str, str]] = None
    label: str = ""  # safe for logs; urls may carry api keys

    @property
    def host(self) -> str:
        return urlparse(self.url).netloc

    @property
    def description(self) -> str:
        return self.label or f"{self.method} {self.host}"


@dataclass
class TransportResponse:
    """Raw upstream answer."""
    status: int
    body: str
    headers: dict[str, str] = field(default_factory=dict)


def header_value(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


# ─────────────────────────────────────────────────────────────
# Transport
# ─────────────────────────────────────────────────────────────

class HttpTransport:
    """aiohttp-backed transport. Owns its session unless one is injected."""

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers={"Accept": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def request(self, spec: RequestSpec) -> TransportResponse:
        session = await self._get_session()
        try:
            async with session.request(
                spec.method,
                spec.url,
                params=spec.params,
                json=spec.json,
                headers=spec.headers,
            ) as response:
                body = await response.text()
                return TransportResponse(
                    status=response.status,
                    body=body,
                    headers=dict(response.headers),
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamUnavailableError(
                f"Connection error: {e}",
                url=spec.host,
            ) from e

    async def close(self) -> None:
        """Close the aiohttp session if we created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()


# ─────────────────────────────────────────────────────────────
# Rate limiting
# ─────────────────────────────────────────────────────────────

class RateLimiter:
    """
    Enforces a minimum spacing between dispatches.

    The check-wait-update sequence runs under a lock, so concurrent
    callers queue up and leave at least `min_interval` apart.
    """

    def __init__(
        self,
        min_interval: float = 0.5,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_dispatch: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def last_dispatch(self) -> Optional[float]:
        return self._last_dispatch

    async def acquire(self) -> float:
        """Wait for the spacing to be satisfied; return seconds waited."""
        async with self._lock:
            waited = 0.0
            if self._last_dispatch is not None:
                elapsed = self._clock() - self._last_dispatch
                if elapsed < self.min_interval:
                    waited = self.min_interval - elapsed
                    await self._sleep(waited)
            self._last_dispatch = self._clock()
            return waited


# ─────────────────────────────────────────────────────────────
# Dispatcher
# ─────────────────────────────────────────────────────────────

class RateLimitedDispatcher:
    """Sends requests through a limiter, retrying transient failures."""

    DEFAULT_MAX_RETRIES = 3
    DEFAULT_BACKOFF_BASE = 2.0

    def __init__(
        self,
        transport: HttpTransport,
        limiter: Optional[RateLimiter] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        sleep: Sleep = asyncio.sleep,
        name: str = "",
    ) -> None:
        self.transport = transport
        self.limiter = limiter or RateLimiter()
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.name = name
        self._sleep = sleep
        self.last_state: Optional[DispatchState] = None

        self._stats = {
            "calls": 0,
            "attempts": 0,
            "retries": 0,
            "succeeded": 0,
            "failed": 0,
        }

    @staticmethod
    def is_retryable(status: int) -> bool:
        return status == 429 or 500 <= status < 600

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number `attempt` (0-based)."""
        return self.backoff_base ** attempt

    async def send(self, spec: RequestSpec) -> Any:
        """
        Dispatch a request and return its parsed JSON body.

        Raises:
            RateLimitError: 429 persisted past the retry budget
            UpstreamError: other HTTP failure (4xx immediately, 5xx after retries)
            UpstreamUnavailableError: transport failure or non-JSON body
        """
        self._stats["calls"] += 1
        state = DispatchState.PENDING
        attempt = 0

        while True:
            await self.limiter.acquire()
            self._stats["attempts"] += 1

            try:
                response = await self.transport.request(spec)
            except UpstreamError:
                self._finish(DispatchState.FAILED)
                logger.warning(f"[{self.name}] {spec.description}: transport failure, {self.last_state.value}")
                raise

            if response.status < 400:
                try:
                    data = self._parse_body(spec, response)
                except UpstreamError:
                    self._finish(DispatchState.FAILED)
                    raise
                self._finish(DispatchState.SUCCEEDED)
                if state == DispatchState.RETRYING:
                    logger.info(
                        f"[{self.name}] {spec.description} succeeded after "
                        f"{attempt} retr{'y' if attempt == 1 else 'ies'}"
                    )
                return data

            error = self._error_for(spec, response)

            if not self.is_retryable(response.status) or attempt >= self.max_retries:
                self._finish(DispatchState.FAILED)
                logger.warning(
                    f"[{self.name}] {spec.description} {self.last_state.value} with "
                    f"{response.status} after {attempt + 1} attempt(s)"
                )
                raise error

            state = DispatchState.RETRYING
            logger.info(
                f"[{self.name}] {spec.description} returned {response.status}, "
                f"retrying in {self.backoff_delay(attempt):.1f}s "
                f"(attempt {attempt + 1}/{self.max_retries})"
            )
            await self.backoff(attempt)
            attempt += 1

    async def backoff(self, attempt: int) -> None:
        """Sleep out retry number `attempt` and count it."""
        self._stats["retries"] += 1
        await self._sleep(self.backoff_delay(attempt))

    def _finish(self, state: DispatchState) -> None:
        self.last_state = state
        if state == DispatchState.SUCCEEDED:
            self._stats["succeeded"] += 1
        else:
            self._stats["failed"] += 1

    def _parse_body(self, spec: RequestSpec, response: TransportResponse) -> Any:
        try:
            return json.loads(response.body)
        except ValueError as e:
            raise UpstreamUnavailableError(
                f"Unparseable response from {spec.description}",
                status=response.status,
                body=response.body,
                url=spec.host,
            ) from e

    def _error_for(self, spec: RequestSpec, response: TransportResponse) -> UpstreamError:
        if response.status == 429:
            retry_after = header_value(response.headers, "Retry-After")
            return RateLimitError(
                f"Rate limit exceeded for {spec.description}",
                body=response.body,
                url=spec.host,
                retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        return UpstreamError(
            f"HTTP {response.status} from {spec.description}",
            status=response.status,
            body=response.body,
            url=spec.host,
        )

    def get_stats(self) -> dict[str, Any]:
        return {
            **self._stats,
            "host": self.name,
            "last_state": self.last_state.value if self.last_state else None,
        }


class DispatcherPool:
    """
    One dispatcher (and limiter) per upstream host, sharing a transport.

    Unrelated hosts never wait on each other; callers hitting the same
    host share its spacing.
    """

    def __init__(
        self,
        config: Optional[AggregatorConfig] = None,
        transport: Optional[HttpTransport] = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config or AggregatorConfig()
        self.transport = transport or HttpTransport(
            timeout=self.config.request_timeout_seconds,
        )
        self._clock = clock
        self._sleep = sleep
        self._dispatchers: dict[str, RateLimitedDispatcher] = {}

    def for_host(self, host: str) -> RateLimitedDispatcher:
        dispatcher = self._dispatchers.get(host)
        if dispatcher is None:
            dispatcher = RateLimitedDispatcher(
                transport=self.transport,
                limiter=RateLimiter(
                    min_interval=self.config.min_request_interval_seconds,
                    clock=self._clock,
                    sleep=self._sleep,
                ),
                max_retries=self.config.max_retries,
                backoff_base=self.config.backoff_base_seconds,
                sleep=self._sleep,
                name=host,
            )
            self._dispatchers[host] = dispatcher
            logger.debug(f"Created dispatcher for {host}")
        return dispatcher

    def for_url(self, url: str) -> RateLimitedDispatcher:
        return self.for_host(urlparse(url).netloc)

    async def send(self, spec: RequestSpec) -> Any:
        """Route a request to its host's dispatcher."""
        return await self.for_host(spec.host).send(spec)

    @property
    def hosts(self) -> list[str]:
        return list(self._dispatchers)

    def get_stats(self) -> dict[str, Any]:
        return {host: d.get_stats() for host, d in self._dispatchers.items()}

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> "DispatcherPool":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
