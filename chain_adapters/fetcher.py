"""
Rate-Limited Fetcher - Shared HTTP transport for every chain client.

All requests pass through a token bucket (served in arrival order) and a
bounded exponential-backoff retry covering transport failures and HTTP
429. Upstream error payloads are never retried.
"""

import asyncio
import json
import logging
import re
import time
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlencode, urlparse

import aiohttp

from chain_adapters.config import FetcherConfig
from chain_adapters.exceptions import (
    ApiError,
    ConfigurationError,
    ConnectionFailedError,
    FetchTimeoutError,
    HttpError,
    ParseError,
    RateLimitError,
)


logger = logging.getLogger(__name__)

_SECRET_PARAM = re.compile(r"((?:apikey|api-key|api_key)=)[^&]+", re.IGNORECASE)


def mask_url(url: str) -> str:
    """Hide API key query values before a URL reaches a log line."""
    return _SECRET_PARAM.sub(r"\1***", url)


class TokenBucket:
    """
    Continuously refilled token bucket.

    Capacity equals the configured rate (at least one token). Waiters
    queue on an asyncio.Lock, which wakes them in FIFO order, so no
    caller can be starved by later arrivals.
    """

    def __init__(
        self,
        rate: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if rate <= 0:
            raise ConfigurationError(
                message=f"Rate limit must be > 0, got {rate}",
                config_key="requests_per_second",
            )
        self.rate = float(rate)
        self.capacity = max(1.0, self.rate)
        self._tokens = self.capacity
        self._clock = clock
        self._sleep = sleep
        self._updated = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._updated
        self._updated = now
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)

    async def acquire(self) -> float:
        """Take one token, waiting as long as needed. Returns seconds waited."""
        waited = 0.0
        async with self._lock:
            self._refill()
            if self._tokens < 1.0:
                waited = (1.0 - self._tokens) / self.rate
                await self._sleep(waited)
                self._refill()
            self._tokens -= 1.0
        return waited

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens


class RateLimitedFetcher:
    """
    HTTP GET/POST client with rate limiting and transport retry.

    Usage:
        fetcher = RateLimitedFetcher(FetcherConfig("https://mempool.space/api"))
        height = await fetcher.get(fetcher.build_url("blocks/tip/height"))
        await fetcher.close()
    """

    BACKOFF_INITIAL = 0.1
    BACKOFF_MAX = 10.0
    MAX_ERROR_BODY = 500

    def __init__(
        self,
        config: FetcherConfig,
        name: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._config = config
        self._bucket = TokenBucket(config.requests_per_second)
        self.name = name or urlparse(config.base_url).netloc or config.base_url
        self._session = session
        self._owns_session = session is None

    @property
    def config(self) -> FetcherConfig:
        return self._config

    @property
    def rate_limit(self) -> float:
        """Current requests-per-second budget."""
        return self._config.requests_per_second

    @property
    def is_turbo_mode(self) -> bool:
        """True when an API key is configured."""
        return bool(self._config.api_key)

    def update_rate_limit(self, requests_per_second: float) -> None:
        """Swap in a fresh bucket at the new rate."""
        bucket = TokenBucket(requests_per_second)
        self._config = self._config.with_rate_limit(requests_per_second)
        self._bucket = bucket
        logger.info(f"[{self.name}] Rate limit set to {requests_per_second}/s")

    # ─────────────────────────────────────────────────────────────
    # URL Helpers
    # ─────────────────────────────────────────────────────────────

    def build_url(self, path: str) -> str:
        """Join a relative path to the base URL; absolute URLs pass through."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._config.base_url.rstrip('/')}/{path.lstrip('/')}"

    def build_url_with_params(self, path: str, params: dict[str, Any]) -> str:
        """Build a URL with query parameters, adding apikey when configured."""
        query = {k: v for k, v in params.items() if v is not None}
        if self._config.api_key:
            query["apikey"] = self._config.api_key
        url = self.build_url(path)
        if not query:
            return url
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}{urlencode(query)}"

    # ─────────────────────────────────────────────────────────────
    # Requests
    # ─────────────────────────────────────────────────────────────

    async def get(self, url: str) -> str:
        """GET a URL and return the response body."""
        return await self._request("GET", url)

    async def get_json(
        self,
        url: str,
        parse_float: Optional[Callable[[str], Any]] = None,
    ) -> Any:
        """
        GET a URL and decode the JSON body.

        parse_float is handed to json.loads; pass Decimal to keep
        fractional amounts exact.
        """
        return self._decode(await self._request("GET", url), url, parse_float)

    async def post_json(self, url: str, payload: Any) -> Any:
        """POST a JSON payload and decode the JSON body."""
        return self._decode(await self._request("POST", url, payload), url)

    def _decode(
        self,
        body: str,
        url: str,
        parse_float: Optional[Callable[[str], Any]] = None,
    ) -> Any:
        try:
            return json.loads(body, parse_float=parse_float)
        except ValueError as e:
            raise ParseError(
                message=f"Invalid JSON from {mask_url(url)}",
                raw_data=body,
                original_error=e,
            )

    async def _request(
        self,
        method: str,
        url: str,
        payload: Optional[Any] = None,
    ) -> str:
        """
        Send with retry.

        ConnectionFailedError and RateLimitError are retried within the
        same attempt budget; a 429 waits for Retry-After when the server
        sends one. Everything else propagates on the first failure.
        """
        max_attempts = max(1, self._config.max_retries)
        delay = self.BACKOFF_INITIAL

        for attempt in range(1, max_attempts + 1):
            waited = await self._bucket.acquire()
            if waited:
                logger.debug(f"[{self.name}] Throttled {waited:.3f}s")

            try:
                return await self._send(method, url, payload)
            except (ConnectionFailedError, RateLimitError) as e:
                if attempt >= max_attempts:
                    logger.warning(
                        f"[{self.name}] Giving up after {attempt} attempts: {e}"
                    )
                    raise
                wait = delay
                if isinstance(e, RateLimitError) and e.retry_after_seconds:
                    wait = max(delay, float(e.retry_after_seconds))
                wait = min(wait, self.BACKOFF_MAX)
                logger.warning(
                    f"[{self.name}] Retry {attempt}/{max_attempts - 1} "
                    f"in {wait:.1f}s: {e}"
                )
                await asyncio.sleep(wait)
                delay = min(delay * 2, self.BACKOFF_MAX)

    async def _send(
        self,
        method: str,
        url: str,
        payload: Optional[Any],
    ) -> str:
        session = await self._get_session()
        safe_url = mask_url(url)
        logger.debug(f"[{self.name}] {method} {safe_url}")

        try:
            async with session.request(method, url, json=payload) as response:
                if response.status == 429:
                    raise RateLimitError(
                        message=f"Rate limit exceeded for {self.name}",
                        retry_after_seconds=_parse_retry_after(
                            response.headers.get("Retry-After")
                        ),
                        context={"url": safe_url},
                    )

                body = await response.text()
                if not 200 <= response.status < 300:
                    raise ApiError(
                        message=f"HTTP {response.status}: {body[:self.MAX_ERROR_BODY]}",
                        status_code=response.status,
                        response_body=body[:self.MAX_ERROR_BODY],
                        request_url=safe_url,
                    )
                return body

        except asyncio.TimeoutError as e:
            raise FetchTimeoutError(
                message=f"Request timed out after {self._config.timeout_seconds}s",
                request_url=safe_url,
                original_error=e,
            )
        except aiohttp.ClientError as e:
            raise HttpError(
                message=f"Connection error: {e}",
                request_url=safe_url,
                original_error=e,
            )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds),
                headers={
                    "Accept": "application/json",
                    "User-Agent": "chain-adapters/1.0",
                },
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "RateLimitedFetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return (
            f"<RateLimitedFetcher(name={self.name}, rate={self.rate_limit}/s, "
            f"turbo={self.is_turbo_mode})>"
        )


def _parse_retry_after(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class FetcherRegistry:
    """
    Named fetchers shared between clients.

    Clients that draw on the same upstream budget (one API key used by
    several networks) share one fetcher and therefore one token bucket.
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None) -> None:
        self._fetchers: dict[str, RateLimitedFetcher] = {}
        self._session = session

    def register(self, name: str, config: FetcherConfig) -> RateLimitedFetcher:
        """Create a fetcher under name, replacing any previous one."""
        if name in self._fetchers:
            logger.warning(f"Fetcher '{name}' already registered, replacing")
        fetcher = RateLimitedFetcher(config, name=name, session=self._session)
        self._fetchers[name] = fetcher
        logger.info(
            f"Registered fetcher '{name}' at {config.requests_per_second}/s"
            f"{' (turbo)' if config.api_key else ''}"
        )
        return fetcher

    def get(self, name: str) -> Optional[RateLimitedFetcher]:
        return self._fetchers.get(name)

    def get_or_create(self, name: str, config: FetcherConfig) -> RateLimitedFetcher:
        fetcher = self._fetchers.get(name)
        if fetcher is None:
            fetcher = self.register(name, config)
        return fetcher

    async def remove(self, name: str) -> Optional[RateLimitedFetcher]:
        fetcher = self._fetchers.pop(name, None)
        if fetcher is not None:
            await fetcher.close()
            logger.info(f"Removed fetcher '{name}'")
        return fetcher

    async def reinit(self, name: str, config: FetcherConfig) -> RateLimitedFetcher:
        """Replace a fetcher, e.g. after its API key changed."""
        await self.remove(name)
        return self.register(name, config)

    def names(self) -> list[str]:
        return list(self._fetchers)

    def __contains__(self, name: str) -> bool:
        return name in self._fetchers

    async def close(self) -> None:
        for name in list(self._fetchers):
            await self.remove(name)
