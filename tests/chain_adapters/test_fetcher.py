"""
Rate-Limited Fetcher Tests.

============================================================
PURPOSE
============================================================
Verify the shared HTTP transport used by every chain client.

TEST CATEGORIES:
- Token bucket: throughput bound, FIFO service, bad rates
- Error mapping: 429, non-2xx, timeouts, invalid JSON
- Retry: transport failures retried, upstream errors not retried
- URL helpers: parameters, API key injection and masking
- Registry: shared fetchers and reinitialisation

============================================================
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from chain_adapters.config import FetcherConfig
from chain_adapters.exceptions import (
    ApiError,
    ConfigurationError,
    FetchTimeoutError,
    HttpError,
    ParseError,
    RateLimitError,
)
from chain_adapters.fetcher import (
    FetcherRegistry,
    RateLimitedFetcher,
    TokenBucket,
    mask_url,
)


def _response(status: int = 200, body: str = "", headers: dict = None) -> MagicMock:
    """Async context manager yielding a fake aiohttp response."""
    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.text = AsyncMock(return_value=body)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    return context


def _session(*responses) -> MagicMock:
    session = MagicMock()
    session.closed = False
    session.request = MagicMock(side_effect=list(responses))
    return session


def _fetcher(session: MagicMock, **overrides) -> RateLimitedFetcher:
    config = FetcherConfig(
        base_url="https://api.example.com",
        requests_per_second=overrides.pop("requests_per_second", 100.0),
        **overrides,
    )
    return RateLimitedFetcher(config, name="test", session=session)


class FakeClock:
    """Manual clock; sleep advances time instead of waiting."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# ============================================================
# TOKEN BUCKET TESTS
# ============================================================

class TestTokenBucket:
    """Tests for TokenBucket."""

    @pytest.mark.asyncio
    async def test_burst_up_to_capacity_without_waiting(self):
        """Test that a full bucket admits `capacity` requests immediately."""
        clock = FakeClock()
        bucket = TokenBucket(5, clock=clock, sleep=clock.sleep)

        for _ in range(5):
            assert await bucket.acquire() == 0.0

        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_throughput_bounded_by_rate(self):
        """Test that N requests at rate r take at least (N - capacity) / r."""
        clock = FakeClock()
        bucket = TokenBucket(2, clock=clock, sleep=clock.sleep)

        for _ in range(10):
            await bucket.acquire()

        assert clock.now >= (10 - 2) / 2 - 1e-9

    @pytest.mark.asyncio
    async def test_fractional_rate_waits_between_requests(self):
        """Test that a 0.5 rps bucket spaces requests two seconds apart."""
        clock = FakeClock()
        bucket = TokenBucket(0.5, clock=clock, sleep=clock.sleep)

        await bucket.acquire()
        waited = await bucket.acquire()

        assert waited == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_concurrent_waiters_served_in_arrival_order(self):
        """Test FIFO service under concurrent callers."""
        clock = FakeClock()
        bucket = TokenBucket(1, clock=clock, sleep=clock.sleep)
        order: list[int] = []

        async def worker(i: int) -> None:
            await bucket.acquire()
            order.append(i)

        await asyncio.gather(*(worker(i) for i in range(5)))

        assert order == [0, 1, 2, 3, 4]

    def test_zero_rate_rejected(self):
        """Test that rate <= 0 is a configuration error."""
        with pytest.raises(ConfigurationError):
            TokenBucket(0)

        with pytest.raises(ConfigurationError):
            TokenBucket(-1)


# ============================================================
# ERROR MAPPING TESTS
# ============================================================

class TestErrorMapping:
    """Tests for HTTP status and transport error classification."""

    @pytest.mark.asyncio
    async def test_success_returns_body(self):
        """Test plain GET."""
        fetcher = _fetcher(_session(_response(200, "800000")))

        assert await fetcher.get("https://api.example.com/blocks/tip/height") == "800000"

    @pytest.mark.asyncio
    async def test_429_maps_to_rate_limit_error(self):
        """Test that a lone 429 raises RateLimitError with Retry-After."""
        session = _session(_response(429, "", {"Retry-After": "7"}))
        fetcher = _fetcher(session, max_retries=1)

        with pytest.raises(RateLimitError) as exc_info:
            await fetcher.get("https://api.example.com/x")

        assert exc_info.value.retry_after_seconds == 7
        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_non_2xx_maps_to_api_error_with_truncated_body(self):
        """Test that 500 raises ApiError carrying at most 500 body characters."""
        body = "x" * 2000
        session = _session(_response(500, body))
        fetcher = _fetcher(session)

        with pytest.raises(ApiError) as exc_info:
            await fetcher.get("https://api.example.com/x")

        assert exc_info.value.status_code == 500
        assert len(exc_info.value.response_body) == 500
        assert exc_info.value.message.startswith("HTTP 500: ")
        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_invalid_json_maps_to_parse_error(self):
        """Test that an undecodable body raises ParseError."""
        fetcher = _fetcher(_session(_response(200, "<html>")))

        with pytest.raises(ParseError):
            await fetcher.get_json("https://api.example.com/x")

    @pytest.mark.asyncio
    async def test_get_json_parse_float(self):
        """Test that parse_float reaches the JSON decoder."""
        fetcher = _fetcher(_session(_response(200, '{"tokenAmount": 123456789012.123456789}')))

        data = await fetcher.get_json("https://api.example.com/x", parse_float=Decimal)

        assert data["tokenAmount"] == Decimal("123456789012.123456789")

    @pytest.mark.asyncio
    async def test_post_json_sends_payload(self):
        """Test that post_json sends the payload as JSON."""
        session = _session(_response(200, '{"result": "0x1"}'))
        fetcher = _fetcher(session)

        data = await fetcher.post_json("https://rpc.example.com", {"method": "eth_chainId"})

        assert data == {"result": "0x1"}
        args, kwargs = session.request.call_args
        assert args == ("POST", "https://rpc.example.com")
        assert kwargs["json"] == {"method": "eth_chainId"}


# ============================================================
# RETRY TESTS
# ============================================================

class TestRetry:
    """Tests for bounded retry."""

    @pytest.mark.asyncio
    async def test_transport_failure_retried_then_succeeds(self):
        """Test that client errors are retried until success."""
        session = _session(
            aiohttp.ClientConnectionError("reset"),
            aiohttp.ClientConnectionError("reset"),
            _response(200, "ok"),
        )
        fetcher = _fetcher(session)

        with patch.object(RateLimitedFetcher, "BACKOFF_INITIAL", 0.0):
            assert await fetcher.get("https://api.example.com/x") == "ok"

        assert session.request.call_count == 3

    @pytest.mark.asyncio
    async def test_transport_failure_surfaces_after_max_retries(self):
        """Test that HttpError surfaces once attempts are exhausted."""
        session = _session(*[aiohttp.ClientConnectionError("down")] * 3)
        fetcher = _fetcher(session, max_retries=3)

        with patch.object(RateLimitedFetcher, "BACKOFF_INITIAL", 0.0):
            with pytest.raises(HttpError):
                await fetcher.get("https://api.example.com/x")

        assert session.request.call_count == 3

    @pytest.mark.asyncio
    async def test_timeout_maps_to_fetch_timeout_error(self):
        """Test that asyncio timeouts become FetchTimeoutError."""
        session = _session(asyncio.TimeoutError(), asyncio.TimeoutError())
        fetcher = _fetcher(session, max_retries=2)

        with patch.object(RateLimitedFetcher, "BACKOFF_INITIAL", 0.0):
            with pytest.raises(FetchTimeoutError):
                await fetcher.get("https://api.example.com/x")

    @pytest.mark.asyncio
    async def test_rate_limit_retried_after_retry_after(self):
        """Test that a 429 waits for Retry-After, then retries."""
        session = _session(
            _response(429, "", {"Retry-After": "2"}),
            _response(200, "ok"),
        )
        fetcher = _fetcher(session)
        sleep = AsyncMock()

        with patch("chain_adapters.fetcher.asyncio.sleep", sleep):
            assert await fetcher.get("https://api.example.com/x") == "ok"

        sleep.assert_awaited_once_with(2.0)
        assert session.request.call_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_surfaces_after_max_retries(self):
        """Test that RateLimitError surfaces once attempts are exhausted."""
        session = _session(*[_response(429, "", {"Retry-After": "60"}) for _ in range(3)])
        fetcher = _fetcher(session, max_retries=3)
        sleep = AsyncMock()

        with patch("chain_adapters.fetcher.asyncio.sleep", sleep):
            with pytest.raises(RateLimitError):
                await fetcher.get("https://api.example.com/x")

        assert session.request.call_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [
            RateLimitedFetcher.BACKOFF_MAX,
            RateLimitedFetcher.BACKOFF_MAX,
        ]

    @pytest.mark.asyncio
    async def test_api_error_not_retried(self):
        """Test that upstream error payloads are never retried."""
        session = _session(_response(400, "bad request"), _response(200, "ok"))
        fetcher = _fetcher(session)

        with pytest.raises(ApiError):
            await fetcher.get("https://api.example.com/x")

        assert session.request.call_count == 1


# ============================================================
# URL HELPER TESTS
# ============================================================

class TestUrlHelpers:
    """Tests for URL building and masking."""

    def test_build_url_joins_relative_path(self):
        """Test joining paths to the base URL."""
        fetcher = _fetcher(_session())

        assert fetcher.build_url("/address/abc") == "https://api.example.com/address/abc"

    def test_build_url_passes_absolute_url_through(self):
        """Test that absolute URLs are untouched."""
        fetcher = _fetcher(_session())

        assert fetcher.build_url("https://other.example.com/api") == "https://other.example.com/api"

    def test_build_url_with_params_adds_api_key_and_drops_none(self):
        """Test query building with an API key."""
        fetcher = _fetcher(_session(), api_key="SECRET")

        url = fetcher.build_url_with_params("api", {"module": "account", "page": None})

        assert url == "https://api.example.com/api?module=account&apikey=SECRET"
        assert fetcher.is_turbo_mode

    def test_mask_url_hides_keys(self):
        """Test that every key spelling is masked."""
        masked = mask_url("https://x.io/a?apikey=ABC&b=1&api-key=DEF")

        assert "ABC" not in masked
        assert "DEF" not in masked
        assert "b=1" in masked

    def test_update_rate_limit(self):
        """Test runtime rate changes and their validation."""
        fetcher = _fetcher(_session(), requests_per_second=1.0)

        fetcher.update_rate_limit(5.0)
        assert fetcher.rate_limit == 5.0

        with pytest.raises(ConfigurationError):
            fetcher.update_rate_limit(0)
        assert fetcher.rate_limit == 5.0


# ============================================================
# REGISTRY TESTS
# ============================================================

class TestFetcherRegistry:
    """Tests for FetcherRegistry."""

    def test_get_or_create_shares_instance(self):
        """Test that one name maps to one shared fetcher."""
        registry = FetcherRegistry()
        config = FetcherConfig(base_url="https://api.etherscan.io/api")

        first = registry.get_or_create("etherscan", config)
        second = registry.get_or_create("etherscan", config.with_rate_limit(5))

        assert first is second
        assert "etherscan" in registry

    @pytest.mark.asyncio
    async def test_reinit_replaces_fetcher(self):
        """Test that reinit installs a fresh fetcher with the new config."""
        registry = FetcherRegistry()
        old = registry.register("helius", FetcherConfig(base_url="https://api.helius.xyz/v0"))

        new = await registry.reinit(
            "helius",
            FetcherConfig(base_url="https://api.helius.xyz/v0", requests_per_second=30),
        )

        assert new is not old
        assert registry.get("helius") is new
        assert new.rate_limit == 30

    @pytest.mark.asyncio
    async def test_remove_and_close(self):
        """Test removal and bulk close."""
        registry = FetcherRegistry()
        registry.register("a", FetcherConfig(base_url="https://a.example.com"))
        registry.register("b", FetcherConfig(base_url="https://b.example.com"))

        assert await registry.remove("a") is not None
        assert await registry.remove("missing") is None

        await registry.close()
        assert registry.names() == []
