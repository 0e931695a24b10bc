"""
Chain Manager Tests.

============================================================
PURPOSE
============================================================
Verify adapter lookup, caching, runtime key changes and
multi-chain queries.

TEST CATEGORIES:
- Lazy, alias-aware adapter construction
- Unsupported chains
- Per-chain result-or-error maps
- Runtime API key changes
- Substrate stub behaviour

============================================================
"""

from unittest.mock import AsyncMock, patch

import pytest

from chain_adapters.config import ApiProvider, ChainManagerConfig, get_bitcoin_config
from chain_adapters.exceptions import (
    ChainAdapterError,
    HttpError,
    UnimplementedChainError,
    UnsupportedChainError,
)
from chain_adapters.manager import ChainManager
from chain_adapters.models import ChainFamily, NativeBalance
from chain_adapters.providers.bitcoin import BitcoinAdapter
from chain_adapters.providers.evm import EvmAdapter
from chain_adapters.providers.solana import SolanaAdapter
from chain_adapters.providers.substrate import SubstrateAdapter


EVM_WALLET = "0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed"
POLKADOT_ADDRESS = "15oF4uVJwmo4TdGW7VfQxNLavjCXviqxT9S1MgbjMNHr6Sp5"


# ============================================================
# LOOKUP TESTS
# ============================================================

class TestLookup:
    """Tests for ChainManager.get and friends."""

    def test_lazy_and_memoised(self):
        """Test that adapters are built on first use only."""
        manager = ChainManager()
        assert manager.cached_chains() == []

        first = manager.get("ethereum")
        second = manager.get("ethereum")

        assert first is second
        assert isinstance(first, EvmAdapter)
        assert manager.cached_chains() == ["ethereum"]

    def test_aliases_share_instance(self):
        """Test that aliases resolve to the canonical adapter."""
        manager = ChainManager()

        btc = manager.get("btc")

        assert btc is manager.get("bitcoin")
        assert btc is manager.get("BTC")
        assert isinstance(btc, BitcoinAdapter)
        assert manager.cached_chains() == ["bitcoin"]

    def test_family_dispatch(self):
        """Test adapter class per catalog family."""
        manager = ChainManager()

        assert manager.get("solana").chain_id.family is ChainFamily.ACCOUNT_ENRICHED
        assert manager.get("polygon").chain_id.chain_id == 137
        assert isinstance(manager.get("polkadot"), SubstrateAdapter)
        assert isinstance(manager.get("devnet"), SolanaAdapter)

    def test_unsupported_chain(self):
        """Test unknown names."""
        manager = ChainManager()

        with pytest.raises(UnsupportedChainError) as exc_info:
            manager.get("dogecoin")

        assert "ethereum" in exc_info.value.supported_chains
        assert "bitcoin" in exc_info.value.supported_chains

    def test_register_custom_adapter(self):
        """Test manual registration."""
        manager = ChainManager()
        adapter = BitcoinAdapter(get_bitcoin_config("signet"))

        manager.register(adapter)

        assert manager.get("bitcoin_signet") is adapter
        assert manager.unregister("bitcoin_signet") is adapter
        assert manager.unregister("bitcoin_signet") is None

    def test_shared_fetcher_registry(self):
        """Test that every built adapter draws on the manager's fetchers."""
        manager = ChainManager()

        assert manager.get("ethereum")._fetchers is manager.fetchers
        assert manager.get("bitcoin")._fetchers is manager.fetchers


# ============================================================
# MULTI-CHAIN TESTS
# ============================================================

class TestMultiChain:
    """Tests for concurrent queries."""

    @pytest.mark.asyncio
    async def test_native_balances_map_results_and_errors(self):
        """Test that one failing chain never hides the others."""
        manager = ChainManager()
        eth_balance = NativeBalance("ETH", 18, "10", "0.00000000000000001")

        eth = manager.get("ethereum")
        base = manager.get("base")
        with patch.object(eth, "get_native_balance", AsyncMock(return_value=eth_balance)), \
                patch.object(base, "get_native_balance", AsyncMock(side_effect=HttpError("down"))):
            results = await manager.get_native_balances(
                EVM_WALLET, ["ethereum", "base", "polkadot", "dogecoin"],
            )

        assert list(results) == ["ethereum", "base", "polkadot", "dogecoin"]
        assert results["ethereum"] is eth_balance
        assert isinstance(results["base"], HttpError)
        assert isinstance(results["polkadot"], UnimplementedChainError)
        assert isinstance(results["dogecoin"], UnsupportedChainError)

    @pytest.mark.asyncio
    async def test_all_transactions_passes_block_range(self):
        """Test argument forwarding."""
        manager = ChainManager()
        eth = manager.get("ethereum")

        with patch.object(eth, "get_transactions", AsyncMock(return_value=[])) as mocked:
            results = await manager.get_all_transactions(EVM_WALLET, ["ethereum"], 100, 200)

        assert results == {"ethereum": []}
        mocked.assert_awaited_once_with(EVM_WALLET, 100, 200)


# ============================================================
# API KEY TESTS
# ============================================================

class TestApiKeys:
    """Tests for startup and runtime key injection."""

    def test_startup_key_reaches_explorer(self):
        """Test keys from ChainManagerConfig."""
        manager = ChainManager(ChainManagerConfig(api_keys={ApiProvider.ETHERSCAN: "KEY"}))

        adapter = manager.get("ethereum")

        assert adapter._explorer_config.api_key == "KEY"
        assert adapter._explorer_config.requests_per_second == ApiProvider.ETHERSCAN.turbo_rate_limit

    @pytest.mark.asyncio
    async def test_set_api_key_drops_affected_adapters(self):
        """Test that only adapters on the provider are rebuilt."""
        manager = ChainManager()
        old_eth = manager.get("ethereum")
        manager.get("polygon")
        btc = manager.get("bitcoin")

        affected = await manager.set_api_key(ApiProvider.ETHERSCAN, "NEWKEY")

        assert affected == ["ethereum"]
        assert "ethereum" not in manager.cached_chains()
        assert manager.get("bitcoin") is btc

        new_eth = manager.get("ethereum")
        assert new_eth is not old_eth
        assert new_eth._explorer_config.api_key == "NEWKEY"

    @pytest.mark.asyncio
    async def test_helius_key_enables_enriched_api(self):
        """Test runtime Helius key installation and removal."""
        manager = ChainManager()
        assert not manager.get("solana").uses_enriched_api

        assert await manager.set_api_key(ApiProvider.HELIUS, "HKEY") == ["solana"]
        assert manager.get("solana").uses_enriched_api

        await manager.set_api_key(ApiProvider.HELIUS, None)
        assert ApiProvider.HELIUS not in manager.config.api_keys
        assert not manager.get("solana").uses_enriched_api

    @pytest.mark.asyncio
    async def test_close(self):
        """Test the async context manager."""
        async with ChainManager() as manager:
            manager.get("bitcoin")

        assert not manager.get("bitcoin").is_connected
        assert manager.fetchers.names() == []


# ============================================================
# SUBSTRATE TESTS
# ============================================================

class TestSubstrateStub:
    """Tests for the unimplemented Substrate family."""

    @pytest.mark.asyncio
    async def test_data_operations_raise(self):
        """Test that no operation returns fabricated empty data."""
        adapter = ChainManager().get("polkadot")

        for call in (
            adapter.get_block_number(),
            adapter.get_native_balance(POLKADOT_ADDRESS),
            adapter.get_token_balances(POLKADOT_ADDRESS),
            adapter.get_transactions(POLKADOT_ADDRESS),
            adapter.get_transaction("0x" + "ab" * 32),
        ):
            with pytest.raises(UnimplementedChainError):
                await call

    @pytest.mark.asyncio
    async def test_connect_and_addresses(self):
        """Test that lifecycle and address screening still work."""
        adapter = ChainManager().get("kusama")

        await adapter.connect()

        assert adapter.is_connected
        assert adapter.validate_address(POLKADOT_ADDRESS)
        assert not adapter.validate_address("short")
        assert adapter.format_address(POLKADOT_ADDRESS) == POLKADOT_ADDRESS

    def test_unimplemented_is_chain_adapter_error(self):
        """Test the error hierarchy."""
        assert issubclass(UnimplementedChainError, ChainAdapterError)
