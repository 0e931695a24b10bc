"""
Chain Manager - One entry point for every supported network.

Features:
- Lazy adapter construction from the NetworkCatalog, cached per chain
- One FetcherRegistry shared by all adapters, so chains behind the same
  provider key share one rate budget
- API keys injected at startup (ChainManagerConfig) or at runtime
  (set_api_key), never read from the environment
- Concurrent multi-chain queries returning a per-chain result or error
"""

import asyncio
import logging
from typing import Any, Optional, TypeVar, Union

import aiohttp

from chain_adapters.base import ChainAdapter
from chain_adapters.config import (
    ApiProvider,
    BitcoinNetworkConfig,
    ChainManagerConfig,
    EvmChainConfig,
    NetworkConfig,
    SolanaNetworkConfig,
    SubstrateChainConfig,
)
from chain_adapters.exceptions import (
    ChainAdapterError,
    InternalError,
    UnsupportedChainError,
)
from chain_adapters.fetcher import FetcherRegistry
from chain_adapters.models import ChainTransaction, NativeBalance
from chain_adapters.providers.bitcoin import BitcoinAdapter
from chain_adapters.providers.evm import EvmAdapter
from chain_adapters.providers.solana import SolanaAdapter
from chain_adapters.providers.substrate import SubstrateAdapter


logger = logging.getLogger(__name__)

T = TypeVar("T")
ChainResult = Union[T, ChainAdapterError]


class ChainManager:
    """
    Registry of chain adapters keyed by network name.

    Usage:
        config = ChainManagerConfig(api_keys={ApiProvider.ETHERSCAN: "..."})
        async with ChainManager(config) as manager:
            eth = manager.get("ethereum")
            balance = await eth.get_native_balance("0x...")

            results = await manager.get_native_balances(
                "0x...", ["ethereum", "polygon", "base"],
            )
            for chain, result in results.items():
                if isinstance(result, ChainAdapterError):
                    print(chain, "failed:", result)
    """

    def __init__(
        self,
        config: Optional[ChainManagerConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.config = config or ChainManagerConfig()
        self._fetchers = FetcherRegistry(session)
        self._adapters: dict[str, ChainAdapter] = {}

    @property
    def fetchers(self) -> FetcherRegistry:
        return self._fetchers

    # ─────────────────────────────────────────────────────────────
    # Registry
    # ─────────────────────────────────────────────────────────────

    def register(self, adapter: ChainAdapter) -> None:
        """Register a pre-built adapter, replacing any cached one."""
        name = adapter.name
        if name in self._adapters:
            logger.warning(f"Adapter '{name}' already registered, replacing")
        self._adapters[name] = adapter
        logger.info(f"Registered chain adapter '{name}'")

    def unregister(self, name: str) -> Optional[ChainAdapter]:
        adapter = self._adapters.pop(name, None)
        if adapter is not None:
            logger.info(f"Unregistered adapter '{name}'")
        return adapter

    def resolve(self, name: str) -> NetworkConfig:
        """Catalog entry for a name or alias. Raises UnsupportedChainError."""
        config = self.config.catalog.lookup(name)
        if config is None:
            raise UnsupportedChainError(
                message=f"Unsupported chain: {name}",
                supported_chains=self.list_chains(),
            )
        return config

    def get(self, name: str) -> ChainAdapter:
        """
        Adapter for a chain, built on first use and cached.

        Construction does no I/O, so concurrent callers always see the
        same instance.
        """
        key = name.strip().lower()
        adapter = self._adapters.get(key)
        if adapter is not None:
            return adapter

        config = self.resolve(key)
        adapter = self._adapters.get(config.name)
        if adapter is None:
            adapter = self._build(config)
            self._adapters[config.name] = adapter
            logger.info(f"Created {adapter.__class__.__name__} for '{config.name}'")
        return adapter

    def _build(self, config: NetworkConfig) -> ChainAdapter:
        cfg = self.config
        common: dict[str, Any] = {
            "fetchers": self._fetchers,
            "rate_limit": cfg.rate_limits.get(config.name),
            "timeout": cfg.timeout_seconds,
            "max_retries": cfg.max_retries,
        }

        if isinstance(config, BitcoinNetworkConfig):
            return BitcoinAdapter(
                config,
                base_url=cfg.base_urls.get(config.name),
                max_pages=cfg.default_max_pages,
                **common,
            )

        if isinstance(config, EvmChainConfig):
            return EvmAdapter(
                config,
                explorer_api_key=(
                    cfg.api_key_for(config.explorer_provider)
                    or cfg.explorer_api_keys.get(config.name)
                ),
                rpc_url=cfg.base_urls.get(config.name),
                **common,
            )

        if isinstance(config, SolanaNetworkConfig):
            return SolanaAdapter(
                config,
                helius_api_key=cfg.api_key_for(ApiProvider.HELIUS),
                rpc_url=cfg.base_urls.get(config.name),
                max_pages=cfg.default_max_pages,
                **common,
            )

        if isinstance(config, SubstrateChainConfig):
            return SubstrateAdapter(config, fetchers=self._fetchers)

        raise InternalError(f"No adapter for network config {config!r}")

    def list_chains(self) -> list[str]:
        """Catalog networks plus any manually registered adapters."""
        names = self.config.catalog.names()
        names.extend(name for name in self._adapters if name not in names)
        return names

    def cached_chains(self) -> list[str]:
        return list(self._adapters)

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def connect(self, name: str) -> ChainAdapter:
        adapter = self.get(name)
        await adapter.connect()
        return adapter

    async def disconnect_all(self) -> None:
        for adapter in list(self._adapters.values()):
            await adapter.disconnect()

    async def set_api_key(self, provider: ApiProvider, api_key: Optional[str]) -> list[str]:
        """
        Install (or clear) a provider key at runtime.

        Cached adapters using the provider are dropped and the provider's
        shared fetcher is removed, so the next use is rebuilt with the new
        key and rate. Returns the affected chain names.
        """
        if api_key:
            self.config.api_keys[provider] = api_key
        else:
            self.config.api_keys.pop(provider, None)

        affected = [
            name for name, adapter in self._adapters.items()
            if _uses_provider(adapter, provider)
        ]
        for name in affected:
            adapter = self._adapters.pop(name)
            await adapter.disconnect()

        await self._fetchers.remove(provider.value)
        logger.info(
            f"API key for {provider.display_name} "
            f"{'set' if api_key else 'cleared'}; reset {len(affected)} adapter(s)"
        )
        return affected

    async def close(self) -> None:
        await self.disconnect_all()
        await self._fetchers.close()

    async def __aenter__(self) -> "ChainManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ─────────────────────────────────────────────────────────────
    # Multi-chain Queries
    # ─────────────────────────────────────────────────────────────

    async def get_native_balances(
        self,
        address: str,
        chains: list[str],
    ) -> dict[str, ChainResult[NativeBalance]]:
        return await self._gather(
            chains,
            lambda adapter: adapter.get_native_balance(address),
        )

    async def get_all_transactions(
        self,
        address: str,
        chains: list[str],
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ) -> dict[str, ChainResult[list[ChainTransaction]]]:
        return await self._gather(
            chains,
            lambda adapter: adapter.get_transactions(address, from_block, to_block),
        )

    async def _gather(self, chains: list[str], operation) -> dict[str, Any]:
        """Run operation on every chain in parallel; one failure never hides the others."""
        async def _run(chain: str) -> Any:
            try:
                return await operation(self.get(chain))
            except ChainAdapterError as e:
                logger.warning(f"[{chain}] {e}")
                return e

        results = await asyncio.gather(*(_run(chain) for chain in chains))
        return dict(zip(chains, results))


def _uses_provider(adapter: ChainAdapter, provider: ApiProvider) -> bool:
    if isinstance(adapter, EvmAdapter):
        return adapter.config.explorer_provider is provider
    if isinstance(adapter, SolanaAdapter):
        return provider is ApiProvider.HELIUS
    return False
