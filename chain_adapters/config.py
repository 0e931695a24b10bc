"""
Chain Adapters - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the fetch layer, the per-family clients and the
chain manager.

Network tables are plain dataclasses gathered into a NetworkCatalog.
A ChainManagerConfig is built once at startup (from code, or from a
string mapping such as a loaded .env) and passed to the ChainManager.
Nothing in the package reads the process environment on its own.

============================================================
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping, Optional, Union

from chain_adapters.exceptions import ConfigurationError


# ============================================================
# API PROVIDERS
# ============================================================

class ApiProvider(Enum):
    """Keyed upstream APIs and their request budgets."""
    ETHERSCAN = "etherscan"
    POLYGONSCAN = "polygonscan"
    ARBISCAN = "arbiscan"
    BASESCAN = "basescan"
    OPTIMISM = "optimism"
    SUBSCAN = "subscan"
    COVALENT = "covalent"
    ALCHEMY = "alchemy"
    HELIUS = "helius"

    @property
    def display_name(self) -> str:
        return _PROVIDER_INFO[self][0]

    @property
    def default_rate_limit(self) -> int:
        """Requests per second without an API key."""
        return _PROVIDER_INFO[self][1]

    @property
    def turbo_rate_limit(self) -> int:
        """Requests per second with an API key."""
        return _PROVIDER_INFO[self][2]

    @property
    def key_name(self) -> str:
        """Name of the setting holding this provider's key."""
        return f"{self.value.upper()}_API_KEY"

    @classmethod
    def parse(cls, value: str) -> Optional["ApiProvider"]:
        """Case-insensitive lookup accepting common aliases."""
        return _PROVIDER_ALIASES.get(value.strip().lower())


_PROVIDER_INFO = {
    ApiProvider.ETHERSCAN: ("Etherscan", 1, 5),
    ApiProvider.POLYGONSCAN: ("Polygonscan", 1, 5),
    ApiProvider.ARBISCAN: ("Arbiscan", 1, 5),
    ApiProvider.BASESCAN: ("Basescan", 1, 5),
    ApiProvider.OPTIMISM: ("Optimistic Etherscan", 1, 5),
    ApiProvider.SUBSCAN: ("Subscan", 2, 10),
    ApiProvider.COVALENT: ("Covalent", 1, 5),
    ApiProvider.ALCHEMY: ("Alchemy", 2, 10),
    ApiProvider.HELIUS: ("Helius", 5, 30),
}

_PROVIDER_ALIASES = {
    "etherscan": ApiProvider.ETHERSCAN,
    "eth": ApiProvider.ETHERSCAN,
    "polygonscan": ApiProvider.POLYGONSCAN,
    "polygon": ApiProvider.POLYGONSCAN,
    "arbiscan": ApiProvider.ARBISCAN,
    "arbitrum": ApiProvider.ARBISCAN,
    "basescan": ApiProvider.BASESCAN,
    "base": ApiProvider.BASESCAN,
    "optimism": ApiProvider.OPTIMISM,
    "optimistic": ApiProvider.OPTIMISM,
    "subscan": ApiProvider.SUBSCAN,
    "covalent": ApiProvider.COVALENT,
    "alchemy": ApiProvider.ALCHEMY,
    "helius": ApiProvider.HELIUS,
}


# ============================================================
# FETCHER CONFIGURATION
# ============================================================

@dataclass(frozen=True)
class FetcherConfig:
    """
    Settings for one RateLimitedFetcher.

    requests_per_second must be positive; anything else is a
    ConfigurationError at construction.
    """

    base_url: str
    """Base URL relative paths are joined to."""

    api_key: Optional[str] = None
    """Appended as apikey=... by build_url_with_params."""

    requests_per_second: float = 1.0
    """Token bucket capacity and refill rate."""

    timeout_seconds: float = 30.0
    """Per-request timeout."""

    max_retries: int = 3
    """Attempts for transport failures and 429s."""

    def __post_init__(self) -> None:
        if self.requests_per_second <= 0:
            raise ConfigurationError(
                message=f"Rate limit must be > 0, got {self.requests_per_second}",
                config_key="requests_per_second",
            )

    @classmethod
    def for_provider(
        cls,
        provider: ApiProvider,
        base_url: str,
        api_key: Optional[str] = None,
    ) -> "FetcherConfig":
        """Pick the provider's turbo rate when a key is present."""
        rate = provider.turbo_rate_limit if api_key else provider.default_rate_limit
        return cls(base_url=base_url, api_key=api_key or None, requests_per_second=rate)

    def with_rate_limit(self, requests_per_second: float) -> "FetcherConfig":
        return replace(self, requests_per_second=requests_per_second)

    def with_timeout(self, timeout_seconds: float) -> "FetcherConfig":
        return replace(self, timeout_seconds=timeout_seconds)

    def with_max_retries(self, max_retries: int) -> "FetcherConfig":
        return replace(self, max_retries=max_retries)


# ============================================================
# NETWORK TABLES
# ============================================================

@dataclass(frozen=True)
class BitcoinNetworkConfig:
    """A UTXO network served by a mempool.space-compatible API."""
    name: str
    display_name: str
    symbol: str
    api_url: str
    aliases: tuple[str, ...] = ()
    decimals: int = 8
    is_testnet: bool = False
    requests_per_second: float = 10.0


@dataclass(frozen=True)
class EvmChainConfig:
    """An account chain served by JSON-RPC plus an Etherscan-style explorer."""
    chain_id: int
    name: str
    display_name: str
    symbol: str
    rpc_urls: tuple[str, ...] = ()
    explorer_url: Optional[str] = None
    explorer_api_url: Optional[str] = None
    explorer_provider: Optional[ApiProvider] = None
    decimals: int = 18
    is_testnet: bool = False
    rpc_requests_per_second: float = 10.0


@dataclass(frozen=True)
class SolanaNetworkConfig:
    """An account chain with an optional enriched API and a public RPC."""
    name: str
    display_name: str
    rpc_url: str
    aliases: tuple[str, ...] = ()
    symbol: str = "SOL"
    decimals: int = 9
    explorer_url: str = "https://solscan.io"
    is_testnet: bool = False
    rpc_requests_per_second: float = 2.0
    supports_enriched_api: bool = True


@dataclass(frozen=True)
class SubstrateChainConfig:
    """A Substrate network. Data access is not implemented yet."""
    name: str
    display_name: str
    symbol: str
    decimals: int
    rpc_url: str
    subscan_url: Optional[str] = None


def default_bitcoin_networks() -> list[BitcoinNetworkConfig]:
    return [
        BitcoinNetworkConfig(
            name="bitcoin",
            display_name="Bitcoin",
            symbol="BTC",
            api_url="https://mempool.space/api",
            aliases=("btc", "mainnet"),
        ),
        BitcoinNetworkConfig(
            name="bitcoin_testnet",
            display_name="Bitcoin Testnet",
            symbol="tBTC",
            api_url="https://mempool.space/testnet/api",
            aliases=("btc_testnet", "testnet"),
            is_testnet=True,
        ),
        BitcoinNetworkConfig(
            name="bitcoin_signet",
            display_name="Bitcoin Signet",
            symbol="sBTC",
            api_url="https://mempool.space/signet/api",
            aliases=("btc_signet", "signet"),
            is_testnet=True,
        ),
    ]


def default_evm_chains() -> list[EvmChainConfig]:
    return [
        EvmChainConfig(
            1, "ethereum", "Ethereum", "ETH",
            rpc_urls=("https://eth.llamarpc.com", "https://rpc.ankr.com/eth"),
            explorer_url="https://etherscan.io",
            explorer_api_url="https://api.etherscan.io/api",
            explorer_provider=ApiProvider.ETHERSCAN,
        ),
        EvmChainConfig(
            137, "polygon", "Polygon", "MATIC",
            rpc_urls=("https://polygon-rpc.com", "https://rpc.ankr.com/polygon"),
            explorer_url="https://polygonscan.com",
            explorer_api_url="https://api.polygonscan.com/api",
            explorer_provider=ApiProvider.POLYGONSCAN,
        ),
        EvmChainConfig(
            42161, "arbitrum", "Arbitrum One", "ETH",
            rpc_urls=("https://arb1.arbitrum.io/rpc", "https://rpc.ankr.com/arbitrum"),
            explorer_url="https://arbiscan.io",
            explorer_api_url="https://api.arbiscan.io/api",
            explorer_provider=ApiProvider.ARBISCAN,
        ),
        EvmChainConfig(
            10, "optimism", "Optimism", "ETH",
            rpc_urls=("https://mainnet.optimism.io", "https://rpc.ankr.com/optimism"),
            explorer_url="https://optimistic.etherscan.io",
            explorer_api_url="https://api-optimistic.etherscan.io/api",
            explorer_provider=ApiProvider.OPTIMISM,
        ),
        EvmChainConfig(
            8453, "base", "Base", "ETH",
            rpc_urls=("https://mainnet.base.org", "https://rpc.ankr.com/base"),
            explorer_url="https://basescan.org",
            explorer_api_url="https://api.basescan.org/api",
            explorer_provider=ApiProvider.BASESCAN,
        ),
        EvmChainConfig(
            43114, "avalanche", "Avalanche C-Chain", "AVAX",
            rpc_urls=("https://api.avax.network/ext/bc/C/rpc", "https://rpc.ankr.com/avalanche"),
            explorer_url="https://snowtrace.io",
            explorer_api_url="https://api.snowtrace.io/api",
        ),
        EvmChainConfig(
            56, "bsc", "BNB Smart Chain", "BNB",
            rpc_urls=("https://bsc-dataseed.binance.org", "https://rpc.ankr.com/bsc"),
            explorer_url="https://bscscan.com",
            explorer_api_url="https://api.bscscan.com/api",
        ),
        EvmChainConfig(
            1284, "moonbeam", "Moonbeam", "GLMR",
            rpc_urls=("https://rpc.api.moonbeam.network", "https://moonbeam.public.blastapi.io"),
            explorer_url="https://moonscan.io",
            explorer_api_url="https://api-moonbeam.moonscan.io/api",
        ),
        EvmChainConfig(
            1285, "moonriver", "Moonriver", "MOVR",
            rpc_urls=(
                "https://rpc.api.moonriver.moonbeam.network",
                "https://moonriver.public.blastapi.io",
            ),
            explorer_url="https://moonriver.moonscan.io",
            explorer_api_url="https://api-moonriver.moonscan.io/api",
        ),
        EvmChainConfig(
            592, "astar", "Astar", "ASTR",
            rpc_urls=("https://evm.astar.network", "https://astar.public.blastapi.io"),
            explorer_url="https://astar.subscan.io",
            explorer_api_url="https://astar.api.subscan.io",
            explorer_provider=ApiProvider.SUBSCAN,
        ),
        EvmChainConfig(
            100, "gnosis", "Gnosis Chain", "xDAI",
            rpc_urls=("https://rpc.gnosischain.com", "https://rpc.ankr.com/gnosis"),
            explorer_url="https://gnosisscan.io",
            explorer_api_url="https://api.gnosisscan.io/api",
        ),
        EvmChainConfig(
            250, "fantom", "Fantom", "FTM",
            rpc_urls=("https://rpc.ftm.tools", "https://rpc.ankr.com/fantom"),
            explorer_url="https://ftmscan.com",
            explorer_api_url="https://api.ftmscan.com/api",
        ),
        EvmChainConfig(
            324, "zksync", "zkSync Era", "ETH",
            rpc_urls=("https://mainnet.era.zksync.io",),
            explorer_url="https://explorer.zksync.io",
            explorer_api_url="https://block-explorer-api.mainnet.zksync.io/api",
        ),
        EvmChainConfig(
            59144, "linea", "Linea", "ETH",
            rpc_urls=("https://rpc.linea.build",),
            explorer_url="https://lineascan.build",
            explorer_api_url="https://api.lineascan.build/api",
        ),
        EvmChainConfig(
            534352, "scroll", "Scroll", "ETH",
            rpc_urls=("https://rpc.scroll.io",),
            explorer_url="https://scrollscan.com",
            explorer_api_url="https://api.scrollscan.com/api",
        ),
        # Testnets
        EvmChainConfig(
            11155111, "sepolia", "Sepolia", "ETH",
            rpc_urls=("https://rpc.sepolia.org", "https://rpc.ankr.com/eth_sepolia"),
            explorer_url="https://sepolia.etherscan.io",
            explorer_api_url="https://api-sepolia.etherscan.io/api",
            explorer_provider=ApiProvider.ETHERSCAN,
            is_testnet=True,
        ),
        EvmChainConfig(
            80001, "mumbai", "Polygon Mumbai", "MATIC",
            rpc_urls=("https://rpc-mumbai.maticvigil.com",),
            explorer_url="https://mumbai.polygonscan.com",
            explorer_api_url="https://api-testnet.polygonscan.com/api",
            explorer_provider=ApiProvider.POLYGONSCAN,
            is_testnet=True,
        ),
        EvmChainConfig(
            1287, "moonbase", "Moonbase Alpha", "DEV",
            rpc_urls=("https://rpc.api.moonbase.moonbeam.network",),
            explorer_url="https://moonbase.moonscan.io",
            explorer_api_url="https://api-moonbase.moonscan.io/api",
            is_testnet=True,
        ),
    ]


def default_solana_networks() -> list[SolanaNetworkConfig]:
    return [
        SolanaNetworkConfig(
            name="solana",
            display_name="Solana",
            rpc_url="https://api.mainnet-beta.solana.com",
            aliases=("sol", "solana_mainnet"),
        ),
        SolanaNetworkConfig(
            name="solana_devnet",
            display_name="Solana Devnet",
            rpc_url="https://api.devnet.solana.com",
            aliases=("sol_devnet", "devnet"),
            is_testnet=True,
            supports_enriched_api=False,
        ),
    ]


def default_substrate_chains() -> list[SubstrateChainConfig]:
    return [
        SubstrateChainConfig(
            "polkadot", "Polkadot", "DOT", 10,
            "wss://rpc.polkadot.io", "https://polkadot.api.subscan.io",
        ),
        SubstrateChainConfig(
            "kusama", "Kusama", "KSM", 12,
            "wss://kusama-rpc.polkadot.io", "https://kusama.api.subscan.io",
        ),
        SubstrateChainConfig(
            "westend", "Westend", "WND", 12,
            "wss://westend-rpc.polkadot.io", "https://westend.api.subscan.io",
        ),
        SubstrateChainConfig(
            "acala", "Acala", "ACA", 12,
            "wss://acala-rpc.aca-api.network", "https://acala.api.subscan.io",
        ),
        SubstrateChainConfig(
            "astar-substrate", "Astar (Substrate)", "ASTR", 18,
            "wss://rpc.astar.network", "https://astar.api.subscan.io",
        ),
    ]


def get_bitcoin_config(name: str) -> Optional[BitcoinNetworkConfig]:
    """Bitcoin network by name or alias ("btc", "testnet", ...)."""
    key = name.strip().lower()
    for config in default_bitcoin_networks():
        if config.name == key or key in config.aliases:
            return config
    return None


def get_evm_chain_config(name: str) -> Optional[EvmChainConfig]:
    key = name.strip().lower()
    for config in default_evm_chains():
        if config.name == key:
            return config
    return None


NetworkConfig = Union[
    BitcoinNetworkConfig, EvmChainConfig, SolanaNetworkConfig, SubstrateChainConfig,
]


@dataclass
class NetworkCatalog:
    """Every network the manager can build an adapter for."""
    bitcoin: list[BitcoinNetworkConfig] = field(default_factory=list)
    evm: list[EvmChainConfig] = field(default_factory=list)
    solana: list[SolanaNetworkConfig] = field(default_factory=list)
    substrate: list[SubstrateChainConfig] = field(default_factory=list)

    @classmethod
    def default(cls) -> "NetworkCatalog":
        return cls(
            bitcoin=default_bitcoin_networks(),
            evm=default_evm_chains(),
            solana=default_solana_networks(),
            substrate=default_substrate_chains(),
        )

    def lookup(self, name: str) -> Optional[NetworkConfig]:
        """Find a network by canonical name or alias (case-insensitive)."""
        key = name.strip().lower()
        for config in self.all():
            if config.name == key or key in getattr(config, "aliases", ()):
                return config
        return None

    def all(self) -> list[NetworkConfig]:
        return [*self.bitcoin, *self.evm, *self.solana, *self.substrate]

    def names(self) -> list[str]:
        return [config.name for config in self.all()]


# ============================================================
# MANAGER CONFIGURATION
# ============================================================

@dataclass
class ChainManagerConfig:
    """
    Startup configuration for ChainManager.

    api_keys: provider -> key. explorer_api_keys: chain name -> key for
    explorers without a known provider. rate_limits / base_urls: chain
    name -> override for that chain's primary data source.
    """

    catalog: NetworkCatalog = field(default_factory=NetworkCatalog.default)
    api_keys: dict[ApiProvider, str] = field(default_factory=dict)
    explorer_api_keys: dict[str, str] = field(default_factory=dict)
    rate_limits: dict[str, float] = field(default_factory=dict)
    base_urls: dict[str, str] = field(default_factory=dict)
    default_max_pages: int = 10
    timeout_seconds: float = 30.0
    max_retries: int = 3

    def __post_init__(self) -> None:
        for chain, rate in self.rate_limits.items():
            if rate <= 0:
                raise ConfigurationError(
                    message=f"Rate limit for {chain} must be > 0, got {rate}",
                    config_key=f"{chain.upper()}_RATE_LIMIT",
                    chain=chain,
                )
        if self.default_max_pages < 1:
            raise ConfigurationError(
                message="default_max_pages must be at least 1",
                config_key="default_max_pages",
            )

    def api_key_for(self, provider: Optional[ApiProvider]) -> Optional[str]:
        if provider is None:
            return None
        return self.api_keys.get(provider) or None

    @classmethod
    def from_mapping(
        cls,
        values: Mapping[str, str],
        catalog: Optional[NetworkCatalog] = None,
    ) -> "ChainManagerConfig":
        """
        Build a configuration from string settings.

        Recognised keys: <PROVIDER>_API_KEY for every ApiProvider,
        <CHAIN>_EXPLORER_API_KEY, <CHAIN>_RATE_LIMIT, <CHAIN>_BASE_URL
        and CHAIN_MAX_PAGES. Unknown keys are ignored.
        """
        catalog = catalog or NetworkCatalog.default()
        api_keys = {
            provider: values[provider.key_name]
            for provider in ApiProvider
            if values.get(provider.key_name)
        }

        explorer_api_keys: dict[str, str] = {}
        rate_limits: dict[str, float] = {}
        base_urls: dict[str, str] = {}
        for name in catalog.names():
            prefix = name.upper().replace("-", "_")
            if values.get(f"{prefix}_EXPLORER_API_KEY"):
                explorer_api_keys[name] = values[f"{prefix}_EXPLORER_API_KEY"]
            if values.get(f"{prefix}_BASE_URL"):
                base_urls[name] = values[f"{prefix}_BASE_URL"]
            raw_rate = values.get(f"{prefix}_RATE_LIMIT")
            if raw_rate:
                try:
                    rate_limits[name] = float(raw_rate)
                except ValueError as e:
                    raise ConfigurationError(
                        message=f"Invalid rate limit {raw_rate!r}",
                        config_key=f"{prefix}_RATE_LIMIT",
                        chain=name,
                        original_error=e,
                    )

        max_pages = values.get("CHAIN_MAX_PAGES")
        return cls(
            catalog=catalog,
            api_keys=api_keys,
            explorer_api_keys=explorer_api_keys,
            rate_limits=rate_limits,
            base_urls=base_urls,
            default_max_pages=int(max_pages) if max_pages else 10,
        )
