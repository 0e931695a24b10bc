"""
Chain Adapters Package - Multi-chain wallet data acquisition.

Fetches balances and transaction history for Bitcoin, EVM chains and
Solana, and normalizes every source into one transaction model.

Features:
- Rate-limited, retrying HTTP transport shared per API key
- One adapter interface across UTXO, JSON-RPC + explorer, and enriched APIs
- Calldata-based transaction classification for EVM chains
- Watch-only address derivation from xpub/ypub/zpub keys

Quick Start:
    from chain_adapters import (
        ApiProvider,
        ChainAdapterError,
        ChainManager,
        ChainManagerConfig,
    )

    async def portfolio(address: str):
        config = ChainManagerConfig(api_keys={ApiProvider.ETHERSCAN: "..."})
        async with ChainManager(config) as manager:
            results = await manager.get_all_transactions(
                address, ["ethereum", "polygon", "base"],
            )
            for chain, txs in results.items():
                if isinstance(txs, ChainAdapterError):
                    print(f"{chain}: {txs}")
                    continue
                for tx in txs:
                    print(chain, tx.hash, tx.tx_type.value, tx.value)

Extended Public Keys:
    from chain_adapters import derive_addresses

    portfolio = derive_addresses("zpub6r...", receiving_count=20, change_count=5)
    addresses = portfolio.all_addresses()

Adding New Chain Families:
    class NewAdapter(ChainAdapter[NewClient]):
        def _create_clients(self): ...
        async def get_block_number(self): ...
        async def get_native_balance(self, address): ...
        async def get_token_balances(self, address): ...
        async def get_transactions(self, address, from_block=None, to_block=None): ...
        async def get_transaction(self, tx_hash): ...
        def validate_address(self, address): ...
        def format_address(self, address): ...

    manager.register(NewAdapter(...))
"""

from chain_adapters.base import ChainAdapter
from chain_adapters.config import (
    ApiProvider,
    BitcoinNetworkConfig,
    ChainManagerConfig,
    EvmChainConfig,
    FetcherConfig,
    NetworkCatalog,
    SolanaNetworkConfig,
    SubstrateChainConfig,
    get_bitcoin_config,
    get_evm_chain_config,
)
from chain_adapters.exceptions import (
    ApiError,
    BlockNotFoundError,
    ChainAdapterError,
    ConfigurationError,
    ConnectionFailedError,
    FetchTimeoutError,
    HttpError,
    InternalError,
    InvalidAddressError,
    ParseError,
    RateLimitError,
    RpcError,
    TransactionNotFoundError,
    UnimplementedChainError,
    UnsupportedChainError,
)
from chain_adapters.fetcher import FetcherRegistry, RateLimitedFetcher, TokenBucket
from chain_adapters.manager import ChainManager
from chain_adapters.models import (
    AddressType,
    ChainFamily,
    ChainId,
    ChainTransaction,
    DerivedAddress,
    ExtendedKeyInfo,
    NativeBalance,
    TokenBalance,
    TokenTransfer,
    TransactionStatus,
    TransactionType,
    XpubPortfolio,
    format_units,
)
from chain_adapters.providers import (
    BitcoinAdapter,
    EvmAdapter,
    SolanaAdapter,
    SubstrateAdapter,
)
from chain_adapters.xpub import (
    derive_address,
    derive_addresses,
    get_xpub_address_type_name,
    is_xpub,
    parse_xpub,
)


__version__ = "1.0.0"

__all__ = [
    # Base
    "ChainAdapter",

    # Models
    "ChainFamily",
    "ChainId",
    "ChainTransaction",
    "TokenTransfer",
    "TransactionStatus",
    "TransactionType",
    "NativeBalance",
    "TokenBalance",
    "AddressType",
    "ExtendedKeyInfo",
    "DerivedAddress",
    "XpubPortfolio",
    "format_units",

    # Configuration
    "ApiProvider",
    "FetcherConfig",
    "BitcoinNetworkConfig",
    "EvmChainConfig",
    "SolanaNetworkConfig",
    "SubstrateChainConfig",
    "NetworkCatalog",
    "ChainManagerConfig",
    "get_bitcoin_config",
    "get_evm_chain_config",

    # Exceptions
    "ChainAdapterError",
    "InvalidAddressError",
    "UnsupportedChainError",
    "ConnectionFailedError",
    "HttpError",
    "FetchTimeoutError",
    "RateLimitError",
    "ApiError",
    "RpcError",
    "ParseError",
    "ConfigurationError",
    "TransactionNotFoundError",
    "BlockNotFoundError",
    "InternalError",
    "UnimplementedChainError",

    # Transport
    "TokenBucket",
    "RateLimitedFetcher",
    "FetcherRegistry",

    # Providers
    "BitcoinAdapter",
    "EvmAdapter",
    "SolanaAdapter",
    "SubstrateAdapter",

    # Manager
    "ChainManager",

    # Extended public keys
    "parse_xpub",
    "derive_address",
    "derive_addresses",
    "is_xpub",
    "get_xpub_address_type_name",
]
