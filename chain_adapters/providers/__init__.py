"""
Providers package - Chain family adapters and their upstream clients.
"""

from chain_adapters.providers.bitcoin import BitcoinAdapter
from chain_adapters.providers.evm import EvmAdapter
from chain_adapters.providers.solana import SolanaAdapter
from chain_adapters.providers.substrate import SubstrateAdapter


__all__ = [
    "BitcoinAdapter",
    "EvmAdapter",
    "SolanaAdapter",
    "SubstrateAdapter",
]
