"""
Live check for the chain adapters.

Demonstrates:
- Building ChainManagerConfig from .env settings
- Tip heights across families
- Multi-chain native balances with per-chain errors
- Watch-only address derivation from an extended public key

Usage:
    python scripts/check_chains.py [evm_address] [xpub]
"""

import asyncio
import logging
import os
import sys
from dotenv import load_dotenv

from chain_adapters import (
    ChainAdapterError,
    ChainManager,
    ChainManagerConfig,
    derive_addresses,
    parse_xpub,
)


# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-5s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

DEFAULT_EVM_ADDRESS = "0xd8dA6BF26964aF9D7eed9e10160b9Ba8A9C02C4e"
DEFAULT_XPUB = (
    "zpub6rFR7y4Q2AijBEqTUquhVz398htDFrtymD9xYYfG1m4wAcvPhXNfE3EfH1r1ADqtfSdVCToUG868RvUUkgDKf31mGDtKsAYz2oz2AGutZYs"
)

TIP_CHAINS = ["bitcoin", "ethereum", "polygon", "solana"]
BALANCE_CHAINS = ["ethereum", "polygon", "arbitrum", "base", "polkadot"]


def print_banner(text: str) -> None:
    """Print a banner."""
    print("\n" + "=" * 60)
    print(f"  {text}")
    print("=" * 60)


async def check_tips(manager: ChainManager) -> None:
    print_banner("TIP HEIGHTS")
    for chain in TIP_CHAINS:
        adapter = manager.get(chain)
        try:
            height = await adapter.get_block_number()
            print(f"  [OK] {chain}: {height:,}")
        except ChainAdapterError as e:
            print(f"  [FAIL] {chain}: {e}")


async def check_balances(manager: ChainManager, address: str) -> None:
    print_banner(f"NATIVE BALANCES: {address}")
    results = await manager.get_native_balances(address, BALANCE_CHAINS)
    for chain, result in results.items():
        if isinstance(result, ChainAdapterError):
            print(f"  [FAIL] {chain}: {result.__class__.__name__}: {result.message}")
        else:
            print(f"  [OK] {chain}: {result.balance_formatted} {result.symbol}")


def check_xpub(xpub: str) -> None:
    print_banner("EXTENDED PUBLIC KEY")
    info = parse_xpub(xpub)
    print(f"  Type: {info.address_type.display_name}")
    print(f"  Testnet: {info.is_testnet}")
    print(f"  Fingerprint: {info.fingerprint}")

    portfolio = derive_addresses(xpub, receiving_count=3, change_count=1)
    for derived in portfolio.receiving_addresses + portfolio.change_addresses:
        print(f"  {derived.derivation_path:>5}  {derived.address}")


async def main() -> int:
    address = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_EVM_ADDRESS
    xpub = sys.argv[2] if len(sys.argv) > 2 else DEFAULT_XPUB

    config = ChainManagerConfig.from_mapping(os.environ)
    configured = [p.display_name for p in config.api_keys]
    logger.info(f"API keys configured: {configured or 'none'}")

    async with ChainManager(config) as manager:
        await check_tips(manager)
        await check_balances(manager, address)

    check_xpub(xpub)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
