"""
Substrate Adapter - Stub for Polkadot-family chains.

Connection state and address screening work; every data operation
raises UnimplementedChainError rather than returning empty results.
"""

import logging
from typing import Optional

import base58

from chain_adapters.base import ChainAdapter
from chain_adapters.config import SubstrateChainConfig
from chain_adapters.exceptions import InvalidAddressError, UnimplementedChainError
from chain_adapters.fetcher import FetcherRegistry
from chain_adapters.models import (
    ChainId,
    ChainTransaction,
    NativeBalance,
    TokenBalance,
)


logger = logging.getLogger(__name__)

SS58_MIN_LENGTH = 47
SS58_MAX_LENGTH = 48


def validate_substrate_address(address: str) -> None:
    """SS58 length plus base58 alphabet. The SS58 checksum is not verified."""
    address = address.strip()
    if not SS58_MIN_LENGTH <= len(address) <= SS58_MAX_LENGTH:
        raise InvalidAddressError(
            f"Invalid SS58 address length: {len(address)}",
            address=address,
        )
    try:
        base58.b58decode(address)
    except ValueError as e:
        raise InvalidAddressError(
            "Invalid base58 encoding",
            address=address,
            original_error=e,
        )


class SubstrateAdapter(ChainAdapter[None]):
    """Placeholder adapter; see module docstring."""

    def __init__(
        self,
        config: SubstrateChainConfig,
        fetchers: Optional[FetcherRegistry] = None,
    ) -> None:
        super().__init__(ChainId.account_stub(config.name), fetchers)
        self.config = config

    def _create_clients(self) -> None:
        return None

    async def _verify_connection(self) -> None:
        logger.debug(f"[{self.name}] Stub adapter: no upstream to verify")

    def _unimplemented(self, operation: str) -> UnimplementedChainError:
        return UnimplementedChainError(
            message=f"{operation} is not implemented for {self.config.display_name}",
            chain=self.name,
        )

    async def get_block_number(self) -> int:
        raise self._unimplemented("get_block_number")

    async def get_native_balance(self, address: str) -> NativeBalance:
        raise self._unimplemented("get_native_balance")

    async def get_token_balances(self, address: str) -> list[TokenBalance]:
        raise self._unimplemented("get_token_balances")

    async def get_transactions(
        self,
        address: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ) -> list[ChainTransaction]:
        raise self._unimplemented("get_transactions")

    async def get_transaction(self, tx_hash: str) -> ChainTransaction:
        raise self._unimplemented("get_transaction")

    def validate_address(self, address: str) -> bool:
        try:
            validate_substrate_address(address)
        except InvalidAddressError:
            return False
        return True

    def format_address(self, address: str) -> str:
        return self._require_valid(address)
