"""
Base Chain Adapter - Uniform interface over every chain family.

All adapters MUST:
- Translate upstream failures into ChainAdapterError subclasses
- Return canonical records (ChainTransaction, NativeBalance, TokenBalance)
- Stay correct when one instance is used by concurrent callers
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Generic, Optional, TypeVar

from chain_adapters.exceptions import InvalidAddressError
from chain_adapters.fetcher import FetcherRegistry
from chain_adapters.models import (
    ChainId,
    ChainTransaction,
    NativeBalance,
    TokenBalance,
)


logger = logging.getLogger(__name__)

ClientsT = TypeVar("ClientsT")


class ChainAdapter(ABC, Generic[ClientsT]):
    """
    Abstract base class for all chain adapters.

    Each adapter must:
    1. Implement _create_clients() - Build its upstream clients
    2. Implement the data operations (balances, transactions)
    3. Implement validate_address() / format_address()

    Clients are built lazily on first use by a memoised constructor that
    runs at most once per connection, and released by disconnect().
    """

    def __init__(
        self,
        chain_id: ChainId,
        fetchers: Optional[FetcherRegistry] = None,
    ) -> None:
        self._chain_id = chain_id
        self._fetchers = fetchers or FetcherRegistry()
        self._owns_fetchers = fetchers is None
        self._clients: Optional[ClientsT] = None
        self._clients_lock = asyncio.Lock()
        self._connected = False

    @property
    def chain_id(self) -> ChainId:
        return self._chain_id

    @property
    def name(self) -> str:
        return self._chain_id.name

    @property
    def is_connected(self) -> bool:
        return self._connected

    # ─────────────────────────────────────────────────────────────
    # Client Lifecycle
    # ─────────────────────────────────────────────────────────────

    @abstractmethod
    def _create_clients(self) -> ClientsT:
        """Build the upstream clients for this adapter."""
        pass

    async def _get_clients(self) -> ClientsT:
        """Return the clients, constructing them exactly once."""
        clients = self._clients
        if clients is not None:
            return clients
        async with self._clients_lock:
            if self._clients is None:
                self._clients = self._create_clients()
                logger.debug(f"[{self.name}] Clients created")
            return self._clients

    async def connect(self) -> None:
        """Build clients and verify the upstream is reachable."""
        await self._get_clients()
        await self._verify_connection()
        self._connected = True
        logger.info(f"[{self.name}] Connected")

    async def _verify_connection(self) -> None:
        """Probe the upstream. Default: fetch the tip height."""
        await self.get_block_number()

    async def disconnect(self) -> None:
        """Drop clients; owned fetchers are closed."""
        async with self._clients_lock:
            self._clients = None
            if self._owns_fetchers:
                await self._fetchers.close()
        self._connected = False
        logger.info(f"[{self.name}] Disconnected")

    # ─────────────────────────────────────────────────────────────
    # Data Operations
    # ─────────────────────────────────────────────────────────────

    @abstractmethod
    async def get_block_number(self) -> int:
        """Current tip height (slot for slot-based chains)."""
        pass

    @abstractmethod
    async def get_native_balance(self, address: str) -> NativeBalance:
        pass

    @abstractmethod
    async def get_token_balances(self, address: str) -> list[TokenBalance]:
        pass

    @abstractmethod
    async def get_transactions(
        self,
        address: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ) -> list[ChainTransaction]:
        """
        Transaction history for an address, newest first.

        Raises on any mid-pagination failure; never returns a silently
        truncated list.
        """
        pass

    @abstractmethod
    async def get_transaction(self, tx_hash: str) -> ChainTransaction:
        pass

    @abstractmethod
    def validate_address(self, address: str) -> bool:
        """Pure check, no I/O."""
        pass

    @abstractmethod
    def format_address(self, address: str) -> str:
        """Canonical form of a valid address. Raises InvalidAddressError."""
        pass

    def _require_valid(self, address: str) -> str:
        address = address.strip()
        if not self.validate_address(address):
            raise InvalidAddressError(
                message=f"Invalid {self.name} address: {address!r}",
                address=address,
                chain=self.name,
            )
        return address

    def info(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "family": self._chain_id.family.value,
            "chain_id": self._chain_id.chain_id,
            "connected": self._connected,
        }

    async def close(self) -> None:
        await self.disconnect()

    async def __aenter__(self) -> "ChainAdapter":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, connected={self._connected})>"
