"""
Bitcoin Adapter - UTXO family over a mempool.space-compatible API.

Supported networks:
- bitcoin (mainnet)
- bitcoin_testnet
- bitcoin_signet

Direction is decided by address membership: an address found among the
inputs is outgoing, among the outputs incoming. A pure receive is valued
at the outputs paid to the address; anything outgoing is valued at the
total output of the transaction (change is not netted out).
"""

import logging
from typing import Optional

from chain_adapters.base import ChainAdapter
from chain_adapters.config import BitcoinNetworkConfig, FetcherConfig
from chain_adapters.exceptions import ConfigurationError, InvalidAddressError
from chain_adapters.fetcher import FetcherRegistry
from chain_adapters.models import (
    ChainId,
    ChainTransaction,
    NativeBalance,
    TokenBalance,
    TransactionStatus,
    TransactionType,
    format_units,
)
from chain_adapters.providers.mempool import (
    BitcoinBalance,
    BitcoinTransaction,
    MempoolClient,
    Utxo,
)


logger = logging.getLogger(__name__)


def validate_bitcoin_address(address: str) -> None:
    """
    Prefix and length check for Bitcoin addresses.

    Raises InvalidAddressError. Checksums are verified upstream by the
    explorer, which rejects unknown addresses.
    """
    address = address.strip()
    if not address:
        raise InvalidAddressError("Address cannot be empty", address=address)

    length = len(address)
    if length < 26 or length > 90:
        raise InvalidAddressError(
            f"Invalid address length: {length}",
            address=address,
        )

    lowered = address.lower()
    if lowered.startswith("bc1q"):
        valid = length in (42, 62)
    elif lowered.startswith("bc1p"):
        valid = length == 62
    elif lowered.startswith("tb1"):
        valid = 42 <= length <= 62
    elif address[0] == "1" or address[0] in "mn":
        valid = 26 <= length <= 35
    elif address[0] in "32":
        valid = 34 <= length <= 35
    else:
        raise InvalidAddressError(
            f"Unknown address prefix: {address[:4]}",
            address=address,
        )

    if not valid:
        raise InvalidAddressError(
            f"Invalid length {length} for address prefix {address[:4]}",
            address=address,
        )


def format_btc(satoshis: int) -> str:
    """Satoshis as a fixed 8-decimal BTC string."""
    return format_units(satoshis, 8, fixed=True)


class BitcoinAdapter(ChainAdapter[MempoolClient]):
    """
    UTXO chain adapter.

    Usage:
        async with BitcoinAdapter(NetworkCatalog.default().lookup("btc")) as btc:
            balance = await btc.get_native_balance("bc1q...")
    """

    DEFAULT_MAX_PAGES = 10

    def __init__(
        self,
        config: BitcoinNetworkConfig,
        fetchers: Optional[FetcherRegistry] = None,
        base_url: Optional[str] = None,
        rate_limit: Optional[float] = None,
        max_pages: Optional[int] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
    ) -> None:
        super().__init__(ChainId.utxo(config.name), fetchers)
        self.config = config
        rate = config.requests_per_second if rate_limit is None else rate_limit
        self._fetcher_config = FetcherConfig(
            base_url=base_url or config.api_url,
            requests_per_second=rate,
            timeout_seconds=timeout,
            max_retries=max_retries,
        )
        self._max_pages = max_pages if max_pages is not None else self.DEFAULT_MAX_PAGES
        if self._max_pages < 1:
            raise ConfigurationError(
                message=f"max_pages must be at least 1, got {self._max_pages}",
                config_key="max_pages",
                chain=config.name,
            )

    def _create_clients(self) -> MempoolClient:
        fetcher = self._fetchers.get_or_create(f"{self.name}:mempool", self._fetcher_config)
        return MempoolClient(fetcher, self.name)

    # ─────────────────────────────────────────────────────────────
    # Data Operations
    # ─────────────────────────────────────────────────────────────

    async def get_block_number(self) -> int:
        client = await self._get_clients()
        return await client.get_block_height()

    async def get_bitcoin_balance(self, address: str) -> BitcoinBalance:
        """Full balance breakdown (confirmed, unconfirmed, totals)."""
        address = self._require_valid(address)
        client = await self._get_clients()
        return await client.get_balance(address)

    async def get_native_balance(self, address: str) -> NativeBalance:
        balance = await self.get_bitcoin_balance(address)
        return NativeBalance(
            symbol=self.config.symbol,
            decimals=self.config.decimals,
            balance=str(balance.balance),
            balance_formatted=format_btc(balance.balance),
        )

    async def get_utxos(self, address: str) -> list[Utxo]:
        address = self._require_valid(address)
        client = await self._get_clients()
        return await client.get_utxos(address)

    async def get_token_balances(self, address: str) -> list[TokenBalance]:
        self._require_valid(address)
        return []

    async def get_transactions(
        self,
        address: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ) -> list[ChainTransaction]:
        address = self._require_valid(address)
        client = await self._get_clients()

        current_height = await client.get_block_height()
        raw = await client.get_all_transactions(
            address,
            max_pages=self._max_pages,
            current_height=current_height,
        )

        transactions = [
            self.normalize_transaction(tx, address)
            for tx in raw
            if _in_block_range(tx.block_height, from_block, to_block)
        ]
        logger.debug(
            f"[{self.name}] {len(transactions)} transactions for {address}"
        )
        return transactions

    async def get_transaction(self, tx_hash: str) -> ChainTransaction:
        client = await self._get_clients()
        current_height = await client.get_block_height()
        tx = await client.get_transaction(tx_hash.strip(), current_height)
        return self.normalize_transaction(tx, "")

    def validate_address(self, address: str) -> bool:
        try:
            validate_bitcoin_address(address)
        except InvalidAddressError:
            return False
        return True

    def format_address(self, address: str) -> str:
        address = self._require_valid(address)
        if address.lower().startswith(("bc1", "tb1")):
            return address.lower()
        return address

    # ─────────────────────────────────────────────────────────────
    # Normalization
    # ─────────────────────────────────────────────────────────────

    def normalize_transaction(
        self,
        tx: BitcoinTransaction,
        for_address: str,
    ) -> ChainTransaction:
        is_incoming = any(o.address == for_address for o in tx.outputs)
        is_outgoing = any(i.address == for_address for i in tx.inputs)

        if is_incoming and not is_outgoing:
            value = sum(o.value for o in tx.outputs if o.address == for_address)
        else:
            value = tx.total_output

        from_address = tx.inputs[0].address if tx.inputs and tx.inputs[0].address else "coinbase"
        to_address = tx.outputs[0].address if tx.outputs else None

        return ChainTransaction(
            hash=tx.txid,
            chain_id=self.chain_id,
            block_number=tx.block_height or 0,
            timestamp=tx.timestamp or 0,
            from_address=from_address,
            to_address=to_address,
            value=str(value),
            fee=str(tx.fee),
            status=(
                TransactionStatus.SUCCESS if tx.confirmations > 0
                else TransactionStatus.PENDING
            ),
            tx_type=TransactionType.MINT if tx.is_coinbase else TransactionType.TRANSFER,
        )


def _in_block_range(
    height: Optional[int],
    from_block: Optional[int],
    to_block: Optional[int],
) -> bool:
    """Unconfirmed transactions sit above every block: kept unless to_block is set."""
    if height is None:
        return to_block is None
    if from_block is not None and height < from_block:
        return False
    if to_block is not None and height > to_block:
        return False
    return True
