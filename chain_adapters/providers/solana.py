"""
Solana Adapter - Enriched account chain with a plain RPC fallback.

With a Helius key (mainnet only) history and token balances come from
the enriched API: typed transactions with native and token transfers.
Without one the adapter degrades to standard JSON-RPC:
- history is the latest signatures only (fee 0, type UNKNOWN, no transfers)
- token balances come from SPL token accounts, without symbols

Degradation is silent by contract; callers accept reduced fidelity.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

import base58

from chain_adapters.base import ChainAdapter
from chain_adapters.config import ApiProvider, FetcherConfig, SolanaNetworkConfig
from chain_adapters.exceptions import (
    ConfigurationError,
    InvalidAddressError,
    TransactionNotFoundError,
)
from chain_adapters.fetcher import FetcherRegistry
from chain_adapters.models import (
    ChainId,
    ChainTransaction,
    NativeBalance,
    TokenBalance,
    TokenTransfer,
    TransactionStatus,
    TransactionType,
    format_units,
)
from chain_adapters.providers.helius import (
    FUNGIBLE_INTERFACES,
    REST_BASE,
    HeliusClient,
    HeliusTransaction,
    classify_helius_type,
)
from chain_adapters.providers.solana_rpc import SolanaRpcClient


logger = logging.getLogger(__name__)

LAMPORTS_DECIMALS = 9


def validate_solana_address(address: str) -> None:
    """Raises InvalidAddressError unless address is base58 of a 32-byte key."""
    address = address.strip()
    if not address:
        raise InvalidAddressError("Address is empty", address=address)

    if not 32 <= len(address) <= 44:
        raise InvalidAddressError(
            f"Invalid Solana address length: {len(address)} (expected 32-44 characters)",
            address=address,
        )

    try:
        decoded = base58.b58decode(address)
    except ValueError as e:
        raise InvalidAddressError(
            "Invalid base58 encoding",
            address=address,
            original_error=e,
        )

    if len(decoded) != 32:
        raise InvalidAddressError(
            f"Invalid Solana address: decoded to {len(decoded)} bytes (expected 32)",
            address=address,
        )


def format_sol(lamports: int) -> str:
    """Lamports as a fixed 9-decimal SOL string."""
    return format_units(lamports, LAMPORTS_DECIMALS, fixed=True)


def format_token_balance(raw: str, decimals: int) -> str:
    """Raw token amount in display units, trailing zeros trimmed ("1.5", "1.0")."""
    if decimals == 0:
        return raw
    return format_units(int(raw or 0), decimals)


def _format_ui_amount(amount: Decimal) -> str:
    return format(amount, "f")


@dataclass
class SolanaClients:
    rpc: SolanaRpcClient
    helius: Optional[HeliusClient]


class SolanaAdapter(ChainAdapter[SolanaClients]):
    """
    Usage:
        config = NetworkCatalog.default().lookup("solana")
        async with SolanaAdapter(config, helius_api_key="...") as sol:
            txs = await sol.get_transactions("9WzDX...")
    """

    DEFAULT_MAX_PAGES = 10

    def __init__(
        self,
        config: SolanaNetworkConfig,
        fetchers: Optional[FetcherRegistry] = None,
        helius_api_key: Optional[str] = None,
        rpc_url: Optional[str] = None,
        rate_limit: Optional[float] = None,
        max_pages: Optional[int] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
    ) -> None:
        super().__init__(ChainId.account_enriched(config.name), fetchers)
        self.config = config
        self._rpc_url = rpc_url or config.rpc_url
        rate = config.rpc_requests_per_second if rate_limit is None else rate_limit
        self._rpc_config = FetcherConfig(
            base_url=self._rpc_url,
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

        self._helius_api_key = helius_api_key or None
        if self._helius_api_key and not config.supports_enriched_api:
            logger.info(f"[{self.name}] Enriched API not available here, using RPC only")
            self._helius_api_key = None
        self._helius_config = FetcherConfig(
            base_url=REST_BASE,
            requests_per_second=ApiProvider.HELIUS.turbo_rate_limit,
            timeout_seconds=timeout,
            max_retries=max_retries,
        )

    @property
    def uses_enriched_api(self) -> bool:
        return self._helius_api_key is not None

    def _create_clients(self) -> SolanaClients:
        rpc_fetcher = self._fetchers.get_or_create(f"{self.name}:rpc", self._rpc_config)
        rpc = SolanaRpcClient(rpc_fetcher, self._rpc_url, self.name)

        helius = None
        if self._helius_api_key:
            helius_fetcher = self._fetchers.get_or_create(
                ApiProvider.HELIUS.value, self._helius_config,
            )
            helius = HeliusClient(helius_fetcher, self._helius_api_key, self.name)
        return SolanaClients(rpc=rpc, helius=helius)

    # ─────────────────────────────────────────────────────────────
    # Data Operations
    # ─────────────────────────────────────────────────────────────

    async def get_block_number(self) -> int:
        """Current slot."""
        clients = await self._get_clients()
        return await clients.rpc.get_slot()

    async def get_native_balance(self, address: str) -> NativeBalance:
        address = self._require_valid(address)
        clients = await self._get_clients()
        if clients.helius is not None:
            lamports = await clients.helius.get_balance(address)
        else:
            lamports = await clients.rpc.get_balance(address)
        return NativeBalance(
            symbol=self.config.symbol,
            decimals=self.config.decimals,
            balance=str(lamports),
            balance_formatted=format_sol(lamports),
        )

    async def get_token_balances(self, address: str) -> list[TokenBalance]:
        address = self._require_valid(address)
        clients = await self._get_clients()

        if clients.helius is not None:
            assets = await clients.helius.get_assets_by_owner(address)
            return [
                balance for balance in (_asset_to_balance(a) for a in assets)
                if balance is not None
            ]

        accounts = await clients.rpc.get_token_accounts_by_owner(address)
        balances = []
        for info in accounts:
            amount = info.get("tokenAmount") or {}
            raw = str(amount.get("amount", "0"))
            decimals = int(amount.get("decimals") or 0)
            balances.append(TokenBalance(
                token_address=info.get("mint", ""),
                decimals=decimals,
                balance=raw,
                balance_formatted=amount.get("uiAmountString") or format_token_balance(raw, decimals),
            ))
        return balances

    async def get_transactions(
        self,
        address: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ) -> list[ChainTransaction]:
        """History newest first; the block range filters on slot."""
        address = self._require_valid(address)
        clients = await self._get_clients()

        if clients.helius is not None:
            raw = await clients.helius.get_all_transactions(address, max_pages=self._max_pages)
            transactions = [self.normalize_transaction(tx, address) for tx in raw]
        else:
            signatures = await clients.rpc.get_signatures_for_address(address)
            transactions = [self._signature_to_transaction(sig) for sig in signatures]
            logger.debug(
                f"[{self.name}] RPC fallback: {len(transactions)} signatures for {address}"
            )

        return [
            tx for tx in transactions
            if (from_block is None or tx.block_number >= from_block)
            and (to_block is None or tx.block_number <= to_block)
        ]

    async def get_transaction(self, tx_hash: str) -> ChainTransaction:
        """One transaction by signature via RPC, with minimal metadata."""
        clients = await self._get_clients()
        signature = tx_hash.strip()
        raw = await clients.rpc.get_transaction(signature)
        if not raw:
            raise TransactionNotFoundError(
                message=f"Transaction not found: {signature}",
                chain=self.name,
            )

        meta = raw.get("meta") or {}
        return ChainTransaction(
            hash=signature,
            chain_id=self.chain_id,
            block_number=int(raw.get("slot") or 0),
            timestamp=int(raw.get("blockTime") or 0),
            from_address="",
            to_address=None,
            value="0",
            fee=str(int(meta.get("fee") or 0)),
            status=(
                TransactionStatus.FAILED if meta.get("err") is not None
                else TransactionStatus.SUCCESS
            ),
            tx_type=TransactionType.UNKNOWN,
            raw_data=raw,
        )

    def validate_address(self, address: str) -> bool:
        try:
            validate_solana_address(address)
        except InvalidAddressError:
            return False
        return True

    def format_address(self, address: str) -> str:
        return self._require_valid(address)

    # ─────────────────────────────────────────────────────────────
    # Normalization
    # ─────────────────────────────────────────────────────────────

    def normalize_transaction(self, tx: HeliusTransaction, for_address: str) -> ChainTransaction:
        if tx.native_transfers:
            first = tx.native_transfers[0]
            from_address, to_address = first.from_address, first.to_address
        elif tx.token_transfers:
            first = tx.token_transfers[0]
            from_address, to_address = first.from_address, first.to_address
        else:
            from_address, to_address = tx.fee_payer, None

        value = sum(
            t.amount for t in tx.native_transfers
            if for_address in (t.from_address, t.to_address)
        )

        return ChainTransaction(
            hash=tx.signature,
            chain_id=self.chain_id,
            block_number=tx.slot,
            timestamp=tx.timestamp,
            from_address=from_address,
            to_address=to_address,
            value=str(value),
            fee=str(tx.fee),
            status=TransactionStatus.FAILED if tx.failed else TransactionStatus.SUCCESS,
            tx_type=classify_helius_type(tx.tx_type),
            token_transfers=[
                TokenTransfer(
                    token_address=t.mint,
                    from_address=t.from_address,
                    to_address=t.to_address,
                    value=_format_ui_amount(t.amount),
                )
                for t in tx.token_transfers
            ],
        )

    def _signature_to_transaction(self, sig: dict[str, Any]) -> ChainTransaction:
        return ChainTransaction(
            hash=sig.get("signature", ""),
            chain_id=self.chain_id,
            block_number=int(sig.get("slot") or 0),
            timestamp=int(sig.get("blockTime") or 0),
            from_address="",
            to_address=None,
            value="0",
            fee="0",
            status=(
                TransactionStatus.FAILED if sig.get("err") is not None
                else TransactionStatus.SUCCESS
            ),
            tx_type=TransactionType.UNKNOWN,
        )


def _asset_to_balance(asset: dict[str, Any]) -> Optional[TokenBalance]:
    """Fungible DAS asset -> TokenBalance; anything else -> None."""
    if asset.get("interface") not in FUNGIBLE_INTERFACES:
        return None
    token_info = asset.get("token_info")
    if not token_info:
        return None

    metadata = (asset.get("content") or {}).get("metadata") or {}
    raw = str(token_info.get("balance", "0"))
    decimals = int(token_info.get("decimals") or 0)
    return TokenBalance(
        token_address=asset.get("id", ""),
        decimals=decimals,
        balance=raw,
        balance_formatted=format_token_balance(raw, decimals),
        symbol=token_info.get("symbol") or metadata.get("symbol") or None,
        name=metadata.get("name") or None,
    )
