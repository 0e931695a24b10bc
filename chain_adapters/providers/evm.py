"""
EVM Adapter - Account chains over JSON-RPC plus an Etherscan-style explorer.

RPC serves real-time reads (tip, balances, token metadata, receipts);
the explorer serves history. History is assembled from five explorer
lists, merged by transaction hash:
- normal transactions (base records)
- internal transactions (new hashes only, as CONTRACT_CALL with zero fee)
- ERC-20 transfers
- ERC-721 transfers (decimals 0, value = token id)
- ERC-1155 transfers (decimals 0, value = "id:amount")

A token transfer whose base transaction is missing becomes a zero-value
TRANSFER record carrying just that transfer.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from eth_utils import to_checksum_address

from chain_adapters.base import ChainAdapter
from chain_adapters.config import EvmChainConfig, FetcherConfig
from chain_adapters.exceptions import (
    ApiError,
    ConfigurationError,
    InvalidAddressError,
    ParseError,
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
)
from chain_adapters.providers.etherscan import EtherscanClient, parse_hex_int
from chain_adapters.providers.evm_classifier import classify_transaction
from chain_adapters.providers.evm_rpc import EvmRpcClient


logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

HISTORY_PAGE_SIZE = 1000
TOKEN_DISCOVERY_LIMIT = 100


def validate_evm_address(address: str) -> None:
    """Raises InvalidAddressError unless address is 0x + 40 hex chars."""
    if not _ADDRESS_RE.match(address.strip()):
        raise InvalidAddressError(
            message=f"Invalid EVM address: {address!r}",
            address=address,
        )


def checksum_address(address: str) -> str:
    """EIP-55 mixed-case form. Idempotent and case-insensitive on input."""
    validate_evm_address(address)
    return to_checksum_address(address.strip().lower())


def calculate_fee(gas_used: Any, gas_price: Any) -> str:
    """gasUsed * gasPrice in wei, as a decimal string."""
    return str(_to_int(gas_used) * _to_int(gas_price))


def _to_int(value: Any, default: int = 0) -> int:
    if value in (None, ""):
        return default
    if isinstance(value, int):
        return value
    text = str(value)
    try:
        return int(text, 16) if text.startswith("0x") else int(text)
    except ValueError as e:
        raise ParseError(
            message=f"Expected an integer, got {value!r}",
            raw_data=value,
            original_error=e,
        )


@dataclass
class EvmClients:
    rpc: EvmRpcClient
    explorer: Optional[EtherscanClient]


class EvmAdapter(ChainAdapter[EvmClients]):
    """
    Account-chain adapter for any EVM network.

    Usage:
        config = NetworkCatalog.default().lookup("ethereum")
        async with EvmAdapter(config, explorer_api_key="...") as eth:
            await eth.connect()
            txs = await eth.get_transactions("0x...")
    """

    def __init__(
        self,
        config: EvmChainConfig,
        fetchers: Optional[FetcherRegistry] = None,
        explorer_api_key: Optional[str] = None,
        rpc_url: Optional[str] = None,
        rate_limit: Optional[float] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
    ) -> None:
        super().__init__(ChainId.account_rpc(config.name, config.chain_id), fetchers)
        self.config = config

        rpc_url = rpc_url or (config.rpc_urls[0] if config.rpc_urls else None)
        if not rpc_url:
            raise ConfigurationError(
                message=f"No RPC URL configured for {config.name}",
                config_key="rpc_urls",
                chain=config.name,
            )
        self._rpc_url = rpc_url
        rate = config.rpc_requests_per_second if rate_limit is None else rate_limit
        self._rpc_config = FetcherConfig(
            base_url=rpc_url,
            requests_per_second=rate,
            timeout_seconds=timeout,
            max_retries=max_retries,
        )

        self._explorer_config: Optional[FetcherConfig] = None
        if config.explorer_api_url:
            if config.explorer_provider is not None:
                explorer_config = FetcherConfig.for_provider(
                    config.explorer_provider,
                    config.explorer_api_url,
                    explorer_api_key,
                )
            else:
                explorer_config = FetcherConfig(
                    base_url=config.explorer_api_url,
                    api_key=explorer_api_key or None,
                )
            self._explorer_config = explorer_config.with_timeout(timeout).with_max_retries(max_retries)

    @property
    def explorer_fetcher_name(self) -> str:
        """Registry key; chains behind one provider key share a fetcher."""
        if self.config.explorer_provider is not None:
            return self.config.explorer_provider.value
        return f"{self.name}:explorer"

    def _create_clients(self) -> EvmClients:
        rpc_fetcher = self._fetchers.get_or_create(f"{self.name}:rpc", self._rpc_config)
        rpc = EvmRpcClient(
            rpc_fetcher,
            self._rpc_url,
            self.name,
            symbol=self.config.symbol,
            decimals=self.config.decimals,
        )

        explorer = None
        if self._explorer_config is not None:
            explorer_fetcher = self._fetchers.get_or_create(
                self.explorer_fetcher_name, self._explorer_config,
            )
            explorer = EtherscanClient(explorer_fetcher, self.config.explorer_api_url, self.name)
        return EvmClients(rpc=rpc, explorer=explorer)

    async def _explorer(self) -> EtherscanClient:
        clients = await self._get_clients()
        if clients.explorer is None:
            raise ConfigurationError(
                message=f"No explorer API configured for {self.name}",
                config_key="explorer_api_url",
                chain=self.name,
            )
        return clients.explorer

    async def _verify_connection(self) -> None:
        clients = await self._get_clients()
        remote_id = await clients.rpc.get_chain_id()
        if remote_id != self.config.chain_id:
            raise ConfigurationError(
                message=(
                    f"Chain ID mismatch: expected {self.config.chain_id}, "
                    f"got {remote_id}"
                ),
                config_key="chain_id",
                chain=self.name,
            )

    # ─────────────────────────────────────────────────────────────
    # Data Operations
    # ─────────────────────────────────────────────────────────────

    async def get_block_number(self) -> int:
        clients = await self._get_clients()
        return await clients.rpc.get_block_number()

    async def get_native_balance(self, address: str) -> NativeBalance:
        address = self._require_valid(address)
        clients = await self._get_clients()
        return await clients.rpc.get_balance(address)

    async def get_token_balances(self, address: str) -> list[TokenBalance]:
        """
        Non-zero balances of tokens seen in the latest ERC-20 transfers.

        Only the most recent TOKEN_DISCOVERY_LIMIT transfers are scanned,
        so long-dormant holdings can be missed.
        """
        address = self._require_valid(address)
        explorer = await self._explorer()
        clients = await self._get_clients()

        transfers = await explorer.get_erc20_transfers(
            address, page=1, offset=TOKEN_DISCOVERY_LIMIT,
        )
        contracts = sorted({
            t["contractAddress"].lower() for t in transfers if t.get("contractAddress")
        })

        balances = []
        for contract in contracts:
            balance = await clients.rpc.get_token_info(address, contract)
            if balance.balance != "0":
                balances.append(balance)
        return balances

    async def get_transactions(
        self,
        address: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ) -> list[ChainTransaction]:
        return await self.get_full_transactions(address, from_block, to_block)

    async def get_full_transactions(
        self,
        address: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ) -> list[ChainTransaction]:
        """Merged history, newest first."""
        address = self._require_valid(address)
        explorer = await self._explorer()

        normal = await explorer.get_transactions(
            address, from_block, to_block, page=1, offset=HISTORY_PAGE_SIZE,
        )
        internal = await self._optional_list(
            "txlistinternal",
            explorer.get_internal_transactions(address, from_block, to_block),
        )
        erc20 = await explorer.get_erc20_transfers(
            address, None, from_block, to_block, page=1, offset=HISTORY_PAGE_SIZE,
        )
        erc721 = await self._optional_list(
            "tokennfttx", explorer.get_nft_transfers(address, None, from_block),
        )
        erc1155 = await self._optional_list(
            "token1155tx", explorer.get_erc1155_transfers(address, None, from_block),
        )

        transactions = self.merge_history(normal, internal, erc20, erc721, erc1155)
        logger.debug(f"[{self.name}] {len(transactions)} transactions for {address}")
        return transactions

    async def _optional_list(self, endpoint: str, request) -> list[dict[str, Any]]:
        """Auxiliary explorer lists; an explorer that rejects the endpoint yields []."""
        try:
            return await request
        except ApiError as e:
            logger.warning(f"[{self.name}] {endpoint} unavailable: {e.message}")
            return []

    def merge_history(
        self,
        normal: list[dict[str, Any]],
        internal: list[dict[str, Any]],
        erc20: list[dict[str, Any]],
        erc721: list[dict[str, Any]],
        erc1155: list[dict[str, Any]],
    ) -> list[ChainTransaction]:
        by_hash: dict[str, ChainTransaction] = {}
        for row in normal:
            tx = self.normalize_transaction(row)
            by_hash.setdefault(tx.hash, tx)

        for row in internal:
            if row.get("hash") in by_hash:
                continue
            tx = self._base_record(row, TransactionType.CONTRACT_CALL)
            tx.value = str(_to_int(row.get("value")))
            tx.status = _status_from_error_flag(row)
            tx.raw_data = row
            by_hash[tx.hash] = tx

        for row in erc20:
            self._attach_transfer(by_hash, row, TokenTransfer(
                token_address=row.get("contractAddress", ""),
                from_address=row.get("from", ""),
                to_address=row.get("to", ""),
                value=str(_to_int(row.get("value"))),
                token_symbol=row.get("tokenSymbol"),
                token_decimals=_optional_int(row.get("tokenDecimal")),
            ))

        for row in erc721:
            tx = self._attach_transfer(by_hash, row, TokenTransfer(
                token_address=row.get("contractAddress", ""),
                from_address=row.get("from", ""),
                to_address=row.get("to", ""),
                value=str(row.get("tokenID", "")),
                token_symbol=row.get("tokenSymbol"),
                token_decimals=0,
            ))
            tx.tx_type = TransactionType.TRANSFER

        for row in erc1155:
            self._attach_transfer(by_hash, row, TokenTransfer(
                token_address=row.get("contractAddress", ""),
                from_address=row.get("from", ""),
                to_address=row.get("to", ""),
                value=f"{row.get('tokenID', '')}:{row.get('tokenValue', '')}",
                token_symbol=row.get("tokenSymbol"),
                token_decimals=0,
            ))

        return sorted(by_hash.values(), key=lambda t: t.timestamp, reverse=True)

    def _attach_transfer(
        self,
        by_hash: dict[str, ChainTransaction],
        row: dict[str, Any],
        transfer: TokenTransfer,
    ) -> ChainTransaction:
        tx = by_hash.get(row.get("hash", ""))
        if tx is None:
            tx = self._base_record(row, TransactionType.TRANSFER)
            by_hash[tx.hash] = tx
        tx.token_transfers.append(transfer)
        return tx

    def _base_record(self, row: dict[str, Any], tx_type: TransactionType) -> ChainTransaction:
        """Zero-value, zero-fee record for a hash seen only in auxiliary lists."""
        try:
            tx_hash = row["hash"]
        except KeyError as e:
            raise ParseError(
                message="Explorer row without hash",
                chain=self.name,
                raw_data=row,
                original_error=e,
            )
        return ChainTransaction(
            hash=tx_hash,
            chain_id=self.chain_id,
            block_number=_to_int(row.get("blockNumber")),
            timestamp=_to_int(row.get("timeStamp")),
            from_address=row.get("from", ""),
            to_address=row.get("to") or None,
            value="0",
            fee="0",
            status=TransactionStatus.SUCCESS,
            tx_type=tx_type,
        )

    async def get_transaction(self, tx_hash: str) -> ChainTransaction:
        """
        One transaction from RPC (tx + receipt).

        The node does not return a timestamp, so it is 0 and the type is
        left UNKNOWN.
        """
        clients = await self._get_clients()
        tx_hash = tx_hash.strip()
        tx = await clients.rpc.get_transaction(tx_hash)
        if not tx:
            raise TransactionNotFoundError(
                message=f"Transaction not found: {tx_hash}",
                chain=self.name,
            )
        receipt = await clients.rpc.get_transaction_receipt(tx_hash) or {}

        if not receipt:
            status = TransactionStatus.PENDING
        elif receipt.get("status") == "0x1":
            status = TransactionStatus.SUCCESS
        else:
            status = TransactionStatus.FAILED

        gas_price = receipt.get("effectiveGasPrice") or tx.get("gasPrice")
        block_number = tx.get("blockNumber")

        return ChainTransaction(
            hash=tx_hash,
            chain_id=self.chain_id,
            block_number=parse_hex_int(block_number, self.name) if block_number else 0,
            timestamp=0,
            from_address=tx.get("from", ""),
            to_address=tx.get("to"),
            value=str(_to_int(tx.get("value"))),
            fee=calculate_fee(receipt.get("gasUsed"), gas_price),
            status=status,
            tx_type=TransactionType.UNKNOWN,
            raw_data=tx,
        )

    def validate_address(self, address: str) -> bool:
        return bool(_ADDRESS_RE.match(address.strip()))

    def format_address(self, address: str) -> str:
        return checksum_address(self._require_valid(address))

    # ─────────────────────────────────────────────────────────────
    # Normalization
    # ─────────────────────────────────────────────────────────────

    def normalize_transaction(self, row: dict[str, Any]) -> ChainTransaction:
        """Explorer txlist row -> ChainTransaction."""
        tx = self._base_record(row, classify_transaction(
            to_address=row.get("to"),
            input_data=row.get("input"),
            value=str(row.get("value", "0")),
            contract_address=row.get("contractAddress"),
        ))
        tx.value = str(_to_int(row.get("value")))
        tx.fee = calculate_fee(row.get("gasUsed"), row.get("gasPrice"))
        tx.status = _status_from_error_flag(row)
        tx.raw_data = row
        return tx


def _status_from_error_flag(row: dict[str, Any]) -> TransactionStatus:
    if row.get("isError") == "1":
        return TransactionStatus.FAILED
    return TransactionStatus.SUCCESS


def _optional_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
