"""
Helius Client - Enriched Solana API (parsed transactions and DAS assets).

REST:  GET {REST_BASE}/addresses/{address}/transactions?api-key=...&type=ALL
RPC:   POST {RPC_BASE}/?api-key=...   getBalance, getAssetsByOwner

Helius authenticates with "api-key", not "apikey", so the key is passed
as an explicit query parameter rather than through the fetcher config.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from chain_adapters.exceptions import ParseError
from chain_adapters.fetcher import RateLimitedFetcher
from chain_adapters.models import TransactionType
from chain_adapters.providers.jsonrpc import JsonRpcClient


logger = logging.getLogger(__name__)

REST_BASE = "https://api.helius.xyz/v0"
RPC_BASE = "https://mainnet.helius-rpc.com"

TXS_PER_PAGE = 100

FUNGIBLE_INTERFACES = ("FungibleToken", "FungibleAsset")

_TYPE_MAP = {
    "TRANSFER": TransactionType.TRANSFER,
    "TOKEN_TRANSFER": TransactionType.TRANSFER,
    "NFT_SALE": TransactionType.TRANSFER,
    "NFT_LISTING": TransactionType.TRANSFER,
    "NFT_BID": TransactionType.TRANSFER,
    "SWAP": TransactionType.SWAP,
    "STAKE": TransactionType.STAKE,
    "STAKE_SOL": TransactionType.STAKE,
    "UNSTAKE": TransactionType.UNSTAKE,
    "UNSTAKE_SOL": TransactionType.UNSTAKE,
    "DEACTIVATE_STAKE": TransactionType.UNSTAKE,
    "MINT": TransactionType.MINT,
    "TOKEN_MINT": TransactionType.MINT,
    "BURN": TransactionType.BURN,
    "TOKEN_BURN": TransactionType.BURN,
    "CREATE_ACCOUNT": TransactionType.CONTRACT_CALL,
    "INIT_ACCOUNT": TransactionType.CONTRACT_CALL,
    "CLOSE_ACCOUNT": TransactionType.CONTRACT_CALL,
}

_SOURCE_NAMES = {
    "JUPITER": "Jupiter",
    "MARINADE": "Marinade",
    "MARINADE_FINANCE": "Marinade",
    "RAYDIUM": "Raydium",
    "ORCA": "Orca",
    "ORCA_WHIRLPOOLS": "Orca",
    "SYSTEM_PROGRAM": "System",
    "SOLEND": "Solend",
    "MARGINFI": "MarginFi",
}


def classify_helius_type(tx_type: str) -> TransactionType:
    return _TYPE_MAP.get(tx_type.upper(), TransactionType.UNKNOWN)


def source_program_name(source: str) -> str:
    return _SOURCE_NAMES.get(source.upper(), source)


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class HeliusNativeTransfer:
    from_address: str
    to_address: str
    amount: int


@dataclass(frozen=True)
class HeliusTokenTransfer:
    from_address: str
    to_address: str
    mint: str
    amount: Decimal
    """Display units, decoded without passing through float."""
    token_standard: str = ""


@dataclass
class HeliusTransaction:
    """One enriched transaction from the Helius parser."""
    signature: str
    slot: int
    timestamp: int
    fee: int
    fee_payer: str
    tx_type: str
    source: str
    description: str = ""
    native_transfers: list[HeliusNativeTransfer] = field(default_factory=list)
    token_transfers: list[HeliusTokenTransfer] = field(default_factory=list)
    swap_event: Optional[dict[str, Any]] = None
    transaction_error: Optional[Any] = None

    @property
    def failed(self) -> bool:
        return self.transaction_error is not None

    @property
    def source_program(self) -> str:
        return source_program_name(self.source)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "HeliusTransaction":
        try:
            return cls(
                signature=data["signature"],
                slot=int(data.get("slot") or 0),
                timestamp=int(data.get("timestamp") or 0),
                fee=int(data.get("fee") or 0),
                fee_payer=data.get("feePayer", ""),
                tx_type=data.get("type", ""),
                source=data.get("source", ""),
                description=data.get("description") or "",
                native_transfers=[
                    HeliusNativeTransfer(
                        from_address=t.get("fromUserAccount", ""),
                        to_address=t.get("toUserAccount", ""),
                        amount=int(t.get("amount") or 0),
                    )
                    for t in data.get("nativeTransfers") or []
                ],
                token_transfers=[
                    HeliusTokenTransfer(
                        from_address=t.get("fromUserAccount", ""),
                        to_address=t.get("toUserAccount", ""),
                        mint=t.get("mint", ""),
                        amount=_to_decimal(t.get("tokenAmount")),
                        token_standard=t.get("tokenStandard", ""),
                    )
                    for t in data.get("tokenTransfers") or []
                ],
                swap_event=(data.get("events") or {}).get("swap"),
                transaction_error=data.get("transactionError"),
            )
        except (KeyError, TypeError, ValueError, AttributeError, InvalidOperation) as e:
            raise ParseError(
                message=f"Malformed Helius transaction: {e}",
                raw_data=data,
                original_error=e,
            )


class HeliusRpcClient(JsonRpcClient):
    ERROR_LABEL = "Helius RPC"


class HeliusClient:
    """
    REST and RPC access to Helius through one fetcher.

    Both endpoints count against the same key, so they share one
    token bucket.
    """

    def __init__(
        self,
        fetcher: RateLimitedFetcher,
        api_key: str,
        chain: str = "solana",
        rest_base: str = REST_BASE,
        rpc_base: str = RPC_BASE,
    ) -> None:
        self._fetcher = fetcher
        self._api_key = api_key
        self._chain = chain
        self._rest_base = rest_base.rstrip("/")
        self._rpc = HeliusRpcClient(fetcher, f"{rpc_base.rstrip('/')}/?api-key={api_key}", chain)

    @property
    def fetcher(self) -> RateLimitedFetcher:
        return self._fetcher

    def transactions_url(
        self,
        address: str,
        before: Optional[str] = None,
        limit: int = TXS_PER_PAGE,
    ) -> str:
        return self._fetcher.build_url_with_params(
            f"{self._rest_base}/addresses/{address}/transactions",
            {
                "api-key": self._api_key,
                "type": "ALL",
                "limit": min(limit, TXS_PER_PAGE),
                "before": before,
            },
        )

    async def get_parsed_transactions(
        self,
        address: str,
        before: Optional[str] = None,
        limit: int = TXS_PER_PAGE,
    ) -> list[HeliusTransaction]:
        data = await self._fetcher.get_json(
            self.transactions_url(address, before, limit),
            parse_float=Decimal,
        )
        if not isinstance(data, list):
            raise ParseError(
                message="Expected a list of Helius transactions",
                chain=self._chain,
                raw_data=data,
            )
        return [HeliusTransaction.from_api(item) for item in data]

    async def get_all_transactions(
        self,
        address: str,
        max_pages: Optional[int] = None,
    ) -> list[HeliusTransaction]:
        """
        Walk history pages strictly in order, newest first.

        Stops on an empty page, a page shorter than TXS_PER_PAGE, or the
        page cap. Any failure aborts the whole walk.
        """
        results: list[HeliusTransaction] = []
        before: Optional[str] = None
        pages = 0

        while True:
            page = await self.get_parsed_transactions(address, before)
            if not page:
                break

            results.extend(page)
            before = page[-1].signature
            pages += 1

            if max_pages is not None and pages >= max_pages:
                logger.debug(f"[{self._chain}] Helius page cap {max_pages} reached for {address}")
                break
            if len(page) < TXS_PER_PAGE:
                break

        return results

    async def get_balance(self, address: str) -> int:
        """Lamports held by address."""
        result = await self._rpc.call("getBalance", [address])
        try:
            return int(result["value"])
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(
                message="Missing value in getBalance result",
                chain=self._chain,
                raw_data=result,
                original_error=e,
            )

    async def get_assets_by_owner(self, owner: str, page: int = 1) -> list[dict[str, Any]]:
        """DAS assets for owner, fungible tokens included."""
        result = await self._rpc.call("getAssetsByOwner", {
            "ownerAddress": owner,
            "page": page,
            "displayOptions": {"showFungible": True},
        })
        if not isinstance(result, dict) or not isinstance(result.get("items"), list):
            raise ParseError(
                message="Missing items in getAssetsByOwner result",
                chain=self._chain,
                raw_data=result,
            )
        return result["items"]
