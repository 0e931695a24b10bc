"""
Mempool Client - UTXO explorer API (mempool.space / Esplora compatible).

Endpoints:
- GET /blocks/tip/height          -> text integer
- GET /address/{a}                -> chain and mempool funding stats
- GET /address/{a}/utxo           -> unspent outputs
- GET /address/{a}/txs            -> first history page
- GET /address/{a}/txs/chain/{id} -> next page after txid
- GET /tx/{txid}                  -> one transaction

History pages hold 25 confirmed transactions; the cursor is the last
txid of the previous page.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from chain_adapters.exceptions import (
    ApiError,
    InvalidAddressError,
    ParseError,
    TransactionNotFoundError,
)
from chain_adapters.fetcher import RateLimitedFetcher


logger = logging.getLogger(__name__)

TXS_PER_PAGE = 25


def compute_confirmations(block_height: Optional[int], current_height: Optional[int]) -> int:
    """tip - height + 1 when both are known and tip >= height, else 0."""
    if block_height is None or current_height is None:
        return 0
    if current_height < block_height:
        return 0
    return current_height - block_height + 1


@dataclass(frozen=True)
class BitcoinTxInput:
    address: Optional[str]
    value: int
    prev_txid: str
    prev_vout: int


@dataclass(frozen=True)
class BitcoinTxOutput:
    address: Optional[str]
    value: int
    index: int
    script_type: str


@dataclass
class BitcoinTransaction:
    """A mempool transaction flattened to addresses and values."""
    txid: str
    block_height: Optional[int]
    timestamp: Optional[int]
    inputs: list[BitcoinTxInput]
    outputs: list[BitcoinTxOutput]
    fee: int
    confirmations: int
    is_coinbase: bool
    total_input: int
    total_output: int

    @classmethod
    def from_mempool(
        cls,
        data: dict[str, Any],
        current_height: Optional[int] = None,
    ) -> "BitcoinTransaction":
        try:
            vin = data.get("vin") or []
            inputs = []
            for item in vin:
                prevout = item.get("prevout") or {}
                inputs.append(BitcoinTxInput(
                    address=prevout.get("scriptpubkey_address"),
                    value=int(prevout.get("value", 0)),
                    prev_txid=item.get("txid", ""),
                    prev_vout=int(item.get("vout", 0)),
                ))

            outputs = [
                BitcoinTxOutput(
                    address=item.get("scriptpubkey_address"),
                    value=int(item["value"]),
                    index=i,
                    script_type=item.get("scriptpubkey_type", ""),
                )
                for i, item in enumerate(data.get("vout") or [])
            ]

            status = data.get("status") or {}
            block_height = status.get("block_height")

            return cls(
                txid=data["txid"],
                block_height=block_height,
                timestamp=status.get("block_time"),
                inputs=inputs,
                outputs=outputs,
                fee=int(data.get("fee", 0)),
                confirmations=compute_confirmations(block_height, current_height),
                is_coinbase=bool(vin and vin[0].get("is_coinbase")),
                total_input=sum(i.value for i in inputs),
                total_output=sum(o.value for o in outputs),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(
                message=f"Malformed mempool transaction: {e}",
                raw_data=data,
                original_error=e,
            )


@dataclass(frozen=True)
class Utxo:
    txid: str
    vout: int
    value: int
    confirmed: bool
    block_height: Optional[int] = None


@dataclass(frozen=True)
class BitcoinBalance:
    """Balance summary in satoshis."""
    address: str
    balance: int
    confirmed_balance: int
    unconfirmed_balance: int
    utxo_count: int
    total_received: int
    total_sent: int
    tx_count: int

    @classmethod
    def from_address_info(cls, info: dict[str, Any], utxo_count: int) -> "BitcoinBalance":
        try:
            chain = info["chain_stats"]
            mempool = info["mempool_stats"]
            confirmed = chain["funded_txo_sum"] - chain["spent_txo_sum"]
            unconfirmed = max(0, mempool["funded_txo_sum"] - mempool["spent_txo_sum"])
            return cls(
                address=info.get("address", ""),
                balance=confirmed + unconfirmed,
                confirmed_balance=confirmed,
                unconfirmed_balance=unconfirmed,
                utxo_count=utxo_count,
                total_received=chain["funded_txo_sum"] + mempool["funded_txo_sum"],
                total_sent=chain["spent_txo_sum"] + mempool["spent_txo_sum"],
                tx_count=chain["tx_count"] + mempool["tx_count"],
            )
        except (KeyError, TypeError) as e:
            raise ParseError(
                message=f"Malformed address stats: {e}",
                raw_data=info,
                original_error=e,
            )


class MempoolClient:
    """Client for one mempool.space-compatible endpoint."""

    def __init__(self, fetcher: RateLimitedFetcher, chain: str) -> None:
        self._fetcher = fetcher
        self._chain = chain

    @property
    def fetcher(self) -> RateLimitedFetcher:
        return self._fetcher

    async def get_block_height(self) -> int:
        text = await self._fetcher.get(self._fetcher.build_url("blocks/tip/height"))
        try:
            return int(text.strip())
        except ValueError as e:
            raise ParseError(
                message=f"Invalid tip height: {text[:50]!r}",
                chain=self._chain,
                raw_data=text,
                original_error=e,
            )

    async def get_address_info(self, address: str) -> dict[str, Any]:
        url = self._fetcher.build_url(f"address/{address}")
        try:
            return await self._fetcher.get_json(url)
        except ApiError as e:
            if e.status_code in (400, 404):
                raise InvalidAddressError(
                    message=f"Address rejected by explorer: {address}",
                    address=address,
                    chain=self._chain,
                    original_error=e,
                )
            raise

    async def get_utxos(self, address: str) -> list[Utxo]:
        url = self._fetcher.build_url(f"address/{address}/utxo")
        data = await self._fetcher.get_json(url)
        try:
            return [
                Utxo(
                    txid=item["txid"],
                    vout=int(item["vout"]),
                    value=int(item["value"]),
                    confirmed=bool(item.get("status", {}).get("confirmed")),
                    block_height=item.get("status", {}).get("block_height"),
                )
                for item in data
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(
                message=f"Malformed UTXO list: {e}",
                chain=self._chain,
                raw_data=data,
                original_error=e,
            )

    async def get_balance(self, address: str) -> BitcoinBalance:
        info = await self.get_address_info(address)
        utxos = await self.get_utxos(address)
        return BitcoinBalance.from_address_info(info, len(utxos))

    async def get_transactions_page(
        self,
        address: str,
        last_txid: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """One history page; pass the previous page's last txid to continue."""
        if last_txid:
            path = f"address/{address}/txs/chain/{last_txid}"
        else:
            path = f"address/{address}/txs"
        data = await self._fetcher.get_json(self._fetcher.build_url(path))
        if not isinstance(data, list):
            raise ParseError(
                message="Expected a list of transactions",
                chain=self._chain,
                raw_data=data,
            )
        return data

    async def get_all_transactions(
        self,
        address: str,
        max_pages: Optional[int] = None,
        current_height: Optional[int] = None,
    ) -> list[BitcoinTransaction]:
        """
        Walk history pages strictly in order.

        Stops on an empty page, a page shorter than TXS_PER_PAGE, or the
        page cap. Any failure aborts the whole walk.
        """
        results: list[BitcoinTransaction] = []
        cursor: Optional[str] = None
        pages = 0

        while True:
            items = await self.get_transactions_page(address, cursor)
            if not items:
                break

            results.extend(
                BitcoinTransaction.from_mempool(item, current_height)
                for item in items
            )
            pages += 1
            cursor = items[-1].get("txid")

            if max_pages is not None and pages >= max_pages:
                logger.debug(f"[{self._chain}] Page cap {max_pages} reached for {address}")
                break
            if len(items) < TXS_PER_PAGE:
                break

        return results

    async def get_transaction(
        self,
        txid: str,
        current_height: Optional[int] = None,
    ) -> BitcoinTransaction:
        url = self._fetcher.build_url(f"tx/{txid}")
        try:
            data = await self._fetcher.get_json(url)
        except ApiError as e:
            if e.status_code in (400, 404):
                raise TransactionNotFoundError(
                    message=f"Transaction not found: {txid}",
                    chain=self._chain,
                    original_error=e,
                )
            raise
        return BitcoinTransaction.from_mempool(data, current_height)
