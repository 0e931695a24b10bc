"""
EVM JSON-RPC Client - Node queries for balances, token metadata and receipts.

Token helpers go through eth_call with hand-built calldata:
- balanceOf(address)  0x70a08231
- decimals()          0x313ce567
- symbol()            0x95d89b41
- name()              0x06fdde03
"""

import logging
from typing import Any, Optional

from chain_adapters.exceptions import ChainAdapterError, ParseError
from chain_adapters.fetcher import RateLimitedFetcher
from chain_adapters.models import NativeBalance, TokenBalance, format_units
from chain_adapters.providers.etherscan import parse_hex_int
from chain_adapters.providers.jsonrpc import JsonRpcClient


logger = logging.getLogger(__name__)

SELECTOR_BALANCE_OF = "0x70a08231"
SELECTOR_DECIMALS = "0x313ce567"
SELECTOR_SYMBOL = "0x95d89b41"
SELECTOR_NAME = "0x06fdde03"

DEFAULT_TOKEN_DECIMALS = 18


def decode_abi_string(data: str) -> str:
    """
    Decode an ABI-encoded dynamic string return value.

    Layout: 32-byte offset, 32-byte length, then the UTF-8 bytes.
    """
    hex_data = data[2:] if data.startswith("0x") else data
    try:
        raw = bytes.fromhex(hex_data)
    except ValueError as e:
        raise ParseError(
            message="ABI string is not valid hex",
            raw_data=data,
            original_error=e,
        )

    if len(raw) < 64:
        raise ParseError(message="ABI string too short", raw_data=data)

    length = int.from_bytes(raw[56:64], "big")
    end = 64 + length
    if end > len(raw):
        raise ParseError(
            message=f"ABI string length {length} exceeds payload",
            raw_data=data,
        )
    return raw[64:end].decode("utf-8", errors="replace")


def encode_address_arg(address: str) -> str:
    """Left-pad an address to one 32-byte ABI word (no 0x)."""
    return address.lower().replace("0x", "").rjust(64, "0")


class EvmRpcClient(JsonRpcClient):
    """JSON-RPC client for one EVM node."""

    def __init__(
        self,
        fetcher: RateLimitedFetcher,
        rpc_url: str,
        chain: str,
        symbol: str = "ETH",
        decimals: int = 18,
    ) -> None:
        super().__init__(fetcher, rpc_url, chain)
        self._symbol = symbol
        self._decimals = decimals

    # ─────────────────────────────────────────────────────────────
    # Chain
    # ─────────────────────────────────────────────────────────────

    async def get_block_number(self) -> int:
        return parse_hex_int(await self.call("eth_blockNumber", []), self._chain)

    async def get_chain_id(self) -> int:
        return parse_hex_int(await self.call("eth_chainId", []), self._chain)

    async def get_gas_price(self) -> int:
        """Gas price in wei."""
        return parse_hex_int(await self.call("eth_gasPrice", []), self._chain)

    async def get_balance(self, address: str) -> NativeBalance:
        wei = parse_hex_int(await self.call("eth_getBalance", [address, "latest"]), self._chain)
        return NativeBalance(
            symbol=self._symbol,
            decimals=self._decimals,
            balance=str(wei),
            balance_formatted=format_units(wei, self._decimals),
        )

    # ─────────────────────────────────────────────────────────────
    # Tokens
    # ─────────────────────────────────────────────────────────────

    async def eth_call(self, to: str, data: str) -> str:
        return await self.call("eth_call", [{"to": to, "data": data}, "latest"])

    async def get_token_balance(self, owner: str, token_address: str) -> int:
        result = await self.eth_call(
            token_address,
            SELECTOR_BALANCE_OF + encode_address_arg(owner),
        )
        if result in ("0x", ""):
            return 0
        return parse_hex_int(result, self._chain)

    async def get_token_decimals(self, token_address: str) -> int:
        result = await self.eth_call(token_address, SELECTOR_DECIMALS)
        if result in ("0x", ""):
            raise ParseError(
                message=f"Token {token_address} has no decimals()",
                chain=self._chain,
                raw_data=result,
            )
        return parse_hex_int(result, self._chain)

    async def get_token_symbol(self, token_address: str) -> str:
        return decode_abi_string(await self.eth_call(token_address, SELECTOR_SYMBOL))

    async def get_token_name(self, token_address: str) -> str:
        return decode_abi_string(await self.eth_call(token_address, SELECTOR_NAME))

    async def get_token_info(self, owner: str, token_address: str) -> TokenBalance:
        """
        Balance plus metadata for one token.

        The balance call must succeed. Metadata is optional: missing
        decimals default to 18, missing symbol/name stay None.
        """
        balance = await self.get_token_balance(owner, token_address)

        try:
            decimals = await self.get_token_decimals(token_address)
        except ChainAdapterError as e:
            logger.debug(f"[{self._chain}] decimals() failed for {token_address}: {e}")
            decimals = DEFAULT_TOKEN_DECIMALS

        symbol = await self._optional_metadata(self.get_token_symbol, token_address)
        name = await self._optional_metadata(self.get_token_name, token_address)

        return TokenBalance(
            token_address=token_address,
            decimals=decimals,
            balance=str(balance),
            balance_formatted=format_units(balance, decimals),
            symbol=symbol,
            name=name,
        )

    async def _optional_metadata(self, getter, token_address: str) -> Optional[str]:
        try:
            return await getter(token_address)
        except ChainAdapterError as e:
            logger.debug(f"[{self._chain}] {getter.__name__} failed for {token_address}: {e}")
            return None

    # ─────────────────────────────────────────────────────────────
    # Transactions & Logs
    # ─────────────────────────────────────────────────────────────

    async def get_transaction(self, tx_hash: str) -> Optional[dict[str, Any]]:
        return await self.call("eth_getTransactionByHash", [tx_hash])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict[str, Any]]:
        return await self.call("eth_getTransactionReceipt", [tx_hash])

    async def get_logs(
        self,
        from_block: int,
        to_block: int,
        address: Optional[str] = None,
        topics: Optional[list[Optional[str]]] = None,
    ) -> list[dict[str, Any]]:
        log_filter: dict[str, Any] = {
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
        }
        if address:
            log_filter["address"] = address
        if topics is not None:
            log_filter["topics"] = topics

        result = await self.call("eth_getLogs", [log_filter])
        if not isinstance(result, list):
            raise ParseError(
                message="Expected a list of logs",
                chain=self._chain,
                raw_data=result,
            )
        return result
