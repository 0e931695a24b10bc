"""
Etherscan Client - Explorer REST API shared by every Etherscan-family site.

Responses are wrapped as {"status": "1", "message": "OK", "result": ...};
proxy endpoints answer in JSON-RPC form instead. Empty histories come back
as status "0" with "No transactions found" and are returned as [].

Rows are returned as the explorer's own dicts; EvmAdapter normalizes them.
"""

import logging
from typing import Any, Optional

from chain_adapters.exceptions import ApiError, ParseError, RateLimitError
from chain_adapters.fetcher import RateLimitedFetcher


logger = logging.getLogger(__name__)

_EMPTY_MESSAGES = ("No transactions found", "No records found")

DEFAULT_END_BLOCK = 99999999


class EtherscanClient:
    """
    Client for one Etherscan-compatible explorer API.

    The fetcher may be shared with other chains on the same provider key,
    so every call passes the absolute api_url.
    """

    def __init__(self, fetcher: RateLimitedFetcher, api_url: str, chain: str) -> None:
        self._fetcher = fetcher
        self._api_url = api_url
        self._chain = chain

    @property
    def fetcher(self) -> RateLimitedFetcher:
        return self._fetcher

    def build_url(self, module: str, action: str, params: Optional[dict[str, Any]] = None) -> str:
        query = {"module": module, "action": action}
        query.update(params or {})
        return self._fetcher.build_url_with_params(self._api_url, query)

    async def _request(
        self,
        module: str,
        action: str,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Make an explorer request with result unwrapping."""
        response = await self._fetcher.get_json(self.build_url(module, action, params))

        if not isinstance(response, dict):
            raise ParseError(
                message="Explorer response is not an object",
                chain=self._chain,
                raw_data=response,
            )

        # Proxy endpoints return jsonrpc format
        if "jsonrpc" in response:
            if "error" in response:
                error = response.get("error") or {}
                raise ApiError(
                    message=f"Explorer error: {error.get('message', error)}",
                    chain=self._chain,
                    response_body=str(response)[:500],
                )
            return response.get("result")

        status = str(response.get("status", "0"))
        message = str(response.get("message", ""))
        result = response.get("result")

        if status == "1" or message == "OK":
            return result

        if message in _EMPTY_MESSAGES:
            return []

        detail = f"{message} {result if isinstance(result, str) else ''}".lower()
        if "rate limit" in detail:
            raise RateLimitError(
                message=f"Explorer rate limit exceeded for {self._chain}",
                chain=self._chain,
                retry_after_seconds=1,
            )

        raise ApiError(
            message=f"Explorer error: {message}: {result}",
            chain=self._chain,
            response_body=str(response)[:500],
        )

    async def _request_list(
        self,
        module: str,
        action: str,
        params: dict[str, Any],
    ) -> list[dict[str, Any]]:
        result = await self._request(module, action, params)
        if not isinstance(result, list):
            raise ParseError(
                message=f"Expected a list from {module}.{action}",
                chain=self._chain,
                raw_data=result,
            )
        return result

    # ─────────────────────────────────────────────────────────────
    # Accounts
    # ─────────────────────────────────────────────────────────────

    async def get_balance(self, address: str) -> int:
        result = await self._request("account", "balance", {"address": address, "tag": "latest"})
        return _parse_int(result, self._chain)

    async def get_token_balance(self, address: str, contract_address: str) -> int:
        result = await self._request("account", "tokenbalance", {
            "address": address,
            "contractaddress": contract_address,
            "tag": "latest",
        })
        return _parse_int(result, self._chain)

    async def get_transactions(
        self,
        address: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
        page: int = 1,
        offset: int = 100,
    ) -> list[dict[str, Any]]:
        """Normal transactions, newest first."""
        return await self._request_list("account", "txlist", _history_params(
            address, from_block, to_block, page, offset,
        ))

    async def get_internal_transactions(
        self,
        address: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        return await self._request_list("account", "txlistinternal", _history_params(
            address, from_block, to_block,
        ))

    async def get_erc20_transfers(
        self,
        address: str,
        contract_address: Optional[str] = None,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
        page: int = 1,
        offset: int = 100,
    ) -> list[dict[str, Any]]:
        params = _history_params(address, from_block, to_block, page, offset)
        params["contractaddress"] = contract_address
        return await self._request_list("account", "tokentx", params)

    async def get_nft_transfers(
        self,
        address: str,
        contract_address: Optional[str] = None,
        from_block: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """ERC-721 transfers."""
        params = _history_params(address, from_block, None)
        params["contractaddress"] = contract_address
        return await self._request_list("account", "tokennfttx", params)

    async def get_erc1155_transfers(
        self,
        address: str,
        contract_address: Optional[str] = None,
        from_block: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        params = _history_params(address, from_block, None)
        params["contractaddress"] = contract_address
        return await self._request_list("account", "token1155tx", params)

    # ─────────────────────────────────────────────────────────────
    # Proxy
    # ─────────────────────────────────────────────────────────────

    async def get_block_number(self) -> int:
        result = await self._request("proxy", "eth_blockNumber")
        return parse_hex_int(result, self._chain)


def _history_params(
    address: str,
    from_block: Optional[int],
    to_block: Optional[int],
    page: Optional[int] = None,
    offset: Optional[int] = None,
) -> dict[str, Any]:
    return {
        "address": address,
        "startblock": from_block if from_block is not None else 0,
        "endblock": to_block if to_block is not None else DEFAULT_END_BLOCK,
        "page": page,
        "offset": offset,
        "sort": "desc",
    }


def _parse_int(value: Any, chain: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ParseError(
            message=f"Expected an integer string, got {value!r}",
            chain=chain,
            raw_data=value,
            original_error=e,
        )


def parse_hex_int(value: Any, chain: Optional[str] = None) -> int:
    """Parse a 0x-prefixed quantity."""
    try:
        return int(value, 16)
    except (TypeError, ValueError) as e:
        raise ParseError(
            message=f"Expected a hex quantity, got {value!r}",
            chain=chain,
            raw_data=value,
            original_error=e,
        )
