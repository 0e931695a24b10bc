"""
JSON-RPC 2.0 over the shared RateLimitedFetcher.

HTTP failures are classified by the fetcher (429 -> RateLimitError);
this layer adds the envelope checks: an "error" member raises RpcError,
a missing "result" raises ParseError.
"""

import logging
from typing import Any, Union

from chain_adapters.exceptions import ParseError, RpcError
from chain_adapters.fetcher import RateLimitedFetcher


logger = logging.getLogger(__name__)


class JsonRpcClient:
    """JSON-RPC client for one endpoint. Request ids increase from 1."""

    ERROR_LABEL = "RPC"

    def __init__(self, fetcher: RateLimitedFetcher, rpc_url: str, chain: str) -> None:
        self._fetcher = fetcher
        self._rpc_url = rpc_url
        self._chain = chain
        self._request_id = 0

    @property
    def fetcher(self) -> RateLimitedFetcher:
        return self._fetcher

    def _next_request_id(self) -> int:
        """Get next JSON-RPC request ID."""
        self._request_id += 1
        return self._request_id

    async def call(self, method: str, params: Union[list[Any], dict[str, Any]]) -> Any:
        """Make a JSON-RPC call and return its result."""
        payload = {
            "jsonrpc": "2.0",
            "id": self._next_request_id(),
            "method": method,
            "params": params,
        }
        data = await self._fetcher.post_json(self._rpc_url, payload)

        if not isinstance(data, dict):
            raise ParseError(
                message=f"Unexpected {method} response",
                chain=self._chain,
                raw_data=data,
            )

        error = data.get("error")
        if error:
            if isinstance(error, dict):
                code, message = error.get("code"), error.get("message", "Unknown")
            else:
                code, message = None, str(error)
            raise RpcError(
                message=f"{self.ERROR_LABEL} error {code}: {message}",
                chain=self._chain,
                code=code,
            )

        if "result" not in data:
            raise ParseError(
                message=f"No result in {method} response",
                chain=self._chain,
                raw_data=data,
            )
        return data["result"]
