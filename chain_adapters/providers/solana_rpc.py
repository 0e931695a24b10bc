"""
Solana RPC Client - Plain JSON-RPC fallback used when no enriched API is available.

Only identifiers and minimal metadata are available here: signatures
carry slot, block time and error status but no transfers or types.
"""

import logging
from typing import Any, Optional

from chain_adapters.exceptions import ParseError
from chain_adapters.providers.jsonrpc import JsonRpcClient


logger = logging.getLogger(__name__)

SYSTEM_PROGRAM = "11111111111111111111111111111111"
TOKEN_PROGRAM = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
ASSOCIATED_TOKEN_PROGRAM = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
STAKE_PROGRAM = "Stake11111111111111111111111111111111111111"
JUPITER_V6_PROGRAM = "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"

DEFAULT_SIGNATURE_LIMIT = 100


class SolanaRpcClient(JsonRpcClient):
    """Standard Solana JSON-RPC methods."""

    async def get_balance(self, address: str) -> int:
        """Lamports held by address."""
        result = await self.call("getBalance", [address])
        return _context_value(result, "getBalance", self._chain)

    async def get_slot(self) -> int:
        return int(await self.call("getSlot", []))

    async def get_block_height(self) -> int:
        return int(await self.call("getBlockHeight", []))

    async def get_token_accounts_by_owner(self, owner: str) -> list[dict[str, Any]]:
        """
        SPL token accounts, flattened to their parsed info:
        {mint, owner, tokenAmount: {amount, decimals, uiAmountString}}.
        """
        result = await self.call("getTokenAccountsByOwner", [
            owner,
            {"programId": TOKEN_PROGRAM},
            {"encoding": "jsonParsed"},
        ])
        entries = _context_value(result, "getTokenAccountsByOwner", self._chain)
        try:
            return [entry["account"]["data"]["parsed"]["info"] for entry in entries]
        except (KeyError, TypeError) as e:
            raise ParseError(
                message=f"Malformed token account: {e}",
                chain=self._chain,
                raw_data=entries,
                original_error=e,
            )

    async def get_signatures_for_address(
        self,
        address: str,
        before: Optional[str] = None,
        limit: int = DEFAULT_SIGNATURE_LIMIT,
    ) -> list[dict[str, Any]]:
        """Newest first: [{signature, slot, blockTime, err, ...}]."""
        options: dict[str, Any] = {"limit": limit}
        if before:
            options["before"] = before
        result = await self.call("getSignaturesForAddress", [address, options])
        if not isinstance(result, list):
            raise ParseError(
                message="Expected a list of signatures",
                chain=self._chain,
                raw_data=result,
            )
        return result

    async def get_transaction(self, signature: str) -> Optional[dict[str, Any]]:
        return await self.call("getTransaction", [
            signature,
            {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0},
        ])


def _context_value(result: Any, method: str, chain: str) -> Any:
    """Unwrap the {"context": ..., "value": ...} envelope."""
    if not isinstance(result, dict) or "value" not in result:
        raise ParseError(
            message=f"Missing value in {method} result",
            chain=chain,
            raw_data=result,
        )
    return result["value"]
