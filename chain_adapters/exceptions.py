"""
Chain Adapter Exceptions - Custom exception hierarchy.

Every error raised by the fetch layer, the per-family clients and the
adapters derives from ChainAdapterError. Transport-level exceptions are
translated at the fetcher boundary and never leak to callers.
"""

from datetime import datetime
from typing import Any, Optional


class ChainAdapterError(Exception):
    """Base exception for all chain adapter errors."""

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.chain = chain
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "chain": self.chain,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.chain:
            parts.append(f"[chain={self.chain}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class InvalidAddressError(ChainAdapterError):
    """Malformed address, wrong length or bad checksum. Never retried."""

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        chain: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, original_error, context)
        self.address = address

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["address"] = self.address
        return data


class UnsupportedChainError(ChainAdapterError):
    """Requested network is unknown to the manager."""

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        supported_chains: Optional[list[str]] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, original_error, context)
        self.supported_chains = supported_chains or []

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["supported_chains"] = self.supported_chains
        return data


class ConnectionFailedError(ChainAdapterError):
    """Network-level failure. Retried by the fetcher before surfacing."""

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        request_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, original_error, context)
        self.request_url = request_url

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["request_url"] = self.request_url
        return data


class HttpError(ConnectionFailedError):
    """Transport error while sending a request or reading its response."""


class FetchTimeoutError(ConnectionFailedError):
    """Per-request timeout elapsed."""


class RateLimitError(ChainAdapterError):
    """Upstream returned HTTP 429 or an equivalent throttling payload.

    The fetcher retries 429s itself and raises this once its budget is spent.
    """

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        retry_after_seconds: Optional[int] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, original_error, context)
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class ApiError(ChainAdapterError):
    """Well-formed error reported by an upstream API. Not retried."""

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, original_error, context)
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "response_body": self.response_body,
            "request_url": self.request_url,
        })
        return data


class RpcError(ApiError):
    """JSON-RPC error object returned by a node."""

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        code: Optional[int] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, original_error=original_error, context=context)
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["code"] = self.code
        return data


class ParseError(ChainAdapterError):
    """Upstream payload did not match the expected schema."""

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        raw_data: Optional[Any] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, original_error, context)
        self.raw_data = raw_data

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["raw_data"] = str(self.raw_data)[:500] if self.raw_data else None
        return data


class ConfigurationError(ChainAdapterError):
    """Bad local configuration. Raised at construction time."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        chain: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, original_error, context)
        self.config_key = config_key

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["config_key"] = self.config_key
        return data


class TransactionNotFoundError(ChainAdapterError):
    """Transaction id unknown to the upstream."""


class BlockNotFoundError(ChainAdapterError):
    """Block unknown to the upstream."""


class InternalError(ChainAdapterError):
    """Invariant violation inside the adapter layer."""


class UnimplementedChainError(InternalError):
    """Operation is not available for this chain family yet."""
