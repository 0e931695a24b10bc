"""
Chain Data Models - Canonical records shared by every chain family.

Values and fees are integer strings in the smallest unit of the chain.
Records are transient: produced per call and handed to the caller.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from chain_adapters.exceptions import ParseError


class ChainFamily(Enum):
    """Backend family an adapter belongs to."""
    UTXO = "utxo"
    ACCOUNT_RPC = "account_rpc"
    ACCOUNT_ENRICHED = "account_enriched"
    ACCOUNT_STUB = "account_stub"


class TransactionStatus(Enum):
    """Outcome of a transaction."""
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class TransactionType(Enum):
    """Classified transaction type."""
    TRANSFER = "transfer"
    SWAP = "swap"
    APPROVAL = "approval"
    MINT = "mint"
    BURN = "burn"
    STAKE = "stake"
    UNSTAKE = "unstake"
    CONTRACT_DEPLOY = "contract_deploy"
    CONTRACT_CALL = "contract_call"
    ADD_LIQUIDITY = "add_liquidity"
    REMOVE_LIQUIDITY = "remove_liquidity"
    BRIDGE = "bridge"
    UNKNOWN = "unknown"


class AddressType(Enum):
    """Bitcoin address encoding produced from an extended public key."""
    LEGACY = "legacy"
    NESTED_SEGWIT = "nested_segwit"
    NATIVE_SEGWIT = "native_segwit"
    TAPROOT = "taproot"

    @property
    def display_name(self) -> str:
        return _ADDRESS_TYPE_NAMES[self]


_ADDRESS_TYPE_NAMES = {
    AddressType.LEGACY: "Legacy (P2PKH)",
    AddressType.NESTED_SEGWIT: "Nested SegWit (P2SH-P2WPKH)",
    AddressType.NATIVE_SEGWIT: "Native SegWit (P2WPKH)",
    AddressType.TAPROOT: "Taproot (P2TR)",
}


@dataclass(frozen=True)
class ChainId:
    """
    Identifies one network of one family.

    Immutable and hashable; used as the adapter cache key.
    """
    family: ChainFamily
    name: str
    chain_id: Optional[int] = None

    @classmethod
    def utxo(cls, name: str) -> "ChainId":
        return cls(ChainFamily.UTXO, name)

    @classmethod
    def account_rpc(cls, name: str, chain_id: int) -> "ChainId":
        return cls(ChainFamily.ACCOUNT_RPC, name, chain_id)

    @classmethod
    def account_enriched(cls, name: str) -> "ChainId":
        return cls(ChainFamily.ACCOUNT_ENRICHED, name)

    @classmethod
    def account_stub(cls, name: str) -> "ChainId":
        return cls(ChainFamily.ACCOUNT_STUB, name)

    def __str__(self) -> str:
        return self.name


def _require_integer_string(value: str, field_name: str) -> None:
    if not isinstance(value, str) or not value.isdigit():
        raise ParseError(
            message=f"{field_name} must be a non-negative integer string, got {value!r}",
            raw_data=value,
        )


@dataclass
class TokenTransfer:
    """A non-native asset movement inside a transaction."""
    token_address: str
    from_address: str
    to_address: str
    value: str
    token_symbol: Optional[str] = None
    token_decimals: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_address": self.token_address,
            "token_symbol": self.token_symbol,
            "token_decimals": self.token_decimals,
            "from": self.from_address,
            "to": self.to_address,
            "value": self.value,
        }


@dataclass
class ChainTransaction:
    """
    Canonical transaction record.

    (hash, chain name) is unique. value and fee are integer strings in
    the smallest unit; raw_data is kept for diagnostics only.
    """
    hash: str
    chain_id: ChainId
    block_number: int
    timestamp: int
    from_address: str
    to_address: Optional[str]
    value: str
    fee: str
    status: TransactionStatus
    tx_type: TransactionType
    token_transfers: list[TokenTransfer] = field(default_factory=list)
    raw_data: Optional[dict[str, Any]] = None

    def __post_init__(self) -> None:
        _require_integer_string(self.value, "value")
        _require_integer_string(self.fee, "fee")

    @property
    def key(self) -> tuple[str, str]:
        """Storage key for this record."""
        return (self.hash, self.chain_id.name)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "hash": self.hash,
            "chain": self.chain_id.name,
            "chain_family": self.chain_id.family.value,
            "chain_numeric_id": self.chain_id.chain_id,
            "block_number": self.block_number,
            "timestamp": self.timestamp,
            "from": self.from_address,
            "to": self.to_address,
            "value": self.value,
            "fee": self.fee,
            "status": self.status.value,
            "tx_type": self.tx_type.value,
            "token_transfers": [t.to_dict() for t in self.token_transfers],
        }


@dataclass(frozen=True)
class NativeBalance:
    """Point-in-time native asset balance."""
    symbol: str
    decimals: int
    balance: str
    balance_formatted: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "decimals": self.decimals,
            "balance": self.balance,
            "balance_formatted": self.balance_formatted,
        }


@dataclass(frozen=True)
class TokenBalance:
    """Point-in-time token balance."""
    token_address: str
    decimals: int
    balance: str
    balance_formatted: str
    symbol: Optional[str] = None
    name: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_address": self.token_address,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "balance": self.balance,
            "balance_formatted": self.balance_formatted,
        }


@dataclass(frozen=True)
class ExtendedKeyInfo:
    """Parsed extended public key."""
    xpub: str
    address_type: AddressType
    is_testnet: bool
    fingerprint: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "xpub": self.xpub,
            "address_type": self.address_type.value,
            "address_type_name": self.address_type.display_name,
            "is_testnet": self.is_testnet,
            "fingerprint": self.fingerprint,
        }


@dataclass(frozen=True)
class DerivedAddress:
    """An address at a relative path "chain/index" below the extended key."""
    address: str
    derivation_path: str
    index: int
    is_change: bool
    address_type: AddressType


@dataclass
class XpubPortfolio:
    """Receiving and change addresses derived from one extended key."""
    info: ExtendedKeyInfo
    receiving_addresses: list[DerivedAddress] = field(default_factory=list)
    change_addresses: list[DerivedAddress] = field(default_factory=list)

    def all_addresses(self) -> list[str]:
        return [a.address for a in self.receiving_addresses + self.change_addresses]


def format_units(raw: int, decimals: int, fixed: bool = False) -> str:
    """
    Render an integer amount in the smallest unit as a decimal string.

    fixed=True keeps every fractional digit ("1.00000000"); otherwise
    trailing zeros are trimmed down to one digit ("1.0", "1.5").
    """
    if raw < 0:
        raise ValueError(f"Negative amount: {raw}")
    if decimals <= 0:
        return str(raw)
    whole, frac = divmod(raw, 10 ** decimals)
    frac_str = str(frac).rjust(decimals, "0")
    if not fixed:
        frac_str = frac_str.rstrip("0") or "0"
    return f"{whole}.{frac_str}"
