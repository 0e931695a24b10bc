"""
Extended Public Keys - Watch-only Bitcoin address derivation.

============================================================
PURPOSE
============================================================
Turn one account-level extended public key into the receiving (0/i)
and change (1/i) addresses of a wallet, without any private key.

Prefix -> address type and network:
- xpub / tpub: Legacy (P2PKH)
- ypub / upub: Nested SegWit (P2SH-P2WPKH)
- zpub / vpub: Native SegWit (P2WPKH)

SLIP-132 prefixes (ypub, zpub, upub, vpub) are normalized to xpub/tpub
version bytes before parsing. Taproot (BIP86) has no prefix of its own
and is reached through the address_type override.

Derivation is a pure function of (key, chain, index).

============================================================
"""

import hashlib
import hmac
from dataclasses import dataclass
from typing import Optional

import base58
import bech32
from Crypto.Hash import RIPEMD160
from ecdsa import SECP256k1, VerifyingKey
from ecdsa.ellipticcurve import INFINITY
from ecdsa.errors import MalformedPointError

from chain_adapters.exceptions import InternalError, InvalidAddressError
from chain_adapters.models import (
    AddressType,
    DerivedAddress,
    ExtendedKeyInfo,
    XpubPortfolio,
)


# ============================================================
# CONSTANTS
# ============================================================

XPUB_MIN_LENGTH = 111
XPUB_MAX_LENGTH = 112
PAYLOAD_LENGTH = 78

VERSION_XPUB = bytes.fromhex("0488B21E")
VERSION_TPUB = bytes.fromhex("043587CF")

# prefix -> (address type, is_testnet, standard version bytes)
PREFIXES: dict[str, tuple[AddressType, bool, bytes]] = {
    "xpub": (AddressType.LEGACY, False, VERSION_XPUB),
    "ypub": (AddressType.NESTED_SEGWIT, False, VERSION_XPUB),
    "zpub": (AddressType.NATIVE_SEGWIT, False, VERSION_XPUB),
    "tpub": (AddressType.LEGACY, True, VERSION_TPUB),
    "upub": (AddressType.NESTED_SEGWIT, True, VERSION_TPUB),
    "vpub": (AddressType.NATIVE_SEGWIT, True, VERSION_TPUB),
}

HARDENED_OFFSET = 0x80000000
BECH32M_CONST = 0x2BC830A3

_CURVE_ORDER = SECP256k1.order


@dataclass(frozen=True)
class _Network:
    p2pkh_version: int
    p2sh_version: int
    hrp: str


MAINNET = _Network(p2pkh_version=0x00, p2sh_version=0x05, hrp="bc")
TESTNET = _Network(p2pkh_version=0x6F, p2sh_version=0xC4, hrp="tb")


# ============================================================
# HASHING & ENCODING
# ============================================================

def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))."""
    return RIPEMD160.new(hashlib.sha256(data).digest()).digest()


def tagged_hash(tag: str, data: bytes) -> bytes:
    tag_hash = hashlib.sha256(tag.encode()).digest()
    return hashlib.sha256(tag_hash + tag_hash + data).digest()


def bech32m_encode(hrp: str, witver: int, witprog: bytes) -> str:
    """Segwit v1+ address (BIP350); the bech32 package only checksums v0."""
    data = [witver] + bech32.convertbits(witprog, 8, 5)
    values = bech32.bech32_hrp_expand(hrp) + data
    polymod = bech32.bech32_polymod(values + [0] * 6) ^ BECH32M_CONST
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(bech32.CHARSET[d] for d in data + checksum)


def _compress(point) -> bytes:
    prefix = b"\x03" if point.y() & 1 else b"\x02"
    return prefix + point.x().to_bytes(32, "big")


# ============================================================
# EXTENDED KEY
# ============================================================

@dataclass(frozen=True)
class ExtendedPublicKey:
    """Decoded BIP32 extended public key."""
    version: bytes
    depth: int
    parent_fingerprint: bytes
    child_number: int
    chain_code: bytes
    key: bytes

    @property
    def point(self):
        return VerifyingKey.from_string(self.key, curve=SECP256k1).pubkey.point

    @property
    def fingerprint(self) -> bytes:
        return hash160(self.key)[:4]

    @classmethod
    def from_payload(cls, payload: bytes) -> "ExtendedPublicKey":
        if len(payload) != PAYLOAD_LENGTH:
            raise InvalidAddressError(
                f"Invalid xPub length: expected {PAYLOAD_LENGTH} bytes, got {len(payload)}"
            )
        key = payload[45:78]
        if key[0] not in (2, 3):
            raise InvalidAddressError("xPub does not hold a compressed public key")
        xkey = cls(
            version=payload[0:4],
            depth=payload[4],
            parent_fingerprint=payload[5:9],
            child_number=int.from_bytes(payload[9:13], "big"),
            chain_code=payload[13:45],
            key=key,
        )
        try:
            xkey.point
        except MalformedPointError as e:
            raise InvalidAddressError(
                "xPub key is not a point on secp256k1",
                original_error=e,
            )
        return xkey

    def derive_child(self, index: int) -> "ExtendedPublicKey":
        """Non-hardened CKDpub."""
        if not 0 <= index < HARDENED_OFFSET:
            raise InvalidAddressError(
                f"Cannot derive hardened or negative index {index} from a public key"
            )

        digest = hmac.new(
            self.chain_code,
            self.key + index.to_bytes(4, "big"),
            hashlib.sha512,
        ).digest()
        il = int.from_bytes(digest[:32], "big")
        if il >= _CURVE_ORDER:
            raise InternalError(f"Derived tweak out of range at index {index}")

        child = SECP256k1.generator * il + self.point
        if child == INFINITY:
            raise InternalError(f"Derived point at infinity at index {index}")

        return ExtendedPublicKey(
            version=self.version,
            depth=self.depth + 1,
            parent_fingerprint=self.fingerprint,
            child_number=index,
            chain_code=digest[32:],
            key=_compress(child),
        )


def _detect_prefix(xpub: str) -> tuple[AddressType, bool, bytes]:
    entry = PREFIXES.get(xpub[:4])
    if entry is None:
        raise InvalidAddressError(
            f"Unknown xPub prefix: {xpub[:4]}. "
            "Expected xpub/ypub/zpub (mainnet) or tpub/upub/vpub (testnet)",
            address=xpub,
        )
    return entry


def _check_length(xpub: str) -> None:
    if not XPUB_MIN_LENGTH <= len(xpub) <= XPUB_MAX_LENGTH:
        raise InvalidAddressError(
            f"Invalid xPub length: {len(xpub)}. "
            f"Expected {XPUB_MIN_LENGTH}-{XPUB_MAX_LENGTH} characters",
            address=xpub,
        )


def to_standard_xpub(xpub: str) -> str:
    """Re-encode a SLIP-132 key with xpub/tpub version bytes."""
    xpub = xpub.strip()
    _check_length(xpub)
    _, _, version = _detect_prefix(xpub)
    payload = _decode_payload(xpub)
    return base58.b58encode_check(version + payload[4:]).decode()


def _decode_payload(xpub: str) -> bytes:
    try:
        payload = base58.b58decode_check(xpub)
    except ValueError as e:
        raise InvalidAddressError(
            f"Invalid base58 encoding: {e}",
            address=xpub,
            original_error=e,
        )
    if len(payload) != PAYLOAD_LENGTH:
        raise InvalidAddressError(
            f"Invalid xPub length: expected {PAYLOAD_LENGTH} bytes, got {len(payload)}",
            address=xpub,
        )
    return payload


def _load(xpub: str) -> tuple[ExtendedKeyInfo, ExtendedPublicKey]:
    xpub = xpub.strip()
    _check_length(xpub)
    address_type, is_testnet, version = _detect_prefix(xpub)
    payload = _decode_payload(xpub)
    key = ExtendedPublicKey.from_payload(version + payload[4:])
    info = ExtendedKeyInfo(
        xpub=xpub,
        address_type=address_type,
        is_testnet=is_testnet,
        fingerprint=key.fingerprint.hex(),
    )
    return info, key


# ============================================================
# PUBLIC API
# ============================================================

def parse_xpub(xpub: str) -> ExtendedKeyInfo:
    """Validate an extended public key and describe it."""
    info, _ = _load(xpub)
    return info


def is_xpub(value: str) -> bool:
    """Cheap shape check: length and a known prefix. No decoding."""
    value = value.strip()
    return XPUB_MIN_LENGTH <= len(value) <= XPUB_MAX_LENGTH and value[:4] in PREFIXES


def get_xpub_address_type_name(xpub: str) -> str:
    address_type, _, _ = _detect_prefix(xpub.strip())
    return address_type.display_name


def render_address(key: bytes, address_type: AddressType, is_testnet: bool) -> str:
    """Encode a compressed public key as an address of the given type."""
    network = TESTNET if is_testnet else MAINNET
    pubkey_hash = hash160(key)

    if address_type is AddressType.LEGACY:
        return base58.b58encode_check(bytes([network.p2pkh_version]) + pubkey_hash).decode()

    if address_type is AddressType.NESTED_SEGWIT:
        redeem_script = b"\x00\x14" + pubkey_hash
        return base58.b58encode_check(
            bytes([network.p2sh_version]) + hash160(redeem_script)
        ).decode()

    if address_type is AddressType.NATIVE_SEGWIT:
        return bech32.encode(network.hrp, 0, pubkey_hash)

    if address_type is AddressType.TAPROOT:
        # BIP86: key-path only, tweak with an empty script tree
        internal = VerifyingKey.from_string(b"\x02" + key[1:], curve=SECP256k1).pubkey.point
        tweak = int.from_bytes(tagged_hash("TapTweak", key[1:]), "big")
        if tweak >= _CURVE_ORDER:
            raise InternalError("Taproot tweak out of range")
        output = internal + SECP256k1.generator * tweak
        if output == INFINITY:
            raise InternalError("Taproot output key at infinity")
        return bech32m_encode(network.hrp, 1, output.x().to_bytes(32, "big"))

    raise InternalError(f"Unhandled address type: {address_type}")


def _address_at(
    chain_key: ExtendedPublicKey,
    chain: int,
    index: int,
    address_type: AddressType,
    is_testnet: bool,
) -> DerivedAddress:
    return DerivedAddress(
        address=render_address(chain_key.derive_child(index).key, address_type, is_testnet),
        derivation_path=f"{chain}/{index}",
        index=index,
        is_change=chain == 1,
        address_type=address_type,
    )


def derive_address(
    xpub: str,
    chain: int,
    index: int,
    address_type: Optional[AddressType] = None,
) -> DerivedAddress:
    """Address at relative path chain/index; address_type overrides the prefix."""
    if chain not in (0, 1):
        raise InvalidAddressError(f"Chain must be 0 (receiving) or 1 (change), got {chain}")
    info, key = _load(xpub)
    return _address_at(
        key.derive_child(chain), chain, index,
        address_type or info.address_type, info.is_testnet,
    )


def derive_addresses(
    xpub: str,
    receiving_count: int,
    change_count: int,
    address_type: Optional[AddressType] = None,
) -> XpubPortfolio:
    """First receiving_count receiving and change_count change addresses."""
    info, key = _load(xpub)
    address_type = address_type or info.address_type
    receiving, change = key.derive_child(0), key.derive_child(1)

    return XpubPortfolio(
        info=info,
        receiving_addresses=[
            _address_at(receiving, 0, i, address_type, info.is_testnet)
            for i in range(receiving_count)
        ],
        change_addresses=[
            _address_at(change, 1, i, address_type, info.is_testnet)
            for i in range(change_count)
        ],
    )
