"""
Address derivation and encoding.

An address is the last 20 bytes of Keccak-256 over the 64-byte uncompressed
public key (without the 0x04 prefix). It travels as 0x-prefixed hex in drafts
and as Base58Check (version byte 0x1C) in UTXO queries.
"""

from __future__ import annotations

import base58
from coincurve import PublicKey

from wescore.constants import ADDRESS_SIZE, ADDRESS_VERSION_BYTE
from wescore.crypto import CryptoProvider, get_default_provider


def to_hex(data: bytes, prefix: bool = True) -> str:
    return ("0x" if prefix else "") + data.hex()


def from_hex(value: str) -> bytes:
    """Decode hex with or without a 0x prefix."""
    if value[:2] in ("0x", "0X"):
        value = value[2:]
    try:
        return bytes.fromhex(value)
    except ValueError as e:
        raise ValueError(f"Invalid hex string: {value!r}") from e


def compress_public_key(public_key: bytes) -> bytes:
    """
    Compress a secp256k1 public key to its 33-byte form.

    Accepts 33-byte compressed, 65-byte uncompressed, or raw 64-byte x||y keys.
    The point is validated on the way through.
    """
    if len(public_key) == 64:
        public_key = b"\x04" + public_key
    if len(public_key) not in (33, 65):
        raise ValueError(f"Invalid public key length: {len(public_key)}")
    return PublicKey(public_key).format(compressed=True)


def decompress_public_key(public_key: bytes) -> bytes:
    if len(public_key) == 64:
        public_key = b"\x04" + public_key
    if len(public_key) not in (33, 65):
        raise ValueError(f"Invalid public key length: {len(public_key)}")
    return PublicKey(public_key).format(compressed=False)


def derive_address(public_key: bytes, provider: CryptoProvider | None = None) -> bytes:
    """
    Derive the 20-byte address of a public key.

    Compressed keys are expanded first, so the same key yields the same
    address in either encoding.
    """
    provider = provider or get_default_provider()
    if len(public_key) == 65 and public_key[0] == 0x04:
        body = public_key[1:]
    elif len(public_key) == 64:
        body = public_key
    else:
        body = decompress_public_key(public_key)[1:]
    return provider.keccak256(body)[-ADDRESS_SIZE:]


def address_to_hex(address: bytes) -> str:
    _check_address(address)
    return to_hex(address)


def address_to_base58(address: bytes) -> str:
    _check_address(address)
    return base58.b58encode_check(bytes([ADDRESS_VERSION_BYTE]) + address).decode("ascii")


def address_from_base58(value: str) -> bytes:
    try:
        payload = base58.b58decode_check(value)
    except ValueError as e:
        raise ValueError(f"Invalid Base58Check address: {value}") from e
    if len(payload) != ADDRESS_SIZE + 1:
        raise ValueError(f"Invalid address payload length: {len(payload)}")
    if payload[0] != ADDRESS_VERSION_BYTE:
        raise ValueError(f"Unexpected address version byte: 0x{payload[0]:02x}")
    return payload[1:]


def normalize_address(value: bytes | str) -> bytes:
    """
    Accept an address as raw bytes, hex (with or without 0x) or Base58Check.
    """
    if isinstance(value, bytes):
        _check_address(value)
        return value
    stripped = value[2:] if value[:2] in ("0x", "0X") else value
    if len(stripped) == ADDRESS_SIZE * 2:
        try:
            return bytes.fromhex(stripped)
        except ValueError:
            pass
    return address_from_base58(value)


def _check_address(address: bytes) -> None:
    if len(address) != ADDRESS_SIZE:
        raise ValueError(f"Address must be {ADDRESS_SIZE} bytes, got {len(address)}")
