"""
Tests for wescore.wallet.keys and wescore.address
"""

from __future__ import annotations

import hashlib

import pytest
from coincurve import PrivateKey

from wescore.address import (
    address_from_base58,
    address_to_base58,
    compress_public_key,
    derive_address,
    from_hex,
    normalize_address,
    to_hex,
)
from wescore.constants import SECP256K1_N
from wescore.errors import InvalidKeyError
from wescore.wallet.keys import Wallet


class TestAddressDerivation:
    """Known vectors and encoding independence."""

    def test_key_one_address(self, wallet_one: Wallet) -> None:
        assert wallet_one.address_hex == "0x7e5f4552091a69125d5dfcb7b8c2659029395bdf"

    def test_key_two_address(self, wallet_two: Wallet) -> None:
        assert wallet_two.address_hex == "0x2b5ad5c4795c026514f8317c7a215e218dccd6cf"

    def test_public_key_is_uncompressed(self, wallet_one: Wallet) -> None:
        assert len(wallet_one.public_key) == 65
        assert wallet_one.public_key[0] == 0x04

    def test_compressed_and_uncompressed_agree(self, wallet_one: Wallet) -> None:
        compressed = wallet_one.compressed_public_key
        assert len(compressed) == 33
        assert derive_address(compressed) == derive_address(wallet_one.public_key)
        assert derive_address(wallet_one.public_key[1:]) == wallet_one.address

    def test_derivation_is_stable(self) -> None:
        wallet = Wallet.generate()
        assert derive_address(wallet.public_key) == derive_address(wallet.public_key)
        assert derive_address(wallet.public_key) == wallet.address

    def test_compression_matches_coincurve(self, key_one: bytes) -> None:
        pub = PrivateKey(key_one).public_key
        assert compress_public_key(pub.format(compressed=False)) == pub.format(compressed=True)
        assert compress_public_key(pub.format(compressed=True)) == pub.format(compressed=True)

    def test_compression_parity_prefix(self, wallet_one: Wallet) -> None:
        y_last = wallet_one.public_key[-1]
        expected_prefix = 0x03 if y_last & 1 else 0x02
        assert wallet_one.compressed_public_key[0] == expected_prefix
        assert wallet_one.compressed_public_key[1:] == wallet_one.public_key[1:33]

    def test_compress_rejects_bad_length(self) -> None:
        with pytest.raises(ValueError):
            compress_public_key(b"\x04" * 40)


class TestAddressEncoding:
    def test_base58_round_trip(self, wallet_one: Wallet) -> None:
        encoded = address_to_base58(wallet_one.address)
        assert address_from_base58(encoded) == wallet_one.address
        assert wallet_one.address_base58 == encoded

    def test_base58_bad_checksum(self, wallet_one: Wallet) -> None:
        encoded = address_to_base58(wallet_one.address)
        tampered = encoded[:-1] + ("2" if encoded[-1] != "2" else "3")
        with pytest.raises(ValueError):
            address_from_base58(tampered)

    def test_normalize_accepts_all_forms(self, wallet_one: Wallet) -> None:
        addr = wallet_one.address
        assert normalize_address(addr) == addr
        assert normalize_address(wallet_one.address_hex) == addr
        assert normalize_address(addr.hex()) == addr
        assert normalize_address(wallet_one.address_base58) == addr

    def test_normalize_rejects_short_bytes(self) -> None:
        with pytest.raises(ValueError):
            normalize_address(b"\x01" * 19)

    def test_hex_helpers(self) -> None:
        assert to_hex(b"\x01\x02") == "0x0102"
        assert to_hex(b"\x01\x02", prefix=False) == "0102"
        assert from_hex("0x0102") == b"\x01\x02"
        assert from_hex("0102") == b"\x01\x02"
        with pytest.raises(ValueError):
            from_hex("0xzz")


class TestWalletKeys:
    def test_rejects_zero_key(self) -> None:
        with pytest.raises(InvalidKeyError):
            Wallet(bytes(32))

    def test_rejects_curve_order(self) -> None:
        with pytest.raises(InvalidKeyError):
            Wallet(SECP256K1_N.to_bytes(32, "big"))

    def test_rejects_short_key(self) -> None:
        with pytest.raises(InvalidKeyError):
            Wallet(b"\x01" * 31)

    def test_from_private_key_hex(self, wallet_one: Wallet) -> None:
        wallet = Wallet.from_private_key("0x" + "00" * 31 + "01")
        assert wallet == wallet_one

    def test_from_private_key_bad_hex(self) -> None:
        with pytest.raises(InvalidKeyError):
            Wallet.from_private_key("not-hex")

    def test_generate_retries_invalid_scalars(self, scripted_random) -> None:
        valid = (12345).to_bytes(32, "big")
        provider = scripted_random(
            [bytes(32), SECP256K1_N.to_bytes(32, "big"), b"\xff" * 32, valid]
        )
        wallet = Wallet.generate(provider)
        assert provider.calls == 4
        assert wallet.export_private_key() == valid.hex()

    def test_repr_hides_secret(self, wallet_one: Wallet) -> None:
        assert wallet_one.export_private_key() not in repr(wallet_one)
        assert wallet_one.address_hex in repr(wallet_one)


class TestSigning:
    def test_signature_is_compact(self, wallet_one: Wallet, digest: bytes) -> None:
        signature = wallet_one.sign_digest(digest)
        assert len(signature) == 64

    def test_signature_is_deterministic(self, wallet_one: Wallet, digest: bytes) -> None:
        assert wallet_one.sign_digest(digest) == wallet_one.sign_digest(digest)

    def test_signature_verifies(self, wallet_one: Wallet, digest: bytes) -> None:
        signature = wallet_one.sign_digest(digest)
        assert wallet_one.verify_digest(digest, signature)
        assert not wallet_one.verify_digest(bytes(32), signature)

    def test_signature_is_low_s(self, wallet_one: Wallet, digest: bytes) -> None:
        s = int.from_bytes(wallet_one.sign_digest(digest)[32:], "big")
        assert s <= SECP256K1_N // 2

    def test_other_key_does_not_verify(
        self, wallet_one: Wallet, wallet_two: Wallet, digest: bytes
    ) -> None:
        signature = wallet_one.sign_digest(digest)
        assert not wallet_two.verify_digest(digest, signature)

    def test_sign_digest_rejects_unhashed_input(self, wallet_one: Wallet) -> None:
        with pytest.raises(ValueError, match="32 bytes"):
            wallet_one.sign_digest(b"hello world")

    def test_sign_message_hashes_first(self, wallet_one: Wallet) -> None:
        message = b"hello world"
        expected = wallet_one.sign_digest(hashlib.sha256(message).digest())
        assert wallet_one.sign_message(message) == expected
