"""
secp256k1 key pair and address for a single signer.
"""

from __future__ import annotations

from loguru import logger

from wescore.address import (
    address_to_base58,
    address_to_hex,
    compress_public_key,
    derive_address,
    from_hex,
)
from wescore.constants import DIGEST_SIZE, PRIVATE_KEY_SIZE, SECP256K1_N
from wescore.crypto import CryptoProvider, get_default_provider
from wescore.errors import InvalidKeyError


def validate_private_key(private_key: bytes) -> None:
    if len(private_key) != PRIVATE_KEY_SIZE:
        raise InvalidKeyError(
            f"Private key must be {PRIVATE_KEY_SIZE} bytes, got {len(private_key)}"
        )
    scalar = int.from_bytes(private_key, "big")
    if not 0 < scalar < SECP256K1_N:
        raise InvalidKeyError("Private key is outside the secp256k1 scalar range")


class Wallet:
    """
    A private key together with its public key and address.

    The private key is held in memory for the lifetime of the object and only
    leaves it through export_private_key() or a Keystore.
    """

    def __init__(self, private_key: bytes, provider: CryptoProvider | None = None):
        validate_private_key(private_key)
        self._provider = provider or get_default_provider()
        self._private_key = bytes(private_key)
        self.public_key = self._provider.get_public_key(self._private_key, compressed=False)
        self.address = derive_address(self.public_key, self._provider)

    @classmethod
    def generate(cls, provider: CryptoProvider | None = None) -> Wallet:
        provider = provider or get_default_provider()
        while True:
            candidate = provider.random_bytes(PRIVATE_KEY_SIZE)
            scalar = int.from_bytes(candidate, "big")
            if 0 < scalar < SECP256K1_N:
                break
            logger.debug("Discarding out-of-range random scalar")
        wallet = cls(candidate, provider)
        logger.info(f"Generated wallet {wallet.address_hex}")
        return wallet

    @classmethod
    def from_private_key(
        cls, private_key: bytes | str, provider: CryptoProvider | None = None
    ) -> Wallet:
        if isinstance(private_key, str):
            try:
                private_key = from_hex(private_key)
            except ValueError as e:
                raise InvalidKeyError("Private key is not valid hex") from e
        return cls(private_key, provider)

    @property
    def provider(self) -> CryptoProvider:
        return self._provider

    @property
    def compressed_public_key(self) -> bytes:
        return compress_public_key(self.public_key)

    @property
    def address_hex(self) -> str:
        return address_to_hex(self.address)

    @property
    def address_base58(self) -> str:
        return address_to_base58(self.address)

    def sign_digest(self, digest: bytes) -> bytes:
        """
        Sign an already hashed 32-byte digest.

        Returns the 64-byte compact (r || s) signature. The digest is signed
        as is; callers hash arbitrary data themselves or use sign_message().
        """
        if len(digest) != DIGEST_SIZE:
            raise ValueError(f"Digest must be {DIGEST_SIZE} bytes, got {len(digest)}")
        return self._provider.sign(self._private_key, digest)

    def sign_message(self, message: bytes) -> bytes:
        return self.sign_digest(self._provider.sha256(message))

    def verify_digest(self, digest: bytes, signature: bytes) -> bool:
        return self._provider.verify(self.public_key, digest, signature)

    def export_private_key(self) -> str:
        """Hex private key without prefix. Handle with care."""
        return self._private_key.hex()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Wallet):
            return NotImplemented
        return self._private_key == other._private_key

    def __hash__(self) -> int:
        return hash(self.address)

    def __repr__(self) -> str:
        return f"Wallet(address={self.address_hex})"
