"""
Cryptographic capability used by wallets and keystores.

Callers receive a CryptoProvider at construction time instead of looking up
primitives globally, which keeps the key code independent of where the
primitives come from and lets tests inject a deterministic random source.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from abc import ABC, abstractmethod

from coincurve import PrivateKey, PublicKey
from coincurve.ecdsa import cdata_to_der, der_to_cdata, deserialize_compact, serialize_compact
from Crypto.Cipher import AES
from Crypto.Hash import keccak


class CryptoProvider(ABC):
    """Primitives needed for key management and signing."""

    @abstractmethod
    def random_bytes(self, size: int) -> bytes:
        """Cryptographically secure random bytes"""

    @abstractmethod
    def keccak256(self, data: bytes) -> bytes:
        """Keccak-256 (pre-standard SHA-3 padding)"""

    @abstractmethod
    def get_public_key(self, private_key: bytes, compressed: bool = False) -> bytes:
        """secp256k1 public key for a 32-byte secret"""

    @abstractmethod
    def sign(self, private_key: bytes, digest: bytes) -> bytes:
        """Deterministic ECDSA over a 32-byte digest, 64-byte r||s"""

    @abstractmethod
    def verify(self, public_key: bytes, digest: bytes, signature: bytes) -> bool:
        """Check a 64-byte r||s signature over a 32-byte digest"""

    @abstractmethod
    def pbkdf2_sha256(self, password: bytes, salt: bytes, iterations: int, dklen: int) -> bytes:
        """PBKDF2-HMAC-SHA256 key derivation"""

    @abstractmethod
    def aes_gcm_encrypt(self, key: bytes, iv: bytes, plaintext: bytes) -> tuple[bytes, bytes]:
        """AES-GCM without AAD, returns (ciphertext, tag)"""

    @abstractmethod
    def aes_gcm_decrypt(self, key: bytes, iv: bytes, ciphertext: bytes, tag: bytes) -> bytes:
        """AES-GCM without AAD, raises ValueError when the tag does not verify"""

    def sha256(self, data: bytes) -> bytes:
        return hashlib.sha256(data).digest()

    def hmac_sha256(self, key: bytes, data: bytes) -> bytes:
        return hmac.new(key, data, hashlib.sha256).digest()


class DefaultCryptoProvider(CryptoProvider):
    """
    coincurve for secp256k1, pycryptodome for Keccak and AES-GCM, and the
    standard library for PBKDF2 and randomness.
    """

    def random_bytes(self, size: int) -> bytes:
        return secrets.token_bytes(size)

    def keccak256(self, data: bytes) -> bytes:
        return keccak.new(digest_bits=256, data=data).digest()

    def get_public_key(self, private_key: bytes, compressed: bool = False) -> bytes:
        return PrivateKey(private_key).public_key.format(compressed=compressed)

    def sign(self, private_key: bytes, digest: bytes) -> bytes:
        # coincurve produces low-S RFC 6979 signatures in DER form
        der = PrivateKey(private_key).sign(digest, hasher=None)
        return serialize_compact(der_to_cdata(der))

    def verify(self, public_key: bytes, digest: bytes, signature: bytes) -> bool:
        try:
            der = cdata_to_der(deserialize_compact(signature))
            return PublicKey(public_key).verify(der, digest, hasher=None)
        except (ValueError, TypeError):
            return False

    def pbkdf2_sha256(self, password: bytes, salt: bytes, iterations: int, dklen: int) -> bytes:
        return hashlib.pbkdf2_hmac("sha256", password, salt, iterations, dklen)

    def aes_gcm_encrypt(self, key: bytes, iv: bytes, plaintext: bytes) -> tuple[bytes, bytes]:
        cipher = AES.new(key, AES.MODE_GCM, nonce=iv)
        return cipher.encrypt_and_digest(plaintext)

    def aes_gcm_decrypt(self, key: bytes, iv: bytes, ciphertext: bytes, tag: bytes) -> bytes:
        cipher = AES.new(key, AES.MODE_GCM, nonce=iv)
        return cipher.decrypt_and_verify(ciphertext, tag)


_default_provider: CryptoProvider | None = None


def get_default_provider() -> CryptoProvider:
    global _default_provider
    if _default_provider is None:
        _default_provider = DefaultCryptoProvider()
    return _default_provider
