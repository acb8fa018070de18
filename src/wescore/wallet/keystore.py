"""
Password-encrypted private key storage (version 3 JSON keystore).

The private key is encrypted with AES-256-GCM under a key derived by
PBKDF2-HMAC-SHA256. The stored ciphertext is the GCM ciphertext followed by
its 16-byte tag, and an HMAC-SHA256 over it (keyed with the derived key) is
checked before any decryption is attempted.
"""

from __future__ import annotations

import hmac
import os
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from wescore.address import from_hex
from wescore.constants import (
    GCM_TAG_SIZE,
    KEYSTORE_CIPHER,
    KEYSTORE_DKLEN,
    KEYSTORE_IV_SIZE,
    KEYSTORE_KDF,
    KEYSTORE_PRF,
    KEYSTORE_SALT_SIZE,
    KEYSTORE_VERSION,
    PBKDF2_ITERATIONS,
)
from wescore.crypto import CryptoProvider, get_default_provider
from wescore.errors import (
    MalformedKeystoreError,
    UnsupportedVersionError,
    WesError,
    WrongPasswordError,
)
from wescore.wallet.keys import Wallet


class KdfParams(BaseModel):
    c: int = Field(..., ge=1)
    dklen: int = KEYSTORE_DKLEN
    prf: str = KEYSTORE_PRF
    salt: str


class CipherParams(BaseModel):
    iv: str
    tag: str | None = None


class KeystoreCrypto(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kdf: str
    kdfparams: KdfParams
    cipher: str
    ciphertext: str
    iv: str | None = None
    cipherparams: CipherParams | None = None
    mac: str


class KeystoreRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: int
    crypto: KeystoreCrypto
    address: str

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True, indent=2)

    @classmethod
    def from_json(cls, data: str | bytes) -> KeystoreRecord:
        return cls.model_validate_json(data)

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(self.to_json())
        logger.info(f"Keystore written to {path}")

    @classmethod
    def load(cls, path: Path) -> KeystoreRecord:
        return cls.from_json(path.read_text(encoding="utf-8"))


class Keystore:
    def __init__(self, provider: CryptoProvider | None = None):
        self.provider = provider or get_default_provider()

    def create(self, wallet: Wallet, password: str) -> KeystoreRecord:
        salt = self.provider.random_bytes(KEYSTORE_SALT_SIZE)
        iv = self.provider.random_bytes(KEYSTORE_IV_SIZE)
        key = self._derive_key(password, salt, PBKDF2_ITERATIONS)

        encrypted, tag = self.provider.aes_gcm_encrypt(
            key, iv, bytes.fromhex(wallet.export_private_key())
        )
        ciphertext = encrypted + tag
        mac = self.provider.hmac_sha256(key, ciphertext)

        logger.debug(f"Created keystore for {wallet.address_hex}")
        return KeystoreRecord(
            version=KEYSTORE_VERSION,
            crypto=KeystoreCrypto(
                kdf=KEYSTORE_KDF,
                kdfparams=KdfParams(
                    c=PBKDF2_ITERATIONS, dklen=KEYSTORE_DKLEN, prf=KEYSTORE_PRF, salt=salt.hex()
                ),
                cipher=KEYSTORE_CIPHER,
                ciphertext=ciphertext.hex(),
                iv=iv.hex(),
                mac=mac.hex(),
            ),
            address=wallet.address_hex,
        )

    def recover(self, record: KeystoreRecord, password: str) -> Wallet:
        """
        Decrypt a keystore record.

        Raises:
            UnsupportedVersionError: version, KDF, PRF or cipher not accepted
            MalformedKeystoreError: a field is not valid hex or out of range
            WrongPasswordError: MAC mismatch or failed authenticated decryption
        """
        self._check_format(record)
        params = record.crypto.kdfparams
        if params.c < 1:
            raise MalformedKeystoreError(f"Invalid PBKDF2 iteration count: {params.c}")
        try:
            salt = from_hex(params.salt)
            stored_mac = from_hex(record.crypto.mac)
            stored_ciphertext = from_hex(record.crypto.ciphertext)
            iv, ciphertext, tag = self._split_cipher_fields(record)
        except ValueError as e:
            raise MalformedKeystoreError(f"Malformed keystore field: {e}") from e
        if not iv:
            raise MalformedKeystoreError("Keystore IV is empty")

        key = self._derive_key(password, salt, params.c)

        expected_mac = self.provider.hmac_sha256(key, stored_ciphertext)
        if not hmac.compare_digest(stored_mac, expected_mac):
            raise WrongPasswordError("Keystore MAC mismatch")

        try:
            private_key = self.provider.aes_gcm_decrypt(key, iv, ciphertext, tag)
        except ValueError as e:
            raise WrongPasswordError("Keystore decryption failed") from e

        wallet = Wallet(private_key, self.provider)
        if wallet.address.hex() != record.address.lower().removeprefix("0x"):
            logger.warning(
                f"Keystore address {record.address} does not match decrypted key "
                f"{wallet.address_hex}"
            )
        return wallet

    def verify_password(self, record: KeystoreRecord, password: str) -> bool:
        try:
            self.recover(record, password)
        except WesError as e:
            logger.debug(f"Keystore password check failed: {e}")
            return False
        return True

    def _derive_key(self, password: str, salt: bytes, iterations: int) -> bytes:
        return self.provider.pbkdf2_sha256(
            password.encode("utf-8"), salt, iterations, KEYSTORE_DKLEN
        )

    @staticmethod
    def _check_format(record: KeystoreRecord) -> None:
        crypto = record.crypto
        if record.version != KEYSTORE_VERSION:
            raise UnsupportedVersionError(f"Unsupported keystore version: {record.version}")
        if crypto.kdf != KEYSTORE_KDF:
            raise UnsupportedVersionError(f"Unsupported KDF: {crypto.kdf}")
        if crypto.kdfparams.prf != KEYSTORE_PRF or crypto.kdfparams.dklen != KEYSTORE_DKLEN:
            raise UnsupportedVersionError(
                f"Unsupported KDF parameters: prf={crypto.kdfparams.prf} "
                f"dklen={crypto.kdfparams.dklen}"
            )
        if crypto.cipher != KEYSTORE_CIPHER:
            raise UnsupportedVersionError(f"Unsupported cipher: {crypto.cipher}")

    @staticmethod
    def _split_cipher_fields(record: KeystoreRecord) -> tuple[bytes, bytes, bytes]:
        crypto = record.crypto
        raw = from_hex(crypto.ciphertext)
        iv_hex = crypto.cipherparams.iv if crypto.cipherparams else crypto.iv
        if iv_hex is None:
            raise UnsupportedVersionError("Keystore record has no IV")
        iv = from_hex(iv_hex)

        # Some writers keep the GCM tag in cipherparams instead of appending it
        if crypto.cipherparams is not None and crypto.cipherparams.tag:
            return iv, raw, from_hex(crypto.cipherparams.tag)
        if len(raw) <= GCM_TAG_SIZE:
            raise WrongPasswordError("Keystore ciphertext is truncated")
        return iv, raw[:-GCM_TAG_SIZE], raw[-GCM_TAG_SIZE:]
