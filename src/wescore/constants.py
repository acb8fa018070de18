"""
WES ledger and client protocol constants.

RPC method names and wire tags are part of the settlement node's contract
and must match it byte for byte.
"""

from __future__ import annotations

# secp256k1 curve order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

PRIVATE_KEY_SIZE = 32
ADDRESS_SIZE = 20
DIGEST_SIZE = 32
COMPACT_SIGNATURE_SIZE = 64

# Base58Check version byte for WES addresses (encodes to a leading "C")
ADDRESS_VERSION_BYTE = 0x1C

MAX_UINT32 = 2**32 - 1
MAX_UINT64 = 2**64 - 1
MAX_UINT256 = 2**256 - 1

# Signature hash scheme
SIGHASH_ALL = "SIGHASH_ALL"

# Drafts are always built for deferred signing by the node
SIGN_MODE_DEFER = "defer_sign"

# Keystore format (version 3 JSON, PBKDF2 + AES-256-GCM)
KEYSTORE_VERSION = 3
KEYSTORE_KDF = "pbkdf2"
KEYSTORE_PRF = "hmac-sha256"
KEYSTORE_CIPHER = "aes-256-gcm"
PBKDF2_ITERATIONS = 262144  # 2**18
KEYSTORE_DKLEN = 32
KEYSTORE_SALT_SIZE = 32
KEYSTORE_IV_SIZE = 12
GCM_TAG_SIZE = 16

# Settlement node JSON-RPC methods
RPC_GET_UTXO = "wes_getUTXO"
RPC_COMPUTE_SIGNATURE_HASH = "wes_computeSignatureHashFromDraft"
RPC_FINALIZE_TRANSACTION = "wes_finalizeTransactionFromDraft"
RPC_SEND_RAW_TRANSACTION = "wes_sendRawTransaction"

# Locking condition defaults understood by the node
DEFAULT_LOCK_ALGORITHM = "ECDSA_SECP256K1"
DEFAULT_TIME_SOURCE = "TIME_SOURCE_BLOCK_TIMESTAMP"
DEFAULT_CONFIRMATION_BLOCKS = 6
DEFAULT_THRESHOLD_SCHEME = "BLS_THRESHOLD"
DEFAULT_THRESHOLD_SECURITY_LEVEL = 256
DEFAULT_CONTRACT_MAX_EXECUTION_MS = 5000

# Deepest chain of time/height locks accepted from the wire
MAX_LOCK_NESTING = 32
