"""
wescore - Transaction construction and key management for the WES ledger

Provides keys and keystores, locking conditions, coin selection, draft
building and two-phase signing against a settlement node.
"""

__version__ = "0.1.0"

from wescore.address import address_from_base58, address_to_base58, derive_address
from wescore.backends import JsonRpcBackend, SendTxResult, SettlementBackend
from wescore.config import Settings, get_settings
from wescore.crypto import CryptoProvider, DefaultCryptoProvider
from wescore.errors import (
    InsufficientBalanceError,
    InvalidKeyError,
    LockValidationError,
    MalformedKeystoreError,
    MalformedResponseError,
    RPCError,
    SigningStateError,
    TransactionRejectedError,
    UnsupportedVersionError,
    WesError,
    WrongPasswordError,
)
from wescore.locking import (
    ContractLock,
    DelegationLock,
    HeightLock,
    MultiKeyLock,
    SingleKeyLock,
    ThresholdLock,
    TimeLock,
    decode_locking_conditions,
    default_single_key,
    encode_locking_conditions,
    validate_locking_conditions,
)
from wescore.signing import SigningCoordinator, SigningSession, SigningState
from wescore.tx_builder import DraftBuilder, FeePolicy, TransactionDraft
from wescore.wallet import UTXO, Keystore, KeystoreRecord, Outpoint, Wallet, select_utxos

__all__ = [
    "UTXO",
    "ContractLock",
    "CryptoProvider",
    "DefaultCryptoProvider",
    "DelegationLock",
    "DraftBuilder",
    "FeePolicy",
    "HeightLock",
    "InsufficientBalanceError",
    "InvalidKeyError",
    "JsonRpcBackend",
    "Keystore",
    "KeystoreRecord",
    "LockValidationError",
    "MalformedKeystoreError",
    "MalformedResponseError",
    "MultiKeyLock",
    "Outpoint",
    "RPCError",
    "SendTxResult",
    "Settings",
    "SettlementBackend",
    "SigningCoordinator",
    "SigningSession",
    "SigningState",
    "SigningStateError",
    "SingleKeyLock",
    "ThresholdLock",
    "TimeLock",
    "TransactionDraft",
    "TransactionRejectedError",
    "UnsupportedVersionError",
    "Wallet",
    "WesError",
    "WrongPasswordError",
    "address_from_base58",
    "address_to_base58",
    "decode_locking_conditions",
    "default_single_key",
    "derive_address",
    "encode_locking_conditions",
    "get_settings",
    "select_utxos",
    "validate_locking_conditions",
]
