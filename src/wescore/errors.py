"""
Exception hierarchy for wescore.

Argument validation (address length, amount bounds, empty fields) raises
plain ValueError before any network call. Everything below is a failure the
caller is expected to handle by type.
"""

from __future__ import annotations


class WesError(Exception):
    """Base class for all wescore errors."""


class InvalidKeyError(WesError):
    """Private key has the wrong length or is outside (0, n)."""


class WrongPasswordError(WesError):
    """Keystore MAC or authenticated decryption did not verify."""


class UnsupportedVersionError(WesError):
    """Keystore record uses a version, KDF or cipher we do not accept."""


class MalformedKeystoreError(UnsupportedVersionError):
    """Keystore record field is not valid hex or has an impossible value."""


class LockValidationError(WesError):
    """Locking condition set violates a structural rule."""


class InsufficientBalanceError(WesError):
    def __init__(self, required: int, available: int, token_id: str | None = None):
        self.required = required
        self.available = available
        self.token_id = token_id
        asset = f"token {token_id}" if token_id else "native coin"
        super().__init__(
            f"Insufficient {asset} balance: required {required}, available {available}"
        )


class MalformedResponseError(WesError):
    """Settlement node response is missing a required field."""

    def __init__(self, method: str, detail: str):
        self.method = method
        self.detail = detail
        super().__init__(f"Malformed response from {method}: {detail}")


class RPCError(WesError):
    """JSON-RPC error object returned by the settlement node."""

    def __init__(self, method: str, code: int | str, message: str):
        self.method = method
        self.code = code
        super().__init__(f"RPC error {code} from {method}: {message}")


class TransactionRejectedError(WesError):
    """Broadcast refused by the ledger. Final for that draft."""

    def __init__(self, reason: str, tx_hash: str | None = None):
        self.reason = reason
        self.tx_hash = tx_hash
        super().__init__(f"Transaction rejected: {reason}")


class SigningStateError(WesError):
    """Signing step invoked from the wrong session state."""
