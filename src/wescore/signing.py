"""
Two-phase signing of transaction drafts.

The settlement node computes the signature hash of a draft, the wallet signs
it locally, and the node assembles the signed transaction:

    BUILT -> HASH_REQUESTED -> SIGNED -> FINALIZED -> SUBMITTED

Any failure moves the session to REJECTED, which is final. The digest is
taken from the node as is and is not recomputed locally. Nothing here retries
a call: a rejected draft has to be rebuilt from a fresh UTXO snapshot.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from loguru import logger

from wescore.address import to_hex
from wescore.backends.base import SendTxResult, SettlementBackend
from wescore.constants import COMPACT_SIGNATURE_SIZE, DIGEST_SIZE, SIGHASH_ALL
from wescore.errors import MalformedResponseError, SigningStateError, TransactionRejectedError
from wescore.tx_builder import TransactionDraft
from wescore.wallet.keys import Wallet

T = TypeVar("T")


class SigningState(str, Enum):
    BUILT = "built"
    HASH_REQUESTED = "hash_requested"
    SIGNED = "signed"
    FINALIZED = "finalized"
    SUBMITTED = "submitted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class SignerContribution:
    signer_index: int
    public_key: bytes  # compressed, 33 bytes
    signature: bytes  # compact r || s, 64 bytes
    digest: bytes


@dataclass
class SigningSession:
    """State of one draft moving through the signing protocol"""

    draft: TransactionDraft
    payload: dict[str, Any]  # wire form, fixed when the session starts
    input_index: int = 0
    sighash_type: str = SIGHASH_ALL
    state: SigningState = SigningState.BUILT
    digest: bytes | None = None
    unsigned_tx: str | None = None
    # Partial signatures keyed by signer index; only the last one is finalized
    contributions: dict[int, SignerContribution] = field(default_factory=dict)
    last_signer: int | None = None
    signed_tx: str | None = None
    tx_hash: str | None = None
    reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (SigningState.SUBMITTED, SigningState.REJECTED)


class SigningCoordinator:
    def __init__(self, backend: SettlementBackend):
        self.backend = backend

    def start(
        self,
        draft: TransactionDraft,
        input_index: int = 0,
        sighash_type: str = SIGHASH_ALL,
    ) -> SigningSession:
        if not 0 <= input_index < len(draft.inputs):
            raise ValueError(
                f"Input index {input_index} out of range for {len(draft.inputs)} inputs"
            )
        return SigningSession(
            draft=draft,
            payload=draft.to_dict(),
            input_index=input_index,
            sighash_type=sighash_type,
        )

    async def request_hash(self, session: SigningSession) -> bytes:
        # A further signer may start a new cycle from SIGNED against the same draft
        self._expect(session, SigningState.BUILT, SigningState.SIGNED)
        result = await self._guard(
            session,
            lambda: self.backend.compute_signature_hash_from_draft(
                session.payload, session.input_index, session.sighash_type
            ),
        )
        if len(result.digest) != DIGEST_SIZE:
            self._reject(session, "signature hash has wrong length")
            raise MalformedResponseError(
                "compute_signature_hash_from_draft",
                f"hash is {len(result.digest)} bytes, expected {DIGEST_SIZE}",
            )

        session.digest = result.digest
        session.unsigned_tx = result.unsigned_tx
        session.state = SigningState.HASH_REQUESTED
        logger.debug(f"Signature hash for input {session.input_index}: {result.digest.hex()}")
        return result.digest

    def sign(self, session: SigningSession, wallet: Wallet, signer_index: int = 0) -> bytes:
        self._expect(session, SigningState.HASH_REQUESTED)
        assert session.digest is not None
        try:
            signature = wallet.sign_digest(session.digest)
        except Exception as e:
            self._reject(session, f"local signing failed: {e}")
            raise
        if len(signature) != COMPACT_SIGNATURE_SIZE:
            self._reject(session, "signature has wrong length")
            raise ValueError(f"Signature must be {COMPACT_SIGNATURE_SIZE} bytes")

        session.contributions[signer_index] = SignerContribution(
            signer_index=signer_index,
            public_key=wallet.compressed_public_key,
            signature=signature,
            digest=session.digest,
        )
        session.last_signer = signer_index
        session.state = SigningState.SIGNED
        logger.debug(f"Signer {signer_index} ({wallet.address_hex}) signed the draft")
        return signature

    async def finalize(self, session: SigningSession) -> str:
        self._expect(session, SigningState.SIGNED)
        assert session.last_signer is not None
        contribution = session.contributions[session.last_signer]

        signed_tx = await self._guard(
            session,
            lambda: self.backend.finalize_transaction_from_draft(
                session.payload,
                session.unsigned_tx,
                session.input_index,
                session.sighash_type,
                to_hex(contribution.public_key),
                to_hex(contribution.signature),
            ),
        )
        session.signed_tx = signed_tx
        session.state = SigningState.FINALIZED
        logger.debug(f"Finalized transaction ({len(signed_tx) // 2} bytes)")
        return signed_tx

    async def submit(self, session: SigningSession) -> SendTxResult:
        """
        Broadcast the finalized transaction.

        Raises:
            TransactionRejectedError: The ledger refused it. The session is
                REJECTED and the draft must not be resubmitted.
        """
        self._expect(session, SigningState.FINALIZED)
        assert session.signed_tx is not None
        signed_tx = session.signed_tx
        result = await self._guard(session, lambda: self.backend.send_raw_transaction(signed_tx))

        session.tx_hash = result.tx_hash
        if not result.accepted:
            reason = result.reason or "unknown reason"
            self._reject(session, reason)
            raise TransactionRejectedError(reason, result.tx_hash)

        session.state = SigningState.SUBMITTED
        logger.info(f"Transaction submitted: {result.tx_hash}")
        return result

    async def sign_and_submit(
        self,
        draft: TransactionDraft,
        wallet: Wallet,
        input_index: int = 0,
        sighash_type: str = SIGHASH_ALL,
    ) -> SendTxResult:
        session = self.start(draft, input_index, sighash_type)
        await self.request_hash(session)
        self.sign(session, wallet)
        await self.finalize(session)
        return await self.submit(session)

    async def sign_and_submit_multi(
        self,
        draft: TransactionDraft,
        wallets: Sequence[Wallet],
        input_index: int = 0,
        sighash_type: str = SIGHASH_ALL,
    ) -> SendTxResult:
        """
        Drive one hash/sign cycle per signer, then finalize with the last one.

        Partial signatures are kept on the session but are not aggregated into
        a single finalize call.
        """
        if not wallets:
            raise ValueError("At least one signer is required")
        session = self.start(draft, input_index, sighash_type)
        for index, wallet in enumerate(wallets):
            await self.request_hash(session)
            self.sign(session, wallet, signer_index=index)
        await self.finalize(session)
        return await self.submit(session)

    @staticmethod
    def _expect(session: SigningSession, *states: SigningState) -> None:
        if session.state not in states:
            expected = " or ".join(s.value for s in states)
            raise SigningStateError(
                f"Signing session is {session.state.value}, expected {expected}"
            )

    @staticmethod
    def _reject(session: SigningSession, reason: str) -> None:
        session.state = SigningState.REJECTED
        session.reason = reason
        logger.warning(f"Signing session rejected: {reason}")

    async def _guard(self, session: SigningSession, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await call()
        except Exception as e:
            self._reject(session, str(e) or type(e).__name__)
            raise
