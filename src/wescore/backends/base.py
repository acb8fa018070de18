"""
Base settlement backend interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from wescore.wallet.models import UTXO


@dataclass
class SignatureHashResult:
    digest: bytes
    unsigned_tx: str | None = None  # opaque token handed back at finalize


@dataclass
class SendTxResult:
    accepted: bool
    tx_hash: str | None = None
    reason: str | None = None


class SettlementBackend(ABC):
    """
    Remote authority that owns UTXO state, computes signature hashes from
    drafts, assembles signed transactions and accepts broadcasts.
    """

    @abstractmethod
    async def get_utxos(self, address_base58: str) -> list[UTXO]:
        """Get the UTXO snapshot of an address"""

    @abstractmethod
    async def compute_signature_hash_from_draft(
        self, draft: dict[str, Any], input_index: int, sighash_type: str
    ) -> SignatureHashResult:
        """Get the digest to sign for one input of a draft"""

    @abstractmethod
    async def finalize_transaction_from_draft(
        self,
        draft: dict[str, Any],
        unsigned_tx: str | None,
        input_index: int,
        sighash_type: str,
        pubkey: str,
        signature: str,
    ) -> str:
        """Assemble the signed transaction, returns its hex serialization"""

    @abstractmethod
    async def send_raw_transaction(self, tx_hex: str) -> SendTxResult:
        """Broadcast a signed transaction"""

    async def close(self) -> None:
        """Close backend connection"""
        pass
