"""
Test configuration for wescore tests.
"""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from wescore.backends.base import SendTxResult, SettlementBackend, SignatureHashResult
from wescore.crypto import DefaultCryptoProvider
from wescore.wallet.keys import Wallet
from wescore.wallet.models import UTXO, Outpoint


class ScriptedRandomProvider(DefaultCryptoProvider):
    """Default provider whose random_bytes replays a fixed sequence."""

    def __init__(self, values: list[bytes]):
        self.values = list(values)
        self.calls = 0

    def random_bytes(self, size: int) -> bytes:
        self.calls += 1
        value = self.values.pop(0)
        assert len(value) == size
        return value


@pytest.fixture
def scripted_random() -> type[ScriptedRandomProvider]:
    return ScriptedRandomProvider


@pytest.fixture
def key_one() -> bytes:
    """Private key 1 (not for production use!)."""
    return (1).to_bytes(32, "big")


@pytest.fixture
def wallet_one(key_one: bytes) -> Wallet:
    return Wallet(key_one)


@pytest.fixture
def wallet_two() -> Wallet:
    return Wallet((2).to_bytes(32, "big"))


@pytest.fixture
def make_utxo() -> Callable[..., UTXO]:
    def _make(amount: int, index: int = 0, token_id: str | None = None, tx: str = "aa") -> UTXO:
        return UTXO(
            outpoint=Outpoint(tx_id=tx * 32, output_index=index),
            amount=amount,
            token_id=token_id,
        )

    return _make


@pytest.fixture
def digest() -> bytes:
    return bytes(range(32))


@pytest.fixture
def mock_backend(digest: bytes) -> MagicMock:
    backend = MagicMock(spec=SettlementBackend)
    backend.get_utxos = AsyncMock(return_value=[])
    backend.compute_signature_hash_from_draft = AsyncMock(
        return_value=SignatureHashResult(digest=digest, unsigned_tx="0xdeadbeef")
    )
    backend.finalize_transaction_from_draft = AsyncMock(return_value="0x0102030405")
    backend.send_raw_transaction = AsyncMock(
        return_value=SendTxResult(accepted=True, tx_hash="0x" + "cd" * 32)
    )
    backend.close = AsyncMock()
    return backend
