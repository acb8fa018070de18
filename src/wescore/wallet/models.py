"""
Wallet data models.
"""

from __future__ import annotations

from dataclasses import dataclass

from wescore.constants import MAX_UINT32


@dataclass(frozen=True)
class Outpoint:
    """Identity of a previously created output"""

    tx_id: str
    output_index: int

    def __post_init__(self) -> None:
        if not self.tx_id:
            raise ValueError("Outpoint transaction id is empty")
        if not 0 <= self.output_index <= MAX_UINT32:
            raise ValueError(f"Output index out of range: {self.output_index}")

    @classmethod
    def parse(cls, value: str) -> Outpoint:
        """Parse the "txHash:index" wire form."""
        tx_id, sep, index = value.rpartition(":")
        if not sep or not tx_id:
            raise ValueError(f"Invalid outpoint: {value!r}")
        return cls(tx_id=tx_id, output_index=int(index))

    def __str__(self) -> str:
        return f"{self.tx_id}:{self.output_index}"


@dataclass(frozen=True)
class UTXO:
    """Unspent output snapshot as reported by the node"""

    outpoint: Outpoint
    amount: int
    token_id: str | None = None  # None is the native coin

    @property
    def is_native(self) -> bool:
        return self.token_id is None


@dataclass
class CoinSelection:
    """Result of coin selection"""

    utxos: list[UTXO]
    total_value: int
    target: int
    token_id: str | None = None

    @property
    def excess(self) -> int:
        return self.total_value - self.target
