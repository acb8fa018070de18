"""
Deterministic greedy coin selection.

Selection preserves snapshot order and never randomizes, so the same snapshot
always yields the same inputs. It does not try to minimize the input count or
UTXO fragmentation beyond preferring a single covering output.
"""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

from wescore.errors import InsufficientBalanceError
from wescore.wallet.models import UTXO, CoinSelection


def normalize_token_id(token_id: str | None) -> str | None:
    if token_id is None:
        return None
    return token_id.lower().removeprefix("0x")


def token_matches(utxo: UTXO, token_id: str | None) -> bool:
    """None matches only untagged UTXOs; hex ids compare case-insensitively."""
    if token_id is None:
        return utxo.token_id is None
    if utxo.token_id is None:
        return False
    return normalize_token_id(utxo.token_id) == normalize_token_id(token_id)


def filter_utxos(utxos: Iterable[UTXO], token_id: str | None = None) -> list[UTXO]:
    return [u for u in utxos if token_matches(u, token_id)]


def select_utxos(
    utxos: Iterable[UTXO],
    amount: int,
    token_id: str | None = None,
) -> CoinSelection:
    """
    Select UTXOs covering amount for the given token identity.

    A single UTXO that covers the amount on its own is preferred. Otherwise
    UTXOs are accumulated in snapshot order until the target is reached.

    Raises:
        ValueError: amount is not positive
        InsufficientBalanceError: matching UTXOs cannot cover the amount
    """
    if amount <= 0:
        raise ValueError(f"Amount must be positive, got {amount}")

    candidates = filter_utxos(utxos, token_id)

    for utxo in candidates:
        if utxo.amount >= amount:
            logger.debug(f"Selected single UTXO {utxo.outpoint} ({utxo.amount}) for {amount}")
            return CoinSelection(
                utxos=[utxo], total_value=utxo.amount, target=amount, token_id=token_id
            )

    selected: list[UTXO] = []
    total = 0
    for utxo in candidates:
        selected.append(utxo)
        total += utxo.amount
        if total >= amount:
            logger.debug(f"Selected {len(selected)} UTXOs totalling {total} for {amount}")
            return CoinSelection(
                utxos=selected, total_value=total, target=amount, token_id=token_id
            )

    raise InsufficientBalanceError(required=amount, available=total, token_id=token_id)
