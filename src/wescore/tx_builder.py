"""
Transaction draft builder.

Builds the unsigned draft handed to the settlement node for deferred signing:
- Inputs selected from the sender's UTXO snapshot
- One output to the recipient, with a caller-supplied or default lock
- Change back to the sender, per asset, when the selection overshoots
- Metadata stamped with the caller address

Fees are paid in the native coin according to an explicit FeePolicy.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from loguru import logger

from wescore.address import address_to_base58, address_to_hex, normalize_address
from wescore.backends.base import SettlementBackend
from wescore.constants import MAX_UINT256, SIGN_MODE_DEFER
from wescore.errors import InsufficientBalanceError
from wescore.locking import (
    LockingCondition,
    SingleKeyLock,
    encode_locking_condition,
    referenced_contracts,
    resolve_contract_graph,
    validate_locking_conditions,
)
from wescore.wallet.models import UTXO, CoinSelection
from wescore.wallet.selection import normalize_token_id, select_utxos

# Input count settles in a couple of rounds; more means a pathological policy
MAX_FEE_ROUNDS = 8

ContractLookup = Callable[[bytes], Awaitable[Iterable[LockingCondition]]]


class AssetKind(str, Enum):
    NATIVE_COIN = "native_coin"
    CONTRACT_TOKEN = "contract_token"


@dataclass(frozen=True)
class AssetContent:
    kind: AssetKind
    amount: int
    token_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"asset_type": self.kind.value, "amount": str(self.amount)}
        if self.token_id is not None:
            data["token_id"] = self.token_id
        return data


@dataclass(frozen=True)
class DraftInput:
    tx_id: str
    output_index: int
    reference_only: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_hash": self.tx_id,
            "output_index": self.output_index,
            "is_reference_only": self.reference_only,
        }


@dataclass(frozen=True)
class TransactionOutput:
    owner: bytes
    asset_content: AssetContent
    locking_condition: LockingCondition

    def to_dict(self) -> dict[str, Any]:
        return {
            "output_type": "asset",
            "owner": address_to_hex(self.owner),
            "asset_content": self.asset_content.to_dict(),
            "locking_condition": encode_locking_condition(self.locking_condition),
        }


@dataclass(frozen=True)
class TransactionDraft:
    """Unsigned draft. Immutable so a requested signature hash stays valid."""

    inputs: tuple[DraftInput, ...]
    outputs: tuple[TransactionOutput, ...]
    caller_address: bytes
    fee: int = 0
    extra_metadata: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    sign_mode: str = SIGN_MODE_DEFER

    def __post_init__(self) -> None:
        if not isinstance(self.extra_metadata, MappingProxyType):
            object.__setattr__(self, "extra_metadata", MappingProxyType(dict(self.extra_metadata)))

    @property
    def metadata(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra_metadata)
        data["caller_address"] = address_to_hex(self.caller_address)
        data["fee"] = str(self.fee)
        return data

    def to_dict(self) -> dict[str, Any]:
        return {
            "sign_mode": self.sign_mode,
            "inputs": [i.to_dict() for i in self.inputs],
            "outputs": [o.to_dict() for o in self.outputs],
            "metadata": self.metadata,
        }

    def output_total(self, token_id: str | None = None) -> int:
        wanted = normalize_token_id(token_id)
        return sum(
            o.asset_content.amount
            for o in self.outputs
            if normalize_token_id(o.asset_content.token_id) == wanted
        )


@dataclass
class FeePolicy:
    """
    Native-coin fee for a draft: base + per_input * inputs + per_output * outputs.

    The node does not publish a fee schedule, so the default charges nothing.
    """

    base_fee: int = 0
    per_input_fee: int = 0
    per_output_fee: int = 0

    def estimate(self, num_inputs: int, num_outputs: int) -> int:
        return self.base_fee + self.per_input_fee * num_inputs + self.per_output_fee * num_outputs


def validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"Amount must be an integer, got {type(amount).__name__}")
    if not 0 < amount <= MAX_UINT256:
        raise ValueError(f"Amount out of range: {amount}")


def _asset(amount: int, token_id: str | None) -> AssetContent:
    if token_id is None:
        return AssetContent(kind=AssetKind.NATIVE_COIN, amount=amount)
    return AssetContent(kind=AssetKind.CONTRACT_TOKEN, amount=amount, token_id=token_id)


def _cover_with_fee(
    utxos: Sequence[UTXO],
    amount: int,
    fixed_inputs: int,
    num_outputs: int,
    fee_policy: FeePolicy,
) -> tuple[CoinSelection | None, int]:
    """
    Select native coin for amount plus the fee of a draft without native change.

    fixed_inputs counts inputs already chosen for another asset. Returns
    (None, 0) when nothing native is needed.
    """
    if amount == 0 and fee_policy.estimate(fixed_inputs, num_outputs) == 0:
        return None, 0

    # Input count only grows with the target, so this settles from below
    num_inputs = fixed_inputs + 1
    for _ in range(MAX_FEE_ROUNDS):
        fee = fee_policy.estimate(num_inputs, num_outputs)
        selection = select_utxos(utxos, amount + fee)
        selected_inputs = fixed_inputs + len(selection.utxos)
        if selected_inputs <= num_inputs:
            return selection, fee
        num_inputs = selected_inputs

    raise ValueError(f"Fee estimate did not converge after {MAX_FEE_ROUNDS} rounds")


def _plan_selection(
    utxos: Sequence[UTXO],
    amount: int,
    token_id: str | None,
    fee_policy: FeePolicy,
) -> tuple[CoinSelection, CoinSelection | None, int]:
    """
    Select inputs for amount plus fee.

    Returns (primary selection, separate native selection for the fee when
    sending a token, fee). The fee is sized for a draft without native change
    first. Native excess becomes a change output only when it is larger than
    the per-output fee that output costs; otherwise it is added to the fee.
    """
    if token_id is None:
        primary, fee = _cover_with_fee(utxos, amount, 0, 1, fee_policy)
        assert primary is not None
        fee_selection = None
        excess = primary.total_value - amount - fee
    else:
        primary = select_utxos(utxos, amount, token_id)
        num_outputs = 1 + (primary.total_value > amount)
        fee_selection, fee = _cover_with_fee(
            utxos, 0, len(primary.utxos), num_outputs, fee_policy
        )
        excess = fee_selection.total_value - fee if fee_selection else 0

    if excess > fee_policy.per_output_fee:
        fee += fee_policy.per_output_fee
    elif excess > 0:
        logger.debug(f"Adding native excess of {excess} to the fee instead of change")
        fee += excess
    return primary, fee_selection, fee


def compose_draft(
    sender: bytes,
    recipient: bytes,
    amount: int,
    utxos: Sequence[UTXO],
    token_id: str | None = None,
    lock: LockingCondition | None = None,
    fee_policy: FeePolicy | None = None,
) -> TransactionDraft:
    """
    Compose a draft from a UTXO snapshot without any network access.

    Args:
        sender: Spending address, receives change and is stamped as caller
        recipient: Owner of the primary output
        amount: Amount for the recipient
        utxos: Sender's UTXO snapshot
        token_id: Token to send, None for the native coin
        lock: Lock on the primary output, defaults to the recipient's key
        fee_policy: Native-coin fee model, defaults to no fee

    Raises:
        InsufficientBalanceError: Snapshot cannot cover amount and fee
    """
    fee_policy = fee_policy or FeePolicy()
    primary, fee_selection, fee = _plan_selection(utxos, amount, token_id, fee_policy)

    native_needed = amount + fee if token_id is None else fee
    native_selected = primary.total_value if token_id is None else 0
    if fee_selection is not None:
        native_selected += fee_selection.total_value
    if token_id is not None and primary.total_value < amount:
        raise InsufficientBalanceError(amount, primary.total_value, token_id)
    if native_selected < native_needed:
        raise InsufficientBalanceError(native_needed, native_selected)

    selected = list(primary.utxos) + (list(fee_selection.utxos) if fee_selection else [])
    inputs = tuple(
        DraftInput(tx_id=u.outpoint.tx_id, output_index=u.outpoint.output_index)
        for u in selected
    )

    outputs = [
        TransactionOutput(
            owner=recipient,
            asset_content=_asset(amount, token_id),
            locking_condition=lock or SingleKeyLock(required_address_hash=recipient),
        )
    ]
    change_lock = SingleKeyLock(required_address_hash=sender)
    if token_id is not None and primary.total_value > amount:
        outputs.append(
            TransactionOutput(
                owner=sender,
                asset_content=_asset(primary.total_value - amount, token_id),
                locking_condition=change_lock,
            )
        )
    native_change = native_selected - native_needed
    if native_change > 0:
        outputs.append(
            TransactionOutput(
                owner=sender,
                asset_content=_asset(native_change, None),
                locking_condition=change_lock,
            )
        )

    draft = TransactionDraft(
        inputs=inputs, outputs=tuple(outputs), caller_address=sender, fee=fee
    )
    logger.debug(
        f"Composed draft: {len(inputs)} inputs, {len(outputs)} outputs, "
        f"amount={amount}, fee={fee}"
    )
    return draft


class DraftBuilder:
    """
    Builds transfer drafts from live UTXO snapshots.

    All argument validation happens before the UTXO query, so a bad request
    never reaches the node.

    contract_lookup returns the locking conditions guarding a contract. It
    is needed to reject contract locks with cyclic dependencies; without it
    that check is skipped with a warning.
    """

    def __init__(
        self,
        backend: SettlementBackend,
        fee_policy: FeePolicy | None = None,
        contract_lookup: ContractLookup | None = None,
    ):
        self.backend = backend
        self.fee_policy = fee_policy or FeePolicy()
        self.contract_lookup = contract_lookup

    async def build_transfer(
        self,
        from_address: bytes | str,
        to_address: bytes | str,
        amount: int,
        token_id: str | None = None,
    ) -> TransactionDraft:
        sender = normalize_address(from_address)
        recipient = normalize_address(to_address)
        validate_amount(amount)

        utxos = await self.backend.get_utxos(address_to_base58(sender))
        draft = compose_draft(sender, recipient, amount, utxos, token_id, None, self.fee_policy)
        logger.info(
            f"Built transfer of {amount} {token_id or 'native'} "
            f"from {address_to_hex(sender)} to {address_to_hex(recipient)}"
        )
        return draft

    async def build_with_lock(
        self,
        owner: bytes | str,
        beneficiary: bytes | str,
        amount: int,
        token_id: str | None,
        lock: LockingCondition,
        allow_cycles: bool = False,
    ) -> TransactionDraft:
        """
        Build a draft whose primary output carries an explicit lock.

        Used for escrow, vesting and staking, typically a TimeLock or
        HeightLock over a SingleKey, MultiKey or Contract condition.
        """
        sender = normalize_address(owner)
        recipient = normalize_address(beneficiary)
        validate_amount(amount)
        await self._validate_lock(lock, allow_cycles)

        utxos = await self.backend.get_utxos(address_to_base58(sender))
        draft = compose_draft(sender, recipient, amount, utxos, token_id, lock, self.fee_policy)
        logger.info(
            f"Built {type(lock).__name__} draft of {amount} {token_id or 'native'} "
            f"for {address_to_hex(recipient)}"
        )
        return draft

    async def _validate_lock(self, lock: LockingCondition, allow_cycles: bool) -> None:
        # Structure first, so a malformed lock never triggers contract lookups
        validate_locking_conditions([lock], allow_cycles=True)
        contracts = referenced_contracts([lock])
        if allow_cycles or not contracts:
            return

        graph = None
        if self.contract_lookup is not None:
            graph = await resolve_contract_graph(contracts, self.contract_lookup)
        validate_locking_conditions([lock], contract_graph=graph)
