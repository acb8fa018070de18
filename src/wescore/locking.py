"""
Locking conditions attached to transaction outputs.

A locking condition states what must be proven to spend an output. There are
seven variants. TimeLock and HeightLock wrap exactly one base condition and
may be chained.

Wire form, as consumed by the settlement node:

    {"type": "singleKey", "single_key_lock": {"required_address_hash": "...", ...}}

Both the ``type`` tag and the variant-specific key are always written because
node components dispatch on either one.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from loguru import logger

from wescore.constants import (
    ADDRESS_SIZE,
    DEFAULT_CONFIRMATION_BLOCKS,
    DEFAULT_CONTRACT_MAX_EXECUTION_MS,
    DEFAULT_LOCK_ALGORITHM,
    DEFAULT_THRESHOLD_SCHEME,
    DEFAULT_THRESHOLD_SECURITY_LEVEL,
    DEFAULT_TIME_SOURCE,
    MAX_LOCK_NESTING,
    MAX_UINT64,
    SIGHASH_ALL,
)
from wescore.errors import LockValidationError


class DelegationOperation(str, Enum):
    REFERENCE = "reference"
    CONSUME = "consume"
    EXECUTE = "execute"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class PublicKeyRef:
    value: bytes
    algorithm: str = DEFAULT_LOCK_ALGORITHM


@dataclass(frozen=True)
class SingleKeyLock:
    required_address_hash: bytes
    algorithm: str = DEFAULT_LOCK_ALGORITHM
    sighash_type: str = SIGHASH_ALL


@dataclass(frozen=True)
class MultiKeyLock:
    threshold: int
    authorized_keys: tuple[PublicKeyRef, ...]
    ordered: bool = False
    algorithm: str = DEFAULT_LOCK_ALGORITHM
    sighash_type: str = SIGHASH_ALL


@dataclass(frozen=True)
class ThresholdLock:
    """n-of-m lock verified with a threshold scheme rather than individual keys"""

    threshold: int
    total_parties: int
    party_keys: tuple[bytes, ...]
    signature_scheme: str = DEFAULT_THRESHOLD_SCHEME
    security_level: int = DEFAULT_THRESHOLD_SECURITY_LEVEL


@dataclass(frozen=True)
class DelegationLock:
    original_owner: bytes
    allowed_delegates: tuple[bytes, ...]
    authorized_operations: tuple[DelegationOperation, ...] = ()
    expiry_blocks: int = 0
    max_value_per_op: int = 0


@dataclass(frozen=True)
class ContractLock:
    contract_address: bytes
    required_method: str
    parameter_schema: str = ""
    state_requirements: tuple[str, ...] = ()
    max_execution_time_ms: int = DEFAULT_CONTRACT_MAX_EXECUTION_MS


@dataclass(frozen=True)
class TimeLock:
    unlock_timestamp: int
    base_lock: LockingCondition
    time_source: str = DEFAULT_TIME_SOURCE


@dataclass(frozen=True)
class HeightLock:
    unlock_height: int
    base_lock: LockingCondition
    confirmation_blocks: int = DEFAULT_CONFIRMATION_BLOCKS


LockingCondition = Union[
    SingleKeyLock,
    MultiKeyLock,
    ThresholdLock,
    DelegationLock,
    ContractLock,
    TimeLock,
    HeightLock,
]

# (type tag, nested wire key) per variant
_WIRE_NAMES: dict[type, tuple[str, str]] = {
    SingleKeyLock: ("singleKey", "single_key_lock"),
    MultiKeyLock: ("multiKey", "multi_key_lock"),
    ThresholdLock: ("threshold", "threshold_lock"),
    DelegationLock: ("delegation", "delegation_lock"),
    ContractLock: ("contract", "contract_lock"),
    TimeLock: ("timeLock", "time_lock"),
    HeightLock: ("heightLock", "height_lock"),
}


def default_single_key(address: bytes) -> list[LockingCondition]:
    """Lock that lets only the given address spend, used when none is supplied."""
    return [SingleKeyLock(required_address_hash=address)]


# --- validation -------------------------------------------------------------


@dataclass
class _ValidationContext:
    contract_addresses: list[bytes] = field(default_factory=list)


def validate_locking_conditions(
    conditions: Iterable[LockingCondition],
    allow_cycles: bool = False,
    contract_graph: Mapping[bytes, Iterable[bytes]] | None = None,
) -> None:
    """
    Validate a set of locking conditions.

    Args:
        conditions: Conditions attached to one output or draft
        allow_cycles: Skip the contract dependency cycle check
        contract_graph: Adjacency of contract address to the contract addresses
            its own locking conditions reference, fetched by the caller (see
            resolve_contract_graph). Without it no cycle check is possible.

    Raises:
        LockValidationError: On the first structural violation found
    """
    ctx = _ValidationContext()
    for index, condition in enumerate(conditions):
        try:
            _validate_condition(condition, ctx, path=set())
        except LockValidationError as e:
            raise LockValidationError(f"Locking condition {index}: {e}") from None

    seen: set[bytes] = set()
    for address in ctx.contract_addresses:
        if address in seen:
            raise LockValidationError(f"Duplicate contract address: 0x{address.hex()}")
        seen.add(address)

    if allow_cycles or not ctx.contract_addresses:
        return
    if contract_graph is None:
        logger.warning(
            f"No contract graph supplied, {len(ctx.contract_addresses)} contract lock(s) "
            "not checked for cyclic dependencies"
        )
        return
    for address in ctx.contract_addresses:
        if _reaches(contract_graph, start=address, target=address):
            raise LockValidationError(
                f"Contract 0x{address.hex()} has a cyclic lock dependency on itself"
            )


def _reaches(graph: Mapping[bytes, Iterable[bytes]], start: bytes, target: bytes) -> bool:
    """Whether target is reachable from start in one or more steps."""
    stack = list(graph.get(start, ()))
    visited: set[bytes] = set()
    while stack:
        node = stack.pop()
        if node == target:
            return True
        if node in visited:
            continue
        visited.add(node)
        stack.extend(graph.get(node, ()))
    return False


def _validate_condition(condition: Any, ctx: _ValidationContext, path: set[int]) -> None:
    # Identity path guards against a chain that wraps itself
    if id(condition) in path:
        raise LockValidationError("Time/height lock chain contains a cycle")

    if isinstance(condition, SingleKeyLock):
        _require_address(condition.required_address_hash, "SingleKey required address hash")

    elif isinstance(condition, MultiKeyLock):
        if not condition.authorized_keys:
            raise LockValidationError("MultiKey requires at least one authorized key")
        if not 1 <= condition.threshold <= len(condition.authorized_keys):
            raise LockValidationError(
                f"MultiKey threshold {condition.threshold} must be between 1 and "
                f"{len(condition.authorized_keys)}"
            )
        for key in condition.authorized_keys:
            if not key.value:
                raise LockValidationError("MultiKey authorized key is empty")

    elif isinstance(condition, ThresholdLock):
        if condition.total_parties < 1:
            raise LockValidationError("Threshold requires at least one party")
        if not 1 <= condition.threshold <= condition.total_parties:
            raise LockValidationError(
                f"Threshold {condition.threshold} must be between 1 and "
                f"{condition.total_parties}"
            )
        if len(condition.party_keys) != condition.total_parties:
            raise LockValidationError(
                f"Threshold declares {condition.total_parties} parties but has "
                f"{len(condition.party_keys)} keys"
            )

    elif isinstance(condition, DelegationLock):
        _require_address(condition.original_owner, "Delegation original owner")
        if not condition.allowed_delegates:
            raise LockValidationError("Delegation requires at least one delegate")
        for delegate in condition.allowed_delegates:
            _require_address(delegate, "Delegation delegate")
        if condition.expiry_blocks < 0 or condition.max_value_per_op < 0:
            raise LockValidationError("Delegation limits must not be negative")

    elif isinstance(condition, ContractLock):
        _require_address(condition.contract_address, "Contract address")
        if not condition.required_method:
            raise LockValidationError("Contract lock requires a method name")
        ctx.contract_addresses.append(condition.contract_address)

    elif isinstance(condition, (TimeLock, HeightLock)):
        if isinstance(condition, TimeLock):
            _require_uint64(condition.unlock_timestamp, "TimeLock unlock timestamp")
        else:
            _require_uint64(condition.unlock_height, "HeightLock unlock height")
            if condition.confirmation_blocks < 0:
                raise LockValidationError("HeightLock confirmation blocks must not be negative")
        if condition.base_lock is None:
            raise LockValidationError(f"{type(condition).__name__} requires a base lock")
        _validate_condition(condition.base_lock, ctx, path | {id(condition)})

    else:
        raise LockValidationError(f"Unknown locking condition type: {type(condition).__name__}")


def _require_address(value: bytes, what: str) -> None:
    if not isinstance(value, bytes) or len(value) != ADDRESS_SIZE:
        raise LockValidationError(f"{what} must be {ADDRESS_SIZE} bytes")


def _require_uint64(value: int, what: str) -> None:
    if not 0 <= value <= MAX_UINT64:
        raise LockValidationError(f"{what} out of range: {value}")


def referenced_contracts(conditions: Iterable[LockingCondition]) -> list[bytes]:
    """Contract addresses referenced by the conditions, including wrapped ones."""
    found: list[bytes] = []
    for condition in conditions:
        while isinstance(condition, (TimeLock, HeightLock)):
            condition = condition.base_lock
        if isinstance(condition, ContractLock):
            found.append(condition.contract_address)
    return found


async def resolve_contract_graph(
    roots: Iterable[bytes],
    lookup: Callable[[bytes], Awaitable[Iterable[LockingCondition]]],
    max_nodes: int = 256,
) -> dict[bytes, list[bytes]]:
    """
    Build the contract dependency graph reachable from roots.

    Args:
        roots: Contract addresses to start from
        lookup: Returns the locking conditions guarding a contract
        max_nodes: Upper bound on contracts fetched

    Returns:
        Adjacency mapping suitable for validate_locking_conditions
    """
    graph: dict[bytes, list[bytes]] = {}
    queue = deque(roots)
    while queue:
        address = queue.popleft()
        if address in graph:
            continue
        if len(graph) >= max_nodes:
            raise LockValidationError(f"Contract graph exceeds {max_nodes} contracts")
        edges = referenced_contracts(await lookup(address))
        graph[address] = edges
        queue.extend(e for e in edges if e not in graph)
    logger.debug(f"Resolved contract graph with {len(graph)} contracts")
    return graph


# --- encoding ---------------------------------------------------------------


def encode_locking_condition(condition: LockingCondition) -> dict[str, Any]:
    type_tag, key = _WIRE_NAMES[type(condition)]
    return {"type": type_tag, key: _encode_body(condition)}


def encode_locking_conditions(conditions: Iterable[LockingCondition]) -> list[dict[str, Any]]:
    return [encode_locking_condition(c) for c in conditions]


def _encode_body(condition: LockingCondition) -> dict[str, Any]:
    if isinstance(condition, SingleKeyLock):
        return {
            "required_address_hash": condition.required_address_hash.hex(),
            "required_algorithm": condition.algorithm,
            "sighash_type": condition.sighash_type,
        }
    if isinstance(condition, MultiKeyLock):
        return {
            "required_signatures": condition.threshold,
            "authorized_keys": [
                {"value": k.value.hex(), "algorithm": k.algorithm}
                for k in condition.authorized_keys
            ],
            "required_algorithm": condition.algorithm,
            "require_ordered_signatures": condition.ordered,
            "sighash_type": condition.sighash_type,
        }
    if isinstance(condition, ThresholdLock):
        return {
            "threshold": condition.threshold,
            "total_parties": condition.total_parties,
            "party_verification_keys": [k.hex() for k in condition.party_keys],
            "signature_scheme": condition.signature_scheme,
            "security_level": condition.security_level,
        }
    if isinstance(condition, DelegationLock):
        return {
            "original_owner": condition.original_owner.hex(),
            "allowed_delegates": [d.hex() for d in condition.allowed_delegates],
            "authorized_operations": [op.value for op in condition.authorized_operations],
            "expiry_duration_blocks": condition.expiry_blocks,
            "max_value_per_operation": condition.max_value_per_op,
        }
    if isinstance(condition, ContractLock):
        return {
            "contract_address": condition.contract_address.hex(),
            "required_method": condition.required_method,
            "parameter_schema": condition.parameter_schema,
            "state_requirements": list(condition.state_requirements),
            "max_execution_time_ms": condition.max_execution_time_ms,
        }
    if isinstance(condition, TimeLock):
        return {
            "unlock_timestamp": condition.unlock_timestamp,
            "base_lock": encode_locking_condition(condition.base_lock),
            "time_source": condition.time_source,
        }
    if isinstance(condition, HeightLock):
        return {
            "unlock_height": condition.unlock_height,
            "base_lock": encode_locking_condition(condition.base_lock),
            "confirmation_blocks": condition.confirmation_blocks,
        }
    raise TypeError(f"Not a locking condition: {type(condition).__name__}")


# --- decoding ---------------------------------------------------------------

_KEY_BY_TAG = {tag: key for tag, key in _WIRE_NAMES.values()}
_TAG_BY_KEY = {key: tag for tag, key in _WIRE_NAMES.values()}


def decode_locking_condition(wire: Any) -> LockingCondition | None:
    """
    Decode one wire entry.

    Unknown variants and malformed entries return None with a warning, so a
    list containing newer variants can still be read. An entry is malformed
    when a field is missing or mistyped, when it fails structural validation
    (for example an owner hash that is not 20 bytes) or when its time/height
    lock chain is nested deeper than MAX_LOCK_NESTING.
    """
    try:
        condition = _decode(wire, depth=0)
        if condition is not None:
            _validate_condition(condition, _ValidationContext(), path=set())
        return condition
    except (KeyError, TypeError, ValueError, AttributeError, LockValidationError) as e:
        logger.warning(f"Ignoring malformed locking condition: {e}")
        return None


def decode_locking_conditions(wire: Iterable[Any]) -> list[LockingCondition]:
    decoded = (decode_locking_condition(entry) for entry in wire)
    return [c for c in decoded if c is not None]


def _decode(wire: Any, depth: int) -> LockingCondition | None:
    """Decode without validation; None for an unknown variant."""
    if depth > MAX_LOCK_NESTING:
        raise ValueError(f"lock chain nested deeper than {MAX_LOCK_NESTING}")
    if not isinstance(wire, Mapping):
        raise TypeError(f"expected an object, got {type(wire).__name__}")

    type_tag = wire.get("type")
    if type_tag is None:
        lock_keys = [k for k in wire if k in _TAG_BY_KEY]
        if len(lock_keys) != 1:
            raise ValueError("no type tag and no single variant key")
        type_tag = _TAG_BY_KEY[lock_keys[0]]
    if not isinstance(type_tag, str):
        raise TypeError(f"type tag must be a string, got {type(type_tag).__name__}")

    key = _KEY_BY_TAG.get(type_tag)
    if key is None:
        logger.warning(f"Ignoring unknown locking condition type: {type_tag}")
        return None
    body = wire[key]
    if not isinstance(body, Mapping):
        raise TypeError(f"{key} must be an object")
    return _decode_body(type_tag, body, depth)


def _hex(value: str) -> bytes:
    return bytes.fromhex(value.removeprefix("0x"))


def _decode_base(body: Mapping[str, Any], depth: int) -> LockingCondition:
    base = _decode(body["base_lock"], depth + 1)
    if base is None:
        raise ValueError("base_lock has an unknown type")
    return base


def _decode_body(type_tag: str, body: Mapping[str, Any], depth: int) -> LockingCondition:
    if type_tag == "singleKey":
        return SingleKeyLock(
            required_address_hash=_hex(body["required_address_hash"]),
            algorithm=body.get("required_algorithm", DEFAULT_LOCK_ALGORITHM),
            sighash_type=body.get("sighash_type", SIGHASH_ALL),
        )
    if type_tag == "multiKey":
        return MultiKeyLock(
            threshold=int(body["required_signatures"]),
            authorized_keys=tuple(
                PublicKeyRef(
                    value=_hex(k["value"]), algorithm=k.get("algorithm", DEFAULT_LOCK_ALGORITHM)
                )
                for k in body["authorized_keys"]
            ),
            ordered=bool(body.get("require_ordered_signatures", False)),
            algorithm=body.get("required_algorithm", DEFAULT_LOCK_ALGORITHM),
            sighash_type=body.get("sighash_type", SIGHASH_ALL),
        )
    if type_tag == "threshold":
        return ThresholdLock(
            threshold=int(body["threshold"]),
            total_parties=int(body["total_parties"]),
            party_keys=tuple(_hex(k) for k in body["party_verification_keys"]),
            signature_scheme=body.get("signature_scheme", DEFAULT_THRESHOLD_SCHEME),
            security_level=int(body.get("security_level", DEFAULT_THRESHOLD_SECURITY_LEVEL)),
        )
    if type_tag == "delegation":
        return DelegationLock(
            original_owner=_hex(body["original_owner"]),
            allowed_delegates=tuple(_hex(d) for d in body["allowed_delegates"]),
            authorized_operations=tuple(
                DelegationOperation(op) for op in body.get("authorized_operations", ())
            ),
            expiry_blocks=int(body.get("expiry_duration_blocks", 0)),
            max_value_per_op=int(body.get("max_value_per_operation", 0)),
        )
    if type_tag == "contract":
        return ContractLock(
            contract_address=_hex(body["contract_address"]),
            required_method=body["required_method"],
            parameter_schema=body.get("parameter_schema", ""),
            state_requirements=tuple(body.get("state_requirements", ())),
            max_execution_time_ms=int(
                body.get("max_execution_time_ms", DEFAULT_CONTRACT_MAX_EXECUTION_MS)
            ),
        )
    if type_tag == "timeLock":
        return TimeLock(
            unlock_timestamp=int(body["unlock_timestamp"]),
            base_lock=_decode_base(body, depth),
            time_source=body.get("time_source", DEFAULT_TIME_SOURCE),
        )
    # heightLock
    return HeightLock(
        unlock_height=int(body["unlock_height"]),
        base_lock=_decode_base(body, depth),
        confirmation_blocks=int(body.get("confirmation_blocks", DEFAULT_CONFIRMATION_BLOCKS)),
    )
