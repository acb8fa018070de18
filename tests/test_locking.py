"""
Tests for wescore.locking
"""

from __future__ import annotations

import pytest

from wescore.errors import LockValidationError
from wescore.locking import (
    ContractLock,
    DelegationLock,
    DelegationOperation,
    HeightLock,
    MultiKeyLock,
    PublicKeyRef,
    SingleKeyLock,
    ThresholdLock,
    TimeLock,
    decode_locking_condition,
    decode_locking_conditions,
    default_single_key,
    encode_locking_condition,
    encode_locking_conditions,
    referenced_contracts,
    resolve_contract_graph,
    validate_locking_conditions,
)

OWNER = b"\x11" * 20
DELEGATE = b"\x22" * 20
CONTRACT_A = b"\xca" * 20
CONTRACT_B = b"\xcb" * 20


def _keys(n: int) -> tuple[PublicKeyRef, ...]:
    return tuple(PublicKeyRef(value=bytes([0x02]) + bytes([i]) * 32) for i in range(n))


def _all_variants() -> list:
    return [
        SingleKeyLock(required_address_hash=OWNER),
        MultiKeyLock(threshold=2, authorized_keys=_keys(3), ordered=True),
        ThresholdLock(threshold=2, total_parties=3, party_keys=(b"\x01", b"\x02", b"\x03")),
        DelegationLock(
            original_owner=OWNER,
            allowed_delegates=(DELEGATE,),
            authorized_operations=(DelegationOperation.CONSUME, DelegationOperation.REFERENCE),
            expiry_blocks=100,
            max_value_per_op=5000,
        ),
        ContractLock(contract_address=CONTRACT_A, required_method="release"),
        TimeLock(unlock_timestamp=1_700_000_000, base_lock=SingleKeyLock(OWNER)),
        HeightLock(
            unlock_height=500,
            base_lock=ContractLock(contract_address=CONTRACT_B, required_method="stake"),
        ),
    ]


class TestValidation:
    def test_all_variants_valid(self) -> None:
        validate_locking_conditions(_all_variants())

    def test_nested_time_locks_valid(self) -> None:
        inner = TimeLock(unlock_timestamp=10, base_lock=SingleKeyLock(OWNER))
        validate_locking_conditions([TimeLock(unlock_timestamp=20, base_lock=inner)])

    def test_height_over_time_lock_valid(self) -> None:
        chain = HeightLock(
            unlock_height=100,
            base_lock=TimeLock(unlock_timestamp=10, base_lock=SingleKeyLock(OWNER)),
        )
        validate_locking_conditions([chain])

    def test_duplicate_contract_rejected(self) -> None:
        conditions = [
            ContractLock(contract_address=CONTRACT_A, required_method="a"),
            ContractLock(contract_address=CONTRACT_A, required_method="b"),
        ]
        with pytest.raises(LockValidationError, match="Duplicate contract"):
            validate_locking_conditions(conditions)

    def test_duplicate_contract_inside_wrapper_rejected(self) -> None:
        conditions = [
            ContractLock(contract_address=CONTRACT_A, required_method="a"),
            TimeLock(
                unlock_timestamp=1,
                base_lock=ContractLock(contract_address=CONTRACT_A, required_method="b"),
            ),
        ]
        with pytest.raises(LockValidationError, match="Duplicate contract"):
            validate_locking_conditions(conditions)

    def test_multikey_threshold_above_key_count(self) -> None:
        with pytest.raises(LockValidationError, match="MultiKey threshold"):
            validate_locking_conditions([MultiKeyLock(threshold=4, authorized_keys=_keys(3))])

    def test_multikey_zero_threshold(self) -> None:
        with pytest.raises(LockValidationError):
            validate_locking_conditions([MultiKeyLock(threshold=0, authorized_keys=_keys(3))])

    def test_multikey_no_keys(self) -> None:
        with pytest.raises(LockValidationError):
            validate_locking_conditions([MultiKeyLock(threshold=1, authorized_keys=())])

    def test_threshold_party_count_mismatch(self) -> None:
        lock = ThresholdLock(threshold=2, total_parties=3, party_keys=(b"\x01", b"\x02"))
        with pytest.raises(LockValidationError, match="parties"):
            validate_locking_conditions([lock])

    def test_threshold_above_parties(self) -> None:
        lock = ThresholdLock(threshold=3, total_parties=2, party_keys=(b"\x01", b"\x02"))
        with pytest.raises(LockValidationError):
            validate_locking_conditions([lock])

    def test_single_key_wrong_length(self) -> None:
        with pytest.raises(LockValidationError, match="20 bytes"):
            validate_locking_conditions([SingleKeyLock(required_address_hash=b"\x01" * 19)])

    def test_delegation_requires_delegates(self) -> None:
        with pytest.raises(LockValidationError, match="delegate"):
            validate_locking_conditions(
                [DelegationLock(original_owner=OWNER, allowed_delegates=())]
            )

    def test_delegation_owner_length(self) -> None:
        with pytest.raises(LockValidationError):
            validate_locking_conditions(
                [DelegationLock(original_owner=b"\x01" * 32, allowed_delegates=(DELEGATE,))]
            )

    def test_contract_requires_method(self) -> None:
        with pytest.raises(LockValidationError, match="method"):
            validate_locking_conditions(
                [ContractLock(contract_address=CONTRACT_A, required_method="")]
            )

    def test_wrapper_requires_base(self) -> None:
        with pytest.raises(LockValidationError, match="base lock"):
            validate_locking_conditions(
                [TimeLock(unlock_timestamp=1, base_lock=None)]  # type: ignore[arg-type]
            )

    def test_invalid_base_is_reported(self) -> None:
        lock = HeightLock(unlock_height=1, base_lock=SingleKeyLock(b"\x00"))
        with pytest.raises(LockValidationError, match="Locking condition 0"):
            validate_locking_conditions([lock])

    def test_self_wrapping_chain_rejected(self) -> None:
        lock = TimeLock(unlock_timestamp=1, base_lock=SingleKeyLock(OWNER))
        object.__setattr__(lock, "base_lock", lock)
        with pytest.raises(LockValidationError, match="cycle"):
            validate_locking_conditions([lock])

    def test_timestamp_out_of_range(self) -> None:
        with pytest.raises(LockValidationError):
            validate_locking_conditions(
                [TimeLock(unlock_timestamp=2**64, base_lock=SingleKeyLock(OWNER))]
            )


class TestContractCycles:
    def test_cycle_rejected(self) -> None:
        graph = {CONTRACT_A: [CONTRACT_B], CONTRACT_B: [CONTRACT_A]}
        lock = ContractLock(contract_address=CONTRACT_A, required_method="run")
        with pytest.raises(LockValidationError, match="cyclic"):
            validate_locking_conditions([lock], contract_graph=graph)

    def test_cycle_allowed_when_permitted(self) -> None:
        graph = {CONTRACT_A: [CONTRACT_B], CONTRACT_B: [CONTRACT_A]}
        lock = ContractLock(contract_address=CONTRACT_A, required_method="run")
        validate_locking_conditions([lock], allow_cycles=True, contract_graph=graph)

    def test_acyclic_graph_accepted(self) -> None:
        graph = {CONTRACT_A: [CONTRACT_B], CONTRACT_B: []}
        lock = ContractLock(contract_address=CONTRACT_A, required_method="run")
        validate_locking_conditions([lock], contract_graph=graph)

    def test_cycle_not_through_root_accepted(self) -> None:
        other = b"\xcc" * 20
        graph = {CONTRACT_A: [CONTRACT_B], CONTRACT_B: [other], other: [CONTRACT_B]}
        lock = ContractLock(contract_address=CONTRACT_A, required_method="run")
        validate_locking_conditions([lock], contract_graph=graph)

    def test_referenced_contracts_unwraps(self) -> None:
        assert referenced_contracts(_all_variants()) == [CONTRACT_A, CONTRACT_B]

    @pytest.mark.asyncio
    async def test_resolve_graph_then_detect_cycle(self) -> None:
        guards = {
            CONTRACT_A: [ContractLock(contract_address=CONTRACT_B, required_method="x")],
            CONTRACT_B: [
                HeightLock(
                    unlock_height=1,
                    base_lock=ContractLock(contract_address=CONTRACT_A, required_method="y"),
                )
            ],
        }
        looked_up: list[bytes] = []

        async def lookup(address: bytes) -> list:
            looked_up.append(address)
            return guards.get(address, [])

        graph = await resolve_contract_graph([CONTRACT_A], lookup)
        assert graph == {CONTRACT_A: [CONTRACT_B], CONTRACT_B: [CONTRACT_A]}
        assert looked_up == [CONTRACT_A, CONTRACT_B]

        with pytest.raises(LockValidationError):
            validate_locking_conditions(
                [ContractLock(contract_address=CONTRACT_A, required_method="run")],
                contract_graph=graph,
            )

    @pytest.mark.asyncio
    async def test_resolve_graph_bounded(self) -> None:
        async def lookup(address: bytes) -> list:
            nxt = (int.from_bytes(address, "big") + 1).to_bytes(20, "big")
            return [ContractLock(contract_address=nxt, required_method="m")]

        with pytest.raises(LockValidationError, match="exceeds"):
            await resolve_contract_graph([CONTRACT_A], lookup, max_nodes=5)


class TestEncoding:
    def test_single_key_wire_form(self) -> None:
        assert encode_locking_condition(SingleKeyLock(OWNER)) == {
            "type": "singleKey",
            "single_key_lock": {
                "required_address_hash": OWNER.hex(),
                "required_algorithm": "ECDSA_SECP256K1",
                "sighash_type": "SIGHASH_ALL",
            },
        }

    def test_every_variant_has_tag_and_key(self) -> None:
        expected = [
            ("singleKey", "single_key_lock"),
            ("multiKey", "multi_key_lock"),
            ("threshold", "threshold_lock"),
            ("delegation", "delegation_lock"),
            ("contract", "contract_lock"),
            ("timeLock", "time_lock"),
            ("heightLock", "height_lock"),
        ]
        encoded = encode_locking_conditions(_all_variants())
        assert [(e["type"], next(k for k in e if k != "type")) for e in encoded] == expected

    def test_height_lock_nests_base(self) -> None:
        lock = HeightLock(unlock_height=42, base_lock=SingleKeyLock(OWNER))
        body = encode_locking_condition(lock)["height_lock"]
        assert body["unlock_height"] == 42
        assert body["confirmation_blocks"] == 6
        assert body["base_lock"]["type"] == "singleKey"

    def test_delegation_fields(self) -> None:
        body = encode_locking_condition(_all_variants()[3])["delegation_lock"]
        assert body == {
            "original_owner": OWNER.hex(),
            "allowed_delegates": [DELEGATE.hex()],
            "authorized_operations": ["consume", "reference"],
            "expiry_duration_blocks": 100,
            "max_value_per_operation": 5000,
        }

    def test_decode_inverts_encode(self) -> None:
        variants = _all_variants()
        assert decode_locking_conditions(encode_locking_conditions(variants)) == variants

    def test_encoding_is_deterministic(self) -> None:
        variants = _all_variants()
        assert encode_locking_conditions(variants) == encode_locking_conditions(variants)

    def test_default_single_key(self) -> None:
        assert default_single_key(OWNER) == [SingleKeyLock(required_address_hash=OWNER)]


class TestDecoding:
    def test_unknown_type_dropped(self) -> None:
        wire = [
            {"type": "quantumLock", "quantum_lock": {}},
            encode_locking_condition(SingleKeyLock(OWNER)),
        ]
        assert decode_locking_conditions(wire) == [SingleKeyLock(OWNER)]

    def test_malformed_entry_dropped(self) -> None:
        wire = [
            {"type": "singleKey", "single_key_lock": {}},
            {"type": "multiKey", "multi_key_lock": {"required_signatures": "x"}},
            "garbage",
        ]
        assert decode_locking_conditions(wire) == []

    def test_type_inferred_from_key(self) -> None:
        wire = {"single_key_lock": {"required_address_hash": "0x" + OWNER.hex()}}
        assert decode_locking_condition(wire) == SingleKeyLock(OWNER)

    def test_bad_base_lock_drops_wrapper(self) -> None:
        wire = {
            "type": "timeLock",
            "time_lock": {"unlock_timestamp": 5, "base_lock": {"type": "mystery"}},
        }
        assert decode_locking_condition(wire) is None

    def test_unknown_operation_is_malformed(self) -> None:
        wire = encode_locking_condition(_all_variants()[3])
        wire["delegation_lock"]["authorized_operations"] = ["teleport"]
        assert decode_locking_condition(wire) is None

    def test_unhashable_type_tag_dropped(self) -> None:
        wire = [
            {"type": ["singleKey"]},
            {"type": {"nested": "object"}, "single_key_lock": {}},
            encode_locking_condition(SingleKeyLock(OWNER)),
        ]
        assert decode_locking_conditions(wire) == [SingleKeyLock(OWNER)]

    def test_body_that_is_not_an_object_dropped(self) -> None:
        assert decode_locking_condition({"type": "singleKey", "single_key_lock": "00"}) is None

    def test_deep_lock_chain_dropped(self) -> None:
        wire = encode_locking_condition(SingleKeyLock(OWNER))
        for height in range(10_000):
            body = {"unlock_height": height, "base_lock": wire}
            wire = {"type": "heightLock", "height_lock": body}
        wire = [wire, encode_locking_condition(SingleKeyLock(DELEGATE))]
        assert decode_locking_conditions(wire) == [SingleKeyLock(DELEGATE)]

    def test_moderate_lock_chain_decoded(self) -> None:
        lock = SingleKeyLock(OWNER)
        for height in range(10):
            lock = HeightLock(unlock_height=height, base_lock=lock)
        assert decode_locking_condition(encode_locking_condition(lock)) == lock

    def test_wrong_length_owner_dropped(self) -> None:
        wire = {"type": "singleKey", "single_key_lock": {"required_address_hash": "11" * 19}}
        assert decode_locking_condition(wire) is None

    def test_structurally_invalid_multikey_dropped(self) -> None:
        wire = encode_locking_condition(MultiKeyLock(threshold=2, authorized_keys=_keys(3)))
        wire["multi_key_lock"]["required_signatures"] = 4
        assert decode_locking_condition(wire) is None
