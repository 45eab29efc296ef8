import dataclasses

import pytest

from activity_zk.threshold_proof import witness as witness_mod
from activity_zk.threshold_proof.config import (
    FIELD_PRIME,
    MAX_CLOCK_SKEW_SECONDS,
    MIN_FRESHNESS_TIMESTAMP,
)
from activity_zk.threshold_proof.exceptions import WitnessError
from activity_zk.threshold_proof.merkle import InclusionProof, verify_path
from activity_zk.threshold_proof.witness import (
    ActiveSlot,
    PaddingSlot,
    assemble,
    slots_from_arrays,
    validate_circuit_input,
)

NOW = 1_700_000_000
DAY = 86_400


def _days(count):
    return [NOW - (count - i) * DAY for i in range(count)]


def _assemble(values, threshold=3, **kwargs):
    kwargs.setdefault("max_slots", 8)
    kwargs.setdefault("depth", 6)
    kwargs.setdefault("now", NOW)
    kwargs.setdefault("freshness_timestamp", NOW)
    return assemble(values, threshold=threshold, **kwargs)


def test_assemble_pads_to_max_slots():
    ci = _assemble(_days(5))
    assert ci.max_slots == 8
    assert ci.active_count == 5
    assert all(isinstance(s, ActiveSlot) for s in ci.slots[:5])
    assert all(isinstance(s, PaddingSlot) for s in ci.slots[5:])
    assert ci.leaves[5:] == (0, 0, 0)
    assert all(p.is_inert() for p in ci.proofs[5:])


def test_assembled_leaves_are_strictly_ascending():
    leaves = [leaf for leaf in _assemble(_days(6)).leaves if leaf]
    assert leaves == sorted(leaves)
    assert len(set(leaves)) == len(leaves)


def test_assembled_proofs_verify_against_root():
    ci = _assemble(_days(5), depth=20, max_slots=30)
    for slot in ci.slots:
        if isinstance(slot, ActiveSlot):
            assert verify_path(slot.leaf, slot.proof, ci.root)


def test_freshness_defaults_to_now():
    ci = assemble(_days(2), threshold=1, max_slots=4, depth=4, now=NOW)
    assert ci.freshness_timestamp == NOW


def test_empty_activity_is_all_padding():
    ci = _assemble([], threshold=1)
    assert ci.active_count == 0
    assert ci.leaves == (0,) * 8


def test_too_many_entries_rejected():
    with pytest.raises(WitnessError, match="exceed 8 slots"):
        _assemble(_days(9))


def test_unsorted_input_rejected_not_repaired():
    values = _days(3)
    values[0], values[1] = values[1], values[0]
    with pytest.raises(WitnessError, match="strictly ascending") as excinfo:
        _assemble(values)
    assert excinfo.value.violations == ["entry 1 is not strictly ascending"]


def test_duplicate_input_rejected():
    values = _days(3)
    values.append(values[-1])
    with pytest.raises(WitnessError, match="strictly ascending"):
        _assemble(values)


@pytest.mark.parametrize("bad", [0, -5, FIELD_PRIME])
def test_non_positive_or_out_of_field_rejected(bad):
    with pytest.raises(WitnessError):
        _assemble([bad])


@pytest.mark.parametrize("bad", ["1700000000", 1.0, True])
def test_non_integer_rejected(bad):
    with pytest.raises(WitnessError, match="not an integer"):
        _assemble([bad])


@pytest.mark.parametrize("threshold", [0, 9])
def test_threshold_out_of_range_rejected(threshold):
    with pytest.raises(WitnessError, match="threshold"):
        _assemble(_days(3), threshold=threshold)


def test_freshness_window():
    with pytest.raises(WitnessError, match="freshness timestamp"):
        _assemble(_days(2), freshness_timestamp=MIN_FRESHNESS_TIMESTAMP - 1)
    with pytest.raises(WitnessError, match="freshness timestamp"):
        _assemble(_days(2), freshness_timestamp=NOW + MAX_CLOCK_SKEW_SECONDS + 1)
    ci = _assemble(_days(2), freshness_timestamp=NOW + MAX_CLOCK_SKEW_SECONDS)
    assert ci.freshness_timestamp == NOW + MAX_CLOCK_SKEW_SECONDS


def test_slots_from_arrays_rejects_leaf_after_padding():
    inert = InclusionProof.inert(4)
    with pytest.raises(WitnessError, match="follows a zero leaf"):
        slots_from_arrays([5, 0, 7], [inert, inert, inert])


def test_slots_from_arrays_rejects_non_ascending_leaves():
    inert = InclusionProof.inert(4)
    with pytest.raises(WitnessError, match="not strictly ascending"):
        slots_from_arrays([9, 7, 0], [inert, inert, inert])
    with pytest.raises(WitnessError, match="not strictly ascending"):
        slots_from_arrays([7, 7, 0], [inert, inert, inert])


def test_slots_from_arrays_round_trips_assembled_input():
    ci = _assemble(_days(4))
    assert slots_from_arrays(ci.leaves, ci.proofs) == ci.slots


def test_slots_from_arrays_length_mismatch():
    with pytest.raises(WitnessError, match="length mismatch"):
        slots_from_arrays([1, 2], [InclusionProof.inert(2)])


def test_validate_rejects_active_slot_after_padding():
    ci = _assemble(_days(3))
    slots = list(ci.slots)
    slots[3], slots[1] = slots[1], slots[3]
    tampered = dataclasses.replace(ci, slots=tuple(slots))
    with pytest.raises(WitnessError) as excinfo:
        validate_circuit_input(tampered, now=NOW)
    assert any("follows a padding slot" in v for v in excinfo.value.violations)


def test_validate_rejects_active_slot_with_zero_leaf():
    ci = _assemble(_days(3))
    last = ci.slots[2]
    zeroed = ActiveSlot(leaf=0, proof=last.proof)
    tampered = dataclasses.replace(ci, slots=ci.slots[:2] + (zeroed,) + ci.slots[3:])
    with pytest.raises(WitnessError) as excinfo:
        validate_circuit_input(tampered, now=NOW)
    assert excinfo.value.violations == ["active slot 2 has a zero leaf"]


def test_validate_rejects_wrong_proof_depth():
    ci = _assemble(_days(2))
    first = ci.slots[0]
    short = ActiveSlot(leaf=first.leaf, proof=InclusionProof.inert(3))
    tampered = dataclasses.replace(ci, slots=(short,) + ci.slots[1:])
    with pytest.raises(WitnessError, match="proof depth"):
        validate_circuit_input(tampered, now=NOW)


def test_validate_collects_every_violation():
    ci = _assemble(_days(2))
    tampered = dataclasses.replace(ci, threshold=0, freshness_timestamp=0)
    with pytest.raises(WitnessError) as excinfo:
        validate_circuit_input(tampered, now=NOW)
    assert len(excinfo.value.violations) == 2


def test_circuit_signals_shape():
    ci = _assemble(_days(3), depth=5, max_slots=6)
    signals = ci.to_circuit_signals()
    assert signals["activityRoot"] == str(ci.root)
    assert signals["minDays"] == "3"
    assert signals["currentTimestamp"] == str(NOW)
    assert len(signals["activityDates"]) == 6
    assert signals["activityDates"][3:] == ["0", "0", "0"]
    assert len(signals["pathElements"]) == 6
    assert all(len(row) == 5 for row in signals["pathElements"])
    assert signals["pathIndices"][5] == [0, 0, 0, 0, 0]


def test_public_inputs():
    ci = _assemble(_days(3))
    assert ci.public_inputs() == {
        "activityRoot": ci.root,
        "minDays": 3,
        "currentTimestamp": NOW,
    }


def test_module_exposes_shared_padding_instance():
    ci = _assemble(_days(1))
    assert ci.slots[-1] is witness_mod.PADDING
