"""
Witness assembly for the activity-threshold circuit.

Turns a batch of raw activity timestamps into a fixed-shape ``CircuitInput``:
hashed leaves in ascending order, their inclusion proofs, and explicit
padding slots up to the circuit's slot count. Every ordering, padding, size
and freshness rule is checked before the input leaves this module; bad input
raises ``WitnessError`` and is never repaired.

Padding slots carry inert proof data. The circuit only root-checks non-zero
slots, so padding can never raise the counted threshold; the contiguous
padding suffix is enforced here and only weakly by the circuit itself.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .config import (
    FIELD_PRIME,
    MAX_CLOCK_SKEW_SECONDS,
    MAX_SLOTS,
    MERKLE_DEPTH,
    MIN_FRESHNESS_TIMESTAMP,
)
from .exceptions import WitnessError
from .merkle import InclusionProof, build_tree
from .poseidon import hash_leaf

logger = logging.getLogger(__name__)


# ============================================================================
# SLOTS
# ============================================================================


@dataclass(frozen=True)
class ActiveSlot:
    """A populated slot: a non-zero leaf and its inclusion proof."""

    leaf: int
    proof: InclusionProof


@dataclass(frozen=True)
class PaddingSlot:
    """An empty slot. Expands to leaf 0 and an all-zero proof."""


Slot = Union[ActiveSlot, PaddingSlot]

PADDING = PaddingSlot()


@dataclass(frozen=True)
class CircuitInput:
    """
    Full witness for one proof request.

    Public: ``root``, ``threshold``, ``freshness_timestamp``.
    Private: ``slots``; ``leaves`` and ``proofs`` are flat views of them.
    """

    root: int
    threshold: int
    freshness_timestamp: int
    slots: Tuple[Slot, ...]
    depth: int

    @property
    def max_slots(self) -> int:
        return len(self.slots)

    @property
    def active_count(self) -> int:
        return sum(1 for slot in self.slots if isinstance(slot, ActiveSlot))

    @property
    def leaves(self) -> Tuple[int, ...]:
        return tuple(
            slot.leaf if isinstance(slot, ActiveSlot) else 0 for slot in self.slots
        )

    @property
    def proofs(self) -> Tuple[InclusionProof, ...]:
        inert = InclusionProof.inert(self.depth)
        return tuple(
            slot.proof if isinstance(slot, ActiveSlot) else inert
            for slot in self.slots
        )

    def public_inputs(self) -> Dict[str, int]:
        return {
            "activityRoot": self.root,
            "minDays": self.threshold,
            "currentTimestamp": self.freshness_timestamp,
        }

    def to_circuit_signals(self) -> Dict[str, Any]:
        """
        Serialize to the circuit's named input signals.

        Field elements become decimal strings; path bits stay ints.
        """
        proofs = self.proofs
        return {
            "activityRoot": str(self.root),
            "minDays": str(self.threshold),
            "currentTimestamp": str(self.freshness_timestamp),
            "activityDates": [str(leaf) for leaf in self.leaves],
            "pathElements": [[str(s) for s in p.siblings] for p in proofs],
            "pathIndices": [list(p.path_indices) for p in proofs],
        }


# ============================================================================
# ASSEMBLY
# ============================================================================


def assemble(
    raw_values: Sequence[int],
    *,
    threshold: int,
    freshness_timestamp: Optional[int] = None,
    max_slots: int = MAX_SLOTS,
    depth: int = MERKLE_DEPTH,
    now: Optional[float] = None,
) -> CircuitInput:
    """
    Build a validated ``CircuitInput`` from raw activity values.

    Args:
        raw_values: Sorted, unique positive integers (e.g. day timestamps)
        threshold: Minimum number of active days to prove
        freshness_timestamp: Public timestamp; defaults to ``now``
        max_slots: Number of slots in the circuit
        depth: Merkle tree depth of the circuit
        now: Current Unix time, for the freshness window

    Returns:
        CircuitInput with leaves ordered ascending and padding appended

    Raises:
        WitnessError: If any input rule is violated
    """
    current = time.time() if now is None else now
    if freshness_timestamp is None:
        freshness_timestamp = int(current)

    violations = _check_raw_values(raw_values, max_slots)
    if violations:
        raise WitnessError(violations)

    # Poseidon does not preserve order; the ascending rule applies to leaves.
    leaves = sorted(hash_leaf(value) for value in raw_values)
    duplicates = [i for i in range(1, len(leaves)) if leaves[i] == leaves[i - 1]]
    if duplicates:
        raise WitnessError(f"duplicate leaf at position {duplicates[0]}")

    if len(leaves) > (1 << depth):
        raise WitnessError(f"{len(leaves)} leaves exceed tree capacity {1 << depth}")

    tree = build_tree(leaves, depth)
    slots: List[Slot] = [
        ActiveSlot(leaf=leaf, proof=tree.proof_for(index))
        for index, leaf in enumerate(leaves)
    ]
    slots.extend([PADDING] * (max_slots - len(slots)))

    circuit_input = CircuitInput(
        root=tree.root,
        threshold=threshold,
        freshness_timestamp=freshness_timestamp,
        slots=tuple(slots),
        depth=depth,
    )
    validate_circuit_input(circuit_input, now=current)
    logger.debug(
        "Assembled witness with %d active slots of %d (depth %d)",
        len(leaves),
        max_slots,
        depth,
    )
    return circuit_input


def slots_from_arrays(
    leaves: Sequence[int], proofs: Sequence[InclusionProof]
) -> Tuple[Slot, ...]:
    """
    Convert flat ``leaves``/``proofs`` arrays into tagged slots.

    A zero leaf becomes ``PaddingSlot``; its proof is discarded.

    Raises:
        WitnessError: On a length mismatch, a non-zero leaf after a zero
            leaf, or non-ascending non-zero leaves
    """
    if len(leaves) != len(proofs):
        raise WitnessError(
            f"leaves and proofs length mismatch: {len(leaves)} != {len(proofs)}"
        )

    violations = _check_leaf_sequence(leaves)
    if violations:
        raise WitnessError(violations)

    return tuple(
        ActiveSlot(leaf=leaf, proof=proof) if leaf != 0 else PADDING
        for leaf, proof in zip(leaves, proofs)
    )


def validate_circuit_input(
    circuit_input: CircuitInput, *, now: Optional[float] = None
) -> None:
    """
    Re-check every witness rule on an assembled input.

    Raises:
        WitnessError: Listing every violation found
    """
    violations: List[str] = []
    slots = circuit_input.slots
    max_slots = len(slots)

    if max_slots == 0:
        violations.append("circuit input has no slots")

    seen_padding = False
    for index, slot in enumerate(slots):
        if isinstance(slot, PaddingSlot):
            seen_padding = True
            continue
        if not isinstance(slot, ActiveSlot):
            violations.append(f"slot {index} has unknown type {type(slot).__name__}")
            continue
        if slot.leaf == 0:
            violations.append(f"active slot {index} has a zero leaf")
        if seen_padding:
            violations.append(f"active slot {index} follows a padding slot")
        if slot.proof.depth != circuit_input.depth:
            violations.append(
                f"slot {index} proof depth {slot.proof.depth} != {circuit_input.depth}"
            )
    violations.extend(_check_leaf_sequence(circuit_input.leaves))

    threshold = circuit_input.threshold
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        violations.append("threshold must be int")
    elif not 1 <= threshold <= max(max_slots, 1):
        violations.append(f"threshold {threshold} outside [1, {max_slots}]")

    violations.extend(
        _check_freshness(circuit_input.freshness_timestamp, now)
    )

    root = circuit_input.root
    if isinstance(root, bool) or not isinstance(root, int) or not 0 <= root < FIELD_PRIME:
        violations.append("root is not a field element")

    if violations:
        raise WitnessError(violations)


# ============================================================================
# RULES
# ============================================================================


def _check_raw_values(raw_values: Iterable[Any], max_slots: int) -> List[str]:
    values = list(raw_values)
    violations: List[str] = []
    if len(values) > max_slots:
        violations.append(f"{len(values)} entries exceed {max_slots} slots")

    previous: Optional[int] = None
    for index, value in enumerate(values):
        if isinstance(value, bool) or not isinstance(value, int):
            violations.append(f"entry {index} is not an integer")
            previous = None
            continue
        if value <= 0:
            violations.append(f"entry {index} is not positive")
        elif value >= FIELD_PRIME:
            violations.append(f"entry {index} is not a field element")
        if previous is not None and value <= previous:
            violations.append(f"entry {index} is not strictly ascending")
        previous = value
    return violations


def _check_leaf_sequence(leaves: Sequence[int]) -> List[str]:
    violations: List[str] = []
    seen_zero = False
    previous: Optional[int] = None
    for index, leaf in enumerate(leaves):
        if isinstance(leaf, bool) or not isinstance(leaf, int):
            violations.append(f"leaf {index} is not an integer")
            continue
        if not 0 <= leaf < FIELD_PRIME:
            violations.append(f"leaf {index} is not a field element")
            continue
        if leaf == 0:
            seen_zero = True
            continue
        if seen_zero:
            violations.append(f"non-zero leaf {index} follows a zero leaf")
        if previous is not None and leaf <= previous:
            violations.append(f"leaf {index} is not strictly ascending")
        previous = leaf
    return violations


def _check_freshness(timestamp: Any, now: Optional[float]) -> List[str]:
    if isinstance(timestamp, bool) or not isinstance(timestamp, int):
        return ["freshness timestamp must be int"]
    current = time.time() if now is None else now
    upper = int(current) + MAX_CLOCK_SKEW_SECONDS
    if timestamp < MIN_FRESHNESS_TIMESTAMP or timestamp > upper:
        return [
            f"freshness timestamp {timestamp} outside "
            f"[{MIN_FRESHNESS_TIMESTAMP}, {upper}]"
        ]
    return []
