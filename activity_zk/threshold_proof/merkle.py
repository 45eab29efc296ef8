"""
Sparse fixed-depth Merkle tree for activity commitments.
Uses Poseidon for node hashing; empty subtrees resolve through a zero table.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Mapping, Sequence, Tuple, Union

from .config import FIELD_PRIME, MAX_MERKLE_DEPTH
from .poseidon import hash_pair

LeafInput = Union[Mapping[int, int], Sequence[int]]


@dataclass(frozen=True)
class InclusionProof:
    """Sibling hashes and path bits (0 = left child, 1 = right), leaf level first."""

    siblings: Tuple[int, ...]
    path_indices: Tuple[int, ...]

    def __post_init__(self) -> None:
        if len(self.siblings) != len(self.path_indices):
            raise ValueError("siblings and path_indices must have equal length")
        for bit in self.path_indices:
            if bit not in (0, 1):
                raise ValueError("path_indices entries must be 0 or 1")

    @property
    def depth(self) -> int:
        return len(self.siblings)

    @classmethod
    def inert(cls, depth: int) -> "InclusionProof":
        """All-zero proof placed in padding slots. Never checked against a root."""
        return cls(siblings=(0,) * depth, path_indices=(0,) * depth)

    def is_inert(self) -> bool:
        return not any(self.siblings) and not any(self.path_indices)


@lru_cache(maxsize=None)
def zero_hashes(depth: int) -> Tuple[int, ...]:
    """
    Roots of empty subtrees: zero[0] = 0, zero[i + 1] = H(zero[i], zero[i]).

    Returns depth + 1 entries; zero[depth] is the root of an empty tree.
    """
    _check_depth(depth)
    table = [0]
    for _ in range(depth):
        table.append(hash_pair(table[-1], table[-1]))
    return tuple(table)


class SparseMerkleTree:
    """
    Fixed-depth Merkle tree materializing only non-empty subtrees.

    Building costs O(N * D) hashes for N populated leaves instead of
    O(2^D) for a dense tree.

    Example:
        tree = build_tree({0: leaf_a, 1: leaf_b}, depth=20)
        proof = tree.proof_for(1)
        assert verify_path(leaf_b, proof, tree.root)
    """

    def __init__(self, depth: int, leaves: Mapping[int, int]) -> None:
        _check_depth(depth)
        self._depth = depth
        self._zeros = zero_hashes(depth)
        capacity = 1 << depth

        level: Dict[int, int] = {}
        for index, leaf in leaves.items():
            if isinstance(index, bool) or not isinstance(index, int):
                raise TypeError("leaf index must be int")
            if index < 0 or index >= capacity:
                raise ValueError(f"leaf index {index} out of range [0, {capacity - 1}]")
            if isinstance(leaf, bool) or not isinstance(leaf, int):
                raise TypeError(f"leaf at index {index} must be int")
            if leaf < 0 or leaf >= FIELD_PRIME:
                raise ValueError(f"leaf at index {index} is not a field element")
            if leaf != 0:
                level[index] = leaf

        levels: List[Dict[int, int]] = [level]
        for height in range(depth):
            current = levels[-1]
            zero = self._zeros[height]
            parents: Dict[int, int] = {}
            for parent in {idx >> 1 for idx in current}:
                left = current.get(parent << 1, zero)
                right = current.get((parent << 1) | 1, zero)
                parents[parent] = hash_pair(left, right)
            levels.append(parents)
        self._levels = levels

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def capacity(self) -> int:
        return 1 << self._depth

    @property
    def root(self) -> int:
        return self._levels[self._depth].get(0, self._zeros[self._depth])

    def __len__(self) -> int:
        return len(self._levels[0])

    def leaf(self, index: int) -> int:
        self._check_index(index)
        return self._levels[0].get(index, 0)

    def proof_for(self, index: int) -> InclusionProof:
        """Walk from leaf ``index`` to the root collecting siblings and path bits."""
        self._check_index(index)
        siblings = []
        path_indices = []
        idx = index
        for height in range(self._depth):
            siblings.append(self._levels[height].get(idx ^ 1, self._zeros[height]))
            path_indices.append(idx & 1)
            idx >>= 1
        return InclusionProof(siblings=tuple(siblings), path_indices=tuple(path_indices))

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= self.capacity:
            raise ValueError(
                f"Leaf index {index} out of range [0, {self.capacity - 1}]"
            )


def build_tree(leaves: LeafInput, depth: int) -> SparseMerkleTree:
    """
    Build a sparse Merkle tree.

    Args:
        leaves: Mapping index -> leaf, or a sequence where position is the index
        depth: Tree depth (levels above the leaves)

    Returns:
        SparseMerkleTree with root and per-leaf proofs

    Raises:
        ValueError: On invalid depth, index or leaf value
    """
    if isinstance(leaves, Mapping):
        mapping = dict(leaves)
    else:
        mapping = dict(enumerate(leaves))
    return SparseMerkleTree(depth, mapping)


def compute_root(leaf: int, proof: InclusionProof) -> int:
    current = leaf
    for sibling, bit in zip(proof.siblings, proof.path_indices):
        if bit == 1:
            # Current node is the right child
            current = hash_pair(sibling, current)
        else:
            current = hash_pair(current, sibling)
    return current


def verify_path(leaf: int, proof: InclusionProof, root: int) -> bool:
    """
    Verify an inclusion proof by recomputing the root.

    Returns:
        True if the recomputed root equals ``root``
    """
    return compute_root(leaf, proof) == root


def _check_depth(depth: int) -> None:
    if isinstance(depth, bool) or not isinstance(depth, int):
        raise TypeError("depth must be int")
    if depth < 1 or depth > MAX_MERKLE_DEPTH:
        raise ValueError(f"Merkle tree depth must be in [1, {MAX_MERKLE_DEPTH}]")
