"""
Poseidon hash over the BN254 scalar field.

Leaf and node hashing for the activity tree. Poseidon is used instead of a
general-purpose hash because it costs a few hundred constraints per call in
the proving circuit rather than tens of thousands.

Parameters follow the reference construction:
    - state width t = inputs + 1, capacity element first
    - R_F = 8 full rounds, R_P from the circomlib table
    - S-box x^5
    - round constants and Cauchy MDS matrix sampled from the Grain LFSR
      seeded with (field, sbox, n, t, R_F, R_P)

The hash output is state[0] after the permutation.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from .config import (
    FIELD_BITS,
    FIELD_PRIME,
    MAX_BYTES_PER_FIELD,
    POSEIDON_FULL_ROUNDS,
    POSEIDON_MAX_INPUTS,
    POSEIDON_PARTIAL_ROUNDS,
)

MAX_STRING_BYTES = MAX_BYTES_PER_FIELD * POSEIDON_MAX_INPUTS

_SBOX_ALPHA = 5
_GRAIN_STATE_BITS = 80
_GRAIN_WARMUP_CLOCKS = 160


@dataclass(frozen=True)
class PoseidonParams:
    t: int
    full_rounds: int
    partial_rounds: int
    round_constants: Tuple[int, ...]
    mds: Tuple[Tuple[int, ...], ...]


class _GrainLFSR:
    """Self-shrinking Grain LFSR used to derive Poseidon constants."""

    def __init__(self, t: int, partial_rounds: int) -> None:
        seed = (
            _to_bits(1, 2)  # prime field
            + _to_bits(0, 4)  # x^alpha S-box
            + _to_bits(FIELD_BITS, 12)
            + _to_bits(t, 12)
            + _to_bits(POSEIDON_FULL_ROUNDS, 10)
            + _to_bits(partial_rounds, 10)
            + [1] * 30
        )
        self._state = deque(seed, maxlen=_GRAIN_STATE_BITS)
        for _ in range(_GRAIN_WARMUP_CLOCKS):
            self._clock()

    def _clock(self) -> int:
        s = self._state
        bit = s[62] ^ s[51] ^ s[38] ^ s[23] ^ s[13] ^ s[0]
        s.append(bit)
        return bit

    def next_bit(self) -> int:
        while True:
            first = self._clock()
            second = self._clock()
            if first == 1:
                return second

    def random_int(self, num_bits: int) -> int:
        value = 0
        for _ in range(num_bits):
            value = (value << 1) | self.next_bit()
        return value


def _to_bits(value: int, width: int) -> list[int]:
    return [int(c) for c in format(value, f"0{width}b")]


@lru_cache(maxsize=None)
def poseidon_params(t: int) -> PoseidonParams:
    """Derive (and cache) the Poseidon parameters for state width ``t``."""
    if not 2 <= t <= POSEIDON_MAX_INPUTS + 1:
        raise ValueError(f"unsupported Poseidon width t={t}")

    partial_rounds = POSEIDON_PARTIAL_ROUNDS[t - 2]
    grain = _GrainLFSR(t, partial_rounds)

    constants = []
    for _ in range((POSEIDON_FULL_ROUNDS + partial_rounds) * t):
        while True:
            candidate = grain.random_int(FIELD_BITS)
            if candidate < FIELD_PRIME:
                break
        constants.append(candidate)

    mds = _cauchy_mds(grain, t)
    return PoseidonParams(
        t=t,
        full_rounds=POSEIDON_FULL_ROUNDS,
        partial_rounds=partial_rounds,
        round_constants=tuple(constants),
        mds=mds,
    )


def _cauchy_mds(grain: _GrainLFSR, t: int) -> Tuple[Tuple[int, ...], ...]:
    while True:
        values = [grain.random_int(FIELD_BITS) % FIELD_PRIME for _ in range(2 * t)]
        while len(set(values)) != 2 * t:
            values = [grain.random_int(FIELD_BITS) % FIELD_PRIME for _ in range(2 * t)]
        xs, ys = values[:t], values[t:]
        if any((x + y) % FIELD_PRIME == 0 for x in xs for y in ys):
            continue
        return tuple(
            tuple(pow(x + y, FIELD_PRIME - 2, FIELD_PRIME) for y in ys) for x in xs
        )


def to_field_element(value: int, label: str = "value") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{label} must be int")
    if value < 0 or value >= FIELD_PRIME:
        raise ValueError(f"{label} must be in [0, FIELD_PRIME)")
    return value


def poseidon_hash(*inputs: int) -> int:
    """
    Hash 1..16 field elements with Poseidon.

    Args:
        *inputs: Integers in [0, FIELD_PRIME)

    Returns:
        Field element (int)

    Raises:
        ValueError: On an unsupported input count or out-of-field input
        TypeError: On a non-integer input
    """
    if not 1 <= len(inputs) <= POSEIDON_MAX_INPUTS:
        raise ValueError(
            f"Poseidon takes 1..{POSEIDON_MAX_INPUTS} inputs, got {len(inputs)}"
        )
    state = [0] + [to_field_element(x, f"inputs[{i}]") for i, x in enumerate(inputs)]
    params = poseidon_params(len(state))
    t = params.t
    half_full = params.full_rounds // 2
    last_partial = half_full + params.partial_rounds
    p = FIELD_PRIME

    for r in range(params.full_rounds + params.partial_rounds):
        offset = r * t
        state = [(s + params.round_constants[offset + i]) % p for i, s in enumerate(state)]
        if r < half_full or r >= last_partial:
            state = [pow(s, _SBOX_ALPHA, p) for s in state]
        else:
            state[0] = pow(state[0], _SBOX_ALPHA, p)
        state = [sum(m * s for m, s in zip(row, state)) % p for row in params.mds]

    return state[0]


def hash_leaf(value: int) -> int:
    """Hash one raw secret value (e.g. an activity timestamp) into a leaf."""
    return poseidon_hash(value)


def hash_pair(left: int, right: int) -> int:
    """Hash two child nodes into their parent."""
    return poseidon_hash(left, right)


def hash_string(value: str) -> int:
    """
    Hash a string with chunked encoding.

    The UTF-8 bytes are split into 31-byte big-endian chunks, one field
    element each, and all chunks are hashed together. Covers identifiers up
    to 496 bytes.

    Raises:
        ValueError: If the encoded string is longer than 496 bytes
    """
    data = value.encode("utf-8")
    if not data:
        return poseidon_hash(0)
    if len(data) > MAX_STRING_BYTES:
        raise ValueError(
            f"String too long for Poseidon hashing: {len(data)} bytes "
            f"exceeds maximum of {MAX_STRING_BYTES} bytes"
        )
    chunks = [
        int.from_bytes(data[offset:offset + MAX_BYTES_PER_FIELD], "big")
        for offset in range(0, len(data), MAX_BYTES_PER_FIELD)
    ]
    return poseidon_hash(*chunks)
