"""
Static registry of activity-threshold circuits.

Single source of truth for a circuit's shape (slot count, tree depth),
version and artifact file names. Bumping ``version`` makes every cached
artifact of the previous version a miss.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from .config import (
    MAX_SLOTS,
    MERKLE_DEPTH,
    MIN_ESTIMATED_PROOF_SECONDS,
    SECONDS_PER_CONSTRAINT,
)
from .exceptions import CircuitNotFoundError

BINARY_KINDS = ("binary:wasm", "binary:zkey")
VKEY_KIND = "vkey"
ARTIFACT_KINDS = BINARY_KINDS + (VKEY_KIND,)


@dataclass(frozen=True)
class CircuitConfig:
    id: str
    name: str
    description: str
    version: str
    max_slots: int
    merkle_depth: int
    estimated_constraints: int
    wasm_file: str
    zkey_file: str
    vkey_file: str
    # sha256 hex digests; None skips the integrity check
    wasm_sha256: Optional[str] = None
    zkey_sha256: Optional[str] = None
    vkey_sha256: Optional[str] = None

    def file_for(self, kind: str) -> str:
        return {
            "binary:wasm": self.wasm_file,
            "binary:zkey": self.zkey_file,
            "vkey": self.vkey_file,
        }[kind]

    def digest_for(self, kind: str) -> Optional[str]:
        return {
            "binary:wasm": self.wasm_sha256,
            "binary:zkey": self.zkey_sha256,
            "vkey": self.vkey_sha256,
        }[kind]


VERIFIED_BUILDER = CircuitConfig(
    id="verified-builder",
    name="Verified Builder",
    description=(
        "Proves activity history (minimum active days) without revealing "
        "specific actions or dates."
    ),
    version="2.0.0",
    max_slots=MAX_SLOTS,
    merkle_depth=MERKLE_DEPTH,
    estimated_constraints=146_000,
    wasm_file="verified-builder.wasm",
    zkey_file="verified-builder.zkey",
    vkey_file="verified-builder.vkey.json",
)

_REGISTRY: Mapping[str, CircuitConfig] = {
    VERIFIED_BUILDER.id: VERIFIED_BUILDER,
}


def get_circuit_config(circuit_id: str) -> CircuitConfig:
    """
    Get configuration for a circuit.

    Raises:
        CircuitNotFoundError: If the circuit id is not registered
    """
    try:
        return _REGISTRY[circuit_id]
    except KeyError:
        raise CircuitNotFoundError(circuit_id) from None


def all_circuit_configs() -> List[CircuitConfig]:
    return list(_REGISTRY.values())


def is_registered_circuit(circuit_id: str) -> bool:
    return circuit_id in _REGISTRY


def estimate_proof_time(config: CircuitConfig) -> float:
    """Rough proving time in seconds: 0.5 ms per constraint, at least 5 s."""
    return max(
        MIN_ESTIMATED_PROOF_SECONDS,
        config.estimated_constraints * SECONDS_PER_CONSTRAINT,
    )


def circuit_summary(config: CircuitConfig) -> Dict[str, object]:
    return {
        "id": config.id,
        "name": config.name,
        "version": config.version,
        "max_slots": config.max_slots,
        "merkle_depth": config.merkle_depth,
        "estimated_constraints": config.estimated_constraints,
        "estimated_seconds": estimate_proof_time(config),
    }
