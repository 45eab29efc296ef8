"""
⚠️ DRAFT — requires crypto review before production use

Common types for activity-threshold proofs.

This module provides:
1. Groth16Proof / BackendProof - what a proving backend returns
2. ProofStatus - lifecycle states of a persisted proof
3. ProofRecord - the finished proof object with JSON and CBOR encodings
4. VerificationResult - outcome of a verification, never an exception
5. CircuitArtifacts - the binaries and verifying key a backend consumes
"""

import secrets
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import cbor2

from .config import (
    CURVE_NAME,
    DEFAULT_PROOF_LIFETIME_SECONDS,
    PROOF_PROTOCOL,
    PROOF_RECORD_VERSION,
    PUBLIC_SIGNAL_ORDER,
)
from .exceptions import ActivityProofError

# ============================================================================
# BACKEND OUTPUT
# ============================================================================


@dataclass(frozen=True)
class Groth16Proof:
    """
    Groth16-shaped proof: three curve-point groups plus protocol/curve tags.

    Coordinates are kept as decimal strings, as snarkjs emits them.
    """

    pi_a: Tuple[str, ...]
    pi_b: Tuple[Tuple[str, ...], ...]
    pi_c: Tuple[str, ...]
    protocol: str = PROOF_PROTOCOL
    curve: str = CURVE_NAME

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pi_a": list(self.pi_a),
            "pi_b": [list(row) for row in self.pi_b],
            "pi_c": list(self.pi_c),
            "protocol": self.protocol,
            "curve": self.curve,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Groth16Proof":
        if not isinstance(data, dict):
            raise ValueError("proof must be a dict")
        try:
            return cls(
                pi_a=tuple(str(x) for x in data["pi_a"]),
                pi_b=tuple(tuple(str(x) for x in row) for row in data["pi_b"]),
                pi_c=tuple(str(x) for x in data["pi_c"]),
                protocol=str(data.get("protocol", PROOF_PROTOCOL)),
                curve=str(data.get("curve", CURVE_NAME)),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid proof format: {e}") from e


@dataclass(frozen=True)
class BackendProof:
    proof: Groth16Proof
    public_signals: Tuple[str, ...]


# ============================================================================
# PROOF RECORD
# ============================================================================


class ProofStatus(Enum):
    READY = "ready"
    VERIFIED = "verified"


def new_proof_id() -> str:
    """Opaque 12-character identifier for a proof record."""
    return secrets.token_hex(6)


@dataclass(frozen=True)
class ProofRecord:
    """
    Finished proof object handed to proof persistence.

    Example:
        >>> record = ProofRecord.create("verified-builder", backend_proof)
        >>> payload = record.to_dict()       # JSON for collaborators
        >>> blob = record.serialize()        # CBOR with version field
        >>> assert ProofRecord.deserialize(blob) == record
    """

    id: str
    circuit: str
    proof: Groth16Proof
    public_signals: Tuple[str, ...]
    status: ProofStatus = ProofStatus.READY
    generated_at: float = field(default_factory=time.time)
    verified_at: Optional[float] = None
    expires_at: Optional[float] = None

    @classmethod
    def create(
        cls,
        circuit: str,
        backend_proof: BackendProof,
        *,
        lifetime: float = DEFAULT_PROOF_LIFETIME_SECONDS,
        now: Optional[float] = None,
    ) -> "ProofRecord":
        generated_at = time.time() if now is None else now
        return cls(
            id=new_proof_id(),
            circuit=circuit,
            proof=backend_proof.proof,
            public_signals=tuple(backend_proof.public_signals),
            status=ProofStatus.READY,
            generated_at=generated_at,
            expires_at=generated_at + lifetime,
        )

    @property
    def meets_threshold(self) -> bool:
        index = PUBLIC_SIGNAL_ORDER.index("meetsThreshold")
        if len(self.public_signals) <= index:
            return False
        return self.public_signals[index] == "1"

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return current >= self.expires_at

    def mark_verified(self, when: Optional[float] = None) -> "ProofRecord":
        return replace(
            self,
            status=ProofStatus.VERIFIED,
            verified_at=time.time() if when is None else when,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON shape consumed by proof persistence."""
        return {
            "id": self.id,
            "circuit": self.circuit,
            "proof": self.proof.to_dict(),
            "publicSignals": list(self.public_signals),
            "status": self.status.value,
            "generatedAt": self.generated_at,
            "verifiedAt": self.verified_at,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProofRecord":
        if not isinstance(data, dict):
            raise ValueError("Invalid proof record format: expected a dict")
        missing = [k for k in ("id", "circuit", "proof", "publicSignals") if k not in data]
        if missing:
            raise ValueError(
                f"Invalid proof record format: missing {', '.join(missing)}"
            )
        try:
            status = ProofStatus(data.get("status", ProofStatus.READY.value))
        except ValueError as e:
            raise ValueError(f"Unknown proof status: {data.get('status')!r}") from e
        return cls(
            id=str(data["id"]),
            circuit=str(data["circuit"]),
            proof=Groth16Proof.from_dict(data["proof"]),
            public_signals=tuple(str(s) for s in data["publicSignals"]),
            status=status,
            generated_at=float(data.get("generatedAt", time.time())),
            verified_at=data.get("verifiedAt"),
            expires_at=data.get("expiresAt"),
        )

    # ========================================================================
    # SERIALIZATION (CBOR)
    # ========================================================================

    def serialize(self) -> bytes:
        data = self.to_dict()
        data["v"] = PROOF_RECORD_VERSION
        try:
            return cbor2.dumps(data)
        except (TypeError, ValueError, cbor2.CBOREncodeError) as e:
            raise ActivityProofError(f"Failed to serialize proof record: {e}") from e

    @classmethod
    def deserialize(cls, data: bytes) -> "ProofRecord":
        """
        Deserialize a proof record from CBOR bytes.

        Raises:
            ValueError: If the version is unsupported or fields are missing
            ActivityProofError: If the bytes are not valid CBOR
        """
        try:
            obj = cbor2.loads(data)
        except (cbor2.CBORDecodeError, TypeError, ValueError) as e:
            raise ActivityProofError(f"Failed to deserialize proof record: {e}") from e

        if not isinstance(obj, dict):
            raise ValueError("Invalid proof record format: expected a map")

        version = obj.pop("v", 1)
        if version != PROOF_RECORD_VERSION:
            raise ValueError(
                f"Unsupported proof record version: {version} "
                f"(expected {PROOF_RECORD_VERSION})"
            )
        return cls.from_dict(obj)


# ============================================================================
# VERIFICATION RESULT
# ============================================================================


@dataclass(frozen=True)
class VerificationResult:
    """
    Outcome of verifying a proof.

    ``is_valid`` and ``meets_threshold`` are independent: a proof can be
    cryptographically valid while the threshold is not met.
    """

    is_valid: bool
    meets_threshold: bool = False
    reason: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    method: str = "local"

    def __bool__(self) -> bool:
        return self.is_valid

    @classmethod
    def invalid(cls, reason: str, method: str = "local") -> "VerificationResult":
        return cls(is_valid=False, meets_threshold=False, reason=reason, method=method)


# ============================================================================
# ARTIFACTS
# ============================================================================


@dataclass(frozen=True)
class CircuitArtifacts:
    """Compiled circuit, proving key and verifying key for one circuit version."""

    circuit_binary: bytes
    proving_key: bytes
    verifying_key: Dict[str, Any]
    version: str
