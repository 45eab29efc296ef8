from __future__ import annotations

import hashlib
import json
import logging
import secrets
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..circuit_registry import CircuitConfig
from ..config import CURVE_NAME, FIELD_PRIME, PROOF_PROTOCOL, PUBLIC_SIGNAL_ORDER
from ..interfaces import ProvingBackend
from ..merkle import InclusionProof, compute_root
from ..types import BackendProof, CircuitArtifacts, Groth16Proof

logger = logging.getLogger(__name__)

_BINARY_MAGIC = b"activity-zk-reference-circuit\x00"


class ReferenceBackend(ProvingBackend):
    """
    Pure-Python backend that evaluates the activity statement directly.

    Notes:
    - Root-checks every non-zero slot, counts them and computes
      ``meetsThreshold`` exactly as the circuit does.
    - The "proof" is a digest binding the public signals to a commitment
      carried in the verifying key. It does NOT provide zero-knowledge or
      soundness; anyone holding the verifying key can forge one.
    - For tests, demos and development only.
    """

    _BACKEND_NAME = "ReferenceBackend"
    _BACKEND_VERSION = "0.1.0"

    @property
    def backend_name(self) -> str:
        return self._BACKEND_NAME

    @property
    def backend_version(self) -> str:
        return self._BACKEND_VERSION

    @staticmethod
    def setup(config: CircuitConfig) -> CircuitArtifacts:
        """Produce development artifacts matching this backend for ``config``."""
        label = f"{config.id}@{config.version}".encode("utf-8")
        circuit_binary = _BINARY_MAGIC + json.dumps(
            {
                "circuit": config.id,
                "version": config.version,
                "maxSlots": config.max_slots,
                "merkleDepth": config.merkle_depth,
            },
            sort_keys=True,
        ).encode("utf-8")
        proving_key = hashlib.sha256(b"reference-proving-key:" + label).digest() * 4
        verifying_key = {
            "protocol": PROOF_PROTOCOL,
            "curve": CURVE_NAME,
            "nPublic": len(PUBLIC_SIGNAL_ORDER),
            "backend": "reference",
            "circuit": config.id,
            "version": config.version,
            "commitment": _key_commitment(circuit_binary, proving_key),
        }
        return CircuitArtifacts(
            circuit_binary=circuit_binary,
            proving_key=proving_key,
            verifying_key=verifying_key,
            version=config.version,
        )

    def generate_proof(
        self,
        circuit_binary: bytes,
        proving_key: bytes,
        witness: Dict[str, Any],
        cancel: Optional[threading.Event] = None,
    ) -> BackendProof:
        if not isinstance(circuit_binary, (bytes, bytearray)) or not circuit_binary:
            raise ValueError("circuit_binary must be non-empty bytes")
        if not isinstance(proving_key, (bytes, bytearray)) or not proving_key:
            raise ValueError("proving_key must be non-empty bytes")
        if not isinstance(witness, dict):
            raise ValueError("witness must be a dict")

        root = int(witness["activityRoot"])
        min_days = int(witness["minDays"])
        timestamp = int(witness["currentTimestamp"])
        leaves = [int(v) for v in witness["activityDates"]]
        path_elements = witness["pathElements"]
        path_indices = witness["pathIndices"]
        if not len(leaves) == len(path_elements) == len(path_indices):
            raise ValueError("activityDates, pathElements and pathIndices differ in length")

        active = 0
        for slot, leaf in enumerate(leaves):
            if cancel is not None and cancel.is_set():
                raise RuntimeError("proof generation cancelled")
            if leaf == 0:
                continue
            proof = InclusionProof(
                siblings=tuple(int(s) for s in path_elements[slot]),
                path_indices=tuple(int(b) for b in path_indices[slot]),
            )
            if compute_root(leaf, proof) != root:
                raise ValueError(f"slot {slot} is not included under activityRoot")
            active += 1

        meets = 1 if active >= min_days else 0
        public_signals = (str(root), str(min_days), str(timestamp), str(meets))
        commitment = _key_commitment(bytes(circuit_binary), bytes(proving_key))

        pi_a = (str(secrets.randbelow(FIELD_PRIME)), str(secrets.randbelow(FIELD_PRIME)), "1")
        pi_b = _derive_pi_b(commitment, pi_a)
        pi_c = _derive_pi_c(commitment, public_signals, pi_a, pi_b)
        logger.debug("Reference proof: %d active slots, meetsThreshold=%d", active, meets)
        return BackendProof(
            proof=Groth16Proof(pi_a=pi_a, pi_b=pi_b, pi_c=pi_c),
            public_signals=public_signals,
        )

    def verify_proof(
        self,
        verifying_key: Dict[str, Any],
        public_signals: Sequence[str],
        proof: Groth16Proof,
    ) -> bool:
        try:
            if not isinstance(verifying_key, dict):
                return False
            if verifying_key.get("backend") != "reference":
                return False
            commitment = verifying_key.get("commitment")
            if not isinstance(commitment, str):
                return False
            if not isinstance(proof, Groth16Proof):
                return False
            if proof.protocol != PROOF_PROTOCOL or proof.curve != CURVE_NAME:
                return False
            signals = tuple(str(s) for s in public_signals)
            if len(signals) != verifying_key.get("nPublic"):
                return False
            if proof.pi_b != _derive_pi_b(commitment, proof.pi_a):
                return False
            return proof.pi_c == _derive_pi_c(commitment, signals, proof.pi_a, proof.pi_b)
        except Exception:
            return False

    def get_backend_info(self) -> Dict[str, Any]:
        return {
            "name": self.backend_name,
            "version": self.backend_version,
            "adapter": "reference",
            "features": ["activity_threshold"],
            "security": "reference_only",
        }


def _key_commitment(circuit_binary: bytes, proving_key: bytes) -> str:
    return hashlib.sha256(proving_key + circuit_binary).hexdigest()


def _field_digest(*parts: str) -> str:
    data = "|".join(parts).encode("utf-8")
    return str(int.from_bytes(hashlib.sha256(data).digest(), "big") % FIELD_PRIME)


def _derive_pi_b(commitment: str, pi_a: Sequence[str]) -> Tuple[Tuple[str, ...], ...]:
    rows: List[Tuple[str, ...]] = []
    for row in range(2):
        rows.append(
            tuple(_field_digest("b", commitment, str(row), str(col), *pi_a) for col in range(2))
        )
    rows.append(("1", "0"))
    return tuple(rows)


def _derive_pi_c(
    commitment: str,
    public_signals: Sequence[str],
    pi_a: Sequence[str],
    pi_b: Sequence[Sequence[str]],
) -> Tuple[str, ...]:
    flat_b = [x for row in pi_b for x in row]
    return (
        _field_digest("c0", commitment, *public_signals, *pi_a, *flat_b),
        _field_digest("c1", commitment, *public_signals, *pi_a, *flat_b),
        "1",
    )
