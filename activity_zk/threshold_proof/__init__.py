"""Public API for the activity-threshold proof subsystem."""
from __future__ import annotations

from importlib import import_module

from .circuit_registry import (
    VERIFIED_BUILDER,
    CircuitConfig,
    estimate_proof_time,
    get_circuit_config,
)
from .exceptions import (
    ActivityProofError,
    BackendError,
    BackendTimeoutError,
    CacheError,
    VerificationMismatch,
    WitnessError,
)
from .factory import get_proving_backend
from .feature_flags import (
    get_backend_type,
    get_scheduling_policy,
    set_backend_type,
    set_scheduling_policy,
)
from .interfaces import ProvingBackend
from .merkle import InclusionProof, SparseMerkleTree, build_tree, verify_path
from .orchestrator import ProofOrchestrator
from .poseidon import hash_leaf, hash_pair, poseidon_hash
from .types import ProofRecord, ProofStatus, VerificationResult
from .witness import ActiveSlot, CircuitInput, PaddingSlot, assemble

__all__ = [
    "ActiveSlot",
    "ActivityProofError",
    "BackendError",
    "BackendTimeoutError",
    "CacheError",
    "CircuitConfig",
    "CircuitInput",
    "InclusionProof",
    "PaddingSlot",
    "ProofOrchestrator",
    "ProofRecord",
    "ProofStatus",
    "ProvingBackend",
    "ReferenceBackend",
    "SnarkjsBackend",
    "SparseMerkleTree",
    "VERIFIED_BUILDER",
    "VerificationMismatch",
    "VerificationResult",
    "WitnessError",
    "assemble",
    "build_tree",
    "estimate_proof_time",
    "get_backend_type",
    "get_circuit_config",
    "get_proving_backend",
    "get_scheduling_policy",
    "hash_leaf",
    "hash_pair",
    "poseidon_hash",
    "set_backend_type",
    "set_scheduling_policy",
    "verify_path",
]

_LAZY_EXPORTS = {
    "ReferenceBackend": "adapters.reference_backend",
    "SnarkjsBackend": "snark.backend",
}


def __getattr__(name: str):
    if name in _LAZY_EXPORTS:
        module = import_module(f"{__name__}.{_LAZY_EXPORTS[name]}")
        value = getattr(module, name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
