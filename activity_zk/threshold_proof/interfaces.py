"""
Proving backend interface.

The arithmetic-circuit prover is an opaque dependency reached through two
functions: ``generate_proof`` and ``verify_proof``. Backends implement this
ABC so the orchestrator and the factory can treat them uniformly.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence

from .types import BackendProof, Groth16Proof


class ProvingBackend(ABC):
    """Abstract base for activity-threshold proving backends."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Human-readable backend name."""

    @property
    def backend_version(self) -> str:
        return "0.1.0"

    @abstractmethod
    def generate_proof(
        self,
        circuit_binary: bytes,
        proving_key: bytes,
        witness: Dict[str, Any],
        cancel: Optional[threading.Event] = None,
    ) -> BackendProof:
        """
        Generate a proof for the named circuit signals in ``witness``.

        Blocking; callers run it in a worker thread and wait for it to return
        even when the request is cancelled. Backends should poll ``cancel``
        and stop early once it is set.

        Raises:
            Exception: Any failure; the orchestrator maps it to BackendError
        """

    @abstractmethod
    def verify_proof(
        self,
        verifying_key: Dict[str, Any],
        public_signals: Sequence[str],
        proof: Groth16Proof,
    ) -> bool:
        """Return True iff ``proof`` verifies for ``public_signals``. Must not raise."""

    def get_backend_info(self) -> Dict[str, Any]:
        return {
            "name": self.backend_name,
            "version": self.backend_version,
        }
