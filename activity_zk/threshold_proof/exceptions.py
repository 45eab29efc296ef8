"""
Custom exceptions for the activity-threshold proof subsystem.

Callers can tell bad input (``WitnessError``) apart from backend failure
(``BackendError``) and decide whether to fix the input or retry.
"""

from __future__ import annotations

from typing import Iterable, Optional


class ActivityProofError(Exception):
    """Base exception for activity proof errors."""

    pass


class WitnessError(ActivityProofError):
    """Witness violates an ordering, padding, size or freshness rule."""

    def __init__(self, violations: Iterable[str] | str) -> None:
        if isinstance(violations, str):
            violations = [violations]
        self.violations: list[str] = list(violations)
        super().__init__("invalid witness: " + "; ".join(self.violations))


class BackendError(ActivityProofError):
    """Proving backend crashed, timed out, or broke its output contract."""

    def __init__(self, message: str, *, circuit_id: Optional[str] = None) -> None:
        self.circuit_id = circuit_id
        prefix = f"[{circuit_id}] " if circuit_id else ""
        super().__init__(prefix + message)


class BackendTimeoutError(BackendError):
    """Proving backend exceeded its timeout."""

    pass


class VerificationMismatch(ActivityProofError):
    """Proof does not match its public inputs or verifying key.

    Only raised inside verification helpers; ``verify`` reports it as an
    invalid result.
    """

    pass


class CacheError(ActivityProofError):
    """Artifact cache backing store failure."""

    pass


class ConfigurationError(ActivityProofError):
    """Configuration error."""

    pass


class CircuitNotFoundError(ConfigurationError):
    """Circuit id is not registered."""

    def __init__(self, circuit_id: str) -> None:
        self.circuit_id = circuit_id
        super().__init__(f"Circuit not found: {circuit_id}")


class ArtifactLoadError(ActivityProofError):
    """Circuit artifact could not be loaded from its origin."""

    def __init__(self, circuit_id: str, kind: str, cause: Optional[str] = None) -> None:
        self.circuit_id = circuit_id
        self.kind = kind
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to load {kind} for circuit {circuit_id}{detail}")


class ProofBusyError(ActivityProofError):
    """A proof for the same circuit is already in flight."""

    def __init__(self, circuit_id: str) -> None:
        self.circuit_id = circuit_id
        super().__init__(f"Another proof for circuit {circuit_id} is in progress")


class ProofCancelledError(ActivityProofError):
    """Proof generation was cancelled before it completed."""

    def __init__(self, circuit_id: str) -> None:
        self.circuit_id = circuit_id
        super().__init__(f"Proof generation for circuit {circuit_id} was cancelled")
