"""
Proof orchestration: validate, prove, check, verify.

``ProofOrchestrator.generate`` re-checks the witness, runs the blocking
backend in a worker thread under a timeout, maps every backend failure to
``BackendError`` (retried once), asserts the public signal layout and
optionally self-verifies. Cancellation and timeouts set a flag the backend
polls; the worker is always awaited before the circuit slot is released.
``verify`` never raises for a failed check; it returns a
``VerificationResult`` with a reason.

The backend computes ``meetsThreshold``. The orchestrator checks that the
echoed public inputs match the witness but never recounts active slots.
"""

from __future__ import annotations

import functools
import logging
import threading
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union

import trio

from .circuit_registry import VERIFIED_BUILDER, CircuitConfig, estimate_proof_time, get_circuit_config
from .concurrency import ProofScheduler
from .config import (
    BACKEND_MAX_ATTEMPTS,
    DEFAULT_PROOF_LIFETIME_SECONDS,
    DEFAULT_PROVER_TIMEOUT,
    FIELD_PRIME,
    PROGRESS_CAP_PERCENT,
    PROGRESS_INTERVAL_SECONDS,
    PUBLIC_SIGNAL_ORDER,
)
from .exceptions import (
    ActivityProofError,
    ArtifactLoadError,
    BackendError,
    BackendTimeoutError,
    ConfigurationError,
    VerificationMismatch,
    WitnessError,
)
from .interfaces import ProvingBackend
from .snark.assets import ArtifactLoader
from .types import (
    BackendProof,
    CircuitArtifacts,
    Groth16Proof,
    ProofRecord,
    VerificationResult,
)
from .witness import CircuitInput, validate_circuit_input

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]
ProofLike = Union[ProofRecord, Groth16Proof, Dict[str, Any]]

_MEETS_INDEX = PUBLIC_SIGNAL_ORDER.index("meetsThreshold")


class ProofOrchestrator:
    """
    Generate and verify activity-threshold proofs for one circuit.

    Example:
        orchestrator = ProofOrchestrator(ReferenceBackend(), loader=loader)
        witness = assemble(timestamps, threshold=3)
        record = await orchestrator.generate(witness)
        result = orchestrator.verify(record)
        assert result.is_valid and result.meets_threshold
    """

    def __init__(
        self,
        backend: ProvingBackend,
        *,
        circuit: CircuitConfig = VERIFIED_BUILDER,
        loader: Optional[ArtifactLoader] = None,
        scheduler: Optional[ProofScheduler] = None,
        timeout: float = DEFAULT_PROVER_TIMEOUT,
        max_attempts: int = BACKEND_MAX_ATTEMPTS,
        proof_lifetime: float = DEFAULT_PROOF_LIFETIME_SECONDS,
    ) -> None:
        if not isinstance(backend, ProvingBackend):
            raise TypeError("backend must implement ProvingBackend")
        if max_attempts not in (1, 2):
            raise ValueError("max_attempts must be 1 or 2")
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self._backend = backend
        self._circuit = circuit
        self._loader = loader
        self._scheduler = scheduler if scheduler is not None else ProofScheduler()
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._proof_lifetime = proof_lifetime
        self._verifying_key: Optional[Dict[str, Any]] = None

    @property
    def backend(self) -> ProvingBackend:
        return self._backend

    @property
    def circuit(self) -> CircuitConfig:
        return self._circuit

    @property
    def scheduler(self) -> ProofScheduler:
        return self._scheduler

    def cancel(self) -> bool:
        """Cancel the in-flight generation for this circuit, if any."""
        return self._scheduler.cancel(self._circuit.id)

    # ========================================================================
    # GENERATION
    # ========================================================================

    async def generate(
        self,
        witness: CircuitInput,
        artifacts: Optional[CircuitArtifacts] = None,
        *,
        self_verify: bool = True,
        policy: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        now: Optional[float] = None,
    ) -> ProofRecord:
        """
        Generate a proof record for ``witness``.

        Args:
            witness: Assembled circuit input
            artifacts: Proving artifacts; loaded through the loader if None
            self_verify: Verify the fresh proof before returning it
            policy: Scheduling policy (queue, restart, reject)
            on_progress: Called with 0..90 while proving and 100 on success
            now: Current Unix time, for the freshness window

        Returns:
            ProofRecord with status ``verified`` (or ``ready`` without self-verify)

        Raises:
            WitnessError: Bad input; raised before any backend call
            BackendError: Backend crashed, timed out or broke its output contract
            ProofBusyError: Policy ``reject`` and the circuit is busy
            ProofCancelledError: Cancelled through the scheduler
            ArtifactLoadError: Artifacts could not be loaded
        """
        self._check_witness(witness, now)

        async with self._scheduler.slot(self._circuit.id, policy):
            if artifacts is None:
                artifacts = await self._load_artifacts()
            if artifacts.version != self._circuit.version:
                raise ConfigurationError(
                    f"artifact version {artifacts.version} does not match "
                    f"circuit {self._circuit.id} v{self._circuit.version}"
                )
            self._verifying_key = artifacts.verifying_key

            signals = witness.to_circuit_signals()
            started = trio.current_time()
            backend_proof = await self._prove_with_retry(artifacts, signals, on_progress)
            self._check_signal_contract(backend_proof.public_signals, witness)

            record = ProofRecord.create(
                self._circuit.id, backend_proof, lifetime=self._proof_lifetime
            )
            if self_verify:
                valid = await trio.to_thread.run_sync(
                    self._backend.verify_proof,
                    artifacts.verifying_key,
                    record.public_signals,
                    record.proof,
                )
                if not valid:
                    raise BackendError(
                        "self-verification of the generated proof failed",
                        circuit_id=self._circuit.id,
                    )
                record = record.mark_verified()

        elapsed = trio.current_time() - started
        logger.info(
            "Generated proof %s for %s in %.2fs (meetsThreshold=%d)",
            record.id,
            self._circuit.id,
            elapsed,
            int(record.meets_threshold),
        )
        _emit_progress(on_progress, 100)
        return record

    def _check_witness(self, witness: CircuitInput, now: Optional[float]) -> None:
        if not isinstance(witness, CircuitInput):
            raise WitnessError("witness must be a CircuitInput")
        violations = []
        if witness.max_slots != self._circuit.max_slots:
            violations.append(
                f"witness has {witness.max_slots} slots, circuit expects "
                f"{self._circuit.max_slots}"
            )
        if witness.depth != self._circuit.merkle_depth:
            violations.append(
                f"witness depth {witness.depth}, circuit expects "
                f"{self._circuit.merkle_depth}"
            )
        if violations:
            raise WitnessError(violations)
        validate_circuit_input(witness, now=now)

    async def _load_artifacts(self) -> CircuitArtifacts:
        if self._loader is None:
            raise ConfigurationError("no artifacts given and no artifact loader configured")
        return await self._loader.load(self._circuit)

    async def _prove_with_retry(
        self,
        artifacts: CircuitArtifacts,
        signals: Dict[str, Any],
        on_progress: Optional[ProgressCallback],
    ) -> BackendProof:
        last_error: Optional[BackendError] = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await self._prove_once(artifacts, signals, on_progress)
            except BackendError as exc:
                last_error = exc
                logger.warning(
                    "Backend attempt %d/%d failed: %s", attempt, self._max_attempts, exc
                )
        assert last_error is not None
        raise last_error

    async def _prove_once(
        self,
        artifacts: CircuitArtifacts,
        signals: Dict[str, Any],
        on_progress: Optional[ProgressCallback],
    ) -> BackendProof:
        cancel_requested = threading.Event()
        call = functools.partial(
            self._backend.generate_proof,
            artifacts.circuit_binary,
            artifacts.proving_key,
            signals,
            cancel=cancel_requested,
        )
        failure: Optional[Exception] = None
        result: Any = None
        # The worker is never abandoned: a cancelled or timed-out attempt
        # still holds the circuit slot until the backend call returns.
        with trio.move_on_after(self._timeout) as deadline:
            async with trio.open_nursery() as nursery:
                nursery.start_soon(_flag_on_cancel, cancel_requested)
                if on_progress is not None:
                    nursery.start_soon(self._report_progress, on_progress)
                try:
                    result = await trio.to_thread.run_sync(call)
                except Exception as exc:
                    failure = exc
                finally:
                    nursery.cancel_scope.cancel()
            await trio.lowlevel.checkpoint_if_cancelled()

        if deadline.cancelled_caught:
            raise BackendTimeoutError(
                f"backend exceeded timeout of {self._timeout:g}s",
                circuit_id=self._circuit.id,
            )
        if failure is not None:
            if isinstance(failure, BackendError):
                raise failure
            raise BackendError(
                f"backend failed: {failure}", circuit_id=self._circuit.id
            ) from failure
        if not isinstance(result, BackendProof):
            raise BackendError(
                f"backend returned {type(result).__name__}, expected BackendProof",
                circuit_id=self._circuit.id,
            )
        return result

    async def _report_progress(self, on_progress: ProgressCallback) -> None:
        estimate = estimate_proof_time(self._circuit)
        started = trio.current_time()
        last = -1
        while True:
            elapsed = trio.current_time() - started
            percent = min(PROGRESS_CAP_PERCENT, int(elapsed / estimate * 100))
            if percent != last:
                if not _emit_progress(on_progress, percent):
                    return
                last = percent
            await trio.sleep(PROGRESS_INTERVAL_SECONDS)

    def _check_signal_contract(
        self, public_signals: Sequence[str], witness: CircuitInput
    ) -> None:
        """Assert ``[root, threshold, freshness_timestamp, meets]`` without recounting."""
        expected = len(PUBLIC_SIGNAL_ORDER)
        if len(public_signals) != expected:
            raise BackendError(
                f"backend returned {len(public_signals)} public signals, expected {expected}",
                circuit_id=self._circuit.id,
            )
        try:
            values = _parse_signals(public_signals)
        except ValueError as exc:
            raise BackendError(str(exc), circuit_id=self._circuit.id) from exc

        echoed = (witness.root, witness.threshold, witness.freshness_timestamp)
        for name, got, want in zip(PUBLIC_SIGNAL_ORDER, values, echoed):
            if got != want:
                raise BackendError(
                    f"public signal {name} does not match the witness",
                    circuit_id=self._circuit.id,
                )
        if values[_MEETS_INDEX] not in (0, 1):
            raise BackendError(
                "public signal meetsThreshold must be 0 or 1",
                circuit_id=self._circuit.id,
            )

    # ========================================================================
    # VERIFICATION
    # ========================================================================

    def verify(
        self,
        proof: ProofLike,
        public_signals: Optional[Sequence[str]] = None,
        verifying_key: Optional[Dict[str, Any]] = None,
        *,
        now: Optional[float] = None,
    ) -> VerificationResult:
        """
        Verify a proof with the backend verifier.

        Never raises for a failed check: tampering, a wrong key, malformed
        signals, an expired record or a backend error all yield
        ``is_valid=False`` with a reason.
        """
        try:
            groth16, signals = self._unpack(proof, public_signals, now)
            vkey = verifying_key if verifying_key is not None else self._verifying_key
            if vkey is None:
                raise VerificationMismatch("no verifying key available")
            values = _parse_signals(signals)
            if len(values) != len(PUBLIC_SIGNAL_ORDER):
                raise VerificationMismatch(
                    f"expected {len(PUBLIC_SIGNAL_ORDER)} public signals, got {len(values)}"
                )
            if values[_MEETS_INDEX] not in (0, 1):
                raise VerificationMismatch("meetsThreshold must be 0 or 1")
            if not self._backend.verify_proof(vkey, tuple(signals), groth16):
                raise VerificationMismatch(
                    "proof does not match its public signals or verifying key"
                )
        except (VerificationMismatch, ValueError) as exc:
            logger.debug("Verification failed: %s", exc)
            return VerificationResult.invalid(str(exc))
        except Exception as exc:
            logger.warning("Verifier error: %s", exc)
            return VerificationResult.invalid(f"verifier error: {exc}")

        return VerificationResult(
            is_valid=True,
            meets_threshold=values[_MEETS_INDEX] == 1,
        )

    async def verify_locally(
        self, record: ProofRecord, *, now: Optional[float] = None
    ) -> VerificationResult:
        """Fetch the record's verifying key through the loader and verify."""
        try:
            config = get_circuit_config(record.circuit)
        except ActivityProofError as exc:
            return VerificationResult.invalid(str(exc))
        if self._loader is None:
            return self.verify(record, now=now)
        try:
            vkey = await self._loader.load_verifying_key(config)
        except ArtifactLoadError as exc:
            return VerificationResult.invalid(f"verifying key unavailable: {exc}")
        return await trio.to_thread.run_sync(
            functools.partial(self.verify, record, verifying_key=vkey, now=now)
        )

    def _unpack(
        self,
        proof: ProofLike,
        public_signals: Optional[Sequence[str]],
        now: Optional[float],
    ) -> Tuple[Groth16Proof, Sequence[str]]:
        if isinstance(proof, dict):
            proof = ProofRecord.from_dict(proof) if "publicSignals" in proof else Groth16Proof.from_dict(proof)
        if isinstance(proof, ProofRecord):
            if proof.circuit != self._circuit.id:
                raise VerificationMismatch(
                    f"proof is for circuit {proof.circuit}, not {self._circuit.id}"
                )
            if proof.is_expired(now):
                raise VerificationMismatch("proof has expired")
            signals = public_signals if public_signals is not None else proof.public_signals
            return proof.proof, signals
        if isinstance(proof, Groth16Proof):
            if public_signals is None:
                raise VerificationMismatch("public signals are required")
            return proof, public_signals
        raise VerificationMismatch(f"unsupported proof type {type(proof).__name__}")


def _parse_signals(public_signals: Sequence[Any]) -> Tuple[int, ...]:
    values = []
    for index, raw in enumerate(public_signals):
        text = str(raw)
        if not text.isdigit():
            raise ValueError(f"public signal {index} is not a decimal field element")
        value = int(text)
        if value >= FIELD_PRIME:
            raise ValueError(f"public signal {index} is not a field element")
        values.append(value)
    return tuple(values)


def _emit_progress(on_progress: Optional[ProgressCallback], percent: int) -> bool:
    if on_progress is None:
        return False
    try:
        on_progress(percent)
    except Exception as exc:
        logger.warning("Progress callback failed: %s", exc)
        return False
    return True


async def _flag_on_cancel(flag: threading.Event) -> None:
    try:
        await trio.sleep_forever()
    finally:
        flag.set()
