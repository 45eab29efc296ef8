"""Groth16 proving backend that drives the snarkjs CLI."""

from __future__ import annotations

import json
import logging
import shlex
import subprocess
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..config import DEFAULT_PROVER_TIMEOUT, snarkjs_command
from ..interfaces import ProvingBackend
from ..types import BackendProof, Groth16Proof

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1


@dataclass(frozen=True)
class SnarkjsContext:
    command: tuple[str, ...]
    timeout: float


class SnarkjsBackend(ProvingBackend):
    """
    Generate and verify Groth16 proofs with ``snarkjs groth16``.

    Artifacts are written to a temporary directory per call; the directory
    and every buffer written to it are dropped when the call returns. The
    child process is killed when the cancel flag is set or the timeout runs
    out.
    """

    _BACKEND_NAME = "SnarkjsBackend"
    _BACKEND_VERSION = "0.1.0"

    def __init__(
        self,
        command: Optional[str] = None,
        timeout: float = DEFAULT_PROVER_TIMEOUT,
    ) -> None:
        self._context = SnarkjsContext(
            command=tuple(shlex.split(command or snarkjs_command())),
            timeout=timeout,
        )

    @property
    def backend_name(self) -> str:
        return self._BACKEND_NAME

    @property
    def backend_version(self) -> str:
        return self._BACKEND_VERSION

    def generate_proof(
        self,
        circuit_binary: bytes,
        proving_key: bytes,
        witness: Dict[str, Any],
        cancel: Optional[threading.Event] = None,
    ) -> BackendProof:
        with tempfile.TemporaryDirectory(prefix="activity-zk-") as tmp_dir:
            work = Path(tmp_dir)
            input_path = work / "input.json"
            wasm_path = work / "circuit.wasm"
            zkey_path = work / "circuit.zkey"
            proof_path = work / "proof.json"
            public_path = work / "public.json"

            input_path.write_text(json.dumps(witness), encoding="utf-8")
            wasm_path.write_bytes(circuit_binary)
            zkey_path.write_bytes(proving_key)

            self._run(
                "groth16",
                "fullprove",
                str(input_path),
                str(wasm_path),
                str(zkey_path),
                str(proof_path),
                str(public_path),
                cancel=cancel,
            )
            proof = Groth16Proof.from_dict(json.loads(proof_path.read_text("utf-8")))
            public_signals = json.loads(public_path.read_text("utf-8"))

        if not isinstance(public_signals, list):
            raise RuntimeError("snarkjs returned malformed public signals")
        return BackendProof(
            proof=proof,
            public_signals=tuple(str(s) for s in public_signals),
        )

    def verify_proof(
        self,
        verifying_key: Dict[str, Any],
        public_signals: Sequence[str],
        proof: Groth16Proof,
    ) -> bool:
        try:
            with tempfile.TemporaryDirectory(prefix="activity-zk-") as tmp_dir:
                work = Path(tmp_dir)
                vkey_path = work / "vkey.json"
                public_path = work / "public.json"
                proof_path = work / "proof.json"
                vkey_path.write_text(json.dumps(verifying_key), encoding="utf-8")
                public_path.write_text(
                    json.dumps([str(s) for s in public_signals]), encoding="utf-8"
                )
                proof_path.write_text(json.dumps(proof.to_dict()), encoding="utf-8")
                result = self._run(
                    "groth16",
                    "verify",
                    str(vkey_path),
                    str(public_path),
                    str(proof_path),
                    check=False,
                )
            return result.returncode == 0
        except Exception as exc:
            logger.debug("snarkjs verification failed: %s", exc)
            return False

    def get_backend_info(self) -> Dict[str, Any]:
        return {
            "name": self.backend_name,
            "version": self.backend_version,
            "adapter": "snarkjs",
            "command": " ".join(self._context.command),
            "features": ["groth16"],
        }

    def _run(
        self,
        *args: str,
        check: bool = True,
        cancel: Optional[threading.Event] = None,
    ) -> subprocess.CompletedProcess:
        command: List[str] = [*self._context.command, *args]
        logger.debug("Running %s", " ".join(command))
        deadline = time.monotonic() + self._context.timeout
        process = subprocess.Popen(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        while True:
            try:
                stdout, stderr = process.communicate(timeout=_POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    _kill(process)
                    raise RuntimeError("snarkjs cancelled")
                if time.monotonic() >= deadline:
                    _kill(process)
                    raise subprocess.TimeoutExpired(command, self._context.timeout)

        result = subprocess.CompletedProcess(command, process.returncode, stdout, stderr)
        if check and result.returncode != 0:
            stderr = result.stderr.strip() or result.stdout.strip() or "unknown snarkjs error"
            raise RuntimeError(f"snarkjs failed: {stderr}")
        return result


def _kill(process: subprocess.Popen) -> None:
    process.kill()
    process.communicate()
