"""Resolve, load and cache circuit artifacts with backward-compatible path fallbacks."""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

import trio

from ..circuit_registry import ARTIFACT_KINDS, CircuitConfig
from ..config import artifacts_dir
from ..exceptions import ArtifactLoadError
from ..types import CircuitArtifacts

if TYPE_CHECKING:
    from ...artifact_cache.store import ArtifactCache

logger = logging.getLogger(__name__)


def resolve_artifact_path(
    config: CircuitConfig,
    kind: str,
    base_dir: str | Path | None = None,
) -> Path:
    """
    Resolve an artifact file.

    Checks ``<base>/<circuit>/v<version>/<file>`` first, then the flat
    ``<base>/<file>`` layout.

    Raises:
        FileNotFoundError: If no candidate exists
    """
    if kind not in ARTIFACT_KINDS:
        raise ValueError(f"kind must be one of {', '.join(ARTIFACT_KINDS)}")
    base = Path(base_dir) if base_dir else artifacts_dir()
    filename = config.file_for(kind)
    candidates = [
        versioned_artifact_dir(config, base) / filename,
        base / filename,
    ]
    return _first_existing(candidates, f"{config.id} v{config.version} {kind}")


def versioned_artifact_dir(config: CircuitConfig, base_dir: str | Path) -> Path:
    return Path(base_dir) / config.id / f"v{config.version}"


def write_artifacts(
    config: CircuitConfig,
    artifacts: CircuitArtifacts,
    base_dir: str | Path | None = None,
) -> Dict[str, Path]:
    """Write artifacts in the versioned layout. Returns kind -> path."""
    target = versioned_artifact_dir(config, Path(base_dir) if base_dir else artifacts_dir())
    target.mkdir(parents=True, exist_ok=True)
    payloads = {
        "binary:wasm": artifacts.circuit_binary,
        "binary:zkey": artifacts.proving_key,
        "vkey": _encode_vkey(artifacts.verifying_key),
    }
    written = {}
    for kind, payload in payloads.items():
        path = target / config.file_for(kind)
        path.write_bytes(payload)
        written[kind] = path
    return written


class ArtifactLoader:
    """
    Read-through loader: cache first, then the artifact directory.

    Cache failures never propagate; a miss falls back to the origin and the
    result is written back to the cache.
    """

    def __init__(
        self,
        cache: Optional["ArtifactCache"] = None,
        base_dir: str | Path | None = None,
    ) -> None:
        self._cache = cache
        self._base_dir = Path(base_dir) if base_dir else None

    @property
    def base_dir(self) -> Path:
        return self._base_dir if self._base_dir else artifacts_dir()

    async def load(self, config: CircuitConfig) -> CircuitArtifacts:
        """
        Load compiled circuit, proving key and verifying key.

        Raises:
            ArtifactLoadError: If an artifact is missing or fails its digest check
        """
        circuit_binary = await self._load_bytes(config, "binary:wasm")
        proving_key = await self._load_bytes(config, "binary:zkey")
        verifying_key = await self.load_verifying_key(config)
        return CircuitArtifacts(
            circuit_binary=circuit_binary,
            proving_key=proving_key,
            verifying_key=verifying_key,
            version=config.version,
        )

    async def load_verifying_key(self, config: CircuitConfig) -> Dict[str, Any]:
        raw = await self._load_bytes(config, "vkey")
        try:
            vkey = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise ArtifactLoadError(config.id, "vkey", f"invalid JSON: {exc}") from exc
        if not isinstance(vkey, dict):
            raise ArtifactLoadError(config.id, "vkey", "expected a JSON object")
        return vkey

    async def _load_bytes(self, config: CircuitConfig, kind: str) -> bytes:
        if self._cache is not None:
            cached = await self._cache.get(config.id, kind, config.version)
            if cached is not None:
                logger.debug("Cache hit: %s %s v%s", config.id, kind, config.version)
                return cached

        payload = await trio.to_thread.run_sync(self._read_origin, config, kind)
        if self._cache is not None:
            await self._cache.set(config.id, kind, config.version, payload)
        return payload

    def _read_origin(self, config: CircuitConfig, kind: str) -> bytes:
        try:
            path = resolve_artifact_path(config, kind, self.base_dir)
            payload = path.read_bytes()
        except OSError as exc:
            raise ArtifactLoadError(config.id, kind, str(exc)) from exc

        expected = config.digest_for(kind)
        if expected is not None:
            actual = hashlib.sha256(payload).hexdigest()
            if actual != expected.lower():
                raise ArtifactLoadError(
                    config.id, kind, f"sha256 mismatch: expected {expected}, got {actual}"
                )
        logger.debug("Loaded %s for %s from %s (%d bytes)", kind, config.id, path, len(payload))
        return payload


def _encode_vkey(verifying_key: Dict[str, Any]) -> bytes:
    return json.dumps(verifying_key, sort_keys=True, indent=2).encode("utf-8")


def _first_existing(candidates: Iterable[Path], label: str) -> Path:
    checked: List[Path] = list(candidates)
    for path in checked:
        if path.exists():
            return path
    raise FileNotFoundError(
        f"Unable to resolve {label}. Checked: {', '.join(str(p) for p in checked)}"
    )
