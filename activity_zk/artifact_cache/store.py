"""
Persistent, versioned cache for circuit artifacts.

Layout under ``root_dir``::

    index.cbor          entry metadata, replaced atomically on every commit
    blobs/<sha256>.bin  one payload per write; a blob is never rewritten in place

Every public operation is one transaction: a ``trio.Lock`` admits a single
writer, payload blobs are written before the index commit that references
them and removed only after the commit that drops or replaces them. A reader
therefore never observes an index entry without its blob.

Failures of the backing store are logged and reported as a miss or no-op;
a broken cache never blocks proof generation. An unreadable index is moved
aside and the cache starts over empty.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import cbor2
import trio

from ..threshold_proof.exceptions import CacheError
from .constants import (
    ARTIFACT_KINDS,
    BINARY_KINDS,
    BLOB_DIRNAME,
    DEFAULT_MAX_BINARY_BYTES,
    INDEX_FILENAME,
    INDEX_VERSION,
    REQUIRED_KINDS,
    VKEY_KIND,
    CacheConfig,
)

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    circuit_id: str
    kind: str
    version: str
    size: int
    blob: str
    created_at: float
    last_accessed_at: float
    # Logical clock for LRU; wall time can tie or step backwards
    access_tick: int
    seq: int

    @property
    def is_binary(self) -> bool:
        return self.kind in BINARY_KINDS


@dataclass(frozen=True)
class CacheStats:
    binary_count: int
    binary_size: int
    vkey_count: int
    vkey_size: int

    @property
    def total_size(self) -> int:
        return self.binary_size + self.vkey_size


@dataclass
class _Index:
    tick: int
    seq: int
    entries: Dict[str, CacheEntry]


def _entry_key(circuit_id: str, kind: str, version: str) -> str:
    return json.dumps([circuit_id, kind, version], separators=(",", ":"))


def _blob_name(key: str, seq: int) -> str:
    return hashlib.sha256(f"{key}#{seq}".encode("utf-8")).hexdigest() + ".bin"


def _check_kind(kind: str) -> None:
    if kind not in ARTIFACT_KINDS:
        raise ValueError(
            f"Invalid artifact kind: {kind!r}. Valid options: {', '.join(ARTIFACT_KINDS)}"
        )


class ArtifactCache:
    """
    Versioned key-value store for compiled circuits, proving keys and
    verifying keys.

    Binaries share a total-size budget; writing past it evicts the least
    recently accessed binaries (ties by insertion order). Verifying keys are
    never evicted by size pressure.

    Example:
        cache = ArtifactCache(tmp_path, max_binary_bytes=100)
        await cache.set("verified-builder", "binary:wasm", "2.0.0", wasm)
        assert await cache.get("verified-builder", "binary:wasm", "2.0.0") == wasm
        assert await cache.get("verified-builder", "binary:wasm", "3.0.0") is None
    """

    def __init__(
        self,
        root_dir: Path | str,
        *,
        max_binary_bytes: int = DEFAULT_MAX_BINARY_BYTES,
    ) -> None:
        if max_binary_bytes <= 0:
            raise ValueError("max_binary_bytes must be positive")
        self._root = Path(root_dir)
        self._blob_dir = self._root / BLOB_DIRNAME
        self._index_path = self._root / INDEX_FILENAME
        self._max_binary_bytes = max_binary_bytes
        self._lock = trio.Lock()

    @classmethod
    def from_config(cls, config: CacheConfig) -> "ArtifactCache":
        return cls(config.root_dir, max_binary_bytes=config.max_binary_bytes)

    @property
    def root_dir(self) -> Path:
        return self._root

    @property
    def max_binary_bytes(self) -> int:
        return self._max_binary_bytes

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def get(self, circuit_id: str, kind: str, version: str) -> Optional[bytes]:
        """Return the payload on an exact version match, else None. Touches the entry."""
        _check_kind(kind)
        return await self._transaction(
            "get", None, self._get_sync, circuit_id, kind, version
        )

    async def set(
        self, circuit_id: str, kind: str, version: str, payload: bytes
    ) -> bool:
        """
        Store ``payload``, evicting binaries if the budget would be exceeded.

        Returns:
            True if stored; False if skipped or the store failed
        """
        _check_kind(kind)
        if not isinstance(payload, (bytes, bytearray)):
            raise TypeError("payload must be bytes")
        return await self._transaction(
            "set", False, self._set_sync, circuit_id, kind, version, bytes(payload)
        )

    async def has(self, circuit_id: str, version: str) -> bool:
        """True only if every required kind is cached for ``version``. Does not touch."""
        return await self._transaction("has", False, self._has_sync, circuit_id, version)

    async def delete(self, circuit_id: str, kind: str, version: str) -> bool:
        _check_kind(kind)
        removed = await self._transaction(
            "delete", 0, self._remove_sync, lambda e: (
                e.circuit_id == circuit_id and e.kind == kind and e.version == version
            )
        )
        return removed > 0

    async def invalidate_circuit(self, circuit_id: str) -> int:
        """Remove every kind and version of ``circuit_id``. Returns the entry count removed."""
        removed = await self._transaction(
            "invalidate", 0, self._remove_sync, lambda e: e.circuit_id == circuit_id
        )
        if removed:
            logger.info("Invalidated %d cached artifacts for %s", removed, circuit_id)
        return removed

    async def clear(self) -> int:
        """Drop every entry and every blob on disk. Returns the entry count removed."""
        return await self._transaction("clear", 0, self._clear_sync)

    async def get_stats(self) -> CacheStats:
        empty = CacheStats(binary_count=0, binary_size=0, vkey_count=0, vkey_size=0)
        return await self._transaction("stats", empty, self._stats_sync)

    async def entries(self) -> List[CacheEntry]:
        return await self._transaction("entries", [], self._entries_sync)

    # ========================================================================
    # TRANSACTIONS
    # ========================================================================

    async def _transaction(self, name: str, fallback: Any, fn: Any, *args: Any) -> Any:
        async with self._lock:
            try:
                return await trio.to_thread.run_sync(fn, *args)
            except (CacheError, OSError) as exc:
                logger.warning("Artifact cache %s failed: %s", name, exc)
                return fallback

    def _get_sync(self, circuit_id: str, kind: str, version: str) -> Optional[bytes]:
        index = self._load_index()
        key = _entry_key(circuit_id, kind, version)
        entry = index.entries.get(key)
        if entry is None:
            return None

        blob_path = self._blob_dir / entry.blob
        try:
            payload = blob_path.read_bytes()
        except FileNotFoundError:
            logger.warning("Cached blob missing for %s; dropping entry", key)
            del index.entries[key]
            self._commit_index(index)
            return None

        if len(payload) != entry.size:
            logger.warning("Cached blob size mismatch for %s; dropping entry", key)
            del index.entries[key]
            self._commit_index(index)
            self._unlink_blobs([entry.blob])
            return None

        index.tick += 1
        entry.access_tick = index.tick
        entry.last_accessed_at = time.time()
        self._commit_index(index)
        return payload

    def _set_sync(self, circuit_id: str, kind: str, version: str, payload: bytes) -> bool:
        size = len(payload)
        if kind in BINARY_KINDS and size > self._max_binary_bytes:
            logger.warning(
                "Not caching %s %s v%s: %d bytes exceeds budget of %d bytes",
                circuit_id,
                kind,
                version,
                size,
                self._max_binary_bytes,
            )
            return False

        index = self._load_index()
        key = _entry_key(circuit_id, kind, version)
        now = time.time()
        index.tick += 1
        index.seq += 1
        blob_name = _blob_name(key, index.seq)
        self._write_blob(blob_name, payload)

        previous = index.entries.get(key)
        index.entries[key] = CacheEntry(
            circuit_id=circuit_id,
            kind=kind,
            version=version,
            size=size,
            blob=blob_name,
            created_at=now,
            last_accessed_at=now,
            access_tick=index.tick,
            seq=previous.seq if previous else index.seq,
        )

        evicted = self._evict(index, keep=key) if kind in BINARY_KINDS else []
        self._commit_index(index)
        stale = [entry.blob for entry in evicted]
        if previous is not None:
            stale.append(previous.blob)
        self._unlink_blobs(stale)
        for entry in evicted:
            logger.info(
                "Evicted %s %s v%s (%d bytes)",
                entry.circuit_id,
                entry.kind,
                entry.version,
                entry.size,
            )
        return True

    def _has_sync(self, circuit_id: str, version: str) -> bool:
        index = self._load_index()
        return all(
            _entry_key(circuit_id, kind, version) in index.entries
            for kind in REQUIRED_KINDS
        )

    def _remove_sync(self, predicate: Any) -> int:
        index = self._load_index()
        removed = [key for key, entry in index.entries.items() if predicate(entry)]
        if not removed:
            return 0
        blobs = [index.entries.pop(key).blob for key in removed]
        self._commit_index(index)
        self._unlink_blobs(blobs)
        return len(removed)

    def _clear_sync(self) -> int:
        index = self._load_index()
        removed = len(index.entries)
        index.entries.clear()
        self._commit_index(index)
        if self._blob_dir.is_dir():
            self._unlink_blobs(
                path.name for path in self._blob_dir.iterdir() if path.suffix == ".bin"
            )
        return removed

    def _stats_sync(self) -> CacheStats:
        index = self._load_index()
        binaries = [e for e in index.entries.values() if e.is_binary]
        vkeys = [e for e in index.entries.values() if e.kind == VKEY_KIND]
        return CacheStats(
            binary_count=len(binaries),
            binary_size=sum(e.size for e in binaries),
            vkey_count=len(vkeys),
            vkey_size=sum(e.size for e in vkeys),
        )

    def _entries_sync(self) -> List[CacheEntry]:
        index = self._load_index()
        return sorted(index.entries.values(), key=lambda e: e.seq)

    def _evict(self, index: _Index, keep: str) -> List[CacheEntry]:
        binaries: List[Tuple[str, CacheEntry]] = sorted(
            ((k, e) for k, e in index.entries.items() if e.is_binary),
            key=lambda item: (item[1].access_tick, item[1].seq),
        )
        total = sum(e.size for _, e in binaries)
        evicted: List[CacheEntry] = []
        for key, entry in binaries:
            if total <= self._max_binary_bytes:
                break
            if key == keep:
                continue
            del index.entries[key]
            total -= entry.size
            evicted.append(entry)
        return evicted

    # ========================================================================
    # BACKING STORE
    # ========================================================================

    def _load_index(self) -> _Index:
        try:
            raw = self._index_path.read_bytes()
        except FileNotFoundError:
            return _Index(tick=0, seq=0, entries={})

        try:
            return self._parse_index(raw)
        except CacheError as exc:
            aside = self._index_path.with_name(
                f"{INDEX_FILENAME}.corrupt-{time.time_ns()}"
            )
            os.replace(self._index_path, aside)
            logger.warning("%s; moved it to %s and starting empty", exc, aside.name)
            return _Index(tick=0, seq=0, entries={})

    def _parse_index(self, raw: bytes) -> _Index:
        try:
            data = cbor2.loads(raw)
        except (cbor2.CBORDecodeError, ValueError) as exc:
            raise CacheError(f"Corrupt cache index {self._index_path}: {exc}") from exc

        if not isinstance(data, dict) or data.get("v") != INDEX_VERSION:
            raise CacheError(f"Unsupported cache index format in {self._index_path}")

        try:
            entries = {
                key: CacheEntry(**value) for key, value in data.get("entries", {}).items()
            }
            return _Index(
                tick=int(data.get("tick", 0)), seq=int(data.get("seq", 0)), entries=entries
            )
        except (TypeError, ValueError, AttributeError) as exc:
            raise CacheError(f"Malformed cache index entry: {exc}") from exc

    def _commit_index(self, index: _Index) -> None:
        payload = cbor2.dumps(
            {
                "v": INDEX_VERSION,
                "tick": index.tick,
                "seq": index.seq,
                "entries": {key: asdict(entry) for key, entry in index.entries.items()},
            }
        )
        self._atomic_write(self._index_path, payload)

    def _write_blob(self, name: str, payload: bytes) -> None:
        self._atomic_write(self._blob_dir / name, payload)

    def _unlink_blobs(self, names: Any) -> None:
        for name in names:
            try:
                (self._blob_dir / name).unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                # Orphaned blob; the index no longer references it
                logger.warning("Failed to remove cached blob %s: %s", name, exc)

    @staticmethod
    def _atomic_write(path: Path, payload: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
