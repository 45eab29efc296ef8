"""Tests for the persistent artifact cache."""

from __future__ import annotations

from pathlib import Path

import cbor2
import pytest
import trio

from activity_zk.artifact_cache import ArtifactCache, CacheConfig
from activity_zk.artifact_cache.constants import DEFAULT_MAX_BINARY_BYTES, INDEX_VERSION

CIRCUIT = "verified-builder"


def _cache(tmp_path: Path, budget: int = 100) -> ArtifactCache:
    return ArtifactCache(tmp_path / "cache", max_binary_bytes=budget)


@pytest.mark.trio
async def test_get_set_roundtrip(tmp_path: Path) -> None:
    cache = _cache(tmp_path)
    assert await cache.set(CIRCUIT, "binary:wasm", "1.0.0", b"w" * 10) is True
    assert await cache.get(CIRCUIT, "binary:wasm", "1.0.0") == b"w" * 10


@pytest.mark.trio
async def test_version_mismatch_is_miss(tmp_path: Path) -> None:
    cache = _cache(tmp_path)
    await cache.set(CIRCUIT, "binary:wasm", "v1", b"old")
    assert await cache.get(CIRCUIT, "binary:wasm", "v2") is None
    assert await cache.get(CIRCUIT, "binary:zkey", "v1") is None
    assert await cache.get("other", "binary:wasm", "v1") is None


@pytest.mark.trio
async def test_persists_across_instances(tmp_path: Path) -> None:
    await _cache(tmp_path).set(CIRCUIT, "vkey", "v1", b"{}")
    assert await _cache(tmp_path).get(CIRCUIT, "vkey", "v1") == b"{}"


@pytest.mark.trio
async def test_has_requires_every_kind(tmp_path: Path) -> None:
    cache = _cache(tmp_path)
    await cache.set(CIRCUIT, "binary:wasm", "v1", b"w")
    await cache.set(CIRCUIT, "binary:zkey", "v1", b"z")
    assert await cache.has(CIRCUIT, "v1") is False
    await cache.set(CIRCUIT, "vkey", "v1", b"{}")
    assert await cache.has(CIRCUIT, "v1") is True
    assert await cache.has(CIRCUIT, "v2") is False


@pytest.mark.trio
async def test_lru_evicts_oldest_binary(tmp_path: Path) -> None:
    cache = _cache(tmp_path, budget=100)
    await cache.set(CIRCUIT, "vkey", "v1", b"k" * 500)
    await cache.set("a", "binary:wasm", "v1", b"a" * 60)
    await cache.set("b", "binary:wasm", "v1", b"b" * 60)

    assert await cache.get("a", "binary:wasm", "v1") is None
    assert await cache.get("b", "binary:wasm", "v1") == b"b" * 60
    # verifying keys are exempt from the binary budget
    assert await cache.get(CIRCUIT, "vkey", "v1") == b"k" * 500


@pytest.mark.trio
async def test_get_touches_entry(tmp_path: Path) -> None:
    cache = _cache(tmp_path, budget=100)
    await cache.set("a", "binary:wasm", "v1", b"a" * 40)
    await cache.set("b", "binary:wasm", "v1", b"b" * 40)
    assert await cache.get("a", "binary:wasm", "v1") is not None
    await cache.set("c", "binary:wasm", "v1", b"c" * 40)

    assert await cache.get("b", "binary:wasm", "v1") is None
    assert await cache.get("a", "binary:wasm", "v1") == b"a" * 40
    assert await cache.get("c", "binary:wasm", "v1") == b"c" * 40


@pytest.mark.trio
async def test_touched_entry_survives_then_other_is_evicted(tmp_path: Path) -> None:
    cache = _cache(tmp_path, budget=100)
    await cache.set("a", "binary:wasm", "v1", b"a" * 60)
    await cache.set("b", "binary:zkey", "v1", b"b" * 30)
    await cache.get("a", "binary:wasm", "v1")
    await cache.set("c", "binary:wasm", "v1", b"c" * 30)

    stats = await cache.get_stats()
    assert stats.binary_size <= 100
    assert await cache.get("b", "binary:zkey", "v1") is None
    assert await cache.get("a", "binary:wasm", "v1") is not None


@pytest.mark.trio
async def test_oversize_payload_is_skipped(tmp_path: Path) -> None:
    cache = _cache(tmp_path, budget=100)
    await cache.set("a", "binary:wasm", "v1", b"a" * 50)
    assert await cache.set("big", "binary:zkey", "v1", b"x" * 101) is False
    assert await cache.get("big", "binary:zkey", "v1") is None
    assert await cache.get("a", "binary:wasm", "v1") == b"a" * 50


@pytest.mark.trio
async def test_overwrite_same_key_updates_size(tmp_path: Path) -> None:
    cache = _cache(tmp_path, budget=100)
    await cache.set("a", "binary:wasm", "v1", b"a" * 80)
    await cache.set("a", "binary:wasm", "v1", b"A" * 20)
    stats = await cache.get_stats()
    assert stats.binary_count == 1
    assert stats.binary_size == 20


@pytest.mark.trio
async def test_invalidate_circuit_leaves_others(tmp_path: Path) -> None:
    cache = _cache(tmp_path, budget=1000)
    for version in ("v1", "v2"):
        await cache.set(CIRCUIT, "binary:wasm", version, b"w")
        await cache.set(CIRCUIT, "vkey", version, b"{}")
    await cache.set("other", "binary:wasm", "v1", b"o")

    assert await cache.invalidate_circuit(CIRCUIT) == 4
    assert await cache.get(CIRCUIT, "vkey", "v1") is None
    assert await cache.get("other", "binary:wasm", "v1") == b"o"
    assert len(list((tmp_path / "cache" / "blobs").glob("*.bin"))) == 1


@pytest.mark.trio
async def test_delete_and_clear(tmp_path: Path) -> None:
    cache = _cache(tmp_path)
    await cache.set(CIRCUIT, "binary:wasm", "v1", b"w")
    await cache.set(CIRCUIT, "vkey", "v1", b"{}")
    assert await cache.delete(CIRCUIT, "binary:wasm", "v1") is True
    assert await cache.delete(CIRCUIT, "binary:wasm", "v1") is False
    assert await cache.clear() == 1
    stats = await cache.get_stats()
    assert (stats.binary_count, stats.vkey_count) == (0, 0)


@pytest.mark.trio
async def test_stats(tmp_path: Path) -> None:
    cache = _cache(tmp_path)
    await cache.set(CIRCUIT, "binary:wasm", "v1", b"w" * 10)
    await cache.set(CIRCUIT, "binary:zkey", "v1", b"z" * 20)
    await cache.set(CIRCUIT, "vkey", "v1", b"k" * 5)
    stats = await cache.get_stats()
    assert stats.binary_count == 2
    assert stats.binary_size == 30
    assert stats.vkey_count == 1
    assert stats.vkey_size == 5
    assert stats.total_size == 35


@pytest.mark.trio
async def test_unknown_kind_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="Invalid artifact kind"):
        await _cache(tmp_path).set(CIRCUIT, "binary:r1cs", "v1", b"x")


@pytest.mark.trio
async def test_corrupt_index_is_moved_aside_and_cache_recovers(tmp_path: Path) -> None:
    cache = _cache(tmp_path)
    root = tmp_path / "cache"
    await cache.set(CIRCUIT, "vkey", "v1", b"{}")
    (root / "index.cbor").write_bytes(b"\xff\xff")

    assert await cache.get(CIRCUIT, "vkey", "v1") is None
    assert len(list(root.glob("index.cbor.corrupt-*"))) == 1
    assert await cache.set(CIRCUIT, "vkey", "v1", b"{ }") is True
    assert await cache.get(CIRCUIT, "vkey", "v1") == b"{ }"
    assert (await cache.get_stats()).vkey_count == 1


@pytest.mark.trio
async def test_clear_after_corrupt_index_removes_every_blob(tmp_path: Path) -> None:
    cache = _cache(tmp_path)
    root = tmp_path / "cache"
    await cache.set(CIRCUIT, "binary:wasm", "v1", b"w")
    await cache.set(CIRCUIT, "vkey", "v1", b"{}")
    (root / "index.cbor").write_bytes(b"\x00garbage")

    assert await cache.clear() == 0
    assert list((root / "blobs").glob("*.bin")) == []
    assert await cache.set(CIRCUIT, "binary:wasm", "v1", b"w2") is True
    assert await cache.get(CIRCUIT, "binary:wasm", "v1") == b"w2"


@pytest.mark.trio
async def test_unsupported_index_version_is_a_miss(tmp_path: Path) -> None:
    root = tmp_path / "cache"
    root.mkdir()
    (root / "index.cbor").write_bytes(cbor2.dumps({"v": 99, "entries": {}}))
    cache = _cache(tmp_path)
    assert await cache.get(CIRCUIT, "vkey", "v1") is None
    assert await cache.set(CIRCUIT, "vkey", "v1", b"{}") is True


@pytest.mark.trio
async def test_malformed_index_entry_recovers(tmp_path: Path) -> None:
    root = tmp_path / "cache"
    root.mkdir()
    (root / "index.cbor").write_bytes(
        cbor2.dumps({"v": INDEX_VERSION, "tick": 0, "seq": 0, "entries": {"k": {"bogus": 1}}})
    )
    cache = _cache(tmp_path)
    assert await cache.entries() == []
    assert await cache.set(CIRCUIT, "vkey", "v1", b"{}") is True


@pytest.mark.trio
async def test_overwrite_writes_new_blob_and_removes_old(tmp_path: Path) -> None:
    cache = _cache(tmp_path)
    blobs = tmp_path / "cache" / "blobs"
    await cache.set(CIRCUIT, "binary:wasm", "v1", b"old")
    [old_blob] = list(blobs.glob("*.bin"))

    await cache.set(CIRCUIT, "binary:wasm", "v1", b"new")
    [new_blob] = list(blobs.glob("*.bin"))
    assert new_blob.name != old_blob.name
    assert not old_blob.exists()
    assert await cache.get(CIRCUIT, "binary:wasm", "v1") == b"new"


@pytest.mark.trio
async def test_failed_commit_keeps_previous_payload(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    cache = _cache(tmp_path)
    await cache.set(CIRCUIT, "binary:wasm", "v1", b"old")

    def _fail(index) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(cache, "_commit_index", _fail)
    assert await cache.set(CIRCUIT, "binary:wasm", "v1", b"new") is False
    monkeypatch.undo()

    assert await cache.get(CIRCUIT, "binary:wasm", "v1") == b"old"


@pytest.mark.trio
async def test_missing_blob_drops_entry(tmp_path: Path) -> None:
    cache = _cache(tmp_path)
    await cache.set(CIRCUIT, "binary:wasm", "v1", b"w")
    for blob in (tmp_path / "cache" / "blobs").glob("*.bin"):
        blob.unlink()
    assert await cache.get(CIRCUIT, "binary:wasm", "v1") is None
    assert (await cache.get_stats()).binary_count == 0


@pytest.mark.trio
async def test_unwritable_root_is_non_fatal(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    cache = ArtifactCache(blocker / "cache", max_binary_bytes=100)
    assert await cache.set(CIRCUIT, "vkey", "v1", b"{}") is False
    assert await cache.get(CIRCUIT, "vkey", "v1") is None


@pytest.mark.trio
async def test_concurrent_writers_keep_budget(tmp_path: Path) -> None:
    cache = _cache(tmp_path, budget=100)

    async def _writer(name: str) -> None:
        await cache.set(name, "binary:wasm", "v1", b"x" * 30)

    async with trio.open_nursery() as nursery:
        for i in range(10):
            nursery.start_soon(_writer, f"c{i}")

    stats = await cache.get_stats()
    assert stats.binary_count == 3
    assert stats.binary_size == 90


def test_cache_config_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ACTIVITY_ZK_CACHE_DIR", str(tmp_path))
    monkeypatch.setenv("ACTIVITY_ZK_CACHE_MAX_BYTES", "2048")
    config = CacheConfig.from_env()
    assert config.root_dir == tmp_path
    assert config.max_binary_bytes == 2048

    monkeypatch.delenv("ACTIVITY_ZK_CACHE_MAX_BYTES")
    assert CacheConfig.from_env().max_binary_bytes == DEFAULT_MAX_BINARY_BYTES


def test_cache_config_rejects_bad_budget(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ACTIVITY_ZK_CACHE_MAX_BYTES", "lots")
    with pytest.raises(ValueError, match="must be an integer"):
        CacheConfig.from_env()
    with pytest.raises(ValueError, match="positive"):
        ArtifactCache("unused", max_binary_bytes=0)


@pytest.mark.trio
async def test_entries_in_insertion_order(tmp_path: Path) -> None:
    cache = _cache(tmp_path)
    await cache.set(CIRCUIT, "vkey", "v1", b"{}")
    await cache.set(CIRCUIT, "binary:wasm", "v1", b"w")
    await cache.set(CIRCUIT, "vkey", "v1", b"{ }")

    entries = await cache.entries()
    assert [(e.kind, e.size) for e in entries] == [("vkey", 3), ("binary:wasm", 1)]
    assert entries[1].is_binary
    assert not entries[0].is_binary
