"""
End-to-end activity-threshold scenarios on the production circuit shape.

Runs the full pipeline (hash, tree, witness, prove, verify) with the
reference backend at 30 slots and depth 20.
"""
import dataclasses
import json

import pytest

from activity_zk.artifact_cache import ArtifactCache
from activity_zk.threshold_proof import (
    VERIFIED_BUILDER,
    ProofOrchestrator,
    ProofRecord,
    assemble,
    verify_path,
)
from activity_zk.threshold_proof.adapters.reference_backend import ReferenceBackend
from activity_zk.threshold_proof.snark.assets import ArtifactLoader, write_artifacts
from activity_zk.threshold_proof.witness import ActiveSlot

NOW = 1_700_000_000
DAY = 86_400
FIVE_DAYS = [NOW - (5 - i) * DAY for i in range(5)]


@pytest.fixture
def artifacts_root(tmp_path):
    write_artifacts(VERIFIED_BUILDER, ReferenceBackend.setup(VERIFIED_BUILDER), tmp_path / "artifacts")
    return tmp_path / "artifacts"


@pytest.fixture
def orchestrator(artifacts_root, tmp_path):
    cache = ArtifactCache(tmp_path / "cache")
    return ProofOrchestrator(
        ReferenceBackend(),
        loader=ArtifactLoader(cache, artifacts_root),
    )


@pytest.mark.trio
async def test_five_days_meet_threshold_of_three(orchestrator):
    """Scenario A: 5 active days, threshold 3."""
    print("\n" + "=" * 70)
    print("TEST: 5 active days, threshold 3")
    print("=" * 70)

    witness = assemble(FIVE_DAYS, threshold=3, freshness_timestamp=NOW, now=NOW)
    assert witness.max_slots == 30
    assert witness.depth == 20
    for slot in witness.slots:
        if isinstance(slot, ActiveSlot):
            assert verify_path(slot.leaf, slot.proof, witness.root)

    record = await orchestrator.generate(witness, now=NOW)
    assert record.public_signals == (str(witness.root), "3", str(NOW), "1")

    result = orchestrator.verify(record)
    assert result.is_valid is True
    assert result.meets_threshold is True
    print("✓ Proof valid, meetsThreshold=1")


@pytest.mark.trio
async def test_five_days_miss_threshold_of_ten(orchestrator):
    """Scenario B: 5 active days, threshold 10. The proof is still valid."""
    witness = assemble(FIVE_DAYS, threshold=10, max_slots=30, freshness_timestamp=NOW, now=NOW)
    record = await orchestrator.generate(witness, now=NOW)

    result = orchestrator.verify(record)
    assert result.is_valid is True
    assert result.meets_threshold is False
    assert record.public_signals[3] == "0"
    print("✓ Proof valid, meetsThreshold=0")


@pytest.mark.trio
async def test_tampered_meets_threshold_is_rejected(orchestrator):
    witness = assemble(FIVE_DAYS, threshold=10, freshness_timestamp=NOW, now=NOW)
    record = await orchestrator.generate(witness, now=NOW)

    forged = dataclasses.replace(record, public_signals=record.public_signals[:3] + ("1",))
    result = orchestrator.verify(forged)
    assert result.is_valid is False
    assert result.meets_threshold is False


@pytest.mark.trio
@pytest.mark.parametrize(
    "index, forged",
    [
        (0, "12345"),
        (1, "2"),
        (2, str(NOW + DAY)),
        (3, "0"),
    ],
)
async def test_every_public_signal_is_bound_to_the_proof(orchestrator, index, forged):
    witness = assemble(FIVE_DAYS, threshold=3, freshness_timestamp=NOW, now=NOW)
    record = await orchestrator.generate(witness, now=NOW)
    assert orchestrator.verify(record).is_valid

    signals = list(record.public_signals)
    assert signals[index] != forged
    signals[index] = forged
    result = orchestrator.verify(dataclasses.replace(record, public_signals=tuple(signals)))
    assert result.is_valid is False


@pytest.mark.trio
async def test_record_survives_json_and_cbor(orchestrator):
    witness = assemble(FIVE_DAYS, threshold=3, freshness_timestamp=NOW, now=NOW)
    record = await orchestrator.generate(witness, now=NOW)

    from_json = ProofRecord.from_dict(json.loads(json.dumps(record.to_dict())))
    from_cbor = ProofRecord.deserialize(record.serialize())
    assert from_json == record
    assert from_cbor == record
    assert (await orchestrator.verify_locally(from_json)).is_valid


@pytest.mark.trio
async def test_second_run_served_from_cache(artifacts_root, tmp_path):
    cache = ArtifactCache(tmp_path / "cache")
    loader = ArtifactLoader(cache, artifacts_root)
    await loader.load(VERIFIED_BUILDER)
    assert await cache.has(VERIFIED_BUILDER.id, VERIFIED_BUILDER.version)

    for path in artifacts_root.rglob("*"):
        if path.is_file():
            path.unlink()

    orchestrator = ProofOrchestrator(ReferenceBackend(), loader=loader)
    witness = assemble(FIVE_DAYS, threshold=3, freshness_timestamp=NOW, now=NOW)
    record = await orchestrator.generate(witness, now=NOW)
    assert orchestrator.verify(record).meets_threshold is True
