"""
Activity Threshold Demo

Walks through the whole proof pipeline with the reference backend:

1. Hash activity timestamps into Poseidon leaves
2. Build the depth-20 sparse Merkle tree and the padded witness
3. Generate a proof that meets the threshold and one that does not
4. Show that a tampered public signal fails verification

Artifacts are written to a temporary directory; nothing is left behind.
"""

import dataclasses
import tempfile
import time
from pathlib import Path

import trio

from activity_zk.artifact_cache import ArtifactCache
from activity_zk.threshold_proof import VERIFIED_BUILDER, ProofOrchestrator, assemble
from activity_zk.threshold_proof.adapters.reference_backend import ReferenceBackend
from activity_zk.threshold_proof.snark.assets import ArtifactLoader, write_artifacts

DAY = 86_400


async def main():
    """Run the activity threshold demo."""

    print("\n" + "=" * 70)
    print("Activity Threshold Proofs - Demo")
    print("=" * 70)

    now = int(time.time())
    timestamps = [now - (5 - i) * DAY for i in range(5)]

    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        print("\n1. Writing reference artifacts...")
        write_artifacts(VERIFIED_BUILDER, ReferenceBackend.setup(VERIFIED_BUILDER), root / "artifacts")
        loader = ArtifactLoader(ArtifactCache(root / "cache"), root / "artifacts")
        orchestrator = ProofOrchestrator(ReferenceBackend(), loader=loader)
        print("   ✓ Artifacts ready")

        print("\n2. Assembling witness for 5 active days...")
        witness = assemble(timestamps, threshold=3, now=now)
        print(f"   Root:        {witness.root}")
        print(f"   Active:      {witness.active_count}/{witness.max_slots} slots")

        print("\n3. Proving threshold 3...")
        record = await orchestrator.generate(
            witness, on_progress=lambda p: print(f"   ... {p}%")
        )
        result = orchestrator.verify(record)
        print(f"   ✓ valid={result.is_valid} meetsThreshold={result.meets_threshold}")

        print("\n4. Proving threshold 10...")
        record = await orchestrator.generate(assemble(timestamps, threshold=10, now=now))
        result = orchestrator.verify(record)
        print(f"   ✓ valid={result.is_valid} meetsThreshold={result.meets_threshold}")

        print("\n5. Tampering with meetsThreshold...")
        forged = dataclasses.replace(
            record, public_signals=record.public_signals[:3] + ("1",)
        )
        result = orchestrator.verify(forged)
        print(f"   ✗ valid={result.is_valid} ({result.reason})")

    print("\n" + "=" * 70)
    print("✓ Demo complete")
    print("=" * 70)


if __name__ == "__main__":
    trio.run(main)
