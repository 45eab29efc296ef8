"""
Pre-generate a demo proof record.

Proves 10 consecutive days of activity against a threshold of 5 with the
configured backend and writes the verified record as JSON.

Usage:
    python scripts/generate_demo_proof.py [OUTPUT]
"""
from __future__ import annotations

import json
import sys
import time
from pathlib import Path

import trio

from activity_zk.artifact_cache import ArtifactCache, CacheConfig
from activity_zk.threshold_proof import VERIFIED_BUILDER, ProofOrchestrator, assemble, get_proving_backend
from activity_zk.threshold_proof.exceptions import ActivityProofError
from activity_zk.threshold_proof.snark.assets import ArtifactLoader

DEFAULT_OUTPUT = Path("demo-proof.json")
MIN_DAYS = 5
NUM_ACTIVITIES = 10
DAY = 86_400


async def generate(output: Path) -> int:
    now = int(time.time())
    timestamps = [now - (NUM_ACTIVITIES - i) * DAY for i in range(NUM_ACTIVITIES)]
    witness = assemble(timestamps, threshold=MIN_DAYS, now=now)

    loader = ArtifactLoader(ArtifactCache.from_config(CacheConfig.from_env()))
    orchestrator = ProofOrchestrator(get_proving_backend(), circuit=VERIFIED_BUILDER, loader=loader)

    print("Generating proof...")
    started = time.perf_counter()
    record = await orchestrator.generate(witness)
    print(f"Proof generated in {time.perf_counter() - started:.1f}s")

    result = orchestrator.verify(record)
    print(f"Verified: {result.is_valid}")
    if not result.is_valid:
        print(f"FAILED: {result.reason}")
        return 1

    output.write_text(json.dumps(record.to_dict(), indent=2), encoding="utf-8")
    print(f"\nSaved to {output}")
    print(f"Proof ID: {record.id}")
    return 0


def main() -> int:
    output = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_OUTPUT
    try:
        return trio.run(generate, output)
    except ActivityProofError as exc:
        print(f"FAILED: {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
