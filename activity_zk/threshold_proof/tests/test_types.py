"""
Unit tests for proof records and verification results.
"""

import json

import cbor2
import pytest

from activity_zk.threshold_proof.config import DEFAULT_PROOF_LIFETIME_SECONDS
from activity_zk.threshold_proof.exceptions import ActivityProofError
from activity_zk.threshold_proof.types import (
    BackendProof,
    Groth16Proof,
    ProofRecord,
    ProofStatus,
    VerificationResult,
)


def _proof() -> Groth16Proof:
    return Groth16Proof(
        pi_a=("1", "2", "1"),
        pi_b=(("3", "4"), ("5", "6"), ("1", "0")),
        pi_c=("7", "8", "1"),
    )


def _record(meets: str = "1") -> ProofRecord:
    backend_proof = BackendProof(proof=_proof(), public_signals=("11", "3", "1700000000", meets))
    return ProofRecord.create("verified-builder", backend_proof, now=1_700_000_000.0)


def test_create_sets_expiry_and_status():
    record = _record()
    assert record.status is ProofStatus.READY
    assert record.generated_at == 1_700_000_000.0
    assert record.expires_at == 1_700_000_000.0 + DEFAULT_PROOF_LIFETIME_SECONDS
    assert len(record.id) == 12


def test_ids_are_unique():
    assert _record().id != _record().id


def test_meets_threshold_reads_last_signal():
    assert _record("1").meets_threshold is True
    assert _record("0").meets_threshold is False


def test_is_expired():
    record = _record()
    assert record.is_expired(now=record.expires_at - 1) is False
    assert record.is_expired(now=record.expires_at) is True


def test_mark_verified():
    record = _record().mark_verified(when=1_700_000_010.0)
    assert record.status is ProofStatus.VERIFIED
    assert record.verified_at == 1_700_000_010.0


def test_to_dict_uses_persistence_field_names():
    data = _record().to_dict()
    assert set(data) == {
        "id",
        "circuit",
        "proof",
        "publicSignals",
        "status",
        "generatedAt",
        "verifiedAt",
        "expiresAt",
    }
    assert data["proof"]["pi_b"] == [["3", "4"], ["5", "6"], ["1", "0"]]
    assert data["proof"]["protocol"] == "groth16"
    assert data["proof"]["curve"] == "bn128"
    json.dumps(data)


def test_from_dict_after_json():
    record = _record().mark_verified(when=1_700_000_010.0)
    restored = ProofRecord.from_dict(json.loads(json.dumps(record.to_dict())))
    assert restored == record


def test_from_dict_missing_fields():
    with pytest.raises(ValueError, match="missing"):
        ProofRecord.from_dict({"id": "x"})


def test_from_dict_unknown_status():
    data = _record().to_dict()
    data["status"] = "bogus"
    with pytest.raises(ValueError, match="Unknown proof status"):
        ProofRecord.from_dict(data)


def test_cbor_serialize_carries_version():
    record = _record()
    decoded = cbor2.loads(record.serialize())
    assert decoded["v"] == 1
    assert ProofRecord.deserialize(record.serialize()) == record


def test_deserialize_rejects_unknown_version():
    data = _record().to_dict()
    data["v"] = 99
    with pytest.raises(ValueError, match="Unsupported proof record version"):
        ProofRecord.deserialize(cbor2.dumps(data))


def test_deserialize_rejects_garbage():
    with pytest.raises(ActivityProofError):
        ProofRecord.deserialize(b"\xff\xff\xff")


def test_groth16_from_dict_rejects_missing_points():
    with pytest.raises(ValueError, match="Invalid proof format"):
        Groth16Proof.from_dict({"pi_a": ["1"]})


def test_verification_result_truthiness():
    assert bool(VerificationResult(is_valid=True, meets_threshold=False)) is True
    invalid = VerificationResult.invalid("tampered")
    assert bool(invalid) is False
    assert invalid.reason == "tampered"
    assert invalid.meets_threshold is False
