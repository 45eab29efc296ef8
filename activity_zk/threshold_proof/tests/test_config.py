"""
⚠️ DRAFT — requires crypto review before production use

Unit tests for configuration module.
"""

from pathlib import Path

import pytest

from activity_zk.threshold_proof import config


class TestFieldParameters:
    """Field and hash parameters match the BN254 Groth16 circuits."""

    def test_curve_and_protocol(self):
        assert config.CURVE_NAME == "bn128"
        assert config.PROOF_PROTOCOL == "groth16"

    def test_field_prime(self):
        assert config.FIELD_PRIME == (
            21888242871839275222246405745257275088548364400416034343698204186575808495617
        )
        assert config.FIELD_PRIME.bit_length() == config.FIELD_BITS

    def test_chunk_size_fits_field(self):
        assert 256 ** config.MAX_BYTES_PER_FIELD < config.FIELD_PRIME
        assert 256 ** (config.MAX_BYTES_PER_FIELD + 1) > config.FIELD_PRIME

    def test_poseidon_rounds(self):
        assert config.POSEIDON_FULL_ROUNDS == 8
        assert config.POSEIDON_MAX_INPUTS == 16
        assert config.POSEIDON_PARTIAL_ROUNDS[0] == 56


class TestCircuitShape:
    def test_verified_builder_shape(self):
        assert config.MAX_SLOTS == 30
        assert config.MERKLE_DEPTH == 20

    def test_public_signal_order_is_fixed(self):
        assert config.PUBLIC_SIGNAL_ORDER == (
            "activityRoot",
            "minDays",
            "currentTimestamp",
            "meetsThreshold",
        )

    def test_freshness_window_starts_2020(self):
        assert config.MIN_FRESHNESS_TIMESTAMP == 1_577_836_800
        assert config.MAX_CLOCK_SKEW_SECONDS == 300


class TestEnvironment:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv(config.ENV_ARTIFACTS_DIR, raising=False)
        monkeypatch.delenv(config.ENV_CACHE_DIR, raising=False)
        monkeypatch.delenv(config.ENV_SNARKJS, raising=False)
        assert config.artifacts_dir() == config.DEFAULT_ARTIFACTS_DIR
        assert config.cache_dir() == config.DEFAULT_CACHE_DIR
        assert config.snarkjs_command() == "snarkjs"

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setenv(config.ENV_ARTIFACTS_DIR, str(tmp_path / "a"))
        monkeypatch.setenv(config.ENV_CACHE_DIR, str(tmp_path / "c"))
        monkeypatch.setenv(config.ENV_SNARKJS, "npx snarkjs")
        assert config.artifacts_dir() == tmp_path / "a"
        assert config.cache_dir() == tmp_path / "c"
        assert config.snarkjs_command() == "npx snarkjs"


def test_validate_config():
    assert config.validate_config() is True
