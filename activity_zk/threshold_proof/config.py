"""
⚠️ DRAFT — requires crypto review before production use

Configuration for the activity-threshold proof subsystem.

Values here are shared by the hasher, the Merkle builder, the witness
assembler and the orchestrator. Environment overrides are resolved lazily by
the helpers at the bottom of the module so tests can monkeypatch them.
"""

import os
from pathlib import Path

# ============================================================================
# FIELD PARAMETERS
# ============================================================================

# BN254 (alt_bn128) scalar field, used by circom/snarkjs Groth16 circuits
CURVE_NAME = "bn128"
PROOF_PROTOCOL = "groth16"
FIELD_PRIME = 21888242871839275222246405745257275088548364400416034343698204186575808495617
FIELD_BITS = 254

# Largest number of whole bytes that always fits below FIELD_PRIME
MAX_BYTES_PER_FIELD = 31

# ============================================================================
# POSEIDON PARAMETERS
# ============================================================================

POSEIDON_FULL_ROUNDS = 8

# Partial rounds indexed by state width t - 2 (t = 2..17), as used by circomlib
POSEIDON_PARTIAL_ROUNDS = (
    56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68,
)
POSEIDON_MAX_INPUTS = len(POSEIDON_PARTIAL_ROUNDS)

# ============================================================================
# CIRCUIT SHAPE
# ============================================================================

# verified-builder circuit: 30 activity slots, depth-20 activity tree
MAX_SLOTS = 30
MERKLE_DEPTH = 20
MAX_MERKLE_DEPTH = 64

# Public signal wire order. Verifying keys recorded externally assume it.
PUBLIC_SIGNAL_ORDER = (
    "activityRoot",
    "minDays",
    "currentTimestamp",
    "meetsThreshold",
)

# ============================================================================
# FRESHNESS WINDOW
# ============================================================================

# 2020-01-01T00:00:00Z
MIN_FRESHNESS_TIMESTAMP = 1_577_836_800
MAX_CLOCK_SKEW_SECONDS = 300

# ============================================================================
# PROVING
# ============================================================================

DEFAULT_PROVER_TIMEOUT = 120.0
BACKEND_MAX_ATTEMPTS = 2
MIN_ESTIMATED_PROOF_SECONDS = 5.0
SECONDS_PER_CONSTRAINT = 0.0005
PROGRESS_INTERVAL_SECONDS = 0.2
PROGRESS_CAP_PERCENT = 90

# 30 days
DEFAULT_PROOF_LIFETIME_SECONDS = 30 * 24 * 60 * 60

BACKEND_NAMES = ("reference", "snarkjs")
DEFAULT_BACKEND = "reference"

# What a request does when its circuit already has a proof in flight
SCHEDULING_POLICIES = ("queue", "restart", "reject")
DEFAULT_SCHEDULING_POLICY = "queue"

# ============================================================================
# SERIALIZATION
# ============================================================================

PROOF_RECORD_VERSION = 1

# ============================================================================
# ENVIRONMENT
# ============================================================================

ENV_BACKEND = "ACTIVITY_ZK_BACKEND"
ENV_SCHEDULING_POLICY = "ACTIVITY_ZK_SCHEDULING_POLICY"
ENV_ARTIFACTS_DIR = "ACTIVITY_ZK_ARTIFACTS_DIR"
ENV_CACHE_DIR = "ACTIVITY_ZK_CACHE_DIR"
ENV_CACHE_MAX_BYTES = "ACTIVITY_ZK_CACHE_MAX_BYTES"
ENV_SNARKJS = "ACTIVITY_ZK_SNARKJS"

DEFAULT_ARTIFACTS_DIR = Path("circuits") / "artifacts"
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "activity-zk"


def artifacts_dir() -> Path:
    return Path(os.getenv(ENV_ARTIFACTS_DIR, str(DEFAULT_ARTIFACTS_DIR)))


def cache_dir() -> Path:
    return Path(os.getenv(ENV_CACHE_DIR, str(DEFAULT_CACHE_DIR)))


def snarkjs_command() -> str:
    return os.getenv(ENV_SNARKJS, "snarkjs")


# ============================================================================
# VALIDATION
# ============================================================================


def validate_config() -> bool:
    """
    Validate configuration parameters.

    Returns:
        True if configuration is valid

    Raises:
        AssertionError: If configuration is invalid
    """
    assert FIELD_PRIME.bit_length() == FIELD_BITS, "Field prime size mismatch"
    assert 256 ** MAX_BYTES_PER_FIELD < FIELD_PRIME, "Chunk size exceeds field"
    assert POSEIDON_FULL_ROUNDS % 2 == 0, "Full rounds must be even"
    assert 1 <= MERKLE_DEPTH <= MAX_MERKLE_DEPTH, "Invalid Merkle depth"
    assert 1 <= MAX_SLOTS <= 2 ** MERKLE_DEPTH, "Slots exceed tree capacity"
    assert len(PUBLIC_SIGNAL_ORDER) == 4, "Public signal layout changed"
    assert BACKEND_MAX_ATTEMPTS in (1, 2), "Backend may be retried at most once"
    assert 0 < PROGRESS_CAP_PERCENT < 100, "Invalid progress cap"
    assert DEFAULT_BACKEND in BACKEND_NAMES, "Unknown default backend"
    assert DEFAULT_SCHEDULING_POLICY in SCHEDULING_POLICIES, "Unknown default policy"
    return True


# Auto-validate on import
validate_config()
