"""Constants and configuration for the artifact cache."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..threshold_proof.circuit_registry import ARTIFACT_KINDS, BINARY_KINDS, VKEY_KIND
from ..threshold_proof.config import ENV_CACHE_MAX_BYTES, cache_dir

# 100 MiB of compiled circuits and proving keys
DEFAULT_MAX_BINARY_BYTES = 100 * 1024 * 1024

INDEX_FILENAME = "index.cbor"
BLOB_DIRNAME = "blobs"
INDEX_VERSION = 1

# has() needs every kind cached for a version
REQUIRED_KINDS = ARTIFACT_KINDS


@dataclass(frozen=True)
class CacheConfig:
    root_dir: Path
    max_binary_bytes: int = DEFAULT_MAX_BINARY_BYTES

    def __post_init__(self) -> None:
        if self.max_binary_bytes <= 0:
            raise ValueError("max_binary_bytes must be positive")

    @classmethod
    def from_env(cls, root_dir: Optional[Path] = None) -> "CacheConfig":
        raw = os.getenv(ENV_CACHE_MAX_BYTES)
        max_bytes = DEFAULT_MAX_BINARY_BYTES
        if raw:
            try:
                max_bytes = int(raw)
            except ValueError:
                raise ValueError(
                    f"{ENV_CACHE_MAX_BYTES} must be an integer, got {raw!r}"
                ) from None
        return cls(root_dir=Path(root_dir) if root_dir else cache_dir(), max_binary_bytes=max_bytes)
