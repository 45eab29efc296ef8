"""Persistent, versioned cache for circuit artifacts."""

from .constants import ARTIFACT_KINDS, BINARY_KINDS, VKEY_KIND, CacheConfig
from .store import ArtifactCache, CacheEntry, CacheStats

__all__ = [
    "ArtifactCache",
    "CacheConfig",
    "CacheEntry",
    "CacheStats",
    "ARTIFACT_KINDS",
    "BINARY_KINDS",
    "VKEY_KIND",
]
