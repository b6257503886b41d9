"""
phase-gate: artifact store

File: src/phase_gate/artifacts/__init__.py

Purpose
- Merge object storage, database and filesystem artifacts into one per-project view.
"""

from phase_gate.artifacts.backends import (
    ARTIFACTS_TABLE_DDL,
    ArtifactBackend,
    DatabaseBackend,
    FilesystemBackend,
    ObjectStorageBackend,
    ObjectStorageClient,
)
from phase_gate.artifacts.store import ArtifactCache, ArtifactStore, CacheManager

__all__ = [
    "ARTIFACTS_TABLE_DDL",
    "ArtifactBackend",
    "ArtifactCache",
    "ArtifactStore",
    "CacheManager",
    "DatabaseBackend",
    "FilesystemBackend",
    "ObjectStorageBackend",
    "ObjectStorageClient",
]
