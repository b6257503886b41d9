"""
phase-gate: artifact backing stores.

File: src/phase_gate/artifacts/backends.py

Purpose
- Point-read and listing strategies over the three places an artifact can live: remote
  object storage, the relational artifact table and the local project tree.

Functional requirements
- Every backend answers ``read`` with content or ``None`` and ``list_names`` with filenames.
- Backends may raise; the store absorbs failures at its boundary.
- Blocking I/O (SQLite, filesystem) is offloaded with ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Final, Protocol, runtime_checkable

from phase_gate.constants import ARTIFACT_VERSION_DIRNAME, SPECS_DIRNAME

ARTIFACTS_TABLE_DDL: Final[str] = """
CREATE TABLE IF NOT EXISTS artifacts (
    project_slug TEXT NOT NULL,
    phase TEXT NOT NULL,
    filename TEXT NOT NULL,
    version INTEGER NOT NULL,
    content TEXT NOT NULL,
    PRIMARY KEY (project_slug, phase, filename, version)
)
""".strip()

_READ_LATEST_SQL: Final[str] = (
    "SELECT content FROM artifacts "
    "WHERE project_slug = ? AND phase = ? AND filename = ? "
    "ORDER BY version DESC LIMIT 1"
)
_LIST_NAMES_SQL: Final[str] = (
    "SELECT DISTINCT filename FROM artifacts WHERE project_slug = ? AND phase = ?"
)


@runtime_checkable
class ArtifactBackend(Protocol):
    """One fallible lookup strategy for artifact content."""

    name: str

    async def read(self, project_slug: str, phase: str, filename: str) -> str | None: ...

    async def list_names(self, project_slug: str, phase: str) -> Iterable[str]: ...


@runtime_checkable
class ObjectStorageClient(Protocol):
    """Remote object storage contract consumed by ``ObjectStorageBackend``."""

    async def download(self, project_slug: str, phase: str, filename: str) -> bytes: ...

    async def list(self, project_slug: str, phase: str) -> Sequence[Mapping[str, object]]: ...


class ObjectStorageBackend:
    """Adapter over an object storage client; disabled when no client is configured."""

    name = "object_storage"

    def __init__(self, client: ObjectStorageClient | None = None) -> None:
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def read(self, project_slug: str, phase: str, filename: str) -> str | None:
        if self._client is None:
            return None
        payload = await self._client.download(project_slug, phase, filename)
        return payload.decode("utf-8")

    async def list_names(self, project_slug: str, phase: str) -> Iterable[str]:
        if self._client is None:
            return ()
        entries = await self._client.list(project_slug, phase)
        names: list[str] = []
        for entry in entries:
            name = entry.get("name")
            if isinstance(name, str) and name:
                names.append(name)
        return names


class DatabaseBackend:
    """Reads the highest-versioned row of the ``artifacts`` table in a SQLite file."""

    name = "database"

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def read(self, project_slug: str, phase: str, filename: str) -> str | None:
        return await asyncio.to_thread(self._read_sync, project_slug, phase, filename)

    async def list_names(self, project_slug: str, phase: str) -> Iterable[str]:
        return await asyncio.to_thread(self._list_sync, project_slug, phase)

    def _read_sync(self, project_slug: str, phase: str, filename: str) -> str | None:
        if not self._db_path.exists():
            return None
        conn = self._connect()
        try:
            row = conn.execute(_READ_LATEST_SQL, (project_slug, phase, filename)).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        content = row[0]
        return content if isinstance(content, str) else None

    def _list_sync(self, project_slug: str, phase: str) -> list[str]:
        if not self._db_path.exists():
            return []
        conn = self._connect()
        try:
            rows = conn.execute(_LIST_NAMES_SQL, (project_slug, phase)).fetchall()
        finally:
            conn.close()
        return [row[0] for row in rows if isinstance(row[0], str)]

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(f"{self._db_path.resolve().as_uri()}?mode=ro", uri=True)


class FilesystemBackend:
    """Reads ``{root}/{slug}/specs/{PHASE}/v1/{filename}``."""

    name = "filesystem"

    def __init__(self, projects_root: str | Path) -> None:
        self._projects_root = Path(projects_root)

    @property
    def projects_root(self) -> Path:
        return self._projects_root

    def phase_dir(self, project_slug: str, phase: str) -> Path:
        return (
            self._projects_root / project_slug / SPECS_DIRNAME / phase / ARTIFACT_VERSION_DIRNAME
        )

    async def read(self, project_slug: str, phase: str, filename: str) -> str | None:
        return await asyncio.to_thread(self.read_sync, project_slug, phase, filename)

    async def list_names(self, project_slug: str, phase: str) -> Iterable[str]:
        return await asyncio.to_thread(self._list_sync, project_slug, phase)

    def read_sync(self, project_slug: str, phase: str, filename: str) -> str | None:
        path = self.phase_dir(project_slug, phase) / filename
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def _list_sync(self, project_slug: str, phase: str) -> list[str]:
        directory = self.phase_dir(project_slug, phase)
        if not directory.is_dir():
            return []
        return sorted(entry.name for entry in directory.iterdir() if entry.is_file())


__all__ = [
    "ARTIFACTS_TABLE_DDL",
    "ArtifactBackend",
    "DatabaseBackend",
    "FilesystemBackend",
    "ObjectStorageBackend",
    "ObjectStorageClient",
]
