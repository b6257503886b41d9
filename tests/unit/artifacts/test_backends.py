from __future__ import annotations

import sqlite3
from collections.abc import Mapping, Sequence
from pathlib import Path

import pytest

from phase_gate.artifacts.backends import (
    ARTIFACTS_TABLE_DDL,
    ArtifactBackend,
    DatabaseBackend,
    FilesystemBackend,
    ObjectStorageBackend,
)


class _FakeObjectClient:
    def __init__(self, objects: Mapping[tuple[str, str, str], bytes]) -> None:
        self._objects = dict(objects)

    async def download(self, project_slug: str, phase: str, filename: str) -> bytes:
        return self._objects[(project_slug, phase, filename)]

    async def list(self, project_slug: str, phase: str) -> Sequence[Mapping[str, object]]:
        return [
            {"name": filename}
            for (slug, obj_phase, filename) in sorted(self._objects)
            if slug == project_slug and obj_phase == phase
        ] + [{"name": ""}, {"size": 3}]


def _seed_db(path: Path, rows: Sequence[tuple[str, str, str, int, str]]) -> None:
    conn = sqlite3.connect(path)
    try:
        conn.execute(ARTIFACTS_TABLE_DDL)
        conn.executemany("INSERT INTO artifacts VALUES (?, ?, ?, ?, ?)", rows)
        conn.commit()
    finally:
        conn.close()


def test_backends_satisfy_the_protocol(tmp_path: Path) -> None:
    for backend in (
        ObjectStorageBackend(),
        DatabaseBackend(tmp_path / "state.sqlite"),
        FilesystemBackend(tmp_path),
    ):
        assert isinstance(backend, ArtifactBackend)


@pytest.mark.asyncio
async def test_filesystem_backend_reads_canonical_layout(tmp_path: Path) -> None:
    phase_dir = tmp_path / "demo" / "specs" / "SPEC_PM" / "v1"
    phase_dir.mkdir(parents=True)
    (phase_dir / "PRD.md").write_text("# PRD\n", encoding="utf-8")
    (phase_dir / "nested").mkdir()

    backend = FilesystemBackend(tmp_path)

    assert await backend.read("demo", "SPEC_PM", "PRD.md") == "# PRD\n"
    assert await backend.read("demo", "SPEC_PM", "missing.md") is None
    assert list(await backend.list_names("demo", "SPEC_PM")) == ["PRD.md"]
    assert list(await backend.list_names("demo", "DESIGN")) == []


@pytest.mark.asyncio
async def test_database_backend_returns_latest_version(tmp_path: Path) -> None:
    db_path = tmp_path / "state.sqlite"
    _seed_db(
        db_path,
        [
            ("demo", "SPEC_PM", "PRD.md", 1, "old"),
            ("demo", "SPEC_PM", "PRD.md", 2, "new"),
            ("demo", "SPEC_PM", "data-model.md", 1, "model"),
            ("other", "SPEC_PM", "PRD.md", 1, "foreign"),
        ],
    )
    backend = DatabaseBackend(db_path)

    assert await backend.read("demo", "SPEC_PM", "PRD.md") == "new"
    assert await backend.read("demo", "DESIGN", "PRD.md") is None
    assert sorted(await backend.list_names("demo", "SPEC_PM")) == ["PRD.md", "data-model.md"]


@pytest.mark.asyncio
async def test_database_backend_without_file_finds_nothing(tmp_path: Path) -> None:
    backend = DatabaseBackend(tmp_path / "absent.sqlite")

    assert await backend.read("demo", "SPEC_PM", "PRD.md") is None
    assert list(await backend.list_names("demo", "SPEC_PM")) == []
    assert not (tmp_path / "absent.sqlite").exists()


@pytest.mark.asyncio
async def test_object_storage_backend_decodes_and_skips_nameless_entries() -> None:
    backend = ObjectStorageBackend(
        _FakeObjectClient({("demo", "SPEC_PM", "PRD.md"): "résumé".encode()})
    )

    assert backend.enabled
    assert await backend.read("demo", "SPEC_PM", "PRD.md") == "résumé"
    assert list(await backend.list_names("demo", "SPEC_PM")) == ["PRD.md"]


@pytest.mark.asyncio
async def test_object_storage_backend_is_inert_without_client() -> None:
    backend = ObjectStorageBackend()

    assert not backend.enabled
    assert await backend.read("demo", "SPEC_PM", "PRD.md") is None
    assert list(await backend.list_names("demo", "SPEC_PM")) == []
