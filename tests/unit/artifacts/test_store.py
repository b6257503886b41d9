from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import pytest

from phase_gate.artifacts.backends import FilesystemBackend
from phase_gate.artifacts.store import ArtifactCache, ArtifactStore, CacheManager
from phase_gate.domain.models import Project


class _DictBackend:
    def __init__(self, name: str, content: dict[tuple[str, str], str]) -> None:
        self.name = name
        self._content = content
        self.reads = 0

    async def read(self, project_slug: str, phase: str, filename: str) -> str | None:
        del project_slug
        self.reads += 1
        return self._content.get((phase, filename))

    async def list_names(self, project_slug: str, phase: str) -> Iterable[str]:
        del project_slug
        return [filename for (item_phase, filename) in self._content if item_phase == phase]


class _BrokenBackend:
    name = "broken"

    async def read(self, project_slug: str, phase: str, filename: str) -> str | None:
        raise ConnectionError("storage offline")

    async def list_names(self, project_slug: str, phase: str) -> Iterable[str]:
        raise ConnectionError("storage offline")


def _write(root: Path, slug: str, phase: str, filename: str, text: str) -> None:
    phase_dir = root / slug / "specs" / phase / "v1"
    phase_dir.mkdir(parents=True, exist_ok=True)
    (phase_dir / filename).write_text(text, encoding="utf-8")


def test_store_requires_a_backend() -> None:
    with pytest.raises(ValueError, match="at least one backend"):
        ArtifactStore([])


@pytest.mark.asyncio
async def test_first_backend_with_content_wins() -> None:
    primary = _DictBackend("primary", {("SPEC_PM", "PRD.md"): "primary"})
    secondary = _DictBackend(
        "secondary", {("SPEC_PM", "PRD.md"): "secondary", ("SPEC_PM", "extra.md"): "x"}
    )
    store = ArtifactStore([primary, secondary])

    assert await store.read_artifact("demo", "SPEC_PM", "PRD.md") == "primary"
    assert await store.read_artifact("demo", "SPEC_PM", "extra.md") == "x"
    assert await store.read_artifact("demo", "SPEC_PM", "none.md") == ""


@pytest.mark.asyncio
async def test_failing_backend_is_treated_as_not_found() -> None:
    fallback = _DictBackend("fallback", {("DESIGN", "design-system.md"): "tokens"})
    store = ArtifactStore([_BrokenBackend(), fallback])

    assert await store.read_artifact("demo", "DESIGN", "design-system.md") == "tokens"
    assert await store.list_artifact_names("demo", "DESIGN") == ("design-system.md",)
    assert await store.artifact_exists("demo", "DESIGN", "design-system.md")
    assert not await store.artifact_exists("demo", "DESIGN", "PRD.md")


@pytest.mark.asyncio
async def test_listing_is_a_sorted_union(tmp_path: Path) -> None:
    _write(tmp_path, "demo", "SPEC_PM", "PRD.md", "disk")
    memory = _DictBackend("memory", {("SPEC_PM", "data-model.md"): "m", ("SPEC_PM", "PRD.md"): "m"})
    store = ArtifactStore([memory, FilesystemBackend(tmp_path)])

    assert await store.list_artifact_names("demo", "SPEC_PM") == ("PRD.md", "data-model.md")


@pytest.mark.asyncio
async def test_from_paths_builds_priority_order(tmp_path: Path) -> None:
    store = ArtifactStore.from_paths(projects_root=tmp_path, state_db=tmp_path / "db.sqlite")

    assert [backend.name for backend in store.backends] == [
        "object_storage",
        "database",
        "filesystem",
    ]
    _write(tmp_path, "demo", "VALIDATE", "tasks.md", "## TASK-001")
    assert await store.read_artifact("demo", "VALIDATE", "tasks.md") == "## TASK-001"


def test_cache_lookup_scans_phase_order() -> None:
    cache = ArtifactCache.from_mapping(
        "demo",
        {"SPEC/PRD.md": "legacy", "SPEC_PM/PRD.md": "current", "DESIGN/design-system.md": "d"},
        phase_order=("SPEC_PM", "SPEC", "DESIGN"),
    )

    assert cache.lookup("PRD.md") == "current"
    assert cache.lookup("SPEC/PRD.md") == "legacy"
    assert cache.lookup("PRD.md", phase="DESIGN") is None
    assert cache.phases_with("PRD.md") == ("SPEC", "SPEC_PM")
    assert cache.names("DESIGN") == ("design-system.md",)
    assert "SPEC_PM/PRD.md" in cache
    assert len(cache) == 3


def test_cache_rejects_keys_without_phase() -> None:
    with pytest.raises(ValueError, match="phase"):
        ArtifactCache.from_mapping("demo", {"PRD.md": "x"})


def test_cache_is_read_only() -> None:
    cache = ArtifactCache.from_mapping("demo", {"SPEC_PM/PRD.md": "x"})

    with pytest.raises(TypeError):
        cache.entries["SPEC_PM/PRD.md"] = "y"  # type: ignore[index]


@pytest.mark.asyncio
async def test_cache_manager_reuses_snapshot_for_same_project(tmp_path: Path) -> None:
    backend = _DictBackend("memory", {("SPEC_PM", "PRD.md"): "v1"})
    manager = CacheManager(ArtifactStore([backend]), ("SPEC_PM",))
    project = Project.for_slug("demo", projects_root=tmp_path)

    first = await manager.ensure(project)
    reads_after_build = backend.reads
    second = await manager.ensure(project)

    assert first is second
    assert backend.reads == reads_after_build
    assert first.get("SPEC_PM", "PRD.md") == "v1"


@pytest.mark.asyncio
async def test_project_switch_rebuilds_the_snapshot(tmp_path: Path) -> None:
    _write(tmp_path, "alpha", "SPEC_PM", "PRD.md", "alpha prd")
    _write(tmp_path, "beta", "SPEC_PM", "PRD.md", "beta prd")
    manager = CacheManager(ArtifactStore([FilesystemBackend(tmp_path)]), ("SPEC_PM",))

    alpha = await manager.ensure(Project.for_slug("alpha", projects_root=tmp_path))
    beta = await manager.ensure(Project.for_slug("beta", projects_root=tmp_path))

    assert alpha.project_id == "alpha"
    assert beta.project_id == "beta"
    assert beta.get("SPEC_PM", "PRD.md") == "beta prd"
    assert manager.current is beta


@pytest.mark.asyncio
async def test_invalidate_forces_a_reread(tmp_path: Path) -> None:
    _write(tmp_path, "demo", "SPEC_PM", "PRD.md", "before")
    manager = CacheManager(ArtifactStore([FilesystemBackend(tmp_path)]), ("SPEC_PM",))
    project = Project.for_slug("demo", projects_root=tmp_path)

    assert (await manager.ensure(project)).get("SPEC_PM", "PRD.md") == "before"
    _write(tmp_path, "demo", "SPEC_PM", "PRD.md", "after")
    assert (await manager.ensure(project)).get("SPEC_PM", "PRD.md") == "before"

    manager.invalidate()
    assert (await manager.ensure(project)).get("SPEC_PM", "PRD.md") == "after"


def test_replace_rejects_a_foreign_snapshot(tmp_path: Path) -> None:
    manager = CacheManager(ArtifactStore([FilesystemBackend(tmp_path)]), ("SPEC_PM",))
    project = Project.for_slug("demo", projects_root=tmp_path)

    with pytest.raises(ValueError, match="not 'demo'"):
        manager.replace(project, ArtifactCache.from_mapping("other", {}))

    snapshot = ArtifactCache.from_mapping("demo", {"SPEC_PM/PRD.md": "x"})
    manager.replace(project, snapshot)
    assert manager.current is snapshot
