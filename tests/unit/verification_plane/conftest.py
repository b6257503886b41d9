from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from phase_gate.artifacts.backends import FilesystemBackend
from phase_gate.artifacts.store import ArtifactStore, CacheManager
from phase_gate.domain.models import Project
from phase_gate.planning.phase_graph import PhaseGraph, load_phase_graph
from phase_gate.verification_plane.engine import ValidationEngine

WriteArtifact = Callable[[str, str, str], Path]


@pytest.fixture
def projects_root(tmp_path: Path) -> Path:
    root = tmp_path / "projects"
    root.mkdir()
    return root


@pytest.fixture
def phase_graph() -> PhaseGraph:
    return load_phase_graph()


@pytest.fixture
def project(projects_root: Path) -> Project:
    return Project.for_slug("demo", projects_root=projects_root)


@pytest.fixture
def write_artifact(projects_root: Path) -> WriteArtifact:
    """Write ``demo/specs/{phase}/v1/{filename}`` and return its path."""

    def write(phase: str, filename: str, content: str) -> Path:
        path = projects_root / "demo" / "specs" / phase / "v1" / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return write


@pytest.fixture
def cache_manager(projects_root: Path, phase_graph: PhaseGraph) -> CacheManager:
    return CacheManager(ArtifactStore([FilesystemBackend(projects_root)]), phase_graph.cache_phases)


@pytest.fixture
def engine(phase_graph: PhaseGraph, cache_manager: CacheManager) -> ValidationEngine:
    return ValidationEngine(phase_graph, cache_manager)
