"""
phase-gate: merged artifact view and per-project cache.

File: src/phase_gate/artifacts/store.py

Purpose
- Compose the backing stores into one logical artifact view and snapshot it per project.

Functional requirements
- Point reads: backends are tried in priority order; the first non-``None`` result wins.
- Listings: the union of names across backends, gathered concurrently, sorted.
- A failing backend is logged and treated as "not found"; nothing propagates to callers.
- ``ArtifactCache`` is an immutable snapshot keyed ``"{phase}/{filename}"`` and bound to one
  project identity. ``CacheManager`` is owned by the caller and rebuilds on identity change.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import structlog

from phase_gate.artifacts.backends import (
    ArtifactBackend,
    DatabaseBackend,
    FilesystemBackend,
    ObjectStorageBackend,
    ObjectStorageClient,
)

if TYPE_CHECKING:
    from phase_gate.domain.models import Project


@dataclass(frozen=True, slots=True)
class ArtifactCache:
    """Read-only snapshot of one project's artifacts."""

    project_id: str
    entries: Mapping[str, str]
    phase_order: tuple[str, ...] = ()
    _by_name: Mapping[str, tuple[str, ...]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        entries = dict(self.entries)
        phase_order = tuple(self.phase_order)
        if not phase_order:
            seen: dict[str, None] = {}
            for key in entries:
                phase, _, _ = key.partition("/")
                seen.setdefault(phase, None)
            phase_order = tuple(seen)

        by_name: dict[str, list[str]] = {}
        for key in entries:
            phase, _, filename = key.partition("/")
            by_name.setdefault(filename, []).append(phase)

        object.__setattr__(self, "entries", MappingProxyType(entries))
        object.__setattr__(self, "phase_order", phase_order)
        object.__setattr__(
            self,
            "_by_name",
            MappingProxyType({name: tuple(phases) for name, phases in by_name.items()}),
        )

    @classmethod
    def from_mapping(
        cls,
        project_id: str,
        entries: Mapping[str, str],
        *,
        phase_order: Sequence[str] = (),
    ) -> ArtifactCache:
        for key in entries:
            if "/" not in key:
                raise ValueError(f"cache key must be '{{phase}}/{{filename}}', got {key!r}")
        return cls(project_id=project_id, entries=entries, phase_order=tuple(phase_order))

    def get(self, phase: str, filename: str) -> str | None:
        return self.entries.get(f"{phase}/{filename}")

    def lookup(self, name: str, phase: str | None = None) -> str | None:
        """Resolve ``name`` (optionally ``"PHASE/name"``) against the snapshot.

        With a phase only that exact key is consulted. Without one, phases are scanned in
        ``phase_order`` and the first hit wins.
        """

        target_phase = phase
        target_name = name
        if "/" in name:
            target_phase, _, target_name = name.partition("/")

        if target_phase:
            return self.get(target_phase, target_name)

        for candidate in self.phase_order:
            found = self.entries.get(f"{candidate}/{target_name}")
            if found is not None:
                return found
        return None

    def phases_with(self, filename: str) -> tuple[str, ...]:
        return self._by_name.get(filename, ())

    def names(self, phase: str) -> tuple[str, ...]:
        prefix = f"{phase}/"
        return tuple(sorted(key[len(prefix) :] for key in self.entries if key.startswith(prefix)))

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict[str, object]:
        return {
            "project_id": self.project_id,
            "phase_order": list(self.phase_order),
            "entries": {key: self.entries[key] for key in sorted(self.entries)},
        }


class ArtifactStore:
    """Ordered composition of artifact backends."""

    def __init__(
        self,
        backends: Sequence[ArtifactBackend],
        *,
        logger: Any | None = None,
    ) -> None:
        if not backends:
            raise ValueError("ArtifactStore requires at least one backend")
        self._backends = tuple(backends)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @classmethod
    def from_paths(
        cls,
        *,
        projects_root: str | Path,
        state_db: str | Path | None = None,
        object_client: ObjectStorageClient | None = None,
        logger: Any | None = None,
    ) -> ArtifactStore:
        """Standard priority: object storage, then database, then filesystem."""

        backends: list[ArtifactBackend] = [ObjectStorageBackend(object_client)]
        if state_db is not None:
            backends.append(DatabaseBackend(state_db))
        backends.append(FilesystemBackend(projects_root))
        return cls(backends, logger=logger)

    @property
    def backends(self) -> tuple[ArtifactBackend, ...]:
        return self._backends

    async def read_artifact(self, project_slug: str, phase: str, filename: str) -> str:
        for backend in self._backends:
            try:
                content = await backend.read(project_slug, phase, filename)
            except Exception as exc:  # noqa: BLE001
                self._logger.debug(
                    "artifact_backend_read_failed",
                    backend=backend.name,
                    project_slug=project_slug,
                    phase=phase,
                    filename=filename,
                    error=str(exc),
                )
                continue
            if content is not None:
                return content
        return ""

    async def list_artifact_names(self, project_slug: str, phase: str) -> tuple[str, ...]:
        listings = await asyncio.gather(
            *(self._list_one(backend, project_slug, phase) for backend in self._backends)
        )
        names: set[str] = set()
        for listing in listings:
            names.update(listing)
        return tuple(sorted(names))

    async def artifact_exists(self, project_slug: str, phase: str, filename: str) -> bool:
        return filename in await self.list_artifact_names(project_slug, phase)

    async def build_cache(self, project: Project, phases: Sequence[str]) -> ArtifactCache:
        """Eagerly read every listed artifact of every phase into a snapshot."""

        entries: dict[str, str] = {}
        for phase in phases:
            for name in await self.list_artifact_names(project.slug, phase):
                entries[f"{phase}/{name}"] = await self.read_artifact(project.slug, phase, name)

        self._logger.debug(
            "artifact_cache_built",
            project_id=project.id,
            project_slug=project.slug,
            phases=len(phases),
            artifacts=len(entries),
        )
        return ArtifactCache(project_id=project.id, entries=entries, phase_order=tuple(phases))

    async def _list_one(
        self, backend: ArtifactBackend, project_slug: str, phase: str
    ) -> Iterable[str]:
        try:
            return tuple(await backend.list_names(project_slug, phase))
        except Exception as exc:  # noqa: BLE001
            self._logger.debug(
                "artifact_backend_list_failed",
                backend=backend.name,
                project_slug=project_slug,
                phase=phase,
                error=str(exc),
            )
            return ()


class CacheManager:
    """Caller-owned holder of the active project's artifact snapshot."""

    def __init__(
        self,
        store: ArtifactStore,
        phases: Sequence[str],
        *,
        logger: Any | None = None,
    ) -> None:
        self._store = store
        self._phases = tuple(phases)
        self._current: ArtifactCache | None = None
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def current(self) -> ArtifactCache | None:
        return self._current

    @property
    def phases(self) -> tuple[str, ...]:
        return self._phases

    async def ensure(self, project: Project) -> ArtifactCache:
        """Return the snapshot for ``project``, rebuilding when the identity changed."""

        current = self._current
        if current is not None and current.project_id == project.id:
            return current

        if current is not None:
            self._logger.info(
                "artifact_cache_rebuild",
                previous_project_id=current.project_id,
                project_id=project.id,
            )
        self._current = await self._store.build_cache(project, self._phases)
        return self._current

    def replace(self, project: Project, cache: ArtifactCache) -> None:
        if cache.project_id != project.id:
            raise ValueError(
                f"cache belongs to project {cache.project_id!r}, not {project.id!r}"
            )
        self._current = cache

    def invalidate(self) -> None:
        self._current = None


__all__ = [
    "ArtifactCache",
    "ArtifactStore",
    "CacheManager",
]
