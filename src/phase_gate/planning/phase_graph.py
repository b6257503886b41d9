"""
phase-gate: declarative pipeline catalogue.

File: src/phase_gate/planning/phase_graph.py

Purpose
- Load the YAML pipeline catalogue shipped with the package (or an override path) and expose
  phases, their dependency edges, required files and validator definitions.

Functional requirements
- Phase dependencies must reference known phases and must form a DAG.
- Phase validator names must resolve to a validator definition.
- Loading is cached per path for the lifetime of the process.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Final

import yaml

from phase_gate.constants import LEGACY_SPEC_PHASE, PIPELINE_CATALOGUE_VERSION
from phase_gate.planning.task_graph import CycleError, TaskGraph, detect_cycles

_CATALOGUE_FILENAME: Final[str] = "pipeline.yaml"


class PhaseGraphError(ValueError):
    """Raised when the pipeline catalogue is malformed or inconsistent."""


def _as_non_empty_str(value: object, field_name: str) -> str:
    if not isinstance(value, str):
        raise PhaseGraphError(f"{field_name} must be a string")
    parsed = value.strip()
    if not parsed:
        raise PhaseGraphError(f"{field_name} cannot be empty")
    return parsed


def _as_mapping(value: object, field_name: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise PhaseGraphError(f"{field_name} must be an object")
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise PhaseGraphError(f"{field_name} keys must be strings")
        out[key] = item
    return out


def _as_str_tuple(value: object, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (_as_non_empty_str(value, field_name),)
    if not isinstance(value, Sequence):
        raise PhaseGraphError(f"{field_name} must be a list of strings")
    return tuple(
        _as_non_empty_str(item, f"{field_name}[{index}]") for index, item in enumerate(value)
    )


@dataclass(frozen=True, slots=True)
class ValidatorDefinition:
    """One named validator: implementation tag plus its parameters."""

    name: str
    implementation: str
    description: str = ""
    params: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "implementation": self.implementation,
            "description": self.description,
            "params": dict(self.params),
        }


@dataclass(frozen=True, slots=True)
class PhaseDefinition:
    """One pipeline stage."""

    id: str
    description: str
    owner: tuple[str, ...]
    duration_minutes: int
    outputs: tuple[str, ...]
    depends_on: tuple[str, ...]
    next_phase: str | None
    validators: tuple[str, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "description": self.description,
            "owner": list(self.owner),
            "duration_minutes": self.duration_minutes,
            "outputs": list(self.outputs),
            "depends_on": list(self.depends_on),
            "next_phase": self.next_phase,
            "validators": list(self.validators),
        }


@dataclass(frozen=True, slots=True)
class PhaseGraph:
    """Immutable view over the pipeline catalogue."""

    phases: Mapping[str, PhaseDefinition]
    validators: Mapping[str, ValidatorDefinition]
    required_files_table: Mapping[str, tuple[str, ...]]
    legacy_phases: tuple[str, ...] = (LEGACY_SPEC_PHASE,)

    def __post_init__(self) -> None:
        if not self.phases:
            raise PhaseGraphError("catalogue must define at least one phase")

        for phase in self.phases.values():
            for dependency in phase.depends_on:
                if dependency not in self.phases:
                    raise PhaseGraphError(
                        f"phase {phase.id!r} depends on unknown phase {dependency!r}"
                    )
            if phase.next_phase is not None and phase.next_phase not in self.phases:
                raise PhaseGraphError(
                    f"phase {phase.id!r} has unknown next_phase {phase.next_phase!r}"
                )
            for validator_name in phase.validators:
                if validator_name not in self.validators:
                    raise PhaseGraphError(
                        f"phase {phase.id!r} references unknown validator {validator_name!r}"
                    )

        object.__setattr__(self, "phases", MappingProxyType(dict(self.phases)))
        object.__setattr__(self, "validators", MappingProxyType(dict(self.validators)))
        object.__setattr__(
            self, "required_files_table", MappingProxyType(dict(self.required_files_table))
        )
        self.assert_acyclic()

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> PhaseGraph:
        version = payload.get("version", PIPELINE_CATALOGUE_VERSION)
        if version != PIPELINE_CATALOGUE_VERSION:
            raise PhaseGraphError(
                f"unsupported catalogue version {version!r}; expected {PIPELINE_CATALOGUE_VERSION}"
            )

        phases_raw = _as_mapping(payload.get("phases"), "phases")
        phases: dict[str, PhaseDefinition] = {}
        for phase_id, entry in phases_raw.items():
            entry_map = _as_mapping(entry, f"phases.{phase_id}")
            duration = entry_map.get("duration_minutes", 0)
            if isinstance(duration, bool) or not isinstance(duration, int) or duration < 0:
                raise PhaseGraphError(f"phases.{phase_id}.duration_minutes must be an integer >= 0")
            next_phase_raw = entry_map.get("next_phase")
            phases[phase_id] = PhaseDefinition(
                id=phase_id,
                description=str(entry_map.get("description", "")),
                owner=_as_str_tuple(entry_map.get("owner"), f"phases.{phase_id}.owner"),
                duration_minutes=duration,
                outputs=_as_str_tuple(entry_map.get("outputs"), f"phases.{phase_id}.outputs"),
                depends_on=_as_str_tuple(
                    entry_map.get("depends_on"), f"phases.{phase_id}.depends_on"
                ),
                next_phase=(
                    None
                    if next_phase_raw is None
                    else _as_non_empty_str(next_phase_raw, f"phases.{phase_id}.next_phase")
                ),
                validators=_as_str_tuple(
                    entry_map.get("validators"), f"phases.{phase_id}.validators"
                ),
            )

        validators_raw = _as_mapping(payload.get("validators", {}), "validators")
        validators: dict[str, ValidatorDefinition] = {}
        for name, entry in validators_raw.items():
            entry_map = dict(_as_mapping(entry, f"validators.{name}"))
            implementation = _as_non_empty_str(
                entry_map.pop("implementation", None), f"validators.{name}.implementation"
            )
            description = str(entry_map.pop("description", ""))
            validators[name] = ValidatorDefinition(
                name=name,
                implementation=implementation,
                description=description,
                params=entry_map,
            )

        required_raw = _as_mapping(payload.get("required_files", {}), "required_files")
        required_files = {
            phase_id: _as_str_tuple(files, f"required_files.{phase_id}")
            for phase_id, files in required_raw.items()
        }

        legacy = _as_str_tuple(
            payload.get("legacy_phases", [LEGACY_SPEC_PHASE]), "legacy_phases"
        )

        return cls(
            phases=phases,
            validators=validators,
            required_files_table=required_files,
            legacy_phases=legacy,
        )

    @classmethod
    def from_file(cls, path: str | Path) -> PhaseGraph:
        candidate = Path(path).expanduser().resolve()
        try:
            with candidate.open("r", encoding="utf-8") as handle:
                payload = yaml.safe_load(handle)
        except OSError as exc:
            raise PhaseGraphError(f"unable to read pipeline catalogue {candidate}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise PhaseGraphError(f"invalid YAML in {candidate}: {exc}") from exc

        return cls.from_mapping(_as_mapping(payload, "catalogue"))

    @property
    def phase_ids(self) -> tuple[str, ...]:
        """Catalogue phases in declaration order."""
        return tuple(self.phases)

    @property
    def cache_phases(self) -> tuple[str, ...]:
        """Phases scanned when building an artifact cache: catalogue order, then legacy phases."""
        return (*self.phase_ids, *(p for p in self.legacy_phases if p not in self.phases))

    def phase(self, phase_id: str) -> PhaseDefinition:
        found = self.phases.get(phase_id)
        if found is None:
            raise KeyError(f"unknown phase {phase_id!r}")
        return found

    def dependencies_of(self, phase_id: str, *, transitive: bool = False) -> tuple[str, ...]:
        if not transitive:
            return self.phase(phase_id).depends_on
        return self._graph().get_dependencies(phase_id, transitive=True)

    def validators_for(self, phase_id: str) -> tuple[str, ...]:
        """Validator names to run when ``phase_id`` completes; unknown phases run none."""
        found = self.phases.get(phase_id)
        return found.validators if found is not None else ()

    def validator(self, name: str) -> ValidatorDefinition | None:
        return self.validators.get(name)

    def required_files(self, phase_id: str) -> tuple[str, ...]:
        return self.required_files_table.get(phase_id, ())

    def markdown_files(self, phase_id: str) -> tuple[str, ...]:
        return tuple(name for name in self.required_files(phase_id) if name.endswith(".md"))

    def topological_order(self) -> tuple[str, ...]:
        try:
            return self._graph().topological_sort()
        except CycleError as exc:
            raise PhaseGraphError(str(exc)) from exc

    def assert_acyclic(self) -> None:
        dependency_map = {phase_id: list(p.depends_on) for phase_id, p in self.phases.items()}
        cycles = detect_cycles(dependency_map)
        if cycles:
            rendered = "; ".join(" -> ".join(cycle) for cycle in cycles)
            raise PhaseGraphError(f"phase dependencies contain cycle(s): {rendered}")

    def to_dict(self) -> dict[str, object]:
        return {
            "phases": [phase.to_dict() for phase in self.phases.values()],
            "validators": [self.validators[name].to_dict() for name in sorted(self.validators)],
            "required_files": {
                phase_id: list(files) for phase_id, files in self.required_files_table.items()
            },
            "legacy_phases": list(self.legacy_phases),
        }

    def _graph(self) -> TaskGraph:
        return TaskGraph.from_dependency_map(
            {phase_id: phase.depends_on for phase_id, phase in self.phases.items()}
        )


def bundled_catalogue_path() -> Path:
    return Path(__file__).resolve().with_name(_CATALOGUE_FILENAME)


@lru_cache(maxsize=8)
def load_phase_graph(path: str | Path | None = None) -> PhaseGraph:
    """Load the pipeline catalogue from disk with per-path caching."""

    resolved = bundled_catalogue_path() if path is None else Path(path).expanduser().resolve()
    return PhaseGraph.from_file(resolved)


__all__ = [
    "PhaseDefinition",
    "PhaseGraph",
    "PhaseGraphError",
    "ValidatorDefinition",
    "bundled_catalogue_path",
    "load_phase_graph",
]
