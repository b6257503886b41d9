"""Dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

from phase_gate.constants import ARTIFACT_VERSION_DIRNAME, DEFAULT_PHASE, SPECS_DIRNAME

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_MAX_TEXT = 8192


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_str(value: object, path: str, *, max_len: int = _MAX_TEXT) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        _fail(path, "must be at least 1 character(s)")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_optional_str(value: object, path: str) -> str | None:
    if value is None:
        return None
    return _as_str(value, path)


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _validate_filename(value: str, path: str) -> str:
    if value in {".", ".."} or "\\" in value or value.startswith("/"):
        _fail(path, f"invalid artifact filename {value!r}")
    if any(part in {"", ".", ".."} for part in value.split("/")):
        _fail(path, f"invalid artifact filename {value!r}")
    return value


@dataclass(frozen=True, slots=True)
class ArtifactKey:
    """Identity of one artifact: (project slug, phase, filename)."""

    project_slug: str
    phase: str
    filename: str

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "project_slug", _as_str(self.project_slug, "ArtifactKey.project_slug")
        )
        object.__setattr__(self, "phase", _as_str(self.phase, "ArtifactKey.phase", max_len=128))
        object.__setattr__(
            self,
            "filename",
            _validate_filename(
                _as_str(self.filename, "ArtifactKey.filename", max_len=1024),
                "ArtifactKey.filename",
            ),
        )

    @property
    def cache_key(self) -> str:
        return f"{self.phase}/{self.filename}"

    def relative_path(self) -> Path:
        """Canonical on-disk location relative to the projects root."""
        return (
            Path(self.project_slug)
            / SPECS_DIRNAME
            / self.phase
            / ARTIFACT_VERSION_DIRNAME
            / self.filename
        )


@dataclass(frozen=True, slots=True)
class Project:
    """A pipeline project as seen by the validation engine.

    ``id`` is the identity the artifact cache is keyed by; ``slug`` addresses the
    backing stores. Both default to the same value when only a slug is known.
    """

    id: str
    slug: str
    project_path: Path
    current_phase: str = DEFAULT_PHASE
    stack_approved: bool = False
    stack_choice: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_str(self.id, "Project.id", max_len=256))
        object.__setattr__(self, "slug", _as_str(self.slug, "Project.slug", max_len=256))
        if "/" in self.slug or "\\" in self.slug or self.slug in {".", ".."}:
            _fail("Project.slug", f"must be a single path segment, got {self.slug!r}")
        object.__setattr__(self, "project_path", Path(self.project_path))
        object.__setattr__(
            self, "current_phase", _as_str(self.current_phase, "Project.current_phase", max_len=128)
        )
        object.__setattr__(
            self, "stack_approved", _as_bool(self.stack_approved, "Project.stack_approved")
        )
        object.__setattr__(
            self, "stack_choice", _as_optional_str(self.stack_choice, "Project.stack_choice")
        )

    @classmethod
    def for_slug(
        cls,
        slug: str,
        *,
        projects_root: str | Path,
        current_phase: str = DEFAULT_PHASE,
        stack_approved: bool = False,
        stack_choice: str | None = None,
    ) -> Project:
        return cls(
            id=slug,
            slug=slug,
            project_path=Path(projects_root) / slug,
            current_phase=current_phase,
            stack_approved=stack_approved,
            stack_choice=stack_choice,
        )

    def phase_dir(self, phase: str | None = None) -> Path:
        """Directory holding the artifacts of ``phase`` (defaults to the current phase)."""
        return (
            self.project_path
            / SPECS_DIRNAME
            / (phase or self.current_phase)
            / ARTIFACT_VERSION_DIRNAME
        )

    def field_value(self, name: str) -> object:
        """Look up a named project attribute; unknown names read as ``None``."""
        if name not in _PROJECT_FIELDS:
            return None
        return getattr(self, name)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "slug": self.slug,
            "project_path": self.project_path.as_posix(),
            "current_phase": self.current_phase,
            "stack_approved": self.stack_approved,
            "stack_choice": self.stack_choice,
        }

    def to_json(self) -> str:
        return _canonical_json(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Project:
        parsed = _expect_object(
            data,
            "Project",
            required={"slug", "project_path"},
            optional={"id", "current_phase", "stack_approved", "stack_choice"},
        )
        slug = _as_str(parsed["slug"], "Project.slug")
        return cls(
            id=_as_str(parsed.get("id", slug), "Project.id"),
            slug=slug,
            project_path=Path(_as_str(parsed["project_path"], "Project.project_path")),
            current_phase=_as_str(
                parsed.get("current_phase", DEFAULT_PHASE), "Project.current_phase"
            ),
            stack_approved=_as_bool(
                parsed.get("stack_approved", False), "Project.stack_approved"
            ),
            stack_choice=_as_optional_str(parsed.get("stack_choice"), "Project.stack_choice"),
        )


_PROJECT_FIELDS = frozenset(
    {"id", "slug", "project_path", "current_phase", "stack_approved", "stack_choice"}
)


__all__ = [
    "ArtifactKey",
    "JSONScalar",
    "JSONValue",
    "Project",
]
