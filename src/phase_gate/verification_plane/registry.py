"""
phase-gate: validator implementation registry.

File: src/phase_gate/verification_plane/registry.py

Purpose
- Closed set of implementation tags, the enum-keyed dispatch table and the context handed
  to every check.

Functional requirements
- Each tag maps to at most one check; duplicate registration is rejected.
- Checks may be sync or async and always receive a ``CheckContext``.
- Artifact lookups prefer the caller-owned snapshot and fall back to the project tree.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Final, TypeAlias

from phase_gate.artifacts.store import ArtifactCache
from phase_gate.domain.models import Project
from phase_gate.planning.phase_graph import PhaseGraph, ValidatorDefinition
from phase_gate.verification_plane.executor import CommandExecutor
from phase_gate.verification_plane.results import ValidationResult

FALLBACK_PHASE: Final[str] = "ANALYSIS"


class ValidatorImplementation(StrEnum):
    """Dispatch tags referenced by the pipeline catalogue."""

    FILE_EXISTS_CHECK = "file_exists_check"
    FRONTMATTER_PARSER = "frontmatter_parser"
    CONTENT_LENGTH_CHECK = "content_length_check"
    COVERAGE_ANALYSIS = "coverage_analysis"
    OPENAPI_VALIDATOR = "openapi_validator"
    DATABASE_FIELD_CHECK = "database_field_check"
    SCRIPT_EXECUTION = "script_execution"
    DEPENDENCY_GRAPH_ANALYSIS = "dependency_graph_analysis"
    HANDOFF_VALIDATOR = "handoff_validator"
    ZIP_VALIDATION = "zip_validation"
    REGEX_PATTERN_CHECK = "regex_pattern_check"
    CROSS_REFERENCE_CHECK = "cross_reference_check"
    API_TASK_MAPPING = "api_task_mapping"
    MULTI_ARTIFACT_VALIDATION = "multi_artifact_validation"
    QUALITY_SCORING = "quality_scoring"
    JSON_SCHEMA_CHECK = "json_schema_check"
    CLARIFICATION_MARKER_CHECK = "clarification_marker_check"
    TEST_FIRST_VALIDATOR = "test_first_validator"
    CONSTITUTIONAL_VALIDATOR = "constitutional_validator"
    DESIGN_VALIDATOR = "design_validator"
    TWO_FILE_DESIGN_OUTPUT = "two_file_design_output"
    NO_CONSOLE_LOG = "no_console_log"
    ACCESSIBILITY_CHECK = "accessibility_check"
    NO_PLACEHOLDER = "no_placeholder"
    STACK_VALIDATOR = "stack_validator"

    @classmethod
    def parse(cls, value: str) -> ValidatorImplementation | None:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(slots=True)
class CheckContext:
    """Everything a check may consult for one validator invocation."""

    project: Project
    cache: ArtifactCache
    phase_graph: PhaseGraph
    validator: ValidatorDefinition
    executor: CommandExecutor
    config: Mapping[str, Any]
    logger: Any
    phase: str

    @property
    def params(self) -> Mapping[str, object]:
        return self.validator.params

    def param(self, name: str, default: Any = None) -> Any:
        value = self.validator.params.get(name)
        return default if value is None else value

    def config_section(self, name: str) -> Mapping[str, Any]:
        section = self.config.get(name)
        return section if isinstance(section, Mapping) else {}

    def phase_dir(self, phase: str | None = None) -> Path:
        return self.project.phase_dir(phase or self.phase)

    def artifact(self, name: str, *phases: str) -> str:
        """First non-empty content of ``name`` across ``phases``; ``""`` when absent.

        With no phases the snapshot is scanned in cache phase order.
        """

        if not phases:
            return self.read_artifact(name)
        for phase in phases:
            content = self.read_artifact(name, phase)
            if content:
                return content
        return ""

    def read_artifact(self, name: str, phase: str | None = None) -> str:
        target_phase = phase
        target_name = name
        if "/" in name:
            target_phase, _, target_name = name.partition("/")

        cached = self.cache.lookup(target_name, target_phase)
        if cached is not None:
            return cached

        path = self.project.phase_dir(target_phase or FALLBACK_PHASE) / target_name
        try:
            if not path.is_file():
                return ""
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            self.logger.warning(
                "artifact_read_failed",
                artifact=name,
                path=str(path),
                error=str(exc),
            )
            return ""


CheckResultLike: TypeAlias = ValidationResult | Awaitable[ValidationResult]
CheckFunction: TypeAlias = Callable[[CheckContext], CheckResultLike]


class CheckRegistry:
    """Deterministic implementation-tag dispatch table."""

    def __init__(self) -> None:
        self._checks: dict[ValidatorImplementation, CheckFunction] = {}

    def register(self, tag: ValidatorImplementation | str, check: CheckFunction) -> None:
        implementation = ValidatorImplementation(tag)
        if not callable(check):
            raise TypeError("check must be callable")
        if implementation in self._checks:
            raise ValueError(f"implementation {implementation.value!r} is already registered")
        self._checks[implementation] = check

    def get(self, tag: str) -> CheckFunction | None:
        implementation = ValidatorImplementation.parse(tag)
        if implementation is None:
            return None
        return self._checks.get(implementation)

    def contains(self, tag: str) -> bool:
        return self.get(tag) is not None

    def registered(self) -> tuple[ValidatorImplementation, ...]:
        return tuple(sorted(self._checks, key=lambda item: item.value))


DEFAULT_CHECK_REGISTRY = CheckRegistry()


def register_check(
    tag: ValidatorImplementation | str,
    *,
    registry: CheckRegistry | None = None,
) -> Callable[[CheckFunction], CheckFunction]:
    """Decorator that binds a check function to an implementation tag."""

    target = registry if registry is not None else DEFAULT_CHECK_REGISTRY

    def decorator(check: CheckFunction) -> CheckFunction:
        target.register(tag, check)
        return check

    return decorator


__all__ = [
    "DEFAULT_CHECK_REGISTRY",
    "FALLBACK_PHASE",
    "CheckContext",
    "CheckFunction",
    "CheckRegistry",
    "ValidatorImplementation",
    "register_check",
]
