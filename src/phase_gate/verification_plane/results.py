"""
phase-gate: validation result envelopes.

File: src/phase_gate/verification_plane/results.py

Purpose
- Result types shared by validator checks, the execution engine and the quality gates.

Functional requirements
- ``ValidationResult.from_findings`` derives status from findings: any error is ``fail``,
  otherwise any warning is ``warn``, otherwise ``pass``.
- Aggregation across validators concatenates errors and warnings without deduplication.
- ``QualityReport.can_proceed`` is false iff any issue has ``error`` severity.
- Every type has a deterministic ``to_dict`` export.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import TypeAlias, Union

from phase_gate.domain.models import JSONValue

CheckValue: TypeAlias = Union[bool, Mapping[str, "CheckValue"]]


class ValidationStatus(StrEnum):
    """Coarse verdict, ordered by severity."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


class IssueSeverity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


def _freeze_checks(checks: Mapping[str, CheckValue]) -> Mapping[str, CheckValue]:
    frozen: dict[str, CheckValue] = {}
    for key, value in checks.items():
        if isinstance(value, Mapping):
            frozen[key] = _freeze_checks(value)
        else:
            frozen[key] = bool(value)
    return MappingProxyType(frozen)


def _export_checks(checks: Mapping[str, CheckValue]) -> dict[str, JSONValue]:
    exported: dict[str, JSONValue] = {}
    for key in checks:
        value = checks[key]
        exported[key] = _export_checks(value) if isinstance(value, Mapping) else value
    return exported


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of one validator, or of a whole validator run once aggregated.

    ``checks`` maps check name to boolean; an aggregated result maps validator name to
    that validator's checks. ``details`` carries non-boolean extras such as score
    breakdowns.
    """

    status: ValidationStatus
    checks: Mapping[str, CheckValue] = field(default_factory=dict)
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    details: Mapping[str, JSONValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", ValidationStatus(self.status))
        object.__setattr__(self, "checks", _freeze_checks(self.checks))
        object.__setattr__(self, "errors", tuple(self.errors))
        object.__setattr__(self, "warnings", tuple(self.warnings))
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))

    @classmethod
    def from_findings(
        cls,
        *,
        checks: Mapping[str, CheckValue] | None = None,
        errors: Iterable[str] = (),
        warnings: Iterable[str] = (),
        details: Mapping[str, JSONValue] | None = None,
    ) -> ValidationResult:
        error_list = tuple(errors)
        warning_list = tuple(warnings)
        if error_list:
            status = ValidationStatus.FAIL
        elif warning_list:
            status = ValidationStatus.WARN
        else:
            status = ValidationStatus.PASS
        return cls(
            status=status,
            checks=checks or {},
            errors=error_list,
            warnings=warning_list,
            details=details or {},
        )

    @classmethod
    def failed(
        cls, *errors: str, checks: Mapping[str, CheckValue] | None = None
    ) -> ValidationResult:
        return cls(status=ValidationStatus.FAIL, checks=checks or {}, errors=errors)

    @classmethod
    def warned(
        cls, *warnings: str, checks: Mapping[str, CheckValue] | None = None
    ) -> ValidationResult:
        return cls(status=ValidationStatus.WARN, checks=checks or {}, warnings=warnings)

    @property
    def passed(self) -> bool:
        return self.status is ValidationStatus.PASS

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "status": self.status.value,
            "checks": _export_checks(self.checks),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "details": dict(self.details),
        }


@dataclass(frozen=True, slots=True)
class QualityIssue:
    """One finding of a quality gate."""

    severity: IssueSeverity
    category: str
    message: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "severity", IssueSeverity(self.severity))

    @classmethod
    def error(cls, category: str, message: str) -> QualityIssue:
        return cls(severity=IssueSeverity.ERROR, category=category, message=message)

    @classmethod
    def warning(cls, category: str, message: str) -> QualityIssue:
        return cls(severity=IssueSeverity.WARNING, category=category, message=message)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "severity": self.severity.value,
            "category": self.category,
            "message": self.message,
        }


@dataclass(frozen=True, slots=True)
class QualityReport:
    """Issues produced by a quality gate."""

    issues: tuple[QualityIssue, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "issues", tuple(self.issues))

    @classmethod
    def merge(cls, *reports: QualityReport) -> QualityReport:
        return cls(issues=tuple(issue for report in reports for issue in report.issues))

    @property
    def can_proceed(self) -> bool:
        return not any(issue.severity is IssueSeverity.ERROR for issue in self.issues)

    @property
    def errors(self) -> tuple[QualityIssue, ...]:
        return tuple(issue for issue in self.issues if issue.severity is IssueSeverity.ERROR)

    @property
    def warnings(self) -> tuple[QualityIssue, ...]:
        return tuple(issue for issue in self.issues if issue.severity is IssueSeverity.WARNING)

    def categories(self, severity: IssueSeverity | None = None) -> tuple[str, ...]:
        return tuple(
            issue.category
            for issue in self.issues
            if severity is None or issue.severity is severity
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "can_proceed": self.can_proceed,
            "issues": [issue.to_dict() for issue in self.issues],
        }


__all__ = [
    "CheckValue",
    "IssueSeverity",
    "QualityIssue",
    "QualityReport",
    "ValidationResult",
    "ValidationStatus",
]
