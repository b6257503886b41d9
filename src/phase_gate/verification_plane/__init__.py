"""
phase-gate: verification plane

File: src/phase_gate/verification_plane/__init__.py

Purpose
- Result envelopes, the check registry with its built-in checks, the validator engine
  and the blocking quality gates.
"""

from phase_gate.verification_plane.results import (
    CheckValue,
    IssueSeverity,
    QualityIssue,
    QualityReport,
    ValidationResult,
    ValidationStatus,
)
from phase_gate.verification_plane.executor import (
    CommandExecutor,
    CommandResult,
    CommandSpec,
    LocalSubprocessExecutor,
)
from phase_gate.verification_plane.registry import (
    DEFAULT_CHECK_REGISTRY,
    CheckContext,
    CheckRegistry,
    ValidatorImplementation,
    register_check,
)
from phase_gate.verification_plane.engine import ValidationEngine

__all__ = [
    "DEFAULT_CHECK_REGISTRY",
    "CheckContext",
    "CheckRegistry",
    "CheckValue",
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "IssueSeverity",
    "LocalSubprocessExecutor",
    "QualityIssue",
    "QualityReport",
    "ValidationEngine",
    "ValidationResult",
    "ValidationStatus",
    "ValidatorImplementation",
    "register_check",
]
