"""
phase-gate: remediation

File: src/phase_gate/remediation/__init__.py

Purpose
- Root cause analysis of failed validation runs and the safeguards gating automated fixes.
"""

from phase_gate.remediation.generative import (
    GenerativeClient,
    GenerativeClientError,
    GenerativeResponse,
)
from phase_gate.remediation.root_cause import (
    AnalysisRequest,
    ErrorType,
    PhaseHistoryEntry,
    PhaseStatus,
    RootCauseAnalysis,
    RootCauseAnalyzer,
)
from phase_gate.remediation.safeguards import (
    AutoRemedySafeguard,
    SafeguardResult,
    create_conflict_markers,
    detect_user_edit,
    generate_diff_preview,
    hash_content,
    validate_change_scope,
)

__all__ = [
    "AnalysisRequest",
    "AutoRemedySafeguard",
    "ErrorType",
    "GenerativeClient",
    "GenerativeClientError",
    "GenerativeResponse",
    "PhaseHistoryEntry",
    "PhaseStatus",
    "RootCauseAnalysis",
    "RootCauseAnalyzer",
    "SafeguardResult",
    "create_conflict_markers",
    "detect_user_edit",
    "generate_diff_preview",
    "hash_content",
    "validate_change_scope",
]
