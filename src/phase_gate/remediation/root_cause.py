"""
phase-gate: validation failure root cause analysis

File: src/phase_gate/remediation/root_cause.py

Purpose
- Classify a batch of validation error strings into an error type and the phase that most
  likely produced the faulty artifact, so the caller knows what to regenerate.

Functional requirements
- Stage 1: ordered pattern sets classify the joined error text; the first category with a
  matching pattern wins. No match is ``unknown``.
- Stage 2: attribute the failure to a phase from history, then from artifact filenames
  quoted in the errors, then to the most recent completed phase, then ``VALIDATE``.
- Stage 3: below the escalation threshold, and only when a generative client is
  configured, ask the client for a structured analysis. Any failure keeps the stage 1/2
  result; nothing from the client is ever raised to the caller.
- Batch analysis runs items concurrently with no shared mutable state.
"""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Final

import structlog
from jinja2 import Environment, StrictUndefined, Template

from phase_gate.constants import DEFAULT_PHASE
from phase_gate.domain.models import JSONValue
from phase_gate.remediation.generative import GenerativeClient, response_text


class ErrorType(StrEnum):
    PARSING = "parsing"
    CONTENT_QUALITY = "content_quality"
    MISSING_FILE = "missing_file"
    CONSTITUTIONAL = "constitutional"
    UNKNOWN = "unknown"


class PhaseStatus(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    PENDING = "pending"


@dataclass(frozen=True, slots=True)
class _PatternSet:
    error_type: ErrorType
    patterns: tuple[re.Pattern[str], ...]
    confidence: float


def _compile(*sources: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(source, re.IGNORECASE) for source in sources)


# Order matters: the first set with any hit decides the error type.
ERROR_PATTERNS: Final[tuple[_PatternSet, ...]] = (
    _PatternSet(
        ErrorType.PARSING,
        _compile(
            r"parse\s*(fail|error|exception)",
            r"cannot\s*find\s*module",
            r"json\s*parse\s*error",
            r"syntax\s*error",
            r"unexpected\s*token",
            r"invalid\s*(json|yaml|xml|html)",
            r"malformed",
            r"expected\s*.*but\s*found",
            r"type\s*error",
            r"reference\s*error",
        ),
        0.9,
    ),
    _PatternSet(
        ErrorType.MISSING_FILE,
        _compile(
            r"required\s*file.*missing",
            r"file\s*not\s*found",
            r"cannot\s*open.*file",
            r"ENOENT",
            r"no\s*such\s*file",
            r"missing\s*artifact",
            r"output\s*artifact\s*not\s*found",
            r"artifact.*not\s*found",
            r"missing\s+file",
        ),
        0.85,
    ),
    _PatternSet(
        ErrorType.CONTENT_QUALITY,
        _compile(
            r"too\s*short",
            r"missing\s*required\s*content",
            r"placeholder",
            r"incomplete",
            r"insufficient\s*(detail|content|information)",
            r"not\s*(comprehensive|detailed|complete)",
            r"lacking",
            r"generic",
            r"vague",
            r"not\s*found\s*in\s*artifact",
            r"no.*found.*in",
            r"lacks?\s+(sufficient|detail|content)",
        ),
        0.8,
    ),
    _PatternSet(
        ErrorType.CONSTITUTIONAL,
        _compile(
            r"constitutional",
            r"article\s*\d+",
            r"test-first",
            r"time\s*estimate",
            r"violates.*principle",
            r"forbidden",
            r"not\s*allowed",
            r"anti-pattern",
            r"constitution",
        ),
        0.95,
    ),
)

UNKNOWN_CONFIDENCE: Final[float] = 0.1
CONFIDENCE_STEP: Final[float] = 0.05
MAX_CONFIDENCE_BOOST: Final[float] = 0.15
DEFAULT_ESCALATION_THRESHOLD: Final[float] = 0.8
DEFAULT_ESCALATION_TIMEOUT_SECONDS: Final[float] = 30.0

PHASE_ARTIFACTS: Final[Mapping[str, tuple[str, ...]]] = {
    "STACK_SELECTION": ("stack.json", "architecture-decisions.md"),
    "SPEC_PM": ("PRD.md", "user-stories.md", "roadmap.md"),
    "SPEC_ARCHITECT": ("api-spec.json", "data-model.md", "architecture.md"),
    "SPEC_DESIGN": ("component-mapping.md", "journey-maps.md", "design-tokens.md"),
    "FRONTEND_BUILD": ("src/", "components/", "app/"),
}

CANDIDATE_PHASES: Final[Mapping[ErrorType, tuple[str, ...]]] = {
    ErrorType.PARSING: ("SPEC_PM", "SPEC_ARCHITECT", "SPEC_DESIGN", "FRONTEND_BUILD"),
    ErrorType.MISSING_FILE: ("SPEC_PM", "SPEC_ARCHITECT", "SPEC_DESIGN", "STACK_SELECTION"),
    ErrorType.CONTENT_QUALITY: ("SPEC_PM", "SPEC_ARCHITECT", "SPEC_DESIGN"),
    ErrorType.CONSTITUTIONAL: ("STACK_SELECTION", "SPEC_PM", "SPEC_ARCHITECT"),
    ErrorType.UNKNOWN: (DEFAULT_PHASE,),
}

REMEDIATION_HINTS: Final[Mapping[ErrorType, str]] = {
    ErrorType.PARSING: (
        "Fix syntax errors in the artifact. Validate JSON/YAML/Markdown format and ensure "
        "all brackets, braces, and quotes are properly closed."
    ),
    ErrorType.MISSING_FILE: (
        "Regenerate the missing artifact in the originating phase. Check that the agent "
        "properly outputs all required files."
    ),
    ErrorType.CONTENT_QUALITY: (
        "Regenerate the artifact with more detail and completeness. Add missing sections, "
        "expand explanations, and ensure all requirements are covered."
    ),
    ErrorType.CONSTITUTIONAL: (
        "Review the artifact against constitutional articles. Ensure compliance with "
        "test-first approach, time estimates, and other principles."
    ),
    ErrorType.UNKNOWN: (
        "Manual investigation required. Review the error message and phase context to "
        "determine appropriate remediation."
    ),
}

PHASE_GUIDANCE: Final[Mapping[str, str]] = {
    "STACK_SELECTION": " Review stack.json for proper technology choices.",
    "SPEC_PM": " Regenerate PRD.md with complete requirements.",
    "SPEC_ARCHITECT": " Synchronize api-spec.json with data-model.md.",
    "SPEC_DESIGN": " Ensure component-mapping.md references valid tokens.",
    "FRONTEND_BUILD": " Check generated TypeScript code for errors.",
}

_TYPE_DESCRIPTIONS: Final[Mapping[ErrorType, str]] = {
    ErrorType.PARSING: "The artifact contains syntax errors that prevent proper parsing.",
    ErrorType.MISSING_FILE: "Required artifacts are missing from the generated output.",
    ErrorType.CONTENT_QUALITY: "The generated content does not meet quality standards.",
    ErrorType.CONSTITUTIONAL: "The artifact violates one or more constitutional principles.",
    ErrorType.UNKNOWN: "The error could not be classified into a known error type.",
}

ESCALATION_PROMPT: Final[str] = """\
You are a root cause analyzer for a spec-generation pipeline.
Given the validation errors and phase history, identify the root cause and suggest remediation.

## Validation Errors:
{% for error in errors %}- {{ error }}
{% endfor %}
## Phase History:
{{ history | join(", ") }}

## Project Context:
- Project ID: {{ project_id }}
- Recent Artifacts: {{ artifacts | join(", ") if artifacts else "None" }}

Please analyze and respond with JSON:
{
  "originatingPhase": "PHASE_NAME",
  "errorType": "parsing|content_quality|missing_file|constitutional|unknown",
  "confidence": 0.0-1.0,
  "explanation": "brief explanation of root cause",
  "remediationHint": "specific suggestion for fixing the issue"
}"""

# Errors and artifact names are data; StrictUndefined turns a template typo into an error.
_PROMPTS: Final[Environment] = Environment(
    undefined=StrictUndefined,
    autoescape=False,
    newline_sequence="\n",
    keep_trailing_newline=True,
)
_ESCALATION_TEMPLATE: Final[Template] = _PROMPTS.from_string(ESCALATION_PROMPT)

_JSON_OBJECT: Final[re.Pattern[str]] = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True, slots=True)
class PhaseHistoryEntry:
    phase: str
    status: PhaseStatus
    artifacts: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", PhaseStatus(self.status))
        object.__setattr__(self, "artifacts", tuple(self.artifacts))


@dataclass(frozen=True, slots=True)
class RootCauseAnalysis:
    originating_phase: str
    error_type: ErrorType
    confidence: float
    explanation: str
    remediation_hint: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "error_type", ErrorType(self.error_type))
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("RootCauseAnalysis.confidence must be within [0, 1]")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "originating_phase": self.originating_phase,
            "error_type": self.error_type.value,
            "confidence": self.confidence,
            "explanation": self.explanation,
            "remediation_hint": self.remediation_hint,
        }


@dataclass(frozen=True, slots=True)
class AnalysisRequest:
    """One independent item for :meth:`RootCauseAnalyzer.batch_analyze`."""

    errors: tuple[str, ...]
    phase_history: tuple[PhaseHistoryEntry, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "errors", tuple(self.errors))
        object.__setattr__(self, "phase_history", tuple(self.phase_history))


def classify_error(error: str) -> ErrorType:
    for pattern_set in ERROR_PATTERNS:
        if any(pattern.search(error) for pattern in pattern_set.patterns):
            return pattern_set.error_type
    return ErrorType.UNKNOWN


def classification_confidence(error_type: ErrorType, error: str) -> float:
    """Category base confidence plus a step for every additional matching pattern."""

    pattern_set = next((p for p in ERROR_PATTERNS if p.error_type is error_type), None)
    if pattern_set is None:
        return UNKNOWN_CONFIDENCE
    matches = sum(1 for pattern in pattern_set.patterns if pattern.search(error))
    boost = min(max(matches - 1, 0) * CONFIDENCE_STEP, MAX_CONFIDENCE_BOOST)
    return min(round(pattern_set.confidence + boost, 4), 1.0)


def identify_originating_phase(
    error_type: ErrorType,
    phase_history: Sequence[PhaseHistoryEntry],
    errors: Sequence[str],
) -> str:
    if not phase_history:
        return DEFAULT_PHASE

    candidates = CANDIDATE_PHASES.get(error_type, (DEFAULT_PHASE,))
    completed = [
        entry.phase for entry in reversed(phase_history) if entry.status is PhaseStatus.COMPLETED
    ]
    for phase in completed:
        if phase in candidates:
            return phase

    for error in errors:
        lowered = error.lower()
        for phase, artifacts in PHASE_ARTIFACTS.items():
            if any(artifact.lower() in lowered for artifact in artifacts):
                return phase

    return completed[0] if completed else DEFAULT_PHASE


def remediation_hint(error_type: ErrorType, originating_phase: str) -> str:
    base = REMEDIATION_HINTS.get(error_type, REMEDIATION_HINTS[ErrorType.UNKNOWN])
    return base + PHASE_GUIDANCE.get(originating_phase, "")


def explain(error_type: ErrorType, originating_phase: str, error_count: int) -> str:
    explanation = (
        f"{_TYPE_DESCRIPTIONS[error_type]} Issue originated from {originating_phase} phase."
    )
    if error_count > 1:
        explanation += f" {error_count} related errors were detected."
    return explanation


def build_escalation_prompt(
    errors: Sequence[str],
    phase_history: Sequence[PhaseHistoryEntry],
    *,
    project_id: str = "current-project",
) -> str:
    return _ESCALATION_TEMPLATE.render(
        errors=list(errors),
        history=[f"{entry.phase}: {entry.status.value}" for entry in phase_history],
        project_id=project_id,
        artifacts=[name for entry in phase_history for name in entry.artifacts],
    )


def parse_escalation_response(content: str) -> RootCauseAnalysis | None:
    """Parse the first JSON object in ``content``; ``None`` when it is unusable."""

    match = _JSON_OBJECT.search(content)
    if match is None:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, Mapping):
        return None

    phase = parsed.get("originatingPhase")
    raw_type = parsed.get("errorType")
    confidence = parsed.get("confidence")
    if not phase or not raw_type or confidence is None:
        return None
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        return None

    try:
        error_type = ErrorType(str(raw_type))
    except ValueError:
        error_type = ErrorType.UNKNOWN

    return RootCauseAnalysis(
        originating_phase=str(phase),
        error_type=error_type,
        confidence=max(0.0, min(1.0, float(confidence))),
        explanation=str(parsed.get("explanation") or "Generative analysis result"),
        remediation_hint=str(
            parsed.get("remediationHint") or REMEDIATION_HINTS[ErrorType.UNKNOWN]
        ),
    )


class RootCauseAnalyzer:
    """Pattern classifier with optional escalation to a generative client."""

    def __init__(
        self,
        client: GenerativeClient | None = None,
        *,
        use_fallback: bool = True,
        escalation_threshold: float = DEFAULT_ESCALATION_THRESHOLD,
        timeout_seconds: float | None = DEFAULT_ESCALATION_TIMEOUT_SECONDS,
        logger: Any | None = None,
    ) -> None:
        if not 0.0 <= escalation_threshold <= 1.0:
            raise ValueError("escalation_threshold must be within [0, 1]")
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._client = client
        self._use_fallback = use_fallback
        self._threshold = escalation_threshold
        self._timeout_seconds = timeout_seconds
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        client: GenerativeClient | None = None,
        *,
        logger: Any | None = None,
    ) -> RootCauseAnalyzer:
        section = config.get("root_cause", {})
        return cls(
            client,
            use_fallback=bool(section.get("use_fallback", True)),
            escalation_threshold=float(
                section.get("escalation_threshold", DEFAULT_ESCALATION_THRESHOLD)
            ),
            timeout_seconds=section.get("timeout_seconds", DEFAULT_ESCALATION_TIMEOUT_SECONDS),
            logger=logger,
        )

    def is_fallback_available(self) -> bool:
        return self._client is not None

    async def analyze(
        self,
        errors: Sequence[str],
        phase_history: Sequence[PhaseHistoryEntry] = (),
        *,
        project_id: str = "current-project",
    ) -> RootCauseAnalysis:
        if not errors:
            return RootCauseAnalysis(
                originating_phase=DEFAULT_PHASE,
                error_type=ErrorType.UNKNOWN,
                confidence=UNKNOWN_CONFIDENCE,
                explanation="Cannot analyze: No validation errors provided",
                remediation_hint=REMEDIATION_HINTS[ErrorType.UNKNOWN],
            )

        combined = "\n".join(errors)
        error_type = classify_error(combined)
        origin = identify_originating_phase(error_type, phase_history, errors)
        analysis = RootCauseAnalysis(
            originating_phase=origin,
            error_type=error_type,
            confidence=classification_confidence(error_type, combined),
            explanation=explain(error_type, origin, len(errors)),
            remediation_hint=remediation_hint(error_type, origin),
        )

        escalate = self._client is not None and self._use_fallback
        if escalate and analysis.confidence < self._threshold:
            analysis = await self._escalate(errors, phase_history, analysis, project_id)

        self._logger.info(
            "root_cause_analyzed",
            error_type=analysis.error_type.value,
            originating_phase=analysis.originating_phase,
            confidence=analysis.confidence,
            errors=len(errors),
        )
        return analysis

    async def batch_analyze(self, requests: Sequence[AnalysisRequest]) -> list[RootCauseAnalysis]:
        return list(
            await asyncio.gather(
                *(self.analyze(request.errors, request.phase_history) for request in requests)
            )
        )

    async def _escalate(
        self,
        errors: Sequence[str],
        phase_history: Sequence[PhaseHistoryEntry],
        fallback: RootCauseAnalysis,
        project_id: str,
    ) -> RootCauseAnalysis:
        assert self._client is not None
        prompt = build_escalation_prompt(errors, phase_history, project_id=project_id)
        try:
            response = await asyncio.wait_for(
                self._client.generate(prompt), timeout=self._timeout_seconds
            )
            parsed = parse_escalation_response(response_text(response))
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(
                "root_cause_escalation_failed",
                error=f"{type(exc).__name__}: {exc}",
            )
            return fallback
        if parsed is None:
            self._logger.warning("root_cause_escalation_unparseable")
            return fallback
        return parsed


__all__ = [
    "CANDIDATE_PHASES",
    "ERROR_PATTERNS",
    "PHASE_ARTIFACTS",
    "REMEDIATION_HINTS",
    "AnalysisRequest",
    "ErrorType",
    "PhaseHistoryEntry",
    "PhaseStatus",
    "RootCauseAnalysis",
    "RootCauseAnalyzer",
    "build_escalation_prompt",
    "classification_confidence",
    "classify_error",
    "explain",
    "identify_originating_phase",
    "parse_escalation_response",
    "remediation_hint",
]
