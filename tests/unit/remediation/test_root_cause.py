"""
phase-gate: unit tests for root cause analysis

File: tests/unit/remediation/test_root_cause.py

Purpose
- Validate pattern classification, phase attribution and the bounded generative escalation.
"""

from __future__ import annotations

import asyncio
import json

import pytest
from structlog.testing import capture_logs

from phase_gate.remediation.generative import GenerativeClient, GenerativeResponse
from phase_gate.remediation.root_cause import (
    AnalysisRequest,
    ErrorType,
    PhaseHistoryEntry,
    PhaseStatus,
    RootCauseAnalyzer,
    build_escalation_prompt,
    classification_confidence,
    classify_error,
    identify_originating_phase,
    parse_escalation_response,
)


class _ScriptedClient:
    def __init__(
        self, reply: str = "", *, error: Exception | None = None, delay: float = 0.0
    ) -> None:
        self.prompts: list[str] = []
        self._reply = reply
        self._error = error
        self._delay = delay

    async def generate(self, prompt: str) -> GenerativeResponse:
        self.prompts.append(prompt)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return GenerativeResponse(content=self._reply)


def _completed(*phases: str) -> list[PhaseHistoryEntry]:
    return [PhaseHistoryEntry(phase=phase, status=PhaseStatus.COMPLETED) for phase in phases]


_ESCALATED = json.dumps(
    {
        "originatingPhase": "SPEC_PM",
        "errorType": "content_quality",
        "confidence": 0.7,
        "explanation": "PRD lacks depth",
        "remediationHint": "Expand PRD.md",
    }
)


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        ("JSON parse error at line 3", ErrorType.PARSING),
        ("Required file missing or empty: PRD.md", ErrorType.MISSING_FILE),
        ("PRD.md is too short (10 chars). Minimum: 3000 chars.", ErrorType.CONTENT_QUALITY),
        (
            "TASK-AUTH-001: Implementation appears BEFORE test specification "
            "(Article 2 violation)",
            ErrorType.CONSTITUTIONAL,
        ),
        ("the build went sideways", ErrorType.UNKNOWN),
    ],
)
def test_classify_error(error: str, expected: ErrorType) -> None:
    assert classify_error(error) is expected


def test_first_matching_category_wins() -> None:
    assert classify_error("malformed JSON in a forbidden section") is ErrorType.PARSING


def test_confidence_grows_with_additional_matches_and_is_capped() -> None:
    assert classification_confidence(ErrorType.PARSING, "syntax error") == pytest.approx(0.9)
    assert classification_confidence(
        ErrorType.PARSING, "syntax error: unexpected token"
    ) == pytest.approx(0.95)
    assert classification_confidence(
        ErrorType.CONTENT_QUALITY, "too short, placeholder, incomplete, vague, generic"
    ) == pytest.approx(0.95)
    assert classification_confidence(ErrorType.UNKNOWN, "anything") == pytest.approx(0.1)


def test_origin_is_most_recent_completed_candidate() -> None:
    history = _completed("STACK_SELECTION", "SPEC_PM", "SPEC_ARCHITECT")

    assert (
        identify_originating_phase(ErrorType.CONTENT_QUALITY, history, ["too short"])
        == "SPEC_ARCHITECT"
    )


def test_origin_falls_back_to_artifact_names_in_errors() -> None:
    history = _completed("VALIDATE")

    origin = identify_originating_phase(
        ErrorType.MISSING_FILE, history, ["Required file missing or empty: journey-maps.md"]
    )

    assert origin == "SPEC_DESIGN"


def test_origin_falls_back_to_latest_completed_phase() -> None:
    history = [
        PhaseHistoryEntry(phase="SOLUTIONING", status=PhaseStatus.COMPLETED),
        PhaseHistoryEntry(phase="FRONTEND_BUILD", status=PhaseStatus.FAILED),
    ]

    assert (
        identify_originating_phase(ErrorType.CONTENT_QUALITY, history, ["tasks too vague"])
        == "SOLUTIONING"
    )


def test_origin_without_history_is_default_phase() -> None:
    assert identify_originating_phase(ErrorType.PARSING, [], ["syntax error"]) == "VALIDATE"


@pytest.mark.asyncio
async def test_empty_errors_yield_unknown_analysis() -> None:
    analysis = await RootCauseAnalyzer().analyze([])

    assert analysis.error_type is ErrorType.UNKNOWN
    assert analysis.originating_phase == "VALIDATE"
    assert analysis.explanation == "Cannot analyze: No validation errors provided"


@pytest.mark.asyncio
async def test_pattern_analysis_without_client() -> None:
    analysis = await RootCauseAnalyzer().analyze(
        ["PRD.md is too short (10 chars)", "Section is incomplete"], _completed("SPEC_PM")
    )

    assert analysis.error_type is ErrorType.CONTENT_QUALITY
    assert analysis.originating_phase == "SPEC_PM"
    assert analysis.explanation.endswith("2 related errors were detected.")
    assert analysis.remediation_hint.endswith("Regenerate PRD.md with complete requirements.")


@pytest.mark.asyncio
async def test_confident_result_does_not_escalate() -> None:
    client = _ScriptedClient(_ESCALATED)
    analyzer = RootCauseAnalyzer(client)

    analysis = await analyzer.analyze(["syntax error: unexpected token"])

    assert analysis.error_type is ErrorType.PARSING
    assert client.prompts == []


@pytest.mark.asyncio
async def test_low_confidence_escalates_to_client() -> None:
    client = _ScriptedClient(f"Analysis follows.\n{_ESCALATED}\nDone.")
    analyzer = RootCauseAnalyzer(client)

    analysis = await analyzer.analyze(["the build went sideways"], project_id="proj-demo")

    assert isinstance(client, GenerativeClient)
    assert analysis.originating_phase == "SPEC_PM"
    assert analysis.error_type is ErrorType.CONTENT_QUALITY
    assert analysis.confidence == pytest.approx(0.7)
    assert len(client.prompts) == 1
    assert "- the build went sideways" in client.prompts[0]
    assert "Project ID: proj-demo" in client.prompts[0]


@pytest.mark.asyncio
async def test_fallback_disabled_skips_escalation() -> None:
    client = _ScriptedClient(_ESCALATED)
    analyzer = RootCauseAnalyzer(client, use_fallback=False)

    analysis = await analyzer.analyze(["the build went sideways"])

    assert analysis.error_type is ErrorType.UNKNOWN
    assert client.prompts == []


@pytest.mark.asyncio
async def test_unparseable_reply_keeps_pattern_result() -> None:
    analyzer = RootCauseAnalyzer(_ScriptedClient("not json at all"))

    analysis = await analyzer.analyze(["the build went sideways"])

    assert analysis.error_type is ErrorType.UNKNOWN
    assert analysis.confidence == pytest.approx(0.1)


@pytest.mark.asyncio
async def test_client_failure_is_logged_and_swallowed() -> None:
    with capture_logs() as logs:
        analyzer = RootCauseAnalyzer(_ScriptedClient(error=RuntimeError("quota exceeded")))
        analysis = await analyzer.analyze(["the build went sideways"])

    assert analysis.error_type is ErrorType.UNKNOWN
    failures = [entry for entry in logs if entry["event"] == "root_cause_escalation_failed"]
    assert failures
    assert failures[0]["error"] == "RuntimeError: quota exceeded"


@pytest.mark.asyncio
async def test_slow_client_is_bounded_by_timeout() -> None:
    client = _ScriptedClient(_ESCALATED, delay=5.0)
    analyzer = RootCauseAnalyzer(client, timeout_seconds=0.01)

    analysis = await analyzer.analyze(["the build went sideways"])

    assert analysis.error_type is ErrorType.UNKNOWN


@pytest.mark.asyncio
async def test_batch_analyze_preserves_request_order() -> None:
    analyzer = RootCauseAnalyzer()
    requests = [
        AnalysisRequest(errors=("syntax error",)),
        AnalysisRequest(errors=()),
        AnalysisRequest(errors=("Required file missing or empty: stack.json",)),
    ]

    results = await analyzer.batch_analyze(requests)

    assert [result.error_type for result in results] == [
        ErrorType.PARSING,
        ErrorType.UNKNOWN,
        ErrorType.MISSING_FILE,
    ]


def test_from_config_reads_root_cause_section() -> None:
    analyzer = RootCauseAnalyzer.from_config(
        {"root_cause": {"escalation_threshold": 0.5, "use_fallback": True}},
        _ScriptedClient(),
    )

    assert analyzer.is_fallback_available()


def test_invalid_threshold_is_rejected() -> None:
    with pytest.raises(ValueError, match="escalation_threshold"):
        RootCauseAnalyzer(escalation_threshold=1.5)


def test_parse_response_normalizes_type_and_clamps_confidence() -> None:
    parsed = parse_escalation_response(
        '{"originatingPhase": "SPEC_PM", "errorType": "cosmic", "confidence": 3}'
    )

    assert parsed is not None
    assert parsed.error_type is ErrorType.UNKNOWN
    assert parsed.confidence == 1.0


@pytest.mark.parametrize(
    "content",
    [
        "{}",
        '{"originatingPhase": "SPEC_PM", "errorType": "parsing", "confidence": true}',
        '{"originatingPhase": "SPEC_PM", "errorType": "parsing"',
    ],
)
def test_parse_response_rejects_unusable_objects(content: str) -> None:
    assert parse_escalation_response(content) is None


def test_escalation_prompt_lists_history_and_artifacts() -> None:
    history = [
        PhaseHistoryEntry(
            phase="SPEC_PM", status=PhaseStatus.COMPLETED, artifacts=("PRD.md", "roadmap.md")
        )
    ]

    prompt = build_escalation_prompt(["a", "b"], history)

    assert "- a\n- b" in prompt
    assert "SPEC_PM: completed" in prompt
    assert "Recent Artifacts: PRD.md, roadmap.md" in prompt
    assert "Project ID: current-project" in prompt


def test_escalation_prompt_treats_error_text_as_data() -> None:
    prompt = build_escalation_prompt(["bad {{ placeholder }} in PRD.md"], [])

    assert "- bad {{ placeholder }} in PRD.md\n" in prompt
    assert "Recent Artifacts: None" in prompt
    assert prompt.rstrip().endswith("}")
