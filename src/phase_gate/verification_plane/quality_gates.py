"""
phase-gate: blocking quality gates over raw artifact mappings.

File: src/phase_gate/verification_plane/quality_gates.py

Purpose
- Phase checklists (analysis, PM requirements, design, solution), the anti-slop blocker,
  traceability gates and the constitutional article gates.

Functional requirements
- Every gate takes ``{filename: content}`` and returns a ``QualityReport``; the caller
  decides which artifacts to pass.
- A gate "can proceed" iff it produced no ``error`` issue.
- Gates are pure: no I/O, no logging, deterministic output for identical input.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Mapping
from typing import Final

from phase_gate.config.schema import DEFAULT_CONFIG
from phase_gate.planning.task_format import parse_task_dependencies
from phase_gate.planning.task_graph import detect_cycles
from phase_gate.verification_plane.anti_slop import detect_forbidden_patterns
from phase_gate.verification_plane.checkers.common import (
    REQUIREMENT_ID,
    requirement_ids,
    task_blocks,
    task_id_from_header,
    unique,
)
from phase_gate.verification_plane.checkers.process import format_cycle
from phase_gate.verification_plane.results import (
    CheckValue,
    QualityIssue,
    QualityReport,
    ValidationResult,
)

Artifacts = Mapping[str, str]

MIN_PERSONAS: Final[int] = 3
MAX_PERSONAS: Final[int] = 5
MIN_PRINCIPLES: Final[int] = 5
MIN_REQUIREMENTS: Final[int] = 15
MIN_JOURNEYS: Final[int] = 3
MIN_TASKS: Final[int] = 15
MIN_DESIGN_CHARS: Final[int] = 500
MIN_TASKS_CHARS: Final[int] = 100

GENERIC_PERSONAS: Final[tuple[str, ...]] = (
    "developer",
    "user",
    "admin",
    "customer",
    "visitor",
    "guest",
    "member",
)
COMMON_PERSONAS: Final[tuple[str, ...]] = ("Admin", "User", "Developer", "Manager", "Customer")

_PERSONA_HEADER: Final[re.Pattern[str]] = re.compile(
    r"^##?\s+(?:Persona\s*:?\s*)?([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)", re.MULTILINE
)
_PERSONA_YAML: Final[re.Pattern[str]] = re.compile(
    r"^-?\s*name:\s*([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)", re.MULTILINE | re.IGNORECASE
)
_PERSONA_NAME_HEADER: Final[re.Pattern[str]] = re.compile(
    r"^##?[ \t]+(?:Persona[ \t]*:?[ \t]*)?([A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)*)", re.MULTILINE
)
_PERSONA_NAME_YAML: Final[re.Pattern[str]] = re.compile(
    r"^-?[ \t]*name:[ \t]*([A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)*)", re.MULTILINE | re.IGNORECASE
)
_PRINCIPLE_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\d+\.\s+\*\*[^*]+\*\*"),
    re.compile(r"##?\s+[Pp]rinciple"),
    re.compile(r"^\s*[-*]\s+\*\*[^*]+\*\*", re.MULTILINE),
)
_JOURNEY_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"^##?\s*(?:User\s+)?[Jj]ourney\s*\d+", re.MULTILINE),
    re.compile(r"^##?\s*(?:User\s+)?[Jj]ourney\s*\d+\s*:", re.MULTILINE),
    re.compile(r"^###\s+Step\s+\d+", re.MULTILINE),
    re.compile(r"^##+\s+.*[Jj]ourney.*$", re.MULTILINE),
)
_DESIGN_PLACEHOLDERS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"//\s*TODO", re.IGNORECASE),
    re.compile(r"//\s*FIXME", re.IGNORECASE),
    re.compile(r"TODO[:\s]", re.IGNORECASE),
    re.compile(r"FIXME[:\s]", re.IGNORECASE),
    re.compile(r"lorem\s+ipsum", re.IGNORECASE),
    re.compile(r"placeholder", re.IGNORECASE),
)
_TASK_COUNT_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"#{1,3}\s+TASK-[A-Z0-9]+(?:-[0-9]+)?"),
    re.compile(r"#{1,3}\s+Task\s+\d+", re.IGNORECASE),
    re.compile(r"##?\s*\d+\.\s+Task"),
)
_TEST_SPEC_HEADER: Final[re.Pattern[str]] = re.compile(
    r"#{1,3}\s+(?:Test\s+)?[Ss]pecifications?\b", re.IGNORECASE
)
_IMPLEMENTATION_HEADER: Final[re.Pattern[str]] = re.compile(
    r"#{1,3}\s+[Ii]mplementation\s+[Nn]otes\b", re.IGNORECASE
)
_TIME_ESTIMATE: Final[re.Pattern[str]] = re.compile(
    r"(?:Estimate|Time|Complexity|Story\s*Points?)[:\s]*\d+", re.IGNORECASE
)
_FILE_PATH_HINT: Final[re.Pattern[str]] = re.compile(r"src/|components/|lib/|app/|\.tsx?|\.json")
_TASK_REFERENCE: Final[re.Pattern[str]] = re.compile(r"TASK-[A-Z0-9]+(?:-[0-9]+)?")
_GHERKIN_STEPS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"GIVEN\s+", re.IGNORECASE),
    re.compile(r"WHEN\s+", re.IGNORECASE),
    re.compile(r"THEN\s+", re.IGNORECASE),
)


def _report(issues: list[QualityIssue]) -> QualityReport:
    return QualityReport(issues=tuple(issues))


def _has_gherkin(content: str) -> bool:
    return all(pattern.search(content) for pattern in _GHERKIN_STEPS)


def _mentions_any(names: list[str] | tuple[str, ...], content: str) -> bool:
    return any(re.search(rf"\b{re.escape(name)}\b", content, re.IGNORECASE) for name in names)


def _missing_files(artifacts: Artifacts, filenames: tuple[str, ...]) -> list[QualityIssue]:
    return [
        QualityIssue.error("missing_file", f"Required file missing or empty: {filename}")
        for filename in filenames
        if not artifacts.get(filename)
    ]


def extract_persona_names(content: str) -> list[str]:
    """Persona names declared as headers or ``name:`` entries, in first-seen order."""

    names = [match.group(1).strip() for match in _PERSONA_NAME_HEADER.finditer(content)]
    names += [match.group(1).strip() for match in _PERSONA_NAME_YAML.finditer(content)]
    return unique(name for name in names if len(name) > 2)


def analysis_gate(artifacts: Artifacts) -> QualityReport:
    issues = _missing_files(
        artifacts,
        ("constitution.md", "project-brief.md", "project-classification.json", "personas.md"),
    )

    personas = artifacts.get("personas.md", "")
    if personas:
        found = {match.group(1) for match in _PERSONA_HEADER.finditer(personas)}
        found |= {match.group(1) for match in _PERSONA_YAML.finditer(personas)}
        if len(found) < MIN_PERSONAS:
            issues.append(
                QualityIssue.error(
                    "persona_count", f"Only {len(found)} personas found. Minimum: {MIN_PERSONAS}"
                )
            )
        elif len(found) > MAX_PERSONAS:
            issues.append(
                QualityIssue.warning(
                    "persona_count",
                    f"{len(found)} personas found. Consider consolidating "
                    f"(max {MAX_PERSONAS} recommended)",
                )
            )

    for generic in GENERIC_PERSONAS:
        if re.search(rf"^##?\s+{generic}$", personas, re.IGNORECASE | re.MULTILINE):
            issues.append(
                QualityIssue.warning(
                    "persona_specificity",
                    f'Generic persona found: "{generic}". Consider using a more specific '
                    'name like "Senior Developer" or "Power User"',
                )
            )

    constitution = artifacts.get("constitution.md", "")
    if constitution:
        principles = max(len(pattern.findall(constitution)) for pattern in _PRINCIPLE_PATTERNS)
        if principles < MIN_PRINCIPLES:
            issues.append(
                QualityIssue.error(
                    "principles_count",
                    f"Only {principles} guiding principles found. Minimum: {MIN_PRINCIPLES}",
                )
            )

    return _report(issues)


def pm_spec_gate(artifacts: Artifacts) -> QualityReport:
    issues = _missing_files(artifacts, ("PRD.md", "user-stories.md", "acceptance-criteria.md"))
    prd = artifacts.get("PRD.md", "")
    stories = artifacts.get("user-stories.md", "")
    criteria = artifacts.get("acceptance-criteria.md", "")

    if prd:
        requirements = requirement_ids(prd)
        if len(requirements) < MIN_REQUIREMENTS:
            issues.append(
                QualityIssue.error(
                    "requirement_count",
                    f"Only {len(requirements)} requirements found (REQ-XXX format). "
                    f"Minimum: {MIN_REQUIREMENTS}",
                )
            )

        personas = unique(
            [*extract_persona_names(artifacts.get("personas.md", "")), *COMMON_PERSONAS]
        )
        unattributed = [
            requirement
            for requirement in requirements
            if not _mentions_any(personas, prd[prd.find(requirement) :][:400])
        ]
        if unattributed:
            issues.append(
                QualityIssue.warning(
                    "requirement_persona_reference",
                    f"{len(unattributed)} requirements may not reference a persona: "
                    f"{', '.join(unattributed[:3])}",
                )
            )

    if criteria and not _has_gherkin(criteria):
        issues.append(
            QualityIssue.warning(
                "gherkin_format",
                "Acceptance criteria may not follow Gherkin format (GIVEN/WHEN/THEN)",
            )
        )

    if stories:
        blocks = [
            block
            for block in re.split(r"^##?\s+|^\d+\.\s+", stories, flags=re.MULTILINE)
            if len(block.strip()) > 50
        ]
        well_formed = [
            block
            for block in blocks[:10]
            if re.search(r"As\s+a\s+\w+", block, re.I)
            and re.search(r"I\s+want\s+to?", block, re.I)
            and re.search(r"so\s+that", block, re.I)
        ]
        if blocks and not well_formed:
            issues.append(
                QualityIssue.warning(
                    "user_story_format",
                    "User stories may not follow standard format "
                    "(As a... I want... So that...)",
                )
            )

    return _report(issues)


def design_gate(artifacts: Artifacts) -> QualityReport:
    issues: list[QualityIssue] = []
    mapping = artifacts.get("component-mapping.md", "")
    journeys = artifacts.get("journey-maps.md", "")

    for filename, content in (("component-mapping.md", mapping), ("journey-maps.md", journeys)):
        if len(content) < MIN_DESIGN_CHARS:
            issues.append(
                QualityIssue.error(
                    "missing_file",
                    f"{filename} missing or incomplete (< {MIN_DESIGN_CHARS} chars)",
                )
            )

    if journeys:
        journey_count = max(len(pattern.findall(journeys)) for pattern in _JOURNEY_PATTERNS)
        if journey_count < MIN_JOURNEYS:
            issues.append(
                QualityIssue.error(
                    "journey_count",
                    f"Only {journey_count} user journeys found. Minimum: {MIN_JOURNEYS}",
                )
            )
        if not re.search(r"error\s+state|error\s+handling|failure\s+state", journeys, re.I):
            issues.append(
                QualityIssue.warning(
                    "error_states", "journey-maps.md missing error states documentation"
                )
            )
        if not re.search(r"empty\s+state|no\s+data\s+state|blank\s+state", journeys, re.I):
            issues.append(
                QualityIssue.warning(
                    "empty_states", "journey-maps.md missing empty states documentation"
                )
            )

    if mapping and journeys:
        if not re.search(r"COMP-\d+|COMPONENT-\d+|\[\s*STEP\s*\d+\s*\]", mapping, re.I):
            issues.append(
                QualityIssue.warning(
                    "component_references",
                    "component-mapping.md should reference journey steps "
                    "(e.g., COMP-001, STEP-1)",
                )
            )

    for filename, content in (("component-mapping.md", mapping), ("journey-maps.md", journeys)):
        if content and any(pattern.search(content) for pattern in _DESIGN_PLACEHOLDERS):
            issues.append(
                QualityIssue.error(
                    "placeholder",
                    f"{filename} contains placeholder code (TODO, lorem ipsum, etc.)",
                )
            )

    return _report(issues)


def anti_slop_gate(artifacts: Artifacts) -> QualityReport:
    """Block on forbidden generated-design patterns in any artifact."""

    return _report(
        [
            QualityIssue.error("anti_slop", f"{filename}: {error}")
            for filename, content in artifacts.items()
            if content
            for error in detect_forbidden_patterns(content)
        ]
    )


def solution_gate(artifacts: Artifacts) -> QualityReport:
    tasks = artifacts.get("tasks.md", "")
    if len(tasks) < MIN_TASKS_CHARS:
        return _report(
            [
                QualityIssue.error(
                    "missing_file", f"tasks.md missing or incomplete (< {MIN_TASKS_CHARS} chars)"
                )
            ]
        )

    issues: list[QualityIssue] = []
    task_count = max(len(pattern.findall(tasks)) for pattern in _TASK_COUNT_PATTERNS)
    if task_count < MIN_TASKS:
        issues.append(
            QualityIssue.error("task_count", f"Only {task_count} tasks found. Minimum: {MIN_TASKS}")
        )

    wrong_order = 0
    for _, body in task_blocks(tasks):
        test_match = _TEST_SPEC_HEADER.search(body)
        notes_match = _IMPLEMENTATION_HEADER.search(body)
        if test_match and notes_match and test_match.start() > notes_match.start():
            wrong_order += 1
    if wrong_order:
        issues.append(
            QualityIssue.error(
                "test_order",
                f"{wrong_order} task(s) have implementation notes before test specifications "
                "(violates Article 2)",
            )
        )

    estimated = len(_TIME_ESTIMATE.findall(tasks))
    if estimated < (task_count or MIN_TASKS) * 0.5:
        issues.append(
            QualityIssue.warning(
                "time_estimates",
                f"Only {estimated} tasks have time estimates. All tasks should have estimates.",
            )
        )

    if not _FILE_PATH_HINT.search(tasks):
        issues.append(
            QualityIssue.warning(
                "file_paths", "tasks.md may not reference specific file paths for implementation"
            )
        )

    for cycle in detect_cycles(parse_task_dependencies(tasks)):
        issues.append(
            QualityIssue.error(
                "circular_dependencies", f"Circular dependency detected: {format_cycle(cycle)}"
            )
        )

    architecture = artifacts.get("architecture.md", "")
    stack = artifacts.get("stack-decision.md") or artifacts.get("stack.json") or ""
    if architecture and stack:
        stack_name = next(
            (name for name in ("Next.js", "React", "Express") if name in stack), None
        )
        if stack_name and stack_name.lower() not in architecture.lower():
            issues.append(
                QualityIssue.warning(
                    "stack_consistency",
                    "architecture.md may not reference the approved stack from stack-decision.md",
                )
            )

    return _report(issues)


def persona_traceability_gate(artifacts: Artifacts) -> QualityReport:
    prd = artifacts.get("PRD.md", "")
    if not prd:
        return _report(
            [
                QualityIssue.error(
                    "missing_file", "PRD.md missing - cannot validate persona traceability"
                )
            ]
        )
    if not REQUIREMENT_ID.search(prd):
        return _report(
            [QualityIssue.warning("no_requirements", "No REQ-XXX requirements found in PRD.md")]
        )

    personas = unique(
        [
            *extract_persona_names(artifacts.get("personas.md", "")),
            *COMMON_PERSONAS,
            "Guest",
            "Member",
        ]
    )
    blocks = re.finditer(
        r"##?\s*(REQ-[A-Z]+-\d{3})[^\n]*\n([\s\S]*?)(?=##?\s*REQ-|##?\s+#|\Z)", prd
    )
    missing = [match.group(1) for match in blocks if not _mentions_any(personas, match.group(2))]
    if not missing:
        return _report([])
    suffix = "..." if len(missing) > 5 else ""
    return _report(
        [
            QualityIssue.warning(
                "persona_traceability",
                f"{len(missing)} requirement(s) do not reference any persona: "
                f"{', '.join(missing[:5])}{suffix}",
            )
        ]
    )


def gherkin_gate(artifacts: Artifacts) -> QualityReport:
    criteria = artifacts.get("acceptance-criteria.md", "")
    if not criteria:
        return _report(
            [
                QualityIssue.error(
                    "missing_file",
                    "acceptance-criteria.md missing - cannot validate Gherkin structure",
                )
            ]
        )

    issues: list[QualityIssue] = []
    if not _has_gherkin(criteria):
        if re.search(r"as\s+a\s+\w+\s*,?\s*i\s+want\s+to?", criteria, re.IGNORECASE):
            message = (
                "Acceptance criteria use generic user story format (As a... I want...) "
                "instead of Gherkin (Given/When/Then)"
            )
        else:
            message = (
                "Acceptance criteria do not appear to follow Gherkin format "
                "(missing GIVEN/WHEN/THEN keywords)"
            )
        issues.append(QualityIssue.warning("gherkin_format", message))

    scenarios = len(
        re.findall(
            r"^#{0,3}\s*(?:Scenario|Given|When|Then|And|But)",
            criteria,
            re.IGNORECASE | re.MULTILINE,
        )
    )
    if scenarios < 3:
        issues.append(
            QualityIssue.warning(
                "scenario_count",
                f"Only {scenarios} scenario(s) found in acceptance criteria. "
                "Minimum 3 recommended.",
            )
        )
    return _report(issues)


def requirement_task_mapping_gate(artifacts: Artifacts) -> QualityReport:
    tasks = artifacts.get("tasks.md", "")
    if not tasks:
        return _report(
            [
                QualityIssue.error(
                    "missing_file",
                    "tasks.md missing - cannot validate requirement-to-task mapping",
                )
            ]
        )
    if not _TASK_REFERENCE.search(tasks):
        return _report(
            [QualityIssue.warning("no_tasks", "No TASK-XXX references found in tasks.md")]
        )

    issues: list[QualityIssue] = []
    orphans = [
        task_id_from_header(header)
        for header, body in task_blocks(tasks)
        if not REQUIREMENT_ID.search(body)
    ]
    if orphans:
        suffix = "..." if len(orphans) > 5 else ""
        issues.append(
            QualityIssue.warning(
                "orphan_tasks",
                f"{len(orphans)} task(s) do not reference any requirement (REQ-XXX): "
                f"{', '.join(orphans[:5])}{suffix}",
            )
        )

    defined = set(requirement_ids(artifacts.get("PRD.md", "")))
    invalid = [req for req in requirement_ids(tasks) if req not in defined]
    if invalid:
        issues.append(
            QualityIssue.error(
                "invalid_requirement_refs",
                f"{len(invalid)} task(s) reference requirements not in PRD.md: "
                f"{', '.join(invalid)}",
            )
        )
    return _report(issues)


def validate_artifact_lengths(
    artifacts: Artifacts, min_lengths: Mapping[str, int] | None = None
) -> ValidationResult:
    """Raw character-count floor per known artifact; unknown names are ignored."""

    table = (
        min_lengths
        if min_lengths is not None
        else DEFAULT_CONFIG["validation"]["content_min_lengths"]
    )
    checks: dict[str, CheckValue] = {}
    errors: list[str] = []
    for name, content in artifacts.items():
        minimum = table.get(name)
        if minimum is None:
            continue
        checks[name] = len(content) >= minimum
        if len(content) < minimum:
            errors.append(
                f"{name} is too short ({len(content)} chars). Minimum: {minimum} chars."
            )
    return ValidationResult.from_findings(checks=checks, errors=errors)


def semantic_goal_locking_gate(artifacts: Artifacts) -> QualityReport:
    """Article 1: later documents stay anchored to the constitution and classification."""

    constitution = artifacts.get("constitution.md", "")
    if len(constitution) < 100:
        return _report(
            [
                QualityIssue.error(
                    "article_1",
                    "constitution.md missing or too short - "
                    "Semantic Goal Locking cannot be enforced",
                )
            ]
        )

    issues: list[QualityIssue] = []
    raw_classification = artifacts.get("project-classification.json", "")
    classification: Mapping[str, object] | None = None
    if not raw_classification:
        issues.append(
            QualityIssue.error(
                "article_1",
                "project-classification.json missing - cannot validate project classification",
            )
        )
    else:
        try:
            parsed = json.loads(raw_classification)
        except json.JSONDecodeError:
            issues.append(
                QualityIssue.error("article_1", "project-classification.json is not valid JSON")
            )
        else:
            classification = parsed if isinstance(parsed, Mapping) else {}
            if not classification.get("project_type") and not classification.get("scale_tier"):
                issues.append(
                    QualityIssue.warning(
                        "article_1",
                        "project-classification.json missing key fields "
                        "(project_type, scale_tier)",
                    )
                )

    prd = artifacts.get("PRD.md", "")
    if prd and not re.search(r"guiding\s+principles?|constitution|article\s+\d", prd, re.I):
        issues.append(
            QualityIssue.warning(
                "article_1", "PRD.md does not reference constitution.md or guiding principles"
            )
        )

    architecture = artifacts.get("architecture.md", "").lower()
    if architecture and classification:
        for key, label in (("project_type", "project type"), ("scale_tier", "scale tier")):
            value = str(classification.get(key) or "")
            if value and value.lower() not in architecture:
                issues.append(
                    QualityIssue.warning(
                        "article_1", f"architecture.md does not reference {label}: {value}"
                    )
                )

    return _report(issues)


_ART2_TEST_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"(?:^|\n)#{1,3}\s*Test[:\s]", re.I | re.M),
    re.compile(r"(?:^|\n)Test[:\s]", re.I | re.M),
    re.compile(r"(?:^|\n)#{1,3}\s*Test\s+Specifications", re.I | re.M),
    re.compile(r"(?:^|\n)#{1,3}\s*Test\s+Specification", re.I | re.M),
)
_ART2_IMPLEMENTATION_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"(?:^|\n)#{1,3}\s*Implement[:\s]", re.I | re.M),
    re.compile(r"(?:^|\n)Implement[:\s]", re.I | re.M),
    re.compile(r"(?:^|\n)#{1,3}\s*Implementation\s+Notes", re.I | re.M),
    re.compile(r"(?:^|\n)#{1,3}\s*Implementation\s+Note", re.I | re.M),
)


def _first_position(patterns: tuple[re.Pattern[str], ...], content: str) -> int | None:
    for pattern in patterns:
        match = pattern.search(content)
        if match is not None:
            return match.start()
    return None


def article_2_test_first_gate(artifacts: Artifacts) -> QualityReport:
    """Article 2: each task states its tests before its implementation."""

    tasks = artifacts.get("tasks.md", "")
    if len(tasks) < MIN_TASKS_CHARS:
        return _report(
            [
                QualityIssue.warning(
                    "article_2", "tasks.md missing or too short - skipping test-first validation"
                )
            ]
        )

    issues: list[QualityIssue] = []
    for header, body in task_blocks(tasks):
        test_at = _first_position(_ART2_TEST_PATTERNS, body)
        implementation_at = _first_position(_ART2_IMPLEMENTATION_PATTERNS, body)
        if test_at is not None and implementation_at is not None and implementation_at < test_at:
            issues.append(
                QualityIssue.error(
                    "article_2",
                    f"{task_id_from_header(header)}: Implementation appears BEFORE test "
                    "specification (Article 2 violation)",
                )
            )
    return _report(issues)


_TIME_BOX_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"Estimate[:\s]*\d+\s*(?:min|minute|hour|hr)s?", re.I),
    re.compile(r"Time[:\s]*\d+\s*(?:min|minute|hour|hr)s?", re.I),
    re.compile(r"\d+\s*(?:min|minute|hour|hr)s?\s*(?:estimate|time)", re.I),
    re.compile(r"Complexity[:\s]*(?:\d+|Small|Medium|Large)", re.I),
)
_VERIFICATION_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"npm\s+(?:run\s+)?test", re.I),
    re.compile(r"npm\s+(?:run\s+)?build", re.I),
    re.compile(r"curl\s+.*-f", re.I),
    re.compile(r"verify[:\s]*(?:npm|curl|docker)", re.I),
    re.compile(r"Run[:\s]*(?:npm|test|build)", re.I),
    re.compile(r"Check[:\s]*(?:status|output|result)", re.I),
    re.compile(r"Verification[:\s]*(?:command|step)", re.I),
)


def bite_sized_tasks_gate(artifacts: Artifacts) -> QualityReport:
    """Article 3: tasks carry a time box and a verification command."""

    tasks = artifacts.get("tasks.md", "")
    if len(tasks) < MIN_TASKS_CHARS:
        return _report(
            [
                QualityIssue.warning(
                    "article_3", "tasks.md missing or too short - skipping bite-sized validation"
                )
            ]
        )

    bodies = [body for _, body in task_blocks(tasks)]
    total = len(bodies)
    untimed = sum(1 for body in bodies if not any(p.search(body) for p in _TIME_BOX_PATTERNS))
    unverified = sum(
        1 for body in bodies if not any(p.search(body) for p in _VERIFICATION_PATTERNS)
    )

    def issue(count: int, message: str) -> QualityIssue:
        factory: Callable[[str, str], QualityIssue] = (
            QualityIssue.error if count == total else QualityIssue.warning
        )
        return factory("article_3", message)

    issues: list[QualityIssue] = []
    if untimed:
        issues.append(
            issue(untimed, f"{untimed}/{total} tasks lack time estimate (15-30min expected)")
        )
    if unverified:
        issues.append(issue(unverified, f"{unverified}/{total} tasks lack verification command"))
    return _report(issues)


_HANDOFF_PLACEHOLDERS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"TODO:", re.I),
    re.compile(r"FIXME:", re.I),
    re.compile(r"\[?[Aa]ssumptions?\s*placeholders?\]?", re.I),
    re.compile(r"\[?[Tt]o\s+be\s+determined?\]?", re.I),
    re.compile(r"lorem\s+ipsum", re.I),
    re.compile(r"placeholder", re.I),
)
_HANDOFF_SECTIONS: Final[tuple[tuple[str, re.Pattern[str]], ...]] = (
    ("Summary", re.compile(r"Summary", re.I)),
    ("Key Decisions", re.compile(r"Key\s+Decisions", re.I)),
    ("Next Steps", re.compile(r"Next\s+Steps", re.I)),
    ("Known Issues", re.compile(r"Known\s+Issues", re.I)),
)


def constitutional_review_gate(artifacts: Artifacts) -> QualityReport:
    """Article 5: the handoff is complete and the documents it depends on exist."""

    handoff = artifacts.get("HANDOFF.md", "")
    if len(handoff) < 200:
        return _report(
            [
                QualityIssue.error(
                    "article_5",
                    "HANDOFF.md missing or incomplete - Constitutional Review cannot proceed",
                )
            ]
        )

    issues = [
        QualityIssue.error("article_5", f"{name} missing or incomplete for handoff")
        for name, minimum in (("tasks.md", 100), ("architecture.md", 100), ("PRD.md", 500))
        if len(artifacts.get(name, "")) < minimum
    ]
    if any(pattern.search(handoff) for pattern in _HANDOFF_PLACEHOLDERS):
        issues.append(
            QualityIssue.error(
                "article_5",
                "HANDOFF.md contains placeholder content - must be complete for handoff",
            )
        )
    missing = [name for name, pattern in _HANDOFF_SECTIONS if not pattern.search(handoff)]
    if missing:
        issues.append(
            QualityIssue.warning("article_5", f"HANDOFF.md missing sections: {', '.join(missing)}")
        )
    return _report(issues)


def constitutional_compliance_gate(artifacts: Artifacts, phase: str) -> QualityReport:
    """Articles 1, 2, 3 and 5, each applied when its inputs are in play."""

    reports = [semantic_goal_locking_gate(artifacts)]
    if artifacts.get("tasks.md"):
        reports.append(article_2_test_first_gate(artifacts))
        reports.append(bite_sized_tasks_gate(artifacts))
    if artifacts.get("HANDOFF.md") or phase == "DONE":
        reports.append(constitutional_review_gate(artifacts))
    return QualityReport.merge(*reports)


__all__ = [
    "GENERIC_PERSONAS",
    "analysis_gate",
    "article_2_test_first_gate",
    "anti_slop_gate",
    "bite_sized_tasks_gate",
    "constitutional_compliance_gate",
    "constitutional_review_gate",
    "design_gate",
    "extract_persona_names",
    "gherkin_gate",
    "persona_traceability_gate",
    "pm_spec_gate",
    "requirement_task_mapping_gate",
    "semantic_goal_locking_gate",
    "solution_gate",
    "validate_artifact_lengths",
]
