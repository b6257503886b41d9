"""
phase-gate: cross-artifact traceability checks and quality scoring.

File: src/phase_gate/verification_plane/checkers/traceability.py

Purpose
- Requirement id format, requirement-to-task coverage, API endpoint coverage,
  identifier consistency across documents and a weighted document quality score.

Functional requirements
- Missing source documents downgrade to a warning and skip the check.
- Uncovered requirements are errors only when their PRD context marks them MVP/phase 1.
- The quality score uses half-up rounding; per-document scores go to ``details``.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any, Final

from phase_gate.verification_plane.checkers.common import (
    FRONTMATTER_FIELDS,
    REQUIREMENT_ID,
    extract_frontmatter,
    frontmatter_has,
    half_up,
    requirement_ids,
    unique,
)
from phase_gate.verification_plane.registry import (
    CheckContext,
    ValidatorImplementation,
    register_check,
)
from phase_gate.verification_plane.results import CheckValue, ValidationResult

PRD_PHASES: Final[tuple[str, ...]] = ("SPEC_PM", "SPEC")
API_SPEC_PHASES: Final[tuple[str, ...]] = ("SPEC_ARCHITECT", "SPEC")
TASKS_PHASE: Final[str] = "SOLUTIONING"

STANDARD_CATEGORIES: Final[frozenset[str]] = frozenset(
    {"AUTH", "USER", "CRUD", "PAYMENT", "NOTIF", "REPORT", "ADMIN", "INTEG", "SEARCH", "MEDIA"}
)
DEFAULT_MIN_REQUIREMENTS: Final[int] = 15
DEFAULT_MIN_QUALITY_SCORE: Final[int] = 70
GOOD_QUALITY_SCORE: Final[int] = 85
_MVP_CONTEXT_CHARS: Final[int] = 200
_HTTP_METHODS: Final[frozenset[str]] = frozenset({"get", "post", "put", "patch", "delete"})

_PERSONA_HEADER: Final[re.Pattern[str]] = re.compile(
    r"##\s*(?:Persona\s*\d+:?\s*)?([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)"
)
_PERSONA_REFERENCE: Final[re.Pattern[str]] = re.compile(
    r"(?:persona|user|as a)\s*:?\s*([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)", re.IGNORECASE
)
_EPIC_ID: Final[re.Pattern[str]] = re.compile(r"EPIC-\d{3}")

# (artifact, phases searched in order)
_SCORED_ARTIFACTS: Final[tuple[tuple[str, tuple[str, ...]], ...]] = (
    ("constitution.md", ("ANALYSIS",)),
    ("project-brief.md", ("ANALYSIS",)),
    ("personas.md", ("ANALYSIS",)),
    ("PRD.md", PRD_PHASES),
    ("data-model.md", API_SPEC_PHASES),
    ("architecture.md", (TASKS_PHASE,)),
    ("tasks.md", (TASKS_PHASE,)),
    ("epics.md", (TASKS_PHASE,)),
)
_FRONTMATTER_PREFIX: Final[re.Pattern[str]] = re.compile(r"^---[\s\S]*?---\n")
_SECTION_HEADER: Final[re.Pattern[str]] = re.compile(r"^#{1,3}\s+.+$", re.MULTILINE)


@register_check(ValidatorImplementation.REGEX_PATTERN_CHECK)
def check_requirement_format(ctx: CheckContext) -> ValidationResult:
    prd = ctx.artifact("PRD.md", *PRD_PHASES)
    if not prd:
        return ValidationResult.warned(
            "PRD.md not found - skipping requirement format validation",
            checks={"prd_exists": False},
        )

    pattern = re.compile(str(ctx.param("pattern", REQUIREMENT_ID.pattern)))
    minimum = int(ctx.param("min_count", DEFAULT_MIN_REQUIREMENTS) or DEFAULT_MIN_REQUIREMENTS)
    found = unique(match.group(0) for match in pattern.finditer(prd))

    errors: list[str] = []
    if len(found) < minimum:
        errors.append(f"Found only {len(found)} requirements (minimum: {minimum})")

    warnings: list[str] = []
    non_standard = [
        req for req in found if (req.split("-") + [""])[1] not in STANDARD_CATEGORIES
    ]
    if non_standard:
        warnings.append(
            f"Found requirements with non-standard categories: {', '.join(non_standard[:5])}"
        )

    checks: dict[str, CheckValue] = {
        "has_requirements": bool(found),
        "meets_minimum": len(found) >= minimum,
        "valid_format": True,
    }
    return ValidationResult.from_findings(checks=checks, errors=errors, warnings=warnings)


def _is_mvp(prd: str, requirement: str) -> bool:
    index = prd.find(requirement)
    if index < 0:
        return False
    context = prd[max(0, index - _MVP_CONTEXT_CHARS) : index + _MVP_CONTEXT_CHARS].lower()
    return "mvp" in context or "phase 1" in context


@register_check(ValidatorImplementation.CROSS_REFERENCE_CHECK)
def check_requirement_traceability(ctx: CheckContext) -> ValidationResult:
    prd = ctx.artifact(str(ctx.param("source_artifact", "PRD.md")), *PRD_PHASES)
    tasks = ctx.artifact(str(ctx.param("target_artifact", "tasks.md")), TASKS_PHASE)
    if not prd or not tasks:
        return ValidationResult.warned(
            "PRD.md or tasks.md not found - skipping traceability validation"
        )

    prd_requirements = requirement_ids(prd)
    task_requirements = set(requirement_ids(tasks))
    uncovered = [req for req in prd_requirements if req not in task_requirements]

    errors: list[str] = []
    warnings: list[str] = []
    if uncovered:
        mvp = [req for req in uncovered if _is_mvp(prd, req)]
        if mvp:
            errors.append(
                f"{len(mvp)} MVP requirements not covered by tasks: {', '.join(mvp[:5])}"
            )
        else:
            warnings.append(
                f"{len(uncovered)} Phase 2+ requirements not covered by tasks: "
                f"{', '.join(uncovered[:5])}"
            )

    checks: dict[str, CheckValue] = {
        "all_requirements_covered": not uncovered,
        "prd_requirements_count": bool(prd_requirements),
        "tasks_reference_requirements": bool(task_requirements),
    }
    return ValidationResult.from_findings(checks=checks, errors=errors, warnings=warnings)


def api_endpoints(document: Mapping[str, Any]) -> list[str]:
    """``METHOD path`` strings for every HTTP operation in an OpenAPI document."""

    endpoints: list[str] = []
    paths = document.get("paths") or {}
    if not isinstance(paths, Mapping):
        return endpoints
    for path, operations in paths.items():
        if not isinstance(operations, Mapping):
            continue
        for method in operations:
            if str(method).lower() in _HTTP_METHODS:
                endpoints.append(f"{str(method).upper()} {path}")
    return endpoints


@register_check(ValidatorImplementation.API_TASK_MAPPING)
def check_api_coverage(ctx: CheckContext) -> ValidationResult:
    raw_spec = ctx.artifact(str(ctx.param("source_artifact", "api-spec.json")), *API_SPEC_PHASES)
    tasks = ctx.artifact(str(ctx.param("target_artifact", "tasks.md")), TASKS_PHASE)
    if not raw_spec or not tasks:
        return ValidationResult.warned(
            "api-spec.json or tasks.md not found - skipping API coverage validation"
        )
    try:
        document = json.loads(raw_spec)
    except json.JSONDecodeError:
        return ValidationResult.warned(
            "api-spec.json is not valid JSON - skipping API coverage validation",
            checks={"valid_json": False},
        )

    endpoints = api_endpoints(document if isinstance(document, Mapping) else {})
    lowered = tasks.lower()
    uncovered = [
        endpoint
        for endpoint in endpoints
        if endpoint.split(" ", 1)[1].lower() not in lowered and endpoint.lower() not in lowered
    ]

    warnings: list[str] = []
    if uncovered:
        warnings.append(
            f"{len(uncovered)} API endpoints not explicitly referenced in tasks: "
            f"{', '.join(uncovered[:5])}"
        )
    return ValidationResult.from_findings(
        checks={"has_endpoints": bool(endpoints), "endpoints_covered": not uncovered},
        warnings=warnings,
    )


@register_check(ValidatorImplementation.MULTI_ARTIFACT_VALIDATION)
def check_cross_artifact(ctx: CheckContext) -> ValidationResult:
    personas = ctx.artifact("personas.md", "ANALYSIS")
    prd = ctx.artifact("PRD.md", *PRD_PHASES)
    tasks = ctx.artifact("tasks.md", TASKS_PHASE)
    epics = ctx.artifact("epics.md", TASKS_PHASE)
    architecture = ctx.artifact("architecture.md", TASKS_PHASE)

    checks: dict[str, CheckValue] = {}
    errors: list[str] = []
    warnings: list[str] = []

    for check in ctx.param("checks", ()):
        check = str(check)

        if "personas in PRD exist in personas.md" in check:
            known = [match.group(1).lower() for match in _PERSONA_HEADER.finditer(personas)]
            unknown = [
                name
                for name in (match.group(1).lower() for match in _PERSONA_REFERENCE.finditer(prd))
                if len(name) > 2 and not any(name in p or p in name for p in known)
            ]
            checks["personas_consistent"] = len(unknown) < 3
            if len(unknown) >= 3:
                warnings.append("PRD references personas not clearly defined in personas.md")

        if "REQ-IDs in tasks.md exist in PRD.md" in check:
            defined = set(requirement_ids(prd))
            dangling = [req for req in requirement_ids(tasks) if req not in defined]
            checks["task_reqs_valid"] = not dangling
            if dangling:
                errors.append(
                    f"Tasks reference non-existent requirements: {', '.join(dangling[:5])}"
                )

        if "EPIC-IDs in tasks.md exist in epics.md" in check:
            defined_epics = set(_EPIC_ID.findall(epics))
            dangling = [
                epic for epic in unique(_EPIC_ID.findall(tasks)) if epic not in defined_epics
            ]
            checks["task_epics_valid"] = not dangling
            if dangling:
                errors.append(f"Tasks reference non-existent epics: {', '.join(dangling)}")

        if "Stack choice in architecture.md matches approved stack" in check:
            approved = ctx.project.stack_choice
            if approved and architecture:
                lowered = architecture.lower()
                choice = approved.lower()
                mentioned = choice.replace("_", " ") in lowered or choice in lowered
                checks["stack_consistent"] = mentioned
                if not mentioned:
                    warnings.append(
                        f"Architecture document may not reflect approved stack: {approved}"
                    )

    return ValidationResult.from_findings(checks=checks, errors=errors, warnings=warnings)


def score_document(content: str, criteria: Mapping[str, float]) -> float:
    """Points earned by one document against the weighted criteria."""

    score = 0.0

    weight = criteria.get("frontmatter_complete", 0)
    if weight and content.startswith("---") and "---\n" in content[4:]:
        frontmatter = extract_frontmatter(content)
        complete = all(frontmatter_has(frontmatter, name) for name in FRONTMATTER_FIELDS)
        score += weight if complete else weight / 2

    weight = criteria.get("min_content_length", 0)
    if weight:
        words = len(_FRONTMATTER_PREFIX.sub("", content, count=1).split())
        if words >= 500:
            score += weight
        elif words >= 200:
            score += weight / 2

    weight = criteria.get("structured_sections", 0)
    if weight:
        headers = len(_SECTION_HEADER.findall(content))
        if headers >= 5:
            score += weight
        elif headers >= 3:
            score += weight / 2

    weight = criteria.get("actionable_criteria", 0)
    if weight:
        gherkin = all(keyword in content for keyword in ("GIVEN", "WHEN", "THEN"))
        checkboxes = content.count("- [ ]") >= 3
        requirements = len(REQUIREMENT_ID.findall(content)) >= 3
        if gherkin or checkboxes or requirements:
            score += weight
        elif "acceptance" in content or "criteria" in content:
            score += weight / 2

    return score


@register_check(ValidatorImplementation.QUALITY_SCORING)
def check_quality_score(ctx: CheckContext) -> ValidationResult:
    criteria = {str(name): float(value) for name, value in ctx.param("criteria", {}).items()}
    minimum = int(
        ctx.param("minimum_score", DEFAULT_MIN_QUALITY_SCORE) or DEFAULT_MIN_QUALITY_SCORE
    )
    per_document_max = sum(criteria.values())

    total = maximum = 0.0
    breakdown: dict[str, int] = {}
    for name, phases in _SCORED_ARTIFACTS:
        content = ctx.artifact(name, *phases)
        if not content:
            continue
        earned = score_document(content, criteria)
        breakdown[name] = half_up(earned / per_document_max * 100) if per_document_max else 0
        total += earned
        maximum += per_document_max

    final = half_up(total / maximum * 100) if maximum > 0 else 0
    errors: list[str] = []
    warnings: list[str] = []
    if final < minimum:
        errors.append(f"Quality score {final}/100 is below minimum {minimum}")
    elif final < GOOD_QUALITY_SCORE:
        warnings.append(f"Quality score {final}/100 could be improved")

    return ValidationResult.from_findings(
        checks={"quality_score": final >= minimum},
        errors=errors,
        warnings=warnings,
        details={"score": final, "breakdown": dict(breakdown)},
    )


__all__ = [
    "API_SPEC_PHASES",
    "PRD_PHASES",
    "STANDARD_CATEGORIES",
    "api_endpoints",
    "check_api_coverage",
    "check_cross_artifact",
    "check_quality_score",
    "check_requirement_format",
    "check_requirement_traceability",
    "score_document",
]
