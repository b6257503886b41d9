"""Process checks over the task list and analysis documents."""

from __future__ import annotations

import re
from typing import Final

from phase_gate.planning.task_format import parse_task_dependencies
from phase_gate.planning.task_graph import compute_stats, detect_cycles
from phase_gate.verification_plane.checkers.common import REAL_SERVICES, section
from phase_gate.verification_plane.registry import (
    CheckContext,
    ValidatorImplementation,
    register_check,
)
from phase_gate.verification_plane.results import CheckValue, ValidationResult

MAX_TASK_DEPTH: Final[int] = 10

_ANALYSIS_DOCUMENTS: Final[tuple[str, ...]] = ("constitution.md", "project-brief.md", "personas.md")
_CLARIFICATION_MARKER: Final[str] = "[NEEDS CLARIFICATION:"
_TEST_FIRST_TASK_HEADER: Final[re.Pattern[str]] = re.compile(
    r"^###\s+TASK-[A-Z0-9]+-[0-9]+:", re.MULTILINE
)
_TEST_SECTION: Final[re.Pattern[str]] = re.compile(
    r"##\s*TESTS FIRST\b|Test Specifications", re.IGNORECASE
)
_IMPLEMENTATION_SECTION: Final[re.Pattern[str]] = re.compile(
    r"Implementation Notes", re.IGNORECASE
)
_TEST_TYPES: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"Contract", re.IGNORECASE),
    re.compile(r"Integration", re.IGNORECASE),
    re.compile(r"\bE2E\b", re.IGNORECASE),
    re.compile(r"\bUnit\b", re.IGNORECASE),
)


def format_cycle(cycle: list[str]) -> str:
    return " -> ".join(cycle)


@register_check(ValidatorImplementation.DEPENDENCY_GRAPH_ANALYSIS)
def check_task_dependencies(ctx: CheckContext) -> ValidationResult:
    """Reject cyclic task lists; warn on orphaned tasks and deep chains."""

    try:
        content = ctx.artifact("tasks.md", "SOLUTIONING")
        if not content:
            return ValidationResult.warned(
                "tasks.md not found - skipping task dependency validation",
                checks={"no_circular_deps": True},
            )

        dependencies = parse_task_dependencies(content)
        if not dependencies:
            return ValidationResult.warned(
                "No task dependencies found in tasks.md", checks={"no_circular_deps": True}
            )

        cycles = detect_cycles(dependencies)
        if cycles:
            return ValidationResult.failed(
                *(f"Circular dependency detected: {format_cycle(cycle)}" for cycle in cycles),
                checks={"no_circular_deps": False},
            )

        stats = compute_stats(dependencies)
    except Exception as exc:  # noqa: BLE001
        return ValidationResult.failed(
            f"Failed to validate task dependencies: {exc}", checks={"no_circular_deps": False}
        )

    warnings: list[str] = []
    if stats.orphaned_tasks:
        warnings.append(
            f"Found {len(stats.orphaned_tasks)} orphaned tasks: "
            f"{', '.join(stats.orphaned_tasks)}"
        )
    if stats.deepest_path > MAX_TASK_DEPTH:
        warnings.append(
            f"Task dependency depth is {stats.deepest_path} "
            "(consider breaking into smaller epics)"
        )
    return ValidationResult.from_findings(
        checks={"no_circular_deps": True, "valid_dag": True},
        warnings=warnings,
        details={"task_count": len(dependencies), "deepest_path": stats.deepest_path},
    )


@register_check(ValidatorImplementation.CLARIFICATION_MARKER_CHECK)
def check_clarifications(ctx: CheckContext) -> ValidationResult:
    allowed = int(ctx.param("allowed_unresolved", 0))
    assumed_marker = str(ctx.param("auto_resolved_marker", "[AI ASSUMED:"))
    checks: dict[str, CheckValue] = {}
    warnings: list[str] = []
    unresolved = 0

    for filename in _ANALYSIS_DOCUMENTS:
        content = ctx.artifact(filename, "ANALYSIS")
        markers = content.count(_CLARIFICATION_MARKER)
        unresolved += markers
        checks[f"unresolved:{filename}"] = markers == 0

        if "[NEEDS CLARIFICATION" in content and not re.search(r"\bCLAR-\d{3}\b", content):
            warnings.append(
                f"{filename} contains [NEEDS CLARIFICATION] markers but no CLAR-### IDs "
                "in an Open Questions list"
            )
        if assumed_marker in content and not re.search(r"\bASM-\d{3}\b", content):
            warnings.append(
                f"{filename} contains [AI ASSUMED] markers but no ASM-### IDs "
                "in an Assumptions Log"
            )

    checks["no_unresolved_clarifications"] = unresolved <= allowed
    errors = []
    if unresolved > allowed:
        errors.append(
            f"Found {unresolved} unresolved [NEEDS CLARIFICATION] markers (allowed: {allowed})"
        )
    return ValidationResult.from_findings(checks=checks, errors=errors, warnings=warnings)


def _task_slices(content: str) -> list[str]:
    headers = list(_TEST_FIRST_TASK_HEADER.finditer(content))
    return [
        content[match.start() : headers[i + 1].start() if i + 1 < len(headers) else len(content)]
        for i, match in enumerate(headers)
    ]


@register_check(ValidatorImplementation.TEST_FIRST_VALIDATOR)
def check_test_first(ctx: CheckContext) -> ValidationResult:
    content = ctx.artifact("tasks.md", "SOLUTIONING")
    if not content:
        return ValidationResult.warned(
            "tasks.md not found - skipping test-first compliance validation",
            checks={"tasks_exists": False},
        )

    tasks = _task_slices(content)
    if not tasks:
        return ValidationResult.warned(
            "No TASK headings found in tasks.md - cannot validate test-first ordering",
            checks={"tasks_found": False},
        )

    compliant = missing_tests = missing_notes = wrong_order = 0
    missing_types = missing_real_services = 0
    for block in tasks:
        test_match = _TEST_SECTION.search(block)
        notes_match = _IMPLEMENTATION_SECTION.search(block)
        if test_match is None:
            missing_tests += 1
            continue
        if notes_match is None:
            missing_notes += 1
            continue
        if test_match.start() > notes_match.start():
            wrong_order += 1
            continue
        if not all(pattern.search(block) for pattern in _TEST_TYPES):
            missing_types += 1
        if not REAL_SERVICES.search(block) or re.search(r"\bsqlite\b", block, re.IGNORECASE):
            missing_real_services += 1
        compliant += 1

    errors: list[str] = []
    warnings: list[str] = []
    if missing_tests:
        errors.append(f"{missing_tests} tasks missing a Test Specifications section")
    if missing_notes:
        warnings.append(
            f"{missing_notes} tasks missing an Implementation Notes section "
            "(cannot validate ordering)"
        )
    if wrong_order:
        errors.append(f"{wrong_order} tasks list implementation before tests (violates Article 2)")
    if missing_types:
        warnings.append(
            f"{missing_types} tasks do not clearly include Contract/Integration/E2E/Unit test types"
        )
    if missing_real_services:
        warnings.append(
            f"{missing_real_services} tasks do not clearly specify real services "
            "for integration tests (Article 5)"
        )

    checks: dict[str, CheckValue] = {
        "tasks_found": True,
        "test_specs_present": missing_tests == 0,
        "implementation_notes_present": missing_notes == 0,
        "test_before_implementation": wrong_order == 0,
        "tasks_compliant": compliant == len(tasks) and not errors,
    }
    return ValidationResult.from_findings(checks=checks, errors=errors, warnings=warnings)


@register_check(ValidatorImplementation.CONSTITUTIONAL_VALIDATOR)
def check_constitution(ctx: CheckContext) -> ValidationResult:
    architecture = ctx.artifact("architecture.md", "SOLUTIONING")
    tasks = ctx.artifact("tasks.md", "SOLUTIONING")
    dependencies = ctx.artifact("DEPENDENCIES.md", "DEPENDENCIES")
    checks: dict[str, CheckValue] = {}
    errors: list[str] = []
    warnings: list[str] = []

    modular = bool(re.search(r"module|boundary|bounded context|layered", architecture, re.I))
    checks["article_1_modularity"] = modular
    if not modular:
        warnings.append("Architecture does not clearly describe module boundaries (Article 1)")

    test_first = check_test_first(ctx)
    checks["article_2_test_first"] = test_first.status != "fail"
    if test_first.status == "fail":
        errors.extend(test_first.errors or ("Test-first compliance failed (Article 2)",))
    elif test_first.status == "warn":
        warnings.extend(test_first.warnings)

    real_services = bool(REAL_SERVICES.search(tasks))
    checks["article_5_real_services"] = real_services
    if not real_services:
        warnings.append(
            "Tasks do not clearly specify real services for integration tests (Article 5)"
        )

    services = section(architecture, "Services")
    service_count = len(re.findall(r"^\s*[-*]\s+", services, re.MULTILINE)) if services else 0
    justified = bool(re.search(r"justify|justification|rationale", architecture, re.I))
    checks["article_3_simplicity"] = service_count <= 3 or justified
    if service_count > 3 and not justified:
        warnings.append(
            f"Architecture appears to define >3 services ({service_count}) "
            "without explicit justification (Article 3)"
        )

    abstraction = bool(
        re.search(r"anti-abstraction|abstraction|why not|alternatives", dependencies, re.I)
    )
    checks["article_4_anti_abstraction"] = abstraction
    if not abstraction:
        warnings.append(
            "Dependencies document does not clearly justify abstraction layers (Article 4)"
        )

    checks["articles_config_present"] = bool(ctx.param("articles", {}))
    return ValidationResult.from_findings(checks=checks, errors=errors, warnings=warnings)


__all__ = [
    "MAX_TASK_DEPTH",
    "check_clarifications",
    "check_constitution",
    "check_task_dependencies",
    "check_test_first",
    "format_cycle",
]
