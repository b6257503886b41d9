from __future__ import annotations

from typing import Any

from phase_gate.verification_plane.quality_gates import (
    analysis_gate,
    anti_slop_gate,
    article_2_test_first_gate,
    bite_sized_tasks_gate,
    constitutional_compliance_gate,
    design_gate,
    gherkin_gate,
    persona_traceability_gate,
    pm_spec_gate,
    requirement_task_mapping_gate,
    solution_gate,
    validate_artifact_lengths,
)
from phase_gate.verification_plane.results import ValidationStatus

_STORIES = (
    "## Story 1\n"
    "As a shopper I want to save carts so that I can return later and finish checkout.\n"
)
_CRITERIA = "Given a saved cart\nWhen I sign back in\nThen the cart is restored\n"


def _task(
    index: int,
    *,
    tests_first: bool = True,
    depends_on: str | None = None,
    timed: bool = True,
    requirement: str | None = "REQ-AUTH-001",
) -> str:
    tests = "### Test Specifications\n- rejects an expired session\n"
    notes = f"### Implementation Notes\n- edit src/auth/session{index}.ts\n"
    lines = [f"### TASK-AUTH-{index:03d}: Session step {index}\n"]
    if requirement is not None:
        lines.append(f"Implements {requirement}\n")
    if timed:
        lines.append("Estimate: 20 min\n")
    if depends_on is not None:
        lines.append(f"Depends on: {depends_on}\n")
    lines.extend([tests, notes] if tests_first else [notes, tests])
    lines.append("Verify: npm test\n\n")
    return "".join(lines)


def _tasks(count: int, overrides: dict[int, dict[str, Any]] | None = None) -> str:
    changes = overrides or {}
    return "".join(_task(index, **changes.get(index, {})) for index in range(1, count + 1))


def _prd(ids: list[int]) -> str:
    return "".join(f"## REQ-AUTH-{i:03d} Sign in\nThe Admin can sign in.\n\n" for i in ids)


def test_pm_spec_gate_counts_unique_requirement_ids() -> None:
    fourteen_with_duplicate = _prd([*range(1, 15), 14])
    report = pm_spec_gate(
        {
            "PRD.md": fourteen_with_duplicate,
            "user-stories.md": _STORIES,
            "acceptance-criteria.md": _CRITERIA,
        }
    )

    assert not report.can_proceed
    assert [issue.message for issue in report.errors] == [
        "Only 14 requirements found (REQ-XXX format). Minimum: 15"
    ]


def test_pm_spec_gate_passes_with_fifteen_attributed_requirements() -> None:
    report = pm_spec_gate(
        {
            "PRD.md": _prd(list(range(1, 16))),
            "user-stories.md": _STORIES,
            "acceptance-criteria.md": _CRITERIA,
        }
    )

    assert report.can_proceed
    assert report.issues == ()


def test_pm_spec_gate_reports_each_missing_file() -> None:
    report = pm_spec_gate({"PRD.md": _prd(list(range(1, 16)))})

    assert set(report.categories()) == {"missing_file"}
    assert len(report.errors) == 2


def test_solution_gate_accepts_well_formed_task_list() -> None:
    report = solution_gate({"tasks.md": _tasks(15)})

    assert report.can_proceed
    assert report.issues == ()


def test_solution_gate_flags_task_count_and_test_order() -> None:
    report = solution_gate({"tasks.md": _tasks(14, {3: {"tests_first": False}})})

    messages = [issue.message for issue in report.errors]
    assert "Only 14 tasks found. Minimum: 15" in messages
    assert (
        "1 task(s) have implementation notes before test specifications (violates Article 2)"
        in messages
    )


def test_solution_gate_reports_circular_dependencies() -> None:
    tasks = _tasks(
        15, {1: {"depends_on": "TASK-AUTH-002"}, 2: {"depends_on": "TASK-AUTH-001"}}
    )

    report = solution_gate({"tasks.md": tasks})

    cycles = [issue for issue in report.errors if issue.category == "circular_dependencies"]
    assert len(cycles) == 1
    assert cycles[0].message == (
        "Circular dependency detected: TASK-AUTH-001 -> TASK-AUTH-002 -> TASK-AUTH-001"
    )


def test_solution_gate_short_task_list_reports_only_missing_file() -> None:
    report = solution_gate({"tasks.md": "### TASK-AUTH-001: tiny"})

    assert [issue.category for issue in report.issues] == ["missing_file"]


def test_analysis_gate_counts_personas_and_principles() -> None:
    report = analysis_gate(
        {
            "constitution.md": "1. **Clarity**\n2. **Speed**\n",
            "project-brief.md": "Brief",
            "project-classification.json": "{}",
            "personas.md": "## Maria Lopez\nShops weekly.\n## Developer\nBuilds things.\n",
        }
    )

    assert {issue.category for issue in report.errors} == {"persona_count", "principles_count"}
    assert [issue.category for issue in report.warnings] == ["persona_specificity"]
    assert "Only 2 personas found. Minimum: 3" in [issue.message for issue in report.errors]


def test_design_gate_requires_both_documents() -> None:
    report = design_gate({})

    assert [issue.category for issue in report.issues] == ["missing_file", "missing_file"]


def test_design_gate_flags_placeholders_and_missing_states() -> None:
    journeys = (
        "## Journey 1: Checkout\n### Step 1\nlorem ipsum\n"
        "## Journey 2: Sign in\n## Journey 3: Returns\n" + "x" * 500
    )
    mapping = "COMP-001 maps to Journey 1 step 1.\n" + "y" * 500

    report = design_gate({"journey-maps.md": journeys, "component-mapping.md": mapping})

    assert set(report.categories()) == {"placeholder", "error_states", "empty_states"}
    assert [issue.category for issue in report.errors] == ["placeholder"]


def test_anti_slop_gate_prefixes_filename() -> None:
    report = anti_slop_gate({"design-tokens.md": "Hero uses a purple gradient background"})

    assert not report.can_proceed
    assert all(issue.message.startswith("design-tokens.md: ") for issue in report.errors)


def test_persona_traceability_lists_unattributed_requirements() -> None:
    prd = (
        "## REQ-AUTH-001 Login\nMaria Lopez signs in with email.\n\n"
        "## REQ-AUTH-002 Logout\nSession ends after idle time.\n"
    )

    report = persona_traceability_gate({"PRD.md": prd, "personas.md": "## Maria Lopez\n"})

    assert [issue.message for issue in report.warnings] == [
        "1 requirement(s) do not reference any persona: REQ-AUTH-002"
    ]


def test_gherkin_gate_recognises_user_story_format() -> None:
    report = gherkin_gate({"acceptance-criteria.md": "As a shopper, I want to pay quickly."})

    assert report.can_proceed
    assert set(report.categories()) == {"gherkin_format", "scenario_count"}
    assert "generic user story format" in report.warnings[0].message


def test_requirement_task_mapping_flags_orphans_and_unknown_requirements() -> None:
    tasks = _tasks(3, {2: {"requirement": None}, 3: {"requirement": "REQ-AUTH-009"}})

    report = requirement_task_mapping_gate({"tasks.md": tasks, "PRD.md": _prd([1])})

    assert [issue.message for issue in report.warnings] == [
        "1 task(s) do not reference any requirement (REQ-XXX): TASK-AUTH-002"
    ]
    assert [issue.message for issue in report.errors] == [
        "1 task(s) reference requirements not in PRD.md: REQ-AUTH-009"
    ]


def test_artifact_lengths_use_default_minimums() -> None:
    result = validate_artifact_lengths({"PRD.md": "x" * 2999, "notes.md": "x"})

    assert result.status is ValidationStatus.FAIL
    assert result.checks == {"PRD.md": False}
    assert result.errors == ("PRD.md is too short (2999 chars). Minimum: 3000 chars.",)


def test_artifact_lengths_accept_custom_table() -> None:
    result = validate_artifact_lengths({"PRD.md": "x" * 20}, {"PRD.md": 10})

    assert result.status is ValidationStatus.PASS


def test_article_2_names_the_offending_task() -> None:
    tasks = _tasks(3, {2: {"tests_first": False}})

    report = article_2_test_first_gate({"tasks.md": tasks})

    assert [issue.message for issue in report.errors] == [
        "TASK-AUTH-002: Implementation appears BEFORE test specification (Article 2 violation)"
    ]


def test_bite_sized_severity_depends_on_share_of_failing_tasks() -> None:
    partial = bite_sized_tasks_gate({"tasks.md": _tasks(3, {1: {"timed": False}})})
    total = bite_sized_tasks_gate(
        {"tasks.md": _tasks(2, {1: {"timed": False}, 2: {"timed": False}})}
    )

    assert partial.can_proceed
    assert [issue.message for issue in partial.warnings] == [
        "1/3 tasks lack time estimate (15-30min expected)"
    ]
    assert not total.can_proceed
    assert [issue.message for issue in total.errors] == [
        "2/2 tasks lack time estimate (15-30min expected)"
    ]


def test_compliance_gate_requires_handoff_when_done() -> None:
    artifacts = {
        "constitution.md": "1. **Clarity** " * 20,
        "project-classification.json": '{"project_type": "web", "scale_tier": "mvp"}',
        "tasks.md": _tasks(2),
    }

    in_progress = constitutional_compliance_gate(artifacts, "SOLUTIONING")
    done = constitutional_compliance_gate(artifacts, "DONE")

    assert in_progress.can_proceed
    assert "article_5" not in in_progress.categories()
    assert not done.can_proceed
    assert [issue.category for issue in done.errors] == ["article_5"]
