from __future__ import annotations

from phase_gate.planning.task_format import (
    TaskGrammar,
    parse_task_dependencies,
    parse_task_document,
)

HEADER_TASKS = """\
# Tasks

### TASK-DB-001: Create schema
Estimate: 20 min

### TASK-API-001: Create endpoint
Depends on: TASK-DB-001, TASK-AUTH-001; TASK-CFG-001

### TASK-UI-001: Build form
Dependencies: TASK-API-001
"""

BULLET_TASKS = """\
## Design tokens
- depends_on: []

## Build login form
- depends_on: [Design tokens, Auth API]
"""


def test_header_grammar_parses_dependency_lines() -> None:
    document = parse_task_document(HEADER_TASKS)

    assert document.grammar is TaskGrammar.HEADER_V1
    assert document.dependencies == {
        "TASK-DB-001": [],
        "TASK-API-001": ["TASK-DB-001", "TASK-AUTH-001", "TASK-CFG-001"],
        "TASK-UI-001": ["TASK-API-001"],
    }
    assert document.task_ids == ("TASK-DB-001", "TASK-API-001", "TASK-UI-001")


def test_bullet_grammar_is_used_only_as_fallback() -> None:
    document = parse_task_document(BULLET_TASKS)

    assert document.grammar is TaskGrammar.BULLET_V0
    assert document.dependencies["Build login form"] == ["Design tokens", "Auth API"]
    assert document.dependencies["Design tokens"] == []


def test_grammars_are_never_mixed() -> None:
    dependencies = parse_task_dependencies(HEADER_TASKS + "\n" + BULLET_TASKS)

    assert "Build login form" not in dependencies
    assert "TASK-API-001" in dependencies


def test_text_without_tasks_parses_to_empty_map() -> None:
    document = parse_task_document("Nothing to see here.")

    assert document.grammar is TaskGrammar.NONE
    assert document.dependencies == {}
