"""
phase-gate: task list mini-format parser.

File: src/phase_gate/planning/task_format.py

Purpose
- Extract a ``{task_id: [dependency_id, ...]}`` map from free-text ``tasks.md`` documents.

Supported grammars
- ``v1`` (header grammar)::

      ### TASK-API-001: Create endpoint
      Depends on: TASK-DB-001, TASK-DB-002

  Blocks start at a ``#``/``##``/``###`` header of the form ``<id>:``. The first line in
  the block starting with ``depends on`` or ``dependencies`` carries the dependency list,
  separated by commas, semicolons or whitespace. A block without such a line has no
  dependencies.

- ``v0`` (bullet grammar), used only when ``v1`` yields no tasks::

      ## Build login form
      - depends_on: [Design tokens, Auth API]

The two grammars are never mixed within one parse.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Final


class TaskGrammar(StrEnum):
    """Task list grammar versions, newest first."""

    HEADER_V1 = "v1"
    BULLET_V0 = "v0"
    NONE = "none"


_V1_TASK_BLOCK: Final[re.Pattern[str]] = re.compile(
    r"#{1,3}\s+([\w-]+):\s*([\s\S]*?)(?=#{1,3}\s+[\w-]+:|\Z)"
)
_V1_DEPENDS_LINE: Final[re.Pattern[str]] = re.compile(
    r"(?:depends\s+on|dependencies?)[:\s]+([^\n]+)", re.IGNORECASE
)
_V1_DEPENDENCY_SPLIT: Final[re.Pattern[str]] = re.compile(r"[,;\s]+")
_V1_DEPENDENCY_ID: Final[re.Pattern[str]] = re.compile(r"^[\w-]+$")

_V0_TASK_BLOCK: Final[re.Pattern[str]] = re.compile(
    r"##\s*([^\n]+?)\s*\n[\s\S]*?-+\s*depends_on:\s*\[([^\]]*)\]", re.IGNORECASE
)


@dataclass(frozen=True, slots=True)
class TaskDocument:
    """Parsed task list: which grammar matched and the dependency map it produced."""

    grammar: TaskGrammar
    dependencies: dict[str, list[str]]

    @property
    def task_ids(self) -> tuple[str, ...]:
        return tuple(self.dependencies)


def parse_task_document(text: str) -> TaskDocument:
    """Parse ``text`` with the newest grammar that yields at least one task."""
    dependencies = _parse_v1(text)
    if dependencies:
        return TaskDocument(grammar=TaskGrammar.HEADER_V1, dependencies=dependencies)

    dependencies = _parse_v0(text)
    if dependencies:
        return TaskDocument(grammar=TaskGrammar.BULLET_V0, dependencies=dependencies)

    return TaskDocument(grammar=TaskGrammar.NONE, dependencies={})


def parse_task_dependencies(text: str) -> dict[str, list[str]]:
    """Return ``{task_id: [dependency_id, ...]}`` parsed from a task list."""
    return parse_task_document(text).dependencies


def _parse_v1(text: str) -> dict[str, list[str]]:
    dependencies: dict[str, list[str]] = {}
    for match in _V1_TASK_BLOCK.finditer(text):
        task_id = match.group(1).strip()
        block = match.group(2).strip()

        depends = _V1_DEPENDS_LINE.search(block)
        if depends is None:
            dependencies[task_id] = []
            continue

        dependencies[task_id] = [
            item
            for item in (part.strip() for part in _V1_DEPENDENCY_SPLIT.split(depends.group(1)))
            if _V1_DEPENDENCY_ID.match(item)
        ]
    return dependencies


def _parse_v0(text: str) -> dict[str, list[str]]:
    dependencies: dict[str, list[str]] = {}
    for match in _V0_TASK_BLOCK.finditer(text):
        name = match.group(1).strip()
        parts = (
            part.replace("[", "").replace("]", "").strip() for part in match.group(2).split(",")
        )
        dependencies[name] = [dep for dep in parts if dep]
    return dependencies


__all__ = [
    "TaskDocument",
    "TaskGrammar",
    "parse_task_dependencies",
    "parse_task_document",
]
