"""
phase-gate: planning layer

File: src/phase_gate/planning/__init__.py

Purpose
- Phase catalogue, task list parsing and the shared dependency graph utilities.

Functional requirements
- Phase dependencies and parsed task lists are validated with the same cycle detector.
"""

from __future__ import annotations

from phase_gate.planning.phase_graph import (
    PhaseDefinition,
    PhaseGraph,
    PhaseGraphError,
    ValidatorDefinition,
    bundled_catalogue_path,
    load_phase_graph,
)
from phase_gate.planning.task_format import (
    TaskDocument,
    TaskGrammar,
    parse_task_dependencies,
    parse_task_document,
)
from phase_gate.planning.task_graph import (
    CycleError,
    DependencyMap,
    TaskGraph,
    TaskGraphStats,
    compute_stats,
    detect_cycles,
)

__all__ = [
    "CycleError",
    "DependencyMap",
    "PhaseDefinition",
    "PhaseGraph",
    "PhaseGraphError",
    "TaskDocument",
    "TaskGrammar",
    "TaskGraph",
    "TaskGraphStats",
    "ValidatorDefinition",
    "bundled_catalogue_path",
    "compute_stats",
    "detect_cycles",
    "load_phase_graph",
    "parse_task_dependencies",
    "parse_task_document",
]
