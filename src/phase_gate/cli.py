"""
phase-gate: command line interface

File: src/phase_gate/cli.py

Purpose
- Operator entrypoints: run a phase's validators against a project on disk, classify
  validation errors, print the phase order and print the effective configuration.

Functional requirements
- Exit codes: 0 success, 1 validation failed, 2 configuration or usage error.
- ``--json`` output is deterministic (sorted keys).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from enum import IntEnum
from pathlib import Path
from typing import Any

import structlog

from phase_gate.artifacts.store import ArtifactStore, CacheManager
from phase_gate.config.loader import ConfigLoadError, load_config
from phase_gate.config.schema import ConfigValidationError, redact_config
from phase_gate.constants import DEFAULT_PHASE
from phase_gate.domain.models import Project
from phase_gate.observability.logging import correlation_scope, setup_logging, shutdown_logging
from phase_gate.planning.phase_graph import PhaseGraph, PhaseGraphError, load_phase_graph
from phase_gate.remediation.root_cause import PhaseHistoryEntry, PhaseStatus, RootCauseAnalyzer
from phase_gate.verification_plane.engine import ValidationEngine
from phase_gate.verification_plane.results import ValidationResult, ValidationStatus


class ExitCode(IntEnum):
    SUCCESS = 0
    VALIDATION_FAILED = 1
    CONFIG_ERROR = 2


class CLIError(RuntimeError):
    """User-facing command failure with a process exit code."""

    def __init__(self, message: str, *, exit_code: int = ExitCode.CONFIG_ERROR) -> None:
        super().__init__(message)
        self.exit_code = int(exit_code)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phase-gate",
        description=(
            "phase-gate: validation and remediation engine for phased document pipelines.\n\n"
            "Common workflows:\n"
            "  phase-gate validate --project demo --phase SPEC_PM\n"
            "  phase-gate analyze --error 'PRD.md is too short' --completed SPEC_PM\n"
            "  phase-gate graph\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to phase_gate.toml (default: ./phase_gate.toml if present).",
    )
    common.add_argument(
        "--log",
        action="store_true",
        default=False,
        help="Write structured JSON-lines logs under paths.log_dir.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser(
        "validate", parents=[common], help="Run the validators attached to a phase"
    )
    validate_parser.add_argument("--project", required=True, help="Project slug")
    validate_parser.add_argument(
        "--phase", default=None, help="Phase whose validators to run (default: --current-phase)"
    )
    validate_parser.add_argument(
        "--current-phase", default=DEFAULT_PHASE, help="Phase the project is currently in"
    )
    validate_parser.add_argument(
        "--validator",
        dest="validators",
        action="append",
        default=None,
        help="Run only this validator (repeatable); overrides --phase selection",
    )
    validate_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    validate_parser.set_defaults(handler=_cmd_validate)

    analyze_parser = subparsers.add_parser(
        "analyze", parents=[common], help="Classify validation errors and locate their origin"
    )
    analyze_parser.add_argument(
        "--error", dest="errors", action="append", required=True, help="Error text (repeatable)"
    )
    analyze_parser.add_argument(
        "--completed",
        action="append",
        default=[],
        help="Completed phase, oldest first (repeatable)",
    )
    analyze_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    analyze_parser.set_defaults(handler=_cmd_analyze)

    graph_parser = subparsers.add_parser(
        "graph", parents=[common], help="Print phases in dependency order"
    )
    graph_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    graph_parser.set_defaults(handler=_cmd_graph)

    config_parser = subparsers.add_parser(
        "config", parents=[common], help="Print the redacted effective configuration"
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.CONFIG_ERROR)

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_validate(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    phase_graph = _load_graph(config)
    project = Project.for_slug(
        args.project,
        projects_root=config["paths"]["projects_root"],
        current_phase=args.current_phase,
    )
    phase = args.phase or project.current_phase
    if args.validators is None and phase not in phase_graph.phase_ids:
        raise CLIError(f"unknown phase: {phase}")

    state_db = Path(config["paths"]["state_db"])
    store = ArtifactStore.from_paths(
        projects_root=config["paths"]["projects_root"],
        state_db=state_db if state_db.exists() else None,
    )
    engine = ValidationEngine(
        phase_graph, CacheManager(store, phase_graph.cache_phases), config=config
    )

    async def _run() -> ValidationResult:
        if args.validators is not None:
            return await engine.run(args.validators, project, phase=phase)
        return await engine.run_phase(phase, project)

    with _logging_session(args, config), correlation_scope(project_id=project.id, phase=phase):
        result = asyncio.run(_run())

    if args.json:
        _emit_json(
            {"command": "validate", "project": project.slug, "phase": phase, **result.to_dict()}
        )
    else:
        print(f"{project.slug} {phase}: {result.status.value}")
        for error in result.errors:
            print(f"  error: {error}")
        for warning in result.warnings:
            print(f"  warning: {warning}")
    if result.status is ValidationStatus.FAIL:
        return int(ExitCode.VALIDATION_FAILED)
    return int(ExitCode.SUCCESS)


def _cmd_analyze(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    history = [
        PhaseHistoryEntry(phase=phase, status=PhaseStatus.COMPLETED) for phase in args.completed
    ]
    analyzer = RootCauseAnalyzer.from_config(config)
    with _logging_session(args, config):
        analysis = asyncio.run(analyzer.analyze(args.errors, history))

    if args.json:
        _emit_json({"command": "analyze", "analysis": analysis.to_dict()})
        return int(ExitCode.SUCCESS)
    print(f"error type:        {analysis.error_type.value}")
    print(f"originating phase: {analysis.originating_phase}")
    print(f"confidence:        {analysis.confidence:.2f}")
    print(f"explanation:       {analysis.explanation}")
    print(f"hint:              {analysis.remediation_hint}")
    return int(ExitCode.SUCCESS)


def _cmd_graph(args: argparse.Namespace) -> int:
    phase_graph = _load_graph(_load_effective_config(args))
    order = phase_graph.topological_order()
    if args.json:
        _emit_json({"command": "graph", "order": list(order), "graph": phase_graph.to_dict()})
        return int(ExitCode.SUCCESS)
    for phase_id in order:
        dependencies = phase_graph.dependencies_of(phase_id)
        suffix = f"  <- {', '.join(dependencies)}" if dependencies else ""
        print(f"{phase_id}{suffix}")
    return int(ExitCode.SUCCESS)


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    print(json.dumps(redact_config(config), indent=2, sort_keys=True, ensure_ascii=False))
    return int(ExitCode.SUCCESS)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    try:
        return load_config(getattr(args, "config_path", None))
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(f"invalid configuration: {exc}") from exc


def _load_graph(config: Mapping[str, Any]) -> PhaseGraph:
    catalogue = config.get("pipeline", {}).get("catalogue_path")
    try:
        return load_phase_graph(catalogue)
    except (OSError, PhaseGraphError) as exc:
        raise CLIError(f"invalid pipeline catalogue: {exc}") from exc


@contextmanager
def _logging_session(args: argparse.Namespace, config: Mapping[str, Any]) -> Iterator[None]:
    """Enable file logging for one command when ``--log`` is given."""

    if not getattr(args, "log", False):
        yield
        return
    setup_logging(
        config.get("observability"),
        run_id=uuid.uuid4().hex,
        log_dir=config["paths"]["log_dir"],
    )
    structlog.get_logger(__name__).info("cli_logging_enabled")
    try:
        yield
    finally:
        shutdown_logging()


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False))


__all__ = ["CLIError", "ExitCode", "build_parser", "main", "run_cli"]
