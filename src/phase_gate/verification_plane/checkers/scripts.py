"""
phase-gate: dependency audit scanners.

File: src/phase_gate/verification_plane/checkers/scripts.py

Purpose
- Run ``npm audit`` and ``pip-audit`` in the project root and fail on HIGH/CRITICAL
  findings.

Functional requirements
- A missing manifest skips the scanner with a warning and counts as passed.
- A non-zero exit still has its stdout parsed; audit tools exit non-zero on findings.
- A missing binary or a timeout reports the scanner as unavailable (warning, passed).
- Unparseable output falls back to a keyword scan.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Final

from phase_gate.verification_plane.executor import CommandSpec
from phase_gate.verification_plane.registry import (
    CheckContext,
    ValidatorImplementation,
    register_check,
)
from phase_gate.verification_plane.results import CheckValue, ValidationResult

_DEFAULT_NPM_COMMAND: Final[tuple[str, ...]] = ("npm", "audit", "--json")
_DEFAULT_PIP_COMMAND: Final[tuple[str, ...]] = ("pip-audit", "--format", "json")
_MAX_LISTED_PACKAGES: Final[int] = 5
_LOGGED_OUTPUT_CHARS: Final[int] = 2_000


@dataclass(slots=True)
class ScanOutcome:
    passed: bool
    message: str
    warnings: list[str] = field(default_factory=list)


def _severity_message(critical: int, high: int) -> str:
    return f"Found {critical} CRITICAL and {high} HIGH vulnerabilities"


def parse_npm_audit(output: str) -> ScanOutcome:
    try:
        report: Any = json.loads(output)
    except json.JSONDecodeError:
        upper = output.upper()
        if "CRITICAL" in upper or "HIGH" in upper:
            return ScanOutcome(False, "npm audit found HIGH or CRITICAL vulnerabilities")
        return ScanOutcome(True, "npm audit passed")
    if not isinstance(report, dict):
        report = {}

    critical = high = 0
    flagged: list[str] = []
    vulnerabilities = report.get("vulnerabilities") or {}
    for package, entry in vulnerabilities.items():
        severity = entry.get("severity") if isinstance(entry, dict) else None
        if severity == "critical":
            critical += 1
            flagged.append(f"{package} (CRITICAL)")
        elif severity == "high":
            high += 1
            flagged.append(f"{package} (HIGH)")

    if critical or high:
        return ScanOutcome(
            False, _severity_message(critical, high), flagged[:_MAX_LISTED_PACKAGES]
        )

    metadata = report.get("metadata") or {}
    total = metadata.get("vulnerabilities") if isinstance(metadata, dict) else None
    warnings = [f"Found {total} total vulnerabilities (all LOW/MODERATE)"] if total else []
    return ScanOutcome(True, "npm audit passed - no HIGH/CRITICAL vulnerabilities", warnings)


def parse_pip_audit(output: str) -> ScanOutcome:
    try:
        report: Any = json.loads(output)
    except json.JSONDecodeError:
        upper = output.upper()
        if "CRITICAL" in upper or "HIGH" in upper:
            return ScanOutcome(False, "pip-audit found HIGH or CRITICAL vulnerabilities")
        return ScanOutcome(True, "pip-audit passed")
    if not isinstance(report, dict):
        report = {}

    critical = high = 0
    flagged: list[str] = []
    vulnerabilities = report.get("vulnerabilities") or []
    for entry in vulnerabilities:
        if not isinstance(entry, dict):
            continue
        description = str(entry.get("description") or "").upper()
        vulnerability_id = str(entry.get("vulnerability_id") or "")
        label = f"{entry.get('name')} ({entry.get('vulnerability_id')})"
        if "CRITICAL" in description or "CRITICAL" in vulnerability_id:
            critical += 1
            flagged.append(label)
        elif not entry.get("fix_available"):
            # pip-audit carries no severity; unfixable findings are treated as HIGH
            high += 1
            flagged.append(label)

    if critical or high:
        return ScanOutcome(
            False, _severity_message(critical, high), flagged[:_MAX_LISTED_PACKAGES]
        )

    warnings = (
        [f"Found {len(vulnerabilities)} LOW/MODERATE vulnerabilities"] if vulnerabilities else []
    )
    return ScanOutcome(True, "pip-audit passed - no HIGH/CRITICAL vulnerabilities", warnings)


async def _run_scanner(
    ctx: CheckContext, argv: tuple[str, ...], label: str
) -> tuple[str | None, str | None]:
    """Return ``(stdout, None)`` or ``(None, unavailable_reason)``."""

    scanners = ctx.config_section("scanners")
    timeout = scanners.get("timeout_seconds")
    spec = CommandSpec(
        argv=argv,
        cwd=str(ctx.project.project_path),
        timeout_seconds=float(timeout) if timeout else None,
    )
    result = await ctx.executor.run(spec)
    record = result.to_dict(max_output_chars=_LOGGED_OUTPUT_CHARS)
    if result.unavailable:
        reason = result.error or "no exit status"
        ctx.logger.warning(
            "scanner_unavailable", scanner=label, error=reason, stderr=record["stderr"]
        )
        return None, reason
    ctx.logger.debug(
        "scanner_completed",
        scanner=label,
        exit_code=result.exit_code,
        duration_ms=result.duration_ms,
        stderr=record["stderr"],
    )
    return result.stdout, None


async def run_npm_audit(ctx: CheckContext) -> ScanOutcome:
    if not (ctx.project.project_path / "package.json").exists():
        return ScanOutcome(
            True,
            "No package.json found - npm audit skipped",
            ["npm audit skipped: no package.json"],
        )
    argv = tuple(ctx.config_section("scanners").get("npm_audit_command") or _DEFAULT_NPM_COMMAND)
    stdout, unavailable = await _run_scanner(ctx, argv, "npm_audit")
    if stdout is None:
        return ScanOutcome(True, "npm audit unavailable", [f"npm audit unavailable: {unavailable}"])
    return parse_npm_audit(stdout)


async def run_pip_audit(ctx: CheckContext) -> ScanOutcome:
    root = ctx.project.project_path
    if not (root / "requirements.txt").exists() and not (root / "setup.py").exists():
        return ScanOutcome(
            True,
            "No Python dependencies found - pip-audit skipped",
            ["pip-audit skipped: no requirements.txt or setup.py"],
        )
    argv = tuple(ctx.config_section("scanners").get("pip_audit_command") or _DEFAULT_PIP_COMMAND)
    stdout, unavailable = await _run_scanner(ctx, argv, "pip_audit")
    if stdout is None:
        return ScanOutcome(True, "pip-audit unavailable", [f"pip-audit unavailable: {unavailable}"])
    return parse_pip_audit(stdout)


@register_check(ValidatorImplementation.SCRIPT_EXECUTION)
async def check_scripts(ctx: CheckContext) -> ValidationResult:
    checks: dict[str, CheckValue] = {}
    errors: list[str] = []
    warnings: list[str] = []
    for script in ctx.param("scripts", ()):
        if script == "npm_audit":
            outcome = await run_npm_audit(ctx)
            prefix = "npm audit"
        elif script == "pip_audit":
            outcome = await run_pip_audit(ctx)
            prefix = "pip-audit"
        else:
            continue
        checks[script] = outcome.passed
        if not outcome.passed:
            errors.append(f"{prefix} found vulnerabilities: {outcome.message}")
        warnings.extend(outcome.warnings)
    return ValidationResult.from_findings(checks=checks, errors=errors, warnings=warnings)


__all__ = [
    "ScanOutcome",
    "check_scripts",
    "parse_npm_audit",
    "parse_pip_audit",
    "run_npm_audit",
    "run_pip_audit",
]
