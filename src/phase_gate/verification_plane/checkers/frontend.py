"""
phase-gate: generated frontend component checks.

File: src/phase_gate/verification_plane/checkers/frontend.py

Purpose
- Scan ``components/**/*.tsx`` in the FRONTEND_BUILD phase directory for debug statements,
  missing accessibility affordances and leftover placeholder text.

Functional requirements
- Files are visited in sorted order and reported relative to the phase directory.
- No components means nothing to flag; the presence check owns missing outputs.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import Final

from phase_gate.verification_plane.checkers.common import iter_files
from phase_gate.verification_plane.registry import (
    CheckContext,
    ValidatorImplementation,
    register_check,
)
from phase_gate.verification_plane.results import CheckValue, ValidationResult

FRONTEND_PHASE: Final[str] = "FRONTEND_BUILD"

_DEBUG_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"console\.(log|debug|info|warn|error)\s*\("),
    re.compile(r"debugger"),
)
_PLACEHOLDER_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"TODO[:\s]", re.IGNORECASE),
    re.compile(r"FIXME[:\s]", re.IGNORECASE),
    re.compile(r"placeholder", re.IGNORECASE),
    re.compile(r"lorem ipsum", re.IGNORECASE),
    re.compile(r"//\s*.*implement", re.IGNORECASE),
    re.compile(r"//\s*.*todo", re.IGNORECASE),
    re.compile(r"XXX[^\n]*"),
)
_REDUCED_MOTION: Final[re.Pattern[str]] = re.compile(
    r"prefers-reduced-motion|useReducedMotion", re.IGNORECASE
)
_INTERACTIVE: Final[re.Pattern[str]] = re.compile(r"<(button|a|input|select|textarea)")
_UNTYPED_BUTTON: Final[re.Pattern[str]] = re.compile(r"<button(?![^>]*type=)[^>]*>", re.IGNORECASE)


def iter_components(ctx: CheckContext) -> Iterator[tuple[str, str]]:
    """Yield ``(relative_path, source)`` for every component file."""

    phase_dir = ctx.phase_dir(FRONTEND_PHASE)
    for path in iter_files(phase_dir / "components", ".tsx"):
        relative = path.relative_to(phase_dir).as_posix()
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            ctx.logger.warning("component_read_failed", path=relative, error=str(exc))
            continue
        yield relative, source


@register_check(ValidatorImplementation.NO_CONSOLE_LOG)
def check_no_console(ctx: CheckContext) -> ValidationResult:
    errors: list[str] = []
    for relative, source in iter_components(ctx):
        for pattern in _DEBUG_PATTERNS:
            found = sum(1 for _ in pattern.finditer(source))
            if found:
                errors.append(f"{relative}: Contains {found} console/debugger statement(s)")
    return ValidationResult.from_findings(checks={"no_console_logs": not errors}, errors=errors)


@register_check(ValidatorImplementation.ACCESSIBILITY_CHECK)
def check_accessibility(ctx: CheckContext) -> ValidationResult:
    checks: dict[str, CheckValue] = {}
    errors: list[str] = []
    warnings: list[str] = []
    for relative, source in iter_components(ctx):
        reduced_motion = _REDUCED_MOTION.search(source) is not None
        checks[f"{relative}:has_useReducedMotion"] = reduced_motion
        if not reduced_motion:
            warnings.append(f"{relative}: Missing useReducedMotion accessibility check")

        if _INTERACTIVE.search(source) and "aria-" not in source:
            errors.append(f"{relative}: Interactive elements may lack ARIA attributes")

        untyped = len(_UNTYPED_BUTTON.findall(source))
        if untyped:
            warnings.append(f"{relative}: {untyped} button(s) missing type attribute")

    checks["accessibility_compliant"] = not errors and not warnings
    return ValidationResult.from_findings(checks=checks, errors=errors, warnings=warnings)


@register_check(ValidatorImplementation.NO_PLACEHOLDER)
def check_no_placeholders(ctx: CheckContext) -> ValidationResult:
    errors: list[str] = []
    for relative, source in iter_components(ctx):
        for pattern in _PLACEHOLDER_PATTERNS:
            match = pattern.search(source)
            if match is not None:
                errors.append(f'{relative}: Contains placeholder: "{match.group(0)[:50]}"')
    return ValidationResult.from_findings(checks={"no_placeholders": not errors}, errors=errors)


__all__ = [
    "FRONTEND_PHASE",
    "check_accessibility",
    "check_no_console",
    "check_no_placeholders",
    "iter_components",
]
