"""
phase-gate: generic generated-design pattern detector.

File: src/phase_gate/verification_plane/anti_slop.py

Purpose
- Flag design artifacts that fall back on stock generated-design tropes (purple gradients,
  blob backgrounds) and note missing design-system conventions.

Functional requirements
- Forbidden patterns are errors; each family is reported at most once per artifact.
- Missing conventions (OKLCH colors, 60/30/10 rule, 8pt grid, four typography tokens) are
  warnings.
- The default "Inter" font is rewritten rather than reported.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

from phase_gate.verification_plane.results import ValidationResult

PURPLE_GRADIENT_ERROR: Final[str] = (
    "Forbidden pattern detected: Purple gradient (AI-generated design anti-pattern)"
)
BLOB_BACKGROUND_ERROR: Final[str] = (
    "Forbidden pattern detected: Blob background (AI-generated design anti-pattern)"
)

_PURPLE_GRADIENT_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\bpurple.*gradient\b", re.IGNORECASE),
    re.compile(r"\bgradient.*purple\b", re.IGNORECASE),
    re.compile(r"\bviolet.*gradient\b", re.IGNORECASE),
    re.compile(r"\bindigo.*gradient\b", re.IGNORECASE),
    re.compile(r"#8[Bb]5[Aa][Cc][Ff]"),
    re.compile(r"#7[Cc]21[Aa][Bb]"),
    re.compile(r"#a[0-9a-f]{5}[fF]", re.IGNORECASE),
    re.compile(r"linear-gradient.*#(?:8b5|7c2|a[0-9a-f]{5})", re.IGNORECASE),
    re.compile(
        r"\b(?:purple|violet|indigo)\b[^\n]{0,50}(?:primary|accent|background)", re.IGNORECASE
    ),
    # hue 270-320 is the purple band
    re.compile(r"oklch\([\d.]+\s*[\d.]+\s*(?:2[7-9][0-9]|3[0-2][0-9])(\s*/)?\)", re.IGNORECASE),
)

_BLOB_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\bblob\s+background\b", re.IGNORECASE),
    re.compile(r"\bbackground.*blob\b", re.IGNORECASE),
    re.compile(r"\.blob\b", re.IGNORECASE),
    re.compile(r"\bblob-.*\.(?:svg|png|jpg)", re.IGNORECASE),
    re.compile(r"blob\.svg", re.IGNORECASE),
    re.compile(r"border-radius:\s*[\d.]+%(?![\d.]*%)"),
)

_INTER_FONT_REWRITES: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (re.compile(r'"Inter",?\s*sans-serif', re.IGNORECASE), '"DM Sans", sans-serif'),
    (re.compile(r"'Inter',?\s*sans-serif", re.IGNORECASE), "'DM Sans', sans-serif"),
    (re.compile(r"font-family:\s*['\"]?Inter['\"]?", re.IGNORECASE), 'font-family: "DM Sans"'),
    (
        re.compile(r"\bInter\b(?=.*(?:font|default|typography|family))", re.IGNORECASE),
        "DM Sans",
    ),
)

_TYPOGRAPHY_TOKENS: Final[tuple[str, ...]] = ("body", "label", "heading", "display")


@dataclass(frozen=True, slots=True)
class AutoFixResult:
    fixed: bool
    content: str
    replacements: tuple[str, ...] = ()


def detect_forbidden_patterns(content: str) -> list[str]:
    """Return one error per forbidden pattern family present in ``content``."""

    errors: list[str] = []
    if any(pattern.search(content) for pattern in _PURPLE_GRADIENT_PATTERNS):
        errors.append(PURPLE_GRADIENT_ERROR)
    if any(pattern.search(content) for pattern in _BLOB_PATTERNS):
        errors.append(BLOB_BACKGROUND_ERROR)
    return errors


def detect_missing_required_patterns(content: str) -> list[str]:
    warnings: list[str] = []

    if not re.search(r"oklch\(|\bOKLCH\b", content, re.IGNORECASE):
        warnings.append("Missing required pattern: OKLCH color format (use OKLCH for colors)")

    has_color_rule = (
        re.search(r"60[\s-]*30[\s-]*10|60/30/10", content, re.IGNORECASE)
        or re.search(r"sixty.*thirty.*ten|thirty.*sixty.*ten", content, re.IGNORECASE)
        or re.search(r"60%.*30%.*10%", content, re.IGNORECASE)
    )
    if not has_color_rule:
        warnings.append("Missing required pattern: 60/30/10 color rule (not documented)")

    has_grid = re.search(
        r"8\s*pt|8px|grid.*\b8\b|spacing.*\b8\b", content, re.IGNORECASE
    ) or re.search(r"base.*spacing.*\b[48]\b", content, re.IGNORECASE)
    if not has_grid:
        warnings.append("Missing required pattern: 8pt grid system (not documented)")

    missing = [
        token
        for token in _TYPOGRAPHY_TOKENS
        if not re.search(rf"\b{token}\b", content, re.IGNORECASE)
    ]
    if missing:
        warnings.append(
            f"Missing required typography tokens: {', '.join(missing)} "
            "(need all 4: body, label, heading, display)"
        )

    return warnings


def auto_fix_anti_slop(content: str) -> AutoFixResult:
    """Rewrite the stock "Inter" font family to "DM Sans"."""

    replacements: list[str] = []
    fixed = content
    for pattern, replacement in _INTER_FONT_REWRITES:
        if pattern.search(fixed):
            fixed = pattern.sub(replacement, fixed)
            replacements.append(
                'Replaced "Inter" font with "DM Sans" (Inter is considered AI slop)'
            )
    return AutoFixResult(fixed=bool(replacements), content=fixed, replacements=tuple(replacements))


def validate_anti_slop(artifact_name: str, content: str) -> ValidationResult:
    errors = detect_forbidden_patterns(content)
    warnings = detect_missing_required_patterns(content)
    checks = {
        "no_purple_gradient": PURPLE_GRADIENT_ERROR not in errors,
        "no_blob_background": BLOB_BACKGROUND_ERROR not in errors,
        "has_oklch_colors": not any("OKLCH" in warning for warning in warnings),
        "has_60_30_10_rule": not any("60/30/10" in warning for warning in warnings),
        "has_8pt_grid": not any("8pt" in warning for warning in warnings),
        "has_typography_sizes": not any("typography" in warning for warning in warnings),
    }
    return ValidationResult.from_findings(
        checks=checks,
        errors=errors,
        warnings=warnings,
        details={"artifact": artifact_name},
    )


__all__ = [
    "AutoFixResult",
    "BLOB_BACKGROUND_ERROR",
    "PURPLE_GRADIENT_ERROR",
    "auto_fix_anti_slop",
    "detect_forbidden_patterns",
    "detect_missing_required_patterns",
    "validate_anti_slop",
]
