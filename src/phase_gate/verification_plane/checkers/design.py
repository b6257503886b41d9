"""Design-system and design output checks."""

from __future__ import annotations

import re
from typing import Final

from phase_gate.verification_plane.checkers.common import format_number, section
from phase_gate.verification_plane.registry import (
    CheckContext,
    ValidatorImplementation,
    register_check,
)
from phase_gate.verification_plane.results import CheckValue, ValidationResult

MIN_DESIGN_DOCUMENT_CHARS: Final[int] = 500
_TYPOGRAPHY_TOKENS: Final[frozenset[str]] = frozenset({"body", "label", "heading", "display"})
_PURPLE_PRIMARY: Final[re.Pattern[str]] = re.compile(
    r"\b(primary|accent)\b[^\n]{0,120}\b(purple|indigo|violet)\b", re.IGNORECASE
)


def _design_tokens(ctx: CheckContext) -> str:
    return (
        ctx.read_artifact("design-tokens.md", "SPEC_DESIGN_TOKENS")
        or ctx.read_artifact("design-system.md", "SPEC_DESIGN_TOKENS")
        or ctx.read_artifact("design-system.md", "SPEC")
    )


@register_check(ValidatorImplementation.DESIGN_VALIDATOR)
def check_design_system(ctx: CheckContext) -> ValidationResult:
    """Design tokens use OKLCH, avoid purple accents and keep spacing on a 4px grid."""

    content = _design_tokens(ctx)
    if not content:
        return ValidationResult.warned(
            "design-tokens.md (or legacy design-system.md) not found - "
            "skipping design system compliance validation",
            checks={"design_tokens_exists": False},
        )

    checks: dict[str, CheckValue] = {}
    errors: list[str] = []
    warnings: list[str] = []

    checks["oklch_color_format"] = bool(re.search(r"oklch\(|\bOKLCH\b", content, re.I))
    if not checks["oklch_color_format"]:
        errors.append("Design tokens file does not appear to use OKLCH color format")

    checks["no_purple_primary"] = _PURPLE_PRIMARY.search(content) is None
    if not checks["no_purple_primary"]:
        errors.append(
            "Design tokens file appears to use purple/indigo/violet for primary/accent tokens"
        )

    checks["reduced_motion_support"] = bool(
        re.search(r"useReducedMotion|reduced\s+motion", content, re.I)
    )
    if not checks["reduced_motion_support"]:
        warnings.append(
            "Design tokens file does not mention reduced motion support (useReducedMotion)"
        )

    checks["has_animation_tokens"] = bool(
        re.search(r"duration", content, re.I) and re.search(r"spring", content, re.I)
    )
    if not checks["has_animation_tokens"]:
        warnings.append(
            "Design tokens file does not clearly define animation tokens (durations + springs)"
        )

    typography = section(content, "Typography") or content
    found_tokens = {
        token.lower()
        for token in re.findall(r"\b(body|label|heading|display)\b", typography, re.I)
    }
    checks["typography_tokens_present"] = _TYPOGRAPHY_TOKENS <= found_tokens
    if not checks["typography_tokens_present"]:
        warnings.append(
            "Typography section does not clearly define the 4 required tokens: "
            "body, label, heading, display"
        )

    grid = int(dict(ctx.param("checks", {})).get("spacing_grid", 4) or 4)
    spacing = section(content, "Spacing")
    if spacing:
        values = [float(raw) for raw in re.findall(r"\b(\d+(?:\.\d+)?)\s*px\b", spacing)]
        off_grid = [value for value in values if value % grid != 0]
        checks[f"spacing_divisible_by_{grid}"] = not off_grid
        if off_grid:
            rendered = ", ".join(format_number(value) for value in off_grid[:8])
            warnings.append(
                f"Found spacing values not divisible by {grid} in Spacing section: {rendered}"
            )
    else:
        warnings.append("No Spacing section found; cannot validate spacing token grid")

    lowered = content.lower()
    for pattern in ctx.param("anti_patterns", ()):
        needle = str(pattern).lower()
        if needle and needle in lowered and "avoid" not in needle and "no " not in needle:
            checks[f"anti_pattern_mentioned:{pattern}"] = True

    checks["design_checks_config_present"] = bool(ctx.param("checks", {}))
    return ValidationResult.from_findings(checks=checks, errors=errors, warnings=warnings)


@register_check(ValidatorImplementation.TWO_FILE_DESIGN_OUTPUT)
def check_two_file_design(ctx: CheckContext) -> ValidationResult:
    mapping = ctx.artifact("component-mapping.md", "SPEC_DESIGN_COMPONENTS")
    journeys = ctx.artifact("journey-maps.md", "SPEC_DESIGN_COMPONENTS")
    has_mapping = len(mapping) >= MIN_DESIGN_DOCUMENT_CHARS
    has_journeys = len(journeys) >= MIN_DESIGN_DOCUMENT_CHARS

    checks: dict[str, CheckValue] = {
        "component_mapping_exists": has_mapping,
        "journey_maps_exist": has_journeys,
    }
    errors: list[str] = []
    warnings: list[str] = []
    if not has_mapping:
        errors.append("component-mapping.md missing or incomplete (< 500 chars)")
    if not has_journeys:
        errors.append("journey-maps.md missing or incomplete (< 500 chars)")

    if has_mapping and has_journeys:
        journey_count = len(re.findall(r"^##?\s*Journey\s*\d+", journeys, re.I | re.M))
        checks["journey_count"] = journey_count >= 3
        if journey_count < 3:
            warnings.append(
                f"journey-maps.md has only {journey_count} journeys (min 3 recommended)"
            )

        checks["has_error_states"] = bool(re.search(r"error\s*state", journeys, re.I))
        checks["has_empty_states"] = bool(re.search(r"empty\s*state", journeys, re.I))
        if not checks["has_error_states"]:
            warnings.append("journey-maps.md missing error states documentation")
        if not checks["has_empty_states"]:
            warnings.append("journey-maps.md missing empty states documentation")

        checks["has_component_references"] = bool(
            re.search(r"\b(COMP|COMPONENT)-?\d+", journeys, re.I)
        )
        if not checks["has_component_references"]:
            warnings.append(
                "journey-maps.md should reference components from component-mapping.md"
            )

    return ValidationResult.from_findings(checks=checks, errors=errors, warnings=warnings)


__all__ = ["MIN_DESIGN_DOCUMENT_CHARS", "check_design_system", "check_two_file_design"]
