"""Stack selection completeness check."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any, Final

from phase_gate.verification_plane.registry import (
    CheckContext,
    ValidatorImplementation,
    register_check,
)
from phase_gate.verification_plane.results import CheckValue, ValidationResult

STACK_PHASE: Final[str] = "STACK_SELECTION"
REQUIRED_LAYERS: Final[tuple[str, ...]] = (
    "Frontend",
    "Backend",
    "Database",
    "Deployment",
    "Mobile",
)
DEFAULT_WEB_TEMPLATES: Final[frozenset[str]] = frozenset({"nextjs_web_app", "nextjs_web_only"})

# (check name, section, key, expected pattern, provider label)
_DEFAULT_WEB_WIRING: Final[tuple[tuple[str, str, str, str, str], ...]] = (
    ("default_web_db_provider_neon", "database", "provider", r"neon", "Neon"),
    ("default_web_db_orm_drizzle", "database", "orm", r"drizzle", "Drizzle"),
    ("default_web_storage_r2", "storage", "provider", r"cloudflare\s*r2", "Cloudflare R2"),
    ("default_web_auth_better_auth", "auth", "provider", r"better\s*auth", "Better Auth"),
)


def _section_value(stack: Mapping[str, Any], section: str, key: str) -> str:
    block = stack.get(section)
    if not isinstance(block, Mapping):
        return ""
    value = block.get(key)
    return str(value) if value else ""


@register_check(ValidatorImplementation.STACK_VALIDATOR)
def check_stack(ctx: CheckContext) -> ValidationResult:
    checks: dict[str, CheckValue] = {}
    errors: list[str] = []
    warnings: list[str] = []

    stack: Mapping[str, Any] | None = None
    raw_stack = ctx.artifact("stack.json", STACK_PHASE)
    if raw_stack:
        try:
            parsed = json.loads(raw_stack)
        except json.JSONDecodeError:
            checks["stack.json_valid"] = False
            errors.append("stack.json is not valid JSON")
        else:
            checks["stack.json_valid"] = True
            stack = parsed if isinstance(parsed, Mapping) else {}
    else:
        checks["stack.json_present"] = False
        warnings.append("stack.json not found; cannot validate infra defaults")

    decision = ctx.artifact("stack-decision.md", STACK_PHASE)
    rationale = ctx.artifact("stack-rationale.md", STACK_PHASE)
    if not decision:
        return ValidationResult.failed(
            "stack-decision.md not found", checks={"stack-decision.md": False}
        )

    for layer in REQUIRED_LAYERS:
        present = re.search(rf"\b{layer}\b", decision, re.IGNORECASE) is not None
        checks[f"layer:{layer}"] = present
        if not present:
            warnings.append(f"stack-decision.md does not clearly specify the {layer} layer")

    checks["has_composition_table"] = bool(
        re.search(r"\|\s*Layer\s*\|\s*Technology\s*\|", decision, re.IGNORECASE)
    )
    if not checks["has_composition_table"]:
        warnings.append("stack-decision.md does not include the expected Composition table")

    checks["has_decision_matrix"] = bool(
        re.search(r"Decision Matrix|\|\s*Factor\s*\|\s*Weight\s*\|", rationale, re.IGNORECASE)
    )
    if not checks["has_decision_matrix"]:
        warnings.append("stack-rationale.md does not include a clear Decision Matrix")

    if stack is not None and str(stack.get("template_id") or "") in DEFAULT_WEB_TEMPLATES:
        for check_name, section, key, pattern, label in _DEFAULT_WEB_WIRING:
            actual = _section_value(stack, section, key)
            ok = re.search(pattern, actual, re.IGNORECASE) is not None
            checks[check_name] = ok
            if not ok:
                errors.append(
                    f"Default web stack must use {label} "
                    f'(stack.json {section}.{key}: "{actual or "MISSING"}")'
                )

    return ValidationResult.from_findings(checks=checks, errors=errors, warnings=warnings)


__all__ = ["DEFAULT_WEB_TEMPLATES", "REQUIRED_LAYERS", "STACK_PHASE", "check_stack"]
