"""
phase-gate: document structure checks.

File: src/phase_gate/verification_plane/checkers/documents.py

Purpose
- Presence, frontmatter, content length, coverage, OpenAPI shape, project field, JSON
  required fields, handoff sections and archive contents.

Functional requirements
- Presence and JSON checks read the project tree for the active phase; the others read
  through the artifact snapshot.
- Every check returns a ``ValidationResult`` and never raises for malformed artifacts.
"""

from __future__ import annotations

import json
import re
import zipfile
from collections.abc import Mapping
from pathlib import PurePosixPath
from typing import Any

from phase_gate.verification_plane.checkers.common import (
    FRONTMATTER_FIELDS,
    extract_frontmatter,
    frontmatter_has,
)
from phase_gate.verification_plane.registry import (
    CheckContext,
    ValidatorImplementation,
    register_check,
)
from phase_gate.verification_plane.results import CheckValue, ValidationResult

_LOOSE_REQUIREMENT = re.compile(r"REQ-\w+-\d+")
_NUMBERED_TASK = re.compile(r"## Task \d+\.\d+")


@register_check(ValidatorImplementation.FILE_EXISTS_CHECK)
def check_required_files(ctx: CheckContext) -> ValidationResult:
    checks: dict[str, CheckValue] = {}
    errors: list[str] = []
    phase_dir = ctx.phase_dir()
    for filename in ctx.phase_graph.required_files(ctx.phase):
        exists = (phase_dir / filename).exists()
        checks[filename] = exists
        if not exists:
            errors.append(f"Required file missing: {filename}")
    return ValidationResult.from_findings(checks=checks, errors=errors)


@register_check(ValidatorImplementation.FRONTMATTER_PARSER)
def check_frontmatter(ctx: CheckContext) -> ValidationResult:
    fields = tuple(ctx.param("required_fields", FRONTMATTER_FIELDS))
    checks: dict[str, CheckValue] = {}
    errors: list[str] = []
    for filename in ctx.phase_graph.markdown_files(ctx.phase):
        frontmatter = extract_frontmatter(ctx.artifact(filename))
        checks[filename] = True
        for field_name in fields:
            if not frontmatter_has(frontmatter, field_name):
                errors.append(f"{filename} missing frontmatter field: {field_name}")
                checks[filename] = False
    return ValidationResult.from_findings(checks=checks, errors=errors)


def _minimum_length(ctx: CheckContext, filename: str) -> int | None:
    table = ctx.config_section("validation").get("content_min_lengths")
    if isinstance(table, Mapping) and filename in table:
        return int(table[filename])
    return None


@register_check(ValidatorImplementation.CONTENT_LENGTH_CHECK)
def check_content_length(ctx: CheckContext) -> ValidationResult:
    checks: dict[str, CheckValue] = {}
    errors: list[str] = []
    for filename in ctx.phase_graph.required_files(ctx.phase):
        minimum = _minimum_length(ctx, filename)
        if minimum is None:
            continue
        length = len(re.sub(r"\s", "", ctx.artifact(filename)))
        checks[filename] = length >= minimum
        if length < minimum:
            errors.append(f"{filename} content too short: {length} chars (min {minimum})")
    return ValidationResult.from_findings(checks=checks, errors=errors)


def _coverage_error(ctx: CheckContext, filename: str, rule: str) -> str | None:
    if rule == "at_least_5_requirements":
        found = len(_LOOSE_REQUIREMENT.findall(ctx.artifact("PRD.md")))
        return None if found >= 5 else f"{filename} has only {found} requirements (min 5)"

    if rule == "has_tables":
        content = ctx.artifact("data-model.md")
        if "CREATE TABLE" in content or "```sql" in content:
            return None
        return f"{filename} missing table definitions"

    if rule == "has_endpoints":
        try:
            document = json.loads(ctx.artifact("api-spec.json"))
        except json.JSONDecodeError:
            return f"{filename} is not valid JSON"
        paths = document.get("paths") if isinstance(document, dict) else None
        return None if paths else f"{filename} has no endpoints defined"

    if rule == "at_least_10_tasks":
        found = len(_NUMBERED_TASK.findall(ctx.artifact("tasks.md")))
        return None if found >= 10 else f"{filename} has only {found} tasks (min 10)"

    return None


@register_check(ValidatorImplementation.COVERAGE_ANALYSIS)
def check_coverage(ctx: CheckContext) -> ValidationResult:
    requirements = ctx.param("requirements", {})
    checks: dict[str, CheckValue] = {}
    errors: list[str] = []
    for filename, rule in requirements.items():
        error = _coverage_error(ctx, str(filename), str(rule))
        checks[str(filename)] = error is None
        if error is not None:
            errors.append(error)
    return ValidationResult.from_findings(checks=checks, errors=errors)


@register_check(ValidatorImplementation.OPENAPI_VALIDATOR)
def check_openapi(ctx: CheckContext) -> ValidationResult:
    try:
        document: Any = json.loads(ctx.artifact("api-spec.json"))
    except json.JSONDecodeError as exc:
        return ValidationResult.failed(
            f"Invalid JSON in api-spec.json: {exc}", checks={"valid_json": False}
        )
    if not isinstance(document, dict):
        document = {}

    version = document.get("openapi")
    checks: dict[str, CheckValue] = {
        "has_openapi_version": isinstance(version, str) and version.startswith("3."),
        "has_info": bool(document.get("info")),
        "has_paths": bool(document.get("paths")),
    }
    errors: list[str] = []
    if not checks["has_openapi_version"]:
        errors.append("Missing or invalid OpenAPI version")
    if not checks["has_info"]:
        errors.append("Missing API info section")
    if not checks["has_paths"]:
        errors.append("No API paths defined")
    return ValidationResult.from_findings(checks=checks, errors=errors)


def _render(value: object) -> str:
    if isinstance(value, bool) or value is None:
        return json.dumps(value)
    return str(value)


@register_check(ValidatorImplementation.DATABASE_FIELD_CHECK)
def check_project_field(ctx: CheckContext) -> ValidationResult:
    field_name = str(ctx.param("field", ""))
    expected = ctx.params.get("expected_value")
    actual = ctx.project.field_value(field_name)
    matches = actual == expected and type(actual) is type(expected)
    errors = [] if matches else [
        f"{field_name} is {_render(actual)} (expected {_render(expected)})"
    ]
    return ValidationResult.from_findings(checks={field_name: matches}, errors=errors)


@register_check(ValidatorImplementation.JSON_SCHEMA_CHECK)
def check_json_fields(ctx: CheckContext) -> ValidationResult:
    artifact = str(ctx.param("artifact", ""))
    path = ctx.phase_dir() / artifact
    if not artifact or not path.is_file():
        return ValidationResult.failed(
            f"Required JSON artifact missing: {artifact}", checks={artifact: False}
        )
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        return ValidationResult.failed(
            f"Failed to parse {artifact} as JSON: {exc}", checks={artifact: False}
        )

    checks: dict[str, CheckValue] = {artifact: True}
    errors: list[str] = []
    for field_name in ctx.param("required_fields", ()):
        present = isinstance(document, dict) and field_name in document
        checks[f"{artifact}:{field_name}"] = present
        if not present:
            errors.append(f"{artifact} missing required field: {field_name}")
    return ValidationResult.from_findings(checks=checks, errors=errors)


@register_check(ValidatorImplementation.HANDOFF_VALIDATOR)
def check_handoff(ctx: CheckContext) -> ValidationResult:
    content = ctx.artifact("HANDOFF.md").lower()
    checks: dict[str, CheckValue] = {}
    errors: list[str] = []
    for section in ctx.param("required_sections", ()):
        present = str(section).lower() in content
        checks[str(section)] = present
        if not present:
            errors.append(f"HANDOFF.md missing section: {section}")
    return ValidationResult.from_findings(checks=checks, errors=errors)


@register_check(ValidatorImplementation.ZIP_VALIDATION)
def check_archive(ctx: CheckContext) -> ValidationResult:
    """Confirm the handoff archive exists and contains every required file by basename."""

    archive_name = str(ctx.param("archive", "project.zip"))
    required = [str(name) for name in ctx.param("required_files", ())]
    archive_path = ctx.project.project_path / archive_name

    if not archive_path.is_file():
        return ValidationResult.warned(
            f"ZIP archive not found: {archive_name}", checks={archive_name: False}
        )

    try:
        with zipfile.ZipFile(archive_path) as archive:
            members = {PurePosixPath(name).name for name in archive.namelist()}
    except (OSError, zipfile.BadZipFile) as exc:
        return ValidationResult.failed(
            f"ZIP archive is unreadable: {archive_name} ({exc})", checks={archive_name: False}
        )

    checks: dict[str, CheckValue] = {archive_name: True}
    errors: list[str] = []
    for filename in required:
        present = filename in members
        checks[filename] = present
        if not present:
            errors.append(f"ZIP archive missing file: {filename}")
    return ValidationResult.from_findings(checks=checks, errors=errors)


__all__ = [
    "check_archive",
    "check_content_length",
    "check_coverage",
    "check_frontmatter",
    "check_handoff",
    "check_json_fields",
    "check_openapi",
    "check_project_field",
    "check_required_files",
]
