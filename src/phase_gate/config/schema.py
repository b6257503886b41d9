"""
phase-gate: configuration schema and validation.

File: src/phase_gate/config/schema.py

Purpose
- Built-in defaults, the typed shape of ``phase_gate.toml`` and strict validation of
  merged config payloads.

Functional requirements
- Every section is described declaratively in ``_SECTIONS`` as field name -> checker.
- Validation reports every problem at once as ``(dotted path, message)`` issues and
  returns a normalized copy only when there are none.
- Keys that look like embedded credentials are rejected; callers store env var names
  under ``*_env`` keys instead.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Final, Literal, NotRequired, TypedDict

from phase_gate.constants import CONFIG_SCHEMA_VERSION, LOGS_DIR, PROJECTS_DIR, STATE_DB_PATH

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

REDACTED_VALUE: Final[str] = "<redacted>"

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "projects_root"),
    ("paths", "state_db"),
    ("paths", "log_dir"),
    ("pipeline", "catalogue_path"),
)

_WORD_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_SEPARATORS = re.compile(r"[^a-z0-9]+")
_BARE_FILENAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")

_SECRET_WORDS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passwd", "apikey", "private", "credential", "credentials"}
)
_SECRET_PHRASES: Final[tuple[str, ...]] = (
    "api_key",
    "access_token",
    "client_secret",
    "private_key",
    "password",
    "secret",
)


class MetaConfig(TypedDict):
    schema_version: int


class PathsConfig(TypedDict):
    projects_root: str
    state_db: str
    log_dir: str


class PipelineConfig(TypedDict):
    catalogue_path: NotRequired[str]


class ValidationConfig(TypedDict):
    content_min_lengths: dict[str, int]


class ScannersConfig(TypedDict):
    timeout_seconds: float
    npm_audit_command: list[str]
    pip_audit_command: list[str]


class RootCauseConfig(TypedDict):
    use_fallback: bool
    escalation_threshold: float
    timeout_seconds: float


class SafeguardsConfig(TypedDict):
    max_lines_changed: int
    protected_artifacts: list[str]


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "text"]
    redact_secrets: bool


class PhaseGateConfig(TypedDict):
    meta: MetaConfig
    paths: PathsConfig
    pipeline: PipelineConfig
    validation: ValidationConfig
    scanners: ScannersConfig
    root_cause: RootCauseConfig
    safeguards: SafeguardsConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[PhaseGateConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "paths": {
        "projects_root": str(PROJECTS_DIR),
        "state_db": str(STATE_DB_PATH),
        "log_dir": str(LOGS_DIR),
    },
    "pipeline": {},
    "validation": {
        "content_min_lengths": {
            "project-classification.json": 500,
            "constitution.md": 1000,
            "project-brief.md": 1500,
            "personas.md": 1500,
            "stack.json": 500,
            "stack-analysis.md": 1500,
            "PRD.md": 3000,
            "api-spec.json": 1000,
            "data-model.md": 1500,
            "design-tokens.json": 500,
            "component-mapping.md": 2000,
            "journey-maps.md": 2000,
            "dependencies.json": 500,
            "tasks.md": 2000,
        },
    },
    "scanners": {
        "timeout_seconds": 120.0,
        "npm_audit_command": ["npm", "audit", "--json"],
        "pip_audit_command": ["pip-audit", "--format", "json"],
    },
    "root_cause": {
        "use_fallback": True,
        "escalation_threshold": 0.8,
        "timeout_seconds": 30.0,
    },
    "safeguards": {
        "max_lines_changed": 50,
        "protected_artifacts": ["constitution.md", "project-brief.md"],
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "json",
        "redact_secrets": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """``config`` is the normalized payload, or ``None`` when any issue was found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised by :func:`assert_valid_config`; ``issues`` lists every failure."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "unknown validation failure"))


# ---------------------------------------------------------------------------
# Field checkers
# ---------------------------------------------------------------------------


class _Rejected(Exception):
    """Internal signal: the value at ``path`` failed a check."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(message)
        self.path = path
        self.message = message


@dataclass(slots=True)
class _Validation:
    issues: list[ConfigValidationIssue] = field(default_factory=list)

    def report(self, path: str, message: str) -> None:
        self.issues.append(ConfigValidationIssue(path=path, message=message))

    def attempt(self, check: Checker, value: object, path: str) -> tuple[bool, object]:
        try:
            return True, check(value, path, self)
        except _Rejected as rejected:
            self.report(rejected.path, rejected.message)
            return False, None


Checker = Callable[[object, str, _Validation], object]


def _type_name(value: object) -> str:
    return type(value).__name__


def _text(value: object, path: str, _: _Validation) -> str:
    if not isinstance(value, str):
        raise _Rejected(path, f"expected string, got {_type_name(value)}")
    stripped = value.strip()
    if not stripped:
        raise _Rejected(path, "must not be empty")
    return stripped


def _path_text(value: object, path: str, run: _Validation) -> str:
    text = _text(value, path, run)
    if "\x00" in text:
        raise _Rejected(path, "must not contain NUL bytes")
    return text


def _boolean(value: object, path: str, _: _Validation) -> bool:
    if not isinstance(value, bool):
        raise _Rejected(path, f"expected boolean, got {_type_name(value)}")
    return value


def _integer(*, minimum: int) -> Checker:
    def check(value: object, path: str, _: _Validation) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise _Rejected(path, f"expected integer, got {_type_name(value)}")
        if value < minimum:
            raise _Rejected(path, f"must be >= {minimum}")
        return value

    return check


def _number(*, minimum: float | None = None, unit_interval: bool = False) -> Checker:
    def check(value: object, path: str, _: _Validation) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise _Rejected(path, f"expected number, got {_type_name(value)}")
        number = float(value)
        if not math.isfinite(number):
            raise _Rejected(path, "must be finite")
        if minimum is not None and number < minimum:
            raise _Rejected(path, f"must be >= {minimum}")
        if unit_interval and not 0.0 <= number <= 1.0:
            raise _Rejected(path, "must be within [0, 1]")
        return number

    return check


def _choice(*allowed: str) -> Checker:
    def check(value: object, path: str, run: _Validation) -> str:
        text = _text(value, path, run)
        if text not in allowed:
            expected = ", ".join(sorted(allowed))
            raise _Rejected(path, f"invalid value {text!r}; expected one of: {expected}")
        return text

    return check


def _string_list(*, non_empty: bool = False, as_set: bool = False) -> Checker:
    def check(value: object, path: str, run: _Validation) -> list[str]:
        if isinstance(value, str) or not isinstance(value, Sequence):
            raise _Rejected(path, f"expected array of strings, got {_type_name(value)}")
        items: list[str] = []
        for index, item in enumerate(value):
            ok, text = run.attempt(_text, item, f"{path}[{index}]")
            if ok:
                items.append(str(text))
        if non_empty and not items:
            raise _Rejected(path, "must not be empty")
        return sorted(set(items)) if as_set else items

    return check


def _schema_version(value: object, path: str, run: _Validation) -> int:
    version = int(_integer(minimum=1)(value, path, run))
    if version != ConfigSchemaVersion:
        raise _Rejected(path, migration_guidance(version))
    return version


def _length_table(value: object, path: str, run: _Validation) -> dict[str, int]:
    table = _mapping(value, path)
    length = _integer(minimum=0)
    lengths: dict[str, int] = {}
    for name in sorted(table):
        item_path = f"{path}.{name}"
        if not _BARE_FILENAME.fullmatch(name):
            run.report(item_path, "must be a bare artifact filename")
            continue
        ok, parsed = run.attempt(length, table[name], item_path)
        if ok:
            lengths[name] = int(parsed)  # type: ignore[call-overload]
    return lengths


@dataclass(frozen=True, slots=True)
class _Field:
    check: Checker
    required: bool = True


_SECTIONS: Final[Mapping[str, Mapping[str, _Field]]] = {
    "meta": {"schema_version": _Field(_schema_version)},
    "paths": {
        "projects_root": _Field(_path_text),
        "state_db": _Field(_path_text),
        "log_dir": _Field(_path_text),
    },
    "pipeline": {"catalogue_path": _Field(_path_text, required=False)},
    "validation": {
        "content_min_lengths": _Field(_length_table),
    },
    "scanners": {
        "timeout_seconds": _Field(_number(minimum=0.001)),
        "npm_audit_command": _Field(_string_list(non_empty=True)),
        "pip_audit_command": _Field(_string_list(non_empty=True)),
    },
    "root_cause": {
        "use_fallback": _Field(_boolean),
        "escalation_threshold": _Field(_number(unit_interval=True)),
        "timeout_seconds": _Field(_number(minimum=0.001)),
    },
    "safeguards": {
        "max_lines_changed": _Field(_integer(minimum=0)),
        "protected_artifacts": _Field(_string_list(as_set=True)),
    },
    "observability": {
        "log_level": _Field(_choice("DEBUG", "INFO", "WARNING", "ERROR")),
        "log_format": _Field(_choice("json", "text")),
        "redact_secrets": _Field(_boolean),
    },
}


def _mapping(value: object, path: str) -> dict[str, object]:
    if not isinstance(value, Mapping):
        raise _Rejected(path, f"expected object, got {_type_name(value)}")
    bad_keys = [key for key in value if not isinstance(key, str)]
    if bad_keys:
        raise _Rejected(path, f"object key must be string, got {_type_name(bad_keys[0])}")
    return dict(value)


def _check_keys(
    payload: Mapping[str, object], known: Mapping[str, object], prefix: str, run: _Validation
) -> None:
    for key in sorted(payload):
        if key in known:
            continue
        if is_sensitive_key(key):
            run.report(
                f"{prefix}{key}",
                "embedded secret values are forbidden; use an *_env key with an env var name",
            )
        else:
            run.report(f"{prefix}{key}", "unknown field")


def _check_section(
    name: str, payload: Mapping[str, object], run: _Validation
) -> dict[str, Any]:
    fields = _SECTIONS[name]
    _check_keys(payload, fields, f"{name}.", run)
    normalized: dict[str, Any] = {}
    for key in sorted(fields):
        spec = fields[key]
        path = f"{name}.{key}"
        if key not in payload:
            if spec.required:
                run.report(path, "missing required field")
            continue
        ok, value = run.attempt(spec.check, payload[key], path)
        if ok:
            normalized[key] = value
    return normalized


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def default_config() -> PhaseGateConfig:
    """Fresh deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade phase_gate.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the phase-gate runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; tables merge, everything else replaces."""

    merged: dict[str, Any] = _clone(base)
    for key, value in overlay.items():
        if isinstance(value, Mapping):
            current = merged.get(key)
            merged[key] = merge_config(current if isinstance(current, Mapping) else {}, value)
        else:
            merged[key] = _clone(value)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    run = _Validation()
    try:
        root = _mapping(config, "<root>")
    except _Rejected as rejected:
        run.report(rejected.path, rejected.message)
        return ConfigValidationResult(config=None, issues=tuple(run.issues))

    _check_keys(root, _SECTIONS, "", run)
    normalized: dict[str, Any] = {}
    for name in sorted(_SECTIONS):
        if name not in root:
            run.report(name, "missing required field")
            continue
        try:
            section = _mapping(root[name], name)
        except _Rejected as rejected:
            run.report(rejected.path, rejected.message)
            continue
        normalized[name] = _check_section(name, section, run)

    issues = tuple(run.issues)
    return ConfigValidationResult(config=None if issues else normalized, issues=issues)


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Copy of ``config`` with credential-looking keys replaced, safe to print or log."""

    if not isinstance(config, Mapping):
        return {}
    return _redacted(config)  # type: ignore[return-value]


def is_sensitive_key(key: str) -> bool:
    """True for keys such as ``api_key`` or ``clientSecret``; ``*_env`` keys are exempt."""

    snake = _SEPARATORS.sub("_", _WORD_BOUNDARY.sub(r"\1_\2", key.strip()).lower()).strip("_")
    if snake.endswith("_env"):
        return False
    if any(phrase in snake for phrase in _SECRET_PHRASES):
        return True
    return not _SECRET_WORDS.isdisjoint(snake.split("_"))


def _redacted(value: object) -> object:
    if isinstance(value, Mapping):
        return {
            key: REDACTED_VALUE if is_sensitive_key(str(key)) else _redacted(value[key])
            for key in sorted(value)
        }
    if isinstance(value, (list, tuple)):
        return [_redacted(item) for item in value]
    return value


def _clone(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _clone(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, list):
        return [_clone(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_clone(item) for item in value)
    return copy.deepcopy(value)


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "PATH_FIELDS",
    "PhaseGateConfig",
    "REDACTED_VALUE",
    "assert_valid_config",
    "default_config",
    "is_sensitive_key",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
