"""
phase-gate config package public API.

File: src/phase_gate/config/__init__.py

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``phase_gate.toml`` + ``PHASE_GATE_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from phase_gate.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    load_config,
    normalize_paths,
)
from phase_gate.config.schema import (
    DEFAULT_CONFIG,
    PATH_FIELDS,
    REDACTED_VALUE,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    PhaseGateConfig,
    assert_valid_config,
    default_config,
    is_sensitive_key,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)

__all__ = [
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PATH_FIELDS",
    "PhaseGateConfig",
    "REDACTED_VALUE",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "is_sensitive_key",
    "load_config",
    "merge_config",
    "migration_guidance",
    "normalize_paths",
    "redact_config",
    "validate_config",
]
