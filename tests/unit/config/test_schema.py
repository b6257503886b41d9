"""
phase-gate: unit tests for config schema validation

File: tests/unit/config/test_schema.py

Purpose
- Validate strict schema behavior, structured issue paths, migration guidance and redaction.
"""

from __future__ import annotations

import pytest

from phase_gate.config.schema import (
    ConfigSchemaVersion,
    ConfigValidationError,
    assert_valid_config,
    default_config,
    is_sensitive_key,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)


def _issue_paths(config: dict[str, object]) -> list[str]:
    return [issue.path for issue in validate_config(config).issues]


def test_defaults_are_valid() -> None:
    result = validate_config(default_config())

    assert result.is_valid
    assert result.config is not None
    assert result.config["safeguards"]["max_lines_changed"] == 50
    assert result.config["root_cause"]["escalation_threshold"] == 0.8
    assert result.config["validation"]["content_min_lengths"]["PRD.md"] == 3000


def test_default_config_is_a_fresh_copy() -> None:
    first = default_config()
    first["safeguards"]["max_lines_changed"] = 1

    assert default_config()["safeguards"]["max_lines_changed"] == 50


def test_unknown_key_reports_its_path() -> None:
    config = merge_config(default_config(), {"safeguards": {"max_lines": 10}})

    assert _issue_paths(config) == ["safeguards.max_lines"]


def test_embedded_secret_key_is_rejected_with_guidance() -> None:
    config = merge_config(default_config(), {"root_cause": {"api_key": "sk-live"}})

    issues = validate_config(config).issues
    assert [issue.path for issue in issues] == ["root_cause.api_key"]
    assert "*_env" in issues[0].message


def test_bad_enum_lists_allowed_values() -> None:
    config = merge_config(default_config(), {"observability": {"log_format": "xml"}})

    issues = validate_config(config).issues
    assert len(issues) == 1
    assert issues[0].path == "observability.log_format"
    assert "json, text" in issues[0].message


def test_threshold_outside_unit_interval_is_rejected() -> None:
    config = merge_config(default_config(), {"root_cause": {"escalation_threshold": 1.5}})

    assert _issue_paths(config) == ["root_cause.escalation_threshold"]


def test_missing_section_is_reported() -> None:
    config = default_config()
    del config["safeguards"]  # type: ignore[misc]

    assert _issue_paths(config) == ["safeguards"]


def test_content_min_length_names_must_be_bare_filenames() -> None:
    config = merge_config(
        default_config(), {"validation": {"content_min_lengths": {"../PRD.md": 10}}}
    )

    assert _issue_paths(config) == ["validation.content_min_lengths.../PRD.md"]


def test_schema_version_mismatch_carries_migration_guidance() -> None:
    newer = ConfigSchemaVersion + 1
    config = merge_config(default_config(), {"meta": {"schema_version": newer}})

    issues = validate_config(config).issues
    assert [issue.path for issue in issues] == ["meta.schema_version"]
    assert issues[0].message == migration_guidance(newer)
    assert "upgrade the phase-gate runtime" in issues[0].message


def test_assert_valid_config_raises_with_issues() -> None:
    config = merge_config(default_config(), {"scanners": {"timeout_seconds": 0}})

    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(config)

    assert [issue.path for issue in excinfo.value.issues] == ["scanners.timeout_seconds"]
    assert "scanners.timeout_seconds" in str(excinfo.value)


def test_protected_artifacts_are_deduplicated_and_sorted() -> None:
    config = merge_config(
        default_config(),
        {"safeguards": {"protected_artifacts": ["b.md", "a.md", "b.md"]}},
    )

    validated = assert_valid_config(config)
    assert validated["safeguards"]["protected_artifacts"] == ["a.md", "b.md"]


def test_merge_replaces_scalars_and_keeps_siblings() -> None:
    merged = merge_config(default_config(), {"root_cause": {"use_fallback": False}})

    assert merged["root_cause"]["use_fallback"] is False
    assert merged["root_cause"]["timeout_seconds"] == 30.0


def test_redaction_is_recursive_and_non_destructive() -> None:
    original = {
        "client": {"api_key": "sk-live", "apiKey": "also-secret", "endpoint": "https://x"},
        "items": [{"password": "hunter2"}],
        "token_env": "PHASE_GATE_TOKEN",
    }

    redacted = redact_config(original)

    assert redacted["client"]["api_key"] == "<redacted>"
    assert redacted["client"]["apiKey"] == "<redacted>"
    assert redacted["client"]["endpoint"] == "https://x"
    assert redacted["items"] == [{"password": "<redacted>"}]
    assert redacted["token_env"] == "PHASE_GATE_TOKEN"
    assert original["client"]["api_key"] == "sk-live"


@pytest.mark.parametrize(
    ("key", "expected"),
    [
        ("api_key", True),
        ("clientSecret", True),
        ("db_password", True),
        ("token_env", False),
        ("design-tokens.json", False),
        ("max_lines_changed", False),
    ],
)
def test_sensitive_key_detection(key: str, expected: bool) -> None:
    assert is_sensitive_key(key) is expected


def test_non_mapping_root_is_a_single_issue() -> None:
    result = validate_config(["not", "a", "table"])

    assert result.config is None
    assert [issue.path for issue in result.issues] == ["<root>"]
