"""
phase-gate: unit tests for config loader

File: tests/unit/config/test_loader.py

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Env var path mapping and type coercion.
- Path normalization relative to the config file.
- Redacted effective config dumping.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from phase_gate.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    load_config,
)
from phase_gate.config.schema import ConfigValidationError


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_defaults_load_without_a_config_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_config(environ={})

    assert config["validation"]["content_min_lengths"]["PRD.md"] == 3000
    assert config["safeguards"]["max_lines_changed"] == 50
    assert config["root_cause"]["escalation_threshold"] == 0.8
    assert config["paths"]["projects_root"] == (tmp_path / "projects").as_posix()


def test_precedence_cli_over_env_over_file(tmp_path: Path) -> None:
    config_path = tmp_path / "conf" / "phase_gate.toml"
    _write_config(
        config_path,
        """
[safeguards]
max_lines_changed = 10

[scanners]
timeout_seconds = 5.0

[observability]
log_level = "DEBUG"
""",
    )

    config = load_config(
        config_path,
        environ={
            "PHASE_GATE_SAFEGUARDS_MAX_LINES_CHANGED": "20",
            "PHASE_GATE_OBSERVABILITY_LOG_LEVEL": "WARNING",
        },
        cli_overrides={"safeguards.max_lines_changed": 30},
    )

    assert config["safeguards"]["max_lines_changed"] == 30
    assert config["observability"]["log_level"] == "WARNING"
    assert config["scanners"]["timeout_seconds"] == 5.0


def test_env_booleans_and_floats_are_coerced(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    config = load_config(
        environ={
            "PHASE_GATE_ROOT_CAUSE_USE_FALLBACK": "off",
            "PHASE_GATE_ROOT_CAUSE_ESCALATION_THRESHOLD": "0.5",
        },
    )

    assert config["root_cause"]["use_fallback"] is False
    assert config["root_cause"]["escalation_threshold"] == 0.5


def test_invalid_env_value_is_a_load_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ConfigLoadError, match="must be an integer"):
        load_config(environ={"PHASE_GATE_SAFEGUARDS_MAX_LINES_CHANGED": "many"})


def test_paths_are_normalized_relative_to_config_file(tmp_path: Path) -> None:
    config_path = tmp_path / "deploy" / "phase_gate.toml"
    _write_config(
        config_path,
        """
[paths]
projects_root = "../data/projects"

[pipeline]
catalogue_path = "pipeline.yaml"
""",
    )

    config = load_config(config_path, environ={})

    assert config["paths"]["projects_root"] == (tmp_path / "data" / "projects").as_posix()
    assert config["pipeline"]["catalogue_path"] == (
        tmp_path / "deploy" / "pipeline.yaml"
    ).as_posix()


def test_content_min_lengths_table_merges_with_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "phase_gate.toml"
    _write_config(
        config_path,
        """
[validation.content_min_lengths]
"PRD.md" = 10
"notes.md" = 42
""",
    )

    config = load_config(config_path, environ={})

    table = config["validation"]["content_min_lengths"]
    assert table["PRD.md"] == 10
    assert table["notes.md"] == 42
    assert table["tasks.md"] == 2000


def test_explicit_missing_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={})


def test_invalid_toml_is_an_error(tmp_path: Path) -> None:
    config_path = tmp_path / "phase_gate.toml"
    _write_config(config_path, "[safeguards\nmax_lines_changed = 1")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_schema_violations_surface_as_validation_errors(tmp_path: Path) -> None:
    config_path = tmp_path / "phase_gate.toml"
    _write_config(
        config_path,
        """
[root_cause]
escalation_threshold = 1.5
""",
    )

    with pytest.raises(ConfigValidationError) as error:
        load_config(config_path, environ={})
    assert any(issue.path == "root_cause.escalation_threshold" for issue in error.value.issues)


def test_dump_effective_config_is_deterministic_json(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    config = load_config(environ={})

    first = dump_effective_config(config)
    second = dump_effective_config(load_config(environ={}))

    assert first == second
    assert json.loads(first)["safeguards"]["protected_artifacts"] == [
        "constitution.md",
        "project-brief.md",
    ]
