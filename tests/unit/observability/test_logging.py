"""
phase-gate: unit tests for observability logging

File: tests/unit/observability/test_logging.py

Purpose
- Validate JSON-lines logging with redaction, correlation metadata and structlog routing.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
import structlog

from phase_gate.observability.logging import (
    LoggingConfig,
    correlation_scope,
    default_log_redactor,
    get_correlation_context,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _logger_name() -> str:
    return f"phase_gate.tests.logging.{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_json_lines_carry_run_and_correlation_fields(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(run_id="run-correlation", base_log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)

    with correlation_scope(project_id="proj-demo", phase="SPEC_PM"):
        logger.info("validation_run_completed", extra={"errors": 0})
    logger.info("outside_scope")

    shutdown_logging(handle)

    first, second = _read_json_lines(handle.log_path)
    assert first["event"] == "validation_run_completed"
    assert first["run_id"] == "run-correlation"
    assert first["project_id"] == "proj-demo"
    assert first["phase"] == "SPEC_PM"
    assert first["fields"] == {"errors": 0}
    assert "project_id" not in second
    assert handle.log_path == tmp_path / "run-correlation" / "phase_gate.jsonl"


def test_secrets_and_prompt_bodies_are_redacted(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(run_id="run-redaction", base_log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)

    logger.info(
        "escalating token=tok-FAKE with Bearer abc.def",
        extra={"prompt": "PRD.md body text", "nested": {"password": "hunter2", "safe": "ok"}},
    )
    shutdown_logging(handle)

    line = handle.log_path.read_text(encoding="utf-8")
    assert "tok-FAKE" not in line
    assert "abc.def" not in line
    assert "PRD.md body text" not in line
    assert "hunter2" not in line
    assert "***REDACTED***" in line
    assert '"safe":"ok"' in line


def test_setup_logging_reads_observability_section(tmp_path: Path) -> None:
    setup_logging(
        {"log_level": "WARNING", "log_format": "json", "redact_secrets": True},
        run_id="run-wrapper",
        log_dir=tmp_path,
    )
    logger = logging.getLogger("phase_gate")

    logger.info("dropped_below_level")
    logger.warning("kept", extra={"api_key": "sk-123"})
    shutdown_logging()

    files = list((tmp_path / "run-wrapper").glob("*.jsonl"))
    assert len(files) == 1
    parsed = _read_json_lines(files[0])
    assert [entry["event"] for entry in parsed] == ["kept"]
    assert "sk-123" not in files[0].read_text(encoding="utf-8")


def test_setup_logging_can_disable_redaction(tmp_path: Path) -> None:
    setup_logging({"redact_secrets": False}, run_id="run-raw", log_dir=tmp_path)
    logging.getLogger("phase_gate").info("token=visible")
    shutdown_logging()

    content = (tmp_path / "run-raw" / "phase_gate.jsonl").read_text(encoding="utf-8")
    assert "token=visible" in content


def test_structlog_events_reach_the_file_sink(tmp_path: Path) -> None:
    setup_logging({}, run_id="run-structlog", log_dir=tmp_path)

    structlog.get_logger("phase_gate.remediation").info(
        "safeguard_evaluated", artifact="PRD.md", approved=True
    )
    shutdown_logging()

    (entry,) = _read_json_lines(tmp_path / "run-structlog" / "phase_gate.jsonl")
    assert entry["event"] == "safeguard_evaluated"
    fields = entry["fields"]
    assert isinstance(fields, dict)
    assert fields["artifact"] == "PRD.md"
    assert fields["approved"] is True


def test_queue_handler_is_installed_and_shutdown_flushes(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(run_id="run-flush", base_log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)
    assert any(isinstance(h, logging.handlers.QueueHandler) for h in logger.handlers)

    for index in range(200):
        logger.info("message %s", index)
    shutdown_logging(handle)

    assert handle.dropped_records == 0
    assert len(handle.log_path.read_text(encoding="utf-8").splitlines()) == 200


def test_correlation_scope_restores_previous_context() -> None:
    with correlation_scope(project_id="outer"):
        with correlation_scope(phase="DESIGN"):
            assert get_correlation_context() == {"project_id": "outer", "phase": "DESIGN"}
        assert get_correlation_context() == {"project_id": "outer"}
    assert get_correlation_context() == {}


def test_log_filename_must_not_contain_separators(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="path separators"):
        setup_structured_logging(
            LoggingConfig(run_id="run-bad", base_log_dir=tmp_path, log_filename="a/b.jsonl")
        )


def test_default_redactor_masks_sensitive_keys_recursively() -> None:
    redacted = default_log_redactor(
        {"client_secret": "s3cr3t", "items": [{"completion": "long text"}], "count": 3}
    )

    assert redacted == {
        "client_secret": "***REDACTED***",
        "items": [{"completion": "***REDACTED***"}],
        "count": 3,
    }
