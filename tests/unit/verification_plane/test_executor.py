from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from phase_gate.verification_plane.checkers.scripts import parse_npm_audit
from phase_gate.verification_plane.executor import (
    DEFAULT_MAX_OUTPUT_CHARS,
    CommandExecutor,
    CommandResult,
    CommandSpec,
    LocalSubprocessExecutor,
)


def test_command_rejects_empty_argv_and_bad_timeout() -> None:
    with pytest.raises(ValueError, match="argv"):
        CommandSpec(argv=())
    with pytest.raises(ValueError, match="timeout_seconds"):
        CommandSpec(argv=("npm",), timeout_seconds=0)


def test_local_executor_satisfies_protocol() -> None:
    assert isinstance(LocalSubprocessExecutor(), CommandExecutor)


@pytest.mark.asyncio
async def test_captures_output_and_exit_code(tmp_path: Path) -> None:
    script = "import sys; print('audit ok'); print('note', file=sys.stderr); sys.exit(3)"
    spec = CommandSpec(argv=(sys.executable, "-c", script), cwd=str(tmp_path))

    result = await LocalSubprocessExecutor().run(spec)

    assert result.exit_code == 3
    assert result.stdout == "audit ok\n"
    assert result.stderr == "note\n"
    assert not result.unavailable


@pytest.mark.asyncio
async def test_missing_binary_is_reported_not_raised() -> None:
    spec = CommandSpec(argv=("phase-gate-no-such-scanner-binary",))

    result = await LocalSubprocessExecutor().run(spec)

    assert result.unavailable
    assert result.exit_code is None
    assert result.error is not None
    assert result.error.startswith("phase-gate-no-such-scanner-binary")


@pytest.mark.asyncio
async def test_timeout_kills_the_process() -> None:
    spec = CommandSpec(argv=(sys.executable, "-c", "import time; time.sleep(30)"))

    result = await LocalSubprocessExecutor(default_timeout_seconds=0.2).run(spec)

    assert result.timed_out
    assert result.exit_code is None
    assert result.error == "command timed out after 0.200s"


@pytest.mark.asyncio
async def test_large_audit_report_reaches_the_parser_whole(tmp_path: Path) -> None:
    vulnerabilities = {
        f"package-{index:04d}": {"name": f"package-{index:04d}", "severity": "critical"}
        for index in range(600)
    }
    report = tmp_path / "audit.json"
    report.write_text(
        json.dumps({"vulnerabilities": vulnerabilities}, indent=2) + " " * 200_000,
        encoding="utf-8",
    )
    script = f"import sys; sys.stdout.write(open({str(report)!r}).read())"
    spec = CommandSpec(argv=(sys.executable, "-c", script))

    result = await LocalSubprocessExecutor().run(spec)
    outcome = parse_npm_audit(result.stdout)

    assert len(result.stdout) > DEFAULT_MAX_OUTPUT_CHARS
    assert not outcome.passed
    assert outcome.message == "Found 600 CRITICAL and 0 HIGH vulnerabilities"


def test_to_dict_caps_captured_output() -> None:
    result = CommandResult(
        argv=("npm", "audit"), exit_code=0, stdout="x" * 50, stderr="warn", duration_ms=1
    )

    payload = result.to_dict(max_output_chars=10)

    assert payload["stdout"] == "xxxxxxxxxx\n...[truncated 40 chars]"
    assert payload["stderr"] == "warn"
    assert result.stdout == "x" * 50
