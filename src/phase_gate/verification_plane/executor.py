"""Subprocess seam for checks that shell out to external scanners.

Scanners are optional tooling on a developer machine, so the executor never raises for
a missing binary or a hung process. Both outcomes come back as an ``unavailable``
:class:`CommandResult`, which the dependency-audit checks downgrade to warnings.

Results keep the full decoded output because scanner reports are parsed as JSON;
``CommandResult.to_dict`` applies the size cap for logs and reports.
"""

from __future__ import annotations

import asyncio
import os
import time
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Final, Protocol, runtime_checkable

from phase_gate.domain.models import JSONValue

DEFAULT_MAX_OUTPUT_CHARS: Final[int] = 200_000


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """One scanner invocation: argv plus where and how long to run it."""

    argv: tuple[str, ...]
    cwd: str | None = None
    timeout_seconds: float | None = None
    extra_env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        argv = tuple(self.argv)
        if not argv or any(not isinstance(part, str) or not part for part in argv):
            raise ValueError("argv must contain at least one non-empty string")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        object.__setattr__(self, "argv", argv)
        object.__setattr__(self, "extra_env", dict(self.extra_env))

    def environment(self) -> dict[str, str]:
        merged = dict(os.environ)
        merged.update(self.extra_env)
        return merged


@dataclass(frozen=True, slots=True)
class CommandResult:
    """What a scanner run produced; ``exit_code`` is ``None`` when it never finished."""

    argv: tuple[str, ...]
    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False
    error: str | None = None

    @property
    def unavailable(self) -> bool:
        return self.timed_out or self.error is not None or self.exit_code is None

    def to_dict(
        self, *, max_output_chars: int | None = DEFAULT_MAX_OUTPUT_CHARS
    ) -> dict[str, JSONValue]:
        return {
            "argv": list(self.argv),
            "exit_code": self.exit_code,
            "stdout": _clip(self.stdout, max_output_chars),
            "stderr": _clip(self.stderr, max_output_chars),
            "duration_ms": self.duration_ms,
            "timed_out": self.timed_out,
            "error": self.error,
        }


@runtime_checkable
class CommandExecutor(Protocol):
    async def run(self, spec: CommandSpec) -> CommandResult: ...


class LocalSubprocessExecutor:
    """Runs commands with :mod:`asyncio` subprocesses on the local machine."""

    def __init__(self, *, default_timeout_seconds: float | None = None) -> None:
        if default_timeout_seconds is not None and default_timeout_seconds <= 0:
            raise ValueError("default_timeout_seconds must be positive")
        self._default_timeout = default_timeout_seconds

    async def run(self, spec: CommandSpec) -> CommandResult:
        started = time.perf_counter()
        timeout = spec.timeout_seconds or self._default_timeout

        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                cwd=spec.cwd,
                env=spec.environment(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            return CommandResult(
                argv=spec.argv,
                exit_code=None,
                stdout="",
                stderr="",
                duration_ms=_since(started),
                error=f"{spec.argv[0]}: {exc.strerror or exc}",
            )

        timed_out = False
        try:
            out, err = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError:
            timed_out = True
            with suppress(ProcessLookupError):
                process.kill()
            out, err = await process.communicate()
        except asyncio.CancelledError:
            with suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            raise

        return CommandResult(
            argv=spec.argv,
            exit_code=None if timed_out else process.returncode,
            stdout=_decode(out),
            stderr=_decode(err),
            duration_ms=_since(started),
            timed_out=timed_out,
            error=f"command timed out after {timeout:.3f}s" if timed_out else None,
        )


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").replace("\r\n", "\n").replace("\r", "\n")


def _clip(text: str, limit: int | None) -> str:
    if limit is None or len(text) <= limit:
        return text
    return f"{text[:limit]}\n...[truncated {len(text) - limit} chars]"


def _since(started: float) -> int:
    return max(0, int((time.perf_counter() - started) * 1000))


__all__ = [
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "DEFAULT_MAX_OUTPUT_CHARS",
    "LocalSubprocessExecutor",
]
