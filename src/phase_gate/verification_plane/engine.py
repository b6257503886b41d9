"""
phase-gate: validator execution engine.

File: src/phase_gate/verification_plane/engine.py

Purpose
- Resolve validator names through the phase catalogue, dispatch each to its registered
  check and fold the outcomes into one aggregated ``ValidationResult``.

Functional requirements
- The artifact snapshot comes from the caller-owned ``CacheManager``; a new project
  identity rebuilds it.
- Validators run sequentially in the given order.
- An unknown validator name appends "Unknown validator: X" without touching the status.
- An unknown or unregistered implementation tag is a warning.
- A check that raises becomes a synthetic failure; the run continues.
- Aggregated checks are keyed by validator name; errors and warnings are concatenated.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from phase_gate.artifacts.store import ArtifactCache, CacheManager
from phase_gate.config.schema import default_config
from phase_gate.domain.models import Project
from phase_gate.planning.phase_graph import PhaseGraph, ValidatorDefinition
from phase_gate.verification_plane import checkers as _checkers  # noqa: F401
from phase_gate.verification_plane.executor import CommandExecutor, LocalSubprocessExecutor
from phase_gate.verification_plane.registry import (
    DEFAULT_CHECK_REGISTRY,
    CheckContext,
    CheckRegistry,
)
from phase_gate.verification_plane.results import (
    CheckValue,
    ValidationResult,
    ValidationStatus,
)


class ValidationEngine:
    """Runs catalogue validators against one project at a time."""

    def __init__(
        self,
        phase_graph: PhaseGraph,
        cache_manager: CacheManager,
        *,
        executor: CommandExecutor | None = None,
        config: Mapping[str, Any] | None = None,
        registry: CheckRegistry | None = None,
        logger: Any | None = None,
    ) -> None:
        self._phase_graph = phase_graph
        self._cache_manager = cache_manager
        self._config: Mapping[str, Any] = config if config is not None else default_config()
        self._registry = registry if registry is not None else DEFAULT_CHECK_REGISTRY
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        if executor is None:
            scanners = self._config.get("scanners", {})
            timeout = scanners.get("timeout_seconds") if isinstance(scanners, Mapping) else None
            executor = LocalSubprocessExecutor(
                default_timeout_seconds=float(timeout) if timeout else None
            )
        self._executor = executor

    @property
    def phase_graph(self) -> PhaseGraph:
        return self._phase_graph

    @property
    def cache_manager(self) -> CacheManager:
        return self._cache_manager

    async def run_phase(self, phase: str, project: Project) -> ValidationResult:
        """Run every validator the catalogue attaches to ``phase``."""

        return await self.run(self._phase_graph.validators_for(phase), project, phase=phase)

    async def run(
        self,
        validator_names: Sequence[str],
        project: Project,
        *,
        phase: str | None = None,
    ) -> ValidationResult:
        cache = await self._cache_manager.ensure(project)
        active_phase = phase or project.current_phase

        status = ValidationStatus.PASS
        checks: dict[str, CheckValue] = {}
        errors: list[str] = []
        warnings: list[str] = []
        details: dict[str, Any] = {}

        for name in validator_names:
            definition = self._phase_graph.validator(name)
            if definition is None:
                errors.append(f"Unknown validator: {name}")
                self._logger.warning("validator_unknown", validator=name)
                continue

            result = await self._run_one(definition, project, cache, active_phase)
            checks[name] = result.checks
            if result.details:
                details[name] = dict(result.details)

            if result.status is ValidationStatus.FAIL:
                status = ValidationStatus.FAIL
                errors.extend(result.errors)
            elif result.status is ValidationStatus.WARN and status is ValidationStatus.PASS:
                status = ValidationStatus.WARN
            warnings.extend(result.warnings)

        self._logger.info(
            "validation_run_completed",
            project_id=project.id,
            phase=active_phase,
            validators=len(validator_names),
            status=status.value,
            errors=len(errors),
            warnings=len(warnings),
        )
        return ValidationResult(
            status=status,
            checks=checks,
            errors=tuple(errors),
            warnings=tuple(warnings),
            details=details,
        )

    async def _run_one(
        self,
        definition: ValidatorDefinition,
        project: Project,
        cache: ArtifactCache,
        phase: str,
    ) -> ValidationResult:
        check = self._registry.get(definition.implementation)
        if check is None:
            self._logger.warning(
                "validator_implementation_unknown",
                validator=definition.name,
                implementation=definition.implementation,
            )
            return ValidationResult.warned(
                f"Unknown validator implementation: {definition.implementation}"
            )

        context = CheckContext(
            project=project,
            cache=cache,
            phase_graph=self._phase_graph,
            validator=definition,
            executor=self._executor,
            config=self._config,
            logger=self._logger.bind(validator=definition.name),
            phase=phase,
        )
        try:
            outcome = check(context)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(
                "validator_failed",
                validator=definition.name,
                error=f"{type(exc).__name__}: {exc}",
            )
            return ValidationResult.failed(f"Validator {definition.name} failed: {exc}")
        return outcome


__all__ = ["ValidationEngine"]
