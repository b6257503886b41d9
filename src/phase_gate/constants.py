"""Stable constants shared across phase-gate planes."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
PIPELINE_CATALOGUE_VERSION: Final[int] = 1

# Default runtime paths (relative to the config file unless overridden).
PROJECTS_DIR: Final[PurePosixPath] = PurePosixPath("projects")
STATE_DB_PATH: Final[PurePosixPath] = PurePosixPath("state/artifacts.sqlite")
LOGS_DIR: Final[PurePosixPath] = PurePosixPath("logs")

# Canonical on-disk artifact layout: projects/{slug}/specs/{PHASE}/v1/{filename}
SPECS_DIRNAME: Final[str] = "specs"
ARTIFACT_VERSION_DIRNAME: Final[str] = "v1"

# Phase identifiers used outside the declarative catalogue.
DEFAULT_PHASE: Final[str] = "VALIDATE"
LEGACY_SPEC_PHASE: Final[str] = "SPEC"

__all__ = [
    "ARTIFACT_VERSION_DIRNAME",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_PHASE",
    "LEGACY_SPEC_PHASE",
    "LOGS_DIR",
    "PIPELINE_CATALOGUE_VERSION",
    "PROJECTS_DIR",
    "SPECS_DIRNAME",
    "STATE_DB_PATH",
]
