"""
phase-gate: package root

File: src/phase_gate/__init__.py

Purpose
- Package root for the phase-gate validation and remediation engine.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
