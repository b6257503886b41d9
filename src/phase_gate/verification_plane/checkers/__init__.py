"""Built-in checks. Importing this package registers every check with the default registry."""

from phase_gate.verification_plane.checkers import (
    design,
    documents,
    frontend,
    process,
    scripts,
    stack,
    traceability,
)

__all__ = ["design", "documents", "frontend", "process", "scripts", "stack", "traceability"]
