"""Domain models shared by the artifact store, verification and remediation planes."""

from phase_gate.domain.models import ArtifactKey, JSONScalar, JSONValue, Project

__all__ = [
    "ArtifactKey",
    "JSONScalar",
    "JSONValue",
    "Project",
]
