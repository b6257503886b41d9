"""
phase-gate: generative fallback client contract

File: src/phase_gate/remediation/generative.py

Purpose
- Protocol for the text-generation collaborator used to escalate low-confidence root cause
  analyses, plus the normalized response type.

Functional requirements
- Implementations are supplied by the caller; this package ships none.
- Responses expose ``content`` text that is expected to embed one JSON object.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


class GenerativeClientError(RuntimeError):
    """Raised by client implementations when a generation request fails."""


@dataclass(frozen=True, slots=True)
class GenerativeResponse:
    content: str

    def __post_init__(self) -> None:
        if not isinstance(self.content, str):
            raise TypeError("GenerativeResponse.content must be a string")


@runtime_checkable
class GenerativeClient(Protocol):
    """Protocol implemented by generative fallback adapters."""

    async def generate(self, prompt: str) -> GenerativeResponse:
        """Send one prompt and return the generated text."""


def response_text(response: object) -> str:
    """Extract ``content`` from a response object, a mapping or a bare string."""

    if isinstance(response, str):
        return response
    if isinstance(response, Mapping):
        content = response.get("content")
    else:
        content = getattr(response, "content", None)
    if not isinstance(content, str):
        raise GenerativeClientError("generative response carries no text content")
    return content


__all__ = [
    "GenerativeClient",
    "GenerativeClientError",
    "GenerativeResponse",
    "response_text",
]
