"""
phase-gate: auto-remedy safeguards

File: src/phase_gate/remediation/safeguards.py

Purpose
- Four independent layers deciding whether an automated patch to an artifact may be
  applied: edit detection, diff preview, conflict markers and scope limiting.

Functional requirements
- Edit detection compares SHA-256 of current content against the hash stored at first
  generation; a mismatch is never approved.
- Diff preview is a naive index-by-index rendering, not LCS based.
- Protected artifacts are always rejected; otherwise a patch changing more than the line
  ceiling is rejected.
- Changed lines are ``|delta line count| + lines differing at the same index``.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass
from typing import Any, Final

import structlog

from phase_gate.domain.models import JSONValue
from phase_gate.utils.hashing import sha256_text

PROTECTED_ARTIFACTS: Final[frozenset[str]] = frozenset({"constitution.md", "project-brief.md"})
MAX_LINES_CHANGED: Final[int] = 50


@dataclass(frozen=True, slots=True)
class SafeguardResult:
    approved: bool
    reason: str
    user_edit_detected: bool | None = None
    lines_changed: int | None = None
    diff: str | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {"approved": self.approved, "reason": self.reason}
        if self.user_edit_detected is not None:
            payload["user_edit_detected"] = self.user_edit_detected
        if self.lines_changed is not None:
            payload["lines_changed"] = self.lines_changed
        if self.diff is not None:
            payload["diff"] = self.diff
        return payload


def hash_content(content: str) -> str:
    return sha256_text(content)


def is_protected_artifact(
    artifact_id: str, protected: Collection[str] = PROTECTED_ARTIFACTS
) -> bool:
    return artifact_id in protected


def detect_user_edit(original: str, current: str, original_hash: str) -> SafeguardResult:
    """Layer 1: has a human changed the artifact since it was generated?

    ``original`` is accepted for call-site symmetry; only ``original_hash`` is compared.
    """

    del original
    if hash_content(current) == original_hash:
        return SafeguardResult(
            approved=True,
            reason="Content matches original hash - no manual edits detected",
            user_edit_detected=False,
        )
    return SafeguardResult(
        approved=False,
        reason="Content hash differs - manual edit detected. Use conflict markers.",
        user_edit_detected=True,
    )


def generate_diff_preview(old: str, new: str, artifact_id: str) -> str:
    """Layer 2: line-by-line preview for human review."""

    if old == new:
        return f"No changes proposed for {artifact_id}"

    old_lines = old.split("\n")
    new_lines = new.split("\n")
    out = [
        f"--- {artifact_id} (original)",
        f"+++ {artifact_id} (proposed)",
        f"@@ -1,{len(old_lines)} +1,{len(new_lines)} @@",
    ]
    for index in range(max(len(old_lines), len(new_lines))):
        old_line = old_lines[index] if index < len(old_lines) else None
        new_line = new_lines[index] if index < len(new_lines) else None
        if old_line == new_line:
            out.append(f"  {old_line}")
            continue
        if old_line is not None:
            out.append(f"- {old_line}")
        if new_line is not None:
            out.append(f"+ {new_line}")
    return "\n".join(out) + "\n"


def create_conflict_markers(user: str, auto: str, artifact_id: str, line: int) -> str:
    """Layer 3: embed both versions so a human resolves the conflict."""

    return (
        "<<<<<<< HEAD (User Edit)\n"
        f"{user}\n"
        "=======\n"
        f"{auto}\n"
        f">>>>>>> AUTO_REMEDY (Line {line} in {artifact_id})"
    )


def count_changed_lines(old: str, new: str) -> int:
    old_lines = old.split("\n")
    new_lines = new.split("\n")
    differing = sum(
        1
        for index, line in enumerate(old_lines)
        if index >= len(new_lines) or new_lines[index] != line
    )
    return abs(len(new_lines) - len(old_lines)) + differing


def validate_change_scope(
    old: str,
    new: str,
    artifact_id: str,
    *,
    max_lines: int = MAX_LINES_CHANGED,
    protected: Collection[str] = PROTECTED_ARTIFACTS,
) -> SafeguardResult:
    """Layer 4: protected artifacts and oversized rewrites need a human."""

    if is_protected_artifact(artifact_id, protected):
        return SafeguardResult(
            approved=False,
            reason=f"{artifact_id} is a protected artifact - manual review required",
        )

    lines_changed = count_changed_lines(old, new)
    if lines_changed > max_lines:
        return SafeguardResult(
            approved=False,
            reason=(
                f"Change scope ({lines_changed} lines) exceeds {max_lines} line limit - "
                "manual review required"
            ),
            lines_changed=lines_changed,
        )
    return SafeguardResult(
        approved=True,
        reason=f"Change scope within limits ({lines_changed} lines)",
        lines_changed=lines_changed,
    )


class AutoRemedySafeguard:
    """Runs every applicable layer for one proposed patch."""

    def __init__(
        self,
        *,
        max_lines_changed: int = MAX_LINES_CHANGED,
        protected_artifacts: Collection[str] = PROTECTED_ARTIFACTS,
        logger: Any | None = None,
    ) -> None:
        if max_lines_changed < 0:
            raise ValueError("max_lines_changed must be >= 0")
        self._max_lines = max_lines_changed
        self._protected = frozenset(protected_artifacts)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @classmethod
    def from_config(
        cls, config: Mapping[str, Any], *, logger: Any | None = None
    ) -> AutoRemedySafeguard:
        section = config.get("safeguards", {})
        return cls(
            max_lines_changed=int(section.get("max_lines_changed", MAX_LINES_CHANGED)),
            protected_artifacts=section.get("protected_artifacts", PROTECTED_ARTIFACTS),
            logger=logger,
        )

    def evaluate_patch(
        self,
        artifact_id: str,
        current: str,
        proposed: str,
        *,
        original_hash: str | None = None,
        line: int = 1,
    ) -> SafeguardResult:
        """Approve only when edit detection (if a hash is known) and scope limiting both do.

        A detected manual edit yields the conflict-marker rendering as ``diff``; otherwise
        ``diff`` carries the preview.
        """

        edit = (
            detect_user_edit(current, current, original_hash)
            if original_hash is not None
            else None
        )
        scope = validate_change_scope(
            current,
            proposed,
            artifact_id,
            max_lines=self._max_lines,
            protected=self._protected,
        )

        if edit is not None and edit.user_edit_detected:
            result = SafeguardResult(
                approved=False,
                reason=edit.reason,
                user_edit_detected=True,
                lines_changed=scope.lines_changed,
                diff=create_conflict_markers(current, proposed, artifact_id, line),
            )
        else:
            result = SafeguardResult(
                approved=scope.approved,
                reason=scope.reason,
                user_edit_detected=edit.user_edit_detected if edit is not None else None,
                lines_changed=scope.lines_changed,
                diff=generate_diff_preview(current, proposed, artifact_id),
            )

        self._logger.info(
            "safeguard_evaluated",
            artifact=artifact_id,
            approved=result.approved,
            user_edit_detected=result.user_edit_detected,
            lines_changed=result.lines_changed,
        )
        return result


__all__ = [
    "MAX_LINES_CHANGED",
    "PROTECTED_ARTIFACTS",
    "AutoRemedySafeguard",
    "SafeguardResult",
    "count_changed_lines",
    "create_conflict_markers",
    "detect_user_edit",
    "generate_diff_preview",
    "hash_content",
    "is_protected_artifact",
    "validate_change_scope",
]
