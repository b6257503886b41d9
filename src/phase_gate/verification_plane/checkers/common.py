"""Helpers shared by the built-in checks."""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Final

REQUIREMENT_ID: Final[re.Pattern[str]] = re.compile(r"REQ-[A-Z]+-\d{3}")
TASK_HEADER: Final[re.Pattern[str]] = re.compile(r"#{1,3}\s+TASK-[A-Z0-9]+(?:-[0-9]+)?:")
FRONTMATTER_FIELDS: Final[tuple[str, ...]] = ("title", "owner", "version", "date", "status")
REAL_SERVICES: Final[re.Pattern[str]] = re.compile(
    r"real\s+postgre(sql)?|real\s+database|test\s+instance", re.IGNORECASE
)

_FRONTMATTER_BLOCK: Final[re.Pattern[str]] = re.compile(r"^---\n([\s\S]*?)\n---")


def unique(items: Iterable[str]) -> list[str]:
    """Order-preserving de-duplication."""

    return list(dict.fromkeys(items))


def requirement_ids(content: str) -> list[str]:
    return unique(REQUIREMENT_ID.findall(content))


def half_up(value: float) -> int:
    return math.floor(value + 0.5)


def format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def section(content: str, title: str) -> str:
    """Body of the first ``## {title}`` section, up to the next level 1 or 2 heading."""

    match = re.search(rf"##\s*{title}[\s\S]*?(?=\n##\s|\n#\s|$)", content, re.IGNORECASE)
    return match.group(0) if match else ""


def task_blocks(content: str) -> list[tuple[str, str]]:
    """Split a task list into ``(header, body)`` pairs on ``TASK-...:`` headings."""

    headers = list(TASK_HEADER.finditer(content))
    blocks: list[tuple[str, str]] = []
    for index, match in enumerate(headers):
        end = headers[index + 1].start() if index + 1 < len(headers) else len(content)
        blocks.append((match.group(0), content[match.end() : end]))
    return blocks


def task_id_from_header(header: str) -> str:
    return re.sub(r"^#{1,3}\s+", "", header).rstrip(":")


def extract_frontmatter(content: str) -> dict[str, str] | None:
    """``key: value`` pairs of the leading ``---`` block; ``None`` when absent.

    Values stay strings: ``status: no`` is the text ``"no"``, not a boolean.
    """

    match = _FRONTMATTER_BLOCK.match(content)
    if match is None:
        return None
    parsed: dict[str, str] = {}
    for line in match.group(1).split("\n"):
        key, separator, value = line.partition(":")
        if key.strip() and separator:
            parsed[key.strip()] = value.strip()
    return parsed


def frontmatter_has(frontmatter: Mapping[str, str] | None, field_name: str) -> bool:
    if frontmatter is None:
        return False
    return bool(frontmatter.get(field_name, "").strip())


def iter_files(root: Path, suffix: str | None = None) -> Iterator[Path]:
    """Files under ``root`` in sorted order, optionally filtered by suffix."""

    if not root.is_dir():
        return
    for path in sorted(root.rglob("*")):
        if path.is_file() and (suffix is None or path.suffix == suffix):
            yield path


__all__ = [
    "FRONTMATTER_FIELDS",
    "REAL_SERVICES",
    "REQUIREMENT_ID",
    "TASK_HEADER",
    "extract_frontmatter",
    "format_number",
    "frontmatter_has",
    "half_up",
    "iter_files",
    "requirement_ids",
    "section",
    "task_blocks",
    "task_id_from_header",
    "unique",
]
