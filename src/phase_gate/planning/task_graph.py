"""Dependency-map utilities shared by the phase catalogue and the task-list gates.

Every input here is a ``{node: [dependency, ...]}`` mapping. Dependencies that are not
keys of the mapping are leaves: task lists routinely reference work outside the file.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from heapq import heapify, heappop, heappush
from typing import Final

DependencyMap = Mapping[str, Sequence[str]]

_WHITE: Final[int] = 0
_GREY: Final[int] = 1
_BLACK: Final[int] = 2


class CycleError(ValueError):
    """A dependency map could not be ordered; ``cycles`` holds closed paths."""

    def __init__(self, cycles: Iterable[Sequence[str]]) -> None:
        self.cycles: tuple[tuple[str, ...], ...] = tuple(tuple(path) for path in cycles)
        shown = "; ".join(" -> ".join(path) for path in self.cycles[:3])
        more = "; ..." if len(self.cycles) > 3 else ""
        super().__init__(f"dependency cycle: {shown}{more}" if shown else "dependency cycle")


@dataclass(frozen=True, slots=True)
class TaskGraphStats:
    orphaned_tasks: tuple[str, ...]
    deepest_path: int

    def to_dict(self) -> dict[str, object]:
        return {"orphaned_tasks": list(self.orphaned_tasks), "deepest_path": self.deepest_path}


def detect_cycles(dependencies: DependencyMap) -> list[list[str]]:
    """Return every cycle closed while walking dependency edges depth-first.

    Each cycle is the path from the re-entered node back to itself, for example
    ``["A", "B", "A"]``. Start nodes are visited in mapping order.
    """

    color: dict[str, int] = {}
    found: list[list[str]] = []

    for start in dependencies:
        if color.get(start, _WHITE) != _WHITE:
            continue
        path: list[str] = [start]
        cursor: list[int] = [0]
        color[start] = _GREY
        while path:
            node = path[-1]
            children = dependencies.get(node, ())
            position = cursor[-1]
            if position == len(children):
                color[node] = _BLACK
                path.pop()
                cursor.pop()
                continue
            cursor[-1] = position + 1
            child = children[position]
            state = color.get(child, _WHITE)
            if state == _GREY:
                found.append([*path[path.index(child) :], child])
            elif state == _WHITE:
                color[child] = _GREY
                path.append(child)
                cursor.append(0)
    return found


def compute_stats(dependencies: DependencyMap) -> TaskGraphStats:
    """Orphans (no dependencies and no dependents) and the longest chain length.

    A task with no dependencies has depth 1. A dependency that closes a cycle
    contributes nothing, which keeps cyclic input finite.
    """

    referenced = {dep for deps in dependencies.values() for dep in deps}
    orphans = tuple(
        task for task, deps in dependencies.items() if not deps and task not in referenced
    )

    depth: dict[str, int] = {}
    for root in dependencies:
        if root in depth:
            continue
        walk: list[tuple[str, bool]] = [(root, False)]
        active: set[str] = set()
        while walk:
            node, expanded = walk.pop()
            if expanded:
                active.discard(node)
                deeper = (depth.get(dep, 0) for dep in dependencies.get(node, ()))
                depth[node] = 1 + max(deeper, default=0)
                continue
            if node in depth or node in active:
                continue
            active.add(node)
            walk.append((node, True))
            walk.extend(
                (dep, False)
                for dep in dependencies.get(node, ())
                if dep not in depth and dep not in active
            )

    return TaskGraphStats(
        orphaned_tasks=orphans,
        deepest_path=max((depth[task] for task in dependencies), default=0),
    )


class TaskGraph:
    """Immutable dependency graph with deterministic (lexicographic) ordering."""

    __slots__ = ("_requires", "_required_by")

    def __init__(self, requires: Mapping[str, Iterable[str]]) -> None:
        self._requires: dict[str, frozenset[str]] = {}
        self._required_by: dict[str, set[str]] = {}
        for node, deps in requires.items():
            self._register(node)
            for dep in deps:
                self._register(dep)
        for node, deps in requires.items():
            self._requires[node] = frozenset(deps)
            for dep in deps:
                self._required_by[dep].add(node)

    @classmethod
    def from_dependency_map(cls, dependencies: DependencyMap) -> TaskGraph:
        return cls(dependencies)

    @property
    def nodes(self) -> tuple[str, ...]:
        return tuple(sorted(self._requires))

    def topological_sort(self) -> tuple[str, ...]:
        """Dependencies first; ties broken by node id. Raises :class:`CycleError`."""

        waiting = {node: len(deps) for node, deps in self._requires.items()}
        ready = [node for node, count in waiting.items() if count == 0]
        heapify(ready)
        ordered: list[str] = []
        while ready:
            node = heappop(ready)
            ordered.append(node)
            for dependent in self._required_by[node]:
                waiting[dependent] -= 1
                if waiting[dependent] == 0:
                    heappush(ready, dependent)
        if len(ordered) < len(waiting):
            blocked = {node: sorted(self._requires[node]) for node in sorted(waiting)}
            raise CycleError(detect_cycles(blocked))
        return tuple(ordered)

    def get_dependencies(self, node_id: str, *, transitive: bool = False) -> tuple[str, ...]:
        return self._reach(node_id, self._requires, transitive)

    def _register(self, node: str) -> None:
        if not node:
            raise ValueError("node id must be non-empty")
        self._requires.setdefault(node, frozenset())
        self._required_by.setdefault(node, set())

    @staticmethod
    def _reach(
        node_id: str, edges: Mapping[str, Iterable[str]], transitive: bool
    ) -> tuple[str, ...]:
        if node_id not in edges:
            raise KeyError(f"unknown node: {node_id}")
        seen: set[str] = set(edges[node_id])
        frontier = list(seen) if transitive else []
        while frontier:
            for neighbour in edges[frontier.pop()]:
                if neighbour not in seen:
                    seen.add(neighbour)
                    frontier.append(neighbour)
        return tuple(sorted(seen))


__all__ = [
    "CycleError",
    "DependencyMap",
    "TaskGraph",
    "TaskGraphStats",
    "compute_stats",
    "detect_cycles",
]
