"""Unit tests for planning.task_graph."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from phase_gate.planning.task_graph import (
    CycleError,
    TaskGraph,
    compute_stats,
    detect_cycles,
)


def test_two_node_cycle_is_reported_with_both_tasks() -> None:
    cycles = detect_cycles({"A": ["B"], "B": ["A"]})

    assert cycles
    assert any({"A", "B"} <= set(cycle) for cycle in cycles)
    assert cycles[0][0] == cycles[0][-1]


def test_every_independent_cycle_is_reported() -> None:
    cycles = detect_cycles(
        {
            "A": ["B"],
            "B": ["A"],
            "C": ["D"],
            "D": ["E"],
            "E": ["C"],
        }
    )

    members = [set(cycle[:-1]) for cycle in cycles]
    assert {"A", "B"} in members
    assert {"C", "D", "E"} in members


def test_self_dependency_is_a_cycle() -> None:
    assert detect_cycles({"A": ["A"]}) == [["A", "A"]]


def test_unknown_dependencies_are_treated_as_leaves() -> None:
    assert detect_cycles({"A": ["external"], "B": ["A", "external"]}) == []


def test_compute_stats_counts_orphans_and_depth() -> None:
    stats = compute_stats(
        {
            "TASK-1": [],
            "TASK-2": ["TASK-1"],
            "TASK-3": ["TASK-2"],
            "TASK-LONE": [],
        }
    )

    assert stats.orphaned_tasks == ("TASK-LONE",)
    assert stats.deepest_path == 3


def test_compute_stats_terminates_on_cycles() -> None:
    stats = compute_stats({"A": ["B"], "B": ["A"]})

    assert stats.orphaned_tasks == ()
    assert stats.deepest_path >= 1


def test_task_graph_topological_sort_raises_cycle_error() -> None:
    graph = TaskGraph.from_dependency_map({"A": ["B"], "B": ["C"], "C": ["A"]})

    with pytest.raises(CycleError) as error:
        graph.topological_sort()
    assert any(set(path[:-1]) == {"A", "B", "C"} for path in error.value.cycles)


def test_task_graph_orders_dependencies_first() -> None:
    graph = TaskGraph.from_dependency_map({"api": ["db"], "ui": ["api"], "db": []})

    order = graph.topological_sort()
    assert order.index("db") < order.index("api") < order.index("ui")
    assert graph.get_dependencies("ui", transitive=True) == ("api", "db")


def test_task_graph_direct_dependencies_and_unknown_nodes() -> None:
    graph = TaskGraph.from_dependency_map({"api": ["db"], "ui": ["api"], "worker": ["db"]})

    assert graph.nodes == ("api", "db", "ui", "worker")
    assert graph.get_dependencies("ui") == ("api",)
    assert graph.get_dependencies("db") == ()
    with pytest.raises(KeyError):
        graph.get_dependencies("billing")


@st.composite
def _acyclic_maps(draw: st.DrawFn) -> dict[str, list[str]]:
    size = draw(st.integers(min_value=0, max_value=12))
    nodes = [f"T{index}" for index in range(size)]
    graph: dict[str, list[str]] = {}
    for index, node in enumerate(nodes):
        # Only depend on earlier nodes, which keeps the map acyclic.
        earlier = nodes[:index]
        graph[node] = draw(st.lists(st.sampled_from(earlier), unique=True)) if earlier else []
    return graph


@settings(max_examples=75, deadline=None)
@given(_acyclic_maps())
def test_acyclic_inputs_never_report_cycles(graph: dict[str, list[str]]) -> None:
    assert detect_cycles(graph) == []


@settings(max_examples=75, deadline=None)
@given(_acyclic_maps(), st.data())
def test_back_edge_between_two_tasks_is_always_detected(
    graph: dict[str, list[str]], data: st.DataObject
) -> None:
    graph = {**graph, "A": ["B"], "B": ["A"]}
    extra = data.draw(st.sampled_from(sorted(graph)))
    graph[extra] = [*graph[extra], "A"] if extra not in {"A", "B"} else graph[extra]

    cycles = detect_cycles(graph)
    assert any({"A", "B"} <= set(cycle) for cycle in cycles)
