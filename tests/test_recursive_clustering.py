"""Tests for spectree/clustering/recursive.py - the clustering orchestrator."""
from __future__ import annotations

from collections import Counter

import numpy as np
import pytest
from hypothesis import given, settings as hypothesis_settings, strategies as st

from spectree.clustering.models import Cluster
from spectree.clustering.recursive import (
    ClusteringInvariantError,
    GraphType,
    Protocluster,
    RecursiveClustering,
    cluster_graph,
)
from spectree.config import MIN_CLUSTER_SIZE_ENV, ClusteringSettings
from spectree.graph.builder import GraphBuilder, build_graph
from spectree.performance_profiler import get_profiler
from tests.helpers.graphs import complete_graph_edges, two_cliques_edges


def _assignments(root):
    """Count how often each vertex occurs in any remainder of the tree."""
    counts = Counter()
    for cluster in root.walk():
        counts.update(cluster.remainder)
    return counts


def _top_level(root):
    return sorted(sorted(child.aggregate_vertices().tolist()) for child in root.children)


@pytest.mark.integration
class TestScenarios:
    def test_empty_graph(self):
        root = RecursiveClustering(GraphBuilder().build(), ClusteringSettings(min_cluster_size=2)).run()

        assert root.children == []
        assert root.remainder == []

    def test_edge_free_graph_keeps_every_vertex_in_root(self):
        graph = GraphBuilder(num_vertices=7).build()
        root = RecursiveClustering(graph, ClusteringSettings(min_cluster_size=2)).run()

        assert root.children == []
        assert sorted(root.remainder) == list(range(7))

    def test_weakly_joined_cliques_become_clusters(self, two_cliques_graph):
        root = RecursiveClustering(two_cliques_graph, ClusteringSettings(min_cluster_size=10)).run()

        assert root.remainder == []
        assert _top_level(root) == [list(range(10)), list(range(10, 20))]
        assert all(child.children == [] for child in root.children)

    def test_cliques_are_refined_below_the_top_level(self, two_cliques_graph):
        root = RecursiveClustering(two_cliques_graph, ClusteringSettings(min_cluster_size=6)).run()

        assert _top_level(root) == [list(range(10)), list(range(10, 20))]
        assert all(count == 1 for count in _assignments(root).values())
        assert sorted(_assignments(root)) == list(range(20))

    def test_small_components_go_to_remainder(self):
        edges = complete_graph_edges([0, 1, 2]) + complete_graph_edges([6, 7, 8]) + [(3, 4, 1.0)]
        graph = build_graph(edges, num_vertices=9)
        root = RecursiveClustering(graph, ClusteringSettings(min_cluster_size=3)).run()

        assert _top_level(root) == [[0, 1, 2], [6, 7, 8]]
        assert sorted(root.remainder) == [3, 4, 5]

    def test_max_iterations_degrades_to_terminal_cluster(self, two_cliques_graph):
        settings = ClusteringSettings(min_cluster_size=5, trail_size=5, max_iterations=1)
        clustering = RecursiveClustering(two_cliques_graph, settings)
        root = clustering.run()

        # The terminal child is the root's only child and gets collapsed into it
        assert root.children == []
        assert sorted(root.remainder) == list(range(20))
        assert clustering.bisections == 1

    def test_max_iterations_on_small_graph_goes_to_remainder(self, k33_graph):
        settings = ClusteringSettings(min_cluster_size=10, trail_size=5, max_iterations=1)
        root = RecursiveClustering(k33_graph, settings).run()

        assert root.children == []
        assert sorted(root.remainder) == list(range(6))

    def test_sparse_ids_are_covered_exactly(self):
        graph = build_graph([(10, 20, 1.0), (20, 30, 1.0), (10, 30, 1.0)])
        root = cluster_graph(graph, ClusteringSettings(min_cluster_size=3))

        assignments = _assignments(root)
        assert sorted(assignments) == [10, 20, 30]
        assert all(count == 1 for count in assignments.values())

    def test_large_ids_cluster_like_small_ones(self):
        offset = 10**12
        edges = [(u + offset, v + offset, w) for u, v, w in two_cliques_edges()]
        root = RecursiveClustering(build_graph(edges), ClusteringSettings(min_cluster_size=10)).run()

        assert _top_level(root) == [
            [offset + i for i in range(10)],
            [offset + i for i in range(10, 20)],
        ]


@pytest.mark.unit
def test_undersized_consistent_subgraph_is_an_invariant_error(k33_graph):
    clustering = RecursiveClustering(k33_graph, ClusteringSettings(min_cluster_size=3))
    protocluster = Protocluster(k33_graph, GraphType.COMPONENT, Cluster())

    with pytest.raises(ClusteringInvariantError):
        clustering._process_consistent_subgraph(protocluster, k33_graph.induced_subgraph([0, 1]))


@pytest.mark.unit
def test_exactly_min_size_subgraph_becomes_terminal_child(k33_graph):
    clustering = RecursiveClustering(k33_graph, ClusteringSettings(min_cluster_size=2))
    root = Cluster()
    clustering._process_consistent_subgraph(
        Protocluster(k33_graph, GraphType.COMPONENT, root),
        k33_graph.induced_subgraph([0, 1]),
    )

    assert len(root.children) == 1
    assert root.children[0].remainder == [0, 1]
    assert not clustering.queue


@pytest.mark.unit
def test_run_is_profiled(two_cliques_graph):
    get_profiler().clear_reports()
    RecursiveClustering(two_cliques_graph, ClusteringSettings(min_cluster_size=10)).run()

    reports = [r for r in get_profiler().get_all_reports() if r.operation == "recursive_clustering"]
    assert len(reports) == 1
    phases = {phase.name for phase in reports[0].phases}
    assert {"process_queue", "postprocessing"} <= phases
    assert reports[0].metadata["vertices"] == 20


@pytest.mark.unit
def test_cluster_graph_reads_settings_from_environment(monkeypatch, two_cliques_graph):
    monkeypatch.setenv(MIN_CLUSTER_SIZE_ENV, "10")
    root = cluster_graph(two_cliques_graph)

    assert _top_level(root) == [list(range(10)), list(range(10, 20))]


@pytest.mark.unit
def test_custom_matvec_factory_reaches_the_bisector(two_cliques_graph):
    calls = []

    def factory(adjacency):
        def matvec(x):
            calls.append(adjacency.shape[0])
            return adjacency @ x
        return matvec

    cluster_graph(two_cliques_graph, ClusteringSettings(min_cluster_size=10), matvec_factory=factory)
    assert calls and set(calls) == {20}


@pytest.mark.property
@hypothesis_settings(max_examples=25, deadline=None)
@given(
    edges=st.lists(
        st.tuples(st.integers(0, 29), st.integers(0, 29), st.floats(0.1, 5.0)),
        max_size=120,
    ),
    min_cluster_size=st.integers(1, 6),
    min_cluster_likelihood=st.floats(0.0, 0.6),
)
def test_every_vertex_is_assigned_exactly_once(edges, min_cluster_size, min_cluster_likelihood):
    """Property: clustering partitions the vertex set across the remainders of the tree."""
    graph = build_graph(edges, num_vertices=30)
    settings = ClusteringSettings(
        min_cluster_size=min_cluster_size,
        min_cluster_likelihood=min_cluster_likelihood,
        trail_size=5,
        max_iterations=200,
    )
    root = RecursiveClustering(graph, settings).run()

    counts = _assignments(root)
    assert sorted(counts) == list(range(30))
    assert set(counts.values()) == {1}
    assert np.array_equal(np.sort(root.aggregate_vertices()), np.arange(30))
