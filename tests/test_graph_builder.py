"""Tests for spectree/graph/builder.py - CSR construction from edge lists."""
from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from spectree.graph.builder import (
    GraphBuilder,
    GraphConstructionError,
    build_graph,
    build_graph_from_frame,
)


@pytest.mark.unit
def test_edges_are_stored_symmetrically():
    graph = build_graph([(0, 1, 2.0), (1, 2, 0.5)])
    store = graph.datastore

    assert graph.order == 3
    assert store.pointers.tolist() == [0, 1, 3, 4]
    assert store.edges.tolist() == [1, 0, 2, 1]
    assert np.allclose(store.weights, [2.0, 2.0, 0.5, 0.5])


@pytest.mark.unit
def test_duplicate_edges_are_summed():
    graph = build_graph([(0, 1, 2.0), (1, 0, 3.0), (0, 1, 1.0)])

    assert graph.datastore.nnz == 2
    assert np.allclose(graph.datastore.weights, [6.0, 6.0])
    assert graph.size == 1


@pytest.mark.unit
def test_self_loop_is_stored_once():
    graph = build_graph([(0, 0, 2.0), (0, 1, 1.0)])

    assert graph.datastore.edges.tolist() == [0, 1, 0]
    assert np.allclose(graph.weights(), [3.0, 1.0])


@pytest.mark.unit
def test_zero_weight_edges_are_dropped():
    graph = build_graph([(0, 1, 0.0), (1, 2, 1.0)])

    assert graph.order == 3
    assert graph.neighbours(0)[0].tolist() == []
    assert graph.size == 1


@pytest.mark.unit
def test_builder_is_chainable_and_mixes_arrays():
    graph = (
        GraphBuilder()
        .add(0, 1)
        .add_edges(np.array([1, 2]), np.array([2, 3]), np.array([2.0, 3.0]))
        .build()
    )

    assert graph.order == 4
    assert graph.size == 3
    assert np.allclose(graph.weights(), [1.0, 3.0, 5.0, 3.0])


@pytest.mark.unit
def test_num_vertices_adds_isolated_vertices():
    graph = build_graph([(0, 1, 1.0)], num_vertices=5)

    assert graph.order == 5
    assert graph.datastore.pointers.tolist() == [0, 1, 2, 2, 2, 2]


@pytest.mark.unit
def test_sparse_ids_are_compacted_and_keep_their_labels():
    graph = build_graph([(10, 20, 1.0), (20, 30, 2.0), (10, 30, 1.0)])
    store = graph.datastore

    assert graph.order == 3
    assert graph.vertices.tolist() == [10, 20, 30]
    assert store.labels.tolist() == [10, 20, 30]
    assert store.pointers.tolist() == [0, 2, 4, 6]
    assert graph.local_id(20) == 1


@pytest.mark.unit
def test_large_ids_do_not_allocate_the_id_range():
    big = 10**12
    graph = build_graph([(big, big + 1, 1.0), (7, big, 3.0)])

    assert graph.order == 3
    assert graph.vertices.tolist() == [7, big, big + 1]
    assert graph.size == 2
    assert np.allclose(graph.weights(), [3.0, 4.0, 1.0])


@pytest.mark.unit
def test_add_vertices_declares_isolated_ids():
    graph = GraphBuilder().add(5, 9).add_vertices([100, 5]).build()

    assert graph.vertices.tolist() == [5, 9, 100]
    assert graph.datastore.pointers.tolist() == [0, 1, 2, 2]


@pytest.mark.unit
def test_build_graph_accepts_isolated_vertices():
    graph = build_graph([(1, 2, 1.0)], vertices=[40])

    assert graph.vertices.tolist() == [1, 2, 40]


@pytest.mark.unit
def test_empty_builder_yields_empty_graph():
    graph = GraphBuilder().build()

    assert graph.order == 0
    assert graph.size == 0


class TestValidation:
    """Malformed edge data is rejected with GraphConstructionError."""

    def test_negative_weight(self):
        with pytest.raises(GraphConstructionError, match="non-negative"):
            build_graph([(0, 1, -1.0)])

    def test_non_finite_weight(self):
        with pytest.raises(GraphConstructionError, match="finite"):
            build_graph([(0, 1, float("nan"))])

    def test_negative_vertex_id(self):
        with pytest.raises(GraphConstructionError, match="non-negative"):
            build_graph([(-1, 1, 1.0)])

    def test_float_vertex_ids(self):
        with pytest.raises(GraphConstructionError, match="integers"):
            GraphBuilder().add_edges(np.array([0.5]), np.array([1.0])).build()

    def test_float_isolated_vertices(self):
        with pytest.raises(GraphConstructionError, match="integers"):
            GraphBuilder().add_vertices([1.5]).build()

    def test_isolated_vertex_beyond_num_vertices(self):
        with pytest.raises(GraphConstructionError, match="num_vertices"):
            GraphBuilder(num_vertices=3).add(0, 1).add_vertices([9]).build()

    def test_num_vertices_too_small(self):
        with pytest.raises(GraphConstructionError, match="num_vertices"):
            build_graph([(0, 7, 1.0)], num_vertices=3)

    def test_misaligned_arrays(self):
        with pytest.raises(GraphConstructionError):
            GraphBuilder().add_edges([0, 1], [1])

    def test_construction_error_is_a_value_error(self):
        assert issubclass(GraphConstructionError, ValueError)


class TestBuildFromFrame:
    def test_weight_column(self):
        frame = pd.DataFrame({"source": [0, 1], "target": [1, 2], "weight": [2.0, 4.0]})
        graph = build_graph_from_frame(frame)

        assert np.allclose(graph.weights(), [2.0, 6.0, 4.0])

    def test_missing_weight_column_means_unit_weights(self):
        frame = pd.DataFrame({"src": [0, 1], "dst": [1, 2]})
        graph = build_graph_from_frame(frame, source_col="src", target_col="dst")

        assert np.allclose(graph.weights(), [1.0, 2.0, 1.0])

    def test_missing_endpoint_column(self):
        frame = pd.DataFrame({"source": [0, 1]})
        with pytest.raises(GraphConstructionError, match="target"):
            build_graph_from_frame(frame)
