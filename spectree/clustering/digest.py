"""Compact summaries of clusters for inspection and reporting."""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from spectree.clustering.models import Cluster
from spectree.graph.sparse import Graph


@dataclass(frozen=True)
class Digest:
    """Most significant vertices of a cluster.

    Attributes:
        vertices: Global vertex ids, most significant first
        weights: Weight of each vertex inside the cluster's aggregate graph
        scores: Share of each vertex's total weight that stays inside the cluster
        size: Number of vertices in the full aggregate graph (before truncation)
    """

    vertices: np.ndarray
    weights: np.ndarray
    scores: np.ndarray
    size: int

    def to_dict(self) -> dict:
        return {
            "size": self.size,
            "vertices": self.vertices.tolist(),
            "weights": self.weights.tolist(),
            "scores": self.scores.tolist(),
        }


class TopWeightsAggregateDigester:
    """Digest made of the heaviest vertices of a cluster's aggregate graph.

    Vertices are ranked by in-cluster weight (descending), ties broken by score
    (descending) and then by vertex id. ``max_size <= 0`` keeps every vertex.
    """

    def __init__(self, root_graph: Graph, max_size: int):
        self.root_graph = root_graph
        self.max_size = max_size

    def create(self, cluster: Cluster) -> Digest:
        graph = cluster.aggregate_graph(self.root_graph)
        vertices = graph.collect_vertices()
        weights = np.array(graph.weights(), dtype=np.float64)
        scores = graph.relative_weights(self.root_graph)

        # lexsort uses the last key as primary
        order = np.lexsort((vertices, -scores, -weights))
        if self.max_size > 0:
            order = order[: self.max_size]
        return Digest(
            vertices=vertices[order],
            weights=weights[order],
            scores=scores[order],
            size=graph.order,
        )
