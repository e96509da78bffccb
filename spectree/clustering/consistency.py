"""Vertex/cluster consistency scores and the guard that enforces them."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Protocol

import numpy as np

from spectree.graph.sparse import Graph

if TYPE_CHECKING:
    from spectree.clustering.models import Cluster

logger = logging.getLogger(__name__)


class ConsistencyMetric(Protocol):
    """Scores how strongly each vertex of ``subgraph`` belongs to it."""

    def compute(self, supergraph: Graph, subgraph: Graph) -> np.ndarray:
        ...


class RelativeWeightConsistencyMetric:
    """Share of each vertex's weight in ``supergraph`` that stays inside ``subgraph``.

    Vertices without any weight in the supergraph score 0.
    """

    def compute(self, supergraph: Graph, subgraph: Graph) -> np.ndarray:
        if subgraph.order == 0:
            return np.empty(0, dtype=np.float64)
        return subgraph.relative_weights(supergraph)

    def __repr__(self) -> str:
        return "RelativeWeightConsistencyMetric()"


class ConsistencyGuard:
    """Shrinks a candidate cluster until every vertex scores at least the threshold.

    Each pass scores the current candidate against ``graph`` and drops every
    vertex below ``min_cluster_likelihood`` at once, so the outcome does not
    depend on the order in which vertices are inspected. Dropped vertices are
    appended to the remainder of ``parent``.
    """

    def __init__(
        self,
        metric: ConsistencyMetric,
        graph: Graph,
        min_cluster_size: int,
        min_cluster_likelihood: float,
    ):
        self.metric = metric
        self.graph = graph
        self.min_cluster_size = min_cluster_size
        self.min_cluster_likelihood = min_cluster_likelihood

    def ensure(self, parent: "Cluster", candidate: Graph) -> Optional[Graph]:
        """Return the consistent part of ``candidate`` or ``None`` if too little survives.

        When ``None`` is returned every vertex of ``candidate`` has been moved to
        ``parent``'s remainder.
        """
        current = candidate
        passes = 0
        while True:
            if current.order < self.min_cluster_size:
                parent.add_to_remainder(current)
                logger.debug(
                    "Consistency guard dissolved candidate of %d vertices after %d passes",
                    candidate.order,
                    passes,
                )
                return None

            scores = self.metric.compute(self.graph, current)
            rejected = scores < self.min_cluster_likelihood
            if not rejected.any():
                if passes:
                    logger.debug(
                        "Consistency guard kept %d of %d vertices after %d passes",
                        current.order,
                        candidate.order,
                        passes,
                    )
                return current

            parent.add_to_remainder(current.vertices[rejected])
            current = current.local_subgraph(np.flatnonzero(~rejected))
            passes += 1
