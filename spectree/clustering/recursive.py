"""Recursive spectral clustering of a graph into a cluster hierarchy.

The orchestrator keeps a FIFO queue of *protoclusters*: a graph view, the
cluster it feeds and a tag telling how the view should be processed next.

* ``ROOT`` / ``SPECTRAL`` views are split into connected components.
* ``COMPONENT`` views are connected and get bisected spectrally.

Components and partitions smaller than the minimum cluster size end up in the
remainder of the current cluster. The queue is processed top down, so a parent
cluster is always complete before its children are split further.
"""
from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Optional

from spectree.clustering.consistency import ConsistencyGuard
from spectree.clustering.models import Cluster
from spectree.clustering.postprocessing import Postprocessing
from spectree.config import ClusteringSettings, get_clustering_settings
from spectree.graph.components import find_connected_components
from spectree.graph.matvec import MatvecFactory
from spectree.graph.sparse import Graph
from spectree.graph.spectral import MaxIterationsExceededError, SpectralBisector
from spectree.performance_profiler import profile_operation, profile_phase

logger = logging.getLogger(__name__)

OPERATION = "recursive_clustering"


class ClusteringInvariantError(RuntimeError):
    """Internal consistency of the clustering run was violated."""


class GraphType(Enum):
    ROOT = "root"
    COMPONENT = "component"
    SPECTRAL = "spectral"


@dataclass
class Protocluster:
    """Work item of the clustering queue."""

    graph: Graph
    graph_type: GraphType
    cluster: Cluster


class RecursiveClustering:
    """Build a hierarchy of consistent clusters for ``graph``.

    Example:
        >>> settings = get_clustering_settings(min_cluster_size=10)
        >>> root = RecursiveClustering(graph, settings).run()
    """

    def __init__(
        self,
        graph: Graph,
        settings: ClusteringSettings,
        matvec_factory: Optional[MatvecFactory] = None,
    ):
        self.graph = graph
        self.settings = settings
        self.bisector = SpectralBisector(settings, matvec_factory=matvec_factory)
        self.consistency_guard = ConsistencyGuard(
            settings.consistency_metric,
            graph,
            settings.min_cluster_size,
            settings.min_cluster_likelihood,
        )
        self.queue: Deque[Protocluster] = deque()
        self.bisections = 0
        self.decompositions = 0

    def run(self) -> Cluster:
        """Cluster the graph and return the root of the postprocessed hierarchy."""
        metadata = {"vertices": self.graph.order, "min_cluster_size": self.settings.min_cluster_size}
        with profile_operation(OPERATION, metadata):
            start = time.time()
            root = Cluster()
            self.queue.append(Protocluster(self.graph, GraphType.ROOT, root))

            with profile_phase("process_queue", OPERATION):
                self._process_queue()
            logger.info(
                "Clustered %d vertices in %.2fs (%d decompositions, %d bisections)",
                self.graph.order,
                time.time() - start,
                self.decompositions,
                self.bisections,
            )

            with profile_phase("postprocessing", OPERATION):
                root, changed = Postprocessing(root, self.graph, self.settings).apply()
            logger.debug("Postprocessing %s the cluster tree", "modified" if changed else "did not modify")
        return root

    def _process_queue(self) -> None:
        while self.queue:
            protocluster = self.queue.popleft()
            if protocluster.graph_type is GraphType.COMPONENT:
                self._bisect(protocluster)
            else:
                self._decompose_components(protocluster)

    def _bisect(self, protocluster: Protocluster) -> None:
        """Split a connected view in two and queue the consistent parts of each side.

        A partition that is too small, or that spans the whole input (a
        degenerate eigenvector), is absorbed by the current cluster's remainder.
        """
        graph = protocluster.graph
        cluster = protocluster.cluster
        min_size = self.settings.min_cluster_size

        def handle_partition(partition: Graph) -> None:
            if partition.order < min_size or partition.order == graph.order:
                cluster.add_to_remainder(partition)
                return
            consistent = self.consistency_guard.ensure(cluster, partition)
            if consistent is not None:
                self._process_consistent_subgraph(protocluster, consistent)

        self.bisections += 1
        try:
            self.bisector.bisect(graph, handle_partition, self.settings.max_iterations)
        except MaxIterationsExceededError:
            if graph.order >= min_size:
                self._add_terminal_child(protocluster, graph)
            else:
                cluster.add_to_remainder(graph)
            logger.debug(
                "Exceeded maximum number of iterations (%d) on %d vertices. Not clustering any further.",
                self.settings.max_iterations,
                graph.order,
            )

    def _process_consistent_subgraph(self, protocluster: Protocluster, subgraph: Graph) -> None:
        min_size = self.settings.min_cluster_size
        if subgraph.order > min_size:
            self._enqueue(GraphType.SPECTRAL, protocluster.cluster, subgraph)
        elif subgraph.order == min_size:
            self._add_terminal_child(protocluster, subgraph)
        else:
            raise ClusteringInvariantError(
                f"consistency guard returned {subgraph.order} vertices, below the minimum cluster size {min_size}"
            )

    def _decompose_components(self, protocluster: Protocluster) -> None:
        graph = protocluster.graph
        min_size = self.settings.min_cluster_size

        def handle_component(component: Graph) -> None:
            if component.order == graph.order:
                protocluster.graph_type = GraphType.COMPONENT
                self.queue.append(protocluster)
            elif component.order < min_size:
                protocluster.cluster.add_to_remainder(component)
            elif component.order == min_size:
                self._add_terminal_child(protocluster, component)
            else:
                self._enqueue(GraphType.COMPONENT, protocluster.cluster, component)

        self.decompositions += 1
        find_connected_components(graph, handle_component)

    @staticmethod
    def _add_terminal_child(protocluster: Protocluster, graph: Graph) -> None:
        child = Cluster(protocluster.cluster)
        child.add_to_remainder(graph)

    def _enqueue(self, graph_type: GraphType, parent: Cluster, subgraph: Graph) -> None:
        self.queue.append(Protocluster(subgraph, graph_type, Cluster(parent)))


def cluster_graph(
    graph: Graph,
    settings: Optional[ClusteringSettings] = None,
    matvec_factory: Optional[MatvecFactory] = None,
) -> Cluster:
    """Convenience wrapper: cluster ``graph`` with env-resolved settings by default."""
    if settings is None:
        settings = get_clustering_settings()
    return RecursiveClustering(graph, settings, matvec_factory=matvec_factory).run()
