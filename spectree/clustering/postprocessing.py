"""Postprocessing passes that tidy up a freshly built cluster tree."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Tuple

import numpy as np

from spectree.clustering.consistency import ConsistencyGuard, ConsistencyMetric, RelativeWeightConsistencyMetric
from spectree.clustering.models import Cluster
from spectree.graph.sparse import Graph

if TYPE_CHECKING:
    from spectree.config import ClusteringSettings

logger = logging.getLogger(__name__)


class TreeTraversalMode(Enum):
    """How a postprocessor wants to visit the tree."""

    LOCAL_BOTTOM_TO_TOP = "local_bottom_to_top"


class Postprocessor(ABC):
    """A local rewrite of the cluster tree around a single cluster."""

    @abstractmethod
    def apply(self, cluster: Cluster) -> bool:
        """Rewrite the tree around ``cluster``; returns True if anything changed."""

    @property
    def traversal_mode(self) -> TreeTraversalMode:
        return TreeTraversalMode.LOCAL_BOTTOM_TO_TOP

    def __repr__(self) -> str:
        return type(self).__name__


class SingletonCollapsingPostprocessor(Postprocessor):
    """Merge a cluster into its parent when it is the parent's only child."""

    def apply(self, cluster: Cluster) -> bool:
        parent = cluster.parent
        if parent is not None and len(parent.children) == 1:
            parent.assimilate_child(cluster, assimilate_remainder=True)
            return True
        return False


class ConsistencyGuardingPostprocessor(Postprocessor):
    """Evict vertices that are no longer consistent with their cluster.

    The aggregate graph of a non-root cluster is run through a
    :class:`ConsistencyGuard`. Rejected vertices are removed from whichever
    cluster of the subtree held them and handed to the parent's remainder. If
    too few vertices survive, the cluster is dissolved and its children are
    adopted by the parent.
    """

    def __init__(
        self,
        graph: Graph,
        min_cluster_size: int,
        min_cluster_likelihood: float,
        metric: Optional[ConsistencyMetric] = None,
    ):
        self.graph = graph
        self.guard = ConsistencyGuard(
            metric or RelativeWeightConsistencyMetric(),
            graph,
            min_cluster_size,
            min_cluster_likelihood,
        )

    def apply(self, cluster: Cluster) -> bool:
        parent = cluster.parent
        if parent is None:
            return False

        collector = Cluster()
        consistent = self.guard.ensure(collector, cluster.aggregate_graph(self.graph))
        rejected = collector.remainder
        if consistent is not None and not rejected:
            return False

        for node in cluster.walk():
            node.remove_from_remainder(rejected)
        if consistent is None:
            parent.assimilate_child(cluster, assimilate_remainder=False)
        parent.add_to_remainder(rejected)
        return True


class AncestorSimilarityPostprocessor(Postprocessor):
    """Move a cluster up the tree until it overlaps sufficiently with its parent.

    The overlap of cluster ``C`` with ancestor ``A`` is the internal weight of
    ``C``'s aggregate graph divided by the weight its vertices carry inside
    ``A``'s aggregate graph. Starting from the parent, the search climbs while
    the overlap stays below ``min_ancestor_overlap``; the root always accepts.
    """

    def __init__(self, min_ancestor_overlap: float, graph: Graph):
        self.min_ancestor_overlap = min_ancestor_overlap
        self.graph = graph

    def overlap(self, cluster_graph: Graph, ancestor: Cluster) -> float:
        ancestor_graph = ancestor.aggregate_graph(self.graph)
        positions = ancestor_graph.local_ids(cluster_graph.vertices)
        positions = positions[positions >= 0]
        total = float(np.sum(ancestor_graph.weights()[positions]))
        if total == 0.0:
            return 0.0
        return float(np.sum(cluster_graph.weights())) / total

    def apply(self, cluster: Cluster) -> bool:
        parent = cluster.parent
        if parent is None or parent.is_root:
            return False

        cluster_graph = cluster.aggregate_graph(self.graph)
        ancestor = parent
        while not ancestor.is_root and self.overlap(cluster_graph, ancestor) < self.min_ancestor_overlap:
            ancestor = ancestor.parent

        if ancestor is parent:
            return False
        logger.debug(
            "Moving cluster at depth %d up %d levels",
            cluster.depth(),
            cluster.depth() - ancestor.depth() - 1,
        )
        cluster.reparent(ancestor)
        return True


class Postprocessing:
    """Run all postprocessors over the tree until it stops changing.

    Passes run in a fixed order: singleton collapsing, consistency guarding,
    ancestor similarity. Each pass is swept bottom-up (deepest clusters first)
    until a sweep leaves the tree untouched.
    """

    def __init__(self, root: Cluster, graph: Graph, settings: "ClusteringSettings"):
        self.root = root
        self.max_passes = settings.max_postprocessing_passes
        self.postprocessors: List[Postprocessor] = [
            SingletonCollapsingPostprocessor(),
            ConsistencyGuardingPostprocessor(
                graph,
                settings.min_cluster_size,
                settings.min_cluster_likelihood,
                settings.consistency_metric,
            ),
            AncestorSimilarityPostprocessor(settings.min_ancestor_overlap, graph),
        ]

    def apply(self) -> Tuple[Cluster, bool]:
        """Return the root and whether any pass modified the tree."""
        changed = False
        for passes in range(1, self.max_passes + 1):
            changed_in_pass = False
            for postprocessor in self.postprocessors:
                if self._apply_postprocessor(postprocessor):
                    changed_in_pass = True
            if not changed_in_pass:
                logger.debug("Postprocessing settled after %d passes", passes)
                break
            changed = True
        else:
            logger.warning("Postprocessing stopped after %d passes without settling", self.max_passes)
        return self.root, changed

    def _apply_postprocessor(self, postprocessor: Postprocessor) -> bool:
        if postprocessor.traversal_mode is not TreeTraversalMode.LOCAL_BOTTOM_TO_TOP:
            raise ValueError(f"unsupported traversal mode {postprocessor.traversal_mode}")

        changed = False
        for _ in range(self.max_passes):
            if not self._sweep_bottom_to_top(postprocessor):
                break
            changed = True
        return changed

    def _sweep_bottom_to_top(self, postprocessor: Postprocessor) -> bool:
        clusters = sorted(self.root.walk(), key=lambda c: c.depth(), reverse=True)
        changed = False
        for cluster in clusters:
            # skip clusters removed earlier in this sweep
            if cluster.root() is not self.root:
                continue
            if postprocessor.apply(cluster):
                changed = True
        if changed:
            logger.debug("%s modified the cluster tree", postprocessor)
        return changed
