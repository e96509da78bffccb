"""Recursive spectral clustering into a cluster hierarchy."""

from .consistency import ConsistencyGuard, ConsistencyMetric, RelativeWeightConsistencyMetric
from .digest import Digest, TopWeightsAggregateDigester
from .export import (
    cluster_tree_from_dict,
    cluster_tree_to_dict,
    cluster_tree_to_networkx,
    load_cluster_tree,
    save_cluster_tree,
)
from .models import Cluster
from .postprocessing import (
    AncestorSimilarityPostprocessor,
    ConsistencyGuardingPostprocessor,
    Postprocessing,
    Postprocessor,
    SingletonCollapsingPostprocessor,
    TreeTraversalMode,
)
from .recursive import ClusteringInvariantError, RecursiveClustering, cluster_graph

__all__ = [
    "Cluster",
    "ConsistencyGuard",
    "ConsistencyMetric",
    "RelativeWeightConsistencyMetric",
    "Digest",
    "TopWeightsAggregateDigester",
    "cluster_tree_from_dict",
    "cluster_tree_to_dict",
    "cluster_tree_to_networkx",
    "load_cluster_tree",
    "save_cluster_tree",
    "AncestorSimilarityPostprocessor",
    "ConsistencyGuardingPostprocessor",
    "Postprocessing",
    "Postprocessor",
    "SingletonCollapsingPostprocessor",
    "TreeTraversalMode",
    "ClusteringInvariantError",
    "RecursiveClustering",
    "cluster_graph",
]
