"""Sparse graph storage, traversal and spectral partitioning."""

from .builder import GraphBuilder, GraphConstructionError, build_graph, build_graph_from_frame
from .components import connected_components, find_connected_components
from .sparse import Graph, GraphDatastore
from .spectral import (
    ConstantSignTrailConvergence,
    MaxIterationsExceededError,
    NormalizedAdjacencyOperator,
    PartialConvergenceCriterion,
    SpectralBisector,
    power_iteration,
)

__all__ = [
    "Graph",
    "GraphBuilder",
    "GraphConstructionError",
    "GraphDatastore",
    "build_graph",
    "build_graph_from_frame",
    "connected_components",
    "find_connected_components",
    "ConstantSignTrailConvergence",
    "MaxIterationsExceededError",
    "NormalizedAdjacencyOperator",
    "PartialConvergenceCriterion",
    "SpectralBisector",
    "power_iteration",
]
