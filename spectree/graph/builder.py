"""Utilities to build compressed sparse graphs from edge lists."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy.sparse import coo_matrix

from spectree.graph.sparse import Graph, GraphDatastore
from spectree.performance_profiler import profile_phase

logger = logging.getLogger(__name__)


class GraphConstructionError(ValueError):
    """Raised when edge data cannot form a valid graph."""


class GraphBuilder:
    """Accumulates weighted edges and builds an immutable :class:`Graph`.

    Every edge is inserted symmetrically (self loops once). Repeated ``(u, v)``
    pairs are merged by summing their weights.

    Vertex ids are opaque non-negative integers. The vertex set is every id
    seen in an edge or passed to :meth:`add_vertices`, plus ``0..num_vertices-1``
    when ``num_vertices`` is given. Ids are compacted into datastore rows, so
    gaps between ids cost nothing.

    Example:
        graph = GraphBuilder().add(0, 1, 2.0).add(1, 2, 0.5).build()
    """

    def __init__(self, num_vertices: Optional[int] = None, num_workers: Optional[int] = None):
        self.num_vertices = num_vertices
        self.num_workers = num_workers
        self._sources: List[np.ndarray] = []
        self._targets: List[np.ndarray] = []
        self._weights: List[np.ndarray] = []
        self._pending: List[Tuple[int, int, float]] = []
        self._vertices: List[np.ndarray] = []

    def add(self, u: int, v: int, weight: float = 1.0) -> "GraphBuilder":
        self._pending.append((u, v, weight))
        return self

    def add_vertices(self, vertices: Iterable[int]) -> "GraphBuilder":
        """Declare vertices that may have no incident edge."""
        ids = np.asarray(list(vertices))
        if len(ids):
            self._vertices.append(ids)
        return self

    def add_edges(self, sources, targets, weights=None) -> "GraphBuilder":
        """Add aligned arrays of edges (weights default to 1.0)."""
        sources = np.asarray(sources)
        targets = np.asarray(targets)
        if sources.shape != targets.shape:
            raise GraphConstructionError(
                f"source/target arrays differ in shape: {sources.shape} vs {targets.shape}"
            )
        if weights is None:
            weights = np.ones(len(sources), dtype=np.float64)
        weights = np.asarray(weights, dtype=np.float64)
        if weights.shape != sources.shape:
            raise GraphConstructionError("weights must be aligned with the edge endpoints")
        self._sources.append(sources)
        self._targets.append(targets)
        self._weights.append(weights)
        return self

    def _collect(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        sources = list(self._sources)
        targets = list(self._targets)
        weights = list(self._weights)
        if self._pending:
            u, v, w = zip(*self._pending)
            sources.append(np.asarray(u))
            targets.append(np.asarray(v))
            weights.append(np.asarray(w, dtype=np.float64))
        if not sources:
            return np.empty(0, dtype=np.int64), np.empty(0, dtype=np.int64), np.empty(0, dtype=np.float64)
        return np.concatenate(sources), np.concatenate(targets), np.concatenate(weights)

    def _collect_vertices(self) -> np.ndarray:
        if not self._vertices:
            return np.empty(0, dtype=np.int64)
        ids = np.concatenate(self._vertices)
        if not np.issubdtype(ids.dtype, np.integer):
            raise GraphConstructionError("vertex ids must be integers")
        if ids.min() < 0:
            raise GraphConstructionError("vertex ids must be non-negative")
        return ids.astype(np.int64)

    def build(self) -> Graph:
        u, v, w = self._collect()
        _validate_edges(u, v, w)
        extra = self._collect_vertices()
        u = u.astype(np.int64)
        v = v.astype(np.int64)

        if self.num_vertices is not None:
            largest = int(max(u.max(initial=-1), v.max(initial=-1), extra.max(initial=-1)))
            if largest >= self.num_vertices:
                raise GraphConstructionError(
                    f"num_vertices={self.num_vertices} but vertex {largest} was referenced"
                )
            extra = np.concatenate([extra, np.arange(self.num_vertices, dtype=np.int64)])

        with profile_phase("build_csr", metadata={"edges": len(u)}):
            # Sorted labels keep row order and id order aligned
            labels, inverse = np.unique(np.concatenate([u, v, extra]), return_inverse=True)
            inverse = inverse.ravel()
            num_vertices = len(labels)
            ru = inverse[: len(u)]
            rv = inverse[len(u): 2 * len(u)]

            mirrored = ru != rv
            rows = np.concatenate([ru, rv[mirrored]])
            cols = np.concatenate([rv, ru[mirrored]])
            data = np.concatenate([w, w[mirrored]])
            # tocsr() merges duplicate entries by summation
            matrix = coo_matrix((data, (rows, cols)), shape=(num_vertices, num_vertices)).tocsr()
            matrix.eliminate_zeros()
            matrix.sort_indices()

        datastore = GraphDatastore(
            pointers=matrix.indptr.astype(np.int64),
            edges=matrix.indices.astype(np.int64),
            weights=matrix.data.astype(np.float64),
            labels=labels.astype(np.int64),
        )
        logger.info(
            "Built graph with %d vertices, %d stored entries (%s)",
            num_vertices,
            datastore.nnz,
            datastore.fmt_memory_footprint(),
        )
        return Graph(datastore, num_workers=self.num_workers)


def _validate_edges(u: np.ndarray, v: np.ndarray, w: np.ndarray) -> None:
    if len(u) == 0:
        return
    if not (np.issubdtype(u.dtype, np.integer) and np.issubdtype(v.dtype, np.integer)):
        raise GraphConstructionError("vertex ids must be integers")
    if u.min() < 0 or v.min() < 0:
        raise GraphConstructionError("vertex ids must be non-negative")
    if not np.all(np.isfinite(w)):
        raise GraphConstructionError("edge weights must be finite")
    if np.any(w < 0):
        bad = int(np.flatnonzero(w < 0)[0])
        raise GraphConstructionError(
            f"edge weights must be non-negative; edge ({u[bad]}, {v[bad]}) has weight {w[bad]}"
        )


def build_graph(
    edges: Iterable[Tuple[int, int, float]],
    num_vertices: Optional[int] = None,
    num_workers: Optional[int] = None,
    vertices: Optional[Iterable[int]] = None,
) -> Graph:
    """Build a graph from ``(u, v, weight)`` triples plus optional isolated ``vertices``."""
    builder = GraphBuilder(num_vertices=num_vertices, num_workers=num_workers)
    if vertices is not None:
        builder.add_vertices(vertices)
    for u, v, weight in edges:
        builder.add(u, v, weight)
    return builder.build()


def build_graph_from_frame(
    edges: pd.DataFrame,
    *,
    source_col: str = "source",
    target_col: str = "target",
    weight_col: Optional[str] = "weight",
    num_vertices: Optional[int] = None,
    num_workers: Optional[int] = None,
) -> Graph:
    """Build a graph from an edge frame; a missing weight column means unit weights."""
    missing = [col for col in (source_col, target_col) if col not in edges.columns]
    if missing:
        raise GraphConstructionError(f"edge frame lacks columns: {', '.join(missing)}")

    weights = None
    if weight_col is not None and weight_col in edges.columns:
        weights = edges[weight_col].to_numpy(dtype=np.float64)
    return (
        GraphBuilder(num_vertices=num_vertices, num_workers=num_workers)
        .add_edges(edges[source_col].to_numpy(), edges[target_col].to_numpy(), weights)
        .build()
    )
