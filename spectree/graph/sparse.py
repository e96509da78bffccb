"""Compressed sparse graph storage and induced subgraph views."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple, Union

import numpy as np
from scipy.sparse import coo_matrix, csr_matrix

from spectree.graph.search import interpolation_search, locate
from spectree.graph.traversal import (
    EdgeCollector,
    EdgeConsumer,
    EdgeCounter,
    VertexWeights,
    traverse_parallel,
)

logger = logging.getLogger(__name__)

VertexIds = Union[np.ndarray, Iterable[int]]

_EMPTY_IDS = np.empty(0, dtype=np.int64)
_EMPTY_WEIGHTS = np.empty(0, dtype=np.float64)


def as_id_array(ids: VertexIds) -> np.ndarray:
    """Vertex ids as an int64 array; non-integer ids raise ``TypeError``."""
    arr = ids if isinstance(ids, np.ndarray) else np.asarray(list(ids))
    if arr.size == 0:
        return _EMPTY_IDS.copy()
    if not np.issubdtype(arr.dtype, np.integer):
        raise TypeError(f"vertex ids must be integers; got dtype {arr.dtype}")
    return arr.astype(np.int64, copy=False)


@dataclass(frozen=True)
class GraphDatastore:
    """Immutable CSR arrays of a symmetric weighted graph.

    Rows are compact indices ``0..n-1``. ``labels[i]`` is the caller's vertex id
    of row ``i``; labels are unique and ascending, so row order and id order
    agree. ``edges[pointers[i]:pointers[i + 1]]`` are the (ascending) neighbour
    rows of row ``i`` and ``weights`` is aligned with ``edges``. Every undirected
    edge is stored in both rows; self loops are stored once.
    """

    pointers: np.ndarray
    edges: np.ndarray
    weights: np.ndarray
    labels: np.ndarray

    def __post_init__(self) -> None:
        if len(self.labels) != len(self.pointers) - 1:
            raise ValueError(
                f"expected {len(self.pointers) - 1} vertex labels; received {len(self.labels)}"
            )
        for arr in (self.pointers, self.edges, self.weights, self.labels):
            arr.setflags(write=False)

    @property
    def num_vertices(self) -> int:
        return len(self.pointers) - 1

    @property
    def nnz(self) -> int:
        return len(self.edges)

    def memory_footprint(self) -> int:
        """Bytes held by the CSR arrays."""
        return int(self.pointers.nbytes + self.edges.nbytes + self.weights.nbytes + self.labels.nbytes)

    def fmt_memory_footprint(self) -> str:
        footprint = self.memory_footprint()
        if footprint >= 1 << 30:
            return f"{footprint / (1 << 30):.2f} GB"
        if footprint >= 1 << 20:
            return f"{footprint / (1 << 20):.2f} MB"
        if footprint >= 1 << 10:
            return f"{footprint / (1 << 10):.2f} KB"
        return f"{footprint} bytes"


class Graph:
    """Read-only view of a :class:`GraphDatastore` restricted to a sorted vertex subset.

    Local vertex ids are positions within ``vertices``. Global ids are the
    caller's vertex ids (the datastore labels); ``rows`` holds the matching
    datastore rows. The backing arrays are shared between all views and never
    copied.
    """

    def __init__(
        self,
        datastore: GraphDatastore,
        rows: Optional[np.ndarray] = None,
        num_workers: Optional[int] = None,
    ):
        self.datastore = datastore
        if rows is None:
            rows = np.arange(datastore.num_vertices, dtype=np.int64)
        else:
            # a view, so the caller's array stays writable
            rows = rows.view()
        rows.setflags(write=False)
        self._rows = rows
        vertices = datastore.labels[rows]
        vertices.setflags(write=False)
        self._vertices = vertices
        self.num_workers = num_workers
        self._cached_size: Optional[int] = None
        self._cached_weights: Optional[np.ndarray] = None

    def __repr__(self) -> str:
        return f"Graph(order={self.order}, datastore_vertices={self.datastore.num_vertices})"

    # ------------------------------------------------------------------
    # Basic properties
    # ------------------------------------------------------------------

    @property
    def order(self) -> int:
        """Number of vertices."""
        return len(self._vertices)

    @property
    def size(self) -> int:
        """Number of distinct undirected edges of the induced edge set (cached)."""
        if self._cached_size is None:
            counter = EdgeCounter()
            self.traverse_parallel(counter)
            self._cached_size = counter.count
        return self._cached_size

    @property
    def vertices(self) -> np.ndarray:
        """Sorted global vertex ids (read-only)."""
        return self._vertices

    @property
    def rows(self) -> np.ndarray:
        """Datastore rows of the vertices, aligned with :attr:`vertices` (read-only)."""
        return self._rows

    def collect_vertices(self) -> np.ndarray:
        return self._vertices.copy()

    def global_id(self, local_id: int) -> int:
        return int(self._vertices[local_id])

    def local_id(self, global_id: int) -> int:
        """Local id of ``global_id`` or -1 if the vertex is not part of this view."""
        if self.order == 0:
            return -1
        return interpolation_search(self._vertices, int(global_id), 0, self.order - 1)

    def local_ids(self, global_ids: VertexIds) -> np.ndarray:
        return locate(self._vertices, as_id_array(global_ids))

    def __contains__(self, global_id: int) -> bool:
        return self.local_id(global_id) >= 0

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def induced_subgraph(self, global_ids: VertexIds) -> "Graph":
        """Return the view induced by ``global_ids`` on the same datastore."""
        ids = np.unique(as_id_array(global_ids))
        rows = locate(self.datastore.labels, ids)
        unknown = ids[rows < 0]
        if len(unknown):
            raise IndexError(
                f"{len(unknown)} vertex ids are not part of the graph, e.g. {unknown[:5].tolist()}"
            )
        return Graph(self.datastore, rows, num_workers=self.num_workers)

    def local_subgraph(self, local_ids: VertexIds) -> "Graph":
        """Return the view induced by a subset of this view's local ids."""
        local = as_id_array(local_ids)
        return Graph(self.datastore, np.unique(self._rows[local]), num_workers=self.num_workers)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _row_bounds(self, v: int) -> Tuple[int, int]:
        row = self._rows[v]
        return int(self.datastore.pointers[row]), int(self.datastore.pointers[row + 1])

    def neighbours(self, v: int) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(local_neighbour_ids, weights)`` of local vertex ``v``, ascending by id.

        Scans whichever side is smaller: the vertex's row in the datastore or the
        view's id array.
        """
        if self.order == 0 or v < 0:
            return _EMPTY_IDS, _EMPTY_WEIGHTS
        low, high = self._row_bounds(v)
        if low == high:
            return _EMPTY_IDS, _EMPTY_WEIGHTS
        if self.order > high - low:
            return self.traverse_by_adjacent(v)
        return self.traverse_by_vertices(v)

    def traverse_by_adjacent(self, v: int) -> Tuple[np.ndarray, np.ndarray]:
        """Map every entry of the global row of ``v`` into this view."""
        low, high = self._row_bounds(v)
        local = locate(self._rows, self.datastore.edges[low:high])
        mask = local >= 0
        return local[mask], np.asarray(self.datastore.weights[low:high][mask])

    def traverse_by_vertices(self, v: int) -> Tuple[np.ndarray, np.ndarray]:
        """Probe the global row of ``v`` for every vertex id of this view."""
        low, high = self._row_bounds(v)
        positions = locate(self.datastore.edges, self._rows, low, high)
        mask = positions >= 0
        return np.flatnonzero(mask).astype(np.int64), np.asarray(self.datastore.weights[positions[mask]])

    def traverse(self, v: int, consumer: EdgeConsumer) -> None:
        """Feed all edges incident to local vertex ``v`` to ``consumer``."""
        neighbours, weights = self.neighbours(v)
        if len(neighbours):
            consumer(np.full(len(neighbours), v, dtype=np.int64), neighbours, weights)

    def traverse_parallel(self, consumer: EdgeConsumer, chunk_size: Optional[int] = None) -> None:
        """Feed every directed edge entry of the view to ``consumer`` across worker threads."""
        traverse_parallel(self, consumer, num_workers=self.num_workers, chunk_size=chunk_size)

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def weights(self) -> np.ndarray:
        """Per-vertex sums of incident edge weights inside this view (cached)."""
        if self._cached_weights is None:
            consumer = VertexWeights(self.order)
            self.traverse_parallel(consumer)
            weights = consumer.weights
            weights.setflags(write=False)
            self._cached_weights = weights
        return self._cached_weights

    def relative_weights(self, supergraph: "Graph") -> np.ndarray:
        """Weights of this view's vertices divided by their weights in ``supergraph``."""
        positions = supergraph.local_ids(self._vertices)
        if np.any(positions < 0):
            raise ValueError("relative weights require the vertices to be a subset of the supergraph")
        own = self.weights()
        total = supergraph.weights()[positions]
        return np.divide(own, total, out=np.zeros(self.order, dtype=np.float64), where=total > 0)

    def adjacency(self) -> csr_matrix:
        """Weighted adjacency of the view, indexed by local ids."""
        collector = EdgeCollector()
        self.traverse_parallel(collector)
        rows, cols, data = collector.arrays()
        return coo_matrix((data, (rows, cols)), shape=(self.order, self.order)).tocsr()
