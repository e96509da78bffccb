"""Parallel edge traversal over graph views.

Consumers are called with aligned arrays ``(u, v, weight)`` of local vertex ids
and edge weights. Calls may arrive out of order and from several worker threads
at once, so consumers guard their own state.
"""
from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Callable, List, Optional, Tuple

import numpy as np

from spectree.graph.search import locate

if TYPE_CHECKING:
    from spectree.graph.sparse import Graph

logger = logging.getLogger(__name__)

EdgeConsumer = Callable[[np.ndarray, np.ndarray, np.ndarray], None]

DEFAULT_CHUNK_SIZE = 4096  # rows per work unit


def default_num_workers() -> int:
    return max(1, min(8, os.cpu_count() or 1))


def row_chunks(order: int, chunk_size: int) -> List[Tuple[int, int]]:
    """Split ``range(order)`` into contiguous ``[start, stop)`` row ranges."""
    return [(start, min(start + chunk_size, order)) for start in range(0, order, chunk_size)]


def chunk_edges(graph: "Graph", start: int, stop: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Collect all edges of local rows ``[start, stop)`` that stay inside ``graph``."""
    pointers = graph.datastore.pointers
    rows = graph.rows[start:stop]
    lows = pointers[rows]
    counts = pointers[rows + 1] - lows
    total = int(counts.sum())
    if total == 0:
        empty = np.empty(0, dtype=np.int64)
        return empty, empty, np.empty(0, dtype=np.float64)

    # Flat positions of every entry of the selected rows in the CSR arrays
    offsets = np.cumsum(counts) - counts
    flat = np.arange(total, dtype=np.int64) - np.repeat(offsets, counts) + np.repeat(lows, counts)

    v = locate(graph.rows, graph.datastore.edges[flat])
    mask = v >= 0
    u = np.repeat(np.arange(start, stop, dtype=np.int64), counts)
    return u[mask], v[mask], np.asarray(graph.datastore.weights[flat[mask]])


def traverse_parallel(
    graph: "Graph",
    consumer: EdgeConsumer,
    num_workers: Optional[int] = None,
    chunk_size: Optional[int] = None,
) -> None:
    """Enumerate every directed edge entry of ``graph`` exactly once.

    Rows are partitioned into chunks that run on a thread pool; the call returns
    once every chunk has been consumed. Exceptions raised by workers propagate.
    """
    chunk_size = chunk_size or DEFAULT_CHUNK_SIZE
    num_workers = num_workers or default_num_workers()
    chunks = row_chunks(graph.order, chunk_size)

    def work(bounds: Tuple[int, int]) -> None:
        u, v, w = chunk_edges(graph, *bounds)
        if len(u):
            consumer(u, v, w)

    if len(chunks) <= 1 or num_workers == 1:
        for bounds in chunks:
            work(bounds)
        return

    with ThreadPoolExecutor(max_workers=min(num_workers, len(chunks))) as executor:
        futures = [executor.submit(work, bounds) for bounds in chunks]
        for future in futures:
            future.result()


class EdgeCounter:
    """Counts distinct undirected edges (``u <= v``)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0

    def __call__(self, u: np.ndarray, v: np.ndarray, w: np.ndarray) -> None:
        n = int(np.count_nonzero(u <= v))
        with self._lock:
            self._count += n

    @property
    def count(self) -> int:
        return self._count


class VertexWeights:
    """Accumulates per-vertex sums of incident edge weights."""

    def __init__(self, order: int) -> None:
        self._lock = threading.Lock()
        self.weights = np.zeros(order, dtype=np.float64)

    def __call__(self, u: np.ndarray, v: np.ndarray, w: np.ndarray) -> None:
        partial = np.bincount(u, weights=w, minlength=len(self.weights))
        with self._lock:
            self.weights += partial


class EdgeCollector:
    """Gathers edge chunks for later assembly into a sparse matrix."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._chunks: List[Tuple[np.ndarray, np.ndarray, np.ndarray]] = []

    def __call__(self, u: np.ndarray, v: np.ndarray, w: np.ndarray) -> None:
        with self._lock:
            self._chunks.append((u, v, w))

    def arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        if not self._chunks:
            empty = np.empty(0, dtype=np.int64)
            return empty, empty, np.empty(0, dtype=np.float64)
        u, v, w = zip(*self._chunks)
        return np.concatenate(u), np.concatenate(v), np.concatenate(w)
