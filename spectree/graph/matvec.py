"""Sparse matrix-vector product backends for power iteration.

Routing priority:
1. GPU (CuPy) - if enabled and a CUDA device is available
2. CPU - scipy row blocks on a thread pool

Environment Variables:
    SPECTREE_USE_GPU=true - Enable the GPU backend
    SPECTREE_FORCE_CPU=true - Force CPU (disable GPU)
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

import numpy as np
from scipy.sparse import csr_matrix

from spectree.graph.gpu_capability import get_gpu_capability
from spectree.graph.traversal import default_num_workers, row_chunks

logger = logging.getLogger(__name__)

Matvec = Callable[[np.ndarray], np.ndarray]
MatvecFactory = Callable[[csr_matrix], Matvec]

MIN_ROWS_PER_BLOCK = 16384


class CpuMatvec:
    """``adjacency @ x`` computed over row blocks in parallel.

    Each worker writes a disjoint slice of the output vector. Small matrices
    are multiplied inline.
    """

    backend = "cpu"

    def __init__(self, adjacency: csr_matrix, num_workers: Optional[int] = None,
                 min_rows_per_block: int = MIN_ROWS_PER_BLOCK):
        self.adjacency = adjacency.tocsr()
        num_workers = num_workers or default_num_workers()
        n = self.adjacency.shape[0]
        block = max(min_rows_per_block, -(-n // num_workers)) if n else 1
        self._bounds = row_chunks(n, block)
        self._blocks: List[csr_matrix] = [self.adjacency[start:stop] for start, stop in self._bounds]
        self._executor: Optional[ThreadPoolExecutor] = None
        if len(self._blocks) > 1:
            self._executor = ThreadPoolExecutor(max_workers=min(num_workers, len(self._blocks)))

    def __call__(self, x: np.ndarray) -> np.ndarray:
        if self._executor is None:
            return self.adjacency @ x
        out = np.empty(self.adjacency.shape[0], dtype=np.float64)

        def work(i: int) -> None:
            start, stop = self._bounds[i]
            out[start:stop] = self._blocks[i] @ x

        for future in [self._executor.submit(work, i) for i in range(len(self._blocks))]:
            future.result()
        return out

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None


class GpuMatvec:
    """``adjacency @ x`` on a CUDA device via ``cupyx.scipy.sparse``.

    The first failing product (out of device memory, a lost context) logs a
    warning and switches this instance to a :class:`CpuMatvec` over the same
    adjacency for the rest of its life.
    """

    def __init__(self, adjacency: csr_matrix, num_workers: Optional[int] = None):
        self.adjacency = adjacency.tocsr()
        self.num_workers = num_workers
        self._fallback: Optional[CpuMatvec] = None
        self._matrix = self._upload(self.adjacency)

    @property
    def backend(self) -> str:
        return "gpu" if self._fallback is None else "cpu"

    def _upload(self, adjacency: csr_matrix):
        import cupy
        from cupyx.scipy import sparse as cusparse

        self._cupy = cupy
        return cusparse.csr_matrix(adjacency.astype(np.float64))

    def _multiply(self, x: np.ndarray) -> np.ndarray:
        result = self._matrix @ self._cupy.asarray(x, dtype=np.float64)
        return self._cupy.asnumpy(result)

    def __call__(self, x: np.ndarray) -> np.ndarray:
        if self._fallback is None:
            try:
                return self._multiply(x)
            except Exception as e:
                logger.warning("GPU matvec failed: %s, falling back to CPU", e)
                self._matrix = None
                self._fallback = CpuMatvec(self.adjacency, num_workers=self.num_workers)
        return self._fallback(x)

    def close(self) -> None:
        self._matrix = None
        if self._fallback is not None:
            self._fallback.close()


def get_matvec(
    adjacency: csr_matrix,
    *,
    allow_gpu: bool = False,
    num_workers: Optional[int] = None,
) -> Matvec:
    """Return the best available matvec backend for ``adjacency``."""
    capability = get_gpu_capability(allow_gpu=allow_gpu)
    if capability.can_use_gpu:
        try:
            return GpuMatvec(adjacency, num_workers=num_workers)
        except Exception as e:
            logger.warning("GPU matvec setup failed: %s, falling back to CPU", e)
    return CpuMatvec(adjacency, num_workers=num_workers)


def close_matvec(matvec: Matvec) -> None:
    """Release resources held by a matvec backend, if it holds any."""
    close = getattr(matvec, "close", None)
    if close is not None:
        close()
