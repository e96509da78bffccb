"""Power iteration and spectral bisection of graph views."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Optional, Protocol

import numpy as np
from scipy.sparse import csr_matrix

from spectree.graph.matvec import Matvec, MatvecFactory, close_matvec, get_matvec

if TYPE_CHECKING:
    from spectree.config import ClusteringSettings
    from spectree.graph.sparse import Graph

logger = logging.getLogger(__name__)

PartitionHandler = Callable[["Graph"], None]


class MaxIterationsExceededError(RuntimeError):
    """Power iteration did not satisfy its convergence criterion in time."""

    def __init__(self, max_iterations: int):
        super().__init__(f"power iteration did not converge within {max_iterations} iterations")
        self.max_iterations = max_iterations


class PartialConvergenceCriterion(Protocol):
    """Decides when an iterate is good enough to be used for partitioning."""

    def satisfied(self, previous: np.ndarray, current: np.ndarray, iterations: int) -> bool:
        ...


class ConstantSignTrailConvergence:
    """Converged once enough vertices kept their sign for a trailing window.

    Each vertex carries a streak counter of consecutive iterations in which its
    entry stayed positive or stayed non-positive. The criterion holds when at
    least ``threshold * order`` vertices have a streak of ``trail_size`` or more.
    """

    def __init__(self, order: int, trail_size: int, threshold: float):
        self.trail_size = trail_size
        self.threshold = threshold
        self._required = threshold * order
        self._streaks = np.zeros(order, dtype=np.int64)

    def satisfied(self, previous: np.ndarray, current: np.ndarray, iterations: int) -> bool:
        constant = (previous > 0) == (current > 0)
        self._streaks = np.where(constant, self._streaks + 1, 0)
        return np.count_nonzero(self._streaks >= self.trail_size) >= self._required


class NormalizedAdjacencyOperator:
    """``x -> D^-1/2 A D^-1/2 x - v0 (v0 . x)``.

    This equals ``I - L_sym`` with the trivial eigenvector ``v0 ~ sqrt(d)``
    deflated, where ``L_sym`` is the symmetric normalized Laplacian. Its
    largest-magnitude eigenvector is the sign pattern used for bisection.
    """

    def __init__(self, adjacency: csr_matrix, matvec: Matvec):
        degrees = np.asarray(adjacency.sum(axis=1)).ravel().astype(np.float64)
        degrees[degrees == 0] = 1.0  # avoid division by zero
        sqrt_degrees = np.sqrt(degrees)
        self.inv_sqrt_degrees = 1.0 / sqrt_degrees
        self.v0 = sqrt_degrees / np.linalg.norm(sqrt_degrees)
        self._matvec = matvec

    def deflate(self, x: np.ndarray) -> np.ndarray:
        return x - self.v0 * (self.v0 @ x)

    def __call__(self, x: np.ndarray) -> np.ndarray:
        y = self.inv_sqrt_degrees * self._matvec(self.inv_sqrt_degrees * x)
        return self.deflate(y)


def power_iteration(
    operator: Callable[[np.ndarray], np.ndarray],
    criterion: PartialConvergenceCriterion,
    initial: np.ndarray,
    max_iterations: int,
) -> np.ndarray:
    """Iterate ``x <- normalize(operator(x))`` until ``criterion`` is satisfied.

    Each iterate is sign-aligned with its predecessor, so a negative dominant
    eigenvalue does not flip every entry on every step.

    Raises:
        MaxIterationsExceededError: if the criterion is not met within ``max_iterations``
    """
    norm = np.linalg.norm(initial)
    if norm == 0:
        raise ValueError("power iteration needs a non-zero start vector")
    x = initial / norm

    for iterations in range(1, max_iterations + 1):
        y = operator(x)
        norm = np.linalg.norm(y)
        if norm == 0:
            y = x
        else:
            y = y / norm
            if y @ x < 0:
                y = -y
        if criterion.satisfied(x, y, iterations):
            logger.debug("Power iteration converged after %d iterations (%d vertices)", iterations, len(y))
            return y
        x = y

    raise MaxIterationsExceededError(max_iterations)


class SpectralBisector:
    """Splits a graph view into two parts by the sign of its Fiedler-style vector."""

    def __init__(self, settings: "ClusteringSettings", matvec_factory: Optional[MatvecFactory] = None):
        self.settings = settings
        self.matvec_factory = matvec_factory

    def _matvec(self, adjacency: csr_matrix) -> Matvec:
        if self.matvec_factory is not None:
            return self.matvec_factory(adjacency)
        return get_matvec(adjacency, allow_gpu=self.settings.allow_gpu, num_workers=self.settings.num_workers)

    def eigenvector(self, graph: "Graph", max_iterations: Optional[int] = None) -> np.ndarray:
        """Dominant eigenvector of the deflated normalized adjacency of ``graph``."""
        if graph.order <= 1:
            return np.zeros(graph.order, dtype=np.float64)

        adjacency = graph.adjacency()
        matvec = self._matvec(adjacency)
        try:
            operator = NormalizedAdjacencyOperator(adjacency, matvec)
            rng = np.random.default_rng(self.settings.random_seed)
            initial = operator.deflate(rng.uniform(-1.0, 1.0, graph.order))
            criterion = self.settings.convergence_criterion_for_graph(graph)
            return power_iteration(
                operator,
                criterion,
                initial,
                max_iterations or self.settings.max_iterations,
            )
        finally:
            close_matvec(matvec)

    def bisect(self, graph: "Graph", handler: PartitionHandler, max_iterations: Optional[int] = None) -> None:
        """Deliver both partitions of ``graph`` to ``handler``.

        Vertices with a non-positive eigenvector entry form the first partition.
        Either partition may be empty.

        Raises:
            MaxIterationsExceededError: before any partition has been delivered
        """
        vector = self.eigenvector(graph, max_iterations)
        positive = vector > 0
        handler(graph.local_subgraph(np.flatnonzero(~positive)))
        handler(graph.local_subgraph(np.flatnonzero(positive)))
