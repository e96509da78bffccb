"""Configuration helpers for spectral hierarchical clustering."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional, TypeVar

from dotenv import load_dotenv

from spectree.graph.spectral import ConstantSignTrailConvergence, PartialConvergenceCriterion

if TYPE_CHECKING:
    from spectree.clustering.consistency import ConsistencyMetric
    from spectree.graph.sparse import Graph

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ENV_PATH = PROJECT_ROOT / ".env"

# Load environment variables early so downstream modules can rely on them.
load_dotenv(ENV_PATH, override=False)

MIN_CLUSTER_SIZE_ENV = "SPECTREE_MIN_CLUSTER_SIZE"
MIN_CLUSTER_LIKELIHOOD_ENV = "SPECTREE_MIN_CLUSTER_LIKELIHOOD"
MIN_ANCESTOR_OVERLAP_ENV = "SPECTREE_MIN_ANCESTOR_OVERLAP"
TRAIL_SIZE_ENV = "SPECTREE_TRAIL_SIZE"
CONVERGENCE_THRESHOLD_ENV = "SPECTREE_CONVERGENCE_THRESHOLD"
MAX_ITERATIONS_ENV = "SPECTREE_MAX_ITERATIONS"
NUM_WORKERS_ENV = "SPECTREE_NUM_WORKERS"
RANDOM_SEED_ENV = "SPECTREE_RANDOM_SEED"
MAX_POSTPROCESSING_PASSES_ENV = "SPECTREE_MAX_POSTPROCESSING_PASSES"

DEFAULT_MIN_CLUSTER_SIZE = 50
DEFAULT_MIN_CLUSTER_LIKELIHOOD = 0.1
DEFAULT_MIN_ANCESTOR_OVERLAP = 0.4
DEFAULT_TRAIL_SIZE = 25
DEFAULT_CONVERGENCE_THRESHOLD = 0.95
DEFAULT_MAX_ITERATIONS = 10000
DEFAULT_RANDOM_SEED = 42
DEFAULT_MAX_POSTPROCESSING_PASSES = 100

T = TypeVar("T")


def _default_consistency_metric() -> "ConsistencyMetric":
    from spectree.clustering.consistency import RelativeWeightConsistencyMetric

    return RelativeWeightConsistencyMetric()


@dataclass(frozen=True)
class ClusteringSettings:
    """Parameters of a recursive clustering run.

    Attributes:
        consistency_metric: Vertex/cluster consistency metric
        min_cluster_size: Minimum number of vertices of a cluster
        min_cluster_likelihood: Minimum consistency score of a vertex wrt. its cluster
        min_ancestor_overlap: Minimum overlap of a cluster with its parent
        trail_size: Iterations a vertex sign must stay constant to count as converged
        convergence_threshold: Fraction of converged vertices that ends power iteration
        max_iterations: Power iteration cap
        num_workers: Worker threads for traversal and matvec (None = CPU based default)
        random_seed: Seed of the power iteration start vector
        max_postprocessing_passes: Cap on postprocessing sweeps
        allow_gpu: Route power iteration matvecs to the GPU when available
    """

    consistency_metric: "ConsistencyMetric" = field(default_factory=_default_consistency_metric)
    min_cluster_size: int = DEFAULT_MIN_CLUSTER_SIZE
    min_cluster_likelihood: float = DEFAULT_MIN_CLUSTER_LIKELIHOOD
    min_ancestor_overlap: float = DEFAULT_MIN_ANCESTOR_OVERLAP
    trail_size: int = DEFAULT_TRAIL_SIZE
    convergence_threshold: float = DEFAULT_CONVERGENCE_THRESHOLD
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    num_workers: Optional[int] = None
    random_seed: int = DEFAULT_RANDOM_SEED
    max_postprocessing_passes: int = DEFAULT_MAX_POSTPROCESSING_PASSES
    allow_gpu: bool = False

    def __post_init__(self) -> None:
        if self.min_cluster_size < 1:
            raise ValueError(f"min_cluster_size must be >= 1; received {self.min_cluster_size}")
        if not 0.0 <= self.min_cluster_likelihood <= 1.0:
            raise ValueError(f"min_cluster_likelihood must lie in [0, 1]; received {self.min_cluster_likelihood}")
        if not 0.0 <= self.min_ancestor_overlap <= 1.0:
            raise ValueError(f"min_ancestor_overlap must lie in [0, 1]; received {self.min_ancestor_overlap}")
        if self.trail_size < 1:
            raise ValueError(f"trail_size must be >= 1; received {self.trail_size}")
        if not 0.0 < self.convergence_threshold <= 1.0:
            raise ValueError(f"convergence_threshold must lie in (0, 1]; received {self.convergence_threshold}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1; received {self.max_iterations}")
        if self.num_workers is not None and self.num_workers < 1:
            raise ValueError(f"num_workers must be >= 1; received {self.num_workers}")
        if self.max_postprocessing_passes < 1:
            raise ValueError(
                f"max_postprocessing_passes must be >= 1; received {self.max_postprocessing_passes}"
            )

    def convergence_criterion_for_graph(self, graph: "Graph") -> PartialConvergenceCriterion:
        """Fresh convergence criterion for one power iteration run on ``graph``."""
        return ConstantSignTrailConvergence(graph.order, self.trail_size, self.convergence_threshold)


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _parse_env(name: str, parse: Callable[[str], T], default: T, kind: str) -> T:
    raw = _get_env(name)
    if raw is None:
        return default
    try:
        return parse(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be {kind}; received '{raw}'.") from exc


def get_clustering_settings(**overrides) -> ClusteringSettings:
    """Resolve clustering settings from ``SPECTREE_*`` environment variables.

    Keyword overrides (e.g. from command line flags) take precedence over the
    environment. Unset values fall back to the defaults.
    """
    values = {
        "min_cluster_size": _parse_env(MIN_CLUSTER_SIZE_ENV, int, DEFAULT_MIN_CLUSTER_SIZE, "an integer"),
        "min_cluster_likelihood": _parse_env(
            MIN_CLUSTER_LIKELIHOOD_ENV, float, DEFAULT_MIN_CLUSTER_LIKELIHOOD, "a number"
        ),
        "min_ancestor_overlap": _parse_env(
            MIN_ANCESTOR_OVERLAP_ENV, float, DEFAULT_MIN_ANCESTOR_OVERLAP, "a number"
        ),
        "trail_size": _parse_env(TRAIL_SIZE_ENV, int, DEFAULT_TRAIL_SIZE, "an integer"),
        "convergence_threshold": _parse_env(
            CONVERGENCE_THRESHOLD_ENV, float, DEFAULT_CONVERGENCE_THRESHOLD, "a number"
        ),
        "max_iterations": _parse_env(MAX_ITERATIONS_ENV, int, DEFAULT_MAX_ITERATIONS, "an integer"),
        "num_workers": _parse_env(NUM_WORKERS_ENV, int, None, "an integer"),
        "random_seed": _parse_env(RANDOM_SEED_ENV, int, DEFAULT_RANDOM_SEED, "an integer"),
        "max_postprocessing_passes": _parse_env(
            MAX_POSTPROCESSING_PASSES_ENV, int, DEFAULT_MAX_POSTPROCESSING_PASSES, "an integer"
        ),
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return ClusteringSettings(**values)
    except ValueError as exc:
        raise RuntimeError(f"Invalid clustering settings: {exc}") from exc
