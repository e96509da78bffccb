"""Cluster an edge list into a spectral cluster hierarchy and save it as JSON."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

import pandas as pd

from spectree.clustering.digest import TopWeightsAggregateDigester
from spectree.clustering.export import save_cluster_tree
from spectree.clustering.recursive import ClusteringInvariantError, RecursiveClustering
from spectree.config import get_clustering_settings
from spectree.graph.builder import GraphConstructionError, build_graph_from_frame
from spectree.logging_utils import setup_logging
from spectree.performance_profiler import PerformanceProfiler

logger = logging.getLogger("cluster_graph")


def load_edges(path: Path, sep: Optional[str] = None) -> pd.DataFrame:
    """Load an edge list from csv, tsv or parquet."""
    suffix = path.suffix.lower()
    if suffix == ".parquet":
        return pd.read_parquet(path)
    if sep is None:
        sep = "\t" if suffix in (".tsv", ".tab") else ","
    return pd.read_csv(path, sep=sep)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Recursive spectral clustering of a weighted edge list.")
    parser.add_argument("edges", type=Path, help="Edge list (.csv, .tsv or .parquet)")
    parser.add_argument("--output", type=Path, default=None, help="JSON output path (default <edges>.clusters.json)")
    parser.add_argument("--sep", default=None, help="Column separator for text input")
    parser.add_argument("--source-col", default="source")
    parser.add_argument("--target-col", default="target")
    parser.add_argument("--weight-col", default="weight", help="Weight column; unit weights if absent")
    parser.add_argument("--min-cluster-size", type=int, default=None)
    parser.add_argument("--min-cluster-likelihood", type=float, default=None)
    parser.add_argument("--min-ancestor-overlap", type=float, default=None)
    parser.add_argument("--trail-size", type=int, default=None)
    parser.add_argument("--convergence-threshold", type=float, default=None)
    parser.add_argument("--max-iterations", type=int, default=None)
    parser.add_argument("--num-workers", type=int, default=None)
    parser.add_argument("--random-seed", type=int, default=None)
    parser.add_argument("--gpu", action="store_true", help="Use the GPU for power iteration when available")
    parser.add_argument("--digest-size", type=int, default=10, help="Vertices to show per top-level cluster")
    parser.add_argument("--no-profile", action="store_true", help="Skip the timing report")
    parser.add_argument("--log-file", type=Path, default=None)
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(
        console_level=logging.DEBUG if args.verbose else logging.INFO,
        log_file=args.log_file,
        verbose=args.verbose,
    )
    if args.no_profile:
        PerformanceProfiler.disable()

    try:
        settings = get_clustering_settings(
            min_cluster_size=args.min_cluster_size,
            min_cluster_likelihood=args.min_cluster_likelihood,
            min_ancestor_overlap=args.min_ancestor_overlap,
            trail_size=args.trail_size,
            convergence_threshold=args.convergence_threshold,
            max_iterations=args.max_iterations,
            num_workers=args.num_workers,
            random_seed=args.random_seed,
            allow_gpu=args.gpu or None,
        )
    except RuntimeError as exc:
        logger.error("%s", exc)
        return 2

    edges = load_edges(args.edges, args.sep)
    logger.info("Loaded %d edges from %s", len(edges), args.edges)

    try:
        graph = build_graph_from_frame(
            edges,
            source_col=args.source_col,
            target_col=args.target_col,
            weight_col=args.weight_col,
            num_workers=settings.num_workers,
        )
        root = RecursiveClustering(graph, settings).run()
    except (GraphConstructionError, ClusteringInvariantError) as exc:
        logger.error("Clustering failed: %s", exc)
        return 1

    output = args.output or args.edges.with_suffix(".clusters.json")
    save_cluster_tree(root, output)

    digester = TopWeightsAggregateDigester(graph, args.digest_size)
    logger.info("Root keeps %d vertices in its remainder", len(root.remainder))
    for idx, child in enumerate(root.children):
        digest = digester.create(child)
        logger.info(
            "Cluster %d: %d vertices, top %s",
            idx,
            digest.size,
            ", ".join(str(v) for v in digest.vertices.tolist()),
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
