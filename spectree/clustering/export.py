"""Serialization of cluster trees to JSON and networkx."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import networkx as nx

from spectree.clustering.models import Cluster

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def _index_clusters(root: Cluster) -> Dict[Cluster, int]:
    return {cluster: idx for idx, cluster in enumerate(root.walk())}


def cluster_tree_to_dict(root: Cluster) -> Dict[str, Any]:
    """Flatten the tree into a JSON-friendly dict.

    Clusters are numbered in pre-order, so the root is always cluster ``0`` and
    every parent id is smaller than the ids of its children.
    """
    ids = _index_clusters(root)
    clusters: List[Dict[str, Any]] = []
    for cluster, idx in ids.items():
        clusters.append(
            {
                "id": idx,
                "parent": None if cluster is root else ids[cluster.parent],
                "depth": cluster.depth() - root.depth(),
                "remainder": [int(v) for v in cluster.remainder],
                "children": [ids[child] for child in cluster.children],
            }
        )
    return {
        "version": FORMAT_VERSION,
        "num_clusters": len(clusters),
        "num_vertices": int(len(root.aggregate_vertices())),
        "clusters": clusters,
    }


def cluster_tree_from_dict(payload: Dict[str, Any]) -> Cluster:
    """Rebuild a tree produced by :func:`cluster_tree_to_dict`."""
    version = payload.get("version")
    if version != FORMAT_VERSION:
        raise ValueError(f"Unsupported cluster tree format version: {version!r}")

    clusters: Dict[int, Cluster] = {}
    root = None
    for entry in payload["clusters"]:
        parent_id = entry["parent"]
        if parent_id is None:
            if root is not None:
                raise ValueError("cluster tree has more than one root")
            cluster = Cluster()
            root = cluster
        else:
            if parent_id not in clusters:
                raise ValueError(f"cluster {entry['id']} references unknown parent {parent_id}")
            cluster = Cluster(clusters[parent_id])
        cluster.add_to_remainder(entry["remainder"])
        clusters[entry["id"]] = cluster

    if root is None:
        raise ValueError("cluster tree has no root")
    return root


def save_cluster_tree(root: Cluster, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = cluster_tree_to_dict(root)
    path.write_text(json.dumps(payload, indent=2))
    logger.info("Saved %d clusters to %s", payload["num_clusters"], path)
    return path


def load_cluster_tree(path: Union[str, Path]) -> Cluster:
    path = Path(path)
    root = cluster_tree_from_dict(json.loads(path.read_text()))
    logger.info("Loaded cluster tree from %s", path)
    return root


def cluster_tree_to_networkx(root: Cluster) -> nx.DiGraph:
    """Directed parent -> child graph with ``remainder``, ``size`` and ``depth`` node attributes."""
    ids = _index_clusters(root)
    tree = nx.DiGraph()
    for cluster, idx in ids.items():
        tree.add_node(
            idx,
            remainder=list(cluster.remainder),
            size=len(cluster.aggregate_vertices()),
            depth=cluster.depth() - root.depth(),
        )
        if cluster is not root:
            tree.add_edge(ids[cluster.parent], idx)
    return tree
