"""Cluster tree data model."""
from __future__ import annotations

from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set, Union

import numpy as np

from spectree.graph.sparse import Graph, as_id_array


class Cluster:
    """A node of the cluster hierarchy.

    A cluster owns an insertion-ordered set of children and a *remainder*: the
    global vertex ids assigned directly to it rather than to a descendant.
    Equality and hashing are by identity, since clusters are rewired freely
    while the tree is built and postprocessed.
    """

    def __init__(self, parent: Optional["Cluster"] = None):
        self.parent = parent
        self._children: Dict["Cluster", None] = {}
        self.remainder: List[int] = []
        if parent is not None:
            parent._children[self] = None

    def __repr__(self) -> str:
        return (
            f"Cluster(depth={self.depth()}, remainder={len(self.remainder)}, "
            f"children={len(self._children)})"
        )

    @property
    def children(self) -> List["Cluster"]:
        return list(self._children)

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def root(self) -> "Cluster":
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    def depth(self) -> int:
        """Depth of this cluster within the overall hierarchy (root is 0)."""
        depth = 0
        node = self
        while node.parent is not None:
            depth += 1
            node = node.parent
        return depth

    # ------------------------------------------------------------------
    # Remainder
    # ------------------------------------------------------------------

    def add_to_remainder(self, vertices: Union[Graph, Iterable[int]]) -> None:
        """Append the vertices of a graph, or plain global ids, to the remainder."""
        if isinstance(vertices, Graph):
            self.remainder.extend(vertices.vertices.tolist())
        else:
            self.remainder.extend(as_id_array(vertices).tolist())

    def remove_from_remainder(self, vertices: Iterable[int]) -> int:
        """Drop the given ids from the remainder; returns the number removed."""
        drop = set(as_id_array(vertices).tolist())
        before = len(self.remainder)
        self.remainder = [v for v in self.remainder if v not in drop]
        return before - len(self.remainder)

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def add_children(self, children: Iterable["Cluster"]) -> None:
        for child in children:
            if child.parent is not None and child.parent is not self:
                child.parent._children.pop(child, None)
            child.parent = self
            self._children[child] = None

    def detach(self) -> None:
        """Remove this cluster from its parent's children."""
        if self.parent is not None:
            self.parent._children.pop(self, None)
            self.parent = None

    def reparent(self, new_parent: "Cluster") -> None:
        self.detach()
        new_parent.add_children([self])

    def assimilate_child(self, child: "Cluster", assimilate_remainder: bool) -> None:
        """Absorb ``child``: adopt its children and optionally its remainder, then drop it."""
        if child.parent is not self:
            raise ValueError("can only assimilate a direct child")
        grandchildren = child.children
        child.detach()
        self.add_children(grandchildren)
        if assimilate_remainder:
            self.remainder.extend(child.remainder)
        child.remainder = []

    # ------------------------------------------------------------------
    # Traversal and aggregation
    # ------------------------------------------------------------------

    def walk(self) -> Iterator["Cluster"]:
        """Pre-order iteration over this cluster and all descendants."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def traverse(self, visitor: Callable[["Cluster"], None]) -> None:
        for node in self.walk():
            visitor(node)

    def aggregate_clusters(self) -> Set["Cluster"]:
        return set(self.walk())

    def aggregate_vertices(self) -> np.ndarray:
        """Global ids of this cluster's remainder plus all descendants' remainders."""
        vertices: List[int] = []
        for node in self.walk():
            vertices.extend(node.remainder)
        return np.asarray(vertices, dtype=np.int64)

    def aggregate_graph(self, root_graph: Graph) -> Graph:
        """Subgraph of ``root_graph`` induced by :meth:`aggregate_vertices`."""
        return root_graph.induced_subgraph(self.aggregate_vertices())
