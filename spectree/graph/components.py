"""Connected component decomposition of graph views."""
from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Callable, List

import numpy as np

if TYPE_CHECKING:
    from spectree.graph.sparse import Graph

ComponentHandler = Callable[["Graph"], None]


def find_connected_components(graph: "Graph", handler: ComponentHandler) -> None:
    """Deliver every maximal connected subview of ``graph`` to ``handler``.

    Components are grown by frontier expansion starting from the smallest
    unvisited local id and are emitted in discovery order, each as the view
    induced by its (sorted) vertices.
    """
    visited = np.zeros(graph.order, dtype=bool)
    cursor = 0

    while cursor < graph.order:
        if visited[cursor]:
            cursor += 1
            continue

        visited[cursor] = True
        frontier = deque([cursor])
        members: List[int] = [cursor]
        while frontier:
            v = frontier.popleft()
            neighbours, _ = graph.neighbours(v)
            fresh = neighbours[~visited[neighbours]]
            if len(fresh):
                visited[fresh] = True
                frontier.extend(fresh.tolist())
                members.extend(fresh.tolist())

        handler(graph.local_subgraph(np.sort(np.asarray(members, dtype=np.int64))))


def connected_components(graph: "Graph") -> List["Graph"]:
    """Return all connected components of ``graph`` in discovery order."""
    components: List["Graph"] = []
    find_connected_components(graph, components.append)
    return components
