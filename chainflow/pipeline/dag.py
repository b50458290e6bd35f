"""Graph validation and layering.

`detect_cycles()` must run before any network activity; `topological_layers()`
groups nodes by the earliest layer in which all their parents are done.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Sequence, Set, Tuple

from ..errors import CycleError, PipelineValidationError
from .base import Edge, Node, Pipeline

logger = logging.getLogger(__name__)

WHITE, GRAY, BLACK = 0, 1, 2


def _node_ids(nodes: Iterable[Node]) -> List[str]:
    return [n.id for n in nodes]


def _adjacency(node_ids: Sequence[str], edges: Iterable[Edge]) -> Tuple[Dict[str, List[str]], Dict[str, int]]:
    adj: Dict[str, List[str]] = {nid: [] for nid in node_ids}
    in_degree: Dict[str, int] = {nid: 0 for nid in node_ids}
    for edge in edges:
        if edge.source in adj:
            adj[edge.source].append(edge.target)
        in_degree[edge.target] = in_degree.get(edge.target, 0) + 1
    return adj, in_degree


def detect_cycles(nodes: Sequence[Node], edges: Sequence[Edge]) -> Set[str]:
    """
    Find nodes that sit on a cycle.

    Three-color DFS: reaching a gray node means a back edge, and every node
    on the current path from that node onward is part of the cycle. The
    result is then widened to the full strongly connected components it
    touches, so nodes reached only through a finished node are included.

    Returns:
        Ids of cyclic nodes; empty when the graph is acyclic
    """
    node_ids = _node_ids(nodes)
    adj, _ = _adjacency(node_ids, edges)
    color = {nid: WHITE for nid in node_ids}
    cycle_nodes: Set[str] = set()

    for root in node_ids:
        if color[root] != WHITE:
            continue

        path = [root]
        color[root] = GRAY
        stack = [iter(adj[root])]
        while stack:
            advanced = False
            for nxt in stack[-1]:
                state = color.get(nxt)
                if state == GRAY:
                    cycle_nodes.update(path[path.index(nxt):])
                elif state == WHITE:
                    color[nxt] = GRAY
                    path.append(nxt)
                    stack.append(iter(adj[nxt]))
                    advanced = True
                    break
            if not advanced:
                stack.pop()
                color[path.pop()] = BLACK

    if cycle_nodes:
        # Report every member of a cyclic component, not only the back-edge paths
        for component in _strongly_connected(node_ids, adj):
            if cycle_nodes.intersection(component):
                cycle_nodes.update(component)
        logger.warning(f"Cycle detected between nodes: {sorted(cycle_nodes)}")
    return cycle_nodes


def _strongly_connected(node_ids: Sequence[str], adj: Dict[str, List[str]]) -> List[Set[str]]:
    """Kosaraju's algorithm, iterative: finish order on the graph, then sweep the reverse graph."""
    order: List[str] = []
    seen: Set[str] = set()
    for root in node_ids:
        if root in seen:
            continue
        seen.add(root)
        stack = [(root, iter(adj[root]))]
        while stack:
            nid, children = stack[-1]
            for nxt in children:
                if nxt in adj and nxt not in seen:
                    seen.add(nxt)
                    stack.append((nxt, iter(adj[nxt])))
                    break
            else:
                stack.pop()
                order.append(nid)

    reverse: Dict[str, List[str]] = {nid: [] for nid in node_ids}
    for source, targets in adj.items():
        for target in targets:
            if target in reverse:
                reverse[target].append(source)

    components: List[Set[str]] = []
    assigned: Set[str] = set()
    for root in reversed(order):
        if root in assigned:
            continue
        component = {root}
        assigned.add(root)
        frontier = [root]
        while frontier:
            for prev in reverse[frontier.pop()]:
                if prev not in assigned:
                    assigned.add(prev)
                    component.add(prev)
                    frontier.append(prev)
        components.append(component)
    return components


def topological_layers(nodes: Sequence[Node], edges: Sequence[Edge]) -> List[List[str]]:
    """
    Kahn's algorithm grouped by simultaneous availability.

    Layer 0 holds every node without parents, in declaration order; each next
    layer holds the nodes freed by removing the previous one.

    Raises:
        CycleError: If not every node could be placed
    """
    node_ids = _node_ids(nodes)
    adj, in_degree = _adjacency(node_ids, edges)
    layers: List[List[str]] = []
    queue = [nid for nid in node_ids if in_degree[nid] == 0]
    visited = 0

    while queue:
        layers.append(list(queue))
        next_queue = []
        for nid in queue:
            visited += 1
            for child in adj[nid]:
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    next_queue.append(child)
        queue = next_queue

    if visited != len(node_ids):
        raise CycleError()
    return layers


def get_parent_ids(node_id: str, edges: Sequence[Edge]) -> List[str]:
    """Sources of the edges into node_id, in edge order."""
    return [e.source for e in edges if e.target == node_id]


def validate_pipeline(pipeline: Pipeline) -> None:
    """
    Check a pipeline's structure before it runs.

    Raises:
        PipelineValidationError: Duplicate node ids or an edge to an unknown node
        CycleError: The graph is not acyclic
    """
    counts = Counter(pipeline.node_ids)
    duplicates = sorted(nid for nid, count in counts.items() if count > 1)
    if duplicates:
        raise PipelineValidationError(f"Duplicate node ids: {', '.join(duplicates)}")

    for edge in pipeline.edges:
        missing = [end for end in (edge.source, edge.target) if end not in counts]
        if missing:
            raise PipelineValidationError(
                f"Edge {edge.source} -> {edge.target} references unknown node {missing[0]}"
            )

    cycles = detect_cycles(pipeline.nodes, pipeline.edges)
    if cycles:
        raise CycleError(cycles)
