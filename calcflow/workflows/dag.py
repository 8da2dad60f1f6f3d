"""
DAG utilities for workflow node graphs.

All functions operate on lists of ``Node`` and read the graph from each
node's ``upstream_ids`` / ``downstream_ids``.  They are pure (no side
effects, no I/O) so the manager and the processor can share them.
"""

from __future__ import annotations

from collections import deque

from calcflow.exceptions import WorkflowValidationError
from calcflow.types import Node


def _edges(nodes: list[Node]) -> set[tuple[str, str]]:
    """(parent_id, child_id) pairs declared from either side of the link."""
    known = {n.id for n in nodes}
    pairs: set[tuple[str, str]] = set()
    for node in nodes:
        for parent_id in node.upstream_ids:
            if parent_id in known:
                pairs.add((parent_id, node.id))
        for child_id in node.downstream_ids:
            if child_id in known:
                pairs.add((node.id, child_id))
    return pairs


# ── Traversal helpers ─────────────────────────────────────────────────────────


def get_entry_points(nodes: list[Node]) -> list[str]:
    """Return node IDs with no parents (DAG roots)."""
    child_ids = {child for _, child in _edges(nodes)}
    return [n.id for n in nodes if n.id not in child_ids]


def get_exit_points(nodes: list[Node]) -> list[str]:
    """Return node IDs with no children (DAG leaves)."""
    parent_ids = {parent for parent, _ in _edges(nodes)}
    return [n.id for n in nodes if n.id not in parent_ids]


def get_children(node_id: str, nodes: list[Node]) -> list[str]:
    return sorted(child for parent, child in _edges(nodes) if parent == node_id)


def get_parents(node_id: str, nodes: list[Node]) -> list[str]:
    return sorted(parent for parent, child in _edges(nodes) if child == node_id)


# ── Topological sort (Kahn's algorithm) ──────────────────────────────────────


def topological_sort(nodes: list[Node]) -> list[str]:
    """
    Return node IDs in topological order.

    Uses Kahn's BFS algorithm:
      1. Compute in-degree for every node.
      2. Seed queue with zero-in-degree nodes (entry points).
      3. BFS: pop node, emit it, decrement in-degrees of its children.
      4. If emitted count < total nodes → cycle exists.

    Ties are broken by the order of *nodes* (creation order), so the result
    is deterministic.

    Raises:
        WorkflowValidationError: if the graph contains a cycle, with a
            description of which nodes are involved.
    """
    node_ids = [n.id for n in nodes]
    if not node_ids:
        return []

    rank = {nid: i for i, nid in enumerate(node_ids)}
    in_degree: dict[str, int] = {nid: 0 for nid in node_ids}
    adjacency: dict[str, list[str]] = {nid: [] for nid in node_ids}

    for parent, child in _edges(nodes):
        adjacency[parent].append(child)
        in_degree[child] += 1
    for children in adjacency.values():
        children.sort(key=rank.__getitem__)

    queue: deque[str] = deque(nid for nid in node_ids if in_degree[nid] == 0)
    order: list[str] = []

    while queue:
        current = queue.popleft()
        order.append(current)
        for child in adjacency[current]:
            in_degree[child] -= 1
            if in_degree[child] == 0:
                queue.append(child)

    if len(order) != len(node_ids):
        emitted = set(order)
        cycle_nodes = [nid for nid in node_ids if nid not in emitted]
        raise WorkflowValidationError(
            f"Cycle detected in workflow graph. Involved node IDs: {cycle_nodes}",
            violations=[f"Cycle includes nodes: {cycle_nodes}"],
        )

    return order


def get_ancestors(nodes: list[Node], order: list[str] = None) -> dict[str, frozenset[str]]:
    """Map every node ID to the IDs of all nodes it transitively depends on.

    *order* may pass a precomputed topological order to avoid sorting twice.
    """
    order = order if order is not None else topological_sort(nodes)
    parents: dict[str, list[str]] = {nid: [] for nid in order}
    for parent, child in _edges(nodes):
        parents[child].append(parent)

    ancestors: dict[str, frozenset[str]] = {}
    for nid in order:
        collected: set[str] = set()
        for parent in parents[nid]:
            collected.add(parent)
            collected |= ancestors[parent]
        ancestors[nid] = frozenset(collected)
    return ancestors
