"""
In-memory dependency graph and bounded BFS expansion.

The graph holds every live relationship edge twice: once in the forward map
(issue_id -> depends_on_id: child -> parent, blocked -> blocker) and once in
the reverse map (depends_on_id -> issue_id). Expansion walks one or both maps
level by level from a set of start IDs.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from .models import DEPTH_UNLIMITED, ExpandDirection

logger = logging.getLogger(__name__)

# Level ceiling for DEPTH_UNLIMITED expansions
MAX_EXPAND_ITERATIONS = 100

# Every edge whose two endpoints are live issues
LOAD_GRAPH_SQL = """
    SELECT d.issue_id, d.depends_on_id, d.type
    FROM dependencies d
    JOIN issues i1 ON d.issue_id = i1.id
    JOIN issues i2 ON d.depends_on_id = i2.id
    WHERE i1.status NOT IN ('deleted', 'tombstone')
      AND i2.status NOT IN ('deleted', 'tombstone')
      AND i1.deleted_at IS NULL
      AND i2.deleted_at IS NULL
"""


@dataclass(frozen=True)
class DependencyEdge:
    target_id: str
    dep_type: str  # "parent-child", "blocks", "discovered-from"


@dataclass
class ExpansionResult:
    """
    Outcome of a graph traversal.

    ids holds every visited ID, start IDs included. levels is the number of
    levels that produced new IDs. truncated is True when the walk stopped with
    work left because it hit the unlimited-depth ceiling or its deadline.
    """

    ids: Set[str]
    levels: int = 0
    truncated: bool = False


@dataclass
class DependencyGraph:
    """
    Bidirectional adjacency maps over issue dependencies.

    Populate it only through add_edge so the forward and reverse maps stay
    exact mirrors of each other. Once built, the graph is shared read-only.
    """

    forward: Dict[str, List[DependencyEdge]] = field(default_factory=dict)
    reverse: Dict[str, List[DependencyEdge]] = field(default_factory=dict)

    def add_edge(self, issue_id: str, depends_on_id: str, dep_type: str) -> None:
        """Record issue_id -> depends_on_id and its mirror."""
        self.forward.setdefault(issue_id, []).append(DependencyEdge(depends_on_id, dep_type))
        self.reverse.setdefault(depends_on_id, []).append(DependencyEdge(issue_id, dep_type))

    @property
    def edge_count(self) -> int:
        return sum(len(edges) for edges in self.forward.values())

    def neighbors(self, issue_id: str, direction: ExpandDirection) -> List[str]:
        """IDs adjacent to issue_id in the given direction, without duplicates."""
        edges: List[DependencyEdge] = []
        if direction in (ExpandDirection.UP, ExpandDirection.ALL):
            edges.extend(self.forward.get(issue_id, ()))
        if direction in (ExpandDirection.DOWN, ExpandDirection.ALL):
            edges.extend(self.reverse.get(issue_id, ()))

        # dict preserves first-seen order
        return list(dict.fromkeys(edge.target_id for edge in edges))

    def traverse(
        self,
        start_ids: Iterable[str],
        direction: ExpandDirection,
        depth: int,
        max_iterations: int = MAX_EXPAND_ITERATIONS,
        deadline: Optional[float] = None,
    ) -> ExpansionResult:
        """
        Breadth-first walk from start_ids.

        Args:
            start_ids: IDs to expand from; always part of the result
            direction: UP follows forward edges, DOWN reverse edges, ALL both
            depth: Number of levels to walk, or DEPTH_UNLIMITED
            max_iterations: Level ceiling applied to DEPTH_UNLIMITED
            deadline: Optional time.monotonic() value after which the walk stops

        Returns:
            ExpansionResult with the visited set
        """
        frontier = list(dict.fromkeys(start_ids))
        visited: Set[str] = set(frontier)

        max_levels = max_iterations if depth == DEPTH_UNLIMITED else depth
        levels = 0

        while frontier and levels < max_levels:
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning(
                    "Dependency expansion stopped at deadline after %d levels (%d IDs)",
                    levels,
                    len(visited),
                )
                return ExpansionResult(ids=visited, levels=levels, truncated=True)

            next_frontier = []
            for issue_id in frontier:
                for neighbor in self.neighbors(issue_id, direction):
                    # Checked before queueing, so cycles and self-loops never revisit
                    if neighbor not in visited:
                        visited.add(neighbor)
                        next_frontier.append(neighbor)

            if not next_frontier:
                break

            levels += 1
            frontier = next_frontier

        truncated = depth == DEPTH_UNLIMITED and levels >= max_levels and bool(
            self._has_unvisited_neighbors(frontier, direction, visited)
        )
        if truncated:
            logger.warning(
                "Unlimited dependency expansion hit the %d level ceiling (%d IDs)",
                max_levels,
                len(visited),
            )

        return ExpansionResult(ids=visited, levels=levels, truncated=truncated)

    def expand(
        self,
        start_ids: Iterable[str],
        direction: ExpandDirection,
        depth: int,
        max_iterations: int = MAX_EXPAND_ITERATIONS,
    ) -> Set[str]:
        """Set of IDs reachable from start_ids within depth levels, start IDs included."""
        return self.traverse(start_ids, direction, depth, max_iterations=max_iterations).ids

    def _has_unvisited_neighbors(
        self, frontier: List[str], direction: ExpandDirection, visited: Set[str]
    ) -> bool:
        return any(
            neighbor not in visited
            for issue_id in frontier
            for neighbor in self.neighbors(issue_id, direction)
        )


def load_dependency_graph(conn: Any) -> DependencyGraph:
    """
    Build the full dependency graph with a single query.

    Args:
        conn: DB-API connection to the issue store

    Returns:
        DependencyGraph covering every edge between live issues
    """
    start = time.monotonic()

    graph = DependencyGraph()
    cursor = conn.execute(LOAD_GRAPH_SQL)
    try:
        for issue_id, depends_on_id, dep_type in cursor:
            graph.add_edge(issue_id, depends_on_id, dep_type)
    finally:
        cursor.close()

    logger.debug(
        "Loaded dependency graph: %d nodes, %d edges in %.3fs",
        len(graph.forward.keys() | graph.reverse.keys()),
        graph.edge_count,
        time.monotonic() - start,
    )
    return graph


__all__ = [
    "DependencyEdge",
    "DependencyGraph",
    "ExpansionResult",
    "load_dependency_graph",
    "MAX_EXPAND_ITERATIONS",
]
