"""
BQL query execution.

Runs a BQL query end to end against a SQLite issue store:

1. Parse and validate the query text
2. Run the base query (compiled WHERE / ORDER BY over live issues)
3. Batch-load dependencies, labels and comment counts for every result in
   three queries, regardless of how many issues matched
4. For EXPAND queries, walk the cached dependency graph from the base
   results and fetch the newly reached issues through the same path

Whole results are cached by query text; the dependency graph is cached
separately and shared by every expansion until invalidated.
"""

import asyncio
import copy
import logging
import sqlite3
import threading
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .cache import DEFAULT_EXPIRATION, InMemoryCacheManager, ReadThroughCache
from .dependency_graph import (
    MAX_EXPAND_ITERATIONS,
    DependencyGraph,
    load_dependency_graph,
)
from .errors import ExecutionError
from .models import (
    DependencyType,
    ExpandClause,
    InExpr,
    Issue,
    Query,
    Value,
    ValueType,
)
from .parser import parse
from .sql_builder import SQLBuilder
from .validator import validate

logger = logging.getLogger(__name__)

DEPENDENCY_GRAPH_CACHE_KEY = "__dependency_graph__"

ISSUE_COLUMNS = (
    "id",
    "title",
    "description",
    "status",
    "priority",
    "issue_type",
    "assignee",
    "pinned",
    "is_template",
    "created_at",
    "updated_at",
    "closed_at",
    "last_activity",
)

BASE_QUERY_SQL = (
    "SELECT "
    + ", ".join(f"i.{column}" for column in ISSUE_COLUMNS)
    + " FROM issues i"
    + " WHERE i.status NOT IN ('deleted', 'tombstone') AND i.deleted_at IS NULL"
)

# Both directions in one statement; the far endpoint must be live
DEPENDENCIES_SQL = """
    SELECT d.issue_id, d.depends_on_id, d.type
    FROM dependencies d
    JOIN issues i ON d.depends_on_id = i.id
    WHERE d.issue_id IN ({placeholders})
      AND i.status NOT IN ('deleted', 'tombstone')
      AND i.deleted_at IS NULL
    UNION ALL
    SELECT d.issue_id, d.depends_on_id, d.type
    FROM dependencies d
    JOIN issues i ON d.issue_id = i.id
    WHERE d.depends_on_id IN ({placeholders})
      AND i.status NOT IN ('deleted', 'tombstone')
      AND i.deleted_at IS NULL
"""

LABELS_SQL = "SELECT issue_id, label FROM labels WHERE issue_id IN ({placeholders}) ORDER BY label"

COMMENT_COUNTS_SQL = """
    SELECT issue_id, COUNT(*)
    FROM comments
    WHERE issue_id IN ({placeholders})
    GROUP BY issue_id
"""


def _placeholders(count: int) -> str:
    return ", ".join("?" * count)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable timestamp %r", value)
        return None


def _parse_flag(value: Any) -> Optional[bool]:
    if value is None:
        return None
    return bool(value)


def _issue_from_row(row: Sequence[Any]) -> Issue:
    (
        issue_id,
        title,
        description,
        status,
        priority,
        issue_type,
        assignee,
        pinned,
        is_template,
        created_at,
        updated_at,
        closed_at,
        last_activity,
    ) = tuple(row)

    return Issue(
        id=issue_id,
        title=title or "",
        description=description or "",
        status=status or "",
        priority=priority if priority is not None else 2,
        issue_type=issue_type or "",
        assignee=assignee or "",
        pinned=_parse_flag(pinned),
        is_template=_parse_flag(is_template),
        created_at=_parse_timestamp(created_at),
        updated_at=_parse_timestamp(updated_at),
        closed_at=_parse_timestamp(closed_at),
        last_activity=_parse_timestamp(last_activity),
    )


class Executor:
    """
    Executes BQL queries against a SQLite issue store.

    One executor wraps one DB-API connection and serializes access to it, so
    it can be shared between threads (open the connection with
    check_same_thread=False for that).

    Example:
        import sqlite3
        from bql import Executor

        executor = Executor(sqlite3.connect("issues.db"))
        issues = executor.execute("type = bug and priority <= P1 expand children depth 2")

        # After writing to the store
        executor.invalidate()
    """

    def __init__(
        self,
        conn: Any,
        cache_manager: Optional[InMemoryCacheManager[str, List[Issue]]] = None,
        graph_cache_manager: Optional[InMemoryCacheManager[str, DependencyGraph]] = None,
        cache_ttl: float = DEFAULT_EXPIRATION,
        cache_disabled: bool = False,
        dialect: str = "sqlite",
        max_expand_iterations: int = MAX_EXPAND_ITERATIONS,
        expand_timeout: Optional[float] = None,
    ) -> None:
        """
        Initialize an executor.

        Args:
            conn: DB-API connection to the issue store
            cache_manager: Store for whole query results, keyed by query text
            graph_cache_manager: Store for the dependency graph
            cache_ttl: Seconds a cached result or graph stays valid after last use
            cache_disabled: Skip both caches and always hit the store
            dialect: sqlglot dialect the WHERE clause is rendered for
            max_expand_iterations: Level ceiling for DEPTH * expansions
            expand_timeout: Optional wall-clock budget in seconds per expansion
        """
        self.conn = conn
        self.cache_ttl = cache_ttl
        self.dialect = dialect
        self.max_expand_iterations = max_expand_iterations
        self.expand_timeout = expand_timeout

        # An empty manager is falsy, so compare against None
        if cache_manager is None:
            cache_manager = InMemoryCacheManager("bql-results", default_ttl=cache_ttl)
        if graph_cache_manager is None:
            graph_cache_manager = InMemoryCacheManager("bql-dependency-graph", default_ttl=cache_ttl)
        self.cache_manager = cache_manager
        self.graph_cache_manager = graph_cache_manager

        self._db_lock = threading.Lock()
        self._results: ReadThroughCache[str, Query, List[Issue]] = ReadThroughCache(
            self.cache_manager, self._run_query, disabled=cache_disabled
        )
        self._graph: ReadThroughCache[str, None, DependencyGraph] = ReadThroughCache(
            self.graph_cache_manager, self._load_graph, disabled=cache_disabled
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def execute(self, text: str) -> List[Issue]:
        """
        Run a BQL query.

        Args:
            text: BQL query text

        Returns:
            Matching issues in ORDER BY order, followed by any issues reached
            through EXPAND. The list and its issues are new on every call.

        Raises:
            ParseError: The text is not valid BQL
            ValidationError: The query refers to unknown fields or mistyped values
            ExecutionError: A store call failed
        """
        start = time.monotonic()

        try:
            query = parse(text)
            validate(query)
        except ValueError:
            logger.debug("Rejected query %r", text, exc_info=True)
            raise

        try:
            issues = self._results.get_with_refresh(text, query, ttl=self.cache_ttl)
        except ExecutionError:
            logger.debug("Query %r failed", text, exc_info=True)
            raise

        logger.debug(
            "Query %r returned %d issues in %.3fs", text, len(issues), time.monotonic() - start
        )
        # Cached issues are shared between callers; hand out copies
        return copy.deepcopy(issues)

    async def async_execute(self, text: str) -> List[Issue]:
        """
        Run a BQL query on a worker thread.

        Example:
            issues = await executor.async_execute("status = open expand blockers")
        """
        return await asyncio.to_thread(self.execute, text)

    def invalidate(self) -> None:
        """Drop every cached result and the dependency graph."""
        self._results.invalidate()
        self._graph.invalidate()
        logger.debug("Invalidated query and dependency graph caches")

    def invalidate_dependency_graph(self) -> None:
        self._graph.invalidate(DEPENDENCY_GRAPH_CACHE_KEY)

    def invalidate_query(self, text: str) -> None:
        """Drop the cached result for one query text."""
        self._results.invalidate(text)

    def dependency_graph(self) -> DependencyGraph:
        """The current dependency graph, loading it if it is not cached."""
        return self._graph.get_with_refresh(DEPENDENCY_GRAPH_CACHE_KEY, None, ttl=self.cache_ttl)

    # ------------------------------------------------------------------
    # Query pipeline
    # ------------------------------------------------------------------

    def _run_query(self, query: Query) -> List[Issue]:
        issues = self._execute_base_query(query)
        if query.expand is not None:
            issues = self._expand_issues(issues, query.expand)
        return issues

    def _execute_base_query(self, query: Query) -> List[Issue]:
        where, order_by, params = SQLBuilder(query, dialect=self.dialect).build()

        sql = BASE_QUERY_SQL
        if where:
            sql += f" AND {where}"
        sql += f" ORDER BY {order_by}"

        issues = [_issue_from_row(row) for row in self._fetch_all("query", sql, params)]
        if not issues:
            return issues

        ids = [issue.id for issue in issues]
        self._attach_dependencies(issues, ids)
        self._attach_labels(issues, ids)
        self._attach_comment_counts(issues, ids)

        return issues

    def _attach_dependencies(self, issues: List[Issue], ids: List[str]) -> None:
        sql = DEPENDENCIES_SQL.format(placeholders=_placeholders(len(ids)))
        rows = self._fetch_all("load dependencies", sql, ids + ids)

        by_id = {issue.id: issue for issue in issues}
        seen = set()
        for issue_id, depends_on_id, dep_type in rows:
            # An edge between two result issues comes back from both halves
            edge = (issue_id, depends_on_id, dep_type)
            if edge in seen:
                continue
            seen.add(edge)

            dependent = by_id.get(issue_id)
            target = by_id.get(depends_on_id)

            if dep_type == DependencyType.PARENT_CHILD.value:
                if dependent is not None:
                    dependent.parent_id = depends_on_id
                if target is not None:
                    target.children.append(issue_id)
            elif dep_type == DependencyType.BLOCKS.value:
                if dependent is not None:
                    dependent.blocked_by.append(depends_on_id)
                if target is not None:
                    target.blocks.append(issue_id)
            elif dep_type == DependencyType.DISCOVERED_FROM.value:
                if dependent is not None:
                    dependent.discovered_from.append(depends_on_id)
                if target is not None:
                    target.discovered.append(issue_id)

    def _attach_labels(self, issues: List[Issue], ids: List[str]) -> None:
        sql = LABELS_SQL.format(placeholders=_placeholders(len(ids)))
        labels: Dict[str, List[str]] = {}
        for issue_id, label in self._fetch_all("load labels", sql, ids):
            labels.setdefault(issue_id, []).append(label)

        for issue in issues:
            issue.labels = labels.get(issue.id, [])

    def _attach_comment_counts(self, issues: List[Issue], ids: List[str]) -> None:
        sql = COMMENT_COUNTS_SQL.format(placeholders=_placeholders(len(ids)))
        counts = dict(self._fetch_all("load comment counts", sql, ids))

        for issue in issues:
            issue.comment_count = counts.get(issue.id, 0)

    def _expand_issues(self, base_issues: List[Issue], expand: ExpandClause) -> List[Issue]:
        if not base_issues:
            return base_issues

        graph = self.dependency_graph()

        deadline = None
        if self.expand_timeout is not None:
            deadline = time.monotonic() + self.expand_timeout

        base_ids = [issue.id for issue in base_issues]
        result = graph.traverse(
            base_ids,
            expand.direction,
            expand.depth,
            max_iterations=self.max_expand_iterations,
            deadline=deadline,
        )

        base_set = set(base_ids)
        new_ids = sorted(result.ids - base_set)
        if not new_ids:
            return base_issues

        expanded = self._fetch_issues_by_ids(new_ids)

        logger.debug(
            "Expand %s (depth %d): %d base, %d expanded over %d levels",
            expand.keyword or expand.direction.value,
            expand.depth,
            len(base_issues),
            len(expanded),
            result.levels,
        )
        return base_issues + expanded

    def _fetch_issues_by_ids(self, ids: List[str]) -> List[Issue]:
        """Fetch issues through the base query path; missing IDs are skipped."""
        values = [Value(ValueType.STRING, raw=issue_id, str_val=issue_id) for issue_id in ids]
        return self._execute_base_query(Query(filter=InExpr(field="id", values=values)))

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    def _load_graph(self, _: None) -> DependencyGraph:
        with self._db_lock:
            try:
                return load_dependency_graph(self.conn)
            except sqlite3.Error as e:
                logger.debug("Loading dependency graph failed", exc_info=True)
                raise ExecutionError("load dependency graph", e) from e

    def _fetch_all(self, stage: str, sql: str, params: Sequence[Any]) -> List[Any]:
        with self._db_lock:
            try:
                cursor = self.conn.execute(sql, list(params))
                try:
                    return cursor.fetchall()
                finally:
                    cursor.close()
            except sqlite3.Error as e:
                logger.debug("Stage %r failed: %s", stage, sql, exc_info=True)
                raise ExecutionError(stage, e) from e


__all__ = ["Executor", "DEPENDENCY_GRAPH_CACHE_KEY"]
