"""
Core data models for BQL.

Contains all dataclass definitions for:
- Literal values produced by the parser
- The query AST (filter expressions, expand clause, order terms)
- Issue records returned by the executor
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from .tokens import TokenType

# ============================================================================
# Values
# ============================================================================


class ValueType(Enum):
    """Type of a literal value"""

    STRING = "string"
    INT = "int"
    BOOL = "bool"
    PRIORITY = "priority"
    DATE = "date"


@dataclass(frozen=True)
class Value:
    """
    A literal value from the query text.

    raw is the text as written. str_val holds the string payload (the
    normalized form for dates: "today", "yesterday", "-7d", "2024-01-15").
    int_val holds the integer payload and the level for priorities (P2 -> 2).
    bool_val is set for true/false literals.
    """

    type: ValueType
    raw: str
    str_val: str = ""
    int_val: int = 0
    bool_val: bool = False

    def __str__(self) -> str:
        return self.raw


# ============================================================================
# Filter Expressions
# ============================================================================


@dataclass
class BinaryExpr:
    """left AND right / left OR right"""

    left: "Expr"
    op: TokenType  # TokenType.AND or TokenType.OR
    right: "Expr"


@dataclass
class NotExpr:
    """NOT expr"""

    expr: "Expr"


@dataclass
class CompareExpr:
    """field op value, e.g. priority <= P1"""

    field: str
    op: TokenType
    value: Value


@dataclass
class InExpr:
    """field [NOT] IN (v1, v2, ...)"""

    field: str
    values: List[Value]
    negated: bool = False


# Closed set of filter node kinds; every consumer handles all four
Expr = Union[BinaryExpr, NotExpr, CompareExpr, InExpr]


# ============================================================================
# Query Clauses
# ============================================================================


DEPTH_DEFAULT = 1
DEPTH_MAX = 10
DEPTH_UNLIMITED = -1


class ExpandDirection(Enum):
    """Which way to walk the dependency graph"""

    UP = "up"  # forward edges: parents, blockers, discovered-from origins
    DOWN = "down"  # reverse edges: children, blocked issues, discovered issues
    ALL = "all"  # both


@dataclass
class ExpandClause:
    """EXPAND <keyword> [DEPTH n|*]"""

    direction: ExpandDirection
    depth: int = DEPTH_DEFAULT
    keyword: str = ""  # expansion keyword as written, e.g. "children"

    @property
    def unlimited(self) -> bool:
        return self.depth == DEPTH_UNLIMITED


@dataclass
class OrderTerm:
    field: str
    descending: bool = False


@dataclass
class Query:
    """Parsed BQL query: optional filter, optional expansion, ordering."""

    filter: Optional[Expr] = None
    expand: Optional[ExpandClause] = None
    order_by: List[OrderTerm] = field(default_factory=list)

    def has_expand(self) -> bool:
        return self.expand is not None


# ============================================================================
# Issues
# ============================================================================


class DependencyType(Enum):
    """Relation stored in the dependencies table (issue_id -> depends_on_id)"""

    PARENT_CHILD = "parent-child"  # issue_id is a child of depends_on_id
    BLOCKS = "blocks"  # issue_id is blocked by depends_on_id
    DISCOVERED_FROM = "discovered-from"  # issue_id was discovered from depends_on_id


@dataclass
class Issue:
    """
    An issue row plus the relational data batch-loaded for it.

    Scalar fields mirror the issues table. The dependency lists, labels and
    comment_count are attached by the executor after the base scan.
    """

    id: str
    title: str = ""
    description: str = ""
    status: str = "open"
    priority: int = 2
    issue_type: str = "task"
    assignee: str = ""
    pinned: Optional[bool] = None
    is_template: Optional[bool] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    last_activity: Optional[datetime] = None

    # ─── Batch-loaded relations ───
    labels: List[str] = field(default_factory=list)
    parent_id: str = ""
    blocked_by: List[str] = field(default_factory=list)
    blocks: List[str] = field(default_factory=list)
    children: List[str] = field(default_factory=list)
    discovered_from: List[str] = field(default_factory=list)
    discovered: List[str] = field(default_factory=list)
    comment_count: int = 0

    def __hash__(self):
        return hash(self.id)

    def __eq__(self, other):
        if not isinstance(other, Issue):
            return False
        return self.id == other.id


__all__ = [
    "ValueType",
    "Value",
    "BinaryExpr",
    "NotExpr",
    "CompareExpr",
    "InExpr",
    "Expr",
    "DEPTH_DEFAULT",
    "DEPTH_MAX",
    "DEPTH_UNLIMITED",
    "ExpandDirection",
    "ExpandClause",
    "OrderTerm",
    "Query",
    "DependencyType",
    "Issue",
]
