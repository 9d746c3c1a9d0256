"""
BQL - a query language for issues stored in a SQLite dependency graph

Filter, order and graph-expand issues with queries like:

    type = bug and priority <= P1 and label ~ auth expand children depth 2 order by created desc
"""

from importlib.metadata import version

__version__ = version("bql")

from .cache import DEFAULT_EXPIRATION, InMemoryCacheManager, ReadThroughCache
from .dependency_graph import (
    MAX_EXPAND_ITERATIONS,
    DependencyEdge,
    DependencyGraph,
    ExpansionResult,
    load_dependency_graph,
)
from .errors import BQLError, ExecutionError, ParseError, ValidationError
from .executor import DEPENDENCY_GRAPH_CACHE_KEY, Executor
from .fields import ENUM_VALUES, FIELDS, FieldType
from .lexer import Lexer, tokenize
from .models import (
    DEPTH_DEFAULT,
    DEPTH_MAX,
    DEPTH_UNLIMITED,
    BinaryExpr,
    CompareExpr,
    DependencyType,
    ExpandClause,
    ExpandDirection,
    InExpr,
    Issue,
    NotExpr,
    OrderTerm,
    Query,
    Value,
    ValueType,
)
from .parser import Parser, parse
from .query_utils import build_id_query, is_bql_query
from .sql_builder import SQLBuilder, build_sql
from .tokens import Token, TokenType
from .validator import QueryValidator, validate

__all__ = [
    # Version
    "__version__",
    # Main entry points
    "Executor",
    "parse",
    "validate",
    "build_sql",
    "build_id_query",
    "is_bql_query",
    # Front end
    "Lexer",
    "tokenize",
    "Token",
    "TokenType",
    "Parser",
    "QueryValidator",
    "SQLBuilder",
    # AST
    "Query",
    "BinaryExpr",
    "NotExpr",
    "CompareExpr",
    "InExpr",
    "Value",
    "ValueType",
    "ExpandClause",
    "ExpandDirection",
    "OrderTerm",
    "DEPTH_DEFAULT",
    "DEPTH_MAX",
    "DEPTH_UNLIMITED",
    # Field registry
    "FieldType",
    "FIELDS",
    "ENUM_VALUES",
    # Issues and the dependency graph
    "Issue",
    "DependencyType",
    "DependencyEdge",
    "DependencyGraph",
    "ExpansionResult",
    "load_dependency_graph",
    "MAX_EXPAND_ITERATIONS",
    "DEPENDENCY_GRAPH_CACHE_KEY",
    # Caching
    "InMemoryCacheManager",
    "ReadThroughCache",
    "DEFAULT_EXPIRATION",
    # Errors
    "BQLError",
    "ParseError",
    "ValidationError",
    "ExecutionError",
]
