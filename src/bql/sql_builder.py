"""
BQL to SQL compiler.

Walks a validated Query AST and builds the WHERE condition as a sqlglot
expression tree, rendered for the target dialect with positional `?`
placeholders. Parameters are collected in the same left-to-right order the
placeholders appear in the rendered SQL.

Date arithmetic uses SQLite's date()/datetime() modifiers; it is the only
part of the output that is tied to one dialect.
"""

import re
from typing import Any, List, Optional, Tuple

from sqlglot import exp

from .fields import FIELD_COLUMNS, NULLABLE_STRING_FIELDS, FIELDS, FieldType
from .models import BinaryExpr, CompareExpr, Expr, InExpr, NotExpr, Query, Value
from .tokens import TokenType

ISSUE_ALIAS = "i"

DEFAULT_ORDER_BY = "i.updated_at DESC, i.id ASC"

_COMPARISON_NODES = {
    TokenType.EQ: exp.EQ,
    TokenType.NEQ: exp.NEQ,
    TokenType.LT: exp.LT,
    TokenType.GT: exp.GT,
    TokenType.LTE: exp.LTE,
    TokenType.GTE: exp.GTE,
}

_OFFSET_UNITS = {"d": "days", "h": "hours", "m": "months"}

_RELATIVE_OFFSET = re.compile(r"([+-]?)([0-9]+)([dhm])")


def _column(field: str) -> exp.Column:
    """Map a BQL field to its column on the issues table."""
    return exp.column(FIELD_COLUMNS.get(field, field), table=ISSUE_ALIAS)


def _issue_id() -> exp.Column:
    return exp.column("id", table=ISSUE_ALIAS)


def _membership(subquery: exp.Select, member: bool) -> exp.Expression:
    """i.id [NOT] IN (subquery)"""
    condition = exp.In(this=_issue_id(), query=exp.Subquery(this=subquery))
    if member:
        return condition
    return exp.Not(this=condition)


def _sqlite_call(name: str, *args: exp.Expression) -> exp.Anonymous:
    return exp.Anonymous(this=name, expressions=list(args))


class SQLBuilder:
    """
    Compile a Query AST into a parameterized WHERE clause and ORDER BY clause.

    Example:
        builder = SQLBuilder(parse("type = bug and label ~ auth"))
        where, order_by, params = builder.build()
        # where    -> "(i.issue_type = ? AND i.id IN (SELECT issue_id FROM labels WHERE label LIKE ?))"
        # params   -> ["bug", "%auth%"]
    """

    def __init__(self, query: Query, dialect: str = "sqlite"):
        self.query = query
        self.dialect = dialect
        self.params: List[Any] = []

    def build(self) -> Tuple[str, str, List[Any]]:
        """
        Compile the query.

        Returns:
            Tuple of (where_clause, order_by_clause, params). where_clause is
            empty when the query has no filter; order_by_clause falls back to
            most-recently-updated first.
        """
        self.params = []

        where = ""
        condition = self.build_condition()
        if condition is not None:
            where = condition.sql(dialect=self.dialect)

        return where, self.build_order_by(), self.params

    def build_condition(self) -> Optional[exp.Expression]:
        """Compile only the filter, as a sqlglot expression (None without a filter)."""
        if self.query.filter is None:
            return None
        return self._build_expr(self.query.filter)

    def build_order_by(self) -> str:
        if not self.query.order_by:
            return DEFAULT_ORDER_BY

        parts = []
        for term in self.query.order_by:
            column = _column(term.field).sql(dialect=self.dialect)
            parts.append(f"{column} {'DESC' if term.descending else 'ASC'}")
        return ", ".join(parts)

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _build_expr(self, expr: Expr) -> exp.Expression:
        if isinstance(expr, BinaryExpr):
            left = self._build_expr(expr.left)
            right = self._build_expr(expr.right)
            node = exp.Or if expr.op == TokenType.OR else exp.And
            return exp.Paren(this=node(this=left, expression=right))

        if isinstance(expr, NotExpr):
            return exp.Not(this=exp.Paren(this=self._build_expr(expr.expr)))

        if isinstance(expr, CompareExpr):
            return self._build_compare(expr)

        if isinstance(expr, InExpr):
            return self._build_in(expr)

        raise TypeError(f"Unsupported expression node: {type(expr).__name__}")

    def _bind(self, value: Any) -> exp.Placeholder:
        self.params.append(value)
        return exp.Placeholder()

    def _build_compare(self, expr: CompareExpr) -> exp.Expression:
        field, op, value = expr.field, expr.op, expr.value

        if field == "blocked":
            return _membership(
                exp.select("issue_id").from_("blocked_issues_cache"),
                member=value.bool_val == (op == TokenType.EQ),
            )

        if field == "ready":
            return _membership(
                exp.select("id").from_("ready_issues"),
                member=value.bool_val == (op == TokenType.EQ),
            )

        if field in ("label", "labels"):
            return self._build_label_compare(op, value)

        field_type = FIELDS[field]
        column: exp.Expression = _column(field)

        if field_type == FieldType.PRIORITY:
            return _COMPARISON_NODES[op](this=column, expression=self._bind(value.int_val))

        if field_type == FieldType.BOOL:
            # Stored as INTEGER 0/1; NULL matches neither
            truth = value.bool_val == (op == TokenType.EQ)
            return exp.EQ(this=column, expression=self._bind(1 if truth else 0))

        if field_type == FieldType.DATE:
            # datetime() normalizes stored ISO timestamps to the format date('now') produces
            normalized = _sqlite_call("datetime", column)
            return _COMPARISON_NODES[op](this=normalized, expression=self._date_expr(value))

        if field in NULLABLE_STRING_FIELDS:
            column = exp.Coalesce(this=column, expressions=[exp.Literal.string("")])

        if op == TokenType.CONTAINS:
            return exp.Like(this=column, expression=self._bind(f"%{value.raw}%"))
        if op == TokenType.NOT_CONTAINS:
            return exp.Not(this=exp.Like(this=column, expression=self._bind(f"%{value.raw}%")))

        return _COMPARISON_NODES[op](this=column, expression=self._bind(value.raw))

    def _build_label_compare(self, op: TokenType, value: Value) -> exp.Expression:
        if op in (TokenType.CONTAINS, TokenType.NOT_CONTAINS):
            match: exp.Expression = exp.Like(
                this=exp.column("label"), expression=self._bind(f"%{value.raw}%")
            )
        else:
            match = exp.EQ(this=exp.column("label"), expression=self._bind(value.raw))

        subquery = exp.select("issue_id").from_("labels").where(match)
        return _membership(subquery, member=op in (TokenType.EQ, TokenType.CONTAINS))

    def _build_in(self, expr: InExpr) -> exp.Expression:
        if expr.field in ("label", "labels"):
            labels = exp.In(
                this=exp.column("label"),
                expressions=[self._bind(v.raw) for v in expr.values],
            )
            subquery = exp.select("issue_id").from_("labels").where(labels)
            return _membership(subquery, member=not expr.negated)

        if FIELDS[expr.field] == FieldType.PRIORITY:
            placeholders = [self._bind(v.int_val) for v in expr.values]
        else:
            placeholders = [self._bind(v.raw) for v in expr.values]

        condition = exp.In(this=_column(expr.field), expressions=placeholders)
        if expr.negated:
            return exp.Not(this=condition)
        return condition

    # ------------------------------------------------------------------
    # Dates
    # ------------------------------------------------------------------

    def _date_expr(self, value: Value) -> exp.Expression:
        """
        Translate a date literal to a SQLite expression relative to 'now'.

        today       -> date('now')
        yesterday   -> date('now', '-1 day')
        -7d / -3m   -> date('now', '-7 days') / date('now', '-3 months')
        -24h        -> datetime('now', '-24 hours')
        2024-01-15  -> bound parameter, compared as an absolute date
        """
        text = value.str_val
        now = exp.Literal.string("now")

        if text == "today":
            return _sqlite_call("date", now)
        if text == "yesterday":
            return _sqlite_call("date", now, exp.Literal.string("-1 day"))

        match = _RELATIVE_OFFSET.fullmatch(text)
        if match:
            sign, amount, unit = match.groups()
            modifier = exp.Literal.string(f"{sign or '+'}{amount} {_OFFSET_UNITS[unit]}")
            # Hours need sub-day precision
            func = "datetime" if unit == "h" else "date"
            return _sqlite_call(func, now, modifier)

        return self._bind(text)


def build_sql(query: Query, dialect: str = "sqlite") -> Tuple[str, str, List[Any]]:
    """Compile a validated query; shorthand for SQLBuilder(query, dialect).build()."""
    return SQLBuilder(query, dialect=dialect).build()


__all__ = ["SQLBuilder", "build_sql", "DEFAULT_ORDER_BY", "ISSUE_ALIAS"]
