"""
Semantic validation of parsed BQL queries.

The parser only checks shape. The QueryValidator checks meaning against the
field registry: the field must exist, the operator must suit the field's
type, and every value must be of the right kind (and, for enum fields, one of
the whitelisted values).
"""

from typing import Dict, FrozenSet

from .errors import ValidationError
from .fields import ENUM_VALUES, FIELDS, PSEUDO_FIELDS, FieldType, valid_field_names
from .models import BinaryExpr, CompareExpr, Expr, InExpr, NotExpr, Query, Value, ValueType
from .tokens import TokenType

_EQUALITY = frozenset([TokenType.EQ, TokenType.NEQ])
_ORDERING = frozenset([TokenType.LT, TokenType.GT, TokenType.LTE, TokenType.GTE])
_CONTAINS = frozenset([TokenType.CONTAINS, TokenType.NOT_CONTAINS])

ALLOWED_OPERATORS: Dict[FieldType, FrozenSet[TokenType]] = {
    FieldType.BOOL: _EQUALITY,
    FieldType.ENUM: _EQUALITY,
    FieldType.STRING: _EQUALITY | _CONTAINS,
    FieldType.PRIORITY: _EQUALITY | _ORDERING,
    FieldType.DATE: _EQUALITY | _ORDERING,
}

# Field types that accept [NOT] IN (...)
IN_FIELD_TYPES = frozenset([FieldType.STRING, FieldType.ENUM, FieldType.PRIORITY])

_OPERATOR_HINTS = {
    FieldType.BOOL: "use = or !=",
    FieldType.ENUM: "use = or !=",
    FieldType.STRING: "use =, !=, ~, or !~",
    FieldType.PRIORITY: "use =, !=, <, >, <=, or >=",
    FieldType.DATE: "use =, !=, <, >, <=, or >=",
}


class QueryValidator:
    """
    Validates a Query AST against the field registry.

    Example:
        from bql.parser import parse
        from bql.validator import QueryValidator

        QueryValidator().validate(parse("type = bug and priority <= P1"))
    """

    def validate(self, query: Query) -> None:
        """
        Validate the filter and ORDER BY terms of a query.

        Raises:
            ValidationError: For the first unknown field, incompatible operator
                or ill-typed value found
        """
        if query.filter is not None:
            self._validate_expr(query.filter)

        for term in query.order_by:
            if term.field not in FIELDS:
                raise ValidationError(
                    f'unknown field in ORDER BY: "{term.field}" (valid: {valid_field_names()})',
                    field=term.field,
                )
            if term.field in PSEUDO_FIELDS:
                raise ValidationError(
                    f'cannot ORDER BY "{term.field}": it has no sortable column',
                    field=term.field,
                )

    def _validate_expr(self, expr: Expr) -> None:
        if isinstance(expr, BinaryExpr):
            self._validate_expr(expr.left)
            self._validate_expr(expr.right)
        elif isinstance(expr, NotExpr):
            self._validate_expr(expr.expr)
        elif isinstance(expr, CompareExpr):
            self._validate_compare(expr)
        elif isinstance(expr, InExpr):
            self._validate_in(expr)
        else:
            raise TypeError(f"Unsupported expression node: {type(expr).__name__}")

    def _lookup(self, field: str) -> FieldType:
        try:
            return FIELDS[field]
        except KeyError:
            raise ValidationError(
                f'unknown field: "{field}" (valid: {valid_field_names()})', field=field
            ) from None

    def _validate_compare(self, expr: CompareExpr) -> None:
        field_type = self._lookup(expr.field)

        if expr.op not in ALLOWED_OPERATORS[field_type]:
            raise ValidationError(
                f'operator "{expr.op}" is not valid for {field_type.value} field '
                f'"{expr.field}" ({_OPERATOR_HINTS[field_type]})',
                field=expr.field,
            )

        self._validate_value(expr.field, field_type, expr.value)

    def _validate_in(self, expr: InExpr) -> None:
        field_type = self._lookup(expr.field)

        if field_type not in IN_FIELD_TYPES:
            operator = "NOT IN" if expr.negated else "IN"
            raise ValidationError(
                f'operator {operator} is not valid for {field_type.value} field "{expr.field}"',
                field=expr.field,
            )

        for value in expr.values:
            self._validate_value(expr.field, field_type, value)

    def _validate_value(self, field: str, field_type: FieldType, value: Value) -> None:
        if field_type == FieldType.BOOL:
            if value.type != ValueType.BOOL:
                raise ValidationError(
                    f'field "{field}" requires a boolean value (true or false), got "{value.raw}"',
                    field=field,
                )

        elif field_type == FieldType.PRIORITY:
            if value.type != ValueType.PRIORITY:
                raise ValidationError(
                    f'field "{field}" requires a priority value (P0-P4), got "{value.raw}"',
                    field=field,
                )

        elif field_type == FieldType.DATE:
            if value.type != ValueType.DATE:
                raise ValidationError(
                    f'field "{field}" requires a date value (today, yesterday, -Nd, -Nh, -Nm '
                    f'or YYYY-MM-DD), got "{value.raw}"',
                    field=field,
                )

        elif field_type == FieldType.ENUM:
            allowed = ENUM_VALUES[field]
            if value.type != ValueType.STRING or value.str_val not in allowed:
                raise ValidationError(
                    f'invalid value "{value.raw}" for field "{field}" '
                    f"(valid: {', '.join(sorted(allowed))})",
                    field=field,
                )

        elif field_type == FieldType.STRING:
            # Any literal compares as its text, except true/false
            if value.type == ValueType.BOOL:
                raise ValidationError(
                    f'field "{field}" requires a string value, got "{value.raw}"', field=field
                )


def validate(query: Query) -> None:
    """Validate a parsed query; shorthand for QueryValidator().validate(query)."""
    QueryValidator().validate(query)


__all__ = ["QueryValidator", "validate", "ALLOWED_OPERATORS", "IN_FIELD_TYPES"]
