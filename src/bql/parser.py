"""
Recursive-descent parser for BQL.

Grammar:
    query      := [expression] [expand] [orderBy]
    expression := term   ( OR term )*
    term       := factor ( AND factor )*
    factor     := NOT factor | '(' expression ')' | comparison
    comparison := IDENT ( op value | [NOT] IN '(' value (',' value)* ')' )
    expand     := EXPAND IDENT [ DEPTH (NUMBER | '*') ]
    orderBy    := ORDER BY IDENT [ASC|DESC] (',' IDENT [ASC|DESC])*

OR binds loosest, then AND, then NOT / parentheses / comparisons.
"""

import re
from typing import Dict, List

from .errors import ParseError
from .lexer import DATE_UNITS, Lexer
from .models import (
    DEPTH_DEFAULT,
    DEPTH_MAX,
    DEPTH_UNLIMITED,
    BinaryExpr,
    CompareExpr,
    ExpandClause,
    ExpandDirection,
    Expr,
    InExpr,
    NotExpr,
    OrderTerm,
    Query,
    Value,
    ValueType,
)
from .tokens import Token, TokenType

# Expansion keyword -> direction through the dependency graph
EXPAND_KEYWORDS: Dict[str, ExpandDirection] = {
    "children": ExpandDirection.DOWN,
    "blocks": ExpandDirection.DOWN,
    "downstream": ExpandDirection.DOWN,
    "down": ExpandDirection.DOWN,
    "blockers": ExpandDirection.UP,
    "parent": ExpandDirection.UP,
    "parents": ExpandDirection.UP,
    "upstream": ExpandDirection.UP,
    "up": ExpandDirection.UP,
    "deps": ExpandDirection.ALL,
    "all": ExpandDirection.ALL,
}

# Parentheses and NOT recurse; bound them well below the interpreter limit
MAX_NESTING = 64

# AND/OR chains parse flat but every later pass walks the tree recursively,
# so the number of connectives in one query is bounded as well
MAX_CONNECTIVES = 64

_PRIORITY = re.compile(r"[pP][0-4]")
_INTEGER = re.compile(r"[+-]?[0-9]+")
_ISO_DATE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def _describe(token: Token) -> str:
    if token.type == TokenType.EOF:
        return "end of input"
    return f'"{token.literal}"'


def parse_number_value(literal: str) -> Value:
    """Classify a NUMBER token: relative offsets and ISO dates are dates, the rest ints."""
    if len(literal) > 1 and literal[-1] in DATE_UNITS:
        normalized = literal[:-1] + literal[-1].lower()
        return Value(ValueType.DATE, raw=literal, str_val=normalized)

    if _ISO_DATE.fullmatch(literal):
        return Value(ValueType.DATE, raw=literal, str_val=literal)

    return Value(ValueType.INT, raw=literal, str_val=literal, int_val=int(literal))


def parse_ident_value(literal: str) -> Value:
    """Classify a bare identifier used in value position."""
    if _PRIORITY.fullmatch(literal):
        return Value(ValueType.PRIORITY, raw=literal, str_val=literal, int_val=int(literal[1]))

    lowered = literal.lower()
    if lowered in ("today", "yesterday"):
        return Value(ValueType.DATE, raw=literal, str_val=lowered)

    return Value(ValueType.STRING, raw=literal, str_val=literal)


class Parser:
    """
    Parse one BQL query into a Query AST.

    A parser holds the lexer and a two-token window (current, peek); create a
    new one per query.

    Example:
        query = Parser("type = bug and priority <= P1 order by created desc").parse()
    """

    def __init__(self, text: str):
        self.text = text
        self._lexer = Lexer(text)
        self._current = self._lexer.next_token()
        self._peek = self._lexer.next_token()
        self._nesting = 0
        self._connectives = 0

    def parse(self) -> Query:
        """
        Parse the full input.

        Returns:
            The Query AST

        Raises:
            ParseError: On the first lexical or grammar violation
        """
        query = Query()

        # The filter is optional; a query may be just EXPAND or ORDER BY
        if self._current.type not in (TokenType.EXPAND, TokenType.ORDER, TokenType.EOF):
            query.filter = self._parse_expression()

        if self._current.type == TokenType.EXPAND:
            query.expand = self._parse_expand()

        if self._current.type == TokenType.ORDER:
            query.order_by = self._parse_order_by()

        if self._current.type != TokenType.EOF:
            raise self._error(
                f"unexpected token {_describe(self._current)} at position {self._current.pos}"
            )

        return query

    # ------------------------------------------------------------------
    # Token handling
    # ------------------------------------------------------------------

    def _advance(self) -> None:
        self._current = self._peek
        self._peek = self._lexer.next_token()

    def _error(self, message: str) -> ParseError:
        return ParseError(message, position=self._current.pos, found=self._current.literal)

    def _expected(self, what: str) -> ParseError:
        return self._error(
            f"expected {what} at position {self._current.pos}, got {_describe(self._current)}"
        )

    # ------------------------------------------------------------------
    # Filter expressions
    # ------------------------------------------------------------------

    def _parse_expression(self) -> Expr:
        left = self._parse_term()
        while self._current.type == TokenType.OR:
            self._count_connective()
            left = BinaryExpr(left=left, op=TokenType.OR, right=self._parse_term())
        return left

    def _parse_term(self) -> Expr:
        left = self._parse_factor()
        while self._current.type == TokenType.AND:
            self._count_connective()
            left = BinaryExpr(left=left, op=TokenType.AND, right=self._parse_factor())
        return left

    def _count_connective(self) -> None:
        self._connectives += 1
        if self._connectives > MAX_CONNECTIVES:
            raise self._error(
                f"more than {MAX_CONNECTIVES} AND/OR operators at position {self._current.pos}"
            )
        self._advance()

    def _parse_factor(self) -> Expr:
        if self._current.type not in (TokenType.NOT, TokenType.LPAREN):
            return self._parse_comparison()

        self._nesting += 1
        if self._nesting > MAX_NESTING:
            raise self._error(
                f"expression nested more than {MAX_NESTING} levels at position {self._current.pos}"
            )

        if self._current.type == TokenType.NOT:
            self._advance()
            expr: Expr = NotExpr(expr=self._parse_factor())
        else:
            self._advance()
            expr = self._parse_expression()
            if self._current.type != TokenType.RPAREN:
                raise self._expected("')'")
            self._advance()

        self._nesting -= 1
        return expr

    def _parse_comparison(self) -> Expr:
        if self._current.type != TokenType.IDENT:
            raise self._expected("field name")
        field = self._current.literal
        self._advance()

        if self._current.type == TokenType.NOT and self._peek.type == TokenType.IN:
            self._advance()
            self._advance()
            return self._parse_in(field, negated=True)

        if self._current.type == TokenType.IN:
            self._advance()
            return self._parse_in(field, negated=False)

        if not self._current.type.is_comparison_op():
            raise self._expected("operator")
        op = self._current.type
        self._advance()

        return CompareExpr(field=field, op=op, value=self._parse_value())

    def _parse_in(self, field: str, negated: bool) -> InExpr:
        if self._current.type != TokenType.LPAREN:
            raise self._expected("'('")
        self._advance()

        values = [self._parse_value()]
        while self._current.type == TokenType.COMMA:
            self._advance()
            values.append(self._parse_value())

        if self._current.type != TokenType.RPAREN:
            raise self._expected("')'")
        self._advance()

        return InExpr(field=field, values=values, negated=negated)

    def _parse_value(self) -> Value:
        token = self._current

        if token.type == TokenType.STRING:
            value = Value(ValueType.STRING, raw=token.literal, str_val=token.literal)
        elif token.type == TokenType.NUMBER:
            value = parse_number_value(token.literal)
        elif token.type == TokenType.TRUE:
            value = Value(ValueType.BOOL, raw=token.literal, bool_val=True)
        elif token.type == TokenType.FALSE:
            value = Value(ValueType.BOOL, raw=token.literal, bool_val=False)
        elif token.type == TokenType.IDENT:
            value = parse_ident_value(token.literal)
        else:
            raise self._expected("value")

        self._advance()
        return value

    # ------------------------------------------------------------------
    # EXPAND / ORDER BY
    # ------------------------------------------------------------------

    def _parse_expand(self) -> ExpandClause:
        self._advance()  # EXPAND

        if self._current.type != TokenType.IDENT:
            raise self._expected(f"expansion type ({', '.join(EXPAND_KEYWORDS)})")

        keyword = self._current.literal
        direction = EXPAND_KEYWORDS.get(keyword.lower())
        if direction is None:
            raise self._error(
                f'unknown expansion type "{keyword}" at position {self._current.pos} '
                f"(valid: {', '.join(EXPAND_KEYWORDS)})"
            )
        self._advance()

        clause = ExpandClause(direction=direction, depth=DEPTH_DEFAULT, keyword=keyword.lower())

        if self._current.type == TokenType.DEPTH:
            self._advance()
            clause.depth = self._parse_depth()

        return clause

    def _parse_depth(self) -> int:
        token = self._current

        if token.type == TokenType.STAR:
            self._advance()
            return DEPTH_UNLIMITED

        if token.type != TokenType.NUMBER:
            raise self._expected("depth value (number or *)")

        if not _INTEGER.fullmatch(token.literal):
            raise self._error(f'invalid depth value "{token.literal}" at position {token.pos}')

        depth = int(token.literal)
        if depth < 1:
            raise self._error(f"depth must be at least 1, got {depth} at position {token.pos}")
        if depth > DEPTH_MAX:
            raise self._error(
                f"depth cannot exceed {DEPTH_MAX}, got {depth} at position {token.pos}"
            )

        self._advance()
        return depth

    def _parse_order_by(self) -> List[OrderTerm]:
        self._advance()  # ORDER

        if self._current.type != TokenType.BY:
            raise self._expected("'by'")
        self._advance()

        terms = []
        while True:
            if self._current.type != TokenType.IDENT:
                raise self._expected("field name")
            term = OrderTerm(field=self._current.literal)
            self._advance()

            if self._current.type == TokenType.ASC:
                self._advance()
            elif self._current.type == TokenType.DESC:
                term.descending = True
                self._advance()

            terms.append(term)

            if self._current.type != TokenType.COMMA:
                break
            self._advance()

        return terms


def parse(text: str) -> Query:
    """Parse a BQL string; shorthand for Parser(text).parse()."""
    return Parser(text).parse()


__all__ = [
    "Parser",
    "parse",
    "parse_number_value",
    "parse_ident_value",
    "EXPAND_KEYWORDS",
    "MAX_NESTING",
    "MAX_CONNECTIVES",
]
