"""
Token definitions for the BQL lexer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet


class TokenType(Enum):
    """Kind of a lexical token"""

    ILLEGAL = "ILLEGAL"
    EOF = "EOF"

    # Literals
    IDENT = "IDENT"
    STRING = "STRING"
    NUMBER = "NUMBER"

    # Comparison operators
    EQ = "="
    NEQ = "!="
    LT = "<"
    GT = ">"
    LTE = "<="
    GTE = ">="
    CONTAINS = "~"
    NOT_CONTAINS = "!~"

    # Delimiters
    LPAREN = "("
    RPAREN = ")"
    COMMA = ","
    STAR = "*"

    # Keywords
    AND = "and"
    OR = "or"
    NOT = "not"
    IN = "in"
    ORDER = "order"
    BY = "by"
    ASC = "asc"
    DESC = "desc"
    TRUE = "true"
    FALSE = "false"
    EXPAND = "expand"
    DEPTH = "depth"

    def is_comparison_op(self) -> bool:
        return self in COMPARISON_OPS

    def __str__(self) -> str:
        return self.value


COMPARISON_OPS: FrozenSet[TokenType] = frozenset(
    [
        TokenType.EQ,
        TokenType.NEQ,
        TokenType.LT,
        TokenType.GT,
        TokenType.LTE,
        TokenType.GTE,
        TokenType.CONTAINS,
        TokenType.NOT_CONTAINS,
    ]
)

# Matched case-insensitively against identifiers
KEYWORDS: Dict[str, TokenType] = {
    "and": TokenType.AND,
    "or": TokenType.OR,
    "not": TokenType.NOT,
    "in": TokenType.IN,
    "order": TokenType.ORDER,
    "by": TokenType.BY,
    "asc": TokenType.ASC,
    "desc": TokenType.DESC,
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
    "expand": TokenType.EXPAND,
    "depth": TokenType.DEPTH,
}


def lookup_ident(literal: str) -> TokenType:
    """Reclassify an identifier as a keyword token when it is one."""
    return KEYWORDS.get(literal.lower(), TokenType.IDENT)


@dataclass(frozen=True)
class Token:
    """
    A single lexical token.

    pos is the 1-based offset of the token's first character in the input
    (the opening quote for strings, len(input) + 1 for EOF).
    """

    type: TokenType
    literal: str
    pos: int


__all__ = ["TokenType", "Token", "COMPARISON_OPS", "KEYWORDS", "lookup_ident"]
