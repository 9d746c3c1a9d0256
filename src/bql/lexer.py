"""
BQL lexer.

Turns raw query text into a stream of tokens. The lexer never raises:
characters it does not understand come back as ILLEGAL tokens and the parser
decides what to do with them.
"""

import re
from typing import Iterator, List

from .tokens import Token, TokenType, lookup_ident

# Relative date/time units accepted after a number (-7d, -24h, -3m)
DATE_UNITS = frozenset("dDhHmM")

_ISO_DATE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")

_SINGLE_CHAR_TOKENS = {
    "=": TokenType.EQ,
    "~": TokenType.CONTAINS,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ",": TokenType.COMMA,
    "*": TokenType.STAR,
}


def _is_digit(ch: str) -> bool:
    return bool(ch) and ch in "0123456789"


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch == "_"


def _is_ident_char(ch: str) -> bool:
    return bool(ch) and (ch.isalnum() or ch in "_-")


class Lexer:
    """
    Single-pass tokenizer over a BQL string.

    Example:
        lexer = Lexer("type = bug and priority < P2")
        for token in lexer:
            print(token.type, token.literal)
    """

    def __init__(self, text: str):
        self.text = text
        self._pos = 0

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self.next_token()
            yield token
            if token.type == TokenType.EOF:
                return

    def _peek(self, offset: int = 0) -> str:
        index = self._pos + offset
        if index < len(self.text):
            return self.text[index]
        return ""

    def _skip_whitespace(self) -> None:
        while self._pos < len(self.text) and self.text[self._pos].isspace():
            self._pos += 1

    def next_token(self) -> Token:
        """Return the next token; EOF is returned forever once the input is consumed."""
        self._skip_whitespace()

        start = self._pos
        ch = self._peek()

        if not ch:
            return Token(TokenType.EOF, "", start + 1)

        if ch in ("'", '"'):
            return self._read_string(ch)

        if _is_digit(ch) or (ch in "+-" and _is_digit(self._peek(1))):
            return self._read_number()

        if _is_ident_start(ch):
            return self._read_ident()

        two = ch + self._peek(1)
        if two in ("!=", "!~", "<=", ">="):
            self._pos += 2
            return Token(TokenType(two), two, start + 1)

        if ch == "<":
            self._pos += 1
            return Token(TokenType.LT, ch, start + 1)
        if ch == ">":
            self._pos += 1
            return Token(TokenType.GT, ch, start + 1)

        self._pos += 1
        token_type = _SINGLE_CHAR_TOKENS.get(ch, TokenType.ILLEGAL)
        return Token(token_type, ch, start + 1)

    def _read_string(self, quote: str) -> Token:
        start = self._pos
        self._pos += 1  # opening quote
        chars: List[str] = []

        while self._pos < len(self.text):
            ch = self.text[self._pos]
            if ch == quote:
                self._pos += 1
                break
            if ch == "\\" and self._pos + 1 < len(self.text):
                chars.append(self.text[self._pos + 1])
                self._pos += 2
                continue
            chars.append(ch)
            self._pos += 1

        # Unterminated strings run to the end of the input
        return Token(TokenType.STRING, "".join(chars), start + 1)

    def _read_number(self) -> Token:
        start = self._pos

        if self._peek() not in "+-":
            match = _ISO_DATE.match(self.text, self._pos)
            if match and not _is_ident_char(self._peek(match.end() - self._pos)):
                self._pos = match.end()
                return Token(TokenType.NUMBER, match.group(), start + 1)
        else:
            self._pos += 1

        while _is_digit(self._peek()):
            self._pos += 1

        if self._peek() and self._peek() in DATE_UNITS:
            self._pos += 1

        return Token(TokenType.NUMBER, self.text[start : self._pos], start + 1)

    def _read_ident(self) -> Token:
        start = self._pos
        while _is_ident_char(self._peek()):
            self._pos += 1

        literal = self.text[start : self._pos]
        return Token(lookup_ident(literal), literal, start + 1)


def tokenize(text: str) -> List[Token]:
    """Lex the whole input, including the trailing EOF token."""
    return list(Lexer(text))


__all__ = ["Lexer", "tokenize", "DATE_UNITS"]
