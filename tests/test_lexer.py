"""
Tests for the BQL lexer.
"""

import pytest

from bql import Lexer, TokenType, tokenize


def types(text):
    return [token.type for token in tokenize(text)]


class TestLexerOperators:
    """Operators and delimiters."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("=", TokenType.EQ),
            ("!=", TokenType.NEQ),
            ("<", TokenType.LT),
            (">", TokenType.GT),
            ("<=", TokenType.LTE),
            (">=", TokenType.GTE),
            ("~", TokenType.CONTAINS),
            ("!~", TokenType.NOT_CONTAINS),
            ("(", TokenType.LPAREN),
            (")", TokenType.RPAREN),
            (",", TokenType.COMMA),
            ("*", TokenType.STAR),
        ],
    )
    def test_single_operator(self, text, expected):
        """Test each operator lexes to its own token type."""
        assert types(text) == [expected, TokenType.EOF]

    def test_operators_without_spaces(self):
        """Test two-character operators are preferred over their prefixes."""
        assert types("a<=P1") == [TokenType.IDENT, TokenType.LTE, TokenType.IDENT, TokenType.EOF]
        assert types("a!~b") == [
            TokenType.IDENT,
            TokenType.NOT_CONTAINS,
            TokenType.IDENT,
            TokenType.EOF,
        ]

    def test_lone_bang_is_illegal(self):
        """Test that ! not followed by = or ~ is illegal."""
        tokens = tokenize("a ! b")
        assert tokens[1].type == TokenType.ILLEGAL
        assert tokens[1].literal == "!"

    @pytest.mark.parametrize("char", ["@", "#", "$", "&", "[", "{", ";", "+", "-"])
    def test_unknown_characters_are_illegal(self, char):
        """Test that unrecognized characters never raise."""
        tokens = tokenize(f"x {char} y")
        assert tokens[1].type == TokenType.ILLEGAL


class TestLexerLiterals:
    """Strings, numbers and identifiers."""

    def test_double_quoted_string(self):
        """Test that double-quoted text is one STRING token without quotes."""
        tokens = tokenize('"hello world"')
        assert tokens[0].type == TokenType.STRING
        assert tokens[0].literal == "hello world"

    def test_single_quoted_string(self):
        """Test that single quotes work the same as double quotes."""
        tokens = tokenize("'it works'")
        assert tokens[0].type == TokenType.STRING
        assert tokens[0].literal == "it works"

    def test_escaped_quote_inside_string(self):
        """Test that a backslash escapes the next character."""
        tokens = tokenize(r'"say \"hi\" \\ now"')
        assert tokens[0].literal == 'say "hi" \\ now'

    def test_unterminated_string_consumes_rest(self):
        """Test that an unterminated string runs to the end without error."""
        tokens = tokenize('title = "no end')
        assert tokens[2].type == TokenType.STRING
        assert tokens[2].literal == "no end"
        assert tokens[3].type == TokenType.EOF

    def test_hyphenated_identifier(self):
        """Test that identifiers keep hyphens so IDs like perles-123 stay whole."""
        tokens = tokenize("id = perles-123")
        assert tokens[2].type == TokenType.IDENT
        assert tokens[2].literal == "perles-123"

    def test_identifier_with_underscore(self):
        """Test that underscores are allowed anywhere in identifiers."""
        tokens = tokenize("in_progress _private")
        assert [t.literal for t in tokens[:2]] == ["in_progress", "_private"]
        assert tokens[0].type == TokenType.IDENT

    @pytest.mark.parametrize("literal", ["42", "-7d", "+3m", "-24h", "7D", "-3M", "12H"])
    def test_numbers_and_offsets(self, literal):
        """Test that signed numbers and unit suffixes form one NUMBER token."""
        tokens = tokenize(literal)
        assert tokens[0].type == TokenType.NUMBER
        assert tokens[0].literal == literal
        assert tokens[1].type == TokenType.EOF

    def test_iso_date_is_one_token(self):
        """Test that an ISO date lexes as a single NUMBER token."""
        tokens = tokenize("created > 2024-01-15")
        assert tokens[2].type == TokenType.NUMBER
        assert tokens[2].literal == "2024-01-15"
        assert tokens[3].type == TokenType.EOF


class TestLexerKeywords:
    """Keyword recognition."""

    @pytest.mark.parametrize(
        "word,expected",
        [
            ("and", TokenType.AND),
            ("OR", TokenType.OR),
            ("Not", TokenType.NOT),
            ("in", TokenType.IN),
            ("ORDER", TokenType.ORDER),
            ("by", TokenType.BY),
            ("asc", TokenType.ASC),
            ("DESC", TokenType.DESC),
            ("true", TokenType.TRUE),
            ("False", TokenType.FALSE),
            ("expand", TokenType.EXPAND),
            ("Depth", TokenType.DEPTH),
        ],
    )
    def test_keywords_case_insensitive(self, word, expected):
        """Test that keywords match in any case and keep their literal."""
        tokens = tokenize(word)
        assert tokens[0].type == expected
        assert tokens[0].literal == word

    def test_keyword_prefix_is_identifier(self):
        """Test that identifiers merely starting with a keyword stay identifiers."""
        assert types("android order_id") == [TokenType.IDENT, TokenType.IDENT, TokenType.EOF]


class TestLexerPositions:
    """Token positions are 1-based offsets."""

    def test_positions(self):
        """Test that positions are 1-based and EOF sits past the end."""
        tokens = tokenize("type = bug")
        assert [t.pos for t in tokens] == [1, 6, 8, 11]

    def test_string_position_is_opening_quote(self):
        """Test that a string's position is its opening quote."""
        tokens = tokenize('  "x"')
        assert tokens[0].pos == 3

    def test_eof_repeats(self):
        """Test that next_token keeps returning EOF once the input is consumed."""
        lexer = Lexer("a")
        assert lexer.next_token().type == TokenType.IDENT
        assert lexer.next_token().type == TokenType.EOF
        assert lexer.next_token().type == TokenType.EOF

    def test_empty_input(self):
        """Test that blank input yields only EOF."""
        tokens = tokenize("   ")
        assert len(tokens) == 1
        assert tokens[0].type == TokenType.EOF
        assert tokens[0].pos == 4

    def test_full_query(self):
        """Test the token stream for a complete query."""
        text = "type = bug and (priority <= P1 or label ~ 'auth') order by created desc"
        assert types(text) == [
            TokenType.IDENT,
            TokenType.EQ,
            TokenType.IDENT,
            TokenType.AND,
            TokenType.LPAREN,
            TokenType.IDENT,
            TokenType.LTE,
            TokenType.IDENT,
            TokenType.OR,
            TokenType.IDENT,
            TokenType.CONTAINS,
            TokenType.STRING,
            TokenType.RPAREN,
            TokenType.ORDER,
            TokenType.BY,
            TokenType.IDENT,
            TokenType.DESC,
            TokenType.EOF,
        ]
