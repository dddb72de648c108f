"""Tokenizer for timesheet query text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from parsy import Parser, eof, regex, string


class TokenKind(StrEnum):
    """Kinds of tokens produced by the tokenizer."""

    WHERE = "WHERE"
    SHOW = "SHOW"
    VIEW = "VIEW"
    CHART = "CHART"
    PERIOD = "PERIOD"
    SIZE = "SIZE"
    ORDER = "ORDER"
    GROUP = "GROUP"
    BY = "BY"
    HAVING = "HAVING"
    LIMIT = "LIMIT"
    OFFSET = "OFFSET"
    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    BETWEEN = "BETWEEN"
    IN = "IN"
    LIKE = "LIKE"
    IS = "IS"
    NULL = "NULL"
    AS = "AS"
    FORMAT = "FORMAT"
    ASC = "ASC"
    DESC = "DESC"
    EQUALS = "="
    NOT_EQUALS = "!="
    GREATER = ">"
    LESS = "<"
    GREATER_EQUAL = ">="
    LESS_EQUAL = "<="
    PLUS = "+"
    MINUS = "-"
    STAR = "*"
    SLASH = "/"
    LPAREN = "("
    RPAREN = ")"
    COMMA = ","
    NUMBER = "NUMBER"
    PERCENT = "PERCENT"
    STRING = "STRING"
    DATE = "DATE"
    IDENTIFIER = "IDENTIFIER"
    NEWLINE = "NEWLINE"
    ERROR = "ERROR"
    EOF = "EOF"


KEYWORDS: dict[str, TokenKind] = {
    kind.value: kind
    for kind in (
        TokenKind.WHERE,
        TokenKind.SHOW,
        TokenKind.VIEW,
        TokenKind.CHART,
        TokenKind.PERIOD,
        TokenKind.SIZE,
        TokenKind.ORDER,
        TokenKind.GROUP,
        TokenKind.BY,
        TokenKind.HAVING,
        TokenKind.LIMIT,
        TokenKind.OFFSET,
        TokenKind.AND,
        TokenKind.OR,
        TokenKind.NOT,
        TokenKind.BETWEEN,
        TokenKind.IN,
        TokenKind.LIKE,
        TokenKind.IS,
        TokenKind.NULL,
        TokenKind.AS,
        TokenKind.FORMAT,
        TokenKind.ASC,
        TokenKind.DESC,
    )
}

CLAUSE_KEYWORDS: tuple[TokenKind, ...] = (
    TokenKind.WHERE,
    TokenKind.SHOW,
    TokenKind.VIEW,
    TokenKind.CHART,
    TokenKind.PERIOD,
    TokenKind.SIZE,
    TokenKind.ORDER,
    TokenKind.GROUP,
    TokenKind.HAVING,
    TokenKind.LIMIT,
)

COMPARISON_KINDS: tuple[TokenKind, ...] = (
    TokenKind.EQUALS,
    TokenKind.NOT_EQUALS,
    TokenKind.GREATER,
    TokenKind.LESS,
    TokenKind.GREATER_EQUAL,
    TokenKind.LESS_EQUAL,
)

# Longest match first.
_OPERATORS: tuple[tuple[str, TokenKind], ...] = (
    (">=", TokenKind.GREATER_EQUAL),
    ("<=", TokenKind.LESS_EQUAL),
    ("!=", TokenKind.NOT_EQUALS),
    ("==", TokenKind.EQUALS),
    ("=", TokenKind.EQUALS),
    (">", TokenKind.GREATER),
    ("<", TokenKind.LESS),
    ("+", TokenKind.PLUS),
    ("-", TokenKind.MINUS),
    ("*", TokenKind.STAR),
    ("/", TokenKind.SLASH),
    ("(", TokenKind.LPAREN),
    (")", TokenKind.RPAREN),
    (",", TokenKind.COMMA),
)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}

type Lexeme = tuple[TokenKind, str]


@dataclass(frozen=True, slots=True)
class Token:
    """One lexical token with its 1-based source position."""

    kind: TokenKind
    text: str
    line: int
    column: int

    def describe(self) -> str:
        """Return a short human-readable description of the token."""
        if self.kind == TokenKind.EOF:
            return "end of query"
        if self.kind == TokenKind.NEWLINE:
            return "end of line"
        return f"'{self.text}'"


def _decode_string(raw: str) -> str:
    """Strip quotes from a string lexeme and resolve backslash escapes."""
    body = raw[1:-1]
    return re.sub(r"\\(.)", lambda match: _ESCAPES.get(match.group(1), match.group(1)), body)


def _string_lexeme(raw: str) -> Lexeme:
    decoded = _decode_string(raw)
    if DATE_PATTERN.match(decoded):
        return (TokenKind.DATE, decoded)
    return (TokenKind.STRING, decoded)


def _word_lexeme(text: str) -> Lexeme:
    return (KEYWORDS.get(text.upper(), TokenKind.IDENTIFIER), text)


def _operator_parser() -> Parser:
    """Build parser for punctuation and operators."""
    parser: Parser | None = None
    for symbol, kind in _OPERATORS:
        current = string(symbol).result((kind, symbol))
        parser = current if parser is None else parser | current
    if parser is None:
        raise RuntimeError("No operators defined")
    return parser


def _make_tokenizer() -> Parser:
    """Create the full tokenizer parser."""
    skip = (regex(r"[ \t\r\f\v]+") | regex(r"//[^\n]*")).many()

    newline = string("\n").result((TokenKind.NEWLINE, "\n"))
    string_literal = regex(r'"(?:[^"\\]|\\.)*"|\'(?:[^\'\\]|\\.)*\'', flags=re.DOTALL).map(
        _string_lexeme
    )
    unterminated = regex(r"[\"'][\s\S]*").map(lambda text: (TokenKind.ERROR, text))
    bare_date = regex(r"\d{4}-\d{2}-\d{2}(?![A-Za-z0-9_-])").map(
        lambda text: (TokenKind.DATE, text)
    )
    percent = regex(r"\d+(?:\.\d+)?%").map(lambda text: (TokenKind.PERCENT, text))
    number = regex(r"\d+(?:\.\d+)?").map(lambda text: (TokenKind.NUMBER, text))
    word = regex(r"[A-Za-z_][A-Za-z0-9_-]*").map(_word_lexeme)
    unknown = regex(r".", flags=re.DOTALL).map(lambda text: (TokenKind.ERROR, text))

    lexeme = (
        newline
        | string_literal
        | unterminated
        | bare_date
        | percent
        | number
        | word
        | _operator_parser()
        | unknown
    )
    return (skip >> lexeme.mark()).many() << skip << eof


TOKENIZER = _make_tokenizer()


def _end_position(text: str) -> tuple[int, int]:
    """Return 1-based line and column just past the end of text."""
    line = text.count("\n") + 1
    column = len(text) - (text.rfind("\n") + 1) + 1
    return (line, column)


def tokenize(text: str) -> tuple[Token, ...]:
    """Split query text into tokens.

    Never raises: unrecognized characters and unterminated strings become
    ERROR tokens. The result always ends with an EOF token.
    """
    marked = TOKENIZER.parse(text)
    tokens = [
        Token(kind, value, start[0] + 1, start[1] + 1)
        for start, (kind, value), _end in marked
    ]
    line, column = _end_position(text)
    tokens.append(Token(TokenKind.EOF, "", line, column))
    return tuple(tokens)
