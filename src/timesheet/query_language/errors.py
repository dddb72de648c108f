"""Errors for query language parsing, validation and interpretation."""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from timesheet.query_language.tokens import Token
    from timesheet.query_language.validation import ValidationResult


class QueryLanguageError(Exception):
    """Base exception for query language failures."""


class QueryParseError(QueryLanguageError):
    """Raised when query text cannot be parsed."""

    def __init__(
        self,
        message: str,
        token: Token | None = None,
        expected: tuple[str, ...] = (),
    ) -> None:
        super().__init__(message)
        self.message = message
        self.token = token
        self.expected = expected


class QueryInterpreterError(QueryLanguageError):
    """Raised when a clause references a value outside the query vocabulary."""

    def __init__(self, message: str, node: object | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.node = node


class QueryDecodeError(QueryLanguageError):
    """Raised when a serialized node cannot be decoded."""


class QueryValidationError(QueryLanguageError):
    """Raised when a parsed query fails structural validation."""

    def __init__(self, result: ValidationResult) -> None:
        super().__init__("Invalid query: " + "; ".join(result.errors))
        self.result = result
