"""Public API for query language tokenizer/parser/interpreter/executor."""

from timesheet.query_language.analysis import analyze_query, get_ast_statistics
from timesheet.query_language.clauses import ClauseHandlerRegistry, create_default_registry
from timesheet.query_language.compiler import (
    CompiledQuery,
    ExecutionContext,
    compile_descriptor,
    compile_query_text,
    interpret_query_text,
)
from timesheet.query_language.errors import (
    QueryInterpreterError,
    QueryLanguageError,
    QueryParseError,
    QueryValidationError,
)
from timesheet.query_language.executor import QueryExecutor, ReportData
from timesheet.query_language.interpreter import QueryDescriptor, QueryInterpreter
from timesheet.query_language.parser import QueryParser, parse_query
from timesheet.query_language.printer import format_query, print_ast
from timesheet.query_language.tokens import Token, TokenKind, tokenize
from timesheet.query_language.validation import ValidationResult, validate_ast


__all__ = [
    "ClauseHandlerRegistry",
    "CompiledQuery",
    "ExecutionContext",
    "QueryDescriptor",
    "QueryExecutor",
    "QueryInterpreter",
    "QueryInterpreterError",
    "QueryLanguageError",
    "QueryParseError",
    "QueryParser",
    "QueryValidationError",
    "ReportData",
    "Token",
    "TokenKind",
    "ValidationResult",
    "analyze_query",
    "compile_descriptor",
    "compile_query_text",
    "create_default_registry",
    "format_query",
    "get_ast_statistics",
    "interpret_query_text",
    "parse_query",
    "print_ast",
    "tokenize",
    "validate_ast",
]
