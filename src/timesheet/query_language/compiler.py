"""Compiler entrypoints for the query language."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date

from timesheet.entries import TimeEntry
from timesheet.query_language.clauses import ClauseHandlerRegistry, create_default_registry
from timesheet.query_language.errors import QueryValidationError
from timesheet.query_language.executor import QueryExecutor, ReportData
from timesheet.query_language.interpreter import QueryDescriptor, QueryInterpreter
from timesheet.query_language.parser import QueryParser, validate_query
from timesheet.settings import ReportSettings


@dataclass(frozen=True, slots=True)
class ExecutionContext:
    """Evaluation date for relative dates and the current-year period."""

    today: date = field(default_factory=date.today)


type CompiledQuery = Callable[[Iterable[TimeEntry], ExecutionContext], ReportData]


def compile_descriptor(
    descriptor: QueryDescriptor,
    registry: ClauseHandlerRegistry | None = None,
    settings: ReportSettings | None = None,
) -> CompiledQuery:
    """Compile a descriptor into an executable query callable."""
    executor = QueryExecutor(settings, registry)

    def _compiled(entries: Iterable[TimeEntry], context: ExecutionContext) -> ReportData:
        return executor.execute(descriptor, entries, context.today)

    return _compiled


def interpret_query_text(
    query: str, registry: ClauseHandlerRegistry | None = None
) -> QueryDescriptor:
    """Parse, validate and interpret query text.

    Raises:
        QueryParseError: On lexical or grammar errors
        QueryValidationError: When the tree has validation errors
        QueryInterpreterError: When a clause is outside the query vocabulary
    """
    registry = registry if registry is not None else create_default_registry()
    tree = QueryParser(registry).parse(query)
    result = validate_query(tree, registry)
    if not result.valid:
        raise QueryValidationError(result)
    return QueryInterpreter(registry).interpret(tree)


def compile_query_text(
    query: str,
    registry: ClauseHandlerRegistry | None = None,
    settings: ReportSettings | None = None,
) -> CompiledQuery:
    """Parse and compile query text."""
    registry = registry if registry is not None else create_default_registry()
    descriptor = interpret_query_text(query, registry)
    return compile_descriptor(descriptor, registry, settings)
