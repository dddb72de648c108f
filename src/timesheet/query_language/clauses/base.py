"""Clause handler interface and registry for extension clauses."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING

from timesheet.query_language.ast import Clause, ExtensionClause
from timesheet.query_language.conditions import FieldCondition
from timesheet.query_language.errors import QueryInterpreterError
from timesheet.query_language.validation import ValidationResult


if TYPE_CHECKING:
    from timesheet.entries import TimeEntry
    from timesheet.query_language.executor import ExtensionInput


logger = logging.getLogger("timesheet")


@dataclass(frozen=True, slots=True)
class ClauseContext:
    """Context handed to clause handlers during interpretation."""

    all_clauses: tuple[Clause, ...] = ()
    options: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ClauseResult:
    """Interpreted configuration of one extension clause."""

    kind: str
    config: Mapping[str, object]


@dataclass(frozen=True, slots=True)
class MatchContext:
    """Per-execution data available to extension WHERE predicates."""

    today: date
    monthly_utilization: Mapping[tuple[int, int], float] = field(default_factory=dict)


class BaseClauseHandler:
    """Base class for extension clause handlers.

    Subclasses set `kind` and `keyword` and implement `handle`. Optional
    capabilities default to doing nothing: claiming WHERE fields, adding
    views, charts or SHOW fields, and adding a report section.
    """

    kind: str = ""
    keyword: str = ""
    repeatable: bool = False
    where_fields: frozenset[str] = frozenset()
    views: frozenset[str] = frozenset()
    charts: frozenset[str] = frozenset()
    show_fields: frozenset[str] = frozenset()

    def validate(self, node: ExtensionClause) -> ValidationResult:
        """Validate clause arguments."""
        if not node.arguments:
            return ValidationResult(
                valid=False, errors=(f"{self.keyword} clause requires a type argument",)
            )
        return ValidationResult(valid=True)

    def handle(self, node: ExtensionClause, context: ClauseContext) -> ClauseResult:
        """Interpret a validated clause into a result."""
        raise NotImplementedError

    def matches(
        self, condition: FieldCondition, entry: TimeEntry, context: MatchContext
    ) -> bool:
        """Evaluate a WHERE condition on one of the claimed fields."""
        del condition, entry, context
        return True

    def field_value(self, name: str, entry: TimeEntry) -> object:
        """Return the value of a contributed SHOW field for an entry."""
        del name, entry
        return None

    def augment(
        self, result: ClauseResult, data: ExtensionInput
    ) -> Mapping[str, object] | None:
        """Build an extra report section for this clause, if any."""
        del result, data
        return None


class ClauseHandlerRegistry:
    """Mapping from clause kind to handler."""

    def __init__(self, handlers: Iterable[BaseClauseHandler] = ()) -> None:
        self._handlers: dict[str, BaseClauseHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: BaseClauseHandler) -> bool:
        """Register handler; returns False and keeps the first on duplicates."""
        if handler.kind in self._handlers:
            logger.warning("Clause handler for %s is already registered", handler.kind)
            return False
        if self.find_handler_by_keyword(handler.keyword) is not None:
            logger.warning("Clause keyword %s is already registered", handler.keyword.upper())
            return False
        self._handlers[handler.kind] = handler
        return True

    def unregister(self, kind: str) -> bool:
        """Remove the handler for kind; returns whether one was registered."""
        return self._handlers.pop(kind, None) is not None

    def get_handler(self, kind: str) -> BaseClauseHandler | None:
        """Return the handler for kind, or None."""
        return self._handlers.get(kind)

    def has_handler(self, kind: str) -> bool:
        """Return whether a handler is registered for kind."""
        return kind in self._handlers

    def find_handler_by_keyword(self, keyword: str) -> BaseClauseHandler | None:
        """Return the handler whose leading keyword matches, ignoring case."""
        wanted = keyword.upper()
        for handler in self._handlers.values():
            if handler.keyword.upper() == wanted:
                return handler
        return None

    def registered_kinds(self) -> tuple[str, ...]:
        """Return registered clause kinds in registration order."""
        return tuple(self._handlers)

    def keywords(self) -> dict[str, str]:
        """Return a mapping from upper-case keyword to clause kind."""
        return {handler.keyword.upper(): handler.kind for handler in self._handlers.values()}

    def handlers(self) -> Sequence[BaseClauseHandler]:
        """Return registered handlers in registration order."""
        return tuple(self._handlers.values())

    def handler_for_field(self, name: str) -> BaseClauseHandler | None:
        """Return the handler claiming a WHERE field, or None."""
        for handler in self._handlers.values():
            if name in handler.where_fields:
                return handler
        return None

    def views(self) -> frozenset[str]:
        """Return views contributed by handlers."""
        return frozenset().union(*(handler.views for handler in self._handlers.values()))

    def charts(self) -> frozenset[str]:
        """Return charts contributed by handlers."""
        return frozenset().union(*(handler.charts for handler in self._handlers.values()))

    def show_fields(self) -> frozenset[str]:
        """Return SHOW fields contributed by handlers."""
        return frozenset().union(*(handler.show_fields for handler in self._handlers.values()))

    def validate(self, node: ExtensionClause) -> ValidationResult:
        """Validate node with its handler."""
        handler = self.get_handler(node.kind)
        if handler is None:
            return ValidationResult(
                valid=False, errors=(f"No handler registered for {node.kind}",)
            )
        return handler.validate(node)

    def handle(self, node: ExtensionClause, context: ClauseContext) -> ClauseResult:
        """Interpret node with its handler.

        Raises:
            QueryInterpreterError: If no handler is registered for the clause
        """
        handler = self.get_handler(node.kind)
        if handler is None:
            raise QueryInterpreterError(f"No handler registered for {node.kind}", node)
        return handler.handle(node, context)
