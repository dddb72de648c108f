"""Extension clause handlers."""

from timesheet.query_language.clauses.base import (
    BaseClauseHandler,
    ClauseContext,
    ClauseHandlerRegistry,
    ClauseResult,
    MatchContext,
)
from timesheet.query_language.clauses.retainer import retainer_handlers


def create_default_registry() -> ClauseHandlerRegistry:
    """Build a new registry holding the retainer clause family."""
    return ClauseHandlerRegistry(retainer_handlers())


__all__ = [
    "BaseClauseHandler",
    "ClauseContext",
    "ClauseHandlerRegistry",
    "ClauseResult",
    "MatchContext",
    "create_default_registry",
]
