"""Tests for the clause handler registry and custom extension clauses."""

from __future__ import annotations

from datetime import date

import pytest

from timesheet.entries import TimeEntry
from timesheet.query_language import (
    ClauseHandlerRegistry,
    QueryExecutor,
    QueryInterpreter,
    QueryInterpreterError,
    QueryParseError,
    create_default_registry,
    parse_query,
)
from timesheet.query_language.ast import ExtensionClause, Identifier
from timesheet.query_language.clauses import BaseClauseHandler, ClauseContext, ClauseResult
from timesheet.query_language.executor import ExtensionInput


class BillingClauseHandler(BaseClauseHandler):
    """Test handler for `BILLING <mode>`."""

    kind = "BillingClause"
    keyword = "BILLING"
    views = frozenset({"billing"})

    def handle(self, node: ExtensionClause, context: ClauseContext) -> ClauseResult:
        del context
        mode = node.arguments[0]
        assert isinstance(mode, Identifier)
        return ClauseResult(self.kind, {"mode": mode.name})

    def augment(self, result: ClauseResult, data: ExtensionInput) -> dict[str, object]:
        return {"mode": result.config["mode"], "entries": len(data.entries)}


def test_default_registry_holds_retainer_family() -> None:
    """The default registry should register every retainer clause kind."""
    registry = create_default_registry()

    assert registry.registered_kinds() == (
        "RetainerClause",
        "ServiceClause",
        "RolloverClause",
        "UtilizationClause",
        "ContractClause",
        "ValueClause",
        "AlertClause",
        "ForecastClause",
    )
    assert registry.keywords()["SERVICE"] == "ServiceClause"


def test_default_registries_are_independent() -> None:
    """Each call should build a new registry."""
    first = create_default_registry()
    second = create_default_registry()

    first.unregister("ServiceClause")

    assert first.has_handler("ServiceClause") is False
    assert second.has_handler("ServiceClause") is True


def test_register_rejects_duplicates() -> None:
    """Registering a kind or keyword twice should keep the first handler."""
    registry = ClauseHandlerRegistry([BillingClauseHandler()])

    added = registry.register(BillingClauseHandler())

    assert added is False
    assert len(registry.handlers()) == 1


def test_find_handler_by_keyword_ignores_case() -> None:
    """Keyword lookup should be case-insensitive."""
    registry = create_default_registry()

    handler = registry.find_handler_by_keyword("service")

    assert handler is not None
    assert handler.kind == "ServiceClause"
    assert registry.find_handler_by_keyword("missing") is None


def test_registry_contributions() -> None:
    """Views, charts, SHOW fields and WHERE fields should come from handlers."""
    registry = create_default_registry()

    assert "services" in registry.views()
    assert "service_mix" in registry.charts()
    assert "category" in registry.show_fields()
    handler = registry.handler_for_field("utilization")
    assert handler is not None
    assert handler.kind == "UtilizationClause"
    assert registry.handler_for_field("hours") is None


def test_registry_without_handler() -> None:
    """Unknown clause kinds should fail validation and interpretation."""
    registry = ClauseHandlerRegistry()
    node = ExtensionClause("BillingClause", "BILLING", (Identifier("monthly"),))

    result = registry.validate(node)

    assert result.valid is False
    assert result.errors == ("No handler registered for BillingClause",)
    with pytest.raises(QueryInterpreterError, match="No handler registered for BillingClause"):
        registry.handle(node, ClauseContext())


def test_base_handler_requires_arguments() -> None:
    """The default validation should require at least one argument."""
    handler = BillingClauseHandler()

    result = handler.validate(ExtensionClause("BillingClause", "BILLING"))

    assert result.valid is False
    assert result.errors == ("BILLING clause requires a type argument",)


def test_custom_handler_flows_through_parse_interpret_and_execute() -> None:
    """A registered handler should extend the grammar, the vocabulary and the report."""
    registry = ClauseHandlerRegistry([BillingClauseHandler()])

    query = parse_query("BILLING monthly\nVIEW billing", registry)
    descriptor = QueryInterpreter(registry).interpret(query)
    report = QueryExecutor(registry=registry).execute(
        descriptor, [TimeEntry(date(2024, 3, 4), 2.0)], date(2024, 6, 1)
    )

    assert query.clauses[0] == ExtensionClause(
        "BillingClause", "BILLING", (Identifier("monthly"),)
    )
    assert descriptor.view == "billing"
    assert descriptor.extensions["BillingClause"] == ClauseResult(
        "BillingClause", {"mode": "monthly"}
    )
    assert report.extensions == {"BillingClause": {"mode": "monthly", "entries": 1}}


def test_unregistered_keyword_is_a_parse_error() -> None:
    """Keywords of unregistered handlers should not parse."""
    with pytest.raises(QueryParseError):
        parse_query("BILLING monthly", ClauseHandlerRegistry())
