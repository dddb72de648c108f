"""Structural validation of query ASTs."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, fields
from datetime import date

from timesheet.query_language.ast import (
    AGGREGATION_FUNCTIONS,
    ARITHMETIC_OPERATORS,
    COMPARISON_OPERATORS,
    DATA_TYPES,
    TEXT_OPERATORS,
    AggregationFunction,
    BinaryExpression,
    CalculatedField,
    DateRange,
    EnhancedField,
    ExtensionClause,
    GroupByClause,
    Identifier,
    LimitClause,
    ListExpression,
    Literal,
    Node,
    OrderField,
    Query,
    ShowClause,
    WhereClause,
    node_type,
)
from timesheet.query_language.errors import QueryDecodeError
from timesheet.query_language.serialization import node_from_dict


BINARY_OPERATORS = frozenset((*COMPARISON_OPERATORS, "BETWEEN", "IN", *TEXT_OPERATORS))
_PRIMITIVES = (str, int, float, bool, type(None))


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of validating a tree or clause."""

    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


def merge_validation_results(results: Iterable[ValidationResult]) -> ValidationResult:
    """Combine several results into one."""
    errors: list[str] = []
    warnings: list[str] = []
    for result in results:
        errors.extend(result.errors)
        warnings.extend(result.warnings)
    return ValidationResult(valid=not errors, errors=tuple(errors), warnings=tuple(warnings))


class _Collector:
    def __init__(self) -> None:
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def error(self, message: str, path: str) -> None:
        self.errors.append(f"{message} (at {path})")

    def warning(self, message: str, path: str) -> None:
        self.warnings.append(f"{message} (at {path})")

    def result(self) -> ValidationResult:
        return ValidationResult(
            valid=not self.errors, errors=tuple(self.errors), warnings=tuple(self.warnings)
        )


def _child_values(node: Node) -> Iterator[tuple[str, object]]:
    """Yield labelled non-primitive field values, including foreign objects."""
    for item in fields(node):
        value = getattr(node, item.name)
        if isinstance(value, tuple):
            for index, child in enumerate(value):
                if not isinstance(child, _PRIMITIVES):
                    yield (f"{item.name}[{index}]", child)
        elif not isinstance(value, _PRIMITIVES):
            yield (item.name, value)


def _describe(node: object) -> str:
    if isinstance(node, Mapping):
        keys = ", ".join(sorted(str(key) for key in node))
        return f"mapping with keys [{keys}]" if keys else "empty mapping"
    return type(node).__name__


def _check_query(node: Query, path: str, collector: _Collector) -> None:
    if not node.clauses:
        collector.warning("Query has no clauses", path)
        return
    types = {clause.type for clause in node.clauses}
    if "HavingClause" in types and "GroupByClause" not in types:
        collector.error("HAVING clause requires GROUP BY clause", path)
    show = next((clause for clause in node.clauses if isinstance(clause, ShowClause)), None)
    if "GroupByClause" in types and show is not None:
        aggregated = any(
            isinstance(field, EnhancedField)
            and isinstance(field.expression, AggregationFunction)
            for field in show.fields
        )
        if not aggregated:
            collector.warning("GROUP BY without aggregation functions in SHOW clause", path)


def _check_literal(node: Literal, path: str, collector: _Collector) -> None:
    if node.value is None:
        collector.error("Literal node missing value", path)
    if node.data_type not in DATA_TYPES:
        collector.error(f"Invalid literal dataType '{node.data_type}'", path)


def _check_binary(node: BinaryExpression, path: str, collector: _Collector) -> None:
    if node.left is None or node.right is None:
        collector.error("BinaryExpression missing operand", path)
    if node.operator not in BINARY_OPERATORS:
        collector.error(f"Invalid operator '{node.operator}'", path)


def _iso_date(bound: object) -> date | None:
    if not isinstance(bound, Literal) or bound.data_type != "date":
        return None
    try:
        return date.fromisoformat(str(bound.value))
    except ValueError:
        return None


def _check_date_range(node: DateRange, path: str, collector: _Collector) -> None:
    # Relative dates are only ordered once resolved against the evaluation day.
    start = _iso_date(node.start)
    end = _iso_date(node.end)
    if start is not None and end is not None and start > end:
        collector.error(f"DateRange start '{start}' is after end '{end}'", path)


def _check_limit(node: LimitClause, path: str, collector: _Collector) -> None:
    if not isinstance(node.limit, int) or node.limit < 0:
        collector.error("LIMIT must be a non-negative integer", path)
    if node.offset is not None and (not isinstance(node.offset, int) or node.offset < 0):
        collector.error("OFFSET must be a non-negative integer", path)


def _check_node(node: Node, path: str, collector: _Collector) -> None:  # noqa: C901, PLR0912
    """Apply the structural rule for one node kind."""
    match node:
        case Query():
            _check_query(node, path, collector)
        case Literal():
            _check_literal(node, path, collector)
        case Identifier(name=name):
            if not isinstance(name, str) or not name.strip():
                collector.error("Identifier node missing or empty name", path)
        case BinaryExpression():
            _check_binary(node, path, collector)
        case CalculatedField(operator=operator) if operator not in ARITHMETIC_OPERATORS:
            collector.error(f"Invalid arithmetic operator '{operator}'", path)
        case AggregationFunction(function=function) if function not in AGGREGATION_FUNCTIONS:
            collector.error(f"Unknown aggregation function '{function}'", path)
        case ListExpression(items=items) if not items:
            collector.error("List node has no items", path)
        case DateRange():
            _check_date_range(node, path, collector)
        case WhereClause(conditions=conditions, connectors=connectors):
            if not conditions:
                collector.warning("WHERE clause has no conditions", path)
            if "OR" in connectors:
                collector.warning("OR is combined as AND in WHERE clauses", path)
        case ShowClause(fields=show_fields) if not show_fields:
            collector.warning("SHOW clause has no fields", path)
        case GroupByClause(fields=group_fields) if not group_fields:
            collector.warning("GROUP BY clause has no fields", path)
        case OrderField(direction=direction) if direction not in ("ASC", "DESC"):
            collector.error(f"Invalid sort direction '{direction}'", path)
        case LimitClause():
            _check_limit(node, path, collector)
        case ExtensionClause(kind=kind, keyword=keyword) if not kind or not keyword:
            collector.error("Extension clause missing kind or keyword", path)


def _validate(node: object, path: str, collector: _Collector) -> None:
    if isinstance(node, Mapping):
        kind = node.get("type")
        if not isinstance(kind, str) or not kind:
            collector.error(f"Node is missing type: {_describe(node)}", path)
            return
        try:
            node = node_from_dict(node)
        except QueryDecodeError as exc:
            collector.error(str(exc), path)
            return
    elif node_type(node) is None:
        collector.error(f"Node is missing type: {_describe(node)}", path)
        return

    if not isinstance(node, Node):
        collector.warning(f"Unknown node type '{node_type(node)}'", path)
        return

    _check_node(node, path, collector)
    for label, child in _child_values(node):
        _validate(child, f"{path}.{label}", collector)


def validate_ast(node: object) -> ValidationResult:
    """Validate a tree and collect every error and warning.

    Accepts AST nodes or their dict encoding. Never raises: nodes without a
    type discriminator are reported as errors naming where they were found.
    """
    collector = _Collector()
    _validate(node, node_type(node) or "root", collector)
    return collector.result()


def is_valid_ast(node: object) -> bool:
    """Return whether the tree has no validation errors."""
    return validate_ast(node).valid
