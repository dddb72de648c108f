"""Interpreter turning a query AST into a flat query descriptor."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import cast

from timesheet.dates import parse_month
from timesheet.entries import ENTRY_FIELDS
from timesheet.query_language.ast import (
    AGGREGATION_FUNCTIONS,
    AggregationFunction,
    BinaryExpression,
    CalculatedField,
    ChartClause,
    Clause,
    DateRange,
    EnhancedField,
    Expression,
    ExtensionClause,
    GroupByClause,
    HavingClause,
    Identifier,
    InExpression,
    IsNullExpression,
    LikeExpression,
    LimitClause,
    Literal,
    NotInExpression,
    OrderByClause,
    OrderField,
    PeriodClause,
    Query,
    ShowClause,
    SizeClause,
    ViewClause,
    WhereClause,
)
from timesheet.query_language.clauses import ClauseContext, ClauseHandlerRegistry, ClauseResult
from timesheet.query_language.conditions import FieldCondition, RelativeDate
from timesheet.query_language.errors import QueryInterpreterError
from timesheet.query_language.tokens import DATE_PATTERN
from timesheet.query_language.visitors import find_nodes_by_type


logger = logging.getLogger("timesheet")

VIEWS = ("summary", "chart", "table", "full")
CHARTS = ("trend", "monthly", "budget")
PERIODS = ("current-year", "all-time", "last-6-months", "last-12-months")
SIZES = ("compact", "normal", "detailed")
WHERE_FIELDS = ("year", "month", "project", "date", "hours", "rate", "invoiced", "notes")
FORMATS = ("currency", "percentage", "hours", "decimal", "integer", "date", "text")

# key -> (header, format)
COLUMN_CATALOGUE: dict[str, tuple[str, str]] = {
    "date": ("Date", "date"),
    "label": ("Period", "text"),
    "year": ("Year", "integer"),
    "month": ("Month", "integer"),
    "project": ("Project", "text"),
    "notes": ("Notes", "text"),
    "hours": ("Hours", "hours"),
    "rate": ("Rate", "currency"),
    "invoiced": ("Invoiced", "currency"),
    "utilization": ("Utilization", "percentage"),
    "progress": ("Progress", "percentage"),
    "remaining": ("Remaining", "hours"),
    "budget": ("Budget", "hours"),
    "cumulative_hours": ("Cumulative Hours", "hours"),
}
ORDER_FIELDS = (
    "label",
    "date",
    "project",
    "notes",
    "category",
    "year",
    "month",
    "hours",
    "invoiced",
    "rate",
    "utilization",
    "target_hours",
    "cumulative_hours",
    "entry_count",
    "progress",
    "remaining",
)
GROUP_FIELDS = tuple(sorted(ENTRY_FIELDS - {"hours", "invoiced"}))
GROUP_METRICS = frozenset({"hours", "invoiced", "rate", "count"})


@dataclass(frozen=True, slots=True)
class ExtensionCondition:
    """WHERE condition evaluated by the handler of a clause kind."""

    kind: str
    condition: FieldCondition


@dataclass(frozen=True, slots=True)
class WhereFilters:
    """Filters collected from every WHERE clause."""

    year: int | None = None
    month: int | None = None
    project: str | None = None
    date_range: tuple[object, object] | None = None
    conditions: tuple[FieldCondition, ...] = ()
    extensions: tuple[ExtensionCondition, ...] = ()


@dataclass(frozen=True, slots=True)
class ColumnSpec:
    """Display column derived from a SHOW field."""

    key: str
    header: str
    format: str
    source: str | None = None
    aggregation: str | None = None
    expression: Expression | None = None


@dataclass(frozen=True, slots=True)
class QueryDescriptor:
    """Flat, validated description of what to compute and display."""

    where: WhereFilters = field(default_factory=WhereFilters)
    show: tuple[str, ...] = ()
    columns: tuple[ColumnSpec, ...] = ()
    view: str = "summary"
    chart: str | None = None
    period: str = "current-year"
    size: str = "normal"
    order_by: tuple[tuple[str, str], ...] = ()
    group_by: tuple[str, ...] = ()
    having: tuple[FieldCondition, ...] = ()
    limit: int | None = None
    offset: int = 0
    extensions: Mapping[str, ClauseResult | tuple[ClauseResult, ...]] = field(
        default_factory=dict
    )


def _choices(values: Iterable[str]) -> str:
    return ", ".join(sorted(values))


def _literal_value(node: Expression, field_name: str) -> object:
    """Convert a literal operand into the value compared at execution time.

    A bare word on the value side reads as a string, as in `project = Acme`.
    """
    if isinstance(node, Identifier):
        return node.name
    if not isinstance(node, Literal):
        raise QueryInterpreterError(
            f"Expected a value for field '{field_name}', got {node.type}", node
        )
    match node.data_type:
        case "relative_date":
            return RelativeDate(str(node.value))
        case "date":
            return _parse_date(str(node.value), node)
        case "string" if field_name == "date" and DATE_PATTERN.match(str(node.value)):
            return _parse_date(str(node.value), node)
    return node.value


def _parse_date(text: str, node: Expression) -> date:
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise QueryInterpreterError(f"Invalid date '{text}'", node) from exc


def _field_name(node: Expression) -> str:
    if isinstance(node, AggregationFunction):
        raise QueryInterpreterError(
            "Aggregation functions are only allowed in SHOW and HAVING clauses", node
        )
    if not isinstance(node, Identifier):
        raise QueryInterpreterError(f"Expected a field name, got {node.type}", node)
    return node.name.lower()


def _condition(node: Expression) -> FieldCondition:
    """Translate a condition node into a field condition."""
    match node:
        case BinaryExpression(left=left, operator="BETWEEN", right=DateRange() as bounds):
            name = _field_name(left)
            value = (_literal_value(bounds.start, name), _literal_value(bounds.end, name))
            return FieldCondition(name, "BETWEEN", value)
        case BinaryExpression(left=left, operator=operator, right=tuple() as items):
            name = _field_name(left)
            return FieldCondition(
                name, operator, tuple(_literal_value(item, name) for item in items)
            )
        case BinaryExpression(left=left, operator=operator, right=Expression() as right):
            name = _field_name(left)
            return FieldCondition(name, operator, _literal_value(right, name))
        case InExpression(field=identifier, values=values):
            name = _field_name(identifier)
            return FieldCondition(
                name, "IN", tuple(_literal_value(item, name) for item in values.items)
            )
        case NotInExpression(field=identifier, values=values):
            name = _field_name(identifier)
            return FieldCondition(
                name, "NOT IN", tuple(_literal_value(item, name) for item in values.items)
            )
        case LikeExpression(field=identifier, pattern=pattern, negated=negated):
            operator = "NOT LIKE" if negated else "LIKE"
            return FieldCondition(_field_name(identifier), operator, pattern.value)
        case IsNullExpression(field=identifier, is_null=is_null):
            operator = "IS NULL" if is_null else "IS NOT NULL"
            return FieldCondition(_field_name(identifier), operator)
    raise QueryInterpreterError(f"Unsupported condition {node.type}", node)


def _aggregation_key(node: AggregationFunction) -> str:
    return f"{node.function}_{node.field.name.lower()}"


class _DescriptorBuilder:
    """Mutable accumulator used while walking the clauses of one query."""

    def __init__(self) -> None:
        self.year: int | None = None
        self.month: int | None = None
        self.project: str | None = None
        self.date_range: tuple[object, object] | None = None
        self.conditions: list[FieldCondition] = []
        self.extension_conditions: list[ExtensionCondition] = []
        self.settings: dict[str, object] = {}
        self.seen: set[str] = set()
        self.extensions: dict[str, ClauseResult | tuple[ClauseResult, ...]] = {}

    def claim(self, keyword: str) -> bool:
        """Return whether a single-valued clause is seen for the first time."""
        if keyword in self.seen:
            logger.warning("Ignoring duplicate %s clause", keyword)
            return False
        self.seen.add(keyword)
        return True

    def build(self) -> QueryDescriptor:
        return QueryDescriptor(
            where=WhereFilters(
                year=self.year,
                month=self.month,
                project=self.project,
                date_range=self.date_range,
                conditions=tuple(self.conditions),
                extensions=tuple(self.extension_conditions),
            ),
            extensions=dict(self.extensions),
            **self.settings,  # type: ignore[arg-type]
        )


class QueryInterpreter:
    """Interpret query ASTs using a clause handler registry.

    Produces a `QueryDescriptor`. Raises `QueryInterpreterError` for fields and
    values outside the query vocabulary.
    """

    def __init__(self, registry: ClauseHandlerRegistry) -> None:
        self.registry = registry

    def views(self) -> frozenset[str]:
        """Return every accepted VIEW value."""
        return frozenset(VIEWS) | self.registry.views()

    def charts(self) -> frozenset[str]:
        """Return every accepted CHART value."""
        return frozenset(CHARTS) | self.registry.charts()

    def columns(self) -> frozenset[str]:
        """Return every accepted SHOW field."""
        return frozenset(COLUMN_CATALOGUE) | self.registry.show_fields()

    def where_fields(self) -> frozenset[str]:
        """Return every accepted WHERE field."""
        return frozenset(WHERE_FIELDS).union(
            *(handler.where_fields for handler in self.registry.handlers())
        )

    def interpret(self, query: Query) -> QueryDescriptor:  # noqa: C901
        """Build a descriptor from query clauses in source order.

        Single-valued clauses keep their first occurrence.
        """
        builder = _DescriptorBuilder()
        settings = builder.settings
        having_clause: HavingClause | None = None
        for clause in query.clauses:
            match clause:
                case WhereClause():
                    self._where(clause, builder)
                case ShowClause(fields=fields) if builder.claim("SHOW"):
                    columns = tuple(self._column(item) for item in fields)
                    settings["columns"] = columns
                    settings["show"] = tuple(column.key for column in columns)
                case ViewClause(view=value) if builder.claim("VIEW"):
                    settings["view"] = self._choice("view", value, self.views(), clause)
                case ChartClause(chart=value) if builder.claim("CHART"):
                    settings["chart"] = self._choice("chart", value, self.charts(), clause)
                case PeriodClause(period=value) if builder.claim("PERIOD"):
                    settings["period"] = self._choice("period", value, PERIODS, clause)
                case SizeClause(size=value) if builder.claim("SIZE"):
                    settings["size"] = self._choice("size", value, SIZES, clause)
                case OrderByClause(fields=fields) if builder.claim("ORDER BY"):
                    settings["order_by"] = tuple(self._order(item) for item in fields)
                case GroupByClause(fields=fields) if builder.claim("GROUP BY"):
                    settings["group_by"] = tuple(self._group(item) for item in fields)
                case HavingClause(conditions=conditions) if builder.claim("HAVING"):
                    settings["having"] = tuple(self._having(item) for item in conditions)
                    having_clause = clause
                case LimitClause(limit=limit, offset=offset) if builder.claim("LIMIT"):
                    settings["limit"] = limit
                    settings["offset"] = offset or 0
                case ExtensionClause():
                    self._extension(clause, query, builder)
                case Clause():
                    continue
                case _:
                    raise QueryInterpreterError(f"Unsupported clause {clause.type}", clause)
        if having_clause is not None:
            self._check_having(
                cast(tuple[FieldCondition, ...], settings["having"]),
                cast(tuple[str, ...], settings.get("group_by", ())),
                cast(tuple[ColumnSpec, ...], settings.get("columns", ())),
                having_clause,
            )
        return builder.build()

    def _choice(
        self, name: str, value: str, allowed: frozenset[str] | tuple[str, ...], node: object
    ) -> str:
        normalized = value.lower()
        if normalized not in allowed:
            raise QueryInterpreterError(
                f"Invalid {name} '{value}'. Valid {name}s: {_choices(allowed)}", node
            )
        return normalized

    def _where(self, clause: WhereClause, builder: _DescriptorBuilder) -> None:
        if "OR" in clause.connectors:
            logger.warning("OR in WHERE clause is combined as AND")
        where_fields = self.where_fields()
        for node in clause.conditions:
            condition = _condition(node)
            if condition.field not in where_fields:
                raise QueryInterpreterError(
                    f"Unknown field '{condition.field}' in WHERE clause. "
                    f"Valid fields: {_choices(where_fields)}",
                    node,
                )
            handler = (
                self.registry.handler_for_field(condition.field)
                if condition.field not in WHERE_FIELDS
                else None
            )
            if handler is not None:
                builder.extension_conditions.append(ExtensionCondition(handler.kind, condition))
            elif not self._core_filter(condition, builder, node):
                builder.conditions.append(condition)

    def _core_filter(  # noqa: PLR0911
        self, condition: FieldCondition, builder: _DescriptorBuilder, node: Expression
    ) -> bool:
        """Store `year =`, `month =`, `project =` and `date BETWEEN` as filters."""
        value = condition.value
        if condition.field == "date" and condition.operator == "BETWEEN":
            for bound in value if isinstance(value, tuple) else ():
                if not isinstance(bound, date | RelativeDate):
                    raise QueryInterpreterError(f"Invalid date '{bound}' in date range", node)
        match (condition.field, condition.operator):
            case ("year", "=") if builder.year is None:
                if not isinstance(value, int | float) or int(value) != value:
                    raise QueryInterpreterError(f"Invalid year '{value}'", node)
                builder.year = int(value)
                return True
            case ("month", "=") if builder.month is None:
                month = parse_month(value)
                if month is None:
                    raise QueryInterpreterError(f"Invalid month '{value}'", node)
                builder.month = month
                return True
            case ("project", "=") if builder.project is None:
                builder.project = str(value)
                return True
            case ("date", "BETWEEN") if builder.date_range is None:
                if not isinstance(value, tuple):
                    return False
                builder.date_range = (value[0], value[1])
                return True
        return False

    def _column(self, item: Identifier | EnhancedField) -> ColumnSpec:
        if isinstance(item, Identifier):
            return self._plain_column(item, None, None)
        if item.format is not None and item.format.lower() not in FORMATS:
            raise QueryInterpreterError(
                f"Invalid format '{item.format}'. Valid formats: {_choices(FORMATS)}", item
            )
        format_name = item.format.lower() if item.format is not None else None
        expression = item.expression
        match expression:
            case Identifier():
                return self._plain_column(expression, item.alias, format_name)
            case AggregationFunction(function=function, field=source):
                source_name = self._plain_column(source, None, None).key
                default_format = "integer" if function == "count" else COLUMN_CATALOGUE.get(
                    source_name, ("", "decimal")
                )[1]
                return ColumnSpec(
                    key=_aggregation_key(expression),
                    header=item.alias or f"{function}({source.name})",
                    format=format_name or default_format,
                    source=source_name,
                    aggregation=function,
                )
            case CalculatedField():
                for identifier in find_nodes_by_type(expression, "Identifier"):
                    if isinstance(identifier, Identifier):
                        self._plain_column(identifier, None, None)
                key = item.alias or "calculated"
                return ColumnSpec(
                    key=key,
                    header=item.alias or "Calculated",
                    format=format_name or "decimal",
                    expression=expression,
                )
        raise QueryInterpreterError(f"Unsupported SHOW field {expression.type}", item)

    def _plain_column(
        self, identifier: Identifier, alias: str | None, format_name: str | None
    ) -> ColumnSpec:
        name = identifier.name.lower()
        columns = self.columns()
        if name not in columns:
            raise QueryInterpreterError(
                f"Unknown field '{identifier.name}' in SHOW clause. "
                f"Valid fields: {_choices(columns)}",
                identifier,
            )
        header, default_format = COLUMN_CATALOGUE.get(
            name, (name.replace("_", " ").title(), "text")
        )
        return ColumnSpec(
            key=name, header=alias or header, format=format_name or default_format, source=name
        )

    def _order(self, item: OrderField) -> tuple[str, str]:
        name = item.field.name.lower()
        if name not in ORDER_FIELDS:
            raise QueryInterpreterError(
                f"Unknown field '{item.field.name}' in ORDER BY clause. "
                f"Valid fields: {_choices(ORDER_FIELDS)}",
                item,
            )
        return (name, item.direction.upper())

    def _group(self, item: Identifier) -> str:
        name = item.name.lower()
        if name not in GROUP_FIELDS:
            raise QueryInterpreterError(
                f"Unknown field '{item.name}' in GROUP BY clause. "
                f"Valid fields: {_choices(GROUP_FIELDS)}",
                item,
            )
        return name

    def _having(self, node: Expression) -> FieldCondition:
        """Translate a HAVING condition over group metrics."""
        match node:
            case BinaryExpression(
                left=AggregationFunction() as aggregation,
                operator=operator,
                right=Literal() as right,
            ):
                key = _aggregation_key(aggregation)
                return FieldCondition(key, operator, _literal_value(right, key))
        return _condition(node)

    def _check_having(
        self,
        having: tuple[FieldCondition, ...],
        group_by: tuple[str, ...],
        columns: tuple[ColumnSpec, ...],
        clause: HavingClause,
    ) -> None:
        """Reject HAVING fields that no group row carries."""
        plain = {*GROUP_METRICS, *group_by}
        plain.update(column.key for column in columns if column.aggregation is not None)
        sources = ENTRY_FIELDS | self.registry.show_fields()
        for condition in having:
            function, _sep, source = condition.field.partition("_")
            if condition.field in plain or (
                function in AGGREGATION_FUNCTIONS and source in sources
            ):
                continue
            raise QueryInterpreterError(
                f"Unknown field '{condition.field}' in HAVING clause. "
                f"Valid fields: {_choices(plain)} or an aggregation such as sum(hours)",
                clause,
            )

    def _extension(
        self, clause: ExtensionClause, query: Query, builder: _DescriptorBuilder
    ) -> None:
        handler = self.registry.get_handler(clause.kind)
        result = self.registry.handle(
            clause, ClauseContext(all_clauses=query.clauses, options={})
        )
        if handler is not None and handler.repeatable:
            previous = builder.extensions.get(clause.kind, ())
            existing = previous if isinstance(previous, tuple) else (previous,)
            builder.extensions[clause.kind] = (*existing, result)
            return
        if clause.kind in builder.extensions:
            logger.warning("Ignoring duplicate %s clause", clause.keyword.upper())
            return
        builder.extensions[clause.kind] = result
