"""Executor applying query descriptors to time entries."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import date

from timesheet.dates import month_label, target_hours_for_month
from timesheet.entries import TimeEntry, entry_field
from timesheet.query_language.ast import (
    AggregationFunction,
    CalculatedField,
    Expression,
    Identifier,
    Literal,
)
from timesheet.query_language.clauses import (
    ClauseHandlerRegistry,
    ClauseResult,
    MatchContext,
    create_default_registry,
)
from timesheet.query_language.conditions import evaluate_condition, resolve_value
from timesheet.query_language.interpreter import ColumnSpec, QueryDescriptor, WhereFilters
from timesheet.settings import ReportSettings


COMPACT_TREND_POINTS = 6
PERIOD_MONTHS = {"last-6-months": 6, "last-12-months": 12}
ENTRY_COLUMNS = frozenset({"date", "project", "notes"})

type Row = Mapping[str, object]


@dataclass(frozen=True, slots=True)
class Summary:
    """Totals for one set of entries."""

    total_hours: float = 0.0
    total_invoiced: float = 0.0
    utilization: float = 0.0
    target_hours: float = 0.0
    entry_count: int = 0
    budget_hours: float | None = None
    budget_used: float | None = None
    budget_remaining: float | None = None
    budget_progress: float | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "totalHours": self.total_hours,
            "totalInvoiced": self.total_invoiced,
            "utilization": self.utilization,
            "targetHours": self.target_hours,
            "entryCount": self.entry_count,
            "budgetHours": self.budget_hours,
            "budgetUsed": self.budget_used,
            "budgetRemaining": self.budget_remaining,
            "budgetProgress": self.budget_progress,
        }


@dataclass(frozen=True, slots=True)
class MonthlyRow:
    """One `(year, month)` bucket."""

    year: int
    month: int
    label: str
    hours: float
    invoiced: float
    rate: float
    utilization: float
    target_hours: float
    cumulative_hours: float
    entry_count: int
    budget_hours: float | None = None
    budget_remaining: float | None = None
    budget_progress: float | None = None

    def values(self) -> dict[str, object]:
        """Return row values keyed by column name."""
        return {
            "label": self.label,
            "year": self.year,
            "month": self.month,
            "hours": self.hours,
            "invoiced": self.invoiced,
            "rate": self.rate,
            "utilization": self.utilization,
            "target_hours": self.target_hours,
            "cumulative_hours": self.cumulative_hours,
            "entry_count": self.entry_count,
            "budget": self.budget_hours,
            "remaining": self.budget_remaining,
            "progress": self.budget_progress,
        }

    def to_dict(self) -> dict[str, object]:
        return {
            "year": self.year,
            "month": self.month,
            "label": self.label,
            "hours": self.hours,
            "invoiced": self.invoiced,
            "rate": self.rate,
            "utilization": self.utilization,
            "targetHours": self.target_hours,
            "cumulativeHours": self.cumulative_hours,
            "entryCount": self.entry_count,
            "budgetHours": self.budget_hours,
            "budgetRemaining": self.budget_remaining,
            "budgetProgress": self.budget_progress,
        }


@dataclass(frozen=True, slots=True)
class TrendData:
    """Chart series, oldest point first."""

    labels: tuple[str, ...] = ()
    hours: tuple[float, ...] = ()
    utilization: tuple[float, ...] = ()
    invoiced: tuple[float, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "labels": list(self.labels),
            "hours": list(self.hours),
            "utilization": list(self.utilization),
            "invoiced": list(self.invoiced),
        }


@dataclass(frozen=True, slots=True)
class GroupRow:
    """Entries sharing the GROUP BY field values."""

    key: Mapping[str, object]
    hours: float
    invoiced: float
    rate: float
    entries: int
    values: Mapping[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "key": {name: _json_value(value) for name, value in self.key.items()},
            "hours": self.hours,
            "invoiced": self.invoiced,
            "rate": self.rate,
            "entries": self.entries,
            "values": {name: _json_value(value) for name, value in self.values.items()},
        }


@dataclass(frozen=True, slots=True)
class ExtensionInput:
    """Data handed to clause handlers that add report sections."""

    entries: tuple[TimeEntry, ...]
    monthly: tuple[MonthlyRow, ...]
    summary: Summary
    settings: ReportSettings
    today: date


@dataclass(frozen=True, slots=True)
class ReportData:
    """Everything a renderer needs for one executed query."""

    summary: Summary
    year_summary: Summary
    all_time_summary: Summary
    monthly_data: tuple[MonthlyRow, ...]
    trend_data: TrendData
    entries: tuple[TimeEntry, ...] = ()
    groups: tuple[GroupRow, ...] = ()
    columns: tuple[ColumnSpec, ...] = ()
    rows: tuple[Row, ...] = ()
    view: str = "summary"
    chart: str | None = None
    period: str = "current-year"
    size: str = "normal"
    extensions: Mapping[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Return the JSON form of the report."""
        return {
            "view": self.view,
            "chart": self.chart,
            "period": self.period,
            "size": self.size,
            "summary": self.summary.to_dict(),
            "yearSummary": self.year_summary.to_dict(),
            "allTimeSummary": self.all_time_summary.to_dict(),
            "monthlyData": [row.to_dict() for row in self.monthly_data],
            "trendData": self.trend_data.to_dict(),
            "entries": [
                {
                    "date": entry.date.isoformat(),
                    "hours": entry.hours,
                    "rate": entry.rate,
                    "project": entry.project,
                    "notes": entry.notes,
                }
                for entry in self.entries
            ],
            "groups": [group.to_dict() for group in self.groups],
            "columns": [
                {"key": column.key, "header": column.header, "format": column.format}
                for column in self.columns
            ],
            "rows": [{key: _json_value(value) for key, value in row.items()} for row in self.rows],
            "extensions": dict(self.extensions),
        }


def _json_value(value: object) -> object:
    if isinstance(value, date):
        return value.isoformat()
    return value


def _ratio(numerator: float, denominator: float) -> float:
    """Divide, yielding 0 for a zero denominator."""
    return numerator / denominator if denominator else 0.0


def _target_hours(months: Iterable[tuple[int, int]], settings: ReportSettings) -> float:
    return sum(
        target_hours_for_month(year, month, settings.hours_per_workday) for year, month in months
    )


def summarize(entries: Sequence[TimeEntry], settings: ReportSettings) -> Summary:
    """Compute totals, utilization and budget progress for entries."""
    total_hours = sum(entry.hours for entry in entries)
    target_hours = _target_hours({entry.month_key for entry in entries}, settings)
    summary = Summary(
        total_hours=total_hours,
        total_invoiced=sum(entry.invoiced for entry in entries),
        utilization=_ratio(total_hours, target_hours),
        target_hours=target_hours,
        entry_count=len(entries),
    )
    if settings.tracks_budget and settings.budget_hours:
        budget = settings.budget_hours
        summary = replace(
            summary,
            budget_hours=budget,
            budget_used=total_hours,
            budget_remaining=max(0.0, budget - total_hours),
            budget_progress=min(1.0, _ratio(total_hours, budget)),
        )
    return summary


def monthly_rows(entries: Sequence[TimeEntry], settings: ReportSettings) -> list[MonthlyRow]:
    """Bucket entries by month, oldest month first."""
    buckets: dict[tuple[int, int], list[TimeEntry]] = defaultdict(list)
    for entry in entries:
        buckets[entry.month_key].append(entry)

    rows: list[MonthlyRow] = []
    cumulative = 0.0
    for (year, month), items in sorted(buckets.items()):
        hours = sum(entry.hours for entry in items)
        invoiced = sum(entry.invoiced for entry in items)
        target = target_hours_for_month(year, month, settings.hours_per_workday)
        cumulative += hours
        row = MonthlyRow(
            year=year,
            month=month,
            label=month_label(year, month),
            hours=hours,
            invoiced=invoiced,
            rate=_ratio(invoiced, hours),
            utilization=_ratio(hours, target),
            target_hours=target,
            cumulative_hours=cumulative,
            entry_count=len(items),
        )
        if settings.tracks_budget and settings.budget_hours:
            budget = settings.budget_hours
            row = replace(
                row,
                budget_hours=budget,
                budget_remaining=max(0.0, budget - cumulative),
                budget_progress=min(1.0, _ratio(cumulative, budget)),
            )
        rows.append(row)
    return rows


def _sort_value(value: object) -> tuple[int, object]:
    """Sort key placing missing values last and keeping types apart."""
    if value is None:
        return (2, 0)
    if isinstance(value, int | float):
        return (0, value)
    return (1, str(value).casefold())


def _page[T](
    rows: list[T], descriptor: QueryDescriptor, values: Callable[[T], Mapping[str, object]]
) -> list[T]:
    """Sort rows by ORDER BY keys, then apply OFFSET and LIMIT."""
    for key, direction in reversed(descriptor.order_by):
        rows.sort(key=lambda row: _sort_value(values(row).get(key)), reverse=direction == "DESC")
    end = descriptor.offset + descriptor.limit if descriptor.limit is not None else None
    return rows[descriptor.offset : end]


def evaluate_expression(expression: Expression, values: Row) -> float:
    """Evaluate SHOW arithmetic over row values; division by zero yields 0."""
    match expression:
        case Literal(value=int() | float() as number):
            return float(number)
        case Identifier(name=name):
            value = values.get(name.lower())
            return float(value) if isinstance(value, int | float) else 0.0
        case AggregationFunction(function=function, field=source):
            value = values.get(f"{function}_{source.name.lower()}")
            return float(value) if isinstance(value, int | float) else 0.0
        case CalculatedField(left=left, operator=operator, right=right):
            left_value = evaluate_expression(left, values)
            right_value = evaluate_expression(right, values)
            match operator:
                case "+":
                    return left_value + right_value
                case "-":
                    return left_value - right_value
                case "*":
                    return left_value * right_value
                case "/":
                    return _ratio(left_value, right_value)
    return 0.0


_AGGREGATIONS: dict[str, Callable[[list[float]], float | None]] = {
    "sum": lambda values: float(sum(values)),
    "avg": lambda values: _ratio(sum(values), len(values)),
    "count": lambda values: float(len(values)),
    "min": lambda values: min(values) if values else None,
    "max": lambda values: max(values) if values else None,
}


def aggregate(rows: Sequence[Row], function: str, source: str) -> float | None:
    """Apply an aggregation function to the numeric values of a field."""
    if function == "count":
        return float(len(rows))
    values = [
        float(value) for row in rows if isinstance(value := row.get(source), int | float)
    ]
    return _AGGREGATIONS[function](values)


class QueryExecutor:
    """Execute query descriptors against time entries.

    Every step is a pure function of the descriptor, the entries, the
    settings and the evaluation date.
    """

    def __init__(
        self,
        settings: ReportSettings | None = None,
        registry: ClauseHandlerRegistry | None = None,
    ) -> None:
        self.settings = settings if settings is not None else ReportSettings()
        self.registry = registry if registry is not None else create_default_registry()

    def execute(
        self,
        descriptor: QueryDescriptor,
        entries: Iterable[TimeEntry],
        today: date | None = None,
    ) -> ReportData:
        """Filter, slice, bucket and summarize entries."""
        today = today if today is not None else date.today()
        all_entries = tuple(self._with_default_rate(entries))
        settings = self.settings

        context = MatchContext(
            today=today,
            monthly_utilization={
                (row.year, row.month): row.utilization
                for row in monthly_rows(all_entries, settings)
            },
        )
        filtered = [
            entry for entry in all_entries if self._matches(entry, descriptor.where, context)
        ]
        selected = self._apply_period(filtered, descriptor, today)

        chronological = monthly_rows(selected, settings)
        summary = summarize(selected, settings)
        monthly = self._order_rows(list(reversed(chronological)), descriptor)
        trend_rows = chronological
        if descriptor.size == "compact":
            trend_rows = chronological[-COMPACT_TREND_POINTS:]
        groups = self._groups(selected, descriptor, today)

        extension_input = ExtensionInput(
            entries=tuple(selected),
            monthly=tuple(chronological),
            summary=summary,
            settings=settings,
            today=today,
        )
        return ReportData(
            summary=summary,
            year_summary=summarize(
                [entry for entry in all_entries if entry.date.year == today.year], settings
            ),
            all_time_summary=summarize(all_entries, settings),
            monthly_data=tuple(monthly),
            trend_data=TrendData(
                labels=tuple(row.label for row in trend_rows),
                hours=tuple(row.hours for row in trend_rows),
                utilization=tuple(row.utilization for row in trend_rows),
                invoiced=tuple(row.invoiced for row in trend_rows),
            ),
            entries=tuple(selected),
            groups=tuple(groups),
            columns=descriptor.columns,
            rows=tuple(self._rows(descriptor, selected, monthly, groups, chronological)),
            view=descriptor.view,
            chart=descriptor.chart,
            period=descriptor.period,
            size=descriptor.size,
            extensions=self._extensions(descriptor, extension_input),
        )

    def _with_default_rate(self, entries: Iterable[TimeEntry]) -> Iterable[TimeEntry]:
        default_rate = self.settings.default_rate
        for entry in entries:
            if entry.rate is None and default_rate is not None:
                yield replace(entry, rate=default_rate)
            else:
                yield entry

    def _matches(  # noqa: PLR0911
        self, entry: TimeEntry, where: WhereFilters, context: MatchContext
    ) -> bool:
        if where.year is not None and entry.date.year != where.year:
            return False
        if where.month is not None and entry.date.month != where.month:
            return False
        if where.project is not None and (
            entry.project is None or where.project.casefold() not in entry.project.casefold()
        ):
            return False
        if where.date_range is not None:
            start, end = (resolve_value(bound, context.today) for bound in where.date_range)
            if not isinstance(start, date) or not isinstance(end, date):
                return False
            if not start <= entry.date <= end:
                return False
        for condition in where.conditions:
            actual = entry_field(entry, condition.field)
            if not evaluate_condition(actual, condition, context.today):
                return False
        for extension in where.extensions:
            handler = self.registry.get_handler(extension.kind)
            if handler is None or not handler.matches(extension.condition, entry, context):
                return False
        return True

    def _apply_period(
        self, entries: list[TimeEntry], descriptor: QueryDescriptor, today: date
    ) -> list[TimeEntry]:
        """Slice entries to the reporting period.

        `current-year` follows an explicit `year =` filter and is skipped when a
        date range was given.
        """
        period = descriptor.period
        if period == "current-year":
            if descriptor.where.date_range is not None and descriptor.where.year is None:
                return entries
            year = descriptor.where.year if descriptor.where.year is not None else today.year
            return [entry for entry in entries if entry.date.year == year]
        if period in PERIOD_MONTHS:
            recent = sorted({entry.month_key for entry in entries})[-PERIOD_MONTHS[period] :]
            keep = set(recent)
            return [entry for entry in entries if entry.month_key in keep]
        return entries

    def _order_rows(
        self, rows: list[MonthlyRow], descriptor: QueryDescriptor
    ) -> list[MonthlyRow]:
        """Apply ORDER BY then OFFSET and LIMIT to monthly rows."""
        return _page(rows, descriptor, MonthlyRow.values)

    def _entry_values(self, entry: TimeEntry) -> dict[str, object]:
        values: dict[str, object] = {
            "date": entry.date,
            "year": entry.date.year,
            "month": entry.date.month,
            "label": month_label(*entry.month_key),
            "project": entry.project,
            "notes": entry.notes,
            "category": entry.category,
            "hours": entry.hours,
            "rate": entry.rate,
            "invoiced": entry.invoiced,
        }
        for handler in self.registry.handlers():
            for name in handler.show_fields:
                values[name] = handler.field_value(name, entry)
        return values

    def _groups(
        self, entries: Sequence[TimeEntry], descriptor: QueryDescriptor, today: date
    ) -> list[GroupRow]:
        if not descriptor.group_by:
            return []
        buckets: dict[tuple[object, ...], list[dict[str, object]]] = defaultdict(list)
        for entry in entries:
            values = self._entry_values(entry)
            buckets[tuple(values.get(name) for name in descriptor.group_by)].append(values)

        aggregation_keys = {
            (column.key, column.aggregation, column.source)
            for column in descriptor.columns
            if column.aggregation is not None and column.source is not None
        }
        for condition in descriptor.having:
            function, _sep, source = condition.field.partition("_")
            if function in _AGGREGATIONS and source:
                aggregation_keys.add((condition.field, function, source))

        groups: list[GroupRow] = []
        for key in sorted(buckets, key=lambda item: tuple(_sort_value(part) for part in item)):
            rows = buckets[key]
            hours = sum(float(row["hours"]) for row in rows)  # type: ignore[arg-type]
            invoiced = sum(float(row["invoiced"]) for row in rows)  # type: ignore[arg-type]
            values: dict[str, object] = dict(zip(descriptor.group_by, key, strict=True))
            values.update(
                {
                    "hours": hours,
                    "invoiced": invoiced,
                    "rate": _ratio(invoiced, hours),
                    "count": len(rows),
                }
            )
            for name, function, source in sorted(aggregation_keys):
                values[name] = aggregate(rows, function, source)
            if all(
                evaluate_condition(values.get(condition.field), condition, today)
                for condition in descriptor.having
            ):
                groups.append(
                    GroupRow(
                        key=dict(zip(descriptor.group_by, key, strict=True)),
                        hours=hours,
                        invoiced=invoiced,
                        rate=_ratio(invoiced, hours),
                        entries=len(rows),
                        values=values,
                    )
                )
        return groups

    def _rows(
        self,
        descriptor: QueryDescriptor,
        entries: Sequence[TimeEntry],
        monthly: Sequence[MonthlyRow],
        groups: Sequence[GroupRow],
        chronological: Sequence[MonthlyRow],
    ) -> list[Row]:
        """Build display rows for the SHOW columns.

        Grouped queries show one row per group, aggregations without grouping
        one total row, entry fields one row per entry and anything else one
        row per month.
        """
        columns = descriptor.columns
        if not columns:
            return []
        if descriptor.group_by:
            sources = [dict(group.values) for group in groups]
        elif any(column.aggregation for column in columns):
            entry_rows = [self._entry_values(entry) for entry in entries]
            totals: dict[str, object] = {
                column.key: aggregate(entry_rows, column.aggregation, column.source)
                for column in columns
                if column.aggregation is not None and column.source is not None
            }
            summary = summarize(entries, self.settings)
            totals.setdefault("hours", summary.total_hours)
            totals.setdefault("invoiced", summary.total_invoiced)
            totals.setdefault("utilization", summary.utilization)
            sources = [totals]
        elif any(
            column.source in ENTRY_COLUMNS or column.source in self.registry.show_fields()
            for column in columns
        ):
            utilization = {(row.year, row.month): row.utilization for row in chronological}
            cumulative = 0.0
            sources = []
            for entry in sorted(entries, key=lambda item: item.date):
                cumulative += entry.hours
                values = self._entry_values(entry)
                values["utilization"] = utilization.get(entry.month_key, 0.0)
                values["cumulative_hours"] = cumulative
                sources.append(values)
            sources = _page(sources, descriptor, lambda row: row)
        else:
            sources = [row.values() for row in monthly]

        rows: list[Row] = []
        for source in sources:
            row: dict[str, object] = {}
            for column in columns:
                if column.expression is not None:
                    row[column.key] = evaluate_expression(column.expression, source)
                else:
                    row[column.key] = source.get(column.key, source.get(column.source or ""))
            rows.append(row)
        return rows

    def _extensions(
        self, descriptor: QueryDescriptor, data: ExtensionInput
    ) -> dict[str, object]:
        """Collect report sections contributed by extension clause handlers."""
        sections: dict[str, object] = {}
        for kind, value in descriptor.extensions.items():
            handler = self.registry.get_handler(kind)
            if handler is None:
                continue
            results: tuple[ClauseResult, ...] = value if isinstance(value, tuple) else (value,)
            built = [
                dict(section)
                for result in results
                if (section := handler.augment(result, data)) is not None
            ]
            if not built:
                continue
            sections[kind] = built if isinstance(value, tuple) else built[0]
        return sections
