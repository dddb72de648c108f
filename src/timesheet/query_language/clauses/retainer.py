"""Retainer clause family: RETAINER, SERVICE, ROLLOVER, UTILIZATION, CONTRACT,
VALUE, ALERT and FORECAST."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping, Sequence
from datetime import date
from typing import TYPE_CHECKING

from timesheet.dates import add_months, month_label
from timesheet.entries import TimeEntry
from timesheet.query_language.ast import Expression, ExtensionClause, Identifier, Literal
from timesheet.query_language.clauses.base import (
    BaseClauseHandler,
    ClauseContext,
    ClauseResult,
    MatchContext,
)
from timesheet.query_language.conditions import FieldCondition, evaluate_condition
from timesheet.query_language.errors import QueryInterpreterError
from timesheet.query_language.validation import ValidationResult


if TYPE_CHECKING:
    from timesheet.query_language.executor import ExtensionInput


STANDARD_SERVICE_CATEGORIES = ("development", "design", "consulting", "support", "maintenance")
SERVICE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "development": ("develop", "implement", "code", "coding", "bug", "fix", "feature", "refactor"),
    "design": ("design", "mockup", "wireframe", "prototype", "ux", "ui"),
    "consulting": ("consult", "meeting", "call", "workshop", "advice", "review"),
    "support": ("support", "ticket", "incident", "helpdesk", "question"),
    "maintenance": ("maintenance", "update", "upgrade", "patch", "backup", "monitoring"),
}
FORECAST_HORIZON_MONTHS = {"month": 1, "quarter": 3, "year": 12, "contract-term": 12}
UNDER_UTILIZED_PERCENT = 60.0
OVER_UTILIZED_PERCENT = 100.0

type Threshold = dict[str, object]
type ParsedClause = tuple[dict[str, object], list[str], list[str]]


def _word(argument: Expression) -> str | None:
    """Return a bare word or quoted string argument, lower-cased."""
    if isinstance(argument, Identifier):
        return argument.name.lower()
    if isinstance(argument, Literal) and argument.data_type == "string":
        return str(argument.value).lower()
    return None


def _number(argument: Expression) -> float | None:
    """Return a numeric or percentage argument."""
    if (
        isinstance(argument, Literal)
        and argument.data_type in ("number", "percentage")
        and isinstance(argument.value, int | float)
    ):
        return float(argument.value)
    return None


def _describe(argument: Expression) -> str:
    if isinstance(argument, Identifier):
        return argument.name
    if isinstance(argument, Literal):
        return str(argument.value)
    return argument.type


def entry_category(entry: TimeEntry) -> str:
    """Return the service category of an entry.

    Uses the explicit category when present, otherwise infers one from the
    notes and project text.
    """
    if entry.category:
        return entry.category.lower()
    text = " ".join(part for part in (entry.notes, entry.project) if part).lower()
    for category, keywords in SERVICE_KEYWORDS.items():
        if any(keyword in text for keyword in keywords):
            return category
    return "general"


def meets_utilization_threshold(utilization_percent: float, threshold: Threshold | None) -> bool:
    """Return whether a utilization percentage satisfies a threshold."""
    if not threshold:
        return True
    value = threshold.get("value")
    lower = threshold.get("min")
    upper = threshold.get("max")
    match threshold.get("type"):
        case "above":
            return isinstance(value, int | float) and utilization_percent > value
        case "below":
            return isinstance(value, int | float) and utilization_percent < value
        case "between":
            return (
                isinstance(lower, int | float)
                and isinstance(upper, int | float)
                and lower <= utilization_percent <= upper
            )
    return True


def calculate_service_mix(services: Sequence[tuple[str, float]]) -> dict[str, float]:
    """Return each category's share of hours in percent, rounded to 0.1."""
    hours_by_category: dict[str, float] = defaultdict(float)
    for category, hours in services:
        hours_by_category[category] += hours
    total_hours = sum(hours_by_category.values())
    return {
        category: round(hours / total_hours * 100, 1) if total_hours > 0 else 0.0
        for category, hours in hours_by_category.items()
    }


def calculate_trend(values: Sequence[float]) -> float:
    """Return the least-squares slope of values over their indexes."""
    count = len(values)
    if count < 2:  # noqa: PLR2004
        return 0.0
    sum_x = count * (count - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(index * value for index, value in enumerate(values))
    sum_x2 = count * (count - 1) * (2 * count - 1) / 6
    denominator = count * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (count * sum_xy - sum_x * sum_y) / denominator


def forecast_utilization(
    history: Sequence[tuple[date, float]], horizon_months: int = 3
) -> list[tuple[date, float]]:
    """Project utilization percentages forward along the linear trend.

    Needs at least two points of history; projections are clamped to 0..100.
    """
    if len(history) < 2:  # noqa: PLR2004
        return []
    slope = calculate_trend([utilization for _day, utilization in history])
    last_day, last_utilization = history[-1]
    forecast: list[tuple[date, float]] = []
    for step in range(1, horizon_months + 1):
        year, month = add_months(last_day.year, last_day.month, step)
        projected = max(0.0, min(100.0, last_utilization + slope * step))
        forecast.append((date(year, month, 1), round(projected, 1)))
    return forecast


def calculate_roi(value_delivered: float, cost_invested: float) -> float:
    """Return return on investment in percent; 0 when nothing was invested."""
    if cost_invested == 0:
        return 0.0
    return (value_delivered - cost_invested) / cost_invested * 100


def _parse_threshold(rest: Sequence[Expression], errors: list[str]) -> Threshold | None:
    """Parse `above N`, `below N` or `between A and B`."""
    if not rest:
        return None
    kind = _word(rest[0])
    numbers = [_number(argument) for argument in rest[1:] if _word(argument) != "and"]
    if kind in ("above", "below"):
        if len(numbers) != 1 or numbers[0] is None:
            errors.append("Threshold value must be a number")
            return None
        return {"type": kind, "value": numbers[0]}
    if kind == "between":
        if len(numbers) != 2 or numbers[0] is None or numbers[1] is None:  # noqa: PLR2004
            errors.append("Between threshold must have min and max values")
            return None
        if numbers[0] >= numbers[1]:
            errors.append("Threshold min must be less than max")
            return None
        return {"type": "between", "min": numbers[0], "max": numbers[1]}
    errors.append(
        f"Invalid threshold: {_describe(rest[0])}. Valid thresholds: above, below, between"
    )
    return None


class _TypedClauseHandler(BaseClauseHandler):
    """Handler for clauses shaped `KEYWORD <type> [options...]`."""

    valid_types: tuple[str, ...] = ()
    result_key = "type"

    def parse_options(
        self, rest: Sequence[Expression], errors: list[str], warnings: list[str]
    ) -> dict[str, object]:
        """Parse arguments after the type word."""
        del warnings
        if rest:
            errors.append(
                f"Unexpected {self.keyword} argument: {', '.join(_describe(arg) for arg in rest)}"
            )
        return {}

    def parse(self, node: ExtensionClause) -> ParsedClause:
        errors: list[str] = []
        warnings: list[str] = []
        if not node.arguments:
            errors.append(f"{self.keyword} clause requires a type argument")
            return ({}, errors, warnings)
        clause_type = _word(node.arguments[0])
        if clause_type not in self.valid_types:
            errors.append(
                f"Invalid {self.keyword.lower()} type: {_describe(node.arguments[0])}. "
                f"Valid types: {', '.join(self.valid_types)}"
            )
        config: dict[str, object] = {self.result_key: clause_type}
        config.update(self.parse_options(node.arguments[1:], errors, warnings))
        return (config, errors, warnings)

    def validate(self, node: ExtensionClause) -> ValidationResult:
        _config, errors, warnings = self.parse(node)
        return ValidationResult(valid=not errors, errors=tuple(errors), warnings=tuple(warnings))

    def handle(self, node: ExtensionClause, context: ClauseContext) -> ClauseResult:
        del context
        config, errors, _warnings = self.parse(node)
        if errors:
            raise QueryInterpreterError(errors[0], node)
        return ClauseResult(self.kind, config)


class RetainerClauseHandler(_TypedClauseHandler):
    """`RETAINER health` - overall retainer status section."""

    kind = "RetainerClause"
    keyword = "RETAINER"
    valid_types = ("health", "status", "forecast", "analysis", "performance", "optimization")
    views = frozenset({"retainer", "health", "performance"})
    charts = frozenset({"health_score", "burn_rate"})

    def augment(self, result: ClauseResult, data: ExtensionInput) -> Mapping[str, object]:
        utilization_percent = data.summary.utilization * 100
        if utilization_percent < UNDER_UTILIZED_PERCENT:
            status = "under-utilized"
        elif utilization_percent > OVER_UTILIZED_PERCENT:
            status = "over-utilized"
        else:
            status = "healthy"
        return {
            "type": result.config.get("type"),
            "status": status,
            "utilization": utilization_percent,
            "budgetProgress": data.summary.budget_progress,
            "budgetRemaining": data.summary.budget_remaining,
        }


class ServiceClauseHandler(BaseClauseHandler):
    """`SERVICE development, support` - service mix over the given categories."""

    kind = "ServiceClause"
    keyword = "SERVICE"
    where_fields = frozenset({"service", "category"})
    views = frozenset({"services"})
    charts = frozenset({"service_mix"})
    show_fields = frozenset({"category"})

    def parse(self, node: ExtensionClause) -> ParsedClause:
        errors: list[str] = []
        warnings: list[str] = []
        categories: list[str] = []
        for argument in node.arguments:
            category = _word(argument)
            if category is None:
                errors.append(f"Invalid service category: {_describe(argument)}")
                continue
            if category not in STANDARD_SERVICE_CATEGORIES:
                warnings.append(f"Non-standard service category: {category}")
            categories.append(category)
        if not node.arguments:
            warnings.append("SERVICE clause has no categories specified")
        return ({"categories": tuple(categories)}, errors, warnings)

    def validate(self, node: ExtensionClause) -> ValidationResult:
        _config, errors, warnings = self.parse(node)
        return ValidationResult(valid=not errors, errors=tuple(errors), warnings=tuple(warnings))

    def handle(self, node: ExtensionClause, context: ClauseContext) -> ClauseResult:
        del context
        config, errors, _warnings = self.parse(node)
        if errors:
            raise QueryInterpreterError(errors[0], node)
        return ClauseResult(self.kind, config)

    def matches(self, condition: FieldCondition, entry: TimeEntry, context: MatchContext) -> bool:
        return evaluate_condition(entry_category(entry), condition, context.today)

    def field_value(self, name: str, entry: TimeEntry) -> object:
        return entry_category(entry) if name == "category" else None

    def augment(self, result: ClauseResult, data: ExtensionInput) -> Mapping[str, object]:
        selected = result.config.get("categories") or ()
        services = [(entry_category(entry), entry.hours) for entry in data.entries]
        if selected:
            services = [(category, hours) for category, hours in services if category in selected]
        return {"categories": list(selected), "distribution": calculate_service_mix(services)}


class RolloverClauseHandler(_TypedClauseHandler):
    """`ROLLOVER expiring 30` - unused target hours carried between months."""

    kind = "RolloverClause"
    keyword = "ROLLOVER"
    valid_types = ("status", "available", "expiring", "history", "forecast")
    views = frozenset({"rollover"})
    charts = frozenset({"rollover_trend"})

    def parse_options(
        self, rest: Sequence[Expression], errors: list[str], warnings: list[str]
    ) -> dict[str, object]:
        del warnings
        options: dict[str, object] = {}
        for argument in rest:
            number = _number(argument)
            if number is not None:
                if number < 0:
                    errors.append("expiringDays must be a non-negative number")
                options["expiring_days"] = int(number)
            elif _word(argument) != "days":
                errors.append(f"Unexpected ROLLOVER argument: {_describe(argument)}")
        return options

    def augment(self, result: ClauseResult, data: ExtensionInput) -> Mapping[str, object]:
        months = [
            {"label": row.label, "unused": max(0.0, row.target_hours - row.hours)}
            for row in data.monthly
        ]
        return {
            "type": result.config.get("type"),
            "months": months,
            "available": sum(float(month["unused"]) for month in months),
            "expiringDays": result.config.get("expiring_days"),
        }


class UtilizationClauseHandler(_TypedClauseHandler):
    """`UTILIZATION current above 80%` - months meeting a utilization threshold."""

    kind = "UtilizationClause"
    keyword = "UTILIZATION"
    valid_types = ("current", "target", "average", "trend", "efficiency")
    where_fields = frozenset({"utilization"})
    charts = frozenset({"utilization"})

    def parse_options(
        self, rest: Sequence[Expression], errors: list[str], warnings: list[str]
    ) -> dict[str, object]:
        del warnings
        return {"threshold": _parse_threshold(rest, errors)}

    def matches(self, condition: FieldCondition, entry: TimeEntry, context: MatchContext) -> bool:
        utilization = context.monthly_utilization.get(entry.month_key, 0.0) * 100
        return evaluate_condition(utilization, condition, context.today)

    def augment(self, result: ClauseResult, data: ExtensionInput) -> Mapping[str, object]:
        threshold = result.config.get("threshold")
        threshold_spec = threshold if isinstance(threshold, dict) else None
        matching = [
            {"label": row.label, "utilization": row.utilization * 100}
            for row in data.monthly
            if meets_utilization_threshold(row.utilization * 100, threshold_spec)
        ]
        return {
            "type": result.config.get("type"),
            "threshold": threshold_spec,
            "months": matching,
            "utilization": data.summary.utilization * 100,
        }


class ContractClauseHandler(_TypedClauseHandler):
    """`CONTRACT renewal due 30 risk high` - contract tracking options."""

    kind = "ContractClause"
    keyword = "CONTRACT"
    valid_types = ("status", "renewal", "performance", "health", "terms")
    views = frozenset({"contract", "renewal"})

    def parse_options(
        self, rest: Sequence[Expression], errors: list[str], warnings: list[str]
    ) -> dict[str, object]:
        del warnings
        options: dict[str, object] = {}
        index = 0
        while index < len(rest):
            option = _word(rest[index])
            value = rest[index + 1] if index + 1 < len(rest) else None
            if option == "due" and value is not None and _number(value) is not None:
                days = _number(value) or 0.0
                if days < 0:
                    errors.append("dueInDays must be a non-negative number")
                options["due_in_days"] = int(days)
            elif option == "risk" and value is not None:
                risk = _word(value)
                if risk not in ("high", "medium", "low"):
                    errors.append(
                        f"Invalid risk level: {_describe(value)}. Valid levels: high, medium, low"
                    )
                options["risk_level"] = risk
            else:
                errors.append(f"Unexpected CONTRACT argument: {_describe(rest[index])}")
                index += 1
                continue
            index += 2
        return options


class ValueClauseHandler(_TypedClauseHandler):
    """`VALUE delivered above 1000` - billed value delivered."""

    kind = "ValueClause"
    keyword = "VALUE"
    valid_types = ("delivered", "projected", "impact", "roi", "efficiency")
    where_fields = frozenset({"value"})
    charts = frozenset({"value_delivery"})

    def parse_options(
        self, rest: Sequence[Expression], errors: list[str], warnings: list[str]
    ) -> dict[str, object]:
        del warnings
        if not rest:
            return {}
        threshold_type = _word(rest[0])
        if threshold_type not in ("above", "below"):
            errors.append(
                f"Invalid threshold type: {_describe(rest[0])}. Valid types: above, below"
            )
            return {}
        threshold = _number(rest[1]) if len(rest) == 2 else None  # noqa: PLR2004
        if threshold is None:
            errors.append("Value threshold must be a number")
            return {}
        return {"threshold_type": threshold_type, "threshold": threshold}

    def matches(self, condition: FieldCondition, entry: TimeEntry, context: MatchContext) -> bool:
        return evaluate_condition(entry.invoiced, condition, context.today)

    def augment(self, result: ClauseResult, data: ExtensionInput) -> Mapping[str, object]:
        summary = data.summary
        section: dict[str, object] = {
            "type": result.config.get("type"),
            "delivered": summary.total_invoiced,
            "hours": summary.total_hours,
            "effectiveRate": summary.total_invoiced / summary.total_hours
            if summary.total_hours
            else 0.0,
        }
        if result.config.get("type") == "roi":
            # Cost is the tracked time priced at the default rate.
            cost = summary.total_hours * (data.settings.default_rate or 0.0)
            section["cost"] = cost
            section["roi"] = calculate_roi(summary.total_invoiced, cost)
        threshold = result.config.get("threshold")
        if isinstance(threshold, float):
            above = result.config.get("threshold_type") == "above"
            section["meetsThreshold"] = (
                summary.total_invoiced > threshold if above else summary.total_invoiced < threshold
            )
        return section


class AlertClauseHandler(_TypedClauseHandler):
    """`ALERT utilization 90` - flag when a metric crosses a threshold."""

    kind = "AlertClause"
    keyword = "ALERT"
    repeatable = True
    valid_types = ("utilization", "rollover", "budget", "satisfaction", "response")

    def parse_options(
        self, rest: Sequence[Expression], errors: list[str], warnings: list[str]
    ) -> dict[str, object]:
        numbers = [_number(argument) for argument in rest if _word(argument) != "above"]
        if len(numbers) != 1 or numbers[0] is None:
            errors.append("Alert threshold must be a number")
            return {}
        threshold = numbers[0]
        if not 0 <= threshold <= 100:  # noqa: PLR2004
            warnings.append("Alert threshold is typically between 0 and 100")
        return {"threshold": threshold}

    def augment(self, result: ClauseResult, data: ExtensionInput) -> Mapping[str, object]:
        alert_type = result.config.get("type")
        threshold = result.config.get("threshold")
        current: float | None = None
        if alert_type == "utilization":
            current = data.summary.utilization * 100
        elif alert_type == "budget" and data.summary.budget_progress is not None:
            current = data.summary.budget_progress * 100
        triggered = (
            current >= threshold
            if current is not None and isinstance(threshold, int | float)
            else None
        )
        return {
            "type": alert_type,
            "threshold": threshold,
            "current": current,
            "triggered": triggered,
        }


class ForecastClauseHandler(_TypedClauseHandler):
    """`FORECAST utilization quarter` - project metrics over a horizon."""

    kind = "ForecastClause"
    keyword = "FORECAST"
    repeatable = True
    valid_types = ("utilization", "rollover", "renewal", "budget", "value")
    charts = frozenset({"forecast"})

    def parse_options(
        self, rest: Sequence[Expression], errors: list[str], warnings: list[str]
    ) -> dict[str, object]:
        del warnings
        if not rest:
            return {"horizon": "month"}
        horizon = _word(rest[0])
        if horizon not in FORECAST_HORIZON_MONTHS or len(rest) > 1:
            errors.append(
                f"Invalid forecast horizon: {_describe(rest[0])}. "
                f"Valid horizons: {', '.join(FORECAST_HORIZON_MONTHS)}"
            )
        return {"horizon": horizon}

    def augment(self, result: ClauseResult, data: ExtensionInput) -> Mapping[str, object]:
        forecast_type = result.config.get("type")
        horizon = str(result.config.get("horizon", "month"))
        months = FORECAST_HORIZON_MONTHS.get(horizon, 1)
        section: dict[str, object] = {"type": forecast_type, "horizon": horizon}
        if forecast_type == "utilization":
            history = [
                (date(row.year, row.month, 1), row.utilization * 100) for row in data.monthly
            ]
            section["projected"] = [
                {"label": month_label(day.year, day.month), "utilization": value}
                for day, value in forecast_utilization(history, months)
            ]
        elif forecast_type == "value":
            average = (
                sum(row.invoiced for row in data.monthly) / len(data.monthly)
                if data.monthly
                else 0.0
            )
            section["projected"] = average * months
        elif forecast_type == "budget":
            average_hours = (
                sum(row.hours for row in data.monthly) / len(data.monthly) if data.monthly else 0.0
            )
            remaining = data.summary.budget_remaining
            section["projectedHours"] = average_hours * months
            section["monthsRemaining"] = (
                remaining / average_hours if remaining is not None and average_hours else None
            )
        return section


def retainer_handlers() -> tuple[BaseClauseHandler, ...]:
    """Return fresh instances of every retainer clause handler."""
    return (
        RetainerClauseHandler(),
        ServiceClauseHandler(),
        RolloverClauseHandler(),
        UtilizationClauseHandler(),
        ContractClauseHandler(),
        ValueClauseHandler(),
        AlertClauseHandler(),
        ForecastClauseHandler(),
    )
