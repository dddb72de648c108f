"""Tests for the retainer clause family."""

from __future__ import annotations

from datetime import date

import pytest

from timesheet.entries import TimeEntry
from timesheet.query_language import (
    QueryInterpreterError,
    compile_query_text,
    create_default_registry,
    parse_query,
)
from timesheet.query_language.ast import ExtensionClause
from timesheet.query_language.clauses import ClauseContext
from timesheet.query_language.clauses.retainer import (
    calculate_roi,
    calculate_service_mix,
    calculate_trend,
    entry_category,
    forecast_utilization,
    meets_utilization_threshold,
)
from timesheet.query_language.compiler import ExecutionContext
from timesheet.query_language.parser import validate_query
from timesheet.settings import ProjectType, ReportSettings


TODAY = date(2024, 6, 1)


def _entries() -> list[TimeEntry]:
    return [
        TimeEntry(date(2024, 3, 4), 4.0, 75.0, "Acme Website", "Implement login form"),
        TimeEntry(date(2024, 3, 5), 8.0, 75.0, "Acme Website", "Fix checkout bug"),
        TimeEntry(date(2024, 4, 2), 6.0, 100.0, "Globex Support", "Ticket triage", "support"),
    ]


def _clause(text: str) -> ExtensionClause:
    clause = parse_query(text).clauses[0]
    assert isinstance(clause, ExtensionClause)
    return clause


def _validate(text: str) -> tuple[tuple[str, ...], tuple[str, ...]]:
    result = validate_query(parse_query(text), create_default_registry())
    return (result.errors, result.warnings)


def _handle(text: str) -> dict[str, object]:
    registry = create_default_registry()
    return dict(registry.handle(_clause(text), ClauseContext()).config)


@pytest.mark.parametrize(
    ("text", "error"),
    [
        ("RETAINER bogus", "Invalid retainer type: bogus"),
        ("UTILIZATION current above", "Threshold value must be a number"),
        ("UTILIZATION current between 90 and 60", "Threshold min must be less than max"),
        ("UTILIZATION current between 60", "Between threshold must have min and max values"),
        ("UTILIZATION current sideways 5", "Invalid threshold: sideways"),
        ("ROLLOVER expiring -1", "expiringDays must be a non-negative number"),
        ("CONTRACT renewal risk extreme", "Invalid risk level: extreme"),
        ("CONTRACT renewal due -3", "dueInDays must be a non-negative number"),
        ("VALUE delivered around 1000", "Invalid threshold type: around"),
        ("VALUE delivered above", "Value threshold must be a number"),
        ("ALERT utilization", "Alert threshold must be a number"),
        ("FORECAST utilization decade", "Invalid forecast horizon: decade"),
        ("SERVICE 42", "Invalid service category: 42"),
    ],
)
def test_clause_validation_errors(text: str, error: str) -> None:
    """Invalid clause arguments should be reported as validation errors."""
    errors, _warnings = _validate(text)

    assert any(message.startswith(error) for message in errors), errors


@pytest.mark.parametrize(
    ("text", "warning"),
    [
        ("SERVICE", "SERVICE clause has no categories specified"),
        ("SERVICE gardening", "Non-standard service category: gardening"),
        ("ALERT budget 150", "Alert threshold is typically between 0 and 100"),
    ],
)
def test_clause_validation_warnings(text: str, warning: str) -> None:
    """Unusual but usable arguments should only warn."""
    errors, warnings = _validate(text)

    assert errors == ()
    assert warning in warnings


def test_clause_configs() -> None:
    """Valid clauses should be interpreted into their configuration."""
    assert _handle("RETAINER health") == {"type": "health"}
    assert _handle("SERVICE development, support") == {
        "categories": ("development", "support")
    }
    assert _handle("ROLLOVER expiring 30 days") == {"type": "expiring", "expiring_days": 30}
    assert _handle("UTILIZATION current above 80%") == {
        "type": "current",
        "threshold": {"type": "above", "value": 80.0},
    }
    assert _handle("UTILIZATION average between 60 and 90") == {
        "type": "average",
        "threshold": {"type": "between", "min": 60.0, "max": 90.0},
    }
    assert _handle("CONTRACT renewal due 30 risk high") == {
        "type": "renewal",
        "due_in_days": 30,
        "risk_level": "high",
    }
    assert _handle("VALUE delivered above 1000") == {
        "type": "delivered",
        "threshold_type": "above",
        "threshold": 1000.0,
    }
    assert _handle("ALERT utilization above 90") == {"type": "utilization", "threshold": 90.0}
    assert _handle("FORECAST value") == {"type": "value", "horizon": "month"}


def test_handle_rejects_invalid_clause() -> None:
    """Interpreting an invalid clause should raise with the first error."""
    with pytest.raises(QueryInterpreterError, match="Invalid retainer type: bogus"):
        _handle("RETAINER bogus")


def test_meets_utilization_threshold() -> None:
    """Thresholds should compare utilization percentages."""
    assert meets_utilization_threshold(85.0, {"type": "above", "value": 80.0}) is True
    assert meets_utilization_threshold(75.0, {"type": "above", "value": 80.0}) is False
    assert meets_utilization_threshold(75.0, {"type": "below", "value": 80.0}) is True
    assert meets_utilization_threshold(70.0, {"type": "between", "min": 60.0, "max": 90.0})
    assert meets_utilization_threshold(95.0, {"type": "between", "min": 60.0, "max": 90.0}) is False
    assert meets_utilization_threshold(10.0, None) is True


def test_calculate_service_mix() -> None:
    """Service mix should be each category's share of hours in percent."""
    mix = calculate_service_mix([("development", 3.0), ("support", 1.0)])

    assert mix == {"development": 75.0, "support": 25.0}
    assert calculate_service_mix([("support", 0.0)]) == {"support": 0.0}


def test_calculate_trend_and_forecast() -> None:
    """The forecast should follow the least-squares slope and clamp to 0..100."""
    history = [(date(2024, 1, 1), 50.0), (date(2024, 2, 1), 60.0), (date(2024, 3, 1), 70.0)]

    assert calculate_trend([50.0, 60.0, 70.0]) == pytest.approx(10.0)
    assert calculate_trend([42.0]) == 0.0
    assert forecast_utilization(history, 4) == [
        (date(2024, 4, 1), 80.0),
        (date(2024, 5, 1), 90.0),
        (date(2024, 6, 1), 100.0),
        (date(2024, 7, 1), 100.0),
    ]
    assert forecast_utilization(history[:1]) == []


def test_calculate_roi() -> None:
    """ROI should be relative gain in percent, 0 without investment."""
    assert calculate_roi(150.0, 100.0) == pytest.approx(50.0)
    assert calculate_roi(150.0, 0.0) == 0.0


def test_entry_category_prefers_explicit_category() -> None:
    """Explicit categories win; otherwise notes and project are matched by keyword."""
    assert entry_category(TimeEntry(date(2024, 1, 1), 1.0, category="Support")) == "support"
    assert entry_category(TimeEntry(date(2024, 1, 1), 1.0, notes="Fix login bug")) == "development"
    assert entry_category(TimeEntry(date(2024, 1, 1), 1.0, notes="Weekly meeting")) == "consulting"
    assert entry_category(TimeEntry(date(2024, 1, 1), 1.0, notes="Lunch")) == "general"


def test_service_where_field_filters_by_category() -> None:
    """`service` in WHERE should match the entry category."""
    compiled = compile_query_text("WHERE service = support")

    report = compiled(_entries(), ExecutionContext(today=TODAY))

    assert report.summary.total_hours == 6.0


def test_service_clause_adds_distribution() -> None:
    """SERVICE should report the service mix of the selected entries."""
    compiled = compile_query_text("SERVICE")

    report = compiled(_entries(), ExecutionContext(today=TODAY))

    assert report.extensions["ServiceClause"] == {
        "categories": [],
        "distribution": {"development": pytest.approx(66.7), "support": pytest.approx(33.3)},
    }


def test_retainer_clause_reports_budget_status() -> None:
    """RETAINER should summarize utilization and budget progress."""
    settings = ReportSettings(project_type=ProjectType.RETAINER, budget_hours=36.0)
    compiled = compile_query_text("RETAINER status", settings=settings)

    report = compiled(_entries(), ExecutionContext(today=TODAY))
    section = report.extensions["RetainerClause"]

    assert isinstance(section, dict)
    assert section["type"] == "status"
    assert section["status"] == "under-utilized"
    assert section["budgetProgress"] == pytest.approx(0.5)
    assert section["budgetRemaining"] == pytest.approx(18.0)


def test_repeatable_alert_clauses_collect_sections() -> None:
    """Repeatable clauses should produce one section per occurrence."""
    settings = ReportSettings(project_type=ProjectType.FIXED_HOURS, budget_hours=20.0)
    compiled = compile_query_text("ALERT budget 80\nALERT utilization 90", settings=settings)

    report = compiled(_entries(), ExecutionContext(today=TODAY))
    sections = report.extensions["AlertClause"]

    assert isinstance(sections, list)
    assert [section["type"] for section in sections] == ["budget", "utilization"]
    assert sections[0]["current"] == pytest.approx(90.0)
    assert sections[0]["triggered"] is True
    assert sections[1]["triggered"] is False


def test_value_clause_reports_effective_rate() -> None:
    """VALUE should report delivered value and whether it meets the threshold."""
    compiled = compile_query_text("VALUE delivered above 1000")

    report = compiled(_entries(), ExecutionContext(today=TODAY))
    section = report.extensions["ValueClause"]

    assert isinstance(section, dict)
    assert section["delivered"] == pytest.approx(1500.0)
    assert section["effectiveRate"] == pytest.approx(1500.0 / 18.0)
    assert section["meetsThreshold"] is True


def test_utilization_clause_lists_matching_months() -> None:
    """UTILIZATION should keep months meeting the threshold."""
    compiled = compile_query_text("UTILIZATION current above 5%")

    report = compiled(_entries(), ExecutionContext(today=TODAY))
    section = report.extensions["UtilizationClause"]

    assert isinstance(section, dict)
    assert [month["label"] for month in section["months"]] == ["March 2024"]


def test_rollover_clause_sums_unused_hours() -> None:
    """ROLLOVER should report unused target hours per month."""
    settings = ReportSettings(hours_per_workday=1.0)
    compiled = compile_query_text("ROLLOVER available", settings=settings)

    report = compiled(_entries(), ExecutionContext(today=TODAY))
    section = report.extensions["RolloverClause"]

    assert isinstance(section, dict)
    assert section["months"] == [
        {"label": "March 2024", "unused": 9.0},
        {"label": "April 2024", "unused": 16.0},
    ]
    assert section["available"] == pytest.approx(25.0)


def test_forecast_clause_projects_value() -> None:
    """FORECAST value should project the monthly average over the horizon."""
    compiled = compile_query_text("FORECAST value quarter")

    report = compiled(_entries(), ExecutionContext(today=TODAY))
    sections = report.extensions["ForecastClause"]

    assert isinstance(sections, list)
    assert sections[0]["horizon"] == "quarter"
    assert sections[0]["projected"] == pytest.approx(2250.0)


def test_value_roi_prices_hours_at_default_rate() -> None:
    """VALUE roi should compare delivered value with hours at the default rate."""
    settings = ReportSettings(default_rate=60.0)
    compiled = compile_query_text("VALUE roi", settings=settings)

    report = compiled(_entries(), ExecutionContext(today=TODAY))
    section = report.extensions["ValueClause"]

    assert isinstance(section, dict)
    assert section["cost"] == pytest.approx(1080.0)
    assert section["roi"] == pytest.approx(420.0 / 1080.0 * 100)


def test_value_roi_without_default_rate() -> None:
    """Without a default rate there is no cost, so ROI is 0."""
    roi = compile_query_text("VALUE roi")(_entries(), ExecutionContext(today=TODAY))
    delivered = compile_query_text("VALUE delivered")(_entries(), ExecutionContext(today=TODAY))

    assert roi.extensions["ValueClause"]["roi"] == 0.0
    assert "roi" not in delivered.extensions["ValueClause"]
