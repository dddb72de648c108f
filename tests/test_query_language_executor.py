"""Tests for executing query descriptors against time entries."""

from __future__ import annotations

from datetime import date

import pytest

from timesheet.entries import TimeEntry
from timesheet.query_language import ExecutionContext, ReportData, compile_query_text
from timesheet.query_language.ast import CalculatedField, Identifier, Literal
from timesheet.query_language.executor import aggregate, evaluate_expression, monthly_rows
from timesheet.settings import ProjectType, ReportSettings


TODAY = date(2024, 6, 1)


def _entries() -> list[TimeEntry]:
    return [
        TimeEntry(date(2024, 3, 4), 4.0, 75.0, "Acme Website", "Implement login form"),
        TimeEntry(date(2024, 3, 5), 8.0, 75.0, "Acme Website", "Fix checkout bug"),
        TimeEntry(date(2024, 4, 2), 6.0, 100.0, "Globex Support", "Ticket triage", "support"),
        TimeEntry(date(2023, 12, 11), 5.0, 80.0, "Acme Website", "Design review"),
        TimeEntry(date(2024, 4, 3), 3.0, None, "Internal", "Team offsite"),
    ]


def _run(
    query: str,
    settings: ReportSettings | None = None,
    today: date = TODAY,
    entries: list[TimeEntry] | None = None,
) -> ReportData:
    compiled = compile_query_text(query, settings=settings)
    return compiled(entries if entries is not None else _entries(), ExecutionContext(today=today))


def test_year_and_month_filter() -> None:
    """Year and month filters should select a single month."""
    report = _run("WHERE year = 2024 AND month = 3")

    assert report.summary.total_hours == pytest.approx(12.0)
    assert report.summary.total_invoiced == pytest.approx(900.0)
    assert report.summary.entry_count == 2
    assert report.summary.target_hours == pytest.approx(168.0)
    assert report.summary.utilization == pytest.approx(12.0 / 168.0)
    assert [row.label for row in report.monthly_data] == ["March 2024"]


def test_default_period_is_current_year() -> None:
    """Without filters the report should cover the year of the evaluation date."""
    report = _run("")

    assert report.summary.total_hours == pytest.approx(21.0)
    assert report.year_summary.total_hours == pytest.approx(21.0)
    assert report.all_time_summary.total_hours == pytest.approx(26.0)


def test_current_year_follows_year_filter() -> None:
    """An explicit year filter should replace the current year."""
    report = _run("WHERE year = 2023")

    assert report.summary.total_hours == pytest.approx(5.0)


def test_all_time_period_orders_months_newest_first() -> None:
    """Monthly data should be newest first and the trend oldest first."""
    report = _run("PERIOD all-time")

    assert [row.label for row in report.monthly_data] == [
        "April 2024",
        "March 2024",
        "December 2023",
    ]
    assert report.trend_data.labels == ("December 2023", "March 2024", "April 2024")
    assert report.monthly_data[0].cumulative_hours == pytest.approx(26.0)


def test_last_months_period_keeps_recent_months() -> None:
    """last-N-months should keep the most recent months that have entries."""
    entries = [TimeEntry(date(2024, month, 10), float(month), 10.0) for month in range(1, 9)]

    report = _run("PERIOD last-6-months", entries=entries, today=date(2024, 12, 1))

    assert report.trend_data.labels[0] == "March 2024"
    assert len(report.monthly_data) == 6


def test_compact_size_shortens_trend() -> None:
    """Compact reports should only chart the last six months."""
    entries = [TimeEntry(date(2024, month, 10), float(month), 10.0) for month in range(1, 9)]

    report = _run("SIZE compact", entries=entries, today=date(2024, 12, 1))

    assert len(report.trend_data.labels) == 6
    assert report.trend_data.labels[-1] == "August 2024"
    assert len(report.monthly_data) == 8


def test_unmatched_project_yields_empty_report() -> None:
    """A filter matching nothing should give empty monthly data and trend."""
    report = _run("WHERE project = 'Nope'")

    assert report.summary.total_hours == 0.0
    assert report.summary.utilization == 0.0
    assert report.monthly_data == ()
    assert report.trend_data.labels == ()


def test_project_filter_matches_substring() -> None:
    """Project filters should match case-insensitive substrings."""
    report = _run("WHERE project = acme")

    assert report.summary.total_hours == pytest.approx(12.0)


def test_date_range_is_inclusive() -> None:
    """BETWEEN bounds should both be included."""
    report = _run("WHERE date BETWEEN '2024-03-05' AND '2024-04-02'")

    assert report.summary.total_hours == pytest.approx(14.0)


def test_date_range_alone_spans_years() -> None:
    """A date range without a year filter should not be cut to the current year."""
    report = _run("WHERE date BETWEEN '2023-12-01' AND '2024-03-04'")

    assert report.summary.total_hours == pytest.approx(9.0)


def test_relative_date_condition() -> None:
    """last_month should resolve to the first day of the previous month."""
    report = _run("WHERE date >= last_month PERIOD all-time", today=date(2024, 4, 15))

    assert report.summary.total_hours == pytest.approx(21.0)


def test_generic_conditions() -> None:
    """Comparison, LIKE and IS NULL conditions should filter entries."""
    assert _run("WHERE hours > 5").summary.total_hours == pytest.approx(14.0)
    assert _run("WHERE notes LIKE 'fix%'").summary.total_hours == pytest.approx(8.0)
    assert _run("WHERE rate IS NULL").summary.total_hours == pytest.approx(3.0)
    assert _run("WHERE project NOT IN ('Internal')").summary.total_hours == pytest.approx(18.0)


def test_zero_hours_per_workday_gives_zero_utilization() -> None:
    """Utilization should be 0 rather than fail without target hours."""
    report = _run("WHERE year = 2024 AND month = 3", settings=ReportSettings(hours_per_workday=0))

    assert report.summary.target_hours == 0.0
    assert report.summary.utilization == 0.0


def test_budget_progress_for_retainers() -> None:
    """Budget figures should be filled in for budgeted project types."""
    settings = ReportSettings(project_type=ProjectType.RETAINER, budget_hours=20.0)

    report = _run("WHERE year = 2024 AND month = 3", settings=settings)

    assert report.summary.budget_hours == pytest.approx(20.0)
    assert report.summary.budget_remaining == pytest.approx(8.0)
    assert report.summary.budget_progress == pytest.approx(0.6)
    assert report.monthly_data[0].budget_progress == pytest.approx(0.6)


def test_budget_is_ignored_for_hourly_projects() -> None:
    """Hourly projects should not report budget figures."""
    report = _run("", settings=ReportSettings(budget_hours=20.0))

    assert report.summary.budget_progress is None


def test_default_rate_fills_missing_rates() -> None:
    """Entries without a rate should use the configured default."""
    report = _run("WHERE project = Internal", settings=ReportSettings(default_rate=50.0))

    assert report.summary.total_invoiced == pytest.approx(150.0)


def test_group_by_with_having() -> None:
    """Groups should be sorted by key and filtered by HAVING."""
    report = _run("SHOW project, sum(hours) GROUP BY project HAVING sum(hours) > 5")

    assert [group.key for group in report.groups] == [
        {"project": "Acme Website"},
        {"project": "Globex Support"},
    ]
    assert report.rows == (
        {"project": "Acme Website", "sum_hours": 12.0},
        {"project": "Globex Support", "sum_hours": 6.0},
    )


def test_order_by_and_limit_apply_to_months() -> None:
    """ORDER BY and LIMIT should sort and cut monthly rows."""
    report = _run("ORDER BY hours DESC LIMIT 1 PERIOD all-time")

    assert [row.label for row in report.monthly_data] == ["March 2024"]


def test_offset_skips_monthly_rows() -> None:
    """OFFSET should skip rows after ordering."""
    report = _run("ORDER BY hours ASC LIMIT 2 OFFSET 1 PERIOD all-time")

    assert [row.label for row in report.monthly_data] == ["April 2024", "March 2024"]


def test_show_entry_fields_lists_entries() -> None:
    """Entry columns should produce one row per entry in date order."""
    report = _run("WHERE year = 2024 AND month = 3 SHOW date, project, hours")

    assert report.rows == (
        {"date": date(2024, 3, 4), "project": "Acme Website", "hours": 4.0},
        {"date": date(2024, 3, 5), "project": "Acme Website", "hours": 8.0},
    )


def test_show_monthly_fields_and_calculated_column() -> None:
    """Monthly columns and arithmetic should be evaluated per month."""
    report = _run("WHERE year = 2024 AND month = 3 SHOW label, invoiced / hours AS effective")

    assert report.rows == ({"label": "March 2024", "effective": 75.0},)


def test_show_aggregations_without_grouping_gives_totals() -> None:
    """Aggregations without GROUP BY should produce a single totals row."""
    report = _run("WHERE year = 2024 AND month = 3 SHOW sum(hours), avg(rate), count(hours)")

    assert report.rows == ({"sum_hours": 12.0, "avg_rate": 75.0, "count_hours": 2.0},)


def test_report_to_dict_uses_camel_case() -> None:
    """The JSON form should camelCase multi-word keys."""
    payload = _run("WHERE year = 2024 AND month = 3 SHOW date").to_dict()

    assert payload["view"] == "summary"
    assert payload["summary"]["totalHours"] == pytest.approx(12.0)  # type: ignore[index]
    assert payload["monthlyData"][0]["targetHours"] == pytest.approx(168.0)  # type: ignore[index]
    assert payload["rows"][0]["date"] == "2024-03-04"  # type: ignore[index]


def test_execution_is_deterministic() -> None:
    """Running a compiled query twice should give equal reports."""
    compiled = compile_query_text("SHOW project, sum(hours) GROUP BY project")
    context = ExecutionContext(today=TODAY)

    assert compiled(_entries(), context) == compiled(_entries(), context)


def test_evaluate_expression_division_by_zero() -> None:
    """Dividing by zero should yield 0."""
    expression = CalculatedField(Identifier("invoiced"), "/", Identifier("hours"))

    assert evaluate_expression(expression, {"invoiced": 100.0, "hours": 0.0}) == 0.0
    assert evaluate_expression(Literal(2, "number"), {}) == 2.0


def test_aggregate_functions() -> None:
    """Aggregations should ignore missing values."""
    rows = [{"hours": 2.0}, {"hours": 4.0}, {"hours": None}]

    assert aggregate(rows, "sum", "hours") == 6.0
    assert aggregate(rows, "avg", "hours") == 3.0
    assert aggregate(rows, "count", "hours") == 3.0
    assert aggregate(rows, "max", "hours") == 4.0
    assert aggregate([], "min", "hours") is None


def test_monthly_rows_accumulate_hours() -> None:
    """Monthly rows should be chronological with running totals."""
    rows = monthly_rows(_entries(), ReportSettings())

    assert [row.cumulative_hours for row in rows] == [5.0, 17.0, 26.0]
    assert rows[1].rate == pytest.approx(75.0)


def test_order_by_sorts_entry_rows() -> None:
    """ORDER BY should sort entry rows before LIMIT is applied."""
    entries = [
        TimeEntry(date(2024, 3, 1), 1.0, 10.0, "A"),
        TimeEntry(date(2024, 3, 2), 9.0, 10.0, "B"),
        TimeEntry(date(2024, 3, 3), 5.0, 10.0, "C"),
    ]

    report = _run("SHOW date, project, hours ORDER BY hours DESC", entries=entries)
    limited = _run("SHOW project, hours ORDER BY hours DESC LIMIT 2", entries=entries)

    assert [row["hours"] for row in report.rows] == [9.0, 5.0, 1.0]
    assert [row["project"] for row in limited.rows] == ["B", "C"]


def test_order_by_entry_columns() -> None:
    """Entry rows can be ordered by project and then by newest date."""
    report = _run("SHOW date, project ORDER BY project ASC, date DESC PERIOD all-time")

    assert [(row["project"], row["date"]) for row in report.rows] == [
        ("Acme Website", date(2024, 3, 5)),
        ("Acme Website", date(2024, 3, 4)),
        ("Acme Website", date(2023, 12, 11)),
        ("Globex Support", date(2024, 4, 2)),
        ("Internal", date(2024, 4, 3)),
    ]


def test_relative_date_range_runs_through_pipeline() -> None:
    """Ranges between relative dates should compile and resolve against today."""
    report = _run("WHERE date BETWEEN yesterday AND today", today=date(2024, 4, 3))

    assert report.summary.total_hours == pytest.approx(9.0)


def test_relative_start_with_iso_end() -> None:
    """A relative start may be combined with an ISO end date."""
    report = _run("WHERE date BETWEEN today AND '2030-01-01'", today=date(2024, 4, 3))

    assert report.summary.total_hours == pytest.approx(3.0)
