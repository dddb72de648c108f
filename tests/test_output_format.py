"""Tests for report output formatters."""

from __future__ import annotations

import io
import json
from datetime import date

import pytest
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from timesheet.entries import TimeEntry
from timesheet.output_format import (
    OutputFormatError,
    get_report_formatter,
    prepare_json_output,
    print_prepared_output,
    to_json_compatible,
)
from timesheet.query_language import ExecutionContext, ReportData, compile_query_text
from timesheet.settings import ReportSettings
from timesheet.tui import format_report, format_trend, format_value


SETTINGS = ReportSettings()


def _report(query: str = "WHERE year = 2024 AND month = 3") -> ReportData:
    entries = [
        TimeEntry(date(2024, 3, 4), 4.0, 75.0, "Acme Website", "Implement login form"),
        TimeEntry(date(2024, 3, 5), 8.0, 75.0, "Acme Website", "Fix checkout bug"),
    ]
    compiled = compile_query_text(query)
    return compiled(entries, ExecutionContext(today=date(2024, 6, 1)))


def _render(report: ReportData, output_format: str, color_enabled: bool = False) -> str:
    buffer = io.StringIO()
    console = Console(file=buffer, width=120, no_color=not color_enabled)
    prepared = get_report_formatter(output_format).prepare(
        report, SETTINGS, color_enabled, "github-dark"
    )
    print_prepared_output(console, prepared)
    return buffer.getvalue()


@pytest.mark.parametrize(
    ("value", "value_format", "expected"),
    [
        (None, "hours", "-"),
        (1234.5, "currency", "€1,234.50"),
        (0.125, "percentage", "12.5%"),
        (12, "hours", "12.00 h"),
        (2.6, "integer", "3"),
        (1.0 / 3.0, "decimal", "0.33"),
        (date(2024, 3, 4), "date", "2024-03-04"),
        ("Acme", "text", "Acme"),
    ],
)
def test_format_value(value: object, value_format: str, expected: str) -> None:
    """Values should be rendered according to their column format."""
    assert format_value(value, value_format, SETTINGS) == expected


def test_format_value_uses_currency_symbol() -> None:
    """Currency values should use the configured symbol."""
    settings = ReportSettings(currency_symbol="$")

    assert format_value(10, "currency", settings) == "$10.00"


def test_format_report_summary_lines() -> None:
    """The summary report should list totals without markup when uncolored."""
    text = format_report(_report(), SETTINGS, color_enabled=False)

    lines = text.splitlines()
    assert lines[0] == "Summary (current-year)"
    assert "  Total hours: 12.00 h" in lines
    assert "  Total invoiced: €900.00" in lines
    assert "  Target hours: 168.00 h" in lines
    assert "  Entries: 2" in lines


def test_format_report_full_view_adds_trend_and_totals() -> None:
    """The full view should add the trend and the year and all-time blocks."""
    text = format_report(_report("VIEW full"), SETTINGS, color_enabled=False)

    assert "Trend (trend)" in text
    assert "March 2024" in text
    assert "Year" in text.splitlines()
    assert "All time" in text.splitlines()


def test_format_trend_without_data() -> None:
    """An empty trend should say so."""
    report = _report("WHERE project = 'Nope'")

    assert format_trend(report.trend_data, SETTINGS, color_enabled=False) == ["No data"]


def test_summary_formatter_output() -> None:
    """The summary formatter should print the formatted report."""
    output = _render(_report(), "summary")

    assert "Total hours: 12.00 h" in output


def test_table_formatter_builds_table() -> None:
    """The table formatter should render SHOW columns as a table."""
    report = _report("WHERE year = 2024 AND month = 3 SHOW date, project, hours")

    prepared = get_report_formatter("table").prepare(report, SETTINGS, False, "github-dark")

    assert isinstance(prepared.operations[0].renderable, Table)
    output = _render(report, "table")
    assert "2024-03-04" in output
    assert "Acme Website" in output
    assert "8.00 h" in output


def test_table_formatter_without_rows() -> None:
    """An empty table should print a notice instead."""
    output = _render(_report("WHERE project = 'Nope'"), "table")

    assert output.strip() == "No results"


def test_json_formatter_writes_plain_json() -> None:
    """Uncolored JSON output should be valid JSON of the report."""
    output = _render(_report(), "json")

    payload = json.loads(output)
    assert payload["summary"]["totalHours"] == 12.0
    assert payload["monthlyData"][0]["label"] == "March 2024"


def test_json_output_is_highlighted_when_colored() -> None:
    """Colored JSON output should use syntax highlighting."""
    prepared = prepare_json_output("{}", color_enabled=True, out_theme="  ")

    renderable = prepared.operations[0].renderable
    assert isinstance(renderable, Syntax)


def test_get_report_formatter_rejects_unknown_format() -> None:
    """Unknown formats should list the supported ones."""
    with pytest.raises(OutputFormatError) as exc_info:
        get_report_formatter("xml")

    assert str(exc_info.value) == (
        "Unsupported output format 'xml'. Supported formats: summary, table, json"
    )


def test_get_report_formatter_normalizes_name() -> None:
    """Format names should be case-insensitive."""
    assert get_report_formatter(" JSON ") is get_report_formatter("json")


def test_to_json_compatible() -> None:
    """Dates, tuples and nested mappings should become JSON values."""
    value = {"day": date(2024, 3, 4), "items": (1, 2), "nested": {3: None}}

    assert to_json_compatible(value) == {
        "day": "2024-03-04",
        "items": [1, 2],
        "nested": {"3": None},
    }
