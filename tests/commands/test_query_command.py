"""Tests for query command behavior and output formatting."""

from __future__ import annotations

import json
import os

import click
import pytest
import typer
from typer.testing import CliRunner

from timesheet import config
from timesheet.cli import app
from timesheet.commands.query import QueryArgs, build_settings, parse_today, run_query
from timesheet.output_format import OutputFormat
from timesheet.settings import ProjectType


FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "..", "fixtures")
ENTRIES_PATH = os.path.join(FIXTURES_DIR, "entries.json")
ORG_PATH = os.path.join(FIXTURES_DIR, "sample.org")


def _make_args(files: list[str], query: str, **overrides: object) -> QueryArgs:
    args = QueryArgs(
        query=query,
        files=files,
        config=".timesheet.json",
        color_flag=False,
        out=OutputFormat.SUMMARY,
        out_theme="github-dark",
        hours_per_workday=8.0,
        project_type=ProjectType.HOURLY,
        budget_hours=None,
        default_rate=None,
        today="2024-06-01",
    )
    for key, value in overrides.items():
        setattr(args, key, value)
    return args


def test_run_query_prints_summary(capsys: pytest.CaptureFixture[str]) -> None:
    """The summary output should list totals for the selected entries."""
    args = _make_args([ENTRIES_PATH], "WHERE year = 2024 AND month = 3")

    run_query(args)
    captured = capsys.readouterr().out

    assert "Summary (current-year)" in captured
    assert "Total hours: 12.00 h" in captured
    assert "Total invoiced: €900.00" in captured


def test_run_query_json_output(capsys: pytest.CaptureFixture[str]) -> None:
    """JSON output should contain the full report."""
    args = _make_args([ORG_PATH], "PERIOD all-time", out=OutputFormat.JSON)

    run_query(args)
    payload = json.loads(capsys.readouterr().out)

    assert payload["period"] == "all-time"
    assert payload["summary"]["totalHours"] == 18.0
    assert payload["summary"]["totalInvoiced"] == 1500.0
    assert [row["label"] for row in payload["monthlyData"]] == ["April 2024", "March 2024"]


def test_run_query_table_output(capsys: pytest.CaptureFixture[str]) -> None:
    """Table output should show the SHOW columns."""
    args = _make_args(
        [ENTRIES_PATH],
        "SHOW project, sum(hours) AS total GROUP BY project",
        out=OutputFormat.TABLE,
    )

    run_query(args)
    captured = capsys.readouterr().out

    assert "Acme Website" in captured
    assert "Globex Support" in captured
    assert "12.00 h" in captured


def test_run_query_budget_settings(capsys: pytest.CaptureFixture[str]) -> None:
    """Budget options should be reported for retainer projects."""
    args = _make_args(
        [ENTRIES_PATH],
        "WHERE month = 3",
        project_type=ProjectType.RETAINER,
        budget_hours=20.0,
    )

    run_query(args)
    captured = capsys.readouterr().out

    assert "Budget: 12.00 h / 20.00 h (60.0%)" in captured


def test_run_query_named_query(
    capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    """@name should run the configured query."""
    monkeypatch.setitem(config.CONFIG_NAMED_QUERIES, "april", "WHERE month = april")
    args = _make_args([ENTRIES_PATH], "@april")

    run_query(args)
    captured = capsys.readouterr().out

    assert "Total hours: 6.00 h" in captured


@pytest.mark.parametrize(
    "query",
    [
        "FOO bar",
        "VIEW bogus",
        "HAVING sum(hours) > 1",
    ],
)
def test_run_query_invalid_query_raises_usage_error(query: str) -> None:
    """Parse, validation and interpretation errors should become usage errors."""
    args = _make_args([ENTRIES_PATH], query)

    with pytest.raises(click.UsageError):
        run_query(args)


def test_run_query_unsupported_output_raises_usage_error() -> None:
    """Unknown output formats should be usage errors."""
    args = _make_args([ENTRIES_PATH], "VIEW full", out="xml")

    with pytest.raises(click.UsageError, match="Unsupported output format 'xml'"):
        run_query(args)


def test_run_query_missing_file() -> None:
    """Missing input files should be reported as bad parameters."""
    args = _make_args([os.path.join(FIXTURES_DIR, "missing.org")], "VIEW full")

    with pytest.raises(typer.BadParameter, match="not found"):
        run_query(args)


def test_build_settings_rejects_invalid_values() -> None:
    """Negative numbers and unknown project types should be rejected."""
    with pytest.raises(typer.BadParameter, match="--hours-per-workday"):
        build_settings(_make_args([], "", hours_per_workday=-1.0))
    with pytest.raises(typer.BadParameter, match="--budget-hours"):
        build_settings(_make_args([], "", budget_hours=-5.0))
    with pytest.raises(typer.BadParameter, match="--project-type must be one of"):
        build_settings(_make_args([], "", project_type="monthly"))


def test_build_settings_maps_arguments() -> None:
    """Arguments should map onto report settings."""
    settings = build_settings(
        _make_args([], "", project_type="fixed-hours", budget_hours=40.0, default_rate=80.0)
    )

    assert settings.project_type == ProjectType.FIXED_HOURS
    assert settings.budget_hours == 40.0
    assert settings.default_rate == 80.0
    assert settings.tracks_budget is True


def test_parse_today() -> None:
    """--today should accept ISO dates only."""
    assert parse_today("2024-06-01").isoformat() == "2024-06-01"
    with pytest.raises(typer.BadParameter, match="--today must be an ISO date"):
        parse_today("June 1st")


def test_cli_runner_query() -> None:
    """CliRunner should execute the query command."""
    runner = CliRunner()

    result = runner.invoke(
        app,
        [
            "query",
            "WHERE year = 2024 AND month = 3",
            ENTRIES_PATH,
            "--no-color",
            "--today",
            "2024-06-01",
        ],
    )

    assert result.exit_code == 0
    assert "Total hours: 12.00 h" in result.stdout


def test_cli_runner_query_json() -> None:
    """CliRunner should print JSON reports."""
    runner = CliRunner()

    result = runner.invoke(
        app,
        [
            "query",
            "VIEW full",
            ENTRIES_PATH,
            "--no-color",
            "--out",
            "json",
            "--today",
            "2024-06-01",
        ],
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["view"] == "full"
    assert payload["yearSummary"]["totalHours"] == 18.0
    assert payload["allTimeSummary"]["totalHours"] == 23.0


def test_cli_runner_query_invalid_exits_with_usage_error() -> None:
    """Invalid queries should exit with the usage error code."""
    runner = CliRunner()

    result = runner.invoke(app, ["query", "FOO bar", ENTRIES_PATH, "--no-color"])

    assert result.exit_code == 2
