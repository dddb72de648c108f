"""Tests for the validate command."""

from __future__ import annotations

import io
import json

import click
import pytest
from rich.console import Console
from typer.testing import CliRunner

from timesheet.cli import app
from timesheet.commands.validate import ValidateArgs, run_validate


def _make_args(query: str, **overrides: object) -> ValidateArgs:
    args = ValidateArgs(
        query=query,
        config=".timesheet.json",
        color_flag=False,
        json_output=False,
        out_theme="github-dark",
    )
    for key, value in overrides.items():
        setattr(args, key, value)
    return args


def _run(args: ValidateArgs) -> tuple[bool, str]:
    buffer = io.StringIO()
    valid = run_validate(args, Console(file=buffer, width=120, no_color=True))
    return (valid, buffer.getvalue())


def test_run_validate_valid_query_report() -> None:
    """A valid query should print its normalized form, analysis and AST."""
    valid, output = _run(_make_args("where year=2024 show project, hours"))

    lines = output.splitlines()
    assert valid is True
    assert lines[0] == "Valid query"
    assert "Normalized: WHERE year = 2024\nSHOW project, hours" in output
    assert "Complexity: simple" in lines
    assert "Fields: year, project, hours" in lines
    assert "Filters: year" in lines
    assert "AST" in lines
    assert "  WhereClause" in lines


def test_run_validate_invalid_query_lists_errors() -> None:
    """Validation errors should be listed and reported as invalid."""
    valid, output = _run(_make_args("HAVING sum(hours) > 1"))

    assert valid is False
    assert output.splitlines()[0] == "Invalid query"
    assert "  error: HAVING clause requires GROUP BY clause (at Query)" in output


def test_run_validate_lists_warnings() -> None:
    """Warnings should be listed without making the query invalid."""
    valid, output = _run(_make_args("SERVICE gardening"))

    assert valid is True
    assert "  warning: Non-standard service category: gardening" in output


def test_run_validate_json_report() -> None:
    """--json should print the analysis and the AST as JSON."""
    valid, output = _run(_make_args("WHERE year = 2024 VIEW full", json_output=True))

    payload = json.loads(output)
    assert valid is True
    assert payload["valid"] is True
    assert payload["errors"] == []
    assert payload["normalized"] == "WHERE year = 2024\nVIEW full"
    assert payload["complexity"] == "simple"
    assert payload["statistics"]["totalNodes"] == 6
    assert payload["ast"]["type"] == "Query"
    assert payload["ast"]["clauses"][1] == {"type": "ViewClause", "view": "full"}


def test_run_validate_parse_error_raises_usage_error() -> None:
    """Parse errors should become usage errors."""
    with pytest.raises(click.UsageError, match="Unexpected 'FOO' at line 1, column 1"):
        _run(_make_args("FOO bar"))


def test_cli_runner_validate_valid() -> None:
    """CliRunner should validate queries and exit cleanly."""
    runner = CliRunner()

    result = runner.invoke(app, ["validate", "WHERE year = 2024", "--no-color"])

    assert result.exit_code == 0
    assert "Valid query" in result.stdout
    assert "Normalized: WHERE year = 2024" in result.stdout


def test_cli_runner_validate_invalid_exits_with_error() -> None:
    """Invalid queries should exit with status 1."""
    runner = CliRunner()

    result = runner.invoke(app, ["validate", "UTILIZATION bogus", "--no-color"])

    assert result.exit_code == 1
    assert "Invalid query" in result.stdout


def test_cli_runner_validate_json() -> None:
    """CliRunner should print validation JSON."""
    runner = CliRunner()

    result = runner.invoke(app, ["validate", "VIEW full", "--no-color", "--json"])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["normalized"] == "VIEW full"
