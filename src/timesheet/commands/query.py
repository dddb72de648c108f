"""Query command running report queries against time entries."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from datetime import date

import click
import typer

from timesheet import config as config_module
from timesheet.output_format import (
    DEFAULT_OUTPUT_THEME,
    OutputFormat,
    OutputFormatError,
    get_report_formatter,
    print_prepared_output,
)
from timesheet.query_language import ExecutionContext, QueryLanguageError, compile_query_text
from timesheet.settings import ProjectType, ReportSettings
from timesheet.sources import load_entries
from timesheet.tui import build_console, processing_status, setup_output


@dataclass
class QueryArgs:
    """Arguments for the query command."""

    query: str
    files: list[str] | None
    config: str
    color_flag: bool | None
    out: str
    out_theme: str
    hours_per_workday: float
    project_type: str
    budget_hours: float | None
    default_rate: float | None
    today: str | None


def build_settings(args: QueryArgs) -> ReportSettings:
    """Build report settings from command arguments."""
    if args.hours_per_workday < 0:
        raise typer.BadParameter("--hours-per-workday must be non-negative")
    if args.budget_hours is not None and args.budget_hours < 0:
        raise typer.BadParameter("--budget-hours must be non-negative")
    if args.default_rate is not None and args.default_rate < 0:
        raise typer.BadParameter("--default-rate must be non-negative")
    try:
        project_type = ProjectType(args.project_type)
    except ValueError as exc:
        choices = ", ".join(item.value for item in ProjectType)
        raise typer.BadParameter(f"--project-type must be one of: {choices}") from exc
    return ReportSettings(
        hours_per_workday=args.hours_per_workday,
        project_type=project_type,
        budget_hours=args.budget_hours,
        default_rate=args.default_rate,
    )


def parse_today(value: str | None) -> date:
    """Parse the --today argument, defaulting to the current date."""
    if value is None:
        return date.today()
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise typer.BadParameter(f"--today must be an ISO date, got '{value}'") from exc


def run_query(args: QueryArgs) -> None:
    """Run the query command."""
    color_enabled = setup_output(args)
    console = build_console(color_enabled)
    settings = build_settings(args)
    today = parse_today(args.today)
    try:
        formatter = get_report_formatter(args.out)
    except OutputFormatError as exc:
        raise click.UsageError(str(exc)) from exc
    query_text = config_module.resolve_query_text(args.query)

    with processing_status(console, color_enabled):
        try:
            compiled_query = compile_query_text(query_text, settings=settings)
        except QueryLanguageError as exc:
            raise click.UsageError(str(exc)) from exc

        entries = load_entries(args.files)
        report = compiled_query(entries, ExecutionContext(today=today))
        prepared_output = formatter.prepare(report, settings, color_enabled, args.out_theme)

    print_prepared_output(console, prepared_output)


def register(app: typer.Typer) -> None:
    """Register the query command."""

    @app.command("query")
    def query_command(  # noqa: PLR0913
        query: str = typer.Argument(
            ..., metavar="QUERY", help="Report query, or @name for a configured query"
        ),
        files: list[str] | None = typer.Argument(  # noqa: B008
            None, metavar="FILE", help="Org-mode or JSON time entry files or directories"
        ),
        config: str = typer.Option(
            config_module.DEFAULT_CONFIG_NAME,
            "--config",
            metavar="FILE",
            help="Config file name to load from current directory",
        ),
        color_flag: bool | None = typer.Option(
            None,
            "--color/--no-color",
            help="Force colored output",
        ),
        out: str = typer.Option(
            OutputFormat.SUMMARY,
            "--out",
            help="Output format: summary, table or json",
        ),
        out_theme: str = typer.Option(
            DEFAULT_OUTPUT_THEME,
            "--out-theme",
            help="Syntax theme for highlighted output blocks",
        ),
        hours_per_workday: float = typer.Option(
            8.0,
            "--hours-per-workday",
            metavar="HOURS",
            help="Target hours per working day used for utilization",
        ),
        project_type: str = typer.Option(
            ProjectType.HOURLY,
            "--project-type",
            help="Billing model: hourly, fixed-hours or retainer",
        ),
        budget_hours: float | None = typer.Option(
            None,
            "--budget-hours",
            metavar="HOURS",
            help="Hour budget for fixed-hours and retainer projects",
        ),
        default_rate: float | None = typer.Option(
            None,
            "--default-rate",
            metavar="RATE",
            help="Hourly rate for entries without one",
        ),
        today: str | None = typer.Option(
            None,
            "--today",
            metavar="DATE",
            help="Evaluation date for relative dates and the current year (YYYY-MM-DD)",
        ),
    ) -> None:
        """Run a report query against tracked time."""
        args = QueryArgs(
            query=query,
            files=files,
            config=config,
            color_flag=color_flag,
            out=out,
            out_theme=out_theme,
            hours_per_workday=hours_per_workday,
            project_type=project_type,
            budget_hours=budget_hours,
            default_rate=default_rate,
            today=today,
        )
        config_module.log_applied_config_defaults("query")
        config_module.log_command_arguments(args, "query")
        run_query(args)
