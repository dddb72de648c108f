"""Validate command checking report queries without loading entries."""

from __future__ import annotations

import json
from dataclasses import dataclass

import click
import typer
from rich.console import Console

from timesheet import config as config_module
from timesheet.color import bright_white, colorize, dim_white
from timesheet.output_format import (
    DEFAULT_OUTPUT_THEME,
    PreparedOutput,
    prepare_json_output,
    print_prepared_output,
    text_output,
)
from timesheet.query_language import (
    QueryParseError,
    QueryParser,
    ValidationResult,
    analyze_query,
    create_default_registry,
    format_query,
    print_ast,
)
from timesheet.query_language.analysis import QueryAnalysis
from timesheet.query_language.ast import Query
from timesheet.query_language.parser import validate_query
from timesheet.query_language.serialization import node_to_dict
from timesheet.tui import build_console, lines_to_text, setup_output


@dataclass
class ValidateArgs:
    """Arguments for the validate command."""

    query: str
    config: str
    color_flag: bool | None
    json_output: bool
    out_theme: str


def _text_report(
    query: Query, result: ValidationResult, analysis: QueryAnalysis, color_enabled: bool
) -> str:
    status = (
        colorize("Valid query", "bold green", color_enabled)
        if result.valid
        else colorize("Invalid query", "bold red", color_enabled)
    )
    lines = [status]
    lines.extend(f"  error: {error}" for error in result.errors)
    lines.extend(f"  warning: {warning}" for warning in result.warnings)
    lines.append("")
    lines.append(f"{dim_white('Normalized:', color_enabled)} {format_query(query)}")
    lines.append(f"{dim_white('Complexity:', color_enabled)} {analysis.complexity}")
    lines.append(f"{dim_white('Fields:', color_enabled)} {', '.join(analysis.fields) or '-'}")
    lines.append(f"{dim_white('Filters:', color_enabled)} {', '.join(analysis.filters) or '-'}")
    lines.append("")
    lines.append(bright_white("AST", color_enabled))
    lines.extend(print_ast(query).splitlines())
    return lines_to_text(lines)


def _json_report(query: Query, result: ValidationResult, analysis: QueryAnalysis) -> str:
    statistics = analysis.statistics
    payload = {
        "valid": result.valid,
        "errors": list(result.errors),
        "warnings": list(result.warnings),
        "normalized": format_query(query),
        "complexity": str(analysis.complexity),
        "fields": list(analysis.fields),
        "filters": list(analysis.filters),
        "statistics": {
            "totalNodes": statistics.total_nodes,
            "nodesByType": statistics.nodes_by_type,
            "depth": statistics.depth,
            "clauseCount": statistics.clause_count,
            "conditionCount": statistics.condition_count,
            "fieldCount": statistics.field_count,
        },
        "ast": node_to_dict(query),
    }
    return json.dumps(payload, ensure_ascii=True)


def prepare_validation_output(
    query: Query, result: ValidationResult, args: ValidateArgs, color_enabled: bool
) -> PreparedOutput:
    """Prepare the validation report in text or JSON form."""
    analysis = analyze_query(query)
    if args.json_output:
        return prepare_json_output(
            _json_report(query, result, analysis), color_enabled, args.out_theme
        )
    return text_output(_text_report(query, result, analysis, color_enabled), color_enabled)


def run_validate(args: ValidateArgs, console: Console | None = None) -> bool:
    """Run the validate command and return whether the query is valid."""
    color_enabled = setup_output(args)
    console = console if console is not None else build_console(color_enabled)
    query_text = config_module.resolve_query_text(args.query)

    registry = create_default_registry()
    try:
        query = QueryParser(registry).parse(query_text)
    except QueryParseError as exc:
        raise click.UsageError(str(exc)) from exc

    result = validate_query(query, registry)
    print_prepared_output(console, prepare_validation_output(query, result, args, color_enabled))
    return result.valid


def register(app: typer.Typer) -> None:
    """Register the validate command."""

    @app.command("validate")
    def validate_command(
        query: str = typer.Argument(
            ..., metavar="QUERY", help="Report query, or @name for a configured query"
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
        json_output: bool = typer.Option(
            False,
            "--json",
            help="Print the analysis and AST as JSON",
        ),
        out_theme: str = typer.Option(
            DEFAULT_OUTPUT_THEME,
            "--out-theme",
            help="Syntax theme for highlighted output blocks",
        ),
    ) -> None:
        """Parse and validate a report query, printing its analysis and AST."""
        args = ValidateArgs(
            query=query,
            config=config,
            color_flag=color_flag,
            json_output=json_output,
            out_theme=out_theme,
        )
        config_module.log_applied_config_defaults("validate")
        config_module.log_command_arguments(args, "validate")
        if not run_validate(args):
            raise typer.Exit(code=1)
