"""Terminal output formatting for the timesheet CLI."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import date
from typing import Protocol

from rich.console import Console
from rich.table import Table

from timesheet.color import (
    bright_white,
    colorize,
    dim_white,
    get_utilization_color,
    magenta,
    should_use_color,
)
from timesheet.query_language.executor import ReportData, Summary, TrendData
from timesheet.query_language.interpreter import ColumnSpec
from timesheet.settings import ReportSettings


BAR_WIDTH = 30
BAR_CHARACTER = "█"

DEFAULT_TABLE_COLUMNS = (
    ColumnSpec("label", "Period", "text"),
    ColumnSpec("hours", "Hours", "hours"),
    ColumnSpec("invoiced", "Invoiced", "currency"),
    ColumnSpec("rate", "Rate", "currency"),
    ColumnSpec("utilization", "Utilization", "percentage"),
)


class ColorArgs(Protocol):
    """Protocol for args carrying the --color/--no-color switch."""

    color_flag: bool | None


def setup_output(args: ColorArgs) -> bool:
    """Resolve whether output should be colored for a command."""
    return should_use_color(args.color_flag)


def build_console(color_enabled: bool) -> Console:
    """Build the console used for all command output."""
    return Console(no_color=not color_enabled, highlight=False, soft_wrap=not color_enabled)


@contextmanager
def processing_status(console: Console, color_enabled: bool) -> Iterator[None]:
    """Show a spinner on interactive terminals while a command works."""
    if not color_enabled or not console.is_terminal:
        yield
        return
    with console.status("Processing...", spinner="dots"):
        yield


def print_output(console: Console, text: str, color_enabled: bool, end: str = "\n") -> None:
    """Print text, interpreting Rich markup only when color is enabled."""
    console.print(text, end=end, markup=color_enabled, highlight=False)


def lines_to_text(lines: list[str]) -> str:
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def format_value(value: object, value_format: str, settings: ReportSettings) -> str:
    """Format one report value for display.

    Args:
        value: Raw value from a report row
        value_format: Column format name (currency, percentage, hours, ...)
        settings: Report settings providing the currency symbol

    Returns:
        Display text; missing values render as a dash
    """
    if value is None:
        return "-"
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool) or not isinstance(value, int | float):
        return str(value)

    match value_format:
        case "currency":
            return f"{settings.currency_symbol}{value:,.2f}"
        case "percentage":
            return f"{value * 100:.1f}%"
        case "hours":
            return f"{value:.2f} h"
        case "integer":
            return str(round(value))
        case "decimal":
            return f"{value:.2f}"
        case _:
            return str(value)


def _summary_line(label: str, value: str, color_enabled: bool, style: str | None = None) -> str:
    text = colorize(value, style, color_enabled) if style else magenta(value, color_enabled)
    return f"  {dim_white(label + ':', color_enabled)} {text}"


def format_summary(
    title: str, summary: Summary, settings: ReportSettings, color_enabled: bool
) -> list[str]:
    """Format one summary block as display lines."""
    lines = [bright_white(title, color_enabled)]
    lines.append(
        _summary_line(
            "Total hours", format_value(summary.total_hours, "hours", settings), color_enabled
        )
    )
    lines.append(
        _summary_line(
            "Total invoiced",
            format_value(summary.total_invoiced, "currency", settings),
            color_enabled,
        )
    )
    lines.append(
        _summary_line(
            "Utilization",
            format_value(summary.utilization, "percentage", settings),
            color_enabled,
            get_utilization_color(summary.utilization, color_enabled),
        )
    )
    lines.append(
        _summary_line(
            "Target hours", format_value(summary.target_hours, "hours", settings), color_enabled
        )
    )
    lines.append(_summary_line("Entries", str(summary.entry_count), color_enabled))
    if summary.budget_hours is not None:
        used = format_value(summary.budget_used, "hours", settings)
        budget = format_value(summary.budget_hours, "hours", settings)
        progress = format_value(summary.budget_progress, "percentage", settings)
        lines.append(_summary_line("Budget", f"{used} / {budget} ({progress})", color_enabled))
    return lines


def format_trend(trend: TrendData, settings: ReportSettings, color_enabled: bool) -> list[str]:
    """Render the trend series as horizontal bars, oldest month first."""
    if not trend.labels:
        return [dim_white("No data", color_enabled)]
    peak = max(trend.hours) or 1.0
    label_width = max(len(label) for label in trend.labels)
    lines: list[str] = []
    for label, hours, utilization in zip(
        trend.labels, trend.hours, trend.utilization, strict=True
    ):
        bar = BAR_CHARACTER * round(hours / peak * BAR_WIDTH)
        style = get_utilization_color(utilization, color_enabled)
        bar_text = colorize(bar, style, color_enabled) if style else bar
        lines.append(
            f"{label.ljust(label_width)} {bar_text} {format_value(hours, 'hours', settings)}"
        )
    return lines


def format_extensions(extensions: Mapping[str, object], color_enabled: bool) -> list[str]:
    """Format extension report sections as indented key/value lines."""
    lines: list[str] = []
    for kind, section in extensions.items():
        lines.append(bright_white(kind, color_enabled))
        sections = section if isinstance(section, list) else [section]
        for item in sections:
            if not isinstance(item, Mapping):
                lines.append(f"  {item}")
                continue
            for key, value in item.items():
                lines.append(f"  {dim_white(str(key) + ':', color_enabled)} {value}")
    return lines


def format_report(report: ReportData, settings: ReportSettings, color_enabled: bool) -> str:
    """Format a report for the summary output."""
    lines = format_summary(
        f"Summary ({report.period})", report.summary, settings, color_enabled
    )
    if report.view in ("full", "chart") or report.chart is not None:
        lines.append("")
        lines.append(bright_white(f"Trend ({report.chart or 'trend'})", color_enabled))
        lines.extend(format_trend(report.trend_data, settings, color_enabled))
    if report.view == "full":
        lines.append("")
        lines.extend(format_summary("Year", report.year_summary, settings, color_enabled))
        lines.append("")
        lines.extend(
            format_summary("All time", report.all_time_summary, settings, color_enabled)
        )
    if report.extensions:
        lines.append("")
        lines.extend(format_extensions(report.extensions, color_enabled))
    return lines_to_text(lines)


def build_report_table(report: ReportData, settings: ReportSettings) -> Table:
    """Build a Rich table from report rows, or from monthly data without SHOW."""
    if report.columns:
        columns = report.columns
        rows = report.rows
    else:
        columns = DEFAULT_TABLE_COLUMNS
        rows = tuple(row.values() for row in report.monthly_data)

    table = Table(show_header=True, header_style="bold")
    for column in columns:
        numeric = column.format in ("currency", "percentage", "hours", "decimal", "integer")
        table.add_column(column.header, justify="right" if numeric else "left")
    for row in rows:
        table.add_row(
            *(format_value(row.get(column.key), column.format, settings) for column in columns)
        )
    return table
