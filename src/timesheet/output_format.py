"""Report output formats.

Formatters turn an executed report into a `PreparedOutput`, a short list of
console operations. Preparing runs inside the status spinner while printing
happens after it stops, so nothing is written while the spinner is live.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from enum import StrEnum
from typing import Protocol

from rich.console import Console
from rich.syntax import Syntax

from timesheet.query_language.executor import ReportData
from timesheet.settings import ReportSettings
from timesheet.tui import build_report_table, format_report, print_output


logger = logging.getLogger("timesheet")

DEFAULT_OUTPUT_THEME = "github-dark"


class OutputFormat(StrEnum):
    """Values accepted by --out."""

    SUMMARY = "summary"
    TABLE = "table"
    JSON = "json"


class OperationKind(StrEnum):
    PLAIN = "plain"
    MARKUP = "markup"
    RENDERABLE = "renderable"


@dataclass(frozen=True)
class OutputOperation:
    kind: OperationKind
    text: str = ""
    renderable: object | None = None
    color_enabled: bool = False


@dataclass(frozen=True)
class PreparedOutput:
    operations: tuple[OutputOperation, ...]


def text_output(text: str, color_enabled: bool) -> PreparedOutput:
    """Output holding report text that may contain Rich markup."""
    return PreparedOutput((OutputOperation(OperationKind.MARKUP, text, None, color_enabled),))


def renderable_output(renderable: object) -> PreparedOutput:
    return PreparedOutput((OutputOperation(OperationKind.RENDERABLE, renderable=renderable),))


class ReportOutputFormatter(Protocol):
    def prepare(
        self, report: ReportData, settings: ReportSettings, color_enabled: bool, out_theme: str
    ) -> PreparedOutput: ...


class OutputFormatError(RuntimeError):
    """Raised for an --out value with no formatter."""


def print_prepared_output(console: Console, prepared_output: PreparedOutput) -> None:
    for operation in prepared_output.operations:
        match operation.kind:
            case OperationKind.PLAIN:
                # Bypass Rich so JSON is never wrapped at the console width.
                console.file.write(f"{operation.text}\n")
                console.file.flush()
            case OperationKind.MARKUP:
                print_output(console, operation.text, operation.color_enabled, end="")
            case OperationKind.RENDERABLE:
                console.print(operation.renderable)


def prepare_json_output(text: str, color_enabled: bool, out_theme: str) -> PreparedOutput:
    """Highlight JSON with the --out-theme Pygments style, or write it as is."""
    if not color_enabled:
        return PreparedOutput((OutputOperation(OperationKind.PLAIN, text),))
    theme = out_theme.strip() or DEFAULT_OUTPUT_THEME
    return renderable_output(Syntax(text, "json", theme=theme, word_wrap=True))


def to_json_compatible(value: object) -> object:
    """Recursively convert dates, mappings and sequences for json.dumps."""
    match value:
        case None | bool() | int() | float() | str():
            return value
        case date():
            return value.isoformat()
        case Mapping():
            return {str(key): to_json_compatible(item) for key, item in value.items()}
        case Iterable():
            return [to_json_compatible(item) for item in value]
    return str(value)


class SummaryOutputFormatter:
    """Human readable summary, one section per report part."""

    def prepare(
        self, report: ReportData, settings: ReportSettings, color_enabled: bool, out_theme: str
    ) -> PreparedOutput:
        return text_output(format_report(report, settings, color_enabled), color_enabled)


class TableOutputFormatter:
    """SHOW columns as a Rich table, falling back to the monthly breakdown."""

    def prepare(
        self, report: ReportData, settings: ReportSettings, color_enabled: bool, out_theme: str
    ) -> PreparedOutput:
        if not report.rows and not report.monthly_data:
            return text_output("No results\n", False)
        return renderable_output(build_report_table(report, settings))


class JsonOutputFormatter:
    def prepare(
        self, report: ReportData, settings: ReportSettings, color_enabled: bool, out_theme: str
    ) -> PreparedOutput:
        text = json.dumps(to_json_compatible(report.to_dict()), ensure_ascii=True)
        return prepare_json_output(text, color_enabled, out_theme)


_REPORT_FORMATTERS: dict[str, ReportOutputFormatter] = {
    OutputFormat.SUMMARY: SummaryOutputFormatter(),
    OutputFormat.TABLE: TableOutputFormatter(),
    OutputFormat.JSON: JsonOutputFormatter(),
}


def get_report_formatter(output_format: str) -> ReportOutputFormatter:
    """Look up the formatter for an --out value, ignoring case and whitespace.

    Raises:
        OutputFormatError: If no formatter handles the format
    """
    name = output_format.strip().lower()
    if name not in _REPORT_FORMATTERS:
        supported = ", ".join(OutputFormat)
        raise OutputFormatError(
            f"Unsupported output format '{output_format}'. Supported formats: {supported}"
        )
    logger.info("Using %s output", name)
    return _REPORT_FORMATTERS[name]
