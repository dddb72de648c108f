"""timesheet - Query tracked time with a small report language."""

from timesheet.cli import main
from timesheet.entries import TimeEntry
from timesheet.query_language import compile_query_text, parse_query
from timesheet.settings import ProjectType, ReportSettings
from timesheet.sources import load_entries


__version__ = "0.1.0"

__all__ = [
    "ProjectType",
    "ReportSettings",
    "TimeEntry",
    "__version__",
    "compile_query_text",
    "load_entries",
    "main",
    "parse_query",
]
