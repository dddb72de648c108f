"""Rich markup helpers for report text."""

import sys

from rich.markup import escape


UNDER_UTILIZED = 0.6
OVER_UTILIZED = 1.0

TITLE_STYLE = "bold white"
LABEL_STYLE = "dim white"
VALUE_STYLE = "magenta"


def should_use_color(color_flag: bool | None) -> bool:
    """Decide on color, falling back to whether stdout is a terminal."""
    return sys.stdout.isatty() if color_flag is None else color_flag


def colorize(text: str, style: str, enabled: bool) -> str:
    """Wrap text in a Rich style tag.

    Square brackets inside text are escaped so entry data never reads as markup.
    """
    return f"[{style}]{escape(text)}[/]" if enabled else text


def bright_white(text: str, enabled: bool) -> str:
    return colorize(text, TITLE_STYLE, enabled)


def dim_white(text: str, enabled: bool) -> str:
    return colorize(text, LABEL_STYLE, enabled)


def magenta(text: str, enabled: bool) -> str:
    return colorize(text, VALUE_STYLE, enabled)


def get_utilization_color(utilization: float, enabled: bool) -> str:
    """Style for a tracked/target hours ratio: red above 100%, yellow below 60%."""
    if not enabled:
        return ""
    if utilization > OVER_UTILIZED:
        return "bold red"
    return "bold yellow" if utilization < UNDER_UTILIZED else "bold green"
