"""Configuration file support for the timesheet CLI.

A config file is a JSON object with two optional sections:

    {
      "defaults": {"--hours-per-workday": 6, "--out": "table"},
      "queries": {"march": "WHERE year = 2024 AND month = 3"}
    }

`defaults` supplies command option defaults keyed by option name and
`queries` names queries that can be run as `timesheet query @march`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import TypeGuard

import typer

from timesheet.settings import ProjectType


DEFAULT_CONFIG_NAME = ".timesheet.json"
NAMED_QUERY_PREFIX = "@"
CONFIG_SECTIONS = frozenset({"defaults", "queries"})
OUTPUT_FORMAT_NAMES = frozenset({"summary", "table", "json"})

# Filled in by cli.main before commands run.
CONFIG_DEFAULTS: dict[str, object] = {}
CONFIG_NAMED_QUERIES: dict[str, str] = {}

logger = logging.getLogger("timesheet")


@dataclass(frozen=True)
class ConfigOption:
    """One option that may be defaulted from the config file."""

    name: str
    dest: str
    parse: Callable[[str, object], object | None]


@dataclass
class LoadedCliConfig:
    """Defaults and named queries read from the config file."""

    defaults: dict[str, object]
    named_queries: dict[str, str]


def load_config(filepath: str) -> tuple[dict[str, object], bool]:
    """Read a JSON config file.

    Returns:
        The config object and whether the file was malformed. A missing file
        is not malformed and yields an empty config.
    """
    try:
        with open(filepath, encoding="utf-8") as f:
            payload = json.load(f)
    except FileNotFoundError:
        return ({}, False)
    except (OSError, json.JSONDecodeError):
        return ({}, True)
    if not isinstance(payload, dict):
        return ({}, True)
    return (payload, False)


def is_valid_date_argument(value: str) -> bool:
    """Return whether value is an ISO `YYYY-MM-DD` date."""
    try:
        date.fromisoformat(value.strip())
    except ValueError:
        return False
    return True


def is_string_dict(value: object) -> TypeGuard[dict[str, str]]:
    """Return whether value maps strings to strings."""
    if not isinstance(value, dict):
        return False
    return all(isinstance(key, str) and isinstance(item, str) for key, item in value.items())


def validate_number_option(value: object, min_value: float | None) -> float | None:
    """Return value as a float, or None if it is not a number at least min_value."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if min_value is not None and value < min_value:
        return None
    return float(value)


def validate_str_option(key: str, value: object) -> str | None:
    """Return a non-empty string value, or None if it is invalid for the option."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    match key:
        case "--out" if text.lower() not in OUTPUT_FORMAT_NAMES:
            return None
        case "--project-type" if text not in {item.value for item in ProjectType}:
            return None
        case "--today" if not is_valid_date_argument(text):
            return None
    return value


def _non_negative_number(_name: str, value: object) -> object | None:
    return validate_number_option(value, 0)


def _flag(_name: str, value: object) -> object | None:
    return value if isinstance(value, bool) else None


CONFIG_OPTIONS = (
    ConfigOption("--hours-per-workday", "hours_per_workday", _non_negative_number),
    ConfigOption("--budget-hours", "budget_hours", _non_negative_number),
    ConfigOption("--default-rate", "default_rate", _non_negative_number),
    ConfigOption("--project-type", "project_type", validate_str_option),
    ConfigOption("--out", "out", validate_str_option),
    ConfigOption("--out-theme", "out_theme", validate_str_option),
    ConfigOption("--today", "today", validate_str_option),
    ConfigOption("--config", "config", validate_str_option),
    ConfigOption("--verbose", "verbose", _flag),
)
OPTIONS_BY_NAME = {option.name: option for option in CONFIG_OPTIONS}
OPTION_NAMES_BY_DEST = {option.dest: option.name for option in CONFIG_OPTIONS} | {
    "color_flag": "--color/--no-color"
}

QUERY_OPTION_NAMES = frozenset(OPTION_NAMES_BY_DEST) - {"verbose"}
VALIDATE_OPTION_NAMES = frozenset({"color_flag", "config", "out_theme"})


def parse_color_defaults(config: dict[str, object]) -> tuple[dict[str, object], bool]:
    """Turn `--color` / `--no-color` booleans into a `color_flag` default.

    Returns:
        The defaults and whether the color entries were valid
    """
    color = config.get("--color", False)
    no_color = config.get("--no-color", False)
    if not isinstance(color, bool) or not isinstance(no_color, bool):
        return ({}, False)
    if color and no_color:
        return ({}, False)
    if color:
        return ({"color_flag": True}, True)
    if no_color:
        return ({"color_flag": False}, True)
    return ({}, True)


def parse_config_sections(
    raw_config: dict[str, object],
) -> tuple[dict[str, object], dict[str, str]] | None:
    """Split a config object into its defaults and named queries.

    Returns None when the object has unknown keys or malformed sections.
    """
    if not set(raw_config) <= CONFIG_SECTIONS:
        return None
    defaults_section = raw_config.get("defaults", {})
    queries_section = raw_config.get("queries", {})
    if not isinstance(defaults_section, dict) or not is_string_dict(queries_section):
        return None
    return (defaults_section, dict(queries_section))


def build_config_defaults(config: dict[str, object]) -> dict[str, object] | None:
    """Validate the defaults section and key it by option destination.

    Returns:
        Defaults keyed by destination, or None if any entry is unknown or invalid
    """
    defaults, colors_valid = parse_color_defaults(config)
    if not colors_valid:
        return None
    for key, value in config.items():
        if key in ("--color", "--no-color"):
            continue
        option = OPTIONS_BY_NAME.get(key)
        parsed = option.parse(key, value) if option is not None else None
        if option is None or parsed is None:
            logger.warning("Invalid config default %s=%r", key, value)
            return None
        defaults[option.dest] = parsed
    return defaults


def parse_config_argument(argv: list[str]) -> str:
    """Find the `--config` value in raw argv, before Click parses it."""
    args = argv[1:]
    for index, arg in enumerate(args):
        if arg.startswith("--config="):
            return arg.partition("=")[2]
        if arg == "--config" and index + 1 < len(args):
            return args[index + 1]
    return DEFAULT_CONFIG_NAME


def load_cli_config(argv: list[str]) -> LoadedCliConfig:
    """Load the config file named on the command line, or the default one.

    Relative names resolve against the current directory.

    Raises:
        typer.BadParameter: If the file exists but is malformed
    """
    config_path = Path(parse_config_argument(argv))
    if not config_path.is_absolute():
        config_path = Path.cwd() / config_path

    raw_config, malformed = load_config(str(config_path))
    sections = None if malformed else parse_config_sections(raw_config)
    if sections is None:
        raise typer.BadParameter("Malformed config")
    defaults_section, named_queries = sections
    defaults = build_config_defaults(defaults_section)
    if defaults is None:
        raise typer.BadParameter("Malformed config")

    return LoadedCliConfig(
        defaults={key: value for key, value in defaults.items() if key in OPTION_NAMES_BY_DEST},
        named_queries=named_queries,
    )


def build_default_map(defaults: dict[str, object]) -> dict[str, dict[str, object]]:
    """Build the Click default_map, giving each command only its own options."""
    return {
        "query": {key: value for key, value in defaults.items() if key in QUERY_OPTION_NAMES},
        "validate": {
            key: value for key, value in defaults.items() if key in VALIDATE_OPTION_NAMES
        },
    }


def resolve_query_text(query: str) -> str:
    """Expand an `@name` reference to a named query from the config file.

    Raises:
        typer.BadParameter: If the named query is not configured
    """
    stripped = query.strip()
    if not stripped.startswith(NAMED_QUERY_PREFIX):
        return query
    name = stripped.removeprefix(NAMED_QUERY_PREFIX)
    named_query = CONFIG_NAMED_QUERIES.get(name)
    if named_query is None:
        raise typer.BadParameter(f"Unknown named query '{name}'")
    logger.info("Using named query %s: %s", name, named_query)
    return named_query


def log_applied_config_defaults(command_name: str) -> None:
    """Log the option defaults that came from the config file."""
    if not logger.isEnabledFor(logging.INFO):
        return
    applied = [
        f"{OPTION_NAMES_BY_DEST[dest]}={value!r}"
        for dest, value in sorted(CONFIG_DEFAULTS.items())
        if dest in OPTION_NAMES_BY_DEST
    ]
    if applied:
        logger.info("Config defaults applied (%s): %s", command_name, ", ".join(applied))


def log_command_arguments(args: object, command_name: str) -> None:
    """Log the final argument values a command runs with."""
    if not logger.isEnabledFor(logging.INFO):
        return
    try:
        values = sorted(vars(args).items())
    except TypeError:
        return
    logger.info(
        "Command arguments (%s): %s",
        command_name,
        ", ".join(f"{name}={value!r}" for name, value in values),
    )
