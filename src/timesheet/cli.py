#!/usr/bin/env python
"""Command line entry point for timesheet."""

from __future__ import annotations

import sys

import typer

from timesheet import config, logging_config
from timesheet.commands import query, validate


app = typer.Typer(
    help="Query tracked time with a small report language.",
    no_args_is_help=True,
)

# The config file may switch verbose logging on; --verbose/--no-verbose overrides it.
DEFAULT_VERBOSE: dict[str, bool] = {"value": False}


@app.callback()
def main_callback(
    verbose: bool | None = typer.Option(
        None,
        "--verbose/--no-verbose",
        "-v",
        help="Print progress messages such as loaded files and applied defaults",
    ),
) -> None:
    """Query tracked time with a small report language."""
    effective = DEFAULT_VERBOSE["value"] if verbose is None else verbose
    if verbose is None and not effective:
        return
    logging_config.configure_logging(effective)


query.register(app)
validate.register(app)


def main() -> None:
    """Load the config file, then hand argv over to Click."""
    loaded = config.load_cli_config(sys.argv)
    defaults = dict(loaded.defaults)
    DEFAULT_VERBOSE["value"] = bool(defaults.pop("verbose", False))

    config.CONFIG_DEFAULTS.clear()
    config.CONFIG_DEFAULTS.update(defaults)
    config.CONFIG_NAMED_QUERIES.clear()
    config.CONFIG_NAMED_QUERIES.update(loaded.named_queries)

    typer.main.get_command(app).main(
        args=sys.argv[1:],
        prog_name="timesheet",
        standalone_mode=True,
        default_map=config.build_default_map(defaults) if defaults else None,
    )


if __name__ == "__main__":
    main()
