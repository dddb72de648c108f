"""Loading time entries from org-mode and JSON files."""

from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import cast

import orgparse
import typer

from timesheet.entries import TimeEntry


logger = logging.getLogger("timesheet")

ENTRY_SUFFIXES = (".org", ".json")


def resolve_input_paths(inputs: list[str] | None) -> list[str]:
    """Resolve CLI inputs into a list of entry files to process.

    Args:
        inputs: List of CLI path arguments (files and directories)

    Returns:
        List of file paths to process

    Raises:
        typer.BadParameter: If a path does not exist or no entry files are found
    """
    resolved_files: list[str] = []
    searched_dirs: list[Path] = []

    targets = inputs or ["."]
    for raw_path in targets:
        path = Path(raw_path)
        if not path.exists():
            raise typer.BadParameter(f"Path '{raw_path}' not found")

        if path.is_dir():
            searched_dirs.append(path)
            resolved_files.extend(
                str(file_path)
                for file_path in sorted(path.iterdir())
                if file_path.is_file() and file_path.suffix in ENTRY_SUFFIXES
            )
            continue

        if path.is_file():
            resolved_files.append(str(path))
            continue

        raise typer.BadParameter(f"Path '{raw_path}' is not a file or directory")

    if not resolved_files:
        if searched_dirs:
            searched_list = ", ".join(str(path) for path in searched_dirs)
            raise typer.BadParameter(f"No .org or .json files found in: {searched_list}")
        raise typer.BadParameter("No .org or .json files found")

    return resolved_files


def _read_file(name: str) -> str:
    try:
        with open(name, encoding="utf-8") as f:
            logger.info("Processing %s...", name)
            return f.read()
    except FileNotFoundError as err:
        raise typer.BadParameter(f"File '{name}' not found") from err
    except PermissionError as err:
        raise typer.BadParameter(f"Permission denied for '{name}'") from err


def _parse_rate(value: object, name: str) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise typer.BadParameter(f"Invalid rate {value!r} in '{name}'")
    try:
        return float(cast(str | float, value))
    except ValueError as err:
        raise typer.BadParameter(f"Invalid rate {value!r} in '{name}'") from err


def _inherited_property(node: orgparse.node.OrgNode, key: str) -> object | None:
    """Return the nearest value of a property up the heading tree."""
    current: object = node
    while isinstance(current, orgparse.node.OrgNode):
        value = current.get_property(key)
        if value is not None:
            return value
        current = current.parent
    return None


def _top_heading(node: orgparse.node.OrgNode) -> str:
    current = node
    while isinstance(current.parent, orgparse.node.OrgNode):
        current = current.parent
    return current.heading


def _is_not_worked(value: object) -> bool:
    return value is False or (isinstance(value, str) and value.strip().lower() in {"no", "false"})


def entries_from_org(contents: str, name: str) -> list[TimeEntry]:
    """Turn every closed CLOCK line of an org document into an entry.

    Project and rate are inherited from the nearest PROJECT and RATE
    properties; the project falls back to the top-level heading.
    """
    root = cast(
        orgparse.node.OrgRootNode,
        orgparse.loads(contents.replace("24:00", "00:00"), filename=name),
    )
    entries: list[TimeEntry] = []
    for node in root[1:]:
        if _is_not_worked(_inherited_property(node, "WORKED")):
            continue
        project = _inherited_property(node, "PROJECT")
        rate = _parse_rate(_inherited_property(node, "RATE"), name)
        category = _inherited_property(node, "CATEGORY")
        for clock in node.clock:
            if clock.end is None:
                continue
            entries.append(
                TimeEntry(
                    date=clock.start.date(),
                    hours=clock.duration.total_seconds() / 3600,
                    rate=rate,
                    project=str(project) if project is not None else _top_heading(node),
                    notes=node.heading or None,
                    category=str(category) if category is not None else None,
                )
            )
    return entries


def _json_entry(item: object, name: str, index: int) -> TimeEntry | None:
    if not isinstance(item, dict):
        raise typer.BadParameter(f"Entry {index} in '{name}' is not an object")
    if _is_not_worked(item.get("worked", True)):
        return None

    raw_date = item.get("date")
    raw_hours = item.get("hours")
    if not isinstance(raw_date, str):
        raise typer.BadParameter(f"Entry {index} in '{name}' has no date")
    try:
        entry_date = date.fromisoformat(raw_date[:10])
    except ValueError as err:
        raise typer.BadParameter(
            f"Entry {index} in '{name}' has invalid date {raw_date!r}"
        ) from err
    if isinstance(raw_hours, bool) or not isinstance(raw_hours, int | float):
        raise typer.BadParameter(f"Entry {index} in '{name}' has invalid hours {raw_hours!r}")

    project = item.get("project")
    notes = item.get("notes")
    category = item.get("category")
    return TimeEntry(
        date=entry_date,
        hours=float(raw_hours),
        rate=_parse_rate(item.get("rate"), name),
        project=project if isinstance(project, str) else None,
        notes=notes if isinstance(notes, str) else None,
        category=category if isinstance(category, str) else None,
    )


def entries_from_json(contents: str, name: str) -> list[TimeEntry]:
    """Parse a JSON list of entry objects, skipping unworked ones."""
    try:
        payload = json.loads(contents)
    except json.JSONDecodeError as err:
        raise typer.BadParameter(f"Malformed JSON in '{name}'") from err
    if not isinstance(payload, list):
        raise typer.BadParameter(f"Expected a list of entries in '{name}'")

    entries: list[TimeEntry] = []
    for index, item in enumerate(payload):
        entry = _json_entry(item, name, index)
        if entry is not None:
            entries.append(entry)
    return entries


def load_entries(paths: list[str] | None) -> list[TimeEntry]:
    """Resolve paths and load entries from every org and JSON file."""
    entries: list[TimeEntry] = []
    for name in resolve_input_paths(paths):
        contents = _read_file(name)
        if name.endswith(".json"):
            entries.extend(entries_from_json(contents, name))
        else:
            entries.extend(entries_from_org(contents, name))
    logger.info("Loaded %d time entries", len(entries))
    return entries
