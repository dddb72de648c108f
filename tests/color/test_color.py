"""Tests for color helpers."""

from __future__ import annotations

import io
import sys

import pytest

from timesheet.color import (
    bright_white,
    colorize,
    dim_white,
    get_utilization_color,
    magenta,
    should_use_color,
)


def test_should_use_color_respects_explicit_flag() -> None:
    """Explicit flags should win over terminal detection."""
    assert should_use_color(True) is True
    assert should_use_color(False) is False


def test_should_use_color_detects_tty(monkeypatch: pytest.MonkeyPatch) -> None:
    """Without a flag, color should follow stdout being a terminal."""
    monkeypatch.setattr(sys, "stdout", io.StringIO())

    assert should_use_color(None) is False


def test_colorize_wraps_and_escapes_markup() -> None:
    """Enabled coloring should wrap text in markup and escape brackets."""
    assert colorize("12 h", "green", True) == "[green]12 h[/]"
    assert colorize("[x]", "green", True) == "[green]\\[x][/]"


def test_colorize_disabled_returns_text() -> None:
    """Disabled coloring should leave text untouched."""
    assert colorize("[x]", "green", False) == "[x]"
    assert bright_white("title", False) == "title"
    assert dim_white("label", False) == "label"
    assert magenta("value", False) == "value"


def test_named_color_helpers() -> None:
    """Named helpers should apply their styles."""
    assert bright_white("title", True) == "[bold white]title[/]"
    assert dim_white("label", True) == "[dim white]label[/]"
    assert magenta("value", True) == "[magenta]value[/]"


@pytest.mark.parametrize(
    ("utilization", "expected"),
    [
        (1.2, "bold red"),
        (0.5, "bold yellow"),
        (0.8, "bold green"),
        (1.0, "bold green"),
        (0.6, "bold green"),
    ],
)
def test_get_utilization_color(utilization: float, expected: str) -> None:
    """Utilization should map to under, healthy and over styles."""
    assert get_utilization_color(utilization, True) == expected


def test_get_utilization_color_disabled() -> None:
    """No style should be returned when coloring is disabled."""
    assert get_utilization_color(1.5, False) == ""
