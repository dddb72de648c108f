"""Tests for python -m timesheet entrypoint behavior."""

from __future__ import annotations

import runpy

import pytest

from timesheet import cli


def test_module_entrypoint_invokes_main(monkeypatch: pytest.MonkeyPatch) -> None:
    """Running timesheet.__main__ should call cli.main."""
    called = {"value": False}

    def fake_main() -> None:
        called["value"] = True

    monkeypatch.setattr(cli, "main", fake_main)

    runpy.run_module("timesheet.__main__", run_name="__main__")

    assert called["value"] is True
