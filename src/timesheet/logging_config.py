"""Logging setup for the timesheet CLI.

Warnings from the query interpreter always reach stderr. With --verbose,
progress messages (loaded files, applied defaults) are printed to stdout.
"""

from __future__ import annotations

import logging
import sys


LOGGER_NAME = "timesheet"
VERBOSE_HANDLER_NAME = "timesheet-verbose"


def _verbose_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(VERBOSE_HANDLER_NAME)
    handler.setLevel(logging.INFO)
    handler.addFilter(lambda record: record.levelno < logging.WARNING)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def _warning_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.WARNING)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    return handler


def configure_logging(verbose: bool) -> logging.Logger:
    """Reset the package logger's handlers for the requested verbosity."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    logger.addHandler(_warning_handler())
    if verbose:
        logger.addHandler(_verbose_handler())
    logger.setLevel(logging.INFO if verbose else logging.WARNING)
    return logger
