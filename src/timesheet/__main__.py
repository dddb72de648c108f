"""Allow running timesheet as a module."""

from timesheet import cli


if __name__ == "__main__":
    cli.main()
