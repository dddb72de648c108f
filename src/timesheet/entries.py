"""Time entry model shared by loaders and the query executor."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date


ENTRY_FIELDS = frozenset(
    {"date", "year", "month", "hours", "rate", "invoiced", "project", "notes", "category"}
)


@dataclass(frozen=True, slots=True)
class TimeEntry:
    """One block of tracked time."""

    date: date
    hours: float
    rate: float | None = None
    project: str | None = None
    notes: str | None = None
    category: str | None = None

    @property
    def invoiced(self) -> float:
        """Billable amount, treating a missing rate as zero."""
        return self.hours * (self.rate or 0.0)

    @property
    def month_key(self) -> tuple[int, int]:
        """Bucket key `(year, month)`."""
        return (self.date.year, self.date.month)


def entry_field(entry: TimeEntry, name: str) -> object:
    """Return a named field of an entry, including derived fields."""
    match name:
        case "year":
            return entry.date.year
        case "month":
            return entry.date.month
        case "invoiced":
            return entry.invoiced
    if name in ENTRY_FIELDS:
        return getattr(entry, name)
    return None
