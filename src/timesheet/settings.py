"""Report settings consumed by the query executor."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ProjectType(StrEnum):
    """Billing model of the tracked project."""

    HOURLY = "hourly"
    FIXED_HOURS = "fixed-hours"
    RETAINER = "retainer"


@dataclass(frozen=True, slots=True)
class ReportSettings:
    """Settings that shape report calculations."""

    hours_per_workday: float = 8.0
    project_type: ProjectType = ProjectType.HOURLY
    budget_hours: float | None = None
    default_rate: float | None = None
    currency_symbol: str = "€"

    @property
    def tracks_budget(self) -> bool:
        """Whether budget progress applies to this project."""
        return (
            self.project_type in (ProjectType.FIXED_HOURS, ProjectType.RETAINER)
            and bool(self.budget_hours)
        )
