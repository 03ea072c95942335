from __future__ import annotations

import calendar as _calendar
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, Optional, Sequence

from .models import TBD, WEEKDAYS, Cycle, Movement, WeeklyTemplate

__all__ = [
    "FallbackPolicy",
    "CalendarDay",
    "CycleCalendar",
    "weekday_name",
    "cycle_end_from_weeks",
]


class FallbackPolicy(str, Enum):
    """When the fallback weekly template is consulted."""

    MISSING_WEEKDAY = "missing-weekday"
    UNCOVERED = "uncovered"
    NEVER = "never"

    @classmethod
    def parse(cls, value: object) -> "FallbackPolicy":
        text = str(value or "").strip().lower().replace("_", "-")
        for policy in cls:
            if policy.value == text:
                return policy
        raise ValueError(
            f"Unknown fallback policy {value!r}; expected one of "
            + ", ".join(policy.value for policy in cls)
        )


@dataclass(frozen=True)
class CalendarDay:
    date: date
    movement: Movement
    is_today: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "date": self.date.isoformat(),
            "weekday": weekday_name(self.date),
            "movement": self.movement.to_dict(),
            "today": self.is_today,
        }


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def cycle_end_from_weeks(start: date, weeks: int) -> date:
    """Inclusive end date of a cycle that runs for ``weeks`` whole weeks."""
    if weeks < 1:
        raise ValueError("A cycle must last at least one week.")
    return start + timedelta(days=weeks * 7 - 1)


class CycleCalendar:
    """
    Resolve calendar dates to the movement scheduled for them.

    Cycles are consulted in declaration order and the first one containing the
    date wins. The fallback template is used according to ``policy``:

    * ``missing-weekday``: only when a cycle matches but has no movement for the
      weekday.
    * ``uncovered``: also for dates outside every cycle.
    * ``never``: not at all.

    Anything left unresolved maps to the ``TBD`` sentinel.
    """

    def __init__(
        self,
        cycles: Sequence[Cycle] = (),
        fallback: Optional[WeeklyTemplate] = None,
        policy: FallbackPolicy = FallbackPolicy.MISSING_WEEKDAY,
    ) -> None:
        self.cycles: tuple[Cycle, ...] = tuple(cycles)
        self.fallback: dict[str, Movement] = dict(fallback or {})
        self.policy = policy

    def cycle_for(self, day: date) -> Optional[Cycle]:
        for cycle in self.cycles:
            if cycle.contains(day):
                return cycle
        return None

    def resolve(self, day: date) -> Movement:
        weekday = weekday_name(day)
        cycle = self.cycle_for(day)
        if cycle is not None:
            movement = cycle.template.get(weekday)
            if movement is not None:
                return movement
            if self.policy is not FallbackPolicy.NEVER:
                return self.fallback.get(weekday, TBD)
            return TBD
        if self.policy is FallbackPolicy.UNCOVERED:
            return self.fallback.get(weekday, TBD)
        return TBD

    def movements(self) -> list[Movement]:
        """Every configured movement, de-duplicated by display name."""
        seen: dict[str, Movement] = {}
        for template in self._templates():
            for weekday in WEEKDAYS:
                movement = template.get(weekday)
                if movement is not None and movement.display_name not in seen:
                    seen[movement.display_name] = movement
        return list(seen.values())

    def movement_named(self, name: str) -> Optional[Movement]:
        target = (name or "").strip()
        for movement in self.movements():
            if movement.display_name == target:
                return movement
        return None

    def month_grid(self, year: int, month: int, *, today: Optional[date] = None) -> list[list[Optional[CalendarDay]]]:
        """
        Sunday-first weeks for a month view.

        Leading and trailing slots outside the month are None.
        """
        today = today or date.today()
        month_calendar = _calendar.Calendar(firstweekday=_calendar.SUNDAY)
        weeks: list[list[Optional[CalendarDay]]] = []
        for week in month_calendar.monthdatescalendar(year, month):
            row: list[Optional[CalendarDay]] = []
            for day in week:
                if day.month != month:
                    row.append(None)
                    continue
                row.append(CalendarDay(date=day, movement=self.resolve(day), is_today=day == today))
            weeks.append(row)
        return weeks

    def _templates(self) -> Iterable[WeeklyTemplate]:
        for cycle in self.cycles:
            yield cycle.template
        if self.fallback:
            yield self.fallback
