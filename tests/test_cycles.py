from __future__ import annotations

from datetime import date

import pytest

from mom3nt.cycles import CycleCalendar, FallbackPolicy, cycle_end_from_weeks, weekday_name
from mom3nt.models import TBD, Cycle, Movement

SQUAT = Movement("squat", "Squat", "lbs", True)
ROW = Movement("row", "500m Row", "sec", False)
KEISER = Movement("keiser", "Max power Keiser Push/Pull", "watts", True)
CLEAN = Movement("clean", "3 Rep Max Landmine clean", "lbs", True)


def _calendar(policy: FallbackPolicy) -> CycleCalendar:
    cycle = Cycle(
        start_date=date(2025, 9, 1),
        end_date=date(2025, 9, 7),
        template={"Monday": SQUAT, "Wednesday": ROW},
    )
    return CycleCalendar([cycle], fallback={"Tuesday": KEISER, "Sunday": CLEAN}, policy=policy)


def test_resolve_uses_cycle_template_inside_range():
    calendar = _calendar(FallbackPolicy.MISSING_WEEKDAY)
    movement = calendar.resolve(date(2025, 9, 1))
    assert (movement.display_name, movement.unit) == ("Squat", "lbs")


def test_resolve_outside_every_cycle_is_tbd():
    calendar = _calendar(FallbackPolicy.MISSING_WEEKDAY)
    assert calendar.resolve(date(2025, 8, 31)) is TBD
    assert calendar.resolve(date(2025, 9, 8)) is TBD


def test_cycle_bounds_are_inclusive():
    calendar = _calendar(FallbackPolicy.NEVER)
    cycle = calendar.cycles[0]
    assert calendar.cycle_for(date(2025, 9, 1)) is cycle
    assert calendar.cycle_for(date(2025, 9, 7)) is cycle
    assert calendar.cycle_for(date(2025, 9, 8)) is None


def test_missing_weekday_policy_fills_gaps_inside_cycle_only():
    calendar = _calendar(FallbackPolicy.MISSING_WEEKDAY)
    assert calendar.resolve(date(2025, 9, 2)) == KEISER
    assert calendar.resolve(date(2025, 9, 4)) is TBD
    assert calendar.resolve(date(2025, 9, 9)) is TBD


def test_uncovered_policy_also_covers_dates_outside_cycles():
    calendar = _calendar(FallbackPolicy.UNCOVERED)
    assert calendar.resolve(date(2025, 8, 31)) == CLEAN
    assert calendar.resolve(date(2025, 9, 9)) == KEISER
    assert calendar.resolve(date(2025, 9, 1)) == SQUAT


def test_never_policy_ignores_fallback():
    calendar = _calendar(FallbackPolicy.NEVER)
    assert calendar.resolve(date(2025, 9, 2)) is TBD
    assert calendar.resolve(date(2025, 8, 31)) is TBD


def test_first_declared_cycle_wins():
    first = Cycle(date(2025, 9, 1), date(2025, 9, 7), {"Monday": SQUAT})
    second = Cycle(date(2025, 9, 1), date(2025, 9, 14), {"Monday": ROW})
    calendar = CycleCalendar([first, second], policy=FallbackPolicy.NEVER)
    assert calendar.resolve(date(2025, 9, 1)) == SQUAT
    assert calendar.resolve(date(2025, 9, 8)) == ROW


def test_tbd_does_not_accept_entries():
    assert TBD.is_tbd
    assert not TBD.accepts_entries
    assert SQUAT.accepts_entries


def test_movements_are_deduplicated_by_display_name():
    calendar = _calendar(FallbackPolicy.MISSING_WEEKDAY)
    names = [movement.display_name for movement in calendar.movements()]
    assert names == ["Squat", "500m Row", "Max power Keiser Push/Pull", "3 Rep Max Landmine clean"]
    assert calendar.movement_named(" 500m Row ") == ROW
    assert calendar.movement_named("Bench") is None


def test_month_grid_starts_on_sunday():
    calendar = _calendar(FallbackPolicy.MISSING_WEEKDAY)
    grid = calendar.month_grid(2025, 9, today=date(2025, 9, 3))

    assert all(len(week) == 7 for week in grid)
    first_week = grid[0]
    assert first_week[0] is None
    assert first_week[1].date == date(2025, 9, 1)
    assert first_week[1].movement == SQUAT
    assert first_week[3].is_today
    cells = [cell for week in grid for cell in week if cell is not None]
    assert len(cells) == 30
    assert cells[-1].date == date(2025, 9, 30)


def test_calendar_day_serialises_resolved_movement():
    calendar = _calendar(FallbackPolicy.MISSING_WEEKDAY)
    first_week = calendar.month_grid(2025, 9, today=date(2025, 9, 1))[0]
    monday = first_week[1].to_dict()
    assert monday["weekday"] == "Monday"
    assert monday["movement"]["name"] == "Squat"
    assert monday["today"] is True
    assert first_week[4].to_dict()["movement"]["tbd"] is True


def test_cycle_end_from_weeks_is_inclusive():
    assert cycle_end_from_weeks(date(2025, 9, 1), 1) == date(2025, 9, 7)
    assert cycle_end_from_weeks(date(2025, 9, 1), 6) == date(2025, 10, 12)
    with pytest.raises(ValueError):
        cycle_end_from_weeks(date(2025, 9, 1), 0)


def test_weekday_name_and_policy_parsing():
    assert weekday_name(date(2025, 9, 1)) == "Monday"
    assert FallbackPolicy.parse("missing_weekday") is FallbackPolicy.MISSING_WEEKDAY
    assert FallbackPolicy.parse(" Uncovered ") is FallbackPolicy.UNCOVERED
    with pytest.raises(ValueError):
        FallbackPolicy.parse("sometimes")
