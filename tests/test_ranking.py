from __future__ import annotations

from datetime import date

import pytest

from mom3nt.models import Entry
from mom3nt.ranking import coerce_entries, infer_direction, leaderboard


def _entry(name, gender, value, *, movement="Squat", unit="lbs", day=1, owner=None):
    return Entry(
        owner_id=owner or name.lower() or "anon",
        date=date(2025, 9, day),
        movement=movement,
        value=value,
        unit=unit,
        display_name=name,
        gender=gender,
    )


def test_best_per_person_split_by_gender():
    entries = [
        _entry("Alice", "female", 100, day=1),
        _entry("Alice", "female", 120, day=2),
        _entry("Bob", "male", 90, day=1),
    ]
    board = leaderboard(entries, "Squat", higher_is_better=True)
    assert [(row.person_key, row.best_value) for row in board.female] == [("Alice", 120)]
    assert [(row.person_key, row.best_value) for row in board.male] == [("Bob", 90)]


def test_lower_is_better_keeps_smallest_value():
    entries = [
        _entry("Cara", "female", 30, movement="500m Row", unit="sec", day=1),
        _entry("Cara", "female", 25, movement="500m Row", unit="sec", day=2),
    ]
    board = leaderboard(entries, "500m Row")
    assert board.higher_is_better is False
    assert len(board.female) == 1
    assert board.female[0].best_value == 25
    assert board.female[0].entry.date == date(2025, 9, 2)


def test_rows_are_ordered_and_truncated():
    entries = [_entry(f"Lifter {index}", "male", 100 + index, day=index + 1) for index in range(8)]
    board = leaderboard(entries, "Squat", top_n=5, higher_is_better=True)
    values = [row.best_value for row in board.male]
    assert values == sorted(values, reverse=True)
    assert len(values) == 5
    assert values[0] == 107

    ascending = leaderboard(entries, "Squat", top_n=3, higher_is_better=False)
    assert [row.best_value for row in ascending.male] == [100, 101, 102]


def test_one_row_per_person_even_across_owners():
    entries = [
        _entry("Dana ", "female", 80, owner="u1"),
        _entry("Dana", "female", 95, owner="u2", day=2),
        _entry("Eve", "female", 90, day=3),
    ]
    board = leaderboard(entries, "Squat", higher_is_better=True)
    assert [row.person_key for row in board.female] == ["Dana", "Eve"]
    assert board.female[0].best_value == 95


def test_blank_names_collapse_to_placeholder():
    entries = [_entry("", "male", 50, owner="x"), _entry("   ", "male", 60, owner="y", day=2)]
    board = leaderboard(entries, "Squat", higher_is_better=True)
    assert [(row.person_key, row.best_value) for row in board.male] == [("Member", 60)]


def test_unknown_gender_and_other_movements_are_excluded():
    entries = [
        _entry("Finn", None, 200),
        _entry("Gus", "other", 210),
        _entry("Hal", "MALE", 150),
        _entry("Ivy", "female", 999, movement="Bench"),
    ]
    board = leaderboard(entries, "Squat", higher_is_better=True)
    assert [row.person_key for row in board.male] == ["Hal"]
    assert board.female == []


def test_ties_keep_first_seen_entry():
    entries = [
        _entry("Jo", "female", 100, day=1),
        _entry("Jo", "female", 100, day=5),
        _entry("Kim", "female", 100, day=2),
    ]
    board = leaderboard(entries, "Squat", higher_is_better=True)
    assert [row.person_key for row in board.female] == ["Jo", "Kim"]
    assert board.female[0].entry.date == date(2025, 9, 1)


def test_non_positive_top_n_returns_empty_buckets():
    board = leaderboard([_entry("Lee", "male", 100)], "Squat", top_n=0, higher_is_better=True)
    assert board.male == [] and board.female == []


def test_accepts_stored_rows_and_infers_direction():
    rows = [
        {"user_id": "u1", "date": "2025-09-01", "movement": "Sprint", "value": 12.5, "unit": "seconds", "name": "Max", "gender": "male"},
        {"user_id": "u1", "date": "2025-09-02", "movement": "Sprint", "value": 11.9, "unit": "seconds", "name": "Max", "gender": "male"},
    ]
    board = leaderboard(rows, "Sprint")
    assert board.higher_is_better is False
    assert board.male[0].best_value == pytest.approx(11.9)
    assert board.as_dict()["male"][0] == {"name": "Max", "value": 11.9, "unit": "seconds", "date": "2025-09-02"}


def test_infer_direction_prefers_named_overrides():
    entries = coerce_entries([_entry("Ned", "male", 5, movement="Plank", unit="points")])
    assert infer_direction("Plank", entries) is True
    assert infer_direction("Plank", entries, lower_is_better_names=["Plank"]) is False


def test_coerce_entries_rejects_unknown_types():
    with pytest.raises(TypeError):
        coerce_entries([42])
