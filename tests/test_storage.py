from __future__ import annotations

import csv
import json
from datetime import date

import pytest

from mom3nt.models import Entry, Profile, ValidationError
from mom3nt.storage import (
    SQLiteStore,
    export_entries_csv,
    export_entries_json,
    load_import_records,
    write_json_atomic,
)


def _entry(value, *, owner="u1", day=date(2025, 9, 1), notes=None):
    return Entry(
        owner_id=owner,
        date=day,
        movement="Squat",
        value=value,
        unit="lbs",
        display_name="Alice",
        gender="female",
        notes=notes,
    )


def test_upsert_keeps_one_row_per_owner_and_day(tmp_path):
    store = SQLiteStore(tmp_path / "entries.db")
    store.upsert_entry(_entry(100, notes="first"))
    store.upsert_entry(_entry(120, notes="second"))
    store.upsert_entry(_entry(90, owner="u2"))

    rows = store.fetch_entries()
    assert len(rows) == 2
    alice = next(row for row in rows if row.owner_id == "u1")
    assert alice.value == 120
    assert alice.notes == "second"


def test_db_file_env_override(tmp_path, monkeypatch):
    db_file = tmp_path / "nested" / "custom.db"
    monkeypatch.setenv("MOM3NT_DB_FILE", str(db_file))
    store = SQLiteStore()
    store.upsert_entry(_entry(100))
    assert db_file.exists()


def test_entries_are_ordered_by_date(tmp_path):
    store = SQLiteStore(tmp_path / "entries.db")
    store.upsert_entry(_entry(110, day=date(2025, 9, 8)))
    store.upsert_entry(_entry(100, day=date(2025, 9, 1)))
    assert [row.date.day for row in store.fetch_entries()] == [1, 8]


def test_profiles_upsert_and_fetch(tmp_path):
    store = SQLiteStore(tmp_path / "entries.db")
    assert store.fetch_profile("u1") is None
    store.upsert_profile(Profile("u1", "Alice", "female"))
    store.upsert_profile(Profile("u1", "Alice B", "female"))
    profile = store.fetch_profile("u1")
    assert profile == Profile("u1", "Alice B", "female")


def test_export_writes_csv_and_json(tmp_path):
    entries = [_entry(100), _entry(95, owner="u2")]
    csv_path = export_entries_csv(tmp_path / "out" / "entries.csv", entries)
    json_path = export_entries_json(tmp_path / "out" / "entries.json", entries)

    with csv_path.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))
    assert [row["user_id"] for row in rows] == ["u1", "u2"]
    payload = json.loads(json_path.read_text(encoding="utf-8"))
    assert payload[0]["movement"] == "Squat"


def test_import_collapses_duplicate_days(tmp_path):
    source = tmp_path / "import.json"
    source.write_text(
        json.dumps(
            [
                {"user_id": "u1", "date": "2025-09-01", "movement": "Squat", "value": 100, "unit": "lbs", "name": "Alice", "gender": "female"},
                {"user_id": "u1", "date": "2025-09-01", "movement": "Squat", "value": 130, "unit": "lbs", "name": "Alice", "gender": "female"},
                {"user_id": "u2", "date": "2025-09-01", "movement": "Squat", "value": 90, "unit": "lbs", "name": "Bob", "gender": "male"},
            ]
        ),
        encoding="utf-8",
    )
    entries = load_import_records(source)
    assert len(entries) == 2
    assert entries[0].value == 130


def test_import_validates_rows(tmp_path):
    source = tmp_path / "bad.json"
    source.write_text(json.dumps([{"user_id": "u1", "date": "2025-09-01", "movement": "Squat", "value": -1}]), encoding="utf-8")
    with pytest.raises(ValidationError, match="row 1 value"):
        load_import_records(source)

    source.write_text(json.dumps({"not": "a list"}), encoding="utf-8")
    with pytest.raises(ValueError, match="JSON list"):
        load_import_records(source)

    with pytest.raises(FileNotFoundError):
        load_import_records(tmp_path / "missing.json")


def test_write_json_atomic_replaces_target(tmp_path):
    target = tmp_path / "state.json"
    write_json_atomic(target, {"a": 1})
    write_json_atomic(target, {"a": 2})
    assert json.loads(target.read_text(encoding="utf-8")) == {"a": 2}
    assert [path.name for path in tmp_path.iterdir()] == ["state.json"]
