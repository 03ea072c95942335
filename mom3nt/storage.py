from __future__ import annotations

import csv
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Protocol

from .env import get_env
from .models import (
    Entry,
    Profile,
    ValidationError,
    normalise_gender,
    parse_iso_date,
    validate_value,
)

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DEFAULT_DB_FILENAME = "mom3nt.db"
ENTRY_FIELDS: tuple[str, ...] = ("user_id", "date", "movement", "value", "unit", "name", "gender", "notes")
LOGGER = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """The entry/profile store could not complete a read or write."""


class EntryStore(Protocol):
    """Contract shared by the local and Supabase stores."""

    def fetch_entries(self) -> List[Entry]:
        ...

    def upsert_entry(self, entry: Entry) -> Entry:
        ...

    def fetch_profile(self, owner_id: str) -> Optional[Profile]:
        ...

    def upsert_profile(self, profile: Profile) -> Profile:
        ...


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def data_dir() -> Path:
    override = get_env("DATA_DIR")
    base = Path(override).expanduser() if override else DEFAULT_DATA_DIR
    base.mkdir(parents=True, exist_ok=True)
    return base


def _database_file() -> Path:
    override = get_env("DB_FILE")
    if override:
        path = Path(override).expanduser()
    else:
        path = data_dir() / DEFAULT_DB_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def write_json_atomic(target: Path, payload: Any) -> Path:
    """Write JSON next to the target and swap it in place."""
    target.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(payload, indent=2, sort_keys=True) + "\n"
    with NamedTemporaryFile("w", dir=target.parent, delete=False, encoding="utf-8") as tmp:
        tmp.write(text)
        temp_path = Path(tmp.name)
    temp_path.replace(target)
    return target


class SQLiteStore:
    """Local entry/profile store; one row per (user_id, date)."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        self.db_path = Path(db_path).expanduser() if db_path is not None else _database_file()
        self._initialised = False

    @contextmanager
    def open_database(self, readonly: bool = False) -> Iterator[sqlite3.Connection]:
        """Context manager yielding a SQLite connection with ensured schema."""
        self._ensure_database()
        try:
            if readonly:
                conn = sqlite3.connect(f"file:{self.db_path}?mode=ro", uri=True)
            else:
                conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise StoreError(f"Could not open {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as exc:
            raise StoreError(f"Database error in {self.db_path}: {exc}") from exc
        finally:
            conn.close()

    def _ensure_database(self) -> None:
        if self._initialised:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        try:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS entries (
                    user_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    movement TEXT NOT NULL,
                    value REAL NOT NULL CHECK (value > 0),
                    unit TEXT NOT NULL DEFAULT '',
                    name TEXT,
                    gender TEXT,
                    notes TEXT,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, date)
                );

                CREATE INDEX IF NOT EXISTS idx_entries_movement
                    ON entries (movement, date);

                CREATE TABLE IF NOT EXISTS profiles (
                    id TEXT PRIMARY KEY,
                    name TEXT,
                    gender TEXT,
                    updated_at TEXT NOT NULL
                );
                """
            )
        except sqlite3.Error as exc:
            raise StoreError(f"Could not initialise {self.db_path}: {exc}") from exc
        finally:
            conn.close()
        self._initialised = True

    def fetch_entries(self) -> List[Entry]:
        with self.open_database(readonly=True) as conn:
            rows = conn.execute(
                f"SELECT {', '.join(ENTRY_FIELDS)} FROM entries ORDER BY date ASC, user_id ASC"
            ).fetchall()
        return [Entry.from_record(dict(row)) for row in rows]

    def upsert_entry(self, entry: Entry) -> Entry:
        record = entry.to_record()
        with self.open_database() as conn:
            conn.execute(
                """
                INSERT INTO entries (user_id, date, movement, value, unit, name, gender, notes, updated_at)
                VALUES (:user_id, :date, :movement, :value, :unit, :name, :gender, :notes, :updated_at)
                ON CONFLICT (user_id, date) DO UPDATE SET
                    movement = excluded.movement,
                    value = excluded.value,
                    unit = excluded.unit,
                    name = excluded.name,
                    gender = excluded.gender,
                    notes = excluded.notes,
                    updated_at = excluded.updated_at
                """,
                {**record, "updated_at": _now_utc().isoformat()},
            )
            conn.commit()
        LOGGER.debug("Upserted entry for %s on %s", entry.owner_id, record["date"])
        return entry

    def fetch_profile(self, owner_id: str) -> Optional[Profile]:
        with self.open_database(readonly=True) as conn:
            row = conn.execute("SELECT id, name, gender FROM profiles WHERE id = ?", (owner_id,)).fetchone()
        return Profile.from_record(dict(row)) if row else None

    def upsert_profile(self, profile: Profile) -> Profile:
        record = profile.to_record()
        with self.open_database() as conn:
            conn.execute(
                """
                INSERT INTO profiles (id, name, gender, updated_at)
                VALUES (:id, :name, :gender, :updated_at)
                ON CONFLICT (id) DO UPDATE SET
                    name = excluded.name,
                    gender = excluded.gender,
                    updated_at = excluded.updated_at
                """,
                {**record, "updated_at": _now_utc().isoformat()},
            )
            conn.commit()
        LOGGER.debug("Upserted profile %s", profile.owner_id)
        return Profile.from_record(record)


def export_entries_csv(path: Path | str, entries: Iterable[Entry]) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=list(ENTRY_FIELDS))
        writer.writeheader()
        writer.writerows(entry.to_record() for entry in entries)
    return target


def export_entries_json(path: Path | str, entries: Iterable[Entry]) -> Path:
    return write_json_atomic(Path(path), [entry.to_record() for entry in entries])


def load_import_records(source: Path | str) -> List[Entry]:
    """
    Read entries from a JSON export, validating every row.

    Older exports may hold several rows for one person and day; the last one
    in file order wins, matching the store's upsert semantics.
    """
    path = Path(source).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Import source {path} does not exist.")
    try:
        payload = json.loads(path.read_text(encoding="utf-8") or "[]")
    except json.JSONDecodeError as exc:
        raise ValueError(f"Could not parse {path}: {exc}") from exc
    if not isinstance(payload, list):
        raise ValueError(f"{path} must contain a JSON list")

    collapsed: dict[tuple[str, Any], Entry] = {}
    for index, record in enumerate(payload, start=1):
        if not isinstance(record, Mapping):
            raise ValidationError(f"row {index} must be an object.")
        entry = _entry_from_import(record, index)
        collapsed[entry.key] = entry
    return list(collapsed.values())


def _entry_from_import(record: Mapping[str, Any], index: int) -> Entry:
    owner = str(record.get("user_id") or record.get("owner_id") or "").strip()
    if not owner:
        raise ValidationError(f"row {index}: user_id is required.")
    movement = str(record.get("movement") or "").strip()
    if not movement:
        raise ValidationError(f"row {index}: movement is required.")
    notes = record.get("notes")
    return Entry(
        owner_id=owner,
        date=parse_iso_date(record.get("date"), field=f"row {index} date"),
        movement=movement,
        value=validate_value(record.get("value"), field=f"row {index} value"),
        unit=str(record.get("unit") or ""),
        display_name=str(record.get("name") or "").strip(),
        gender=normalise_gender(record.get("gender")),
        notes=str(notes).strip() if notes else None,
    )
