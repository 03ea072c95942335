from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, List, Mapping, Optional, Sequence

from .config import AppConfig, get_config
from .formatting import format_value_with_unit
from .models import (
    Entry,
    LeaderboardRow,
    Movement,
    Profile,
    ProfileIncompleteError,
    ValidationError,
    parse_iso_date,
    validate_value,
)
from .ranking import Leaderboard, leaderboard
from .remote import SupabaseStore
from .series import personal_bests, series_by_movement
from .storage import EntryStore, SQLiteStore, StoreError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryResult:
    """Validated entry plus the movement it was logged against."""

    entry: Entry
    movement: Movement

    @property
    def confirmation(self) -> str:
        return (
            f"[{self.entry.display_name}] Logged {self.entry.date.isoformat()} "
            f"{self.movement.display_name}: {format_value_with_unit(self.entry.value, self.entry.unit)}"
        )


@dataclass
class Snapshot:
    """
    Last successful fetch of the entry log.

    A failed refresh leaves ``entries`` and ``fetched_at`` exactly as they were.
    """

    entries: List[Entry] = field(default_factory=list)
    fetched_at: Optional[datetime] = None

    @property
    def is_stale(self) -> bool:
        return self.fetched_at is None

    def refresh(self, store: EntryStore) -> List[Entry]:
        try:
            fresh = store.fetch_entries()
        except StoreError as exc:
            LOGGER.warning("Keeping previous snapshot; refresh failed: %s", exc)
            raise
        entries = list(fresh)
        self.entries = entries
        self.fetched_at = datetime.now(timezone.utc)
        return entries

    def mine(self, owner_id: str) -> List[Entry]:
        return [entry for entry in self.entries if entry.owner_id == owner_id]


def open_store(config: AppConfig | None = None, *, access_token: str | None = None) -> EntryStore:
    """Instantiate the configured backend."""
    config = config or get_config()
    if config.storage_backend == "supabase":
        settings = config.supabase
        if not settings.configured:
            raise StoreError("Set MOM3NT_SUPABASE_URL and MOM3NT_SUPABASE_KEY to use the supabase backend.")
        return SupabaseStore(settings.url or "", settings.key or "", access_token=access_token)
    return SQLiteStore()


def movement_for(day: date, config: AppConfig | None = None) -> Movement:
    config = config or get_config()
    return config.calendar.resolve(day)


def build_entry(
    *,
    owner_id: str,
    profile: Optional[Profile],
    value: Any,
    date_text: Any = None,
    notes: Optional[str] = None,
    config: AppConfig | None = None,
) -> EntryResult:
    """
    Validate inputs into an entry for the movement scheduled on that date.

    Nothing is written here; callers persist the result with ``save_entry``.
    """
    config = config or get_config()
    owner = (owner_id or "").strip()
    if not owner:
        raise ValidationError("Sign in before logging a result.")
    if profile is None or not profile.is_complete:
        raise ProfileIncompleteError("Set your name and gender in your profile before logging.")

    entry_date = parse_iso_date(date_text, field="date") if date_text else date.today()
    movement = config.calendar.resolve(entry_date)
    if not movement.accepts_entries:
        raise ValidationError(f"No movement is scheduled for {entry_date.isoformat()}.")

    number = validate_value(value, field="value")
    note_value = notes.strip() if notes and notes.strip() else None
    entry = Entry(
        owner_id=owner,
        date=entry_date,
        movement=movement.display_name,
        value=number,
        unit=movement.unit,
        display_name=(profile.display_name or "").strip(),
        gender=profile.gender,
        notes=note_value,
    )
    return EntryResult(entry=entry, movement=movement)


def save_entry(store: EntryStore, result: EntryResult) -> Entry:
    return store.upsert_entry(result.entry)


def leaderboard_for(
    entries: Sequence[Entry],
    *,
    movement_name: Optional[str] = None,
    day: Optional[date] = None,
    top_n: Optional[int] = None,
    config: AppConfig | None = None,
) -> Leaderboard:
    """Leaderboard for a named movement, or for the movement scheduled on ``day``."""
    config = config or get_config()
    if movement_name is None:
        movement_name = config.calendar.resolve(day or date.today()).display_name
    unit = next((entry.unit for entry in entries if entry.movement == movement_name), None)
    return leaderboard(
        entries,
        movement_name,
        top_n if top_n is not None else config.top_n,
        higher_is_better=config.direction_for(movement_name, unit),
    )


def owner_dashboard(
    entries: Sequence[Entry],
    owner_id: str,
    config: AppConfig | None = None,
) -> dict[str, Any]:
    """Series and personal best per movement for the "my data" view."""
    config = config or get_config()
    names = [movement.display_name for movement in config.calendar.movements()]
    per_movement = series_by_movement(entries, owner_id, names)
    bests = personal_bests(entries, owner_id, config.direction_for)
    return {
        name: {
            "series": [point.to_dict() for point in points],
            "best": bests[name].value if name in bests else None,
        }
        for name, points in per_movement.items()
    }


def render_leaderboard_table(board: Leaderboard) -> str:
    """Render both gender buckets as fixed-width text."""
    lines: list[str] = []
    for gender in ("female", "male"):
        rows = board.bucket(gender)
        lines.append(f"{gender.upper()} ({len(rows)})")
        if not rows:
            lines.append("  no entries yet")
            continue
        lines.append(_format_rows(rows))
    return "\n".join(lines)


def _format_rows(rows: Sequence[LeaderboardRow]) -> str:
    headers = ("rank", "name", "value", "date")
    table = [
        {
            "rank": str(index),
            "name": row.person_key,
            "value": format_value_with_unit(row.best_value, row.entry.unit),
            "date": row.entry.date.isoformat(),
        }
        for index, row in enumerate(rows, start=1)
    ]
    widths = {key: len(key) for key in headers}
    for row in table:
        for key in headers:
            widths[key] = max(widths[key], len(row[key]))

    def _format_line(values: Mapping[str, str]) -> str:
        return "  " + "  ".join(values[key].rjust(widths[key]) for key in headers)

    header_line = "  " + "  ".join(key.upper().rjust(widths[key]) for key in headers)
    return "\n".join([header_line] + [_format_line(row) for row in table])
