from __future__ import annotations

from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from .models import Entry, SeriesPoint
from .ranking import EntryInput, coerce_entries

DateRange = Tuple[Optional[date], Optional[date]]

COLUMNS: tuple[str, ...] = (
    "owner_id",
    "date",
    "movement",
    "value",
    "unit",
    "name",
    "gender",
    "notes",
)


def entries_to_dataframe(entries: Iterable[EntryInput]) -> pd.DataFrame:
    """Normalise raw entries into a pandas DataFrame ordered by date."""
    records = [
        {
            "owner_id": entry.owner_id,
            "date": pd.Timestamp(entry.date),
            "movement": entry.movement,
            "value": float(entry.value),
            "unit": entry.unit,
            "name": entry.display_name,
            "gender": entry.gender,
            "notes": entry.notes or "",
        }
        for entry in coerce_entries(entries)
    ]
    df = pd.DataFrame(records, columns=list(COLUMNS))
    if df.empty:
        return df
    df.sort_values("date", kind="mergesort", inplace=True)
    df.reset_index(drop=True, inplace=True)
    return df


def series(
    entries: Iterable[EntryInput],
    movement_name: str,
    owner_id: str,
    date_range: Optional[DateRange] = None,
) -> List[SeriesPoint]:
    """
    Chronological values one owner logged for one movement.

    ``date_range`` is a closed ``(start, end)`` pair; either bound may be None.
    Missing days are simply absent; nothing is resampled or filled.
    """
    df = entries_to_dataframe(entries)
    if df.empty:
        return []
    mask = (df["owner_id"] == owner_id) & (df["movement"] == movement_name)
    if date_range is not None:
        start, end = date_range
        if start is not None:
            mask &= df["date"] >= pd.Timestamp(start)
        if end is not None:
            mask &= df["date"] <= pd.Timestamp(end)
    selected = df.loc[mask, ["date", "value"]]
    return [
        SeriesPoint(date=row.date.date(), value=float(row.value))
        for row in selected.itertuples(index=False)
    ]


def series_by_movement(
    entries: Iterable[EntryInput],
    owner_id: str,
    movement_names: Sequence[str] = (),
) -> Dict[str, List[SeriesPoint]]:
    """
    One series per movement for the owner's "my data" view.

    Every name in ``movement_names`` is present (possibly empty); movements the
    owner logged outside that list are appended after them.
    """
    records = coerce_entries(entries)
    names = list(dict.fromkeys(movement_names))
    for entry in records:
        if entry.owner_id == owner_id and entry.movement not in names:
            names.append(entry.movement)
    return {name: series(records, name, owner_id) for name in names}


def personal_bests(
    entries: Iterable[EntryInput],
    owner_id: str,
    higher_is_better: Callable[[str, str], bool],
) -> Dict[str, Entry]:
    """
    Best entry per movement for one owner.

    ``higher_is_better`` receives the movement name and unit of the entry.
    """
    bests: Dict[str, Entry] = {}
    for entry in coerce_entries(entries):
        if entry.owner_id != owner_id:
            continue
        current = bests.get(entry.movement)
        if current is None:
            bests[entry.movement] = entry
            continue
        if higher_is_better(entry.movement, entry.unit):
            better = entry.value > current.value
        else:
            better = entry.value < current.value
        if better:
            bests[entry.movement] = entry
    return bests
