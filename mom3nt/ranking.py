from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .models import (
    GENDERS,
    Entry,
    LeaderboardRow,
    default_higher_is_better,
    normalise_gender,
)

DEFAULT_TOP_N = 5

EntryInput = Union[Mapping[str, Any], Entry]


@dataclass(frozen=True)
class Leaderboard:
    movement: str
    higher_is_better: bool
    male: List[LeaderboardRow] = field(default_factory=list)
    female: List[LeaderboardRow] = field(default_factory=list)

    def bucket(self, gender: str) -> List[LeaderboardRow]:
        return self.male if gender == "male" else self.female

    def as_dict(self) -> Dict[str, Any]:
        return {
            "movement": self.movement,
            "higher_is_better": self.higher_is_better,
            "male": [row.to_dict() for row in self.male],
            "female": [row.to_dict() for row in self.female],
        }


def coerce_entries(entries: Iterable[EntryInput]) -> List[Entry]:
    """Accept stored rows or Entry objects interchangeably."""
    result: List[Entry] = []
    for item in entries:
        if isinstance(item, Entry):
            result.append(item)
        elif isinstance(item, Mapping):
            result.append(Entry.from_record(item))
        else:
            raise TypeError(f"Unsupported entry type: {type(item)!r}")
    return result


def infer_direction(
    movement_name: str,
    entries: Sequence[Entry],
    *,
    lower_is_better_names: Iterable[str] = (),
) -> bool:
    """
    Decide whether larger values win when no catalog entry is available.

    Named movements in ``lower_is_better_names`` and elapsed-time units are
    lower-is-better; everything else is higher-is-better.
    """
    if movement_name in set(lower_is_better_names):
        return False
    for entry in entries:
        if entry.movement != movement_name:
            continue
        implied = default_higher_is_better(entry.unit)
        if implied is not None:
            return implied
    return True


def leaderboard(
    entries: Iterable[EntryInput],
    movement_name: str,
    top_n: int = DEFAULT_TOP_N,
    *,
    higher_is_better: Optional[bool] = None,
    lower_is_better_names: Iterable[str] = (),
) -> Leaderboard:
    """
    Best result per person for one movement, split by gender.

    Entries without a recognised gender are left out. Each person (keyed by the
    trimmed display name) contributes at most one row per gender bucket.
    """
    records = coerce_entries(entries)
    if higher_is_better is None:
        higher_is_better = infer_direction(
            movement_name, records, lower_is_better_names=lower_is_better_names
        )

    best: Dict[str, Dict[str, Entry]] = {gender: {} for gender in GENDERS}
    for entry in records:
        if entry.movement != movement_name:
            continue
        gender = normalise_gender(entry.gender)
        if gender is None:
            continue
        bucket = best[gender]
        key = entry.person_key
        previous = bucket.get(key)
        if previous is None or _improves(entry.value, previous.value, higher_is_better):
            bucket[key] = entry

    boards = {
        gender: _top_rows(bucket, higher_is_better, top_n) for gender, bucket in best.items()
    }
    return Leaderboard(
        movement=movement_name,
        higher_is_better=higher_is_better,
        male=boards["male"],
        female=boards["female"],
    )


def _improves(candidate: float, incumbent: float, higher_is_better: bool) -> bool:
    if higher_is_better:
        return candidate > incumbent
    return candidate < incumbent


def _top_rows(bucket: Mapping[str, Entry], higher_is_better: bool, top_n: int) -> List[LeaderboardRow]:
    if top_n <= 0:
        return []
    ordered = sorted(bucket.items(), key=lambda item: item[1].value, reverse=higher_is_better)
    return [
        LeaderboardRow(person_key=key, best_value=entry.value, entry=entry)
        for key, entry in ordered[:top_n]
    ]
