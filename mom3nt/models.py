from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional

DEFAULT_MEMBER_PLACEHOLDER = "Member"
GENDERS: tuple[str, ...] = ("male", "female")
WEEKDAYS: tuple[str, ...] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

UNIT_CLASSES: dict[str, str] = {
    "lbs": "weight",
    "lb": "weight",
    "kg": "weight",
    "watts": "power",
    "w": "power",
    "mph": "speed",
    "km/h": "speed",
    "kph": "speed",
    "miles": "distance",
    "mi": "distance",
    "km": "distance",
    "m": "distance",
    "meters": "distance",
    "sec": "elapsed_time",
    "secs": "elapsed_time",
    "seconds": "elapsed_time",
    "s": "elapsed_time",
    "min": "elapsed_time",
    "minutes": "elapsed_time",
    "time": "elapsed_time",
    "reps": "repetition_rounds",
    "rounds": "repetition_rounds",
}
LOWER_IS_BETTER_CLASSES = {"elapsed_time"}

__all__ = [
    "parse_iso_date",
    "coerce_number",
    "validate_value",
    "normalise_gender",
    "normalise_person_key",
    "normalise_weekday",
    "unit_class",
    "default_higher_is_better",
    "slugify",
    "Movement",
    "Cycle",
    "WeeklyTemplate",
    "Entry",
    "Profile",
    "LeaderboardRow",
    "SeriesPoint",
    "TBD",
    "ValidationError",
    "ProfileIncompleteError",
]


class ValidationError(ValueError):
    """Raised when user-supplied data cannot be normalised safely."""


class ProfileIncompleteError(ValidationError):
    """Raised when an entry is saved before the profile has a name and gender."""


def parse_iso_date(value: Any, *, field: str = "date") -> date:
    """
    Parse user-supplied ISO-8601 dates.

    Accepts `datetime.date`, `datetime.datetime`, or strings. Raises `ValidationError`
    with a friendlier message if the payload cannot be parsed.
    """
    if isinstance(value, date):
        return value if not isinstance(value, datetime) else value.date()

    if not isinstance(value, str):
        raise ValidationError(
            f"{field} must be provided as YYYY-MM-DD text; received {value!r}."
        )

    candidate = value.strip()
    if not candidate:
        raise ValidationError(f"{field} cannot be empty.")

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValidationError(
            f"{field} must be a valid ISO date (YYYY-MM-DD); received {candidate!r}."
        ) from exc

    return parsed.date()


def coerce_number(
    value: Any,
    *,
    field: str = "value",
    minimum: float | None = None,
    maximum: float | None = None,
) -> float:
    """
    Convert arbitrary input into a finite float with guardrails.

    The `minimum` and `maximum` bounds (inclusive) trigger a ValidationError when
    breached.
    """
    if value is None:
        raise ValidationError(f"{field} is required.")

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number; received {value!r}.")

    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} is required.")
        try:
            number = float(stripped)
        except ValueError as exc:
            raise ValidationError(f"{field} must be a number; received {value!r}.") from exc
    else:
        raise ValidationError(f"{field} must be a number; received {value!r}.")

    if not math.isfinite(number):
        raise ValidationError(f"{field} must be a finite number; received {value!r}.")

    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be >= {minimum}; received {number}.")

    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must be <= {maximum}; received {number}.")

    return number


def validate_value(value: Any, *, field: str = "value") -> float:
    """Logged results must be positive, finite numbers."""
    number = coerce_number(value, field=field)
    if number <= 0:
        raise ValidationError(f"{field} must be a positive number; received {number}.")
    return number


def normalise_gender(value: Any) -> Optional[str]:
    """Return ``male``/``female`` for recognised input, otherwise None."""
    if not isinstance(value, str):
        return None
    candidate = value.strip().lower()
    return candidate if candidate in GENDERS else None


def normalise_person_key(name: Any) -> str:
    text = name.strip() if isinstance(name, str) else ""
    return text or DEFAULT_MEMBER_PLACEHOLDER


def normalise_weekday(value: Any) -> str:
    """Map ``monday``/``Mon``/``MONDAY`` to the canonical weekday name."""
    text = str(value or "").strip().lower()
    for weekday in WEEKDAYS:
        if text in (weekday.lower(), weekday[:3].lower()):
            return weekday
    raise ValidationError(f"Unknown weekday {value!r}; expected one of {', '.join(WEEKDAYS)}.")


def unit_class(unit: str | None) -> Optional[str]:
    return UNIT_CLASSES.get((unit or "").strip().lower())


def default_higher_is_better(unit: str | None) -> Optional[bool]:
    """
    Direction implied by the unit alone.

    Elapsed-time units are lower-is-better; every other known unit is
    higher-is-better. Returns None for units we do not recognise.
    """
    klass = unit_class(unit)
    if klass is None:
        return None
    return klass not in LOWER_IS_BETTER_CLASSES


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")
    return slug or "movement"


@dataclass(frozen=True)
class Movement:
    """A named exercise/test with a unit and an optimisation direction."""

    identifier: str
    display_name: str
    unit: str
    higher_is_better: bool = True

    @property
    def is_tbd(self) -> bool:
        return self.identifier == TBD_IDENTIFIER

    @property
    def accepts_entries(self) -> bool:
        return not self.is_tbd

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.identifier,
            "name": self.display_name,
            "unit": self.unit,
            "higher_is_better": self.higher_is_better,
            "tbd": self.is_tbd,
        }


TBD_IDENTIFIER = "tbd"
WeeklyTemplate = Mapping[str, Movement]
TBD = Movement(identifier=TBD_IDENTIFIER, display_name="TBD", unit="", higher_is_better=True)


@dataclass(frozen=True)
class Cycle:
    """A fixed date range governed by one recurring weekly template."""

    start_date: date
    end_date: date
    template: WeeklyTemplate = field(default_factory=dict)
    label: Optional[str] = None

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def overlaps(self, other: "Cycle") -> bool:
        return self.start_date <= other.end_date and other.start_date <= self.end_date

    @property
    def weeks(self) -> float:
        return ((self.end_date - self.start_date).days + 1) / 7


@dataclass
class Entry:
    """One logged result; at most one per owner per day."""

    owner_id: str
    date: date
    movement: str
    value: float
    unit: str = ""
    display_name: str = ""
    gender: Optional[str] = None
    notes: Optional[str] = None

    @property
    def key(self) -> tuple[str, date]:
        return (self.owner_id, self.date)

    @property
    def person_key(self) -> str:
        return normalise_person_key(self.display_name)

    def to_record(self) -> Dict[str, Any]:
        """Row layout shared by the SQLite and Supabase stores."""
        return {
            "user_id": self.owner_id,
            "date": self.date.isoformat(),
            "movement": self.movement,
            "value": self.value,
            "unit": self.unit,
            "name": self.display_name,
            "gender": self.gender,
            "notes": self.notes,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Entry":
        """
        Build an entry from a stored row.

        Stored values were validated on the way in; only the shape is coerced here.
        """
        notes = record.get("notes")
        return cls(
            owner_id=str(record.get("user_id") or record.get("owner_id") or ""),
            date=parse_iso_date(record.get("date")),
            movement=str(record.get("movement") or ""),
            value=float(record.get("value") or 0.0),
            unit=str(record.get("unit") or ""),
            display_name=str(record.get("name") or record.get("display_name") or ""),
            gender=record.get("gender"),
            notes=str(notes) if notes else None,
        )


@dataclass
class Profile:
    owner_id: str
    display_name: Optional[str] = None
    gender: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool((self.display_name or "").strip()) and normalise_gender(self.gender) is not None

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.owner_id,
            "name": (self.display_name or "").strip() or None,
            "gender": normalise_gender(self.gender),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Profile":
        return cls(
            owner_id=str(record.get("id") or record.get("owner_id") or ""),
            display_name=record.get("name") or record.get("display_name") or None,
            gender=normalise_gender(record.get("gender")),
        )


@dataclass(frozen=True)
class LeaderboardRow:
    person_key: str
    best_value: float
    entry: Entry

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.person_key,
            "value": self.best_value,
            "unit": self.entry.unit,
            "date": self.entry.date.isoformat(),
        }


@dataclass(frozen=True)
class SeriesPoint:
    date: date
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date.isoformat(), "value": self.value}
