from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping, Optional

from .cycles import CycleCalendar, FallbackPolicy, cycle_end_from_weeks
from .env import get_env
from .models import (
    Cycle,
    Movement,
    ValidationError,
    default_higher_is_better,
    normalise_weekday,
    parse_iso_date,
    slugify,
)

try:  # pragma: no cover - Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - Python <3.11
    import tomli as tomllib  # type: ignore

LOGGER = logging.getLogger(__name__)

DEFAULT_TOP_N = 5
DEFAULT_BACKEND = "sqlite"
BACKENDS: tuple[str, ...] = ("sqlite", "supabase")

# The weekly schedule members used before training cycles existed.
DEFAULT_FALLBACK: dict[str, dict[str, str]] = {
    "Sunday": {"key": "sun", "name": "3 Rep Max Landmine clean", "unit": "lbs"},
    "Monday": {"key": "mon", "name": "6 Rep Reverse Lunge Max", "unit": "lbs"},
    "Tuesday": {"key": "tue", "name": "Max power Keiser Push/Pull", "unit": "watts"},
    "Wednesday": {"key": "wed", "name": "Max Treadmill Speed", "unit": "mph"},
    "Thursday": {"key": "thu", "name": "6 Rep Max Kickstand RDL", "unit": "lbs"},
    "Friday": {"key": "fri", "name": "6 Rep Max S/A Pull Down", "unit": "lbs"},
    "Saturday": {"key": "sat", "name": "Max distance 30 sec assault bike", "unit": "miles"},
}


class ConfigurationError(RuntimeError):
    """Static configuration violates an invariant; raised at load time."""


@dataclass(frozen=True)
class SupabaseSettings:
    url: Optional[str] = None
    key: Optional[str] = None
    site_url: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.url and self.key)


@dataclass(frozen=True)
class AppConfig:
    calendar: CycleCalendar = field(default_factory=lambda: _default_calendar())
    top_n: int = DEFAULT_TOP_N
    lower_is_better: tuple[str, ...] = ()
    storage_backend: str = DEFAULT_BACKEND
    supabase: SupabaseSettings = field(default_factory=SupabaseSettings)

    def direction_for(self, movement_name: str, unit: str | None = None) -> bool:
        """True when larger values are better for ``movement_name``."""
        movement = self.calendar.movement_named(movement_name)
        if movement is not None:
            return movement.higher_is_better
        if movement_name in self.lower_is_better:
            return False
        implied = default_higher_is_better(unit)
        return True if implied is None else implied


def _config_path() -> Path | None:
    """Resolve the TOML configuration file, if present."""
    env_override = get_env("CONFIG")
    if env_override:
        path = Path(env_override).expanduser()
        return path if path.exists() else None

    default_path = Path("config/mom3nt.toml")
    if default_path.exists():
        return default_path
    return None


def _load_toml(path: Path) -> Mapping[str, Any]:
    with path.open("rb") as handle:
        try:
            return tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigurationError(f"Could not parse {path}: {exc}") from exc


def _coerce_top_n(raw: Any) -> int:
    if raw is None:
        return DEFAULT_TOP_N
    if isinstance(raw, bool) or not isinstance(raw, (int, str)):
        raise ConfigurationError(f"leaderboard.top_n must be a positive integer; received {raw!r}.")
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"leaderboard.top_n must be a positive integer; received {raw!r}.") from exc
    if value < 1:
        raise ConfigurationError(f"leaderboard.top_n must be a positive integer; received {raw!r}.")
    return value


def _coerce_names(raw: Any) -> tuple[str, ...]:
    if not raw:
        return ()
    if isinstance(raw, str):
        entries = [entry.strip() for entry in raw.split(",")]
    elif isinstance(raw, (list, tuple, set)):
        entries = [str(entry).strip() for entry in raw]
    else:
        return ()
    return tuple(entry for entry in entries if entry)


def _build_movement(weekday: str, raw: Any, lower_is_better: tuple[str, ...], *, where: str) -> Movement:
    if isinstance(raw, str):
        raw = {"name": raw}
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{where}.{weekday} must be a table with name and unit.")
    name = str(raw.get("name") or "").strip()
    if not name:
        raise ConfigurationError(f"{where}.{weekday} is missing a movement name.")
    unit = str(raw.get("unit") or "").strip()
    explicit = raw.get("higher_is_better")
    if isinstance(explicit, bool):
        higher = explicit
    elif explicit is not None:
        raise ConfigurationError(f"{where}.{weekday}.higher_is_better must be true or false.")
    elif name in lower_is_better:
        higher = False
    else:
        implied = default_higher_is_better(unit)
        if implied is None:
            raise ConfigurationError(
                f"{where}.{weekday}: cannot infer direction for unit {unit!r} of {name!r}; "
                "set higher_is_better explicitly."
            )
        higher = implied
    identifier = str(raw.get("key") or slugify(name))
    return Movement(identifier=identifier, display_name=name, unit=unit, higher_is_better=higher)


def _build_template(raw: Any, lower_is_better: tuple[str, ...], *, where: str) -> dict[str, Movement]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{where} must map weekday names to movements.")
    template: dict[str, Movement] = {}
    for day_label, movement_raw in raw.items():
        try:
            weekday = normalise_weekday(day_label)
        except ValidationError as exc:
            raise ConfigurationError(f"{where}: {exc}") from exc
        if weekday in template:
            raise ConfigurationError(f"{where} lists {weekday} more than once.")
        template[weekday] = _build_movement(weekday, movement_raw, lower_is_better, where=where)
    return template


def _build_cycle(index: int, raw: Any, lower_is_better: tuple[str, ...]) -> Cycle:
    where = f"cycles[{index}]"
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{where} must be a table.")
    try:
        start = parse_iso_date(raw.get("start"), field=f"{where}.start")
        if raw.get("end") is not None:
            if raw.get("weeks") is not None:
                raise ConfigurationError(f"{where} sets both end and weeks; choose one.")
            end = parse_iso_date(raw.get("end"), field=f"{where}.end")
        elif raw.get("weeks") is not None:
            end = cycle_end_from_weeks(start, int(raw["weeks"]))
        else:
            raise ConfigurationError(f"{where} needs an end date or a week count.")
    except (ValueError, TypeError) as exc:
        raise ConfigurationError(str(exc)) from exc
    if end < start:
        raise ConfigurationError(f"{where} ends ({end}) before it starts ({start}).")
    template = _build_template(raw.get("template"), lower_is_better, where=f"{where}.template")
    label = raw.get("label")
    return Cycle(start_date=start, end_date=end, template=template, label=str(label) if label else None)


def _check_overlaps(cycles: list[Cycle]) -> None:
    for index, cycle in enumerate(cycles):
        for other_index in range(index + 1, len(cycles)):
            other = cycles[other_index]
            if cycle.overlaps(other):
                raise ConfigurationError(
                    f"cycles[{index}] ({cycle.start_date}..{cycle.end_date}) overlaps "
                    f"cycles[{other_index}] ({other.start_date}..{other.end_date})."
                )


def _check_display_names(calendar: CycleCalendar) -> None:
    seen: dict[str, Movement] = {}
    templates = [cycle.template for cycle in calendar.cycles] + [calendar.fallback]
    for template in templates:
        for movement in template.values():
            previous = seen.setdefault(movement.display_name, movement)
            if (previous.unit, previous.higher_is_better) != (movement.unit, movement.higher_is_better):
                raise ConfigurationError(
                    f"Movement {movement.display_name!r} is defined twice with a different "
                    "unit or direction; display names must be unique across cycles."
                )


def _default_calendar() -> CycleCalendar:
    fallback = _build_template(DEFAULT_FALLBACK, (), where="fallback")
    return CycleCalendar(cycles=(), fallback=fallback, policy=FallbackPolicy.UNCOVERED)


def _build_config(raw: Mapping[str, Any]) -> AppConfig:
    leaderboard = raw.get("leaderboard") if isinstance(raw.get("leaderboard"), Mapping) else {}
    lower_is_better = _coerce_names(leaderboard.get("lower_is_better"))
    top_n = _coerce_top_n(leaderboard.get("top_n"))

    calendar_section = raw.get("calendar") if isinstance(raw.get("calendar"), Mapping) else {}
    if "fallback" in calendar_section:
        fallback = _build_template(calendar_section.get("fallback"), lower_is_better, where="calendar.fallback")
    else:
        fallback = _build_template(DEFAULT_FALLBACK, lower_is_better, where="fallback")

    raw_cycles = raw.get("cycles") or []
    if not isinstance(raw_cycles, list):
        raise ConfigurationError("cycles must be an array of tables ([[cycles]]).")
    cycles = [_build_cycle(index, item, lower_is_better) for index, item in enumerate(raw_cycles)]
    _check_overlaps(cycles)

    # Without cycles the fallback is the whole schedule.
    default_policy = FallbackPolicy.MISSING_WEEKDAY if cycles else FallbackPolicy.UNCOVERED
    try:
        policy = FallbackPolicy.parse(calendar_section.get("fallback_policy") or default_policy.value)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    calendar = CycleCalendar(cycles=cycles, fallback=fallback, policy=policy)
    _check_display_names(calendar)

    storage_section = raw.get("storage") if isinstance(raw.get("storage"), Mapping) else {}
    backend = str(get_env("BACKEND") or storage_section.get("backend") or DEFAULT_BACKEND).strip().lower()
    if backend not in BACKENDS:
        raise ConfigurationError(f"storage.backend must be one of {', '.join(BACKENDS)}; received {backend!r}.")

    supabase_section = raw.get("supabase") if isinstance(raw.get("supabase"), Mapping) else {}
    supabase = _supabase_settings(supabase_section)

    return AppConfig(
        calendar=calendar,
        top_n=top_n,
        lower_is_better=lower_is_better,
        storage_backend=backend,
        supabase=supabase,
    )


def _supabase_settings(section: Mapping[str, Any]) -> SupabaseSettings:
    url = get_env("SUPABASE_URL") or section.get("url")
    site_url = get_env("SITE_URL") or section.get("site_url")
    return SupabaseSettings(
        url=str(url).rstrip("/") if url else None,
        key=get_env("SUPABASE_KEY"),
        site_url=str(site_url) if site_url else None,
    )


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load configuration once, falling back to built-in defaults."""
    path = _config_path()
    if not path:
        LOGGER.info("No configuration file found; using built-in weekly schedule.")
        return _build_config({})
    LOGGER.info("Loading configuration from %s", path)
    data = _load_toml(path)
    return _build_config(data)


def as_dict() -> dict[str, Any]:
    """Return the effective configuration for debug/CLI display."""
    config = get_config()
    calendar = config.calendar
    return {
        "fallback_policy": calendar.policy.value,
        "cycles": [
            {
                "label": cycle.label,
                "start": cycle.start_date.isoformat(),
                "end": cycle.end_date.isoformat(),
                "weeks": cycle.weeks,
                "template": {day: movement.display_name for day, movement in cycle.template.items()},
            }
            for cycle in calendar.cycles
        ],
        "fallback": {day: movement.display_name for day, movement in calendar.fallback.items()},
        "leaderboard": {"top_n": config.top_n, "lower_is_better": list(config.lower_is_better)},
        "storage_backend": config.storage_backend,
        "supabase_url": config.supabase.url,
        "source": str(_config_path() or "defaults"),
    }
