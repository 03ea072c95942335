from __future__ import annotations

import argparse
import random
from datetime import date, timedelta
from pathlib import Path
from typing import Sequence

from mom3nt.config import AppConfig, get_config
from mom3nt.models import Entry
from mom3nt.storage import export_entries_csv, export_entries_json

ROOT = Path(__file__).resolve().parents[1]
DEFAULT_JSON = ROOT / "demo" / "demo_entries.json"
DEFAULT_CSV = ROOT / "demo" / "demo_entries.csv"
DEFAULT_MEMBERS = ["Alex:male", "Blair:female", "Casey:female", "Drew:male"]

# Rough starting points per unit so demo charts look plausible.
BASELINES: dict[str, float] = {
    "lbs": 135.0,
    "watts": 450.0,
    "mph": 9.0,
    "miles": 0.25,
    "sec": 110.0,
    "rounds": 6.0,
}


def _parse_member(raw: str) -> tuple[str, str]:
    name, _, gender = raw.partition(":")
    gender = gender.strip().lower() or "female"
    if gender not in ("male", "female"):
        raise argparse.ArgumentTypeError(f"{raw!r}: gender must be male or female")
    return name.strip(), gender


def _build_entries(
    days: int,
    start: date,
    seed: int,
    members: Sequence[tuple[str, str]],
    config: AppConfig,
) -> list[Entry]:
    rng = random.Random(seed)
    entries: list[Entry] = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        movement = config.calendar.resolve(day)
        if not movement.accepts_entries:
            continue
        for name, gender in members:
            if rng.random() < 0.25:
                continue
            base = BASELINES.get(movement.unit, 50.0)
            trend = 1 + (0.004 * offset if movement.higher_is_better else -0.002 * offset)
            value = round(base * trend * rng.uniform(0.85, 1.15), 2)
            entries.append(
                Entry(
                    owner_id=f"demo-{name.lower()}",
                    date=day,
                    movement=movement.display_name,
                    value=max(value, 0.01),
                    unit=movement.unit,
                    display_name=name,
                    gender=gender,
                    notes=rng.choice([None, "Felt strong.", "Short on sleep.", "New technique cue."]),
                )
            )
    return entries


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate synthetic demo entries for the configured schedule.")
    parser.add_argument("--days", type=int, default=28, help="Number of sequential days to generate.")
    parser.add_argument(
        "--start-date",
        type=date.fromisoformat,
        default=(date.today() - timedelta(days=27)).isoformat(),
        help="Start date (YYYY-MM-DD). Defaults to 27 days before today.",
    )
    parser.add_argument("--seed", type=int, default=42, help="Random seed for reproducibility.")
    parser.add_argument("--json", type=Path, default=DEFAULT_JSON, help="Destination .json file.")
    parser.add_argument("--csv", type=Path, default=DEFAULT_CSV, help="Destination .csv file.")
    parser.add_argument(
        "--members",
        nargs="+",
        type=_parse_member,
        default=[_parse_member(raw) for raw in DEFAULT_MEMBERS],
        help="Space-separated name:gender pairs (default: %(default)s).",
    )
    args = parser.parse_args()

    if isinstance(args.start_date, str):
        start = date.fromisoformat(args.start_date)
    else:
        start = args.start_date

    entries = _build_entries(days=args.days, start=start, seed=args.seed, members=args.members, config=get_config())
    export_entries_json(args.json, entries)
    export_entries_csv(args.csv, entries)

    print(f"Wrote {len(entries)} demo entries to {args.json} and {args.csv}")


if __name__ == "__main__":
    main()
