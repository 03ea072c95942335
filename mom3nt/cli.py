from __future__ import annotations

import json
import logging
import os
from datetime import date, datetime, timezone
from importlib import metadata
from pathlib import Path
from typing import Any, Optional

import typer

from .auth import AuthError, SupabaseAuthProvider, establish_session, parse_credential, request_magic_link
from .config import AppConfig, ConfigurationError, as_dict as config_as_dict, get_config
from .cycles import weekday_name
from .env import get_env
from .formatting import format_exact_value, format_value_with_unit
from .models import ValidationError, parse_iso_date
from .profile_cache import ProfileCache
from .series import series
from .services import (
    EntryResult,
    Snapshot,
    build_entry,
    leaderboard_for,
    movement_for,
    open_store,
    owner_dashboard,
    render_leaderboard_table,
    save_entry,
)
from .storage import (
    EntryStore,
    StoreError,
    data_dir,
    export_entries_csv,
    export_entries_json,
    load_import_records,
    write_json_atomic,
)

app = typer.Typer(help="Log daily movement results and compare them on the leaderboard.")
profile_app = typer.Typer(help="Show or update your member profile.")

SESSION_FILENAME = "session.json"


def _fail(message: str, *, code: int = 1) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


@app.callback()
def main_callback() -> None:
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "WARNING"))


def _config() -> AppConfig:
    try:
        return get_config()
    except ConfigurationError as exc:
        _fail(f"Configuration error: {exc}", code=2)
        raise  # pragma: no cover - _fail always exits


def _session_file() -> Path:
    return data_dir() / SESSION_FILENAME


def _saved_session() -> dict[str, Any]:
    path = _session_file()
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8") or "{}")
    except json.JSONDecodeError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _clean_identifier(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def _resolve_owner(requested: Optional[str]) -> str:
    owner = (
        _clean_identifier(requested)
        or _clean_identifier(get_env("OWNER"))
        or _clean_identifier(_saved_session().get("user_id"))
    )
    if not owner:
        _fail("No member selected. Pass --owner, set MOM3NT_OWNER, or run `mom3nt signin`.")
    return owner or ""


def _store(config: AppConfig) -> EntryStore:
    try:
        return open_store(config, access_token=_saved_session().get("access_token"))
    except StoreError as exc:
        _fail(str(exc))
        raise  # pragma: no cover - _fail always exits


def _snapshot(store: EntryStore) -> Snapshot:
    snapshot = Snapshot()
    try:
        snapshot.refresh(store)
    except StoreError as exc:
        _fail(f"Could not load entries: {exc}")
    return snapshot


def _parse_date_option(value: Optional[str], name: str) -> date | None:
    if value is None:
        return None
    try:
        return parse_iso_date(value, field=name)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc), param_name=name) from exc


def _auth_provider(config: AppConfig) -> SupabaseAuthProvider:
    settings = config.supabase
    if not settings.configured:
        _fail("Set MOM3NT_SUPABASE_URL and MOM3NT_SUPABASE_KEY to sign in.")
    return SupabaseAuthProvider(
        settings.url or "",
        settings.key or "",
        code_verifier=get_env("CODE_VERIFIER"),
    )


def _describe_movement(day: date, config: AppConfig) -> str:
    movement = movement_for(day, config)
    label = f"{weekday_name(day)} {day.isoformat()}"
    if movement.is_tbd:
        return f"{label}: TBD (no movement scheduled)"
    unit = f" ({movement.unit})" if movement.unit else ""
    return f"{label}: {movement.display_name}{unit}"


@app.command()
def today() -> None:
    """
    Show the movement scheduled for today.
    """
    typer.echo(_describe_movement(date.today(), _config()))


@app.command()
def resolve(
    day: str = typer.Option(..., "--date", "-d", help="Date in YYYY-MM-DD format."),
) -> None:
    """
    Show the movement scheduled for a date.

    Example:
        mom3nt resolve --date 2025-09-01
    """
    parsed = _parse_date_option(day, "date")
    typer.echo(_describe_movement(parsed or date.today(), _config()))


@app.command()
def calendar(
    month: Optional[str] = typer.Option(None, "--month", "-m", help="Month as YYYY-MM (defaults to this month)."),
) -> None:
    """
    List the movements scheduled for every day of a month.
    """
    config = _config()
    if month:
        try:
            anchor = datetime.strptime(month.strip(), "%Y-%m").date()
        except ValueError as exc:
            raise typer.BadParameter("month must look like YYYY-MM", param_name="month") from exc
    else:
        anchor = date.today().replace(day=1)
    typer.echo(anchor.strftime("%B %Y"))
    for week in config.calendar.month_grid(anchor.year, anchor.month):
        for cell in week:
            if cell is None:
                continue
            marker = "*" if cell.is_today else " "
            name = cell.movement.display_name if not cell.movement.is_tbd else "TBD"
            typer.echo(f"{marker} {cell.date.isoformat()} {weekday_name(cell.date)[:3]}  {name}")


@app.command()
def log(
    value: float = typer.Option(..., "--value", "-v", help="Result for the day's movement (positive number)."),
    day: Optional[str] = typer.Option(None, "--date", "-d", help="Entry date in YYYY-MM-DD format (defaults to today)."),
    notes: Optional[str] = typer.Option(None, "--notes", help="Free-form notes about the effort."),
    owner: Optional[str] = typer.Option(None, "--owner", "-o", help="Member id (defaults to MOM3NT_OWNER)."),
) -> None:
    """
    Log (or replace) your result for a day.

    Examples:
        mom3nt log --value 225
        mom3nt log --date 2025-09-01 --value 230 --notes "felt strong"
    """
    config = _config()
    owner_id = _resolve_owner(owner)
    store = _store(config)
    try:
        profile = ProfileCache(store).get(owner_id)
        result: EntryResult = build_entry(
            owner_id=owner_id,
            profile=profile,
            value=value,
            date_text=day,
            notes=notes,
            config=config,
        )
        save_entry(store, result)
    except ValidationError as exc:
        _fail(str(exc))
    except StoreError as exc:
        _fail(f"Could not save entry: {exc}")
    else:
        typer.echo(result.confirmation)


@app.command()
def leaderboard(
    movement: Optional[str] = typer.Option(None, "--movement", help="Movement name (defaults to the day's movement)."),
    day: Optional[str] = typer.Option(None, "--date", "-d", help="Use the movement scheduled on this date."),
    top: Optional[int] = typer.Option(None, "--top", "-n", help="Rows per gender (defaults to config)."),
) -> None:
    """
    Show the top results per gender, one row per member.
    """
    config = _config()
    snapshot = _snapshot(_store(config))
    board = leaderboard_for(
        snapshot.entries,
        movement_name=_clean_identifier(movement),
        day=_parse_date_option(day, "date"),
        top_n=top,
        config=config,
    )
    direction = "higher is better" if board.higher_is_better else "lower is better"
    typer.echo(f"{board.movement} ({direction})")
    typer.echo(render_leaderboard_table(board))


@app.command("series")
def series_command(
    movement: str = typer.Option(..., "--movement", help="Movement name."),
    since: Optional[str] = typer.Option(None, "--since", help="Earliest date to include (YYYY-MM-DD)."),
    until: Optional[str] = typer.Option(None, "--until", help="Latest date to include (YYYY-MM-DD)."),
    plot: Optional[Path] = typer.Option(None, "--plot", help="Write a PNG chart to this directory."),
    owner: Optional[str] = typer.Option(None, "--owner", "-o", help="Member id (defaults to MOM3NT_OWNER)."),
) -> None:
    """
    List your values for one movement in date order.
    """
    config = _config()
    owner_id = _resolve_owner(owner)
    snapshot = _snapshot(_store(config))
    date_range = (_parse_date_option(since, "since"), _parse_date_option(until, "until"))
    points = series(snapshot.entries, movement, owner_id, date_range)
    if not points:
        typer.echo(f"No entries for {movement}.")
        return
    unit = next((entry.unit for entry in snapshot.entries if entry.movement == movement), "")
    for point in points:
        typer.echo(f"{point.date.isoformat()}  {format_value_with_unit(point.value, unit)}")
    if plot is not None:
        from .charts import plot_series

        chart = plot_series(points, movement_name=movement, unit=unit, output_dir=plot.expanduser())
        typer.echo(f"Chart written to {chart}")


@app.command()
def mine(
    owner: Optional[str] = typer.Option(None, "--owner", "-o", help="Member id (defaults to MOM3NT_OWNER)."),
) -> None:
    """
    Summarise your entries and personal best per movement.
    """
    config = _config()
    owner_id = _resolve_owner(owner)
    snapshot = _snapshot(_store(config))
    dashboard = owner_dashboard(snapshot.entries, owner_id, config)
    for name, payload in dashboard.items():
        best = payload["best"]
        best_text = format_exact_value(best) if best is not None else "n/a"
        typer.echo(f"{name}: {len(payload['series'])} entries, best {best_text}")


@profile_app.command("show")
def profile_show(
    owner: Optional[str] = typer.Option(None, "--owner", "-o", help="Member id (defaults to MOM3NT_OWNER)."),
    refresh: bool = typer.Option(False, "--refresh", help="Bypass the local profile cache."),
) -> None:
    """
    Show the stored profile.
    """
    config = _config()
    owner_id = _resolve_owner(owner)
    try:
        profile = ProfileCache(_store(config)).get(owner_id, refresh=refresh)
    except StoreError as exc:
        _fail(f"Could not load profile: {exc}")
        return
    if profile is None:
        typer.echo("No profile yet. Run `mom3nt profile set --name ... --gender ...`.")
        return
    typer.echo(f"Name: {profile.display_name or 'n/a'}")
    typer.echo(f"Gender: {profile.gender or 'n/a'}")


@profile_app.command("set")
def profile_set(
    name: str = typer.Option(..., "--name", help="Name shown on the leaderboard."),
    gender: str = typer.Option(..., "--gender", help="male or female."),
    owner: Optional[str] = typer.Option(None, "--owner", "-o", help="Member id (defaults to MOM3NT_OWNER)."),
) -> None:
    """
    Save your display name and gender.
    """
    config = _config()
    owner_id = _resolve_owner(owner)
    try:
        saved = ProfileCache(_store(config)).save(owner_id, name, gender)
    except ValidationError as exc:
        _fail(str(exc))
        return
    except StoreError as exc:
        _fail(f"Could not save profile: {exc}")
        return
    typer.echo(f"Profile saved: {saved.display_name} ({saved.gender})")


@app.command("magic-link")
def magic_link(
    email: str = typer.Option(..., "--email", help="Address to send the sign-in email to."),
) -> None:
    """
    Email a sign-in link and 6-digit code.
    """
    config = _config()
    try:
        request_magic_link(email, _auth_provider(config), config.supabase.site_url)
    except AuthError as exc:
        _fail(str(exc))
    typer.echo("Magic link sent! Paste the link with `mom3nt signin --link` or use the 6-digit code.")


@app.command()
def signin(
    email: Optional[str] = typer.Option(None, "--email", help="Address the sign-in email was sent to."),
    link: Optional[str] = typer.Option(None, "--link", help="Full link copied from the email."),
    code: Optional[str] = typer.Option(None, "--code", help="6-digit code from the email."),
) -> None:
    """
    Sign in with a pasted link or the emailed code.
    """
    raw = link or code
    if not raw:
        raise typer.BadParameter("Provide --link or --code.", param_name="link")
    config = _config()
    try:
        credential = parse_credential(raw, email)
        session = establish_session(credential, _auth_provider(config))
    except AuthError as exc:
        _fail(str(exc))
        return
    write_json_atomic(
        _session_file(),
        {
            "user_id": session.user_id,
            "email": session.email,
            "access_token": session.access_token,
            "refresh_token": session.refresh_token,
            "signed_in_at": datetime.now(timezone.utc).isoformat(),
        },
    )
    typer.echo(f"Signed in as {session.email or session.user_id}.")


@app.command()
def export(
    to: Path = typer.Option(..., "--to", help="Directory for the CSV and JSON exports."),
    owner: Optional[str] = typer.Option(None, "--owner", "-o", help="Only export this member's entries."),
) -> None:
    """
    Export entries to CSV and JSON.
    """
    config = _config()
    snapshot = _snapshot(_store(config))
    entries = snapshot.mine(owner) if owner else snapshot.entries
    target = to.expanduser()
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    csv_path = export_entries_csv(target / f"entries_{stamp}.csv", entries)
    json_path = export_entries_json(target / f"entries_{stamp}.json", entries)
    write_json_atomic(
        target / f"entries_{stamp}_metadata.json",
        {
            "application": "mom3nt",
            "app_version": _app_version(),
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "rows": len(entries),
            "filters": {"owner": owner},
        },
    )
    typer.echo(f"Exported {len(entries)} entries to {csv_path} and {json_path}")


@app.command("import")
def import_entries(
    source: Path = typer.Argument(..., help="JSON file produced by `mom3nt export`."),
) -> None:
    """
    Import entries from a JSON export; rows for an existing day replace it.
    """
    config = _config()
    try:
        entries = load_import_records(source)
    except (FileNotFoundError, ValueError) as exc:
        _fail(str(exc))
        return
    store = _store(config)
    try:
        for entry in entries:
            store.upsert_entry(entry)
    except StoreError as exc:
        _fail(f"Import stopped: {exc}")
    typer.echo(f"Imported {len(entries)} entries from {source}")


@app.command("config")
def config_show() -> None:
    """
    Show the effective configuration (cycles, fallback, leaderboard settings).
    """
    try:
        config = config_as_dict()
    except ConfigurationError as exc:
        _fail(f"Configuration error: {exc}", code=2)
        return
    typer.echo(f"Config source: {config.get('source')}")
    typer.echo(f"Storage backend: {config.get('storage_backend')}")
    typer.echo(f"Fallback policy: {config.get('fallback_policy')}")
    for cycle in config.get("cycles", []):
        label = cycle.get("label") or "cycle"
        typer.echo(f"{label}: {cycle['start']} to {cycle['end']} ({cycle['weeks']:g} weeks)")
        for weekday, name in cycle.get("template", {}).items():
            typer.echo(f"  {weekday}: {name}")
    fallback = config.get("fallback", {})
    if fallback:
        typer.echo("Fallback template:")
        for weekday, name in fallback.items():
            typer.echo(f"  {weekday}: {name}")
    leaderboard_cfg = config.get("leaderboard", {})
    typer.echo(f"Leaderboard size: {leaderboard_cfg.get('top_n')}")


def _app_version() -> str:
    try:
        return metadata.version("mom3nt")
    except metadata.PackageNotFoundError:  # pragma: no cover - local dev fallback
        return "0.0.0"


app.add_typer(profile_app, name="profile", help="Show or update your member profile.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
