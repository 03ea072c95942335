from __future__ import annotations

import logging
import os
from datetime import date, datetime
from functools import wraps
from typing import Any, Callable, Optional

from flask import Flask, current_app, g, jsonify, request, session as flask_session

from .. import services
from ..auth import AuthError, IdentityProvider, SupabaseAuthProvider, establish_session, parse_credential, request_magic_link
from ..config import AppConfig, get_config
from ..env import get_env
from ..models import ValidationError, parse_iso_date
from ..profile_cache import ProfileCache
from ..series import series
from ..storage import EntryStore, StoreError

LOGGER = logging.getLogger(__name__)

StoreFactory = Callable[[Optional[str]], EntryStore]
ProviderFactory = Callable[[], IdentityProvider]


def create_app(
    config: AppConfig | None = None,
    *,
    store_factory: StoreFactory | None = None,
    provider_factory: ProviderFactory | None = None,
) -> Flask:
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
    app = Flask(__name__)
    env_secret = get_env("SECRET") or os.environ.get("SECRET_KEY")
    if not env_secret and (get_env("ENV") or "").lower() == "production":
        raise RuntimeError("SECRET_KEY/MOM3NT_SECRET must be set in production.")
    app.secret_key = env_secret or "dev-secret"
    app.config.update(
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
    )

    app_config = config or get_config()
    app.extensions["mom3nt"] = {
        "config": app_config,
        "store_factory": store_factory or (lambda token: services.open_store(app_config, access_token=token)),
        "provider_factory": provider_factory or (lambda: _default_provider(app_config)),
    }

    @app.before_request
    def load_member() -> None:
        g.owner_id = flask_session.get("user_id")
        g.access_token = flask_session.get("access_token")

    @app.errorhandler(StoreError)
    def handle_store_error(exc: StoreError):
        LOGGER.warning("Store request failed: %s", exc)
        return jsonify({"error": str(exc)}), 502

    register_auth(app)
    register_api(app)
    return app


def _default_provider(config: AppConfig) -> IdentityProvider:
    settings = config.supabase
    if not settings.configured:
        raise AuthError("Sign-in is not configured (MOM3NT_SUPABASE_URL / MOM3NT_SUPABASE_KEY).")
    return SupabaseAuthProvider(settings.url or "", settings.key or "", code_verifier=get_env("CODE_VERIFIER"))


def _state() -> dict[str, Any]:
    return current_app.extensions["mom3nt"]


def _config() -> AppConfig:
    return _state()["config"]


def _store() -> EntryStore:
    return _state()["store_factory"](g.get("access_token"))


def _entries() -> list:
    """Entries visible to the signed-in member, fetched once per request."""
    if "snapshot" not in g:
        snapshot = services.Snapshot()
        snapshot.refresh(_store())
        g.snapshot = snapshot
    return g.snapshot.entries


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not g.get("owner_id"):
            return jsonify({"error": "sign in required"}), 401
        return view(*args, **kwargs)

    return wrapped


def _date_arg(name: str) -> Optional[date]:
    raw = request.args.get(name)
    if not raw:
        return None
    return parse_iso_date(raw, field=name)


def register_auth(app: Flask) -> None:
    @app.post("/auth/magic-link")
    def auth_magic_link():
        payload = request.get_json(silent=True) or {}
        try:
            provider = _state()["provider_factory"]()
            request_magic_link(payload.get("email") or "", provider, _config().supabase.site_url)
        except AuthError as exc:
            return jsonify({"error": str(exc)}), 400
        return jsonify({"status": "sent"})

    @app.post("/auth/signin")
    def auth_signin():
        payload = request.get_json(silent=True) or {}
        raw = payload.get("credential") or payload.get("code") or ""
        try:
            credential = parse_credential(raw, payload.get("email"))
            auth_session = establish_session(credential, _state()["provider_factory"]())
        except AuthError as exc:
            return jsonify({"error": str(exc)}), 400
        flask_session.clear()
        flask_session["user_id"] = auth_session.user_id
        flask_session["access_token"] = auth_session.access_token
        return jsonify({"user_id": auth_session.user_id, "email": auth_session.email})

    @app.post("/auth/logout")
    def auth_logout():
        flask_session.clear()
        return jsonify({"status": "ok"})


def register_api(app: Flask) -> None:
    @app.get("/api/movement")
    def api_movement():
        try:
            day = _date_arg("date") or date.today()
        except ValidationError as exc:
            return jsonify({"error": str(exc)}), 400
        movement = _config().calendar.resolve(day)
        return jsonify({"date": day.isoformat(), "movement": movement.to_dict()})

    @app.get("/api/calendar")
    def api_calendar():
        month = request.args.get("month")
        try:
            anchor = datetime.strptime(month, "%Y-%m").date() if month else date.today().replace(day=1)
        except ValueError:
            return jsonify({"error": "month must look like YYYY-MM"}), 400
        grid = _config().calendar.month_grid(anchor.year, anchor.month)
        return jsonify(
            {
                "month": anchor.strftime("%Y-%m"),
                "weeks": [[cell.to_dict() if cell else None for cell in week] for week in grid],
            }
        )

    @app.get("/api/entries")
    @login_required
    def api_entries():
        entries = _entries()
        if request.args.get("mine"):
            entries = [entry for entry in entries if entry.owner_id == g.owner_id]
        return jsonify({"entries": [entry.to_record() for entry in entries]})

    @app.post("/api/entries")
    @login_required
    def api_save_entry():
        payload = request.get_json(silent=True) or {}
        store = _store()
        profile = ProfileCache(store).get(g.owner_id)
        try:
            result = services.build_entry(
                owner_id=g.owner_id,
                profile=profile,
                value=payload.get("value"),
                date_text=payload.get("date"),
                notes=payload.get("notes"),
                config=_config(),
            )
        except ValidationError as exc:
            return jsonify({"error": str(exc), "profile_required": not (profile and profile.is_complete)}), 400
        saved = services.save_entry(store, result)
        return jsonify({"entry": saved.to_record(), "message": result.confirmation})

    @app.get("/api/leaderboard")
    @login_required
    def api_leaderboard():
        try:
            day = _date_arg("date")
            top = int(request.args["top"]) if request.args.get("top") else None
        except (ValidationError, ValueError) as exc:
            return jsonify({"error": str(exc)}), 400
        board = services.leaderboard_for(
            _entries(),
            movement_name=request.args.get("movement") or None,
            day=day,
            top_n=top,
            config=_config(),
        )
        return jsonify(board.as_dict())

    @app.get("/api/series")
    @login_required
    def api_series():
        try:
            start = _date_arg("start")
            end = _date_arg("end")
        except ValidationError as exc:
            return jsonify({"error": str(exc)}), 400
        entries = _entries()
        movement = request.args.get("movement")
        if not movement:
            return jsonify({"movements": services.owner_dashboard(entries, g.owner_id, _config())})
        points = series(entries, movement, g.owner_id, (start, end))
        return jsonify({"movement": movement, "points": [point.to_dict() for point in points]})

    @app.get("/api/profile")
    @login_required
    def api_profile():
        profile = ProfileCache(_store()).get(g.owner_id, refresh=bool(request.args.get("refresh")))
        if profile is None:
            return jsonify({"profile": None})
        return jsonify({"profile": profile.to_record(), "complete": profile.is_complete})

    @app.put("/api/profile")
    @login_required
    def api_save_profile():
        payload = request.get_json(silent=True) or {}
        try:
            saved = ProfileCache(_store()).save(g.owner_id, payload.get("name"), payload.get("gender"))
        except ValidationError as exc:
            return jsonify({"error": str(exc)}), 400
        return jsonify({"profile": saved.to_record(), "complete": saved.is_complete})
