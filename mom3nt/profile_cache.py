from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .models import Profile, ProfileIncompleteError, normalise_gender
from .storage import EntryStore, data_dir, write_json_atomic

LOGGER = logging.getLogger(__name__)

CACHE_FILENAME = "profile_cache.json"


class ProfileCache:
    """
    Read-through cache in front of the profile store.

    The store is the source of truth. The JSON mirror on disk only saves a
    round trip; every save invalidates the cached record before refilling it
    from what the store accepted.
    """

    def __init__(self, store: EntryStore, path: Path | str | None = None) -> None:
        self.store = store
        self.path = Path(path).expanduser() if path is not None else data_dir() / CACHE_FILENAME

    def get(self, owner_id: str, *, refresh: bool = False) -> Optional[Profile]:
        mirror = self._read_mirror()
        if not refresh and owner_id in mirror:
            return Profile.from_record(mirror[owner_id])
        profile = self.store.fetch_profile(owner_id)
        if profile is None:
            self.invalidate(owner_id)
            return None
        self._remember(profile)
        return profile

    def save(self, owner_id: str, display_name: str | None, gender: str | None) -> Profile:
        name = (display_name or "").strip()
        gender_value = normalise_gender(gender)
        if gender and gender_value is None:
            raise ProfileIncompleteError("gender must be 'male' or 'female'.")
        self.invalidate(owner_id)
        saved = self.store.upsert_profile(Profile(owner_id=owner_id, display_name=name or None, gender=gender_value))
        self._remember(saved)
        return saved

    def invalidate(self, owner_id: str) -> None:
        mirror = self._read_mirror()
        if mirror.pop(owner_id, None) is not None:
            write_json_atomic(self.path, mirror)

    def _remember(self, profile: Profile) -> None:
        mirror = self._read_mirror()
        mirror[profile.owner_id] = profile.to_record()
        write_json_atomic(self.path, mirror)

    def _read_mirror(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            LOGGER.warning("Ignoring unreadable profile cache %s: %s", self.path, exc)
            return {}
        if not isinstance(payload, dict):
            return {}
        return {str(key): value for key, value in payload.items() if isinstance(value, dict)}
