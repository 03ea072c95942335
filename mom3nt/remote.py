from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

import requests

from .models import Entry, Profile
from .storage import StoreError

LOGGER = logging.getLogger(__name__)

PAGE_SIZE = 1000
TIMEOUT_SECONDS = 30
ENTRY_CONFLICT_KEYS = "user_id,date"
PROFILE_CONFLICT_KEYS = "id"


class SupabaseStore:
    """
    Entry/profile store backed by Supabase's PostgREST API.

    ``access_token`` scopes requests to the signed-in member so row level
    security applies; without it the project key is used as the bearer.
    """

    def __init__(
        self,
        url: str,
        key: str,
        *,
        access_token: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not url or not key:
            raise StoreError("Supabase URL and key must both be configured.")
        self.url = url.rstrip("/")
        self._sess = session or requests.Session()
        self._sess.headers.update(
            {
                "apikey": key,
                "Authorization": f"Bearer {access_token or key}",
                "Accept-Encoding": "gzip, deflate",
            }
        )

    def _rest_url(self, table: str) -> str:
        return f"{self.url}/rest/v1/{table}"

    def _select(self, table: str, params: Mapping[str, str]) -> List[Mapping[str, Any]]:
        rows: List[Mapping[str, Any]] = []
        offset = 0
        while True:
            query = dict(params)
            query["limit"] = str(PAGE_SIZE)
            query["offset"] = str(offset)
            try:
                response = self._sess.get(self._rest_url(table), params=query, timeout=TIMEOUT_SECONDS)
                response.raise_for_status()
                page = response.json() if response.content else []
            except (requests.RequestException, ValueError) as exc:
                LOGGER.warning("Supabase select on %s failed: %s", table, exc)
                raise StoreError(f"Could not load {table}: {exc}") from exc
            if not page:
                break
            rows.extend(page)
            offset += len(page)
            if len(page) < PAGE_SIZE:
                break
        return rows

    def _upsert(self, table: str, record: Mapping[str, Any], on_conflict: str) -> Mapping[str, Any]:
        headers = {
            "Content-Type": "application/json",
            "Prefer": "resolution=merge-duplicates,return=representation",
        }
        try:
            response = self._sess.post(
                self._rest_url(table),
                params={"on_conflict": on_conflict},
                json=[dict(record)],
                headers=headers,
                timeout=TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            payload = response.json() if response.content else []
        except (requests.RequestException, ValueError) as exc:
            LOGGER.warning("Supabase upsert on %s failed: %s", table, exc)
            raise StoreError(f"Could not save to {table}: {exc}") from exc
        return payload[0] if payload else record

    def fetch_entries(self) -> List[Entry]:
        rows = self._select("entries", {"select": "*", "order": "date.asc"})
        return [Entry.from_record(row) for row in rows]

    def upsert_entry(self, entry: Entry) -> Entry:
        saved = self._upsert("entries", entry.to_record(), ENTRY_CONFLICT_KEYS)
        return Entry.from_record(saved)

    def fetch_profile(self, owner_id: str) -> Optional[Profile]:
        rows = self._select("profiles", {"select": "id,name,gender", "id": f"eq.{owner_id}"})
        return Profile.from_record(rows[0]) if rows else None

    def upsert_profile(self, profile: Profile) -> Profile:
        saved = self._upsert("profiles", profile.to_record(), PROFILE_CONFLICT_KEYS)
        return Profile.from_record(saved)
