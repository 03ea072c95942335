from __future__ import annotations

import json

import pytest

from mom3nt.models import Profile, ProfileIncompleteError
from mom3nt.profile_cache import ProfileCache
from mom3nt.storage import SQLiteStore


class CountingStore(SQLiteStore):
    def __init__(self, db_path):
        super().__init__(db_path)
        self.profile_reads = 0

    def fetch_profile(self, owner_id):
        self.profile_reads += 1
        return super().fetch_profile(owner_id)


def test_get_reads_through_then_serves_from_mirror(tmp_path):
    store = CountingStore(tmp_path / "entries.db")
    store.upsert_profile(Profile("u1", "Alice", "female"))
    cache = ProfileCache(store, tmp_path / "profiles.json")

    assert cache.get("u1") == Profile("u1", "Alice", "female")
    assert cache.get("u1") == Profile("u1", "Alice", "female")
    assert store.profile_reads == 1

    cache.get("u1", refresh=True)
    assert store.profile_reads == 2


def test_save_refreshes_mirror_from_store(tmp_path):
    store = CountingStore(tmp_path / "entries.db")
    cache = ProfileCache(store, tmp_path / "profiles.json")
    cache.save("u1", "Alice", "female")
    saved = cache.save("u1", " Alice B ", "FEMALE")

    assert saved == Profile("u1", "Alice B", "female")
    mirror = json.loads((tmp_path / "profiles.json").read_text(encoding="utf-8"))
    assert mirror["u1"]["name"] == "Alice B"
    assert cache.get("u1").display_name == "Alice B"
    assert store.profile_reads == 0


def test_missing_profile_clears_stale_mirror(tmp_path):
    store = CountingStore(tmp_path / "entries.db")
    path = tmp_path / "profiles.json"
    path.write_text(json.dumps({"u1": {"id": "u1", "name": "Ghost", "gender": "male"}}), encoding="utf-8")
    cache = ProfileCache(store, path)

    assert cache.get("u1", refresh=True) is None
    assert json.loads(path.read_text(encoding="utf-8")) == {}


def test_invalid_gender_is_rejected_before_writing(tmp_path):
    store = CountingStore(tmp_path / "entries.db")
    cache = ProfileCache(store, tmp_path / "profiles.json")
    with pytest.raises(ProfileIncompleteError):
        cache.save("u1", "Alice", "unknown")
    assert store.fetch_profile("u1") is None


def test_corrupt_mirror_is_ignored(tmp_path, caplog):
    store = CountingStore(tmp_path / "entries.db")
    store.upsert_profile(Profile("u1", "Alice", "female"))
    path = tmp_path / "profiles.json"
    path.write_text("{not json", encoding="utf-8")

    cache = ProfileCache(store, path)
    assert cache.get("u1").display_name == "Alice"
    assert "Ignoring unreadable profile cache" in caplog.text


def test_default_mirror_lives_in_data_dir(tmp_path):
    cache = ProfileCache(CountingStore(tmp_path / "entries.db"))
    assert cache.path == tmp_path / "data" / "profile_cache.json"
