from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from mom3nt import config as config_module

ENV_VARS = (
    "MOM3NT_CONFIG",
    "MOM3NT_DATA_DIR",
    "MOM3NT_DB_FILE",
    "MOM3NT_OWNER",
    "MOM3NT_BACKEND",
    "MOM3NT_SUPABASE_URL",
    "MOM3NT_SUPABASE_KEY",
    "MOM3NT_SITE_URL",
    "MOM3NT_CODE_VERIFIER",
    "MOM3NT_SECRET",
    "MOM3NT_ENV",
)

CYCLE_CONFIG = """
[calendar]
fallback_policy = "missing-weekday"

[calendar.fallback.Tuesday]
name = "Max power Keiser Push/Pull"
unit = "watts"

[[cycles]]
label = "A"
start = "2025-09-01"
end = "2025-09-07"

[cycles.template.Monday]
name = "Squat"
unit = "lbs"

[cycles.template.Wednesday]
name = "500m Row"
unit = "sec"

[leaderboard]
top_n = 3
"""


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MOM3NT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("MOM3NT_CONFIG", str(tmp_path / "absent.toml"))
    config_module.get_config.cache_clear()
    yield
    config_module.get_config.cache_clear()


@pytest.fixture
def write_config(tmp_path, monkeypatch):
    def _write(text: str) -> Path:
        path = tmp_path / "mom3nt.toml"
        path.write_text(textwrap.dedent(text), encoding="utf-8")
        monkeypatch.setenv("MOM3NT_CONFIG", str(path))
        config_module.get_config.cache_clear()
        return path

    return _write


@pytest.fixture
def cycle_config(write_config):
    write_config(CYCLE_CONFIG)
    return config_module.get_config()
