from __future__ import annotations

import os

PRIMARY_PREFIX = "MOM3NT_"


def get_env(name: str, default: str | None = None) -> str | None:
    """
    Resolve configuration environment variables.

    Every setting lives under the ``MOM3NT_`` prefix, e.g. ``MOM3NT_DATA_DIR``.
    """
    value = os.getenv(f"{PRIMARY_PREFIX}{name}")
    if value is not None:
        return value
    return default
