"""Environment variable loaders for configuration."""

from __future__ import annotations

import os


def first_env_var(*names: str) -> str | None:
    """Return the first non-blank value among ``names``."""

    for name in names:
        value = os.getenv(name)
        if value is not None and value.strip():
            return value.strip()
    return None
