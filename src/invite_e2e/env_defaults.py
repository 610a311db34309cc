"""Read configuration defaults from `.env.defaults` and `.env`.

Lookup order for every key: process environment, then `.env` (local
overrides, never committed), then `.env.defaults` (the version-controlled
catalog). Files are looked up in the current working directory.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Dict


def _parse_env_file(path: Path) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key.startswith("export "):
            key = key[len("export "):].strip()
        value = value.strip()
        if len(value) >= 2 and value[0] in ('"', "'") and value[-1] == value[0]:
            value = value[1:-1]
        values[key] = value
    return values


@lru_cache(maxsize=4)
def load_defaults(directory: str | None = None) -> Dict[str, str]:
    """Merge `.env.defaults` with `.env` overrides from ``directory`` (default: cwd)."""
    base = Path(directory) if directory else Path.cwd()
    merged: Dict[str, str] = {}
    for name in (".env.defaults", ".env"):
        path = base / name
        if path.exists():
            merged.update(_parse_env_file(path))
    return merged


def get_env(key: str, fallback: str | None = None, directory: str | None = None) -> str | None:
    """Return ``key`` from the environment, then the env files, then ``fallback``."""
    value = os.environ.get(key)
    if value is not None and value != "":
        return value
    return load_defaults(directory).get(key, fallback)
