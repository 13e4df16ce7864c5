"""On-disk JSON cache for fetched score trees."""

import hashlib
import json
import os
import shutil
from pathlib import Path
from typing import Any

from credit_vaults.constants import CACHE_DIR_NAME, CACHE_VERSION


def get_cache_dir(*, create: bool = True) -> Path:
    """Get the cache directory path. Uses XDG_CACHE_HOME if available, otherwise ~/.cache."""
    cache_home = os.getenv("XDG_CACHE_HOME")
    base = Path(cache_home) if cache_home else Path.home() / ".cache"
    cache_dir = base / CACHE_DIR_NAME
    if create:
        cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def clear_cache() -> bool:
    """Remove the cache directory. Returns False if there was nothing to remove."""
    cache_dir = get_cache_dir(create=False)
    if not cache_dir.exists():
        return False
    shutil.rmtree(cache_dir)
    return True


def cache_key(prefix: str, *parts: Any) -> str:
    """Deterministic key from a prefix and parts; bumping CACHE_VERSION invalidates old entries."""
    key_str = f"{prefix}:{CACHE_VERSION}:" + ":".join(str(p) for p in parts)
    return hashlib.sha256(key_str.encode()).hexdigest()


def _cache_file(key: str) -> Path:
    return get_cache_dir() / f"{key}.json"


def get_cached(key: str) -> Any | None:
    """Cached JSON value, or None if missing or unreadable."""
    path = _cache_file(key)
    if not path.exists():
        return None
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        # Corrupted entries are treated as misses and overwritten on the next fetch.
        return None


def set_cached(key: str, data: Any) -> bool:
    """Store a JSON value. Returns False if the cache is not writable."""
    try:
        with _cache_file(key).open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, separators=(",", ":"))
    except OSError:
        return False
    return True
