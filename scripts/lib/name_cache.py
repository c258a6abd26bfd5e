"""
GitHub login → display name cache.

Loaded once at the start of a fetch run, handed to whichever step enriches
seats, and saved once at the end. Entries look like::

    {"octocat": {"name": "The Octocat", "status": "ok", "fetched_at": "2025-06-14T09:30:00+00:00"}}

``status`` is ``ok`` (name found), ``no_name`` (profile has no name) or
``error`` (lookup failed; retried on the next run).
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from scripts.lib.logger import setup_logger
from scripts.lib.utils import atomic_write_json, load_json

logger = setup_logger(__name__)


class NameCache:
    """Explicit, file-backed name cache."""

    def __init__(self, path: str | Path, entries: Optional[Dict[str, dict]] = None):
        self.path = Path(path)
        self.entries: Dict[str, dict] = dict(entries or {})
        self._dirty = False

    @classmethod
    def load(cls, path: str | Path) -> "NameCache":
        path = Path(path)
        data = load_json(path) if path.exists() else None
        if data is not None and not isinstance(data, dict):
            logger.warning("Ignoring malformed name cache %s", path)
            data = None
        cache = cls(path, data or {})
        logger.info("Name cache: %d entries from %s", len(cache.entries), path)
        return cache

    def __contains__(self, login: str) -> bool:
        return login in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def needs_lookup(self, login: str) -> bool:
        entry = self.entries.get(login)
        return entry is None or entry.get("status") == "error"

    def get_name(self, login: str) -> Optional[str]:
        entry = self.entries.get(login) or {}
        return entry.get("name") or None

    def record(self, login: str, name: Optional[str], status: str = None,
               now: Optional[datetime] = None) -> None:
        status = status or ("ok" if name else "no_name")
        self.entries[login] = {
            "name": name,
            "status": status,
            "fetched_at": (now or datetime.now(timezone.utc)).isoformat(),
        }
        self._dirty = True

    def save(self) -> bool:
        if not self._dirty:
            return True
        ok = atomic_write_json(dict(sorted(self.entries.items())), self.path)
        if ok:
            self._dirty = False
            logger.info("Saved %d name cache entries to %s", len(self.entries), self.path)
        return ok
