# sflibrary/storage.py
import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

RECENT_STORAGE_KEY = "sf-ui-recent-searches"
MAX_RECENT = 6


def push_recent(items: List[str], term: str, limit: int = MAX_RECENT) -> List[str]:
    """Most-recent-first, de-duplicated list with ``term`` in front."""
    cleaned = term.strip()
    if not cleaned:
        return list(items)
    return [cleaned, *(item for item in items if item != cleaned)][:limit]


class RecentSearchStore:
    """Bounded recent-search history kept in a small JSON file.

    The file holds one object with a single key (``RECENT_STORAGE_KEY``)
    mapping to the list of terms. The list is read once and rewritten on
    every accepted term; writes are serialised with a lock.
    """

    def __init__(self, path: Path, limit: int = MAX_RECENT):
        self.path = Path(path)
        self.limit = limit
        self._lock = threading.Lock()
        self._items: Optional[List[str]] = None

    def _read(self) -> List[str]:
        try:
            if not self.path.exists():
                return []
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable recent-search file %s: %s", self.path, exc)
            return []
        stored = data.get(RECENT_STORAGE_KEY) if isinstance(data, dict) else None
        if not isinstance(stored, list):
            return []
        return [item for item in stored if isinstance(item, str) and item][: self.limit]

    def _write(self, items: List[str]) -> None:
        payload: Dict[str, List[str]] = {RECENT_STORAGE_KEY: items}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
        except OSError as exc:
            logger.error("Could not persist recent searches to %s: %s", self.path, exc)

    def load(self) -> List[str]:
        with self._lock:
            if self._items is None:
                self._items = self._read()
            return list(self._items)

    def remember(self, term: str) -> List[str]:
        """Record ``term`` and return the updated history."""
        with self._lock:
            if self._items is None:
                self._items = self._read()
            if not term.strip():
                return list(self._items)
            self._items = push_recent(self._items, term, self.limit)
            self._write(self._items)
            return list(self._items)
