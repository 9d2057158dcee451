from __future__ import annotations

import hashlib
import logging
import sqlite3
import threading
import time
from contextlib import closing
from pathlib import Path
from typing import Optional

from galtrans.contracts import CacheEntry
from galtrans.errors import CacheError

logger = logging.getLogger(__name__)

CACHE_FILENAME = "translations.sqlite3"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS translations (
  key TEXT PRIMARY KEY,
  original TEXT NOT NULL,
  translation TEXT NOT NULL,
  created_at INTEGER NOT NULL
);
"""


def cache_key(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:32]


class TranslationCache:
    """
    Write-once persistent map: normalized text -> translation.
    Every store commits before returning. Entries are never updated or evicted.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with closing(self._connect()) as conn:
                conn.executescript(_SCHEMA)
        except (OSError, sqlite3.Error) as e:
            raise CacheError(f"cannot open cache at {self.path}: {e}") from e

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.path), timeout=10.0)

    def get(self, key: str) -> Optional[CacheEntry]:
        try:
            with self._lock, closing(self._connect()) as conn:
                row = conn.execute(
                    "SELECT original, translation FROM translations WHERE key = ? LIMIT 1",
                    (cache_key(key),),
                ).fetchone()
        except sqlite3.Error as e:
            raise CacheError(f"cache lookup failed: {e}") from e
        return None if row is None else CacheEntry(key=str(row[0]), translation=str(row[1]))

    def lookup(self, key: str) -> Optional[str]:
        entry = self.get(key)
        return None if entry is None else entry.translation

    def store(self, key: str, translation: str) -> bool:
        """Return True when a new entry was written."""
        if not (translation or "").strip():
            return False
        hashed = cache_key(key)
        try:
            with self._lock, closing(self._connect()) as conn:
                with conn:
                    cur = conn.execute(
                        "INSERT OR IGNORE INTO translations (key, original, translation, created_at) "
                        "VALUES (?, ?, ?, ?)",
                        (hashed, key, translation, int(time.time())),
                    )
                    if cur.rowcount == 1:
                        return True
                    row = conn.execute(
                        "SELECT translation FROM translations WHERE key = ?", (hashed,)
                    ).fetchone()
        except sqlite3.Error as e:
            raise CacheError(f"cache store failed: {e}") from e

        if row is not None and str(row[0]) != translation:
            logger.warning("cache_conflict_ignored", extra={"chars": len(key)})
        return False

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.lookup(key) is not None

    def __len__(self) -> int:
        try:
            with self._lock, closing(self._connect()) as conn:
                (count,) = conn.execute("SELECT COUNT(*) FROM translations").fetchone()
        except sqlite3.Error as e:
            raise CacheError(f"cache count failed: {e}") from e
        return int(count)
