from __future__ import annotations

import json
import logging
import os
import threading
from collections import deque
from pathlib import Path
from typing import Callable, Deque, List, Optional

from galtrans.contracts import HistoryEntry

logger = logging.getLogger(__name__)

MAX_HISTORY = 1000
COMPACT_FACTOR = 2


def _entry_line(entry: HistoryEntry) -> str:
    return json.dumps({"original": entry.original, "translation": entry.translation}, ensure_ascii=False) + "\n"


class HistoryLog:
    """
    Bounded append-only record of (original, translation) pairs, oldest first.
    Stores duplicates; independent of the cache.

    On disk it is a JSON-lines file. Each append writes one line; once the file
    holds more than COMPACT_FACTOR * max_entries lines it is rewritten down to
    the retained entries.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        max_entries: int = MAX_HISTORY,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.path = Path(path) if path is not None else None
        self.max_entries = max(1, int(max_entries))
        self.on_change = on_change
        self._lock = threading.Lock()
        self._file_lines = 0
        self._entries: Deque[HistoryEntry] = deque(self._load(), maxlen=self.max_entries)

    def _load(self) -> List[HistoryEntry]:
        if self.path is None or not self.path.exists():
            return []
        kept: Deque[HistoryEntry] = deque(maxlen=self.max_entries)
        skipped = 0
        clean_tail = True
        try:
            with self.path.open("r", encoding="utf-8", errors="replace") as f:
                for line in f:
                    clean_tail = line.endswith("\n")
                    if not line.strip():
                        continue
                    self._file_lines += 1
                    try:
                        item = json.loads(line)
                    except ValueError:
                        skipped += 1
                        continue
                    if not isinstance(item, dict):
                        skipped += 1
                        continue
                    original = item.get("original")
                    translation = item.get("translation")
                    if isinstance(original, str) and isinstance(translation, str):
                        kept.append(HistoryEntry(original=original, translation=translation))
                    else:
                        skipped += 1
        except OSError as e:
            logger.warning("history_load_failed", extra={"path": str(self.path), "error": str(e)})
            return []
        if skipped:
            logger.warning("history_lines_skipped", extra={"path": str(self.path), "count": skipped})
        if skipped or not clean_tail:
            # later appends must start on a fresh line
            self._rewrite(list(kept))
        return list(kept)

    def _append_line(self, entry: HistoryEntry) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(_entry_line(entry))
        except OSError as e:
            logger.error("history_persist_failed", extra={"path": str(self.path), "error": str(e)})
            return
        self._file_lines += 1
        if self._file_lines > self.max_entries * COMPACT_FACTOR:
            self._rewrite(list(self._entries))

    def _rewrite(self, entries: List[HistoryEntry]) -> None:
        if self.path is None:
            return
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                f.writelines(_entry_line(e) for e in entries)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as e:
            logger.error("history_persist_failed", extra={"path": str(self.path), "error": str(e)})
            return
        self._file_lines = len(entries)
        logger.debug("history_compacted", extra={"path": str(self.path), "entries": len(entries)})

    def append(self, original: str, translation: str) -> bool:
        if not (original or "").strip() or not (translation or "").strip():
            return False
        entry = HistoryEntry(original=original, translation=translation)
        with self._lock:
            self._entries.append(entry)
            self._append_line(entry)
        if self.on_change is not None:
            self.on_change()
        return True

    def list(self) -> List[HistoryEntry]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._rewrite([])
        if self.on_change is not None:
            self.on_change()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
