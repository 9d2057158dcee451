# galtrans/live/pipeline.py
from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Iterable, List, Optional

from galtrans.contracts import IncomingText, ReplacementRule, TranslationUpdate
from galtrans.errors import CacheError
from galtrans.live.session import CompletionSessionManager
from galtrans.nlp.normalize import normalize
from galtrans.store.cache import TranslationCache
from galtrans.store.history import HistoryLog
from galtrans.ui.bridge import INCOMING_TEXT, TRANSLATION_UPDATED, EventBroadcaster

logger = logging.getLogger(__name__)


class SubmitOutcome(str, Enum):
    EMPTY = "empty"
    CACHE_HIT = "cache_hit"
    IN_FLIGHT = "in_flight"
    STARTED = "started"


class TranslationPipeline:
    """
    Shared intake for every ingestion source.

    normalize -> cache lookup -> (hit) broadcast + history
                              -> (miss) one streaming session per key; the session
                                 writes cache + history on completion.
    """

    def __init__(
        self,
        *,
        cache: TranslationCache,
        history: HistoryLog,
        broadcaster: EventBroadcaster,
        sessions: CompletionSessionManager,
        rules: Iterable[ReplacementRule] = (),
    ) -> None:
        self.cache = cache
        self.history = history
        self.broadcaster = broadcaster
        self.sessions = sessions
        self.sessions.on_complete = self._on_session_complete
        self._rules: List[ReplacementRule] = list(rules)
        self._lock = threading.RLock()
        self._last_text: Optional[str] = None

    @property
    def rules(self) -> List[ReplacementRule]:
        with self._lock:
            return list(self._rules)

    @property
    def last_text(self) -> Optional[str]:
        with self._lock:
            return self._last_text

    def update_rules(self, rules: Iterable[ReplacementRule]) -> None:
        with self._lock:
            self._rules = list(rules)
        logger.info("replacement_rules_updated", extra={"count": len(self._rules)})

    def submit(self, raw: str, source: str = "manual") -> SubmitOutcome:
        key = normalize(raw, self.rules)
        if not key.strip():
            logger.debug("submit_empty", extra={"source": source})
            return SubmitOutcome.EMPTY

        with self._lock:
            self._last_text = key
            self.broadcaster.publish(INCOMING_TEXT, IncomingText(text=key, source=source))

            cached = self._lookup(key)
            if cached is not None:
                active = self.sessions.active
                if active is not None and active.key != key:
                    # the newest line owns the display
                    self.sessions.cancel()
                logger.info("cache_hit", extra={"source": source, "chars": len(key)})
                self.broadcaster.publish(
                    TRANSLATION_UPDATED,
                    TranslationUpdate(original=key, translation=cached, state="completed", cached=True),
                )
                self.history.append(key, cached)
                return SubmitOutcome.CACHE_HIT

            if self.sessions.is_in_flight(key):
                logger.info("submit_in_flight", extra={"source": source, "chars": len(key)})
                return SubmitOutcome.IN_FLIGHT

            session = self.sessions.start(key)
            if session is None:
                return SubmitOutcome.IN_FLIGHT
            logger.info("cache_miss", extra={"source": source, "chars": len(key), "session_id": session.id})
            return SubmitOutcome.STARTED

    def cached_translation(self, text: str) -> Optional[str]:
        """Persisted-state query; no events, no history."""
        if not (text or "").strip():
            return None
        return self._lookup(text)

    def retranslate_last(self) -> bool:
        with self._lock:
            key = self._last_text
            if not key:
                return False
            session = self.sessions.start(key, force=True)
        logger.info("retranslate_last", extra={"chars": len(key), "session_id": session.id if session else None})
        return session is not None

    def stop(self) -> bool:
        return self.sessions.cancel()

    def _lookup(self, key: str) -> Optional[str]:
        try:
            return self.cache.lookup(key)
        except CacheError as e:
            logger.error("cache_lookup_failed", extra={"error": str(e)})
            return None

    def _on_session_complete(self, key: str, translation: str) -> None:
        try:
            stored = self.cache.store(key, translation)
        except CacheError as e:
            # shown anyway; the next identical input will recompute
            logger.error("cache_store_failed", extra={"error": str(e), "chars": len(key)})
        else:
            if not stored:
                logger.debug("cache_store_skipped", extra={"chars": len(key)})
        self.history.append(key, translation)
