from __future__ import annotations
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ReplacementRule:
    pattern: str
    replacement: str
    flags: str = ""


@dataclass(frozen=True)
class CacheEntry:
    key: str          # normalized source text
    translation: str


@dataclass(frozen=True)
class HistoryEntry:
    original: str
    translation: str


@dataclass(frozen=True)
class IncomingText:
    text: str
    source: str = "manual"  # http | compat | clipboard | manual


@dataclass(frozen=True)
class TranslationRequest:
    text: str
    system_prompt: str = ""
    model: str = ""


@dataclass(frozen=True)
class TranslationUpdate:
    """
    Progress of one translation as seen by presentation surfaces.
    state mirrors SessionState values ("streaming", "completed", ...).
    """
    original: str
    translation: str
    state: str
    cached: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class HttpServerFault:
    port: int
    message: str
