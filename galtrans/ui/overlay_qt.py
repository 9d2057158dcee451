from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from html import escape
from typing import Deque, Iterable, List, Optional

from galtrans.contracts import HistoryEntry, TranslationUpdate

try:
    from PyQt6 import QtCore, QtGui, QtWidgets
    _PYQT_IMPORT_ERROR: ImportError | None = None
except ImportError as e:  # pragma: no cover - import guard path
    QtCore = None  # type: ignore[assignment]
    QtGui = None  # type: ignore[assignment]
    QtWidgets = None  # type: ignore[assignment]
    _PYQT_IMPORT_ERROR = e


@dataclass(frozen=True)
class TranslationLine:
    original: str
    translation: str
    pending: bool = False
    error: Optional[str] = None


@dataclass
class OverlayConfig:
    show_original: bool = True
    max_lines: int = 4
    font_size: int = 18
    padding_px: int = 14
    bg_opacity: int = 66


def merge_translation_line(
    lines: List[TranslationLine],
    update: TranslationUpdate,
    *,
    max_lines: int,
) -> List[TranslationLine]:
    keep = max(1, int(max_lines))
    out = list(lines)
    pending_idx = None
    for i in range(len(out) - 1, -1, -1):
        if out[i].pending and out[i].original == update.original:
            pending_idx = i
            break

    if update.state == "cancelled":
        if pending_idx is not None:
            del out[pending_idx]
        return out[-keep:]

    new_line = TranslationLine(
        original=update.original,
        translation=update.translation,
        pending=update.state in ("requesting", "streaming"),
        error=update.error if update.state == "failed" else None,
    )
    # Streaming increments replace the pending line instead of appending.
    if pending_idx is not None:
        out[pending_idx] = new_line
    else:
        out.append(new_line)
    return out[-keep:]


def render_lines_to_html(lines: List[TranslationLine], cfg: OverlayConfig) -> str:
    # newest last (bottom)
    parts: List[str] = []
    small = max(8, cfg.font_size - 4)
    for ln in lines[-cfg.max_lines:]:
        if cfg.show_original and ln.original:
            parts.append(
                f"<div style='font-size:{small}px; opacity:0.8; margin-bottom:2px;'>{escape(ln.original)}</div>"
            )
        if ln.error:
            parts.append(f"<div style='font-size:{small}px; color:#ff8a80;'>{escape(ln.error)}</div>")
        elif ln.translation:
            cursor = " ▍" if ln.pending else ""
            parts.append(
                f"<div style='font-size:{cfg.font_size}px; font-weight:600;'>{escape(ln.translation)}{cursor}</div>"
            )
        parts.append("<div style='height:8px;'></div>")
    return "".join(parts).strip()


def lines_from_history(entries: Iterable[HistoryEntry]) -> List[TranslationLine]:
    return [TranslationLine(original=e.original, translation=e.translation) for e in entries]


if QtWidgets is not None:
    class TranslationOverlay(QtWidgets.QWidget):
        """Always-on-top translation panel fed by TranslationUpdate events."""

        def __init__(self, cfg: OverlayConfig | None = None):
            super().__init__()
            self.cfg = cfg or OverlayConfig()
            self._lines: Deque[TranslationLine] = deque(maxlen=max(1, int(self.cfg.max_lines)))

            self.setWindowFlags(
                QtCore.Qt.WindowType.FramelessWindowHint
                | QtCore.Qt.WindowType.WindowStaysOnTopHint
                | QtCore.Qt.WindowType.Tool
            )
            self.setAttribute(QtCore.Qt.WidgetAttribute.WA_TranslucentBackground, True)

            self.panel = QtWidgets.QFrame(self)
            alpha = max(0, min(255, int(round((self.cfg.bg_opacity / 100.0) * 255.0))))
            self.panel.setStyleSheet(
                f"QFrame {{ background-color: rgba(0, 0, 0, {alpha}); border-radius: 16px; }}"
            )
            self.label = QtWidgets.QTextBrowser(self.panel)
            self.label.setReadOnly(True)
            self.label.setFocusPolicy(QtCore.Qt.FocusPolicy.NoFocus)
            self.label.setStyleSheet("QTextBrowser { background: transparent; border: none; color: white; }")
            self.label.setVerticalScrollBarPolicy(QtCore.Qt.ScrollBarPolicy.ScrollBarAlwaysOff)

            layout = QtWidgets.QVBoxLayout(self.panel)
            pad = self.cfg.padding_px
            layout.setContentsMargins(pad, pad, pad, pad)
            layout.addWidget(self.label)
            outer = QtWidgets.QVBoxLayout(self)
            outer.setContentsMargins(0, 0, 0, 0)
            outer.addWidget(self.panel)
            self.resize(900, 220)
            self._refresh()

        def apply_update(self, update: TranslationUpdate) -> None:
            merged = merge_translation_line(list(self._lines), update, max_lines=self.cfg.max_lines)
            self._lines = deque(merged, maxlen=max(1, int(self.cfg.max_lines)))
            self._refresh()

        def set_history(self, entries: Iterable[HistoryEntry]) -> None:
            lines = lines_from_history(entries)
            self._lines = deque(lines[-self.cfg.max_lines:], maxlen=max(1, int(self.cfg.max_lines)))
            self._refresh()

        def _refresh(self) -> None:
            self.label.setHtml(render_lines_to_html(list(self._lines), self.cfg))
            bar = self.label.verticalScrollBar()
            bar.setValue(bar.maximum())

        def keyPressEvent(self, ev: QtGui.QKeyEvent) -> None:
            if ev.key() == QtCore.Qt.Key.Key_Escape:
                self.close()
                return
            super().keyPressEvent(ev)
else:
    class TranslationOverlay:
        def __init__(self, cfg: OverlayConfig | None = None) -> None:
            del cfg
            raise ModuleNotFoundError(
                "PyQt6 is required for TranslationOverlay. Install with: python -m pip install PyQt6"
            ) from _PYQT_IMPORT_ERROR
