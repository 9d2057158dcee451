from galtrans.contracts import HistoryEntry, TranslationUpdate
from galtrans.ui.overlay_qt import (
    OverlayConfig,
    TranslationLine,
    lines_from_history,
    merge_translation_line,
    render_lines_to_html,
)


def test_render_lines_to_html_contains_text() -> None:
    cfg = OverlayConfig(show_original=True)
    html = render_lines_to_html([TranslationLine(original="こんにちは", translation="你好")], cfg)
    assert "こんにちは" in html
    assert "你好" in html


def test_render_hides_original_and_escapes() -> None:
    cfg = OverlayConfig(show_original=False)
    html = render_lines_to_html([TranslationLine(original="src", translation="<b>x</b>")], cfg)
    assert "src" not in html
    assert "&lt;b&gt;x&lt;/b&gt;" in html


def test_streaming_updates_replace_pending_line() -> None:
    lines: list[TranslationLine] = []
    lines = merge_translation_line(
        lines, TranslationUpdate(original="A", translation="你", state="streaming"), max_lines=4
    )
    lines = merge_translation_line(
        lines, TranslationUpdate(original="A", translation="你好", state="streaming"), max_lines=4
    )
    assert len(lines) == 1 and lines[0].pending
    lines = merge_translation_line(
        lines, TranslationUpdate(original="A", translation="你好。", state="completed"), max_lines=4
    )
    assert lines == [TranslationLine(original="A", translation="你好。")]


def test_cancelled_update_drops_pending_line() -> None:
    lines = [TranslationLine(original="A", translation="部分", pending=True)]
    merged = merge_translation_line(
        lines, TranslationUpdate(original="A", translation="", state="cancelled"), max_lines=4
    )
    assert merged == []


def test_failed_update_shows_error() -> None:
    merged = merge_translation_line(
        [], TranslationUpdate(original="A", translation="", state="failed", error="boom"), max_lines=4
    )
    assert merged[0].error == "boom"
    assert "boom" in render_lines_to_html(merged, OverlayConfig())


def test_merge_keeps_only_max_lines() -> None:
    lines: list[TranslationLine] = []
    for i in range(5):
        lines = merge_translation_line(
            lines,
            TranslationUpdate(original=f"o{i}", translation=f"t{i}", state="completed", cached=True),
            max_lines=2,
        )
    assert [ln.original for ln in lines] == ["o3", "o4"]


def test_lines_from_history() -> None:
    lines = lines_from_history([HistoryEntry("a", "b")])
    assert lines == [TranslationLine(original="a", translation="b")]
