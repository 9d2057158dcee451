from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from galtrans.app.config import app_paths
from galtrans.ingest.clipboard import ClipboardWatcher
from galtrans.ingest.http_server import HttpListener
from galtrans.live.pipeline import TranslationPipeline
from galtrans.live.session import CompletionSessionManager
from galtrans.nlp.normalize import normalize
from galtrans.nlp.translator.factory import get_translator
from galtrans.store.cache import TranslationCache
from galtrans.store.history import HistoryLog
from galtrans.ui.bridge import HISTORY_UPDATED, EventBroadcaster


@dataclass(frozen=True)
class TranslatorServices:
    broadcaster: EventBroadcaster
    cache: TranslationCache
    history: HistoryLog
    sessions: CompletionSessionManager
    pipeline: TranslationPipeline
    listener: HttpListener
    clipboard: ClipboardWatcher


def build_translator(args: Any):
    return get_translator(
        str(args.translator),
        base_url=str(args.base_url),
        api_key=str(args.api_key or ""),
        model=str(args.model),
    )


def build_services(
    args: Any,
    *,
    broadcaster: Optional[EventBroadcaster] = None,
    clipboard_module: Any = None,
) -> TranslatorServices:
    broadcaster = broadcaster or EventBroadcaster()
    paths = app_paths(getattr(args, "data_dir", None))
    cache = TranslationCache(paths.cache_path)
    history = HistoryLog(
        paths.history_path,
        on_change=lambda: broadcaster.publish(HISTORY_UPDATED, None),
    )
    sessions = CompletionSessionManager(
        build_translator(args),
        broadcaster,
        system_prompt=str(args.prompt or ""),
        model=str(args.model),
    )
    pipeline = TranslationPipeline(
        cache=cache,
        history=history,
        broadcaster=broadcaster,
        sessions=sessions,
        rules=getattr(args, "replacements", ()),
    )
    listener = HttpListener(
        pipeline.submit,
        broadcaster,
        compat_enabled=bool(args.openai_compatible_input),
    )
    clip_kwargs: dict[str, Any] = {}
    if clipboard_module is not None:
        clip_kwargs["clipboard_module"] = clipboard_module
    clipboard = ClipboardWatcher(
        pipeline.submit,
        poll_sec=float(args.clipboard_poll_sec),
        enabled=bool(args.monitor_clipboard),
        normalize_fn=lambda text: normalize(text, pipeline.rules),
        **clip_kwargs,
    )
    return TranslatorServices(
        broadcaster=broadcaster,
        cache=cache,
        history=history,
        sessions=sessions,
        pipeline=pipeline,
        listener=listener,
        clipboard=clipboard,
    )
