from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable, List

from galtrans.app.config import CONFIG_KEYS, rules_from_config
from galtrans.app.diagnostics import hint_for_exception
from galtrans.app.services import TranslatorServices, build_translator
from galtrans.contracts import HttpServerFault, TranslationUpdate
from galtrans.ui.bridge import (
    SERVER_FAULT,
    TRANSLATION_UPDATED,
    EventBroadcaster,
    SubscriberQueue,
    Subscription,
)

TRANSLATOR_KEYS = frozenset({"translator", "base_url", "api_key", "model"})


def _log_event(logger: logging.Logger | None, level: int, event: str, **fields: Any) -> None:
    if logger is None:
        return
    logger.log(level, event, extra=fields)


def _drain_updates(q: SubscriberQueue, overlay: Any, max_items: int) -> int:
    drained = 0
    while drained < max_items:
        update = q.pop()
        if update is None:
            break
        overlay.apply_update(update)
        drained += 1
    return drained


def attach_console_printer(
    broadcaster: EventBroadcaster,
    print_fn: Callable[[str], None] = print,
) -> List[Subscription]:
    def _on_update(update: TranslationUpdate) -> None:
        if update.state == "completed":
            tag = "cache" if update.cached else "new"
            print_fn(f"[{tag}] {update.original}\n    -> {update.translation}")
        elif update.state == "failed":
            print_fn(f"[error] {update.error}\n    hint: {hint_for_exception(update.error or '')}")

    def _on_fault(fault: HttpServerFault) -> None:
        print_fn(f"[http] port {fault.port} unavailable: {fault.message}\n    hint: {hint_for_exception(fault.message)}")

    return [
        broadcaster.subscribe(TRANSLATION_UPDATED, _on_update),
        broadcaster.subscribe(SERVER_FAULT, _on_fault),
    ]


def handle_console_command(
    line: str,
    services: TranslatorServices,
    print_fn: Callable[[str], None] = print,
) -> bool:
    """
    Operator commands read from stdin. Plain text is submitted as input.
      :retry          retranslate the last text, bypassing the cache
      :stop           cancel the active translation
      :lookup <text>  print the cached translation, if any
      :history [n]    print the last n history entries
    Returns False when the line was not understood.
    """
    raw = line.rstrip("\n")
    cmd, _, rest = raw.strip().partition(" ")
    if not cmd.startswith(":"):
        if raw.strip():
            services.pipeline.submit(raw, "manual")
        return True
    if cmd == ":retry":
        if not services.pipeline.retranslate_last():
            print_fn("nothing to retranslate")
        return True
    if cmd == ":stop":
        if not services.pipeline.stop():
            print_fn("no active translation")
        return True
    if cmd == ":lookup":
        found = services.pipeline.cached_translation(rest.strip())
        print_fn(found if found is not None else "(not cached)")
        return True
    if cmd == ":history":
        try:
            n = int(rest) if rest.strip() else 10
        except ValueError:
            n = 10
        for entry in services.history.list()[-max(1, n):]:
            print_fn(f"{entry.original}\n    -> {entry.translation}")
        return True
    print_fn(f"unknown command: {cmd}")
    return False


class RuntimeController:
    """Starts/stops the ingestion sources and applies configuration changes live."""

    def __init__(self, args: Any, services: TranslatorServices, logger: logging.Logger | None = None) -> None:
        self.args = args
        self.services = services
        self.logger = logger
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            self.services.listener.start(int(self.args.server_port))
            self.services.clipboard.start()
        _log_event(
            self.logger,
            logging.INFO,
            "runtime_started",
            port=int(self.args.server_port),
            listening=self.services.listener.running,
            clipboard=self.services.clipboard.enabled,
            translator=str(self.args.translator),
        )

    def stop(self) -> None:
        with self._lock:
            self.services.pipeline.stop()
            self.services.clipboard.stop()
            self.services.listener.stop()
        _log_event(self.logger, logging.INFO, "runtime_stopped")

    def apply_config(self, updated: dict[str, Any]) -> set[str]:
        """Apply changed settings; returns the keys that actually changed."""
        changed = {
            k for k, v in updated.items()
            if k in CONFIG_KEYS and getattr(self.args, k, None) != v
        }
        if "replacements" in updated:
            changed.add("replacements")
        with self._lock:
            for key in changed:
                if key == "replacements":
                    continue
                setattr(self.args, key, updated[key])
            self._apply_locked(changed, updated)
        _log_event(self.logger, logging.INFO, "config_applied", changed_keys=sorted(changed))
        return changed

    def _apply_locked(self, changed: Iterable[str], updated: dict[str, Any]) -> None:
        changed = set(changed)
        s = self.services
        if changed & TRANSLATOR_KEYS:
            s.sessions.configure(translator=build_translator(self.args))
        if "model" in changed:
            s.sessions.configure(model=str(self.args.model))
        if "prompt" in changed:
            s.sessions.configure(system_prompt=str(self.args.prompt or ""))
        if "replacements" in changed:
            rules = rules_from_config(updated.get("replacements"))
            self.args.replacements = rules
            s.pipeline.update_rules(rules)
        if "openai_compatible_input" in changed:
            s.listener.compat_enabled = bool(self.args.openai_compatible_input)
        if "clipboard_poll_sec" in changed:
            s.clipboard.poll_sec = max(0.05, float(self.args.clipboard_poll_sec))
        if "monitor_clipboard" in changed:
            s.clipboard.set_enabled(bool(self.args.monitor_clipboard))
        # a failed listener retries on any config change
        if "server_port" in changed or not s.listener.running:
            s.listener.rebind(int(self.args.server_port))
