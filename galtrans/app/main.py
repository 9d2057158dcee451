from __future__ import annotations

import signal
import sys
import threading

from galtrans.app.config import resolve_args
from galtrans.app.logging_setup import setup_app_logger
from galtrans.app.runtime import (
    RuntimeController,
    _drain_updates,
    attach_console_printer,
    handle_console_command,
)
from galtrans.app.services import build_services
from galtrans.errors import CacheError
from galtrans.ui.bridge import TRANSLATION_UPDATED, SubscriberQueue


def main(argv: list[str] | None = None) -> int:
    args = resolve_args(argv)
    logger, log_dir, log_path = setup_app_logger(console=True, capture_http=True)
    logger.info(
        "app_start",
        extra={"config_path": str(getattr(args, "config", "") or ""), "argv": argv or []},
    )

    try:
        services = build_services(args)
    except CacheError:
        logger.exception("cache_open_failed")
        print(f"Could not open the translation cache. See log: {log_path}")
        return 1

    subscriptions = []
    if args.print_console:
        subscriptions.extend(attach_console_printer(services.broadcaster))

    runtime = RuntimeController(args, services, logger=logger)
    runtime.start()
    if services.listener.running:
        print(f"galtrans listening on http://{services.listener.host}:{services.listener.port}/submit")
    print(f"Logs: {log_path}")

    try:
        if args.overlay:
            return _run_overlay(args, services, logger)
        stop_event = threading.Event()
        signal.signal(signal.SIGINT, lambda *_: stop_event.set())
        if sys.stdin is not None and sys.stdin.isatty():
            threading.Thread(
                target=_stdin_loop,
                args=(services, stop_event),
                name="galtrans-stdin",
                daemon=True,
            ).start()
        while not stop_event.wait(0.5):
            pass
        return 0
    finally:
        for sub in subscriptions:
            sub.close()
        runtime.stop()
        logger.info("app_quit")


def _stdin_loop(services, stop_event: threading.Event) -> None:
    for line in sys.stdin:
        if stop_event.is_set():
            return
        handle_console_command(line, services)
    stop_event.set()


def _run_overlay(args, services, logger) -> int:
    from PyQt6 import QtCore, QtWidgets
    from galtrans.ui.overlay_qt import OverlayConfig, TranslationOverlay

    app = QtWidgets.QApplication(sys.argv)
    overlay = TranslationOverlay(
        OverlayConfig(
            show_original=bool(args.show_original),
            max_lines=max(1, int(args.max_lines)),
            font_size=max(8, int(args.font_size)),
            bg_opacity=max(0, min(100, int(args.overlay_opacity))),
        )
    )
    overlay.set_history(services.history.list())

    updates: SubscriberQueue = SubscriberQueue(maxsize=max(1, int(args.queue_maxsize)))
    subs = [
        services.broadcaster.subscribe(TRANSLATION_UPDATED, updates.push),
    ]

    timer = QtCore.QTimer()

    def _on_tick() -> None:
        drained = _drain_updates(updates, overlay, max_items=50)
        if drained:
            logger.debug("overlay_updates_applied", extra={"count": drained})

    timer.timeout.connect(_on_tick)
    timer.start(max(10, int(args.poll_ms)))
    app.aboutToQuit.connect(lambda: [s.close() for s in subs])
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    overlay.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
