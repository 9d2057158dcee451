from __future__ import annotations

import logging
import os
import socket
import threading
from typing import Any, Callable, Optional

from flask import Flask, request
from werkzeug.serving import BaseWSGIServer, make_server

from galtrans.contracts import HttpServerFault
from galtrans.ingest.payloads import decode_submission, submission_text
from galtrans.ui.bridge import SERVER_FAULT, EventBroadcaster

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"

SubmitFn = Callable[[str, str], Any]


def create_app(submit: SubmitFn, compat_enabled: Callable[[], bool]) -> Flask:
    app = Flask(__name__)

    # ---------- raw text / {"text": ...} ----------
    @app.post("/submit")
    def submit_text():
        body = request.get_data(cache=False)
        text = submission_text(decode_submission(request.path, request.mimetype, body))
        logger.info("http_submit", extra={"bytes": len(body), "accepted": text is not None})
        if text is None:
            return "", 200
        try:
            submit(text, "http")
        except Exception:
            logger.exception("http_submit_failed")
            return "", 500
        return "", 200

    # ---------- OpenAI-compatible hook ----------
    @app.post("/v1/chat/completions")
    def chat_completions():
        if not compat_enabled():
            return "", 404
        body = request.get_data(cache=False)
        text = submission_text(decode_submission(request.path, request.mimetype, body))
        if text is None:
            logger.info("compat_request_without_user_message", extra={"bytes": len(body)})
        else:
            logger.info("compat_submit", extra={"chars": len(text)})
            try:
                submit(text, "compat")
            except Exception:
                logger.exception("compat_submit_failed")
        # fire-and-forget for the client: always "not found"
        return "", 404

    return app


class HttpListener:
    """
    Local HTTP intake. Bind failures never raise: they are recorded as the last
    fault and published on the server-fault topic; the listener stays down until
    the next rebind.
    """

    def __init__(
        self,
        submit: SubmitFn,
        broadcaster: EventBroadcaster,
        *,
        host: str = DEFAULT_HOST,
        compat_enabled: bool = False,
    ) -> None:
        self.host = host
        self.broadcaster = broadcaster
        self.compat_enabled = compat_enabled
        self.app = create_app(submit, lambda: bool(self.compat_enabled))
        self._lock = threading.Lock()
        self._server: Optional[BaseWSGIServer] = None
        self._thread: Optional[threading.Thread] = None
        self._port: Optional[int] = None
        self._last_fault: Optional[HttpServerFault] = None

    @property
    def last_fault(self) -> Optional[HttpServerFault]:
        with self._lock:
            return self._last_fault

    @property
    def running(self) -> bool:
        with self._lock:
            return self._server is not None

    @property
    def port(self) -> Optional[int]:
        with self._lock:
            return self._port

    def _bind_socket(self, port: int) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            if os.name != "nt":
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, port))
            sock.listen(128)
        except OSError:
            sock.close()
            raise
        return sock

    def start(self, port: int) -> bool:
        with self._lock:
            if self._server is not None:
                return True
            fault = self._try_serve_locked(port)
            if fault is None:
                port = self._port
                self._thread = threading.Thread(
                    target=self._server.serve_forever,  # type: ignore[union-attr]
                    name=f"galtrans-http-{port}",
                    daemon=True,
                )
                self._thread.start()
            else:
                self._last_fault = fault
        if fault is not None:
            logger.error("http_bind_failed", extra={"port": fault.port, "error": fault.message})
            self.broadcaster.publish(SERVER_FAULT, fault)
            return False
        logger.info("http_listening", extra={"host": self.host, "port": port})
        return True

    def _try_serve_locked(self, port: Any) -> Optional[HttpServerFault]:
        try:
            port = int(port)
        except (TypeError, ValueError):
            return HttpServerFault(port=0, message=f"invalid port: {port!r}")
        if not 0 <= port < 65536:
            return HttpServerFault(port=port, message=f"invalid port: {port}")
        try:
            sock = self._bind_socket(port)
        except OSError as e:
            return HttpServerFault(port=port, message=str(e))
        try:
            server = make_server(self.host, port, self.app, threaded=True, fd=sock.fileno())
        except (OSError, SystemExit) as e:
            return HttpServerFault(port=port, message=str(e) or f"failed to serve on port {port}")
        finally:
            # werkzeug works on a duplicate of the descriptor
            sock.close()
        self._server = server
        self._port = int(server.socket.getsockname()[1])
        self._last_fault = None
        return None

    def stop(self) -> None:
        with self._lock:
            server, thread = self._server, self._thread
            self._server = None
            self._thread = None
            self._port = None
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join(timeout=5.0)
        logger.info("http_stopped")

    def rebind(self, port: int) -> bool:
        self.stop()
        return self.start(port)
