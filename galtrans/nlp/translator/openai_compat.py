from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Iterator

import requests

from .base import StreamingTranslator
from galtrans.contracts import TranslationRequest
from galtrans.errors import CompletionError, ConfigError, MissingCredentialError, SessionCancelled
from galtrans.live.cancel import CancelToken

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com"
DEFAULT_MODEL = "gpt-4o-mini"


def completions_url(base_url: str) -> str:
    base = (base_url or DEFAULT_BASE_URL).strip().rstrip("/")
    if base.endswith("/chat/completions"):
        return base
    if base.endswith("/v1"):
        return f"{base}/chat/completions"
    return f"{base}/v1/chat/completions"


def build_messages(req: TranslationRequest) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    if req.system_prompt.strip():
        messages.append({"role": "system", "content": req.system_prompt})
    messages.append({"role": "user", "content": req.text})
    return messages


def _provider_error_message(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    err = payload.get("error")
    if isinstance(err, dict):
        msg = err.get("message")
        return str(msg) if msg else json.dumps(err, ensure_ascii=False)
    if isinstance(err, str) and err:
        return err
    return None


def iter_sse_deltas(lines: Iterable[bytes | str]) -> Iterator[str]:
    """
    Decode an OpenAI-style server-sent-event stream into content increments.
    Stops at "data: [DONE]"; blank lines, comments and unparsable events are skipped.
    """
    for raw in lines:
        line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        line = line.strip()
        if not line or line.startswith(":") or not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            return
        try:
            event = json.loads(data)
        except ValueError:
            logger.debug("sse_event_unparsable", extra={"data": data[:200]})
            continue
        msg = _provider_error_message(event)
        if msg is not None:
            raise CompletionError(msg)
        choices = event.get("choices") if isinstance(event, dict) else None
        if not choices or not isinstance(choices, list):
            continue
        delta = choices[0].get("delta") or {}
        content = delta.get("content") if isinstance(delta, dict) else None
        if isinstance(content, str) and content:
            yield content


class OpenAICompatTranslator(StreamingTranslator):
    """Streams chat completions from any OpenAI-compatible endpoint."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, api_key: str = "", model: str = DEFAULT_MODEL):
        self.base_url = base_url
        self.api_key = api_key
        self.model = model

    @property
    def name(self) -> str:
        return "openai"

    def _check_ready(self, req: TranslationRequest) -> str:
        if not (self.api_key or "").strip():
            raise MissingCredentialError()
        model = (req.model or self.model or "").strip()
        if not model:
            raise ConfigError("model is not configured.")
        if not (self.base_url or "").strip():
            raise ConfigError("base_url is not configured.")
        return model

    def stream(self, req: TranslationRequest, token: CancelToken) -> Iterator[str]:
        model = self._check_ready(req)
        token.raise_if_cancelled()
        payload = {
            "model": model,
            "stream": True,
            "messages": build_messages(req),
        }
        headers = {
            "Authorization": f"Bearer {self.api_key.strip()}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        try:
            r = requests.post(completions_url(self.base_url), json=payload, headers=headers, stream=True)
        except requests.RequestException as e:
            if token.cancelled:
                raise SessionCancelled() from e
            raise CompletionError(str(e)) from e

        with r:
            token.on_cancel(r.close)
            token.raise_if_cancelled()
            if r.status_code >= 400:
                try:
                    detail = _provider_error_message(r.json()) or r.text
                except ValueError:
                    detail = r.text
                raise CompletionError(f"HTTP {r.status_code}: {(detail or r.reason or '').strip()}")
            try:
                for delta in iter_sse_deltas(r.iter_lines()):
                    token.raise_if_cancelled()
                    yield delta
            except SessionCancelled:
                raise
            except (requests.RequestException, OSError, AttributeError, ValueError) as e:
                # Closing the response from another thread surfaces as a read error.
                if token.cancelled:
                    raise SessionCancelled() from e
                raise CompletionError(str(e)) from e
        token.raise_if_cancelled()
