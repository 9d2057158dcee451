from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest
import requests

from galtrans.contracts import TranslationRequest
from galtrans.errors import CompletionError, ConfigError, MissingCredentialError, SessionCancelled
from galtrans.live.cancel import CancelToken
from galtrans.nlp.translator import openai_compat
from galtrans.nlp.translator.factory import get_translator
from galtrans.nlp.translator.openai_compat import (
    OpenAICompatTranslator,
    build_messages,
    completions_url,
    iter_sse_deltas,
)
from galtrans.nlp.translator.stub import StubTranslator


def _sse(*contents: str) -> List[bytes]:
    lines: List[bytes] = [b": keep-alive", b""]
    for c in contents:
        event = {"choices": [{"delta": {"content": c}}]}
        lines.append(f"data: {json.dumps(event, ensure_ascii=False)}".encode("utf-8"))
        lines.append(b"")
    lines.append(b"data: [DONE]")
    return lines


class FakeResponse:
    def __init__(self, lines: List[bytes], status_code: int = 200, body: Any = None) -> None:
        self._lines = lines
        self.status_code = status_code
        self._body = body
        self.reason = "Error"
        self.closed = False

    @property
    def text(self) -> str:
        return json.dumps(self._body) if self._body is not None else ""

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no json")
        return self._body

    def iter_lines(self):
        return iter(self._lines)

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def _patch_post(monkeypatch, response: FakeResponse) -> Dict[str, Any]:
    captured: Dict[str, Any] = {}

    def _post(url, json=None, headers=None, stream=False, **kwargs):
        captured.update(url=url, json=json, headers=headers, stream=stream)
        return response

    monkeypatch.setattr(openai_compat.requests, "post", _post)
    return captured


def test_completions_url_variants() -> None:
    assert completions_url("https://api.openai.com") == "https://api.openai.com/v1/chat/completions"
    assert completions_url("http://localhost:8000/v1/") == "http://localhost:8000/v1/chat/completions"
    assert completions_url("http://x/v1/chat/completions") == "http://x/v1/chat/completions"


def test_build_messages_skips_blank_prompt() -> None:
    assert build_messages(TranslationRequest(text="t")) == [{"role": "user", "content": "t"}]
    assert build_messages(TranslationRequest(text="t", system_prompt="sys"))[0] == {
        "role": "system",
        "content": "sys",
    }


def test_iter_sse_deltas_stops_at_done() -> None:
    lines = _sse("你", "好") + [b'data: {"choices": [{"delta": {"content": "late"}}]}']
    assert list(iter_sse_deltas(lines)) == ["你", "好"]


def test_iter_sse_deltas_skips_noise() -> None:
    lines = [
        "data: not-json",
        'data: {"choices": []}',
        'data: {"choices": [{"delta": {"role": "assistant"}}]}',
        'data: {"choices": [{"delta": {"content": "ok"}}]}',
        "event: ping",
    ]
    assert list(iter_sse_deltas(lines)) == ["ok"]


def test_iter_sse_deltas_raises_on_error_event() -> None:
    lines = [b'data: {"error": {"message": "rate limited"}}']
    with pytest.raises(CompletionError, match="rate limited"):
        list(iter_sse_deltas(lines))


def test_stream_posts_openai_request(monkeypatch) -> None:
    resp = FakeResponse(_sse("こん", "にちは"))
    captured = _patch_post(monkeypatch, resp)
    tr = OpenAICompatTranslator(base_url="http://local", api_key="sk-test", model="m1")
    out = list(tr.stream(TranslationRequest(text="hello", system_prompt="sys"), CancelToken()))

    assert out == ["こん", "にちは"]
    assert captured["url"] == "http://local/v1/chat/completions"
    assert captured["stream"] is True
    assert captured["json"]["model"] == "m1"
    assert captured["json"]["stream"] is True
    assert captured["json"]["messages"][-1] == {"role": "user", "content": "hello"}
    assert captured["headers"]["Authorization"] == "Bearer sk-test"
    assert resp.closed


def test_request_model_overrides_default(monkeypatch) -> None:
    captured = _patch_post(monkeypatch, FakeResponse(_sse("x")))
    tr = OpenAICompatTranslator(api_key="k", model="default")
    list(tr.stream(TranslationRequest(text="t", model="override"), CancelToken()))
    assert captured["json"]["model"] == "override"


def test_stream_http_error(monkeypatch) -> None:
    _patch_post(monkeypatch, FakeResponse([], status_code=401, body={"error": {"message": "Invalid API key"}}))
    tr = OpenAICompatTranslator(api_key="bad")
    with pytest.raises(CompletionError, match="HTTP 401: Invalid API key"):
        list(tr.stream(TranslationRequest(text="t"), CancelToken()))


def test_stream_connection_error(monkeypatch) -> None:
    def _post(*args, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(openai_compat.requests, "post", _post)
    tr = OpenAICompatTranslator(api_key="k")
    with pytest.raises(CompletionError, match="connection refused"):
        list(tr.stream(TranslationRequest(text="t"), CancelToken()))


def test_stream_cancel_closes_response(monkeypatch) -> None:
    resp = FakeResponse(_sse("a", "b", "c"))
    _patch_post(monkeypatch, resp)
    token = CancelToken()
    gen = OpenAICompatTranslator(api_key="k").stream(TranslationRequest(text="t"), token)
    assert next(gen) == "a"
    token.cancel()
    assert resp.closed
    with pytest.raises(SessionCancelled):
        next(gen)


def test_missing_configuration() -> None:
    with pytest.raises(MissingCredentialError):
        list(OpenAICompatTranslator(api_key=" ").stream(TranslationRequest(text="t"), CancelToken()))
    with pytest.raises(ConfigError):
        list(OpenAICompatTranslator(api_key="k", model="").stream(TranslationRequest(text="t"), CancelToken()))


def test_stub_translator_chunks_deterministically() -> None:
    tr = StubTranslator(chunk_chars=3)
    out = list(tr.stream(TranslationRequest(text="Hello world."), CancelToken()))
    assert "".join(out) == "【仮訳】Hello world."
    assert all(len(c) <= 3 for c in out)


def test_stub_translator_honours_cancel() -> None:
    token = CancelToken()
    token.cancel()
    with pytest.raises(SessionCancelled):
        list(StubTranslator().stream(TranslationRequest(text="x"), token))


def test_factory(monkeypatch) -> None:
    assert isinstance(get_translator("stub"), StubTranslator)
    tr = get_translator("openai", base_url="http://h", api_key="k", model="m")
    assert isinstance(tr, OpenAICompatTranslator)
    assert (tr.base_url, tr.api_key, tr.model) == ("http://h", "k", "m")
    monkeypatch.setenv("GALTRANS_TRANSLATOR", "stub")
    assert isinstance(get_translator(), StubTranslator)
    with pytest.raises(ValueError):
        get_translator("nope")
