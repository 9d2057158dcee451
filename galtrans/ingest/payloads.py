from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union


@dataclass(frozen=True)
class RawText:
    text: str


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: Any = ""


@dataclass(frozen=True)
class CompatChatRequest:
    messages: Tuple[ChatMessage, ...]

    def user_text(self) -> Optional[str]:
        """Text of the last user-role message, trimmed; None when absent or blank."""
        for msg in reversed(self.messages):
            if msg.role.lower() != "user":
                continue
            text = content_text(msg.content)
            if text is None:
                return None
            text = text.strip()
            return text or None
        return None


Submission = Union[RawText, CompatChatRequest]


def content_text(content: Any) -> Optional[str]:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        for part in content:
            if not isinstance(part, dict):
                continue
            text = part.get("text")
            if isinstance(text, str) and text.strip():
                return text
    return None


def _load_json(body: bytes) -> Any:
    try:
        return json.loads(body.decode("utf-8-sig"))
    except (UnicodeDecodeError, ValueError):
        return None


def decode_submit_body(mimetype: str, body: bytes) -> Optional[RawText]:
    """
    /submit accepts text/plain (verbatim) or a JSON object with a "text" field.
    Anything else decodes to None.
    """
    mt = (mimetype or "").lower()
    if mt == "application/json" or mt.endswith("+json"):
        obj = _load_json(body)
        if isinstance(obj, dict) and isinstance(obj.get("text"), str):
            return RawText(obj["text"])
        return None
    try:
        return RawText(body.decode("utf-8"))
    except UnicodeDecodeError:
        return None


def decode_compat_body(body: bytes) -> Optional[CompatChatRequest]:
    obj = _load_json(body)
    if not isinstance(obj, dict):
        return None
    raw_messages = obj.get("messages")
    if not isinstance(raw_messages, list):
        return None
    messages = []
    for item in raw_messages:
        if not isinstance(item, dict) or not isinstance(item.get("role"), str):
            return None
        messages.append(ChatMessage(role=item["role"], content=item.get("content", "")))
    return CompatChatRequest(messages=tuple(messages))


def decode_submission(path: str, mimetype: str, body: bytes) -> Optional[Submission]:
    if path.rstrip("/").endswith("/chat/completions"):
        return decode_compat_body(body)
    return decode_submit_body(mimetype, body)


def submission_text(sub: Optional[Submission]) -> Optional[str]:
    if isinstance(sub, RawText):
        return sub.text if sub.text.strip() else None
    if isinstance(sub, CompatChatRequest):
        return sub.user_text()
    return None
