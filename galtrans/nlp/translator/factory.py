from __future__ import annotations
import os
from .base import StreamingTranslator
from .openai_compat import DEFAULT_BASE_URL, DEFAULT_MODEL, OpenAICompatTranslator
from .stub import StubTranslator

def get_translator(
    provider: str | None = None,
    *,
    base_url: str = DEFAULT_BASE_URL,
    api_key: str = "",
    model: str = DEFAULT_MODEL,
) -> StreamingTranslator:
    provider = (provider or os.getenv("GALTRANS_TRANSLATOR", "openai")).lower().strip()

    if provider == "stub":
        return StubTranslator()
    if provider in ("openai", "openai_compat"):
        return OpenAICompatTranslator(base_url=base_url, api_key=api_key, model=model)

    raise ValueError(f"Unknown translator provider: {provider}")
