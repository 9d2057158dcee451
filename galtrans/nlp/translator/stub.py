from __future__ import annotations
from typing import Iterator
from .base import StreamingTranslator
from galtrans.contracts import TranslationRequest
from galtrans.live.cancel import CancelToken

class StubTranslator(StreamingTranslator):
    def __init__(self, chunk_chars: int = 4):
        self.chunk_chars = max(1, int(chunk_chars))

    @property
    def name(self) -> str:
        return "stub"

    def stream(self, req: TranslationRequest, token: CancelToken) -> Iterator[str]:
        # Deterministic, test-friendly
        text = f"【仮訳】{req.text}"
        for i in range(0, len(text), self.chunk_chars):
            token.raise_if_cancelled()
            yield text[i:i + self.chunk_chars]
        token.raise_if_cancelled()
