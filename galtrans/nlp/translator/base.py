from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Iterator
from galtrans.contracts import TranslationRequest
from galtrans.live.cancel import CancelToken

class StreamingTranslator(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def stream(self, req: TranslationRequest, token: CancelToken) -> Iterator[str]:
        """Yield translated text increments; raise SessionCancelled once token fires."""
