from __future__ import annotations
from abc import ABC, abstractmethod
from meetsub.contracts import TranslationRequest, TranslationResult

class Translator(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def translate(self, req: TranslationRequest) -> TranslationResult: ...

class ProviderClient(ABC):
    """One provider's HTTP binding: prompt in, text out, TranslationError on failure."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def generate(self, prompt: str, model: str) -> str: ...
