from __future__ import annotations
from typing import Callable, Optional

import httpx

from meetsub.contracts import TranslationSettings
from .anthropic import AnthropicClient
from .base import ProviderClient, Translator
from .http_base import DEFAULT_TIMEOUT_SEC
from .ollama import OllamaClient
from .openai import OpenAIClient
from .service import TranslationService

def get_provider_client(
    settings: TranslationSettings,
    *,
    client: Optional[httpx.AsyncClient] = None,
    timeout_sec: float = DEFAULT_TIMEOUT_SEC,
) -> ProviderClient:
    provider = (settings.provider or "").lower().strip()

    if provider == "openai":
        return OpenAIClient(settings.openai_api_key, client=client, timeout_sec=timeout_sec)
    if provider == "anthropic":
        return AnthropicClient(settings.anthropic_api_key, client=client, timeout_sec=timeout_sec)
    if provider == "ollama":
        return OllamaClient(
            settings.ollama_base_url,
            settings.ollama_api_key,
            client=client,
            timeout_sec=timeout_sec,
        )

    raise ValueError(f"Unknown translator provider: {provider}")

def get_translator(
    settings: Callable[[], TranslationSettings],
    *,
    client: Optional[httpx.AsyncClient] = None,
    timeout_sec: float = DEFAULT_TIMEOUT_SEC,
) -> Translator:
    return TranslationService(
        settings,
        lambda s: get_provider_client(s, client=client, timeout_sec=timeout_sec),
    )
