from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from meetsub.contracts import TranslationRequest, TranslationResult, TranslationSettings
from meetsub.nlp.translator.base import ProviderClient, Translator
from meetsub.nlp.translator.errors import RateLimitedError, TranslationError, sanitize_error
from meetsub.nlp.translator.ollama import is_cloud_url
from meetsub.nlp.translator.prompt import build_prompt

logger = logging.getLogger(__name__)

PROVIDERS = ("openai", "anthropic", "ollama")

# Fallback rotation for hosted providers; the configured model goes first.
MODELS: dict[str, tuple[str, ...]] = {
    "anthropic": (
        "claude-haiku-4-5-20251001",
        "claude-sonnet-4-5-20250929",
        "claude-opus-4-5-20251101",
    ),
    "openai": (
        "gpt-4.1-nano",
        "gpt-4.1-mini",
        "gpt-4.1",
        "gpt-5-nano",
        "gpt-5-mini",
        "gpt-5",
    ),
    "ollama": (),
}


def rotation_from(models: Sequence[str], preferred: str) -> list[str]:
    models = list(models)
    if preferred in models:
        i = models.index(preferred)
        return models[i:] + models[:i]
    if preferred:
        return [preferred] + models
    return models


def _precondition_error(settings: TranslationSettings) -> Optional[str]:
    if settings.provider not in PROVIDERS:
        return f"Unknown translation provider: {settings.provider}"
    if settings.provider == "ollama":
        if not settings.ollama_base_url:
            return "Ollama base URL not configured"
        if is_cloud_url(settings.ollama_base_url) and not settings.ollama_api_key:
            return "API key required for Ollama Cloud"
        return None
    key = settings.anthropic_api_key if settings.provider == "anthropic" else settings.openai_api_key
    if not key:
        return f"API key not configured for {settings.provider}"
    return None


class TranslationService(Translator):
    """
    Provider-agnostic translate(). Settings are read on every call.

    Hosted providers rotate through MODELS on rate limits (wrapping around);
    any other failure stops the rotation. Ollama runs its single model.
    """

    def __init__(
        self,
        settings: Callable[[], TranslationSettings],
        client_factory: Callable[[TranslationSettings], ProviderClient],
    ) -> None:
        self._settings = settings
        self._client_factory = client_factory

    @property
    def name(self) -> str:
        return self._settings().provider

    async def translate(self, req: TranslationRequest) -> TranslationResult:
        settings = self._settings()
        provider = settings.provider

        problem = _precondition_error(settings)
        if problem:
            return TranslationResult(success=False, error=problem, provider=provider)

        client = self._client_factory(settings)
        prompt = build_prompt(req)

        if provider == "ollama":
            models = [settings.model]
        else:
            models = rotation_from(MODELS[provider], settings.model) or [settings.model]

        last_error: Optional[BaseException] = None
        for model in models:
            try:
                text = await client.generate(prompt, model)
            except RateLimitedError as e:
                last_error = e
                logger.warning(
                    "translate_rate_limited",
                    extra={"provider": provider, "model": model, "caption_id": req.caption_id},
                )
                continue
            except TranslationError as e:
                last_error = e
                logger.warning(
                    "translate_failed",
                    extra={
                        "provider": provider,
                        "model": model,
                        "caption_id": req.caption_id,
                        "error_type": type(e).__name__,
                        "status_code": e.status_code,
                    },
                )
                break
            logger.info(
                "translate_done",
                extra={
                    "provider": provider,
                    "model": model,
                    "mode": req.mode,
                    "caption_id": req.caption_id,
                    "chars_in": len(req.text),
                },
            )
            return TranslationResult(success=True, translation=text, provider=provider, model=model)

        return TranslationResult(success=False, error=sanitize_error(last_error), provider=provider)
