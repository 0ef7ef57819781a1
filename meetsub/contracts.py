from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

@dataclass(frozen=True)
class TranscriptRecord:
    message_id: str
    speaker_id: str
    speaker_name: str
    text: str
    timestamp: int  # ms since epoch
    is_final: bool = False
    language_code: Optional[str] = None
    version: Optional[int] = None

@dataclass(frozen=True)
class DeviceInfo:
    device_id: str
    display_name: str

@dataclass(frozen=True)
class TranslationRequest:
    text: str
    target_lang: str = "en"
    mode: str = "optimistic"  # "optimistic" | "semantic"
    speaker: Optional[str] = None
    # Preceding captions, one "[speaker]: text" line each
    context: Optional[str] = None
    custom_instructions: Optional[str] = None
    caption_id: Optional[int] = None

@dataclass(frozen=True)
class TranslationResult:
    success: bool
    translation: Optional[str] = None
    error: Optional[str] = None
    provider: str = ""
    model: Optional[str] = None

@dataclass(frozen=True)
class TranslationSettings:
    provider: str = "openai"  # "openai" | "anthropic" | "ollama"
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    ollama_base_url: str = "http://localhost:11434"
    ollama_api_key: str = ""
    model: str = "gpt-4.1-nano"
    target_language: str = "en"
    translation_enabled: bool = False
    custom_prompt: str = ""

    def __repr__(self) -> str:
        # Keys stay out of logs and tracebacks.
        return (
            f"TranslationSettings(provider={self.provider!r}, model={self.model!r}, "
            f"target_language={self.target_language!r}, "
            f"translation_enabled={self.translation_enabled!r})"
        )
