from __future__ import annotations

from meetsub.contracts import TranslationRequest

LANGUAGES: dict[str, str] = {
    "vi": "Vietnamese",
    "en": "English",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "pt": "Portuguese",
    "ru": "Russian",
    "ar": "Arabic",
    "hi": "Hindi",
    "it": "Italian",
    "th": "Thai",
    "id": "Indonesian",
    "nl": "Dutch",
    "pl": "Polish",
    "tr": "Turkish",
}

DEFAULT_CUSTOM_PROMPT = (
    "Translate naturally and smoothly. Keep technical terms and abbreviations as-is "
    "(API, ML, etc). Use appropriate formality for business context."
)

_RULES = """You are translating live meeting captions from speech recognition.

CRITICAL RULES:
1. Translate the COMPLETE text accurately - DO NOT skip any words
2. KEEP THE SPEAKER'S PERSPECTIVE: The text is spoken BY the speaker. When they refer to themselves, use "I/me". When they refer to the listener, use "you".
3. DO NOT flip or swap pronouns. If the speaker says something equivalent to "Do you love me?", translate it as "Do you love me?" - NOT "Do I love you?"
4. Fix obvious speech recognition errors based on context
5. Output ONLY the translation, nothing else"""


def language_name(code: str) -> str:
    return LANGUAGES.get(code, code)


def build_prompt(req: TranslationRequest) -> str:
    prompt = f"{_RULES}\n\nTarget language: {language_name(req.target_lang)}"

    if req.context:
        prompt += (
            "\n\nRecent conversation (format: [Speaker]: text):\n"
            f"{req.context}\n\n"
            "Use this context to understand who is speaking to whom and maintain "
            "correct pronoun references."
        )

    if req.custom_instructions:
        prompt += f"\n\nAdditional instructions: {req.custom_instructions}"

    prompt += f"\n\nCurrent speaker: {req.speaker or 'Unknown'}\nText to translate:\n{req.text}"
    return prompt
