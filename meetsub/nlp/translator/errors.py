from __future__ import annotations

import httpx

INVALID_API_KEY = "Invalid API key"
RATE_LIMITED = "Rate limit exceeded, please try again later"
SERVICE_UNAVAILABLE = "Service temporarily unavailable"
TRANSLATION_FAILED = "Translation failed"


class TranslationError(Exception):
    """Provider failure. The message may hold raw payloads; never show it to users."""

    public_message = TRANSLATION_FAILED

    def __init__(self, message: str = "", *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(TranslationError):
    public_message = INVALID_API_KEY


class RateLimitedError(TranslationError):
    public_message = RATE_LIMITED


class ServiceUnavailableError(TranslationError):
    public_message = SERVICE_UNAVAILABLE


class TranslationFailedError(TranslationError):
    public_message = TRANSLATION_FAILED


def error_for_status(provider: str, status_code: int, body: str) -> TranslationError:
    msg = f"{provider} API error: {status_code} - {body}"
    if status_code in (401, 403):
        return AuthenticationError(msg, status_code=status_code)
    if status_code == 429:
        return RateLimitedError(f"{provider} rate limit: {body}", status_code=status_code)
    if status_code >= 500:
        return ServiceUnavailableError(msg, status_code=status_code)
    return TranslationFailedError(msg, status_code=status_code)


def raise_for_response(provider: str, response: httpx.Response) -> None:
    if response.is_success:
        return
    raise error_for_status(provider, response.status_code, response.text)


def sanitize_error(error: BaseException | None) -> str:
    """Map any failure to a short message safe to show next to a caption."""
    if isinstance(error, TranslationError):
        return error.public_message
    if isinstance(error, httpx.TransportError):
        return SERVICE_UNAVAILABLE
    return TRANSLATION_FAILED
