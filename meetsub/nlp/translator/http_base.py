from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from meetsub.nlp.translator.base import ProviderClient
from meetsub.nlp.translator.errors import (
    ServiceUnavailableError,
    TranslationFailedError,
    raise_for_response,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 30.0


class HttpProviderClient(ProviderClient):
    """
    Shared POST-and-parse path for the provider bindings.
    Pass `client` to reuse a connection pool; otherwise one client per call.
    """

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
    ) -> None:
        self._client = client
        self.timeout = httpx.Timeout(timeout_sec)

    async def _post_json(self, url: str, headers: dict[str, str], payload: dict[str, Any]) -> Any:
        try:
            if self._client is not None:
                resp = await self._client.post(url, headers=headers, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(url, headers=headers, json=payload)
        except httpx.TransportError as e:
            raise ServiceUnavailableError(f"{self.name} transport error: {type(e).__name__}") from e

        raise_for_response(self.name, resp)
        try:
            return resp.json()
        except ValueError as e:
            raise TranslationFailedError(f"{self.name} returned non-JSON body") from e

    def _extract(self, data: Any, *path: Any) -> str:
        cur = data
        try:
            for key in path:
                cur = cur[key]
        except (KeyError, IndexError, TypeError) as e:
            raise TranslationFailedError(f"{self.name} response missing {path!r}") from e
        if not isinstance(cur, str):
            raise TranslationFailedError(f"{self.name} response field {path!r} is not text")
        return cur.strip()
