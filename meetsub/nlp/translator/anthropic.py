from __future__ import annotations

from typing import Optional

import httpx

from meetsub.nlp.translator.http_base import DEFAULT_TIMEOUT_SEC, HttpProviderClient

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


class AnthropicClient(HttpProviderClient):
    def __init__(
        self,
        api_key: str,
        *,
        url: str = ANTHROPIC_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
    ) -> None:
        super().__init__(client=client, timeout_sec=timeout_sec)
        self.api_key = api_key
        self.url = url

    @property
    def name(self) -> str:
        return "anthropic"

    async def generate(self, prompt: str, model: str) -> str:
        data = await self._post_json(
            self.url,
            {
                "Content-Type": "application/json",
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            {
                "model": model,
                "max_tokens": 1024,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        return self._extract(data, "content", 0, "text")
