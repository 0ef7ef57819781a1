from __future__ import annotations

from typing import Optional

import httpx

from meetsub.nlp.translator.http_base import DEFAULT_TIMEOUT_SEC, HttpProviderClient

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


class OpenAIClient(HttpProviderClient):
    def __init__(
        self,
        api_key: str,
        *,
        url: str = OPENAI_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
    ) -> None:
        super().__init__(client=client, timeout_sec=timeout_sec)
        self.api_key = api_key
        self.url = url

    @property
    def name(self) -> str:
        return "openai"

    async def generate(self, prompt: str, model: str) -> str:
        data = await self._post_json(
            self.url,
            {
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            {
                "model": model,
                "max_completion_tokens": 1024,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        return self._extract(data, "choices", 0, "message", "content")
