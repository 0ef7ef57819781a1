from __future__ import annotations

from typing import Optional

import httpx

from meetsub.nlp.translator.http_base import DEFAULT_TIMEOUT_SEC, HttpProviderClient

OLLAMA_CLOUD_HOST = "ollama.com"


def is_cloud_url(base_url: str) -> bool:
    return OLLAMA_CLOUD_HOST in (base_url or "")


class OllamaClient(HttpProviderClient):
    """Self-hosted generate API. Auth header only when a key is configured."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
    ) -> None:
        super().__init__(client=client, timeout_sec=timeout_sec)
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key

    @property
    def name(self) -> str:
        return "ollama"

    async def generate(self, prompt: str, model: str) -> str:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        data = await self._post_json(
            f"{self.base_url}/api/generate",
            headers,
            {"model": model, "prompt": prompt, "stream": False},
        )
        return self._extract(data, "response")
