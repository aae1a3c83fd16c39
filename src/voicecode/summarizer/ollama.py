"""Ollama-backed summarizer.

Talks to a local Ollama server over its native HTTP API.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from voicecode.summarizer.base import LLMSummarizer, SummarizerError

logger = logging.getLogger(__name__)

HEALTH_TIMEOUT = 3.0


class OllamaSummarizer(LLMSummarizer):
    """Map-reduce summarizer using Ollama's ``/api/chat`` endpoint."""

    name = "llm"

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:11434",
        model: str = "qwen2.5:3b-instruct-q4_0",
        chunk_size: int = 6000,
        max_input: int = 200_000,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(model=model, chunk_size=chunk_size, max_input=max_input, timeout=timeout)
        self._base_url = base_url.rstrip("/")
        self._client = client

    def _ensure_client(self) -> httpx.AsyncClient:
        """Lazily create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
            logger.info("Initialized Ollama client (model=%s, base_url=%s)", self._model, self._base_url)
        return self._client

    async def _chat(self, messages: list[dict[str, str]]) -> str:
        client = self._ensure_client()
        body = {
            "model": self._model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": 0, "num_ctx": 2048},
        }
        try:
            resp = await client.post("/api/chat", json=body, timeout=self._timeout)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise SummarizerError(f"Ollama chat request failed: {e}", provider="ollama") from e
        message = data.get("message") or {}
        return str(message.get("content") or data.get("response") or "")

    async def health(self) -> dict[str, Any]:
        """Probe the tags endpoint to see if the server is up and the model present."""
        client = self._ensure_client()
        try:
            resp = await client.get("/api/tags", timeout=HEALTH_TIMEOUT)
            resp.raise_for_status()
            models = resp.json().get("models") or []
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Summarizer health check failed: %s", e)
            return {"ok": False, "server": False, "model": self._model, "error": str(e)}
        family = self._model.split(":")[0]
        has_model = any(family in str(m.get("name", "")) for m in models if isinstance(m, dict))
        return {"ok": True, "server": True, "model": self._model, "hasModel": has_model}

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
