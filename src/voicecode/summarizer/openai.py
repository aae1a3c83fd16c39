"""OpenAI-compatible summarizer.

Works with OpenAI, OpenRouter, vLLM, llama.cpp servers and Ollama's
``/v1`` endpoint by setting a custom base_url.
"""

from __future__ import annotations

import logging
from typing import Any

from voicecode.summarizer.base import LLMSummarizer, SummarizerError

logger = logging.getLogger(__name__)


class OpenAISummarizer(LLMSummarizer):
    """Map-reduce summarizer using the chat completions API."""

    name = "llm"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        chunk_size: int = 6000,
        max_input: int = 200_000,
        timeout: float = 15.0,
        max_tokens: int = 1024,
    ) -> None:
        super().__init__(model=model, chunk_size=chunk_size, max_input=max_input, timeout=timeout)
        self._api_key = api_key
        self._base_url = base_url
        self._max_tokens = max_tokens
        self._client = None

    async def _ensure_client(self) -> None:
        """Lazily initialize the OpenAI async client."""
        if self._client is not None:
            return
        from openai import AsyncOpenAI
        kwargs: dict[str, Any] = {"api_key": self._api_key or "unused", "timeout": self._timeout}
        if self._base_url:
            kwargs["base_url"] = self._base_url
        self._client = AsyncOpenAI(**kwargs)
        logger.info("Initialized OpenAI client (model=%s, base_url=%s)", self._model, self._base_url)

    async def _chat(self, messages: list[dict[str, str]]) -> str:
        await self._ensure_client()
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=0,
                messages=messages,
            )
        except Exception as e:
            raise SummarizerError(f"OpenAI API call failed: {e}", provider="openai") from e
        raw_text = response.choices[0].message.content or ""
        logger.debug("Summarizer raw response: %s", raw_text[:200])
        return raw_text

    async def health(self) -> dict[str, Any]:
        """Check if the API is reachable and lists the configured model."""
        try:
            await self._ensure_client()
            page = await self._client.models.list()
        except Exception as e:
            logger.warning("Summarizer health check failed: %s", e)
            return {"ok": False, "server": False, "model": self._model, "error": str(e)}
        has_model = any(m.id == self._model for m in page.data)
        return {"ok": True, "server": True, "model": self._model, "hasModel": has_model}

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
