"""Tests for the OpenAI-compatible summarizer with a mocked client."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from voicecode.summarizer.base import SummarizerError
from voicecode.summarizer.openai import OpenAISummarizer


def _completion(content: str) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def summarizer() -> OpenAISummarizer:
    s = OpenAISummarizer(api_key="sk-test", model="gpt-4o-mini")
    s._client = MagicMock()
    s._client.chat.completions.create = AsyncMock(return_value=_completion('{"bullets": ["ok"]}'))
    s._client.models.list = AsyncMock(
        return_value=SimpleNamespace(data=[SimpleNamespace(id="gpt-4o-mini")])
    )
    s._client.close = AsyncMock()
    return s


class TestOpenAISummarizer:
    @pytest.mark.asyncio
    async def test_summarize(self, summarizer: OpenAISummarizer) -> None:
        summary = await summarizer.summarize("build finished")
        assert summary.bullets == ["ok"]
        kwargs = summarizer._client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == 0

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self, summarizer: OpenAISummarizer) -> None:
        summarizer._client.chat.completions.create.side_effect = RuntimeError("429")
        with pytest.raises(SummarizerError):
            await summarizer._chat([{"role": "user", "content": "x"}])

    @pytest.mark.asyncio
    async def test_health(self, summarizer: OpenAISummarizer) -> None:
        status = await summarizer.health()
        assert status["ok"] is True
        assert status["hasModel"] is True

    @pytest.mark.asyncio
    async def test_aclose(self, summarizer: OpenAISummarizer) -> None:
        client = summarizer._client
        await summarizer.aclose()
        client.close.assert_awaited_once()
        assert summarizer._client is None
