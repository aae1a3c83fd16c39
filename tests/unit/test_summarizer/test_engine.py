"""Tests for the SummaryEngine: fallback, change detection and wiring."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from voicecode.config.settings import Settings, SummarizerConfig, SummaryEngineKind
from voicecode.summarizer.base import Summarizer, SummarizerError
from voicecode.summarizer.engine import SummaryEngine, build_summary_engine, rolling_hash
from voicecode.summarizer.models import Summary


@pytest.fixture
def mock_llm() -> AsyncMock:
    llm = AsyncMock(spec=Summarizer)
    llm.summarize.return_value = Summary(bullets=["from model"])
    llm.health.return_value = {"ok": True, "server": True}
    return llm


class TestRollingHash:
    def test_stable(self) -> None:
        assert rolling_hash("abc") == rolling_hash("abc")
        assert rolling_hash("abc") != rolling_hash("abd")

    def test_known_value(self) -> None:
        # ((97 * 31) + 98) * 31 + 99
        assert rolling_hash("abc") == str(96354)

    def test_empty(self) -> None:
        assert rolling_hash("") == "0"
        assert rolling_hash(None) == "0"

    def test_only_tail_counts(self) -> None:
        tail = "y" * 5000
        assert rolling_hash("x" + tail) == rolling_hash("z" + tail)

    def test_fits_32_bits(self) -> None:
        assert 0 <= int(rolling_hash("\U0010ffff" * 100)) < 2**32


class TestSummaryEngine:
    def test_llm_requires_summarizer(self) -> None:
        with pytest.raises(ValueError):
            SummaryEngine(SummaryEngineKind.LLM)

    @pytest.mark.asyncio
    async def test_heuristic(self, heuristic_engine: SummaryEngine) -> None:
        summary = await heuristic_engine.summarize("Error: boom")
        assert summary.bullets[0].startswith("Error:")
        assert heuristic_engine.name == "heuristic"

    @pytest.mark.asyncio
    async def test_llm_used(self, mock_llm: AsyncMock) -> None:
        engine = SummaryEngine(SummaryEngineKind.LLM, llm=mock_llm)
        summary = await engine.summarize("anything")
        assert summary.bullets == ["from model"]
        mock_llm.summarize.assert_awaited_once_with("anything")

    @pytest.mark.asyncio
    async def test_llm_failure_falls_back(self, mock_llm: AsyncMock) -> None:
        mock_llm.summarize.side_effect = SummarizerError("down", provider="ollama")
        engine = SummaryEngine(SummaryEngineKind.LLM, llm=mock_llm)
        summary = await engine.summarize("Error: boom")
        assert summary.bullets[0].startswith("Error:")

    @pytest.mark.asyncio
    async def test_summarize_if_changed(self, heuristic_engine: SummaryEngine) -> None:
        first = await heuristic_engine.summarize_if_changed("build ok", None)
        assert first.changed is True
        assert first.summary is not None

        second = await heuristic_engine.summarize_if_changed("build ok", first.hash)
        assert second.changed is False
        assert second.summary is None
        assert second.hash == first.hash

        third = await heuristic_engine.summarize_if_changed("build failed", first.hash)
        assert third.changed is True
        assert third.hash != first.hash

    @pytest.mark.asyncio
    async def test_health(self, heuristic_engine: SummaryEngine, mock_llm: AsyncMock) -> None:
        assert await heuristic_engine.health() == {"engine": "heuristic", "ok": True}
        engine = SummaryEngine(SummaryEngineKind.LLM, llm=mock_llm)
        assert await engine.health() == {"engine": "llm", "ok": True, "server": True}

    @pytest.mark.asyncio
    async def test_health_error(self, mock_llm: AsyncMock) -> None:
        mock_llm.health.side_effect = RuntimeError("boom")
        engine = SummaryEngine(SummaryEngineKind.LLM, llm=mock_llm)
        status = await engine.health()
        assert status["ok"] is False
        assert status["error"] == "boom"

    @pytest.mark.asyncio
    async def test_aclose(self, mock_llm: AsyncMock) -> None:
        engine = SummaryEngine(SummaryEngineKind.LLM, llm=mock_llm)
        await engine.aclose()
        mock_llm.aclose.assert_awaited_once()


class TestBuildSummaryEngine:
    def test_default_is_heuristic(self) -> None:
        engine = build_summary_engine(Settings())
        assert engine.kind == SummaryEngineKind.HEURISTIC

    def test_ollama(self) -> None:
        from voicecode.summarizer.ollama import OllamaSummarizer

        settings = Settings(summarizer=SummarizerConfig(engine="ollama", model="llama3:8b"))
        engine = build_summary_engine(settings)
        assert engine.kind == SummaryEngineKind.LLM
        assert isinstance(engine._llm, OllamaSummarizer)
        assert engine._llm.model == "llama3:8b"

    def test_openai(self) -> None:
        from voicecode.summarizer.openai import OpenAISummarizer

        settings = Settings(
            summarizer=SummarizerConfig(engine="llm", provider="openai", model="gpt-4o-mini")
        )
        engine = build_summary_engine(settings)
        assert isinstance(engine._llm, OpenAISummarizer)
