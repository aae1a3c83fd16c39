"""Summary engine: engine selection, fallback and change detection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from voicecode.config.settings import Settings, SummaryEngineKind
from voicecode.summarizer.base import Summarizer
from voicecode.summarizer.heuristic import HeuristicSummarizer
from voicecode.summarizer.models import Summary

logger = logging.getLogger(__name__)

HASH_WINDOW = 5000


def rolling_hash(text: str | None, window: int = HASH_WINDOW) -> str:
    """Cheap non-cryptographic hash of the last ``window`` characters."""
    s = text or ""
    h = 0
    for ch in s[-window:]:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return str(h)


@dataclass(frozen=True)
class ChangeResult:
    changed: bool
    hash: str
    summary: Summary | None = None


class SummaryEngine:
    """Single entry point for summarization.

    The engine kind is fixed at construction. Failures of the language
    model path degrade to the heuristic summarizer; ``summarize`` never
    raises.
    """

    def __init__(
        self,
        kind: SummaryEngineKind = SummaryEngineKind.HEURISTIC,
        llm: Summarizer | None = None,
        heuristic: Summarizer | None = None,
    ) -> None:
        if kind == SummaryEngineKind.LLM and llm is None:
            raise ValueError("LLM engine selected but no model summarizer supplied")
        self._kind = kind
        self._llm = llm
        self._heuristic = heuristic or HeuristicSummarizer()

    @property
    def kind(self) -> SummaryEngineKind:
        return self._kind

    @property
    def name(self) -> str:
        return self._kind.value

    async def summarize(self, text: str | None) -> Summary:
        source = text or ""
        if self._kind == SummaryEngineKind.LLM and self._llm is not None:
            try:
                return await self._llm.summarize(source)
            except Exception as e:
                logger.debug("Model summarizer failed, falling back to heuristics: %s", e)
        return await self._heuristic.summarize(source)

    async def summarize_if_changed(self, text: str | None, last_hash: str | None) -> ChangeResult:
        source = text or ""
        digest = rolling_hash(source)
        if digest == last_hash:
            return ChangeResult(changed=False, hash=digest)
        return ChangeResult(changed=True, hash=digest, summary=await self.summarize(source))

    async def health(self) -> dict[str, Any]:
        if self._kind == SummaryEngineKind.LLM and self._llm is not None:
            try:
                status = await self._llm.health()
            except Exception as e:
                status = {"ok": False, "error": str(e)}
            return {"engine": self.name, **status}
        return {"engine": self.name, "ok": True}

    async def aclose(self) -> None:
        if self._llm is not None:
            await self._llm.aclose()


def build_summary_engine(settings: Settings) -> SummaryEngine:
    """Create the engine described by the summarizer settings."""
    config = settings.summarizer
    if config.engine == SummaryEngineKind.HEURISTIC:
        return SummaryEngine(SummaryEngineKind.HEURISTIC)

    llm: Summarizer
    if config.provider == "openai":
        from voicecode.summarizer.openai import OpenAISummarizer
        llm = OpenAISummarizer(
            api_key=settings.openai_api_key.get_secret_value(),
            model=config.model,
            base_url=config.base_url,
            chunk_size=config.chunk_size,
            max_input=config.max_input,
            timeout=config.timeout,
        )
    else:
        from voicecode.summarizer.ollama import OllamaSummarizer
        llm = OllamaSummarizer(
            base_url=config.base_url,
            model=config.model,
            chunk_size=config.chunk_size,
            max_input=config.max_input,
            timeout=config.timeout,
        )
    logger.info("Summary engine: %s via %s (%s)", config.engine.value, config.provider, config.model)
    return SummaryEngine(SummaryEngineKind.LLM, llm=llm)
