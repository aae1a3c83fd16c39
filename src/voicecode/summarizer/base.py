"""Abstract base classes for summarizers.

All summarizers produce the normalized ``Summary`` schema, enabling the
engine to swap between the local heuristics and a language model
without changing the rest of the pipeline.
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Any

from voicecode.summarizer.models import Summary, naive_merge, normalize_summary

logger = logging.getLogger(__name__)


MAP_SYSTEM_PROMPT = "You compress arbitrary developer tool output into strict JSON."

MAP_PROMPT = """You are compressing developer tool logs. Output JSON ONLY with fields:
{"version":"1.0","bullets":[string<=5],"filesChanged":[{"path":string,"adds":number,"dels":number}],"tests":{"passed":number,"failed":number,"failures":[{"name":string,"message":string}]},"errors":[{"type":string,"message":string,"file"?:string,"line"?:number}],"actions":["apply"|"rerun"|"open_pr"|"fix_tests"],"metrics":{"durationMs"?:number,"commandsRun"?:number,"exitCode"?:number}}
- Summarize ONLY this chunk; do not assume other chunks.
- If a field is unknown, provide a sensible default (e.g., [] or 0).
- Return compact JSON; no markdown or commentary."""

REDUCE_PROMPT = (
    "Given N JSON chunk-summaries (same schema), output a single consolidated JSON "
    "with the same schema. Merge duplicates, sum counts, keep unique bullets (<=6), "
    "prioritize failures and risky files. JSON ONLY."
)


class Summarizer(ABC):
    """Turns raw output text into a ``Summary``."""

    name: str = "summarizer"

    @abstractmethod
    async def summarize(self, text: str) -> Summary:
        ...

    @abstractmethod
    async def health(self) -> dict[str, Any]:
        """Diagnostic status; never used to gate behavior."""
        ...

    async def aclose(self) -> None:
        """Release any network resources."""


class LLMSummarizer(Summarizer):
    """Map-reduce summarization through a chat-style inference service.

    The input is tail-truncated to ``max_input`` characters and split into
    ``chunk_size`` pieces. Each piece is summarized independently (map);
    when more than one succeeds the model merges them (reduce), falling
    back to a local merge if that call fails.
    """

    name = "llm"

    def __init__(
        self,
        model: str,
        chunk_size: int = 6000,
        max_input: int = 200_000,
        timeout: float = 15.0,
    ) -> None:
        self._model = model
        self._chunk_size = chunk_size
        self._max_input = max_input
        self._timeout = timeout
        self.last_metrics: dict[str, Any] = {}

    @property
    def model(self) -> str:
        return self._model

    @abstractmethod
    async def _chat(self, messages: list[dict[str, str]]) -> str:
        """Send a chat request and return the assistant text."""
        ...

    async def summarize(self, text: str) -> Summary:
        source = (text or "")[-self._max_input:]
        if not source.strip():
            return Summary()
        chunks = [source[i:i + self._chunk_size] for i in range(0, len(source), self._chunk_size)]
        started = time.monotonic()
        logger.debug("Summarizing %d chunk(s) with %s", len(chunks), self._model)

        mapped: list[Summary] = []
        failures = 0
        for index, chunk in enumerate(chunks, start=1):
            messages = [
                {"role": "system", "content": MAP_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": f"{MAP_PROMPT}\n\nCHUNK_INDEX={index}/{len(chunks)}\n\nCHUNK:\n{chunk}",
                },
            ]
            try:
                raw = await self._chat(messages)
            except Exception as e:
                failures += 1
                logger.debug("Map call %d failed: %s", index, e)
                continue
            parsed = parse_summary_json(raw)
            if parsed is None:
                logger.debug("Map chunk %d returned invalid JSON, ignoring", index)
                continue
            mapped.append(normalize_summary(parsed))

        if failures == len(chunks):
            raise SummarizerError(
                "Every map call failed", provider=type(self).__name__
            )
        if not mapped:
            return Summary()

        reduced = mapped[0]
        if len(mapped) > 1:
            reduced = await self._reduce(mapped)

        self.last_metrics = {
            "model": self._model,
            "chunks": len(chunks),
            "durationMs": int((time.monotonic() - started) * 1000),
        }
        return reduced

    async def _reduce(self, mapped: list[Summary]) -> Summary:
        payload = json.dumps([s.to_wire() for s in mapped])
        messages = [
            {"role": "system", "content": MAP_SYSTEM_PROMPT},
            {"role": "user", "content": f"{REDUCE_PROMPT}\n\nINPUT_JSON = {payload}"},
        ]
        try:
            raw = await self._chat(messages)
        except Exception as e:
            logger.debug("Reduce call failed, merging locally: %s", e)
            return naive_merge(mapped)
        parsed = parse_summary_json(raw)
        if parsed is None:
            logger.debug("Reduce returned invalid JSON, merging locally")
            return naive_merge(mapped)
        return normalize_summary(parsed)


def parse_summary_json(raw: str | None) -> dict | None:
    """Extract the JSON object from a model response, or None."""
    json_str = (raw or "").strip()
    if not json_str:
        return None

    # Remove markdown code block if present
    match = re.search(r"```(?:json)?\s*(.*?)```", json_str, re.DOTALL)
    if match:
        json_str = match.group(1).strip()

    brace_match = re.search(r"\{.*\}", json_str, re.DOTALL)
    if brace_match:
        json_str = brace_match.group(0)

    for candidate in (json_str, re.sub(r'\\(?!["\\/bfnrtu])', r"\\\\", json_str)):
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        return data if isinstance(data, dict) else None
    return None


class SummarizerError(Exception):
    """Raised when a summarizer cannot produce a result."""

    def __init__(self, message: str, provider: str = "", raw_response: str = "") -> None:
        super().__init__(message)
        self.provider = provider
        self.raw_response = raw_response
