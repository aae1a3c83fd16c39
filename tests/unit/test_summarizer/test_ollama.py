"""Tests for the Ollama map-reduce summarizer using httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from voicecode.summarizer.base import SummarizerError
from voicecode.summarizer.ollama import OllamaSummarizer


def _chat_reply(content: str) -> httpx.Response:
    return httpx.Response(200, json={"message": {"role": "assistant", "content": content}})


def _make(handler, **kwargs) -> OllamaSummarizer:
    client = httpx.AsyncClient(
        base_url="http://ollama.test", transport=httpx.MockTransport(handler)
    )
    return OllamaSummarizer(base_url="http://ollama.test", client=client, **kwargs)


class TestOllamaSummarizer:
    @pytest.mark.asyncio
    async def test_single_chunk(self) -> None:
        requests: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            requests.append(body)
            return _chat_reply('{"bullets": ["built"], "tests": {"passed": 3}}')

        summarizer = _make(handler, model="qwen2.5:3b")
        summary = await summarizer.summarize("build output")
        assert summary.bullets == ["built"]
        assert summary.tests.passed == 3
        assert len(requests) == 1
        assert requests[0]["model"] == "qwen2.5:3b"
        assert requests[0]["stream"] is False
        assert requests[0]["options"]["temperature"] == 0
        assert "CHUNK_INDEX=1/1" in requests[0]["messages"][1]["content"]
        assert summarizer.last_metrics["chunks"] == 1

    @pytest.mark.asyncio
    async def test_map_reduce(self) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            prompt = json.loads(request.content)["messages"][1]["content"]
            calls.append(prompt)
            if "INPUT_JSON" in prompt:
                return _chat_reply('{"bullets": ["merged"]}')
            return _chat_reply(json.dumps({"bullets": [f"part {len(calls)}"]}))

        summarizer = _make(handler, chunk_size=10)
        summary = await summarizer.summarize("a" * 25)
        assert summary.bullets == ["merged"]
        assert len(calls) == 4
        assert "part 1" in calls[-1] and "part 3" in calls[-1]

    @pytest.mark.asyncio
    async def test_reduce_failure_merges_locally(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            prompt = json.loads(request.content)["messages"][1]["content"]
            if "INPUT_JSON" in prompt:
                return _chat_reply("I cannot do that")
            index = prompt.split("CHUNK_INDEX=")[1].split("/")[0]
            return _chat_reply(json.dumps({"bullets": [f"chunk {index}"]}))

        summarizer = _make(handler, chunk_size=5)
        summary = await summarizer.summarize("x" * 10)
        assert summary.bullets == ["chunk 1", "chunk 2"]

    @pytest.mark.asyncio
    async def test_invalid_map_json_is_skipped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _chat_reply("not json")

        summary = await _make(handler).summarize("output")
        assert summary.is_empty()

    @pytest.mark.asyncio
    async def test_all_calls_failing_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": "model not loaded"})

        with pytest.raises(SummarizerError) as exc_info:
            await _make(handler).summarize("output")
        assert exc_info.value.provider == "OllamaSummarizer"

    @pytest.mark.asyncio
    async def test_input_tail_truncated(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content)["messages"][1]["content"])
            return _chat_reply("{}")

        await _make(handler, max_input=4).summarize("abcdefgh")
        assert seen[0].endswith("CHUNK:\nefgh")

    @pytest.mark.asyncio
    async def test_blank_input_skips_model(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("should not be called")

        summary = await _make(handler).summarize("   ")
        assert summary.is_empty()

    @pytest.mark.asyncio
    async def test_health_has_model(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/tags"
            return httpx.Response(200, json={"models": [{"name": "qwen2.5:3b-instruct-q4_0"}]})

        status = await _make(handler).health()
        assert status == {
            "ok": True,
            "server": True,
            "model": "qwen2.5:3b-instruct-q4_0",
            "hasModel": True,
        }

    @pytest.mark.asyncio
    async def test_health_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        status = await _make(handler).health()
        assert status["ok"] is False
        assert status["server"] is False
        assert "refused" in status["error"]

    @pytest.mark.asyncio
    async def test_aclose(self) -> None:
        summarizer = _make(lambda r: _chat_reply("{}"))
        await summarizer.aclose()
        assert summarizer._client is None
