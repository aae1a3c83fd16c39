"""Summarization module for voicecode.

Converts raw terminal output into a small structured summary, either with
local heuristics or with a language model using map-reduce.

Public API:
    SummaryEngine -- Engine selection, fallback and change detection
    Summarizer -- Abstract base class
    HeuristicSummarizer -- Regex-driven local summarizer
    OllamaSummarizer -- Ollama HTTP API implementation
    OpenAISummarizer -- OpenAI-compatible implementation
"""

from voicecode.summarizer.base import LLMSummarizer, Summarizer, SummarizerError
from voicecode.summarizer.engine import ChangeResult, SummaryEngine, build_summary_engine, rolling_hash
from voicecode.summarizer.heuristic import HeuristicSummarizer
from voicecode.summarizer.models import Summary, naive_merge, normalize_summary

__all__ = [
    "ChangeResult",
    "HeuristicSummarizer",
    "LLMSummarizer",
    "OllamaSummarizer",
    "OpenAISummarizer",
    "Summarizer",
    "SummarizerError",
    "Summary",
    "SummaryEngine",
    "build_summary_engine",
    "naive_merge",
    "normalize_summary",
    "rolling_hash",
]


def __getattr__(name: str) -> type:
    """Lazy import for concrete implementations that require external deps."""
    if name == "OllamaSummarizer":
        from voicecode.summarizer.ollama import OllamaSummarizer
        return OllamaSummarizer
    if name == "OpenAISummarizer":
        from voicecode.summarizer.openai import OpenAISummarizer
        return OpenAISummarizer
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
