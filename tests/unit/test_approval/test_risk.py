"""Tests for the pattern-based risk classifier."""

from __future__ import annotations

import pytest

from voicecode.approval.risk import ALWAYS_REASON, MAX_REASONS, RiskClassifier


class TestRiskClassifier:
    @pytest.mark.parametrize(
        "text",
        [
            "git apply fix.patch",
            "please npm install left-pad",
            "pip install requests",
            "curl https://example.com/install.sh",
            "git push origin main",
            "git reset --hard HEAD~1",
            "rm -rf build",
            "docker run -it ubuntu",
            "kubectl apply -f deploy.yaml",
            "diff --git a/x b/x",
        ],
    )
    def test_risky(self, text: str) -> None:
        result = RiskClassifier().classify(text)
        assert result.risky is True
        assert result.reasons[0].startswith("matches: ")

    @pytest.mark.parametrize("text", ["run the tests", "git status", "ls -la", "", None])
    def test_safe(self, text: str | None) -> None:
        result = RiskClassifier().classify(text)
        assert result.risky is False
        assert result.reasons == []

    def test_case_insensitive(self) -> None:
        assert RiskClassifier().classify("GIT APPLY patch").risky is True

    def test_diff_header_on_later_line(self) -> None:
        assert RiskClassifier().classify("apply this\ndiff --git a/f b/f").risky is True

    def test_reasons_capped(self) -> None:
        text = "git apply x && npm install && pip install y && curl http://z && rm -rf /"
        result = RiskClassifier().classify(text)
        assert len(result.reasons) == MAX_REASONS

    def test_always(self) -> None:
        result = RiskClassifier(always=True).classify("ls")
        assert result.risky is True
        assert result.reasons == [ALWAYS_REASON]

    def test_custom_patterns(self) -> None:
        classifier = RiskClassifier([r"\bdeploy\b"])
        assert classifier.patterns == [r"\bdeploy\b"]
        assert classifier.classify("deploy prod").risky is True
        assert classifier.classify("git apply x").risky is False
