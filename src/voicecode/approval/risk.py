"""Pattern-based risk classification of command text."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

DEFAULT_APPROVAL_PATTERNS: tuple[str, ...] = (
    r"\bgit\s+apply\b|^diff --git ",
    r"\b(pnpm|npm|yarn)\s+install\b",
    r"\b(pip3?|brew|apt(?:-get)?|yum|dnf)\s+install\b",
    r"\b(curl|wget)\s+https?://",
    r"\bgit\s+push\b|\bgit\s+reset\s+--hard\b",
    r"\brm\s+-rf\b|\bchmod\s+|\bchown\s+|\bsystemctl\s+",
    r"\bdocker\s+(run|pull|push|compose)\b",
    r"\bkubectl\s+apply\b|\bhelm\s+install\b",
)

MAX_REASONS = 3
ALWAYS_REASON = "approval_always"


@dataclass(frozen=True)
class RiskAssessment:
    risky: bool
    reasons: list[str] = field(default_factory=list)


class RiskClassifier:
    """Matches text against an ordered list of risk patterns.

    Example::

        classifier = RiskClassifier()
        classifier.classify("git apply fix.patch").risky  # True
    """

    def __init__(
        self,
        patterns: list[str] | tuple[str, ...] | None = None,
        always: bool = False,
    ) -> None:
        sources = list(patterns) if patterns else list(DEFAULT_APPROVAL_PATTERNS)
        self._patterns = [re.compile(p, re.IGNORECASE | re.MULTILINE) for p in sources]
        self._always = always

    @property
    def patterns(self) -> list[str]:
        return [p.pattern for p in self._patterns]

    def classify(self, text: str | None) -> RiskAssessment:
        s = text or ""
        reasons: list[str] = []
        for pattern in self._patterns:
            if pattern.search(s):
                reasons.append(f"matches: {pattern.pattern}")
            if len(reasons) >= MAX_REASONS:
                break
        if self._always and not reasons:
            reasons.append(ALWAYS_REASON)
        return RiskAssessment(risky=bool(reasons), reasons=reasons)
