"""Text sanitization for command input and output."""

from __future__ import annotations

import re

# C0 controls except TAB, LF, CR, plus DEL
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

# CSI sequences (colors, cursor movement)
_CSI_RE = re.compile(r"\x1b\[[0-9;?]*[a-zA-Z]")
# OSC sequences (window title)
_OSC_RE = re.compile(r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")
_CHARSET_RE = re.compile(r"\x1b[()][AB012]")
_KEYPAD_RE = re.compile(r"\x1b[>=]")


def strip_control(text: str) -> str:
    return _CONTROL_RE.sub("", text)


def sanitize_text(text: object, max_len: int) -> tuple[str, bool]:
    """Prepare free-form input for use as a command argument.

    Strips control characters (TAB, LF and CR are kept), clamps the
    result to ``max_len`` characters and trims surrounding whitespace.

    Returns:
        (clean_text, truncated) tuple. ``truncated`` is True when the
        cleaned text had to be clamped.
    """
    clean = strip_control("" if text is None else str(text))
    truncated = len(clean) > max_len
    if truncated:
        clean = clean[:max_len]
    return clean.strip(), truncated


def clean_output(text: str) -> str:
    """Remove terminal escape sequences and control bytes from output."""
    text = _CSI_RE.sub("", text)
    text = _OSC_RE.sub("", text)
    text = _CHARSET_RE.sub("", text)
    text = _KEYPAD_RE.sub("", text)
    return strip_control(text)
