"""PTY session module for voicecode.

Owns the single shared interactive shell attached to a pseudo-terminal,
keeps a bounded buffer of its output and fans events out to subscribers.

Public API:
    PtySessionManager -- Shell lifecycle, input and resize
    Subscription -- Per-consumer event channel
    OutputEvent / ExitEvent -- Published session events
"""

from voicecode.session.events import ExitEvent, OutputEvent, Subscription
from voicecode.session.manager import (
    PtySessionManager,
    SessionConfig,
    SessionError,
    SessionNotRunningError,
    SessionStartError,
    SessionState,
    StartResult,
)

__all__ = [
    "ExitEvent",
    "OutputEvent",
    "PtySessionManager",
    "SessionConfig",
    "SessionError",
    "SessionNotRunningError",
    "SessionStartError",
    "SessionState",
    "StartResult",
    "Subscription",
]
