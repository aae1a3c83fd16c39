"""WebSocket and HTTP surface for voicecode.

Public API:
    create_app -- FastAPI application factory
    Connection -- Per-client protocol handler
    SummaryScheduler -- Debounced summary worker
    ProtocolError -- Raised for malformed inbound messages
"""

from voicecode.server.connection import Connection
from voicecode.server.expand import (
    EXPANDERS,
    extract_first_test_failure,
    extract_last_error_stack,
    extract_latest_diff,
)
from voicecode.server.protocol import ProtocolError, decode_frame
from voicecode.server.scheduler import SummaryScheduler

__all__ = [
    "EXPANDERS",
    "Connection",
    "ProtocolError",
    "SummaryScheduler",
    "create_app",
    "decode_frame",
    "extract_first_test_failure",
    "extract_last_error_stack",
    "extract_latest_diff",
]


def __getattr__(name: str) -> object:
    """Lazy import of the FastAPI factory."""
    if name == "create_app":
        from voicecode.server.app import create_app
        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
