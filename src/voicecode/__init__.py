"""voicecode -- remote shell sessions with approvals and live summaries.

This package implements the backend that lets a remote client drive an
interactive shell (or one-shot commands) over a WebSocket, gates risky
commands behind human approval, and streams compact structured summaries
of the output instead of raw text.
"""

__version__ = "0.1.0"
