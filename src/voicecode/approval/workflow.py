"""Human approval of risky prompts.

An ``ApprovalBroker`` belongs to one connection. ``request`` announces a
pending action to the client and suspends the calling prompt until the
client answers or the timeout elapses.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

PREVIEW_LIMIT = 500

SendFn = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass
class PendingApproval:
    action_id: str
    reason: str
    risk_reasons: list[str]
    text_preview: str
    timeout: float
    created_at: datetime = field(default_factory=datetime.now)
    future: asyncio.Future[bool] | None = None
    resolution_reason: str | None = None


@dataclass(frozen=True)
class ApprovalDecision:
    action_id: str
    approved: bool
    reason: str | None = None


class ApprovalBroker:
    """Tracks pending approvals for one connection."""

    def __init__(self, send: SendFn, timeout: float = 15.0) -> None:
        self._send = send
        self._timeout = timeout
        self._pending: dict[str, PendingApproval] = {}

    @property
    def pending(self) -> dict[str, PendingApproval]:
        return dict(self._pending)

    async def request(
        self,
        reason: str,
        risks: list[str] | None = None,
        preview: str = "",
    ) -> ApprovalDecision:
        """Ask the client to approve an action and wait for the answer."""
        loop = asyncio.get_running_loop()
        entry = PendingApproval(
            action_id=uuid.uuid4().hex[:12],
            reason=reason or "approval_required",
            risk_reasons=list(risks or []),
            text_preview=str(preview or "")[:PREVIEW_LIMIT],
            timeout=self._timeout,
            future=loop.create_future(),
        )
        self._pending[entry.action_id] = entry

        payload: dict[str, Any] = {
            "type": "actionRequest",
            "actionId": entry.action_id,
            "reason": entry.reason,
            "risks": entry.risk_reasons,
            "preview": entry.text_preview,
        }
        if self._timeout > 0:
            payload["timeoutMs"] = int(self._timeout * 1000)
        logger.debug("Approval requested %s: %s", entry.action_id, entry.risk_reasons)
        await self._send(payload)

        reason_text: str | None = None
        try:
            if self._timeout > 0:
                approved = await asyncio.wait_for(entry.future, self._timeout)
            else:
                approved = await entry.future
            reason_text = entry.resolution_reason
        except asyncio.TimeoutError:
            approved = False
            reason_text = "timeout"
        finally:
            self._pending.pop(entry.action_id, None)

        decision = ApprovalDecision(entry.action_id, approved, reason_text)
        resolved: dict[str, Any] = {
            "type": "actionResolved",
            "actionId": entry.action_id,
            "approved": approved,
        }
        if reason_text:
            resolved["reason"] = reason_text
        logger.debug("Approval %s resolved approved=%s (%s)", entry.action_id, approved, reason_text)
        await self._send(resolved)
        return decision

    def resolve(self, action_id: str, approved: bool) -> bool:
        """Deliver the client's decision. Unknown or settled ids are ignored."""
        entry = self._pending.get(action_id)
        if entry is None or entry.future is None or entry.future.done():
            logger.debug("Ignoring response for unknown action %s", action_id)
            return False
        entry.future.set_result(bool(approved))
        return True

    def cancel_all(self, reason: str = "disconnected") -> None:
        """Deny every outstanding request, e.g. when the connection closes."""
        for entry in list(self._pending.values()):
            if entry.future is not None and not entry.future.done():
                entry.resolution_reason = reason
                entry.future.set_result(False)
