"""Per-connection protocol handling.

A ``Connection`` owns everything scoped to one WebSocket client: the
correlation id of the current prompt, the aggregate of non-PTY output,
the last summary hash, pending approvals and the summary scheduler. The
PTY session itself is shared by all connections.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from voicecode.approval.risk import RiskClassifier
from voicecode.approval.workflow import ApprovalBroker
from voicecode.runner.command import CommandRunner
from voicecode.server.expand import EXPANDERS
from voicecode.server.protocol import (
    MESSAGE_TYPES,
    ActionResponseMessage,
    ExpandRequestMessage,
    PromptMessage,
    ProtocolError,
    ResizeMessage,
    StartSessionMessage,
    decode_frame,
)
from voicecode.server.scheduler import SummaryScheduler
from voicecode.session.events import ExitEvent, OutputEvent, Subscription
from voicecode.session.manager import PtySessionManager, SessionError, SessionNotRunningError
from voicecode.summarizer.engine import SummaryEngine
from voicecode.summarizer.models import Summary

logger = logging.getLogger(__name__)

SendFn = Callable[[dict[str, Any]], Awaitable[None]]

DENIED_MESSAGE = "Action denied (approval required)."
RISKY_REASON = "risky_action_detected"


class Connection:
    """Dispatches inbound messages and emits outbound events for one client.

    Messages are handled in arrival order. Prompts run in background tasks
    so that an approval wait never blocks ``stop`` or ``actionResponse``.
    Outbound sends are serialized; once a send fails the connection is
    treated as gone and further sends are dropped.
    """

    def __init__(
        self,
        send: SendFn,
        manager: PtySessionManager,
        runner: CommandRunner,
        engine: SummaryEngine,
        classifier: RiskClassifier | None = None,
        approval_timeout: float = 15.0,
        debounce: float = 0.5,
    ) -> None:
        self._send = send
        self._manager = manager
        self._runner = runner
        self._engine = engine
        self._classifier = classifier or RiskClassifier()
        self._broker = ApprovalBroker(self.send, timeout=approval_timeout)
        self._scheduler = SummaryScheduler(
            self._summary_pass, self._summary_status, delay=debounce
        )
        self._send_lock = asyncio.Lock()
        self._subscription: Subscription | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._prompt_tasks: set[asyncio.Task[None]] = set()
        self._closed = False
        self._broken = False

        self.correlation_id: str | None = None
        self.aggregate = ""
        self.summary_hash: str | None = None
        self.last_summary: Summary | None = None

        self._handlers: dict[str, Callable[[Any], Awaitable[None]]] = {
            "hello": self._on_hello,
            "startSession": self._on_start_session,
            "prompt": self._on_prompt,
            "interrupt": self._on_interrupt,
            "resize": self._on_resize,
            "reset": self._on_reset,
            "stop": self._on_stop,
            "actionResponse": self._on_action_response,
            "expandRequest": self._on_expand_request,
        }

    @property
    def closed(self) -> bool:
        return self._closed or self._broken

    @property
    def broker(self) -> ApprovalBroker:
        return self._broker

    @property
    def scheduler(self) -> SummaryScheduler:
        return self._scheduler

    async def send(self, payload: dict[str, Any]) -> None:
        """Send one outbound message; dropped once the connection is gone."""
        if self.closed:
            return
        async with self._send_lock:
            if self.closed:
                return
            try:
                await self._send(payload)
            except Exception as e:
                logger.debug("Send failed, marking connection closed: %s", e)
                self._broken = True

    async def handle_raw(self, raw: str | bytes) -> None:
        """Decode, validate and dispatch one inbound frame."""
        try:
            data = decode_frame(raw)
            kind = data.get("type")
            model = MESSAGE_TYPES.get(kind) if isinstance(kind, str) else None
            if model is None:
                raise ProtocolError("unknown_type", "unknown message type")
            try:
                message = model.model_validate(data)
            except ValidationError as e:
                raise ProtocolError("bad_request", _first_error(e)) from e
        except ProtocolError as e:
            logger.debug("Rejected message: %s (%s)", e.code, e.message)
            await self.send(e.to_payload())
            return

        logger.debug("Handling %s", kind)
        try:
            await self._handlers[kind](message)
        except Exception:
            logger.exception("Handler for %s failed", kind)
            await self.send(
                {"type": "error", "error": "server_error", "message": "Unexpected error."}
            )

    async def close(self) -> None:
        """Tear down everything this connection owns. The PTY keeps running."""
        if self._closed:
            return
        self._closed = True
        self._broker.cancel_all("disconnected")
        self._scheduler.close()
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if self._pump_task is not None:
            self._pump_task.cancel()
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass
            self._pump_task = None
        for task in list(self._prompt_tasks):
            task.cancel()
        if self._prompt_tasks:
            await asyncio.gather(*self._prompt_tasks, return_exceptions=True)
        logger.debug("Connection closed")

    async def wait_prompts(self) -> None:
        """Wait for background prompt tasks to finish."""
        while self._prompt_tasks:
            await asyncio.gather(*list(self._prompt_tasks), return_exceptions=True)

    # -- handlers ----------------------------------------------------------

    async def _on_hello(self, message: Any) -> None:
        await self.send({"type": "hello", "ok": True})

    async def _on_start_session(self, message: StartSessionMessage) -> None:
        try:
            result = await self._manager.start(message.options)
        except SessionError as e:
            logger.warning("PTY start failed: %s", e)
            await self.send({
                "type": "error",
                "error": "pty_start_failed",
                "message": str(e) or "Failed to start PTY.",
            })
            await self.send({"type": "sessionStarted", "ok": False, "running": False})
            return

        self.aggregate = ""
        # Subscribe and snapshot together so no output is missed or repeated
        newly_attached = self._attach()
        existing = self._manager.get_buffer()

        payload: dict[str, Any] = {
            "type": "sessionStarted",
            "ok": result.ok,
            "cfg": result.config.to_dict(),
            "running": self._manager.is_running,
        }
        if result.already_running:
            payload["alreadyRunning"] = True
        await self.send(payload)
        if existing:
            await self.send({"type": "output", "data": existing})
        if newly_attached:
            self._start_pump()
        self._scheduler.trigger()

    async def _on_prompt(self, message: PromptMessage) -> None:
        await self.send({"type": "ack", "id": message.id})
        task = asyncio.create_task(self._run_prompt(message))
        self._prompt_tasks.add(task)
        task.add_done_callback(self._prompt_tasks.discard)

    async def _on_interrupt(self, message: Any) -> None:
        if not self._manager.interrupt():
            logger.debug("Interrupt ignored, PTY not running")

    async def _on_resize(self, message: ResizeMessage) -> None:
        try:
            self._manager.resize(message.cols, message.rows)
        except SessionNotRunningError as e:
            await self.send({"type": "error", "error": "not_running", "message": str(e)})

    async def _on_reset(self, message: Any) -> None:
        try:
            result = await self._manager.reset()
        except SessionError as e:
            logger.warning("PTY reset failed: %s", e)
            await self.send({
                "type": "error",
                "error": "pty_start_failed",
                "message": str(e) or "Failed to restart PTY.",
            })
            await self.send({"type": "sessionStarted", "ok": False, "running": False})
            return
        if result is None:
            logger.debug("Reset ignored, no session was ever started")
            return
        await self.send({
            "type": "sessionStarted",
            "ok": result.ok,
            "cfg": result.config.to_dict(),
            "running": self._manager.is_running,
        })

    async def _on_stop(self, message: Any) -> None:
        await self._manager.stop()

    async def _on_action_response(self, message: ActionResponseMessage) -> None:
        self._broker.resolve(message.action_id, message.approve)

    async def _on_expand_request(self, message: ExpandRequestMessage) -> None:
        request_id = message.request_id or uuid.uuid4().hex[:12]
        kind = EXPANDERS.get(message.expand_type)
        if kind is None:
            await self.send({
                "type": "expandResponse",
                "requestId": request_id,
                "ok": False,
                "error": "unknown_expand_type",
                "message": f"Unknown expandType: {message.expand_type}",
            })
            return

        content = kind.extract(self.current_buffer())
        if not content:
            await self.send({
                "type": "expandResponse",
                "requestId": request_id,
                "ok": False,
                "error": "no_content",
                "message": "No matching content found in buffer.",
            })
            return
        await self.send({
            "type": "expandResponse",
            "requestId": request_id,
            "ok": True,
            "kind": message.expand_type,
            "title": kind.title,
            "mime": kind.mime,
            "content": content,
        })

    # -- prompt flow -------------------------------------------------------

    async def _run_prompt(self, message: PromptMessage) -> None:
        self.correlation_id = message.id or uuid.uuid4().hex[:12]
        self.summary_hash = None
        self.last_summary = None

        risk = self._classifier.classify(message.text)
        if risk.risky:
            decision = await self._broker.request(RISKY_REASON, risk.reasons, message.text)
            if not decision.approved:
                await self.send({
                    "type": "error",
                    "id": message.id,
                    "error": "denied",
                    "message": DENIED_MESSAGE,
                })
                return

        if self._manager.is_running:
            try:
                await self._manager.write(message.text + "\n")
            except SessionError as e:
                logger.debug("PTY write failed: %s", e)
                await self.send({
                    "type": "error",
                    "id": message.id,
                    "error": "pty_write_failed",
                    "message": str(e),
                })
            return

        await self._run_command(message)

    async def _run_command(self, message: PromptMessage) -> None:
        self.aggregate = ""

        async def on_stdout(chunk: str) -> None:
            self.aggregate += chunk
            await self.send({
                "type": "replyChunk",
                "id": message.id,
                "correlationId": self.correlation_id,
                "data": chunk,
            })
            self._scheduler.trigger()

        async def on_stderr(chunk: str) -> None:
            await self.send({
                "type": "replyChunk",
                "id": message.id,
                "correlationId": self.correlation_id,
                "data": chunk,
                "stderr": True,
            })

        try:
            result = await self._runner.run_stream(
                message.text, on_stdout=on_stdout, on_stderr=on_stderr
            )
            if result.ok:
                logger.debug("Prompt %s ok (%d chars)", message.id, len(result.text or ""))
                await self.send({
                    "type": "reply",
                    "id": message.id,
                    "correlationId": self.correlation_id,
                    "text": result.text,
                })
            else:
                logger.debug(
                    "Prompt %s failed: %s (%s)", message.id, result.error, result.message
                )
                await self.send({"type": "error", "id": message.id, **result.to_error_payload()})
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Prompt %s raised", message.id)
            await self.send({
                "type": "error",
                "id": message.id,
                "error": "server_error",
                "message": "Unexpected error.",
            })
        await self._send_final_summary()

    async def _send_final_summary(self) -> None:
        await self._scheduler.settle()
        summary = await self._engine.summarize(self.aggregate)
        self.last_summary = summary
        await self.send({
            "type": "summaryFinal",
            "correlationId": self.correlation_id,
            "summary": summary.to_wire(),
        })
        await self._summary_status(False)

    # -- summaries ---------------------------------------------------------

    def current_buffer(self) -> str:
        """The authoritative output: the PTY buffer while it runs, else the aggregate."""
        if self._manager.is_running:
            return self._manager.get_buffer() or self.aggregate
        return self.aggregate

    async def _summary_pass(self) -> None:
        if self._manager.is_running:
            source = self._manager.get_buffer()
        else:
            source = self.aggregate
        result = await self._engine.summarize_if_changed(source, self.summary_hash)
        if result.changed and result.summary is not None:
            self.summary_hash = result.hash
            self.last_summary = result.summary
            await self.send({
                "type": "summaryUpdate",
                "correlationId": self.correlation_id,
                "summary": result.summary.to_wire(),
            })

    async def _summary_status(self, running: bool) -> None:
        await self.send({
            "type": "summaryStatus",
            "running": running,
            "correlationId": self.correlation_id,
        })

    # -- PTY subscription --------------------------------------------------

    def _attach(self) -> bool:
        if self._subscription is not None:
            return False
        self._subscription = self._manager.subscribe()
        return True

    def _start_pump(self) -> None:
        if self._subscription is None:
            return
        self._pump_task = asyncio.create_task(self._pump(self._subscription))

    async def _pump(self, subscription: Subscription) -> None:
        async for event in subscription:
            if isinstance(event, OutputEvent):
                await self.send({"type": "output", "data": event.data})
                self._scheduler.trigger()
            elif isinstance(event, ExitEvent):
                await self.send({"type": "sessionExit", "info": event.to_info()})


def _first_error(error: ValidationError) -> str:
    details = error.errors()
    if not details:
        return "invalid message"
    first = details[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg', 'invalid')}" if location else first.get("msg", "invalid")
