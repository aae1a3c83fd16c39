"""FastAPI application for the voicecode backend.

Serves the WebSocket protocol on ``/ws`` plus a few HTTP routes: a
buffered prompt endpoint, a summarizer health probe and a liveness check.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from voicecode.approval.risk import RiskClassifier
from voicecode.config.settings import Settings
from voicecode.runner.command import CommandRunner
from voicecode.server.connection import DENIED_MESSAGE, Connection
from voicecode.session.manager import PtySessionManager
from voicecode.summarizer.engine import SummaryEngine, build_summary_engine

logger = logging.getLogger(__name__)


class PromptRequest(BaseModel):
    id: str | None = None
    text: str | None = Field(default=None, description="Text passed to the command")


class HealthStatus(BaseModel):
    status: str = "ok"
    ptyRunning: bool = False
    engine: str = "heuristic"


def create_app(
    settings: Settings | None = None,
    manager: PtySessionManager | None = None,
    runner: CommandRunner | None = None,
    engine: SummaryEngine | None = None,
    classifier: RiskClassifier | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Components not passed in are built from ``settings`` at startup.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Startup
        if app.state.runner is None:
            app.state.runner = CommandRunner.from_config(settings.runner)
        if app.state.manager is None:
            app.state.manager = PtySessionManager.from_config(settings.pty)
        if app.state.engine is None:
            app.state.engine = build_summary_engine(settings)
        if app.state.classifier is None:
            app.state.classifier = RiskClassifier(
                settings.approval.patterns, always=settings.approval.always
            )
        logger.info("Runner config: %s", app.state.runner.describe())
        logger.info("Summary engine: %s", app.state.engine.name)
        yield
        # Shutdown
        await app.state.manager.close()
        await app.state.engine.aclose()
        logger.info("Backend stopped")

    app = FastAPI(
        title="voicecode Backend",
        description="Voice-driven command runner with a shared terminal session",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.manager = manager
    app.state.runner = runner
    app.state.engine = engine
    app.state.classifier = classifier

    @app.get("/health")
    async def health_check() -> HealthStatus:
        m: PtySessionManager | None = app.state.manager
        e: SummaryEngine | None = app.state.engine
        return HealthStatus(
            status="ok",
            ptyRunning=m.is_running if m else False,
            engine=e.name if e else settings.summarizer.engine.value,
        )

    @app.get("/api/summarizer/health")
    async def summarizer_health() -> dict[str, Any]:
        e: SummaryEngine = app.state.engine
        return await e.health()

    @app.post("/api/prompt")
    async def prompt(request: PromptRequest) -> JSONResponse:
        if not request.text:
            return JSONResponse(
                status_code=400,
                content={"id": request.id, "error": "missing_text", "message": "missing text"},
            )
        c: RiskClassifier = app.state.classifier
        risk = c.classify(request.text)
        if risk.risky:
            logger.info("Refusing risky HTTP prompt %s: %s", request.id, risk.reasons)
            return JSONResponse(
                status_code=403,
                content={"id": request.id, "error": "denied", "message": DENIED_MESSAGE},
            )

        r: CommandRunner = app.state.runner
        logger.debug("http prompt %s: %r", request.id, request.text[:120])
        result = await r.run(request.text)
        if result.ok:
            return JSONResponse(content={"id": request.id, "text": result.text})
        return JSONResponse(
            status_code=result.status or 500,
            content={"id": request.id, **result.to_error_payload()},
        )

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        connection = Connection(
            websocket.send_json,
            manager=app.state.manager,
            runner=app.state.runner,
            engine=app.state.engine,
            classifier=app.state.classifier,
            approval_timeout=settings.approval.timeout,
            debounce=settings.summarizer.debounce,
        )
        logger.debug("WebSocket connected: %s", websocket.client)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                await connection.handle_raw(raw)
        except WebSocketDisconnect as e:
            logger.debug("WebSocket disconnected (code=%s)", e.code)
        finally:
            await connection.close()

    return app
