"""
FastAPI application for the mastery orchestration server.

Provides:
- WebSocket orchestration for live tutoring sessions
- Session inspection and manual evaluation endpoints
- Claude judge proxy for clients that evaluate locally
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from config import Settings, get_settings
from mastery import __version__
from mastery.api.routers import judge_router, orchestration_router
from mastery.api.schemas import HealthResponse
from mastery.server.evaluator import MasteryEvaluator
from mastery.server.orchestration_service import OrchestrationService
from mastery.server.session_manager import SessionManager


async def _cleanup_loop(sessions: SessionManager, interval_seconds: float) -> None:
    """Periodically sweep stale sessions."""
    while True:
        await asyncio.sleep(interval_seconds)
        sessions.cleanup_sessions()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application with its services attached to ``app.state``."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown events."""
        # Startup
        logger.info("Starting mastery orchestration server...")
        cleanup_task = asyncio.create_task(
            _cleanup_loop(app.state.sessions, settings.session_cleanup_interval_seconds)
        )
        logger.info("WebSocket endpoint: ws://{}:{}/orchestrate", settings.api_host, settings.api_port)

        yield

        # Shutdown
        logger.info("Shutting down mastery orchestration server...")
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
        await app.state.http_client.aclose()

    app = FastAPI(
        title="Mastery Orchestration Server",
        description="""
        Server-side orchestration for the voice fraction tutor.

        ## Features

        - **Orchestration**: observe the live transcript, decide when to evaluate
        - **Judge**: Claude evaluation of student mastery (simulated without a key)
        - **Judge proxy**: keeps the Anthropic key on the server
        """,
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware for the browser client
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    sessions = SessionManager(timeout_minutes=settings.session_timeout_minutes)
    evaluator = MasteryEvaluator(
        settings.anthropic_api_key,
        model=settings.judge_model,
        max_tokens=settings.judge_max_tokens,
        temperature=settings.judge_temperature,
    )
    app.state.settings = settings
    app.state.started_at = time.monotonic()
    app.state.sessions = sessions
    app.state.orchestration = OrchestrationService(
        sessions,
        evaluator,
        cooldown_ms=settings.server_eval_cooldown_ms,
    )
    app.state.http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.judge_timeout_ms / 1000.0))

    @app.get("/health", tags=["Health"], response_model=HealthResponse)
    def health_check(request: Request) -> HealthResponse:
        state = request.app.state
        return HealthResponse(
            status="healthy",
            uptime=time.monotonic() - state.started_at,
            sessions=len(state.sessions.active_sessions()),
            judge="simulated" if evaluator.is_simulated else "configured",
        )

    app.include_router(orchestration_router.router, tags=["Orchestration"])
    app.include_router(judge_router.router, prefix="/api/claude", tags=["Judge"])

    return app


app = create_app()
