import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mockingbird.api.v1 import sessions, calls, reviews, invites
from mockingbird.core.clock import Clock, RealClock
from mockingbird.core.config import Settings, settings as default_settings
from mockingbird.core.database import init_db
from mockingbird.core.errors import MockingbirdError
from mockingbird.core.identity import HeaderIdentityResolver, IdentityResolver
from mockingbird.core.logging_config import configure_logging
from mockingbird.services.call_orchestrator import CallRegistry
from mockingbird.services.review_retriever import ReviewCycles, ReviewSource
from mockingbird.services.scoring_client import ScoringClient
from mockingbird.services.voice_agent import AgentFactory, RelayVoiceAgent

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield
    await app.state.calls.close_all()
    await app.state.review_cycles.cancel_all()
    await app.state.scoring_client.aclose()


def create_app(
    settings: Optional[Settings] = None,
    *,
    identity_resolver: Optional[IdentityResolver] = None,
    scoring_client: Optional[ReviewSource] = None,
    agent_factory: Optional[AgentFactory] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="Mockingbird Session API",
        description="Entity session lifecycle: access, voice calls and post-session reviews",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.clock = clock or RealClock()
    app.state.identity_resolver = identity_resolver or HeaderIdentityResolver(
        settings.IDENTITY_USER_HEADER, settings.IDENTITY_EMAIL_HEADER
    )
    app.state.scoring_client = scoring_client or ScoringClient(
        settings.SCORING_SERVICE_URL, timeout=settings.SCORING_TIMEOUT_SECONDS
    )
    app.state.agent_factory = agent_factory or RelayVoiceAgent
    app.state.calls = CallRegistry()
    app.state.review_cycles = ReviewCycles(retention_ms=settings.REVIEW_RETENTION_MS)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MockingbirdError)
    async def handle_mockingbird_error(request: Request, exc: MockingbirdError):
        logger.warning("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.message},
        )

    # Health check
    @app.get("/health", tags=["Health"])
    async def health_check():
        return {"status": "ok"}

    # API Routers
    app.include_router(sessions.router, prefix=settings.API_V1_PREFIX, tags=["Sessions"])
    app.include_router(calls.router, prefix=settings.API_V1_PREFIX, tags=["Calls"])
    app.include_router(reviews.router, prefix=settings.API_V1_PREFIX, tags=["Reviews"])
    app.include_router(invites.router, prefix=settings.API_V1_PREFIX, tags=["Invites"])

    return app


app = create_app()
