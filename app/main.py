"""
Entry Point
"""

import asyncio
import secrets
from contextlib import asynccontextmanager
from time import perf_counter

from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from fastmcp import FastMCP
from fastmcp.server.auth.providers.debug import DebugTokenVerifier
from ulid import ULID

from app.api.pixelpilot import router as pixelpilot_router
from app.context.pixelpilot import bind_orchestrator
from app.context.pixelpilot import server as pixelpilot_server
from app.core.config import settings
from app.core.db import close_db
from app.core.log import logger
from app.history.store import build_history_store
from app.orchestration.conversation import build_conversation_store
from app.orchestration.orchestrator import Orchestrator
from app.orchestration.planner import get_planner
from app.schema.status import HealthCheckResponse, IndexResponse

exec_id = ULID()
start_time = perf_counter()

# base64 payloads are a third larger than the image they carry
MAX_BODY_BYTES = settings.MAX_IMAGE_BYTES * 4 // 3 + 64 * 1024

verifier = DebugTokenVerifier(
    validate=lambda token: secrets.compare_digest(token, settings.APP_AUTH_KEY),
    client_id="mcp-client",
    scopes=["read", "write"],
)

mcp_server = FastMCP(
    "PixelPilot",
    version=settings.PROJECT_VERSION,
    auth=verifier,
)


def _health(orchestrator: Orchestrator | None) -> HealthCheckResponse:
    history = orchestrator.history if orchestrator is not None else None
    return HealthCheckResponse(
        status="OK" if orchestrator is not None else "STARTING",
        version=settings.PROJECT_VERSION,
        uptime=perf_counter() - start_time,
        exec_id=exec_id,
        orchestrator_ready=orchestrator is not None,
        history_backend=history.backend if history is not None else None,
        history_degraded=bool(getattr(history, "degraded", False)),
    )


@mcp_server.resource("resource://health_check")
async def get_health() -> str:
    """Provides platform information"""
    return _health(getattr(app.state, "orchestrator", None)).model_dump_json()


# Mount Full MCP Contexts
mcp_server.mount(pixelpilot_server, namespace="pixelpilot")
mcp_app = mcp_server.http_app(path="/mcp")


# Combine lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan for FastMCP application"""
    async with mcp_app.lifespan(app):
        logger.info(f"Starting up {settings.PROJECT_NAME} v{settings.PROJECT_VERSION}")
        logger.info(f"Debug mode: {settings.DEBUG}")
        logger.info(f"Listening on: {settings.APP_HOST}:{settings.APP_PORT} - Workers: {settings.APP_WORKERS}")
        logger.info(f"Exec ID: {exec_id}")

        history = build_history_store()
        conversations = build_conversation_store()
        orchestrator = Orchestrator(
            planner=get_planner(),
            history=history,
            conversations=conversations,
        )
        app.state.orchestrator = orchestrator
        bind_orchestrator(orchestrator)
        logger.info(
            f"Orchestrator ready: history={history.backend}, conversations={settings.CONVERSATION_BACKEND}, "
            f"planner={'anthropic' if settings.USE_ANTHROPIC_AI else 'gemini'}"
        )

        try:
            yield
        finally:
            logger.info(f"Shutting down {settings.PROJECT_NAME}...")
            bind_orchestrator(None)
            await conversations.close()
            await close_db()
            await asyncio.sleep(2)  # Failsafe delay


app = FastAPI(
    lifespan=lifespan,
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    docs_url="/docs",
    redoc_url=None,
    # openapi_url="/api/v1/openapi.json",
)

app.add_middleware(
    CorrelationIdMiddleware,
    generator=lambda: str(ULID()),
    validator=None,
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """Reject oversized bodies up front, then log method, path, status and duration."""
    length = request.headers.get("content-length", "")
    if length.isdigit() and int(length) > MAX_BODY_BYTES:
        logger.warning(f"{request.method} {request.url.path} rejected: {length} byte body")
        return JSONResponse(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            content={"detail": f"Request body exceeds {MAX_BODY_BYTES} bytes"},
        )
    t0 = perf_counter()
    response = await call_next(request)
    duration_ms = (perf_counter() - t0) * 1000
    # Skip noisy paths
    if request.url.path not in ("/favicon.ico", "/health"):
        logger.info(
            f"{request.method} {request.url.path} "
            f"status={response.status_code} "
            f"duration={duration_ms:.1f}ms"
        )
    return response


app.include_router(pixelpilot_router)
app.mount("/app", mcp_app)


@app.get(
    "/favicon.ico",
    include_in_schema=False,
)
async def favicon():
    return Response(
        content=b"\x00\x00\x01\x00\x01\x00\x10\x10\x02\x00\x01\x00\x01\x00\xb0\x00\x00"
        b"\x00\x16\x00\x00\x00\x00\x00\x00\x10\x00\x00\x00\x00\x00\x00\x01\x00\x01\x00"
        b"\x00\x00\x00\x00\x80\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00"
        b"\x00\x00\x00\x00\x00\x00\x00\x00\x00\xff\xff\xff\x00\x00\x00\x00\x00\x00\x00"
        b"\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00"
        b"\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00"
        b"\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00"
        b"\x00\xff\xff\x00\x00\xff\xff\x00\x00\xff\xff\x00\x00\xff\xff\x00\x00\xff\xff"
        b"\x00\x00\xff\xff\x00\x00\xff\xff\x00\x00\xff\xff\x00\x00\xff\xff\x00\x00\xff"
        b"\xff\x00\x00\xff\xff\x00\x00\xff\xff\x00\x00\xff\xff\x00\x00\xff\xff\x00\x00"
        b"\xff\xff\x00\x00\xff\xff\x00\x00",
        media_type="image/x-icon",
    )


@app.get(
    "/health",
    include_in_schema=False,
)
async def health(request: Request, response: Response) -> HealthCheckResponse:
    """Health check endpoint"""
    return _health(getattr(request.app.state, "orchestrator", None))


@app.get(
    "/",
    include_in_schema=False,
)
async def index() -> IndexResponse:
    return IndexResponse()
