"""
Research Gate Backend — FastAPI Application Factory
=====================================================

What:  Creates and configures the FastAPI application instance.
Why:   One entrypoint for every deployment. Port, root-route shape and
       error verbosity come from Settings rather than from diverging copies
       of the startup file.
How:   create_app() wires the PersistenceHandle, ResponsePipeline,
       Dispatcher and Resource Routers, then registers middleware, the
       fixed routes, the /uploads static mount and a catch-all route that
       hands everything else to the Dispatcher.
Who:   uvicorn (research_gate.main:app) and the `research-gate` console script.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware:  CORS → Request ID → Access Logging         │
    │                                                          │
    │  Routes (in match order):                                │
    │  ┌──────────┐ ┌─────────────┐ ┌───────────┐ ┌──────────┐ │
    │  │ GET /    │ │ /api/health │ │ /api/test │ │ /uploads │ │
    │  └──────────┘ └─────────────┘ └───────────┘ └──────────┘ │
    │  ┌────────────────────────────────────────────────────┐  │
    │  │ /{path}  → Dispatcher → Router → ResponsePipeline  │  │
    │  └────────────────────────────────────────────────────┘  │
    │                                                          │
    │  Exception handlers (faults outside the dispatcher):     │
    │    HTTPException 404 → NotFound │ Exception → 500        │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → schedule the single MongoDB connect (not awaited)
              → startup banner
    Shutdown: close the MongoDB client
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from research_gate import __version__
from research_gate.config import Settings, get_settings
from research_gate.database import PersistenceHandle
from research_gate.dispatcher import Dispatcher
from research_gate.middleware.logging import RequestLoggingMiddleware
from research_gate.middleware.request_id import RequestIDMiddleware
from research_gate.pipeline import RequestLifecycle, ResponsePipeline
from research_gate.routes import health
from research_gate.routes.auth import AuthRouter, VerificationSender
from research_gate.routes.health import STATIC_ROUTES, HealthReporter
from research_gate.routes.notifications import NotificationsRouter
from research_gate.routes.posts import PostsRouter
from research_gate.routes.upload import UploadRouter
from research_gate.routes.user import UserRouter
from research_gate.schemas.response import Failure
from research_gate.services.file_service import PUBLIC_PREFIX, FileService

logger = logging.getLogger(__name__)

DISPATCH_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the whole process, once, before anything logs.

    Format: 2024-01-15T12:00:00 [INFO] research_gate.database: message
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Driver and server chatter
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings
    persistence: PersistenceHandle = app.state.persistence

    setup_logging(settings.log_level)
    logger.info("=" * 60)
    logger.info("Research Gate Backend starting up...")

    # Fire and forget: health checks answer "Disconnected" until this settles
    persistence.connect(settings.mongo_uri)

    logger.info("Server running on port %d", settings.port)
    logger.info("Health check: http://localhost:%d/", settings.port)
    logger.info("Environment: %s", settings.environment)
    logger.info("Started at: %s", datetime.now().isoformat(timespec="seconds"))
    logger.info("=" * 60)

    yield

    logger.info("Research Gate Backend shutting down...")
    await persistence.close()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _lifecycle_for(request: Request) -> Optional[RequestLifecycle]:
    lifecycle = getattr(request.state, "lifecycle", None)
    if lifecycle is None or lifecycle.responded:
        return None
    return lifecycle


def register_exception_handlers(app: FastAPI) -> None:
    """
    Faults that never reach the dispatcher (fixed routes, static files,
    framework validation) get the same envelopes as dispatched requests.

    Handler hierarchy:
        HTTPException 404       → 404 NotFound with route catalog
        HTTPException other 4xx → 400 Failure with the exception's detail
        HTTPException 5xx       → 500 generic Failure
        RequestValidationError  → 400 Failure
        Exception (fallback)    → 500 generic Failure, detail logged
    """

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        pipeline: ResponsePipeline = request.app.state.pipeline
        if exc.status_code == 404:
            response = pipeline.not_found(request.app.state.dispatcher.available_routes)
        elif exc.status_code >= 500:
            response = pipeline.internal_failure(exc)
        else:
            # Failure is 400 or 500 only: 405, 413 and the like become 400
            response = Failure(message=str(exc.detail), status_code=400)
        rendered = pipeline.render(response, _lifecycle_for(request))
        if exc.headers:
            rendered.headers.update(exc.headers)
        return rendered

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        pipeline: ResponsePipeline = request.app.state.pipeline
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ())) or "request"
        message = f"{field}: {first.get('msg', 'invalid')}"
        logger.warning("Request validation error on %s: %s", request.url.path, message)
        return pipeline.render(Failure(message=message, status_code=400), _lifecycle_for(request))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        pipeline: ResponsePipeline = request.app.state.pipeline
        return pipeline.render(pipeline.internal_failure(exc), _lifecycle_for(request))


# ══════════════════════════════════════════════════════════════════════════
# Wiring
# ══════════════════════════════════════════════════════════════════════════

dispatch_router = APIRouter()


@dispatch_router.api_route("/{full_path:path}", methods=DISPATCH_METHODS, include_in_schema=False)
async def dispatch_request(request: Request, full_path: str) -> JSONResponse:
    dispatcher: Dispatcher = request.app.state.dispatcher
    return await dispatcher.respond(request)


def build_dispatcher(
    pipeline: ResponsePipeline,
    persistence: PersistenceHandle,
    file_service: FileService,
    verification_sender: Optional[VerificationSender] = None,
) -> Dispatcher:
    """Register the Resource Routers in catalog order and freeze the table."""
    dispatcher = Dispatcher(pipeline, static_routes=STATIC_ROUTES)
    dispatcher.register(AuthRouter.prefix, AuthRouter(persistence, verification_sender))
    dispatcher.register(PostsRouter.prefix, PostsRouter(persistence))
    dispatcher.register(UserRouter.prefix, UserRouter(persistence))
    dispatcher.register(UploadRouter.prefix, UploadRouter(persistence, file_service))
    dispatcher.register(NotificationsRouter.prefix, NotificationsRouter(persistence))
    dispatcher.freeze()
    return dispatcher


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    persistence: Optional[PersistenceHandle] = None,
    verification_sender: Optional[VerificationSender] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings:     Defaults to the environment-loaded singleton.
        persistence:  Defaults to a fresh PersistenceHandle (not yet connected).
        verification_sender: Delivery for email verification codes.

    Returns: Fully configured FastAPI instance. Nothing connects until the
             lifespan starts.
    """
    settings = settings or get_settings()
    persistence = persistence or PersistenceHandle(
        default_database=settings.mongo_db_name,
        timeout_ms=settings.mongo_timeout_ms,
    )
    pipeline = ResponsePipeline(show_error_detail=settings.show_error_detail)
    file_service = FileService(settings.upload_dir, settings.max_upload_size)

    app = FastAPI(
        title="MBSTU Research Gate API",
        description="Registration, research posts, profiles, uploads and notifications.",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.persistence = persistence
    app.state.pipeline = pipeline
    app.state.file_service = file_service
    app.state.health_reporter = HealthReporter(persistence, settings)
    app.state.dispatcher = build_dispatcher(pipeline, persistence, file_service, verification_sender)

    # ── Middleware ────────────────────────────────────────────────────────
    # Last added = outermost: CORS → RequestID → Logging
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept"],
        expose_headers=["X-Request-ID"],
    )

    register_exception_handlers(app)

    # ── Routes (order = match order) ──────────────────────────────────────
    app.include_router(health.router)
    app.mount(PUBLIC_PREFIX, StaticFiles(directory=str(file_service.storage_root)), name="uploads")
    app.include_router(dispatch_router)

    return app


app = create_app()


def run() -> None:
    """Console entrypoint: serve on the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
