"""
Research Gate Backend — Health Check & Fixed Routes
=====================================================

What:  GET /, GET /api/health, GET /api/test.
Why:   Platform health checks need an answer whether or not the database is up.
       The health check reports database state; it never fails over it.
How:   HealthReporter reads the PersistenceHandle state (a pure, non-blocking
       read) plus process metadata. No query is sent to the database.
Who:   Called by the hosting platform's health check, uptime monitors and
       the frontend's connectivity banner.

Response (always HTTP 200):
    {
        "status": "OK",
        "message": "MBSTU Research Gate API is running",
        "timestamp": "2024-01-15T12:00:00.000000+00:00",
        "database": "Connected" | "Disconnected",
        "port": 5800
    }
"""

import logging
from datetime import datetime, timezone
from typing import Union

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from research_gate import __version__
from research_gate.config import Settings
from research_gate.database import PersistenceHandle
from research_gate.schemas.response import HealthResponse, SentinelResponse, WelcomeResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

STATIC_ROUTES = ("/", "/api/health", "/api/test")


class HealthReporter:
    """Pure read of connection state and process metadata."""

    def __init__(self, persistence: PersistenceHandle, settings: Settings):
        self.persistence = persistence
        self.settings = settings

    def report(self) -> HealthResponse:
        return HealthResponse(
            status="OK",
            message=self.settings.api_message,
            timestamp=datetime.now(timezone.utc).isoformat(),
            database="Connected" if self.persistence.is_connected else "Disconnected",
            port=self.settings.port,
        )


@router.get(
    "/",
    response_model=None,
    summary="Liveness sentinel",
    description="Plain 'OK' by default; a JSON welcome document when ROOT_RESPONSE=json.",
)
async def root(request: Request) -> Union[PlainTextResponse, WelcomeResponse]:
    settings: Settings = request.app.state.settings
    if settings.root_response == "json":
        return WelcomeResponse(
            message=f"Welcome to {settings.api_message.removesuffix(' is running')}",
            version=__version__,
            routes=request.app.state.dispatcher.available_routes,
        )
    return PlainTextResponse("OK", status_code=200)


@router.get(
    "/api/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Reports process and database status. Always 200.",
)
async def health_check(request: Request) -> HealthResponse:
    reporter: HealthReporter = request.app.state.health_reporter
    return reporter.report()


@router.get(
    "/api/test",
    response_model=SentinelResponse,
    summary="Static capability sentinel",
)
async def test_route(request: Request) -> SentinelResponse:
    return SentinelResponse(deployment=request.app.state.settings.deployment)
