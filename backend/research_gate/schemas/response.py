"""
Research Gate Backend — Response Envelope Schemas
===================================================

What:  The three shapes a request can end in, plus the fixed-route documents.
Why:   The pipeline builds exactly one of these per request, then renders it.
       Keeping them as values (not half-written responses) is what makes
       "exactly one response" checkable.
How:   Pydantic models with a `kind` discriminator; `body()` gives the JSON
       document the client receives.

Wire shapes:
    Success   → 200      {"success": true, ...payload, "meta": {...}}
    Failure   → 400/500  {"success": false, "message": "...", "detail": "..."}
                         plus any client-safe fields the error carries
    NotFound  → 404      {"success": false, "message": "Route not found",
                          "available_routes": [...]}
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class Success(BaseModel):
    kind: Literal["success"] = "success"
    payload: Dict[str, Any] = Field(default_factory=dict)
    meta: Dict[str, Any] = Field(default_factory=dict)
    status_code: Literal[200] = 200

    def body(self) -> Dict[str, Any]:
        # Payload keys sit at the top level next to "success"
        data: Dict[str, Any] = {**self.payload, "success": True}
        if self.meta:
            data["meta"] = self.meta
        return data


class Failure(BaseModel):
    kind: Literal["failure"] = "failure"
    message: str
    detail: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)
    status_code: Literal[400, 500] = 500

    def body(self) -> Dict[str, Any]:
        # Envelope keys win over extra fields
        data: Dict[str, Any] = {**self.extra, "success": False, "message": self.message}
        if self.detail is not None:
            data["detail"] = self.detail
        return data


class NotFound(BaseModel):
    kind: Literal["not_found"] = "not_found"
    message: str = "Route not found"
    available_routes: List[str] = Field(default_factory=list)
    status_code: Literal[404] = 404

    def body(self) -> Dict[str, Any]:
        return {
            "success": False,
            "message": self.message,
            "available_routes": list(self.available_routes),
        }


ApiResponse = Annotated[Union[Success, Failure, NotFound], Field(discriminator="kind")]


# ══════════════════════════════════════════════════════════════════════════
# Fixed-route documents
# ══════════════════════════════════════════════════════════════════════════


class HealthResponse(BaseModel):
    """
    What:  Health report returned by GET /api/health.
    Why:   Reports database state instead of failing over it; always 200.
    """
    status: str = Field(default="OK", description="Process status")
    message: str = Field(description="Service banner")
    timestamp: str = Field(description="Report time (UTC ISO 8601)")
    database: Literal["Connected", "Disconnected"] = Field(
        description="Database connectivity as seen by the persistence handle"
    )
    port: int = Field(description="Listening port")


class SentinelResponse(BaseModel):
    """Static capability sentinel returned by GET /api/test."""
    message: str = "Backend is working successfully!"
    deployment: str
    status: str = "Active"


class WelcomeResponse(BaseModel):
    """JSON variant of GET / (ROOT_RESPONSE=json)."""
    message: str
    version: str
    health: str = "/api/health"
    routes: List[str] = Field(default_factory=list)
