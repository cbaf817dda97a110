"""
Research Gate Backend — Custom Exception Hierarchy
====================================================

What:  Defines the error taxonomy every request outcome is sorted into.
Why:   The response pipeline needs to tell client mistakes (400) from server
       faults (500) without guessing from arbitrary exception types.
How:   Each exception class carries a message and optional context dict.
       Resource routers translate their own faults into one of these kinds;
       the pipeline maps the kind to a status code and response body.
Who:   Raised by routers and the persistence handle; consumed by the pipeline
       and the global exception handlers in main.py.

Exception Hierarchy:
    ResearchGateError (base)
    ├── ValidationError            → 400 Bad Request (message passed through)
    ├── InternalError              → 500 Internal Server Error (generic message)
    │   └── DatabaseUnavailableError
    └── RouteNotFoundError         → 404 Not Found (with route catalog)

Degraded database connectivity is NOT an error kind of its own. It is
reported by the health endpoint; a router that needs the database and
cannot reach it raises DatabaseUnavailableError, which is an InternalError.
"""

from typing import Any, Dict, List, Optional


class ResearchGateError(Exception):
    """
    Base exception for all Research Gate application errors.

    Attributes:
        message:  Error description. Safe for clients only on ValidationError.
        context:  Additional debug info (logged but NOT returned to client)
    """

    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(ResearchGateError):
    """
    Raised when client input fails validation.

    What:    The client sent something it can correct: a missing field,
             a malformed id, a duplicate email, an oversized upload.
    HTTP:    400 Bad Request, message returned verbatim.

    `extra` holds client-safe fields added to the response body, unlike
    `context`, which is only logged.

    Example response:
        {"success": false, "message": "Please verify your email before logging in",
         "needsVerification": true}
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field
        self.extra = dict(extra or {})


class InternalError(ResearchGateError):
    """
    Raised when the server itself fails to complete a request.

    HTTP:    500 Internal Server Error

    Security Note:
        The message is logged server-side. Clients receive the generic
        "Something went wrong!" and, outside production only, the detail.
    """

    status_code = 500

    def __init__(
        self,
        message: str = "Internal server error",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseUnavailableError(InternalError):
    """Raised by the persistence handle when a router needs a database it doesn't have."""

    def __init__(
        self,
        state: str = "disconnected",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["connection_state"] = state
        super().__init__(message=f"Database is not available (state: {state})", context=ctx)
        self.state = state


class RouteNotFoundError(ResearchGateError):
    """
    Raised when no route matches the request path.

    HTTP:    404 Not Found, body lists the known top-level routes.
    """

    status_code = 404

    def __init__(
        self,
        path: str = "",
        available_routes: Optional[List[str]] = None,
    ):
        super().__init__(message="Route not found", context={"path": path})
        self.path = path
        self.available_routes = list(available_routes or [])
