"""
Research Gate Backend — Response Pipeline
===========================================

What:  Turns whatever a router handler does into exactly one ApiResponse,
       and renders it exactly once.
Why:   Clients always get a well-formed JSON body with a status code that
       matches its tag, and internal faults never leak in production.
How:   Handlers return a Result (Ok / Err) instead of writing responses.
       The pipeline maps Results, and anything a handler raises, onto the
       Success / Failure / NotFound envelopes. A per-request lifecycle
       tracker refuses a second response.
Who:   Used by the Dispatcher for every routed request and by the global
       exception handlers in main.py for faults outside the routers.

Outcome mapping:
    Ok(payload)                  → Success   200
    Err(ValidationError)         → Failure   400, message passed through
    Err(RouteNotFoundError)      → NotFound  404
    Err(InternalError) / raised  → Failure   500, "Something went wrong!"
    None (router has no endpoint)→ NotFound  404
    asyncio.CancelledError       → no response (client went away)

Request lifecycle:
    RECEIVED → ROUTED → HANDLING → {SUCCEEDED | FAILED_VALIDATION |
                                    FAILED_INTERNAL | UNMATCHED} → RESPONDED
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, Optional, Union

from bson import ObjectId
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.requests import Request

from research_gate.exceptions import ResearchGateError, RouteNotFoundError, ValidationError
from research_gate.middleware.request_id import request_id_var
from research_gate.schemas.response import ApiResponse, Failure, NotFound, Success

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong!"


# ══════════════════════════════════════════════════════════════════════════
# Handler Result Contract
# ══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Ok:
    payload: Dict[str, Any] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Err:
    error: ResearchGateError


Result = Union[Ok, Err]
Handler = Callable[[Request], Awaitable[Optional[Result]]]


# ══════════════════════════════════════════════════════════════════════════
# Request Lifecycle
# ══════════════════════════════════════════════════════════════════════════


class RequestState(str, enum.Enum):
    RECEIVED = "received"
    ROUTED = "routed"
    HANDLING = "handling"
    SUCCEEDED = "succeeded"
    FAILED_VALIDATION = "failed_validation"
    FAILED_INTERNAL = "failed_internal"
    UNMATCHED = "unmatched"
    RESPONDED = "responded"


_OUTCOMES: FrozenSet[RequestState] = frozenset({
    RequestState.SUCCEEDED,
    RequestState.FAILED_VALIDATION,
    RequestState.FAILED_INTERNAL,
    RequestState.UNMATCHED,
})

_TRANSITIONS: Dict[RequestState, FrozenSet[RequestState]] = {
    RequestState.RECEIVED: frozenset({
        RequestState.ROUTED, RequestState.UNMATCHED, RequestState.FAILED_INTERNAL,
    }),
    RequestState.ROUTED: frozenset({RequestState.HANDLING, RequestState.FAILED_INTERNAL}),
    RequestState.HANDLING: _OUTCOMES,
    RequestState.SUCCEEDED: frozenset({RequestState.RESPONDED}),
    RequestState.FAILED_VALIDATION: frozenset({RequestState.RESPONDED}),
    RequestState.FAILED_INTERNAL: frozenset({RequestState.RESPONDED}),
    RequestState.UNMATCHED: frozenset({RequestState.RESPONDED}),
    RequestState.RESPONDED: frozenset(),
}


class RequestLifecycle:
    """
    Tracks one request through its states and rejects illegal moves.

    Raises RuntimeError on any transition not in the table above, which
    covers re-entering HANDLING after an outcome and responding twice.
    """

    def __init__(self, path: str = ""):
        self.path = path
        self.state = RequestState.RECEIVED
        self.history = [RequestState.RECEIVED]

    def advance(self, new_state: RequestState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal request transition {self.state.value} -> {new_state.value} "
                f"for {self.path or '<unknown>'}"
            )
        self.state = new_state
        self.history.append(new_state)

    @property
    def responded(self) -> bool:
        return self.state is RequestState.RESPONDED


def outcome_state(response: ApiResponse) -> RequestState:
    if isinstance(response, Success):
        return RequestState.SUCCEEDED
    if isinstance(response, NotFound):
        return RequestState.UNMATCHED
    if response.status_code < 500:
        return RequestState.FAILED_VALIDATION
    return RequestState.FAILED_INTERNAL


# ══════════════════════════════════════════════════════════════════════════
# Pipeline
# ══════════════════════════════════════════════════════════════════════════


class ResponsePipeline:
    """
    Wraps handler calls so every request ends in one ApiResponse.

    Args:
        show_error_detail: When True (non-production), 500 bodies carry the
            original error message and logs carry the stack trace. When
            False, clients only ever see GENERIC_ERROR_MESSAGE.
    """

    def __init__(self, show_error_detail: bool = False):
        self.show_error_detail = show_error_detail

    async def run(
        self,
        handler: Handler,
        request: Request,
        lifecycle: RequestLifecycle,
        available_routes: Iterable[str] = (),
    ) -> ApiResponse:
        lifecycle.advance(RequestState.HANDLING)
        try:
            result = await handler(request)
        except asyncio.CancelledError:
            raise
        except ResearchGateError as exc:
            result = Err(exc)
        except Exception as exc:
            return self.internal_failure(exc)
        return self.from_result(result, available_routes)

    def from_result(
        self,
        result: Optional[Result],
        available_routes: Iterable[str] = (),
    ) -> ApiResponse:
        if result is None:
            return self.not_found(available_routes)
        if isinstance(result, Ok):
            return Success(payload=result.payload, meta=result.meta)
        if isinstance(result, Err):
            return self.from_error(result.error, available_routes)
        return self.internal_failure(
            TypeError(f"Handler returned {type(result).__name__}, expected Ok or Err")
        )

    def from_error(
        self,
        exc: ResearchGateError,
        available_routes: Iterable[str] = (),
    ) -> ApiResponse:
        if isinstance(exc, ValidationError):
            return self.validation_failure(exc)
        if isinstance(exc, RouteNotFoundError):
            return self.not_found(exc.available_routes or available_routes)
        return self.internal_failure(exc)

    def validation_failure(self, exc: ValidationError) -> Failure:
        """Client-caused: message goes back as-is."""
        rid = request_id_var.get("")
        logger.warning("[%s] Validation error: %s", rid, exc.message)
        return Failure(message=exc.message, extra=exc.extra, status_code=400)

    def internal_failure(self, exc: BaseException) -> Failure:
        """
        Server-caused: full detail to the log, generic message to the client.

        Security: the original message reaches the client only when
        show_error_detail is set (non-production configuration).
        """
        rid = request_id_var.get("")
        message = exc.message if isinstance(exc, ResearchGateError) else str(exc)
        context = exc.context if isinstance(exc, ResearchGateError) else {}
        logger.error(
            "[%s] Error: %s | Context: %s",
            rid,
            message,
            context,
            exc_info=exc if self.show_error_detail else None,
        )
        return Failure(
            message=GENERIC_ERROR_MESSAGE,
            detail=(message or type(exc).__name__) if self.show_error_detail else None,
            status_code=500,
        )

    def not_found(self, available_routes: Iterable[str] = ()) -> NotFound:
        return NotFound(available_routes=list(available_routes))

    def render(
        self,
        response: ApiResponse,
        lifecycle: Optional[RequestLifecycle] = None,
    ) -> JSONResponse:
        """
        Render the single response for a request.

        With a lifecycle, the outcome state is recorded and the request moves
        to RESPONDED; a second render raises before anything is written.
        """
        if lifecycle is not None:
            if lifecycle.state not in _OUTCOMES:
                lifecycle.advance(outcome_state(response))
            lifecycle.advance(RequestState.RESPONDED)
        return JSONResponse(
            status_code=response.status_code,
            content=jsonable_encoder(response.body(), custom_encoder={ObjectId: str}),
        )
