"""
Research Gate Backend — Dispatcher
====================================

What:  Picks the Resource Router that owns a request path.
Why:   The only routing decision the service makes on its own; routers
       handle their sub-paths internally.
How:   Longest registered prefix wins, matching on path-segment boundaries.
       Equal prefixes resolve to whichever was registered first. Nothing
       matches → NotFound carrying the static route catalog.
Who:   Built by the application factory; invoked by the catch-all route.
When:  register() during startup only, then freeze(); dispatch() per request.

Matching examples (prefixes /api/user and /api/user/settings registered):
    /api/user              → /api/user
    /api/user/42           → /api/user
    /api/user/settings/x   → /api/user/settings
    /api/users             → no match (segment boundary)
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple

from fastapi.responses import JSONResponse
from starlette.requests import Request

from research_gate.exceptions import RouteNotFoundError
from research_gate.pipeline import (
    RequestLifecycle,
    RequestState,
    ResponsePipeline,
    Result,
)
from research_gate.schemas.response import ApiResponse

logger = logging.getLogger(__name__)


class ResourceHandler(Protocol):
    """Anything that can answer a request routed to its prefix."""

    async def handle(self, request: Request) -> Optional[Result]:
        ...


@dataclass(frozen=True)
class Route:
    prefix: str
    router: ResourceHandler


def normalize_prefix(prefix: str) -> str:
    """'/api/posts/' and 'api/posts' both become '/api/posts'; '' becomes '/'."""
    stripped = prefix.strip().strip("/")
    return "/" + stripped if stripped else "/"


def normalize_path(path: str) -> str:
    """'//api//posts/' becomes '/api/posts'; routing and sub-path matching both use this form."""
    return "/" + "/".join(segment for segment in path.split("/") if segment)


def prefix_matches(prefix: str, path: str) -> bool:
    if prefix == "/":
        return True
    return path == prefix or path.startswith(prefix + "/")


class Dispatcher:
    """
    Prefix-based request dispatcher with a static route catalog.

    Args:
        pipeline:      ResponsePipeline used for every routed request.
        static_routes: Fixed top-level routes (/, /api/health, ...) listed in
                       the catalog ahead of registered prefixes.
    """

    def __init__(self, pipeline: ResponsePipeline, static_routes: Sequence[str] = ()):
        self.pipeline = pipeline
        self._static_routes: Tuple[str, ...] = tuple(static_routes)
        self._routes: List[Route] = []
        self._frozen = False

    # ── Registration (startup only) ───────────────────────────────────────

    def register(self, prefix: str, router: ResourceHandler) -> Route:
        if self._frozen:
            raise RuntimeError(f"Cannot register '{prefix}': dispatcher is frozen")
        route = Route(prefix=normalize_prefix(prefix), router=router)
        self._routes.append(route)
        logger.debug("Registered router %s at %s", type(router).__name__, route.prefix)
        return route

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def routes(self) -> Tuple[Route, ...]:
        return tuple(self._routes)

    @property
    def available_routes(self) -> List[str]:
        catalog: List[str] = []
        for entry in (*self._static_routes, *(r.prefix for r in self._routes)):
            if entry not in catalog:
                catalog.append(entry)
        return catalog

    # ── Resolution ────────────────────────────────────────────────────────

    def resolve(self, path: str) -> Optional[Route]:
        """Longest matching prefix; first registered wins on a tie."""
        path = normalize_path(path)
        best: Optional[Route] = None
        for route in self._routes:
            if not prefix_matches(route.prefix, path):
                continue
            # Strictly longer only, so an earlier equal prefix is kept
            if best is None or len(route.prefix) > len(best.prefix):
                best = route
        return best

    async def dispatch(self, request: Request) -> ApiResponse:
        path = normalize_path(request.url.path)
        lifecycle = RequestLifecycle(path)
        request.state.lifecycle = lifecycle

        route = self.resolve(path)
        if route is None:
            return self.pipeline.from_error(RouteNotFoundError(path, self.available_routes))

        lifecycle.advance(RequestState.ROUTED)
        request.state.route_prefix = route.prefix
        request.state.route_path = path
        return await self.pipeline.run(
            route.router.handle,
            request,
            lifecycle,
            available_routes=self.available_routes,
        )

    async def respond(self, request: Request) -> JSONResponse:
        """Dispatch and render: the one write for a routed request."""
        response = await self.dispatch(request)
        return self.pipeline.render(response, request.state.lifecycle)
