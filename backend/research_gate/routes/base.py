"""
Research Gate Backend — Resource Router Base
==============================================

What:  Base class for the five Resource Routers (auth, posts, user, upload,
       notifications) plus the small request helpers they share.
Why:   Every router satisfies the same contract, handle(request) -> Result,
       so the Dispatcher and Response Pipeline never need to know what a
       router does internally.
How:   Methods decorated with @endpoint(method, path) form the router's
       endpoint table. handle() strips the router prefix, matches the
       remaining path segments (literal or {param}), calls the method and
       translates application and driver faults into Err(...).

Router contract:
    handle(request) returns
        Ok(payload, meta)       endpoint succeeded
        Err(ValidationError)    client mistake, message is client-safe
        Err(InternalError)      server fault, incl. driver errors
        None                    no endpoint for this method + sub-path
    Any other exception escapes to the pipeline and becomes a 500.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import PyMongoError
from starlette.requests import Request

from research_gate.database import PersistenceHandle
from research_gate.dispatcher import normalize_path
from research_gate.exceptions import InternalError, ResearchGateError, ValidationError
from research_gate.pipeline import Err, Ok, Result

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Stored fields that never leave the service
HIDDEN_FIELDS = frozenset({"password", "verification_code"})


def endpoint(method: str, path: str) -> Callable:
    """Mark a router method as the handler for `method` on `path` (relative to the prefix)."""
    def decorator(fn: Callable) -> Callable:
        fn.__endpoint__ = (method.upper(), path)
        return fn
    return decorator


def split_path(path: str) -> Tuple[str, ...]:
    return tuple(segment for segment in path.split("/") if segment)


@dataclass(frozen=True)
class Endpoint:
    method: str
    segments: Tuple[str, ...]
    handler: Callable[..., Awaitable[Result]]

    @property
    def literal_count(self) -> int:
        return sum(1 for s in self.segments if not s.startswith("{"))

    def match(self, method: str, segments: Tuple[str, ...]) -> Optional[Dict[str, str]]:
        # HEAD is answered by the GET endpoint; the server drops the body
        if method == "HEAD":
            method = "GET"
        if method != self.method or len(segments) != len(self.segments):
            return None
        params: Dict[str, str] = {}
        for pattern, value in zip(self.segments, segments):
            if pattern.startswith("{") and pattern.endswith("}"):
                params[pattern[1:-1]] = value
            elif pattern != value:
                return None
        return params


class ResourceRouter:
    """
    A cohesive handler group for one URL prefix.

    Subclasses set `prefix` and decorate async methods with @endpoint.
    Each endpoint method receives the request plus path parameters as
    keyword arguments and returns Ok(...) or raises a ResearchGateError.

    Args:
        persistence: The process's PersistenceHandle, injected at construction.
    """

    prefix: str = ""

    def __init__(self, persistence: PersistenceHandle):
        self.persistence = persistence
        self._endpoints: List[Endpoint] = self._collect_endpoints()

    def _collect_endpoints(self) -> List[Endpoint]:
        found: List[Endpoint] = []
        seen = set()
        for klass in type(self).__mro__:
            for name, attr in vars(klass).items():
                marker = getattr(attr, "__endpoint__", None)
                if marker is None or name in seen:
                    continue
                seen.add(name)
                method, path = marker
                found.append(Endpoint(method, split_path(path), getattr(self, name)))
        # Literal segments beat {params}: /read-all is tried before /{id}
        found.sort(key=lambda e: e.literal_count, reverse=True)
        return found

    @property
    def endpoints(self) -> List[Endpoint]:
        return list(self._endpoints)

    async def handle(self, request: Request) -> Optional[Result]:
        prefix = getattr(request.state, "route_prefix", None) or self.prefix
        path = getattr(request.state, "route_path", None) or normalize_path(request.url.path)
        relative = path[len(prefix.rstrip("/")):]
        segments = split_path(relative)
        method = request.method.upper()

        for ep in self._endpoints:
            params = ep.match(method, segments)
            if params is None:
                continue
            try:
                return await ep.handler(request, **params)
            except ResearchGateError as exc:
                return Err(exc)
            except PyMongoError as exc:
                return Err(InternalError(
                    message=str(exc),
                    context={"router": type(self).__name__, "driver_error": type(exc).__name__},
                ))
        return None

    def collection(self, name: str) -> Any:
        return self.persistence.collection(name)


# ══════════════════════════════════════════════════════════════════════════
# Request helpers
# ══════════════════════════════════════════════════════════════════════════


async def json_body(request: Request) -> Dict[str, Any]:
    """Read the request body as a JSON object (empty body → {})."""
    raw = await request.body()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _describe(error: Dict[str, Any]) -> str:
    field = ".".join(str(part) for part in error.get("loc", ())) or "body"
    if error.get("type") == "missing":
        return f"{field} required"
    message = str(error.get("msg", "is invalid")).removeprefix("Value error, ")
    return f"{field}: {message}"


def parse_body(model: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    """Validate `data` against `model`, reporting the first problem as a ValidationError."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        errors = exc.errors()
        first = errors[0] if errors else {}
        raise ValidationError(
            message=_describe(first),
            field=".".join(str(p) for p in first.get("loc", ())) or None,
            context={"errors": len(errors)},
        )


def object_id(value: Any, name: str = "id") -> ObjectId:
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationError(message=f"Invalid {name}", field=name)


def int_param(
    request: Request,
    name: str,
    default: int,
    minimum: int = 1,
    maximum: Optional[int] = None,
) -> int:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(message=f"{name} must be an integer", field=name)
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
        raise ValidationError(message=f"{name} must be {bounds}", field=name)
    return value


def _plain(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def serialize(document: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Stored document → client JSON: `_id` becomes `id`, hidden fields dropped."""
    if not document:
        return {}
    out: Dict[str, Any] = {}
    for key, value in document.items():
        if key in HIDDEN_FIELDS:
            continue
        out["id" if key == "_id" else key] = _plain(value)
    return out
