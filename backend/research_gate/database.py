"""
Research Gate Backend — Persistence Handle
============================================

What:  A lazily-established, long-lived MongoDB connection with observable state.
Why:   Startup must never wait on (or die from) the database. The process
       boots, serves health checks, and reports "Disconnected" until the
       single connect attempt succeeds.
How:   connect() schedules one background task that pings the server and
       records the outcome in ConnectionState. Routers receive the handle at
       construction and ask it for collections per request.
Who:   Created by the application factory; injected into every Resource Router
       and read by the health endpoint.
When:  connect() once during lifespan startup, close() during shutdown.

State Machine (one attempt, no retries):
    DISCONNECTED ──connect()──▶ CONNECTING ──ping ok──▶ CONNECTED
                                     │
                                     └──failure──▶ ERRORED
    any ──close()──▶ DISCONNECTED

    Only this module writes the state. Request handlers read it, never
    read-modify-write it, so no locking is needed on the event loop.
"""

import asyncio
import enum
import logging
from typing import Any, Callable, Optional

from pymongo import AsyncMongoClient

from research_gate.exceptions import DatabaseUnavailableError

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERRORED = "errored"


class PersistenceHandle:
    """
    Owns the MongoDB client and its connection lifecycle.

    Attributes (read-only):
        state:          Current ConnectionState; safe to read at any time.
        database_name:  Logical database name, recorded on successful connect.
        last_error:     Message of the failed connect attempt, if any.

    The driver client is built through `client_factory` so tests (and
    alternative drivers) can supply their own. The factory receives the URI
    and driver keyword arguments.
    """

    def __init__(
        self,
        default_database: str = "researchdb",
        timeout_ms: int = 5000,
        client_factory: Callable[..., Any] = AsyncMongoClient,
    ):
        self._default_database = default_database
        self._timeout_ms = timeout_ms
        self._client_factory = client_factory
        self._client: Optional[Any] = None
        self._database: Optional[Any] = None
        self._state = ConnectionState.DISCONNECTED
        self._database_name: Optional[str] = None
        self._last_error: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    # ── Read-only state ───────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def database_name(self) -> Optional[str]:
        return self._database_name

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def connect(self, uri: str) -> Optional[asyncio.Task]:
        """
        Start the single connection attempt without blocking the caller.

        Returns the background task so callers that need the outcome
        (tests, scripts) can await it. Startup code ignores it.
        Returns None when no URI is configured; the state stays DISCONNECTED.
        """
        if not uri:
            logger.warning("No MONGO_URI configured; running without a database")
            return None
        if self._task is not None and not self._task.done():
            return self._task

        self._state = ConnectionState.CONNECTING
        self._last_error = None
        self._task = asyncio.get_running_loop().create_task(
            self._establish(uri), name="mongo-connect"
        )
        return self._task

    async def _establish(self, uri: str) -> None:
        try:
            client = self._client_factory(uri, serverSelectionTimeoutMS=self._timeout_ms)
            self._client = client
            await client.admin.command("ping")
            database = client.get_default_database(self._default_database)
        except asyncio.CancelledError:
            self._state = ConnectionState.DISCONNECTED
            raise
        except Exception as e:
            self._last_error = str(e)
            self._state = ConnectionState.ERRORED
            logger.error("MongoDB Connection Error: %s", self._last_error)
            return

        self._database = database
        self._database_name = database.name
        self._state = ConnectionState.CONNECTED
        logger.info("MongoDB Connected Successfully")
        logger.info("Database: %s", self._database_name)

    async def close(self) -> None:
        """Cancel a pending attempt, close the client, and go DISCONNECTED."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if self._client is not None:
            await self._client.close()
            logger.info("MongoDB connection closed")
        self._client = None
        self._database = None
        self._state = ConnectionState.DISCONNECTED

    # ── Access for routers ────────────────────────────────────────────────

    def collection(self, name: str) -> Any:
        """
        Return a driver collection for the current request.

        Raises:
            DatabaseUnavailableError: if the handle is not CONNECTED.
        """
        if not self.is_connected or self._database is None:
            raise DatabaseUnavailableError(state=self._state.value)
        return self._database[name]
