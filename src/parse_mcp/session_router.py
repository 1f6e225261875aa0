"""Session routing for the streamable HTTP transport."""

import contextlib
import logging
from collections.abc import AsyncIterator
from http import HTTPStatus
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
from uuid import uuid4

import anyio
from anyio.abc import TaskGroup, TaskStatus
from mcp.server.lowlevel.server import Server as MCPServer
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER, StreamableHTTPServerTransport
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str], Any]


class SessionRouter:
    """
    Owns the table of live MCP sessions and routes HTTP requests to them.

    Every session has one transport handle, created on first contact and
    reached afterwards through the `mcp-session-id` header. The table is only
    changed through `create()`, `remove()` and the crash cleanup of a session's
    server task. Those steps never await, so under anyio they are atomic and
    need no lock.

    Session lifecycle:

    - A request without a session id creates a new session with a freshly
      generated id, whatever its HTTP method. If the transport rejects that
      first request (any 4xx/5xx, e.g. a non-initialize POST or a GET), the
      session is terminated and dropped, and its id is not sent back.
    - A request carrying a known id goes to that session's transport.
    - A request carrying an unknown id gets 404 so the client starts over with
      a fresh session. Client-supplied ids are never adopted.
    - DELETE with a known id is passed to the transport; the entry is dropped
      once the transport has terminated. A rejected DELETE leaves the session
      as it was. DELETE with an unknown id gets 404 and changes nothing.

    Ids that have been removed are never handed out again.

    Args:
        app: The low-level MCP server run once per session
        transport_factory: Builds the transport for a new session id
                           (default: StreamableHTTPServerTransport)
        json_response: Answer with plain JSON instead of SSE streams
        max_sessions: Refuse new sessions with 503 beyond this many (0 = unbounded)
    """

    def __init__(
        self,
        app: MCPServer[Any, Any],
        transport_factory: Optional[TransportFactory] = None,
        json_response: bool = False,
        max_sessions: int = 0,
    ):
        self.app = app
        self.json_response = json_response
        self.max_sessions = max_sessions
        self._transport_factory = transport_factory or self._default_transport

        self._sessions: Dict[str, Any] = {}
        self._retired: Set[str] = set()

        self._task_group: Optional[TaskGroup] = None
        self._has_started = False

    def _default_transport(self, session_id: str) -> StreamableHTTPServerTransport:
        return StreamableHTTPServerTransport(
            mcp_session_id=session_id,
            is_json_response_enabled=self.json_response,
        )

    @contextlib.asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        """
        Run the router; all session server tasks live inside this context.

        Can only be entered once per instance.
        """
        if self._has_started:
            raise RuntimeError("SessionRouter.run() can only be called once per instance")
        self._has_started = True

        async with anyio.create_task_group() as tg:
            self._task_group = tg
            logger.info("Session router started")
            try:
                yield
            finally:
                logger.info("Session router shutting down (%d active sessions)", len(self._sessions))
                tg.cancel_scope.cancel()
                self._task_group = None
                self._retired.update(self._sessions)
                self._sessions.clear()

    # === Session table ===

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    @property
    def session_ids(self) -> List[str]:
        return list(self._sessions)

    def create(self) -> Tuple[str, Any]:
        """
        Create a session with a new, never used id.

        Returns:
            (session_id, transport handle)
        """
        session_id = uuid4().hex
        while session_id in self._sessions or session_id in self._retired:
            session_id = uuid4().hex
        transport = self._transport_factory(session_id)
        self._sessions[session_id] = transport
        logger.info("Created session %s", session_id)
        return session_id, transport

    def lookup(self, session_id: Optional[str]) -> Optional[Any]:
        """Return the transport for a live session, or None."""
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Optional[Any]:
        """Drop a session from the table; returns its transport, or None if unknown."""
        transport = self._sessions.pop(session_id, None)
        if transport is not None:
            self._retired.add(session_id)
            logger.info("Closed session %s", session_id)
        return transport

    # === Request handling ===

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None:
        """
        Route one ASGI request to its session.

        Args:
            scope: ASGI scope
            receive: ASGI receive function
            send: ASGI send function
        """
        if self._task_group is None:
            raise RuntimeError("Task group is not initialized. Make sure to use run().")

        request = Request(scope, receive)
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)

        if request.method == "DELETE":
            await self._close_session(session_id, scope, receive, send)
            return

        if session_id is None:
            await self._open_session(scope, receive, send)
            return

        transport = self.lookup(session_id)
        if transport is None:
            logger.debug("Request for unknown session %s", session_id)
            await _error(scope, receive, send, "Session not found", HTTPStatus.NOT_FOUND)
            return

        await transport.handle_request(scope, receive, send)

    async def _open_session(self, scope: Scope, receive: Receive, send: Send) -> None:
        if self.max_sessions and len(self._sessions) >= self.max_sessions:
            logger.warning("Refusing new session: %d sessions already open", len(self._sessions))
            await _error(scope, receive, send, "Too many sessions", HTTPStatus.SERVICE_UNAVAILABLE)
            return

        session_id, transport = self.create()
        assert self._task_group is not None
        await self._task_group.start(self._session_task, session_id, transport)

        response = _ResponseStatus(send)
        try:
            await transport.handle_request(scope, receive, response)
        finally:
            if not response.accepted:
                logger.info(
                    "Discarding session %s: first request rejected with status %s",
                    session_id,
                    response.status,
                )
                self.remove(session_id)
                with anyio.CancelScope(shield=True):
                    await transport.terminate()

    async def _close_session(
        self, session_id: Optional[str], scope: Scope, receive: Receive, send: Send
    ) -> None:
        transport = self.lookup(session_id)
        if transport is None:
            await _error(scope, receive, send, "Session not found", HTTPStatus.NOT_FOUND)
            return

        await transport.handle_request(scope, receive, send)
        if transport.is_terminated:
            self.remove(session_id)
        else:
            logger.debug("DELETE for session %s was rejected; session kept", session_id)

    async def _session_task(
        self,
        session_id: str,
        transport: Any,
        *,
        task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        """Run the MCP server for one session until its transport closes."""
        async with transport.connect() as streams:
            read_stream, write_stream = streams
            task_status.started()
            try:
                await self.app.run(
                    read_stream,
                    write_stream,
                    self.app.create_initialization_options(),
                )
            except Exception:
                logger.exception("Session %s crashed", session_id)
            finally:
                if self._sessions.get(session_id) is transport:
                    logger.info("Cleaning up ended session %s", session_id)
                    self.remove(session_id)


class _ResponseStatus:
    """ASGI send wrapper that records the status of the response it forwards."""

    def __init__(self, send: Send):
        self._send = send
        self.status: Optional[int] = None

    @property
    def accepted(self) -> bool:
        return self.status is not None and self.status < 400

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
            if not self.accepted:
                # The session is about to be discarded; don't hand out its id
                header = MCP_SESSION_ID_HEADER.encode("latin-1")
                headers = [
                    (name, value) for name, value in message.get("headers", [])
                    if name.lower() != header
                ]
                message = {**message, "headers": headers}
        await self._send(message)


async def _error(scope: Scope, receive: Receive, send: Send, message: str, status: HTTPStatus) -> None:
    response = JSONResponse({"error": message}, status_code=status)
    await response(scope, receive, send)
