"""
MCP server for Parse Server, built on the official MCP Python SDK.

Exposes:
- tools/list and tools/call for the Parse tools (see tools.py)
- prompts/list and prompts/get for the guidance prompts (see prompts.py)
- resources/list and resources/read for the connection-info resource

Two transports are supported:
- line mode: stdio, one session for the lifetime of the process
- stream mode: streamable HTTP at /mcp, many sessions multiplexed by SessionRouter,
  plus a /health endpoint

Tool failures are returned as JSON text inside a successful tools/call
response; callers look for an "error" key in the payload.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import anyio
import mcp.types as types
import uvicorn
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from .config import Settings
from .dispatcher import ToolDispatcher
from .parse_client import ParseClient
from .prompts import PROMPTS, prompt_description, render_prompt
from .session_router import SessionRouter, TransportFactory
from .tools import TOOLS, get_tool

logger = logging.getLogger(__name__)

SERVER_NAME = "parse-mcp-server"
SERVER_VERSION = "1.0.0"

CONNECTION_INFO_URI = "parse://connection-info"

INSTRUCTIONS = """
Parse Server MCP Server providing tools for:
- Schema exploration and data sampling
- Querying, counting and relation traversal
- Creating, updating and deleting objects (ask the user first)
- Troubleshooting broken pointers and class statistics
Start with check_connection, then get_all_schemas.
"""


def create_backend(settings: Settings) -> Optional[ParseClient]:
    """
    Create the Parse client, or None when required settings are missing.

    A missing setting is reported as a warning; the server still starts and
    every tool except check_connection reports that Parse is not initialized.
    """
    problem = settings.missing_required()
    if problem:
        logger.warning("Warning: %s", problem)
        return None
    return ParseClient(
        settings.server_url,
        settings.app_id,
        master_key=settings.master_key,
        js_key=settings.js_key,
        rest_key=settings.rest_key,
        timeout=settings.request_timeout,
    )


def connection_info(settings: Settings, initialized: bool) -> Dict[str, Any]:
    """Connection configuration published as the connection-info resource."""
    return {
        "serverUrl": settings.server_url,
        "appId": settings.app_id,
        "hasMasterKey": settings.has_master_key,
        "hasJsKey": settings.has_js_key,
        "hasRestKey": settings.has_rest_key,
        "initialized": initialized,
    }


def read_connection_resource(uri: str, settings: Settings, initialized: bool) -> str:
    """Return the JSON body for a resource URI; only connection-info exists."""
    if uri != CONNECTION_INFO_URI:
        raise ValueError(f"Resource not found: {uri}")
    return json.dumps(connection_info(settings, initialized), indent=2)


def render_result(result: Any) -> str:
    """Render a tool result as the single text payload of a tools/call response."""
    if isinstance(result, str):
        return result
    return json.dumps(result, indent=2, default=str)


def create_server(settings: Settings, backend: Optional[ParseClient]) -> Server:
    """
    Build the low-level MCP server with all handlers registered.

    Args:
        settings: Server settings
        backend: Parse client, or None if Parse is not configured

    Returns:
        The MCP server, ready to be run over any transport
    """
    dispatcher = ToolDispatcher(settings, backend)
    server = Server(SERVER_NAME, version=SERVER_VERSION, instructions=INSTRUCTIONS)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return [
            types.Tool(
                name=tool["name"],
                description=tool["description"],
                inputSchema=tool["inputSchema"],
            )
            for tool in TOOLS
        ]

    # Arguments are passed through as-is; the dispatcher checks what it needs
    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> Any:
        result = await dispatcher.dispatch(name, arguments or {})
        content = [types.TextContent(type="text", text=render_result(result))]
        if get_tool(name) is None:
            return types.CallToolResult(content=content, isError=True)
        return content

    @server.list_prompts()
    async def list_prompts() -> List[types.Prompt]:
        return [
            types.Prompt(
                name=prompt["name"],
                description=prompt["description"],
                arguments=[
                    types.PromptArgument(
                        name=argument["name"],
                        description=argument["description"],
                        required=argument["required"],
                    )
                    for argument in prompt["arguments"]
                ],
            )
            for prompt in PROMPTS
        ]

    @server.get_prompt()
    async def get_prompt(name: str, arguments: Optional[Dict[str, str]]) -> types.GetPromptResult:
        return types.GetPromptResult(
            description=prompt_description(name),
            messages=[
                types.PromptMessage(
                    role="user",
                    content=types.TextContent(type="text", text=render_prompt(name, arguments)),
                )
            ],
        )

    @server.list_resources()
    async def list_resources() -> List[types.Resource]:
        return [
            types.Resource(
                uri=CONNECTION_INFO_URI,
                name="Parse Server Connection Info",
                description="Current Parse Server connection configuration",
                mimeType="application/json",
            )
        ]

    @server.read_resource()
    async def read_resource(uri: Any) -> List[ReadResourceContents]:
        text = read_connection_resource(str(uri), settings, dispatcher.initialized)
        return [ReadResourceContents(content=text, mime_type="application/json")]

    return server


# === Line mode (stdio) ===

async def serve_stdio(settings: Settings) -> None:
    """Serve one MCP session over stdin/stdout until the client disconnects."""
    backend = create_backend(settings)
    server = create_server(settings, backend)
    try:
        async with stdio_server() as (read_stream, write_stream):
            logger.info("Parse MCP Server running on stdio")
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        if backend is not None:
            await backend.aclose()


def run_server(settings: Optional[Settings] = None):
    """Run the MCP server with stdio transport."""
    anyio.run(serve_stdio, settings or Settings.from_env())


# === Stream mode (streamable HTTP) ===

class MCPEndpoint:
    """ASGI endpoint that hands /mcp requests to the session router."""

    def __init__(self, router: SessionRouter):
        self.router = router

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.router.handle_request(scope, receive, send)


def create_http_app(
    settings: Settings,
    backend: Optional[ParseClient],
    transport_factory: Optional[TransportFactory] = None,
) -> Starlette:
    """
    Build the Starlette app for stream mode.

    Args:
        settings: Server settings
        backend: Parse client (closed when the app shuts down), or None
        transport_factory: Override for the per-session transport (used by tests)

    Returns:
        ASGI application serving /mcp and /health
    """
    server = create_server(settings, backend)
    router = SessionRouter(
        server,
        transport_factory=transport_factory,
        max_sessions=settings.max_sessions,
    )

    async def health(request: Request) -> JSONResponse:
        return JSONResponse({
            "status": "ok",
            "transport": "http",
            "parse": {
                "initialized": backend is not None,
                "serverUrl": settings.server_url,
                "appId": settings.app_id,
            },
        })

    @asynccontextmanager
    async def lifespan(app: Starlette):
        async with router.run():
            try:
                yield
            finally:
                if backend is not None:
                    await backend.aclose()

    app = Starlette(
        routes=[
            Route("/mcp", endpoint=MCPEndpoint(router), methods=["GET", "POST", "DELETE"]),
            Route("/health", endpoint=health, methods=["GET"]),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
                allow_headers=["*"],
                expose_headers=[MCP_SESSION_ID_HEADER],
            )
        ],
        lifespan=lifespan,
    )
    app.state.router = router
    return app


def run_http_server(settings: Optional[Settings] = None):
    """Run the MCP server with streamable HTTP transport."""
    settings = settings or Settings.from_env()
    app = create_http_app(settings, create_backend(settings))
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
