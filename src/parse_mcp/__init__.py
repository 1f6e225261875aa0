"""
Parse Server MCP adapter.

Exposes a Parse Server database to AI agents over the Model Context Protocol,
using the official `mcp` SDK.

### Stream mode (default)
Streamable HTTP with many concurrent sessions:
    parse-mcp --transport stream --port 3000

Endpoints:
- /mcp:    POST/GET open or continue a session (mcp-session-id header), DELETE closes it
- /health: liveness and Parse configuration status

### Line mode
stdio, one session per process (for desktop MCP clients):
    parse-mcp --transport line

### Embedding
    from parse_mcp import Settings, create_backend, create_server

    settings = Settings.from_env()
    server = create_server(settings, create_backend(settings))
"""

from .config import ConfigError, Settings
from .dispatcher import ToolDispatcher
from .parse_client import Outcome, ParseClient, ParseError, guarded
from .prompts import PROMPTS, render_prompt
from .server import (
    CONNECTION_INFO_URI,
    SERVER_VERSION as __version__,
    create_backend,
    create_http_app,
    create_server,
    run_http_server,
    run_server,
)
from .session_router import SessionRouter
from .tools import TOOL_NAMES, TOOLS

__all__ = [
    # Configuration
    "ConfigError",
    "Settings",
    # Backend
    "Outcome",
    "ParseClient",
    "ParseError",
    "guarded",
    # Registries & dispatch
    "PROMPTS",
    "TOOLS",
    "TOOL_NAMES",
    "ToolDispatcher",
    "render_prompt",
    # Server
    "CONNECTION_INFO_URI",
    "SessionRouter",
    "create_backend",
    "create_http_app",
    "create_server",
    "run_http_server",
    "run_server",
    "__version__",
]
