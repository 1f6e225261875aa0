"""
Main entry point for running the Parse MCP server.

Settings come from environment variables (a .env file in the working
directory is loaded first); command line flags override them.
"""

import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .config import ConfigError, Settings, normalize_transport


def configure_logging(level: str):
    """Send logs to stderr; stdout carries protocol frames in line mode."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def check_environment(settings: Settings) -> bool:
    """Report missing Parse settings without stopping the server."""
    problem = settings.missing_required()
    if problem:
        print("=" * 60, file=sys.stderr)
        print(f"WARNING: {problem}", file=sys.stderr)
        print("=" * 60, file=sys.stderr)
        print("The server will start, but every tool except check_connection", file=sys.stderr)
        print("will report that Parse Server is not initialized.", file=sys.stderr)
        print("\nSet at least:", file=sys.stderr)
        print("  PARSE_SERVER_URL=https://parseapi.back4app.com", file=sys.stderr)
        print("  PARSE_APP_ID=your-app-id", file=sys.stderr)
        print("=" * 60, file=sys.stderr)
        return False
    return True


def print_banner(settings: Settings):
    if settings.transport == "line":
        print("Parse MCP Server starting on stdio", file=sys.stderr)
        return
    base = f"http://{settings.host}:{settings.port}"
    print(f"Parse MCP Server running on {base}", file=sys.stderr)
    print(f"  - MCP endpoint: {base}/mcp", file=sys.stderr)
    print(f"  - Health check: {base}/health", file=sys.stderr)
    print(f"  - Parse Server: {settings.server_url or '(not configured)'}", file=sys.stderr)
    print(
        f"  - Master Key: {'configured' if settings.has_master_key else 'not configured'}",
        file=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="parse-mcp",
        description="MCP server that lets AI agents explore and manage a Parse Server database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Streamable HTTP on port 3000 (default)
  parse-mcp

  # stdio, for desktop MCP clients
  parse-mcp --transport line

  # Custom bind address
  parse-mcp --transport stream --host 127.0.0.1 --port 8080

Environment:
  PARSE_SERVER_URL, PARSE_APP_ID (required), PARSE_MASTER_KEY, PARSE_JS_KEY,
  PARSE_REST_KEY, MCP_TRANSPORT, MCP_HOST, MCP_PORT, PARSE_TIMEOUT,
  MCP_MAX_SESSIONS, LOG_LEVEL
""",
    )
    parser.add_argument(
        "--transport",
        choices=["stream", "http", "line", "stdio"],
        help="Transport type (default: $MCP_TRANSPORT or stream)",
    )
    parser.add_argument("--host", help="Host for stream transport (default: $MCP_HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Port for stream transport (default: $MCP_PORT or 3000)")
    return parser


def load_settings(argv: Optional[List[str]] = None) -> Settings:
    """Read settings from the environment and apply command line overrides."""
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    if args.transport:
        settings.transport = normalize_transport(args.transport)
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port
    return settings


def main(argv: Optional[List[str]] = None):
    """Main entry point with CLI argument parsing."""
    load_dotenv()
    try:
        settings = load_settings(argv)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    configure_logging(settings.log_level)
    check_environment(settings)
    print_banner(settings)

    from .server import run_http_server, run_server

    if settings.transport == "line":
        run_server(settings)
    else:
        run_http_server(settings)


if __name__ == "__main__":
    main()
