"""
Runtime configuration for the Parse MCP server.

All settings come from environment variables (optionally loaded from a .env file
by the entry point). Missing Parse credentials never stop the server from
starting; tools simply report that Parse is not initialized.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional


DEFAULT_PORT = 3000
DEFAULT_HOST = "0.0.0.0"
DEFAULT_TIMEOUT = 30.0

# Names uvicorn and logging both accept
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")

# Accepted spellings for the two transport modes
TRANSPORT_ALIASES = {
    "stream": "stream",
    "http": "stream",
    "line": "line",
    "stdio": "line",
}


class ConfigError(ValueError):
    """Raised when an environment value cannot be parsed."""


def _parse_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from None


def _parse_float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None


def _parse_log_level(environ: Mapping[str, str]) -> str:
    raw = environ.get("LOG_LEVEL", "").strip().upper()
    if not raw:
        return "INFO"
    if raw not in LOG_LEVELS:
        raise ConfigError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {raw!r}")
    return raw


def normalize_transport(value: Optional[str]) -> str:
    """
    Map a transport name to 'stream' or 'line'.

    Args:
        value: User supplied transport name (case-insensitive), or None for the default

    Returns:
        The canonical transport name
    """
    if not value:
        return "stream"
    try:
        return TRANSPORT_ALIASES[value.strip().lower()]
    except KeyError:
        raise ConfigError(
            f"Unknown transport: {value}. Use 'stream' (http) or 'line' (stdio)"
        ) from None


@dataclass
class Settings:
    """Parse connection and MCP transport settings."""
    server_url: str = ""
    app_id: str = ""
    master_key: str = ""
    js_key: str = ""
    rest_key: str = ""
    transport: str = "stream"
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    request_timeout: float = DEFAULT_TIMEOUT
    max_sessions: int = 0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            Populated Settings instance
        """
        env = os.environ if environ is None else environ
        return cls(
            server_url=env.get("PARSE_SERVER_URL", "").strip(),
            app_id=env.get("PARSE_APP_ID", "").strip(),
            master_key=env.get("PARSE_MASTER_KEY", ""),
            js_key=env.get("PARSE_JS_KEY", ""),
            rest_key=env.get("PARSE_REST_KEY", ""),
            transport=normalize_transport(env.get("MCP_TRANSPORT")),
            host=env.get("MCP_HOST", "").strip() or DEFAULT_HOST,
            port=_parse_int(env, "MCP_PORT", DEFAULT_PORT),
            request_timeout=_parse_float(env, "PARSE_TIMEOUT", DEFAULT_TIMEOUT),
            max_sessions=_parse_int(env, "MCP_MAX_SESSIONS", 0),
            log_level=_parse_log_level(env),
        )

    def missing_required(self) -> Optional[str]:
        """Return a message naming the first missing required setting, or None."""
        if not self.server_url:
            return "PARSE_SERVER_URL environment variable is required"
        if not self.app_id:
            return "PARSE_APP_ID environment variable is required"
        return None

    @property
    def is_configured(self) -> bool:
        return self.missing_required() is None

    @property
    def has_master_key(self) -> bool:
        return bool(self.master_key)

    @property
    def has_js_key(self) -> bool:
        return bool(self.js_key)

    @property
    def has_rest_key(self) -> bool:
        return bool(self.rest_key)
