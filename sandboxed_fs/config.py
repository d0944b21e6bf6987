"""Runtime configuration for the sandboxed filesystem server.

Values come from the command line first and fall back to `.env` / the
environment (loaded via python-dotenv):
- SANDBOX_ALLOWED_DIRS: allowed directories separated by os.pathsep.
- SANDBOX_LOG_LEVEL: logging level name (default INFO).
- SANDBOX_TRANSPORT: MCP transport, one of stdio, sse, streamable-http.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_TRANSPORT = "stdio"
TRANSPORTS = ("stdio", "sse", "streamable-http")


def _dirs_from_env(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(os.pathsep) if part.strip())


@dataclass(frozen=True)
class Settings:
    """Startup settings; the allowed directories are still raw, unvalidated strings."""

    allowed_directories: Tuple[str, ...]
    log_level: str = DEFAULT_LOG_LEVEL
    transport: str = DEFAULT_TRANSPORT


def load_settings(
    cli_dirs: Optional[Sequence[str]] = None,
    log_level: Optional[str] = None,
    transport: Optional[str] = None,
) -> Settings:
    """Merge CLI values over environment values."""
    dirs = tuple(cli_dirs or ()) or _dirs_from_env(os.getenv("SANDBOX_ALLOWED_DIRS", ""))
    if not dirs:
        raise ConfigurationError(
            "At least one allowed directory is required (pass it as an argument or set SANDBOX_ALLOWED_DIRS)."
        )

    level = (log_level or os.getenv("SANDBOX_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()
    chosen_transport = transport or os.getenv("SANDBOX_TRANSPORT") or DEFAULT_TRANSPORT
    if chosen_transport not in TRANSPORTS:
        raise ConfigurationError(
            f"Unsupported transport '{chosen_transport}'; expected one of {', '.join(TRANSPORTS)}."
        )
    return Settings(allowed_directories=dirs, log_level=level, transport=chosen_transport)
