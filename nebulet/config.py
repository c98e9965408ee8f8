"""Service configuration read from environment variables."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_SERVER_PORT = 8080
DEFAULT_SERVER_HOST = "0.0.0.0"
DEFAULT_PROCESSOR_NAME = "nebulet-processor"
DEFAULT_LOG_LEVEL = "info"
DEFAULT_DATABASE_URL = "sqlite://./nebulet.db?mode=rwc"

_PORT_PATTERN = re.compile(r"\+?[0-9]+")
_MAX_PORT = 0xFFFF


def _parse_port(raw: str, default: int) -> int:
    """Parse a TCP port number, falling back to ``default`` when invalid."""
    if _PORT_PATTERN.fullmatch(raw) is None:
        return default
    value = int(raw)
    return value if value <= _MAX_PORT else default


@dataclass(frozen=True)
class Config:
    """Runtime settings for the HTTP server, processor and database."""

    server_port: int = DEFAULT_SERVER_PORT
    server_host: str = DEFAULT_SERVER_HOST
    processor_name: str = DEFAULT_PROCESSOR_NAME
    log_level: str = DEFAULT_LOG_LEVEL
    log_json: bool = False
    database_url: str = DEFAULT_DATABASE_URL

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Config":
        """Build a configuration from ``environ`` (the process environment by default)."""
        env = os.environ if environ is None else environ
        return cls(
            server_port=_parse_port(
                env.get("SERVER_PORT", str(DEFAULT_SERVER_PORT)), DEFAULT_SERVER_PORT
            ),
            server_host=env.get("SERVER_HOST", DEFAULT_SERVER_HOST),
            processor_name=env.get("PROCESSOR_NAME", DEFAULT_PROCESSOR_NAME),
            log_level=env.get("LOG_LEVEL", DEFAULT_LOG_LEVEL),
            log_json="LOG_JSON" in env,
            database_url=env.get("DATABASE_URL", DEFAULT_DATABASE_URL),
        )