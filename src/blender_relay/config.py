"""Relay and client configuration.

Defaults live here as module constants. Every value can be overridden
through a ``BLENDER_RELAY_*`` environment variable (see ``from_env``) or
through the CLI options, which take precedence over the environment.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

ENV_PREFIX = "BLENDER_RELAY_"

# Relay (server side)
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3001
DEFAULT_BACKEND_URL = "ws://localhost:8080"
UPSTREAM_RECONNECT_DELAY = 5.0
UPSTREAM_COMMAND_TIMEOUT = 15.0
UPSTREAM_RENDER_TIMEOUT = 30.0

# Client side
DEFAULT_RELAY_URL = "ws://localhost:3001"
CLIENT_RECONNECT_DELAY = 2.0
CLIENT_MAX_RECONNECT_ATTEMPTS = 5
CLIENT_COMMAND_TIMEOUT = 10.0
CLIENT_RENDER_TIMEOUT = 30.0


def _env_str(env: Mapping[str, str], name: str, default: str) -> str:
    value = env.get(ENV_PREFIX + name)
    return value if value else default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{ENV_PREFIX}{name} must not be negative, got {raw!r}")
    return value


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{ENV_PREFIX}{name} must not be negative, got {raw!r}")
    return value


@dataclass
class RelayConfig:
    """Configuration for the relay process.

    The relay keeps exactly one connection to the Blender MCP backend and
    retries it forever, waiting ``reconnect_delay`` seconds between attempts.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    backend_url: str = DEFAULT_BACKEND_URL

    reconnect_delay: float = UPSTREAM_RECONNECT_DELAY
    command_timeout: float = UPSTREAM_COMMAND_TIMEOUT
    render_timeout: float = UPSTREAM_RENDER_TIMEOUT

    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> RelayConfig:
        """Build a config from ``BLENDER_RELAY_*`` environment variables."""
        env = os.environ if env is None else env
        origins = env.get(ENV_PREFIX + "CORS_ORIGINS")
        config = cls(
            host=_env_str(env, "HOST", DEFAULT_HOST),
            port=_env_int(env, "PORT", DEFAULT_PORT),
            backend_url=_env_str(env, "BACKEND_URL", DEFAULT_BACKEND_URL),
            reconnect_delay=_env_float(env, "RECONNECT_DELAY", UPSTREAM_RECONNECT_DELAY),
            command_timeout=_env_float(env, "COMMAND_TIMEOUT", UPSTREAM_COMMAND_TIMEOUT),
            render_timeout=_env_float(env, "RENDER_TIMEOUT", UPSTREAM_RENDER_TIMEOUT),
        )
        if origins:
            config.cors_origins = [o.strip() for o in origins.split(",") if o.strip()]
        return config


@dataclass
class ClientConfig:
    """Configuration for the client-side session.

    Unlike the relay, the client gives up after ``max_reconnect_attempts``
    so the user can be told to intervene.
    """

    relay_url: str = DEFAULT_RELAY_URL

    reconnect_delay: float = CLIENT_RECONNECT_DELAY
    max_reconnect_attempts: int = CLIENT_MAX_RECONNECT_ATTEMPTS
    command_timeout: float = CLIENT_COMMAND_TIMEOUT
    render_timeout: float = CLIENT_RENDER_TIMEOUT

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> ClientConfig:
        """Build a config from ``BLENDER_RELAY_*`` environment variables."""
        env = os.environ if env is None else env
        return cls(
            relay_url=_env_str(env, "URL", DEFAULT_RELAY_URL),
            reconnect_delay=_env_float(env, "CLIENT_RECONNECT_DELAY", CLIENT_RECONNECT_DELAY),
            max_reconnect_attempts=_env_int(
                env, "CLIENT_MAX_RECONNECT_ATTEMPTS", CLIENT_MAX_RECONNECT_ATTEMPTS
            ),
            command_timeout=_env_float(env, "CLIENT_COMMAND_TIMEOUT", CLIENT_COMMAND_TIMEOUT),
            render_timeout=_env_float(env, "CLIENT_RENDER_TIMEOUT", CLIENT_RENDER_TIMEOUT),
        )
