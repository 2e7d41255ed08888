"""Relay configuration.

Loads settings from ``relay.settings.yaml`` (path overridable through the
``RELAY_SETTINGS_PATH`` environment variable) and applies a small set of
environment overrides on top:

  * SOCKET_PORT          -> server.port
  * NEXT_PUBLIC_APP_URL  -> server.cors_origins (single origin)
  * RELAY_LOG_LEVEL      -> logging.level

A missing settings file is not an error; defaults are used.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("relay.settings.yaml")

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:                 str       = "0.0.0.0"
    port:                 int       = Field(default=3001, ge=1, le=65535)
    cors_origins:         List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    socket_path:          str       = "api/socket"
    transports:           List[str] = Field(default_factory=lambda: ["websocket", "polling"])
    # Seconds; the transport turns a silent peer into a disconnect.
    ping_interval:        float     = Field(default=25.0, gt=0)
    ping_timeout:         float     = Field(default=60.0, gt=0)
    max_http_buffer_size: int       = Field(default=100_000_000, gt=0)

    @field_validator("socket_path")
    @classmethod
    def _strip_slashes(cls, value: str) -> str:
        return value.strip("/")

    @field_validator("transports")
    @classmethod
    def _known_transports(cls, value: List[str]) -> List[str]:
        unknown = set(value) - {"websocket", "polling"}
        if unknown or not value:
            raise ValueError(f"unsupported transports: {sorted(unknown) or value}")
        return value


class RoomSettings(BaseModel):
    default_room_id:   str = "general"
    default_room_name: str = "General"
    # Per-room retained messages; 0 keeps everything.
    history_limit:     int = Field(default=1000, ge=0)


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.lower()
        if value not in LOG_LEVELS:
            raise ValueError(f"unknown log level: {value}")
        return value


class RelayConfig(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    rooms:   RoomSettings    = Field(default_factory=RoomSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    server = data.setdefault("server", {}) or {}
    data["server"] = server

    port = os.environ.get("SOCKET_PORT")
    if port:
        server["port"] = port

    origin = os.environ.get("NEXT_PUBLIC_APP_URL")
    if origin:
        server["cors_origins"] = [origin]

    level = os.environ.get("RELAY_LOG_LEVEL")
    if level:
        data.setdefault("logging", {})
        data["logging"] = {**(data["logging"] or {}), "level": level}

    return data


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(settings_path: Optional[Path] = None) -> RelayConfig:
    """Load settings and environment overrides into a *RelayConfig*."""
    if settings_path is None:
        settings_path = Path(os.environ.get("RELAY_SETTINGS_PATH", SETTINGS_FILE))

    data = _apply_env_overrides(_load_yaml(Path(settings_path)))
    config = RelayConfig(**data)
    logger.info(
        "Settings loaded (server=%s:%s, path=/%s, transports=%s, history_limit=%s)",
        config.server.host,
        config.server.port,
        config.server.socket_path,
        ",".join(config.server.transports),
        config.rooms.history_limit,
    )
    return config


_config: Optional[RelayConfig] = None


def get_config() -> RelayConfig:
    """Get the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (used by tests)."""
    global _config
    _config = None
