"""GuestSync application configuration.

Loads settings from a single YAML file:
  * guestsync.settings.yaml: non-secret configuration

The path can be overridden with the ``GUESTSYNC_SETTINGS`` environment
variable. Relative storage paths are resolved against the directory that
holds the settings file, so the service can be started from anywhere.
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

SETTINGS_FILE = Path("guestsync.settings.yaml")
SETTINGS_ENV_VAR = "GUESTSYNC_SETTINGS"

IN_MEMORY_DB = ":memory:"


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
    host:            str  = "0.0.0.0"
    port:            int  = 8787
    reload:          bool = False
    public_base_url: Optional[str] = None
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"


class StorageSettings(BaseModel):
    """DuckDB file holding media records and the user directory."""
    db_path: str = "guestsync.duckdb"


class UploadSettings(BaseModel):
    max_image_bytes: int = 5 * 1024 * 1024
    max_video_bytes: int = 50 * 1024 * 1024
    cache_control:   str = "public, max-age=31536000"

    @field_validator("max_image_bytes", "max_video_bytes")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("upload limits must be positive")
        return value


class AuthSettings(BaseModel):
    token_prefix:   str       = "mock_token"
    elevated_roles: List[str] = Field(default_factory=lambda: ["admin"])


class RealtimeSettings(BaseModel):
    send_timeout_seconds: float = 5.0


class AppConfig(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    storage:  StorageSettings  = Field(default_factory=StorageSettings)
    upload:   UploadSettings   = Field(default_factory=UploadSettings)
    auth:     AuthSettings     = Field(default_factory=AuthSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)


# ---------------------------------------------------------------------------
# Path resolution
# ---------------------------------------------------------------------------


def _resolve_db_path(config: AppConfig, settings_path: Path) -> None:
    db_path = config.storage.db_path
    if db_path == IN_MEMORY_DB or Path(db_path).is_absolute():
        return
    config.storage.db_path = str(settings_path.resolve().parent / db_path)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load *AppConfig* from YAML, falling back to defaults for missing keys."""
    if settings_path is None:
        settings_path = Path(os.environ.get(SETTINGS_ENV_VAR, SETTINGS_FILE))
    settings_path = Path(settings_path)

    config = AppConfig(**_load_yaml(settings_path))
    _resolve_db_path(config, settings_path)

    logger.info(
        "Settings loaded (server=%s:%s, db=%s, log=%s)",
        config.server.host,
        config.server.port,
        config.storage.db_path,
        config.logging.level,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: AppConfig) -> None:
    global _config
    _config = config


def reset_config() -> None:
    """Forget the cached config (for testing)."""
    global _config
    _config = None
