"""NomadChat application configuration.

Loads settings from two YAML files:
  * nomadchat.settings.yaml: non-secret configuration
  * nomadchat.secrets.yaml: secrets (never committed)

Both files are optional; missing files fall back to model defaults.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("nomadchat.settings.yaml")
SECRETS_FILE  = Path("nomadchat.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class VapidSecrets(BaseModel):
    private_key: Optional[str] = None


class EncryptionSecrets(BaseModel):
    # urlsafe base64 Fernet key; a throwaway key is generated when empty
    key: Optional[str] = None


class Secrets(BaseModel):
    vapid:      VapidSecrets      = Field(default_factory=VapidSecrets)
    encryption: EncryptionSecrets = Field(default_factory=EncryptionSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 8000
    allowed_origins: List[str] = Field(default_factory=lambda: ["http://localhost:4200"])


class LoggingSettings(BaseModel):
    level: str = "info"


class DatabaseSettings(BaseModel):
    path: str = "nomadchat.duckdb"


class HubSettings(BaseModel):
    max_receive_message_size: int = 52428800


class PushSettings(BaseModel):
    enabled:     bool = True
    subject:     str  = "mailto:admin@nomadchat.local"
    public_key:  str  = ""
    ttl_seconds: int  = 86400


class AppConfig(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    hub:      HubSettings      = Field(default_factory=HubSettings)
    push:     PushSettings     = Field(default_factory=PushSettings)
    secrets:  Secrets          = Field(default_factory=Secrets)


def _resolve_database_path(config: AppConfig, base_dir: Path) -> None:
    """Anchor a relative database path to the directory of the settings file."""
    raw = config.database.path
    if raw == ":memory:":
        return
    path = Path(raw)
    if not path.is_absolute():
        config.database.path = str(base_dir / path)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------

_config: Optional[AppConfig] = None


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppConfig:
    """Load and merge settings + secrets into a single *AppConfig* object."""
    settings_path = Path(settings_path) if settings_path else SETTINGS_FILE
    if secrets_path is None:
        secrets_path = settings_path.parent / SECRETS_FILE.name
    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(Path(secrets_path))

    # Merge: secrets live under the "secrets" key in AppConfig
    settings_data["secrets"] = secrets_data

    config = AppConfig(**settings_data)
    _resolve_database_path(config, settings_path.resolve().parent)
    logger.info(
        "Settings loaded (server=%s:%s, database=%s, push.enabled=%s)",
        config.server.host,
        config.server.port,
        config.database.path,
        config.push.enabled,
    )
    return config


def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: AppConfig) -> None:
    """Install an explicit configuration (used by tests and embedding apps)."""
    global _config
    _config = config


def reset_config() -> None:
    global _config
    _config = None
