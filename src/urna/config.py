# Config Module
# AUTO-DOC-INDEX
#
# ES: Índice rápido
#   1) Propósito del módulo
#   2) Componentes principales
#   3) Puntos de extensión
#
# EN: Quick index
#   1) Module purpose
#   2) Main components
#   3) Extension points
#
# Secciones / Sections:
#   - Configuración / Configuration
#   - Lógica principal / Core logic
#   - Integraciones / Integrations

"""Configuración validada de Urna.

Validated Urna configuration.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import AnyUrl, Field, TypeAdapter, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

_ENV_PATH = Path(".env")
_ENV_LOCAL_PATH = Path(".env.local")
load_dotenv(_ENV_PATH, override=False)
load_dotenv(_ENV_LOCAL_PATH, override=False)

DEFAULT_API_BASE_URL = "http://localhost:8000"
DEFAULT_POLL_INTERVAL_SECONDS = 10.0


class UrnaSettings(BaseSettings):
    """Variables de entorno y archivo .env para Urna.

    English: Environment variables and .env file for Urna. Every field can be
    overridden with the ``URNA_`` prefix, e.g. ``URNA_POLL_INTERVAL_SECONDS``.
    """

    model_config = SettingsConfigDict(
        env_prefix="URNA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    API_BASE_URL: str = DEFAULT_API_BASE_URL
    POLL_INTERVAL_SECONDS: float = Field(default=DEFAULT_POLL_INTERVAL_SECONDS, gt=0)
    REQUEST_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)
    FETCH_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    FETCH_BACKOFF_SECONDS: float = Field(default=1.0, ge=0)
    FETCH_BACKOFF_MAX_SECONDS: float = Field(default=8.0, ge=0)
    ELECTION_YEAR: Optional[int] = Field(default=None, ge=1900, le=2100)
    LOG_LEVEL: str = "INFO"
    STORAGE_PATH: Optional[Path] = None

    @field_validator("API_BASE_URL")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        """Validate URLs without changing the stored type."""
        TypeAdapter(AnyUrl).validate_python(value)
        return value.rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return normalized


def load_config(config_path: Optional[Path] = None, **overrides: Any) -> UrnaSettings:
    """Carga y valida configuración, fallando con detalle.

    English: Load and validate configuration from the environment, or from a
    YAML file whose lower-case keys mirror the settings fields. Explicit
    keyword overrides win over both.
    """
    payload: Dict[str, Any] = {}
    if config_path is not None:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {config_path}")
        payload = {str(key).upper(): value for key, value in raw.items()}
    payload.update({key.upper(): value for key, value in overrides.items()})
    try:
        return UrnaSettings(**payload)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
