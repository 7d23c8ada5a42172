"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/urna/logging.py`.
Este módulo forma parte de Urna Engine y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - redact_sensitive
  - setup_logging
  - bind_context

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/urna/logging.py`.
This module is part of Urna Engine and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - redact_sensitive
  - setup_logging
  - bind_context

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

import logging
import re
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, MutableMapping, Optional

import structlog

_NATIONAL_ID_RE = re.compile(r"(?<![0-9])[0-9]{8}(?![0-9])")
_BEARER_RE = re.compile(r"(?i)bearer\s+[A-Za-z0-9._~+/=-]+")
_SENSITIVE_KEYS = {"national_id", "dni", "access_token", "authorization", "phone", "address"}
REDACTED = "[REDACTED]"

def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        value = _BEARER_RE.sub(f"Bearer {REDACTED}", value)
        return _NATIONAL_ID_RE.sub(REDACTED, value)
    return value

def redact_sensitive(_logger: Any, _method: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Procesador structlog que oculta DNI y tokens.

    English: structlog processor masking national IDs, bearer tokens and
    personal fields before rendering.
    """
    for key in list(event_dict.keys()):
        if key.lower() in _SENSITIVE_KEYS:
            event_dict[key] = REDACTED
        else:
            event_dict[key] = _redact_value(event_dict[key])
    return event_dict

def setup_logging(log_level: str = "INFO", storage_path: Optional[Path] = None) -> structlog.BoundLogger:
    """Configura structlog y handlers de consola/archivo.

    English: Configure structlog and console/file handlers. The file handler
    is only installed when ``storage_path`` is given.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if storage_path is not None:
        log_dir = storage_path / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            TimedRotatingFileHandler(
                log_dir / "urna.log",
                when="midnight",
                backupCount=30,
                encoding="utf-8",
            )
        )

    logging.basicConfig(
        level=log_level.upper(),
        handlers=handlers,
        format="%(message)s",
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_sensitive,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(log_level.upper())),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("urna")

def bind_context(
    logger: Any,
    voter_id: Optional[str] = None,
    candidate_id: Optional[str] = None,
    snapshot_as_of: Optional[str] = None,
) -> Any:
    """Adjunta contexto estándar al logger.

    English: Bind standard context to the logger.
    """
    context: dict[str, Any] = {}
    if voter_id:
        context["voter_id"] = voter_id
    if candidate_id:
        context["candidate_id"] = candidate_id
    if snapshot_as_of:
        context["snapshot_as_of"] = snapshot_as_of
    return logger.bind(**context)
