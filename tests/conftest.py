"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `tests/conftest.py`.
Este módulo forma parte de Urna Engine y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - block_network
  - FakeBackend
  - settings
  - identity
  - make_draft
  - backend
  - reset_logging

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `tests/conftest.py`.
This module is part of Urna Engine and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - block_network
  - FakeBackend
  - settings
  - identity
  - make_draft
  - backend
  - reset_logging

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from logging.handlers import TimedRotatingFileHandler
from typing import Any, Callable, List, Optional

import pytest
import structlog

from urna.config import UrnaSettings, load_config
from urna.errors import BackendError
from urna.models import BallotDraft, Candidate, Identity, PriorBallot, TallySnapshot


@pytest.fixture(autouse=True)
def block_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Impide conexiones de red reales en tests.

    English:
        Prevents real network connections in tests.
    """

    def guarded_connect(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("Network access is disabled during tests.")

    def guarded_create_connection(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("Network access is disabled during tests.")

    monkeypatch.setattr(socket.socket, "connect", guarded_connect, raising=True)
    monkeypatch.setattr(socket, "create_connection", guarded_create_connection, raising=True)


class FakeBackend:
    """Backend en memoria con el mismo contrato que ``BackendClient``.

    English: In-memory backend with the ``BackendClient`` contract. Each
    queued snapshot/outcome is consumed in order; the last snapshot repeats.
    """

    def __init__(self) -> None:
        self.snapshots: List[TallySnapshot] = []
        self.submit_outcomes: List[Optional[BaseException]] = []
        self.prior = PriorBallot(has_voted=False)
        self.prior_error: Optional[BaseException] = None
        self.candidates: List[Candidate] = []
        self.submit_calls: List[BallotDraft] = []
        self.fetch_calls = 0
        self.check_calls = 0
        self.submit_gate: Optional[asyncio.Event] = None

    async def fetch_snapshot(self, year: Optional[int] = None) -> TallySnapshot:
        self.fetch_calls += 1
        if not self.snapshots:
            raise BackendError("no snapshot available")
        if len(self.snapshots) > 1:
            return self.snapshots.pop(0)
        return self.snapshots[0]

    async def check_prior_ballot(self, identity: Identity) -> PriorBallot:
        self.check_calls += 1
        if self.prior_error is not None:
            raise self.prior_error
        return self.prior

    async def list_candidates(self) -> List[Candidate]:
        return list(self.candidates)

    async def submit_ballot(self, draft: BallotDraft, identity: Optional[Identity]) -> Any:
        self.submit_calls.append(draft)
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        if self.submit_outcomes:
            outcome = self.submit_outcomes.pop(0)
            if outcome is not None:
                raise outcome
        return {"success": True}


@pytest.fixture
def settings() -> UrnaSettings:
    return load_config(
        API_BASE_URL="http://backend.test",
        POLL_INTERVAL_SECONDS=0.01,
        FETCH_MAX_ATTEMPTS=3,
        FETCH_BACKOFF_SECONDS=0,
        FETCH_BACKOFF_MAX_SECONDS=0,
    )


@pytest.fixture
def identity() -> Identity:
    return Identity(access_token="token-abc", user_id="user-1", email="votante@example.com")


@pytest.fixture
def make_draft() -> Callable[..., BallotDraft]:
    def _make(candidate_id: str = "cand-a", **overrides: str) -> BallotDraft:
        fields = {
            "full_name": "Rosa Quispe Mamani",
            "national_id": "45871236",
            "phone": "987654321",
            "department": "Lima",
            "province": "Lima",
            "district": "Miraflores",
            "address": "Av. Larco 123",
        }
        fields.update(overrides)
        return BallotDraft(candidate_id=candidate_id, **fields)

    return _make


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def reset_logging():
    """Deshace la configuración global de ``setup_logging``.

    English:
        Undo the global configuration installed by ``setup_logging``.
    """
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if type(handler) in (logging.StreamHandler, TimedRotatingFileHandler):
            root.removeHandler(handler)
            handler.close()
    structlog.reset_defaults()
