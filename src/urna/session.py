"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/urna/session.py`.
Este módulo forma parte de Urna Engine y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - BallotBackend
  - VotingSession
  - voting_session

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/urna/session.py`.
This module is part of Urna Engine and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - BallotBackend
  - VotingSession
  - voting_session

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Protocol

import structlog

from . import scheduler
from .ballot import BallotStateMachine
from .config import UrnaSettings, load_config
from .client import BackendClient
from .errors import BackendError, SessionClosedError, UrnaError
from .logging import bind_context, setup_logging
from .merger import merge, recompute
from .models import (
    BallotDraft,
    BallotState,
    Baseline,
    Candidate,
    Confirmed,
    Identity,
    MergedTally,
    PriorBallot,
    Rejected,
    RejectionReason,
    TallySnapshot,
    TallyView,
)
from .ranking import rank

ViewListener = Callable[[TallyView], None]


class BallotBackend(Protocol):
    """Contratos del backend consumidos por la sesión."""

    async def fetch_snapshot(self, year: Optional[int] = None) -> TallySnapshot: ...

    async def check_prior_ballot(self, identity: Identity) -> PriorBallot: ...

    async def list_candidates(self) -> List[Candidate]: ...

    async def submit_ballot(self, draft: BallotDraft, identity: Optional[Identity]) -> Any: ...


class VotingSession:
    """Dueño único del estado de voto, del último snapshot y del conteo mostrado.

    English: Single session-scoped owner of the voter's ballot state, the last
    snapshot and the displayed ``MergedTally``. Every arriving snapshot and
    every ballot transition is merged synchronously on the event loop, so no
    two merges ever run at once.

    Example usage:
        async with BackendClient(settings) as backend:
            session = VotingSession(backend, identity, settings=settings)
            await session.open()
            ...
            session.close()
    """

    def __init__(
        self,
        backend: BallotBackend,
        identity: Optional[Identity] = None,
        *,
        settings: Optional[UrnaSettings] = None,
        year: Optional[int] = None,
        on_update: Optional[ViewListener] = None,
        logger: Optional[Any] = None,
    ) -> None:
        self.backend = backend
        self.identity = identity
        self.settings = settings or load_config()
        self.year = year if year is not None else self.settings.ELECTION_YEAR
        base_logger = logger or structlog.get_logger(__name__)
        self.logger = bind_context(base_logger, voter_id=identity.user_id if identity else None)
        self.ballot = BallotStateMachine(backend.submit_ballot, logger=self.logger)
        self.ballot.add_listener(self._on_transition)
        self._snapshot: Optional[TallySnapshot] = None
        self._tally: Optional[MergedTally] = None
        self._catalog: Dict[str, Candidate] = {}
        self._poll: Optional[scheduler.PollHandle] = None
        self._listeners: List[ViewListener] = [on_update] if on_update else []
        self._closed = False

    async def __aenter__(self) -> "VotingSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    @property
    def state(self) -> BallotState:
        return self.ballot.state

    @property
    def snapshot(self) -> Optional[TallySnapshot]:
        return self._snapshot

    @property
    def tally(self) -> MergedTally:
        return self._tally if self._tally is not None else MergedTally.empty()

    @property
    def catalog(self) -> Dict[str, Candidate]:
        return dict(self._catalog)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def poll_handle(self) -> Optional[scheduler.PollHandle]:
        return self._poll

    def add_listener(self, listener: ViewListener) -> None:
        self._listeners.append(listener)

    async def open(self, *, poll: bool = True) -> TallyView:
        """Carga catálogo, siembra el voto previo e inicia la consulta.

        English: Load the catalog, seed the ballot state from the prior-ballot
        check and start polling. Catalog or check failures are logged; the
        session still opens.
        """
        self._ensure_open()
        await self.load_candidates()
        await self.sync_prior_ballot()
        if poll:
            self.start_polling()
        return self.view()

    async def load_candidates(self) -> Dict[str, Candidate]:
        try:
            candidates = await self.backend.list_candidates()
        except BackendError as exc:
            self.logger.warning("candidates_load_failed", error=str(exc))
            return self.catalog
        if self._closed:
            return self.catalog
        self._catalog = {candidate.candidate_id: candidate for candidate in candidates}
        self.logger.info("candidates_loaded", count=len(self._catalog))
        self._notify()
        return self.catalog

    async def sync_prior_ballot(self) -> BallotState:
        """Consulta ``check prior ballot`` y reconcilia el estado local."""
        if self.identity is None or not self.identity.authenticated:
            return self.state
        try:
            prior = await self.backend.check_prior_ballot(self.identity)
        except BackendError as exc:
            self.logger.warning("prior_ballot_check_failed", error=str(exc), status_code=exc.status_code)
            return self.state
        if self._closed:
            return self.state
        return self.ballot.apply_prior_ballot(prior)

    def start_polling(self, interval_seconds: Optional[float] = None) -> scheduler.PollHandle:
        self._ensure_open()
        if self._poll is not None and not self._poll.cancelled:
            return self._poll
        self._poll = scheduler.start(
            self._fetch_snapshot,
            self.apply_snapshot,
            interval_seconds or self.settings.POLL_INTERVAL_SECONDS,
            logger=self.logger,
        )
        return self._poll

    async def _fetch_snapshot(self) -> TallySnapshot:
        return await self.backend.fetch_snapshot(self.year)

    async def refresh_now(self) -> None:
        """Actualiza el conteo ya, respetando la de-duplicación del scheduler.

        English: Refresh now. Goes through the poll handle when polling so the
        in-flight de-duplication applies; otherwise fetches once directly.
        """
        if self._closed:
            return
        if self._poll is not None and not self._poll.cancelled:
            await self._poll.refresh_now()
            return
        try:
            snapshot = await self._fetch_snapshot()
        except (UrnaError, ValueError) as exc:
            self.logger.warning("manual_refresh_failed", error=str(exc), error_type=type(exc).__name__)
            return
        self.apply_snapshot(snapshot)

    def apply_snapshot(self, snapshot: TallySnapshot) -> MergedTally:
        """Aplica un snapshot recién llegado (callback del scheduler).

        English: A snapshot the merger discards as stale is not kept as the
        last snapshot, so it never becomes a vote baseline.
        """
        if self._closed:
            self.logger.debug("snapshot_discarded_session_closed")
            return self.tally
        displayed = self._tally
        self._tally = merge(displayed, snapshot, self.state)
        if displayed is None or self._tally is not displayed:
            self._snapshot = snapshot
        self._notify()
        return self.tally

    async def cast_vote(self, draft: BallotDraft) -> BallotState:
        """Emite el voto del votante de esta sesión.

        English: Cast this session's ballot. Guard failures raise
        (authentication, validation, already cast, in progress); backend
        failures come back as ``Rejected``. After a conflict without a
        reported candidate, the prior-ballot check is asked once. After a
        confirmation, the tally is refreshed.
        """
        self._ensure_open()
        candidate_id = draft.candidate_id.strip()
        source = self._snapshot
        baseline = Baseline(
            total=source.total if source else 0,
            count=source.count_for(candidate_id) if source else 0,
        )
        outcome = await self.ballot.cast(draft, self.identity, baseline=baseline)
        if self._closed:
            return outcome

        if (
            isinstance(outcome, Rejected)
            and outcome.reason is RejectionReason.ALREADY_VOTED
            and isinstance(self.state, Confirmed)
            and self.state.candidate_id is None
        ):
            await self.sync_prior_ballot()
        elif isinstance(outcome, Confirmed):
            await self.refresh_now()
        return outcome

    def view(self) -> TallyView:
        tally = self.tally
        return TallyView(
            total=tally.total,
            rows=rank(tally, self._catalog),
            state=self.state,
            as_of=tally.as_of,
        )

    def close(self) -> None:
        """Cancela la consulta y descarta resultados posteriores.

        English: Teardown. Cancels polling; an in-flight submission may
        complete but its outcome is discarded.
        """
        if self._closed:
            return
        self._closed = True
        scheduler.cancel(self._poll)
        self.ballot.close()
        self._listeners.clear()
        self.logger.info("voting_session_closed")

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError("voting session is closed")

    def _on_transition(self, previous: BallotState, current: BallotState) -> None:
        self._tally = recompute(self._tally, self._snapshot, current)
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        view = self.view()
        for listener in list(self._listeners):
            listener(view)


@asynccontextmanager
async def voting_session(
    identity: Optional[Identity] = None,
    *,
    settings: Optional[UrnaSettings] = None,
    config_path: Optional[Path] = None,
    backend: Optional[BallotBackend] = None,
    year: Optional[int] = None,
    on_update: Optional[ViewListener] = None,
    poll: bool = True,
) -> AsyncIterator[VotingSession]:
    """Arranque completo: configuración, logging, backend y sesión abierta.

    English: Full startup. Loads settings, installs logging from
    ``LOG_LEVEL`` and ``STORAGE_PATH``, builds a ``BackendClient`` unless a
    backend is given, and yields an opened session. On exit the session is
    closed and an owned client is released.

    Example usage:
        async with voting_session(identity) as session:
            await session.cast_vote(draft)
    """
    settings = settings or load_config(config_path)
    logger = setup_logging(settings.LOG_LEVEL, settings.STORAGE_PATH)
    owned_client = BackendClient(settings, logger=logger) if backend is None else None
    session = VotingSession(
        owned_client or backend,
        identity,
        settings=settings,
        year=year,
        on_update=on_update,
        logger=logger,
    )
    try:
        await session.open(poll=poll)
        yield session
    finally:
        session.close()
        if owned_client is not None:
            await owned_client.aclose()
