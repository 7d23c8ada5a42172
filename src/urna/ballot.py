"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/urna/ballot.py`.
Este módulo forma parte de Urna Engine y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - Submitter
  - TransitionListener
  - BallotStateMachine

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/urna/ballot.py`.
This module is part of Urna Engine and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - Submitter
  - TransitionListener
  - BallotStateMachine

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, List, Optional

import structlog

from .errors import (
    AuthenticationRequiredError,
    BallotAlreadyCastError,
    BallotValidationError,
    SessionClosedError,
    SubmissionError,
    SubmissionInProgressError,
)
from .models import (
    BallotDraft,
    BallotState,
    Baseline,
    Confirmed,
    Identity,
    PriorBallot,
    Rejected,
    RejectionReason,
    Submitting,
    Unvoted,
)
from .validation import validate_ballot

Submitter = Callable[[BallotDraft, Identity], Awaitable[Any]]
TransitionListener = Callable[[BallotState, BallotState], None]


def _state_name(state: BallotState) -> str:
    return type(state).__name__.lower()


class BallotStateMachine:
    """Estado de voto por votante y ciclo de vida del envío.

    Bilingual: Per-voter ballot state and submission lifecycle.

    Transitions:
        Unvoted/Rejected -> Submitting(c) on cast, guarded.
        Submitting(c) -> Confirmed(c) on acknowledgement.
        Submitting(c) -> Rejected(c, reason) on failure.
        Confirmed is terminal: later casts are refused without a network call.

    The transition into ``Submitting`` is the only point that calls the
    submitter. Listeners are notified synchronously after each transition.
    """

    def __init__(self, submitter: Submitter, *, logger: Optional[Any] = None) -> None:
        self._submitter = submitter
        self._state: BallotState = Unvoted()
        self._listeners: List[TransitionListener] = []
        self._closed = False
        self.logger = logger or structlog.get_logger(__name__)

    @property
    def state(self) -> BallotState:
        return self._state

    @property
    def has_voted(self) -> bool:
        return self._state.has_voted

    @property
    def closed(self) -> bool:
        return self._closed

    def add_listener(self, listener: TransitionListener) -> Callable[[], None]:
        """Registra un listener y devuelve la función para retirarlo.

        English: Register a listener; returns its unsubscribe function.
        """
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def close(self) -> None:
        """Detach from the owner: outcomes arriving later are discarded."""
        self._closed = True
        self._listeners.clear()

    def check_can_cast(self, draft: BallotDraft, identity: Optional[Identity]) -> None:
        """Aplica las guardas previas al envío.

        English: Apply the pre-submission guards. Raises without touching the
        network or the state.

        Raises:
            SessionClosedError: The machine was closed.
            BallotAlreadyCastError: A ballot is already confirmed.
            SubmissionInProgressError: A submission is outstanding.
            AuthenticationRequiredError: No active identity.
            BallotValidationError: The draft failed format validation.
        """
        if self._closed:
            raise SessionClosedError("voting session is closed")
        state = self._state
        if isinstance(state, Confirmed):
            raise BallotAlreadyCastError(state.candidate_id)
        if isinstance(state, Submitting):
            raise SubmissionInProgressError(state.candidate_id)
        if identity is None or not identity.authenticated:
            raise AuthenticationRequiredError("authentication required to cast a ballot")
        failures = validate_ballot(draft)
        if failures:
            raise BallotValidationError(failures)

    async def cast(
        self,
        draft: BallotDraft,
        identity: Optional[Identity],
        *,
        baseline: Optional[Baseline] = None,
    ) -> BallotState:
        """Emite el voto para ``draft.candidate_id``.

        English: Cast the ballot. Returns the outcome of this attempt:
        ``Confirmed`` on success, ``Rejected`` on failure. On an
        already-voted conflict the returned value is the ``Rejected`` outcome
        while the machine settles in ``Confirmed``. ``baseline`` is recorded
        on the ``Submitting``/``Confirmed`` states for the tally merger.
        """
        self.check_can_cast(draft, identity)
        candidate_id = draft.candidate_id.strip()
        submitting = Submitting(candidate_id=candidate_id, baseline=baseline)
        self._transition(submitting)

        try:
            await self._submitter(draft, identity)
        except SubmissionError as exc:
            if self._discard_if_closed(candidate_id, "rejected"):
                return self._state
            return self._reject(submitting, exc)
        except asyncio.CancelledError:
            if not self._closed:
                self._transition(Rejected(candidate_id, RejectionReason.TRANSIENT, "cancelled"))
            raise
        except Exception as exc:
            self.logger.error(
                "ballot_submission_unexpected_error",
                candidate_id=candidate_id,
                error=str(exc),
                exc_info=True,
            )
            if self._discard_if_closed(candidate_id, "rejected"):
                return self._state
            rejected = Rejected(candidate_id, RejectionReason.TRANSIENT, str(exc))
            self._transition(rejected)
            return rejected

        if self._discard_if_closed(candidate_id, "confirmed"):
            return self._state
        confirmed = Confirmed(candidate_id=candidate_id, baseline=baseline)
        self._transition(confirmed)
        return confirmed

    def apply_prior_ballot(self, prior: PriorBallot) -> BallotState:
        """Siembra o reconcilia el estado con la verificación del backend.

        English: Seed (at session start) or reconcile the state with the
        backend's prior-ballot check. A confirmed ballot with an unknown
        candidate picks up the reported one. Never moves away from
        ``Confirmed`` and never interrupts an outstanding submission.
        """
        if self._closed or not prior.has_voted:
            return self._state
        state = self._state
        if isinstance(state, Submitting):
            self.logger.info("prior_ballot_ignored_while_submitting", candidate_id=state.candidate_id)
            return state
        if isinstance(state, Confirmed):
            if state.candidate_id is None and prior.candidate_id:
                self._transition(Confirmed(candidate_id=prior.candidate_id, baseline=state.baseline))
            return self._state
        self._transition(Confirmed(candidate_id=prior.candidate_id))
        return self._state

    def _reject(self, submitting: Submitting, exc: SubmissionError) -> Rejected:
        rejected = Rejected(submitting.candidate_id, exc.reason, exc.detail)
        self._transition(rejected)
        if exc.reason is RejectionReason.ALREADY_VOTED:
            # The backend already counts this voter's ballot: no local increment.
            self._transition(Confirmed(candidate_id=exc.candidate_id))
        return rejected

    def _discard_if_closed(self, candidate_id: str, outcome: str) -> bool:
        if not self._closed:
            return False
        self.logger.info("ballot_outcome_discarded", candidate_id=candidate_id, outcome=outcome)
        return True

    def _transition(self, new_state: BallotState) -> None:
        previous = self._state
        if isinstance(previous, Confirmed) and not isinstance(new_state, Confirmed):
            raise RuntimeError("confirmed ballot state is terminal")
        self._state = new_state
        self.logger.info(
            "ballot_transition",
            from_state=_state_name(previous),
            to_state=_state_name(new_state),
            candidate_id=getattr(new_state, "candidate_id", None),
        )
        for listener in list(self._listeners):
            listener(previous, new_state)
