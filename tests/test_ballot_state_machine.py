"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `tests/test_ballot_state_machine.py`.
Este módulo forma parte de Urna Engine y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - TestGuards
  - TestOutcomes
  - TestPriorBallot
  - TestTeardown

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `tests/test_ballot_state_machine.py`.
This module is part of Urna Engine and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - TestGuards
  - TestOutcomes
  - TestPriorBallot
  - TestTeardown

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

import asyncio

import pytest

from urna.ballot import BallotStateMachine
from urna.errors import (
    AuthenticationRequiredError,
    BallotAlreadyCastError,
    BallotValidationError,
    SessionClosedError,
    SubmissionError,
    SubmissionInProgressError,
)
from urna.models import (
    Baseline,
    Confirmed,
    Identity,
    PriorBallot,
    Rejected,
    RejectionReason,
    Submitting,
    Unvoted,
)


class TestGuards:
    """Guardas previas al envío / Pre-submission guards."""

    def test_unauthenticated_cast_never_reaches_network(self, backend, make_draft) -> None:
        machine = BallotStateMachine(backend.submit_ballot)

        with pytest.raises(AuthenticationRequiredError):
            asyncio.run(machine.cast(make_draft(), None))
        with pytest.raises(AuthenticationRequiredError):
            asyncio.run(machine.cast(make_draft(), Identity(access_token="  ")))

        assert backend.submit_calls == []
        assert machine.state == Unvoted()

    def test_invalid_draft_lists_fields(self, backend, identity, make_draft) -> None:
        machine = BallotStateMachine(backend.submit_ballot)

        with pytest.raises(BallotValidationError) as excinfo:
            asyncio.run(machine.cast(make_draft(national_id="1234", district=""), identity))

        assert set(excinfo.value.fields) == {"national_id", "district"}
        assert backend.submit_calls == []
        assert machine.state == Unvoted()

    def test_confirmed_refuses_every_further_cast(self, backend, identity, make_draft) -> None:
        """Bilingual: Tras confirmar, ningún voto llega a la red, para ningún candidato."""
        machine = BallotStateMachine(backend.submit_ballot)
        asyncio.run(machine.cast(make_draft("cand-a"), identity))
        assert len(backend.submit_calls) == 1

        for candidate_id in ("cand-a", "cand-b", "cand-c"):
            with pytest.raises(BallotAlreadyCastError):
                asyncio.run(machine.cast(make_draft(candidate_id), identity))

        assert len(backend.submit_calls) == 1
        assert machine.state == Confirmed("cand-a")

    def test_second_cast_while_submitting_is_refused(self, backend, identity, make_draft) -> None:
        machine = BallotStateMachine(backend.submit_ballot)

        async def run() -> None:
            backend.submit_gate = asyncio.Event()
            first = asyncio.create_task(machine.cast(make_draft("cand-a"), identity))
            await asyncio.sleep(0)
            assert machine.state == Submitting("cand-a")
            with pytest.raises(SubmissionInProgressError):
                await machine.cast(make_draft("cand-b"), identity)
            backend.submit_gate.set()
            await first

        asyncio.run(run())

        assert len(backend.submit_calls) == 1
        assert machine.state == Confirmed("cand-a")


class TestOutcomes:
    """Resultados del envío / Submission outcomes."""

    def test_success_records_baseline(self, backend, identity, make_draft) -> None:
        machine = BallotStateMachine(backend.submit_ballot)
        baseline = Baseline(total=15, count=10)

        outcome = asyncio.run(machine.cast(make_draft("cand-a"), identity, baseline=baseline))

        assert outcome == Confirmed("cand-a", baseline)
        assert machine.has_voted

    def test_transient_failure_allows_retry_with_other_candidate(self, backend, identity, make_draft) -> None:
        """Bilingual: Un rechazo transitorio permite reintentar con otro candidato."""
        backend.submit_outcomes = [SubmissionError(RejectionReason.TRANSIENT, "timeout")]
        machine = BallotStateMachine(backend.submit_ballot)

        first = asyncio.run(machine.cast(make_draft("cand-a"), identity))
        assert first == Rejected("cand-a", RejectionReason.TRANSIENT, "timeout")
        assert first.retryable

        second = asyncio.run(machine.cast(make_draft("cand-b"), identity))

        assert second == Confirmed("cand-b")
        assert [draft.candidate_id for draft in backend.submit_calls] == ["cand-a", "cand-b"]

    def test_conflict_rejects_then_settles_confirmed(self, backend, identity, make_draft) -> None:
        backend.submit_outcomes = [
            SubmissionError(RejectionReason.ALREADY_VOTED, "Ya votó", status_code=409, candidate_id="cand-x")
        ]
        machine = BallotStateMachine(backend.submit_ballot)
        seen = []
        machine.add_listener(lambda previous, current: seen.append(current))

        outcome = asyncio.run(machine.cast(make_draft("cand-a"), identity, baseline=Baseline(3, 1)))

        assert outcome == Rejected("cand-a", RejectionReason.ALREADY_VOTED, "Ya votó")
        assert not outcome.retryable
        assert machine.state == Confirmed("cand-x")
        assert machine.state.baseline is None
        assert [type(state).__name__ for state in seen] == ["Submitting", "Rejected", "Confirmed"]

    def test_unexpected_error_is_treated_as_transient(self, identity, make_draft) -> None:
        async def broken(draft, identity):
            raise OSError("connection reset")

        machine = BallotStateMachine(broken)

        outcome = asyncio.run(machine.cast(make_draft(), identity))

        assert isinstance(outcome, Rejected)
        assert outcome.reason is RejectionReason.TRANSIENT


class TestPriorBallot:
    """Siembra desde la verificación previa / Seeding from the prior check."""

    def test_prior_ballot_seeds_confirmed(self, backend) -> None:
        machine = BallotStateMachine(backend.submit_ballot)

        state = machine.apply_prior_ballot(PriorBallot(has_voted=True, candidate_id="cand-b"))

        assert state == Confirmed("cand-b")

    def test_no_prior_ballot_keeps_unvoted(self, backend) -> None:
        machine = BallotStateMachine(backend.submit_ballot)

        assert machine.apply_prior_ballot(PriorBallot(has_voted=False)) == Unvoted()

    def test_prior_ballot_fills_unknown_candidate_only(self, backend) -> None:
        machine = BallotStateMachine(backend.submit_ballot)
        machine.apply_prior_ballot(PriorBallot(has_voted=True))
        assert machine.state == Confirmed(None)

        machine.apply_prior_ballot(PriorBallot(has_voted=True, candidate_id="cand-c"))
        machine.apply_prior_ballot(PriorBallot(has_voted=True, candidate_id="cand-d"))

        assert machine.state == Confirmed("cand-c")


class TestTeardown:
    """Cierre con envío en curso / Teardown with a submission outstanding."""

    def test_outcome_after_close_is_discarded(self, backend, identity, make_draft) -> None:
        machine = BallotStateMachine(backend.submit_ballot)
        seen = []
        machine.add_listener(lambda previous, current: seen.append(current))

        async def run() -> None:
            backend.submit_gate = asyncio.Event()
            task = asyncio.create_task(machine.cast(make_draft("cand-a"), identity))
            await asyncio.sleep(0)
            machine.close()
            backend.submit_gate.set()
            await task

        asyncio.run(run())

        assert len(backend.submit_calls) == 1
        assert machine.state == Submitting("cand-a")
        assert seen == [Submitting("cand-a")]

    def test_cast_after_close_is_refused(self, backend, identity, make_draft) -> None:
        machine = BallotStateMachine(backend.submit_ballot)
        machine.close()

        with pytest.raises(SessionClosedError):
            asyncio.run(machine.cast(make_draft(), identity))
        assert backend.submit_calls == []
