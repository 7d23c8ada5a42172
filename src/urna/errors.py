"""Errores del motor de votación Urna.

English: Error taxonomy for the Urna voting engine.
"""

from __future__ import annotations

from typing import Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import FieldFailure, RejectionReason


class UrnaError(Exception):
    """Error base del motor.

    English: Base engine error.
    """


class ConfigurationError(UrnaError):
    """Configuración inválida.

    English: Invalid configuration.
    """


class BallotValidationError(UrnaError):
    """El borrador de voto no pasó la validación de formato.

    English: Ballot draft failed format validation. Never reaches the network.
    """

    def __init__(self, failures: Sequence["FieldFailure"]) -> None:
        self.failures = tuple(failures)
        fields = ", ".join(failure.field for failure in self.failures)
        super().__init__(f"invalid_ballot_fields={fields}")

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(failure.field for failure in self.failures)


class AuthenticationRequiredError(UrnaError):
    """Se intentó votar sin identidad activa.

    English: Cast attempted without an active identity.
    """


class BallotAlreadyCastError(UrnaError):
    """El votante ya tiene un voto confirmado en esta sesión.

    English: The voter already has a confirmed ballot in this session.
    """

    def __init__(self, candidate_id: Optional[str]) -> None:
        self.candidate_id = candidate_id
        super().__init__(f"ballot_already_cast candidate_id={candidate_id}")


class SubmissionInProgressError(UrnaError):
    """Ya existe un envío en curso.

    English: A submission is already outstanding.
    """

    def __init__(self, candidate_id: str) -> None:
        self.candidate_id = candidate_id
        super().__init__(f"submission_in_progress candidate_id={candidate_id}")


class SessionClosedError(UrnaError):
    """La sesión de votación ya fue cerrada.

    English: The voting session was already closed.
    """


class SubmissionError(UrnaError):
    """El backend rechazó o no pudo procesar el voto.

    English: The backend rejected or failed to process the ballot. ``reason``
    is machine-distinguishable; ``candidate_id`` is set when the backend
    reports an existing ballot.
    """

    def __init__(
        self,
        reason: "RejectionReason",
        detail: str = "",
        *,
        status_code: Optional[int] = None,
        candidate_id: Optional[str] = None,
    ) -> None:
        self.reason = reason
        self.detail = detail
        self.status_code = status_code
        self.candidate_id = candidate_id
        super().__init__(f"submission_failed reason={reason.value} status={status_code} detail={detail}")


class BackendError(UrnaError):
    """Fallo de lectura contra el backend (snapshot, verificación, catálogo).

    English: Read failure against the backend (snapshot, prior check, catalog).
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientBackendError(BackendError):
    """Fallo transitorio, reintentable.

    English: Transient, retryable failure.
    """


class SnapshotFormatError(BackendError):
    """El payload del conteo no cumple el esquema.

    English: Vote-count payload does not match the schema.
    """
