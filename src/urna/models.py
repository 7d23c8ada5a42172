"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/urna/models.py`.
Este módulo forma parte de Urna Engine y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - Candidate
  - Identity
  - BallotDraft
  - FieldFailure
  - RejectionReason
  - Baseline
  - Unvoted / Submitting / Confirmed / Rejected
  - PriorBallot
  - TallySnapshot
  - MergedTally
  - RankedCandidate
  - TallyView

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/urna/models.py`.
This module is part of Urna Engine and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - Candidate
  - Identity
  - BallotDraft
  - FieldFailure
  - RejectionReason
  - Baseline
  - Unvoted / Submitting / Confirmed / Rejected
  - PriorBallot
  - TallySnapshot
  - MergedTally
  - RankedCandidate
  - TallyView

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class Candidate:
    """Candidato del catálogo externo (solo lectura).

    Attributes:
        candidate_id (str): Identificador opaco.
        name (str): Nombre para mostrar.
        party (str): Partido político.

    English:
        Candidate from the external catalog (read-only reference data).
    """

    candidate_id: str
    name: str
    party: str
    description: str = ""
    image_url: str = ""
    proposals: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Identity:
    """Identidad emitida por el servicio de autenticación externo.

    English: Identity issued by the external auth service. The token is an
    opaque bearer credential.
    """

    access_token: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    is_admin: bool = False

    @property
    def authenticated(self) -> bool:
        return bool(self.access_token and self.access_token.strip())

    def __repr__(self) -> str:
        return f"Identity(user_id={self.user_id!r}, is_admin={self.is_admin}, access_token='***')"


@dataclass(frozen=True)
class BallotDraft:
    """Datos personales ingresados por el votante más el candidato elegido.

    English: Voter-entered personal fields plus the chosen candidate id.
    """

    candidate_id: str
    full_name: str
    national_id: str
    phone: str
    department: str
    province: str
    district: str
    address: str

    def personal_fields(self) -> Dict[str, str]:
        return {
            "full_name": self.full_name,
            "national_id": self.national_id,
            "phone": self.phone,
            "department": self.department,
            "province": self.province,
            "district": self.district,
            "address": self.address,
        }

    def __repr__(self) -> str:
        return f"BallotDraft(candidate_id={self.candidate_id!r}, national_id='********')"


@dataclass(frozen=True)
class FieldFailure:
    """Fallo de validación a nivel de campo."""

    field: str
    message: str


class RejectionReason(str, Enum):
    """Motivos de rechazo distinguibles por máquina.

    English: Machine-distinguishable rejection reasons.
    """

    NOT_AUTHENTICATED = "not_authenticated"
    ALREADY_VOTED = "already_voted"
    VALIDATION_REJECTED = "validation_rejected"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class Baseline:
    """Conteo previo al envío, capturado al entrar en ``Submitting``.

    English: Pre-submission figures captured when entering ``Submitting``.
    """

    total: int
    count: int


@dataclass(frozen=True)
class Unvoted:
    """El votante aún no emitió voto."""

    @property
    def has_voted(self) -> bool:
        return False


@dataclass(frozen=True)
class Submitting:
    """Envío en curso para ``candidate_id``."""

    candidate_id: str
    baseline: Optional[Baseline] = None

    @property
    def has_voted(self) -> bool:
        return False


@dataclass(frozen=True)
class Confirmed:
    """Voto confirmado; terminal para la sesión.

    English: Confirmed ballot, terminal for the session. ``candidate_id`` is
    ``None`` only when the backend reported an existing ballot without saying
    for whom. ``baseline`` is ``None`` when the backend already counts the
    ballot (seeded from the prior check or a conflict), so no local increment
    applies.
    """

    candidate_id: Optional[str]
    baseline: Optional[Baseline] = None

    @property
    def has_voted(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    """Envío rechazado; el votante puede reintentar."""

    candidate_id: str
    reason: RejectionReason
    detail: str = ""

    @property
    def has_voted(self) -> bool:
        return False

    @property
    def retryable(self) -> bool:
        return self.reason is not RejectionReason.ALREADY_VOTED


BallotState = Union[Unvoted, Submitting, Confirmed, Rejected]


@dataclass(frozen=True)
class PriorBallot:
    """Resultado de la verificación de voto previo."""

    has_voted: bool
    candidate_id: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TallySnapshot:
    """Lectura autoritativa del conteo en un instante.

    Attributes:
        counts (Dict[str, int]): Votos por candidato.
        total (int): Total de votos.
        as_of (datetime): Momento de captura.

    English:
        Authoritative point-in-time read of all vote counts. Replaced
        wholesale on every poll, never patched.
    """

    counts: Dict[str, int]
    total: int
    as_of: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        object.__setattr__(self, "counts", dict(self.counts))
        _check_counts(self.counts, self.total)

    @classmethod
    def from_counts(cls, counts: Mapping[str, int], as_of: Optional[datetime] = None) -> "TallySnapshot":
        """Build a snapshot whose total is the sum of ``counts``."""
        return cls(counts=dict(counts), total=sum(counts.values()), as_of=as_of or _utcnow())

    def count_for(self, candidate_id: str) -> int:
        return self.counts.get(candidate_id, 0)


@dataclass(frozen=True)
class MergedTally:
    """Conteo mostrado, resultado del merge.

    English: Displayed tally produced by the merger. ``local_increment`` names
    the candidate carrying the voter's optimistic ``+1`` in this tally;
    ``own_ballot_reflected`` is set once a snapshot has been observed to carry
    the voter's ballot, after which the increment is never applied again.
    """

    counts: Dict[str, int]
    total: int
    as_of: Optional[datetime] = None
    local_increment: Optional[str] = None
    own_ballot_reflected: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "counts", dict(self.counts))
        _check_counts(self.counts, self.total)

    @classmethod
    def empty(cls) -> "MergedTally":
        return cls(counts={}, total=0)

    def count_for(self, candidate_id: str) -> int:
        return self.counts.get(candidate_id, 0)


def _check_counts(counts: Mapping[str, int], total: int) -> None:
    if any(value < 0 for value in counts.values()):
        raise ValueError("vote counts cannot be negative")
    if sum(counts.values()) != total:
        raise ValueError(f"sum of counts ({sum(counts.values())}) does not match total ({total})")


@dataclass(frozen=True)
class RankedCandidate:
    """Fila de presentación del ranking."""

    candidate_id: str
    name: str
    party: str
    count: int
    percentage: float
    rank: int


@dataclass(frozen=True)
class TallyView:
    """Modelo de vista listo para mostrar.

    English: Display-ready view model for the voting page.
    """

    total: int
    rows: List[RankedCandidate]
    state: BallotState
    as_of: Optional[datetime] = None

    @property
    def voted_for(self) -> Optional[str]:
        if isinstance(self.state, Confirmed):
            return self.state.candidate_id
        return None

    @property
    def leader(self) -> Optional[RankedCandidate]:
        if not self.rows or self.rows[0].count == 0:
            return None
        return self.rows[0]
