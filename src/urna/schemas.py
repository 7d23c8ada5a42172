"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/urna/schemas.py`.
Este módulo forma parte de Urna Engine y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - VoteCountSchema
  - VoteCountsResponse
  - RealVoteSchema
  - RealVotesResponse
  - VoteCheckResponse
  - CandidateSchema
  - BallotPayload
  - parse_vote_counts
  - parse_real_votes
  - parse_prior_ballot
  - parse_candidates
  - build_ballot_payload

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/urna/schemas.py`.
This module is part of Urna Engine and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - VoteCountSchema
  - VoteCountsResponse
  - RealVoteSchema
  - RealVotesResponse
  - VoteCheckResponse
  - CandidateSchema
  - BallotPayload
  - parse_vote_counts
  - parse_real_votes
  - parse_prior_ballot
  - parse_candidates
  - build_ballot_payload

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import SnapshotFormatError
from .models import BallotDraft, Candidate, PriorBallot, TallySnapshot

logger = structlog.get_logger(__name__)


class VoteCountSchema(BaseModel):
    """Entrada por candidato de ``GET /votes/counts``.

    English: Per-candidate entry of ``GET /votes/counts``.
    """

    model_config = ConfigDict(extra="ignore")

    candidate_id: str = Field(min_length=1)
    candidate_name: Optional[str] = None
    party: Optional[str] = None
    vote_count: int = Field(ge=0)
    percentage: Optional[float] = None

    @field_validator("candidate_id")
    @classmethod
    def strip_text(cls, value: str) -> str:
        """Normaliza texto eliminando espacios y valida no vacío.

        English:
            Normalize text by trimming whitespace and validate non-empty.
        """
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Field cannot be empty")
        return cleaned


class VoteCountsResponse(BaseModel):
    """Respuesta completa del conteo en vivo."""

    model_config = ConfigDict(extra="ignore")

    success: bool = True
    total_votes: int = Field(ge=0)
    candidates: List[VoteCountSchema] = Field(default_factory=list)
    as_of: Optional[datetime] = None


class RealVoteSchema(BaseModel):
    """Entrada por candidato de ``GET /data/real-votes/{year}``."""

    model_config = ConfigDict(extra="ignore")

    candidate_name: str = Field(min_length=1)
    party_name: Optional[str] = None
    votes: int = Field(ge=0)
    percentage: Optional[float] = None


class RealVotesResponse(BaseModel):
    """Resultados históricos por año electoral."""

    model_config = ConfigDict(extra="ignore")

    success: bool = True
    year: Optional[int] = None
    total_votes: int = Field(ge=0)
    candidates: List[RealVoteSchema] = Field(default_factory=list)


class VoteCheckResponse(BaseModel):
    """Respuesta de ``GET /votes/check``."""

    model_config = ConfigDict(extra="ignore")

    has_voted: bool
    candidate_id: Optional[str] = None


class CandidateSchema(BaseModel):
    """Candidato del catálogo (``GET /candidates``)."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    name: str
    party: str = ""
    description: Optional[str] = None
    image_url: Optional[str] = None
    proposals: List[str] = Field(default_factory=list)


class BallotPayload(BaseModel):
    """Cuerpo de ``POST /votes``.

    English: Body of ``POST /votes``; the backend calls the national ID ``dni``.
    """

    candidate_id: str
    full_name: str
    dni: str
    phone: str
    department: str
    province: str
    district: str
    address: str


def _snapshot_from_counts(counts: Dict[str, int], reported_total: int, as_of: Optional[datetime]) -> TallySnapshot:
    computed_total = sum(counts.values())
    if computed_total != reported_total:
        # Per-candidate counts are the breakdown that gets displayed, so they win.
        logger.warning(
            "snapshot_total_mismatch",
            reported_total=reported_total,
            computed_total=computed_total,
        )
    return TallySnapshot(
        counts=counts,
        total=computed_total,
        as_of=as_of or datetime.now(timezone.utc),
    )


def parse_vote_counts(payload: Any) -> TallySnapshot:
    """Valida el conteo en vivo y lo convierte a ``TallySnapshot``.

    English: Validate the live vote-count payload and convert it into a
    ``TallySnapshot``. Raises ``SnapshotFormatError`` on malformed payloads or
    when the backend reports ``success: false``.
    """
    try:
        model = VoteCountsResponse.model_validate(payload)
    except ValidationError as exc:
        raise SnapshotFormatError(f"Vote counts validation failed: {exc}") from exc
    if not model.success:
        raise SnapshotFormatError("Backend reported success=false for vote counts")

    counts: Dict[str, int] = {}
    for entry in model.candidates:
        if entry.candidate_id in counts:
            raise SnapshotFormatError(f"Duplicate candidate in snapshot: {entry.candidate_id}")
        counts[entry.candidate_id] = entry.vote_count
    return _snapshot_from_counts(counts, model.total_votes, model.as_of)


def parse_real_votes(payload: Any) -> TallySnapshot:
    """Convierte resultados históricos a ``TallySnapshot``.

    English: Historical results carry no candidate id, so the candidate name
    is used as the key. Entries sharing a name are summed.
    """
    try:
        model = RealVotesResponse.model_validate(payload)
    except ValidationError as exc:
        raise SnapshotFormatError(f"Real votes validation failed: {exc}") from exc
    if not model.success:
        raise SnapshotFormatError("Backend reported success=false for real votes")

    counts: Dict[str, int] = {}
    for entry in model.candidates:
        key = entry.candidate_name.strip()
        counts[key] = counts.get(key, 0) + entry.votes
    return _snapshot_from_counts(counts, model.total_votes, None)


def parse_prior_ballot(payload: Any) -> PriorBallot:
    try:
        model = VoteCheckResponse.model_validate(payload)
    except ValidationError as exc:
        raise SnapshotFormatError(f"Vote check validation failed: {exc}") from exc
    candidate_id = model.candidate_id if model.has_voted else None
    return PriorBallot(has_voted=model.has_voted, candidate_id=candidate_id)


def parse_candidates(payload: Any) -> List[Candidate]:
    if isinstance(payload, dict) and "candidates" in payload:
        payload = payload["candidates"]
    if not isinstance(payload, list):
        raise SnapshotFormatError(f"Unexpected candidates payload type: {type(payload).__name__}")
    try:
        models = [CandidateSchema.model_validate(item) for item in payload]
    except ValidationError as exc:
        raise SnapshotFormatError(f"Candidate validation failed: {exc}") from exc
    return [
        Candidate(
            candidate_id=model.id,
            name=model.name,
            party=model.party,
            description=model.description or "",
            image_url=model.image_url or "",
            proposals=tuple(model.proposals),
        )
        for model in models
    ]


def build_ballot_payload(draft: BallotDraft) -> Dict[str, str]:
    """Arma el cuerpo JSON del voto, con campos recortados."""
    fields = {name: value.strip() for name, value in draft.personal_fields().items()}
    return BallotPayload(
        candidate_id=draft.candidate_id.strip(),
        full_name=fields["full_name"],
        dni=fields["national_id"],
        phone=fields["phone"],
        department=fields["department"],
        province=fields["province"],
        district=fields["district"],
        address=fields["address"],
    ).model_dump()
