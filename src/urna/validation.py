"""Validación de formato de los datos personales del voto.

English: Format validation for the ballot's personal-data payload. Pure, no
network, no side effects.
"""

from __future__ import annotations

import re
from typing import List

from .models import BallotDraft, FieldFailure

NATIONAL_ID_LENGTH = 8
_NATIONAL_ID_PATTERN = re.compile(r"[0-9]{8}", flags=re.ASCII)

REQUIRED_FIELDS = (
    ("full_name", "El nombre completo es obligatorio"),
    ("national_id", "El DNI es obligatorio"),
    ("phone", "El teléfono es obligatorio"),
    ("department", "El departamento es obligatorio"),
    ("province", "La provincia es obligatoria"),
    ("district", "El distrito es obligatorio"),
    ("address", "La dirección es obligatoria"),
)


def is_valid_national_id(value: str) -> bool:
    """Exactly eight ASCII digits; surrounding whitespace is tolerated."""
    return _NATIONAL_ID_PATTERN.fullmatch(value.strip()) is not None


def validate_ballot(draft: BallotDraft) -> List[FieldFailure]:
    """Valida el borrador y devuelve los fallos por campo.

    English: Validate the draft and return field-level failures; an empty
    list means the draft is valid. The national ID is never truncated or
    padded.
    """
    failures: List[FieldFailure] = []
    if not draft.candidate_id or not draft.candidate_id.strip():
        failures.append(FieldFailure("candidate_id", "Debe seleccionar un candidato"))

    values = draft.personal_fields()
    for name, message in REQUIRED_FIELDS:
        if not values[name].strip():
            failures.append(FieldFailure(name, message))

    national_id = values["national_id"]
    if national_id.strip() and not is_valid_national_id(national_id):
        failures.append(
            FieldFailure("national_id", f"El DNI debe tener {NATIONAL_ID_LENGTH} dígitos")
        )
    return failures
