"""Pruebas de esquemas de payloads del backend.

Tests for backend payload schemas.
"""

import pytest

from urna.errors import SnapshotFormatError
from urna.models import BallotDraft
from urna.schemas import (
    build_ballot_payload,
    parse_candidates,
    parse_prior_ballot,
    parse_real_votes,
    parse_vote_counts,
)


def test_parse_vote_counts_builds_snapshot():
    """Español: El conteo en vivo se convierte a snapshot.

    English: Live counts are converted into a snapshot.
    """
    payload = {
        "success": True,
        "total_votes": 7,
        "candidates": [
            {"candidate_id": "c1", "candidate_name": "Ana", "party": "Azul", "vote_count": 4, "percentage": 57.1},
            {"candidate_id": " c2 ", "candidate_name": "Luis", "party": "Verde", "vote_count": 3, "percentage": 42.9},
        ],
    }

    snapshot = parse_vote_counts(payload)

    assert snapshot.counts == {"c1": 4, "c2": 3}
    assert snapshot.total == 7
    assert snapshot.as_of.tzinfo is not None


def test_parse_vote_counts_uses_candidate_sum_when_total_disagrees():
    """Español: Si el total no cuadra, manda la suma por candidato.

    English: When the reported total disagrees, the per-candidate sum wins.
    """
    payload = {
        "total_votes": 10,
        "candidates": [{"candidate_id": "c1", "vote_count": 4}, {"candidate_id": "c2", "vote_count": 5}],
    }

    snapshot = parse_vote_counts(payload)

    assert snapshot.total == 9


@pytest.mark.parametrize(
    "payload",
    [
        {"success": False, "total_votes": 0, "candidates": []},
        {"total_votes": -1, "candidates": []},
        {"total_votes": 1, "candidates": [{"candidate_id": "c1", "vote_count": -1}]},
        {"total_votes": 2, "candidates": [{"candidate_id": "c1", "vote_count": 1}, {"candidate_id": "c1", "vote_count": 1}]},
        "not-a-dict",
    ],
)
def test_parse_vote_counts_rejects_malformed(payload):
    """Español: Payloads inválidos lanzan SnapshotFormatError.

    English: Invalid payloads raise SnapshotFormatError.
    """
    with pytest.raises(SnapshotFormatError):
        parse_vote_counts(payload)


def test_parse_real_votes_keys_by_candidate_name():
    payload = {
        "success": True,
        "total_votes": 30,
        "candidates": [
            {"candidate_name": "Ana", "party_name": "Azul", "votes": 20, "percentage": 66.7},
            {"candidate_name": "Luis", "party_name": "Verde", "votes": 10, "percentage": 33.3},
        ],
    }

    snapshot = parse_real_votes(payload)

    assert snapshot.counts == {"Ana": 20, "Luis": 10}


def test_parse_prior_ballot_ignores_candidate_when_not_voted():
    assert parse_prior_ballot({"has_voted": False, "candidate_id": "c1"}).candidate_id is None
    assert parse_prior_ballot({"has_voted": True, "candidate_id": "c1"}).candidate_id == "c1"


def test_parse_candidates_accepts_list_or_wrapped():
    raw = [{"id": "c1", "name": "Ana", "party": "Azul", "proposals": ["Salud"]}]

    direct = parse_candidates(raw)
    wrapped = parse_candidates({"candidates": raw})

    assert direct == wrapped
    assert direct[0].candidate_id == "c1"
    assert direct[0].proposals == ("Salud",)


def test_build_ballot_payload_uses_backend_field_names():
    draft = BallotDraft(
        candidate_id=" c1 ",
        full_name=" Rosa Quispe ",
        national_id="45871236",
        phone="987654321",
        department="Lima",
        province="Lima",
        district="Miraflores",
        address="Av. Larco 123",
    )

    payload = build_ballot_payload(draft)

    assert payload["candidate_id"] == "c1"
    assert payload["full_name"] == "Rosa Quispe"
    assert payload["dni"] == "45871236"
    assert "national_id" not in payload
