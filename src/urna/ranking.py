"""Ranking y porcentajes del conteo fusionado.

English: Ranking and percentage breakdown of a merged tally.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Mapping, Optional

from .models import Candidate, MergedTally, RankedCandidate

_ONE_DECIMAL = Decimal("0.1")


def percentage(count: int, total: int) -> float:
    """``count / total * 100`` rounded half-up to one decimal; 0.0 when total is 0."""
    if total <= 0:
        return 0.0
    value = (Decimal(count) * 100 / Decimal(total)).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)
    return float(value)


def rank(
    tally: MergedTally,
    catalog: Optional[Mapping[str, Candidate]] = None,
) -> List[RankedCandidate]:
    """Ordena candidatos por votos con desempate por id.

    English: Order candidates by count descending, candidate id ascending on
    ties. Holds no state: every call recomputes from ``tally``. When a
    catalog is given it supplies names and parties, and catalog candidates
    missing from the tally are listed with zero votes.
    """
    counts: Dict[str, int] = dict(tally.counts)
    if catalog:
        for candidate_id in catalog:
            counts.setdefault(candidate_id, 0)

    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    rows: List[RankedCandidate] = []
    for position, (candidate_id, count) in enumerate(ordered, start=1):
        candidate = catalog.get(candidate_id) if catalog else None
        rows.append(
            RankedCandidate(
                candidate_id=candidate_id,
                name=candidate.name if candidate else candidate_id,
                party=candidate.party if candidate else "",
                count=count,
                percentage=percentage(count, tally.total),
                rank=position,
            )
        )
    return rows

