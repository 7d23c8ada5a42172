"""Fusión de snapshots autoritativos con el voto optimista del votante.

English: Merge authoritative snapshots with the voter's optimistic ballot.

Invariants kept by ``merge``:
    - ``sum(counts) == total`` on every returned tally.
    - The displayed total never decreases; a snapshot that would lower it is
      treated as stale and the current tally is returned unchanged.
    - With ``Confirmed(c)`` carrying a baseline, the voter's ``+1`` on ``c`` is
      shown until a snapshot total exceeds the baseline total, and is never
      stacked on top of a snapshot that already reflects it.
"""

from __future__ import annotations

from typing import Dict, Optional

import structlog

from .models import BallotState, Confirmed, MergedTally, TallySnapshot

logger = structlog.get_logger(__name__)


def snapshot_reflects_ballot(snapshot: TallySnapshot, state: Confirmed) -> bool:
    """True once the snapshot total grew by at least one over the baseline."""
    if state.baseline is None:
        return True
    return snapshot.total >= state.baseline.total + 1


def merge(
    current: Optional[MergedTally],
    snapshot: TallySnapshot,
    state: BallotState,
) -> MergedTally:
    """Combina el snapshot con el estado del voto.

    English: Combine ``snapshot`` with ``state`` into a new ``MergedTally``.
    Pure: neither input is mutated. ``current`` is the tally on display, or
    ``None`` before the first merge.
    """
    counts: Dict[str, int] = dict(snapshot.counts)
    total = snapshot.total
    local_increment: Optional[str] = None
    reflected = current.own_ballot_reflected if current is not None else False

    if isinstance(state, Confirmed) and state.candidate_id is not None and state.baseline is not None:
        if not reflected and snapshot_reflects_ballot(snapshot, state):
            reflected = True
            logger.info(
                "local_increment_retired",
                candidate_id=state.candidate_id,
                baseline_total=state.baseline.total,
                snapshot_total=snapshot.total,
            )
        if not reflected:
            counts[state.candidate_id] = counts.get(state.candidate_id, 0) + 1
            total += 1
            local_increment = state.candidate_id

    if current is not None and total < current.total:
        logger.warning(
            "snapshot_discarded_stale",
            displayed_total=current.total,
            snapshot_total=snapshot.total,
            merged_total=total,
            snapshot_as_of=snapshot.as_of.isoformat(),
        )
        return current

    return MergedTally(
        counts=counts,
        total=total,
        as_of=snapshot.as_of,
        local_increment=local_increment,
        own_ballot_reflected=reflected,
    )


def recompute(
    current: Optional[MergedTally],
    last_snapshot: Optional[TallySnapshot],
    state: BallotState,
) -> MergedTally:
    """Re-merge after a ballot transition, with no new snapshot.

    Before any snapshot has arrived the authoritative side is an empty tally.
    """
    source = last_snapshot if last_snapshot is not None else TallySnapshot(counts={}, total=0)
    return merge(current, source, state)
