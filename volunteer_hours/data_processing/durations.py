from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from volunteer_hours.data_processing.schemas import (
    COMPLETE,
    END_BEFORE_START,
    ZERO_DURATION,
    CanonicalIdentity,
    Event,
    Session,
)
from volunteer_hours.data_processing.sessions import Boundary, Pairing

log = logging.getLogger(__name__)


def pick_candidate(candidates: Sequence[Event]) -> Event:
    """Highest source_weight wins; equal weights go to the latest instant."""
    return max(candidates, key=lambda e: (e.source_weight, e.timestamp))


def elapsed_hours(start: pd.Timestamp, end: pd.Timestamp) -> float:
    return (end - start).total_seconds() / 3600.0


def _unique(items: Iterable[str]) -> Tuple[str, ...]:
    out: List[str] = []
    for x in items:
        if x not in out:
            out.append(x)
    return tuple(out)


def _resolve_boundary(b: Optional[Boundary]) -> Tuple[Optional[Event], Optional[pd.Timestamp]]:
    """Winning event, plus the automatic instant it replaced (if a marker won)."""
    if b is None:
        return None, None
    winner = pick_candidate(b.candidates)
    replaced = None
    if not winner.is_automatic:
        autos = [e.timestamp for e in b.candidates if e.is_automatic]
        replaced = autos[0] if autos else None
    return winner, replaced


def resolve_session(pairing: Pairing, identity: CanonicalIdentity) -> Session:
    start, corrected_start = _resolve_boundary(pairing.start)
    end, corrected_end = _resolve_boundary(pairing.end)

    notes = _unique(
        n for b in (pairing.start, pairing.end) if b is not None for n in b.notes
    )
    flags = list(pairing.flags)
    for e in (start, end):
        if e is not None:
            flags.extend(e.flags)

    duration = 0.0
    valid = False
    if pairing.status == COMPLETE and start is not None and end is not None:
        hours = elapsed_hours(start.timestamp, end.timestamp)
        if hours < 0:
            flags.append(END_BEFORE_START)
            log.debug("%s: end %s before start %s", identity.canonical_name, end.timestamp, start.timestamp)
        elif hours == 0:
            flags.append(ZERO_DURATION)
        else:
            duration = hours
            valid = True

    return Session(
        identity=identity.canonical_name,
        identity_key=identity.identity_key,
        start_event=start,
        end_event=end,
        status=pairing.status,
        duration_hours=duration,
        notes=" | ".join(notes),
        flags=_unique(flags),
        valid=valid,
        included=False,
        corrected_start=corrected_start,
        corrected_end=corrected_end,
    )


def resolve_durations(pairings: Sequence[Pairing], identity: CanonicalIdentity) -> List[Session]:
    return [resolve_session(p, identity) for p in pairings]
