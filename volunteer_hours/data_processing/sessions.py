from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from volunteer_hours.data_processing.schemas import (
    COMPLETE,
    IN,
    INCOMPLETE,
    MISSING_END,
    ORPHAN,
    ORPHAN_END,
    OUT,
    Event,
)

log = logging.getLogger(__name__)

_KIND_ORDER = {IN: 0, OUT: 1}


@dataclass(frozen=True)
class Boundary:
    """
    One start or end point of a session and every candidate instant for it: the
    automatic clock event(s) plus marker overrides written on the same row.
    Duplicate rows (same kind, same automatic instant) collapse into one boundary.
    """

    identity_key: str
    kind: str
    candidates: Tuple[Event, ...]

    @property
    def position(self) -> pd.Timestamp:
        autos = [e.timestamp for e in self.candidates if e.is_automatic]
        return min(autos) if autos else min(e.timestamp for e in self.candidates)

    @property
    def first_row(self) -> int:
        return min(e.row_index for e in self.candidates)

    @property
    def notes(self) -> Tuple[str, ...]:
        out: List[str] = []
        for e in self.candidates:
            note = (e.raw_note or "").strip()
            if note and note not in out:
                out.append(note)
        return tuple(out)

    def sort_key(self) -> Tuple[pd.Timestamp, int, int]:
        return (self.position, self.first_row, _KIND_ORDER[self.kind])


@dataclass(frozen=True)
class Pairing:
    """Output of the pairing state machine; `end` is None for MISSING_END, `start` for ORPHAN_END."""

    identity_key: str
    start: Optional[Boundary]
    end: Optional[Boundary]
    status: str
    flags: Tuple[str, ...] = ()


def build_boundaries(events: Sequence[Event]) -> List[Boundary]:
    """Group one identity's events into boundaries, ordered chronologically."""
    by_slot: Dict[Tuple[int, str], List[Event]] = {}
    for e in events:
        by_slot.setdefault((e.row_index, e.kind), []).append(e)

    merged: Dict[Tuple[str, pd.Timestamp], List[Event]] = {}
    loose: List[List[Event]] = []
    for (_, kind), slot in by_slot.items():
        autos = [e for e in slot if e.is_automatic]
        if autos:
            merged.setdefault((kind, autos[0].timestamp), []).extend(slot)
        else:
            loose.append(slot)

    boundaries = [Boundary(evs[0].identity_key, evs[0].kind, tuple(evs)) for evs in list(merged.values()) + loose]
    return sorted(boundaries, key=Boundary.sort_key)


def pair_boundaries(boundaries: Sequence[Boundary]) -> List[Pairing]:
    """
    Greedy left-to-right pairing. State is the pending start (or None):
      in  + none    -> pending start
      in  + pending -> previous start is incomplete (MISSING_END), new one pending
      out + pending -> complete session
      out + none    -> orphan end (ORPHAN_END)
    A start still pending at the end of the stream is incomplete.
    """
    out: List[Pairing] = []
    awaiting_end: Optional[Boundary] = None

    for b in boundaries:
        if b.kind == IN:
            if awaiting_end is not None:
                out.append(Pairing(b.identity_key, awaiting_end, None, INCOMPLETE, (MISSING_END,)))
            awaiting_end = b
        elif awaiting_end is not None:
            out.append(Pairing(b.identity_key, awaiting_end, b, COMPLETE))
            awaiting_end = None
        else:
            out.append(Pairing(b.identity_key, None, b, ORPHAN, (ORPHAN_END,)))

    if awaiting_end is not None:
        out.append(Pairing(awaiting_end.identity_key, awaiting_end, None, INCOMPLETE, (MISSING_END,)))
    return out


def build_sessions(events: Sequence[Event]) -> List[Pairing]:
    """Pair one identity's events. Identities never share state, so callers may run these independently."""
    pairings = pair_boundaries(build_boundaries(events))
    n_complete = sum(1 for p in pairings if p.status == COMPLETE)
    log.debug(
        "Paired %d event(s) into %d session(s), %d unmatched",
        len(events),
        n_complete,
        len(pairings) - n_complete,
    )
    return pairings
