from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from volunteer_hours.data_processing.schemas import (
    CanonicalIdentity,
    IdentitySummary,
    RankingEntry,
    RecentWindow,
    Session,
)
from volunteer_hours.data_processing.validation import weekly_flag

log = logging.getLogger(__name__)


def recent_window(timestamps: Iterable[pd.Timestamp], days: int = 7) -> Optional[RecentWindow]:
    """Trailing `days` ending at the latest instant in the batch; the data defines 'now'."""
    latest = max(timestamps, default=None)
    if latest is None:
        return None
    return RecentWindow(start=latest - pd.Timedelta(days=days), end=latest)


def in_window(session: Session, window: Optional[RecentWindow]) -> bool:
    start = session.start_time
    return window is not None and start is not None and window.start <= start <= window.end


def summarize_identity(
    identity: CanonicalIdentity,
    sessions: Sequence[Session],
    window: Optional[RecentWindow],
) -> IdentitySummary:
    included = tuple(s for s in sessions if s.included)
    filtered = tuple(s for s in sessions if s.valid and not s.included)
    diagnostic = tuple(s for s in sessions if not s.valid)

    total = sum(s.duration_hours for s in included)
    recent = sum(s.duration_hours for s in included if in_window(s, window))
    flag = weekly_flag(recent)

    return IdentitySummary(
        canonical_name=identity.canonical_name,
        identity_key=identity.identity_key,
        aliases=identity.alias_names_seen,
        sessions=included,
        filtered_sessions=filtered,
        diagnostic_sessions=diagnostic,
        total_hours=total,
        recent_window_hours=recent,
        flags=(flag,) if flag else (),
    )


def rank_identities(summaries: Sequence[IdentitySummary]) -> Tuple[RankingEntry, ...]:
    """Active identities by recent hours, descending; ties keep encounter order."""
    active = [s for s in summaries if s.recent_window_hours > 0]
    ordered: List[IdentitySummary] = sorted(active, key=lambda s: -s.recent_window_hours)
    return tuple(
        RankingEntry(rank=i + 1, name=s.canonical_name, hours=s.recent_window_hours)
        for i, s in enumerate(ordered)
    )
