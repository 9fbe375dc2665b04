from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from tqdm import tqdm

from volunteer_hours.data_processing.aggregate import rank_identities, recent_window, summarize_identity
from volunteer_hours.data_processing.durations import resolve_durations
from volunteer_hours.data_processing.identities import resolve_identities
from volunteer_hours.data_processing.markers import extract_markers
from volunteer_hours.data_processing.quality import filter_rule, filter_sessions
from volunteer_hours.data_processing.rows import normalize_rows
from volunteer_hours.data_processing.schemas import (
    INCOMPLETE,
    ORPHAN,
    AnalysisResult,
    DataQuality,
    Event,
    IdentitySummary,
    RawRow,
)
from volunteer_hours.data_processing.sessions import build_sessions
from volunteer_hours.data_processing.validation import validate_sessions
from volunteer_hours.utils.config import AnalysisSettings
from volunteer_hours.utils.timer import timed

log = logging.getLogger(__name__)


def _data_quality(
    summaries: Sequence[IdentitySummary],
    *,
    total_entries: int,
    skipped_rows: int,
    n_active: int,
    threshold: float,
) -> DataQuality:
    diagnostic = [s for summary in summaries for s in summary.diagnostic_sessions]
    counted = [s for summary in summaries for s in summary.sessions + summary.filtered_sessions]
    valid_hours = sum(summary.total_hours for summary in summaries)
    filtered_hours = sum(s.duration_hours for summary in summaries for s in summary.filtered_sessions)

    return DataQuality(
        total_entries=total_entries,
        valid_sessions=sum(summary.session_count for summary in summaries),
        filtered_sessions=sum(len(summary.filtered_sessions) for summary in summaries),
        filter_rule=filter_rule(threshold),
        quality_standard=threshold,
        total_volunteers=len(summaries),
        active_volunteers=n_active,
        incomplete_sessions=sum(1 for s in diagnostic if s.status == INCOMPLETE),
        orphan_ends=sum(1 for s in diagnostic if s.status == ORPHAN),
        invalid_sessions=sum(1 for s in diagnostic if s.status not in (INCOMPLETE, ORPHAN)),
        documented_sessions=sum(1 for s in counted if s.notes.strip()),
        skipped_rows=skipped_rows,
        original_hours=valid_hours + filtered_hours,
        valid_hours=valid_hours,
        filtered_hours=filtered_hours,
    )


def analyze(
    rows: Sequence[RawRow],
    settings: AnalysisSettings,
    timings: Optional[Dict[str, float]] = None,
) -> AnalysisResult:
    """
    Run the whole reconciliation pipeline over one batch of rows. The result depends
    only on `rows` and `settings`; timings (if given) are filled as a side channel.
    """
    with timed("normalize", timings):
        batch = normalize_rows(rows, settings)

    with timed("identities", timings):
        resolution = resolve_identities(batch.names, settings.aliases)

    with timed("markers", timings):
        kept = [e for e in batch.events if e.identity_key in resolution.identities]
        markers = extract_markers(kept, settings)

    events_by_key: Dict[str, List[Event]] = {}
    for e in markers.events:
        events_by_key.setdefault(e.identity_key, []).append(e)

    window = recent_window((e.timestamp for e in batch.events), settings.recent_window_days)

    summaries: List[IdentitySummary] = []
    for key, identity in tqdm(
        resolution.identities.items(),
        desc="Reconstructing sessions",
        disable=not settings.progress,
    ):
        with timed("sessions", timings):
            pairings = build_sessions(events_by_key.get(key, []))
        with timed("durations", timings):
            sessions = resolve_durations(pairings, identity)
        with timed("validation", timings):
            sessions = validate_sessions(sessions)
        with timed("quality_filter", timings):
            sessions = filter_sessions(sessions, settings.threshold)
        with timed("aggregate", timings):
            summaries.append(summarize_identity(identity, sessions, window))

    with timed("ranking", timings):
        ranking = rank_identities(summaries)

    dq = _data_quality(
        summaries,
        total_entries=batch.total_entries,
        skipped_rows=batch.skipped_rows,
        n_active=len(ranking),
        threshold=settings.threshold,
    )
    log.info(
        "Analysis complete: volunteers=%d active=%d valid_sessions=%d filtered=%d (%s)",
        dq.total_volunteers,
        dq.active_volunteers,
        dq.valid_sessions,
        dq.filtered_sessions,
        dq.filter_rule,
    )

    return AnalysisResult(
        per_identity={s.canonical_name: s for s in summaries},
        ranking=ranking,
        recent_window=window,
        data_quality=dq,
        diagnostics=batch.diagnostics + resolution.diagnostics + markers.diagnostics,
    )
