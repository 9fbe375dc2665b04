from __future__ import annotations

from dataclasses import replace
from typing import List, Optional, Sequence

from volunteer_hours.data_processing.schemas import FILTERED_BY_THRESHOLD, Session


def _fmt_hours(threshold: float) -> str:
    return f"{threshold:g}"


def filter_reason(duration: float, notes: str, threshold: float) -> Optional[str]:
    """Reason string when the session must be discarded, else None. The rule is strict '>'."""
    if duration > threshold and not (notes or "").strip():
        return f"Session over {_fmt_hours(threshold)}h without notes ({duration:.2f}h)"
    return None


def filter_rule(threshold: float) -> str:
    unit = "hour" if threshold == 1 else "hours"
    return f"Sessions over {_fmt_hours(threshold)} {unit} without explanatory notes are discarded"


def apply_quality_filter(session: Session, threshold: float) -> Session:
    if not session.valid:
        return replace(session, included=False)
    reason = filter_reason(session.duration_hours, session.notes, threshold)
    if reason is None:
        return replace(session, included=True)
    return replace(
        session,
        included=False,
        filter_reason=reason,
        flags=session.with_flags(FILTERED_BY_THRESHOLD),
    )


def filter_sessions(sessions: Sequence[Session], threshold: float) -> List[Session]:
    return [apply_quality_filter(s, threshold) for s in sessions]
