from __future__ import annotations

from dataclasses import replace
from typing import List, Optional, Sequence

from volunteer_hours.data_processing.schemas import (
    CONCERNING_LONG,
    EXTREME_LONG,
    EXTREME_SHORT,
    SUSPICIOUS_SHORT,
    WEEKLY_CONCERN,
    WEEKLY_EXTREME,
    Session,
)

# Hours
EXTREME_SHORT_BELOW = 5 / 60
SUSPICIOUS_SHORT_BELOW = 0.5
CONCERNING_LONG_ABOVE = 8.0
EXTREME_LONG_ABOVE = 20.0
WEEKLY_CONCERN_ABOVE = 40.0
WEEKLY_EXTREME_ABOVE = 60.0


def duration_flag(hours: float) -> Optional[str]:
    if hours < EXTREME_SHORT_BELOW:
        return EXTREME_SHORT
    if hours < SUSPICIOUS_SHORT_BELOW:
        return SUSPICIOUS_SHORT
    if hours > EXTREME_LONG_ABOVE:
        return EXTREME_LONG
    if hours > CONCERNING_LONG_ABOVE:
        return CONCERNING_LONG
    return None


def weekly_flag(hours: float) -> Optional[str]:
    if hours > WEEKLY_EXTREME_ABOVE:
        return WEEKLY_EXTREME
    if hours > WEEKLY_CONCERN_ABOVE:
        return WEEKLY_CONCERN
    return None


def validate_session(session: Session) -> Session:
    """Advisory duration-band flag; never changes whether the session counts."""
    if not session.valid:
        return session
    flag = duration_flag(session.duration_hours)
    if flag is None:
        return session
    return replace(session, flags=session.with_flags(flag))


def validate_sessions(sessions: Sequence[Session]) -> List[Session]:
    return [validate_session(s) for s in sessions]
