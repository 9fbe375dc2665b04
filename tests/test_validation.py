import pytest

from volunteer_hours.data_processing.aggregate import summarize_identity, recent_window
from volunteer_hours.data_processing.durations import resolve_durations
from volunteer_hours.data_processing.quality import filter_sessions
from volunteer_hours.data_processing.schemas import (
    CONCERNING_LONG,
    EXTREME_LONG,
    EXTREME_SHORT,
    IN,
    OUT,
    SUSPICIOUS_SHORT,
    WEEKLY_CONCERN,
    WEEKLY_EXTREME,
    CanonicalIdentity,
)
from volunteer_hours.data_processing.sessions import build_sessions
from volunteer_hours.data_processing.validation import duration_flag, validate_sessions, weekly_flag

ANN = CanonicalIdentity(canonical_name="Ann Lee", identity_key="u1", alias_names_seen=("Ann Lee",))


class TestDurationBands:
    @pytest.mark.parametrize(
        "hours, expected",
        [
            (0.05, EXTREME_SHORT),
            (0.25, SUSPICIOUS_SHORT),
            (0.5, None),
            (8.0, None),
            (8.01, CONCERNING_LONG),
            (20.0, CONCERNING_LONG),
            (20.5, EXTREME_LONG),
        ],
    )
    def test_bands(self, hours, expected):
        assert duration_flag(hours) == expected

    @pytest.mark.parametrize("hours, expected", [(40.0, None), (41.0, WEEKLY_CONCERN), (60.5, WEEKLY_EXTREME)])
    def test_weekly_bands(self, hours, expected):
        assert weekly_flag(hours) == expected


class TestValidateSessions:
    def test_flags_are_advisory(self, event):
        pairings = build_sessions([event("2025-06-02T09:00:00Z", IN), event("2025-06-02T09:02:00Z", OUT)])
        [s] = validate_sessions(resolve_durations(pairings, ANN))
        assert s.valid
        assert s.flags == (EXTREME_SHORT,)

    def test_invalid_sessions_untouched(self, event):
        pairings = build_sessions([event("2025-06-02T09:00:00Z", IN)])
        [before] = resolve_durations(pairings, ANN)
        [after] = validate_sessions([before])
        assert after == before

    def test_weekly_flag_on_identity(self, event):
        events = []
        for i, day in enumerate(["02", "03", "04", "05", "06"]):
            events.append(event(f"2025-06-{day}T08:00:00Z", IN, row_index=i))
            events.append(event(f"2025-06-{day}T17:00:00Z", OUT, row_index=i, note="warehouse"))
        sessions = filter_sessions(validate_sessions(resolve_durations(build_sessions(events), ANN)), 8)
        summary = summarize_identity(ANN, sessions, recent_window(e.timestamp for e in events))
        assert summary.recent_window_hours == pytest.approx(45.0)
        assert summary.flags == (WEEKLY_CONCERN,)
        assert all(CONCERNING_LONG in s.flags for s in summary.sessions)
