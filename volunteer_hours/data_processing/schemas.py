from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

IN = "in"
OUT = "out"

AUTOMATIC = "automatic"
AUTOMATIC_WEIGHT = 10

# Session status
COMPLETE = "complete"
INCOMPLETE = "incomplete"
ORPHAN = "orphan"

# Session / identity flags
MISSING_END = "MISSING_END"
ORPHAN_END = "ORPHAN_END"
END_BEFORE_START = "END_BEFORE_START"
ZERO_DURATION = "ZERO_DURATION"
TIME_PARSE_FALLBACK = "TIME_PARSE_FALLBACK"
IMPLICIT_TIMEZONE = "IMPLICIT_TIMEZONE"
EXTREME_SHORT = "EXTREME_SHORT"
SUSPICIOUS_SHORT = "SUSPICIOUS_SHORT"
CONCERNING_LONG = "CONCERNING_LONG"
EXTREME_LONG = "EXTREME_LONG"
WEEKLY_CONCERN = "WEEKLY_CONCERN"
WEEKLY_EXTREME = "WEEKLY_EXTREME"
FILTERED_BY_THRESHOLD = "FILTERED_BY_THRESHOLD"

# Diagnostic codes
MALFORMED_ROW = "MALFORMED_ROW"
SYSTEM_ROW = "SYSTEM_ROW"
MISSING_IDENTIFIER = "MISSING_IDENTIFIER"
UNPARSEABLE_TIMESTAMP = "UNPARSEABLE_TIMESTAMP"
UNUSABLE_NAME = "UNUSABLE_NAME"
NAME_COLLISION = "NAME_COLLISION"


def _iso(ts: Optional[pd.Timestamp]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


@dataclass(frozen=True)
class RawRow:
    """One input line as loaded from TSV / DataFrame. Fields are stripped strings."""

    first_name: str = ""
    last_name: str = ""
    user_id: str = ""
    time_in: str = ""
    time_out: str = ""
    notes: str = ""
    line_no: int = 0
    n_fields: Optional[int] = None  # cells on the source line, when read from text

    @property
    def display_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name or self.last_name


@dataclass(frozen=True)
class Event:
    identity_key: str
    timestamp: pd.Timestamp  # tz-aware UTC
    kind: str  # IN | OUT
    source_weight: int
    raw_note: str = ""
    row_index: int = -1
    source: str = AUTOMATIC
    flags: Tuple[str, ...] = ()

    @property
    def is_automatic(self) -> bool:
        return self.source == AUTOMATIC

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": _iso(self.timestamp),
            "kind": self.kind,
            "source": self.source,
            "source_weight": self.source_weight,
            "flags": list(self.flags),
        }


@dataclass(frozen=True)
class Diagnostic:
    code: str
    message: str
    row_index: Optional[int] = None
    identity_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "row_index": self.row_index,
            "identity_key": self.identity_key,
        }


@dataclass(frozen=True)
class CanonicalIdentity:
    canonical_name: str
    identity_key: str
    alias_names_seen: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Session:
    identity: str
    identity_key: str
    start_event: Optional[Event]
    end_event: Optional[Event]
    status: str
    duration_hours: float = 0.0
    notes: str = ""
    flags: Tuple[str, ...] = ()
    valid: bool = False
    included: bool = False
    filter_reason: Optional[str] = None
    # Automatic timestamps the winning events replaced, if any
    corrected_start: Optional[pd.Timestamp] = None
    corrected_end: Optional[pd.Timestamp] = None

    @property
    def start_time(self) -> Optional[pd.Timestamp]:
        return self.start_event.timestamp if self.start_event is not None else None

    @property
    def end_time(self) -> Optional[pd.Timestamp]:
        return self.end_event.timestamp if self.end_event is not None else None

    @property
    def date(self) -> Optional[str]:
        anchor = self.start_time if self.start_time is not None else self.end_time
        return anchor.date().isoformat() if anchor is not None else None

    def with_flags(self, *flags: str) -> Tuple[str, ...]:
        out = list(self.flags)
        for f in flags:
            if f not in out:
                out.append(f)
        return tuple(out)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "status": self.status,
            "duration": self.duration_hours,
            "notes": self.notes,
            "flags": list(self.flags),
            "included": self.included,
            "reason": self.filter_reason,
            "start_source": self.start_event.source if self.start_event is not None else None,
            "end_source": self.end_event.source if self.end_event is not None else None,
        }


@dataclass(frozen=True)
class IdentitySummary:
    canonical_name: str
    identity_key: str
    aliases: Tuple[str, ...]
    sessions: Tuple[Session, ...]
    filtered_sessions: Tuple[Session, ...]
    diagnostic_sessions: Tuple[Session, ...]
    total_hours: float
    recent_window_hours: float
    flags: Tuple[str, ...] = ()

    @property
    def session_count(self) -> int:
        return len(self.sessions)

    @property
    def time_corrections(self) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for s in self.sessions + self.filtered_sessions:
            for boundary, event, automatic in (
                ("start", s.start_event, s.corrected_start),
                ("end", s.end_event, s.corrected_end),
            ):
                if event is None or event.is_automatic:
                    continue
                out.append(
                    {
                        "date": s.date,
                        "boundary": boundary,
                        "marker": event.source,
                        "automatic": _iso(automatic),
                        "corrected": _iso(event.timestamp),
                    }
                )
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity_key": self.identity_key,
            "aliases": list(self.aliases),
            "sessions": [s.to_dict() for s in self.sessions],
            "total_hours": self.total_hours,
            "recent_window_hours": self.recent_window_hours,
            "session_count": self.session_count,
            "filtered_sessions": [s.to_dict() for s in self.filtered_sessions],
            "diagnostic_sessions": [s.to_dict() for s in self.diagnostic_sessions],
            "time_corrections": self.time_corrections,
            "flags": list(self.flags),
        }


@dataclass(frozen=True)
class RankingEntry:
    rank: int
    name: str
    hours: float


@dataclass(frozen=True)
class RecentWindow:
    start: pd.Timestamp
    end: pd.Timestamp

    @property
    def period(self) -> str:
        return f"{self.start.date().isoformat()} to {self.end.date().isoformat()}"


@dataclass(frozen=True)
class DataQuality:
    total_entries: int
    valid_sessions: int
    filtered_sessions: int
    filter_rule: str
    quality_standard: float
    total_volunteers: int = 0
    active_volunteers: int = 0
    incomplete_sessions: int = 0
    orphan_ends: int = 0
    invalid_sessions: int = 0
    documented_sessions: int = 0
    skipped_rows: int = 0
    original_hours: float = 0.0
    valid_hours: float = 0.0
    filtered_hours: float = 0.0

    @property
    def documentation_rate(self) -> float:
        total = self.valid_sessions + self.filtered_sessions
        return self.documented_sessions / total if total else 0.0

    @property
    def reduction_pct(self) -> float:
        return 100.0 * self.filtered_hours / self.original_hours if self.original_hours else 0.0


@dataclass(frozen=True)
class AnalysisResult:
    per_identity: Dict[str, IdentitySummary]
    ranking: Tuple[RankingEntry, ...]
    recent_window: Optional[RecentWindow]
    data_quality: DataQuality
    diagnostics: Tuple[Diagnostic, ...] = field(default_factory=tuple)

    @property
    def discarded_sessions(self) -> List[Dict[str, Any]]:
        out = []
        for name, summary in self.per_identity.items():
            for s in summary.filtered_sessions:
                out.append({"volunteer": name, **s.to_dict()})
        return out

    def to_dict(self) -> Dict[str, Any]:
        dq = self.data_quality
        window = None
        if self.recent_window is not None:
            window = {
                "start": _iso(self.recent_window.start),
                "end": _iso(self.recent_window.end),
                "period": self.recent_window.period,
            }
        return {
            "per_identity": {name: s.to_dict() for name, s in self.per_identity.items()},
            "ranking": [{"rank": r.rank, "name": r.name, "hours": r.hours} for r in self.ranking],
            "recent_window": window,
            "data_quality": {
                "total_entries": dq.total_entries,
                "valid_sessions": dq.valid_sessions,
                "filtered_sessions": dq.filtered_sessions,
                "filter_rule": dq.filter_rule,
                "quality_standard": dq.quality_standard,
                "total_volunteers": dq.total_volunteers,
                "active_volunteers": dq.active_volunteers,
                "incomplete_sessions": dq.incomplete_sessions,
                "orphan_ends": dq.orphan_ends,
                "invalid_sessions": dq.invalid_sessions,
                "documented_sessions": dq.documented_sessions,
                "documentation_rate": dq.documentation_rate,
                "skipped_rows": dq.skipped_rows,
                "original_hours": dq.original_hours,
                "valid_hours": dq.valid_hours,
                "filtered_hours": dq.filtered_hours,
                "reduction_pct": dq.reduction_pct,
            },
            "discarded_sessions": self.discarded_sessions,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }
