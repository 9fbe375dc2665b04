from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from volunteer_hours.data_processing.schemas import (
    IMPLICIT_TIMEZONE,
    IN,
    OUT,
    TIME_PARSE_FALLBACK,
    Diagnostic,
    Event,
)
from volunteer_hours.data_processing.timestamps import at_local_time, local_date
from volunteer_hours.utils.config import AnalysisSettings

log = logging.getLogger(__name__)

_I = re.IGNORECASE

_SYSTEM_RE = re.compile(
    r"\bauto(?:matic(?:ally)?)?[\s-]*(?:clock(?:ed)?[\s-]*out|log(?:ged)?[\s-]*out|sign(?:ed)?[\s-]*out|time[\s-]*out|timeout)"
    r"|\bsystem[\s-]*(?:clock(?:ed)?[\s-]*out|time[\s-]*out|timeout|logout|generated|marker)"
    r"|\bsession\s+(?:timed\s+out|expired)"
    r"|\b(?:clocked|logged|signed)\s+out\s+by\s+(?:the\s+)?system",
    _I,
)


@dataclass(frozen=True)
class PatternClass:
    name: str
    kind: str
    weight: int
    pattern: "re.Pattern[str]"
    exclude: Optional["re.Pattern[str]"] = None

    def search(self, text: str) -> Optional["re.Match[str]"]:
        if self.exclude is not None and self.exclude.search(text):
            return None
        return self.pattern.search(text)


# Tried in this order; the first class that matches an annotation wins.
PATTERN_CLASSES: Tuple[PatternClass, ...] = (
    PatternClass(
        name="explicit_clock_out",
        kind=OUT,
        weight=100,
        pattern=re.compile(
            r"\b(?:clock(?:ed|ing)?|check(?:ed|ing)?|sign(?:ed|ing)?|punch(?:ed|ing)?|log(?:ged|ging)?)[\s-]*(?:out|off)\b"
            r"|\b(?:left|ended|stopped|finished|done)\s+(?:work\s+)?(?:at\b|around\b|@)",
            _I,
        ),
        exclude=_SYSTEM_RE,
    ),
    PatternClass(
        name="explicit_clock_in",
        kind=IN,
        weight=95,
        pattern=re.compile(
            r"\b(?:clock(?:ed|ing)?|check(?:ed|ing)?|punch(?:ed|ing)?|log(?:ged|ging)?)[\s-]*in\b|\bsign(?:ed|ing)?[\s-]*(?:in|on)\b"
            r"|\b(?:started|arrived|began|start)\s+(?:work\s+)?(?:at\b|around\b|@)",
            _I,
        ),
        exclude=_SYSTEM_RE,
    ),
    PatternClass(
        name="break_start",
        kind=OUT,
        weight=90,
        pattern=re.compile(
            r"\b(?:start(?:ed|ing)?|took|taking|went\s+on|on)\s+(?:a\s+|my\s+|the\s+)?(?:lunch\s+)?break\b"
            r"|\b(?:break|lunch)\s+(?:at\b|from\b|@)",
            _I,
        ),
    ),
    PatternClass(
        name="break_end",
        kind=IN,
        weight=90,
        pattern=re.compile(
            r"\b(?:back|returned)\s+from\s+(?:a\s+|my\s+|the\s+)?(?:lunch\s+)?(?:break|lunch)\b"
            r"|\b(?:ended|end(?:ing)?|after|finished)\s+(?:a\s+|my\s+|the\s+)?(?:lunch\s+)?break\b"
            r"|\bresumed\s+(?:work\s+)?(?:at\b|@)",
            _I,
        ),
    ),
    PatternClass(name="system_timeout", kind=OUT, weight=55, pattern=_SYSTEM_RE),
)

_TIME_RE = re.compile(
    r"(?<![\d:/.])(?P<hour>\d{1,2})(?!\d)(?::(?P<minute>\d{2}))?\s*(?P<ampm>[ap]\.?\s?m\b\.?)?",
    _I,
)
_NAMED_TIME_RE = re.compile(r"\b(?P<word>noon|midnight)\b", _I)
_ZONE_AFTER_RE = re.compile(r"\s*\(?(?P<zone>[A-Za-z]{1,5})\b")
_SLASH_DATE_RE = re.compile(r"(?<![\d/])(?P<month>\d{1,2})/(?P<day>\d{1,2})(?:/(?P<year>\d{2}|\d{4}))?(?![\d/])")
_ISO_DATE_RE = re.compile(r"(?<!\d)(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})(?!\d)")
# "7:54 AM on 6/3", "5pm ET, 6/3"
_GAP_AFTER_TIME_RE = re.compile(r"[\s,]*(?:\(?[A-Z]{2,5}\)?[\s,]*)?(?:[Oo]n\s+)?")
# "6/3 7:54", "2025-06-03 at 07:54"
_GAP_BEFORE_TIME_RE = re.compile(r"[\s,]*(?:at\s+|@\s*)?", _I)
_ON_BEFORE_RE = re.compile(r"\bon\s+\Z", _I)

# An explicit date further than this from the row's own dates is treated as noise
MAX_DATE_DRIFT_DAYS = 31


@dataclass(frozen=True)
class ClockTime:
    hour: int
    minute: int
    zone: Optional[str] = None  # abbreviation as written
    month: Optional[int] = None
    day: Optional[int] = None
    year: Optional[int] = None


@dataclass(frozen=True)
class MarkerMatch:
    pattern_class: PatternClass
    clock: Optional[ClockTime]  # None when the time could not be parsed


class ClockParseError(ValueError):
    pass


def _clock_from_match(m: "re.Match[str]") -> Optional[Tuple[int, int]]:
    """None when the digits are not a time expression; raises when they are an impossible one."""
    minute_s, ampm = m.group("minute"), m.group("ampm")
    if minute_s is None and ampm is None:
        return None
    hour = int(m.group("hour"))
    minute = int(minute_s) if minute_s is not None else 0
    if minute > 59:
        raise ClockParseError(m.group(0))
    if ampm is not None:
        if not 1 <= hour <= 12:
            raise ClockParseError(m.group(0))
        hour = hour % 12 + (12 if ampm.lower().startswith("p") else 0)
    elif hour > 23:
        raise ClockParseError(m.group(0))
    return hour, minute


def _date_belongs_to_time(text: str, m: "re.Match[str]", time_start: int, time_end: int) -> bool:
    """A date counts only when introduced by "on" or written right beside the time."""
    if _ON_BEFORE_RE.search(text, 0, m.start()):
        return True
    if m.start() >= time_end:
        return _GAP_AFTER_TIME_RE.fullmatch(text, time_end, m.start()) is not None
    if m.end() <= time_start:
        return _GAP_BEFORE_TIME_RE.fullmatch(text, m.end(), time_start) is not None
    return False


def _explicit_date(text: str, time_start: int, time_end: int) -> Tuple[Optional[int], Optional[int], Optional[int]]:
    for m in _ISO_DATE_RE.finditer(text):
        if _date_belongs_to_time(text, m, time_start, time_end):
            return int(m.group("year")), int(m.group("month")), int(m.group("day"))
    for m in _SLASH_DATE_RE.finditer(text):
        if _date_belongs_to_time(text, m, time_start, time_end):
            year = m.group("year")
            y = None if year is None else (2000 + int(year) if len(year) == 2 else int(year))
            return y, int(m.group("month")), int(m.group("day"))
    return None, None, None


def parse_clock_time(text: str, pos: int = 0) -> Optional[ClockTime]:
    """
    First time-of-day expression at or after `pos` ("10:30 PM ET", "17:45", "noon"),
    plus an explicit date written beside it or after "on" ("7:54 AM on 6/3",
    "2025-06-03 07:54"). Other numbers in the note ("1/2 hr lunch") are not dates.
    None when no time is written; raises ClockParseError for an impossible one
    ("25:10", "13:00 PM").
    """
    found: Optional[Tuple[int, int]] = None
    start = end = 0
    for m in _TIME_RE.finditer(text, pos):
        found = _clock_from_match(m)
        if found is not None:
            start, end = m.start(), m.end()
            break

    if found is None:
        nm = _NAMED_TIME_RE.search(text, pos)
        if nm is None:
            return None
        found = (12, 0) if nm.group("word").lower() == "noon" else (0, 0)
        start, end = nm.start(), nm.end()

    zm = _ZONE_AFTER_RE.match(text, end)
    year, month, day = _explicit_date(text, start, end)
    return ClockTime(
        hour=found[0],
        minute=found[1],
        zone=zm.group("zone") if zm else None,
        month=month,
        day=day,
        year=year,
    )


def match_marker(text: str, classes: Sequence[PatternClass] = PATTERN_CLASSES) -> Optional[MarkerMatch]:
    """Try the pattern classes in order; the first hit is the annotation's only marker."""
    if not text or not text.strip():
        return None
    for pc in classes:
        m = pc.search(text)
        if m is None:
            continue
        # Prefer a time written after the marker phrase ("left at 5pm")
        try:
            clock = parse_clock_time(text, m.start()) or parse_clock_time(text)
        except ClockParseError:
            clock = None
        return MarkerMatch(pattern_class=pc, clock=clock)
    return None


def _anchor_for(kind: str, row_events: Sequence[Event]) -> Event:
    """The row's automatic event the marker corrects (flagged on fallback)."""
    for e in row_events:
        if e.kind == kind:
            return e
    return row_events[0]


def _reference_for(kind: str, row_events: Sequence[Event]) -> Event:
    """
    The row's event a date-less marker time is dated from: the row's clock-in for a
    clock-out marker, its clock-out for a clock-in marker, else the anchor itself.
    """
    for e in row_events:
        if e.kind != kind:
            return e
    return _anchor_for(kind, row_events)


def _written_date(clock: ClockTime, anchor_day: dt.date) -> Optional[dt.date]:
    """The note's own date, with the year nearest the anchor when none is written."""
    if clock.month is None or clock.day is None:
        return None
    years = [clock.year] if clock.year else [anchor_day.year - 1, anchor_day.year, anchor_day.year + 1]
    candidates = []
    for y in years:
        try:
            candidates.append(dt.date(y, clock.month, clock.day))
        except ValueError:
            continue
    if not candidates:
        raise ValueError(f"no such date: {clock.month}/{clock.day}")
    day = min(candidates, key=lambda d: abs((d - anchor_day).days))
    if abs((day - anchor_day).days) > MAX_DATE_DRIFT_DAYS:
        log.debug("Ignoring written date %s, too far from %s", day, anchor_day)
        return None
    return day


def resolve_marker_time(clock: ClockTime, kind: str, anchor: Event, settings: AnalysisSettings) -> Tuple[pd.Timestamp, bool]:
    """
    Anchor a wall-clock time to the reference event's calendar date (or to the date
    written in the note). A clock-out dated from a start lands on the first such time
    after that start; a clock-in dated from an end lands on the last one before it.
    """
    zone = settings.zone_for(clock.zone)
    explicit = zone is not None
    zone = zone or settings.default_timezone

    anchor_day = local_date(anchor.timestamp, zone)
    day = _written_date(clock, anchor_day)
    if day is not None:
        return at_local_time(day, clock.hour, clock.minute, zone), explicit

    ts = at_local_time(anchor_day, clock.hour, clock.minute, zone)
    if anchor.kind != kind:
        if kind == OUT and ts <= anchor.timestamp:
            ts = at_local_time(anchor_day + dt.timedelta(days=1), clock.hour, clock.minute, zone)
        elif kind == IN and ts >= anchor.timestamp:
            ts = at_local_time(anchor_day - dt.timedelta(days=1), clock.hour, clock.minute, zone)
    return ts, explicit


@dataclass(frozen=True)
class MarkerExtraction:
    events: Tuple[Event, ...]  # automatic events (fallbacks flagged) + overrides
    overrides: int
    diagnostics: Tuple[Diagnostic, ...]


def extract_markers(
    events: Sequence[Event],
    settings: AnalysisSettings,
    classes: Sequence[PatternClass] = PATTERN_CLASSES,
) -> MarkerExtraction:
    """
    One annotation per source row: events sharing a row_index share its note. A
    recognized marker yields at most one override event for that row.
    """
    by_row: Dict[int, List[Event]] = {}
    for e in events:
        by_row.setdefault(e.row_index, []).append(e)

    out: List[Event] = []
    diagnostics: List[Diagnostic] = []
    n_overrides = 0

    for row_index, row_events in by_row.items():
        note = row_events[0].raw_note
        match = match_marker(note, classes)
        if match is None:
            out.extend(row_events)
            continue

        pc = match.pattern_class
        anchor = _anchor_for(pc.kind, row_events)

        override: Optional[Event] = None
        if match.clock is not None:
            try:
                ts, explicit = resolve_marker_time(
                    match.clock, pc.kind, _reference_for(pc.kind, row_events), settings
                )
            except (ValueError, OverflowError) as e:
                log.debug("Marker time on row %d not usable: %s", row_index, e)
            else:
                override = Event(
                    identity_key=anchor.identity_key,
                    timestamp=ts,
                    kind=pc.kind,
                    source_weight=pc.weight,
                    raw_note=note,
                    row_index=row_index,
                    source=pc.name,
                    flags=() if explicit else (IMPLICIT_TIMEZONE,),
                )

        if override is None:
            flagged = replace(anchor, flags=anchor.flags + (TIME_PARSE_FALLBACK,))
            out.extend(flagged if e is anchor else e for e in row_events)
            diagnostics.append(
                Diagnostic(
                    TIME_PARSE_FALLBACK,
                    f"{pc.name} marker without a usable time: {note!r}",
                    row_index,
                    anchor.identity_key,
                )
            )
            log.warning("Row %d: %s marker without a usable time, keeping automatic timestamp", row_index, pc.name)
            continue

        out.extend(row_events)
        out.append(override)
        n_overrides += 1

    log.info("Marker extraction: overrides=%d fallbacks=%d", n_overrides, len(diagnostics))
    return MarkerExtraction(events=tuple(out), overrides=n_overrides, diagnostics=tuple(diagnostics))
