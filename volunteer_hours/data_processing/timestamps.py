from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass
from typing import Optional

import pandas as pd

from volunteer_hours.utils.config import AnalysisSettings

# A timestamp field must carry a calendar date; bare numbers/times would be
# resolved against "today" by the parser.
_DATE_RE = re.compile(r"\d{1,4}[-/.]\d{1,2}")
_TRAILING_ZONE_RE = re.compile(r"^(?P<body>.*?\d.*?)\s+\(?(?P<zone>[A-Za-z]{1,5})\)?$")


@dataclass(frozen=True)
class ParsedTimestamp:
    timestamp: pd.Timestamp  # UTC
    explicit_zone: bool


def localize(ts: pd.Timestamp, zone: str) -> pd.Timestamp:
    """Attach `zone` to a naive timestamp and convert to UTC (DST gaps shift forward)."""
    return ts.tz_localize(zone, ambiguous=True, nonexistent="shift_forward").tz_convert("UTC")


def parse_timestamp(text: str, settings: AnalysisSettings) -> Optional[ParsedTimestamp]:
    """
    Parse an ISO-8601 value or a local time with an optional zone abbreviation
    ("6/1/2025 10:30 PM ET"). Returns None when the text is not a timestamp.
    """
    text = (text or "").strip()
    if not text or not _DATE_RE.search(text):
        return None

    zone = None
    m = _TRAILING_ZONE_RE.match(text)
    if m and settings.zone_for(m.group("zone")):
        zone = settings.zone_for(m.group("zone"))
        text = m.group("body")

    try:
        ts = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    ts = pd.Timestamp(ts)

    if ts.tzinfo is not None:
        return ParsedTimestamp(ts.tz_convert("UTC"), explicit_zone=True)
    return ParsedTimestamp(localize(ts, zone or settings.default_timezone), explicit_zone=zone is not None)


def local_date(ts: pd.Timestamp, zone: str) -> dt.date:
    return ts.tz_convert(zone).date()


def at_local_time(day: dt.date, hour: int, minute: int, zone: str) -> pd.Timestamp:
    """Instant (UTC) of `hour:minute` wall-clock time on `day` in `zone`."""
    naive = pd.Timestamp(year=day.year, month=day.month, day=day.day, hour=hour, minute=minute)
    return localize(naive, zone)
