"""
Shared fixtures: rows are built directly as RawRow records with UTC ISO timestamps
unless a test is about parsing.
"""

import pandas as pd
import pytest

from volunteer_hours.data_processing.schemas import AUTOMATIC_WEIGHT, IN, OUT, Event, RawRow
from volunteer_hours.utils.config import make_settings


def make_row(user_id, name="Ann Lee", time_in="", time_out="", notes="", line_no=0):
    first, _, last = name.partition(" ")
    return RawRow(
        first_name=first,
        last_name=last,
        user_id=user_id,
        time_in=time_in,
        time_out=time_out,
        notes=notes,
        line_no=line_no,
    )


def utc(ts):
    ts = pd.Timestamp(ts)
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


def make_event(ts, kind=IN, weight=AUTOMATIC_WEIGHT, row_index=0, source="automatic", note="", key="u1"):
    return Event(
        identity_key=key,
        timestamp=utc(ts),
        kind=kind,
        source_weight=weight,
        raw_note=note,
        row_index=row_index,
        source=source,
    )


@pytest.fixture
def settings():
    return make_settings(threshold=8, default_timezone="UTC")


@pytest.fixture
def row():
    return make_row


@pytest.fixture
def event():
    return make_event


@pytest.fixture
def two_volunteer_rows():
    """Ann: 6h documented + 9h undocumented; Bob: 3h documented."""
    return [
        make_row("u1", "Ann Lee", "2025-06-02T09:00:00Z", "2025-06-02T15:00:00Z", "Sorted donations"),
        make_row("u1", "Ann Lee", "2025-06-03T08:00:00Z", "2025-06-03T17:00:00Z", ""),
        make_row("u2", "Bob Ray", "2025-06-04T10:00:00Z", "2025-06-04T13:00:00Z", "Front desk"),
    ]


__all__ = ["make_row", "make_event", "utc", "IN", "OUT"]
