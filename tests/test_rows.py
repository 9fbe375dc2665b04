import pandas as pd
import pytest

from volunteer_hours.data_processing.rows import (
    load_rows,
    normalize_rows,
    rows_from_frame,
    rows_from_text,
)
from volunteer_hours.data_processing.schemas import (
    AUTOMATIC_WEIGHT,
    IMPLICIT_TIMEZONE,
    IN,
    MALFORMED_ROW,
    MISSING_IDENTIFIER,
    OUT,
    SYSTEM_ROW,
    UNPARSEABLE_TIMESTAMP,
)
from volunteer_hours.data_processing.timestamps import parse_timestamp


class TestParseTimestamp:
    def test_local_time_with_zone_abbreviation(self, settings):
        parsed = parse_timestamp("6/1/2025 10:30 PM ET", settings)
        assert parsed.explicit_zone
        assert parsed.timestamp == pd.Timestamp("2025-06-02T02:30:00Z")

    def test_iso_with_offset(self, settings):
        parsed = parse_timestamp("2025-06-01T10:00:00-04:00", settings)
        assert parsed.explicit_zone
        assert parsed.timestamp == pd.Timestamp("2025-06-01T14:00:00Z")

    def test_naive_value_uses_default_zone(self):
        from volunteer_hours.utils.config import make_settings

        s = make_settings(default_timezone="America/Los_Angeles")
        parsed = parse_timestamp("2025-01-15 08:00", s)
        assert not parsed.explicit_zone
        assert parsed.timestamp == pd.Timestamp("2025-01-15T16:00:00Z")

    @pytest.mark.parametrize("text", ["", "   ", "not a date", "12", "10:30 PM", "2025-13-45 99:99"])
    def test_unparseable(self, settings, text):
        assert parse_timestamp(text, settings) is None


class TestRowsFromText:
    def test_header_maps_columns_by_name(self):
        text = (
            "firstName\tlastName\tuserId\tfield3\ttimeIn\ttimeOut\tnotes\n"
            "Ann\tLee\tu1\tx\t2025-06-02T09:00:00Z\t2025-06-02T12:00:00Z\tFiling\n"
        )
        [r] = rows_from_text(text)
        assert (r.first_name, r.last_name, r.user_id) == ("Ann", "Lee", "u1")
        assert r.time_in == "2025-06-02T09:00:00Z"
        assert r.time_out == "2025-06-02T12:00:00Z"
        assert r.notes == "Filing"

    def test_headerless_rows_are_positional_and_ragged(self):
        text = "Ann\tLee\tu1\t2025-06-02T09:00:00Z\n\nBob\tRay\tu2\t\t2025-06-02T12:00:00Z\tleft early\n"
        rows = rows_from_text(text)
        assert len(rows) == 2
        assert rows[0].time_in == "2025-06-02T09:00:00Z"
        assert rows[0].time_out == "" and rows[0].notes == ""
        assert rows[1].time_out == "2025-06-02T12:00:00Z"
        assert rows[1].notes == "left early"
        assert rows[1].line_no == 3

    def test_short_line_is_marked(self):
        [r] = rows_from_text("Ann\tLee\n")
        assert r.n_fields == 2

    def test_load_rows_from_directory(self, tmp_path):
        (tmp_path / "a.tsv").write_text("Ann\tLee\tu1\t2025-06-02T09:00:00Z\n", encoding="utf-8")
        (tmp_path / "b.tsv").write_text("Bob\tRay\tu2\t2025-06-03T09:00:00Z\n", encoding="utf-8")
        rows = load_rows(tmp_path)
        assert [r.user_id for r in rows] == ["u1", "u2"]

    def test_load_rows_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_rows(tmp_path / "missing.tsv")


class TestRowsFromFrame:
    def test_candidate_columns(self):
        df = pd.DataFrame(
            {
                "First Name": ["Ann"],
                "Last Name": ["Lee"],
                "user_id": [7],
                "clock_in": ["2025-06-02T09:00:00Z"],
                "clock_out": [None],
            }
        )
        [r] = rows_from_frame(df)
        assert r.user_id == "7"
        assert r.display_name == "Ann Lee"
        assert r.time_out == ""

    def test_requires_identifier_column(self):
        with pytest.raises(KeyError):
            rows_from_frame(pd.DataFrame({"first": ["Ann"]}))


class TestNormalizeRows:
    def test_row_contributes_two_automatic_events(self, settings, row):
        batch = normalize_rows([row("u1", "Ann Lee", "2025-06-02T09:00:00Z", "2025-06-02T12:00:00Z", "x")], settings)
        assert [e.kind for e in batch.events] == [IN, OUT]
        assert all(e.source_weight == AUTOMATIC_WEIGHT for e in batch.events)
        assert all(e.raw_note == "x" for e in batch.events)
        assert batch.total_entries == 1
        assert batch.names == (("u1", "Ann Lee"),)

    def test_system_rows_dropped(self, settings, row):
        rows = [
            row("sys", "b087fc75 System", "2025-06-02T09:00:00Z"),
            row("sys2", "X" * 51, "2025-06-02T09:00:00Z"),
            row("u1", "Ann Lee", "2025-06-02T09:00:00Z"),
        ]
        batch = normalize_rows(rows, settings)
        assert batch.total_entries == 1
        assert batch.skipped_rows == 2
        assert [d.code for d in batch.diagnostics] == [SYSTEM_ROW, SYSTEM_ROW]

    def test_ordinary_hex_looking_name_is_kept(self, settings, row):
        batch = normalize_rows([row("u1", "Abbeeddd Lee", "2025-06-02T09:00:00Z")], settings)
        assert batch.total_entries == 1

    def test_unparseable_timestamp_is_diagnostic_not_fatal(self, settings, row):
        batch = normalize_rows([row("u1", "Ann Lee", "yesterday-ish", "2025-06-02T12:00:00Z")], settings)
        assert [e.kind for e in batch.events] == [OUT]
        assert [d.code for d in batch.diagnostics] == [UNPARSEABLE_TIMESTAMP]

    def test_missing_identifier_and_malformed(self, settings, row):
        from volunteer_hours.data_processing.schemas import RawRow

        rows = [row("", "Ann Lee", "2025-06-02T09:00:00Z"), RawRow(first_name="Ann", n_fields=1)]
        batch = normalize_rows(rows, settings)
        assert batch.events == ()
        assert sorted(d.code for d in batch.diagnostics) == sorted([MISSING_IDENTIFIER, MALFORMED_ROW])
        # The row without a user id is still an entry; the malformed line is not
        assert batch.total_entries == 1
        assert batch.skipped_rows == 2

    def test_implicit_zone_flagged(self, settings, row):
        batch = normalize_rows([row("u1", "Ann Lee", "2025-06-02 09:00")], settings)
        assert batch.events[0].flags == (IMPLICIT_TIMEZONE,)
