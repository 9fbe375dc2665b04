from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd
from tqdm import tqdm

from volunteer_hours.data_processing.schemas import (
    AUTOMATIC_WEIGHT,
    IN,
    IMPLICIT_TIMEZONE,
    MALFORMED_ROW,
    MISSING_IDENTIFIER,
    OUT,
    SYSTEM_ROW,
    UNPARSEABLE_TIMESTAMP,
    Diagnostic,
    Event,
    RawRow,
)
from volunteer_hours.data_processing.timestamps import parse_timestamp
from volunteer_hours.utils.config import AnalysisSettings

log = logging.getLogger(__name__)

FIELDS = ("first_name", "last_name", "user_id", "time_in", "time_out", "notes")

DEFAULT_COLUMN_CANDIDATES: Dict[str, List[str]] = {
    "first_name": ["firstName", "first_name", "first", "First Name", "given_name"],
    "last_name": ["lastName", "last_name", "last", "Last Name", "surname", "family_name"],
    "user_id": ["userId", "user_id", "uid", "volunteerId", "volunteer_id", "id"],
    "time_in": ["timeIn", "time_in", "clockIn", "clock_in", "start", "start_time"],
    "time_out": ["timeOut", "time_out", "clockOut", "clock_out", "end", "end_time"],
    "notes": ["notes", "note", "comment", "comments", "description"],
}

# Headerless exports: firstName, lastName, userId, timeIn, timeOut, notes
POSITIONAL_LAYOUT: Dict[str, int] = {f: i for i, f in enumerate(FIELDS)}

MIN_FIELDS = 3


def _pick_col(columns: Sequence[str], candidates: Sequence[str]) -> Optional[str]:
    # exact match first
    for c in candidates:
        if c in columns:
            return c
    lower_map = {str(c).strip().lower(): c for c in columns}
    for c in candidates:
        if c.lower() in lower_map:
            return lower_map[c.lower()]
    return None


def _is_header_row(row: Sequence[str], column_candidates: Mapping[str, Sequence[str]]) -> bool:
    known = {c.lower() for cands in column_candidates.values() for c in cands}
    return sum(1 for cell in row if cell.strip().lower() in known) >= 2


def _header_layout(header: Sequence[str], column_candidates: Mapping[str, Sequence[str]]) -> Dict[str, int]:
    layout: Dict[str, int] = {}
    for fname in FIELDS:
        col = _pick_col(list(header), column_candidates.get(fname, []))
        if col is not None:
            layout[fname] = list(header).index(col)
    return layout


def _cell(row: Sequence[str], idx: Optional[int]) -> str:
    if idx is None or idx >= len(row):
        return ""
    return (row[idx] or "").strip()


def rows_from_lines(
    lines: Iterable[str],
    column_candidates: Optional[Mapping[str, Sequence[str]]] = None,
    start_line: int = 1,
) -> List[RawRow]:
    """
    Tab-separated exports can be ragged (trailing fields missing). Parse line-by-line,
    mapping columns from a header row when present, positionally otherwise.
    """
    cands = column_candidates or DEFAULT_COLUMN_CANDIDATES
    layout: Dict[str, int] = dict(POSITIONAL_LAYOUT)
    out: List[RawRow] = []

    reader = csv.reader(lines, delimiter="\t", quoting=csv.QUOTE_NONE)
    first = True
    for offset, row in enumerate(reader):
        if not row or not "".join(row).strip():
            continue
        if first and _is_header_row(row, cands):
            layout = _header_layout(row, cands)
            first = False
            continue
        first = False

        out.append(
            RawRow(
                **{f: _cell(row, layout.get(f)) for f in FIELDS},
                line_no=start_line + offset,
                n_fields=len(row),
            )
        )
    return out


def rows_from_text(text: str, column_candidates: Optional[Mapping[str, Sequence[str]]] = None) -> List[RawRow]:
    return rows_from_lines(text.splitlines(), column_candidates)


def _find_files(root: Path, globs: List[str]) -> List[Path]:
    files: List[Path] = []
    for g in globs:
        files.extend(root.glob(g))
    return sorted(set([f for f in files if f.is_file()]))


def load_rows(
    path: Union[str, Path],
    column_candidates: Optional[Mapping[str, Sequence[str]]] = None,
    file_globs: Optional[List[str]] = None,
) -> List[RawRow]:
    """Load one TSV file, or every matching file under a directory (in sorted order)."""
    path = Path(path)
    if path.is_dir():
        files = _find_files(path, file_globs or ["**/*.tsv", "**/*.txt"])
        if not files:
            raise FileNotFoundError(f"No volunteer time files found under: {path}")
    elif path.exists():
        files = [path]
    else:
        raise FileNotFoundError(f"Input not found: {path}")

    rows: List[RawRow] = []
    for fp in tqdm(files, desc="Loading time files", disable=len(files) < 2):
        with fp.open("r", encoding="utf-8", errors="ignore", newline="") as f:
            rows.extend(rows_from_lines(f, column_candidates))
    log.info("Loaded %d raw rows from %d file(s)", len(rows), len(files))
    return rows


def rows_from_frame(df: pd.DataFrame, column_candidates: Optional[Mapping[str, Sequence[str]]] = None) -> List[RawRow]:
    cands = column_candidates or DEFAULT_COLUMN_CANDIDATES
    cols = [str(c) for c in df.columns]
    picked = {f: _pick_col(cols, cands.get(f, [])) for f in FIELDS}
    missing = [f for f in ("user_id",) if picked[f] is None]
    if missing:
        raise KeyError(f"Missing required column(s) {missing}. Available columns: {cols}")

    frame = df.copy()
    frame.columns = cols
    frame = frame.fillna("").astype(str)

    out: List[RawRow] = []
    for i, rec in enumerate(frame.to_dict(orient="records")):
        out.append(
            RawRow(
                **{f: (rec[c].strip() if c is not None else "") for f, c in picked.items()},
                line_no=i + 1,
            )
        )
    return out


@dataclass(frozen=True)
class NormalizedBatch:
    events: Tuple[Event, ...]
    names: Tuple[Tuple[str, str], ...]  # (identity_key, display_name) in row order
    diagnostics: Tuple[Diagnostic, ...]
    total_entries: int  # parsed non-system rows, including ones without a user id
    skipped_rows: int


def is_system_row(row: RawRow, settings: AnalysisSettings) -> bool:
    pattern = settings.system_row_regex
    for name in (row.first_name, row.last_name):
        if len(name) > settings.max_name_length or pattern.search(name):
            return True
    return False


def normalize_rows(rows: Sequence[RawRow], settings: AnalysisSettings) -> NormalizedBatch:
    events: List[Event] = []
    names: List[Tuple[str, str]] = []
    diagnostics: List[Diagnostic] = []
    entries = 0
    accepted = 0
    skipped = 0

    for idx, row in enumerate(rows):
        if row.n_fields is not None and row.n_fields < MIN_FIELDS:
            skipped += 1
            diagnostics.append(Diagnostic(MALFORMED_ROW, f"line {row.line_no}: {row.n_fields} field(s)", idx))
            log.debug("Skipping malformed line %d (%d fields)", row.line_no, row.n_fields)
            continue
        if is_system_row(row, settings):
            skipped += 1
            diagnostics.append(Diagnostic(SYSTEM_ROW, f"line {row.line_no}: system entry", idx))
            log.debug("Skipping system entry on line %d", row.line_no)
            continue
        # Every parsed non-system row is an entry, usable or not
        entries += 1
        key = row.user_id
        if not key:
            skipped += 1
            diagnostics.append(Diagnostic(MISSING_IDENTIFIER, f"line {row.line_no}: no user id", idx))
            log.debug("Skipping line %d without user id", row.line_no)
            continue

        accepted += 1
        names.append((key, row.display_name))

        for kind, text in ((IN, row.time_in), (OUT, row.time_out)):
            if not text:
                continue
            parsed = parse_timestamp(text, settings)
            if parsed is None:
                diagnostics.append(
                    Diagnostic(UNPARSEABLE_TIMESTAMP, f"line {row.line_no}: time_{kind}={text!r}", idx, key)
                )
                log.debug("Unparseable time_%s on line %d: %r", kind, row.line_no, text)
                continue
            events.append(
                Event(
                    identity_key=key,
                    timestamp=parsed.timestamp,
                    kind=kind,
                    source_weight=AUTOMATIC_WEIGHT,
                    raw_note=row.notes,
                    row_index=idx,
                    flags=() if parsed.explicit_zone else (IMPLICIT_TIMEZONE,),
                )
            )

    log.info(
        "Normalized rows: accepted=%d skipped=%d events=%d diagnostics=%d",
        accepted,
        skipped,
        len(events),
        len(diagnostics),
    )
    return NormalizedBatch(
        events=tuple(events),
        names=tuple(names),
        diagnostics=tuple(diagnostics),
        total_entries=entries,
        skipped_rows=skipped,
    )
