from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

import pandas as pd

from volunteer_hours.data_processing.pipeline import analyze
from volunteer_hours.data_processing.schemas import RawRow
from volunteer_hours.utils.config import QUALITY_STANDARDS, AnalysisSettings, resolve_threshold

log = logging.getLogger(__name__)

IMPACT_COLUMNS = [
    "standard",
    "threshold",
    "original_hours",
    "valid_hours",
    "filtered_hours",
    "reduction_pct",
    "valid_sessions",
    "filtered_sessions",
    "active_volunteers",
    "documentation_rate",
]


def compare_quality_standards(
    rows: Sequence[RawRow],
    settings: AnalysisSettings,
    standards: Optional[Dict[str, float]] = None,
) -> pd.DataFrame:
    """
    Run the same batch under every quality standard and tabulate what each one
    filters. Each run is independent; the threshold is the only setting that varies.
    """
    standards = standards or QUALITY_STANDARDS
    out: List[Dict[str, object]] = []
    for name, threshold in standards.items():
        threshold = resolve_threshold(threshold)
        result = analyze(rows, replace(settings, threshold=threshold, progress=False))
        dq = result.data_quality
        out.append(
            {
                "standard": name,
                "threshold": threshold,
                "original_hours": dq.original_hours,
                "valid_hours": dq.valid_hours,
                "filtered_hours": dq.filtered_hours,
                "reduction_pct": dq.reduction_pct,
                "valid_sessions": dq.valid_sessions,
                "filtered_sessions": dq.filtered_sessions,
                "active_volunteers": dq.active_volunteers,
                "documentation_rate": dq.documentation_rate,
            }
        )
        log.info("Standard %s (%gh): filtered %d session(s)", name, threshold, dq.filtered_sessions)

    df = pd.DataFrame(out, columns=IMPACT_COLUMNS)
    return df.sort_values("threshold", ascending=False, kind="stable").reset_index(drop=True)
