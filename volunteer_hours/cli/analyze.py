from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Dict

from volunteer_hours.data_processing.pipeline import analyze
from volunteer_hours.data_processing.rows import load_rows
from volunteer_hours.data_processing.schemas import AnalysisResult
from volunteer_hours.utils.config import build_settings, ensure_dirs, load_config
from volunteer_hours.utils.io import save_json
from volunteer_hours.utils.logging import setup_logging
from volunteer_hours.utils.timer import timed

log = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Reconstruct volunteer sessions and rank recent hours.")
    p.add_argument("--config", required=True, help="Path to YAML config (supports extends).")
    p.add_argument("--input", default=None, help="TSV file or directory. Default = input.path from config.")
    p.add_argument(
        "--standard",
        default=None,
        help="Quality standard override: NONE, CONSERVATIVE, MODERATE, PROFESSIONAL, STRICT or 999/8/4/2/1.",
    )
    return p.parse_args()


def log_summary(result: AnalysisResult) -> None:
    dq = result.data_quality
    log.info("Quality standard: %g hour threshold", dq.quality_standard)
    if result.recent_window is not None:
        log.info("Analysis period: %s", result.recent_window.period)
    log.info(
        "Original hours: %.2fh, valid: %.2fh, filtered: %.2fh (reduction %.1f%%)",
        dq.original_hours,
        dq.valid_hours,
        dq.filtered_hours,
        dq.reduction_pct,
    )
    log.info(
        "Sessions: valid=%d filtered=%d incomplete=%d orphan_ends=%d",
        dq.valid_sessions,
        dq.filtered_sessions,
        dq.incomplete_sessions,
        dq.orphan_ends,
    )
    for d in result.discarded_sessions:
        log.info("Filtered: %s %s (%.2fh) - %s", d["volunteer"], d["date"], d["duration"], d["reason"])
    if not result.ranking:
        log.warning("No volunteers meet the current quality standard.")
    for r in result.ranking:
        log.info("%d. %s: %.2f hours", r.rank, r.name, r.hours)


def main() -> None:
    args = parse_args()
    cfg = load_config(args.config)

    ensure_dirs(cfg)
    setup_logging(level=cfg.get("logging", {}).get("level", "INFO"))

    # Fails fast on a bad threshold / timezone / alias table
    settings = build_settings(cfg, standard_override=args.standard)

    input_cfg = cfg.get("input", {}) or {}
    source = args.input or input_cfg.get("path")
    if not source:
        raise ValueError("No input given: pass --input or set input.path in the config.")

    timings: Dict[str, float] = {}
    with timed("load", timings):
        rows = load_rows(source, input_cfg.get("columns"), input_cfg.get("file_globs"))

    result = analyze(rows, settings, timings)

    out_cfg = cfg.get("output", {}) or {}
    out_path = Path(out_cfg.get("analysis", "outputs/analysis.json"))
    meta_path = Path(out_cfg.get("meta", "outputs/analysis_meta.json"))
    save_json(out_path, result.to_dict())
    save_json(
        meta_path,
        {
            "config": cfg.get("_meta", {}).get("config_path"),
            "input": str(source),
            "n_rows": len(rows),
            "quality_standard": settings.threshold,
            "default_timezone": settings.default_timezone,
            "timings_sec": timings,
        },
    )

    log_summary(result)
    log.info("Analysis written: %s", out_path.as_posix())


if __name__ == "__main__":
    main()
