from __future__ import annotations

import argparse
import logging
from pathlib import Path

from volunteer_hours.data_processing.impact import compare_quality_standards
from volunteer_hours.data_processing.rows import load_rows
from volunteer_hours.utils.config import build_settings, load_config
from volunteer_hours.utils.logging import setup_logging

log = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Compare filtering impact across all quality standards.")
    parser.add_argument("--config", required=True, help="Path to YAML config (supports extends).")
    parser.add_argument("--input", default=None, help="TSV file or directory. Default = input.path from config.")
    parser.add_argument("--out", default=None, help="Optional CSV path for the comparison table.")
    args = parser.parse_args()

    cfg = load_config(args.config)
    setup_logging(cfg.get("logging", {}).get("level", "INFO"))
    settings = build_settings(cfg)

    input_cfg = cfg.get("input", {}) or {}
    source = args.input or input_cfg.get("path")
    if not source:
        raise ValueError("No input given: pass --input or set input.path in the config.")
    rows = load_rows(source, input_cfg.get("columns"), input_cfg.get("file_globs"))

    table = compare_quality_standards(rows, settings)
    log.info("Quality impact:\n%s", table.to_string(index=False, float_format=lambda x: f"{x:.2f}"))

    if args.out:
        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        table.to_csv(out, index=False)
        log.info("Saved comparison table: %s", out.as_posix())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
