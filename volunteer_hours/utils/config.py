from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

import pandas as pd
import yaml


class ConfigError(ValueError):
    """Fatal configuration problem; raised before any row is processed."""


QUALITY_STANDARDS: Dict[str, float] = {
    "NONE": 999.0,  # no filtering (baseline)
    "CONSERVATIVE": 8.0,
    "MODERATE": 4.0,
    "PROFESSIONAL": 2.0,
    "STRICT": 1.0,
}

DEFAULT_TIMEZONE_ABBREVIATIONS: Dict[str, str] = {
    "ET": "America/New_York",
    "EST": "America/New_York",
    "EDT": "America/New_York",
    "CT": "America/Chicago",
    "CST": "America/Chicago",
    "CDT": "America/Chicago",
    "MT": "America/Denver",
    "MST": "America/Denver",
    "MDT": "America/Denver",
    "PT": "America/Los_Angeles",
    "PST": "America/Los_Angeles",
    "PDT": "America/Los_Angeles",
    "UTC": "UTC",
    "GMT": "UTC",
}

# Internal/system user records carry a UUID fragment in the name field
DEFAULT_SYSTEM_ROW_PATTERN = r"\b(?=[0-9a-f]{0,7}\d)[0-9a-f]{8}(?:-[0-9a-f]{4}){0,3}(?:-[0-9a-f]{12})?\b"


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"YAML root must be a mapping/dict: {path}")
    return data


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Recursively merges override into base (override wins).
    """
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, Mapping):
            out[k] = _deep_merge(out[k], v)  # type: ignore[arg-type]
        else:
            out[k] = v
    return out


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Loads a YAML config file with optional inheritance via:
      extends: "base.yaml"
    or
      extends:
        - "base.yaml"
        - "aliases.yaml"

    Paths in 'extends' are resolved relative to the current config file.
    """
    path = Path(path)
    cfg = load_yaml(path)

    extends = cfg.get("extends")
    merged: Dict[str, Any] = {}

    if extends:
        if isinstance(extends, (str, Path)):
            parents = [extends]
        elif isinstance(extends, list):
            parents = extends
        else:
            raise ConfigError("Config key 'extends' must be a string or a list of strings.")

        for parent in parents:
            parent_path = Path(parent)
            if not parent_path.is_absolute():
                parent_path = (path.parent / parent_path).resolve()
            merged = _deep_merge(merged, load_config(parent_path))

    cfg_no_extends = dict(cfg)
    cfg_no_extends.pop("extends", None)
    merged = _deep_merge(merged, cfg_no_extends)

    merged.setdefault("_meta", {})
    merged["_meta"]["config_path"] = str(path.resolve())
    return merged


def ensure_dirs(cfg: Dict[str, Any]) -> None:
    """
    Creates parent directories for the configured output files.
    Safe to call multiple times.

    Expected config layout:
      output:
        analysis: data/processed/analysis.json
        meta: data/processed/analysis_meta.json
    """
    output = cfg.get("output", {}) or {}
    if isinstance(output, dict):
        for _, p in output.items():
            if isinstance(p, (str, Path)) and str(p).strip():
                pp = Path(p)
                parent = pp if pp.suffix == "" else pp.parent
                parent.mkdir(parents=True, exist_ok=True)


def resolve_threshold(value: Any) -> float:
    """Map a preset name ('CONSERVATIVE') or number (8) to a recognized threshold in hours."""
    if isinstance(value, str) and value.strip().upper() in QUALITY_STANDARDS:
        return QUALITY_STANDARDS[value.strip().upper()]
    if isinstance(value, bool):
        raise ConfigError(f"Unrecognized quality standard: {value!r}")
    try:
        hours = float(value)
    except (TypeError, ValueError):
        raise ConfigError(
            f"Unrecognized quality standard: {value!r}. Expected one of "
            f"{sorted(QUALITY_STANDARDS)} or {sorted(set(QUALITY_STANDARDS.values()))}."
        ) from None
    if hours not in QUALITY_STANDARDS.values():
        raise ConfigError(
            f"Unrecognized quality standard: {value!r}. "
            f"Recognized thresholds: {sorted(set(QUALITY_STANDARDS.values()))}."
        )
    return hours


def _check_timezone(name: str) -> str:
    try:
        pd.Timestamp("2000-01-01").tz_localize(name)
    except (KeyError, ValueError, TypeError) as e:
        raise ConfigError(f"Unknown timezone: {name!r} ({e})") from None
    return name


def build_alias_table(aliases: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """
    Lower-cases keys and makes every canonical value resolve to itself,
    so canonicalizing an already-canonical name is a no-op.
    """
    table: Dict[str, str] = {}
    for k, v in (aliases or {}).items():
        if not isinstance(k, str) or not isinstance(v, str) or not v.strip():
            raise ConfigError(f"Alias table entries must map names to names, got {k!r}: {v!r}")
        table[k.strip().lower()] = v.strip()
    for v in list(table.values()):
        table.setdefault(v.lower(), v)
        if table[v.lower()] != v:
            raise ConfigError(f"Alias table chains {v!r} to {table[v.lower()]!r}; canonical names must map to themselves.")
    return table


@dataclass(frozen=True)
class AnalysisSettings:
    threshold: float = QUALITY_STANDARDS["CONSERVATIVE"]
    aliases: Mapping[str, str] = field(default_factory=dict)
    default_timezone: str = "UTC"
    timezone_abbreviations: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_TIMEZONE_ABBREVIATIONS)
    )
    recent_window_days: int = 7
    max_name_length: int = 50
    system_row_pattern: str = DEFAULT_SYSTEM_ROW_PATTERN
    progress: bool = False

    @property
    def system_row_regex(self) -> "re.Pattern[str]":
        return re.compile(self.system_row_pattern, re.IGNORECASE)

    def zone_for(self, abbreviation: Optional[str]) -> Optional[str]:
        if not abbreviation:
            return None
        return self.timezone_abbreviations.get(abbreviation.upper())


def make_settings(
    threshold: Any = "CONSERVATIVE",
    aliases: Optional[Mapping[str, str]] = None,
    default_timezone: str = "UTC",
    *,
    require_alias_table: bool = False,
    timezone_abbreviations: Optional[Mapping[str, str]] = None,
    recent_window_days: int = 7,
    max_name_length: int = 50,
    system_row_pattern: str = DEFAULT_SYSTEM_ROW_PATTERN,
    progress: bool = False,
) -> AnalysisSettings:
    """Validate raw values and build immutable settings. Raises ConfigError."""
    table = build_alias_table(aliases)
    if require_alias_table and not table:
        raise ConfigError("An alias table is required (analysis.require_alias_table) but none was supplied.")

    abbreviations = dict(DEFAULT_TIMEZONE_ABBREVIATIONS)
    for k, v in (timezone_abbreviations or {}).items():
        abbreviations[str(k).upper()] = _check_timezone(str(v))

    if int(recent_window_days) <= 0:
        raise ConfigError(f"recent_window_days must be positive, got {recent_window_days!r}")
    try:
        re.compile(system_row_pattern)
    except re.error as e:
        raise ConfigError(f"Invalid system_row_pattern: {e}") from None

    return AnalysisSettings(
        threshold=resolve_threshold(threshold),
        aliases=MappingProxyType(table),
        default_timezone=_check_timezone(default_timezone),
        timezone_abbreviations=MappingProxyType(abbreviations),
        recent_window_days=int(recent_window_days),
        max_name_length=int(max_name_length),
        system_row_pattern=system_row_pattern,
        progress=bool(progress),
    )


def build_settings(cfg: Mapping[str, Any], standard_override: Any = None) -> AnalysisSettings:
    """
    Expected config layout:
      analysis:
        quality_standard: CONSERVATIVE   # or 999 / 8 / 4 / 2 / 1
        default_timezone: America/New_York
        require_alias_table: false
      aliases:
        "j graves": "J Graves"
      timezone_abbreviations:
        AKT: America/Anchorage
    """
    an = cfg.get("analysis", {}) or {}
    aliases = cfg.get("aliases", {}) or {}
    if not isinstance(aliases, Mapping):
        raise ConfigError("Config key 'aliases' must be a mapping of display name -> canonical name.")

    standard = standard_override if standard_override is not None else an.get("quality_standard", "CONSERVATIVE")
    return make_settings(
        threshold=standard,
        aliases=aliases,
        default_timezone=str(an.get("default_timezone", "UTC")),
        require_alias_table=bool(an.get("require_alias_table", False)),
        timezone_abbreviations=cfg.get("timezone_abbreviations") or {},
        recent_window_days=an.get("recent_window_days", 7),
        max_name_length=an.get("max_name_length", 50),
        system_row_pattern=str(an.get("system_row_pattern", DEFAULT_SYSTEM_ROW_PATTERN)),
        progress=bool(an.get("progress", False)),
    )
