import pytest

from volunteer_hours.data_processing.identities import canonicalize
from volunteer_hours.utils.config import (
    ConfigError,
    build_alias_table,
    build_settings,
    load_config,
    make_settings,
    resolve_threshold,
)


class TestQualityStandards:
    @pytest.mark.parametrize(
        "value, expected",
        [("NONE", 999.0), ("conservative", 8.0), ("Moderate", 4.0), ("PROFESSIONAL", 2.0), ("STRICT", 1.0), (8, 8.0), ("2", 2.0), (999, 999.0)],
    )
    def test_recognized_presets(self, value, expected):
        assert resolve_threshold(value) == expected

    @pytest.mark.parametrize("value", [5, 0, "lenient", None, True, 8.5])
    def test_unrecognized_preset_is_fatal(self, value):
        with pytest.raises(ConfigError):
            resolve_threshold(value)

    def test_make_settings_rejects_bad_threshold_before_running(self):
        with pytest.raises(ConfigError):
            make_settings(threshold=3)


class TestSettings:
    def test_unknown_timezone_is_fatal(self):
        with pytest.raises(ConfigError):
            make_settings(default_timezone="Mars/Olympus_Mons")

    def test_required_alias_table_missing_is_fatal(self):
        with pytest.raises(ConfigError):
            build_settings({"analysis": {"require_alias_table": True}})

    def test_build_settings_reads_sections(self):
        s = build_settings(
            {
                "analysis": {"quality_standard": "STRICT", "default_timezone": "America/Chicago"},
                "aliases": {"J GRAVES": "J Graves"},
                "timezone_abbreviations": {"AKT": "America/Anchorage"},
            }
        )
        assert s.threshold == 1.0
        assert s.default_timezone == "America/Chicago"
        assert s.aliases["j graves"] == "J Graves"
        assert s.zone_for("akt") == "America/Anchorage"
        assert s.zone_for("ET") == "America/New_York"

    def test_standard_override_wins(self):
        s = build_settings({"analysis": {"quality_standard": "STRICT"}}, standard_override="4")
        assert s.threshold == 4.0


class TestAliasTable:
    def test_canonical_values_map_to_themselves(self):
        table = build_alias_table({"d burnett": "D Burnett", "D BURNETT": "D Burnett"})
        assert canonicalize("D Burnett", table) == "D Burnett"
        assert canonicalize(canonicalize("d BURNETT", table), table) == "D Burnett"

    def test_chained_aliases_rejected(self):
        with pytest.raises(ConfigError):
            build_alias_table({"a b": "C D", "c d": "E F"})


class TestLoadConfig:
    def test_extends_deep_merges(self, tmp_path):
        (tmp_path / "base.yaml").write_text(
            "analysis:\n  quality_standard: CONSERVATIVE\n  default_timezone: UTC\n", encoding="utf-8"
        )
        (tmp_path / "child.yaml").write_text(
            "extends: base.yaml\nanalysis:\n  quality_standard: STRICT\naliases:\n  'h lin': 'H Lin'\n",
            encoding="utf-8",
        )
        cfg = load_config(tmp_path / "child.yaml")
        assert cfg["analysis"] == {"quality_standard": "STRICT", "default_timezone": "UTC"}
        assert cfg["aliases"] == {"h lin": "H Lin"}
        assert cfg["_meta"]["config_path"].endswith("child.yaml")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_non_mapping_root(self, tmp_path):
        (tmp_path / "list.yaml").write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(tmp_path / "list.yaml")
