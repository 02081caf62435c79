"""Tests for rules.yaml loading and option objects."""

import pytest

from modelreview.core.config import (
    ConfigError,
    MapOptions,
    ScanOptions,
    cfg_get,
    load_function_weights,
    load_rules_config,
)


class TestRulesConfig:
    def test_packaged_rules_match_defaults(self):
        cfg = load_rules_config()
        assert "app" in cfg
        assert ScanOptions.from_config(cfg) == ScanOptions()
        assert MapOptions.from_config(cfg) == MapOptions()

    def test_explicit_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigError):
            load_rules_config(str(tmp_path / "nope.yaml"))

    def test_explicit_file_must_be_mapping(self, tmp_path):
        p = tmp_path / "rules.yaml"
        p.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_rules_config(str(p))

    def test_values_from_file(self, tmp_path):
        p = tmp_path / "rules.yaml"
        p.write_text(
            "app:\n"
            "  scan:\n"
            "    massive_cell_threshold: 10\n"
            "    target_sheets: [Calc]\n"
            "  map:\n"
            "    max_cells: 99\n",
            encoding="utf-8",
        )
        cfg = load_rules_config(str(p))
        opts = ScanOptions.from_config(cfg)
        assert opts.massive_cell_threshold == 10
        assert opts.target_sheets == ("Calc",)
        assert opts.block_rows == 200
        assert MapOptions.from_config(cfg).max_cells == 99

    def test_overrides_win_and_none_is_ignored(self):
        opts = ScanOptions.from_config({}, minutes_per_formula=5, target_sheets=["A"], include_empty_cells=None)
        assert opts.minutes_per_formula == 5
        assert opts.target_sheets == ("A",)
        assert opts.include_empty_cells is True

    def test_cfg_get(self):
        cfg = {"a": {"b": {"c": 1}}}
        assert cfg_get(cfg, "a.b.c") == 1
        assert cfg_get(cfg, "a.x.c", "d") == "d"
        assert cfg_get(cfg, "", "d") == "d"


class TestFunctionWeights:
    def test_packaged_table(self):
        weights = load_function_weights()
        assert weights["SUM"] == 1
        assert weights["IF"] == 2
        assert weights["XLOOKUP"] == 3
        assert weights["OFFSET"] == 4
        assert set(weights.values()) <= {1, 2, 3, 4}

    def test_keys_upper_cased(self, tmp_path):
        p = tmp_path / "w.yaml"
        p.write_text("myfunc: 3\n", encoding="utf-8")
        assert load_function_weights(str(p)) == {"MYFUNC": 3}
