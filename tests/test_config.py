"""Tests for balance config persistence."""

import json

from nightshift.config import BalanceConfig, get_config_path, load_config, save_config


class TestBalanceConfig:
    """Test loading and saving balance overrides."""

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(tmp_path) == BalanceConfig()

    def test_partial_override_keeps_defaults(self, tmp_path):
        get_config_path(tmp_path).write_text(json.dumps({"minimum_earnings": 150}), encoding="utf-8")
        config = load_config(tmp_path)
        assert config.minimum_earnings == 150
        assert config.initial_fuel == 100
        assert config.route_base["shortcut"].risk == 3

    def test_corrupt_file_gives_defaults(self, tmp_path):
        get_config_path(tmp_path).write_text("{oops", encoding="utf-8")
        assert load_config(tmp_path) == BalanceConfig()

    def test_invalid_value_gives_defaults(self, tmp_path):
        get_config_path(tmp_path).write_text(json.dumps({"initial_fuel": "full"}), encoding="utf-8")
        assert load_config(tmp_path).initial_fuel == 100

    def test_round_trip(self, tmp_path):
        config = BalanceConfig(initial_time=360, save_max_age_hours=None, tick_interval=10.0)
        assert save_config(config, tmp_path / "nested")
        assert load_config(tmp_path / "nested") == config

    def test_defaults_are_not_shared(self, tmp_path):
        first = load_config(tmp_path)
        first.route_base["normal"].fuel = 99
        assert load_config(tmp_path).route_base["normal"].fuel == 7
