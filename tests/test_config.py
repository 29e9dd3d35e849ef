"""Tests for user configuration persistence."""

import json

import pytest

from starbridge.interface.config import (
    DEFAULT_CONFIG,
    get_config_path,
    load_config,
    save_config,
    set_from_string,
    set_log_level,
    set_max_propagation_depth,
    set_show_module_panel,
)


class TestLoadSave:
    """Test reading and writing the config file."""

    def test_defaults_when_missing(self, tmp_path):
        """No file means the defaults."""
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_defaults_are_copied(self, tmp_path):
        """Changing a loaded config does not touch the defaults."""
        config = load_config(tmp_path)
        config["log_level"] = "DEBUG"
        assert DEFAULT_CONFIG["log_level"] == "WARNING"

    def test_round_trip(self, tmp_path):
        """Saved values come back."""
        config = load_config(tmp_path)
        config["rng_seed"] = 42
        assert save_config(config, tmp_path)
        assert load_config(tmp_path)["rng_seed"] == 42

    def test_corrupt_file(self, tmp_path):
        """Unreadable JSON falls back to defaults."""
        get_config_path(tmp_path).write_text("{oops", encoding="utf-8")
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_not_an_object(self, tmp_path):
        """A JSON list is ignored."""
        get_config_path(tmp_path).write_text("[1, 2]", encoding="utf-8")
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_partial_and_unknown_keys(self, tmp_path):
        """Missing keys take defaults and unknown keys are dropped."""
        get_config_path(tmp_path).write_text(
            json.dumps({"log_level": "INFO", "theme": "lcars"}), encoding="utf-8"
        )
        config = load_config(tmp_path)
        assert config["log_level"] == "INFO"
        assert config["max_propagation_depth"] == 8
        assert "theme" not in config

    def test_save_creates_directory(self, tmp_path):
        """The data directory is created on save."""
        data_dir = tmp_path / "nested" / "data"
        assert save_config(DEFAULT_CONFIG.copy(), data_dir)
        assert get_config_path(data_dir).exists()


class TestSetters:
    """Test the individual settings."""

    def test_log_level(self, tmp_path):
        """Levels are upper-cased; unknown levels are rejected."""
        assert set_log_level("debug", tmp_path)
        assert load_config(tmp_path)["log_level"] == "DEBUG"
        with pytest.raises(ValueError):
            set_log_level("chatty", tmp_path)

    def test_propagation_depth(self, tmp_path):
        """Depth must be positive."""
        assert set_max_propagation_depth(3, tmp_path)
        assert load_config(tmp_path)["max_propagation_depth"] == 3
        with pytest.raises(ValueError):
            set_max_propagation_depth(0, tmp_path)

    def test_module_panel(self, tmp_path):
        set_show_module_panel(False, tmp_path)
        assert load_config(tmp_path)["show_module_panel"] is False

    @pytest.mark.parametrize("key,raw,expected", [
        ("rng_seed", "7", 7),
        ("rng_seed", "", None),
        ("content_dir", "my-content", "my-content"),
        ("content_dir", "", None),
        ("max_propagation_depth", "12", 12),
        ("show_module_panel", "off", False),
        ("show_module_panel", "Yes", True),
        ("log_level", "info", "INFO"),
    ])
    def test_from_string(self, tmp_path, key, raw, expected):
        """Command-line strings are parsed per key."""
        assert set_from_string(key, raw, tmp_path)
        assert load_config(tmp_path)[key] == expected

    def test_from_string_rejects(self, tmp_path):
        """Unknown keys and unparsable values raise ValueError."""
        with pytest.raises(ValueError):
            set_from_string("warp_factor", "9", tmp_path)
        with pytest.raises(ValueError):
            set_from_string("max_propagation_depth", "many", tmp_path)
