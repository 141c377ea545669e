"""Tests for the openpeon.yml configuration document.

Covers loading (and falling back to defaults), saving, accessors for the
dedup/debounce sections, volume clamping, and validation warnings.
"""

from __future__ import annotations

import copy
import logging

import pytest
import yaml

from openpeon.config import (
    DEFAULT_CONFIG,
    DEFAULT_VOLUME,
    PeonConfig,
    PeonPaths,
    _closest_match,
    clamp_volume,
    read_document,
    write_document,
)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoad:
    def test_missing_file_uses_defaults(self, tmp_path):
        path = str(tmp_path / "openpeon.yml")
        config = PeonConfig.load(path)
        assert config.raw == DEFAULT_CONFIG
        assert config.config_path == path

    def test_defaults_are_a_copy(self, tmp_path):
        config = PeonConfig.load(str(tmp_path / "openpeon.yml"))
        config.set_volume(9)
        config.raw["mappings"].clear()
        assert DEFAULT_CONFIG["volume"] == DEFAULT_VOLUME
        assert len(DEFAULT_CONFIG["mappings"]) == 3

    def test_invalid_yaml_uses_defaults(self, tmp_path, caplog):
        path = tmp_path / "openpeon.yml"
        path.write_text("volume: [\n")
        with caplog.at_level(logging.WARNING, logger="openpeon.config"):
            config = PeonConfig.load(str(path))
        assert config.raw == DEFAULT_CONFIG
        assert "Failed to load config" in caplog.text

    def test_non_mapping_document_uses_defaults(self, tmp_path):
        path = tmp_path / "openpeon.yml"
        path.write_text("- just\n- a list\n")
        assert PeonConfig.load(str(path)).raw == DEFAULT_CONFIG

    def test_json_document_loads(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text('{"volume": 7, "mappings": []}')
        config = PeonConfig.load(str(path))
        assert config.volume == 7
        assert config.mappings == []

    def test_round_trip(self, tmp_path):
        path = str(tmp_path / "openpeon.yml")
        config = PeonConfig.from_dict(copy.deepcopy(DEFAULT_CONFIG), path)
        config.set_volume(8)
        config.save()
        assert PeonConfig.load(path) == config

    def test_saved_file_is_block_yaml(self, tmp_path):
        path = tmp_path / "openpeon.yml"
        PeonConfig.default(str(path)).save()
        text = path.read_text()
        assert text.startswith("volume: 5\n")
        assert "{" not in text


class TestDocuments:
    def test_read_missing_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_document(str(tmp_path / "nope.yml"))

    def test_read_bad_yaml_raises_value_error(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("a: [\n")
        with pytest.raises(ValueError):
            read_document(str(path))

    def test_write_creates_parents(self, tmp_path):
        path = tmp_path / "a" / "b" / "doc.yml"
        write_document(str(path), {"volume": 3})
        assert yaml.safe_load(path.read_text()) == {"volume": 3}


# ---------------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------------


class TestAccessors:
    def test_default_mappings(self):
        names = [m.name for m in PeonConfig.default().mappings]
        assert names == ["acknowledge", "work-complete", "permission-asked"]

    def test_out_of_range_volume_used_as_is(self):
        assert PeonConfig.from_dict({"volume": 15}).volume == 15

    def test_non_numeric_volume_falls_back(self):
        assert PeonConfig.from_dict({"volume": "loud"}).volume == DEFAULT_VOLUME
        assert PeonConfig.from_dict({"volume": True}).volume == DEFAULT_VOLUME

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_volume_falls_back(self, value):
        config = PeonConfig.from_dict({"volume": value})
        assert config.volume == DEFAULT_VOLUME
        assert config.validation_warnings

    def test_yaml_infinity_loads_as_default(self, tmp_path):
        path = tmp_path / "openpeon.yml"
        path.write_text("volume: .inf\nmappings: []\n")
        assert PeonConfig.load(str(path)).volume == DEFAULT_VOLUME

    def test_missing_sections_default(self):
        config = PeonConfig.from_dict({})
        assert config.dedup_messages is True
        assert config.dedup_permissions is True
        assert config.debounce_window_ms == 500
        assert "command.executed" in config.debounce_events
        assert config.random_preset is False
        assert config.mappings == []

    def test_bad_debounce_window(self):
        assert PeonConfig.from_dict({"debounce": {"windowMs": "soon"}}).debounce_window_ms == 500
        assert PeonConfig.from_dict({"debounce": {"windowMs": -5}}).debounce_window_ms == 0

    def test_replace_mappings_keeps_volume_when_none(self):
        config = PeonConfig.from_dict({"volume": 4, "mappings": []})
        config.replace_mappings([{"name": "x", "triggers": [], "sounds": []}])
        assert config.volume == 4
        assert [m.name for m in config.mappings] == ["x"]
        config.replace_mappings([], volume=9)
        assert config.volume == 9


class TestClampVolume:
    @pytest.mark.parametrize("level,expected", [
        (0, 1), (-3, 1), (1, 1), (5, 5), (10, 10), (15, 10), ("7", 7), (6.6, 7),
    ])
    def test_clamp(self, level, expected):
        assert clamp_volume(level) == expected

    def test_non_number(self):
        assert clamp_volume("max") == DEFAULT_VOLUME
        assert clamp_volume(None) == DEFAULT_VOLUME

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite(self, value):
        assert clamp_volume(value) == DEFAULT_VOLUME

    def test_set_volume_clamps(self):
        config = PeonConfig.default()
        assert config.set_volume(0) == 1
        assert config.volume == 1
        assert config.set_volume(42) == 10


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_defaults_are_clean(self):
        assert PeonConfig.default().validation_warnings == []

    def test_unknown_top_level_key_suggests(self):
        config = PeonConfig.from_dict({"volumn": 3})
        assert any("did you mean 'volume'" in w for w in config.validation_warnings)

    def test_misspelled_event_suggests(self):
        config = PeonConfig.from_dict({"mappings": [{
            "name": "done",
            "triggers": [{"type": "event", "value": "session.idel"}],
            "sounds": ["a.wav"],
        }]})
        assert any("did you mean 'session.idle'" in w for w in config.validation_warnings)

    def test_unknown_trigger_type(self):
        config = PeonConfig.from_dict({"mappings": [{
            "name": "x",
            "triggers": [{"type": "tool.befor", "value": "bash"}],
            "sounds": ["a.wav"],
        }]})
        assert any("unknown trigger type" in w for w in config.validation_warnings)

    def test_inert_and_duplicate_mappings(self):
        config = PeonConfig.from_dict({"mappings": [
            {"name": "a", "triggers": [], "sounds": ["a.wav"]},
            {"name": "a", "triggers": [{"type": "event", "value": "session.idle"}], "sounds": []},
        ]})
        text = "\n".join(config.validation_warnings)
        assert "no triggers" in text
        assert "no sounds" in text
        assert "Duplicate mapping name 'a'" in text

    def test_volume_out_of_range_warned(self):
        assert PeonConfig.from_dict({"volume": 0}).validation_warnings

    def test_warnings_are_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="openpeon.config"):
            PeonConfig.from_dict({"bogus": 1})
        assert "Config WARNING" in caplog.text

    def test_closest_match(self):
        assert _closest_match("mapings", {"mappings", "volume"}) == "mappings"
        assert _closest_match("zzzzzzzzzz", {"volume"}) is None


class TestPaths:
    def test_layout(self, tmp_path):
        paths = PeonPaths(base_dir=str(tmp_path))
        assert paths.config_path == str(tmp_path / "openpeon.yml")
        assert paths.presets_dir == str(tmp_path / "presets")
        assert paths.sounds_dir == str(tmp_path / "sounds")

    def test_config_file_override(self, tmp_path):
        paths = PeonPaths(base_dir=str(tmp_path), config_file="/etc/peon.yml")
        assert paths.config_path == "/etc/peon.yml"
