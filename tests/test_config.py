"""
Tests for configuration loading, coercion and overrides.
"""

import json

import pytest

from blobfx.core.config import (
    Config,
    TrackerSettings,
    apply_env_overrides,
    create_example_config,
    get_env_config,
    load_config,
)


class TestTrackerSettings:
    """Tests for settings coercion."""

    def test_defaults(self):
        settings = TrackerSettings()

        assert settings.threshold == 100
        assert settings.min_area == 100
        assert settings.history_length == 15
        assert settings.color_mode == "solid"
        assert settings.base_color == "#00f3ff"

    def test_coerced_clamps_ranges(self):
        settings = TrackerSettings(
            threshold=400, history_length=90, jitter=-1.0, drift=3.0, min_area=-5,
        ).coerced()

        assert settings.threshold == 255
        assert settings.history_length == 50
        assert settings.jitter == 0.0
        assert settings.drift == 1.0
        assert settings.min_area == 0.0

    @pytest.mark.parametrize("blur,expected", [(4, 5), (5, 5), (0, 1), (-2, 1)])
    def test_blur_made_odd(self, blur, expected):
        assert TrackerSettings(blur_size=blur).coerced().blur_size == expected

    def test_coerced_returns_copy(self):
        settings = TrackerSettings(threshold=999)
        settings.coerced()
        assert settings.threshold == 999

    def test_invalid_color_mode(self):
        with pytest.raises(ValueError, match="color mode"):
            TrackerSettings(color_mode="rainbow").coerced()

    def test_color_mode_case_insensitive(self):
        assert TrackerSettings(color_mode="CYCLE").coerced().color_mode == "cycle"

    def test_invalid_base_color(self):
        with pytest.raises(ValueError, match="base color"):
            TrackerSettings(base_color="teal").coerced()


class TestConfigFiles:
    """Tests for JSON load/save."""

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "blobfx.json"
        config = Config()
        config.settings.jitter = 0.6
        config.export.fps = 24.0
        config.preview.max_dimension = 320
        config.save(path)

        loaded = Config.load(path)

        assert loaded.settings.jitter == 0.6
        assert loaded.export.fps == 24.0
        assert loaded.preview.max_dimension == 320

    def test_load_coerces(self, tmp_path):
        path = tmp_path / "blobfx.json"
        path.write_text(json.dumps({"settings": {"blur_size": 6, "threshold": 300}}))

        config = load_config(path)

        assert config.settings.blur_size == 7
        assert config.settings.threshold == 255

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "blobfx.json"
        path.write_text(json.dumps({"settings": {"sparkle": True, "drift": 0.4}}))

        config = load_config(path)

        assert config.settings.drift == 0.4
        assert not hasattr(config.settings, "sparkle")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.json")

    def test_create_example(self, tmp_path):
        path = tmp_path / "example.json"
        create_example_config(path)

        data = json.loads(path.read_text())
        assert set(data) == {"settings", "export", "preview"}
        assert data["settings"]["base_color"] == "#00f3ff"


class TestEnvOverrides:
    """Tests for BLOBFX_* environment variables."""

    def test_get_env_config(self, monkeypatch):
        monkeypatch.setenv("BLOBFX_JITTER", "0.4")
        monkeypatch.setenv("OTHER_JITTER", "0.9")

        assert get_env_config()["jitter"] == "0.4"
        assert "other_jitter" not in get_env_config()

    def test_typed_overrides(self, monkeypatch):
        monkeypatch.setenv("BLOBFX_THRESHOLD", "180")
        monkeypatch.setenv("BLOBFX_DRIFT", "0.75")
        monkeypatch.setenv("BLOBFX_SHOW_HUD", "false")
        monkeypatch.setenv("BLOBFX_COLOR_MODE", "random")

        settings = apply_env_overrides(TrackerSettings())

        assert settings.threshold == 180
        assert settings.drift == 0.75
        assert settings.show_hud is False
        assert settings.color_mode == "random"

    def test_invalid_value_skipped(self, monkeypatch):
        monkeypatch.setenv("BLOBFX_THRESHOLD", "bright")

        assert apply_env_overrides(TrackerSettings()).threshold == 100

    def test_unknown_variable_ignored(self, monkeypatch):
        monkeypatch.setenv("BLOBFX_NOT_A_SETTING", "1")

        assert apply_env_overrides(TrackerSettings()) == TrackerSettings().coerced()
