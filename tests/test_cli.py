"""
Tests for the command line interface.
"""

import argparse
import json
import sys

import pytest

from blobfx.__main__ import build_config, main


def settings_args(**overrides):
    values = dict(
        config=None, threshold=None, min_area=None, blur_size=None,
        history_length=None, jitter=None, drift=None, color_mode=None,
        base_color=None, no_hud=False, no_trails=False, no_glow=False,
        verbose=False,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


class TestBuildConfig:
    """Tests for layering file, environment and CLI settings."""

    def test_defaults(self):
        config = build_config(settings_args())

        assert config.settings.threshold == 100
        assert config.export.fps == 30.0

    def test_cli_overrides_file(self, tmp_path):
        path = tmp_path / "blobfx.json"
        path.write_text(json.dumps({"settings": {"threshold": 50, "jitter": 0.5}}))

        config = build_config(settings_args(config=str(path), threshold=200, no_glow=True))

        assert config.settings.threshold == 200
        assert config.settings.jitter == 0.5
        assert config.settings.glow is False

    def test_env_between_file_and_cli(self, tmp_path, monkeypatch):
        path = tmp_path / "blobfx.json"
        path.write_text(json.dumps({"settings": {"drift": 0.1, "jitter": 0.1}}))
        monkeypatch.setenv("BLOBFX_DRIFT", "0.9")
        monkeypatch.setenv("BLOBFX_JITTER", "0.9")

        config = build_config(settings_args(config=str(path), jitter=0.3))

        assert config.settings.drift == 0.9
        assert config.settings.jitter == 0.3

    def test_overrides_are_coerced(self):
        config = build_config(settings_args(blur_size=8, history_length=500))

        assert config.settings.blur_size == 9
        assert config.settings.history_length == 50


class TestMain:
    """Tests for main() dispatch."""

    def test_no_command_prints_help(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["blobfx"])

        assert main() == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_config_create(self, tmp_path, monkeypatch):
        path = tmp_path / "generated.json"
        monkeypatch.setattr(sys, "argv", ["blobfx", "config", "--create", str(path)])

        assert main() == 0
        assert json.loads(path.read_text())["settings"]["color_mode"] == "solid"

    def test_version(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["blobfx", "-V"])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 0
        assert "blobfx 0.1.0" in capsys.readouterr().out

    def test_invalid_color_mode_rejected(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["blobfx", "export", "in.mp4", "--color-mode", "rainbow"])

        with pytest.raises(SystemExit):
            main()
