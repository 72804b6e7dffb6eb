"""
Configuration management for blobfx.

Settings are plain dataclasses that round-trip through JSON files, with
optional overrides from BLOBFX_* environment variables.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field, asdict, fields, replace
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

COLOR_MODES = ("solid", "cycle", "random")
MAX_HISTORY_LENGTH = 50

_HEX_COLOR = re.compile(r"^#?[0-9a-fA-F]{6}$")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass
class TrackerSettings:
    """
    Detection, tracking and display settings.

    These are consumed by the processing core but owned by the caller.
    Use coerced() to get a copy with every field pulled into its valid range.
    """
    # CV parameters
    threshold: int = 100        # 0-255
    min_area: float = 100.0     # full-resolution pixels
    blur_size: int = 5          # coerced to odd

    # Visual / organic parameters
    history_length: int = 15    # 0-50
    jitter: float = 0.1         # 0.0-1.0
    drift: float = 0.2          # 0.0-1.0

    # Display
    show_hud: bool = True
    show_trails: bool = True
    show_video: bool = True
    glow: bool = True

    # Colors
    color_mode: str = "solid"   # solid | cycle | random
    base_color: str = "#00f3ff"

    def coerced(self) -> "TrackerSettings":
        """Return a copy with all values clamped to their valid ranges."""
        blur = max(1, int(self.blur_size))
        if blur % 2 == 0:
            blur += 1

        mode = str(self.color_mode).lower()
        if mode not in COLOR_MODES:
            raise ValueError(
                f"Invalid color mode: {self.color_mode}. "
                f"Must be one of {', '.join(COLOR_MODES)}."
            )
        if not _HEX_COLOR.match(self.base_color):
            raise ValueError(f"Invalid base color: {self.base_color}")

        return replace(
            self,
            threshold=int(_clamp(int(self.threshold), 0, 255)),
            min_area=max(0.0, float(self.min_area)),
            blur_size=blur,
            history_length=int(_clamp(int(self.history_length), 0, MAX_HISTORY_LENGTH)),
            jitter=_clamp(float(self.jitter), 0.0, 1.0),
            drift=_clamp(float(self.drift), 0.0, 1.0),
            color_mode=mode,
        )


@dataclass
class ExportOptions:
    """Options for the offline export driver."""
    fps: float = 30.0
    seek_timeout: float = 0.2     # seconds
    bitrate: str = "25M"
    overlays_only: bool = False
    free_running: bool = False


@dataclass
class PreviewOptions:
    """Options for the live preview loop."""
    max_dimension: int = 480
    window_name: str = "blobfx"
    loop: bool = True


@dataclass
class Config:
    """
    Main configuration container.

    Example:
        config = Config.load("blobfx.json")
        processor = FrameProcessor(config.settings)
    """
    settings: TrackerSettings = field(default_factory=TrackerSettings)
    export: ExportOptions = field(default_factory=ExportOptions)
    preview: PreviewOptions = field(default_factory=PreviewOptions)

    @classmethod
    def load(cls, path: str | Path) -> "Config":
        """Load configuration from a JSON file."""
        return load_config(path)

    def save(self, path: str | Path) -> None:
        """Save configuration to a JSON file."""
        save_config(self, path)

    def to_dict(self) -> dict:
        """Convert configuration to a dictionary."""
        return {
            "settings": asdict(self.settings),
            "export": asdict(self.export),
            "preview": asdict(self.preview),
        }


def _from_dict(cls, data: dict[str, Any]):
    """Build a dataclass from a dict, ignoring unknown keys."""
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        logger.warning("Ignoring unknown %s keys: %s", cls.__name__, sorted(unknown))
    return cls(**{k: v for k, v in data.items() if k in known})


def load_config(path: str | Path) -> Config:
    """
    Load configuration from a JSON file.

    Args:
        path: Path to the JSON configuration file

    Returns:
        Parsed Config object with coerced settings

    Raises:
        FileNotFoundError: If the config file doesn't exist
        json.JSONDecodeError: If the JSON is invalid
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r") as f:
        data = json.load(f)

    settings = _from_dict(TrackerSettings, data.get("settings", {}))
    return Config(
        settings=settings.coerced(),
        export=_from_dict(ExportOptions, data.get("export", {})),
        preview=_from_dict(PreviewOptions, data.get("preview", {})),
    )


def save_config(config: Config, path: str | Path) -> None:
    """
    Save configuration to a JSON file.

    Args:
        config: Configuration object to save
        path: Output path for the JSON file
    """
    path = Path(path)
    with open(path, "w") as f:
        json.dump(config.to_dict(), f, indent=2)


def create_example_config(path: str | Path = "blobfx.json") -> Config:
    """
    Create an example configuration file with the default settings.

    Args:
        path: Output path for the example config

    Returns:
        The created Config object
    """
    config = Config()
    config.save(path)
    logger.info("Created example configuration: %s", path)
    return config


def get_env_config(prefix: str = "BLOBFX_") -> dict[str, str]:
    """
    Get configuration from environment variables.

    All environment variables starting with the prefix will be included.
    Variable names are converted to lowercase with the prefix removed.

    Example:
        BLOBFX_JITTER=0.4 -> {"jitter": "0.4"}
    """
    config = {}
    for key, value in os.environ.items():
        if key.startswith(prefix):
            config_key = key[len(prefix):].lower()
            config[config_key] = value
    return config


def _parse_value(raw: str, current: Any) -> Any:
    if isinstance(current, bool):
        return raw.lower() in ("true", "yes", "1", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return raw


def apply_env_overrides(settings: TrackerSettings, prefix: str = "BLOBFX_") -> TrackerSettings:
    """
    Return a copy of settings with matching environment variables applied.

    Values that cannot be parsed are skipped with a warning.
    """
    overrides = {}
    names = {f.name for f in fields(TrackerSettings)}
    for key, raw in get_env_config(prefix).items():
        if key not in names:
            continue
        try:
            overrides[key] = _parse_value(raw, getattr(settings, key))
        except ValueError:
            logger.warning("Ignoring invalid value for %s%s: %r", prefix, key.upper(), raw)
    return replace(settings, **overrides).coerced()
