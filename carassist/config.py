"""YAML configuration loader with dataclass mapping."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from carassist.recording.models import (
    VISUAL_CHANNEL,
    Color,
    ConfigurationError,
    FrameContext,
)

DEFAULT_CONFIG_PATH = "config/default.yaml"


@dataclass
class PolicyConfig:
    proximity_threshold: float = 0.15      # fraction of frame area
    proximity_hold_seconds: float = 1.0    # visual tint duration
    watched_classes: list[str] = field(default_factory=lambda: ["traffic light"])
    proximity_cue: str = "alert"
    class_cue: str = "red"


@dataclass
class FrameConfig:
    frame_width: int = 640
    frame_height: int = 480
    rotation: int = 90
    mirror: bool = False


@dataclass
class PaletteConfig:
    colors: dict[str, list[float]] = field(default_factory=lambda: {
        "person": [0.0, 1.0, 0.0, 1.0],
        "bicycle": [0.0, 1.0, 1.0, 1.0],
        "car": [0.0, 0.5, 1.0, 1.0],
        "motorcycle": [1.0, 0.5, 0.0, 1.0],
        "bus": [1.0, 1.0, 0.0, 1.0],
        "truck": [0.5, 0.0, 1.0, 1.0],
        "traffic light": [1.0, 0.0, 1.0, 1.0],
        "stop sign": [1.0, 1.0, 1.0, 1.0],
    })
    default_color: list[float] = field(default_factory=lambda: [1.0, 0.0, 0.0, 1.0])


@dataclass
class AudioConfig:
    cue_durations: dict[str, float] = field(default_factory=lambda: {
        "alert": 1.0,
        "red": 1.0,
    })
    default_cue_duration: float = 1.0


@dataclass
class RecordingConfig:
    db_path: str = "data/db/alerts.db"
    log_dir: str = "data/logs"


@dataclass
class WebConfig:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class AppConfig:
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    frame: FrameConfig = field(default_factory=FrameConfig)
    palette: PaletteConfig = field(default_factory=PaletteConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    recording: RecordingConfig = field(default_factory=RecordingConfig)
    web: WebConfig = field(default_factory=WebConfig)


@dataclass(frozen=True)
class AlertPolicy:
    """Validated, immutable policy used by the alert rules and debouncer."""
    proximity_threshold: float = 0.15
    proximity_hold_seconds: float = 1.0
    watched_classes: frozenset[str] = frozenset({"traffic light"})
    proximity_cue: str = "alert"
    class_cue: str = "red"

    def __post_init__(self):
        if not 0.0 <= self.proximity_threshold < 1.0:
            raise ConfigurationError(
                f"proximity_threshold must be in [0, 1), got {self.proximity_threshold}"
            )
        if not (math.isfinite(self.proximity_hold_seconds)
                and self.proximity_hold_seconds > 0):
            raise ConfigurationError(
                "proximity_hold_seconds must be a positive finite number, "
                f"got {self.proximity_hold_seconds}"
            )
        if any(not str(name).strip() for name in self.watched_classes):
            raise ConfigurationError("watched_classes may not contain blank names")
        if not self.proximity_cue.strip() or not self.class_cue.strip():
            raise ConfigurationError("cue identifiers may not be blank")
        if VISUAL_CHANNEL in (self.proximity_cue, self.class_cue):
            raise ConfigurationError(f"cue id {VISUAL_CHANNEL!r} is reserved for the tint")
        if self.proximity_cue == self.class_cue:
            raise ConfigurationError(
                f"proximity_cue and class_cue must differ, both are {self.proximity_cue!r}"
            )
        # Matching is case-insensitive; store lowercase once.
        object.__setattr__(self, "watched_classes",
                           frozenset(str(n).strip().lower() for n in self.watched_classes))


def _apply_dict(dc: object, data: dict) -> None:
    """Apply dictionary values onto a dataclass instance, ignoring unknown keys."""
    for key, value in data.items():
        if hasattr(dc, key):
            setattr(dc, key, value)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from a YAML file, falling back to defaults."""
    config = AppConfig()

    if path is None:
        path = os.environ.get("CARASSIST_CONFIG", DEFAULT_CONFIG_PATH)

    path = Path(path)
    if path.exists():
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}

        section_map = {
            "policy": config.policy,
            "frame": config.frame,
            "palette": config.palette,
            "audio": config.audio,
            "recording": config.recording,
            "web": config.web,
        }

        for section_name, dc_instance in section_map.items():
            if section_name in raw and isinstance(raw[section_name], dict):
                _apply_dict(dc_instance, raw[section_name])

    # Environment variable overrides
    env_host = os.environ.get("WEB_HOST")
    if env_host:
        config.web.host = env_host

    env_port = os.environ.get("WEB_PORT")
    if env_port:
        config.web.port = int(env_port)

    return config


def build_policy(config: AppConfig) -> AlertPolicy:
    """Validate the policy section. Raises ConfigurationError."""
    cfg = config.policy
    watched = cfg.watched_classes
    if isinstance(watched, str):
        watched = [watched]
    try:
        return AlertPolicy(
            proximity_threshold=float(cfg.proximity_threshold),
            proximity_hold_seconds=float(cfg.proximity_hold_seconds),
            watched_classes=frozenset(watched or ()),
            proximity_cue=str(cfg.proximity_cue),
            class_cue=str(cfg.class_cue),
        )
    except (TypeError, ValueError) as exc:
        if isinstance(exc, ConfigurationError):
            raise
        raise ConfigurationError(f"invalid policy section: {exc}") from exc


def build_frame_context(config: AppConfig) -> FrameContext:
    """Build the session geometry. Raises InvalidGeometry for impossible frames."""
    cfg = config.frame
    return FrameContext(
        frame_width=float(cfg.frame_width),
        frame_height=float(cfg.frame_height),
        rotation=int(cfg.rotation),
        mirror=bool(cfg.mirror),
    )


def build_palette(config: AppConfig) -> tuple[dict[str, Color], Color]:
    """Return (label -> color, default color), validating RGBA values."""
    def to_color(name: str, value) -> Color:
        try:
            rgba = tuple(float(v) for v in value)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"palette color {name!r} is not numeric") from exc
        if len(rgba) == 3:
            rgba = rgba + (1.0,)
        if len(rgba) != 4 or not all(0.0 <= v <= 1.0 for v in rgba):
            raise ConfigurationError(
                f"palette color {name!r} must be 3 or 4 values in [0, 1]"
            )
        return rgba

    colors = {label: to_color(label, value)
              for label, value in (config.palette.colors or {}).items()}
    return colors, to_color("default_color", config.palette.default_color)
