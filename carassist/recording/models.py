"""Shared data models for the detection and alerting pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Union

# RGBA, each channel in [0, 1]
Color = tuple[float, float, float, float]

VISUAL_CHANNEL = "visual"

ORIGIN_BOTTOM_LEFT = "bottom-left"
ORIGIN_TOP_LEFT = "top-left"


class CarAssistError(Exception):
    """Base class for pipeline errors."""


class InvalidGeometry(CarAssistError, ValueError):
    """Malformed box or frame dimensions."""


class ConfigurationError(CarAssistError, ValueError):
    """Invalid policy or session configuration."""


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle, origin plus extent."""
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        values = (self.x, self.y, self.width, self.height)
        if not all(math.isfinite(v) for v in values):
            raise InvalidGeometry(f"non-finite rect: {values}")
        if self.width < 0 or self.height < 0:
            raise InvalidGeometry(
                f"negative extent: {self.width} x {self.height}"
            )

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height


@dataclass(frozen=True)
class FrameContext:
    """Per-session geometry: frame size in pixels, rotation, mirroring."""
    frame_width: float
    frame_height: float
    rotation: int = 90          # degrees, model space -> display space
    mirror: bool = False

    def __post_init__(self):
        if not (math.isfinite(self.frame_width) and math.isfinite(self.frame_height)):
            raise InvalidGeometry("frame dimensions must be finite")
        if self.frame_width <= 0 or self.frame_height <= 0:
            raise InvalidGeometry(
                f"frame must have a positive size, got "
                f"{self.frame_width} x {self.frame_height}"
            )
        if self.rotation % 90 != 0:
            raise InvalidGeometry(
                f"rotation must be a multiple of 90 degrees, got {self.rotation}"
            )

    @property
    def area(self) -> float:
        return self.frame_width * self.frame_height


@dataclass(frozen=True)
class Label:
    """One candidate classification of an observation."""
    identifier: str
    confidence: float


@dataclass(frozen=True)
class RawObservation:
    """One raw model output: candidate labels plus a normalized box."""
    labels: tuple[Label, ...]
    bounding_box: tuple[float, float, float, float]   # x, y, w, h in [0, 1]
    origin: str = ORIGIN_BOTTOM_LEFT

    @classmethod
    def from_dict(cls, data: dict) -> "RawObservation":
        """Build from the JSON shape used by the replay files and web sessions.

        Raises TypeError when the observation or one of its labels is not a
        JSON object.
        """
        if not isinstance(data, dict):
            raise TypeError(f"observation must be an object, got {type(data).__name__}")
        labels = []
        for item in data.get("labels") or []:
            if not isinstance(item, dict):
                raise TypeError(f"label must be an object, got {type(item).__name__}")
            labels.append(Label(identifier=str(item["identifier"]),
                                confidence=float(item.get("confidence", 0.0))))
        x, y, w, h = (float(v) for v in data["bounding_box"])
        return cls(
            labels=tuple(labels),
            bounding_box=(x, y, w, h),
            origin=data.get("origin", ORIGIN_BOTTOM_LEFT),
        )


@dataclass(frozen=True)
class Detection:
    """Canonical detection after label selection and coordinate transform."""
    label: str
    confidence: float
    box: Rect                 # display pixel space
    area_ratio: float         # box area / frame area, in [0, 1]


# --- Alert events (policy output) ---

@dataclass(frozen=True)
class ProximityAlert:
    label: str
    area_ratio: float


@dataclass(frozen=True)
class ClassAlert:
    label: str


AlertEvent = Union[ProximityAlert, ClassAlert]


@dataclass
class AlertChannelState:
    """Debounce state for one alert channel."""
    active: bool = False
    activated_at: Optional[float] = None


# --- Commands to the audio / UI collaborator ---

@dataclass(frozen=True)
class PlayAudio:
    cue_id: str


@dataclass(frozen=True)
class ShowVisualAlert:
    hold_seconds: float


@dataclass(frozen=True)
class HideVisualAlert:
    pass


Command = Union[PlayAudio, ShowVisualAlert, HideVisualAlert]


# --- Inbound signals from the collaborator ---

@dataclass(frozen=True)
class PlaybackFinished:
    cue_id: str


@dataclass(frozen=True)
class PlaybackFailed:
    cue_id: str
    reason: str = ""


@dataclass(frozen=True)
class VisualHoldElapsed:
    pass


Signal = Union[PlaybackFinished, PlaybackFailed, VisualHoldElapsed]


# --- Render instructions (overlay renderer input) ---

@dataclass(frozen=True)
class DrawBox:
    rect: Rect
    color: Color
    label_text: str


@dataclass(frozen=True)
class DrawInferenceTimeLabel:
    text: str


RenderInstruction = Union[DrawBox, DrawInferenceTimeLabel]


@dataclass
class FrameResult:
    """Everything the pipeline produced for one frame."""
    render: list[RenderInstruction] = field(default_factory=list)
    commands: list[Command] = field(default_factory=list)

    def __iter__(self):
        # Allows `render, commands = coordinator.process_frame(...)`
        return iter((self.render, self.commands))


# --- JSON shapes used by the web session and replay output ---

def rect_to_dict(rect: Rect) -> dict:
    return {"x": rect.x, "y": rect.y, "width": rect.width, "height": rect.height}


def instruction_to_dict(instruction: RenderInstruction) -> dict:
    if isinstance(instruction, DrawBox):
        return {
            "type": "draw_box",
            "rect": rect_to_dict(instruction.rect),
            "color": list(instruction.color),
            "label_text": instruction.label_text,
        }
    if isinstance(instruction, DrawInferenceTimeLabel):
        return {"type": "draw_inference_time_label", "text": instruction.text}
    raise TypeError(f"unknown render instruction: {instruction!r}")


def command_to_dict(command: Command) -> dict:
    if isinstance(command, PlayAudio):
        return {"type": "play_audio", "cue": command.cue_id}
    if isinstance(command, ShowVisualAlert):
        return {"type": "show_visual_alert", "hold_seconds": command.hold_seconds}
    if isinstance(command, HideVisualAlert):
        return {"type": "hide_visual_alert"}
    raise TypeError(f"unknown command: {command!r}")


def signal_from_dict(data: dict) -> Signal:
    """Decode an inbound collaborator signal. Raises ValueError if unknown."""
    kind = data.get("type")
    if kind == "playback_finished":
        return PlaybackFinished(cue_id=str(data["cue"]))
    if kind == "playback_failed":
        return PlaybackFailed(cue_id=str(data["cue"]),
                              reason=str(data.get("reason", "")))
    if kind == "visual_hold_elapsed":
        return VisualHoldElapsed()
    raise ValueError(f"unknown signal type: {kind!r}")


def frame_result_to_dict(result: FrameResult) -> dict:
    return {
        "render": [instruction_to_dict(i) for i in result.render],
        "commands": [command_to_dict(c) for c in result.commands],
    }
