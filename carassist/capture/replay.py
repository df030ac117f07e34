"""Offline replay: recorded detections plus a simulated audio/UI collaborator."""

from __future__ import annotations

import heapq
import itertools
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Optional

from carassist.pipeline import PipelineCoordinator
from carassist.recording.models import (
    Command,
    FrameContext,
    FrameResult,
    HideVisualAlert,
    PlayAudio,
    PlaybackFailed,
    PlaybackFinished,
    RawObservation,
    ShowVisualAlert,
    Signal,
    VisualHoldElapsed,
)

logger = logging.getLogger(__name__)


@dataclass
class FrameRecord:
    """One recorded frame of model output."""
    timestamp: float
    observations: list[RawObservation] = field(default_factory=list)
    inference_time: Optional[float] = None     # seconds
    frame_number: int = 0


def parse_frame(data: dict, frame_number: int = 0) -> FrameRecord:
    """Build a FrameRecord from one decoded JSON line.

    Observations that cannot be decoded are logged and dropped; the rest of
    the frame is kept.
    """
    if not isinstance(data, dict):
        raise TypeError(f"frame must be an object, got {type(data).__name__}")
    items = data.get("observations") or []
    if not isinstance(items, list):
        logger.warning("Frame %d: observations is not a list, ignoring", frame_number)
        items = []
    observations = []
    for index, item in enumerate(items):
        try:
            observations.append(RawObservation.from_dict(item))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Frame %d: dropping observation #%d: %s",
                           frame_number, index, exc)
    inference_ms = data.get("inference_ms")
    return FrameRecord(
        timestamp=float(data["t"]),
        observations=observations,
        inference_time=float(inference_ms) / 1000.0 if inference_ms is not None else None,
        frame_number=frame_number,
    )


def read_frames(path: str | Path) -> Iterator[FrameRecord]:
    """Yield frames from a JSON-lines file, skipping malformed lines."""
    with open(path, "r") as f:
        frame_number = 0
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
                record = parse_frame(data, frame_number)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("%s:%d: skipping malformed frame: %s",
                               path, line_number, exc)
                continue
            yield record
            frame_number += 1


class SimulatedCollaborator:
    """Stands in for the audio player and tint view during replay.

    Playback "finishes" after the cue's configured duration and the tint
    hold elapses after the duration carried by ShowVisualAlert. Cues not in
    `available_cues` fail immediately, as a missing sound file would.
    """

    def __init__(self, cue_durations: Optional[dict[str, float]] = None,
                 default_cue_duration: float = 1.0,
                 available_cues: Optional[Iterable[str]] = None):
        self._cue_durations = dict(cue_durations or {})
        self._default_cue_duration = default_cue_duration
        self._available = set(available_cues) if available_cues is not None else None
        self._pending: list[tuple[float, int, Signal]] = []
        self._seq = itertools.count()
        self._visual_visible = False
        self.played: list[str] = []

    @property
    def visual_visible(self) -> bool:
        return self._visual_visible

    def apply(self, commands: Iterable[Command], now: float) -> None:
        """Execute commands and schedule the signals they lead to."""
        for command in commands:
            if isinstance(command, PlayAudio):
                if self._available is not None and command.cue_id not in self._available:
                    logger.warning("Sound cue %r not found", command.cue_id)
                    self._schedule(now, PlaybackFailed(command.cue_id, "cue not found"))
                    continue
                self.played.append(command.cue_id)
                duration = self._cue_durations.get(command.cue_id,
                                                   self._default_cue_duration)
                self._schedule(now + duration, PlaybackFinished(command.cue_id))
            elif isinstance(command, ShowVisualAlert):
                self._visual_visible = True
                self._schedule(now + command.hold_seconds, VisualHoldElapsed())
            elif isinstance(command, HideVisualAlert):
                self._visual_visible = False

    def due(self, now: float) -> list[Signal]:
        """Pop every signal scheduled at or before `now`, oldest first."""
        signals = []
        while self._pending and self._pending[0][0] <= now:
            signals.append(heapq.heappop(self._pending)[2])
        return signals

    def _schedule(self, at: float, signal: Signal) -> None:
        heapq.heappush(self._pending, (at, next(self._seq), signal))


@dataclass
class ReplayStep:
    """Outcome of replaying one frame."""
    record: FrameRecord
    result: FrameResult
    signal_commands: list[Command]      # commands caused by inbound signals
    visual_alert: bool                  # tint visible after this frame


def _deliver_due(coordinator: PipelineCoordinator,
                 collaborator: SimulatedCollaborator, now: float) -> list[Command]:
    delivered: list[Command] = []
    for signal in collaborator.due(now):
        commands = coordinator.handle_signal(signal)
        collaborator.apply(commands, now)
        delivered.extend(commands)
    return delivered


def replay(coordinator: PipelineCoordinator, frame_context: FrameContext,
           frames: Iterable[FrameRecord],
           collaborator: SimulatedCollaborator) -> Iterator[ReplayStep]:
    """Run recorded frames through the pipeline, serially, in timestamp order.

    Signals that fell due before a frame's timestamp are delivered before
    that frame is processed.
    """
    for record in frames:
        now = record.timestamp
        signal_commands = _deliver_due(coordinator, collaborator, now)

        result = coordinator.process_frame(
            record.observations, frame_context, now,
            inference_time=record.inference_time,
        )
        collaborator.apply(result.commands, now)
        # Failures are reported right away
        signal_commands.extend(_deliver_due(coordinator, collaborator, now))
        yield ReplayStep(
            record=record,
            result=result,
            signal_commands=signal_commands,
            visual_alert=collaborator.visual_visible,
        )
