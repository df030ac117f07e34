"""Per-frame orchestrator: normalize -> evaluate -> debounce -> render."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional

from carassist.config import AlertPolicy
from carassist.processing.debouncer import AlertDebouncer
from carassist.processing.normalizer import normalize
from carassist.processing.policy import evaluate
from carassist.recording.models import (
    Color,
    Command,
    Detection,
    DrawBox,
    DrawInferenceTimeLabel,
    FrameContext,
    FrameResult,
    PlayAudio,
    ProximityAlert,
    Signal,
)

logger = logging.getLogger(__name__)

DEFAULT_COLOR: Color = (1.0, 0.0, 0.0, 1.0)


def format_box_label(detection: Detection) -> str:
    """Label, confidence and pixel size, one per line."""
    return "%s\n%.1f%%\nSize: %.2f x %.2f" % (
        detection.label.title(),
        detection.confidence * 100,
        detection.box.width,
        detection.box.height,
    )


def format_inference_time(seconds: float) -> str:
    return "Inference time: %.1f ms" % (seconds * 1000)


class PipelineCoordinator:
    """Drives one session's frames through the alerting stages.

    One instance per capture session; frames must be delivered serially.
    """

    def __init__(self, policy: AlertPolicy,
                 palette: Optional[dict[str, Color]] = None,
                 default_color: Color = DEFAULT_COLOR):
        self._policy = policy
        self._palette = dict(palette or {})
        self._default_color = default_color
        self._debouncer = AlertDebouncer(policy)

        # Alert subscribers (history logging, websocket push)
        self._event_callbacks: list[Callable[[dict], Any]] = []

        # Stats
        self._frame_count = 0
        self._alert_count = 0

    @property
    def policy(self) -> AlertPolicy:
        return self._policy

    @property
    def debouncer(self) -> AlertDebouncer:
        return self._debouncer

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "frame_count": self._frame_count,
            "alert_count": self._alert_count,
            "active_channels": sorted(
                key for key, state in self._debouncer.snapshot().items()
                if state.active
            ),
        }

    def add_event_callback(self, callback: Callable[[dict], Any]) -> None:
        """Register a callback invoked for every alert that starts a cue."""
        self._event_callbacks.append(callback)

    def color_for(self, label: str) -> Color:
        return self._palette.get(label, self._default_color)

    def process_frame(self, raw_observations: Iterable[object],
                      frame_context: FrameContext, now: float,
                      inference_time: Optional[float] = None) -> FrameResult:
        """Process one frame. Never raises on malformed observations.

        `inference_time` is the model run time in seconds, shown as a label
        when the frame has at least one detection.
        """
        if not isinstance(frame_context, FrameContext):
            raise TypeError("frame_context must be a FrameContext")

        self._frame_count += 1
        detections = normalize(raw_observations or (), frame_context)

        result = FrameResult()
        for detection in detections:
            result.render.append(DrawBox(
                rect=detection.box,
                color=self.color_for(detection.label),
                label_text=format_box_label(detection),
            ))
        if detections and inference_time is not None:
            result.render.append(
                DrawInferenceTimeLabel(text=format_inference_time(inference_time))
            )

        for event in evaluate(detections, self._policy):
            commands = self._debouncer.submit(event, now)
            result.commands.extend(commands)
            for command in commands:
                if isinstance(command, PlayAudio):
                    self._publish_alert(event, command.cue_id, now)

        return result

    def handle_signal(self, signal: Signal) -> list[Command]:
        """Feed a collaborator signal (playback finished/failed, hold elapsed)."""
        return self._debouncer.handle(signal)

    def close(self) -> None:
        """Tear down the session state."""
        self._debouncer.reset()
        self._event_callbacks.clear()

    def _publish_alert(self, event, cue_id: str, now: float) -> None:
        """Notify subscribers of an alert that started playback."""
        self._alert_count += 1
        event_data = {
            "type": "alert",
            "kind": "proximity" if isinstance(event, ProximityAlert) else "class",
            "label": event.label,
            "area_ratio": event.area_ratio if isinstance(event, ProximityAlert) else None,
            "cue": cue_id,
            "timestamp": now,
        }
        logger.info("Alert %s for %r (cue %r)",
                    event_data["kind"], event.label, cue_id)

        for callback in self._event_callbacks:
            try:
                callback(event_data)
            except Exception:
                logger.exception("Error in event callback")
