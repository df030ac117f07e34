"""Raw model observations -> canonical Detection records."""

from __future__ import annotations

import logging
from typing import Iterable

from carassist.processing.geometry import flip_vertical, to_screen_rect
from carassist.recording.models import (
    ORIGIN_BOTTOM_LEFT,
    ORIGIN_TOP_LEFT,
    Detection,
    FrameContext,
    InvalidGeometry,
    RawObservation,
)

logger = logging.getLogger(__name__)


def top_label(observation: RawObservation):
    """Highest-confidence label; the first one wins a tie."""
    if not observation.labels:
        return None
    return max(observation.labels, key=lambda lbl: lbl.confidence)


def _to_detection(observation: RawObservation,
                  frame_context: FrameContext) -> Detection | None:
    label = top_label(observation)
    if label is None:
        return None

    box = observation.bounding_box
    if observation.origin == ORIGIN_TOP_LEFT:
        box = flip_vertical(box)
    elif observation.origin != ORIGIN_BOTTOM_LEFT:
        raise InvalidGeometry(f"unknown box origin: {observation.origin!r}")

    rect = to_screen_rect(box, frame_context)
    area_ratio = min(1.0, rect.area / frame_context.area)
    return Detection(
        label=label.identifier,
        confidence=label.confidence,
        box=rect,
        area_ratio=area_ratio,
    )


def normalize(raw_observations: Iterable[object],
              frame_context: FrameContext) -> list[Detection]:
    """Convert one frame's observations into detections, preserving order.

    Anything that is not a RawObservation (e.g. a whole-image classification
    from the same model run) is ignored. Observations without labels are
    dropped, and observations with malformed geometry are logged and skipped
    without affecting the rest of the frame.
    """
    detections = []
    for index, observation in enumerate(raw_observations):
        if not isinstance(observation, RawObservation):
            logger.debug("Ignoring non-object observation #%d: %r",
                         index, type(observation).__name__)
            continue
        try:
            detection = _to_detection(observation, frame_context)
        except (ValueError, TypeError) as exc:
            logger.warning("Skipping observation #%d: %s", index, exc)
            continue
        if detection is not None:
            detections.append(detection)
    return detections
