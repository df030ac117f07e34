"""Per-frame alert rules: proximity by area ratio, and watched classes."""

from __future__ import annotations

from typing import Iterable

from carassist.config import AlertPolicy
from carassist.recording.models import (
    AlertEvent,
    ClassAlert,
    Detection,
    ProximityAlert,
)


def is_proximate(detection: Detection, policy: AlertPolicy) -> bool:
    """Strictly larger than the threshold; equality does not alert."""
    return detection.area_ratio > policy.proximity_threshold


def matches_watched_class(label: str, policy: AlertPolicy) -> bool:
    """Case-insensitive substring match against the watched classes.

    Containment rather than equality, so "traffic light" also matches a
    label such as "traffic light (red)".
    """
    lowered = label.lower()
    return any(name in lowered for name in policy.watched_classes)


def evaluate(detections: Iterable[Detection],
             policy: AlertPolicy) -> list[AlertEvent]:
    """Map one frame's detections to alert events.

    Stateless: every qualifying detection yields its events, in detection
    order, proximity before class for the same detection. Suppressing
    repeats over time is the debouncer's job.
    """
    events: list[AlertEvent] = []
    for detection in detections:
        if is_proximate(detection, policy):
            events.append(ProximityAlert(label=detection.label,
                                         area_ratio=detection.area_ratio))
        if matches_watched_class(detection.label, policy):
            events.append(ClassAlert(label=detection.label))
    return events
