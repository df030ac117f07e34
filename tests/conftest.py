"""Shared test fixtures: policies, frame geometry and synthetic observations."""

from __future__ import annotations

import pytest

from carassist.config import AlertPolicy
from carassist.pipeline import PipelineCoordinator
from carassist.recording.models import FrameContext, Label, RawObservation


@pytest.fixture
def policy() -> AlertPolicy:
    return AlertPolicy(
        proximity_threshold=0.15,
        proximity_hold_seconds=1.0,
        watched_classes=frozenset({"traffic light"}),
    )


@pytest.fixture
def frame_context() -> FrameContext:
    """640x480 sensor frame, model boxes rotated by 90 degrees."""
    return FrameContext(frame_width=640, frame_height=480, rotation=90)


@pytest.fixture
def coordinator(policy) -> PipelineCoordinator:
    return PipelineCoordinator(policy, palette={"car": (0.0, 0.5, 1.0, 1.0)})


def make_observation(label: str = "car", confidence: float = 0.9,
                     box: tuple = (0.0, 0.0, 0.5, 0.5),
                     extra_labels: tuple = (), origin: str = "bottom-left") -> RawObservation:
    """Observation whose first label is `label`; more labels may follow."""
    labels = (Label(label, confidence),) + tuple(
        Label(name, conf) for name, conf in extra_labels
    )
    return RawObservation(labels=labels, bounding_box=box, origin=origin)


@pytest.fixture
def observation_factory():
    return make_observation
