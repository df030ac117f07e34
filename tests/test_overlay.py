"""Tests for the reference overlay renderer."""

from __future__ import annotations

import numpy as np

from carassist.processing.overlay import apply_tint, draw_instructions, to_bgr
from carassist.recording.models import DrawBox, DrawInferenceTimeLabel, Rect

GREEN = (0.0, 1.0, 0.0, 1.0)


def blank(width: int = 640, height: int = 480) -> np.ndarray:
    return np.zeros((height, width, 3), dtype=np.uint8)


class TestOverlay:
    def test_to_bgr(self):
        """RGBA floats become OpenCV BGR ints."""
        assert to_bgr((1.0, 0.5, 0.0, 1.0)) == (0, 128, 255)

    def test_draws_box_edges(self):
        """Box edges are drawn in the instruction colour."""
        box = DrawBox(rect=Rect(100, 100, 200, 100), color=GREEN, label_text="Car")
        out = draw_instructions(blank(), [box], (640, 480))
        assert tuple(out[100, 200]) == (0, 255, 0)
        assert tuple(out[150, 200]) == (0, 0, 0)

    def test_source_frame_untouched(self):
        """Drawing works on a copy of the input frame."""
        frame = blank()
        box = DrawBox(rect=Rect(10, 10, 50, 50), color=GREEN, label_text="x")
        draw_instructions(frame, [box], (640, 480), visual_alert=True)
        assert not frame.any()

    def test_scales_into_larger_view(self):
        """Boxes are aspect-filled into a larger output frame."""
        box = DrawBox(rect=Rect(100, 100, 200, 100), color=GREEN, label_text="")
        out = draw_instructions(blank(1280, 960), [box], (640, 480))
        assert tuple(out[200, 400]) == (0, 255, 0)

    def test_tint_is_half_red(self):
        """The tint blends 50% red over the frame."""
        frame = apply_tint(blank(4, 4))
        b, g, r = frame[0, 0]
        assert b == 0 and g == 0
        assert 127 <= r <= 128

    def test_visual_alert_tints_frame(self):
        """A visual alert tints the whole frame."""
        out = draw_instructions(blank(), [], (640, 480), visual_alert=True)
        assert out[240, 320, 2] > 0

    def test_inference_label_drawn(self):
        """The inference-time label is painted near the bottom."""
        out = draw_instructions(blank(), [DrawInferenceTimeLabel("Inference time: 9.0 ms")],
                                (640, 480))
        assert out[400:430].any()

    def test_grayscale_input(self):
        """Grayscale frames are converted to BGR before drawing."""
        gray = np.zeros((480, 640), dtype=np.uint8)
        out = draw_instructions(gray, [], (640, 480))
        assert out.shape == (480, 640, 3)
