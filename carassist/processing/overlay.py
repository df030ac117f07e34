"""Reference overlay renderer: paints render instructions onto BGR frames."""

from __future__ import annotations

from typing import Iterable

import cv2
import numpy as np

from carassist.processing.geometry import to_view_rect
from carassist.recording.models import (
    Color,
    DrawBox,
    DrawInferenceTimeLabel,
    RenderInstruction,
)

TINT_COLOR: Color = (1.0, 0.0, 0.0, 0.5)     # red, half transparent
FONT = cv2.FONT_HERSHEY_SIMPLEX


def to_bgr(color: Color) -> tuple[int, int, int]:
    """RGBA floats in [0, 1] -> OpenCV BGR ints."""
    r, g, b = color[:3]
    return int(round(b * 255)), int(round(g * 255)), int(round(r * 255))


def apply_tint(frame: np.ndarray, color: Color = TINT_COLOR) -> np.ndarray:
    """Blend a solid color over the whole frame in-place."""
    alpha = float(color[3])
    overlay = np.empty_like(frame)
    overlay[:] = to_bgr(color)
    frame[:] = cv2.addWeighted(overlay, alpha, frame, 1.0 - alpha, 0)
    return frame


def _draw_box(frame: np.ndarray, instruction: DrawBox,
              frame_size: tuple[float, float]) -> None:
    h, w = frame.shape[:2]
    rect = to_view_rect(instruction.rect, frame_size, (w, h))
    color = to_bgr(instruction.color)
    p1 = (int(rect.x), int(rect.y))
    p2 = (int(rect.max_x), int(rect.max_y))
    cv2.rectangle(frame, p1, p2, color, 2)

    # Multi-line label above the box's top-left corner
    lines = instruction.label_text.split("\n")
    line_height = 14
    y = max(line_height, p1[1] - line_height * (len(lines) - 1) - 4)
    for line in lines:
        cv2.putText(frame, line, (p1[0] + 2, y), FONT, 0.4, color, 1, cv2.LINE_AA)
        y += line_height


def _draw_inference_time(frame: np.ndarray,
                         instruction: DrawInferenceTimeLabel) -> None:
    h, w = frame.shape[:2]
    (text_w, text_h), _ = cv2.getTextSize(instruction.text, FONT, 0.45, 1)
    x = max(0, (w - text_w) // 2)
    y = h - 60
    cv2.rectangle(frame, (x - 6, y - text_h - 6), (x + text_w + 6, y + 6),
                  (255, 255, 255), -1)
    cv2.putText(frame, instruction.text, (x, y), FONT, 0.45, (0, 0, 0), 1,
                cv2.LINE_AA)


def draw_instructions(frame: np.ndarray,
                      instructions: Iterable[RenderInstruction],
                      frame_size: tuple[float, float],
                      visual_alert: bool = False) -> np.ndarray:
    """Return a copy of `frame` with the overlay painted on.

    `frame_size` is the pixel space the instructions are expressed in; the
    overlay is aspect-filled into the actual frame dimensions. Instructions
    are drawn in order, so later boxes sit on top.
    """
    annotated = frame.copy()
    if annotated.ndim == 2:
        annotated = cv2.cvtColor(annotated, cv2.COLOR_GRAY2BGR)

    if visual_alert:
        apply_tint(annotated)

    for instruction in instructions:
        if isinstance(instruction, DrawBox):
            _draw_box(annotated, instruction, frame_size)
        elif isinstance(instruction, DrawInferenceTimeLabel):
            _draw_inference_time(annotated, instruction)
    return annotated
