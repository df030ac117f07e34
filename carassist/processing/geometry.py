"""Model-space to display-space box mapping: rotation, mirroring, scaling."""

from __future__ import annotations

import math

from carassist.recording.models import FrameContext, InvalidGeometry, Rect

Box = tuple[float, float, float, float]


def rotate_normalized(box: Box, rotation: int) -> Box:
    """Rotate a normalized (x, y, w, h) box by a multiple of 90 degrees."""
    x, y, w, h = box
    quarter = (rotation % 360) // 90
    if quarter == 0:
        return x, y, w, h
    if quarter == 1:
        # Portrait model input from a landscape sensor
        return 1.0 - y - h, x, h, w
    if quarter == 2:
        return 1.0 - x - w, 1.0 - y - h, w, h
    return y, 1.0 - x - w, h, w


def flip_vertical(box: Box) -> Box:
    """Switch a normalized box between top-left and bottom-left origin."""
    x, y, w, h = box
    return x, 1.0 - y - h, w, h


def to_screen_rect(normalized_box: Box, frame_context: FrameContext) -> Rect:
    """Map a normalized model box into frame pixel coordinates.

    The result is not clamped to the frame; boxes near the edges may
    legitimately extend past it.
    """
    if len(normalized_box) != 4:
        raise InvalidGeometry(f"expected (x, y, w, h), got {normalized_box!r}")
    if not all(math.isfinite(v) for v in normalized_box):
        raise InvalidGeometry(f"non-finite box: {normalized_box!r}")
    _, _, w, h = normalized_box
    if w < 0 or h < 0:
        raise InvalidGeometry(f"negative box extent: {w} x {h}")
    if frame_context.frame_width <= 0 or frame_context.frame_height <= 0:
        raise InvalidGeometry("frame has zero size")

    x, y, w, h = rotate_normalized(normalized_box, frame_context.rotation)
    if frame_context.mirror:
        x = 1.0 - x - w

    fw = frame_context.frame_width
    fh = frame_context.frame_height
    return Rect(x=x * fw, y=y * fh, width=w * fw, height=h * fh)


def aspect_fill_scale(frame_size: tuple[float, float],
                      view_size: tuple[float, float]) -> float:
    """Scale that makes the frame cover the whole view (overflow is cropped)."""
    fw, fh = frame_size
    vw, vh = view_size
    if fw <= 0 or fh <= 0 or vw <= 0 or vh <= 0:
        raise InvalidGeometry(
            f"sizes must be positive: frame={frame_size} view={view_size}"
        )
    return max(vw / fw, vh / fh)


def to_view_rect(rect: Rect, frame_size: tuple[float, float],
                 view_size: tuple[float, float]) -> Rect:
    """Place a frame-space rect into a view using aspect-fill, centered."""
    scale = aspect_fill_scale(frame_size, view_size)
    offset_x = (view_size[0] - frame_size[0] * scale) / 2.0
    offset_y = (view_size[1] - frame_size[1] * scale) / 2.0
    return Rect(
        x=rect.x * scale + offset_x,
        y=rect.y * scale + offset_y,
        width=rect.width * scale,
        height=rect.height * scale,
    )
