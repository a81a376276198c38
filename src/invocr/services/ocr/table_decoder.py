"""Decoding of table-structure model output into cell boxes."""

import logging
from collections.abc import Sequence

import numpy as np

from invocr.constants import NORMALIZED_COORD_LIMIT, TABLE_NORMALIZATION_PROBE

from .models import Box

logger = logging.getLogger(__name__)


def decode_table_boxes(
    data: Sequence[float] | np.ndarray,
    shape: Sequence[int],
    scale_x: float,
    scale_y: float,
    original_width: int,
    original_height: int,
) -> list[Box]:
    """Decode ``[..., N, stride]`` box rows ``(l, t, r, b[, score, ...])``.

    Coordinates are treated as normalized when the largest of the first
    2048 values is at most 1.5; they are then multiplied by the original
    image size. Otherwise they are in detector-input pixels and multiplied
    by ``scale_x`` / ``scale_y``.

    Returns:
        Cell boxes in original-image coordinates, ordered by descending
        score, then top, then left.
    """
    values = np.asarray(data, dtype=np.float32).ravel()
    if len(shape) < 2:
        return []
    stride = int(shape[-1])
    if stride < 4:
        logger.debug(f"Table output stride {stride} is too small")
        return []
    count = values.size // stride
    if count <= 0:
        return []

    normalized = float(values[:TABLE_NORMALIZATION_PROBE].max()) <= NORMALIZED_COORD_LIMIT
    mul_x = original_width if normalized else scale_x
    mul_y = original_height if normalized else scale_y

    rows = values[: count * stride].reshape(count, stride)
    boxes = []
    for row in rows:
        left = _clamp(row[0] * mul_x, original_width)
        top = _clamp(row[1] * mul_y, original_height)
        right = _clamp(row[2] * mul_x, original_width)
        bottom = _clamp(row[3] * mul_y, original_height)
        score = float(row[4]) if stride > 4 else 1.0
        box = Box(left, top, right, bottom, score)
        if box.is_valid:
            boxes.append(box)

    return sorted(boxes, key=lambda box: (-box.score, box.top, box.left))


def _clamp(value: float, upper: int) -> float:
    return float(min(max(float(value), 0.0), float(upper)))
