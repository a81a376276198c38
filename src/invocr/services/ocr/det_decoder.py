"""
Detection-map decoding.

Turns the per-pixel text probability map of a DB-style detector into
axis-aligned boxes. The same decoder serves page-level text-line detection
and table-cell detection; only the model and the threshold differ.

Steps:
1. Pick the spatial axes of the output tensor (``[N,1,H,W]``, ``[N,H,W,1]``
   or ``[N,H,W]``).
2. Label 8-connected components of pixels at or above the threshold.
3. Drop components below the minimum pixel area.
4. Map each bounding rectangle from map coordinates to detector-input
   coordinates, then to original-image coordinates, and clamp it.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import cv2
import numpy as np

from invocr.constants import DET_MIN_AREA_PX, DET_PROB_THRESHOLD

from .models import Box

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbabilityMap:
    """Row-major probability map of shape (height, width)."""

    data: np.ndarray

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def width(self) -> int:
        return int(self.data.shape[1])


def probability_map(
    data: Sequence[float] | np.ndarray, shape: Sequence[int]
) -> ProbabilityMap | None:
    """Extract the first probability map from a detector output tensor.

    The channel axis is told apart from the spatial axes by checking which
    dimension equals 1.

    Returns:
        The map, or None for unsupported ranks or too little data.
    """
    values = np.asarray(data, dtype=np.float32).ravel()
    shape = [int(d) for d in shape]
    if len(shape) == 4 and shape[1] == 1:
        height, width = shape[2], shape[3]
    elif len(shape) == 4 and shape[3] == 1:
        height, width = shape[1], shape[2]
    elif len(shape) == 3:
        height, width = shape[1], shape[2]
    else:
        logger.debug(f"Unsupported detector output shape {shape}")
        return None

    if height <= 0 or width <= 0 or values.size < height * width:
        logger.debug(f"Detector output too small for shape {shape}: {values.size} values")
        return None
    return ProbabilityMap(values[: height * width].reshape(height, width))


def decode_boxes(
    prob_map: ProbabilityMap,
    resize_width: int,
    resize_height: int,
    scale_x: float,
    scale_y: float,
    original_width: int,
    original_height: int,
    threshold: float = DET_PROB_THRESHOLD,
    min_area: int = DET_MIN_AREA_PX,
) -> list[Box]:
    """Extract boxes from a probability map.

    Args:
        prob_map: Detector probability map
        resize_width: Width of the detector input the map was computed from
        resize_height: Height of the detector input
        scale_x: Original width / resize width
        scale_y: Original height / resize height
        original_width: Width of the image the boxes refer to
        original_height: Height of the image the boxes refer to
        threshold: Pixels with probability >= threshold are text
        min_area: Components with fewer pixels are discarded as noise

    Returns:
        Boxes in original-image coordinates, sorted by descending score.
        The score of a box is the probability at the first pixel of its
        component in row-major order.
    """
    if prob_map.width == 0 or prob_map.height == 0:
        return []

    prob = prob_map.data
    binary = (prob >= threshold).astype(np.uint8)
    if not binary.any():
        return []

    num_labels, labels, stats, _ = cv2.connectedComponentsWithStats(binary, connectivity=8)

    # First pixel of each component in raster order (the flood-fill seed)
    flat_labels = labels.ravel()
    label_ids, seed_indices = np.unique(flat_labels, return_index=True)
    seeds = dict(zip(label_ids.tolist(), seed_indices.tolist(), strict=True))

    to_input_x = resize_width / prob_map.width
    to_input_y = resize_height / prob_map.height
    flat_prob = prob.ravel()

    candidates: list[tuple[int, Box]] = []
    for label in range(1, num_labels):
        x, y, w, h, area = (int(v) for v in stats[label])
        if area < min_area:
            continue
        left = _clamp(x * to_input_x * scale_x, original_width)
        top = _clamp(y * to_input_y * scale_y, original_height)
        right = _clamp((x + w) * to_input_x * scale_x, original_width)
        bottom = _clamp((y + h) * to_input_y * scale_y, original_height)
        seed = seeds[label]
        box = Box(left, top, right, bottom, float(flat_prob[seed]))
        if box.is_valid:
            candidates.append((seed, box))

    candidates.sort(key=lambda item: item[0])
    return sorted((box for _, box in candidates), key=lambda box: box.score, reverse=True)


def _clamp(value: float, upper: int) -> float:
    return float(min(max(value, 0.0), float(upper)))
