"""
Input tensor preparation for the OCR models.

All models take NCHW float32 RGB input. The recognizer uses the PaddleOCR
``[-1, 1]`` scaling; the detector and the auxiliary classifiers use
ImageNet mean/std normalisation.
"""

from dataclasses import dataclass

import numpy as np

from invocr.constants import DET_SIZE_MULTIPLE

from .image_buffer import ImageBuffer, resize_pixels

# ImageNet normalisation constants (PaddleOCR convention)
_MEAN = np.array([0.485, 0.456, 0.406], dtype=np.float32)
_STD = np.array([0.229, 0.224, 0.225], dtype=np.float32)


@dataclass(frozen=True)
class DetInput:
    """Detector input plus the geometry needed to map boxes back.

    Attributes:
        data: NCHW float32 tensor of shape (1, 3, resize_height, resize_width)
        resize_width: Width of the detector input
        resize_height: Height of the detector input
        scale_x: Original width / resize width
        scale_y: Original height / resize height
    """

    data: np.ndarray
    resize_width: int
    resize_height: int
    scale_x: float
    scale_y: float


def _to_nchw(chw_source: np.ndarray) -> np.ndarray:
    return np.ascontiguousarray(chw_source.transpose(2, 0, 1)[np.newaxis, ...], dtype=np.float32)


def prepare_rec_input(image: ImageBuffer, height: int, width: int) -> np.ndarray:
    """Resize to the recognizer geometry and scale to ``[-1, 1]``."""
    resized = resize_pixels(image.pixels, width, height).astype(np.float32) / 255.0
    return _to_nchw((resized - 0.5) / 0.5)


def prepare_mean_std_input(image: ImageBuffer, height: int, width: int) -> np.ndarray:
    """Resize to a fixed geometry with ImageNet normalisation."""
    resized = resize_pixels(image.pixels, width, height).astype(np.float32) / 255.0
    return _to_nchw((resized - _MEAN) / _STD)


def det_resize_dims(width: int, height: int, max_side: int) -> tuple[int, int]:
    """Detector input size: shrink to ``max_side`` and floor to multiples of 32."""
    ratio = min(1.0, max_side / max(width, height))
    resize_width = int(width * ratio)
    resize_height = int(height * ratio)
    resize_width = max(DET_SIZE_MULTIPLE, resize_width // DET_SIZE_MULTIPLE * DET_SIZE_MULTIPLE)
    resize_height = max(DET_SIZE_MULTIPLE, resize_height // DET_SIZE_MULTIPLE * DET_SIZE_MULTIPLE)
    return resize_width, resize_height


def prepare_det_input(image: ImageBuffer, max_side: int) -> DetInput:
    """Build the detector input for ``image``.

    Args:
        image: Source image
        max_side: Longest allowed input side before flooring to 32

    Returns:
        DetInput with the tensor and the original/resized scale factors.
    """
    resize_width, resize_height = det_resize_dims(image.width, image.height, max_side)
    return DetInput(
        data=prepare_mean_std_input(image, resize_height, resize_width),
        resize_width=resize_width,
        resize_height=resize_height,
        scale_x=image.width / resize_width,
        scale_y=image.height / resize_height,
    )
