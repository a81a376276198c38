"""
Owned image rasters and the per-run release ledger.

Every stage of the OCR pipeline may hand back either its input or a new
raster. The pipeline registers every raster it sees in an ``ImageLedger``;
at the end of the run the ledger releases each distinct raster exactly once,
whatever path the run took.
"""

import logging
from pathlib import Path

import cv2
import numpy as np
from PIL import Image, ImageOps

from invocr.constants import MAX_IMAGE_DIMENSION

logger = logging.getLogger(__name__)


class ImageBuffer:
    """An RGB ``uint8`` raster (H×W×3) with explicit release.

    Accessing ``pixels`` after ``release()`` raises ``RuntimeError``.
    ``release_count`` records every call so tests can detect double release.
    """

    def __init__(self, pixels: np.ndarray) -> None:
        if pixels.ndim != 3 or pixels.shape[2] != 3:
            raise ValueError(f"Expected an H×W×3 array, got shape {pixels.shape}")
        self._pixels: np.ndarray | None = pixels
        self.width = int(pixels.shape[1])
        self.height = int(pixels.shape[0])
        self.release_count = 0

    @property
    def pixels(self) -> np.ndarray:
        if self._pixels is None:
            raise RuntimeError("Image buffer used after release")
        return self._pixels

    @property
    def released(self) -> bool:
        return self._pixels is None

    def release(self) -> None:
        self.release_count += 1
        self._pixels = None

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"ImageBuffer({self.width}x{self.height}, {state})"


class ImageLedger:
    """Tracks the distinct buffers created during one pipeline run.

    Buffers are keyed by identity, so registering the same buffer twice
    (a stage that returned its input) does not lead to a second release.
    """

    def __init__(self) -> None:
        self._buffers: dict[int, ImageBuffer] = {}

    def register(self, buffer: ImageBuffer) -> ImageBuffer:
        self._buffers.setdefault(id(buffer), buffer)
        return buffer

    def release(self, buffer: ImageBuffer) -> None:
        """Release a buffer early and stop tracking it."""
        tracked = self._buffers.pop(id(buffer), None)
        if tracked is not None:
            tracked.release()

    def release_all(self) -> int:
        """Release every tracked buffer once.

        Returns:
            Number of buffers released.
        """
        buffers = list(self._buffers.values())
        self._buffers.clear()
        for buffer in reversed(buffers):
            buffer.release()
        return len(buffers)

    def __len__(self) -> int:
        return len(self._buffers)

    def __contains__(self, buffer: ImageBuffer) -> bool:
        return id(buffer) in self._buffers

    def __enter__(self) -> "ImageLedger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release_all()


# ── Loading ────────────────────────────────────────────────────────


def calculate_sample_size(width: int, height: int, max_width: int, max_height: int) -> int:
    """Largest power-of-two divisor that keeps both halves above the limit.

    Mirrors the usual decoder sub-sampling rule: the size doubles while
    ``half / size`` is still at least the requested dimension on both axes.
    """
    sample = 1
    if height > max_height or width > max_width:
        half_height = height // 2
        half_width = width // 2
        while half_height // sample >= max_height and half_width // sample >= max_width:
            sample *= 2
    return sample


def load_image(path: Path, max_dimension: int = MAX_IMAGE_DIMENSION) -> ImageBuffer | None:
    """Decode an image file into an RGB buffer.

    Large images are reduced by a power-of-two factor when either side
    exceeds ``max_dimension``. EXIF orientation is applied.

    Args:
        path: Image file path
        max_dimension: Side length above which the image is sub-sampled

    Returns:
        The decoded buffer, or None if the file cannot be decoded.
    """
    try:
        with Image.open(path) as img:
            width, height = img.size
            sample = 1
            if width > max_dimension or height > max_dimension:
                sample = calculate_sample_size(width, height, max_dimension, max_dimension)
            pil_img = img.reduce(sample) if sample > 1 else img
            pil_img = ImageOps.exif_transpose(pil_img)
            if pil_img.mode != "RGB":
                pil_img = pil_img.convert("RGB")
            pixels = np.array(pil_img, dtype=np.uint8)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not decode image {path}: {e}")
        return None

    if sample > 1:
        logger.debug(f"Loaded {path} with sample size {sample} ({width}x{height} source)")
    return ImageBuffer(pixels)


# ── Raster operations (each returns a new buffer) ──────────────────


def resize_pixels(pixels: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize to exactly ``width``×``height`` (no copy when already that size)."""
    if pixels.shape[1] == width and pixels.shape[0] == height:
        return pixels
    interpolation = cv2.INTER_AREA if width < pixels.shape[1] else cv2.INTER_LINEAR
    return cv2.resize(pixels, (width, height), interpolation=interpolation)


def rotate_image(image: ImageBuffer, angle: int) -> ImageBuffer:
    """Rotate clockwise by a multiple of 90 degrees.

    Returns the input itself for angles that are multiples of 360.
    """
    angle = angle % 360
    if angle == 0:
        return image
    if angle == 90:
        rotated = cv2.rotate(image.pixels, cv2.ROTATE_90_CLOCKWISE)
    elif angle == 180:
        rotated = cv2.rotate(image.pixels, cv2.ROTATE_180)
    elif angle == 270:
        rotated = cv2.rotate(image.pixels, cv2.ROTATE_90_COUNTERCLOCKWISE)
    else:
        raise ValueError(f"Unsupported rotation angle: {angle}")
    return ImageBuffer(np.ascontiguousarray(rotated))


def crop_image(image: ImageBuffer, box: list[float]) -> ImageBuffer | None:
    """Copy out the region ``[left, top, right, bottom]``.

    Coordinates are truncated and clamped so the crop is always at least
    one pixel wide and high.

    Returns:
        The cropped buffer, or None when ``box`` has fewer than 4 values or
        the image is empty.
    """
    if len(box) < 4 or image.width < 1 or image.height < 1:
        return None
    left = min(max(int(box[0]), 0), image.width - 1)
    top = min(max(int(box[1]), 0), image.height - 1)
    right = min(max(int(box[2]), left + 1), image.width)
    bottom = min(max(int(box[3]), top + 1), image.height)
    return ImageBuffer(image.pixels[top:bottom, left:right].copy())
