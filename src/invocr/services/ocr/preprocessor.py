"""
Image preprocessing for the OCR pipeline.

Stages, in order:
1. Page orientation, then text-line orientation (model backed, optional)
2. Scene classification (document vs. item photo) from edge density
3. Layout classification (table vs. text label)
4. Perspective correction of documents (rectifier model or Sobel corners)
5. Contrast enhancement and sharpening of documents

Every backend is optional; a stage whose backend is missing or returns
nothing leaves the image unchanged. Each stage returns either its input or
a new buffer, and every new buffer is registered in the run's ledger.
"""

import logging
import math
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import cv2
import numpy as np

from invocr.constants import (
    ENHANCE_BRIGHTNESS,
    ENHANCE_CONTRAST,
    LAYOUT_AXIS_DENSITY,
    LAYOUT_EDGE_DENSITY,
    LAYOUT_SAMPLE_SIZE,
    MAX_WARP_SIDE,
    QUAD_EDGE_FRACTION,
    QUAD_SEARCH_MAX_SIDE,
    SCENE_EDGE_DELTA,
    SCENE_EDGE_DENSITY,
    SCENE_MAX_ASPECT,
    SCENE_MIN_ASPECT,
    SCENE_SAMPLE_SIZE,
    SHARPEN_MAX_PIXELS,
)

from .cancellation import check_cancelled
from .image_buffer import ImageBuffer, ImageLedger, resize_pixels, rotate_image
from .models import Layout, Scene

if TYPE_CHECKING:
    from .aux_models import (
        DetectionLayoutClassifier,
        OnnxLayoutClassifier,
        OnnxOrientationClassifier,
        OnnxRectifier,
    )

logger = logging.getLogger(__name__)

Point = tuple[float, float]

# Rec. 709 luma for edge statistics, Rec. 601 for the Sobel gray image
_LUMA_709 = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)
_LUMA_601 = np.array([0.299, 0.587, 0.114], dtype=np.float32)


@dataclass
class PreprocessOutput:
    """Scene, layout and the buffers produced by each stage.

    ``oriented``, ``corrected`` and ``enhanced`` may be the same object
    when a stage did nothing.
    """

    scene: Scene
    layout: Layout
    oriented: ImageBuffer
    corrected: ImageBuffer
    enhanced: ImageBuffer


# ── Edge statistics ────────────────────────────────────────────────


def _luminance(pixels: np.ndarray) -> np.ndarray:
    return (pixels.astype(np.float32) @ _LUMA_709) / 255.0


def _neighbour_edges(image: ImageBuffer, size: int) -> tuple[np.ndarray, np.ndarray]:
    """Right and down luminance edges over the (size-1)×(size-1) grid of a sample."""
    lum = _luminance(resize_pixels(image.pixels, size, size))
    base = lum[:-1, :-1]
    right = np.abs(base - lum[:-1, 1:]) > SCENE_EDGE_DELTA
    down = np.abs(base - lum[1:, :-1]) > SCENE_EDGE_DELTA
    return right, down


def classify_scene(image: ImageBuffer) -> Scene:
    """Classify as document when the image is edge-rich and roughly page shaped.

    Args:
        image: Input image

    Returns:
        ``Scene.DOCUMENT`` when edge density exceeds 0.12 and the aspect
        ratio is within [0.6, 1.7], else ``Scene.ITEM_PHOTO``.
    """
    if image.width < 1 or image.height < 1:
        return Scene.ITEM_PHOTO
    right, down = _neighbour_edges(image, SCENE_SAMPLE_SIZE)
    total = right.size
    density = float(np.count_nonzero(right | down)) / total if total else 0.0
    aspect = image.width / image.height

    if density > SCENE_EDGE_DENSITY and SCENE_MIN_ASPECT <= aspect <= SCENE_MAX_ASPECT:
        return Scene.DOCUMENT
    return Scene.ITEM_PHOTO


def classify_layout_heuristic(image: ImageBuffer) -> Layout:
    """Table when both horizontal and vertical edges are dense."""
    if image.width < 1 or image.height < 1:
        return Layout.TEXT_LABEL
    right, down = _neighbour_edges(image, LAYOUT_SAMPLE_SIZE)
    total = right.size
    if total == 0:
        return Layout.TEXT_LABEL

    horizontal = float(np.count_nonzero(right)) / total
    vertical = float(np.count_nonzero(down)) / total
    density = (horizontal + vertical) / 2

    if (
        density > LAYOUT_EDGE_DENSITY
        and horizontal > LAYOUT_AXIS_DENSITY
        and vertical > LAYOUT_AXIS_DENSITY
    ):
        return Layout.TABLE
    return Layout.TEXT_LABEL


# ── Perspective correction ─────────────────────────────────────────


def detect_document_quad(image: ImageBuffer) -> list[Point] | None:
    """Find page corners from the strongest Sobel edges.

    The image is searched at most 512 px on its longest side. Edge pixels
    are those in the top 15% of gradient magnitude; each corner is the
    edge pixel closest (in L1 distance) to the matching image corner.

    Returns:
        Corners as top-left, top-right, bottom-right, bottom-left in
        ``image`` coordinates, or None when there are no edge pixels.
    """
    scale = min(1.0, QUAD_SEARCH_MAX_SIDE / max(image.width, image.height))
    if scale < 1.0:
        pixels = resize_pixels(
            image.pixels, int(image.width * scale), int(image.height * scale)
        )
    else:
        pixels = image.pixels

    h, w = pixels.shape[:2]
    if w < 3 or h < 3:
        return None

    gray = (pixels.astype(np.float32) @ _LUMA_601).astype(np.int32)

    # 3x3 Sobel on interior pixels
    tl, tc, tr = gray[:-2, :-2], gray[:-2, 1:-1], gray[:-2, 2:]
    ml, mr = gray[1:-1, :-2], gray[1:-1, 2:]
    bl, bc, br = gray[2:, :-2], gray[2:, 1:-1], gray[2:, 2:]
    gx = -tl - 2 * ml - bl + tr + 2 * mr + br
    gy = -tl - 2 * tc - tr + bl + 2 * bc + br
    mags = np.clip((np.abs(gx) + np.abs(gy)) // 4, 0, 255)

    hist = np.bincount(mags.ravel(), minlength=256)
    target = int(w * h * QUAD_EDGE_FRACTION)
    reached = np.nonzero(np.cumsum(hist[::-1]) >= target)[0]
    threshold = 255 - int(reached[0]) if reached.size else 0

    ys, xs = np.nonzero(mags >= threshold)
    if xs.size == 0:
        return None
    # Back to full-frame indices of the downscaled image
    xs = xs + 1
    ys = ys + 1

    # np.nonzero walks in raster order and argmin keeps the first minimum
    corners = []
    for score in (
        xs + ys,
        (w - 1 - xs) + ys,
        (w - 1 - xs) + (h - 1 - ys),
        xs + (h - 1 - ys),
    ):
        i = int(np.argmin(score))
        corners.append((float(xs[i]), float(ys[i])))

    inv = 1.0 / scale if scale < 1.0 else 1.0
    return [(x * inv, y * inv) for x, y in corners]


def order_quad(points: Sequence[Point]) -> list[Point]:
    """Order four points by angle about their centroid, starting at min ``x + y``."""
    cx = sum(p[0] for p in points) / 4.0
    cy = sum(p[1] for p in points) / 4.0
    ordered = sorted(points, key=lambda p: math.atan2(p[1] - cy, p[0] - cx))
    start = min(range(len(ordered)), key=lambda i: ordered[i][0] + ordered[i][1])
    return [ordered[(start + i) % 4] for i in range(4)]


def estimate_warp_size(ordered: Sequence[Point]) -> tuple[int, int]:
    """Output size from the longer of each pair of opposite sides, in [1, 4096]."""
    tl, tr, br, bl = ordered
    width = max(math.dist(tl, tr), math.dist(bl, br))
    height = max(math.dist(tl, bl), math.dist(tr, br))
    width = min(max(int(width), 1), MAX_WARP_SIDE)
    height = min(max(int(height), 1), MAX_WARP_SIDE)
    return width, height


def warp_perspective(
    image: ImageBuffer, ordered: Sequence[Point], width: int, height: int
) -> ImageBuffer | None:
    """Map the ordered quad onto a ``width``×``height`` rectangle.

    Returns:
        The warped buffer, or None when the target is degenerate or the
        transform cannot be computed.
    """
    if width <= 1 or height <= 1:
        return None
    src = np.array(ordered, dtype=np.float32)
    dst = np.array(
        [[0, 0], [width, 0], [width, height], [0, height]],
        dtype=np.float32,
    )
    try:
        matrix = cv2.getPerspectiveTransform(src, dst)
        warped = cv2.warpPerspective(image.pixels, matrix, (width, height))
    except cv2.error as e:
        logger.warning(f"Perspective warp failed: {e}")
        return None
    return ImageBuffer(warped)


# ── Enhancement ────────────────────────────────────────────────────


def adjust_contrast(
    image: ImageBuffer,
    contrast: float = ENHANCE_CONTRAST,
    brightness: float = ENHANCE_BRIGHTNESS,
) -> ImageBuffer:
    """Linear stretch around mid gray: ``(c - 128) * contrast + 128 + brightness``."""
    values = (image.pixels.astype(np.float32) - 128.0) * contrast + 128.0 + brightness
    return ImageBuffer(np.clip(np.trunc(values), 0, 255).astype(np.uint8))


def sharpen(image: ImageBuffer) -> ImageBuffer:
    """Apply the 5-point Laplacian sharpen to interior pixels; borders are copied."""
    src = image.pixels.astype(np.int32)
    out = image.pixels.copy()
    if image.width < 3 or image.height < 3:
        return ImageBuffer(out)
    center = src[1:-1, 1:-1]
    value = (
        5 * center
        - src[1:-1, :-2]
        - src[1:-1, 2:]
        - src[:-2, 1:-1]
        - src[2:, 1:-1]
    )
    out[1:-1, 1:-1] = np.clip(value, 0, 255).astype(np.uint8)
    return ImageBuffer(out)


# ── Preprocessor ───────────────────────────────────────────────────


class ImagePreprocessor:
    """Runs the preprocessing stages with optional model backends.

    Args:
        page_orientation: Page orientation classifier
        textline_orientation: Text-line orientation classifier
        layout_classifiers: Layout backends tried in order before the
            edge heuristic
        rectifier: Document corner regressor tried before the Sobel search
    """

    def __init__(
        self,
        page_orientation: "OnnxOrientationClassifier | None" = None,
        textline_orientation: "OnnxOrientationClassifier | None" = None,
        layout_classifiers: "Sequence[OnnxLayoutClassifier | DetectionLayoutClassifier]" = (),
        rectifier: "OnnxRectifier | None" = None,
    ) -> None:
        self.page_orientation = page_orientation
        self.textline_orientation = textline_orientation
        self.layout_classifiers = list(layout_classifiers)
        self.rectifier = rectifier

    def preprocess(
        self,
        image: ImageBuffer,
        ledger: ImageLedger,
        cancel_event: threading.Event | None = None,
    ) -> PreprocessOutput:
        """Run every stage on ``image``.

        Raises:
            OcrCancelledError: If ``cancel_event`` is set between stages
        """
        ledger.register(image)

        oriented = ledger.register(self.orient(image))
        check_cancelled(cancel_event, "orientation")

        scene = classify_scene(oriented)
        layout = self.classify_layout(oriented)
        logger.debug(f"Scene {scene.value}, layout {layout.value}")
        check_cancelled(cancel_event, "classification")

        corrected = ledger.register(self.correct(oriented, scene))
        check_cancelled(cancel_event, "correction")

        enhanced = ledger.register(self.enhance(corrected, scene))
        check_cancelled(cancel_event, "enhancement")

        return PreprocessOutput(scene, layout, oriented, corrected, enhanced)

    def orient(self, image: ImageBuffer) -> ImageBuffer:
        """Apply page orientation, then text-line orientation."""
        oriented = image
        for classifier in (self.page_orientation, self.textline_orientation):
            if classifier is None:
                continue
            angle = classifier.classify_angle(oriented) or 0
            if angle == 0:
                continue
            logger.debug(f"Rotating image by {angle} degrees")
            rotated = rotate_image(oriented, angle)
            if oriented is not image:
                oriented.release()
            oriented = rotated
        return oriented

    def classify_layout(self, image: ImageBuffer) -> Layout:
        for classifier in self.layout_classifiers:
            layout = classifier.classify(image)
            if layout is not None:
                return layout
        return classify_layout_heuristic(image)

    def detect_quad(self, image: ImageBuffer) -> list[Point] | None:
        if self.rectifier is not None:
            quad = self.rectifier.detect_quad(image)
            if quad is not None and len(quad) >= 4:
                return list(quad[:4])
        return detect_document_quad(image)

    def correct(self, image: ImageBuffer, scene: Scene) -> ImageBuffer:
        """Warp a document onto its detected page quad."""
        if scene != Scene.DOCUMENT:
            return image
        quad = self.detect_quad(image)
        if quad is None:
            return image
        ordered = order_quad(quad)
        width, height = estimate_warp_size(ordered)
        return warp_perspective(image, ordered, width, height) or image

    def enhance(self, image: ImageBuffer, scene: Scene) -> ImageBuffer:
        """Contrast-stretch documents, then sharpen them if they are not too large."""
        if scene != Scene.DOCUMENT:
            return image
        contrasted = adjust_contrast(image)
        if contrasted.width * contrasted.height > SHARPEN_MAX_PIXELS:
            return contrasted
        sharpened = sharpen(contrasted)
        contrasted.release()
        return sharpened
