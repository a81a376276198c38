"""
Auxiliary ONNX models used by preprocessing and the table path.

- Layout classifier (document layout, table vs. text label)
- Table-region detector used as a layout fallback
- Page and text-line orientation classifiers
- Document rectifier (four page corners)
- Table-structure detector (cell boxes)

They share one ``OnnxModelRunner`` that stages the model file, reuses the
process-wide session cache and returns the first output tensor. Every
public method returns None when the model cannot be run, so callers can
fall back to their heuristics.
"""

import logging
from collections.abc import Sequence

import numpy as np

from invocr.config import LAYOUT_TABLE_CLASS_IDS, ORIENTATION_ANGLES
from invocr.constants import (
    DET_INPUT_SIZE,
    LAYOUT_INPUT_SIZE,
    NORMALIZED_COORD_LIMIT,
    ORIENTATION_INPUT_SIZE,
    RECTIFY_INPUT_SIZE,
)

from .assets import AssetResolver
from .backend_base import ModelOutput
from .backend_onnx import create_onnx_session, onnxruntime_available, run_onnx_session
from .caches import SessionCache, get_session_cache
from .det_decoder import decode_boxes, probability_map
from .image_buffer import ImageBuffer
from .models import Box, Layout
from .table_decoder import decode_table_boxes
from .tensors import prepare_det_input, prepare_mean_std_input

logger = logging.getLogger(__name__)

Point = tuple[float, float]


class OnnxModelRunner:
    """Stages one model asset and runs it through a cached session."""

    def __init__(
        self,
        resolver: AssetResolver,
        model: str,
        session_cache: SessionCache | None = None,
    ) -> None:
        self.resolver = resolver
        self.model = model
        self.session_cache = session_cache or get_session_cache()

    def is_available(self) -> bool:
        return onnxruntime_available()

    def run(self, tensor: np.ndarray) -> ModelOutput | None:
        if not self.is_available():
            return None
        model_path = self.resolver.resolve(self.model)
        if model_path is None:
            return None
        try:
            session = self.session_cache.get_or_create(
                model_path, lambda: create_onnx_session(model_path)
            )
            return run_onnx_session(session, tensor)
        except Exception as e:
            logger.error(f"Auxiliary model {self.model} failed: {e}")
            return None


def _argmax(scores: np.ndarray) -> int | None:
    """Index of the largest score; the first index wins ties."""
    if scores.size == 0:
        return None
    return int(np.argmax(scores))


class OnnxLayoutClassifier:
    """Classifies a page as table or text label from layout-model scores."""

    def __init__(
        self,
        runner: OnnxModelRunner,
        input_size: int = LAYOUT_INPUT_SIZE,
        table_class_ids: Sequence[int] = LAYOUT_TABLE_CLASS_IDS,
    ) -> None:
        self.runner = runner
        self.input_size = input_size
        self.table_class_ids = tuple(table_class_ids)

    def classify(self, image: ImageBuffer) -> Layout | None:
        if not self.runner.is_available():
            return None
        tensor = prepare_mean_std_input(image, self.input_size, self.input_size)
        output = self.runner.run(tensor)
        if output is None:
            return None
        index = _argmax(output[0])
        if index is None:
            return None
        return Layout.TABLE if index in self.table_class_ids else Layout.TEXT_LABEL


class OnnxCellDetector:
    """DB-style detector whose boxes are table regions or cells.

    Boxes are in ``image`` pixel coordinates.
    """

    def __init__(self, runner: OnnxModelRunner, input_size: int = DET_INPUT_SIZE) -> None:
        self.runner = runner
        self.input_size = input_size

    def detect(self, image: ImageBuffer) -> list[Box] | None:
        if not self.runner.is_available():
            return None
        det_input = prepare_det_input(image, self.input_size)
        output = self.runner.run(det_input.data)
        if output is None:
            return None
        prob_map = probability_map(*output)
        if prob_map is None:
            return []
        return decode_boxes(
            prob_map,
            det_input.resize_width,
            det_input.resize_height,
            det_input.scale_x,
            det_input.scale_y,
            image.width,
            image.height,
        )


class DetectionLayoutClassifier:
    """Reports a table whenever the wrapped detector finds anything."""

    def __init__(self, detector: OnnxCellDetector) -> None:
        self.detector = detector

    def classify(self, image: ImageBuffer) -> Layout | None:
        boxes = self.detector.detect(image)
        if boxes is None:
            return None
        return Layout.TABLE if boxes else Layout.TEXT_LABEL


class OnnxOrientationClassifier:
    """Predicts the clockwise rotation (0/90/180/270) that uprights an image."""

    def __init__(
        self,
        runner: OnnxModelRunner,
        input_size: int = ORIENTATION_INPUT_SIZE,
        angles: Sequence[int] = ORIENTATION_ANGLES,
    ) -> None:
        self.runner = runner
        self.input_size = input_size
        self.angles = tuple(angles)

    def classify_angle(self, image: ImageBuffer) -> int | None:
        if not self.runner.is_available():
            return None
        tensor = prepare_mean_std_input(image, self.input_size, self.input_size)
        output = self.runner.run(tensor)
        if output is None:
            return None
        index = _argmax(output[0])
        if index is None or index >= len(self.angles):
            return None
        return self.angles[index]


class OnnxRectifier:
    """Regresses the four document corners, in ``image`` pixel coordinates."""

    def __init__(self, runner: OnnxModelRunner, input_size: int = RECTIFY_INPUT_SIZE) -> None:
        self.runner = runner
        self.input_size = input_size

    def detect_quad(self, image: ImageBuffer) -> list[Point] | None:
        if not self.runner.is_available():
            return None
        tensor = prepare_mean_std_input(image, self.input_size, self.input_size)
        output = self.runner.run(tensor)
        if output is None:
            return None
        data = output[0]
        if data.size < 8:
            return None
        corners = data[:8].astype(np.float64)
        if corners.max() <= NORMALIZED_COORD_LIMIT:
            scale_x, scale_y = float(image.width), float(image.height)
        else:
            scale_x = image.width / self.input_size
            scale_y = image.height / self.input_size
        return [
            (float(corners[i] * scale_x), float(corners[i + 1] * scale_y)) for i in range(0, 8, 2)
        ]


class OnnxTableStructureDetector:
    """Table-structure model returning cell boxes in ``image`` coordinates."""

    def __init__(self, runner: OnnxModelRunner, input_size: int = DET_INPUT_SIZE) -> None:
        self.runner = runner
        self.input_size = input_size

    def detect_cells(self, image: ImageBuffer) -> list[Box] | None:
        if not self.runner.is_available():
            return None
        det_input = prepare_det_input(image, self.input_size)
        output = self.runner.run(det_input.data)
        if output is None:
            return None
        data, shape = output
        return decode_table_boxes(
            data, shape, det_input.scale_x, det_input.scale_y, image.width, image.height
        )
