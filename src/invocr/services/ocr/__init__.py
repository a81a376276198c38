"""
OCR Module for InvOcr.

Recognizes text in images with PP-OCR style models on OpenVINO or ONNX
Runtime, switching backends at runtime.

Main components:
- OCRConfig: Configuration dataclass for the pipeline
- OcrEngine: Worker pool running pipelines with cancellation
- OcrPipeline: Load → preprocess → detect → recognize → tables
- BackendSwitcher: Mode-driven backend selection with fallback
- ImagePreprocessor: Orientation, scene/layout, rectification, enhancement
"""

from invocr.services.ocr.config import OCRConfig
from invocr.services.ocr.engine import OcrEngine, OcrJob
from invocr.services.ocr.factory import build_pipeline
from invocr.services.ocr.models import (
    Group,
    Layout,
    OcrResult,
    PipelineOutput,
    Scene,
    TableCell,
    TableResult,
    Token,
    merge_results,
)
from invocr.services.ocr.pipeline import OcrPipeline
from invocr.services.ocr.preprocessor import ImagePreprocessor
from invocr.services.ocr.switcher import BackendModeProvider, BackendSwitcher

__all__ = [
    # Config
    "OCRConfig",
    # Engine
    "OcrEngine",
    "OcrJob",
    "OcrPipeline",
    "build_pipeline",
    # Components
    "BackendModeProvider",
    "BackendSwitcher",
    "ImagePreprocessor",
    # Results
    "Group",
    "Layout",
    "OcrResult",
    "PipelineOutput",
    "Scene",
    "TableCell",
    "TableResult",
    "Token",
    "merge_results",
]
