"""Pytest configuration for invocr tests.

Shared fixtures: images on disk, an asset store layout, isolated caches,
an isolated settings file and a scriptable fake backend.
"""

import os
import threading

import numpy as np
import pytest
from PIL import Image

from invocr.services.ocr.backend_base import OcrBackend
from invocr.services.ocr.caches import DictionaryCache, SessionCache
from invocr.services.ocr.image_buffer import ImageBuffer
from invocr.services.ocr.models import RecognizedText
from invocr.utils.config_manager import ConfigManager


def make_buffer(width, height, value=255):
    """Solid RGB buffer."""
    return ImageBuffer(np.full((height, width, 3), value, dtype=np.uint8))


class FakeBackend(OcrBackend):
    """Scriptable backend recording every call.

    ``infer_results`` / ``detect_results`` are either a fixed value or a
    callable taking the image buffer.
    """

    def __init__(
        self,
        name="fake",
        available=True,
        infer_results=None,
        detect_results=None,
        error=None,
    ):
        self.name = name
        self.available = available
        self.infer_results = infer_results
        self.detect_results = detect_results
        self.error = error
        self.calls = []
        self.images = []
        self._lock = threading.Lock()

    def is_available(self):
        return self.available

    def _answer(self, kind, value, image):
        with self._lock:
            self.calls.append((kind, image.width, image.height))
            self.images.append(image)
        if self.error is not None:
            raise self.error
        return value(image) if callable(value) else value

    def infer(self, scene, image):
        return self._answer("infer", self.infer_results, image)

    def detect(self, scene, image):
        return self._answer("detect", self.detect_results, image)


@pytest.fixture
def fake_backend():
    return FakeBackend(infer_results=RecognizedText("label", 0.9))


@pytest.fixture
def settings(tmp_path):
    """ConfigManager writing to a temporary settings file."""
    return ConfigManager(config_path=os.path.join(tmp_path, "config", "settings.json"))


@pytest.fixture
def session_cache():
    return SessionCache()


@pytest.fixture
def dictionary_cache():
    return DictionaryCache()


@pytest.fixture
def asset_root(tmp_path):
    """Asset store with a recognizer, detector and two-symbol dictionary per family."""
    root = tmp_path / "assets"
    for folder in ("ppocr", "ppocr_vl", "onnx"):
        (root / folder).mkdir(parents=True)
    (root / "onnx" / "rec.onnx").write_bytes(b"rec-model")
    (root / "onnx" / "det.onnx").write_bytes(b"det-model")
    (root / "onnx" / "keys.txt").write_text("你\n好\n", encoding="utf-8")
    (root / "ppocr" / "rec.onnx").write_bytes(b"rec-model")
    (root / "ppocr" / "keys.txt").write_text("a\nb\n", encoding="utf-8")
    return root


@pytest.fixture
def write_image(tmp_path):
    """Write an RGB array to a PNG file and return its path."""

    def _write(pixels, name="image.png"):
        path = tmp_path / name
        Image.fromarray(pixels).save(path)
        return path

    return _write


@pytest.fixture
def white_image_file(write_image):
    return write_image(np.full((120, 200, 3), 255, dtype=np.uint8), "white.png")
