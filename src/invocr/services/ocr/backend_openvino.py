"""
OpenVINO inference backend.

Compiles the PP-OCR models with ``openvino.Core().compile_model`` on the
CPU device. Loading a model graph amounts to running code from disk, so
before compiling this backend checks that:

- the model file canonically lives inside its sandboxed cache directory;
- the ``openvino`` package was imported from an ``openvino`` package
  directory, not from a stray module that shadows it.

Either failure disables the backend for the rest of the process.
"""

import importlib
import logging
import threading
from pathlib import Path
from typing import Any

import numpy as np

from invocr.utils.exceptions import BackendUnavailableError, SecurityViolationError

from .assets import is_within
from .backend_base import ModelOutput, RuntimeBackend

logger = logging.getLogger(__name__)


class OpenVinoBackend(RuntimeBackend):
    """PP-OCR models compiled by OpenVINO."""

    name = "openvino"
    stage_all_assets = True

    _openvino_available: bool | None = None
    _probe_lock = threading.Lock()

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._core = None
        self._core_lock = threading.Lock()

    @classmethod
    def _check_openvino_available(cls) -> bool:
        """Check once whether OpenVINO can be imported.

        Result is cached to avoid import system corruption on repeated failed imports.
        """
        if cls._openvino_available is not None:
            return cls._openvino_available
        with cls._probe_lock:
            if cls._openvino_available is None:
                try:
                    ov = importlib.import_module("openvino")
                    cls._openvino_available = hasattr(ov, "Core")
                except ImportError as e:
                    logger.info(f"OpenVINO not available: {e}")
                    cls._openvino_available = False
        return cls._openvino_available

    def _runtime_available(self) -> bool:
        return self._check_openvino_available()

    # === Security checks ===

    def _verify_model_path(self, model_path: Path) -> None:
        if not is_within(model_path, self.resolver.target_dir):
            raise SecurityViolationError(str(model_path), "model file outside the cache directory")

    @staticmethod
    def _verify_runtime_origin(module: Any) -> None:
        origin = getattr(module, "__file__", None)
        if not origin or Path(origin).resolve().parent.name != "openvino":
            raise SecurityViolationError(str(origin), "OpenVINO loaded from an untrusted location")

    def _get_core(self) -> Any:
        if self._core is not None:
            return self._core
        with self._core_lock:
            if self._core is None:
                try:
                    import openvino as ov
                except ImportError as e:
                    raise BackendUnavailableError(self.name, str(e)) from e

                self._verify_runtime_origin(ov)
                self._core = ov.Core()
        return self._core

    # === Runtime hooks ===

    def _compile(self, model_path: Path) -> Any:
        self._verify_model_path(model_path)
        core = self._get_core()
        compiled = core.compile_model(str(model_path), "CPU")
        logger.debug(f"{model_path.name} compiled via OpenVINO")
        return compiled

    def _execute(self, session: Any, tensor: np.ndarray) -> ModelOutput | None:
        # One request per call; the compiled model itself is shared
        request = session.create_infer_request()
        try:
            request.infer({0: tensor})
            output = np.array(request.get_output_tensor(0).data, dtype=np.float32, copy=True)
        finally:
            del request
        return output.ravel(), tuple(int(d) for d in output.shape)
