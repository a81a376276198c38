"""
ONNX Runtime inference backend.

Runs the PP-OCRv5 mobile detector/recognizer (and the OpenOCR recognizer
variant) through ``onnxruntime.InferenceSession`` on the CPU provider.
The runtime is imported lazily so a machine without it simply reports the
backend as unavailable.
"""

import importlib
import logging
import threading
from pathlib import Path
from typing import Any

import numpy as np

from invocr.constants import ONNX_INTER_OP_THREADS, ONNX_INTRA_OP_THREADS
from invocr.utils.exceptions import BackendUnavailableError

from .backend_base import ModelOutput, RuntimeBackend

logger = logging.getLogger(__name__)

_probe_lock = threading.Lock()
_onnxruntime_available: bool | None = None


def onnxruntime_available() -> bool:
    """Check once whether ``onnxruntime`` can be imported.

    Result is cached to avoid repeating a failing import on every call.
    """
    global _onnxruntime_available
    if _onnxruntime_available is not None:
        return _onnxruntime_available
    with _probe_lock:
        if _onnxruntime_available is None:
            try:
                importlib.import_module("onnxruntime")
                _onnxruntime_available = True
            except ImportError as e:
                logger.info(f"ONNX Runtime not available: {e}")
                _onnxruntime_available = False
    return _onnxruntime_available


def create_onnx_session(model_path: Path) -> Any:
    """Create a CPU inference session with a small thread pool.

    Raises:
        BackendUnavailableError: If onnxruntime cannot be imported.
    """
    try:
        import onnxruntime as ort
    except ImportError as e:
        raise BackendUnavailableError("onnxruntime", str(e)) from e

    options = ort.SessionOptions()
    options.intra_op_num_threads = ONNX_INTRA_OP_THREADS
    options.inter_op_num_threads = ONNX_INTER_OP_THREADS
    session = ort.InferenceSession(
        str(model_path), sess_options=options, providers=["CPUExecutionProvider"]
    )
    logger.debug(f"ONNX Runtime session created for {model_path.name}")
    return session


def run_onnx_session(session: Any, tensor: np.ndarray) -> ModelOutput | None:
    """Feed ``tensor`` to the first input and return the first output."""
    inputs = session.get_inputs()
    if not inputs:
        return None
    outputs = session.run(None, {inputs[0].name: tensor})
    if not outputs:
        return None
    first = np.asarray(outputs[0], dtype=np.float32)
    return first.ravel(), tuple(int(d) for d in first.shape)


class OnnxRuntimeBackend(RuntimeBackend):
    """PP-OCR models on ONNX Runtime."""

    name = "onnx"

    def _runtime_available(self) -> bool:
        return onnxruntime_available()

    def _compile(self, model_path: Path) -> Any:
        return create_onnx_session(model_path)

    def _execute(self, session: Any, tensor: np.ndarray) -> ModelOutput | None:
        return run_onnx_session(session, tensor)
