"""
Runtime backend switching.

The backend mode is a live setting (``ocr.backend_mode``). The mode
provider keeps a local copy so inference calls never wait on the
configuration store, and drops every cached session when the mode
changes. The switcher tries the backend named by the mode first and then
walks a fixed fallback list for that mode.
"""

import logging
import threading
from collections.abc import Callable, Mapping
from typing import Final, TypeVar

from invocr.config import (
    BACKEND_AUTO,
    BACKEND_MODE_KEY,
    BACKEND_MODES,
    BACKEND_ONNX,
    BACKEND_OPENOCR,
    BACKEND_PADDLE,
)
from invocr.utils.config_manager import ConfigManager, get_config_manager
from invocr.utils.exceptions import OcrCancelledError

from .backend_base import OcrBackend
from .caches import SessionCache, get_session_cache
from .image_buffer import ImageBuffer
from .models import Box, RecognizedText, Scene

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Backends tried after the mode's own backend, in order
FALLBACK_ORDER: Final[dict[str, tuple[str, ...]]] = {
    BACKEND_OPENOCR: (BACKEND_ONNX, BACKEND_PADDLE),
    BACKEND_ONNX: (BACKEND_PADDLE,),
    BACKEND_PADDLE: (BACKEND_ONNX,),
    BACKEND_AUTO: (BACKEND_ONNX, BACKEND_PADDLE),
}


def normalize_mode(value: object) -> str:
    """Map a configured value onto a known mode, defaulting to auto."""
    mode = str(value).strip().lower() if value is not None else BACKEND_AUTO
    if mode not in BACKEND_MODES:
        logger.warning(f"Unknown OCR backend mode {value!r}, using '{BACKEND_AUTO}'")
        return BACKEND_AUTO
    return mode


class BackendModeProvider:
    """Locally cached backend mode that follows the configuration store.

    On every transition between two different modes all cached sessions
    are closed and evicted.
    """

    def __init__(
        self,
        config_manager: ConfigManager | None = None,
        session_cache: SessionCache | None = None,
        key: str = BACKEND_MODE_KEY,
    ) -> None:
        self.config_manager = config_manager or get_config_manager()
        self.session_cache = session_cache or get_session_cache()
        self._lock = threading.Lock()
        self._mode: str | None = normalize_mode(self.config_manager.get(key, BACKEND_AUTO))
        self._unsubscribe: Callable[[], None] | None = self.config_manager.subscribe(
            key, self._on_config_change
        )

    @property
    def mode(self) -> str:
        with self._lock:
            return self._mode or BACKEND_AUTO

    def _on_config_change(self, _old_value: object, new_value: object) -> None:
        self.update(new_value)

    def update(self, value: object) -> None:
        """Adopt a new mode, dropping cached sessions if it changed."""
        new_mode = normalize_mode(value)
        with self._lock:
            previous, self._mode = self._mode, new_mode
        if previous is not None and previous != new_mode:
            logger.info(f"OCR backend mode changed: {previous} -> {new_mode}")
            self.session_cache.clear()

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


class BackendSwitcher(OcrBackend):
    """An ``OcrBackend`` that delegates to the best backend for the mode.

    Args:
        backends: Backends keyed by mode name (``paddle``, ``onnx``, ``openocr``)
        mode: Callable returning the current mode, usually
            ``BackendModeProvider.mode`` wrapped in a lambda
    """

    name = "switcher"

    def __init__(self, backends: Mapping[str, OcrBackend], mode: Callable[[], str]) -> None:
        self.backends = dict(backends)
        self._mode = mode

    def candidates(self) -> list[str]:
        """Backend names to try for the current mode, primary first."""
        mode = self._mode()
        order: list[str] = []
        if mode != BACKEND_AUTO:
            order.append(mode)
        for name in FALLBACK_ORDER.get(mode, FALLBACK_ORDER[BACKEND_AUTO]):
            if name not in order:
                order.append(name)
        return [name for name in order if name in self.backends]

    def is_available(self) -> bool:
        return any(backend.is_available() for backend in self.backends.values())

    def infer(self, scene: Scene, image: ImageBuffer) -> RecognizedText | None:
        return self._first_result("infer", lambda backend: backend.infer(scene, image))

    def detect(self, scene: Scene, image: ImageBuffer) -> list[Box] | None:
        return self._first_result("detect", lambda backend: backend.detect(scene, image))

    def _first_result(self, operation: str, call: Callable[[OcrBackend], T | None]) -> T | None:
        for name in self.candidates():
            backend = self.backends[name]
            if not backend.is_available():
                continue
            try:
                result = call(backend)
            except OcrCancelledError:
                raise
            except Exception as e:
                logger.error(f"{name} {operation} failed: {e}")
                continue
            if result is None or (isinstance(result, list) and not result):
                logger.debug(f"{name} {operation} returned nothing, trying next backend")
                continue
            return result
        return None
