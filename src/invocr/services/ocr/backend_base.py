"""
Inference backend interface and the shared model-runtime template.

``OcrBackend`` is the capability interface the pipeline talks to. The
concrete runtimes (OpenVINO, ONNX Runtime) subclass ``RuntimeBackend``,
which owns everything they have in common: model-spec selection, asset
staging, dictionary loading, session caching, tensor preparation and
decoding. A subclass only provides the runtime probe, session compilation
and a single forward pass.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import numpy as np

from invocr.utils.exceptions import BackendUnavailableError, SecurityViolationError

from .assets import AssetResolver
from .caches import DictionaryCache, SessionCache, get_dictionary_cache, get_session_cache
from .ctc_decoder import decode_ctc, with_blank
from .det_decoder import decode_boxes, probability_map
from .image_buffer import ImageBuffer
from .models import Box, ModelSpec, RecognizedText, Scene
from .tensors import prepare_det_input, prepare_rec_input

logger = logging.getLogger(__name__)

# Raw model output: flat float32 values and the tensor shape
ModelOutput = tuple[np.ndarray, tuple[int, ...]]


class OcrBackend(ABC):
    """Uniform OCR capability: availability, detection and recognition."""

    name: str = "backend"

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the backend can run on this machine right now."""

    @abstractmethod
    def infer(self, scene: Scene, image: ImageBuffer) -> RecognizedText | None:
        """Recognize the text in ``image`` (a line crop or a whole image)."""

    def detect(self, scene: Scene, image: ImageBuffer) -> list[Box] | None:
        """Detect text boxes in ``image``, in ``image`` pixel coordinates.

        Backends without a detector return None.
        """
        return None


class RuntimeBackend(OcrBackend):
    """Shared implementation for backends that run PP-OCR style models.

    Subclasses implement ``_runtime_available``, ``_compile`` and
    ``_execute``. A ``SecurityViolationError`` from any of them disables
    the backend for the rest of the process.

    Attributes:
        stage_all_assets: Stage every file of the model spec before recognizing,
            not only the recognizer and its dictionary.
    """

    stage_all_assets = False

    def __init__(
        self,
        resolver: AssetResolver,
        spec: ModelSpec,
        document_spec: ModelSpec | None = None,
        session_cache: SessionCache | None = None,
        dictionary_cache: DictionaryCache | None = None,
        name: str | None = None,
    ) -> None:
        self.resolver = resolver
        self.spec = spec
        self.document_spec = document_spec
        self.session_cache = session_cache or get_session_cache()
        self.dictionary_cache = dictionary_cache or get_dictionary_cache()
        if name:
            self.name = name
        self._disabled_reason: str | None = None

    # === Runtime hooks ===

    @abstractmethod
    def _runtime_available(self) -> bool:
        """Probe for the native runtime (cached by the subclass)."""

    @abstractmethod
    def _compile(self, model_path: Path) -> Any:
        """Build a session for ``model_path``. Called at most once per path."""

    @abstractmethod
    def _execute(self, session: Any, tensor: np.ndarray) -> ModelOutput | None:
        """Run one forward pass and return the first output tensor."""

    # === Capability interface ===

    @property
    def disabled(self) -> bool:
        return self._disabled_reason is not None

    def disable(self, reason: str) -> None:
        if self._disabled_reason is None:
            logger.error(f"Disabling {self.name} backend for this process: {reason}")
            self._disabled_reason = reason

    def is_available(self) -> bool:
        return not self.disabled and self._runtime_available()

    def select_spec(self, scene: Scene) -> ModelSpec:
        """Document spec for documents when all of its assets exist, else the standard spec."""
        if (
            scene == Scene.DOCUMENT
            and self.document_spec is not None
            and all(self.resolver.exists(asset) for asset in self.document_spec.required_assets())
        ):
            return self.document_spec
        return self.spec

    def infer(self, scene: Scene, image: ImageBuffer) -> RecognizedText | None:
        if not self.is_available():
            return None
        spec = self.select_spec(scene)

        if self.stage_all_assets:
            staged = [self.resolver.resolve(asset) for asset in spec.required_assets()]
            if any(path is None for path in staged):
                return None
        model_path = self.resolver.resolve(spec.rec_model)
        dict_path = self.resolver.resolve(spec.dict_path)
        if model_path is None or dict_path is None:
            return None

        characters = self.dictionary_cache.load(dict_path)
        if not characters:
            return None

        tensor = prepare_rec_input(image, spec.input_height, spec.input_width)
        output = self._run(model_path, tensor)
        if output is None:
            return None
        data, shape = output
        return decode_ctc(data, shape, with_blank(characters))

    def detect(self, scene: Scene, image: ImageBuffer) -> list[Box] | None:
        if not self.is_available():
            return None
        spec = self.select_spec(scene)
        if not spec.det_model:
            return None
        model_path = self.resolver.resolve(spec.det_model)
        if model_path is None:
            return None

        det_input = prepare_det_input(image, spec.det_input_size)
        output = self._run(model_path, det_input.data)
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

    # === Internals ===

    def _session(self, model_path: Path) -> Any:
        return self.session_cache.get_or_create(model_path, lambda: self._compile(model_path))

    def _run(self, model_path: Path, tensor: np.ndarray) -> ModelOutput | None:
        """Get the cached session and run it, converting failures to None."""
        try:
            session = self._session(model_path)
            return self._execute(session, tensor)
        except SecurityViolationError as e:
            self.disable(str(e))
        except BackendUnavailableError as e:
            logger.warning(str(e))
        except Exception as e:
            logger.error(f"{self.name} inference failed for {model_path.name}: {e}")
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
