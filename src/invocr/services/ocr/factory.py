"""
Default wiring of the OCR pipeline.

Builds the asset resolvers, the three recognition backends behind the
runtime switcher, the auxiliary models and the preprocessor from one
``OCRConfig``.
"""

import logging

from invocr.config import (
    BACKEND_ONNX,
    BACKEND_OPENOCR,
    BACKEND_PADDLE,
    DOC_ORIENTATION_MODEL,
    LAYOUT_MODEL,
    ONNX_CACHE_SUBDIR,
    ONNX_DET_MODEL,
    ONNX_DICT,
    ONNX_REC_MODEL,
    OPENOCR_DET_MODEL,
    OPENOCR_DICT,
    OPENOCR_REC_MODEL,
    OPENVINO_CACHE_SUBDIR,
    PPOCR_CLS_MODEL,
    PPOCR_DET_MODEL,
    PPOCR_DICT,
    PPOCR_REC_MODEL,
    PPOCR_VL_CLS_MODEL,
    PPOCR_VL_DET_MODEL,
    PPOCR_VL_DICT,
    PPOCR_VL_REC_MODEL,
    RECTIFY_MODEL,
    TABLE_DET_MODEL,
    TABLE_STRUCTURE_MODEL,
    TEXTLINE_ORIENTATION_MODEL,
)
from invocr.utils.config_manager import ConfigManager

from .assets import AssetResolver, AssetStore
from .aux_models import (
    DetectionLayoutClassifier,
    OnnxCellDetector,
    OnnxLayoutClassifier,
    OnnxModelRunner,
    OnnxOrientationClassifier,
    OnnxRectifier,
    OnnxTableStructureDetector,
)
from .backend_base import OcrBackend
from .backend_onnx import OnnxRuntimeBackend
from .backend_openvino import OpenVinoBackend
from .caches import SessionCache, get_session_cache
from .config import OCRConfig
from .models import ModelSpec
from .pipeline import OcrPipeline
from .preprocessor import ImagePreprocessor
from .switcher import BackendModeProvider, BackendSwitcher

logger = logging.getLogger(__name__)


def _spec(
    config: OCRConfig, rec: str, dictionary: str, det: str, cls: str | None = None
) -> ModelSpec:
    return ModelSpec(
        rec_model=rec,
        dict_path=dictionary,
        det_model=det,
        cls_model=cls,
        input_height=config.rec_input_height,
        input_width=config.rec_input_width,
        det_input_size=config.det_input_size,
    )


def build_backends(
    config: OCRConfig,
    store: AssetStore | None = None,
    session_cache: SessionCache | None = None,
) -> dict[str, OcrBackend]:
    """Recognition backends keyed by backend mode."""
    store = store or AssetStore(config.asset_dir)
    session_cache = session_cache or get_session_cache()
    openvino_resolver = AssetResolver(store, config.cache_dir, OPENVINO_CACHE_SUBDIR)
    onnx_resolver = AssetResolver(store, config.cache_dir, ONNX_CACHE_SUBDIR)

    paddle = OpenVinoBackend(
        openvino_resolver,
        _spec(config, PPOCR_REC_MODEL, PPOCR_DICT, PPOCR_DET_MODEL, PPOCR_CLS_MODEL),
        document_spec=_spec(
            config, PPOCR_VL_REC_MODEL, PPOCR_VL_DICT, PPOCR_VL_DET_MODEL, PPOCR_VL_CLS_MODEL
        ),
        session_cache=session_cache,
    )
    onnx = OnnxRuntimeBackend(
        onnx_resolver,
        _spec(config, ONNX_REC_MODEL, ONNX_DICT, ONNX_DET_MODEL),
        session_cache=session_cache,
    )
    openocr = OnnxRuntimeBackend(
        onnx_resolver,
        _spec(config, OPENOCR_REC_MODEL, OPENOCR_DICT, OPENOCR_DET_MODEL),
        session_cache=session_cache,
        name=BACKEND_OPENOCR,
    )
    return {BACKEND_PADDLE: paddle, BACKEND_ONNX: onnx, BACKEND_OPENOCR: openocr}


def build_preprocessor(
    config: OCRConfig, resolver: AssetResolver, session_cache: SessionCache
) -> ImagePreprocessor:
    def runner(model: str) -> OnnxModelRunner:
        return OnnxModelRunner(resolver, model, session_cache)

    page_orientation = textline_orientation = None
    if config.enable_orientation:
        page_orientation = OnnxOrientationClassifier(runner(DOC_ORIENTATION_MODEL))
        textline_orientation = OnnxOrientationClassifier(runner(TEXTLINE_ORIENTATION_MODEL))

    layout_classifiers = []
    if config.enable_layout_model:
        layout_classifiers = [
            OnnxLayoutClassifier(runner(LAYOUT_MODEL)),
            DetectionLayoutClassifier(
                OnnxCellDetector(runner(TABLE_DET_MODEL), config.det_input_size)
            ),
        ]

    rectifier = OnnxRectifier(runner(RECTIFY_MODEL)) if config.enable_rectifier else None

    return ImagePreprocessor(
        page_orientation=page_orientation,
        textline_orientation=textline_orientation,
        layout_classifiers=layout_classifiers,
        rectifier=rectifier,
    )


def build_pipeline(
    config: OCRConfig,
    config_manager: ConfigManager | None = None,
    session_cache: SessionCache | None = None,
) -> OcrPipeline:
    """Wire a complete pipeline.

    The backend mode follows ``ocr.backend_mode`` in ``config_manager``
    for the lifetime of the pipeline, starting from ``config.backend_mode``.
    Call ``OcrPipeline.close()`` to stop following it.
    """
    session_cache = session_cache or get_session_cache()
    store = AssetStore(config.asset_dir)
    onnx_resolver = AssetResolver(store, config.cache_dir, ONNX_CACHE_SUBDIR)

    mode_provider = BackendModeProvider(config_manager, session_cache)
    mode_provider.update(config.backend_mode)

    backends = build_backends(config, store, session_cache)
    switcher = BackendSwitcher(backends, lambda: mode_provider.mode)

    table_structure = None
    if config.enable_table_structure:
        table_structure = OnnxTableStructureDetector(
            OnnxModelRunner(onnx_resolver, TABLE_STRUCTURE_MODEL, session_cache),
            config.det_input_size,
        )

    logger.info(
        f"OCR pipeline ready: assets={config.asset_dir}, cache={config.cache_dir}, "
        f"mode={mode_provider.mode}"
    )
    return OcrPipeline(
        backend=switcher,
        preprocessor=build_preprocessor(config, onnx_resolver, session_cache),
        table_structure=table_structure,
        max_image_dimension=config.max_image_dimension,
        mode_provider=mode_provider,
    )
