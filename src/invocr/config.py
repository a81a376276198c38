"""
InvOcr - Configuration Module

This module contains application-level constants, directories and the
relative asset paths of every model the OCR pipeline can load.
"""

import os
from typing import Final

# ============================================================================
# Application Constants
# ============================================================================

APP_NAME: Final[str] = "InvOcr"
APP_ID: Final[str] = "invocr"
APP_VERSION: Final[str] = "1.0.0"
APP_DESCRIPTION: Final[str] = "On-device OCR for inventory labels and documents"


# ============================================================================
# Directories
# ============================================================================

CONFIG_DIR: Final[str] = os.path.expanduser("~/.config/invocr")
CONFIG_FILE_PATH: Final[str] = os.path.join(CONFIG_DIR, "settings.json")

# Writable cache where model assets are staged before loading
DEFAULT_CACHE_DIR: Final[str] = os.environ.get(
    "INVOCR_CACHE_DIR", os.path.expanduser("~/.cache/invocr")
)

# Read-only bundle of model binaries and dictionaries
DEFAULT_ASSET_DIR: Final[str] = os.environ.get("INVOCR_ASSET_DIR", "/usr/share/invocr/models")

# Cache sub-directories, one per runtime family
OPENVINO_CACHE_SUBDIR: Final[str] = "paddle"
ONNX_CACHE_SUBDIR: Final[str] = "onnx"


# ============================================================================
# Logging Configuration
# ============================================================================

LOG_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# ============================================================================
# Backend Modes
# ============================================================================

BACKEND_AUTO: Final[str] = "auto"
BACKEND_PADDLE: Final[str] = "paddle"
BACKEND_ONNX: Final[str] = "onnx"
BACKEND_OPENOCR: Final[str] = "openocr"

BACKEND_MODES: Final[tuple[str, ...]] = (
    BACKEND_AUTO,
    BACKEND_PADDLE,
    BACKEND_ONNX,
    BACKEND_OPENOCR,
)

BACKEND_MODE_KEY: Final[str] = "ocr.backend_mode"


# ============================================================================
# Model Assets (relative to the asset store)
# ============================================================================

# PP-OCRv4 set compiled through OpenVINO
PPOCR_DET_MODEL: Final[str] = "ppocr/ppocrv4_det.onnx"
PPOCR_REC_MODEL: Final[str] = "ppocr/ppocrv4_rec.onnx"
PPOCR_CLS_MODEL: Final[str] = "ppocr/ch_ppocr_mobile_v2.0_cls.onnx"
PPOCR_DICT: Final[str] = "ppocr/ppocr_keys_v1.txt"

# Higher-accuracy document set
PPOCR_VL_DET_MODEL: Final[str] = "ppocr_vl/vl_det_slim.onnx"
PPOCR_VL_REC_MODEL: Final[str] = "ppocr_vl/vl_rec_slim.onnx"
PPOCR_VL_CLS_MODEL: Final[str] = "ppocr_vl/vl_cls.onnx"
PPOCR_VL_DICT: Final[str] = "ppocr_vl/vl_keys.txt"

# PP-OCRv5 mobile set for ONNX Runtime
ONNX_REC_MODEL: Final[str] = "onnx/ch_PP-OCRv5_rec_mobile_infer.onnx"
ONNX_DICT: Final[str] = "onnx/ppocrv5_dict.txt"
ONNX_DET_MODEL: Final[str] = "onnx/ch_PP-OCRv5_mobile_det_infer.onnx"
OPENOCR_REC_MODEL: Final[str] = "onnx/openocr_rec_model.onnx"
OPENOCR_DET_MODEL: Final[str] = "onnx/openocr_det_model.onnx"
OPENOCR_DICT: Final[str] = "onnx/ppocrv5_dict.txt"

# Auxiliary models
LAYOUT_MODEL: Final[str] = "onnx/PP-DocLayoutV3.onnx"
TABLE_DET_MODEL: Final[str] = "onnx/picodet_lcnet_x1_0_fgd_layout_table_infer_model.onnx"
DOC_ORIENTATION_MODEL: Final[str] = "onnx/PP-LCNet_x1_0_doc_ori_infer.onnx"
TEXTLINE_ORIENTATION_MODEL: Final[str] = "onnx/PP-LCNet_x1_0_textline_ori_infer.onnx"
TABLE_STRUCTURE_MODEL: Final[str] = "onnx/SLANeXt_wired_infer.onnx"
RECTIFY_MODEL: Final[str] = "onnx/UVDoc_infer.onnx"

# Layout classes reported as tables by the layout model
LAYOUT_TABLE_CLASS_IDS: Final[tuple[int, ...]] = (3,)
ORIENTATION_ANGLES: Final[tuple[int, ...]] = (0, 90, 180, 270)
