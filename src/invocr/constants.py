"""
InvOcr - Numeric Constants

Simple numeric constants with ZERO internal imports to avoid circular dependencies.
For application-level constants (strings, paths), use config.py.
"""

from typing import Final

# ============================================================================
# Size Constants
# ============================================================================

BYTES_PER_MB: Final[int] = 1024 * 1024

# ============================================================================
# Image Loading
# ============================================================================

MAX_IMAGE_DIMENSION: Final[int] = 4096

# ============================================================================
# Model Input Geometry
# ============================================================================

REC_INPUT_HEIGHT: Final[int] = 48
REC_INPUT_WIDTH: Final[int] = 320
DET_INPUT_SIZE: Final[int] = 640
DET_SIZE_MULTIPLE: Final[int] = 32
LAYOUT_INPUT_SIZE: Final[int] = 640
ORIENTATION_INPUT_SIZE: Final[int] = 224
RECTIFY_INPUT_SIZE: Final[int] = 512

# ============================================================================
# Detection Decoding
# ============================================================================

DET_PROB_THRESHOLD: Final[float] = 0.3
DET_MIN_AREA_PX: Final[int] = 24
# Values at or below this are treated as normalized [0, 1] coordinates
NORMALIZED_COORD_LIMIT: Final[float] = 1.5
TABLE_NORMALIZATION_PROBE: Final[int] = 2048

# ============================================================================
# Table Structure Assignment
# ============================================================================

TABLE_THRESHOLD_RATIO: Final[float] = 0.5
TABLE_DEFAULT_THRESHOLD_PX: Final[float] = 8.0
TABLE_BAND_HIT_RATIO: Final[float] = 0.3

# ============================================================================
# Scene / Layout Heuristics
# ============================================================================

SCENE_SAMPLE_SIZE: Final[int] = 64
SCENE_EDGE_DELTA: Final[float] = 0.2
SCENE_EDGE_DENSITY: Final[float] = 0.12
SCENE_MIN_ASPECT: Final[float] = 0.6
SCENE_MAX_ASPECT: Final[float] = 1.7

LAYOUT_SAMPLE_SIZE: Final[int] = 96
LAYOUT_EDGE_DENSITY: Final[float] = 0.18
LAYOUT_AXIS_DENSITY: Final[float] = 0.08

# ============================================================================
# Rectification & Enhancement
# ============================================================================

QUAD_SEARCH_MAX_SIDE: Final[int] = 512
QUAD_EDGE_FRACTION: Final[float] = 0.15
MAX_WARP_SIDE: Final[int] = 4096

ENHANCE_CONTRAST: Final[float] = 1.2
ENHANCE_BRIGHTNESS: Final[float] = 10.0
SHARPEN_MAX_PIXELS: Final[int] = 2_000_000

# ============================================================================
# Resource Management (Pipeline)
# ============================================================================

RESOURCE_TIER_CONSTRAINED_GB: Final[float] = 2.0
RESOURCE_TIER_MODERATE_GB: Final[float] = 6.0
MODEL_SESSIONS_OVERHEAD_MB: Final[int] = 400
BASE_PROCESS_OVERHEAD_MB: Final[int] = 150
PER_WORKER_COST_MB: Final[int] = 200

# ============================================================================
# Inference Runtime
# ============================================================================

ONNX_INTRA_OP_THREADS: Final[int] = 2
ONNX_INTER_OP_THREADS: Final[int] = 2
