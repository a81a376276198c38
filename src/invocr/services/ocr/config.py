"""
OCR Configuration.

Runtime settings for one OCR engine: where models come from, which
backend mode to start in, input geometry of the models and the worker
count.
"""

from dataclasses import dataclass, field
from pathlib import Path

from invocr.config import (
    BACKEND_AUTO,
    DEFAULT_ASSET_DIR,
    DEFAULT_CACHE_DIR,
)
from invocr.constants import (
    DET_INPUT_SIZE,
    MAX_IMAGE_DIMENSION,
    REC_INPUT_HEIGHT,
    REC_INPUT_WIDTH,
)
from invocr.utils.config_manager import ConfigManager


@dataclass
class OCRConfig:
    """Configuration for the OCR pipeline.

    Attributes:
        asset_dir: Read-only directory holding model files and dictionaries
        cache_dir: Writable directory where assets are staged before loading
        backend_mode: Initial backend mode (auto, paddle, onnx, openocr)
        rec_input_height: Recognizer input height
        rec_input_width: Recognizer input width
        det_input_size: Maximum detector input side
        max_image_dimension: Side above which images are sub-sampled on load
        enable_orientation: Run the orientation classifiers
        enable_layout_model: Use the layout models before the edge heuristic
        enable_rectifier: Use the rectifier model before the Sobel search
        enable_table_structure: Run the table-structure model for tables
        workers: Concurrent pipeline runs (0 = size from system resources)
    """

    # === Paths ===
    asset_dir: Path = field(default_factory=lambda: Path(DEFAULT_ASSET_DIR))
    cache_dir: Path = field(default_factory=lambda: Path(DEFAULT_CACHE_DIR))

    # === Backend ===
    backend_mode: str = BACKEND_AUTO

    # === Model Geometry ===
    rec_input_height: int = REC_INPUT_HEIGHT
    rec_input_width: int = REC_INPUT_WIDTH
    det_input_size: int = DET_INPUT_SIZE

    # === Loading ===
    max_image_dimension: int = MAX_IMAGE_DIMENSION

    # === Optional Models ===
    enable_orientation: bool = True
    enable_layout_model: bool = True
    enable_rectifier: bool = True
    enable_table_structure: bool = True

    # === Execution ===
    workers: int = 0

    @classmethod
    def from_config_manager(cls, config_manager: ConfigManager, **overrides) -> "OCRConfig":
        """Build a config from the persistent settings.

        Keyword overrides that are None are ignored, so CLI options can be
        passed through unconditionally.
        """
        values = {
            "asset_dir": Path(config_manager.get("ocr.asset_dir", DEFAULT_ASSET_DIR)),
            "cache_dir": Path(config_manager.get("ocr.cache_dir", DEFAULT_CACHE_DIR)),
            "backend_mode": config_manager.get("ocr.backend_mode", BACKEND_AUTO),
            "workers": int(config_manager.get("ocr.workers", 0) or 0),
        }
        for key, value in overrides.items():
            if value is None:
                continue
            values[key] = Path(value) if key in ("asset_dir", "cache_dir") else value
        return cls(**values)
