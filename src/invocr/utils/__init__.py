"""
InvOcr - Utils Package

Configuration management and the exception hierarchy.
"""

from invocr.utils.config_manager import ConfigManager, get_config_manager
from invocr.utils.exceptions import (
    AssetMissingError,
    BackendUnavailableError,
    DecodeFailureError,
    InvOcrError,
    OcrCancelledError,
    SecurityViolationError,
)

__all__ = [
    "AssetMissingError",
    "BackendUnavailableError",
    "ConfigManager",
    "DecodeFailureError",
    "InvOcrError",
    "OcrCancelledError",
    "SecurityViolationError",
    "get_config_manager",
]
