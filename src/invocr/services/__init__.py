"""
InvOcr - Services Package

Service modules for OCR processing.
"""

from invocr.services.ocr import OcrEngine, OcrPipeline

__all__ = ["OcrEngine", "OcrPipeline"]
