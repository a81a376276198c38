"""
Word grouping for whole-image recognition results.

When no text boxes are detected the recognizer reads the whole image as a
single line. The line is split into words (jieba for Chinese text, simple
separators otherwise) and each word gets a slice of the image width
proportional to its character count, so the overlay still has one box per
editable word.
"""

import logging
import re

import jieba

from .image_buffer import ImageBuffer
from .models import Group, OcrResult, RecognizedText, Token, new_group_id

logger = logging.getLogger(__name__)

_CHINESE_PATTERN = re.compile(r"[一-龥]")
_SEPARATOR_PATTERN = re.compile(r"[\s,;:]+")


def contains_chinese(text: str) -> bool:
    return _CHINESE_PATTERN.search(text) is not None


def split_words(text: str) -> list[str]:
    """Segment ``text`` into non-blank words."""
    if contains_chinese(text):
        words = jieba.lcut(text)
    else:
        words = _SEPARATOR_PATTERN.split(text)
    return [word for word in words if word.strip()]


def build_word_groups(text_result: RecognizedText, image: ImageBuffer) -> OcrResult:
    """One group per word, laid out left to right across the full image.

    Args:
        text_result: Whole-image recognition result
        image: The image that was recognized (only its size is used)

    Returns:
        OcrResult with a group per word, or no groups for blank text.
    """
    if not text_result.text.strip():
        return OcrResult([])

    words = split_words(text_result.text)
    total_chars = sum(len(word) for word in words)
    if total_chars == 0:
        return OcrResult([])

    line_width = float(image.width)
    line_height = float(image.height)
    groups = []
    current_x = 0.0
    for word in words:
        word_width = len(word) / total_chars * line_width
        box = [current_x, 0.0, current_x + word_width, line_height]
        current_x += word_width
        token = Token(word, text_result.confidence, box)
        groups.append(Group(new_group_id(), [token], text_result.confidence, box))

    logger.debug(f"Whole-image text split into {len(groups)} word groups")
    return OcrResult(groups)
