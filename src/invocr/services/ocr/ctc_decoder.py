"""
Greedy CTC decoding of recognizer output.

The recognizer emits one class distribution per time step. Class 0 is the
blank symbol; the dictionary passed in already has the blank prepended, so
``dictionary[i]`` is the character for class ``i``.
"""

import logging
from collections.abc import Sequence

import numpy as np

from invocr.utils.exceptions import DecodeFailureError

from .models import RecognizedText

logger = logging.getLogger(__name__)

BLANK_INDEX = 0


def _tensor_layout(size: int, shape: Sequence[int] | None, dict_size: int) -> tuple[int, int]:
    """Return ``(time_steps, classes)`` for the output tensor.

    A declared ``[batch, time, classes]`` shape is used when it has at least
    three positive dimensions; otherwise the class count is the dictionary
    size and the step count is inferred from the flat length.

    Raises:
        DecodeFailureError: If the values cannot be split into whole steps.
    """
    if shape is not None and len(shape) >= 3 and int(shape[1]) > 0 and int(shape[-1]) > 0:
        steps, classes = int(shape[1]), int(shape[-1])
    else:
        if size % dict_size != 0:
            raise DecodeFailureError(
                f"{size} values are not divisible into {dict_size} classes",
                tuple(shape) if shape is not None else None,
            )
        steps, classes = size // dict_size, dict_size

    if size < steps * classes:
        raise DecodeFailureError(
            f"expected {steps * classes} values, got {size}",
            tuple(shape) if shape is not None else None,
        )
    return steps, classes


def decode_ctc(
    data: Sequence[float] | np.ndarray,
    shape: Sequence[int] | None,
    dictionary: Sequence[str],
) -> RecognizedText | None:
    """Collapse a ``[time, classes]`` probability tensor into text.

    For each time step the arg-max class is taken (the first index wins
    exact ties). A character is emitted when its class is not blank and
    differs from the previous step's class. The confidence is the mean
    arg-max probability of those steps, or 0 when nothing is emitted.
    Classes beyond the end of the dictionary contribute to the confidence
    but produce no character.

    Args:
        data: Flat output values
        shape: Declared tensor shape, if known
        dictionary: Symbols indexed by class, blank at index 0

    Returns:
        Decoded text and confidence, or None for malformed output.
    """
    values = np.asarray(data, dtype=np.float32).ravel()
    if not dictionary or values.size == 0:
        return None

    try:
        steps, classes = _tensor_layout(values.size, shape, len(dictionary))
    except DecodeFailureError as e:
        logger.debug(f"CTC decode skipped: {e}")
        return None

    probs = values[: steps * classes].reshape(steps, classes)
    best_indices = np.argmax(probs, axis=1)
    best_values = probs[np.arange(steps), best_indices]

    chars: list[str] = []
    score_sum = 0.0
    emitted = 0
    previous = -1
    for index, value in zip(best_indices.tolist(), best_values.tolist(), strict=True):
        if index != BLANK_INDEX and index != previous:
            if index < len(dictionary):
                chars.append(dictionary[index])
            score_sum += value
            emitted += 1
        previous = index

    confidence = score_sum / emitted if emitted else 0.0
    return RecognizedText(text="".join(chars), confidence=float(confidence))


def with_blank(characters: Sequence[str]) -> tuple[str, ...]:
    """Prepend the blank symbol to a loaded character list."""
    return ("", *characters)
