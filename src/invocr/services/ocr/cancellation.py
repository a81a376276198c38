"""Cooperative cancellation for pipeline runs."""

import threading

from invocr.utils.exceptions import OcrCancelledError


def check_cancelled(cancel_event: threading.Event | None, stage: str) -> None:
    """Raise ``OcrCancelledError`` if ``cancel_event`` has been set."""
    if cancel_event is not None and cancel_event.is_set():
        raise OcrCancelledError(stage)
