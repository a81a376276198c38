"""
OCR Engine - concurrent pipeline runs with cooperative cancellation.

The engine owns one pipeline (models and sessions are loaded once and
shared) and a thread pool sized from the available system resources.
Each submitted image gets its own cancellation event.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from invocr.utils.config_manager import ConfigManager

from .config import OCRConfig
from .factory import build_pipeline
from .models import PipelineOutput
from .pipeline import OcrPipeline
from .resource_manager import compute_pipeline_config, detect_resources

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class OcrJob:
    """Handle for one submitted pipeline run."""

    path: Path
    future: Future
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def cancel(self) -> None:
        """Ask the run to stop at its next stage boundary."""
        self.cancel_event.set()
        self.future.cancel()

    def result(self, timeout: float | None = None) -> PipelineOutput:
        """Wait for the output.

        Raises:
            OcrCancelledError: If the run observed its cancellation
            concurrent.futures.CancelledError: If it was cancelled before starting
        """
        return self.future.result(timeout)

    def done(self) -> bool:
        return self.future.done()


class OcrEngine:
    """Runs OCR pipelines on a worker pool.

    Args:
        config: OCR configuration; ``workers <= 0`` sizes the pool from
            the detected system resources
        pipeline: Pre-built pipeline, mainly for tests. Built from
            ``config`` when omitted.
        config_manager: Settings store the backend mode is read from
    """

    def __init__(
        self,
        config: OCRConfig | None = None,
        pipeline: OcrPipeline | None = None,
        config_manager: ConfigManager | None = None,
    ) -> None:
        self.config = config or OCRConfig()
        if pipeline is None:
            pipeline = build_pipeline(self.config, config_manager)
        self.pipeline = pipeline

        workers = self.config.workers
        if workers <= 0:
            workers = compute_pipeline_config(detect_resources()).max_workers
        self.max_workers = workers
        self._executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="invocr-ocr"
        )
        self._jobs: set[OcrJob] = set()
        self._lock = threading.Lock()
        self._closed = False
        logger.info(f"OCR engine started with {workers} workers")

    def submit(self, path: str | Path) -> OcrJob:
        """Queue one image for recognition."""
        with self._lock:
            if self._closed:
                raise RuntimeError("OCR engine has been shut down")
            cancel_event = threading.Event()
            path = Path(path)
            future = self._executor.submit(self.pipeline.run, path, cancel_event)
            job = OcrJob(path=path, future=future, cancel_event=cancel_event)
            self._jobs.add(job)
        future.add_done_callback(lambda _f: self._forget(job))
        return job

    def recognize(self, path: str | Path) -> PipelineOutput:
        """Recognize one image and wait for the result."""
        return self.submit(path).result()

    def _forget(self, job: OcrJob) -> None:
        with self._lock:
            self._jobs.discard(job)

    def shutdown(self, wait: bool = True) -> None:
        """Cancel outstanding runs and stop the worker pool."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            jobs = list(self._jobs)
        for job in jobs:
            job.cancel()
        self._executor.shutdown(wait=wait, cancel_futures=True)
        self.pipeline.close()
        logger.info("OCR engine shut down")

    def __enter__(self) -> "OcrEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
