"""Tests for the OCR engine worker pool."""

import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from invocr.services.ocr.config import OCRConfig
from invocr.services.ocr.engine import OcrEngine
from invocr.services.ocr.models import empty_pipeline_output
from invocr.services.ocr.resource_manager import PipelineConfig, ResourceTier
from invocr.utils.exceptions import OcrCancelledError


def _pipeline():
    pipeline = MagicMock()
    pipeline.run.return_value = empty_pipeline_output()
    return pipeline


class TestOcrEngine:
    def test_recognize_runs_pipeline(self):
        pipeline = _pipeline()
        with OcrEngine(OCRConfig(workers=2), pipeline=pipeline) as engine:
            output = engine.recognize("label.png")

        assert output.is_empty
        path, event = pipeline.run.call_args[0]
        assert path == Path("label.png")
        assert isinstance(event, threading.Event)
        assert not event.is_set()

    def test_each_job_has_its_own_event(self):
        pipeline = _pipeline()
        with OcrEngine(OCRConfig(workers=2), pipeline=pipeline) as engine:
            first = engine.submit("a.png")
            second = engine.submit("b.png")
            first.result(5)
            second.result(5)
        assert first.cancel_event is not second.cancel_event

    def test_cancel_running_job(self):
        started = threading.Event()

        def run(path, cancel_event):
            started.set()
            cancel_event.wait(5)
            raise OcrCancelledError("recognition")

        pipeline = MagicMock()
        pipeline.run.side_effect = run

        with OcrEngine(OCRConfig(workers=1), pipeline=pipeline) as engine:
            job = engine.submit("slow.png")
            assert started.wait(5)
            job.cancel()
            with pytest.raises(OcrCancelledError):
                job.result(5)
            assert job.done()

    def test_shutdown_cancels_jobs_and_closes_pipeline(self):
        started = threading.Event()
        events = []

        def run(path, cancel_event):
            events.append(cancel_event)
            started.set()
            cancel_event.wait(5)
            raise OcrCancelledError()

        pipeline = MagicMock()
        pipeline.run.side_effect = run
        engine = OcrEngine(OCRConfig(workers=1), pipeline=pipeline)
        engine.submit("slow.png")
        assert started.wait(5)

        engine.shutdown()

        assert events[0].is_set()
        pipeline.close.assert_called_once()
        engine.shutdown()
        pipeline.close.assert_called_once()

    def test_submit_after_shutdown(self):
        engine = OcrEngine(OCRConfig(workers=1), pipeline=_pipeline())
        engine.shutdown()
        with pytest.raises(RuntimeError):
            engine.submit("late.png")

    def test_worker_count_from_resources(self):
        sizing = PipelineConfig(max_workers=3, tier=ResourceTier.MODERATE)
        with (
            patch("invocr.services.ocr.engine.detect_resources") as detect,
            patch("invocr.services.ocr.engine.compute_pipeline_config", return_value=sizing),
        ):
            engine = OcrEngine(OCRConfig(workers=0), pipeline=_pipeline())
        engine.shutdown()
        detect.assert_called_once()
        assert engine.max_workers == 3

    def test_explicit_worker_count(self):
        with patch("invocr.services.ocr.engine.detect_resources") as detect:
            engine = OcrEngine(OCRConfig(workers=5), pipeline=_pipeline())
        engine.shutdown()
        detect.assert_not_called()
        assert engine.max_workers == 5

    def test_pipeline_built_from_config(self, settings):
        config = OCRConfig(workers=1)
        with patch("invocr.services.ocr.engine.build_pipeline", return_value=_pipeline()) as build:
            engine = OcrEngine(config, config_manager=settings)
        engine.shutdown()
        build.assert_called_once_with(config, settings)
