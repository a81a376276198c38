"""Tests for backend-mode tracking and fallback order."""

from unittest.mock import MagicMock

import pytest
from conftest import FakeBackend, make_buffer

from invocr.config import BACKEND_MODE_KEY
from invocr.services.ocr.models import Box, RecognizedText, Scene
from invocr.services.ocr.switcher import BackendModeProvider, BackendSwitcher, normalize_mode
from invocr.utils.exceptions import OcrCancelledError


def _backends(**overrides):
    backends = {
        "paddle": FakeBackend("paddle", infer_results=RecognizedText("paddle", 0.8)),
        "onnx": FakeBackend("onnx", infer_results=RecognizedText("onnx", 0.7)),
        "openocr": FakeBackend("openocr", infer_results=RecognizedText("openocr", 0.6)),
    }
    backends.update(overrides)
    return backends


def _called(backends):
    return [name for name, backend in backends.items() if backend.calls]


class TestNormalizeMode:
    @pytest.mark.parametrize("value", ["paddle", "onnx", "openocr", "auto"])
    def test_known_modes(self, value):
        assert normalize_mode(value) == value

    def test_case_and_whitespace(self):
        assert normalize_mode(" ONNX ") == "onnx"

    @pytest.mark.parametrize("value", [None, "", "tesseract", 3])
    def test_unknown_defaults_to_auto(self, value):
        assert normalize_mode(value) == "auto"


class TestBackendSwitcher:
    @pytest.mark.parametrize(
        "mode, expected",
        [
            ("paddle", ["paddle", "onnx"]),
            ("onnx", ["onnx", "paddle"]),
            ("openocr", ["openocr", "onnx", "paddle"]),
            ("auto", ["onnx", "paddle"]),
        ],
    )
    def test_candidate_order(self, mode, expected):
        switcher = BackendSwitcher(_backends(), lambda: mode)
        assert switcher.candidates() == expected

    def test_primary_result_is_used(self):
        backends = _backends()
        switcher = BackendSwitcher(backends, lambda: "paddle")
        assert switcher.infer(Scene.DOCUMENT, make_buffer(10, 10)).text == "paddle"
        assert _called(backends) == ["paddle"]

    def test_none_falls_through_in_order(self):
        backends = _backends(paddle=FakeBackend("paddle", infer_results=None))
        switcher = BackendSwitcher(backends, lambda: "paddle")

        result = switcher.infer(Scene.DOCUMENT, make_buffer(10, 10))

        assert result.text == "onnx"
        assert _called(backends) == ["paddle", "onnx"]

    def test_openocr_falls_back_to_onnx_then_paddle(self):
        backends = _backends(
            openocr=FakeBackend("openocr", infer_results=None),
            onnx=FakeBackend("onnx", available=False),
        )
        switcher = BackendSwitcher(backends, lambda: "openocr")
        assert switcher.infer(Scene.ITEM_PHOTO, make_buffer(10, 10)).text == "paddle"
        assert backends["onnx"].calls == []

    def test_auto_never_uses_openocr(self):
        backends = _backends(
            onnx=FakeBackend("onnx", infer_results=None),
            paddle=FakeBackend("paddle", infer_results=None),
        )
        switcher = BackendSwitcher(backends, lambda: "auto")
        assert switcher.infer(Scene.DOCUMENT, make_buffer(10, 10)) is None
        assert backends["openocr"].calls == []

    def test_errors_are_skipped(self):
        backends = _backends(onnx=FakeBackend("onnx", error=RuntimeError("session died")))
        switcher = BackendSwitcher(backends, lambda: "onnx")
        assert switcher.infer(Scene.DOCUMENT, make_buffer(10, 10)).text == "paddle"

    def test_cancellation_propagates(self):
        backends = _backends(onnx=FakeBackend("onnx", error=OcrCancelledError("infer")))
        switcher = BackendSwitcher(backends, lambda: "onnx")
        with pytest.raises(OcrCancelledError):
            switcher.infer(Scene.DOCUMENT, make_buffer(10, 10))
        assert backends["paddle"].calls == []

    def test_empty_detection_falls_through(self):
        boxes = [Box(0, 0, 5, 5)]
        backends = _backends(
            onnx=FakeBackend("onnx", detect_results=[]),
            paddle=FakeBackend("paddle", detect_results=boxes),
        )
        switcher = BackendSwitcher(backends, lambda: "auto")
        assert switcher.detect(Scene.DOCUMENT, make_buffer(10, 10)) == boxes

    def test_mode_is_read_per_call(self):
        mode = {"value": "onnx"}
        backends = _backends()
        switcher = BackendSwitcher(backends, lambda: mode["value"])

        assert switcher.infer(Scene.DOCUMENT, make_buffer(10, 10)).text == "onnx"
        mode["value"] = "openocr"
        assert switcher.infer(Scene.DOCUMENT, make_buffer(10, 10)).text == "openocr"

    def test_missing_backends_are_ignored(self):
        switcher = BackendSwitcher({"paddle": FakeBackend("paddle")}, lambda: "openocr")
        assert switcher.candidates() == ["paddle"]

    def test_availability(self):
        assert BackendSwitcher(_backends(), lambda: "auto").is_available()
        offline = {"onnx": FakeBackend("onnx", available=False)}
        assert not BackendSwitcher(offline, lambda: "auto").is_available()


class TestBackendModeProvider:
    def test_initial_mode_from_settings(self, settings, session_cache):
        settings.set(BACKEND_MODE_KEY, "paddle")
        provider = BackendModeProvider(settings, session_cache)
        assert provider.mode == "paddle"

    def test_follows_setting_changes_and_clears_sessions(self, settings, session_cache, tmp_path):
        session = MagicMock()
        session_cache.get_or_create(tmp_path / "model.onnx", lambda: session)
        provider = BackendModeProvider(settings, session_cache)

        settings.set(BACKEND_MODE_KEY, "onnx")

        assert provider.mode == "onnx"
        assert len(session_cache) == 0
        session.close.assert_called_once()

    def test_same_mode_keeps_sessions(self, settings, session_cache, tmp_path):
        provider = BackendModeProvider(settings, session_cache)
        session_cache.get_or_create(tmp_path / "model.onnx", MagicMock)

        provider.update("AUTO")

        assert len(session_cache) == 1

    def test_unknown_value_becomes_auto(self, settings, session_cache):
        provider = BackendModeProvider(settings, session_cache)
        settings.set(BACKEND_MODE_KEY, "bogus")
        assert provider.mode == "auto"

    def test_close_unsubscribes(self, settings, session_cache):
        provider = BackendModeProvider(settings, session_cache)
        provider.close()
        settings.set(BACKEND_MODE_KEY, "openocr")
        assert provider.mode == "auto"
