"""Tests for config_manager module."""

import json
import os
import tempfile

from invocr.config import BACKEND_MODE_KEY
from invocr.utils.config_manager import ConfigManager


class TestConfigManager:
    def _make_manager(self, tmp_dir, initial=None):
        path = os.path.join(tmp_dir, "config.json")
        if initial:
            with open(path, "w") as f:
                json.dump(initial, f)
        return ConfigManager(config_path=path)

    def test_get_default_value(self):
        with tempfile.TemporaryDirectory() as d:
            cm = self._make_manager(d)
            assert cm.get("nonexistent.key", "fallback") == "fallback"

    def test_set_and_get(self):
        with tempfile.TemporaryDirectory() as d:
            cm = self._make_manager(d)
            cm.set(BACKEND_MODE_KEY, "onnx", save_immediately=False)
            assert cm.get(BACKEND_MODE_KEY) == "onnx"

    def test_save_and_reload(self):
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "config.json")
            cm = ConfigManager(config_path=path)
            cm.set("test.key", "value123")
            # Reload from disk
            cm2 = ConfigManager(config_path=path)
            assert cm2.get("test.key") == "value123"

    def test_nested_key_path(self):
        with tempfile.TemporaryDirectory() as d:
            cm = self._make_manager(d)
            cm.set("a.b.c", 42, save_immediately=False)
            assert cm.get("a.b.c") == 42

    def test_default_backend_mode_is_auto(self):
        with tempfile.TemporaryDirectory() as d:
            cm = self._make_manager(d)
            assert cm.get(BACKEND_MODE_KEY) == "auto"

    def test_load_existing_config_fills_missing_defaults(self):
        with tempfile.TemporaryDirectory() as d:
            cm = self._make_manager(d, initial={"ocr": {"backend_mode": "paddle"}})
            assert cm.get(BACKEND_MODE_KEY) == "paddle"
            assert cm.get("ocr.workers") == 0
            assert cm.get("version") == 1

    def test_corrupt_file_falls_back_to_defaults(self):
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "config.json")
            with open(path, "w") as f:
                f.write("{not json")
            cm = ConfigManager(config_path=path)
            assert cm.get(BACKEND_MODE_KEY) == "auto"

    def test_save_returns_true(self):
        with tempfile.TemporaryDirectory() as d:
            cm = self._make_manager(d)
            assert cm.save() is True


class TestConfigSubscriptions:
    def test_subscriber_receives_old_and_new(self, settings):
        seen = []
        settings.subscribe(BACKEND_MODE_KEY, lambda old, new: seen.append((old, new)))
        settings.set(BACKEND_MODE_KEY, "openocr")
        assert seen == [("auto", "openocr")]

    def test_unchanged_value_does_not_notify(self, settings):
        seen = []
        settings.subscribe(BACKEND_MODE_KEY, lambda old, new: seen.append(new))
        settings.set(BACKEND_MODE_KEY, "auto")
        assert seen == []

    def test_other_keys_do_not_notify(self, settings):
        seen = []
        settings.subscribe(BACKEND_MODE_KEY, lambda old, new: seen.append(new))
        settings.set("ocr.workers", 3)
        assert seen == []

    def test_unsubscribe(self, settings):
        seen = []
        unsubscribe = settings.subscribe(BACKEND_MODE_KEY, lambda old, new: seen.append(new))
        unsubscribe()
        unsubscribe()
        settings.set(BACKEND_MODE_KEY, "onnx")
        assert seen == []

    def test_failing_subscriber_does_not_block_others(self, settings):
        seen = []

        def broken(old, new):
            raise RuntimeError("subscriber bug")

        settings.subscribe(BACKEND_MODE_KEY, broken)
        settings.subscribe(BACKEND_MODE_KEY, lambda old, new: seen.append(new))
        settings.set(BACKEND_MODE_KEY, "paddle")
        assert seen == ["paddle"]
        assert settings.get(BACKEND_MODE_KEY) == "paddle"
