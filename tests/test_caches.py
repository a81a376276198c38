"""Tests for the session and dictionary caches."""

import threading
import time
from unittest.mock import MagicMock

from invocr.services.ocr.caches import DictionaryCache, SessionCache


def _run_concurrently(count, target):
    barrier = threading.Barrier(count)
    results = [None] * count

    def worker(index):
        barrier.wait()
        results[index] = target(index)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results


class TestSessionCache:
    def test_concurrent_first_use_builds_once(self, session_cache, tmp_path):
        built = []
        lock = threading.Lock()

        def factory():
            time.sleep(0.05)
            session = object()
            with lock:
                built.append(session)
            return session

        results = _run_concurrently(
            8, lambda _: session_cache.get_or_create(tmp_path / "model.onnx", factory)
        )

        assert len(built) == 1
        assert all(result is built[0] for result in results)

    def test_different_keys_build_separately(self, session_cache, tmp_path):
        results = _run_concurrently(
            4, lambda i: session_cache.get_or_create(tmp_path / f"m{i}.onnx", object)
        )
        assert len({id(result) for result in results}) == 4
        assert len(session_cache) == 4

    def test_key_is_canonical_path(self, session_cache, tmp_path):
        (tmp_path / "sub").mkdir()
        first = session_cache.get_or_create(tmp_path / "model.onnx", object)
        second = session_cache.get_or_create(tmp_path / "sub" / ".." / "model.onnx", object)
        assert first is second

    def test_factory_error_caches_nothing(self, session_cache, tmp_path):
        def failing():
            raise RuntimeError("compile failed")

        try:
            session_cache.get_or_create(tmp_path / "model.onnx", failing)
        except RuntimeError:
            pass
        assert tmp_path / "model.onnx" not in session_cache
        assert session_cache.get_or_create(tmp_path / "model.onnx", lambda: "ok") == "ok"

    def test_invalidate_closes_session(self, session_cache, tmp_path):
        session = MagicMock()
        session_cache.get_or_create(tmp_path / "model.onnx", lambda: session)

        assert session_cache.invalidate(tmp_path / "model.onnx") is True
        session.close.assert_called_once()
        assert session_cache.invalidate(tmp_path / "model.onnx") is False

    def test_clear_drops_everything(self, session_cache, tmp_path):
        sessions = [MagicMock(), MagicMock()]
        for i, session in enumerate(sessions):
            session_cache.get_or_create(tmp_path / f"m{i}.onnx", lambda s=session: s)

        assert session_cache.clear() == 2
        assert len(session_cache) == 0
        for session in sessions:
            session.close.assert_called_once()

    def test_close_errors_are_ignored(self, session_cache, tmp_path):
        session = MagicMock()
        session.close.side_effect = RuntimeError("boom")
        session_cache.get_or_create(tmp_path / "model.onnx", lambda: session)
        assert session_cache.clear() == 1

    def test_session_built_during_clear_is_not_cached(self, session_cache, tmp_path):
        started = threading.Event()
        stale = MagicMock()
        results = []

        def slow_factory():
            started.set()
            time.sleep(0.2)
            return stale

        builder = threading.Thread(
            target=lambda: results.append(
                session_cache.get_or_create(tmp_path / "model.onnx", slow_factory)
            )
        )
        builder.start()
        assert started.wait(2)
        session_cache.clear()
        builder.join()

        assert results == [stale]
        assert len(session_cache) == 0
        fresh = session_cache.get_or_create(tmp_path / "model.onnx", object)
        assert fresh is not stale
        assert tmp_path / "model.onnx" in session_cache


class TestDictionaryCache:
    def test_loads_one_symbol_per_line(self, dictionary_cache, tmp_path):
        path = tmp_path / "keys.txt"
        path.write_text("a\nb\nc\n\n", encoding="utf-8")
        assert dictionary_cache.load(path) == ("a", "b", "c")

    def test_whitespace_symbols_keep_their_index(self, dictionary_cache, tmp_path):
        path = tmp_path / "keys.txt"
        path.write_text("a\n \n\u3000\nb\n", encoding="utf-8")
        assert dictionary_cache.load(path) == ("a", " ", "\u3000", "b")

    def test_loaded_once(self, dictionary_cache, tmp_path):
        path = tmp_path / "keys.txt"
        path.write_text("a\n", encoding="utf-8")
        first = dictionary_cache.load(path)
        path.write_text("z\n", encoding="utf-8")
        assert dictionary_cache.load(path) is first

    def test_missing_file_is_not_cached(self, dictionary_cache, tmp_path):
        path = tmp_path / "later.txt"
        assert dictionary_cache.load(path) == ()
        path.write_text("x\n", encoding="utf-8")
        assert dictionary_cache.load(path) == ("x",)

    def test_concurrent_load_reads_once(self, dictionary_cache, tmp_path):
        path = tmp_path / "keys.txt"
        path.write_text("a\nb\n", encoding="utf-8")
        results = _run_concurrently(6, lambda _: dictionary_cache.load(path))
        assert all(result is results[0] for result in results)
        assert len(dictionary_cache) == 1
