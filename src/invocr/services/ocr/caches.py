"""
Process-wide caches for compiled sessions and character dictionaries.

Both caches use compute-if-absent semantics: concurrent first use of the
same key runs the factory once, and every caller receives the same object.
Different keys are built concurrently; a key's construction lock is only
held while that key's factory runs.
"""

import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _ComputeIfAbsentMap(Generic[T]):
    def __init__(self) -> None:
        self._values: dict[str, T] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}
        # Bumped by drain(); values built across a drain are not cached
        self._generation = 0

    def get(self, key: str) -> T | None:
        with self._lock:
            return self._values.get(key)

    def get_or_create(self, key: str, factory: Callable[[], T]) -> T:
        with self._lock:
            if key in self._values:
                return self._values[key]
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                if key in self._values:
                    return self._values[key]
                generation = self._generation
            value = factory()
            with self._lock:
                if self._key_locks.get(key) is key_lock:
                    del self._key_locks[key]
                if generation != self._generation:
                    logger.debug(f"Cache cleared while building {key}; value not cached")
                    return value
                self._values[key] = value
            return value

    def pop(self, key: str) -> T | None:
        with self._lock:
            return self._values.pop(key, None)

    def drain(self) -> list[T]:
        with self._lock:
            self._generation += 1
            values = list(self._values.values())
            self._values.clear()
            return values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._values


def _close_session(session: Any) -> None:
    """Close a session object if its runtime exposes a close method."""
    close = getattr(session, "close", None) or getattr(session, "release", None)
    if callable(close):
        try:
            close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing session: {e}")


class SessionCache:
    """Compiled inference sessions keyed by canonical model path.

    Sessions are shared across pipeline runs and threads; they are only
    dropped by ``invalidate`` or ``clear``.
    """

    def __init__(self) -> None:
        self._sessions: _ComputeIfAbsentMap[Any] = _ComputeIfAbsentMap()

    @staticmethod
    def key_for(model_path: str | Path) -> str:
        return str(Path(model_path).resolve())

    def get_or_create(self, model_path: str | Path, factory: Callable[[], Any]) -> Any:
        """Return the cached session for ``model_path``, building it at most once.

        Exceptions from ``factory`` propagate and nothing is cached.
        """
        key = self.key_for(model_path)
        cached = self._sessions.get(key)
        if cached is not None:
            return cached

        def build() -> Any:
            logger.info(f"Compiling inference session for {key}")
            return factory()

        return self._sessions.get_or_create(key, build)

    def invalidate(self, model_path: str | Path) -> bool:
        """Close and evict one session.

        Returns:
            True if a session was cached for the path.
        """
        session = self._sessions.pop(self.key_for(model_path))
        if session is None:
            return False
        _close_session(session)
        return True

    def clear(self) -> int:
        """Close and evict every session.

        Returns:
            Number of sessions dropped.
        """
        sessions = self._sessions.drain()
        for session in sessions:
            _close_session(session)
        if sessions:
            logger.info(f"Dropped {len(sessions)} cached inference sessions")
        return len(sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, model_path: str | Path) -> bool:
        return self.key_for(model_path) in self._sessions


class DictionaryCache:
    """Character dictionaries keyed by canonical file path.

    Dictionaries are immutable once loaded and live for the whole process.
    """

    def __init__(self) -> None:
        self._dicts: _ComputeIfAbsentMap[tuple[str, ...]] = _ComputeIfAbsentMap()

    def load(self, path: str | Path) -> tuple[str, ...]:
        """Return the symbols of the dictionary at ``path``, one per line.

        Every line is a symbol, including whitespace-only lines (space,
        ideographic space), so class indices match the model. Trailing
        empty lines are ignored.

        A missing or unreadable file yields an empty tuple (not cached, so
        a later copy of the file is picked up).
        """
        key = str(Path(path).resolve())
        cached = self._dicts.get(key)
        if cached is not None:
            return cached
        try:
            return self._dicts.get_or_create(key, lambda: self._read(key))
        except OSError as e:
            logger.warning(f"Could not read dictionary {key}: {e}")
            return ()

    @staticmethod
    def _read(path: str) -> tuple[str, ...]:
        with open(path, encoding="utf-8") as f:
            lines = f.read().split("\n")
        while lines and lines[-1] == "":
            lines.pop()
        characters = tuple(lines)
        logger.debug(f"Loaded dictionary {path} ({len(characters)} symbols)")
        return characters

    def __len__(self) -> int:
        return len(self._dicts)


# Singleton instances for global access
_session_cache: SessionCache | None = None
_dictionary_cache: DictionaryCache | None = None
_singleton_lock = threading.Lock()


def get_session_cache() -> SessionCache:
    """Get the process-wide session cache."""
    global _session_cache
    with _singleton_lock:
        if _session_cache is None:
            _session_cache = SessionCache()
        return _session_cache


def get_dictionary_cache() -> DictionaryCache:
    """Get the process-wide dictionary cache."""
    global _dictionary_cache
    with _singleton_lock:
        if _dictionary_cache is None:
            _dictionary_cache = DictionaryCache()
        return _dictionary_cache
