"""
Model Asset Resolver.

Stages model binaries and dictionaries from the read-only asset store into
a writable cache directory, where the inference runtimes load them from.
Asset paths are relative strings; anything that could escape the cache
directory is refused.
"""

import logging
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import BinaryIO

from invocr.utils.exceptions import AssetMissingError, SecurityViolationError

logger = logging.getLogger(__name__)


class AssetStore:
    """Read-only bundle of model files addressed by relative path."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _locate(self, asset_path: str) -> Path:
        return self.root / asset_path

    def exists(self, asset_path: str) -> bool:
        return self._locate(asset_path).is_file()

    def open(self, asset_path: str) -> BinaryIO:
        """Open an asset for reading.

        Raises:
            AssetMissingError: If the asset is not in the store.
        """
        source = self._locate(asset_path)
        if not source.is_file():
            raise AssetMissingError(asset_path)
        return open(source, "rb")


def check_asset_path(asset_path: str) -> None:
    """Refuse parent-directory segments and absolute paths.

    Raises:
        SecurityViolationError: If the path could escape its directory.
    """
    if ".." in asset_path or asset_path.startswith("/"):
        raise SecurityViolationError(asset_path, "asset path escapes the asset store")


def is_within(path: Path, directory: Path) -> bool:
    """True when ``path`` canonically lies inside ``directory``."""
    resolved = path.resolve()
    root = directory.resolve()
    return resolved == root or root in resolved.parents


class AssetResolver:
    """Copies assets into ``<cache_root>/<subdir>`` on first use.

    Attributes:
        copy_count: Number of copies performed, mainly for diagnostics.
    """

    def __init__(self, store: AssetStore, cache_root: str | Path, subdir: str) -> None:
        self.store = store
        self.target_dir = Path(cache_root) / subdir
        self.copy_count = 0
        self._lock = threading.Lock()

    def exists(self, asset_path: str) -> bool:
        """Whether the asset store can provide ``asset_path``."""
        try:
            check_asset_path(asset_path)
        except SecurityViolationError:
            return False
        return self.store.exists(asset_path)

    def resolve(self, asset_path: str) -> Path | None:
        """Return the cached file for ``asset_path``, copying it if needed.

        An existing non-empty cached file is returned as-is. Any failure
        (missing asset, I/O error, path outside the cache) yields None.
        """
        try:
            return self._resolve(asset_path)
        except SecurityViolationError as e:
            logger.warning(f"Refused model asset: {e}")
        except AssetMissingError as e:
            logger.info(str(e))
        except OSError as e:
            logger.error(f"Could not stage model asset {asset_path}: {e}")
        return None

    def _resolve(self, asset_path: str) -> Path:
        check_asset_path(asset_path)

        name = asset_path.rsplit("/", 1)[-1]
        target = self.target_dir / name
        if (
            not name
            or not is_within(target, self.target_dir)
            or target.resolve() == self.target_dir.resolve()
        ):
            raise SecurityViolationError(str(target), "destination leaves the cache directory")

        with self._lock:
            if target.is_file() and target.stat().st_size > 0:
                return target

            self.target_dir.mkdir(parents=True, exist_ok=True)
            with self.store.open(asset_path) as source:
                fd, tmp_name = tempfile.mkstemp(dir=self.target_dir, prefix=f".{name}.")
                try:
                    with os.fdopen(fd, "wb") as dest:
                        shutil.copyfileobj(source, dest)
                    os.replace(tmp_name, target)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise

            self.copy_count += 1
            logger.debug(f"Staged model asset {asset_path} -> {target}")
            return target
