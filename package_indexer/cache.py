"""On-disk record of package content hashes published by earlier runs.

Packages whose hash did not change since the last successful run can skip
the comparison against the search index snapshot. New hashes are collected
in a CacheBatch and only written once the whole run succeeded.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


class HashCache:
    """Package name -> content hash, stored as a JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._hashes: Optional[dict[str, str]] = None

    @property
    def hashes(self) -> dict[str, str]:
        if self._hashes is None:
            self._hashes = self._load()
        return self._hashes

    def _load(self) -> dict[str, str]:
        if not self.path.is_file():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable cache file {self.path}: {e}")
            return {}
        packages = data.get("packages") if isinstance(data, dict) else None
        if not isinstance(packages, dict):
            return {}
        return {k: v for k, v in packages.items() if isinstance(v, str)}

    def is_fresh(self, name: str, digest: str) -> bool:
        return self.hashes.get(name) == digest

    def batch(self) -> "CacheBatch":
        return CacheBatch(self)

    def write(self, updates: dict[str, str], removed: Iterable[str] = ()) -> None:
        """Merge updates into the cache file and drop removed entries, replacing it atomically."""
        hashes = dict(self.hashes)
        for key in removed:
            hashes.pop(key, None)
        hashes.update(updates)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"packages": hashes}, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise

        self._hashes = hashes


class CacheBatch:
    """Hashes waiting to be committed at the end of a run."""

    def __init__(self, cache: HashCache):
        self.cache = cache
        self.pending: dict[str, str] = {}
        self.removed: set[str] = set()

    def __len__(self) -> int:
        return len(self.pending) + len(self.removed)

    def add(self, name: str, digest: str) -> None:
        self.pending[name] = digest
        self.removed.discard(name)

    def remove(self, name: str) -> None:
        self.pending.pop(name, None)
        self.removed.add(name)

    def flush(self) -> None:
        if self.pending or self.removed:
            self.cache.write(self.pending, self.removed)
            logger.debug(
                f"Stored {len(self.pending)} and removed {len(self.removed)} package hash(es) in {self.cache.path}"
            )
        self.discard()

    def discard(self) -> None:
        self.pending = {}
        self.removed = set()
