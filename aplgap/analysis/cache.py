"""
Trace Cache - Stores traces on disk, keyed by content hash.

The cache:
- Uses (config hash, rules hash, duration) plus the trace format version as key
- Stores one JSON file per trace
- Treats any metadata or version mismatch as a miss, forcing regeneration
- Is write-once: an existing key is never overwritten
- Creates its directory on the first write, not on construction

Concurrent writers to the same key are not coordinated; each analysis run
owns its key, and the atomic rename keeps readers from seeing partial files.
"""

from __future__ import annotations
from pathlib import Path
import hashlib
import json
import logging
import os
import shutil
import tempfile

from .hashing import hash_parts
from .trace import TRACE_FORMAT_VERSION, Trace

logger = logging.getLogger(__name__)


class TraceCache:
    """
    File-based cache for traces.

    Usage:
        cache = TraceCache(cache_dir="~/.aplgap/cache")

        trace = cache.get(config_hash, rules_hash, duration)
        if trace is None:
            trace = interpreter.run(build, duration)
            cache.put(trace)
    """

    def __init__(
        self,
        cache_dir: str | Path | None = None,
        format_version: str = TRACE_FORMAT_VERSION,
    ):
        if cache_dir is None:
            cache_dir = Path.home() / ".aplgap" / "cache"
        self.cache_dir = Path(cache_dir).expanduser()
        self.format_version = format_version

    def make_key(self, config_hash: str, rules_hash: str, duration: float) -> str:
        version_hash = hashlib.sha256(self.format_version.encode()).hexdigest()[:8]
        return f"{hash_parts(config_hash, rules_hash, float(duration))}_{version_hash}"

    def get(self, config_hash: str, rules_hash: str, duration: float) -> Trace | None:
        """
        Cached trace for the key, or None.

        Unreadable or stale entries are deleted and reported as a miss.
        """
        path = self._path(self.make_key(config_hash, rules_hash, duration))
        if not path.exists():
            return None

        try:
            trace = Trace.from_json(path.read_text(encoding="utf-8"))
        except (OSError, ValueError, KeyError, TypeError):
            logger.warning("Discarding unreadable cache entry %s", path.name, exc_info=True)
            path.unlink(missing_ok=True)
            return None

        if (
            trace.format_version != self.format_version
            or trace.config_hash != config_hash
            or trace.rules_hash != rules_hash
            or trace.duration != float(duration)
        ):
            logger.warning(
                "Discarding stale cache entry %s",
                path.name,
                extra={"config_hash": config_hash, "rules_hash": rules_hash},
            )
            path.unlink(missing_ok=True)
            return None

        logger.debug("Cache hit %s", path.name)
        return trace

    def put(self, trace: Trace) -> bool:
        """
        Store a trace. Returns False if the key was already present.
        """
        key = self.make_key(trace.config_hash, trace.rules_hash, trace.duration)
        path = self._path(key)
        if path.exists():
            return False

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(trace.to_json())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug(
            "Cached trace %s",
            key,
            extra={"config_hash": trace.config_hash, "rules_hash": trace.rules_hash},
        )
        return True

    def invalidate(self, config_hash: str, rules_hash: str, duration: float):
        self._path(self.make_key(config_hash, rules_hash, duration)).unlink(missing_ok=True)

    def clear(self):
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def list_cached(self) -> list[str]:
        if not self.cache_dir.exists():
            return []
        return sorted(f.stem for f in self.cache_dir.glob("*.json"))

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"
