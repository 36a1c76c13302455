"""
Content hashing for cache keys.

Hashes are SHA-256 over canonical JSON (keys sorted at every depth, no
whitespace), truncated to 16 hex chars. They are invariant to dict
insertion order and change whenever any leaf value changes.
"""

from __future__ import annotations
from typing import Any
import hashlib
import json

from ..engine_core.build import BuildConfig

HASH_LENGTH = 16


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def _digest(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def hash_config(build: BuildConfig | dict[str, Any]) -> str:
    """
    Stable hash of a build's content.

    The build's `name` is a label and is left out, so renaming a build
    does not invalidate its cached traces.
    """
    data = build.to_dict() if isinstance(build, BuildConfig) else dict(build)
    data.pop("name", None)
    return _digest(canonical_json(data))


def hash_text(text: str) -> str:
    return _digest(text)


def hash_parts(*parts: Any) -> str:
    """Hash an ordered tuple of JSON-serializable parts."""
    return _digest(canonical_json(list(parts)))
