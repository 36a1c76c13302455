"""
Build Configuration - Externally produced character customization.

A build parameterizes state creation and effect behaviour:
- talents: talent name -> bool or rank
- flags: spec-level switches (hero tree, apex rank, ...)
- overrides: numeric overrides of catalog values (`score.<ability>`,
  `resource.<name>.initial`, `resource.<name>.cap`), read by TableSpecAdapter

The engine reads a build but never mutates it. Builds are content-hashed
to key the trace cache.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class BuildConfig:
    """
    An immutable build record.

    `name` is a label only; it is excluded from the content hash.
    """
    name: str
    spec_id: str
    haste: float = 0.0
    target_count: int = 1
    talents: dict[str, Any] = field(default_factory=dict)
    flags: dict[str, Any] = field(default_factory=dict)
    overrides: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.haste < 0:
            raise ValueError("haste must be >= 0")
        if self.target_count < 1:
            raise ValueError("target_count must be >= 1")

    def has_talent(self, talent: str) -> bool:
        return bool(self.talents.get(talent, False))

    def talent_rank(self, talent: str) -> float:
        """Numeric talent value (True -> 1, missing -> 0)."""
        value = self.talents.get(talent, 0)
        if isinstance(value, bool):
            return 1.0 if value else 0.0
        return float(value)

    def flag(self, name: str, default: Any = None) -> Any:
        return self.flags.get(name, default)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "spec_id": self.spec_id,
            "haste": self.haste,
            "target_count": self.target_count,
            "talents": dict(self.talents),
            "flags": dict(self.flags),
            "overrides": dict(self.overrides),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BuildConfig:
        return cls(
            name=data.get("name", "unnamed"),
            spec_id=data["spec_id"],
            haste=float(data.get("haste", 0.0)),
            target_count=int(data.get("target_count", 1)),
            talents=dict(data.get("talents") or {}),
            flags=dict(data.get("flags") or {}),
            overrides=dict(data.get("overrides") or {}),
        )
