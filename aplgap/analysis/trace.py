"""
Trace - The serializable record of a full decision sequence.

A trace is produced once per (APL text, build, duration) and is
content-addressable: its metadata carries the config and rules hashes plus
the format version, which together key the on-disk cache.

Floats are stored as-is; JSON round-trips them exactly, so a reloaded
trace reconstructs bit-identical states.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
import json

from ..engine_core.state import StateSnapshot

# Bump whenever TraceEvent / StateSnapshot layout or engine semantics change
TRACE_FORMAT_VERSION = "2"


class TraceKind(Enum):
    """Who made the decisions in a trace."""
    APL = "apl"
    OPTIMAL = "optimal"


@dataclass
class TraceEvent:
    """
    One applied action.

    `gcd` is the 1-based GCD slot; off-GCD events carry the index of the
    slot they precede. `condition` is the rule text that selected the action
    (None for an unconditional entry).
    `snapshot` is the state before the cast, `post` the state right after
    it (before the clock advances).
    """
    gcd: int
    time: float
    ability_id: str
    snapshot: StateSnapshot
    condition: str | None = None
    list_name: str | None = None
    off_gcd: bool = False
    note: str | None = None
    post: StateSnapshot | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "gcd": self.gcd,
            "time": self.time,
            "ability": self.ability_id,
            "snapshot": self.snapshot.to_dict(),
            "condition": self.condition,
            "list": self.list_name,
            "off_gcd": self.off_gcd,
        }
        if self.note is not None:
            data["note"] = self.note
        if self.post is not None:
            data["post"] = self.post.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TraceEvent:
        return cls(
            gcd=data["gcd"],
            time=data["time"],
            ability_id=data["ability"],
            snapshot=StateSnapshot.from_dict(data["snapshot"]),
            condition=data.get("condition"),
            list_name=data.get("list"),
            off_gcd=data.get("off_gcd", False),
            note=data.get("note"),
            post=StateSnapshot.from_dict(data["post"]) if data.get("post") else None,
        )


@dataclass
class Trace:
    """Metadata plus the ordered events of one run."""
    spec_id: str
    build_name: str
    duration: float
    config_hash: str
    rules_hash: str
    kind: TraceKind = TraceKind.APL
    format_version: str = TRACE_FORMAT_VERSION
    events: list[TraceEvent] = field(default_factory=list)

    @property
    def on_gcd_events(self) -> list[TraceEvent]:
        return [e for e in self.events if not e.off_gcd]

    def ability_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for event in self.events:
            counts[event.ability_id] = counts.get(event.ability_id, 0) + 1
        return dict(sorted(counts.items()))

    def metadata(self) -> dict[str, Any]:
        return {
            "spec_id": self.spec_id,
            "build": self.build_name,
            "duration": self.duration,
            "config_hash": self.config_hash,
            "rules_hash": self.rules_hash,
            "kind": self.kind.value,
            "format_version": self.format_version,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": self.metadata(),
            "events": [event.to_dict() for event in self.events],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Trace:
        meta = data["metadata"]
        return cls(
            spec_id=meta["spec_id"],
            build_name=meta["build"],
            duration=meta["duration"],
            config_hash=meta["config_hash"],
            rules_hash=meta["rules_hash"],
            kind=TraceKind(meta.get("kind", TraceKind.APL.value)),
            format_version=meta["format_version"],
            events=[TraceEvent.from_dict(e) for e in data.get("events", [])],
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str) -> Trace:
        return cls.from_dict(json.loads(text))
