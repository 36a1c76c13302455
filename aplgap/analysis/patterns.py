"""
Pattern Analysis - Aggregate views over a trace and its divergences.

Works from recorded data only; nothing is re-simulated:
1. Resource flow: generated and consumed amounts, overflow casts, time at cap
2. Dead GCDs: on-GCD casts of filler abilities
3. Burst windows: periods an aura was up, and which casts landed inside them
4. Cooldown alignment: average gap between the casts opening two windows
5. APL structure: which abilities and lists the rotation actually used
6. Divergence clusters: fight phase of each divergence, plus pairs that
   recur on a regular period

Resource names, generators, fillers and windows come from the spec adapter.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TYPE_CHECKING
import math

if TYPE_CHECKING:
    from ..engine_core.ability import BurstWindow
    from ..engine_core.adapter import SpecAdapter
    from ..engine_core.state import StateSnapshot
    from .divergence import Divergence
    from .trace import Trace, TraceEvent

# A generator cast this close to the cap wastes most of its gain
OVERFLOW_MARGIN = 1.0
OPENER_SECONDS = 10.0
FIGHT_END_FRACTION = 0.95
PRE_WINDOW_SECONDS = 5.0
MIN_PERIODIC_OCCURRENCES = 3
# Coefficient of variation of the gaps below which a pair counts as periodic
MAX_PERIOD_VARIATION = 0.3


class Phase(Enum):
    """Where in the fight a divergence happened."""
    OPENER = "opener"
    DURING_WINDOW = "during_window"
    PRE_WINDOW = "pre_window"
    FIGHT_END = "fight_end"
    MID_FIGHT = "mid_fight"


@dataclass
class ResourceFlow:
    resource: str
    generated: float = 0.0
    consumed: float = 0.0
    overflow_casts: int = 0
    cap_gcd_pct: float = 0.0
    avg_level: float = 0.0
    total_gcds: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource": self.resource,
            "generated": self.generated,
            "consumed": self.consumed,
            "overflow_casts": self.overflow_casts,
            "cap_gcd_pct": self.cap_gcd_pct,
            "avg_level": self.avg_level,
            "total_gcds": self.total_gcds,
        }


@dataclass
class GcdUsage:
    total: int = 0
    dead: int = 0

    @property
    def dead_pct(self) -> float:
        return 100.0 * self.dead / self.total if self.total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"total": self.total, "dead": self.dead, "dead_pct": self.dead_pct}


@dataclass
class WindowPeriod:
    """One stretch of time a burst window's aura was up."""
    start: float
    end: float
    gcd_count: int = 0
    ability_counts: dict[str, int] = field(default_factory=dict)
    sync_hits: dict[str, int] = field(default_factory=dict)

    @property
    def duration(self) -> float:
        return self.end - self.start

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start,
            "end": self.end,
            "duration": self.duration,
            "gcd_count": self.gcd_count,
            "ability_counts": dict(self.ability_counts),
            "sync_hits": dict(self.sync_hits),
        }


@dataclass
class WindowUsage:
    """
    All periods of one burst window.

    `sync_hits[x]` counts casts of x inside the windows; `total_casts[x]`
    counts them over the whole fight.
    """
    aura: str
    periods: list[WindowPeriod] = field(default_factory=list)
    sync_hits: dict[str, int] = field(default_factory=dict)
    total_casts: dict[str, int] = field(default_factory=dict)

    @property
    def occurrences(self) -> int:
        return len(self.periods)

    @property
    def avg_duration(self) -> float:
        if not self.periods:
            return 0.0
        return sum(p.duration for p in self.periods) / len(self.periods)

    def sync_pct(self, ability_id: str) -> float | None:
        total = self.total_casts.get(ability_id, 0)
        if total == 0:
            return None
        return 100.0 * self.sync_hits.get(ability_id, 0) / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "aura": self.aura,
            "occurrences": self.occurrences,
            "avg_duration": self.avg_duration,
            "sync_hits": dict(self.sync_hits),
            "total_casts": dict(self.total_casts),
            "periods": [p.to_dict() for p in self.periods],
        }


@dataclass
class CooldownAlignment:
    """Average distance from each cast of `first` to the nearest cast of `second`."""
    first: str
    second: str
    avg_desync: float

    def to_dict(self) -> dict[str, Any]:
        return {"first": self.first, "second": self.second, "avg_desync": self.avg_desync}


@dataclass
class AplStructure:
    total_gcds: int = 0
    ability_counts: dict[str, int] = field(default_factory=dict)
    list_usage: dict[str, int] = field(default_factory=dict)

    def ability_pct(self, ability_id: str) -> float:
        if not self.total_gcds:
            return 0.0
        return 100.0 * self.ability_counts.get(ability_id, 0) / self.total_gcds

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_gcds": self.total_gcds,
            "ability_counts": dict(self.ability_counts),
            "ability_pct": {a: self.ability_pct(a) for a in self.ability_counts},
            "list_usage": dict(self.list_usage),
        }


@dataclass
class PeriodicPattern:
    """An (optimal, actual) pair recurring at a steady interval."""
    optimal: str
    actual: str
    period: float
    count: int
    regularity: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "optimal": self.optimal,
            "actual": self.actual,
            "period": self.period,
            "count": self.count,
            "regularity": self.regularity,
        }


@dataclass
class DivergenceClusters:
    phases: dict[Phase, list[Divergence]] = field(default_factory=lambda: {p: [] for p in Phase})
    periodic: list[PeriodicPattern] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(len(items) for items in self.phases.values())

    def counts(self) -> dict[str, int]:
        return {phase.value: len(items) for phase, items in self.phases.items()}

    def to_dict(self) -> dict[str, Any]:
        return {
            "phases": self.counts(),
            "periodic": [p.to_dict() for p in self.periodic],
            "total": self.total,
        }


@dataclass
class PatternAnalysis:
    """Output of analyze_patterns."""
    resource_flow: dict[str, ResourceFlow]
    gcds: GcdUsage
    windows: list[WindowUsage]
    alignment: list[CooldownAlignment]
    structure: AplStructure
    clusters: DivergenceClusters

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource_flow": {name: flow.to_dict() for name, flow in self.resource_flow.items()},
            "gcds": self.gcds.to_dict(),
            "windows": [w.to_dict() for w in self.windows],
            "alignment": [a.to_dict() for a in self.alignment],
            "structure": self.structure.to_dict(),
            "clusters": self.clusters.to_dict(),
        }


# =============================================================================
# Resource flow
# =============================================================================

def _level(snapshot: StateSnapshot, resource: str) -> tuple[float, float]:
    pool = snapshot.resources.get(resource)
    if pool is None:
        return 0.0, 0.0
    return pool["value"], pool["cap"]


def analyze_resource_flow(trace: Trace, adapter: SpecAdapter) -> dict[str, ResourceFlow]:
    """
    Per-resource flow over the on-GCD casts.

    An overflow cast is a generator cast with the pool within OVERFLOW_MARGIN
    of its cap. Levels and caps are read from the pre-cast snapshot, so a
    temporarily raised cap is respected.
    """
    events = trace.on_gcd_events
    generators = adapter.resource_generators()
    flows = {}

    for resource in adapter.resource_names():
        flow = ResourceFlow(resource, total_gcds=len(events))
        refills = generators.get(resource, frozenset())
        at_cap = 0
        total_level = 0.0

        for event in events:
            before, cap = _level(event.snapshot, resource)
            after = _level(event.post, resource)[0] if event.post is not None else before
            total_level += before
            if after > before:
                flow.generated += after - before
            else:
                flow.consumed += before - after
            if cap > 0 and before >= cap:
                at_cap += 1
            if event.ability_id in refills and cap > 0 and before >= cap - OVERFLOW_MARGIN:
                flow.overflow_casts += 1

        if events:
            flow.cap_gcd_pct = 100.0 * at_cap / len(events)
            flow.avg_level = total_level / len(events)
        flows[resource] = flow

    return flows


def count_dead_gcds(trace: Trace, adapter: SpecAdapter) -> GcdUsage:
    events = trace.on_gcd_events
    return GcdUsage(
        total=len(events),
        dead=sum(1 for e in events if e.ability_id in adapter.filler_abilities),
    )


# =============================================================================
# Burst windows
# =============================================================================

def _aura_remains(snapshot: StateSnapshot | None, window: BurstWindow) -> float | None:
    """Remaining time of the window's aura, or None if it is down."""
    if snapshot is None:
        return None
    values = getattr(snapshot, window.kind).get(window.aura)
    if values is None:
        return None
    return values["remains"]


def find_window_periods(trace: Trace, window: BurstWindow) -> list[tuple[float, float]]:
    """
    (start, end) of every stretch the window's aura was up.

    A window opens at the cast that applies the aura. It closes at the cast
    that consumes it, or at the projected expiry when the aura runs out
    between casts. A window still open at the end of the trace is cut at
    the fight duration.
    """
    periods = []
    start: float | None = None
    expected_end = 0.0

    for event in trace.events:
        before = _aura_remains(event.snapshot, window)
        after = _aura_remains(event.post, window) if event.post is not None else before

        if start is not None and before is None:
            periods.append((start, expected_end))
            start = None

        if start is None and after is not None:
            start = event.time
        elif start is not None and after is None:
            periods.append((start, event.time))
            start = None
            continue

        if start is not None:
            expected_end = event.time + after

    if start is not None:
        periods.append((start, min(expected_end, trace.duration)))
    return periods


def analyze_burst_windows(trace: Trace, adapter: SpecAdapter) -> list[WindowUsage]:
    on_gcd = trace.on_gcd_events
    usages = []

    for window in adapter.burst_windows():
        usage = WindowUsage(aura=window.aura)
        for target in window.sync_targets:
            usage.total_casts[target] = sum(1 for e in on_gcd if e.ability_id == target)
            usage.sync_hits[target] = 0

        for start, end in find_window_periods(trace, window):
            inside = [e for e in on_gcd if start <= e.time < end]
            period = WindowPeriod(start=start, end=end, gcd_count=len(inside))
            for event in inside:
                period.ability_counts[event.ability_id] = period.ability_counts.get(event.ability_id, 0) + 1
            for target in window.sync_targets:
                period.sync_hits[target] = period.ability_counts.get(target, 0)
                usage.sync_hits[target] += period.sync_hits[target]
            usage.periods.append(period)

        usages.append(usage)
    return usages


def analyze_cooldown_alignment(trace: Trace, adapter: SpecAdapter) -> list[CooldownAlignment]:
    """Pairwise desync between the casts that open each burst window."""
    sources = [w.source for w in adapter.burst_windows()]
    casts = {
        source: [e.time for e in trace.events if e.ability_id == source]
        for source in sources
    }
    alignment = []
    for i, first in enumerate(sources):
        for second in sources[i + 1:]:
            a, b = casts[first], casts[second]
            if not a or not b:
                continue
            desync = sum(min(abs(t - u) for u in b) for t in a) / len(a)
            alignment.append(CooldownAlignment(first, second, desync))
    return alignment


# =============================================================================
# APL structure
# =============================================================================

def analyze_apl_structure(trace: Trace) -> AplStructure:
    """Ability and action-list usage over the on-GCD casts."""
    events = trace.on_gcd_events
    structure = AplStructure(total_gcds=len(events))
    for event in events:
        structure.ability_counts[event.ability_id] = structure.ability_counts.get(event.ability_id, 0) + 1
        list_name = event.list_name or "none"
        structure.list_usage[list_name] = structure.list_usage.get(list_name, 0) + 1
    structure.ability_counts = dict(sorted(structure.ability_counts.items()))
    structure.list_usage = dict(sorted(structure.list_usage.items()))
    return structure


# =============================================================================
# Divergence clustering
# =============================================================================

def classify_phase(time: float, duration: float, windows: list[BurstWindow]) -> Phase:
    """
    Fight phase of a moment.

    Window membership uses each window's nominal cycle (time modulo the
    cooldown), so it needs no trace.
    """
    if time < OPENER_SECONDS:
        return Phase.OPENER
    if time > duration * FIGHT_END_FRACTION:
        return Phase.FIGHT_END
    if any(time % w.cooldown < w.duration for w in windows):
        return Phase.DURING_WINDOW
    if any(time % w.cooldown > w.cooldown - PRE_WINDOW_SECONDS for w in windows):
        return Phase.PRE_WINDOW
    return Phase.MID_FIGHT


def find_periodic_patterns(divergences: list[Divergence]) -> list[PeriodicPattern]:
    times: dict[tuple[str, str], list[float]] = {}
    for d in divergences:
        times.setdefault(d.pair, []).append(d.time)

    patterns = []
    for (optimal, actual), seen in times.items():
        if len(seen) < MIN_PERIODIC_OCCURRENCES:
            continue
        seen = sorted(seen)
        gaps = [b - a for a, b in zip(seen, seen[1:])]
        mean = sum(gaps) / len(gaps)
        if mean <= 0:
            continue
        variation = math.sqrt(sum((g - mean) ** 2 for g in gaps) / len(gaps)) / mean
        if variation < MAX_PERIOD_VARIATION:
            patterns.append(PeriodicPattern(
                optimal=optimal,
                actual=actual,
                period=mean,
                count=len(seen),
                regularity=1.0 - variation,
            ))

    patterns.sort(key=lambda p: (-p.count, p.optimal, p.actual))
    return patterns


def cluster_divergences(
    divergences: list[Divergence],
    duration: float,
    windows: list[BurstWindow],
) -> DivergenceClusters:
    clusters = DivergenceClusters()
    for d in divergences:
        clusters.phases[classify_phase(d.time, duration, windows)].append(d)
    clusters.periodic = find_periodic_patterns(divergences)
    return clusters


# =============================================================================
# Entry point
# =============================================================================

def analyze_patterns(
    trace: Trace,
    divergences: list[Divergence],
    adapter: SpecAdapter,
) -> PatternAnalysis:
    """Run every pattern view over one trace and its divergences."""
    return PatternAnalysis(
        resource_flow=analyze_resource_flow(trace, adapter),
        gcds=count_dead_gcds(trace, adapter),
        windows=analyze_burst_windows(trace, adapter),
        alignment=analyze_cooldown_alignment(trace, adapter),
        structure=analyze_apl_structure(trace),
        clusters=cluster_divergences(divergences, trace.duration, adapter.burst_windows()),
    )


def render_patterns(analysis: PatternAnalysis) -> list[str]:
    """Markdown lines for the report's pattern section."""
    lines = ["## Patterns", "", "### Resource flow", ""]
    lines += [
        "| Resource | Generated | Consumed | Overflow casts | GCDs at cap | Avg level |",
        "|----------|-----------|----------|----------------|-------------|-----------|",
    ]
    for flow in analysis.resource_flow.values():
        lines.append(
            f"| {flow.resource} | {flow.generated:.1f} | {flow.consumed:.1f} | "
            f"{flow.overflow_casts} | {flow.cap_gcd_pct:.1f}% | {flow.avg_level:.1f} |"
        )
    gcds = analysis.gcds
    lines += ["", f"Filler GCDs: {gcds.dead}/{gcds.total} ({gcds.dead_pct:.1f}%).", ""]

    if analysis.windows:
        lines += ["### Burst windows", ""]
        for usage in analysis.windows:
            synced = ", ".join(
                f"{target} {usage.sync_hits[target]}/{usage.total_casts[target]}"
                for target in usage.sync_hits
            )
            lines.append(
                f"- {usage.aura}: {usage.occurrences} windows, avg {usage.avg_duration:.1f}s"
                + (f"; inside: {synced}" if synced else "")
            )
        for a in analysis.alignment:
            lines.append(f"- {a.first} vs {a.second}: {a.avg_desync:.1f}s average desync")
        lines.append("")

    lines += ["### Action lists", ""]
    for name, count in analysis.structure.list_usage.items():
        lines.append(f"- {name}: {count} GCDs")
    lines.append("")

    clusters = analysis.clusters
    lines += ["### Divergence phases", ""]
    lines.append(", ".join(f"{phase}: {count}" for phase, count in clusters.counts().items()))
    for p in clusters.periodic:
        lines.append(
            f"- {p.optimal} over {p.actual} every ~{p.period:.1f}s "
            f"({p.count}x, regularity {p.regularity:.2f})"
        )
    lines.append("")
    return lines
