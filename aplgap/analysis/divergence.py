"""
Divergence Analyzer - Finds and ranks the moments an APL chose worse than the search.

For every on-GCD trace event:
1. Rebuild the full state from the event's snapshot
2. Ask the rollout search for its best action
3. Skip matches, and pairs where both choices are fillers
4. Score the gap as rollout(optimal) - rollout(actual); drop gaps under the noise threshold
5. Run a short forced-branch comparison; a gap the short branch contradicts
   is labelled low confidence (likely the rollout's hoarding bias)
6. Count repeats of each (optimal, actual) pair and estimate aggregate impact

The analyzer is advisory and stateless: the same trace always yields the
same list.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, TYPE_CHECKING
import logging

from ..config import DivergenceConfig
from .hints import describe_frequency, generate_hint

if TYPE_CHECKING:
    from ..engine_core.build import BuildConfig
    from ..engine_core.reducer import EffectEngine
    from ..engine_core.state import CombatState, StateSnapshot
    from ..search.rollout import RolloutSearch
    from .trace import Trace

logger = logging.getLogger(__name__)


class Confidence(Enum):
    HIGH = "high"
    LOW = "low"


@dataclass
class Divergence:
    """
    One decision where the APL's choice lost value against the search.

    `delta` is rollout(optimal) - rollout(actual) and is never negative.
    `impact_pct` is None for pairs seen fewer than `min_occurrences` times.
    """
    gcd: int
    time: float
    snapshot: StateSnapshot
    optimal: str
    optimal_score: float
    actual: str
    actual_immediate: float
    actual_score: float
    delta: float
    condition: str | None = None
    list_name: str | None = None
    occurrences: int = 1
    impact_pct: float | None = None
    branch_delta: float = 0.0
    branch_summary: str = ""
    confidence: Confidence = Confidence.HIGH
    hint: str = ""
    frequency: str = ""

    @property
    def pair(self) -> tuple[str, str]:
        return (self.optimal, self.actual)

    def to_dict(self) -> dict[str, Any]:
        return {
            "gcd": self.gcd,
            "time": self.time,
            "snapshot": self.snapshot.to_dict(),
            "optimal": self.optimal,
            "optimal_score": self.optimal_score,
            "actual": self.actual,
            "actual_immediate": self.actual_immediate,
            "actual_score": self.actual_score,
            "delta": self.delta,
            "condition": self.condition,
            "list": self.list_name,
            "occurrences": self.occurrences,
            "impact_pct": self.impact_pct,
            "branch_delta": self.branch_delta,
            "branch_summary": self.branch_summary,
            "confidence": self.confidence.value,
            "hint": self.hint,
            "frequency": self.frequency,
        }


@dataclass
class DivergenceSummary:
    """Totals for a trace, used in report headers."""
    total_score: float
    events_checked: int
    divergences: int


class DivergenceAnalyzer:
    """
    Compares a trace against the rollout search.

    Usage:
        analyzer = DivergenceAnalyzer(engine, search, DivergenceConfig())
        divergences = analyzer.compute_divergences(trace, build)
    """

    def __init__(
        self,
        engine: EffectEngine,
        search: RolloutSearch,
        config: DivergenceConfig | None = None,
    ):
        self.engine = engine
        self.search = search
        self.config = config or DivergenceConfig()
        self.last_summary: DivergenceSummary | None = None

    def reconstruct_state(
        self,
        snapshot: StateSnapshot,
        build: BuildConfig,
        duration: float,
    ) -> CombatState:
        """Rebuild a full state from a snapshot plus the build's defaults."""
        return self.engine.restore(snapshot, build, duration)

    def compute_divergences(self, trace: Trace, build: BuildConfig) -> list[Divergence]:
        if trace.spec_id != self.engine.spec_id:
            raise ValueError(
                f"Trace is for spec '{trace.spec_id}', engine is '{self.engine.spec_id}'"
            )

        config = self.config
        total_score = 0.0
        checked = 0
        found: list[Divergence] = []

        for event in trace.events:
            if event.off_gcd:
                continue
            checked += 1
            state = self.reconstruct_state(event.snapshot, build, trace.duration)
            actual = event.ability_id
            actual_immediate = self.engine.score_immediate(state, actual)
            total_score += actual_immediate

            scored = self.search.evaluate(state)
            candidates = {c.ability_id: c for c in scored}
            best = self.search.pick_best(scored)
            if best is None or best.ability_id == actual:
                continue
            if self.engine.is_filler(best.ability_id) and self.engine.is_filler(actual):
                continue

            if actual in candidates:
                actual_score = candidates[actual].rollout
            else:
                actual_score = self.search.rollout_score(state, actual)

            delta = best.rollout - actual_score
            if delta < config.noise_threshold:
                continue

            branch = self.search.branch_compare(state, best.ability_id, actual, config.branch_steps)
            divergence = Divergence(
                gcd=event.gcd,
                time=event.time,
                snapshot=event.snapshot,
                optimal=best.ability_id,
                optimal_score=best.rollout,
                actual=actual,
                actual_immediate=actual_immediate,
                actual_score=actual_score,
                delta=delta,
                condition=event.condition,
                list_name=event.list_name,
                branch_delta=branch.delta,
                branch_summary=branch.describe(),
                confidence=Confidence.LOW if branch.delta < 0 else Confidence.HIGH,
            )
            divergence.hint = generate_hint(self.engine.adapter, divergence, state, build, branch)
            divergence.frequency = describe_frequency(self.engine.adapter, best.ability_id, actual)
            found.append(divergence)

        self._attribute(found, total_score)
        found.sort(key=lambda d: (-d.delta, d.gcd))

        self.last_summary = DivergenceSummary(
            total_score=total_score,
            events_checked=checked,
            divergences=len(found),
        )
        logger.info(
            "Divergence analysis: %d of %d decisions diverged",
            len(found), checked,
            extra={"spec_id": trace.spec_id, "build": trace.build_name},
        )
        return found

    def _attribute(self, divergences: list[Divergence], total_score: float):
        """Fill occurrence counts and the estimated aggregate impact."""
        counts: dict[tuple[str, str], int] = {}
        for d in divergences:
            counts[d.pair] = counts.get(d.pair, 0) + 1

        for d in divergences:
            d.occurrences = counts[d.pair]
            if d.occurrences >= self.config.min_occurrences and total_score > 0:
                d.impact_pct = d.delta * d.occurrences / total_score * 100.0
            else:
                d.impact_pct = None
