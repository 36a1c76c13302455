"""
Rollout Search - Bounded-horizon greedy lookahead ("optimal timeline").

For each candidate first move `a` at a state:
    rollout(a) = immediate(a) + greedy continuation until the horizon

The greedy continuation picks the highest immediate score at every step.
The best action is the candidate with the highest rollout score, so the gap
to any other legal choice is never negative.

Known bias: the continuation overvalues resource-hoarding moves whose
payoff lands later in the horizon, since it cannot coordinate multi-step
setups. The divergence analyzer compensates with a short-horizon branch
check instead of making this search exhaustive.
"""

from __future__ import annotations
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING
import logging

from ..config import SearchConfig
from ..engine_core.state import CombatState

if TYPE_CHECKING:
    from ..analysis.trace import Trace
    from ..config import InterpreterConfig
    from ..engine_core.build import BuildConfig
    from ..engine_core.reducer import EffectEngine

logger = logging.getLogger(__name__)

# Clock tolerance when comparing against the horizon
TIME_EPSILON = 1e-9


@dataclass
class CandidateScore:
    """Rollout evaluation of one candidate first move."""
    ability_id: str
    immediate: float
    rollout: float


@dataclass
class BranchResult:
    """End of a short forced branch."""
    ability_id: str
    score: float
    state: CombatState
    casts: list[str] = field(default_factory=list)


@dataclass
class BranchComparison:
    """
    Two forced branches of equal length from the same state.

    `delta` is first minus second.
    """
    first: BranchResult
    second: BranchResult
    steps: int

    @property
    def delta(self) -> float:
        return self.first.score - self.second.score

    def describe(self) -> str:
        return (
            f"{self.steps}-GCD branch: {self.first.ability_id} {self.first.score:.1f} "
            f"vs {self.second.ability_id} {self.second.score:.1f} ({self.delta:+.1f}); "
            f"after: {state_diff(self.first, self.second)}"
        )


def state_diff(first: BranchResult, second: BranchResult) -> str:
    """Short text naming resources and auras that differ between two branch ends."""
    a, b = first.state, second.state
    parts = []
    for name in sorted(a.resources):
        va, vb = a.resource(name), b.resource(name)
        if abs(va - vb) >= 0.5:
            parts.append(f"{name} {va:.0f} vs {vb:.0f}")
    for kind in ("buffs", "debuffs", "dots"):
        up_a = {n for n, aura in a.aura_table(kind).items() if aura.up}
        up_b = {n for n, aura in b.aura_table(kind).items() if aura.up}
        for name in sorted(up_a - up_b):
            parts.append(f"{name} only after {first.ability_id}")
        for name in sorted(up_b - up_a):
            parts.append(f"{name} only after {second.ability_id}")
    return ", ".join(parts) if parts else "no resource or aura difference"


class RolloutSearch:
    """
    Approximates the best on-GCD action at a state.

    Usage:
        search = RolloutSearch(engine, SearchConfig(horizon=15.0))
        best = search.best_action(state)
        gap = search.rollout_score(state, best) - search.rollout_score(state, other)

    Every method works on clones; the caller's state is never mutated.
    """

    def __init__(self, engine: EffectEngine, config: SearchConfig | None = None):
        self.engine = engine
        self.config = config or SearchConfig()

    def greedy_action(self, state: CombatState) -> str | None:
        """Highest immediate score among on-GCD abilities (ties: catalog order)."""
        best = None
        best_score = float("-inf")
        for ability_id in self.engine.on_gcd_available(state):
            score = self.engine.score_immediate(state, ability_id)
            if score > best_score:
                best = ability_id
                best_score = score
        return best

    def rollout_score(self, state: CombatState, ability_id: str) -> float:
        """
        Force `ability_id` first, then continue greedily.

        The horizon is counted from `state.time` and includes the forced
        move; it is cut short by the end of the fight.
        """
        sim = state.clone()
        end = min(state.time + self.config.horizon, state.fight_end)
        total = self._cast(sim, ability_id)
        steps = 1

        while sim.time < end - TIME_EPSILON and steps < self.config.max_steps:
            total += self.fire_off_gcd(sim)
            choice = self.greedy_action(sim)
            if choice is None:
                self.engine.advance_time(sim, sim.gcd)
            else:
                total += self._cast(sim, choice)
            steps += 1

        if steps >= self.config.max_steps:
            logger.debug("Rollout of %s hit the step cap at t=%.2f", ability_id, sim.time)
        return total

    def evaluate(self, state: CombatState) -> list[CandidateScore]:
        """Rollout score for every on-GCD candidate, in catalog order."""
        return [
            CandidateScore(
                ability_id=ability_id,
                immediate=self.engine.score_immediate(state, ability_id),
                rollout=self.rollout_score(state, ability_id),
            )
            for ability_id in self.engine.on_gcd_available(state)
        ]

    @staticmethod
    def pick_best(candidates: list[CandidateScore]) -> CandidateScore | None:
        """Highest rollout score; the earlier candidate wins ties."""
        best = None
        for candidate in candidates:
            if best is None or candidate.rollout > best.rollout:
                best = candidate
        return best

    def best_candidate(self, state: CombatState) -> CandidateScore | None:
        return self.pick_best(self.evaluate(state))

    def best_action(self, state: CombatState) -> str | None:
        """The on-GCD ability with the highest rollout score, or None."""
        best = self.best_candidate(state)
        return best.ability_id if best else None

    def branch(self, state: CombatState, ability_id: str, steps: int) -> BranchResult:
        """Force `ability_id`, then play greedily for a fixed number of GCDs in total."""
        sim = state.clone()
        result = BranchResult(ability_id=ability_id, score=self._cast(sim, ability_id), state=sim)
        result.casts.append(ability_id)

        taken = 1
        while taken < steps and sim.time < sim.fight_end:
            result.score += self.fire_off_gcd(sim)
            choice = self.greedy_action(sim)
            if choice is None:
                self.engine.advance_time(sim, sim.gcd)
            else:
                result.score += self._cast(sim, choice)
                result.casts.append(choice)
            taken += 1
        return result

    def branch_compare(
        self,
        state: CombatState,
        first: str,
        second: str,
        steps: int,
    ) -> BranchComparison:
        return BranchComparison(
            first=self.branch(state, first, steps),
            second=self.branch(state, second, steps),
            steps=steps,
        )

    def fire_off_gcd(self, sim: CombatState) -> float:
        """Apply the adapter's off-GCD triggers without advancing the clock."""
        total = 0.0
        for _ in range(self.config.max_off_gcd_per_slot):
            trigger = self.engine.adapter.off_gcd_trigger(sim)
            if trigger is None or trigger not in self.engine.get_available(sim):
                break
            total += self.engine.score_immediate(sim, trigger)
            self.engine.apply_ability(sim, trigger)
        return total

    def generate_timeline(
        self,
        build: BuildConfig,
        duration: float,
        config: InterpreterConfig | None = None,
    ) -> Trace:
        """
        Play a whole fight with the search itself making every decision.

        The result is a trace of kind OPTIMAL; replaying it through the
        divergence analyzer yields no divergences.
        """
        from ..analysis.hashing import hash_parts
        from .policy import RolloutPolicy
        from .runner import PolicyRunner

        runner = PolicyRunner(self.engine, RolloutPolicy(self), config)
        rules_hash = hash_parts(
            "optimal", self.config.horizon, self.config.max_steps, asdict(runner.config),
        )
        return runner.run(build, duration, rules_hash=rules_hash, optimal=True)

    def _cast(self, sim: CombatState, ability_id: str) -> float:
        score = self.engine.score_immediate(sim, ability_id)
        dt = self.engine.get_gcd(sim, ability_id)
        self.engine.apply_ability(sim, ability_id)
        self.engine.advance_time(sim, dt)
        return score
