"""
Effect Engine - Applies abilities and advances time on combat state.

The engine is the single point of state mutation. Search, interpreter and
analyzer all go through it, never through the adapter directly.

Design principles:
- Contract-enforcing: applying an unavailable ability raises, never clamps
- Deterministic: no randomness anywhere in this layer
- Spec-agnostic: every spec-specific decision is delegated to the adapter
- Invariants are checked after every transition
"""

from __future__ import annotations
from dataclasses import dataclass

from ..errors import IllegalAbilityError, InvariantViolation
from .adapter import SpecAdapter
from .build import BuildConfig
from .state import CombatState, StateSnapshot


@dataclass
class EffectEngine:
    """
    Wraps one SpecAdapter and enforces its contract.

    Stateless - all state is in CombatState.
    """
    adapter: SpecAdapter
    check_invariants: bool = True

    @property
    def spec_id(self) -> str:
        return self.adapter.spec_id

    def create_initial_state(self, build: BuildConfig, duration: float) -> CombatState:
        if duration <= 0:
            raise ValueError("duration must be > 0")
        state = self.adapter.create_initial_state(build, duration)
        self._verify(state, "initial state")
        return state

    def get_available(self, state: CombatState) -> list[str]:
        return self.adapter.get_available(state)

    def on_gcd_available(self, state: CombatState) -> list[str]:
        """Available abilities that consume the GCD."""
        return [a for a in self.adapter.get_available(state) if not self.adapter.is_off_gcd(a)]

    def apply_ability(self, state: CombatState, ability_id: str) -> CombatState:
        """
        Apply an ability.

        Raises IllegalAbilityError if the ability is not available: that is
        an interpreter or search defect, not a recoverable condition.
        """
        available = self.adapter.get_available(state)
        if ability_id not in available:
            raise IllegalAbilityError(ability_id, state.time, available)
        state = self.adapter.apply_ability(state, ability_id)
        self._verify(state, f"applying {ability_id}")
        return state

    def advance_time(self, state: CombatState, dt: float) -> CombatState:
        if dt < 0:
            raise ValueError(f"Cannot advance time by a negative amount ({dt})")
        if dt == 0:
            return state
        before = state.time
        state = self.adapter.advance_time(state, dt)
        if state.time < before:
            raise InvariantViolation(f"advancing {dt}s", [f"clock went from {before} to {state.time}"])
        self._verify(state, f"advancing {dt}s")
        return state

    def score_immediate(self, state: CombatState, ability_id: str) -> float:
        return self.adapter.score_immediate(state, ability_id)

    def get_gcd(self, state: CombatState, ability_id: str) -> float:
        return self.adapter.get_gcd(state, ability_id)

    def is_off_gcd(self, ability_id: str) -> bool:
        return self.adapter.is_off_gcd(ability_id)

    def is_filler(self, ability_id: str) -> bool:
        return ability_id in self.adapter.filler_abilities

    def snapshot(self, state: CombatState) -> StateSnapshot:
        return StateSnapshot.capture(state, self.adapter.snapshot_extra(state))

    def restore(self, snapshot: StateSnapshot, build: BuildConfig, duration: float) -> CombatState:
        """Rebuild a full state from a snapshot plus the build's defaults."""
        state = self.adapter.create_initial_state(build, duration)
        snapshot.apply_to(state)
        self.adapter.restore_extra(state, snapshot.extra)
        self._verify(state, "restoring snapshot")
        return state

    def _verify(self, state: CombatState, context: str):
        if not self.check_invariants:
            return
        problems = state.check_invariants()
        if problems:
            raise InvariantViolation(context, problems)
