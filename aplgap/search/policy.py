"""
Decision Policy - Interface for anything that picks the next action.

A DecisionPolicy looks at a combat state and returns a Decision, or None
when nothing should be cast yet. Two implementations exist:
- AplInterpreter (rules package): walks an action priority list
- RolloutPolicy: asks the rollout search
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..engine_core.state import CombatState
    from .rollout import RolloutSearch


@dataclass
class Decision:
    """
    A chosen action.

    Contains:
    - The ability to cast
    - The condition text that selected it (None if unconditional)
    - The action list it came from
    - A free-form note (search rationale)
    """
    ability_id: str
    condition: str | None = None
    list_name: str | None = None
    note: str | None = None
    source: Any = None  # the rule entry that produced it, if any


class DecisionPolicy(ABC):
    """
    Abstract base class for decision policies.

    `allow_off_gcd` is False once a time slot has used up its off-GCD
    allowance; the policy must then only return on-GCD abilities.
    """

    @abstractmethod
    def decide(self, state: CombatState, allow_off_gcd: bool = True) -> Decision | None:
        """Pick the next ability, or None to wait."""

    def on_applied(self, decision: Decision, state: CombatState):
        """Called after the runner applied a decision."""

    def reset(self):
        """Called at the start of every run."""


class RolloutPolicy(DecisionPolicy):
    """Lets the rollout search play: off-GCD triggers first, then the best candidate."""

    def __init__(self, search: RolloutSearch):
        self.search = search

    def decide(self, state: CombatState, allow_off_gcd: bool = True) -> Decision | None:
        engine = self.search.engine
        if allow_off_gcd:
            trigger = engine.adapter.off_gcd_trigger(state)
            if trigger is not None and trigger in engine.get_available(state):
                return Decision(ability_id=trigger, condition="off-GCD trigger")

        best = self.search.best_candidate(state)
        if best is None:
            return None
        return Decision(
            ability_id=best.ability_id,
            note=f"rollout {best.rollout:.1f}, immediate {best.immediate:.1f}",
        )
