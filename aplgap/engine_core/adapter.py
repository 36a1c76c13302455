"""
Spec Adapter - The single seam for spec-specific game mechanics.

The effect engine, rollout search and interpreter are spec-agnostic.
Everything that differs per spec (which buffs an ability grants, how a
passive modifies a cost, how much an action is worth) lives behind the
SpecAdapter interface. An adapter is constructed once at the composition
root and passed explicitly; it holds no per-run state.

TableSpecAdapter implements the generic mechanics (costs, gains, charges,
timers, hasted GCD) from an ability catalog, leaving spec behaviour to a
handful of hooks.

Build overrides recognised by TableSpecAdapter:
    score.<ability>             replaces the catalog base score
    resource.<name>.initial     starting value of a resource pool
    resource.<name>.cap         cap of a resource pool
Any other key is rejected when the initial state is created.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Callable, TYPE_CHECKING

from .ability import Ability, AbilityRole, BurstWindow
from .build import BuildConfig
from .state import CombatState, ResourcePool, Cooldown

if TYPE_CHECKING:
    from ..rules.expression import EvalContext

# Field handler: (path parts after the root) -> getter(ctx)
FieldHandler = Callable[[list[str]], Callable[["EvalContext"], Any]]


class SpecAdapter(ABC):
    """
    Interface every spec must implement.

    Subclasses declare `spec_id` and the `filler_abilities` set: low-stakes
    default actions whose disagreements are treated as search noise.
    """
    spec_id: str = ""
    display_name: str = ""
    filler_abilities: frozenset[str] = frozenset()

    @abstractmethod
    def abilities(self) -> dict[str, Ability]:
        """Ability catalog in priority order (the order breaks score ties)."""

    @abstractmethod
    def resource_names(self) -> list[str]:
        """Names of the resource pools every state carries."""

    @abstractmethod
    def create_initial_state(self, build: BuildConfig, duration: float) -> CombatState:
        """Fresh state at t=0 for a fight of `duration` seconds."""

    @abstractmethod
    def apply_ability(self, state: CombatState, ability_id: str) -> CombatState:
        """Apply a cast to the state. Availability is checked by the engine."""

    @abstractmethod
    def advance_time(self, state: CombatState, dt: float) -> CombatState:
        """Tick timers, expire auras and regenerate resources by dt seconds."""

    @abstractmethod
    def get_available(self, state: CombatState) -> list[str]:
        """Ability ids castable right now, in catalog order."""

    @abstractmethod
    def score_immediate(self, state: CombatState, ability_id: str) -> float:
        """Immediate value proxy of casting `ability_id` in `state`."""

    @abstractmethod
    def get_gcd(self, state: CombatState, ability_id: str) -> float:
        """Clock time the cast consumes (0 for off-GCD abilities)."""

    # -------------------------------------------------------------------------
    # Optional hooks
    # -------------------------------------------------------------------------

    def is_off_gcd(self, ability_id: str) -> bool:
        ability = self.abilities().get(ability_id)
        return bool(ability and ability.off_gcd)

    def role_of(self, ability_id: str) -> AbilityRole:
        ability = self.abilities().get(ability_id)
        return ability.role if ability else AbilityRole.UTILITY

    def snapshot_extra(self, state: CombatState) -> dict[str, Any]:
        """Spec-specific scalars to keep in a StateSnapshot."""
        return dict(state.extra)

    def restore_extra(self, state: CombatState, extra: dict[str, Any]):
        """Restore spec-specific scalars onto a reconstructed state."""
        state.extra.update(extra)

    def off_gcd_trigger(self, state: CombatState) -> str | None:
        """Off-GCD ability the search should fire before the next decision."""
        return None

    def fix_hint(
        self,
        optimal: str,
        actual: str,
        state: CombatState,
        build: BuildConfig,
        branch_summary: str,
    ) -> str | None:
        """Spec-specific advice for an (optimal, actual) pair, or None."""
        return None

    def frequency_hint(self, optimal: str, actual: str) -> str | None:
        """How often this kind of decision comes up, or None."""
        return None

    def resource_generators(self) -> dict[str, frozenset[str]]:
        """
        Abilities that refill each resource.

        Casting one of these with the pool at its cap wastes the gain. The
        default reads the catalog's static `gains`.
        """
        generators: dict[str, set[str]] = {name: set() for name in self.resource_names()}
        for ability in self.abilities().values():
            for resource in ability.gains:
                generators.setdefault(resource, set()).add(ability.ability_id)
        return {name: frozenset(ids) for name, ids in generators.items()}

    def burst_windows(self) -> list[BurstWindow]:
        """Aura-driven damage windows worth aligning cooldowns with."""
        return []

    def field_handlers(self) -> dict[str, FieldHandler]:
        """Extra rule-language field roots (e.g. spec-only flags)."""
        return {}

    def default_builds(self) -> dict[str, BuildConfig]:
        """Named reference builds for this spec."""
        return {}


class TableSpecAdapter(SpecAdapter):
    """
    Data-driven adapter over an ability catalog.

    Subclasses provide the catalog and resource table, then override hooks:
    - on_create: initial timers, auras and extra scalars
    - is_usable: extra legality on top of costs and charges
    - costs / gains / cooldown_duration: state-dependent numbers
    - on_apply: side effects of a cast
    - on_advance: regeneration while time passes (before auras tick)
    - on_expire: reaction to an aura running out
    """
    # resource name -> (initial value, cap)
    resource_table: dict[str, tuple[float, float]] = {}
    base_gcd: float = 1.5
    min_gcd: float = 0.75
    prev_gcd_depth: int = 3

    def __init__(self):
        self._abilities = {ability.ability_id: ability for ability in self.build_catalog()}

    @abstractmethod
    def build_catalog(self) -> list[Ability]:
        """Return the ability catalog in priority order."""

    def abilities(self) -> dict[str, Ability]:
        return self._abilities

    def resource_names(self) -> list[str]:
        return list(self.resource_table)

    def hasted_gcd(self, haste: float) -> float:
        return max(self.min_gcd, self.base_gcd / (1.0 + haste))

    def resource_limits(self, build: BuildConfig) -> dict[str, tuple[float, float]]:
        """(initial value, cap) per resource after the build's overrides."""
        limits = {}
        for name, (initial, cap) in self.resource_table.items():
            cap = float(build.overrides.get(f"resource.{name}.cap", cap))
            initial = float(build.overrides.get(f"resource.{name}.initial", initial))
            limits[name] = (min(initial, cap), cap)
        return limits

    def base_score(self, state: CombatState, ability: Ability) -> float:
        return float(state.build.overrides.get(f"score.{ability.ability_id}", ability.base_score))

    def validate_overrides(self, build: BuildConfig):
        for key, value in build.overrides.items():
            kind, _, rest = key.partition(".")
            name, _, field_name = rest.rpartition(".")
            if kind == "score":
                known = rest in self._abilities
            elif kind == "resource":
                known = name in self.resource_table and field_name in ("initial", "cap")
            else:
                known = False
            if not known:
                raise ValueError(f"Unknown build override '{key}' for spec '{self.spec_id}'")
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"Build override '{key}' must be a number")
            if kind == "resource" and value < 0:
                raise ValueError(f"Build override '{key}' must be >= 0")

    # -------------------------------------------------------------------------
    # SpecAdapter implementation
    # -------------------------------------------------------------------------

    def create_initial_state(self, build: BuildConfig, duration: float) -> CombatState:
        self.validate_overrides(build)
        state = CombatState(
            build=build,
            fight_end=duration,
            gcd=self.hasted_gcd(build.haste),
            target_count=build.target_count,
        )
        for name, (initial, cap) in self.resource_limits(build).items():
            state.resources[name] = ResourcePool(initial, cap)
        for ability in self._abilities.values():
            if ability.has_cooldown:
                state.cooldowns[ability.ability_id] = Cooldown(
                    duration=ability.cooldown,
                    max_charges=ability.charges,
                    charges=ability.charges,
                )
        self.on_create(state)
        return state

    def get_available(self, state: CombatState) -> list[str]:
        return [
            ability.ability_id
            for ability in self._abilities.values()
            if self._can_cast(state, ability)
        ]

    def apply_ability(self, state: CombatState, ability_id: str) -> CombatState:
        ability = self._abilities[ability_id]

        for resource, amount in self.costs(state, ability).items():
            state.resources[resource].spend(amount)

        cooldown = state.cooldowns.get(ability_id)
        if cooldown is not None:
            cooldown.consume(self.cooldown_duration(state, ability))

        if not ability.off_gcd:
            state.record_gcd(ability_id, self.prev_gcd_depth)

        self.on_apply(state, ability)

        for resource, amount in self.gains(state, ability).items():
            state.resources[resource].add(amount)

        return state

    def advance_time(self, state: CombatState, dt: float) -> CombatState:
        self.on_advance(state, dt)
        state.time += dt
        for cooldown in state.cooldowns.values():
            cooldown.tick(dt)
        for kind in ("buffs", "debuffs", "dots"):
            for name, aura in state.aura_table(kind).items():
                if aura.tick(dt):
                    self.on_expire(state, kind, name)
        return state

    def score_immediate(self, state: CombatState, ability_id: str) -> float:
        return self.base_score(state, self._abilities[ability_id])

    def get_gcd(self, state: CombatState, ability_id: str) -> float:
        ability = self._abilities[ability_id]
        if ability.off_gcd:
            return 0.0
        if ability.gcd is not None:
            return ability.gcd
        return state.gcd

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------

    def on_create(self, state: CombatState):
        pass

    def is_usable(self, state: CombatState, ability: Ability) -> bool:
        return True

    def costs(self, state: CombatState, ability: Ability) -> dict[str, float]:
        return ability.costs

    def gains(self, state: CombatState, ability: Ability) -> dict[str, float]:
        return ability.gains

    def cooldown_duration(self, state: CombatState, ability: Ability) -> float:
        return ability.cooldown

    def on_apply(self, state: CombatState, ability: Ability):
        pass

    def on_advance(self, state: CombatState, dt: float):
        pass

    def on_expire(self, state: CombatState, kind: str, name: str):
        pass

    def _can_cast(self, state: CombatState, ability: Ability) -> bool:
        for resource, amount in self.costs(state, ability).items():
            if state.resource(resource) < amount:
                return False
        cooldown = state.cooldowns.get(ability.ability_id)
        if cooldown is not None and not cooldown.ready:
            return False
        return self.is_usable(state, ability)
