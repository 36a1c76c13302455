"""
Engine Core - Deterministic combat state management and effect application.

The engine is the runtime that:
1. Takes a SpecAdapter and a BuildConfig
2. Creates and owns CombatState for one run
3. Lists available abilities
4. Applies abilities and advances time through the EffectEngine
5. Captures and restores compact StateSnapshots
"""

from .ability import Ability, AbilityRole, BurstWindow
from .adapter import SpecAdapter, TableSpecAdapter, FieldHandler
from .build import BuildConfig
from .reducer import EffectEngine
from .state import Aura, CombatState, Cooldown, ResourcePool, StateSnapshot

__all__ = [
    "Ability",
    "AbilityRole",
    "BurstWindow",
    "SpecAdapter",
    "TableSpecAdapter",
    "FieldHandler",
    "BuildConfig",
    "EffectEngine",
    "Aura",
    "CombatState",
    "Cooldown",
    "ResourcePool",
    "StateSnapshot",
]
