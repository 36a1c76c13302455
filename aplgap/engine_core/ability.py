"""
Ability definitions - The static catalog entries a spec adapter exposes.

An Ability describes what a cast costs and grants before any spec logic runs.
Legality is derived from state (costs affordable, a charge ready, plus the
adapter's own usability check); scoring is the adapter's business.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum


class AbilityRole(Enum):
    """Coarse role, used for hints and report wording."""
    GENERATOR = "generator"
    SPENDER = "spender"
    COOLDOWN = "cooldown"
    FILLER = "filler"
    UTILITY = "utility"


@dataclass(frozen=True)
class Ability:
    """
    A castable ability.

    Note: `gcd` overrides the hasted global cooldown for this ability
    (channels, fixed-length casts). Off-GCD abilities never consume the clock.
    """
    ability_id: str
    role: AbilityRole = AbilityRole.UTILITY
    costs: dict[str, float] = field(default_factory=dict)
    gains: dict[str, float] = field(default_factory=dict)
    cooldown: float = 0.0
    charges: int = 1
    off_gcd: bool = False
    gcd: float | None = None
    base_score: float = 0.0
    school: str = "physical"
    label: str | None = None

    @property
    def has_cooldown(self) -> bool:
        return self.cooldown > 0

    @property
    def display_name(self) -> str:
        if self.label:
            return self.label
        return " ".join(part.capitalize() for part in self.ability_id.split("_"))


@dataclass(frozen=True)
class BurstWindow:
    """
    A damage window opened by an aura, plus the casts worth lining up inside it.

    `ability` is the cast that opens the window when it differs from the
    aura's name. `cooldown` and `duration` describe the nominal cycle, used
    to place a moment of the fight relative to the window.
    """
    aura: str
    kind: str = "buffs"
    cooldown: float = 60.0
    duration: float = 10.0
    sync_targets: tuple[str, ...] = ()
    ability: str | None = None

    @property
    def source(self) -> str:
        return self.ability or self.aura
