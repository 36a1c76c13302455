"""
Combat State - The record of a simulated actor at one instant.

Design principles:
- Mutable in place: transitions update the state they are given
- Explicit clone(): copies are made only at branch points
- Serializable: a compact StateSnapshot is enough to rebuild a state
- Spec-agnostic: spec-specific scalars live in `extra`

Invariants:
- every resource value lies in [0, cap]
- every timer is >= 0
- the clock never decreases
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any

from .build import BuildConfig

# Tolerance for float drift when checking invariants
EPSILON = 1e-9

AURA_KINDS = ("buffs", "debuffs", "dots")


@dataclass
class ResourcePool:
    """A named numeric pool with a cap."""
    value: float
    cap: float

    @property
    def deficit(self) -> float:
        return self.cap - self.value

    @property
    def pct(self) -> float:
        return 100.0 * self.value / self.cap if self.cap > 0 else 0.0

    def add(self, amount: float) -> float:
        """Add up to the cap. Returns the amount actually gained."""
        gained = max(0.0, min(amount, self.cap - self.value))
        self.value += gained
        return gained

    def spend(self, amount: float):
        """Spend a cost. Affordability is checked by the caller."""
        self.value -= amount

    def set_cap(self, cap: float):
        """Change the cap, trimming the value if it no longer fits."""
        self.cap = cap
        if self.value > cap:
            self.value = cap


@dataclass
class Aura:
    """
    A buff, debuff or dot.

    Timed auras are up while remains > 0 and lose their stacks on expiry.
    Permanent auras (stack trackers with no duration) are up while stacks > 0.
    """
    remains: float = 0.0
    stacks: int = 0
    permanent: bool = False

    @property
    def up(self) -> bool:
        if self.permanent:
            return self.stacks > 0
        return self.remains > 0

    def apply(self, duration: float, stacks: int = 1):
        self.remains = duration
        self.stacks = stacks

    def extend(self, seconds: float):
        if self.remains > 0:
            self.remains += seconds

    def clear(self):
        self.remains = 0.0
        self.stacks = 0

    def tick(self, dt: float) -> bool:
        """Advance by dt. Returns True if the aura expired during this tick."""
        if self.permanent or self.remains <= 0:
            return False
        self.remains = max(0.0, self.remains - dt)
        if self.remains == 0:
            self.stacks = 0
            return True
        return False


@dataclass
class Cooldown:
    """
    Charge-based cooldown. Single-charge cooldowns have max_charges=1.

    `recharge` is the time until the next charge and is only meaningful
    while charges < max_charges.
    """
    duration: float
    max_charges: int = 1
    charges: int = 1
    recharge: float = 0.0

    @property
    def ready(self) -> bool:
        return self.charges > 0

    @property
    def full(self) -> bool:
        return self.charges >= self.max_charges

    @property
    def remains(self) -> float:
        return 0.0 if self.charges > 0 else self.recharge

    @property
    def charges_fractional(self) -> float:
        if self.full or self.duration <= 0:
            return float(self.charges)
        return self.charges + (1.0 - self.recharge / self.duration)

    @property
    def full_recharge_time(self) -> float:
        if self.full:
            return 0.0
        return self.recharge + (self.max_charges - self.charges - 1) * self.duration

    def consume(self, duration: float | None = None):
        """Spend a charge, starting the recharge timer if it was idle."""
        if self.full:
            self.recharge = self.duration if duration is None else duration
        self.charges -= 1

    def reset(self):
        self.charges = self.max_charges
        self.recharge = 0.0

    def tick(self, dt: float):
        if self.full:
            return
        self.recharge -= dt
        while self.recharge <= EPSILON and not self.full:
            self.charges += 1
            if self.full:
                self.recharge = 0.0
            else:
                self.recharge += self.duration


@dataclass
class CombatState:
    """
    Complete combat state at one instant.

    The build is shared by reference across clones; it is never mutated.
    `prev_gcd` holds on-GCD ability ids, most recent first.
    """
    build: BuildConfig
    fight_end: float
    gcd: float
    time: float = 0.0
    target_count: int = 1
    resources: dict[str, ResourcePool] = field(default_factory=dict)
    buffs: dict[str, Aura] = field(default_factory=dict)
    debuffs: dict[str, Aura] = field(default_factory=dict)
    dots: dict[str, Aura] = field(default_factory=dict)
    cooldowns: dict[str, Cooldown] = field(default_factory=dict)
    prev_gcd: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def fight_remains(self) -> float:
        return max(0.0, self.fight_end - self.time)

    def resource(self, name: str) -> float:
        pool = self.resources.get(name)
        return pool.value if pool else 0.0

    def aura_table(self, kind: str) -> dict[str, Aura]:
        if kind not in AURA_KINDS:
            raise KeyError(f"Unknown aura kind: {kind}")
        return getattr(self, kind)

    def aura(self, kind: str, name: str) -> Aura | None:
        return self.aura_table(kind).get(name)

    def buff_up(self, name: str) -> bool:
        aura = self.buffs.get(name)
        return aura is not None and aura.up

    def buff_stacks(self, name: str) -> int:
        aura = self.buffs.get(name)
        return aura.stacks if aura else 0

    def dot_up(self, name: str) -> bool:
        aura = self.dots.get(name)
        return aura is not None and aura.up

    def record_gcd(self, ability_id: str, depth: int = 3):
        """Push an on-GCD cast onto the prev_gcd history."""
        self.prev_gcd.insert(0, ability_id)
        del self.prev_gcd[depth:]

    def clone(self) -> CombatState:
        """Copy for branching. Containers are copied; the build is shared."""
        return CombatState(
            build=self.build,
            fight_end=self.fight_end,
            gcd=self.gcd,
            time=self.time,
            target_count=self.target_count,
            resources={k: ResourcePool(p.value, p.cap) for k, p in self.resources.items()},
            buffs={k: replace(a) for k, a in self.buffs.items()},
            debuffs={k: replace(a) for k, a in self.debuffs.items()},
            dots={k: replace(a) for k, a in self.dots.items()},
            cooldowns={k: replace(c) for k, c in self.cooldowns.items()},
            prev_gcd=list(self.prev_gcd),
            extra=dict(self.extra),
        )

    def check_invariants(self) -> list[str]:
        """Return a list of invariant violations (empty when consistent)."""
        problems = []
        if self.time < 0:
            problems.append(f"clock is negative ({self.time})")
        for name, pool in self.resources.items():
            if pool.value < -EPSILON or pool.value > pool.cap + EPSILON:
                problems.append(f"{name}={pool.value} outside [0, {pool.cap}]")
        for kind in AURA_KINDS:
            for name, aura in self.aura_table(kind).items():
                if aura.remains < 0:
                    problems.append(f"{kind}.{name} remains={aura.remains}")
        for name, cd in self.cooldowns.items():
            if cd.recharge < 0:
                problems.append(f"cooldown.{name} recharge={cd.recharge}")
            if not 0 <= cd.charges <= cd.max_charges:
                problems.append(f"cooldown.{name} charges={cd.charges}")
        return problems


@dataclass
class StateSnapshot:
    """
    Compact state record, enough to rebuild a CombatState.

    Only non-default fields are kept: active auras, cooldowns that are not
    fully charged, and the adapter's `extra` scalars. Everything else comes
    from the build's initial state on reconstruction.
    """
    time: float
    gcd: float
    resources: dict[str, dict[str, float]] = field(default_factory=dict)
    buffs: dict[str, dict[str, float]] = field(default_factory=dict)
    debuffs: dict[str, dict[str, float]] = field(default_factory=dict)
    dots: dict[str, dict[str, float]] = field(default_factory=dict)
    cooldowns: dict[str, dict[str, float]] = field(default_factory=dict)
    prev_gcd: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def capture(cls, state: CombatState, extra: dict[str, Any] | None = None) -> StateSnapshot:
        snapshot = cls(
            time=state.time,
            gcd=state.gcd,
            resources={
                name: {"value": pool.value, "cap": pool.cap}
                for name, pool in state.resources.items()
            },
            cooldowns={
                name: {"charges": cd.charges, "recharge": cd.recharge}
                for name, cd in state.cooldowns.items()
                if not cd.full
            },
            prev_gcd=list(state.prev_gcd),
            extra=dict(state.extra if extra is None else extra),
        )
        for kind in AURA_KINDS:
            setattr(snapshot, kind, {
                name: {"remains": aura.remains, "stacks": aura.stacks}
                for name, aura in state.aura_table(kind).items()
                if aura.up
            })
        return snapshot

    def apply_to(self, state: CombatState) -> CombatState:
        """Overwrite a fresh initial state with the snapshot's fields."""
        state.time = self.time
        state.gcd = self.gcd
        for name, values in self.resources.items():
            pool = state.resources.get(name)
            if pool is None:
                state.resources[name] = ResourcePool(values["value"], values["cap"])
            else:
                pool.cap = values["cap"]
                pool.value = values["value"]
        for kind in AURA_KINDS:
            table = state.aura_table(kind)
            recorded = getattr(self, kind)
            for aura in table.values():
                aura.clear()
            for name, values in recorded.items():
                aura = table.setdefault(name, Aura())
                aura.remains = values["remains"]
                aura.stacks = int(values["stacks"])
        for name, cd in state.cooldowns.items():
            cd.reset()
            recorded = self.cooldowns.get(name)
            if recorded is not None:
                cd.charges = int(recorded["charges"])
                cd.recharge = recorded["recharge"]
        state.prev_gcd = list(self.prev_gcd)
        return state

    def active_names(self, kind: str) -> list[str]:
        return sorted(getattr(self, kind))

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.time,
            "gcd": self.gcd,
            "resources": self.resources,
            "buffs": self.buffs,
            "debuffs": self.debuffs,
            "dots": self.dots,
            "cooldowns": self.cooldowns,
            "prev_gcd": self.prev_gcd,
            "extra": self.extra,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StateSnapshot:
        return cls(
            time=data["time"],
            gcd=data["gcd"],
            resources={k: dict(v) for k, v in data.get("resources", {}).items()},
            buffs={k: dict(v) for k, v in data.get("buffs", {}).items()},
            debuffs={k: dict(v) for k, v in data.get("debuffs", {}).items()},
            dots={k: dict(v) for k, v in data.get("dots", {}).items()},
            cooldowns={k: dict(v) for k, v in data.get("cooldowns", {}).items()},
            prev_gcd=list(data.get("prev_gcd", [])),
            extra=dict(data.get("extra", {})),
        )
