"""
Field Resolver - Explicit lookup table from dotted paths to state getters.

The table is built once per adapter. Each root (first path segment) maps to
a handler that validates the rest of the path at parse time and returns a
getter closure. Unknown roots and unknown properties are parse errors.

Supported roots:
- <resource>[.deficit|.max|.pct]         resource pools declared by the adapter
- buff|debuff|dot.<name>.<prop>           up, down, remains, stack, react, ticking
- cooldown.<ability>.<prop>               ready, up, remains, charges,
                                          charges_fractional, full_recharge_time,
                                          duration, max_charges
- talent.<name>[.enabled|.rank]
- variable.<name>
- prev_gcd.<n>.<ability>
- gcd[.max|.remains], time, fight_remains, active_enemies, spell_targets[.*]
- target.time_to_die, target.health.pct
- hero_tree.<name>, build.<flag>
- health.pct, trinket.*, raid_event.*     unmodeled, constant
- adapter-supplied roots (SpecAdapter.field_handlers)
"""

from __future__ import annotations
from typing import Any, Callable, TYPE_CHECKING

from ..errors import RuleParseError
from ..engine_core.state import Aura, Cooldown

if TYPE_CHECKING:
    from ..engine_core.adapter import SpecAdapter
    from .expression import EvalContext

Getter = Callable[["EvalContext"], Any]

_NO_AURA = Aura()
_NO_COOLDOWN = Cooldown(duration=0.0)


def _aura_props(kind: str) -> dict[str, Callable[[Aura], Any]]:
    props = {
        "up": lambda a: a.up,
        "down": lambda a: not a.up,
        "remains": lambda a: a.remains,
        "stack": lambda a: a.stacks if a.up else 0,
        "react": lambda a: a.stacks if a.up else 0,
    }
    if kind != "buffs":
        props["ticking"] = lambda a: a.up
    return props


_COOLDOWN_PROPS: dict[str, Callable[[Cooldown], Any]] = {
    "ready": lambda c: c.ready,
    "up": lambda c: c.ready,
    "remains": lambda c: c.remains,
    "charges": lambda c: c.charges,
    "charges_fractional": lambda c: c.charges_fractional,
    "full_recharge_time": lambda c: c.full_recharge_time,
    "duration": lambda c: c.duration,
    "max_charges": lambda c: c.max_charges,
}


class FieldResolver:
    """
    Compiles field paths into getters.

    Usage:
        resolver = FieldResolver(adapter)
        getter = resolver.resolve("buff.metamorphosis.up")
        value = getter(ctx)
    """

    def __init__(self, adapter: SpecAdapter):
        self.adapter = adapter
        self.resources = set(adapter.resource_names())
        self.abilities = set(adapter.abilities())
        self._roots: dict[str, Callable[[list[str], str], Getter]] = {
            "buff": self._aura("buffs"),
            "debuff": self._aura("debuffs"),
            "dot": self._aura("dots"),
            "cooldown": self._cooldown,
            "talent": self._talent,
            "variable": self._variable,
            "prev_gcd": self._prev_gcd,
            "gcd": self._gcd,
            "time": self._scalar(lambda ctx: ctx.state.time),
            "fight_remains": self._scalar(lambda ctx: ctx.state.fight_remains),
            "active_enemies": self._scalar(lambda ctx: ctx.state.target_count),
            "spell_targets": self._any_suffix(lambda ctx: ctx.state.target_count),
            "target": self._target,
            "hero_tree": self._hero_tree,
            "build": self._build_flag,
            "health": self._constant({"pct": 100.0}),
            "trinket": self._any_suffix(lambda ctx: 0.0),
            "raid_event": self._any_suffix(lambda ctx: 0.0),
        }
        for root, handler in adapter.field_handlers().items():
            self._roots[root] = lambda parts, path, handler=handler: handler(parts)

    def resolve(self, path: str) -> Getter:
        root, *rest = path.split(".")
        if root in self.resources:
            return self._resource(root, rest, path)
        handler = self._roots.get(root)
        if handler is None:
            raise RuleParseError(f"unknown field '{path}' (known roots: {', '.join(self.roots)})")
        return handler(rest, path)

    @property
    def roots(self) -> list[str]:
        return sorted(set(self._roots) | self.resources)

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def _resource(self, name: str, rest: list[str], path: str) -> Getter:
        if not rest:
            return lambda ctx: ctx.state.resources[name].value
        if rest == ["deficit"]:
            return lambda ctx: ctx.state.resources[name].deficit
        if rest == ["max"]:
            return lambda ctx: ctx.state.resources[name].cap
        if rest == ["pct"]:
            return lambda ctx: ctx.state.resources[name].pct
        raise RuleParseError(f"unknown resource property in '{path}'")

    def _aura(self, kind: str):
        props = _aura_props(kind)

        def handler(rest: list[str], path: str) -> Getter:
            if len(rest) != 2 or rest[1] not in props:
                raise RuleParseError(
                    f"'{path}' must be {kind[:-1]}.<name>.<{'|'.join(sorted(props))}>"
                )
            name, prop = rest
            read = props[prop]
            # Auras the adapter does not model read as absent
            return lambda ctx: read(ctx.state.aura_table(kind).get(name, _NO_AURA))

        return handler

    def _cooldown(self, rest: list[str], path: str) -> Getter:
        if len(rest) != 2 or rest[1] not in _COOLDOWN_PROPS:
            raise RuleParseError(
                f"'{path}' must be cooldown.<ability>.<{'|'.join(sorted(_COOLDOWN_PROPS))}>"
            )
        name, prop = rest
        read = _COOLDOWN_PROPS[prop]
        return lambda ctx: read(ctx.state.cooldowns.get(name, _NO_COOLDOWN))

    def _talent(self, rest: list[str], path: str) -> Getter:
        if len(rest) == 1 or (len(rest) == 2 and rest[1] in ("enabled", "rank")):
            name = rest[0]
            return lambda ctx: ctx.build.talent_rank(name)
        raise RuleParseError(f"'{path}' must be talent.<name>")

    def _variable(self, rest: list[str], path: str) -> Getter:
        if len(rest) != 1:
            raise RuleParseError(f"'{path}' must be variable.<name>")
        name = rest[0]
        return lambda ctx: ctx.variables.get(name, 0.0)

    def _prev_gcd(self, rest: list[str], path: str) -> Getter:
        if len(rest) != 2 or not rest[0].isdigit() or int(rest[0]) < 1:
            raise RuleParseError(f"'{path}' must be prev_gcd.<n>.<ability>")
        index = int(rest[0]) - 1
        ability = rest[1]

        def getter(ctx):
            history = ctx.state.prev_gcd
            return index < len(history) and history[index] == ability

        return getter

    def _gcd(self, rest: list[str], path: str) -> Getter:
        if not rest or rest == ["max"]:
            return lambda ctx: ctx.state.gcd
        if rest == ["remains"]:
            # Decisions are only taken when the GCD is free
            return lambda ctx: 0.0
        raise RuleParseError(f"unknown gcd property in '{path}'")

    def _target(self, rest: list[str], path: str) -> Getter:
        if rest == ["time_to_die"]:
            return lambda ctx: ctx.state.fight_remains
        if rest == ["health", "pct"]:
            return lambda ctx: 100.0
        raise RuleParseError(f"unknown target property in '{path}'")

    def _hero_tree(self, rest: list[str], path: str) -> Getter:
        if len(rest) != 1:
            raise RuleParseError(f"'{path}' must be hero_tree.<name>")
        name = rest[0]
        return lambda ctx: ctx.build.flag("hero_tree") == name

    def _build_flag(self, rest: list[str], path: str) -> Getter:
        if len(rest) != 1:
            raise RuleParseError(f"'{path}' must be build.<flag>")
        name = rest[0]

        def getter(ctx):
            value = ctx.build.flag(name, 0)
            # Non-numeric flags (hero tree names) are read through their own root
            return value if isinstance(value, (int, float)) else 0.0

        return getter

    @staticmethod
    def _scalar(read: Getter):
        def handler(rest: list[str], path: str) -> Getter:
            if rest:
                raise RuleParseError(f"'{path.split('.')[0]}' takes no properties")
            return read
        return handler

    @staticmethod
    def _any_suffix(read: Getter):
        return lambda rest, path: read

    @staticmethod
    def _constant(values: dict[str, float]):
        def handler(rest: list[str], path: str) -> Getter:
            key = ".".join(rest)
            if key not in values:
                raise RuleParseError(f"unknown property in '{path}'")
            value = values[key]
            return lambda ctx: value
        return handler
