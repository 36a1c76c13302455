"""
APL Interpreter - Executes a RuleSet against the combat state.

At every decision point the interpreter:
1. Resets APL variables to their defaults
2. Walks the default list top to bottom, executing variable entries in order
3. Follows list references: run_action_list never falls through,
   call_action_list falls through when the called list matched nothing
4. Returns the first available ability whose condition holds

The fight itself is driven by the PolicyRunner state machine, so an APL run
and an optimal-timeline run produce traces of the same shape.
"""

from __future__ import annotations
from dataclasses import asdict
from typing import TYPE_CHECKING
import logging

from ..analysis.hashing import hash_parts
from ..config import InterpreterConfig
from ..errors import AplgapError
from ..search.policy import Decision, DecisionPolicy
from ..search.runner import PolicyRunner
from .expression import EvalContext, as_number, evaluate, is_true
from .parser import DEFAULT_LIST, ActionEntry, ListCallEntry, RuleSet, VariableEntry

if TYPE_CHECKING:
    from ..analysis.trace import Trace
    from ..engine_core.build import BuildConfig
    from ..engine_core.reducer import EffectEngine
    from ..engine_core.state import CombatState

logger = logging.getLogger(__name__)


class AplInterpreter(DecisionPolicy):
    """
    Decision policy backed by an action priority list.

    Usage:
        interpreter = AplInterpreter(engine, rule_set)
        decision = interpreter.decide(state)
        trace = interpreter.run(build, duration=120.0)
    """

    def __init__(
        self,
        engine: EffectEngine,
        rule_set: RuleSet,
        config: InterpreterConfig | None = None,
    ):
        self.engine = engine
        self.rule_set = rule_set
        self.config = config or InterpreterConfig()
        self._defaults = {v.name: v.default for v in rule_set.variables()}
        self._last_fired: dict[int, float] = {}
        self.variables: dict[str, float] = {}

    def reset(self):
        self._last_fired = {}
        self.variables = {}

    def decide(self, state: CombatState, allow_off_gcd: bool = True) -> Decision | None:
        available = set(self.engine.get_available(state))
        if not allow_off_gcd:
            available = {a for a in available if not self.engine.is_off_gcd(a)}

        ctx = EvalContext(state=state, variables=dict(self._defaults))
        decision, _ = self._walk(DEFAULT_LIST, ctx, available, depth=0)
        self.variables = ctx.variables
        return decision

    def on_applied(self, decision: Decision, state: CombatState):
        entry = decision.source
        if isinstance(entry, ActionEntry) and entry.line_cd > 0:
            self._last_fired[id(entry)] = state.time

    @property
    def rules_hash(self) -> str:
        """
        Hash of everything besides the build that shapes this APL's trace.

        Covers the APL text and the interpreter settings, so traces made
        with a different wait tick or off-GCD limit never share a cache key.
        """
        return hash_parts(self.rule_set.source_hash, asdict(self.config))

    def run(self, build: BuildConfig, duration: float) -> Trace:
        """Play a whole fight with this APL and return its trace."""
        runner = PolicyRunner(self.engine, self, self.config)
        return runner.run(build, duration, rules_hash=self.rules_hash)

    def _walk(
        self,
        list_name: str,
        ctx: EvalContext,
        available: set[str],
        depth: int,
    ) -> tuple[Decision | None, bool]:
        """
        Walk one list.

        Returns (decision, stop). `stop` is True when the caller must not
        fall through: a match was found or a run_action_list was taken.
        """
        if depth > self.config.max_list_depth:
            raise AplgapError(f"action list nesting deeper than {self.config.max_list_depth}")

        for entry in self.rule_set.lists[list_name].entries:
            if isinstance(entry, VariableEntry):
                self._apply_variable(entry, ctx)

            elif isinstance(entry, ListCallEntry):
                if not is_true(entry.condition, ctx):
                    continue
                decision, stop = self._walk(entry.target, ctx, available, depth + 1)
                if decision is not None or stop or entry.mode == "run":
                    return decision, True

            elif self._matches(entry, ctx, available):
                return Decision(
                    ability_id=entry.ability,
                    condition=entry.condition_text,
                    list_name=list_name,
                    source=entry,
                ), True

        return None, False

    def _matches(self, entry: ActionEntry, ctx: EvalContext, available: set[str]) -> bool:
        if not entry.known or entry.ability not in available:
            return False
        if entry.line_cd > 0:
            last = self._last_fired.get(id(entry))
            if last is not None and ctx.state.time - last < entry.line_cd:
                return False
        return is_true(entry.condition, ctx)

    def _apply_variable(self, entry: VariableEntry, ctx: EvalContext):
        if not is_true(entry.condition, ctx):
            return
        current = ctx.variables.get(entry.name, 0.0)
        op = entry.op

        if op == "reset":
            new = entry.default
        elif op == "setif":
            chosen = entry.value if is_true(entry.setif_condition, ctx) else entry.value_else
            new = as_number(evaluate(chosen, ctx))
        else:
            value = as_number(evaluate(entry.value, ctx))
            if op == "set":
                new = value
            elif op == "add":
                new = current + value
            elif op == "sub":
                new = current - value
            elif op == "mul":
                new = current * value
            elif op == "div":
                new = current / value if value != 0 else 0.0
            elif op == "min":
                new = min(current, value)
            else:
                new = max(current, value)

        ctx.variables[entry.name] = new


def run_apl(
    engine: EffectEngine,
    rule_set: RuleSet,
    build: BuildConfig,
    duration: float,
    config: InterpreterConfig | None = None,
) -> Trace:
    """Run a parsed APL for `duration` seconds and return the trace."""
    return AplInterpreter(engine, rule_set, config).run(build, duration)
