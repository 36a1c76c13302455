"""
Policy Runner - Drives a decision policy through a whole fight.

The runner is a small state machine:

    EVALUATING -> APPLYING -> ADVANCING -> EVALUATING   (a decision was made)
    EVALUATING -> WAITING -> EVALUATING                 (nothing to cast)

until the clock reaches the fight duration. One TraceEvent is recorded per
applied action, with the state before and after the cast. Off-GCD actions
are applied without consuming the clock, so several may share a timestamp;
at most `max_off_gcd_per_slot` per slot.
Waiting advances by a fixed tick, which guarantees forward progress.
"""

from __future__ import annotations
from enum import Enum
from typing import TYPE_CHECKING
import logging

from ..analysis.hashing import hash_config
from ..analysis.trace import Trace, TraceEvent, TraceKind
from ..config import InterpreterConfig

if TYPE_CHECKING:
    from ..engine_core.build import BuildConfig
    from ..engine_core.reducer import EffectEngine
    from .policy import DecisionPolicy, Decision

logger = logging.getLogger(__name__)


class RunPhase(Enum):
    """Runner states."""
    EVALUATING = "evaluating"
    APPLYING = "applying"
    ADVANCING = "advancing"
    WAITING = "waiting"
    DONE = "done"


class PolicyRunner:
    """
    Runs one policy against a fresh state and records the trace.

    Usage:
        runner = PolicyRunner(engine, policy, InterpreterConfig())
        trace = runner.run(build, duration=120.0, rules_hash=rules_hash)
    """

    def __init__(
        self,
        engine: EffectEngine,
        policy: DecisionPolicy,
        config: InterpreterConfig | None = None,
    ):
        self.engine = engine
        self.policy = policy
        self.config = config or InterpreterConfig()

    def run(
        self,
        build: BuildConfig,
        duration: float,
        rules_hash: str,
        optimal: bool = False,
    ) -> Trace:
        engine = self.engine
        state = engine.create_initial_state(build, duration)
        trace = Trace(
            spec_id=engine.spec_id,
            build_name=build.name,
            duration=duration,
            config_hash=hash_config(build),
            rules_hash=rules_hash,
            kind=TraceKind.OPTIMAL if optimal else TraceKind.APL,
        )
        self.policy.reset()

        phase = RunPhase.EVALUATING
        decision: Decision | None = None
        pending_dt = 0.0
        gcd_count = 0
        off_gcd_in_slot = 0

        while phase is not RunPhase.DONE:
            if phase is RunPhase.EVALUATING:
                if state.time >= duration:
                    phase = RunPhase.DONE
                    continue
                allow_off_gcd = off_gcd_in_slot < self.config.max_off_gcd_per_slot
                decision = self.policy.decide(state, allow_off_gcd=allow_off_gcd)
                phase = RunPhase.APPLYING if decision else RunPhase.WAITING

            elif phase is RunPhase.APPLYING:
                off_gcd = engine.is_off_gcd(decision.ability_id)
                if not off_gcd:
                    gcd_count += 1
                event = TraceEvent(
                    gcd=gcd_count if not off_gcd else gcd_count + 1,
                    time=state.time,
                    ability_id=decision.ability_id,
                    snapshot=engine.snapshot(state),
                    condition=decision.condition,
                    list_name=decision.list_name,
                    off_gcd=off_gcd,
                    note=decision.note,
                )
                pending_dt = engine.get_gcd(state, decision.ability_id)
                engine.apply_ability(state, decision.ability_id)
                event.post = engine.snapshot(state)
                trace.events.append(event)
                self.policy.on_applied(decision, state)
                if off_gcd:
                    off_gcd_in_slot += 1
                    phase = RunPhase.EVALUATING
                else:
                    phase = RunPhase.ADVANCING

            elif phase is RunPhase.ADVANCING:
                engine.advance_time(state, pending_dt)
                off_gcd_in_slot = 0
                phase = RunPhase.EVALUATING

            elif phase is RunPhase.WAITING:
                engine.advance_time(state, self.config.wait_tick)
                off_gcd_in_slot = 0
                phase = RunPhase.EVALUATING

        logger.info(
            "Run complete: %d events (%d on-GCD) over %.1fs",
            len(trace.events), gcd_count, duration,
            extra={"spec_id": engine.spec_id, "build": build.name, "rules_hash": rules_hash},
        )
        return trace
