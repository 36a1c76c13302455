"""
Tests for the APL interpreter and the policy runner.
"""

import pytest

from ..analysis.trace import TRACE_FORMAT_VERSION, Trace, TraceKind
from ..config import InterpreterConfig
from ..rules.interpreter import AplInterpreter, run_apl
from ..rules.parser import parse_apl
from ..search.runner import PolicyRunner


def _interpreter(engine, adapter, text, config=None):
    return AplInterpreter(engine, parse_apl(text, adapter), config)


class TestDecide:
    """Tests for single decisions."""

    def test_first_matching_entry_wins(self, toy_engine, toy_adapter, toy_state):
        interpreter = _interpreter(
            toy_engine, toy_adapter,
            "actions=spender_b,if=resource>=40\nactions+=/generator_a\n",
        )
        assert interpreter.decide(toy_state).ability_id == "generator_a"
        toy_state.resources["resource"].value = 40.0
        decision = interpreter.decide(toy_state)
        assert decision.ability_id == "spender_b"
        assert decision.condition == "resource>=40"
        assert decision.list_name == "default"

    def test_unavailable_ability_is_skipped(self, toy_engine, toy_adapter, toy_state):
        """An unconditional entry that cannot be afforded falls to the next line."""
        interpreter = _interpreter(toy_engine, toy_adapter, "actions=spender_b\nactions+=/generator_a\n")
        assert interpreter.decide(toy_state).ability_id == "generator_a"

    def test_nothing_matches(self, toy_engine, toy_adapter, toy_state):
        interpreter = _interpreter(toy_engine, toy_adapter, "actions=spender_b\n")
        assert interpreter.decide(toy_state) is None

    def test_unknown_ability_never_fires(self, toy_engine, toy_adapter, toy_state):
        interpreter = _interpreter(toy_engine, toy_adapter, "actions=fireball\nactions+=/generator_a\n")
        assert interpreter.decide(toy_state).ability_id == "generator_a"


class TestVariables:
    """Tests for variable entries."""

    def test_ops_apply_in_order(self, toy_engine, toy_adapter, toy_state):
        interpreter = _interpreter(
            toy_engine, toy_adapter,
            "actions=variable,name=pool,op=add,value=2,default=1\n"
            "actions+=/variable,name=pool,op=mul,value=3\n"
            "actions+=/generator_a\n",
        )
        interpreter.decide(toy_state)
        assert interpreter.variables["pool"] == 9.0

    def test_variables_reset_every_decision(self, toy_engine, toy_adapter, toy_state):
        interpreter = _interpreter(
            toy_engine, toy_adapter,
            "actions=variable,name=n,op=add,value=1\nactions+=/generator_a\n",
        )
        interpreter.decide(toy_state)
        interpreter.decide(toy_state)
        assert interpreter.variables["n"] == 1.0

    def test_setif(self, toy_engine, toy_adapter, toy_state):
        interpreter = _interpreter(
            toy_engine, toy_adapter,
            "actions=variable,name=x,op=setif,condition=resource>=40,value=5,value_else=7\n"
            "actions+=/generator_a\n",
        )
        interpreter.decide(toy_state)
        assert interpreter.variables["x"] == 7.0
        toy_state.resources["resource"].value = 50.0
        interpreter.decide(toy_state)
        assert interpreter.variables["x"] == 5.0

    def test_variable_gates_action(self, toy_engine, toy_adapter, toy_state):
        interpreter = _interpreter(
            toy_engine, toy_adapter,
            "actions=variable,name=ready,value=resource>=40\n"
            "actions+=/spender_b,if=variable.ready\n"
            "actions+=/generator_a\n",
        )
        toy_state.resources["resource"].value = 40.0
        assert interpreter.decide(toy_state).ability_id == "spender_b"

    def test_division_by_zero(self, toy_engine, toy_adapter, toy_state):
        interpreter = _interpreter(
            toy_engine, toy_adapter,
            "actions=variable,name=x,op=div,value=0,default=4\nactions+=/generator_a\n",
        )
        interpreter.decide(toy_state)
        assert interpreter.variables["x"] == 0.0


class TestListReferences:
    """Tests for call_action_list and run_action_list."""

    APL = (
        "actions={mode}_action_list,name=spend\n"
        "actions+=/generator_a\n"
        "actions.spend=spender_b\n"
    )

    def test_call_falls_through(self, toy_engine, toy_adapter, toy_state):
        interpreter = _interpreter(toy_engine, toy_adapter, self.APL.format(mode="call"))
        decision = interpreter.decide(toy_state)
        assert decision.ability_id == "generator_a"
        assert decision.list_name == "default"

    def test_run_does_not_fall_through(self, toy_engine, toy_adapter, toy_state):
        interpreter = _interpreter(toy_engine, toy_adapter, self.APL.format(mode="run"))
        assert interpreter.decide(toy_state) is None

    def test_match_in_sublist(self, toy_engine, toy_adapter, toy_state):
        interpreter = _interpreter(toy_engine, toy_adapter, self.APL.format(mode="call"))
        toy_state.resources["resource"].value = 40.0
        decision = interpreter.decide(toy_state)
        assert decision.ability_id == "spender_b"
        assert decision.list_name == "spend"

    def test_false_condition_skips_reference(self, toy_engine, toy_adapter, toy_state):
        interpreter = _interpreter(
            toy_engine, toy_adapter,
            "actions=run_action_list,name=spend,if=resource>=90\n"
            "actions+=/generator_a\n"
            "actions.spend=spender_b\n",
        )
        toy_state.resources["resource"].value = 40.0
        assert interpreter.decide(toy_state).ability_id == "generator_a"


class TestRun:
    """Tests for whole-fight runs."""

    def test_trace_shape(self, toy_engine, toy_adapter, toy_build):
        rule_set = parse_apl("actions=spender_b,if=resource>=40\nactions+=/generator_a\n", toy_adapter)
        trace = run_apl(toy_engine, rule_set, toy_build, 15.0)
        assert trace.kind is TraceKind.APL
        assert trace.rules_hash != rule_set.source_hash
        assert trace.rules_hash == AplInterpreter(toy_engine, rule_set).rules_hash
        assert trace.spec_id == "toy"
        assert [e.gcd for e in trace.events] == list(range(1, 11))
        assert [e.ability_id for e in trace.events[:5]] == ["generator_a"] * 4 + ["spender_b"]

    def test_post_snapshot(self, toy_engine, toy_adapter, toy_build):
        """Each event records the state right after its cast, before the clock moves."""
        rule_set = parse_apl("actions=spender_b,if=resource>=40\nactions+=/generator_a\n", toy_adapter)
        trace = run_apl(toy_engine, rule_set, toy_build, 15.0)
        first, spend = trace.events[0], trace.events[4]
        assert first.post.resources["resource"]["value"] == 10.0
        assert first.post.time == first.time
        assert spend.snapshot.resources["resource"]["value"] == 40.0
        assert spend.post.resources["resource"]["value"] == 0.0
        assert trace.format_version == TRACE_FORMAT_VERSION == "2"

        restored = Trace.from_json(trace.to_json())
        assert restored.events[4].post == spend.post

    def test_event_times_monotonic(self, vengeance_engine, vengeance_adapter, vengeance_build):
        from ..specs.vengeance import SAMPLE_APL
        trace = run_apl(vengeance_engine, parse_apl(SAMPLE_APL, vengeance_adapter), vengeance_build, 30.0)
        times = [e.time for e in trace.events]
        assert times == sorted(times)
        assert all(t < 30.0 for t in times)

    def test_waits_when_nothing_matches(self, toy_engine, toy_adapter, toy_build):
        """Nothing castable: the clock ticks forward and the trace stays empty."""
        trace = run_apl(toy_engine, parse_apl("actions=spender_b\n", toy_adapter), toy_build, 5.0)
        assert trace.events == []

    def test_line_cd_spaces_casts(self, toy_engine, toy_adapter, toy_build):
        trace = run_apl(
            toy_engine, parse_apl("actions=generator_a,line_cd=3\n", toy_adapter), toy_build, 12.0,
        )
        times = [e.time for e in trace.events]
        assert len(times) >= 2
        assert all(b - a >= 3.0 - 1e-6 for a, b in zip(times, times[1:]))

    def test_precombat_is_not_run(self, toy_engine, toy_adapter, toy_build):
        rule_set = parse_apl("actions.precombat=spender_b\nactions=generator_a\n", toy_adapter)
        assert rule_set.get("precombat") is not None
        trace = run_apl(toy_engine, rule_set, toy_build, 6.0)
        assert {e.ability_id for e in trace.events} == {"generator_a"}

    def test_runs_are_deterministic(self, toy_engine, toy_adapter, toy_build):
        rule_set = parse_apl("actions=spender_b,if=resource>=60\nactions+=/generator_a\n", toy_adapter)
        first = run_apl(toy_engine, rule_set, toy_build, 30.0)
        second = run_apl(toy_engine, rule_set, toy_build, 30.0)
        assert first.to_json() == second.to_json()

    def test_off_gcd_events_share_the_slot(self, vengeance_engine, vengeance_adapter, vengeance_build):
        """Off-GCD casts take the clock of, and number, the GCD they precede."""
        rule_set = parse_apl(
            "actions=metamorphosis,use_off_gcd=1\nactions+=/fracture\nactions+=/throw_glaive\n",
            vengeance_adapter,
        )
        trace = run_apl(vengeance_engine, rule_set, vengeance_build, 3.0)
        first, second = trace.events[:2]
        assert first.ability_id == "metamorphosis" and first.off_gcd
        assert second.ability_id == "fracture" and not second.off_gcd
        assert first.time == second.time == 0.0
        assert first.gcd == second.gcd == 1

    def test_off_gcd_limit_per_slot(self, vengeance_engine, vengeance_adapter, vengeance_build):
        rule_set = parse_apl("actions=metamorphosis\nactions+=/throw_glaive\n", vengeance_adapter)
        runner = PolicyRunner(
            vengeance_engine,
            AplInterpreter(vengeance_engine, rule_set),
            InterpreterConfig(max_off_gcd_per_slot=0),
        )
        trace = runner.run(vengeance_build, 3.0, rules_hash=rule_set.source_hash)
        assert all(not e.off_gcd for e in trace.events)

    def test_invalid_wait_tick(self):
        with pytest.raises(ValueError):
            InterpreterConfig(wait_tick=0.0)
