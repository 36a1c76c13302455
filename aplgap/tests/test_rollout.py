"""
Tests for the rollout search.

Tests:
- Greedy step and tie-breaking
- Rollout scoring, horizon and fight-end cut-off
- Forced branches
- Optimal timeline generation
"""

import pytest

from ..analysis.trace import TraceKind
from ..config import SearchConfig
from ..search.policy import RolloutPolicy
from ..search.rollout import CandidateScore, RolloutSearch
from ..specs.toy import ToySpecAdapter
from ..engine_core.reducer import EffectEngine


class TestGreedy:
    """Tests for the greedy continuation step."""

    def test_prefers_highest_immediate(self, toy_search, toy_state):
        toy_state.resources["resource"].value = 40.0
        assert toy_search.greedy_action(toy_state) == "spender_b"

    def test_only_generator_when_broke(self, toy_search, toy_state):
        assert toy_search.greedy_action(toy_state) == "generator_a"

    def test_ties_break_by_catalog_order(self, toy_build):
        engine = EffectEngine(ToySpecAdapter(generator_score=50.0, spender_score=50.0))
        state = engine.create_initial_state(toy_build, 30.0)
        state.resources["resource"].value = 40.0
        assert RolloutSearch(engine).greedy_action(state) == "generator_a"

    def test_pick_best_keeps_first_on_tie(self):
        candidates = [
            CandidateScore("a", immediate=1.0, rollout=5.0),
            CandidateScore("b", immediate=2.0, rollout=5.0),
        ]
        assert RolloutSearch.pick_best(candidates).ability_id == "a"
        assert RolloutSearch.pick_best([]) is None


class TestRolloutScore:
    """Tests for rollout_score and best_action."""

    def test_one_gcd_horizon_is_immediate_score(self, toy_search, toy_state):
        """With a one-GCD horizon only the forced move counts."""
        toy_state.resources["resource"].value = 40.0
        assert toy_search.rollout_score(toy_state, "spender_b") == 100.0
        assert toy_search.rollout_score(toy_state, "generator_a") == 10.0

    def test_rollout_does_not_mutate_state(self, toy_search, toy_state):
        toy_state.resources["resource"].value = 40.0
        toy_search.rollout_score(toy_state, "spender_b")
        assert toy_state.resource("resource") == 40.0
        assert toy_state.time == 0.0
        assert toy_state.prev_gcd == []

    def test_longer_horizon_continues_greedily(self, toy_engine, toy_state):
        """generator (10) + 3 more generators (30) + spender (100) in 7.5s."""
        toy_state.resources["resource"].value = 0.0
        search = RolloutSearch(toy_engine, SearchConfig(horizon=7.5))
        assert search.rollout_score(toy_state, "generator_a") == 140.0

    def test_horizon_cut_by_fight_end(self, toy_engine, toy_build):
        state = toy_engine.create_initial_state(toy_build, 3.0)
        search = RolloutSearch(toy_engine, SearchConfig(horizon=15.0))
        assert search.rollout_score(state, "generator_a") == 20.0

    def test_step_cap_bounds_rollout(self, toy_engine, toy_state):
        search = RolloutSearch(toy_engine, SearchConfig(horizon=1000.0, max_steps=3))
        assert search.rollout_score(toy_state, "generator_a") == 30.0

    def test_best_action(self, toy_search, toy_state):
        assert toy_search.best_action(toy_state) == "generator_a"
        toy_state.resources["resource"].value = 40.0
        assert toy_search.best_action(toy_state) == "spender_b"

    def test_evaluate_lists_on_gcd_candidates(self, toy_search, toy_state):
        toy_state.resources["resource"].value = 40.0
        scored = toy_search.evaluate(toy_state)
        assert [c.ability_id for c in scored] == ["generator_a", "spender_b"]
        assert [c.immediate for c in scored] == [10.0, 100.0]


class TestBranches:
    """Tests for short forced branches."""

    def test_branch_takes_fixed_steps(self, toy_search, toy_state):
        toy_state.resources["resource"].value = 40.0
        result = toy_search.branch(toy_state, "generator_a", 3)
        assert result.casts == ["generator_a", "spender_b", "generator_a"]
        assert result.score == 120.0
        assert toy_state.resource("resource") == 40.0

    def test_branch_compare_delta(self, toy_search, toy_state):
        toy_state.resources["resource"].value = 40.0
        comparison = toy_search.branch_compare(toy_state, "spender_b", "generator_a", 1)
        assert comparison.delta == 90.0
        text = comparison.describe()
        assert text.startswith("1-GCD branch: spender_b 100.0 vs generator_a 10.0 (+90.0)")
        assert "resource 0 vs 50" in text


class TestOptimalTimeline:
    """Tests for generate_timeline and RolloutPolicy."""

    def test_timeline_is_optimal_trace(self, toy_search, toy_build):
        trace = toy_search.generate_timeline(toy_build, 15.0)
        assert trace.kind is TraceKind.OPTIMAL
        assert len(trace.events) == 10
        # 4 generators, then spend; repeat
        assert [e.ability_id for e in trace.events[:5]] == ["generator_a"] * 4 + ["spender_b"]
        assert all(e.note.startswith("rollout") for e in trace.events)

    def test_timeline_is_deterministic(self, toy_search, toy_build):
        first = toy_search.generate_timeline(toy_build, 15.0)
        second = toy_search.generate_timeline(toy_build, 15.0)
        assert first.to_json() == second.to_json()

    def test_policy_decision(self, toy_search, toy_state):
        decision = RolloutPolicy(toy_search).decide(toy_state)
        assert decision.ability_id == "generator_a"
        assert decision.condition is None

    def test_policy_fires_off_gcd_trigger(self, vengeance_engine, vengeance_state):
        """Metamorphosis fires first once three fragments are banked."""
        vengeance_state.resources["soul_fragments"].value = 3.0
        policy = RolloutPolicy(RolloutSearch(vengeance_engine, SearchConfig(horizon=3.0)))
        decision = policy.decide(vengeance_state)
        assert decision.ability_id == "metamorphosis"
        assert decision.condition == "off-GCD trigger"

        on_gcd = policy.decide(vengeance_state, allow_off_gcd=False)
        assert on_gcd.ability_id != "metamorphosis"
