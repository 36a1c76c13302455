"""
Tests for the divergence analyzer.

Tests:
- A generator-only APL against the toy spec (first divergence, counts, impact)
- The search's own timeline and an equivalent APL yield nothing
- Filler suppression and the noise threshold
- Real-spec smoke runs
"""

import pytest

from ..analysis.divergence import Confidence, DivergenceAnalyzer
from ..config import DivergenceConfig, SearchConfig
from ..engine_core.build import BuildConfig
from ..engine_core.reducer import EffectEngine
from ..rules.interpreter import run_apl
from ..rules.parser import parse_apl
from ..search.rollout import RolloutSearch
from ..specs.toy import ToySpecAdapter
from ..specs.vengeance import SAMPLE_APL

GENERATOR_ONLY = "actions=generator_a\n"
THRESHOLD_APL = "actions=spender_b,if=resource>=40\nactions+=/generator_a\n"


def _analyze(adapter, apl_text, build, duration, horizon=1.5, **divergence):
    engine = EffectEngine(adapter)
    trace = run_apl(engine, parse_apl(apl_text, adapter), build, duration)
    analyzer = DivergenceAnalyzer(
        engine,
        RolloutSearch(engine, SearchConfig(horizon=horizon)),
        DivergenceConfig(**divergence),
    )
    return analyzer, analyzer.compute_divergences(trace, build)


class TestGeneratorOnly:
    """An APL that never spends."""

    @pytest.fixture
    def result(self, toy_adapter, toy_build):
        return _analyze(toy_adapter, GENERATOR_ONLY, toy_build, 30.0)

    def test_first_divergence(self, result):
        """The first missed spend is at GCD 5, the first time 40 resource is banked."""
        _, divergences = result
        first = divergences[0]
        assert first.gcd == 5
        assert first.time == 6.0
        assert first.optimal == "spender_b"
        assert first.actual == "generator_a"
        assert first.delta == 90.0
        assert first.confidence is Confidence.HIGH
        assert first.condition is None

    def test_occurrences_and_impact(self, result):
        analyzer, divergences = result
        assert len(divergences) == 16
        assert all(d.occurrences == 16 for d in divergences)
        assert analyzer.last_summary.total_score == 200.0
        assert analyzer.last_summary.events_checked == 20
        assert divergences[0].impact_pct == pytest.approx(90.0 * 16 / 200.0 * 100.0)

    def test_ranking(self, result):
        """Equal deltas rank by GCD."""
        _, divergences = result
        assert [d.gcd for d in divergences] == list(range(5, 21))
        assert all(d.delta >= 0 for d in divergences)

    def test_hint_and_branch(self, result):
        _, divergences = result
        first = divergences[0]
        assert "spender" in first.hint
        assert first.branch_delta == 0.0
        assert first.branch_summary.startswith("3-GCD branch")
        assert first.frequency == "intermittent"

    def test_snapshot_matches_decision_point(self, result):
        _, divergences = result
        assert divergences[0].snapshot.resources["resource"]["value"] == 40.0

    def test_single_occurrence_has_no_impact(self, toy_adapter, toy_build):
        """Pairs seen fewer than min_occurrences times get no impact estimate."""
        _, divergences = _analyze(toy_adapter, GENERATOR_ONLY, toy_build, 7.5)
        assert len(divergences) == 1
        assert divergences[0].occurrences == 1
        assert divergences[0].impact_pct is None


class TestNoDivergence:
    """Policies that already match the search."""

    def test_optimal_timeline_has_none(self, toy_engine, toy_search, toy_build):
        trace = toy_search.generate_timeline(toy_build, 30.0)
        analyzer = DivergenceAnalyzer(toy_engine, toy_search)
        assert analyzer.compute_divergences(trace, toy_build) == []
        assert analyzer.last_summary.events_checked == 20

    def test_threshold_apl_has_none(self, toy_adapter, toy_build):
        _, divergences = _analyze(toy_adapter, THRESHOLD_APL, toy_build, 30.0)
        assert divergences == []

    def test_analysis_is_idempotent(self, toy_adapter, toy_build):
        engine = EffectEngine(toy_adapter)
        trace = run_apl(engine, parse_apl(GENERATOR_ONLY, toy_adapter), toy_build, 30.0)
        analyzer = DivergenceAnalyzer(engine, RolloutSearch(engine, SearchConfig(horizon=1.5)))
        first = [d.to_dict() for d in analyzer.compute_divergences(trace, toy_build)]
        second = [d.to_dict() for d in analyzer.compute_divergences(trace, toy_build)]
        assert first == second


class TestFiltering:
    """Tests for filler and noise suppression."""

    def test_filler_pairs_are_ignored(self, toy_build):
        adapter = ToySpecAdapter(fillers=("generator_a", "spender_b"))
        _, divergences = _analyze(adapter, GENERATOR_ONLY, toy_build, 30.0)
        assert divergences == []

    def test_noise_threshold(self, toy_adapter, toy_build):
        _, divergences = _analyze(toy_adapter, GENERATOR_ONLY, toy_build, 30.0, noise_threshold=100.0)
        assert divergences == []

    def test_spec_mismatch(self, toy_search, vengeance_engine, vengeance_build):
        trace = toy_search.generate_timeline(BuildConfig(name="b", spec_id="toy"), 3.0)
        analyzer = DivergenceAnalyzer(vengeance_engine, RolloutSearch(vengeance_engine))
        with pytest.raises(ValueError):
            analyzer.compute_divergences(trace, vengeance_build)


class TestVengeance:
    """Smoke tests against the Vengeance adapter."""

    @pytest.fixture
    def trace(self, vengeance_engine, vengeance_adapter, vengeance_build):
        return run_apl(vengeance_engine, parse_apl(SAMPLE_APL, vengeance_adapter), vengeance_build, 30.0)

    def test_divergences_are_well_formed(self, vengeance_engine, vengeance_build, trace):
        search = RolloutSearch(vengeance_engine, SearchConfig(horizon=6.0))
        analyzer = DivergenceAnalyzer(vengeance_engine, search)
        divergences = analyzer.compute_divergences(trace, vengeance_build)
        for d in divergences:
            assert d.delta >= analyzer.config.noise_threshold
            assert d.optimal != d.actual
            assert d.hint
        deltas = [d.delta for d in divergences]
        assert deltas == sorted(deltas, reverse=True)

    def test_deterministic(self, vengeance_engine, vengeance_build, trace):
        search = RolloutSearch(vengeance_engine, SearchConfig(horizon=6.0))
        first = DivergenceAnalyzer(vengeance_engine, search).compute_divergences(trace, vengeance_build)
        second = DivergenceAnalyzer(vengeance_engine, search).compute_divergences(trace, vengeance_build)
        assert [d.to_dict() for d in first] == [d.to_dict() for d in second]

    def test_resources_stay_in_bounds(self, trace):
        for event in trace.events:
            for pool in event.snapshot.resources.values():
                assert 0.0 <= pool["value"] <= pool["cap"]
