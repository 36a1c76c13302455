"""
Analysis Service - Business logic layer between the API and the engine.

The service:
1. Looks up spec adapters and resolves builds
2. Parses APL text and runs it (through the trace cache when configured)
3. Runs the divergence analyzer and renders reports
4. Lets the rollout search play a whole fight as a reference timeline
5. Exports a timeline as a replayable APL

Every call composes a fresh engine/search/interpreter from the adapter;
nothing mutable is shared between requests except the write-once cache.

This layer is framework-agnostic (can be used with FastAPI, a CLI, a worker).
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any
import logging

from ..analysis.cache import TraceCache
from ..analysis.divergence import Divergence, DivergenceAnalyzer, DivergenceSummary
from ..analysis.export import render_timeline_apl
from ..analysis.hashing import hash_config
from ..analysis.patterns import PatternAnalysis, analyze_patterns
from ..analysis.report import Report, build_report
from ..analysis.trace import Trace
from ..config import AnalysisConfig
from ..engine_core.adapter import SpecAdapter
from ..engine_core.build import BuildConfig
from ..engine_core.reducer import EffectEngine
from ..rules.interpreter import AplInterpreter
from ..rules.parser import RuleSet, parse_apl
from ..search.rollout import RolloutSearch
from ..specs import available_specs, get_adapter

logger = logging.getLogger(__name__)


@dataclass
class TraceRun:
    """A trace plus how it was obtained."""
    trace: Trace
    build: BuildConfig
    rule_set: RuleSet
    cached: bool = False

    @property
    def warnings(self) -> list[str]:
        return list(self.rule_set.warnings)


@dataclass
class AnalysisRun:
    """Result of analyze()."""
    run: TraceRun
    divergences: list[Divergence]
    summary: DivergenceSummary
    report: Report

    @property
    def patterns(self) -> PatternAnalysis | None:
        return self.report.patterns


@dataclass
class AnalysisService:
    """
    Main analysis service.

    Usage:
        service = AnalysisService(cache=TraceCache("~/.aplgap/cache"))

        specs = service.list_specs()
        run = service.run_trace("vengeance", apl_text, build_name="anni-sustained")
        result = service.analyze("vengeance", apl_text, duration=120.0)
    """
    config: AnalysisConfig = field(default_factory=AnalysisConfig)
    cache: TraceCache | None = None

    def list_specs(self) -> list[SpecAdapter]:
        return [get_adapter(spec_id) for spec_id in available_specs()]

    def resolve_build(
        self,
        adapter: SpecAdapter,
        build: dict[str, Any] | None = None,
        build_name: str | None = None,
    ) -> BuildConfig:
        """
        Pick the build for a request.

        An explicit build wins; otherwise a named default build; otherwise
        the adapter's first default build (or an empty one).
        """
        if build is not None:
            data = dict(build)
            spec_id = data.setdefault("spec_id", adapter.spec_id)
            if spec_id != adapter.spec_id:
                raise ValueError(f"Build is for spec '{spec_id}', not '{adapter.spec_id}'")
            return BuildConfig.from_dict(data)

        defaults = adapter.default_builds()
        if build_name is not None:
            if build_name not in defaults:
                raise ValueError(
                    f"Unknown build '{build_name}' for spec '{adapter.spec_id}' "
                    f"(known: {', '.join(sorted(defaults)) or 'none'})"
                )
            return defaults[build_name]
        if defaults:
            return next(iter(defaults.values()))
        return BuildConfig(name="default", spec_id=adapter.spec_id)

    def run_trace(
        self,
        spec_id: str,
        apl_text: str,
        build: dict[str, Any] | None = None,
        build_name: str | None = None,
        duration: float = 120.0,
        use_cache: bool = True,
    ) -> TraceRun:
        """
        Parse and run an APL.

        Raises RuleParseError before anything runs if the text is malformed.
        """
        adapter = get_adapter(spec_id)
        build_config = self.resolve_build(adapter, build, build_name)
        rule_set = parse_apl(apl_text, adapter)
        config_hash = hash_config(build_config)
        interpreter = AplInterpreter(EffectEngine(adapter), rule_set, self.config.interpreter)

        if use_cache and self.cache is not None:
            trace = self.cache.get(config_hash, interpreter.rules_hash, duration)
            if trace is not None:
                return TraceRun(trace=trace, build=build_config, rule_set=rule_set, cached=True)

        trace = interpreter.run(build_config, duration)

        if self.cache is not None:
            self.cache.put(trace)
        return TraceRun(trace=trace, build=build_config, rule_set=rule_set)

    def analyze(
        self,
        spec_id: str,
        apl_text: str,
        build: dict[str, Any] | None = None,
        build_name: str | None = None,
        duration: float = 120.0,
        use_cache: bool = True,
        config: AnalysisConfig | None = None,
    ) -> AnalysisRun:
        """Run (or load) the trace, compute divergences and build the report."""
        config = config or self.config
        run = self.run_trace(spec_id, apl_text, build, build_name, duration, use_cache)

        adapter = get_adapter(spec_id)
        engine = EffectEngine(adapter)
        search = RolloutSearch(engine, config.search)
        analyzer = DivergenceAnalyzer(engine, search, config.divergence)
        divergences = analyzer.compute_divergences(run.trace, run.build)

        metadata = dict(run.trace.metadata())
        metadata["horizon"] = config.search.horizon
        metadata["noise_threshold"] = config.divergence.noise_threshold
        patterns = analyze_patterns(run.trace, divergences, adapter)
        report = build_report(divergences, metadata, config.report, patterns)

        logger.info(
            "Analysis complete: %d divergences, %d shortlisted",
            len(divergences), len(report.shortlist),
            extra={"spec_id": spec_id, "build": run.build.name, "rules_hash": run.trace.rules_hash},
        )
        return AnalysisRun(
            run=run,
            divergences=divergences,
            summary=analyzer.last_summary,
            report=report,
        )

    def optimal_timeline(
        self,
        spec_id: str,
        build: dict[str, Any] | None = None,
        build_name: str | None = None,
        duration: float = 120.0,
        horizon: float | None = None,
    ) -> Trace:
        adapter = get_adapter(spec_id)
        build_config = self.resolve_build(adapter, build, build_name)
        search_config = self.config.search
        if horizon is not None:
            search_config = replace(search_config, horizon=horizon)
        search = RolloutSearch(EffectEngine(adapter), search_config)
        return search.generate_timeline(build_config, duration, self.config.interpreter)

    def export_timeline(
        self,
        spec_id: str,
        build: dict[str, Any] | None = None,
        build_name: str | None = None,
        duration: float = 120.0,
        horizon: float | None = None,
    ) -> tuple[Trace, str]:
        """Play the optimal timeline and render it as APL text that replays it."""
        trace = self.optimal_timeline(spec_id, build, build_name, duration, horizon)
        return trace, render_timeline_apl(trace, get_adapter(spec_id))

    def config_with(
        self,
        horizon: float | None = None,
        noise_threshold: float | None = None,
        summary_rows: int | None = None,
    ) -> AnalysisConfig:
        """Copy of the service config with per-request overrides applied."""
        config = self.config
        if horizon is not None:
            config = replace(config, search=replace(config.search, horizon=horizon))
        if noise_threshold is not None:
            config = replace(config, divergence=replace(config.divergence, noise_threshold=noise_threshold))
        if summary_rows is not None:
            config = replace(config, report=replace(config.report, summary_rows=summary_rows))
        return config
