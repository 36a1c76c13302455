"""
Analysis configuration - Tunable constants for search, interpreter and analyzer.

None of these values carries domain meaning: the horizon, noise threshold and
occurrence minimum were tuned to suppress false positives in practice.
Every value can be overridden through APLGAP_* environment variables.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Mapping
import os


@dataclass
class SearchConfig:
    """Rollout search settings."""
    horizon: float = 15.0  # simulated seconds, counted from the decision point
    max_steps: int = 2000  # iteration cap per rollout
    max_off_gcd_per_slot: int = 5

    def __post_init__(self):
        if self.horizon <= 0:
            raise ValueError("horizon must be > 0")
        if self.max_steps < 1:
            raise ValueError("max_steps must be >= 1")


@dataclass
class InterpreterConfig:
    """APL interpreter settings."""
    wait_tick: float = 0.1  # clock advance when no rule matches
    max_off_gcd_per_slot: int = 5
    max_list_depth: int = 10

    def __post_init__(self):
        if self.wait_tick <= 0:
            raise ValueError("wait_tick must be > 0")


@dataclass
class DivergenceConfig:
    """Divergence analyzer settings."""
    noise_threshold: float = 10.0
    branch_steps: int = 3
    min_occurrences: int = 2

    def __post_init__(self):
        if self.branch_steps < 1:
            raise ValueError("branch_steps must be >= 1")


@dataclass
class ReportConfig:
    """Report rendering settings."""
    summary_rows: int = 20
    min_impact_pct: float = 0.05


@dataclass
class AnalysisConfig:
    """All settings for one analysis run."""
    search: SearchConfig = field(default_factory=SearchConfig)
    interpreter: InterpreterConfig = field(default_factory=InterpreterConfig)
    divergence: DivergenceConfig = field(default_factory=DivergenceConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    cache_dir: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AnalysisConfig:
        """Build a config from APLGAP_* environment variables."""
        env = os.environ if environ is None else environ

        def get(name: str, default, cast):
            raw = env.get(f"APLGAP_{name}")
            if raw is None or raw == "":
                return default
            try:
                return cast(raw)
            except ValueError:
                raise ValueError(f"APLGAP_{name}={raw!r} is not a valid {cast.__name__}")

        return cls(
            search=SearchConfig(
                horizon=get("HORIZON", 15.0, float),
                max_steps=get("MAX_ROLLOUT_STEPS", 2000, int),
                max_off_gcd_per_slot=get("MAX_OFF_GCD", 5, int),
            ),
            interpreter=InterpreterConfig(
                wait_tick=get("WAIT_TICK", 0.1, float),
                max_off_gcd_per_slot=get("MAX_OFF_GCD", 5, int),
                max_list_depth=get("MAX_LIST_DEPTH", 10, int),
            ),
            divergence=DivergenceConfig(
                noise_threshold=get("NOISE_THRESHOLD", 10.0, float),
                branch_steps=get("BRANCH_STEPS", 3, int),
                min_occurrences=get("MIN_OCCURRENCES", 2, int),
            ),
            report=ReportConfig(
                summary_rows=get("SUMMARY_ROWS", 20, int),
                min_impact_pct=get("MIN_IMPACT_PCT", 0.05, float),
            ),
            cache_dir=env.get("APLGAP_CACHE_DIR") or None,
        )
