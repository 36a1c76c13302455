"""
Analysis - Traces, divergences and reports.

Pipeline:
1. Trace: serializable decision record produced by the PolicyRunner
2. TraceCache: write-once JSON store keyed by content hashes
3. DivergenceAnalyzer: replays a trace against the rollout search
4. build_report: ranked list plus Markdown document
5. analyze_patterns: resource flow, burst windows and divergence clusters

Timeline export lives in analysis.export and is imported from there; it
depends on the rules package, which itself imports from analysis.
"""

from .trace import Trace, TraceEvent, TraceKind, TRACE_FORMAT_VERSION
from .hashing import canonical_json, hash_config, hash_text, hash_parts
from .cache import TraceCache
from .hints import generate_hint, role_hint, describe_frequency
from .divergence import Confidence, Divergence, DivergenceAnalyzer, DivergenceSummary
from .report import Report, build_report, select_shortlist
from .patterns import Phase, PatternAnalysis, analyze_patterns, cluster_divergences

__all__ = [
    "Trace",
    "TraceEvent",
    "TraceKind",
    "TRACE_FORMAT_VERSION",
    "canonical_json",
    "hash_config",
    "hash_text",
    "hash_parts",
    "TraceCache",
    "generate_hint",
    "role_hint",
    "describe_frequency",
    "Confidence",
    "Divergence",
    "DivergenceAnalyzer",
    "DivergenceSummary",
    "Report",
    "build_report",
    "select_shortlist",
    "Phase",
    "PatternAnalysis",
    "analyze_patterns",
    "cluster_divergences",
]
