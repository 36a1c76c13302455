"""
Report - Ranked structured list plus a Markdown document for human review.

Sections:
1. Metadata and summary counts
2. Summary table of the highest-delta divergences
3. One detail block per divergence (snapshot, both choices, confidence, hint)
4. "Worth validating" shortlist: high confidence, estimated impact above a floor
5. Patterns (optional): resource flow, burst windows, divergence phases

The report carries no wall-clock timestamps, so identical inputs render
byte-identical documents.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

from ..config import ReportConfig
from .divergence import Confidence, Divergence
from .patterns import PatternAnalysis, render_patterns


@dataclass
class Report:
    """Output of build_report."""
    metadata: dict[str, Any]
    divergences: list[Divergence]
    shortlist: list[Divergence] = field(default_factory=list)
    markdown: str = ""
    patterns: PatternAnalysis | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "metadata": dict(self.metadata),
            "divergences": [d.to_dict() for d in self.divergences],
            "shortlist": [d.to_dict() for d in self.shortlist],
        }
        if self.patterns is not None:
            data["patterns"] = self.patterns.to_dict()
        return data


def _fmt_impact(value: float | None) -> str:
    return "-" if value is None else f"{value:.2f}%"


def _snapshot_line(divergence: Divergence) -> str:
    snap = divergence.snapshot
    parts = [f"{name}={pool['value']:.0f}/{pool['cap']:.0f}" for name, pool in sorted(snap.resources.items())]
    for kind in ("buffs", "debuffs", "dots"):
        active = snap.active_names(kind)
        if active:
            parts.append(f"{kind}: " + ", ".join(active))
    if snap.cooldowns:
        parts.append(
            "recharging: " + ", ".join(
                f"{name} ({cd['recharge']:.1f}s)" for name, cd in sorted(snap.cooldowns.items())
            )
        )
    return "; ".join(parts) if parts else "empty"


def select_shortlist(divergences: list[Divergence], min_impact_pct: float) -> list[Divergence]:
    """High-confidence divergences above the impact floor, one per (optimal, actual) pair."""
    seen: set[tuple[str, str]] = set()
    shortlist = []
    for d in divergences:
        if d.confidence is not Confidence.HIGH or d.impact_pct is None:
            continue
        if d.impact_pct < min_impact_pct or d.pair in seen:
            continue
        seen.add(d.pair)
        shortlist.append(d)
    return shortlist


def render_markdown(
    divergences: list[Divergence],
    metadata: dict[str, Any],
    shortlist: list[Divergence],
    config: ReportConfig,
    patterns: PatternAnalysis | None = None,
) -> str:
    lines = ["# APL Divergence Report", ""]
    for key in sorted(metadata):
        lines.append(f"- **{key}**: {metadata[key]}")
    lines.append("")

    high = sum(1 for d in divergences if d.confidence is Confidence.HIGH)
    pairs = len({d.pair for d in divergences})
    lines += [
        "## Summary",
        "",
        f"{len(divergences)} divergences ({high} high confidence, "
        f"{len(divergences) - high} low) across {pairs} distinct decision pairs.",
        "",
    ]

    if divergences:
        lines += [
            "Ranked by per-decision delta, largest first. Impact is the share of the "
            "total actual score that the same (optimal, actual) pair accounts for.",
            "",
            "| # | GCD | Time | Optimal | Actual | Delta | Count | Impact | Confidence |",
            "|---|-----|------|---------|--------|-------|-------|--------|------------|",
        ]
        for rank, d in enumerate(divergences[:config.summary_rows], start=1):
            lines.append(
                f"| {rank} | {d.gcd} | {d.time:.1f}s | {d.optimal} | {d.actual} | "
                f"{d.delta:.1f} | {d.occurrences} | {_fmt_impact(d.impact_pct)} | "
                f"{d.confidence.value} |"
            )
        lines.append("")

        lines += ["## Details", ""]
        for rank, d in enumerate(divergences, start=1):
            lines += [
                f"### {rank}. GCD {d.gcd} at {d.time:.1f}s: {d.optimal} over {d.actual}",
                "",
                f"- Optimal: {d.optimal} (rollout {d.optimal_score:.1f})",
                f"- Actual: {d.actual} (immediate {d.actual_immediate:.1f}, rollout {d.actual_score:.1f})",
                f"- Condition: `{d.condition}`" if d.condition else "- Condition: unconditional",
                f"- Delta: {d.delta:.1f}, seen {d.occurrences}x, impact {_fmt_impact(d.impact_pct)}",
                f"- Confidence: {d.confidence.value} (branch delta {d.branch_delta:+.1f})",
                f"- Frequency: {d.frequency or 'intermittent'}",
                f"- State: {_snapshot_line(d)}",
                f"- Hint: {d.hint}",
                "",
            ]
    else:
        lines += ["No divergences above the noise threshold.", ""]

    lines += ["## Worth Validating", ""]
    if shortlist:
        for d in shortlist:
            lines.append(
                f"- {d.optimal} over {d.actual}: ~{d.impact_pct:.2f}% "
                f"({d.occurrences} occurrences, first at GCD {d.gcd}). {d.hint}"
            )
    else:
        lines.append(
            f"Nothing above {config.min_impact_pct:.2f}% estimated impact with high confidence."
        )
    lines.append("")

    if patterns is not None:
        lines += render_patterns(patterns)
    return "\n".join(lines)


def build_report(
    divergences: list[Divergence],
    metadata: dict[str, Any],
    config: ReportConfig | None = None,
    patterns: PatternAnalysis | None = None,
) -> Report:
    """
    Build the structured and formatted report.

    `divergences` should already be ranked (DivergenceAnalyzer sorts them).
    `patterns` adds a pattern section after the shortlist.
    """
    config = config or ReportConfig()
    shortlist = select_shortlist(divergences, config.min_impact_pct)
    return Report(
        metadata=dict(metadata),
        divergences=list(divergences),
        shortlist=shortlist,
        markdown=render_markdown(divergences, metadata, shortlist, config, patterns),
        patterns=patterns,
    )
