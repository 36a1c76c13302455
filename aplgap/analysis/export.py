"""
Timeline Export - Turn a trace into an APL that replays it.

Each on-GCD cast becomes one entry gated on a time window that starts just
before the cast and ends just before the next one; off-GCD casts get a
narrow window around their timestamp and come first, since they fire ahead
of the GCD ability of the same slot. The adapter's fillers follow as
unconditional fallbacks for any slot the replay cannot match.

The result is a RuleSet, so it serializes with RuleSet.to_text and runs
through the same interpreter as a hand-written APL.
"""

from __future__ import annotations
from typing import TYPE_CHECKING

from ..rules.parser import parse_apl

if TYPE_CHECKING:
    from ..engine_core.adapter import SpecAdapter
    from ..rules.parser import RuleSet
    from .trace import Trace

# Half-width of the window around a recorded timestamp
TIME_EPSILON = 0.001


def _window(lo: float, hi: float) -> str:
    return f"time>={max(lo, 0.0):.3f}&time<{hi:.3f}"


def timeline_lines(trace: Trace, adapter: SpecAdapter) -> list[str]:
    """APL entries (without the `actions` prefix) replaying `trace`."""
    if trace.spec_id != adapter.spec_id:
        raise ValueError(f"Trace is for spec '{trace.spec_id}', not '{adapter.spec_id}'")

    on_gcd = trace.on_gcd_events
    if not on_gcd:
        raise ValueError("Trace has no on-GCD casts to export")

    entries = []
    for event in trace.events:
        if event.off_gcd:
            window = _window(event.time - TIME_EPSILON, event.time + TIME_EPSILON)
            entries.append(f"{event.ability_id},use_off_gcd=1,line_cd=1,if={window}")

    for i, event in enumerate(on_gcd):
        end = on_gcd[i + 1].time if i + 1 < len(on_gcd) else trace.duration + TIME_EPSILON
        entries.append(f"{event.ability_id},if={_window(event.time - TIME_EPSILON, end - TIME_EPSILON)}")

    entries.extend(sorted(adapter.filler_abilities))
    return entries


def export_timeline(trace: Trace, adapter: SpecAdapter) -> RuleSet:
    """
    Parse the replay APL for `trace`.

    Raises ValueError if the trace belongs to another spec or holds no
    on-GCD casts.
    """
    entries = timeline_lines(trace, adapter)
    text = "\n".join(
        f"actions={entry}" if i == 0 else f"actions+=/{entry}"
        for i, entry in enumerate(entries)
    )
    return parse_apl(text + "\n", adapter)


def render_timeline_apl(trace: Trace, adapter: SpecAdapter) -> str:
    """APL text for `trace` with a comment header naming its origin."""
    rule_set = export_timeline(trace, adapter)
    header = [
        f"# {trace.kind.value} timeline for {trace.spec_id} / {trace.build_name}",
        f"# duration={trace.duration:g} config_hash={trace.config_hash} rules_hash={trace.rules_hash}",
        f"# {len(trace.on_gcd_events)} GCDs, {len(trace.events) - len(trace.on_gcd_events)} off-GCD casts",
    ]
    return "\n".join(header) + "\n" + rule_set.to_text()
