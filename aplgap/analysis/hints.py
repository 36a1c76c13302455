"""
Fix hints - Short advice attached to each divergence.

Order of precedence:
1. The adapter's own hint for the (optimal, actual) pair
2. Role-based rules (generator vs spender, held cooldown, filler over a real action)
3. A generic description

Hints are advisory: generation never raises, since the rest of the report
stays valid without them.
"""

from __future__ import annotations
from typing import TYPE_CHECKING
import logging

from ..engine_core.ability import AbilityRole

if TYPE_CHECKING:
    from ..engine_core.adapter import SpecAdapter
    from ..engine_core.build import BuildConfig
    from ..engine_core.state import CombatState
    from ..search.rollout import BranchComparison
    from .divergence import Divergence

logger = logging.getLogger(__name__)


def _resource_text(state: CombatState) -> str:
    return ", ".join(
        f"{name}={pool.value:.0f}" for name, pool in sorted(state.resources.items())
    )


def role_hint(adapter: SpecAdapter, optimal: str, actual: str, state: CombatState) -> str | None:
    """Hint from ability roles alone, or None if no rule applies."""
    optimal_role = adapter.role_of(optimal)
    actual_role = adapter.role_of(actual)
    resources = _resource_text(state)

    if optimal_role is AbilityRole.SPENDER and actual_role is AbilityRole.GENERATOR:
        return (
            f"APL generated with {actual} when spending with {optimal} was better "
            f"({resources}); the spender's gate may be too strict."
        )
    if optimal_role is AbilityRole.GENERATOR and actual_role is AbilityRole.SPENDER:
        return (
            f"APL spent with {actual} when generating with {optimal} was better "
            f"({resources}); the spending threshold may be too low."
        )
    if optimal_role is AbilityRole.COOLDOWN and actual != optimal:
        return f"{optimal} was ready but the APL chose {actual}; check {optimal}'s conditions."
    if actual_role is AbilityRole.FILLER:
        return f"APL fell through to filler {actual} while {optimal} was available; a higher line may be gated too tightly."
    return None


def generate_hint(
    adapter: SpecAdapter,
    divergence: Divergence,
    state: CombatState,
    build: BuildConfig,
    branch: BranchComparison | None = None,
) -> str:
    """Build the hint text for one divergence. Never raises."""
    summary = branch.describe() if branch is not None else ""
    optimal, actual = divergence.optimal, divergence.actual

    try:
        hint = adapter.fix_hint(optimal, actual, state, build, summary)
    except Exception:
        logger.warning("Spec hint failed for %s vs %s", optimal, actual, exc_info=True)
        hint = None
    if hint:
        return hint

    try:
        base = role_hint(adapter, optimal, actual, state)
    except Exception:
        logger.warning("Role hint failed for %s vs %s", optimal, actual, exc_info=True)
        base = None
    if base is None:
        base = f"Optimal chose {optimal} over {actual} (gap {divergence.delta:.1f})."

    return f"{base} {summary}".strip()


def describe_frequency(adapter: SpecAdapter, optimal: str, actual: str) -> str:
    """How often this decision comes up: the adapter's estimate, else the cooldown cadence."""
    try:
        text = adapter.frequency_hint(optimal, actual)
    except Exception:
        logger.warning("Frequency hint failed for %s vs %s", optimal, actual, exc_info=True)
        text = None
    if text:
        return text

    abilities = adapter.abilities()
    cooldowns = [
        abilities[a].cooldown
        for a in (optimal, actual)
        if a in abilities and abilities[a].cooldown >= 10
    ]
    if cooldowns:
        return f"cooldown cadence (~{max(cooldowns):.0f}s)"
    return "intermittent"
