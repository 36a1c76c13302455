"""
Toy spec - Two abilities sharing one resource.

generator_a: no cost, +10 resource, low score
spender_b:   costs 40 resource, high score

Small enough to reason about by hand, which makes it the reference spec
for tests of the search and the analyzer.
"""

from __future__ import annotations
from typing import Iterable

from ..engine_core.ability import Ability, AbilityRole
from ..engine_core.adapter import TableSpecAdapter
from ..engine_core.build import BuildConfig


class ToySpecAdapter(TableSpecAdapter):
    spec_id = "toy"
    display_name = "Toy (generator / spender)"
    resource_table = {"resource": (0.0, 100.0)}

    def __init__(
        self,
        generator_score: float = 10.0,
        spender_score: float = 100.0,
        fillers: Iterable[str] = (),
    ):
        self.generator_score = generator_score
        self.spender_score = spender_score
        self.filler_abilities = frozenset(fillers)
        super().__init__()

    def build_catalog(self) -> list[Ability]:
        return [
            Ability(
                "generator_a",
                role=AbilityRole.GENERATOR,
                gains={"resource": 10.0},
                base_score=self.generator_score,
            ),
            Ability(
                "spender_b",
                role=AbilityRole.SPENDER,
                costs={"resource": 40.0},
                base_score=self.spender_score,
            ),
        ]

    def default_builds(self) -> dict[str, BuildConfig]:
        return {"baseline": BuildConfig(name="baseline", spec_id=self.spec_id)}
