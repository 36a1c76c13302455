"""
Pytest fixtures for aplgap tests.
"""

import pytest

from ..config import SearchConfig
from ..engine_core.build import BuildConfig
from ..engine_core.reducer import EffectEngine
from ..engine_core.state import CombatState
from ..rules.resolver import FieldResolver
from ..search.rollout import RolloutSearch
from ..specs.toy import ToySpecAdapter
from ..specs.vengeance import VengeanceAdapter


@pytest.fixture
def toy_adapter() -> ToySpecAdapter:
    """Two-ability generator/spender spec."""
    return ToySpecAdapter()


@pytest.fixture
def toy_engine(toy_adapter) -> EffectEngine:
    return EffectEngine(toy_adapter)


@pytest.fixture
def toy_build() -> BuildConfig:
    return BuildConfig(name="baseline", spec_id="toy")


@pytest.fixture
def toy_state(toy_engine, toy_build) -> CombatState:
    """Fresh toy state for a 30s fight."""
    return toy_engine.create_initial_state(toy_build, 30.0)


@pytest.fixture
def toy_search(toy_engine) -> RolloutSearch:
    """Search whose horizon covers exactly one GCD."""
    return RolloutSearch(toy_engine, SearchConfig(horizon=1.5))


@pytest.fixture
def toy_resolver(toy_adapter) -> FieldResolver:
    return FieldResolver(toy_adapter)


@pytest.fixture
def vengeance_adapter() -> VengeanceAdapter:
    return VengeanceAdapter()


@pytest.fixture
def vengeance_engine(vengeance_adapter) -> EffectEngine:
    return EffectEngine(vengeance_adapter)


@pytest.fixture
def vengeance_build(vengeance_adapter) -> BuildConfig:
    """Annihilator build with apex rank 3."""
    return vengeance_adapter.default_builds()["anni-voidfall-burst"]


@pytest.fixture
def vengeance_state(vengeance_engine, vengeance_build) -> CombatState:
    return vengeance_engine.create_initial_state(vengeance_build, 60.0)


@pytest.fixture
def vengeance_resolver(vengeance_adapter) -> FieldResolver:
    return FieldResolver(vengeance_adapter)
