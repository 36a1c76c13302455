"""
Specs - Concrete SpecAdapter implementations and their registry.

Adapters are constructed on lookup and passed explicitly; there is no
module-level "current spec".
"""

from __future__ import annotations
from typing import Callable

from ..engine_core.adapter import SpecAdapter
from ..errors import UnknownSpecError
from .toy import ToySpecAdapter
from .vengeance import VengeanceAdapter, SAMPLE_APL

_REGISTRY: dict[str, Callable[[], SpecAdapter]] = {
    ToySpecAdapter.spec_id: ToySpecAdapter,
    VengeanceAdapter.spec_id: VengeanceAdapter,
}


def available_specs() -> list[str]:
    return sorted(_REGISTRY)


def get_adapter(spec_id: str) -> SpecAdapter:
    """Construct the adapter for `spec_id`. Raises UnknownSpecError."""
    factory = _REGISTRY.get(spec_id)
    if factory is None:
        raise UnknownSpecError(spec_id, available_specs())
    return factory()


__all__ = [
    "ToySpecAdapter",
    "VengeanceAdapter",
    "SAMPLE_APL",
    "available_specs",
    "get_adapter",
]
