"""
Tests for content hashing.
"""

from ..analysis.hashing import HASH_LENGTH, canonical_json, hash_config, hash_parts, hash_text
from ..engine_core.build import BuildConfig


def _build(**kwargs):
    defaults = dict(name="a", spec_id="vengeance", talents={"fallout": True, "soul_sigils": True})
    defaults.update(kwargs)
    return BuildConfig(**defaults)


class TestHashing:
    """Tests for hash_config and friends."""

    def test_length(self):
        assert len(hash_config(_build())) == HASH_LENGTH
        assert len(hash_text("actions=fracture")) == HASH_LENGTH

    def test_key_order_does_not_matter(self):
        first = _build(talents={"fallout": True, "soul_sigils": True})
        second = _build(talents={"soul_sigils": True, "fallout": True})
        assert hash_config(first) == hash_config(second)

    def test_nested_key_order(self):
        assert canonical_json({"b": {"y": 1, "x": 2}, "a": 0}) == '{"a":0,"b":{"x":2,"y":1}}'

    def test_leaf_change_changes_hash(self):
        assert hash_config(_build()) != hash_config(_build(talents={"fallout": False, "soul_sigils": True}))
        assert hash_config(_build()) != hash_config(_build(haste=0.1))

    def test_name_is_not_hashed(self):
        """Renaming a build keeps its cached traces valid."""
        assert hash_config(_build(name="a")) == hash_config(_build(name="b"))

    def test_dict_and_build_agree(self):
        build = _build()
        assert hash_config(build) == hash_config(build.to_dict())

    def test_parts_are_ordered(self):
        assert hash_parts("a", "b", 1.0) != hash_parts("b", "a", 1.0)
        assert hash_parts("a", "b", 1.0) == hash_parts("a", "b", 1.0)
