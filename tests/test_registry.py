"""Tests for sheetmap.registry: class map caching and registration."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import pytest

from sheetmap import ClassMap, ClassMapRegistry, DuplicateClassMapError, FallbackStrategy


@dataclass
class Item:
    name: str
    quantity: int = 0


@dataclass
class Other:
    code: str


class TestRegistry:
    def test_get_or_build_caches(self, registry):
        first = registry.get_or_build(Item)
        assert registry.get_or_build(Item) is first
        assert Item in registry
        assert len(registry) == 1

    def test_get_unknown(self, registry):
        assert registry.get(Item) is None

    def test_register(self, registry):
        class_map = ClassMap.build(Item, {"name": "Item Name"})
        assert registry.register(class_map) is class_map
        assert registry.get_or_build(Item) is class_map

    def test_duplicate_registration(self, registry):
        registry.register(ClassMap.build(Item, {"name": 0}))
        with pytest.raises(DuplicateClassMapError, match="Class map already exists"):
            registry.register(ClassMap.build(Item, {"name": 1}))

    def test_register_after_automatic_build(self, registry):
        registry.get_or_build(Item)
        with pytest.raises(DuplicateClassMapError):
            registry.register(ClassMap.build(Item, {"name": 0}))

    def test_empty_map_rejected(self, registry):
        with pytest.raises(ValueError, match="maps no members"):
            registry.register(ClassMap(Item))
        assert Item not in registry

    def test_strategy_applies_to_built_maps(self):
        registry = ClassMapRegistry(strategy=FallbackStrategy.SET_TO_DEFAULT_VALUE)
        assert registry.get_or_build(Item).strategy is FallbackStrategy.SET_TO_DEFAULT_VALUE
        assert registry.get_or_build(Other, FallbackStrategy.THROW_IF_PRIMITIVE).strategy is (
            FallbackStrategy.THROW_IF_PRIMITIVE
        )

    def test_clear(self, registry):
        registry.get_or_build(Item)
        registry.clear()
        assert len(registry) == 0


def test_concurrent_builds_publish_one_map(registry):
    with ThreadPoolExecutor(max_workers=8) as pool:
        maps = list(pool.map(lambda _: registry.get_or_build(Item), range(32)))
    assert all(m is maps[0] for m in maps)
