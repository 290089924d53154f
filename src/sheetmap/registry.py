"""Thread-safe registry of class maps keyed by target type.

Reads are lock-free dictionary lookups.  Automatic builds and explicit
registrations run under a re-entrant lock with a double-checked lookup, and
a class map is only published once it is fully built, so concurrent readers
never observe a half-built map.

Re-registration is rejected: once a type has a class map, whether registered
explicitly or built automatically on first use, registering another one
raises :class:`DuplicateClassMapError`.

Usage::

    from sheetmap import ClassMap, ClassMapRegistry, RowMapper

    registry = ClassMapRegistry()
    registry.register(ClassMap.build(Person, {"name": "Full Name"}))
    mapper = RowMapper(registry)
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from sheetmap.classmap import ClassMap
from sheetmap.errors import DuplicateClassMapError
from sheetmap.fallback import FallbackStrategy

log = logging.getLogger(__name__)


class ClassMapRegistry:
    """Cache of :class:`ClassMap` objects, one per target type.

    Args:
        strategy: Empty-cell strategy used for automatically built maps.
    """

    def __init__(self, strategy: FallbackStrategy = FallbackStrategy.THROW_IF_PRIMITIVE):
        self.strategy = strategy
        self._maps: dict[Any, ClassMap] = {}
        self._lock = threading.RLock()

    def __contains__(self, target: Any) -> bool:
        return target in self._maps

    def __len__(self) -> int:
        return len(self._maps)

    def get(self, target: Any) -> ClassMap | None:
        """Return the class map of *target*, or None when none exists yet."""
        return self._maps.get(target)

    def register(self, class_map: ClassMap) -> ClassMap:
        """Register an explicit class map.

        Raises:
            DuplicateClassMapError: *class_map*'s target already has a map.
            ValueError: The class map maps nothing.
        """
        if class_map.is_empty:
            raise ValueError(f"Class map for {class_map.target!r} maps no members")
        with self._lock:
            if class_map.target in self._maps:
                raise DuplicateClassMapError(
                    f"Class map already exists for type {class_map.target!r}"
                )
            self._maps[class_map.target] = class_map
        log.info("Registered class map for %r", class_map.target)
        return class_map

    def get_or_build(self, target: Any, strategy: FallbackStrategy | None = None) -> ClassMap:
        """Return the class map of *target*, building it by convention if needed.

        Raises:
            RecursiveMappingError: *target* refers back to itself.
            UnsupportedConstructionError: A member type cannot be built.
        """
        class_map = self._maps.get(target)
        if class_map is not None:
            return class_map
        with self._lock:
            class_map = self._maps.get(target)
            if class_map is None:
                class_map = ClassMap.auto(target, strategy or self.strategy, registry=self)
                self._maps[target] = class_map
                log.info("Built class map for %r by convention", target)
        return class_map

    def clear(self) -> None:
        with self._lock:
            self._maps.clear()
