"""
Draw Cache
==========
Memoised off-screen images, validated against option-group versions.

There are two kinds of store: one per layout (images that depend only on
the layout, e.g. its background) and one per step (overlays of that step's
data). Both live in a side table keyed by LayoutPath / Step rather than on
the layout objects themselves.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Iterable, TypeVar

from cortexviz.model.options import OptionGroup, ViewOptions
from cortexviz.model.paths import LayoutPath
from cortexviz.model.steps import Step

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    image: T
    versions: tuple[int, ...]


class CacheStore:
    """Images keyed by an arbitrary hashable key."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def with_cache(
        self,
        key: Hashable,
        options: ViewOptions,
        groups: Iterable[OptionGroup],
        compute: Callable[[], T],
    ) -> T:
        """
        Return the stored image for ``key`` if every group version in
        ``groups`` is unchanged since it was stored; otherwise call
        ``compute`` once, store and return its result.
        """
        versions = options.versions(groups)
        entry = self._entries.get(key)
        if entry is not None and entry.versions == versions:
            self.hits += 1
            return entry.image
        self.misses += 1
        image = compute()
        self._entries[key] = CacheEntry(image, versions)
        return image

    def clear(self) -> None:
        self._entries.clear()


class DrawCache:
    """Side table of cache stores, per layout path and per step."""

    def __init__(self) -> None:
        self._layouts: dict[LayoutPath, CacheStore] = {}
        self._steps: dict[Step, CacheStore] = {}

    def layout_store(self, path: LayoutPath) -> CacheStore:
        store = self._layouts.get(path)
        if store is None:
            store = self._layouts[path] = CacheStore()
        return store

    def step_store(self, step: Step) -> CacheStore:
        store = self._steps.get(step)
        if store is None:
            store = self._steps[step] = CacheStore()
        return store

    def reset_layouts(self, paths: Iterable[LayoutPath] | None = None) -> None:
        """Discard whole layout stores (on rebuild); per-step images too, as they
        were drawn against the old geometry."""
        if paths is None:
            self._layouts.clear()
        else:
            for path in paths:
                self._layouts.pop(path, None)
        self._steps.clear()

    def prune_steps(self, live_steps: Iterable[Step]) -> None:
        live = set(live_steps)
        dropped = [s for s in self._steps if s not in live]
        for step in dropped:
            del self._steps[step]
        if dropped:
            logger.debug(f"Pruned image caches of {len(dropped)} dropped steps.")

    def drop_step(self, step: Step) -> None:
        """Forget the images of a step whose payload was replaced."""
        store = self._steps.get(step)
        if store is not None and len(store):
            store.clear()
            logger.debug(f"Dropped cached images of timestep {step.timestep}.")

    def stats(self) -> tuple[int, int]:
        """Total (hits, misses) over every store."""
        stores = list(self._layouts.values()) + list(self._steps.values())
        return sum(s.hits for s in stores), sum(s.misses for s in stores)

    def miss_rate(self) -> float:
        hits, misses = self.stats()
        total = hits + misses
        return misses / total if total else 0.0
