from __future__ import annotations

from cortexviz.model.options import OptionGroup, ViewOptions, invalidate
from cortexviz.model.paths import LayoutPath
from cortexviz.model.steps import Step
from cortexviz.view.draw_cache import CacheStore, DrawCache

IN = LayoutPath.input("in")
L1 = LayoutPath.layer("R1", "L1")


class Counter:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> object:
        self.calls += 1
        return object()


class TestCacheStore:
    def test_same_instance_while_versions_hold(self) -> None:
        """Repeated requests return the identical image without recomputing."""
        store, compute = CacheStore(), Counter()
        options = ViewOptions()
        first = store.with_cache("bg", options, {OptionGroup.COLUMNS}, compute)
        second = store.with_cache("bg", options, {OptionGroup.COLUMNS}, compute)
        assert first is second
        assert compute.calls == 1
        assert (store.hits, store.misses) == (1, 1)

    def test_version_bump_recomputes_once(self) -> None:
        store, compute = CacheStore(), Counter()
        options = ViewOptions()
        first = store.with_cache("bg", options, {OptionGroup.COLUMNS}, compute)
        bumped = invalidate(options, [L1])
        second = store.with_cache("bg", bumped, {OptionGroup.COLUMNS}, compute)
        third = store.with_cache("bg", bumped, {OptionGroup.COLUMNS}, compute)
        assert first is not second
        assert second is third
        assert compute.calls == 2

    def test_unrelated_group_bump_is_ignored(self) -> None:
        """An input invalidation leaves column images valid."""
        store, compute = CacheStore(), Counter()
        options = ViewOptions()
        store.with_cache("bg", options, {OptionGroup.COLUMNS}, compute)
        store.with_cache("bg", invalidate(options, [IN]), {OptionGroup.COLUMNS}, compute)
        assert compute.calls == 1
        assert (store.hits, store.misses) == (1, 1)


class TestDrawCache:
    def test_stores_are_per_key(self) -> None:
        cache = DrawCache()
        assert cache.layout_store(L1) is cache.layout_store(L1)
        assert cache.layout_store(L1) is not cache.layout_store(IN)
        assert cache.step_store(Step("m1", 1)) is cache.step_store(Step("m1", 1))

    def test_prune_steps(self) -> None:
        """Stores of steps that left the history are dropped."""
        cache, compute = DrawCache(), Counter()
        old, live = Step("m1", 1), Step("m2", 2)
        cache.step_store(old).with_cache("x", ViewOptions(), (), compute)
        cache.step_store(live).with_cache("x", ViewOptions(), (), compute)
        cache.prune_steps([live])
        cache.step_store(live).with_cache("x", ViewOptions(), (), compute)
        cache.step_store(old).with_cache("x", ViewOptions(), (), compute)
        assert compute.calls == 3

    def test_reset_layouts_drops_step_images_too(self) -> None:
        cache, compute = DrawCache(), Counter()
        step = Step("m1", 1)
        cache.layout_store(L1).with_cache("bg", ViewOptions(), (), compute)
        cache.layout_store(IN).with_cache("bg", ViewOptions(), (), compute)
        cache.step_store(step).with_cache("x", ViewOptions(), (), compute)
        cache.reset_layouts([L1])
        assert len(cache.layout_store(L1)) == 0
        assert len(cache.layout_store(IN)) == 1
        assert len(cache.step_store(step)) == 0

    def test_stats_cover_every_store(self) -> None:
        cache, compute = DrawCache(), Counter()
        for _ in range(3):
            cache.layout_store(L1).with_cache("bg", ViewOptions(), (), compute)
        cache.step_store(Step("m1", 1)).with_cache("x", ViewOptions(), (), compute)
        assert cache.stats() == (2, 2)
        assert cache.miss_rate() == 0.5

    def test_miss_rate_of_empty_cache(self) -> None:
        assert DrawCache().miss_rate() == 0.0

    def test_drop_step_forgets_its_images(self) -> None:
        """Only the named step's images are recomputed."""
        cache, compute = DrawCache(), Counter()
        first, second = Step("m1", 1), Step("m2", 2)
        for step in (first, second):
            cache.step_store(step).with_cache("x", ViewOptions(), (), compute)
        cache.drop_step(first)
        for step in (first, second):
            cache.step_store(step).with_cache("x", ViewOptions(), (), compute)
        assert compute.calls == 3

    def test_drop_unknown_step_is_noop(self) -> None:
        cache = DrawCache()
        cache.drop_step(Step("m1", 1))
        assert cache.stats() == (0, 0)
