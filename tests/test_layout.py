"""
Tests for the layout registry: geometry, hit-testing, ordering, facets,
scrolling and rebuilds.
"""
from __future__ import annotations

import numpy as np
import pytest

from cortexviz.model import layout as lay
from cortexviz.model.layout import LEFT_MARGIN_PX
from cortexviz.model.options import DisplayMode, ViewOptions
from cortexviz.model.paths import LayoutPath, StepTemplate

IN = LayoutPath.input("in")
L1 = LayoutPath.layer("R1", "L1")


@pytest.fixture
def short_options() -> ViewOptions:
    """Room for 8 columns (40px below the 30px top) per page."""
    return ViewOptions().with_drawing(height_px=70, width_px=800)


class TestBuild:
    def test_left_to_right_placement(self, layouts) -> None:
        """Inputs first from the left margin, then layers, separated by the gap."""
        assert list(layouts) == [IN, L1]
        g_in, g_l1 = layouts[IN].geometry, layouts[L1].geometry
        assert g_in.left == LEFT_MARGIN_PX
        assert g_in.width == 16 * 4
        assert g_l1.left == g_in.right + 45
        assert g_l1.right == 209

    def test_heights_follow_options(self, layouts) -> None:
        """Everything below top_px is available to the layouts."""
        assert layouts[L1].geometry.top == 30
        assert layouts[L1].geometry.height == 470
        assert layouts[L1].n_onscreen == 20
        assert layouts[IN].n_onscreen == 10

    def test_unknown_height_means_nothing_onscreen(self, template) -> None:
        """Before the first resize no element is visible."""
        layouts = lay.init_layouts(template, ViewOptions())
        assert layouts[L1].n_onscreen == 0
        assert len(layouts[L1].ids_onscreen()) == 0

    def test_empty_topology(self) -> None:
        """A layer with no elements has no width and ignores clicks."""
        template = StepTemplate(regions={"R": {"L": ()}})
        layouts = lay.init_layouts(template, ViewOptions().with_drawing(height_px=500))
        empty = layouts[LayoutPath.layer("R", "L")]
        assert empty.size == 0
        assert empty.geometry.width == 0
        assert empty.clicked_id(LEFT_MARGIN_PX, 40) is None


class TestGeometry:
    def test_one_d_origin(self, layouts) -> None:
        """dt 0 is the rightmost time column; older steps move left."""
        assert layouts[L1].origin_px_topleft(0) == (204, 30)
        assert layouts[L1].origin_px_topleft(3) == (189, 30)

    def test_dt_offset_shifts_origin(self, layouts, options) -> None:
        """With dt offset 2, dt 2 occupies the rightmost column."""
        shifted = lay.update_dt_offsets(layouts, 10, options)
        assert shifted[L1].dt_offset == 2
        assert shifted[L1].origin_px_topleft(2) == (204, 30)

    def test_element_xy(self, layouts) -> None:
        assert layouts[L1].element_xy(5, 0) == (206.5, 57.5)

    def test_clicked_id_one_d(self, layouts) -> None:
        """Pixel to (dt, id), None outside."""
        assert layouts[L1].clicked_id(206.5, 57.5) == (0, 5)
        assert layouts[L1].clicked_id(201.0, 57.5) == (1, 5)
        assert layouts[L1].clicked_id(210.0, 57.5) is None
        assert layouts[L1].clicked_id(206.5, 131.0) is None

    def test_clicked_id_two_d(self, template, options) -> None:
        """Two-d layouts wrap ids into rows and always report their dt offset."""
        options = options.with_drawing(display_mode=DisplayMode.TWO_D)
        layouts = lay.init_layouts(template, options)
        g = layouts[L1].geometry
        assert g.grid_w == 5
        assert g.left == 81
        assert layouts[L1].clicked_id(92, 36) == (0, 7)

    def test_local_positions_skip_offscreen(self, template, short_options) -> None:
        layouts = lay.init_layouts(template, short_options)
        pos = layouts[L1].local_positions([1, 9, 15])
        assert pos[:, 0].tolist() == [1.0]
        assert pos[0, 2] == 5.0


class TestOrdering:
    def test_sort_by_recent_activity(self, layouts) -> None:
        """Most recent activity first, then frequency, then id."""
        sorted_lay = lay.sort_by_recent_activity(layouts[L1], [[3, 4], [4, 7]])
        assert sorted_lay.ids_by_position[:6].tolist() == [4, 3, 7, 0, 1, 2]
        assert sorted(sorted_lay.order.tolist()) == list(range(20))

    def test_clear_sort_on_unsorted_is_noop(self, layouts) -> None:
        """The very same layout comes back."""
        assert lay.clear_sort(layouts[L1]) is layouts[L1]

    def test_clear_sort_restores_natural_order(self, layouts) -> None:
        sorted_lay = lay.sort_by_recent_activity(layouts[L1], [[9]])
        assert sorted_lay.id_at(0) == 9
        assert lay.clear_sort(sorted_lay).ids_by_position.tolist() == list(range(20))

    def test_facets_stay_pinned(self, layouts) -> None:
        """Faceted ids lead the ordering through sorts and clear-sort."""
        faceted = lay.add_facet(layouts[L1], [5, 2], timestep=9)
        assert faceted.facets[0].ids == (2, 5)
        assert faceted.facets[0].timestep == 9
        assert faceted.ids_by_position[:3].tolist() == [2, 5, 0]

        resorted = lay.sort_by_recent_activity(faceted, [[3]])
        assert resorted.ids_by_position[:4].tolist() == [2, 5, 3, 0]
        assert lay.clear_sort(resorted).ids_by_position[:4].tolist() == [2, 5, 0, 1]

    def test_second_facet_goes_below_first(self, layouts) -> None:
        faceted = lay.add_facet(lay.add_facet(layouts[L1], [7], 1), [7, 3], 2)
        assert [f.ids for f in faceted.facets] == [(7,), (3,)]
        assert [(s, e) for _, s, e in lay.facet_spans(faceted)] == [(0, 1), (1, 2)]

    def test_add_facet_without_new_ids_is_noop(self, layouts) -> None:
        assert lay.add_facet(layouts[L1], [], 4) is layouts[L1]

    def test_clear_facets_keeps_order(self, layouts) -> None:
        faceted = lay.add_facet(layouts[L1], [5], 1)
        cleared = lay.clear_facets(faceted)
        assert cleared.facets == ()
        assert np.array_equal(cleared.order, faceted.order)


class TestScroll:
    def test_pages(self, template, short_options) -> None:
        """Scrolling moves by a page and stops at the last one."""
        layout = lay.init_layouts(template, short_options)[L1]
        assert layout.n_onscreen == 8
        down1 = lay.scroll(layout, True)
        down2 = lay.scroll(down1, True)
        assert (down1.scroll_top, down2.scroll_top) == (8, 16)
        assert lay.scroll(down2, True) is down2
        assert down2.n_onscreen == 4
        assert down2.ids_onscreen().tolist() == [16, 17, 18, 19]
        assert lay.scroll(down2, False).scroll_top == 8

    def test_scroll_up_at_top_is_noop(self, layouts) -> None:
        assert lay.scroll(layouts[L1], False) is layouts[L1]


class TestRebuild:
    def test_rebuild_preserves_view_state(self, template, short_options) -> None:
        """Ordering, facets and scroll survive two rebuilds unchanged."""
        layouts = lay.init_layouts(template, short_options)
        l1 = lay.add_facet(layouts[L1], [11], 3)
        l1 = lay.sort_by_recent_activity(l1, [[4, 19]])
        l1 = lay.scroll(l1, True)
        layouts = {**layouts, L1: l1}

        once = lay.rebuild(layouts, template, short_options)
        twice = lay.rebuild(once, template, short_options)
        for result in (once, twice):
            assert np.array_equal(result[L1].order, l1.order)
            assert result[L1].facets == l1.facets
            assert result[L1].scroll_top == l1.scroll_top

    def test_rebuild_new_geometry(self, template, short_options, options) -> None:
        """Geometry follows the new options while the ordering is kept."""
        layouts = lay.init_layouts(template, short_options)
        l1 = lay.sort_by_recent_activity(layouts[L1], [[6]])
        rebuilt = lay.rebuild({**layouts, L1: l1}, template, options.with_drawing(col_d_px=8))
        assert rebuilt[L1].geometry.element_w == 8
        assert rebuilt[L1].id_at(0) == 6

    def test_rebuild_resized_topology_starts_fresh(self, template, options) -> None:
        layouts = lay.init_layouts(template, options)
        l1 = lay.sort_by_recent_activity(layouts[L1], [[6]])
        bigger = StepTemplate(inputs={"in": (10,)}, regions={"R1": {"L1": (30,)}})
        rebuilt = lay.rebuild({**layouts, L1: l1}, bigger, options)
        assert rebuilt[L1].size == 30
        assert rebuilt[L1].id_at(0) == 0


class TestVisibleChange:
    def test_detects_scroll_and_order_only(self, template, short_options) -> None:
        layouts = lay.init_layouts(template, short_options)
        assert not lay.ids_onscreen_changed(layouts, dict(layouts))
        assert not lay.ids_onscreen_changed(layouts, lay.update_dt_offsets(layouts, 20, short_options))
        assert lay.ids_onscreen_changed(layouts, {**layouts, L1: lay.scroll(layouts[L1], True)})
        assert lay.ids_onscreen_changed(
            layouts, {**layouts, L1: lay.sort_by_recent_activity(layouts[L1], [[12]])}
        )
