from __future__ import annotations

import pytest
from PySide6.QtGui import QColor, QPainter

from cortexviz.model import layout as lay
from cortexviz.model.options import DisplayMode, ViewOptions
from cortexviz.model.paths import LayoutPath
from cortexviz.model.responses import CellInfo, SegmentInfo, Synapse, SynapseState
from cortexviz.model.selection import SelectionEntry
from cortexviz.model.steps import InbitsCols, InputBits, LayerColumns
from cortexviz.view.cells_segments import CellsSegmentsLayout
from cortexviz.view.draw_cache import DrawCache
from cortexviz.view.draw_engine import VizSnapshot, draw_dts, draw_viz, scroll_status_str, should_draw
from cortexviz.view.painting import image_buffer

IN = LayoutPath.input("in")
L1 = LayoutPath.layer("R1", "L1")


def column_5(**kw) -> SelectionEntry:
    return SelectionEntry(**{"path": L1, "bit": 5, "dt": 0, "model_id": "m5", **kw})


@pytest.fixture
def snapshot(layouts, steps, options) -> VizSnapshot:
    data = InbitsCols(
        inputs={"in": InputBits(active_bits=frozenset({3}))},
        regions={"R1": {"L1": LayerColumns(active_columns=frozenset({5}), break_=True)}},
    )
    # dt 1 selected so the time-column highlight stays off the newest step
    return VizSnapshot(
        steps=steps,
        steps_data={steps[0]: data},
        layouts=layouts,
        selection=(SelectionEntry(dt=1, model_id="m4"),),
        options=options,
    )


def render(snapshot: VizSnapshot, cache: DrawCache):
    frame = image_buffer(800, 500)
    frame.fill(QColor("white"))
    painter = QPainter(frame)
    try:
        cells_layout = draw_viz(painter, snapshot, cache)
    finally:
        painter.end()
    return frame, cells_layout


class TestShouldDraw:
    def test_conditions(self, steps, options) -> None:
        assert should_draw(steps, options)
        assert not should_draw((), options)
        assert not should_draw(steps, options.with_drawing(anim_go=False))
        assert not should_draw(steps, ViewOptions())

    def test_animation_stride(self, steps, options) -> None:
        """Only every n-th timestep is drawn."""
        assert not should_draw(steps, options.with_drawing(anim_every=2))
        assert should_draw(steps[1:], options.with_drawing(anim_every=2))


class TestStatus:
    def test_scroll_status(self, template) -> None:
        layouts = lay.init_layouts(template, ViewOptions().with_drawing(height_px=70))
        assert scroll_status_str(layouts[L1]) == "8 of 20 cols"
        assert scroll_status_str(lay.scroll(layouts[L1], True)) == "8 of 20 cols @ 66%"
        assert scroll_status_str(layouts[IN]) == "10 of 10 bits"


class TestDrawDts:
    def test_window_around_selection(self, options) -> None:
        assert draw_dts((SelectionEntry(dt=0),), options, 5) == [0, 1, 2, 3, 4]
        assert draw_dts((SelectionEntry(dt=10),), options, 30) == list(range(2, 18))
        assert draw_dts((SelectionEntry(dt=10),), options, 5) == [2, 3, 4]

    def test_two_d_draws_one_step(self, options) -> None:
        options = options.with_drawing(display_mode=DisplayMode.TWO_D)
        assert draw_dts((SelectionEntry(dt=3),), options, 5) == [3]
        assert draw_dts((SelectionEntry(dt=7),), options, 5) == []


class TestDrawViz:
    def test_active_column_is_painted(self, qapp, snapshot) -> None:
        frame, cells_layout = render(snapshot, DrawCache())
        px = frame.pixelColor(206, 57)
        assert px.red() > 200 and px.green() < 60 and px.blue() < 60
        # column 6 stays inactive
        assert frame.pixelColor(206, 62).green() > 200
        assert cells_layout is None

    def test_second_frame_reuses_images(self, qapp, snapshot) -> None:
        cache = DrawCache()
        render(snapshot, cache)
        hits, misses = cache.stats()
        render(snapshot, cache)
        again_hits, again_misses = cache.stats()
        assert again_misses == misses
        assert again_hits > hits

    def test_missing_step_data_is_skipped(self, qapp, snapshot) -> None:
        frame, _ = render(VizSnapshot(
            steps=snapshot.steps, layouts=snapshot.layouts, selection=snapshot.selection, options=snapshot.options,
        ), DrawCache())
        assert frame.pixelColor(206, 57).green() > 200

    def test_selected_column_with_cells(self, qapp, snapshot) -> None:
        """With cell data for the selected column the diagram is drawn and hit-testable."""
        key = column_5().key()
        synapse = Synapse("in", 3, None, 0.5, SynapseState.ACTIVE)
        cells = {
            0: CellInfo(cell_active=True, cell_state="active"),
            1: CellInfo(segments={0: SegmentInfo(n_conn_act=3, stimulus_th=3, syns_by_state={SynapseState.ACTIVE: (synapse,)})}),
        }
        ff = {"in": {key: {("R1", "L1", 5): (synapse,)}}, "out": {}}
        full = VizSnapshot(
            steps=snapshot.steps,
            steps_data=snapshot.steps_data,
            layouts=snapshot.layouts,
            selection=(column_5(),),
            options=snapshot.options,
            ff_synapses=ff,
            cell_segments=(key, cells),
        )
        _, cells_layout = render(full, DrawCache())
        assert isinstance(cells_layout, CellsSegmentsLayout)
        assert cells_layout.cells_left == 209 + 55

    def test_cells_for_a_dropped_step_are_skipped(self, qapp, snapshot) -> None:
        key = column_5(model_id="gone").key()
        stale = VizSnapshot(
            steps=snapshot.steps, layouts=snapshot.layouts, options=snapshot.options,
            cell_segments=(key, {0: CellInfo()}),
        )
        assert render(stale, DrawCache())[1] is None

    def test_frame_needs_no_steps(self, qapp, layouts, options) -> None:
        frame, cells_layout = render(VizSnapshot(layouts=layouts, options=options), DrawCache())
        assert cells_layout is None
        assert frame.pixelColor(400, 400) == QColor("white")


class TestCellsSegmentsLayout:
    @pytest.fixture
    def cslay(self, layouts, options) -> CellsSegmentsLayout:
        return CellsSegmentsLayout(5, [2, 0, 1], layouts[L1], 0, 300, options)

    def test_segment_slots(self, cslay) -> None:
        """Every cell takes at least one slot; slots share the height below the cells' top."""
        assert [cslay.seg_xy(0, 0)[1], cslay.seg_xy(0, 1)[1], cslay.seg_xy(1, 0)[1], cslay.seg_xy(2, 0)[1]] == [
            40, 155, 270, 385,
        ]
        assert cslay.seg_xy(0, 0)[0] == 355
        assert cslay.cell_xy(2) == (300, 385)

    def test_clicked_seg(self, cslay) -> None:
        assert cslay.clicked_seg(360, 45) == (0, 0)
        assert cslay.clicked_seg(360, 155) == (0, 1)
        assert cslay.clicked_seg(360, 385) == (2, 0)
        assert cslay.clicked_seg(360, 270) is None
        assert cslay.clicked_seg(395, 155) is None
        assert cslay.clicked_seg(280, 155) is None

    def test_column_anchor(self, cslay) -> None:
        assert (cslay.col_x, cslay.col_y) == (206.5, 57.5)
