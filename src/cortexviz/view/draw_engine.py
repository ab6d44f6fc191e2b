"""
Draw Engine
===========
Renders one frame of the canvas from an immutable snapshot of shared state.

Why is this file needed?
------------------------
1. Throttling: ``should_draw`` decides whether a new frame is due at all.
2. Composition: Per timestep and per layout, a cached background is drawn
   and then every enabled overlay channel as its own cached image.
3. Annotation: Facets, selection highlights, feed-forward synapses and the
   cells/segments diagram are drawn directly on top.

Missing per-step or per-path data simply skips the corresponding drawing.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, NamedTuple, Sequence, TYPE_CHECKING

from PySide6.QtCore import QPointF
from PySide6.QtGui import QColor, QFont, QPainter, QPen

from cortexviz.model.layout import Layout
from cortexviz.model.options import DisplayMode, OptionGroup, Overlay, ViewOptions, path_group
from cortexviz.model.paths import LayoutPath
from cortexviz.model.responses import CellInfo, Synapse, TargetKey
from cortexviz.model.selection import BLANK_SELECTION, Selection, SelectionKey, top
from cortexviz.model.steps import InbitsCols, Step, index_of_model
from cortexviz.view import painting
from cortexviz.view.cells_segments import CellsSegmentsLayout, draw_cell_segments, source_layout
from cortexviz.view.draw_cache import DrawCache
from cortexviz.view.painting import STATE_COLORS

if TYPE_CHECKING:
    from cortexviz.app.state import VizStore
    from cortexviz.controller.fetch import FetchCoordinator

logger = logging.getLogger(__name__)

LABEL_TOP_PX = 0
LABEL_LINE_PX = 10


@dataclass(frozen=True)
class VizSnapshot:
    """Everything one frame reads, captured at frame start."""
    steps: tuple[Step, ...] = ()
    steps_data: Mapping[Step, InbitsCols | None] = field(default_factory=dict)
    layouts: Mapping[LayoutPath, Layout] = field(default_factory=dict)
    selection: Selection = BLANK_SELECTION
    options: ViewOptions = field(default_factory=ViewOptions)
    ff_synapses: Mapping[str, Mapping[SelectionKey, Mapping[TargetKey, tuple[Synapse, ...]]]] = field(default_factory=dict)
    cell_segments: tuple[SelectionKey, Mapping[int, CellInfo]] | None = None

    @classmethod
    def capture(cls, store: VizStore, coordinator: FetchCoordinator) -> VizSnapshot:
        return cls(
            steps=store.steps,
            steps_data=dict(coordinator.steps_data),
            layouts=dict(store.layouts),
            selection=store.selection,
            options=store.options,
            ff_synapses=coordinator.ff_synapses(),
            cell_segments=coordinator.cell_segments,
        )


def should_draw(steps: Sequence[Step], options: ViewOptions) -> bool:
    """Animation on, a most recent step, a known canvas height, and the step on stride."""
    d_opts = options.drawing
    if not d_opts.anim_go or not steps or d_opts.height_px is None:
        return False
    return steps[0].timestep % d_opts.anim_every == 0


def scroll_status_str(layout: Layout) -> str:
    """E.g. ``"40 of 200 cols @ 50%"``; the percentage only when scrolled."""
    idx = layout.scroll_position
    page_n = layout.n_onscreen
    n_ids = layout.size
    text = f"{page_n} of {n_ids} {'bits' if layout.is_input else 'cols'}"
    if idx > 0 and n_ids > page_n:
        text += f" @ {int(100 * idx / (n_ids - page_n))}%"
    return text


def draw_dts(selection: Selection, options: ViewOptions, n_steps: int) -> list[int]:
    """Relative time offsets drawn this frame."""
    center_dt = top(selection).dt
    if options.drawing.display_mode == DisplayMode.TWO_D:
        return [center_dt] if center_dt < n_steps else []
    draw_steps = options.drawing.draw_steps
    dt0 = max(0, center_dt - draw_steps // 2)
    return list(range(dt0, min(dt0 + draw_steps, n_steps)))


# -------------------------------------------------------------------------------
# Overlay channels
# -------------------------------------------------------------------------------

class OverlaySpec(NamedTuple):
    overlay: Overlay
    attr: str
    color: str
    enabled: Callable[[ViewOptions], bool]
    alpha: bool


INPUT_OVERLAYS = (
    OverlaySpec(Overlay.ACTIVE_BITS, "active_bits", "active", lambda o: o.input.active, False),
    OverlaySpec(Overlay.PREDICTED_BITS, "pred_bits_alpha", "predicted", lambda o: o.input.predicted, True),
)

LAYER_OVERLAYS = (
    OverlaySpec(Overlay.OVERLAPS, "overlaps_columns_alpha", "black", lambda o: o.columns.overlaps, True),
    OverlaySpec(Overlay.BOOSTS, "boost_columns_alpha", "black", lambda o: o.columns.boosts, True),
    OverlaySpec(Overlay.ACTIVE_FREQ, "active_freq_columns_alpha", "black", lambda o: o.columns.active_freq, True),
    OverlaySpec(Overlay.N_SEGMENTS, "n_segments_columns_alpha", "black", lambda o: o.columns.n_segments, True),
    OverlaySpec(Overlay.ACTIVE_COLUMNS, "active_columns", "active", lambda o: o.columns.active, False),
    OverlaySpec(Overlay.PREDICTED_COLUMNS, "pred_columns", "predicted", lambda o: o.columns.predictive, False),
    OverlaySpec(Overlay.TEMPORAL_POOLING, "tp_columns", "temporal-pooling", lambda o: o.columns.temporal_pooling, False),
)


def _color(name: str) -> QColor:
    color = STATE_COLORS.get(name)
    return color if color is not None else QColor(name)


def _overlay_image(layout: Layout, spec: OverlaySpec, payload: Any):
    if spec.alpha:
        return painting.fill_ids_alpha_image(layout, _color(spec.color), payload)
    return painting.fill_ids_image(layout, _color(spec.color), payload)


def draw_step_layout(
    painter: QPainter,
    layout: Layout,
    dt: int,
    step: Step,
    data: InbitsCols | None,
    options: ViewOptions,
    cache: DrawCache,
) -> None:
    """Background, then each enabled overlay channel, then the break mark."""
    path = layout.path
    groups = {path_group(path), OptionGroup.DRAWING}
    bg = cache.layout_store(path).with_cache(("bg", path), options, groups, lambda: painting.bg_image(layout))
    painting.draw_image_dt(painter, layout, dt, bg)

    payload = data.for_path(path) if data is not None else None
    if payload is None:
        return
    step_store = cache.step_store(step)
    for spec in (INPUT_OVERLAYS if layout.is_input else LAYER_OVERLAYS):
        value = getattr(payload, spec.attr)
        if not value or not spec.enabled(options):
            continue
        img = step_store.with_cache(
            (spec.overlay, path), options, groups,
            lambda spec=spec, value=value: _overlay_image(layout, spec, value),
        )
        painting.draw_image_dt(painter, layout, dt, img)
    if getattr(payload, "break_", False):
        painting.draw_image_dt(painter, layout, dt, painting.break_image(layout))


# -------------------------------------------------------------------------------
# Frame
# -------------------------------------------------------------------------------

def cells_left_px(layouts: Mapping[LayoutPath, Layout], options: ViewOptions) -> float | None:
    """Left edge of the cells diagram: right of every layer layout."""
    rights = [lay.right_px for path, lay in layouts.items() if not path.is_input]
    if not rights:
        return None
    return max(rights) + options.drawing.seg_h_space_px


def draw_labels(painter: QPainter, snapshot: VizSnapshot) -> None:
    painter.setPen(QColor("black"))
    for path, lay in snapshot.layouts.items():
        x = lay.bounds().x
        painting.draw_text(painter, x, LABEL_TOP_PX, path.label)
        painting.draw_text(painter, x, LABEL_TOP_PX + LABEL_LINE_PX, scroll_status_str(lay))
    if snapshot.cell_segments is not None:
        cells_left = cells_left_px(snapshot.layouts, snapshot.options)
        if cells_left is not None:
            painting.draw_text(painter, cells_left, LABEL_TOP_PX, "Cells and distal dendrite segments.")


def draw_selection(painter: QPainter, snapshot: VizSnapshot, dts: Sequence[int]) -> None:
    highlight = STATE_COLORS["highlight"]
    selection = snapshot.selection
    if len(dts) > 1 and len(selection) == 1:
        dt = selection[0].dt
        for lay in snapshot.layouts.values():
            painting.highlight_dt(lay, painter, dt, highlight)
    for entry in selection:
        lay = snapshot.layouts.get(entry.path) if entry.path is not None else None
        if lay is None:
            continue
        painting.highlight_layer(lay, painter, highlight)
        if entry.bit is not None:
            painting.highlight_element(lay, painter, entry.dt, entry.bit, highlight)


def draw_ff_synapses(painter: QPainter, snapshot: VizSnapshot) -> None:
    """One line per (target column, source element), coloured by synapse state."""
    layouts = snapshot.layouts
    syn_opts = snapshot.options.ff_synapses
    painter.save()
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)
    for group in snapshot.ff_synapses.values():
        for key, by_target in group.items():
            dt = index_of_model(snapshot.steps, key.model_id)
            if dt is None:
                continue
            for (rgn_id, lyr_id, col), synapses in by_target.items():
                this_lay = layouts.get(LayoutPath.layer(rgn_id, lyr_id))
                if this_lay is None or not this_lay.id_onscreen(col):
                    continue
                this_x, this_y = this_lay.element_xy(col, dt)
                for syn in synapses:
                    if not syn_opts.shows(syn.syn_state):
                        continue
                    src_lay = source_layout(layouts, syn.src_id, syn.src_lyr)
                    if src_lay is None or not src_lay.id_onscreen(syn.src_col):
                        continue
                    src_x, src_y = src_lay.element_xy(syn.src_col, dt)
                    painter.setPen(QPen(painting.state_color(syn.syn_state), 1))
                    painter.setOpacity(syn.perm if syn_opts.permanences and syn.perm is not None else 1.0)
                    painter.drawLine(QPointF(this_x - 1, this_y), QPointF(src_x + 1, src_y))
    painter.restore()


def draw_selected_cells(painter: QPainter, snapshot: VizSnapshot) -> CellsSegmentsLayout | None:
    if snapshot.cell_segments is None:
        return None
    key, cells = snapshot.cell_segments
    dt = index_of_model(snapshot.steps, key.model_id)
    lay = snapshot.layouts.get(key.path) if key.path is not None else None
    cells_left = cells_left_px(snapshot.layouts, snapshot.options)
    if dt is None or lay is None or key.bit is None or not cells or cells_left is None:
        return None
    if not lay.id_onscreen(key.bit):
        return None
    return draw_cell_segments(painter, cells, key.bit, lay, dt, snapshot.layouts, snapshot.options, cells_left)


def draw_viz(painter: QPainter, snapshot: VizSnapshot, cache: DrawCache) -> CellsSegmentsLayout | None:
    """
    Draw one full frame. Returns the cells/segments layout (for click
    hit-testing) if the diagram was drawn.
    """
    font = QFont(painter.font())
    font.setPixelSize(10)
    painter.setFont(font)

    draw_labels(painter, snapshot)

    dts = draw_dts(snapshot.selection, snapshot.options, len(snapshot.steps))
    for dt in dts:
        step = snapshot.steps[dt]
        data = snapshot.steps_data.get(step)
        for lay in snapshot.layouts.values():
            draw_step_layout(painter, lay, dt, step, data, snapshot.options, cache)

    for lay in snapshot.layouts.values():
        painting.draw_facets(lay, painter)
    draw_selection(painter, snapshot, dts)
    draw_ff_synapses(painter, snapshot)
    return draw_selected_cells(painter, snapshot)
