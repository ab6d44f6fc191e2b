"""
Cells & Segments Diagram
Geometry and drawing of the cells of one selected column and the distal
dendrite segments of each cell.
"""
from __future__ import annotations

from typing import Mapping

from PySide6.QtCore import QPointF, QRectF, Qt
from PySide6.QtGui import QColor, QPainter, QPainterPath, QPen

from cortexviz.model.layout import Layout
from cortexviz.model.options import SynapseOptions, ViewOptions
from cortexviz.model.paths import LayoutPath
from cortexviz.model.responses import CellInfo, SegmentInfo
from cortexviz.view.painting import STATE_COLORS, draw_text, state_color


class CellsSegmentsLayout:
    """
    One vertical band per cell, placed to the right of all layer layouts.

    Cells are stacked by segment count (each cell gets at least one slot),
    and each segment sits in its own slot a fixed distance right of its cell.
    """

    def __init__(
        self,
        col: int,
        nsegbycell: list[int],
        cols_lay: Layout,
        dt: int,
        cells_left: float,
        options: ViewOptions,
    ) -> None:
        d_opts = options.drawing
        self.nsegbycell = list(nsegbycell)
        self._padded = [max(1, n) for n in self.nsegbycell]
        self._nseg_pad = max(1, sum(self._padded))
        self.cells_left = cells_left
        self.segs_left = cells_left + d_opts.seg_h_space_px
        self.col_r_px = d_opts.col_d_px * 0.5
        self.cell_r_px = d_opts.cell_r_px
        self.seg_h_px = d_opts.seg_h_px
        self.seg_w_px = d_opts.seg_w_px
        self.top = d_opts.top_px + d_opts.cell_r_px
        self.height = max(0, (d_opts.height_px or 0) - self.top)
        self.col_x, self.col_y = cols_lay.element_xy(col, dt)

    def seg_xy(self, ci: int, si: int) -> tuple[float, float]:
        i_all = si + sum(self._padded[:ci])
        frac = i_all / self._nseg_pad
        return self.segs_left, self.top + frac * self.height

    def cell_xy(self, ci: int) -> tuple[float, float]:
        _, y = self.seg_xy(ci, 0)
        return self.cells_left, y

    def col_cell_path(self, ci: int) -> QPainterPath:
        """S-curve from the column to the cell centre."""
        x0, y0 = self.col_x, self.col_y
        x1, y1 = self.cell_xy(ci)
        x_third = (x1 - x0) / 3
        path = QPainterPath(QPointF(x0 + self.col_r_px + 1, y0))
        path.cubicTo(QPointF(x1 - x_third, y0), QPointF(x0 + x_third, y1), QPointF(x1, y1))
        return path

    def cell_seg_line(self, ci: int, si: int) -> tuple[QPointF, QPointF]:
        cell_x, cell_y = self.cell_xy(ci)
        sx, sy = self.seg_xy(ci, si)
        return QPointF(sx, sy), QPointF(cell_x + self.cell_r_px, cell_y)

    def clicked_seg(self, x: float, y: float) -> tuple[int, int] | None:
        """First (cell, segment) whose extent covers the point."""
        if not (self.cells_left - self.cell_r_px <= x <= self.segs_left + self.seg_w_px + 5):
            return None
        for ci, nsegs in enumerate(self.nsegbycell):
            for si in range(nsegs):
                _, seg_y = self.seg_xy(ci, si)
                if seg_y - self.seg_h_px <= y <= seg_y + self.seg_h_px + 5:
                    return ci, si
        return None


def source_layout(layouts: Mapping[LayoutPath, Layout], src_id: str, src_lyr: str | None) -> Layout | None:
    """Layout of a synapse source: an input of that id, else a region layer."""
    return layouts.get(LayoutPath.input(src_id)) or (
        layouts.get(LayoutPath.layer(src_id, src_lyr)) if src_lyr is not None else None
    )


def _draw_segment(
    painter: QPainter,
    cslay: CellsSegmentsLayout,
    ci: int,
    si: int,
    seg: SegmentInfo,
    layouts: Mapping[LayoutPath, Layout],
    dt: int,
    syn_opts: SynapseOptions,
) -> None:
    sx, sy = cslay.seg_xy(ci, si)
    seg_w, seg_h = cslay.seg_w_px, cslay.seg_h_px
    scale_factor = seg_w / seg.stimulus_th if seg.stimulus_th > 0 else 0.0

    def scale(n: int) -> int:
        return int(n * scale_factor)

    h2 = int(seg_h / 2)
    conn_th_r = QRectF(sx, sy - h2, seg_w, seg_h)
    conn_tot_r = QRectF(sx, sy - h2, scale(seg.n_conn_tot), seg_h)
    conn_act_r = QRectF(sx, sy - h2, scale(seg.n_conn_act), seg_h)
    disc_th_r = QRectF(sx, sy + h2, scale(seg.learning_th), seg_h)
    disc_tot_r = QRectF(sx, sy + h2, scale(seg.n_dis_tot), seg_h)
    disc_act_r = QRectF(sx, sy + h2, scale(seg.n_dis_act), seg_h)

    if seg.selected_seg:
        painter.fillRect(QRectF(sx - 5, sy - h2 - 5, seg_w + 10, 2 * seg_h + 10), STATE_COLORS["highlight"])
    painter.fillRect(conn_th_r, QColor("white"))
    painter.fillRect(disc_th_r, QColor("white"))
    painter.fillRect(conn_tot_r, STATE_COLORS["background"])
    painter.fillRect(disc_tot_r, STATE_COLORS["background"])
    painter.setPen(QPen(QColor("black"), 1))
    painter.setBrush(Qt.BrushStyle.NoBrush)
    painter.fillRect(conn_act_r, STATE_COLORS["active"])
    painter.drawRect(conn_th_r)
    painter.setOpacity(0.5)
    painter.fillRect(disc_act_r, STATE_COLORS["active"])
    painter.drawRect(disc_th_r)
    painter.setOpacity(1.0)

    if seg.is_active:
        painter.setPen(QPen(STATE_COLORS["active"], 2))
        painter.drawLine(*cslay.cell_seg_line(ci, si))

    painter.setPen(QColor("black"))
    draw_text(painter, sx - 3, sy - painter.fontMetrics().ascent() / 2, f"seg {si}", Qt.AlignmentFlag.AlignRight)
    if seg.learn_seg:
        draw_text(painter, sx + seg_w + 10, sy - painter.fontMetrics().ascent() / 2, "learning")

    # distal synapses come from the previous step
    for syn_state, syns in seg.syns_by_state.items():
        if not syn_opts.shows(syn_state):
            continue
        color = state_color(syn_state)
        for syn in syns:
            src_lay = source_layout(layouts, syn.src_id, syn.src_lyr)
            if src_lay is None or not src_lay.id_onscreen(syn.src_col):
                continue
            src_x, src_y = src_lay.element_xy(syn.src_col, dt + 1)
            painter.setPen(QPen(color, 1))
            painter.setOpacity(syn.perm if syn_opts.permanences and syn.perm is not None else 1.0)
            painter.drawLine(QPointF(sx, sy), QPointF(src_x + 1, src_y))
    painter.setOpacity(1.0)


def draw_cell_segments(
    painter: QPainter,
    cells: Mapping[int, CellInfo],
    col: int,
    cols_lay: Layout,
    dt: int,
    layouts: Mapping[LayoutPath, Layout],
    options: ViewOptions,
    cells_left: float,
) -> CellsSegmentsLayout:
    """Draw the diagram and return its layout for click hit-testing."""
    nsegbycell = [len(cells[ci].segments) for ci in sorted(cells)]
    cslay = CellsSegmentsLayout(col, nsegbycell, cols_lay, dt, cells_left, options)
    d_opts = options.drawing
    cell_r = cslay.cell_r_px

    painter.save()
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)
    for ci, cell in cells.items():
        cell_x, cell_y = cslay.cell_xy(ci)

        # background lines to the cell, from the column and from its segments
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.setPen(QPen(STATE_COLORS["background"], d_opts.col_d_px))
        painter.drawPath(cslay.col_cell_path(ci))
        for si in range(len(cell.segments)):
            painter.drawLine(*cslay.cell_seg_line(ci, si))
        if cell.cell_active:
            painter.setPen(QPen(STATE_COLORS["active"], 2))
            painter.drawPath(cslay.col_cell_path(ci))

        # the cell itself
        painter.setPen(Qt.PenStyle.NoPen)
        if cell.selected_cell:
            painter.setBrush(STATE_COLORS["highlight"])
            painter.drawEllipse(QPointF(cell_x, cell_y), cell_r + 8, cell_r + 8)
        painter.setBrush(state_color(cell.cell_state))
        painter.setPen(QPen(QColor("black"), 1))
        painter.drawEllipse(QPointF(cell_x, cell_y), cell_r, cell_r)
        painter.setPen(QColor("black"))
        draw_text(painter, cell_x + 10, cell_y - cell_r - 5 - painter.fontMetrics().height(), f"cell {ci}")

        for si, seg in cell.segments.items():
            _draw_segment(painter, cslay, ci, si, seg, layouts, dt, options.distal_synapses)
    painter.restore()
    return cslay
