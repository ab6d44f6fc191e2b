"""
Layout Painting
Colours and QPainter helpers that render layouts into off-screen images and
onto the canvas.
"""
from __future__ import annotations

import math
from typing import Iterable, Mapping

import numpy as np
from PySide6.QtCore import QPointF, QRectF, Qt
from PySide6.QtGui import QColor, QImage, QPainter, QPen

from cortexviz.model.layout import Layout, facet_spans

_HUES = {
    "red": 0,
    "orange": 30,
    "yellow": 60,
    "yellow-green": 90,
    "green": 120,
    "blue": 210,
    "purple": 270,
    "pink": 300,
}


def hsl(h: str | float, s: float, l: float, a: float = 1.0) -> QColor:
    """Colour from a named hue (or angle in degrees), saturation, lightness."""
    angle = _HUES[h] if isinstance(h, str) else h
    return QColor.fromHslF((angle % 360) / 360.0, s, l, a)


def grey(z: float) -> QColor:
    v = int(z * 255)
    return QColor(v, v, v)


STATE_COLORS: dict[str, QColor] = {
    "background": QColor("#eeeeee"),
    "inactive": QColor("white"),
    "inactive-syn": QColor("black"),
    "growing": hsl("green", 1.0, 0.5),
    "disconnected": hsl("red", 1.0, 0.5),
    "active": hsl("red", 1.0, 0.5),
    "predicted": hsl("blue", 1.0, 0.5, 0.5),
    "active-predicted": hsl("purple", 1.0, 0.4),
    "highlight": hsl("yellow", 1.0, 0.65, 0.6),
    "temporal-pooling": hsl("green", 1.0, 0.5, 0.4),
}


def state_color(state: str) -> QColor:
    return STATE_COLORS.get(str(state), STATE_COLORS["inactive-syn"])


# -------------------------------------------------------------------------------
# Off-screen images
# -------------------------------------------------------------------------------

def image_buffer(w: int, h: int) -> QImage:
    """Transparent ARGB image; never zero-sized so it can always be painted on."""
    img = QImage(max(1, w), max(1, h), QImage.Format.Format_ARGB32_Premultiplied)
    img.fill(Qt.GlobalColor.transparent)
    return img


def fill_elements(layout: Layout, painter: QPainter, ids: Iterable[int]) -> None:
    """Fill the onscreen subset of ``ids`` with the current brush."""
    g = layout.geometry
    w, h = g.element_w * g.shrink, g.element_h * g.shrink
    pad_x, pad_y = (g.element_w - w) / 2, (g.element_h - h) / 2
    painter.setPen(Qt.PenStyle.NoPen)
    for _, x, y in layout.local_positions(ids):
        rect = QRectF(x + pad_x, y + pad_y, w, h)
        if g.circles:
            painter.drawEllipse(rect)
        else:
            painter.drawRect(rect)


def group_and_fill_elements(layout: Layout, painter: QPainter, id_to_alpha: Mapping[int, float]) -> None:
    """Fill ids grouped by alpha, one opacity change per group."""
    by_alpha: dict[float, list[int]] = {}
    for element_id, alpha in id_to_alpha.items():
        by_alpha.setdefault(round(float(np.clip(alpha, 0.0, 1.0)), 2), []).append(element_id)
    for alpha, ids in sorted(by_alpha.items()):
        painter.setOpacity(alpha)
        fill_elements(layout, painter, ids)
    painter.setOpacity(1.0)


def _paint_image(layout: Layout, paint) -> QImage:
    img = image_buffer(*layout.frame_size())
    painter = QPainter(img)
    try:
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        paint(painter)
    finally:
        painter.end()
    return img


def bg_image(layout: Layout) -> QImage:
    def paint(painter: QPainter) -> None:
        painter.setBrush(STATE_COLORS["background"])
        fill_elements(layout, painter, layout.ids_onscreen())
    return _paint_image(layout, paint)


def fill_ids_image(layout: Layout, color: QColor, ids: Iterable[int]) -> QImage:
    def paint(painter: QPainter) -> None:
        painter.setBrush(color)
        fill_elements(layout, painter, ids)
    return _paint_image(layout, paint)


def fill_ids_alpha_image(layout: Layout, color: QColor, id_to_alpha: Mapping[int, float]) -> QImage:
    def paint(painter: QPainter) -> None:
        painter.setBrush(color)
        group_and_fill_elements(layout, painter, id_to_alpha)
    return _paint_image(layout, paint)


def break_image(layout: Layout) -> QImage:
    """A vertical rule marking a discontinuity in the input sequence."""
    def paint(painter: QPainter) -> None:
        painter.setPen(QPen(QColor("black"), 2))
        painter.drawLine(QPointF(0.5, 0), QPointF(0.5, layout.geometry.height))
    return _paint_image(layout, paint)


def draw_image_dt(painter: QPainter, layout: Layout, dt: int, img: QImage) -> None:
    x, y = layout.origin_px_topleft(dt)
    painter.drawImage(QPointF(x, y), img)


# -------------------------------------------------------------------------------
# Direct drawing on the canvas
# -------------------------------------------------------------------------------

def draw_text(painter: QPainter, x: float, y: float, text: str,
              align: Qt.AlignmentFlag = Qt.AlignmentFlag.AlignLeft) -> None:
    """Text with its top edge at ``y``; ``align`` right anchors it at ``x``."""
    metrics = painter.fontMetrics()
    width = metrics.horizontalAdvance(text)
    if align & Qt.AlignmentFlag.AlignRight:
        x -= width
    elif align & Qt.AlignmentFlag.AlignHCenter:
        x -= width / 2
    painter.drawText(QPointF(x, y + metrics.ascent()), text)


def draw_facets(layout: Layout, painter: QPainter) -> None:
    """Bracket each facet's rows to the left of the layout, labelled with its timestep."""
    if not layout.is_one_d or not layout.facets:
        return
    g = layout.geometry
    painter.save()
    painter.setPen(QPen(QColor("black"), 1))
    for facet, start, end in facet_spans(layout):
        k0 = max(start, layout.scroll_top) - layout.scroll_top
        k1 = min(end, layout.scroll_top + layout.n_onscreen) - layout.scroll_top
        if k1 <= k0:
            continue
        y0, y1 = g.top + k0 * g.element_h, g.top + k1 * g.element_h
        x = g.left - 3
        painter.drawLine(QPointF(x, y0), QPointF(x, y1))
        painter.drawLine(QPointF(x, y0), QPointF(x + 2, y0))
        painter.drawLine(QPointF(x, y1), QPointF(x + 2, y1))
        draw_text(painter, x - 2, y0, str(facet.timestep), Qt.AlignmentFlag.AlignRight)
    painter.restore()


def highlight_dt(layout: Layout, painter: QPainter, dt: int, color: QColor) -> None:
    """Shade the whole time column of ``dt``."""
    g = layout.geometry
    x, y = layout.origin_px_topleft(dt)
    painter.fillRect(QRectF(x, y - 2, g.element_w, g.height + 4), color)


def highlight_layer(layout: Layout, painter: QPainter, color: QColor) -> None:
    x, y, w, h = layout.bounds()
    painter.save()
    painter.setPen(QPen(color, 3))
    painter.setBrush(Qt.BrushStyle.NoBrush)
    painter.drawRect(QRectF(x - 3, y - 3, w + 6, h + 6))
    painter.restore()


def highlight_element(layout: Layout, painter: QPainter, dt: int, element_id: int, color: QColor) -> None:
    if not layout.id_onscreen(element_id):
        return
    x, y, w, h = layout.element_rect(element_id, dt)
    pad = max(1.0, math.ceil(min(w, h) / 2))
    painter.save()
    painter.setPen(QPen(color, 2))
    painter.setBrush(Qt.BrushStyle.NoBrush)
    painter.drawRect(QRectF(x - pad, y - pad, w + 2 * pad, h + 2 * pad))
    painter.restore()
