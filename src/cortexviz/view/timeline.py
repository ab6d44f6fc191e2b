"""
Timeline strip: one dot per retained timestep, most recent on the right.
"""
from __future__ import annotations

import logging
from typing import Sequence

from PySide6.QtCore import QPointF, QRectF, Qt
from PySide6.QtGui import QColor, QFont, QImage, QMouseEvent, QPainter, QPaintEvent, QResizeEvent
from PySide6.QtWidgets import QWidget

from cortexviz.app.state import VizStore
from cortexviz.controller.commands import Command, CommandLoop
from cortexviz.model.options import ViewOptions
from cortexviz.model.selection import Selection
from cortexviz.model.steps import Step
from cortexviz.view.draw_engine import should_draw
from cortexviz.view.painting import image_buffer
from cortexviz.view.viz_canvas import append_modifier

logger = logging.getLogger(__name__)

# Labels are unreadable beyond this many slots.
MAX_LABELLED_SLOTS = 100


def slot_width(width_px: float, keep_steps: int) -> float:
    return width_px / keep_steps


def timeline_click_dt(x: float, width_px: float, keep_steps: int) -> int:
    """The dt whose slot covers ``x``; slots run right to left."""
    return int((width_px - 1 - x) // slot_width(width_px, keep_steps))


def draw_timeline(
    painter: QPainter,
    width_px: int,
    height_px: int,
    steps: Sequence[Step],
    selection: Selection,
    options: ViewOptions,
) -> None:
    keep_steps = options.keep_steps
    sel_dts = {entry.dt for entry in selection}
    current_t = steps[0].timestep if steps else 0
    t_width = slot_width(width_px, keep_steps)
    y_px = height_px / 2
    r_px = min(y_px, t_width * 0.5)

    font = QFont(painter.font())
    font.setPixelSize(10)
    font.setBold(True)
    painter.setFont(font)
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)
    painter.setPen(Qt.PenStyle.NoPen)
    for dt in reversed(range(keep_steps)):
        kept = dt < len(steps)
        selected = dt in sel_dts
        x_px = width_px - 1 - r_px - dt * t_width
        r = y_px if selected else r_px
        painter.setOpacity(1.0 if selected else 0.3 if kept else 0.1)
        painter.setBrush(QColor("black"))
        painter.drawEllipse(QPointF(x_px, y_px), r, r)
        if selected or (kept and keep_steps < MAX_LABELLED_SLOTS):
            painter.setPen(QColor("white"))
            painter.drawText(
                QRectF(x_px - t_width, 0, 2 * t_width, height_px),
                Qt.AlignmentFlag.AlignCenter, str(current_t - dt),
            )
            painter.setPen(Qt.PenStyle.NoPen)
    painter.setOpacity(1.0)


class TimelineWidget(QWidget):
    def __init__(self, store: VizStore, loop: CommandLoop, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.store = store
        self.loop = loop
        self._frame: QImage | None = None
        self.setFixedHeight(24)

        store.steps_changed.connect(self.redraw)
        store.selection_changed.connect(self.redraw)
        store.options_changed.connect(self.redraw)

    def redraw(self, *_) -> None:
        if not should_draw(self.store.steps, self.store.options):
            return
        frame = image_buffer(self.width(), self.height())
        painter = QPainter(frame)
        try:
            draw_timeline(painter, self.width(), self.height(), self.store.steps, self.store.selection, self.store.options)
        finally:
            painter.end()
        self._frame = frame
        self.update()

    def paintEvent(self, event: QPaintEvent) -> None:
        if self._frame is None:
            return
        painter = QPainter(self)
        painter.drawImage(0, 0, self._frame)
        painter.end()

    def resizeEvent(self, event: QResizeEvent) -> None:
        super().resizeEvent(event)
        self.redraw()

    def mousePressEvent(self, event: QMouseEvent) -> None:
        click_dt = timeline_click_dt(event.position().x(), self.width(), self.store.options.keep_steps)
        self.loop.put(Command.TIMELINE_CLICK, click_dt, append_modifier(event))
