"""
Viz Canvas
==========
The main drawing surface.

Why is this file needed?
------------------------
1. Rendering: Frames are drawn off-screen by the draw engine, at most once
   per debounce interval, and only when ``should_draw`` allows it.
2. Input: Clicks, keys and resizes are turned into commands for the command
   loop; the widget never mutates shared state itself.
"""
from __future__ import annotations

import logging

from PySide6.QtCore import QTimer, Qt
from PySide6.QtGui import QColor, QImage, QKeyEvent, QMouseEvent, QPainter, QPaintEvent, QResizeEvent
from PySide6.QtWidgets import QWidget

from cortexviz.app.state import VizStore
from cortexviz.controller.commands import KEY_TO_COMMAND, Command, CommandLoop
from cortexviz.controller.fetch import FetchCoordinator
from cortexviz.view.cells_segments import CellsSegmentsLayout
from cortexviz.view.draw_cache import DrawCache
from cortexviz.view.draw_engine import VizSnapshot, draw_viz, should_draw
from cortexviz.view.painting import image_buffer

logger = logging.getLogger(__name__)

_KEYS = {key.value: command for key, command in KEY_TO_COMMAND.items()}


def append_modifier(event: QMouseEvent) -> bool:
    mods = event.modifiers()
    return bool(mods & (Qt.KeyboardModifier.ControlModifier | Qt.KeyboardModifier.MetaModifier))


class VizCanvas(QWidget):
    def __init__(
        self,
        store: VizStore,
        coordinator: FetchCoordinator,
        cache: DrawCache,
        loop: CommandLoop,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.store = store
        self.coordinator = coordinator
        self.cache = cache
        self.loop = loop

        self._frame: QImage | None = None
        self._cells_layout: CellsSegmentsLayout | None = None

        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setMinimumSize(400, 300)

        # Debounce redraws; many notifications arrive in one burst
        self._redraw_timer = QTimer(self)
        self._redraw_timer.setSingleShot(True)
        self._redraw_timer.setInterval(15)
        self._redraw_timer.timeout.connect(self.redraw)

        store.steps_changed.connect(self.schedule_redraw)
        store.options_changed.connect(self.schedule_redraw)
        store.layouts_changed.connect(self.schedule_redraw)
        store.selection_changed.connect(self.schedule_redraw)
        coordinator.responses_changed.connect(self.schedule_redraw)

    # ------------------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------------------

    @property
    def frame(self) -> QImage | None:
        return self._frame

    @property
    def cells_layout(self) -> CellsSegmentsLayout | None:
        return self._cells_layout

    def schedule_redraw(self, *_) -> None:
        if not self._redraw_timer.isActive():
            self._redraw_timer.start()

    def redraw(self) -> bool:
        """Render a new frame if one is due. Returns True if it was drawn."""
        if not should_draw(self.store.steps, self.store.options):
            return False
        snapshot = VizSnapshot.capture(self.store, self.coordinator)
        frame = image_buffer(self.width(), self.height())
        frame.fill(QColor("white"))
        painter = QPainter(frame)
        try:
            self._cells_layout = draw_viz(painter, snapshot, self.cache)
        finally:
            painter.end()
        self._frame = frame
        self.update()
        return True

    # ------------------------------------------------------------------------------
    # Qt events
    # ------------------------------------------------------------------------------

    def paintEvent(self, event: QPaintEvent) -> None:
        painter = QPainter(self)
        if self._frame is None:
            painter.fillRect(self.rect(), QColor("white"))
        else:
            painter.drawImage(0, 0, self._frame)
        painter.end()

    def resizeEvent(self, event: QResizeEvent) -> None:
        super().resizeEvent(event)
        size = event.size()
        self.loop.put_resize(size.width(), size.height())

    def mousePressEvent(self, event: QMouseEvent) -> None:
        self.setFocus()
        pos = event.position()
        self.loop.put(Command.CANVAS_CLICK, pos.x(), pos.y(), append_modifier(event), self._cells_layout)

    def keyPressEvent(self, event: QKeyEvent) -> None:
        key = event.key()
        command = _KEYS.get(getattr(key, "value", key))
        if command is None:
            super().keyPressEvent(event)
            return
        self.loop.put(command)
        event.accept()
